# GearHire - Event Equipment Rental and Booking Engine
# Copyright (C) 2025 The GearHire Authors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Caller identity and per-request action logging.

Authentication happens upstream. The proxy in front of the API passes the
authenticated staff member's id in the ``X-Actor-Id`` header.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.errors import ForbiddenError
from gearhire.models.user import User
from gearhire.services.audit import ActionLogger


def get_actor_id(x_actor_id: Optional[int] = Header(None)) -> Optional[int]:
    """Id of the calling staff member, if the proxy supplied one."""
    return x_actor_id


def get_current_user(
    actor_id: Optional[int] = Depends(get_actor_id),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller to an active user.

    Raises:
        ForbiddenError: If no actor header is present or the user is unknown
            or inactive.
    """
    if actor_id is None:
        raise ForbiddenError("Missing X-Actor-Id header")
    user = db.query(User).filter(User.id == actor_id).first()
    if not user or not user.is_active:
        raise ForbiddenError("Unknown or inactive user")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Dependency for admin-only operations."""
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, preferring the proxy's forwarded header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_audit(request: Request, db: Session = Depends(get_db)) -> ActionLogger:
    """Action logger bound to this request's session and IP address."""
    return ActionLogger(db, ip_address=get_client_ip(request))
