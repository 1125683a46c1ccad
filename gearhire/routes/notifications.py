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

"""Notification inbox routes for the calling user."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_current_user
from gearhire.models.user import User
from gearhire.services.notifications import NotificationService

router = APIRouter(prefix="/api/notifications")


def get_notifications(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("")
async def list_notifications(
    is_read: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    service: NotificationService = Depends(get_notifications),
    current_user: User = Depends(get_current_user),
):
    page = service.list_for_user(current_user.id, is_read=is_read, skip=skip, take=take)
    page["notifications"] = [n.to_dict() for n in page["notifications"]]
    return page


@router.put("/read-all")
async def mark_all_read(
    service: NotificationService = Depends(get_notifications),
    current_user: User = Depends(get_current_user),
):
    count = service.mark_all_read(current_user.id)
    return {"message": "All notifications marked as read", "updated": count}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    service: NotificationService = Depends(get_notifications),
    current_user: User = Depends(get_current_user),
):
    return service.mark_read(notification_id, current_user.id).to_dict()


@router.put("/{notification_id}/dismiss")
async def dismiss_notification(
    notification_id: int,
    service: NotificationService = Depends(get_notifications),
    current_user: User = Depends(get_current_user),
):
    return service.dismiss(notification_id, current_user.id).to_dict()
