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

"""Action log sink."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gearhire.models.audit import ActionLog

logger = logging.getLogger(__name__)


class ActionLogger:
    """Fire-and-forget writer for the action log.

    Services call ``log`` after their own transaction has committed. A failed
    write is rolled back and reported through the module logger; it never
    reaches the caller.
    """

    def __init__(self, db: Session, ip_address: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None,
    ) -> None:
        try:
            self.db.add(
                ActionLog(
                    user_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                    ip_address=self.ip_address,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not write action log %s %s:%s: %s", action, entity_type, entity_id, e)


def list_actions(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100,
) -> List[ActionLog]:
    """Most recent action log entries, optionally for one entity."""
    query = db.query(ActionLog)
    if entity_type:
        query = query.filter(ActionLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActionLog.entity_id == entity_id)
    return query.order_by(ActionLog.id.desc()).limit(limit).all()
