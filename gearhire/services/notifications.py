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

"""In-app notifications for admins.

Finance hooks and the reminder job call ``notify_admins`` inside their own
transaction, so a notice is stored only when the change it reports is.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from gearhire.database import unit_of_work
from gearhire.errors import NotFoundError
from gearhire.models.enums import EventStatus, NotificationPriority, NotificationType, UserRole
from gearhire.models.event import Event
from gearhire.models.notification import Notification
from gearhire.models.user import User
from gearhire.utils.helpers import utcnow

logger = logging.getLogger(__name__)

UPCOMING_EVENT_INTERVALS = (
    (14, NotificationType.EVENT_UPCOMING_14D),
    (7, NotificationType.EVENT_UPCOMING_7D),
    (3, NotificationType.EVENT_UPCOMING_3D),
    (2, NotificationType.EVENT_UPCOMING_2D),
    (1, NotificationType.EVENT_UPCOMING_1D),
)

REMINDED_EVENT_STATUSES = (EventStatus.DRAFT, EventStatus.QUOTED, EventStatus.CONFIRMED)


class NotificationService:
    """Creates admin notices and serves each user's inbox."""

    def __init__(self, db: Session):
        self.db = db

    def notify_admins(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> int:
        """Add one notification per active admin. Does not commit.

        Returns:
            Number of notifications added.
        """
        admins = (
            self.db.query(User)
            .filter(User.role == UserRole.ADMIN, User.is_active.is_(True))
            .all()
        )
        for admin in admins:
            self.db.add(
                Notification(
                    user_id=admin.id,
                    type=notification_type,
                    title=title,
                    message=message,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    priority=priority,
                )
            )
        return len(admins)

    def has_notification(
        self, notification_type: NotificationType, entity_type: str, entity_id: int
    ) -> bool:
        return (
            self.db.query(Notification.id)
            .filter(
                Notification.type == notification_type,
                Notification.entity_type == entity_type,
                Notification.entity_id == entity_id,
            )
            .first()
            is not None
        )

    # ==================== INBOX ====================

    def list_for_user(
        self, user_id: int, is_read: Optional[bool] = None, skip: int = 0, take: int = 50
    ) -> Dict[str, Any]:
        """Undismissed notifications of the user, newest first."""
        query = self.db.query(Notification).filter(
            Notification.user_id == user_id, Notification.is_dismissed.is_(False)
        )
        unread_count = query.filter(Notification.is_read.is_(False)).count()
        if is_read is not None:
            query = query.filter(Notification.is_read.is_(is_read))

        total = query.count()
        notifications = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(take)
            .all()
        )
        return {
            "notifications": notifications,
            "total": total,
            "unread_count": unread_count,
            "skip": skip,
            "take": take,
        }

    def _require_own(self, notification_id: int, user_id: int) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        with unit_of_work(self.db):
            notification = self._require_own(notification_id, user_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
        return notification

    def mark_all_read(self, user_id: int) -> int:
        with unit_of_work(self.db):
            count = (
                self.db.query(Notification)
                .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                .update(
                    {Notification.is_read: True, Notification.read_at: utcnow()},
                    synchronize_session="fetch",
                )
            )
        return count

    def dismiss(self, notification_id: int, user_id: int) -> Notification:
        with unit_of_work(self.db):
            notification = self._require_own(notification_id, user_id)
            notification.is_dismissed = True
        return notification

    # ==================== REMINDERS ====================

    def check_upcoming_events(self, now: Optional[datetime] = None) -> int:
        """Remind admins of events starting 14, 7, 3, 2 or 1 days from now.

        Each event gets at most one notice per interval, however often this
        runs.

        Returns:
            Number of events a reminder was created for.
        """
        today = (now or utcnow()).date()
        reminded = 0
        with unit_of_work(self.db):
            for days, notification_type in UPCOMING_EVENT_INTERVALS:
                day = today + timedelta(days=days)
                start = datetime.combine(day, time.min)
                end = datetime.combine(day, time.max)
                events = (
                    self.db.query(Event)
                    .filter(
                        Event.start_date >= start,
                        Event.start_date <= end,
                        Event.status.in_(REMINDED_EVENT_STATUSES),
                    )
                    .all()
                )
                for event in events:
                    if self.has_notification(notification_type, "Event", event.id):
                        continue
                    plural = "s" if days > 1 else ""
                    self.notify_admins(
                        notification_type,
                        f"Event in {days} day{plural}",
                        f'"{event.name}" for {event.client.name} is coming up on '
                        f"{event.start_date:%Y-%m-%d}",
                        entity_type="Event",
                        entity_id=event.id,
                        priority=(
                            NotificationPriority.HIGH if days <= 2 else NotificationPriority.NORMAL
                        ),
                    )
                    reminded += 1
        if reminded:
            logger.info("Created reminders for %s upcoming events", reminded)
        return reminded
