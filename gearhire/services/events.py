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

"""Event lifecycle and staff assignment."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from gearhire.database import unit_of_work
from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.enums import (
    BLOCKING_BOOKING_STATUSES,
    BookingStatus,
    EventStatus,
    QuoteStatus,
    coerce_enum,
)
from gearhire.models.event import Event, StaffAssignment
from gearhire.models.user import User
from gearhire.repositories import (
    BookingRepository,
    EquipmentRepository,
    EventRepository,
    QuoteRepository,
)
from gearhire.services.audit import ActionLogger
from gearhire.services.bookings import CLOSED_EVENT_STATUSES, BookingEngine
from gearhire.services.directory import Directory
from gearhire.utils.helpers import clean_optional, sanitize_input, utcnow

logger = logging.getLogger(__name__)

EVENT_FIELDS = (
    "name",
    "event_type",
    "description",
    "client_id",
    "venue",
    "venue_address",
    "start_date",
    "end_date",
    "setup_time",
    "requirements",
    "notes",
)

# Manual status moves. Check-out and check-in drive CONFIRMED -> IN_PROGRESS
# -> COMPLETED on their own.
EVENT_TRANSITIONS = {
    EventStatus.DRAFT: {EventStatus.QUOTED, EventStatus.CONFIRMED, EventStatus.CANCELLED},
    EventStatus.QUOTED: {EventStatus.DRAFT, EventStatus.CONFIRMED, EventStatus.CANCELLED},
    EventStatus.CONFIRMED: {EventStatus.IN_PROGRESS, EventStatus.COMPLETED, EventStatus.CANCELLED},
    EventStatus.IN_PROGRESS: {EventStatus.COMPLETED, EventStatus.CANCELLED},
    EventStatus.COMPLETED: set(),
    EventStatus.CANCELLED: set(),
}

STAFFED_EVENT_STATUSES = (EventStatus.CONFIRMED, EventStatus.IN_PROGRESS)
UPCOMING_EVENT_STATUSES = (EventStatus.DRAFT, EventStatus.QUOTED, EventStatus.CONFIRMED)

# Fields an event created from a quote may set beyond its name and dates
QUOTE_EVENT_FIELDS = tuple(
    f for f in EVENT_FIELDS if f not in ("name", "client_id", "start_date", "end_date")
)


def _check_dates(start_date: datetime, end_date: datetime) -> None:
    if start_date is None or end_date is None:
        raise ValidationError("Event start and end dates are required")
    if end_date <= start_date:
        raise ValidationError("Event end date must be after its start date")


class EventService:
    """Creates events and moves them through their lifecycle."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.events = EventRepository(db)
        self.bookings = BookingRepository(db)
        self.equipment = EquipmentRepository(db)
        self.quotes = QuoteRepository(db)
        self.directory = Directory(db)
        self.booking_engine = BookingEngine(db, self.audit)

    def create_event(
        self,
        client_id: int,
        name: str,
        start_date: datetime,
        end_date: datetime,
        actor_id: Optional[int] = None,
        **details: Any,
    ) -> Event:
        """Create a DRAFT event for an active client.

        Args:
            client_id: Client the event is for. Must be active.
            name: Event name.
            start_date: Start of the hire period.
            end_date: End of the hire period, after ``start_date``.
            actor_id: Caller, for attribution.
            **details: Optional event_type, description, venue,
                venue_address, setup_time, requirements, notes.
        """
        name = sanitize_input(name, 255)
        if not name:
            raise ValidationError("Event name is required")
        _check_dates(start_date, end_date)
        unknown = set(details) - set(EVENT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown event fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self.db):
            self.directory.require_active_client(client_id)
            event = Event(
                client_id=client_id,
                name=name,
                start_date=start_date,
                end_date=end_date,
                status=EventStatus.DRAFT,
                created_by=actor_id,
                **{key: self._clean(key, value) for key, value in details.items()},
            )
            self.db.add(event)
            self.db.flush()

        logger.info("Created event %s (%s)", event.id, name)
        self.audit.log("CREATE", "Event", event.id, {"name": name}, actor_id)
        return event

    @staticmethod
    def _clean(key: str, value: Any) -> Any:
        if isinstance(value, str) and key not in ("start_date", "end_date", "setup_time"):
            return clean_optional(value)
        return value

    def update_event(self, event_id: int, actor_id: Optional[int] = None, **changes: Any) -> Event:
        """Edit an open event.

        Moving the dates re-checks every confirmed or checked-out booking of
        the event against other events.
        """
        unknown = set(changes) - set(EVENT_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self.db):
            event = self.events.require(event_id, for_update=True)
            if event.status in CLOSED_EVENT_STATUSES:
                raise ValidationError(f"Cannot edit event {event.name}: it is {event.status.value}")

            if "name" in changes:
                changes["name"] = sanitize_input(changes["name"], 255)
                if not changes["name"]:
                    raise ValidationError("Event name is required")
            if changes.get("client_id") not in (None, event.client_id):
                self.directory.require_active_client(changes["client_id"])

            start_date = changes.get("start_date") or event.start_date
            end_date = changes.get("end_date") or event.end_date
            _check_dates(start_date, end_date)
            dates_moved = start_date != event.start_date or end_date != event.end_date

            for key, value in changes.items():
                if value is None and key in ("name", "client_id", "start_date", "end_date"):
                    continue
                setattr(event, key, self._clean(key, value))

            if dates_moved:
                held = self.bookings.list_for_event(event.id, BLOCKING_BOOKING_STATUSES)
                locked = self.equipment.lock_many(b.equipment_id for b in held) if held else {}
                for booking in held:
                    self.booking_engine.ensure_no_overlap(locked[booking.equipment_id], event)

        self.audit.log("UPDATE", "Event", event.id, {"fields": sorted(changes)}, actor_id)
        return event

    def update_event_status(
        self, event_id: int, new_status: EventStatus, actor_id: Optional[int] = None
    ) -> Event:
        """Manually move an event to a new status.

        CANCELLED and COMPLETED are refused while equipment is still checked
        out. Both cancel the event's pending and confirmed bookings, which
        frees the equipment for other events.
        """
        new_status = coerce_enum(EventStatus, new_status)
        with unit_of_work(self.db):
            event = self.events.require(event_id, for_update=True)
            previous = event.status
            if new_status == previous:
                raise ValidationError(f"Event {event.name} is already {previous.value}")
            if new_status not in EVENT_TRANSITIONS[previous]:
                raise ValidationError(
                    f"Cannot change event {event.name} from {previous.value} to {new_status.value}"
                )

            cancelled = 0
            if new_status in (EventStatus.CANCELLED, EventStatus.COMPLETED):
                out = self.bookings.list_for_event(event.id, [BookingStatus.CHECKED_OUT])
                if out:
                    raise ValidationError(
                        f"Cannot mark event {event.name} {new_status.value}: "
                        f"{len(out)} items are still checked out"
                    )
                for booking in self.bookings.list_for_event(
                    event.id, [BookingStatus.PENDING, BookingStatus.CONFIRMED]
                ):
                    booking.status = BookingStatus.CANCELLED
                    cancelled += 1

            event.status = new_status

        logger.info("Event %s status %s -> %s", event_id, previous.value, new_status.value)
        self.audit.log(
            "STATUS_CHANGE",
            "Event",
            event_id,
            {"from": previous.value, "to": new_status.value, "bookings_cancelled": cancelled},
            actor_id,
        )
        return event

    def get_event(self, event_id: int) -> Event:
        return self.events.require(event_id)

    def list_events(
        self,
        status: Optional[EventStatus] = None,
        client_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Event], int]:
        query = self.db.query(Event)
        if status:
            query = query.filter(Event.status == coerce_enum(EventStatus, status))
        if client_id:
            query = query.filter(Event.client_id == client_id)
        if start_date:
            query = query.filter(Event.end_date >= start_date)
        if end_date:
            query = query.filter(Event.start_date <= end_date)

        total = query.count()
        events = query.order_by(Event.start_date, Event.id).offset(skip).limit(take).all()
        return events, total

    # ==================== STAFF ====================

    def assign_staff(
        self,
        event_id: int,
        user_id: int,
        role: Optional[str] = None,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> StaffAssignment:
        """Assign an active user to an event.

        Raises:
            ValidationError: Event closed or user inactive.
            ConflictError: Already assigned here, or working a confirmed or
                running event with overlapping dates.
        """
        try:
            with unit_of_work(self.db):
                event = self.events.require(event_id, for_update=True)
                if event.status in CLOSED_EVENT_STATUSES:
                    raise ValidationError(
                        f"Cannot assign staff to event {event.name}: it is {event.status.value}"
                    )
                user = self.directory.require_active_user(user_id)

                existing = (
                    self.db.query(StaffAssignment)
                    .filter(StaffAssignment.event_id == event.id, StaffAssignment.user_id == user.id)
                    .first()
                )
                if existing:
                    raise ConflictError(f"{user.full_name} is already assigned to event {event.name}")

                clash = (
                    self.db.query(Event)
                    .join(StaffAssignment, StaffAssignment.event_id == Event.id)
                    .filter(
                        StaffAssignment.user_id == user.id,
                        Event.id != event.id,
                        Event.status.in_(STAFFED_EVENT_STATUSES),
                        Event.start_date <= event.end_date,
                        Event.end_date >= event.start_date,
                    )
                    .first()
                )
                if clash:
                    raise ConflictError(
                        f"{user.full_name} is already assigned to event {clash.name} "
                        f"({clash.date_range()})"
                    )

                assignment = StaffAssignment(
                    event_id=event.id,
                    user_id=user.id,
                    role=clean_optional(role, 100),
                    notes=clean_optional(notes),
                )
                self.db.add(assignment)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictError(f"User {user_id} is already assigned to event {event_id}") from e

        self.audit.log("ASSIGN_STAFF", "Event", event_id, {"user_id": user_id, "role": role}, actor_id)
        return assignment

    def remove_staff_assignment(
        self, event_id: int, assignment_id: int, actor_id: Optional[int] = None
    ) -> None:
        with unit_of_work(self.db):
            assignment = (
                self.db.query(StaffAssignment)
                .filter(StaffAssignment.id == assignment_id, StaffAssignment.event_id == event_id)
                .first()
            )
            if assignment is None:
                raise NotFoundError(f"Staff assignment {assignment_id} not found for event {event_id}")
            user_id = assignment.user_id
            self.db.delete(assignment)

        self.audit.log("REMOVE_STAFF", "Event", event_id, {"user_id": user_id}, actor_id)

    def list_staff(self, event_id: int) -> List[StaffAssignment]:
        event = self.events.require(event_id)
        return list(event.staff_assignments)

    def create_from_quote(
        self,
        quote_id: int,
        start_date: datetime,
        end_date: datetime,
        name: Optional[str] = None,
        equipment_ids: Optional[List[int]] = None,
        actor_id: Optional[int] = None,
        **details: Any,
    ) -> Tuple[Event, List[dict]]:
        """Create a CONFIRMED event for the client of an accepted quote.

        The quote is linked to the new event unless it already points at one.
        Each of ``equipment_ids`` is then booked and confirmed; items that
        cannot be booked are reported rather than failing the event.

        Returns:
            Tuple of (event, booking errors).

        Raises:
            NotFoundError: Unknown quote.
            ValidationError: Quote not ACCEPTED, client inactive or bad dates.
        """
        _check_dates(start_date, end_date)
        unknown = set(details) - set(QUOTE_EVENT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown event fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self.db):
            quote = self.quotes.require(quote_id, for_update=True)
            if quote.status != QuoteStatus.ACCEPTED:
                raise ValidationError(
                    f"Can only create events from accepted quotes; {quote.quote_number} "
                    f"is {quote.status.value}"
                )
            client = self.directory.require_active_client(quote.client_id)
            name = sanitize_input(name, 255) or f"Event for {client.name}"

            event = Event(
                client_id=client.id,
                name=name,
                start_date=start_date,
                end_date=end_date,
                status=EventStatus.CONFIRMED,
                created_by=actor_id,
                **{key: self._clean(key, value) for key, value in details.items()},
            )
            self.db.add(event)
            self.db.flush()
            if quote.event_id is None:
                quote.event_id = event.id

        logger.info("Created event %s from quote %s", event.id, quote.quote_number)
        self.audit.log(
            "CREATE_FROM_QUOTE",
            "Event",
            event.id,
            {"quote_number": quote.quote_number, "client": client.name},
            actor_id,
        )

        errors: List[dict] = []
        if equipment_ids:
            result = self.booking_engine.book_multiple_equipment(
                event.id, [{"equipment_id": i} for i in equipment_ids], actor_id=actor_id
            )
            errors = result["errors"]
            if result["success"]:
                self.booking_engine.confirm_bookings(event.id, actor_id=actor_id)
        return event, errors

    def get_available_staff(
        self, start_date: datetime, end_date: datetime, exclude_event_id: Optional[int] = None
    ) -> List[User]:
        """Active users not working a confirmed or running event in the range."""
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

        busy = (
            select(StaffAssignment.user_id)
            .join(Event, StaffAssignment.event_id == Event.id)
            .where(
                Event.status.in_(STAFFED_EVENT_STATUSES),
                Event.start_date <= end_date,
                Event.end_date >= start_date,
            )
        )
        if exclude_event_id is not None:
            busy = busy.where(Event.id != exclude_event_id)

        return (
            self.db.query(User)
            .filter(User.is_active.is_(True), User.id.notin_(busy))
            .order_by(User.first_name, User.last_name, User.id)
            .all()
        )

    def get_calendar(
        self,
        start_date: datetime,
        end_date: datetime,
        status: Optional[EventStatus] = None,
        client_id: Optional[int] = None,
    ) -> List[Event]:
        """Events intersecting the range, bookings and staff loaded."""
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

        query = (
            self.db.query(Event)
            .options(selectinload(Event.bookings), selectinload(Event.staff_assignments))
            .filter(Event.start_date <= end_date, Event.end_date >= start_date)
        )
        if status:
            query = query.filter(Event.status == coerce_enum(EventStatus, status))
        if client_id:
            query = query.filter(Event.client_id == client_id)
        return query.order_by(Event.start_date, Event.id).all()

    def get_statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        by_status = {status.value: 0 for status in EventStatus}
        rows = self.db.query(Event.status, func.count(Event.id)).group_by(Event.status).all()
        for status, count in rows:
            by_status[status.value] = count

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if month_start.month == 12:
            next_month = month_start.replace(year=month_start.year + 1, month=1)
        else:
            next_month = month_start.replace(month=month_start.month + 1)
        this_month = (
            self.db.query(func.count(Event.id))
            .filter(Event.start_date >= month_start, Event.start_date < next_month)
            .scalar()
        )

        upcoming = self.db.query(Event).filter(
            Event.start_date >= now, Event.status.in_(UPCOMING_EVENT_STATUSES)
        )
        return {
            "total_events": sum(by_status.values()),
            "by_status": by_status,
            "this_month": this_month,
            "upcoming": upcoming.count(),
            "upcoming_events": upcoming.order_by(Event.start_date, Event.id).limit(5).all(),
        }
