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

"""Booking conflict engine.

Reserves equipment for events and keeps any piece of equipment from being
held by two events whose dates overlap. The overlap test always runs inside
the writing transaction, after the equipment row is locked, so two requests
racing for the same item cannot both pass it.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gearhire.config import get_settings
from gearhire.database import unit_of_work
from gearhire.errors import ConflictError, GearHireError, NotFoundError, ValidationError
from gearhire.models.enums import BookingStatus, EventStatus
from gearhire.models.equipment import EquipmentItem
from gearhire.models.event import Event, EventEquipmentBooking
from gearhire.repositories import BookingRepository, EquipmentRepository, EventRepository
from gearhire.services.audit import ActionLogger
from gearhire.utils.helpers import clean_optional

logger = logging.getLogger(__name__)

CLOSED_EVENT_STATUSES = (EventStatus.COMPLETED, EventStatus.CANCELLED)


class BookingEngine:
    """Creates, confirms and removes event equipment bookings."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.events = EventRepository(db)
        self.equipment = EquipmentRepository(db)
        self.bookings = BookingRepository(db)

    def ensure_no_overlap(self, item: EquipmentItem, event: Event) -> None:
        """Fail if another event holds ``item`` for dates overlapping ``event``.

        Raises:
            ConflictError: Naming the colliding event and its dates.
        """
        clashes = self.bookings.find_overlapping(
            item.id, event.start_date, event.end_date, exclude_event_id=event.id
        )
        if clashes:
            other = clashes[0].event
            raise ConflictError(
                f"Equipment {item.name} is already booked for event {other.name} "
                f"({other.date_range()})"
            )

    @staticmethod
    def _ensure_event_open(event: Event) -> None:
        if event.status in CLOSED_EVENT_STATUSES:
            raise ValidationError(
                f"Cannot book equipment for event {event.name}: it is {event.status.value}"
            )

    @staticmethod
    def _ensure_bookable(item: EquipmentItem) -> None:
        if not item.is_bookable:
            raise ValidationError(
                f"Equipment {item.name} is {item.current_status.value} and cannot be booked"
            )

    def book_equipment(
        self,
        event_id: int,
        equipment_id: int,
        quantity: int = 1,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> EventEquipmentBooking:
        """Reserve one equipment line for an event as a PENDING booking.

        Args:
            event_id: Event to book for.
            equipment_id: Equipment item to reserve.
            quantity: Units of the item's pool needed, 1..item.quantity.
            notes: Free text.
            actor_id: Caller, for attribution.

        Returns:
            The new booking.

        Raises:
            NotFoundError: Unknown event or equipment.
            ValidationError: Event closed, item not bookable or bad quantity.
            ConflictError: Already booked for this event, or held by an
                overlapping event.
        """
        try:
            with unit_of_work(self.db):
                event = self.events.require(event_id, for_update=True)
                self._ensure_event_open(event)

                item = self.equipment.require(equipment_id, for_update=True)
                self._ensure_bookable(item)
                if quantity is None or quantity < 1 or quantity > item.quantity:
                    raise ValidationError(
                        f"Quantity for {item.name} must be between 1 and {item.quantity}"
                    )

                if self.bookings.get_for_pair(event.id, item.id) is not None:
                    raise ConflictError(
                        f"Equipment {item.name} is already booked for event {event.name}"
                    )

                self.ensure_no_overlap(item, event)

                booking = EventEquipmentBooking(
                    event_id=event.id,
                    equipment_id=item.id,
                    quantity=quantity,
                    notes=clean_optional(notes),
                    status=BookingStatus.PENDING,
                )
                self.db.add(booking)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Equipment {equipment_id} is already booked for event {event_id}"
            ) from e

        logger.info("Booked equipment %s for event %s", equipment_id, event_id)
        self.audit.log(
            "BOOK_EQUIPMENT",
            "Event",
            event_id,
            {"equipment_id": equipment_id, "quantity": quantity, "booking_id": booking.id},
            actor_id,
        )
        return booking

    def book_multiple_equipment(
        self,
        event_id: int,
        items: List[Dict[str, Any]],
        actor_id: Optional[int] = None,
    ) -> Dict[str, List]:
        """Book several items, each independently.

        One item failing does not undo the others; its error is collected
        instead.

        Returns:
            ``{"success": [bookings], "errors": [{"equipment_id", "error", "kind"}]}``
        """
        limit = get_settings().booking.max_items_per_request
        if len(items) > limit:
            raise ValidationError(f"At most {limit} items can be booked in one request")

        booked = []
        errors = []
        for entry in items:
            equipment_id = entry["equipment_id"]
            try:
                booked.append(
                    self.book_equipment(
                        event_id,
                        equipment_id,
                        quantity=entry.get("quantity", 1),
                        notes=entry.get("notes"),
                        actor_id=actor_id,
                    )
                )
            except GearHireError as e:
                logger.debug("Booking %s for event %s rejected: %s", equipment_id, event_id, e)
                errors.append({"equipment_id": equipment_id, "error": e.message, "kind": e.kind})
        return {"success": booked, "errors": errors}

    def confirm_bookings(self, event_id: int, actor_id: Optional[int] = None) -> Dict[str, Any]:
        """Confirm every PENDING booking of the event in one transaction.

        Each booking is re-checked against overlapping events under the
        equipment lock. A DRAFT or QUOTED event is promoted to CONFIRMED.
        Calling this again confirms nothing and changes nothing.

        Raises:
            ValidationError: Event closed or an item became unbookable.
            ConflictError: An item is now held by an overlapping event.
        """
        with unit_of_work(self.db):
            event = self.events.require(event_id, for_update=True)
            if event.status in CLOSED_EVENT_STATUSES:
                raise ValidationError(
                    f"Cannot confirm bookings for event {event.name}: it is {event.status.value}"
                )

            pending = self.bookings.list_for_event(event.id, [BookingStatus.PENDING])
            locked = self.equipment.lock_many(b.equipment_id for b in pending) if pending else {}
            for booking in pending:
                item = locked[booking.equipment_id]
                self._ensure_bookable(item)
                self.ensure_no_overlap(item, event)

            for booking in pending:
                booking.status = BookingStatus.CONFIRMED

            previous_status = event.status
            if event.status in (EventStatus.DRAFT, EventStatus.QUOTED):
                event.status = EventStatus.CONFIRMED
            count = len(pending)

        logger.info("Confirmed %s bookings for event %s", count, event_id)
        if count or previous_status != event.status:
            self.audit.log(
                "CONFIRM_BOOKINGS",
                "Event",
                event_id,
                {"count": count, "event_status": event.status.value},
                actor_id,
            )
        return {
            "confirmed": count,
            "event_status": event.status.value,
            "message": f"{count} bookings confirmed",
        }

    def _require_event_booking(self, event_id: int, booking_id: int) -> EventEquipmentBooking:
        self.events.require(event_id)
        booking = self.bookings.get(booking_id)
        if booking is None or booking.event_id != event_id:
            raise NotFoundError(f"Booking {booking_id} not found for event {event_id}")
        return booking

    def remove_booking(self, event_id: int, booking_id: int, actor_id: Optional[int] = None) -> None:
        """Delete a booking that is still PENDING or CONFIRMED.

        Raises:
            ValidationError: The booking is checked out or already closed.
        """
        with unit_of_work(self.db):
            booking = self._require_event_booking(event_id, booking_id)
            if booking.status == BookingStatus.CHECKED_OUT:
                raise ValidationError(
                    f"Cannot remove booking for checked-out equipment {booking.equipment.name}"
                )
            if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise ValidationError(
                    f"Cannot remove a {booking.status.value} booking; it is part of the event record"
                )
            equipment_id = booking.equipment_id
            self.db.delete(booking)

        self.audit.log(
            "REMOVE_BOOKING", "Event", event_id, {"equipment_id": equipment_id}, actor_id
        )

    def cancel_booking(
        self, event_id: int, booking_id: int, actor_id: Optional[int] = None
    ) -> EventEquipmentBooking:
        """Cancel a PENDING or CONFIRMED booking, keeping it on record."""
        with unit_of_work(self.db):
            booking = self._require_event_booking(event_id, booking_id)
            if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise ValidationError(
                    f"Cannot cancel booking for {booking.equipment.name}: it is {booking.status.value}"
                )
            booking.status = BookingStatus.CANCELLED

        self.audit.log(
            "CANCEL_BOOKING", "Event", event_id, {"booking_id": booking_id}, actor_id
        )
        return booking

    def list_event_bookings(self, event_id: int) -> List[EventEquipmentBooking]:
        self.events.require(event_id)
        return self.bookings.list_for_event(event_id)
