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

"""Check-out and check-in processing.

A check-out or check-in touches equipment status, status history, bookings,
the event and (on damage) maintenance in one transaction. Every request is
fully validated before the first write; locks are taken on the event first,
then on equipment rows in ascending id order.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gearhire.config import get_settings
from gearhire.database import unit_of_work
from gearhire.errors import ValidationError
from gearhire.models.enums import (
    BookingStatus,
    EquipmentStatus,
    EventStatus,
    ItemCondition,
    coerce_enum,
)
from gearhire.models.event import Event, EventEquipmentBooking
from gearhire.models.transactions import (
    CheckInItem,
    CheckInTransaction,
    CheckOutItem,
    CheckOutTransaction,
)
from gearhire.repositories import (
    BookingRepository,
    EquipmentRepository,
    EventRepository,
    TransactionRepository,
)
from gearhire.services.audit import ActionLogger
from gearhire.services.maintenance import MaintenanceService
from gearhire.utils.helpers import clean_optional, utcnow

logger = logging.getLogger(__name__)

CHECK_OUT_EVENT_STATUSES = (EventStatus.CONFIRMED, EventStatus.IN_PROGRESS)
CHECK_IN_EVENT_STATUSES = (EventStatus.IN_PROGRESS, EventStatus.COMPLETED)
CHECK_OUT_EQUIPMENT_STATUSES = (EquipmentStatus.AVAILABLE, EquipmentStatus.RESERVED)

RETURN_STATUS = {
    ItemCondition.DAMAGED: EquipmentStatus.DAMAGED,
    ItemCondition.LOST: EquipmentStatus.LOST,
}


def _equipment_ids(items: List[Dict[str, Any]], action: str) -> List[int]:
    if not items:
        raise ValidationError(f"At least one item is required for {action}")
    limit = get_settings().booking.max_items_per_request
    if len(items) > limit:
        raise ValidationError(f"At most {limit} items can be processed in one {action}")

    ids = []
    for entry in items:
        equipment_id = entry.get("equipment_id")
        if equipment_id is None:
            raise ValidationError("Every item needs an equipment_id")
        if equipment_id in ids:
            raise ValidationError(f"Equipment {equipment_id} is listed more than once")
        ids.append(equipment_id)
    return ids


class TransactionProcessor:
    """Moves equipment out to events and back again."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.events = EventRepository(db)
        self.equipment = EquipmentRepository(db)
        self.bookings = BookingRepository(db)
        self.ledger = TransactionRepository(db)
        self.maintenance = MaintenanceService(db, self.audit)

    def _bookings_by_equipment(self, event: Event) -> Dict[int, EventEquipmentBooking]:
        return {b.equipment_id: b for b in self.bookings.list_for_event(event.id)}

    # ==================== CHECK-OUT ====================

    def create_check_out(
        self,
        event_id: int,
        items: List[Dict[str, Any]],
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Hand booked equipment out for an event.

        Args:
            event_id: Event the gear leaves for. Must be CONFIRMED or
                IN_PROGRESS.
            items: Dicts with ``equipment_id`` and optional ``quantity``,
                ``condition`` and ``notes``.
            notes: Notes for the whole transaction.
            actor_id: Caller, for attribution.

        Returns:
            Dict with the event, the check-out transaction and total_items.

        Raises:
            NotFoundError: Unknown event or equipment.
            ValidationError: Event not ready, item not booked and confirmed
                for this event, or item not AVAILABLE/RESERVED.
        """
        equipment_ids = _equipment_ids(items, "check-out")

        with unit_of_work(self.db):
            event = self.events.require(event_id, for_update=True)
            if event.status not in CHECK_OUT_EVENT_STATUSES:
                raise ValidationError(
                    f"Event {event.name} must be confirmed or in progress to check out "
                    f"equipment (status: {event.status.value})"
                )

            bookings = self._bookings_by_equipment(event)
            for equipment_id in equipment_ids:
                booking = bookings.get(equipment_id)
                if booking is None:
                    raise ValidationError(f"Equipment {equipment_id} is not booked for this event")
                if booking.status != BookingStatus.CONFIRMED:
                    raise ValidationError(
                        f"Booking for equipment {equipment_id} is {booking.status.value}; "
                        f"only confirmed bookings can be checked out"
                    )

            locked = self.equipment.lock_many(equipment_ids)
            lines = []
            for entry in items:
                item = locked[entry["equipment_id"]]
                booking = bookings[item.id]
                if item.current_status not in CHECK_OUT_EQUIPMENT_STATUSES:
                    raise ValidationError(
                        f"Equipment {item.name} is not available for check-out "
                        f"(status: {item.current_status.value})"
                    )
                quantity = entry.get("quantity") or booking.quantity
                if quantity < 1 or quantity > booking.quantity:
                    raise ValidationError(
                        f"Check-out quantity for {item.name} must be between 1 and "
                        f"{booking.quantity}"
                    )
                condition = coerce_enum(ItemCondition, entry.get("condition") or ItemCondition.GOOD)
                lines.append((item, booking, quantity, condition, clean_optional(entry.get("notes"))))

            # Validation passed, apply everything
            check_out = CheckOutTransaction(
                event_id=event.id,
                checked_out_by=actor_id,
                checked_out_at=utcnow(),
                notes=clean_optional(notes),
            )
            self.db.add(check_out)
            reason = f"Checked out for event: {event.name}"
            for item, booking, quantity, condition, line_notes in lines:
                check_out.items.append(
                    CheckOutItem(
                        equipment_id=item.id,
                        quantity=quantity,
                        condition=condition,
                        notes=line_notes,
                    )
                )
                self.equipment.set_status(item, EquipmentStatus.IN_USE, reason, actor_id)
                booking.status = BookingStatus.CHECKED_OUT

            if event.status == EventStatus.CONFIRMED:
                event.status = EventStatus.IN_PROGRESS
            self.db.flush()

        logger.info("Checked out %s items for event %s", len(lines), event_id)
        self.audit.log(
            "CHECK_OUT",
            "Event",
            event_id,
            {"event_name": event.name, "item_count": len(lines), "equipment_ids": equipment_ids},
            actor_id,
        )
        return {"event": event, "check_out": check_out, "total_items": len(lines)}

    # ==================== CHECK-IN ====================

    def create_check_in(
        self,
        event_id: int,
        items: List[Dict[str, Any]],
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Take equipment back from an event and settle its condition.

        Each returned item maps to a new equipment status: DAMAGED becomes
        DAMAGED and opens a HIGH priority maintenance ticket, LOST becomes
        LOST, anything else goes back to AVAILABLE. A short return
        (``returned_quantity`` below ``quantity``) is flagged on the line
        but does not block the check-in. When nothing remains out, an
        IN_PROGRESS event is completed.

        Args:
            event_id: Event the gear returns from. Must be IN_PROGRESS or
                COMPLETED.
            items: Dicts with ``equipment_id`` and ``condition``, plus
                optional ``quantity`` (defaults to the booked quantity),
                ``returned_quantity`` (defaults to ``quantity``),
                ``damage_notes`` and ``notes``.
            notes: Notes for the whole transaction.
            actor_id: Caller, for attribution.

        Returns:
            Dict with event, check_in, total_items, items_with_issues,
            shortages, all_returned and tickets.
        """
        equipment_ids = _equipment_ids(items, "check-in")

        with unit_of_work(self.db):
            event = self.events.require(event_id, for_update=True)
            if event.status not in CHECK_IN_EVENT_STATUSES:
                raise ValidationError(
                    f"Event {event.name} must be in progress or completed to check in "
                    f"equipment (status: {event.status.value})"
                )

            checked_out = self.ledger.checked_out_equipment_ids(event.id)
            bookings = self._bookings_by_equipment(event)
            for equipment_id in equipment_ids:
                if equipment_id not in checked_out:
                    raise ValidationError(
                        f"Equipment {equipment_id} was not checked out for this event"
                    )
                booking = bookings.get(equipment_id)
                if booking is None or booking.status != BookingStatus.CHECKED_OUT:
                    raise ValidationError(
                        f"Equipment {equipment_id} has already been checked in for this event"
                    )

            locked = self.equipment.lock_many(equipment_ids)
            lines = []
            for entry in items:
                item = locked[entry["equipment_id"]]
                booking = bookings[item.id]
                if entry.get("condition") is None:
                    raise ValidationError(f"Condition is required for {item.name}")
                condition = coerce_enum(ItemCondition, entry["condition"])
                quantity = entry.get("quantity") or booking.quantity
                returned = entry.get("returned_quantity")
                if returned is None:
                    returned = quantity
                if quantity < 1:
                    raise ValidationError(f"Quantity for {item.name} must be at least 1")
                if returned < 0 or returned > quantity:
                    raise ValidationError(
                        f"Returned quantity for {item.name} must be between 0 and {quantity}"
                    )
                lines.append((item, booking, condition, quantity, returned, entry))

            # Validation passed, apply everything
            check_in = CheckInTransaction(
                event_id=event.id,
                checked_in_by=actor_id,
                checked_in_at=utcnow(),
                notes=clean_optional(notes),
            )
            self.db.add(check_in)

            items_with_issues = 0
            shortages = 0
            tickets = []
            for item, booking, condition, quantity, returned, entry in lines:
                damage_notes = clean_optional(entry.get("damage_notes"))
                line = CheckInItem(
                    equipment_id=item.id,
                    condition=condition,
                    quantity=quantity,
                    returned_quantity=returned,
                    is_shortage=returned < quantity,
                    damage_notes=damage_notes,
                    notes=clean_optional(entry.get("notes")),
                )
                check_in.items.append(line)
                if line.is_shortage:
                    shortages += 1

                new_status = RETURN_STATUS.get(condition, EquipmentStatus.AVAILABLE)
                reason = f"Checked in from event: {event.name}. Condition: {condition.value}"
                if damage_notes or line.notes:
                    reason += f". Notes: {damage_notes or line.notes}"
                self.equipment.set_status(item, new_status, reason, actor_id)

                if condition == ItemCondition.DAMAGED:
                    items_with_issues += 1
                    tickets.append(
                        self.maintenance.open_for_damage(item, event, damage_notes, actor_id)
                    )
                booking.status = BookingStatus.RETURNED

            self.db.flush()
            remaining = self.bookings.count_open_for_event(event.id)
            if remaining == 0 and event.status == EventStatus.IN_PROGRESS:
                event.status = EventStatus.COMPLETED

        logger.info(
            "Checked in %s items for event %s (%s damaged, %s short, %s still out)",
            len(lines),
            event_id,
            items_with_issues,
            shortages,
            remaining,
        )
        self.audit.log(
            "CHECK_IN",
            "Event",
            event_id,
            {
                "event_name": event.name,
                "item_count": len(lines),
                "items_with_issues": items_with_issues,
                "shortages": shortages,
            },
            actor_id,
        )
        return {
            "event": event,
            "check_in": check_in,
            "total_items": len(lines),
            "items_with_issues": items_with_issues,
            "shortages": shortages,
            "all_returned": remaining == 0,
            "tickets": tickets,
        }

    # ==================== QUERIES ====================

    def get_event_transactions(self, event_id: int) -> Dict[str, Any]:
        event = self.events.require(event_id)
        check_outs = self.ledger.check_outs_for_event(event.id)
        check_ins = self.ledger.check_ins_for_event(event.id)
        return {
            "event": event,
            "check_outs": check_outs,
            "check_ins": check_ins,
            "summary": {
                "total_booked": len(event.bookings),
                "checked_out": sum(len(co.items) for co in check_outs),
                "checked_in": sum(len(ci.items) for ci in check_ins),
            },
        }

    def get_equipment_history(
        self, equipment_id: int, skip: int = 0, take: int = 20
    ) -> Dict[str, Any]:
        item = self.equipment.require(equipment_id)
        return {
            "equipment": item,
            "check_outs": self.ledger.check_out_items_for_equipment(item.id, skip, take),
            "check_ins": self.ledger.check_in_items_for_equipment(item.id, skip, take),
            "skip": skip,
            "take": take,
        }

    def get_pending_check_ins(self) -> Dict[str, Any]:
        """Checked-out bookings grouped by event, earliest end first."""
        pending = self.bookings.list_checked_out()
        by_event = OrderedDict()
        for booking in pending:
            group = by_event.setdefault(booking.event_id, {"event": booking.event, "items": []})
            group["items"].append(booking)
        return {"total_pending": len(pending), "by_event": list(by_event.values())}

    def get_overdue_check_ins(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Checked-out bookings whose event has already ended."""
        now = now or utcnow()
        overdue = self.bookings.list_checked_out(ended_before=now)
        return {
            "total_overdue": len(overdue),
            "items": [
                {
                    "booking": booking,
                    "days_overdue": (now - booking.event.end_date).days,
                }
                for booking in overdue
            ],
        }
