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

"""Maintenance ticket lifecycle.

Tickets drive the status of the equipment they are raised against: an open
ticket keeps the item out of service, completing it can put the item back.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from gearhire.database import unit_of_work
from gearhire.errors import ValidationError
from gearhire.models.enums import (
    ACTIVE_TICKET_STATUSES,
    EquipmentStatus,
    MaintenancePriority,
    MaintenanceStatus,
    coerce_enum,
)
from gearhire.models.equipment import EquipmentItem
from gearhire.models.event import Event
from gearhire.models.maintenance import MaintenanceTicket
from gearhire.repositories import BookingRepository, EquipmentRepository, MaintenanceRepository
from gearhire.services.audit import ActionLogger
from gearhire.services.directory import Directory
from gearhire.utils.helpers import clean_optional, sanitize_input, utcnow

logger = logging.getLogger(__name__)

TICKET_FIELDS = (
    "title",
    "description",
    "reported_issue",
    "priority",
    "assigned_to_id",
    "diagnosis",
    "repair_notes",
    "vendor_name",
)

# Moves available through update_status. COMPLETED and CANCELLED have their
# own operations.
TICKET_TRANSITIONS = {
    MaintenanceStatus.OPEN: {MaintenanceStatus.IN_PROGRESS, MaintenanceStatus.WAITING_PARTS},
    MaintenanceStatus.IN_PROGRESS: {MaintenanceStatus.WAITING_PARTS},
    MaintenanceStatus.WAITING_PARTS: {MaintenanceStatus.IN_PROGRESS},
}

OUT_OF_SERVICE = (EquipmentStatus.DAMAGED, EquipmentStatus.UNDER_REPAIR)


class MaintenanceService:
    """Opens, progresses and closes maintenance tickets."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.tickets = MaintenanceRepository(db)
        self.equipment = EquipmentRepository(db)
        self.bookings = BookingRepository(db)
        self.directory = Directory(db)

    def _add_ticket(
        self,
        item: EquipmentItem,
        title: str,
        actor_id: Optional[int],
        **fields: Any,
    ) -> MaintenanceTicket:
        ticket = MaintenanceTicket(
            equipment_id=item.id,
            title=title,
            status=MaintenanceStatus.OPEN,
            created_by=actor_id,
            **fields,
        )
        self.db.add(ticket)
        if item.current_status not in OUT_OF_SERVICE:
            self.equipment.set_status(
                item, EquipmentStatus.UNDER_REPAIR, f"Maintenance ticket created: {title}", actor_id
            )
        self.db.flush()
        return ticket

    def _ensure_not_checked_out(self, item: EquipmentItem, ticket: MaintenanceTicket) -> None:
        if item.current_status != EquipmentStatus.IN_USE:
            return
        booking = self.bookings.checked_out_for_equipment(item.id)
        holder = f" for event {booking.event.name}" if booking else ""
        raise ValidationError(
            f"Cannot update maintenance ticket {ticket.id}: equipment {item.name} "
            f"is checked out{holder}"
        )

    def open_for_damage(
        self,
        item: EquipmentItem,
        event: Event,
        damage_notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> MaintenanceTicket:
        """Raise a HIGH priority ticket for gear returned damaged.

        Runs inside the caller's transaction; the caller holds the item lock.
        """
        return self._add_ticket(
            item,
            "Damaged equipment returned from event",
            actor_id,
            description=f"Returned damaged from event {event.name}",
            reported_issue=damage_notes or f'Equipment returned damaged from event "{event.name}"',
            priority=MaintenancePriority.HIGH,
        )

    def create_ticket(
        self,
        equipment_id: int,
        title: str,
        description: Optional[str] = None,
        reported_issue: Optional[str] = None,
        priority: MaintenancePriority = MaintenancePriority.MEDIUM,
        assigned_to_id: Optional[int] = None,
        vendor_name: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> MaintenanceTicket:
        """Open a ticket and take the equipment out of service.

        Equipment that is not already DAMAGED or UNDER_REPAIR moves to
        UNDER_REPAIR. Equipment out on an event must be checked in first.
        """
        title = sanitize_input(title, 255)
        if not title:
            raise ValidationError("Ticket title is required")
        priority = coerce_enum(MaintenancePriority, priority or MaintenancePriority.MEDIUM)

        with unit_of_work(self.db):
            item = self.equipment.require(equipment_id, for_update=True)
            if item.current_status == EquipmentStatus.IN_USE:
                raise ValidationError(
                    f"Equipment {item.name} is checked out; report damage on check-in"
                )
            if assigned_to_id is not None:
                self.directory.require_active_user(assigned_to_id)
            ticket = self._add_ticket(
                item,
                title,
                actor_id,
                description=clean_optional(description),
                reported_issue=clean_optional(reported_issue),
                priority=priority,
                assigned_to_id=assigned_to_id,
                vendor_name=clean_optional(vendor_name, 255),
            )

        logger.info("Opened maintenance ticket %s for equipment %s", ticket.id, equipment_id)
        self.audit.log(
            "CREATE", "MaintenanceTicket", ticket.id, {"equipment_id": equipment_id}, actor_id
        )
        return ticket

    @staticmethod
    def _ensure_active(ticket: MaintenanceTicket) -> None:
        if ticket.is_terminal:
            raise ValidationError(
                f"Maintenance ticket {ticket.id} is {ticket.status.value} and can no longer change"
            )

    def update_ticket(
        self, ticket_id: int, actor_id: Optional[int] = None, **changes: Any
    ) -> MaintenanceTicket:
        unknown = set(changes) - set(TICKET_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with unit_of_work(self.db):
            ticket = self.tickets.require(ticket_id, for_update=True)
            self._ensure_active(ticket)
            if changes.get("priority") is not None:
                changes["priority"] = coerce_enum(MaintenancePriority, changes["priority"])
            if changes.get("assigned_to_id") is not None:
                self.directory.require_active_user(changes["assigned_to_id"])
            if "title" in changes:
                changes["title"] = sanitize_input(changes["title"], 255)
                if not changes["title"]:
                    raise ValidationError("Ticket title is required")
            for key, value in changes.items():
                if isinstance(value, str) and key != "title":
                    value = clean_optional(value)
                setattr(ticket, key, value)

        self.audit.log("UPDATE", "MaintenanceTicket", ticket_id, {"fields": sorted(changes)}, actor_id)
        return ticket

    def update_status(
        self,
        ticket_id: int,
        new_status: MaintenanceStatus,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> MaintenanceTicket:
        """Move a ticket between OPEN, IN_PROGRESS and WAITING_PARTS.

        COMPLETED and CANCELLED are routed to ``complete`` and ``cancel``.
        Starting work records ``started_at`` once and keeps the equipment
        UNDER_REPAIR.
        """
        new_status = coerce_enum(MaintenanceStatus, new_status)
        if new_status == MaintenanceStatus.COMPLETED:
            return self.complete(ticket_id, repair_notes=notes, actor_id=actor_id)
        if new_status == MaintenanceStatus.CANCELLED:
            return self.cancel(ticket_id, reason=notes, actor_id=actor_id)

        with unit_of_work(self.db):
            ticket = self.tickets.require(ticket_id, for_update=True)
            self._ensure_active(ticket)
            item = self.equipment.require(ticket.equipment_id, for_update=True)
            self._ensure_not_checked_out(item, ticket)
            previous = ticket.status
            if new_status not in TICKET_TRANSITIONS[previous]:
                raise ValidationError(
                    f"Cannot move maintenance ticket {ticket.id} from {previous.value} "
                    f"to {new_status.value}"
                )

            if new_status == MaintenanceStatus.IN_PROGRESS and ticket.started_at is None:
                ticket.started_at = utcnow()
            ticket.status = new_status

            if item.current_status != EquipmentStatus.UNDER_REPAIR:
                self.equipment.set_status(
                    item,
                    EquipmentStatus.UNDER_REPAIR,
                    clean_optional(notes) or "Maintenance started",
                    actor_id,
                )

        self.audit.log(
            "STATUS_CHANGE",
            "MaintenanceTicket",
            ticket_id,
            {"from": previous.value, "to": new_status.value},
            actor_id,
        )
        return ticket

    def complete(
        self,
        ticket_id: int,
        repair_notes: Optional[str] = None,
        diagnosis: Optional[str] = None,
        set_available: bool = True,
        actor_id: Optional[int] = None,
    ) -> MaintenanceTicket:
        """Close a ticket as done.

        Args:
            ticket_id: Ticket to complete.
            repair_notes: What was done.
            diagnosis: What was wrong.
            set_available: Return the equipment to service (AVAILABLE).
                Otherwise it stays UNDER_REPAIR.
            actor_id: Caller, for attribution.

        Raises:
            ValidationError: Ticket already closed, or its equipment is
                checked out to an event.
        """
        with unit_of_work(self.db):
            ticket = self.tickets.require(ticket_id, for_update=True)
            self._ensure_active(ticket)
            item = self.equipment.require(ticket.equipment_id, for_update=True)
            self._ensure_not_checked_out(item, ticket)

            now = utcnow()
            ticket.status = MaintenanceStatus.COMPLETED
            ticket.completed_at = now
            if repair_notes:
                ticket.repair_notes = clean_optional(repair_notes)
            if diagnosis:
                ticket.diagnosis = clean_optional(diagnosis)
            if set_available:
                ticket.return_to_service_at = now

            target = EquipmentStatus.AVAILABLE if set_available else EquipmentStatus.UNDER_REPAIR
            if item.current_status != target:
                self.equipment.set_status(
                    item,
                    target,
                    f"Maintenance completed: {ticket.repair_notes or ticket.title}",
                    actor_id,
                )

        logger.info("Completed maintenance ticket %s", ticket_id)
        self.audit.log(
            "COMPLETE",
            "MaintenanceTicket",
            ticket_id,
            {"set_available": set_available},
            actor_id,
        )
        return ticket

    def cancel(
        self, ticket_id: int, reason: Optional[str] = None, actor_id: Optional[int] = None
    ) -> MaintenanceTicket:
        """Cancel an active ticket. Equipment status is left as it is."""
        with unit_of_work(self.db):
            ticket = self.tickets.require(ticket_id, for_update=True)
            if ticket.status == MaintenanceStatus.COMPLETED:
                raise ValidationError(f"Cannot cancel completed maintenance ticket {ticket.id}")
            self._ensure_active(ticket)
            ticket.status = MaintenanceStatus.CANCELLED
            if reason:
                ticket.repair_notes = clean_optional(reason)

        self.audit.log("CANCEL", "MaintenanceTicket", ticket_id, {"reason": reason}, actor_id)
        return ticket

    def get_ticket(self, ticket_id: int) -> MaintenanceTicket:
        return self.tickets.require(ticket_id)

    def list_tickets(
        self,
        status: Optional[MaintenanceStatus] = None,
        priority: Optional[MaintenancePriority] = None,
        equipment_id: Optional[int] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[MaintenanceTicket], int]:
        query = self.db.query(MaintenanceTicket)
        if status:
            query = query.filter(MaintenanceTicket.status == coerce_enum(MaintenanceStatus, status))
        if priority:
            query = query.filter(
                MaintenanceTicket.priority == coerce_enum(MaintenancePriority, priority)
            )
        if equipment_id:
            query = query.filter(MaintenanceTicket.equipment_id == equipment_id)

        total = query.count()
        tickets = query.order_by(MaintenanceTicket.id.desc()).offset(skip).limit(take).all()
        return tickets, total

    def statistics(self) -> Dict[str, Any]:
        by_status = {s.value: 0 for s in MaintenanceStatus}
        for status, count in (
            self.db.query(MaintenanceTicket.status, func.count(MaintenanceTicket.id))
            .group_by(MaintenanceTicket.status)
            .all()
        ):
            by_status[status.value] = count

        by_priority = {p.value: 0 for p in MaintenancePriority}
        active = ACTIVE_TICKET_STATUSES
        for priority, count in (
            self.db.query(MaintenanceTicket.priority, func.count(MaintenanceTicket.id))
            .filter(MaintenanceTicket.status.in_(active))
            .group_by(MaintenanceTicket.priority)
            .all()
        ):
            by_priority[priority.value] = count

        completed = (
            self.db.query(MaintenanceTicket.created_at, MaintenanceTicket.completed_at)
            .filter(MaintenanceTicket.status == MaintenanceStatus.COMPLETED)
            .all()
        )
        hours = [
            (done - created).total_seconds() / 3600 for created, done in completed if done and created
        ]

        return {
            "total": sum(by_status.values()),
            "active": sum(by_status[s.value] for s in active),
            "by_status": by_status,
            "active_by_priority": by_priority,
            "average_resolution_hours": round(sum(hours) / len(hours), 1) if hours else None,
        }
