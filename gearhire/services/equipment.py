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

"""Equipment registry: inventory intake and the equipment status machine."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gearhire.database import unit_of_work
from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.enums import (
    BLOCKING_BOOKING_STATUSES,
    NON_BOOKABLE_STATUSES,
    EquipmentStatus,
    coerce_enum,
)
from gearhire.models.equipment import EquipmentCategory, EquipmentItem, EquipmentStatusHistory
from gearhire.models.event import Event, EventEquipmentBooking
from gearhire.repositories import BookingRepository, EquipmentRepository, MaintenanceRepository
from gearhire.services.audit import ActionLogger
from gearhire.utils.helpers import clean_optional, money_str, sanitize_input, to_money

logger = logging.getLogger(__name__)

OUT_OF_SERVICE = (EquipmentStatus.DAMAGED, EquipmentStatus.UNDER_REPAIR)

ITEM_FIELDS = (
    "name",
    "description",
    "category_id",
    "serial_number",
    "barcode",
    "quantity",
    "purchase_date",
    "purchase_price",
    "notes",
)


class EquipmentRegistry:
    """Owns equipment records and every manual change to their status."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.equipment = EquipmentRepository(db)
        self.bookings = BookingRepository(db)
        self.tickets = MaintenanceRepository(db)

    # ==================== CATEGORIES ====================

    def create_category(
        self, name: str, description: Optional[str] = None, actor_id: Optional[int] = None
    ) -> EquipmentCategory:
        name = sanitize_input(name, 255)
        if not name:
            raise ValidationError("Category name is required")

        try:
            with unit_of_work(self.db):
                if self.equipment.find_category_by_name(name):
                    raise ConflictError(f"Category {name} already exists")
                category = EquipmentCategory(name=name, description=clean_optional(description))
                self.db.add(category)
        except IntegrityError as e:
            raise ConflictError(f"Category {name} already exists") from e

        self.audit.log("CREATE", "EquipmentCategory", category.id, {"name": name}, actor_id)
        return category

    def update_category(
        self,
        category_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> EquipmentCategory:
        try:
            with unit_of_work(self.db):
                category = self.equipment.require_category(category_id)
                if name is not None:
                    name = sanitize_input(name, 255)
                    if not name:
                        raise ValidationError("Category name is required")
                    existing = self.equipment.find_category_by_name(name)
                    if existing and existing.id != category.id:
                        raise ConflictError(f"Category {name} already exists")
                    category.name = name
                if description is not None:
                    category.description = clean_optional(description)
        except IntegrityError as e:
            raise ConflictError(f"Category {name} already exists") from e

        self.audit.log("UPDATE", "EquipmentCategory", category.id, {"name": category.name}, actor_id)
        return category

    def delete_category(self, category_id: int, actor_id: Optional[int] = None) -> None:
        with unit_of_work(self.db):
            category = self.equipment.require_category(category_id)
            count = self.equipment.count_items_in_category(category.id)
            if count > 0:
                raise ValidationError(
                    f"Cannot delete category {category.name} with {count} items"
                )
            name = category.name
            self.db.delete(category)

        logger.info("Deleted equipment category %s", name)
        self.audit.log("DELETE", "EquipmentCategory", category_id, {"name": name}, actor_id)

    def list_categories(self) -> List[Tuple[EquipmentCategory, int]]:
        """Categories with their item counts."""
        rows = (
            self.db.query(EquipmentCategory, func.count(EquipmentItem.id))
            .outerjoin(EquipmentItem, EquipmentItem.category_id == EquipmentCategory.id)
            .group_by(EquipmentCategory.id)
            .order_by(EquipmentCategory.name)
            .all()
        )
        return [(category, count) for category, count in rows]

    # ==================== ITEMS ====================

    def _check_identifiers(
        self,
        serial_number: Optional[str],
        barcode: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        if serial_number:
            existing = self.equipment.find_by_serial(serial_number)
            if existing and existing.id != exclude_id:
                raise ConflictError(
                    f"Serial number {serial_number} is already used by {existing.name}"
                )
        if barcode:
            existing = self.equipment.find_by_barcode(barcode)
            if existing and existing.id != exclude_id:
                raise ConflictError(f"Barcode {barcode} is already used by {existing.name}")

    def _check_category(self, category_id: int) -> None:
        if self.equipment.get_category(category_id) is None:
            raise ValidationError(f"Category {category_id} does not exist")

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

    def create_item(
        self,
        name: str,
        category_id: int,
        quantity: int = 1,
        description: Optional[str] = None,
        serial_number: Optional[str] = None,
        barcode: Optional[str] = None,
        purchase_date=None,
        purchase_price=None,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> EquipmentItem:
        """Register a new item. Its status always starts as AVAILABLE.

        Raises:
            ValidationError: Missing name, unknown category or bad quantity.
            ConflictError: Serial number or barcode already in use.
        """
        name = sanitize_input(name, 255)
        if not name:
            raise ValidationError("Equipment name is required")
        self._check_quantity(quantity)
        serial_number = clean_optional(serial_number, 100)
        barcode = clean_optional(barcode, 100)

        try:
            with unit_of_work(self.db):
                self._check_category(category_id)
                self._check_identifiers(serial_number, barcode)

                item = EquipmentItem(
                    name=name,
                    category_id=category_id,
                    quantity=quantity,
                    description=clean_optional(description),
                    serial_number=serial_number,
                    barcode=barcode,
                    purchase_date=purchase_date,
                    purchase_price=to_money(purchase_price) if purchase_price is not None else None,
                    notes=clean_optional(notes),
                    current_status=EquipmentStatus.AVAILABLE,
                )
                self.db.add(item)
                self.db.flush()
                self.db.add(
                    EquipmentStatusHistory(
                        equipment_id=item.id,
                        previous_status=None,
                        new_status=EquipmentStatus.AVAILABLE,
                        reason="Item created",
                        changed_by=actor_id,
                    )
                )
        except IntegrityError as e:
            raise ConflictError("Serial number or barcode is already in use") from e

        logger.info("Registered equipment %s (%s)", item.id, name)
        self.audit.log("CREATE", "EquipmentItem", item.id, {"name": name}, actor_id)
        return item

    def update_item(
        self, equipment_id: int, actor_id: Optional[int] = None, **changes: Any
    ) -> EquipmentItem:
        """Update descriptive fields. Status changes go through ``set_status``."""
        unknown = set(changes) - set(ITEM_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            with unit_of_work(self.db):
                item = self.equipment.require(equipment_id, for_update=True)

                if "name" in changes:
                    name = sanitize_input(changes["name"], 255)
                    if not name:
                        raise ValidationError("Equipment name is required")
                    changes["name"] = name
                if "quantity" in changes:
                    self._check_quantity(changes["quantity"])
                if "category_id" in changes:
                    self._check_category(changes["category_id"])
                for key in ("serial_number", "barcode"):
                    if key in changes:
                        changes[key] = clean_optional(changes[key], 100)
                self._check_identifiers(
                    changes.get("serial_number"), changes.get("barcode"), exclude_id=item.id
                )
                if changes.get("purchase_price") is not None:
                    changes["purchase_price"] = to_money(changes["purchase_price"])

                for key, value in changes.items():
                    setattr(item, key, value)
        except IntegrityError as e:
            raise ConflictError("Serial number or barcode is already in use") from e

        self.audit.log("UPDATE", "EquipmentItem", item.id, {"fields": sorted(changes)}, actor_id)
        return item

    def set_status(
        self,
        equipment_id: int,
        new_status: EquipmentStatus,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> EquipmentItem:
        """Manually change an item's status, recording the change in history.

        IN_USE is owned by the custody flow: it can only be entered through a
        check-out and only left through a check-in.

        Equipment under an active maintenance ticket stays DAMAGED or
        UNDER_REPAIR until the ticket is completed or cancelled.
        """
        new_status = coerce_enum(EquipmentStatus, new_status)
        with unit_of_work(self.db):
            item = self.equipment.require(equipment_id, for_update=True)
            if new_status == EquipmentStatus.IN_USE:
                raise ValidationError(
                    f"Equipment {item.name} can only become IN_USE through a check-out"
                )
            if item.current_status == EquipmentStatus.IN_USE:
                raise ValidationError(
                    f"Equipment {item.name} is checked out; check it in before changing its status"
                )
            if item.current_status in OUT_OF_SERVICE and new_status not in OUT_OF_SERVICE:
                ticket = self.tickets.active_for_equipment(item.id)
                if ticket is not None:
                    raise ValidationError(
                        f"Equipment {item.name} has open maintenance ticket {ticket.id}; "
                        "complete or cancel it first"
                    )
            previous = item.current_status
            self.equipment.set_status(item, new_status, clean_optional(reason), actor_id)

        logger.info("Equipment %s status %s -> %s", item.id, previous.value, new_status.value)
        self.audit.log(
            "STATUS_CHANGE",
            "EquipmentItem",
            item.id,
            {"from": previous.value, "to": new_status.value, "reason": reason},
            actor_id,
        )
        return item

    def delete_item(self, equipment_id: int, actor_id: Optional[int] = None) -> None:
        """Delete an item that has no active bookings and no custody history.

        Raises:
            ValidationError: If a pending, confirmed or checked-out booking
                references the item, or it has ever been checked out.
        """
        with unit_of_work(self.db):
            item = self.equipment.require(equipment_id, for_update=True)
            active = self.bookings.count_active_for_equipment(item.id)
            if active > 0:
                raise ValidationError(
                    f"Cannot delete {item.name}: it has {active} active bookings"
                )
            if self.equipment.has_custody_records(item.id):
                raise ValidationError(
                    f"Cannot delete {item.name}: it has check-out history; retire it instead"
                )
            name = item.name
            self.db.delete(item)

        logger.info("Deleted equipment %s (%s)", equipment_id, name)
        self.audit.log("DELETE", "EquipmentItem", equipment_id, {"name": name}, actor_id)

    def get_item(self, equipment_id: int) -> EquipmentItem:
        return self.equipment.require(equipment_id)

    def find_by_barcode(self, barcode: str) -> EquipmentItem:
        item = self.equipment.find_by_barcode(barcode)
        if item is None:
            raise NotFoundError(f"No equipment with barcode {barcode}")
        return item

    def get_history(self, equipment_id: int) -> List[EquipmentStatusHistory]:
        self.equipment.require(equipment_id)
        return self.equipment.history(equipment_id)

    def list_items(
        self,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        status: Optional[EquipmentStatus] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[EquipmentItem], int]:
        """Filtered, paged item list.

        Returns:
            Tuple of (items on this page, total matching items).
        """
        query = self.db.query(EquipmentItem)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    EquipmentItem.name.ilike(pattern),
                    EquipmentItem.serial_number.ilike(pattern),
                    EquipmentItem.barcode.ilike(pattern),
                )
            )
        if category_id:
            query = query.filter(EquipmentItem.category_id == category_id)
        if status:
            query = query.filter(EquipmentItem.current_status == coerce_enum(EquipmentStatus, status))

        total = query.count()
        items = query.order_by(EquipmentItem.name, EquipmentItem.id).offset(skip).limit(take).all()
        return items, total

    def check_availability(
        self, equipment_ids: List[int], start_date: datetime, end_date: datetime
    ) -> List[Dict[str, Any]]:
        """Report per item whether it could be booked for the given range."""
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

        report = []
        for equipment_id in equipment_ids:
            item = self.equipment.get(equipment_id)
            if item is None:
                report.append(
                    {"equipment_id": equipment_id, "is_available": False, "reason": "Not found"}
                )
                continue

            clashes = self.bookings.find_overlapping(item.id, start_date, end_date)
            entry = {
                "equipment_id": item.id,
                "name": item.name,
                "status": item.current_status.value,
                "is_available": item.is_bookable and not clashes,
                "conflicts": [
                    {
                        "event_id": b.event.id,
                        "event_name": b.event.name,
                        "start_date": b.event.start_date.isoformat(),
                        "end_date": b.event.end_date.isoformat(),
                    }
                    for b in clashes
                ],
            }
            if not item.is_bookable:
                entry["reason"] = f"Equipment is {item.current_status.value}"
            elif clashes:
                entry["reason"] = f"Booked for {clashes[0].event.name}"
            report.append(entry)
        return report

    def get_available_items(
        self,
        start_date: datetime,
        end_date: datetime,
        category_id: Optional[int] = None,
        exclude_event_id: Optional[int] = None,
    ) -> List[EquipmentItem]:
        """Bookable items with no confirmed or checked-out hold in the range.

        Bookings of ``exclude_event_id`` are ignored, so an event being edited
        still sees its own equipment as available.
        """
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

        held = (
            select(EventEquipmentBooking.equipment_id)
            .join(Event, EventEquipmentBooking.event_id == Event.id)
            .where(
                EventEquipmentBooking.status.in_(BLOCKING_BOOKING_STATUSES),
                Event.start_date <= end_date,
                Event.end_date >= start_date,
            )
        )
        if exclude_event_id is not None:
            held = held.where(EventEquipmentBooking.event_id != exclude_event_id)

        query = self.db.query(EquipmentItem).filter(
            EquipmentItem.current_status.notin_(NON_BOOKABLE_STATUSES),
            EquipmentItem.id.notin_(held),
        )
        if category_id:
            query = query.filter(EquipmentItem.category_id == category_id)
        return query.order_by(EquipmentItem.name, EquipmentItem.id).all()

    def statistics(self) -> Dict[str, Any]:
        by_status = {status.value: 0 for status in EquipmentStatus}
        rows = (
            self.db.query(EquipmentItem.current_status, func.count(EquipmentItem.id))
            .group_by(EquipmentItem.current_status)
            .all()
        )
        for status, count in rows:
            by_status[status.value] = count

        by_category = [
            {"id": category.id, "name": category.name, "count": count}
            for category, count in self.list_categories()
        ]
        total_units = self.db.query(func.coalesce(func.sum(EquipmentItem.quantity), 0)).scalar()
        value = self.db.query(func.coalesce(func.sum(EquipmentItem.purchase_price), 0)).scalar()

        return {
            "total_items": sum(by_status.values()),
            "total_units": int(total_units),
            "by_status": by_status,
            "by_category": by_category,
            "inventory_value": money_str(to_money(value)),
        }
