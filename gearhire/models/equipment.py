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

"""Equipment inventory models."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from gearhire.database import Base
from gearhire.models.enums import NON_BOOKABLE_STATUSES, EquipmentStatus, enum_type
from gearhire.utils.helpers import isoformat, money_str, utcnow


class EquipmentCategory(Base):
    """Equipment category (sound, lighting, staging, ...)."""

    __tablename__ = "equipment_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    items = relationship("EquipmentItem", back_populates="category")

    def to_dict(self, item_count: int = None) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if item_count is not None:
            result["item_count"] = item_count
        return result

    def __repr__(self):
        return f"<EquipmentCategory(id={self.id}, name='{self.name}')>"


class EquipmentItem(Base):
    """A rentable equipment line.

    ``quantity`` is the size of the pool this record stands for. Bookings and
    custody transactions reference the record as a whole.
    """

    __tablename__ = "equipment_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("equipment_categories.id"), nullable=False)
    serial_number = Column(String(100), unique=True, nullable=True)
    barcode = Column(String(100), unique=True, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    purchase_date = Column(Date, nullable=True)
    purchase_price = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)
    current_status = Column(
        enum_type(EquipmentStatus),
        nullable=False,
        default=EquipmentStatus.AVAILABLE,
        index=True,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_equipment_quantity"),)

    # Relationships
    category = relationship("EquipmentCategory", back_populates="items")
    status_history = relationship(
        "EquipmentStatusHistory",
        back_populates="equipment",
        cascade="all, delete-orphan",
        order_by="EquipmentStatusHistory.id",
    )
    bookings = relationship(
        "EventEquipmentBooking", back_populates="equipment", cascade="all, delete-orphan"
    )
    maintenance_tickets = relationship(
        "MaintenanceTicket", back_populates="equipment", cascade="all, delete-orphan"
    )

    @property
    def is_bookable(self) -> bool:
        return self.current_status not in NON_BOOKABLE_STATUSES

    def to_dict(self, include_category: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "serial_number": self.serial_number,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "purchase_date": isoformat(self.purchase_date),
            "purchase_price": money_str(self.purchase_price),
            "notes": self.notes,
            "current_status": self.current_status.value,
            "is_bookable": self.is_bookable,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_category and self.category:
            result["category_name"] = self.category.name
        return result

    def __repr__(self):
        return (
            f"<EquipmentItem(id={self.id}, name='{self.name}', "
            f"status={self.current_status})>"
        )


class EquipmentStatusHistory(Base):
    """Append-only trail of equipment status changes."""

    __tablename__ = "equipment_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(
        Integer, ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    previous_status = Column(enum_type(EquipmentStatus), nullable=True)
    new_status = Column(enum_type(EquipmentStatus), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(Integer, nullable=True)  # Actor id, attribution only
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    equipment = relationship("EquipmentItem", back_populates="status_history")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "new_status": self.new_status.value,
            "reason": self.reason,
            "changed_by": self.changed_by,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return (
            f"<EquipmentStatusHistory(equipment_id={self.equipment_id}, "
            f"{self.previous_status} -> {self.new_status})>"
        )
