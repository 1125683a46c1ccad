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

"""Custody ledger: check-out and check-in transactions.

Rows in these tables are written once and never updated or deleted.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from gearhire.database import Base
from gearhire.models.enums import ItemCondition, enum_type
from gearhire.utils.helpers import isoformat, utcnow


class CheckOutTransaction(Base):
    """Equipment leaving the warehouse for an event."""

    __tablename__ = "check_out_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    checked_out_by = Column(Integer, nullable=True)
    checked_out_at = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)

    # Relationships
    event = relationship("Event", back_populates="check_outs")
    items = relationship("CheckOutItem", back_populates="transaction", order_by="CheckOutItem.id")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "checked_out_by": self.checked_out_by,
            "checked_out_at": isoformat(self.checked_out_at),
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<CheckOutTransaction(id={self.id}, event_id={self.event_id})>"


class CheckOutItem(Base):
    __tablename__ = "check_out_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(
        Integer, ForeignKey("check_out_transactions.id"), nullable=False, index=True
    )
    equipment_id = Column(Integer, ForeignKey("equipment_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    condition = Column(enum_type(ItemCondition), nullable=False, default=ItemCondition.GOOD)
    notes = Column(Text, nullable=True)

    # Relationships
    transaction = relationship("CheckOutTransaction", back_populates="items")
    equipment = relationship("EquipmentItem")

    def to_dict(self, include_event: bool = False) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment.name if self.equipment else None,
            "quantity": self.quantity,
            "condition": self.condition.value,
            "notes": self.notes,
        }
        if include_event and self.transaction:
            result["event_id"] = self.transaction.event_id
            result["event_name"] = self.transaction.event.name
            result["checked_out_at"] = isoformat(self.transaction.checked_out_at)
        return result


class CheckInTransaction(Base):
    """Equipment coming back from an event."""

    __tablename__ = "check_in_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    checked_in_by = Column(Integer, nullable=True)
    checked_in_at = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)

    # Relationships
    event = relationship("Event", back_populates="check_ins")
    items = relationship("CheckInItem", back_populates="transaction", order_by="CheckInItem.id")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "checked_in_by": self.checked_in_by,
            "checked_in_at": isoformat(self.checked_in_at),
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<CheckInTransaction(id={self.id}, event_id={self.event_id})>"


class CheckInItem(Base):
    __tablename__ = "check_in_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(
        Integer, ForeignKey("check_in_transactions.id"), nullable=False, index=True
    )
    equipment_id = Column(Integer, ForeignKey("equipment_items.id"), nullable=False, index=True)
    condition = Column(enum_type(ItemCondition), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    returned_quantity = Column(Integer, nullable=False, default=1)
    is_shortage = Column(Boolean, nullable=False, default=False)
    damage_notes = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    transaction = relationship("CheckInTransaction", back_populates="items")
    equipment = relationship("EquipmentItem")

    def to_dict(self, include_event: bool = False) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "equipment_id": self.equipment_id,
            "equipment_name": self.equipment.name if self.equipment else None,
            "condition": self.condition.value,
            "quantity": self.quantity,
            "returned_quantity": self.returned_quantity,
            "is_shortage": self.is_shortage,
            "damage_notes": self.damage_notes,
            "notes": self.notes,
        }
        if include_event and self.transaction:
            result["event_id"] = self.transaction.event_id
            result["event_name"] = self.transaction.event.name
            result["checked_in_at"] = isoformat(self.transaction.checked_in_at)
        return result
