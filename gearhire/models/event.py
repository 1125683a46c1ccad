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

"""Event, equipment booking and staff assignment models."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from gearhire.database import Base
from gearhire.models.enums import BookingStatus, EventStatus, enum_type
from gearhire.utils.helpers import isoformat, utcnow


class Event(Base):
    """A client event that equipment is hired out for."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    venue = Column(String(255), nullable=True)
    venue_address = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(DateTime, nullable=False, index=True)
    setup_time = Column(DateTime, nullable=True)
    status = Column(enum_type(EventStatus), nullable=False, default=EventStatus.DRAFT, index=True)
    requirements = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint("end_date > start_date", name="ck_event_dates"),)

    # Relationships
    client = relationship("Client", back_populates="events")
    bookings = relationship(
        "EventEquipmentBooking",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventEquipmentBooking.id",
    )
    staff_assignments = relationship(
        "StaffAssignment", back_populates="event", cascade="all, delete-orphan"
    )
    check_outs = relationship("CheckOutTransaction", back_populates="event")
    check_ins = relationship("CheckInTransaction", back_populates="event")

    def date_range(self) -> str:
        return f"{self.start_date:%Y-%m-%d} to {self.end_date:%Y-%m-%d}"

    def to_dict(self, include_bookings: bool = False) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "name": self.name,
            "event_type": self.event_type,
            "description": self.description,
            "client_id": self.client_id,
            "venue": self.venue,
            "venue_address": self.venue_address,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "setup_time": isoformat(self.setup_time),
            "status": self.status.value,
            "requirements": self.requirements,
            "notes": self.notes,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if self.client:
            result["client_name"] = self.client.name
        if include_bookings:
            result["bookings"] = [b.to_dict() for b in self.bookings]
            result["staff"] = [s.to_dict() for s in self.staff_assignments]
        return result

    def __repr__(self):
        return f"<Event(id={self.id}, name='{self.name}', status={self.status})>"


class EventEquipmentBooking(Base):
    """Reservation of one equipment line for one event."""

    __tablename__ = "event_equipment_bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    equipment_id = Column(
        Integer, ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    status = Column(
        enum_type(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "equipment_id", name="uq_event_equipment"),
        CheckConstraint("quantity >= 1", name="ck_booking_quantity"),
    )

    # Relationships
    event = relationship("Event", back_populates="bookings")
    equipment = relationship("EquipmentItem", back_populates="bookings")

    def to_dict(self, include_event: bool = False) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "event_id": self.event_id,
            "equipment_id": self.equipment_id,
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status.value,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if self.equipment:
            result["equipment_name"] = self.equipment.name
            result["equipment_status"] = self.equipment.current_status.value
        if include_event and self.event:
            result["event_name"] = self.event.name
            result["event_start_date"] = isoformat(self.event.start_date)
            result["event_end_date"] = isoformat(self.event.end_date)
        return result

    def __repr__(self):
        return (
            f"<EventEquipmentBooking(id={self.id}, event_id={self.event_id}, "
            f"equipment_id={self.equipment_id}, status={self.status})>"
        )


class StaffAssignment(Base):
    """Staff member working an event."""

    __tablename__ = "staff_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_staff"),)

    # Relationships
    event = relationship("Event", back_populates="staff_assignments")
    user = relationship("User", back_populates="staff_assignments")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "role": self.role,
            "notes": self.notes,
            "created_at": isoformat(self.created_at),
        }
        if self.user:
            result["user_name"] = self.user.full_name
        return result

    def __repr__(self):
        return f"<StaffAssignment(event_id={self.event_id}, user_id={self.user_id})>"
