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

"""Maintenance ticket model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from gearhire.database import Base
from gearhire.models.enums import MaintenancePriority, MaintenanceStatus, enum_type
from gearhire.utils.helpers import isoformat, utcnow

TERMINAL_MAINTENANCE_STATUSES = (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED)


class MaintenanceTicket(Base):
    """Repair or service job on one equipment item."""

    __tablename__ = "maintenance_tickets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(
        Integer, ForeignKey("equipment_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    reported_issue = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    repair_notes = Column(Text, nullable=True)
    vendor_name = Column(String(255), nullable=True)
    priority = Column(
        enum_type(MaintenancePriority), nullable=False, default=MaintenancePriority.MEDIUM
    )
    status = Column(
        enum_type(MaintenanceStatus), nullable=False, default=MaintenanceStatus.OPEN, index=True
    )
    created_by = Column(Integer, nullable=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    return_to_service_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    equipment = relationship("EquipmentItem", back_populates="maintenance_tickets")
    assigned_to = relationship("User")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MAINTENANCE_STATUSES

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "title": self.title,
            "description": self.description,
            "reported_issue": self.reported_issue,
            "diagnosis": self.diagnosis,
            "repair_notes": self.repair_notes,
            "vendor_name": self.vendor_name,
            "priority": self.priority.value,
            "status": self.status.value,
            "created_by": self.created_by,
            "assigned_to_id": self.assigned_to_id,
            "started_at": isoformat(self.started_at),
            "completed_at": isoformat(self.completed_at),
            "return_to_service_at": isoformat(self.return_to_service_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if self.equipment:
            result["equipment_name"] = self.equipment.name
            result["equipment_status"] = self.equipment.current_status.value
        if self.assigned_to:
            result["assigned_to_name"] = self.assigned_to.full_name
        return result

    def __repr__(self):
        return (
            f"<MaintenanceTicket(id={self.id}, equipment_id={self.equipment_id}, "
            f"status={self.status})>"
        )
