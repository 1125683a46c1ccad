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

"""Database models for GearHire."""

from gearhire.models.user import User
from gearhire.models.client import Client
from gearhire.models.equipment import EquipmentCategory, EquipmentItem, EquipmentStatusHistory
from gearhire.models.event import Event, EventEquipmentBooking, StaffAssignment
from gearhire.models.transactions import (
    CheckInItem,
    CheckInTransaction,
    CheckOutItem,
    CheckOutTransaction,
)
from gearhire.models.maintenance import MaintenanceTicket
from gearhire.models.finance import (
    DocumentCounter,
    Invoice,
    InvoiceLineItem,
    Payment,
    Quote,
    QuoteLineItem,
)
from gearhire.models.audit import ActionLog, CronJob
from gearhire.models.notification import Notification

__all__ = [
    "User",
    "Client",
    "EquipmentCategory",
    "EquipmentItem",
    "EquipmentStatusHistory",
    "Event",
    "EventEquipmentBooking",
    "StaffAssignment",
    "CheckOutTransaction",
    "CheckOutItem",
    "CheckInTransaction",
    "CheckInItem",
    "MaintenanceTicket",
    "Quote",
    "QuoteLineItem",
    "Invoice",
    "InvoiceLineItem",
    "Payment",
    "DocumentCounter",
    "ActionLog",
    "CronJob",
    "Notification",
]
