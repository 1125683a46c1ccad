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

"""Closed status and category enums shared by models, services and schemas."""

from enum import Enum

from sqlalchemy import Enum as SAEnum

from gearhire.errors import ValidationError


class EquipmentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    IN_USE = "IN_USE"
    DAMAGED = "DAMAGED"
    UNDER_REPAIR = "UNDER_REPAIR"
    LOST = "LOST"
    RETIRED = "RETIRED"


NON_BOOKABLE_STATUSES = frozenset(
    {
        EquipmentStatus.DAMAGED,
        EquipmentStatus.UNDER_REPAIR,
        EquipmentStatus.LOST,
        EquipmentStatus.RETIRED,
    }
)


class EventStatus(str, Enum):
    DRAFT = "DRAFT"
    QUOTED = "QUOTED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_OUT = "CHECKED_OUT"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"


# Bookings that hold the equipment against other events
BLOCKING_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.CHECKED_OUT)
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_OUT,
)
CLOSED_BOOKING_STATUSES = (BookingStatus.RETURNED, BookingStatus.CANCELLED)


class ItemCondition(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    DAMAGED = "DAMAGED"
    LOST = "LOST"


class MaintenanceStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_PARTS = "WAITING_PARTS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Tickets that keep their equipment out of service
ACTIVE_TICKET_STATUSES = (
    MaintenanceStatus.OPEN,
    MaintenanceStatus.IN_PROGRESS,
    MaintenanceStatus.WAITING_PARTS,
)


class MaintenancePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    ECOCASH = "ECOCASH"
    MPESA = "MPESA"
    EFT = "EFT"
    CARD = "CARD"
    OTHER = "OTHER"


class NotificationType(str, Enum):
    EVENT_UPCOMING_14D = "EVENT_UPCOMING_14D"
    EVENT_UPCOMING_7D = "EVENT_UPCOMING_7D"
    EVENT_UPCOMING_3D = "EVENT_UPCOMING_3D"
    EVENT_UPCOMING_2D = "EVENT_UPCOMING_2D"
    EVENT_UPCOMING_1D = "EVENT_UPCOMING_1D"
    QUOTE_ACCEPTED = "QUOTE_ACCEPTED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    INVOICE_OVERDUE = "INVOICE_OVERDUE"
    INVOICE_PAID = "INVOICE_PAID"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


def enum_type(enum_cls) -> SAEnum:
    """Column type that stores an enum by name and rejects unknown values."""
    return SAEnum(enum_cls, native_enum=False, validate_strings=True, length=20)


def coerce_enum(enum_cls, value):
    """Turn a raw value into a member of ``enum_cls``.

    Raises:
        ValidationError: Listing the accepted values.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {enum_cls.__name__} {value!r}; expected one of {allowed}") from e
