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

"""Event, booking and staff assignment routes."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_actor_id, get_audit
from gearhire.models.enums import EventStatus
from gearhire.services.audit import ActionLogger
from gearhire.services.bookings import BookingEngine
from gearhire.services.events import EventService
from gearhire.utils.helpers import naive_utc

router = APIRouter(prefix="/api/events")


# Pydantic schemas
class EventCreate(BaseModel):
    """Event creation request."""

    client_id: int
    name: str
    start_date: datetime
    end_date: datetime
    event_type: Optional[str] = None
    description: Optional[str] = None
    venue: Optional[str] = None
    venue_address: Optional[str] = None
    setup_time: Optional[datetime] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("start_date", "end_date", "setup_time")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class EventUpdate(BaseModel):
    """Event update request."""

    client_id: Optional[int] = None
    name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    event_type: Optional[str] = None
    description: Optional[str] = None
    venue: Optional[str] = None
    venue_address: Optional[str] = None
    setup_time: Optional[datetime] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("start_date", "end_date", "setup_time")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class EventFromQuote(BaseModel):
    """Event creation from an accepted quote."""

    quote_id: int
    start_date: datetime
    end_date: datetime
    name: Optional[str] = None
    equipment_ids: List[int] = Field(default_factory=list)
    event_type: Optional[str] = None
    description: Optional[str] = None
    venue: Optional[str] = None
    venue_address: Optional[str] = None
    setup_time: Optional[datetime] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("start_date", "end_date", "setup_time")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class EventStatusUpdate(BaseModel):
    status: EventStatus


class BookingCreate(BaseModel):
    """Single equipment booking request."""

    equipment_id: int
    quantity: int = 1
    notes: Optional[str] = None


class BulkBookingCreate(BaseModel):
    """Several equipment bookings, each accepted or rejected on its own."""

    items: List[BookingCreate] = Field(..., min_length=1)


class StaffAssign(BaseModel):
    user_id: int
    role: Optional[str] = None
    notes: Optional[str] = None


def get_event_service(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> EventService:
    return EventService(db, audit)


def get_booking_engine(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> BookingEngine:
    return BookingEngine(db, audit)


# ==================== EVENTS ====================


@router.get("")
async def list_events(
    status: Optional[EventStatus] = None,
    client_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    service: EventService = Depends(get_event_service),
):
    """List events, optionally those touching a date window."""
    events, total = service.list_events(
        status=status,
        client_id=client_id,
        start_date=naive_utc(start_date),
        end_date=naive_utc(end_date),
        skip=skip,
        take=take,
    )
    return {"items": [e.to_dict() for e in events], "total": total, "skip": skip, "take": take}


@router.post("", status_code=201)
async def create_event(
    data: EventCreate,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    event = service.create_event(actor_id=actor_id, **data.model_dump(exclude_none=True))
    return event.to_dict()


@router.post("/from-quote", status_code=201)
async def create_event_from_quote(
    data: EventFromQuote,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Create a confirmed event for an accepted quote and book its equipment."""
    fields = data.model_dump(exclude_none=True)
    event, errors = service.create_from_quote(
        fields.pop("quote_id"),
        fields.pop("start_date"),
        fields.pop("end_date"),
        actor_id=actor_id,
        **fields,
    )
    result = event.to_dict(include_bookings=True)
    result["booking_errors"] = errors
    return result


@router.get("/calendar")
async def event_calendar(
    start_date: datetime,
    end_date: datetime,
    status: Optional[EventStatus] = None,
    client_id: Optional[int] = None,
    service: EventService = Depends(get_event_service),
):
    events = service.get_calendar(
        naive_utc(start_date), naive_utc(end_date), status=status, client_id=client_id
    )
    return [e.to_dict(include_bookings=True) for e in events]


@router.get("/statistics")
async def event_statistics(service: EventService = Depends(get_event_service)):
    stats = service.get_statistics()
    stats["upcoming_events"] = [e.to_dict() for e in stats["upcoming_events"]]
    return stats


@router.get("/available-staff")
async def available_staff(
    start_date: datetime,
    end_date: datetime,
    exclude_event_id: Optional[int] = None,
    service: EventService = Depends(get_event_service),
):
    """Active users free to work the whole range."""
    users = service.get_available_staff(
        naive_utc(start_date), naive_utc(end_date), exclude_event_id=exclude_event_id
    )
    return [u.to_dict() for u in users]


@router.get("/{event_id}")
async def get_event(event_id: int, service: EventService = Depends(get_event_service)):
    return service.get_event(event_id).to_dict(include_bookings=True)


@router.put("/{event_id}")
async def update_event(
    event_id: int,
    data: EventUpdate,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    event = service.update_event(event_id, actor_id=actor_id, **data.model_dump(exclude_unset=True))
    return event.to_dict()


@router.put("/{event_id}/status")
async def update_event_status(
    event_id: int,
    data: EventStatusUpdate,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    event = service.update_event_status(event_id, data.status, actor_id=actor_id)
    return event.to_dict()


# ==================== BOOKINGS ====================


@router.get("/{event_id}/bookings")
async def list_bookings(event_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return [b.to_dict() for b in engine.list_event_bookings(event_id)]


@router.post("/{event_id}/bookings", status_code=201)
async def book_equipment(
    event_id: int,
    data: BookingCreate,
    engine: BookingEngine = Depends(get_booking_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Reserve one item for the event as a pending booking."""
    booking = engine.book_equipment(
        event_id, data.equipment_id, quantity=data.quantity, notes=data.notes, actor_id=actor_id
    )
    return booking.to_dict()


@router.post("/{event_id}/bookings/bulk")
async def book_multiple(
    event_id: int,
    data: BulkBookingCreate,
    engine: BookingEngine = Depends(get_booking_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Book several items. Failures are reported per item."""
    result = engine.book_multiple_equipment(
        event_id, [item.model_dump() for item in data.items], actor_id=actor_id
    )
    return {
        "success": [b.to_dict() for b in result["success"]],
        "errors": result["errors"],
    }


@router.post("/{event_id}/bookings/confirm")
async def confirm_bookings(
    event_id: int,
    engine: BookingEngine = Depends(get_booking_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    return engine.confirm_bookings(event_id, actor_id=actor_id)


@router.post("/{event_id}/bookings/{booking_id}/cancel")
async def cancel_booking(
    event_id: int,
    booking_id: int,
    engine: BookingEngine = Depends(get_booking_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    return engine.cancel_booking(event_id, booking_id, actor_id=actor_id).to_dict()


@router.delete("/{event_id}/bookings/{booking_id}")
async def remove_booking(
    event_id: int,
    booking_id: int,
    engine: BookingEngine = Depends(get_booking_engine),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    engine.remove_booking(event_id, booking_id, actor_id=actor_id)
    return {"message": "Booking removed"}


# ==================== STAFF ====================


@router.get("/{event_id}/staff")
async def list_staff(event_id: int, service: EventService = Depends(get_event_service)):
    return [a.to_dict() for a in service.list_staff(event_id)]


@router.post("/{event_id}/staff", status_code=201)
async def assign_staff(
    event_id: int,
    data: StaffAssign,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    assignment = service.assign_staff(
        event_id, data.user_id, role=data.role, notes=data.notes, actor_id=actor_id
    )
    return assignment.to_dict()


@router.delete("/{event_id}/staff/{assignment_id}")
async def remove_staff(
    event_id: int,
    assignment_id: int,
    service: EventService = Depends(get_event_service),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    service.remove_staff_assignment(event_id, assignment_id, actor_id=actor_id)
    return {"message": "Staff assignment removed"}
