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

"""Check-out and check-in routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_actor_id, get_audit
from gearhire.models.enums import ItemCondition
from gearhire.services.audit import ActionLogger
from gearhire.services.transactions import TransactionProcessor

router = APIRouter(prefix="/api/transactions")


# Pydantic schemas
class CheckOutLine(BaseModel):
    equipment_id: int
    quantity: Optional[int] = None
    condition: ItemCondition = ItemCondition.GOOD
    notes: Optional[str] = None


class CheckOutCreate(BaseModel):
    """Equipment leaving the warehouse for an event."""

    event_id: int
    items: List[CheckOutLine] = Field(..., min_length=1)
    notes: Optional[str] = None


class CheckInLine(BaseModel):
    equipment_id: int
    condition: ItemCondition
    quantity: Optional[int] = None
    returned_quantity: Optional[int] = None
    damage_notes: Optional[str] = None
    notes: Optional[str] = None


class CheckInCreate(BaseModel):
    """Equipment coming back from an event."""

    event_id: int
    items: List[CheckInLine] = Field(..., min_length=1)
    notes: Optional[str] = None


def get_processor(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> TransactionProcessor:
    return TransactionProcessor(db, audit)


@router.post("/check-out", status_code=201)
async def check_out(
    data: CheckOutCreate,
    processor: TransactionProcessor = Depends(get_processor),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Check out confirmed bookings. Every item is marked IN_USE."""
    result = processor.create_check_out(
        data.event_id,
        [line.model_dump(exclude_none=True) for line in data.items],
        notes=data.notes,
        actor_id=actor_id,
    )
    return {
        "event": result["event"].to_dict(),
        "check_out": result["check_out"].to_dict(),
        "total_items": result["total_items"],
    }


@router.post("/check-in", status_code=201)
async def check_in(
    data: CheckInCreate,
    processor: TransactionProcessor = Depends(get_processor),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Check equipment back in and record its condition."""
    result = processor.create_check_in(
        data.event_id,
        [line.model_dump(exclude_none=True) for line in data.items],
        notes=data.notes,
        actor_id=actor_id,
    )
    return {
        "event": result["event"].to_dict(),
        "check_in": result["check_in"].to_dict(),
        "total_items": result["total_items"],
        "items_with_issues": result["items_with_issues"],
        "shortages": result["shortages"],
        "all_returned": result["all_returned"],
        "tickets": [t.to_dict() for t in result["tickets"]],
    }


@router.get("/pending")
async def pending_check_ins(processor: TransactionProcessor = Depends(get_processor)):
    """Checked-out equipment grouped by event."""
    pending = processor.get_pending_check_ins()
    return {
        "total_pending": pending["total_pending"],
        "by_event": [
            {
                "event": group["event"].to_dict(),
                "items": [b.to_dict() for b in group["items"]],
            }
            for group in pending["by_event"]
        ],
    }


@router.get("/overdue")
async def overdue_check_ins(processor: TransactionProcessor = Depends(get_processor)):
    """Checked-out equipment whose event has already ended."""
    overdue = processor.get_overdue_check_ins()
    return {
        "total_overdue": overdue["total_overdue"],
        "items": [
            {**entry["booking"].to_dict(include_event=True), "days_overdue": entry["days_overdue"]}
            for entry in overdue["items"]
        ],
    }


@router.get("/events/{event_id}")
async def event_transactions(
    event_id: int, processor: TransactionProcessor = Depends(get_processor)
):
    result = processor.get_event_transactions(event_id)
    return {
        "event": result["event"].to_dict(),
        "check_outs": [co.to_dict() for co in result["check_outs"]],
        "check_ins": [ci.to_dict() for ci in result["check_ins"]],
        "summary": result["summary"],
    }
