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

"""Equipment registry routes."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_actor_id, get_audit
from gearhire.models.enums import EquipmentStatus
from gearhire.services.audit import ActionLogger
from gearhire.services.equipment import EquipmentRegistry
from gearhire.services.transactions import TransactionProcessor
from gearhire.utils.helpers import naive_utc

router = APIRouter(prefix="/api/equipment")


# Pydantic schemas
class CategoryCreate(BaseModel):
    """Category creation request."""

    name: str
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    """Category update request."""

    name: Optional[str] = None
    description: Optional[str] = None


class EquipmentCreate(BaseModel):
    """Equipment creation request."""

    name: str
    category_id: int
    quantity: int = 1
    description: Optional[str] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_price: Optional[Decimal] = None
    notes: Optional[str] = None


class EquipmentUpdate(BaseModel):
    """Equipment update request."""

    name: Optional[str] = None
    category_id: Optional[int] = None
    quantity: Optional[int] = None
    description: Optional[str] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_price: Optional[Decimal] = None
    notes: Optional[str] = None


class StatusChange(BaseModel):
    """Manual status change request."""

    status: EquipmentStatus
    reason: Optional[str] = None


class AvailabilityQuery(BaseModel):
    """Availability check for a date range."""

    equipment_ids: List[int] = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


def get_registry(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> EquipmentRegistry:
    return EquipmentRegistry(db, audit)


# ==================== CATEGORIES ====================


@router.get("/categories")
async def list_categories(registry: EquipmentRegistry = Depends(get_registry)):
    """List categories with their item counts."""
    return [category.to_dict(item_count=count) for category, count in registry.list_categories()]


@router.post("/categories", status_code=201)
async def create_category(
    data: CategoryCreate,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    category = registry.create_category(data.name, data.description, actor_id=actor_id)
    return category.to_dict()


@router.put("/categories/{category_id}")
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    category = registry.update_category(
        category_id, name=data.name, description=data.description, actor_id=actor_id
    )
    return category.to_dict()


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: int,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    registry.delete_category(category_id, actor_id=actor_id)
    return {"message": "Category deleted"}


# ==================== ITEMS ====================


@router.get("")
async def list_equipment(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    status: Optional[EquipmentStatus] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    registry: EquipmentRegistry = Depends(get_registry),
):
    """List equipment with optional filters."""
    items, total = registry.list_items(
        search=search, category_id=category_id, status=status, skip=skip, take=take
    )
    return {"items": [item.to_dict() for item in items], "total": total, "skip": skip, "take": take}


@router.get("/statistics")
async def equipment_statistics(registry: EquipmentRegistry = Depends(get_registry)):
    return registry.statistics()


@router.post("/availability")
async def check_availability(
    data: AvailabilityQuery, registry: EquipmentRegistry = Depends(get_registry)
):
    """Report whether each item could be booked for the range."""
    return registry.check_availability(data.equipment_ids, data.start_date, data.end_date)


@router.get("/available")
async def available_equipment(
    start_date: datetime,
    end_date: datetime,
    category_id: Optional[int] = None,
    exclude_event_id: Optional[int] = None,
    registry: EquipmentRegistry = Depends(get_registry),
):
    """Items that could be booked for the whole range."""
    items = registry.get_available_items(
        naive_utc(start_date),
        naive_utc(end_date),
        category_id=category_id,
        exclude_event_id=exclude_event_id,
    )
    return [item.to_dict() for item in items]


@router.get("/barcode/{barcode}")
async def find_by_barcode(barcode: str, registry: EquipmentRegistry = Depends(get_registry)):
    return registry.find_by_barcode(barcode).to_dict()


@router.get("/{equipment_id}")
async def get_equipment(equipment_id: int, registry: EquipmentRegistry = Depends(get_registry)):
    return registry.get_item(equipment_id).to_dict()


@router.post("", status_code=201)
async def create_equipment(
    data: EquipmentCreate,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Register a new item. It starts AVAILABLE."""
    item = registry.create_item(actor_id=actor_id, **data.model_dump())
    return item.to_dict()


@router.put("/{equipment_id}")
async def update_equipment(
    equipment_id: int,
    data: EquipmentUpdate,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    item = registry.update_item(equipment_id, actor_id=actor_id, **data.model_dump(exclude_unset=True))
    return item.to_dict()


@router.put("/{equipment_id}/status")
async def change_status(
    equipment_id: int,
    data: StatusChange,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Manually change an item's status. IN_USE is reserved for check-out."""
    item = registry.set_status(equipment_id, data.status, reason=data.reason, actor_id=actor_id)
    return item.to_dict()


@router.delete("/{equipment_id}")
async def delete_equipment(
    equipment_id: int,
    registry: EquipmentRegistry = Depends(get_registry),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    registry.delete_item(equipment_id, actor_id=actor_id)
    return {"message": "Equipment deleted"}


@router.get("/{equipment_id}/history")
async def status_history(equipment_id: int, registry: EquipmentRegistry = Depends(get_registry)):
    return [entry.to_dict() for entry in registry.get_history(equipment_id)]


@router.get("/{equipment_id}/transactions")
async def transaction_history(
    equipment_id: int,
    skip: int = Query(0, ge=0),
    take: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Check-out and check-in lines for one item, newest first."""
    history = TransactionProcessor(db).get_equipment_history(equipment_id, skip=skip, take=take)
    return {
        "equipment": history["equipment"].to_dict(),
        "check_outs": [line.to_dict(include_event=True) for line in history["check_outs"]],
        "check_ins": [line.to_dict(include_event=True) for line in history["check_ins"]],
        "skip": skip,
        "take": take,
    }
