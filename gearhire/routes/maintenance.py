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

"""Maintenance ticket routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_actor_id, get_audit
from gearhire.models.enums import MaintenancePriority, MaintenanceStatus
from gearhire.services.audit import ActionLogger
from gearhire.services.maintenance import MaintenanceService

router = APIRouter(prefix="/api/maintenance")


# Pydantic schemas
class TicketCreate(BaseModel):
    """Maintenance ticket creation request."""

    equipment_id: int
    title: str
    description: Optional[str] = None
    reported_issue: Optional[str] = None
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    assigned_to_id: Optional[int] = None
    vendor_name: Optional[str] = None


class TicketUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    reported_issue: Optional[str] = None
    priority: Optional[MaintenancePriority] = None
    assigned_to_id: Optional[int] = None
    diagnosis: Optional[str] = None
    repair_notes: Optional[str] = None
    vendor_name: Optional[str] = None


class TicketStatusUpdate(BaseModel):
    status: MaintenanceStatus
    notes: Optional[str] = None


class TicketComplete(BaseModel):
    """Close a repair and optionally return the item to service."""

    repair_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    set_available: bool = True


class TicketCancel(BaseModel):
    reason: Optional[str] = None


def get_maintenance(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> MaintenanceService:
    return MaintenanceService(db, audit)


@router.get("")
async def list_tickets(
    status: Optional[MaintenanceStatus] = None,
    priority: Optional[MaintenancePriority] = None,
    equipment_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    service: MaintenanceService = Depends(get_maintenance),
):
    tickets, total = service.list_tickets(
        status=status, priority=priority, equipment_id=equipment_id, skip=skip, take=take
    )
    return {"items": [t.to_dict() for t in tickets], "total": total, "skip": skip, "take": take}


@router.get("/statistics")
async def ticket_statistics(service: MaintenanceService = Depends(get_maintenance)):
    return service.statistics()


@router.post("", status_code=201)
async def create_ticket(
    data: TicketCreate,
    service: MaintenanceService = Depends(get_maintenance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Open a ticket. The item goes UNDER_REPAIR."""
    ticket = service.create_ticket(actor_id=actor_id, **data.model_dump())
    return ticket.to_dict()


@router.get("/{ticket_id}")
async def get_ticket(ticket_id: int, service: MaintenanceService = Depends(get_maintenance)):
    return service.get_ticket(ticket_id).to_dict()


@router.put("/{ticket_id}")
async def update_ticket(
    ticket_id: int,
    data: TicketUpdate,
    service: MaintenanceService = Depends(get_maintenance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    ticket = service.update_ticket(ticket_id, actor_id=actor_id, **data.model_dump(exclude_unset=True))
    return ticket.to_dict()


@router.put("/{ticket_id}/status")
async def update_ticket_status(
    ticket_id: int,
    data: TicketStatusUpdate,
    service: MaintenanceService = Depends(get_maintenance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    ticket = service.update_status(ticket_id, data.status, notes=data.notes, actor_id=actor_id)
    return ticket.to_dict()


@router.post("/{ticket_id}/complete")
async def complete_ticket(
    ticket_id: int,
    data: TicketComplete,
    service: MaintenanceService = Depends(get_maintenance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    ticket = service.complete(
        ticket_id,
        repair_notes=data.repair_notes,
        diagnosis=data.diagnosis,
        set_available=data.set_available,
        actor_id=actor_id,
    )
    return ticket.to_dict()


@router.post("/{ticket_id}/cancel")
async def cancel_ticket(
    ticket_id: int,
    data: TicketCancel,
    service: MaintenanceService = Depends(get_maintenance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Cancel a ticket. The item's status is left as it is."""
    ticket = service.cancel(ticket_id, reason=data.reason, actor_id=actor_id)
    return ticket.to_dict()
