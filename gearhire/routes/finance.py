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

"""Quote, invoice and payment routes."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from gearhire.database import get_db
from gearhire.middleware.auth import get_actor_id, get_audit
from gearhire.models.enums import InvoiceStatus, PaymentMethod, QuoteStatus
from gearhire.services.audit import ActionLogger
from gearhire.services.finance import FinanceService
from gearhire.utils.helpers import naive_utc

router = APIRouter(prefix="/api/finance")


# Pydantic schemas
class LineItem(BaseModel):
    description: str
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    equipment_id: Optional[int] = None


class QuoteCreate(BaseModel):
    """Quote creation request."""

    client_id: int
    line_items: List[LineItem] = Field(..., min_length=1)
    event_id: Optional[int] = None
    discount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    @field_validator("valid_until")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class QuoteUpdate(BaseModel):
    line_items: Optional[List[LineItem]] = None
    discount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    @field_validator("valid_until")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class QuoteStatusUpdate(BaseModel):
    status: QuoteStatus


class QuoteInvoice(BaseModel):
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class InvoiceCreate(BaseModel):
    """Invoice creation request."""

    client_id: int
    line_items: List[LineItem] = Field(..., min_length=1)
    event_id: Optional[int] = None
    discount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class InvoiceUpdate(BaseModel):
    line_items: Optional[List[LineItem]] = None
    discount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    @field_validator("due_date")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class PaymentCreate(BaseModel):
    """Payment recorded against an invoice."""

    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    payment_date: Optional[datetime] = None

    @field_validator("payment_date")
    @classmethod
    def to_naive(cls, v):
        return naive_utc(v)


def get_finance(
    db: Session = Depends(get_db), audit: ActionLogger = Depends(get_audit)
) -> FinanceService:
    return FinanceService(db, audit)


def _lines(line_items: Optional[List[LineItem]]):
    if line_items is None:
        return None
    return [line.model_dump() for line in line_items]


@router.get("/summary")
async def financial_summary(service: FinanceService = Depends(get_finance)):
    return service.financial_summary()


# ==================== QUOTES ====================


@router.get("/quotes")
async def list_quotes(
    status: Optional[QuoteStatus] = None,
    client_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    service: FinanceService = Depends(get_finance),
):
    quotes, total = service.list_quotes(status=status, client_id=client_id, skip=skip, take=take)
    return {"items": [q.to_dict() for q in quotes], "total": total, "skip": skip, "take": take}


@router.post("/quotes", status_code=201)
async def create_quote(
    data: QuoteCreate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    quote = service.create_quote(
        data.client_id,
        _lines(data.line_items),
        event_id=data.event_id,
        discount=data.discount,
        tax_rate=data.tax_rate,
        valid_until=data.valid_until,
        notes=data.notes,
        terms=data.terms,
        actor_id=actor_id,
    )
    return quote.to_dict()


@router.get("/quotes/{quote_id}")
async def get_quote(quote_id: int, service: FinanceService = Depends(get_finance)):
    return service.get_quote(quote_id).to_dict()


@router.put("/quotes/{quote_id}")
async def update_quote(
    quote_id: int,
    data: QuoteUpdate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    quote = service.update_quote(
        quote_id,
        line_items=_lines(data.line_items),
        discount=data.discount,
        tax_rate=data.tax_rate,
        valid_until=data.valid_until,
        notes=data.notes,
        terms=data.terms,
        actor_id=actor_id,
    )
    return quote.to_dict()


@router.put("/quotes/{quote_id}/status")
async def update_quote_status(
    quote_id: int,
    data: QuoteStatusUpdate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    return service.update_quote_status(quote_id, data.status, actor_id=actor_id).to_dict()


@router.delete("/quotes/{quote_id}")
async def delete_quote(
    quote_id: int,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    service.delete_quote(quote_id, actor_id=actor_id)
    return {"message": "Quote deleted"}


@router.post("/quotes/{quote_id}/invoice", status_code=201)
async def invoice_quote(
    quote_id: int,
    data: QuoteInvoice,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Raise an invoice from an accepted quote."""
    invoice = service.create_invoice_from_quote(quote_id, due_date=data.due_date, actor_id=actor_id)
    return invoice.to_dict()


# ==================== INVOICES ====================


@router.get("/invoices")
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    client_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    service: FinanceService = Depends(get_finance),
):
    invoices, total = service.list_invoices(status=status, client_id=client_id, skip=skip, take=take)
    return {
        "items": [i.to_dict(include_payments=False) for i in invoices],
        "total": total,
        "skip": skip,
        "take": take,
    }


@router.post("/invoices", status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    invoice = service.create_invoice(
        data.client_id,
        _lines(data.line_items),
        event_id=data.event_id,
        discount=data.discount,
        tax_rate=data.tax_rate,
        due_date=data.due_date,
        notes=data.notes,
        terms=data.terms,
        actor_id=actor_id,
    )
    return invoice.to_dict()


@router.get("/invoices/{invoice_id}")
async def get_invoice(invoice_id: int, service: FinanceService = Depends(get_finance)):
    return service.get_invoice(invoice_id).to_dict()


@router.put("/invoices/{invoice_id}")
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    invoice = service.update_invoice(
        invoice_id,
        line_items=_lines(data.line_items),
        discount=data.discount,
        tax_rate=data.tax_rate,
        due_date=data.due_date,
        notes=data.notes,
        terms=data.terms,
        actor_id=actor_id,
    )
    return invoice.to_dict()


@router.put("/invoices/{invoice_id}/status")
async def update_invoice_status(
    invoice_id: int,
    data: InvoiceStatusUpdate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    return service.update_invoice_status(invoice_id, data.status, actor_id=actor_id).to_dict()


@router.delete("/invoices/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    service.delete_invoice(invoice_id, actor_id=actor_id)
    return {"message": "Invoice deleted"}


# ==================== PAYMENTS ====================


@router.get("/invoices/{invoice_id}/payments")
async def list_payments(invoice_id: int, service: FinanceService = Depends(get_finance)):
    return [p.to_dict() for p in service.list_payments(invoice_id)]


@router.post("/invoices/{invoice_id}/payments", status_code=201)
async def create_payment(
    invoice_id: int,
    data: PaymentCreate,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    """Record a payment. The invoice moves to PARTIALLY_PAID or PAID."""
    payment = service.create_payment(
        invoice_id,
        data.amount,
        payment_method=data.payment_method,
        reference_number=data.reference_number,
        notes=data.notes,
        payment_date=data.payment_date,
        actor_id=actor_id,
    )
    invoice = service.get_invoice(invoice_id)
    return {"payment": payment.to_dict(), "invoice": invoice.to_dict(include_payments=False)}


@router.delete("/payments/{payment_id}")
async def delete_payment(
    payment_id: int,
    service: FinanceService = Depends(get_finance),
    actor_id: Optional[int] = Depends(get_actor_id),
):
    invoice = service.delete_payment(payment_id, actor_id=actor_id)
    return invoice.to_dict()
