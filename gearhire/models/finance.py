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

"""Quote, invoice and payment models."""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from gearhire.database import Base
from gearhire.models.enums import InvoiceStatus, PaymentMethod, QuoteStatus, enum_type
from gearhire.utils.helpers import isoformat, money_str, to_money, utcnow


class Quote(Base):
    """Priced proposal sent to a client before an invoice exists."""

    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_number = Column(String(32), unique=True, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    status = Column(enum_type(QuoteStatus), nullable=False, default=QuoteStatus.DRAFT, index=True)
    valid_until = Column(DateTime, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    client = relationship("Client")
    event = relationship("Event")
    line_items = relationship(
        "QuoteLineItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteLineItem.id",
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "quote_number": self.quote_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "event_id": self.event_id,
            "status": self.status.value,
            "valid_until": isoformat(self.valid_until),
            "subtotal": money_str(self.subtotal),
            "discount": money_str(self.discount),
            "tax_rate": money_str(self.tax_rate),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "notes": self.notes,
            "terms": self.terms,
            "accepted_at": isoformat(self.accepted_at),
            "rejected_at": isoformat(self.rejected_at),
            "line_items": [line.to_dict() for line in self.line_items],
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status={self.status})>"


class QuoteLineItem(Base):
    __tablename__ = "quote_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False)
    equipment_id = Column(Integer, ForeignKey("equipment_items.id", ondelete="SET NULL"), nullable=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    quote = relationship("Quote", back_populates="line_items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total": money_str(self.total),
        }


class Invoice(Base):
    """Amount owed by a client.

    ``amount_paid`` is the running sum of the invoice's payments and is only
    written together with the payment rows it summarizes.
    """

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(32), unique=True, nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        enum_type(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True
    )
    due_date = Column(DateTime, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    amount_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint("amount_paid >= 0", name="ck_invoice_amount_paid"),)

    # Relationships
    client = relationship("Client")
    event = relationship("Event")
    quote = relationship("Quote")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.id",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    @property
    def balance_due(self) -> Decimal:
        return to_money(self.total) - to_money(self.amount_paid)

    def to_dict(self, include_payments: bool = True) -> dict:
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "event_id": self.event_id,
            "quote_id": self.quote_id,
            "status": self.status.value,
            "due_date": isoformat(self.due_date),
            "subtotal": money_str(self.subtotal),
            "discount": money_str(self.discount),
            "tax_rate": money_str(self.tax_rate),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "amount_paid": money_str(self.amount_paid),
            "balance_due": money_str(self.balance_due),
            "notes": self.notes,
            "terms": self.terms,
            "line_items": [line.to_dict() for line in self.line_items],
            "created_at": isoformat(self.created_at),
        }
        if include_payments:
            result["payments"] = [p.to_dict() for p in self.payments]
        return result

    def __repr__(self):
        return (
            f"<Invoice(id={self.id}, number='{self.invoice_number}', "
            f"status={self.status}, paid={self.amount_paid}/{self.total})>"
        )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    equipment_id = Column(Integer, ForeignKey("equipment_items.id", ondelete="SET NULL"), nullable=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="line_items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total": money_str(self.total),
        }


class Payment(Base):
    """Money received against an invoice."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(enum_type(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    payment_date = Column(DateTime, nullable=False, default=utcnow)
    recorded_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_amount"),)

    invoice = relationship("Invoice", back_populates="payments")

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount": money_str(self.amount),
            "payment_method": self.payment_method.value,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "payment_date": isoformat(self.payment_date),
            "recorded_by": self.recorded_by,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount})>"


class DocumentCounter(Base):
    """Running number per document prefix and month, e.g. ``INV-202406``."""

    __tablename__ = "document_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String(32), unique=True, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<DocumentCounter(scope='{self.scope}', last_value={self.last_value})>"
