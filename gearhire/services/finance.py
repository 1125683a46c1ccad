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

"""Quotes, invoices and payment reconciliation.

Invoice totals are always derived from line items. ``amount_paid`` is the
sum of the invoice's payments and, together with the status, only changes
while the invoice row is locked.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from gearhire.config import get_settings
from gearhire.database import unit_of_work
from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.enums import (
    EventStatus,
    InvoiceStatus,
    NotificationPriority,
    NotificationType,
    PaymentMethod,
    QuoteStatus,
    coerce_enum,
)
from gearhire.models.finance import Invoice, InvoiceLineItem, Payment, Quote, QuoteLineItem
from gearhire.repositories import EventRepository, InvoiceRepository, QuoteRepository
from gearhire.services.audit import ActionLogger
from gearhire.services.directory import Directory
from gearhire.services.notifications import NotificationService
from gearhire.utils.helpers import clean_optional, format_money, sanitize_input, to_money, utcnow

logger = logging.getLogger(__name__)

QUOTE_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
}

# Manual invoice moves. PARTIALLY_PAID and PAID are driven by payments.
INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
    InvoiceStatus.SENT: {InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.PARTIALLY_PAID: {InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.OVERDUE: {InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.CANCELLED: set(),
}

OPEN_INVOICE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)

ZERO = Decimal("0.00")


def calculate_totals(
    line_items: List[Dict[str, Any]], discount=ZERO, tax_rate=ZERO
) -> Dict[str, Decimal]:
    """Flat line-item arithmetic.

    ``tax = (subtotal - discount) * tax_rate / 100`` and
    ``total = subtotal - discount + tax``, each rounded to cents.

    Raises:
        ValidationError: Negative discount, discount above subtotal, or a
            tax rate outside 0..100.
    """
    subtotal = sum(
        (to_money(to_money(line["unit_price"]) * int(line.get("quantity", 1))) for line in line_items),
        ZERO,
    )
    try:
        discount = to_money(discount)
        tax_rate = to_money(tax_rate)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if discount < 0:
        raise ValidationError("Discount cannot be negative")
    if discount > subtotal:
        raise ValidationError(f"Discount {discount:.2f} exceeds subtotal {subtotal:.2f}")
    if tax_rate < 0 or tax_rate > 100:
        raise ValidationError("Tax rate must be between 0 and 100")

    tax_amount = to_money((subtotal - discount) * tax_rate / 100)
    return {
        "subtotal": to_money(subtotal),
        "discount": discount,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total": to_money(subtotal - discount + tax_amount),
    }


def _clean_lines(line_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not line_items:
        raise ValidationError("At least one line item is required")
    lines = []
    for line in line_items:
        description = sanitize_input(line.get("description"), 500)
        if not description:
            raise ValidationError("Every line item needs a description")
        quantity = int(line.get("quantity", 1))
        if quantity < 1:
            raise ValidationError(f"Quantity for '{description}' must be at least 1")
        try:
            unit_price = to_money(line.get("unit_price"))
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if unit_price < 0:
            raise ValidationError(f"Unit price for '{description}' cannot be negative")
        lines.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": unit_price,
                "total": to_money(unit_price * quantity),
                "equipment_id": line.get("equipment_id"),
            }
        )
    return lines


class FinanceService:
    """Quotes, invoices and the payment-driven invoice status machine."""

    def __init__(self, db: Session, audit: Optional[ActionLogger] = None):
        self.db = db
        self.audit = audit or ActionLogger(db)
        self.quotes = QuoteRepository(db)
        self.invoices = InvoiceRepository(db)
        self.events = EventRepository(db)
        self.directory = Directory(db)
        self.notifications = NotificationService(db)
        self.settings = get_settings().finance

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self.settings.currency_symbol)

    def _check_event(self, event_id: Optional[int], client_id: int) -> None:
        if event_id is None:
            return
        event = self.events.require(event_id)
        if event.client_id != client_id:
            raise ValidationError(f"Event {event.name} belongs to a different client")

    def _totals(self, lines, discount, tax_rate) -> Dict[str, Decimal]:
        if tax_rate is None:
            tax_rate = self.settings.default_tax_rate
        return calculate_totals(lines, discount or ZERO, tax_rate)

    # ==================== QUOTES ====================

    def create_quote(
        self,
        client_id: int,
        line_items: List[Dict[str, Any]],
        event_id: Optional[int] = None,
        discount=None,
        tax_rate=None,
        valid_until: Optional[datetime] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Quote:
        lines = _clean_lines(line_items)
        totals = self._totals(lines, discount, tax_rate)
        now = utcnow()
        valid_until = valid_until or now + timedelta(days=self.settings.quote_validity_days)

        with unit_of_work(self.db):
            self.directory.require_active_client(client_id)
            self._check_event(event_id, client_id)
            quote = Quote(
                quote_number=self.invoices.next_number("QT", now),
                client_id=client_id,
                event_id=event_id,
                status=QuoteStatus.DRAFT,
                valid_until=valid_until,
                notes=clean_optional(notes),
                terms=clean_optional(terms),
                created_by=actor_id,
                **totals,
            )
            quote.line_items = [QuoteLineItem(**line) for line in lines]
            self.db.add(quote)
            self.db.flush()

        logger.info("Created quote %s", quote.quote_number)
        self.audit.log("CREATE", "Quote", quote.id, {"number": quote.quote_number}, actor_id)
        return quote

    def update_quote(
        self,
        quote_id: int,
        line_items: Optional[List[Dict[str, Any]]] = None,
        discount=None,
        tax_rate=None,
        valid_until: Optional[datetime] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Quote:
        """Edit a DRAFT quote. New line items replace the old ones."""
        with unit_of_work(self.db):
            quote = self.quotes.require(quote_id, for_update=True)
            if quote.status != QuoteStatus.DRAFT:
                raise ValidationError(
                    f"Quote {quote.quote_number} is {quote.status.value}; only drafts can be edited"
                )
            if line_items is not None:
                lines = _clean_lines(line_items)
                quote.line_items = [QuoteLineItem(**line) for line in lines]
            else:
                lines = [line.to_dict() for line in quote.line_items]
            totals = self._totals(
                lines,
                quote.discount if discount is None else discount,
                quote.tax_rate if tax_rate is None else tax_rate,
            )
            for key, value in totals.items():
                setattr(quote, key, value)
            if valid_until is not None:
                quote.valid_until = valid_until
            if notes is not None:
                quote.notes = clean_optional(notes)
            if terms is not None:
                quote.terms = clean_optional(terms)

        self.audit.log("UPDATE", "Quote", quote_id, {"total": str(quote.total)}, actor_id)
        return quote

    def update_quote_status(
        self, quote_id: int, new_status: QuoteStatus, actor_id: Optional[int] = None
    ) -> Quote:
        """Move a quote along DRAFT -> SENT -> ACCEPTED/REJECTED/EXPIRED.

        Sending a quote for a DRAFT event marks the event QUOTED.
        """
        new_status = coerce_enum(QuoteStatus, new_status)
        with unit_of_work(self.db):
            quote = self.quotes.require(quote_id, for_update=True)
            previous = quote.status
            if new_status not in QUOTE_TRANSITIONS[previous]:
                raise ValidationError(
                    f"Cannot change quote {quote.quote_number} from {previous.value} "
                    f"to {new_status.value}"
                )
            now = utcnow()
            if new_status == QuoteStatus.ACCEPTED and quote.valid_until < now:
                raise ValidationError(
                    f"Quote {quote.quote_number} expired on {quote.valid_until:%Y-%m-%d}"
                )

            quote.status = new_status
            if new_status == QuoteStatus.ACCEPTED:
                quote.accepted_at = now
                self.notifications.notify_admins(
                    NotificationType.QUOTE_ACCEPTED,
                    "Quote Accepted",
                    f"Quote {quote.quote_number} for {quote.client.name} has been accepted "
                    f"({self._money(quote.total)})",
                    entity_type="Quote",
                    entity_id=quote.id,
                    priority=NotificationPriority.HIGH,
                )
            elif new_status == QuoteStatus.REJECTED:
                quote.rejected_at = now
                self.notifications.notify_admins(
                    NotificationType.QUOTE_REJECTED,
                    "Quote Rejected",
                    f"Quote {quote.quote_number} for {quote.client.name} has been rejected",
                    entity_type="Quote",
                    entity_id=quote.id,
                )
            elif new_status == QuoteStatus.SENT and quote.event_id:
                event = self.events.require(quote.event_id, for_update=True)
                if event.status == EventStatus.DRAFT:
                    event.status = EventStatus.QUOTED

        self.audit.log(
            "STATUS_CHANGE",
            "Quote",
            quote_id,
            {"from": previous.value, "to": new_status.value},
            actor_id,
        )
        return quote

    def delete_quote(self, quote_id: int, actor_id: Optional[int] = None) -> None:
        with unit_of_work(self.db):
            quote = self.quotes.require(quote_id, for_update=True)
            if quote.status != QuoteStatus.DRAFT:
                raise ValidationError(
                    f"Quote {quote.quote_number} is {quote.status.value}; only drafts can be deleted"
                )
            number = quote.quote_number
            self.db.delete(quote)

        self.audit.log("DELETE", "Quote", quote_id, {"number": number}, actor_id)

    def get_quote(self, quote_id: int) -> Quote:
        return self.quotes.require(quote_id)

    def list_quotes(
        self,
        status: Optional[QuoteStatus] = None,
        client_id: Optional[int] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Quote], int]:
        query = self.db.query(Quote)
        if status:
            query = query.filter(Quote.status == coerce_enum(QuoteStatus, status))
        if client_id:
            query = query.filter(Quote.client_id == client_id)
        total = query.count()
        return query.order_by(Quote.id.desc()).offset(skip).limit(take).all(), total

    def create_invoice_from_quote(
        self,
        quote_id: int,
        due_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Invoice:
        """Raise a DRAFT invoice carrying an ACCEPTED quote's lines and totals."""
        now = utcnow()
        due_date = due_date or now + timedelta(days=self.settings.payment_terms_days)

        with unit_of_work(self.db):
            quote = self.quotes.require(quote_id, for_update=True)
            if quote.status != QuoteStatus.ACCEPTED:
                raise ValidationError(
                    f"Quote {quote.quote_number} is {quote.status.value}; "
                    f"only accepted quotes can be invoiced"
                )
            existing = self.invoices.find_by_quote(quote.id)
            if existing:
                raise ConflictError(
                    f"Quote {quote.quote_number} is already invoiced as {existing.invoice_number}"
                )

            invoice = Invoice(
                invoice_number=self.invoices.next_number("INV", now),
                client_id=quote.client_id,
                event_id=quote.event_id,
                quote_id=quote.id,
                status=InvoiceStatus.DRAFT,
                due_date=due_date,
                subtotal=quote.subtotal,
                discount=quote.discount,
                tax_rate=quote.tax_rate,
                tax_amount=quote.tax_amount,
                total=quote.total,
                amount_paid=ZERO,
                notes=quote.notes,
                terms=quote.terms,
                created_by=actor_id,
            )
            invoice.line_items = [
                InvoiceLineItem(
                    equipment_id=line.equipment_id,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total=line.total,
                )
                for line in quote.line_items
            ]
            self.db.add(invoice)
            self.db.flush()

        logger.info("Invoiced quote %s as %s", quote_id, invoice.invoice_number)
        self.audit.log(
            "CREATE",
            "Invoice",
            invoice.id,
            {"number": invoice.invoice_number, "quote_id": quote_id},
            actor_id,
        )
        return invoice

    # ==================== INVOICES ====================

    def create_invoice(
        self,
        client_id: int,
        line_items: List[Dict[str, Any]],
        event_id: Optional[int] = None,
        discount=None,
        tax_rate=None,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Invoice:
        lines = _clean_lines(line_items)
        totals = self._totals(lines, discount, tax_rate)
        now = utcnow()
        due_date = due_date or now + timedelta(days=self.settings.payment_terms_days)

        with unit_of_work(self.db):
            self.directory.require_active_client(client_id)
            self._check_event(event_id, client_id)
            invoice = Invoice(
                invoice_number=self.invoices.next_number("INV", now),
                client_id=client_id,
                event_id=event_id,
                status=InvoiceStatus.DRAFT,
                due_date=due_date,
                amount_paid=ZERO,
                notes=clean_optional(notes),
                terms=clean_optional(terms),
                created_by=actor_id,
                **totals,
            )
            invoice.line_items = [InvoiceLineItem(**line) for line in lines]
            self.db.add(invoice)
            self.db.flush()

        logger.info("Created invoice %s for %s", invoice.invoice_number, invoice.total)
        self.audit.log("CREATE", "Invoice", invoice.id, {"number": invoice.invoice_number}, actor_id)
        return invoice

    @staticmethod
    def _ensure_editable(invoice: Invoice) -> None:
        if invoice.status != InvoiceStatus.DRAFT:
            raise ValidationError(
                f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
                f"only drafts can be changed"
            )
        if invoice.payments:
            raise ValidationError(f"Cannot change invoice {invoice.invoice_number} with payments")

    def update_invoice(
        self,
        invoice_id: int,
        line_items: Optional[List[Dict[str, Any]]] = None,
        discount=None,
        tax_rate=None,
        due_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Invoice:
        """Edit a DRAFT invoice without payments. Totals are recomputed."""
        with unit_of_work(self.db):
            invoice = self.invoices.require(invoice_id, for_update=True)
            self._ensure_editable(invoice)
            if line_items is not None:
                lines = _clean_lines(line_items)
                invoice.line_items = [InvoiceLineItem(**line) for line in lines]
            else:
                lines = [line.to_dict() for line in invoice.line_items]
            totals = self._totals(
                lines,
                invoice.discount if discount is None else discount,
                invoice.tax_rate if tax_rate is None else tax_rate,
            )
            for key, value in totals.items():
                setattr(invoice, key, value)
            if due_date is not None:
                invoice.due_date = due_date
            if notes is not None:
                invoice.notes = clean_optional(notes)
            if terms is not None:
                invoice.terms = clean_optional(terms)

        self.audit.log("UPDATE", "Invoice", invoice_id, {"total": str(invoice.total)}, actor_id)
        return invoice

    def update_invoice_status(
        self, invoice_id: int, new_status: InvoiceStatus, actor_id: Optional[int] = None
    ) -> Invoice:
        new_status = coerce_enum(InvoiceStatus, new_status)
        with unit_of_work(self.db):
            invoice = self.invoices.require(invoice_id, for_update=True)
            previous = invoice.status
            if new_status in (InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID):
                raise ValidationError(f"{new_status.value} is set by recording payments")
            if new_status not in INVOICE_TRANSITIONS[previous]:
                raise ValidationError(
                    f"Cannot change invoice {invoice.invoice_number} from {previous.value} "
                    f"to {new_status.value}"
                )
            invoice.status = new_status

        self.audit.log(
            "STATUS_CHANGE",
            "Invoice",
            invoice_id,
            {"from": previous.value, "to": new_status.value},
            actor_id,
        )
        return invoice

    def delete_invoice(self, invoice_id: int, actor_id: Optional[int] = None) -> None:
        with unit_of_work(self.db):
            invoice = self.invoices.require(invoice_id, for_update=True)
            if invoice.payments:
                raise ValidationError(f"Cannot delete invoice {invoice.invoice_number} with payments")
            self._ensure_editable(invoice)
            number = invoice.invoice_number
            self.db.delete(invoice)

        self.audit.log("DELETE", "Invoice", invoice_id, {"number": number}, actor_id)

    def get_invoice(self, invoice_id: int) -> Invoice:
        return self.invoices.require(invoice_id)

    def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        client_id: Optional[int] = None,
        skip: int = 0,
        take: int = 50,
    ) -> Tuple[List[Invoice], int]:
        query = self.db.query(Invoice)
        if status:
            query = query.filter(Invoice.status == coerce_enum(InvoiceStatus, status))
        if client_id:
            query = query.filter(Invoice.client_id == client_id)
        total = query.count()
        return query.order_by(Invoice.id.desc()).offset(skip).limit(take).all(), total

    # ==================== PAYMENTS ====================

    def create_payment(
        self,
        invoice_id: int,
        amount,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        payment_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Payment:
        """Record a payment and move the invoice to PARTIALLY_PAID or PAID.

        Raises:
            ValidationError: Cancelled invoice, non-positive amount, or an
                amount above the balance due (quoted in the message).
        """
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        payment_method = coerce_enum(PaymentMethod, payment_method or PaymentMethod.CASH)

        with unit_of_work(self.db):
            invoice = self.invoices.require(invoice_id, for_update=True)
            if invoice.status == InvoiceStatus.CANCELLED:
                raise ValidationError(
                    f"Cannot add payment to cancelled invoice {invoice.invoice_number}"
                )
            balance = invoice.balance_due
            if amount > balance:
                raise ValidationError(
                    f"Payment amount exceeds balance due ({self._money(balance)}) "
                    f"on invoice {invoice.invoice_number}"
                )

            payment = Payment(
                invoice_id=invoice.id,
                amount=amount,
                payment_method=payment_method,
                reference_number=clean_optional(reference_number, 100),
                notes=clean_optional(notes),
                payment_date=payment_date or utcnow(),
                recorded_by=actor_id,
            )
            invoice.payments.append(payment)
            invoice.amount_paid = to_money(invoice.amount_paid) + amount
            if invoice.balance_due <= 0:
                invoice.status = InvoiceStatus.PAID
                self.notifications.notify_admins(
                    NotificationType.INVOICE_PAID,
                    "Invoice Paid in Full",
                    f"Invoice {invoice.invoice_number} for {invoice.client.name} has been paid "
                    f"in full ({self._money(invoice.total)})",
                    entity_type="Invoice",
                    entity_id=invoice.id,
                )
            elif invoice.amount_paid > 0:
                invoice.status = InvoiceStatus.PARTIALLY_PAID
            self.db.flush()

        logger.info(
            "Payment %s on invoice %s, status %s", amount, invoice.invoice_number, invoice.status.value
        )
        self.audit.log(
            "PAYMENT",
            "Invoice",
            invoice_id,
            {"amount": str(amount), "method": payment_method.value, "status": invoice.status.value},
            actor_id,
        )
        return payment

    def delete_payment(self, payment_id: int, actor_id: Optional[int] = None) -> Invoice:
        """Remove a payment and recompute the invoice from what remains."""
        with unit_of_work(self.db):
            payment = self.invoices.get_payment(payment_id)
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            invoice = self.invoices.require(payment.invoice_id, for_update=True)
            amount = payment.amount
            invoice.payments.remove(payment)
            self.db.flush()

            invoice.amount_paid = self.invoices.sum_payments(invoice.id)
            if invoice.status != InvoiceStatus.CANCELLED:
                if invoice.amount_paid <= 0:
                    invoice.status = InvoiceStatus.SENT
                elif invoice.balance_due > 0:
                    invoice.status = InvoiceStatus.PARTIALLY_PAID
                else:
                    invoice.status = InvoiceStatus.PAID

        self.audit.log(
            "DELETE_PAYMENT",
            "Invoice",
            invoice.id,
            {"payment_id": payment_id, "amount": str(amount), "status": invoice.status.value},
            actor_id,
        )
        return invoice

    def list_payments(self, invoice_id: int) -> List[Payment]:
        return list(self.invoices.require(invoice_id).payments)

    # ==================== REPORTING / HOUSEKEEPING ====================

    def financial_summary(self) -> Dict[str, Any]:
        revenue = to_money(self.db.query(func.coalesce(func.sum(Payment.amount), 0)).scalar())

        outstanding = ZERO
        overdue = ZERO
        by_status = {s.value: 0 for s in InvoiceStatus}
        for invoice in self.db.query(Invoice).all():
            by_status[invoice.status.value] += 1
            if invoice.status in OPEN_INVOICE_STATUSES:
                outstanding += invoice.balance_due
                if invoice.status == InvoiceStatus.OVERDUE:
                    overdue += invoice.balance_due

        pending_quotes = (
            self.db.query(func.count(Quote.id)).filter(Quote.status == QuoteStatus.SENT).scalar()
        )
        accepted_value = to_money(
            self.db.query(func.coalesce(func.sum(Quote.total), 0))
            .filter(Quote.status == QuoteStatus.ACCEPTED)
            .scalar()
        )

        return {
            "total_revenue": f"{revenue:.2f}",
            "outstanding": f"{to_money(outstanding):.2f}",
            "overdue": f"{to_money(overdue):.2f}",
            "invoices_by_status": by_status,
            "pending_quotes": pending_quotes,
            "accepted_quotes_value": f"{accepted_value:.2f}",
            "currency_symbol": self.settings.currency_symbol,
        }

    def mark_overdue_invoices(self, now: Optional[datetime] = None) -> int:
        """Flag SENT and PARTIALLY_PAID invoices past their due date.

        Admins are notified once per invoice, even if it is flagged again
        after a payment is deleted.
        """
        now = now or utcnow()
        with unit_of_work(self.db):
            invoices = (
                self.db.query(Invoice)
                .filter(
                    Invoice.status.in_((InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID)),
                    Invoice.due_date < now,
                )
                .with_for_update()
                .all()
            )
            for invoice in invoices:
                invoice.status = InvoiceStatus.OVERDUE
                if self.notifications.has_notification(
                    NotificationType.INVOICE_OVERDUE, "Invoice", invoice.id
                ):
                    continue
                self.notifications.notify_admins(
                    NotificationType.INVOICE_OVERDUE,
                    "Invoice Overdue",
                    f"Invoice {invoice.invoice_number} for {invoice.client.name} is overdue. "
                    f"Balance due: {self._money(invoice.balance_due)}",
                    entity_type="Invoice",
                    entity_id=invoice.id,
                    priority=NotificationPriority.HIGH,
                )
        if invoices:
            logger.info("Marked %s invoices overdue", len(invoices))
        return len(invoices)

    def expire_quotes(self, now: Optional[datetime] = None) -> int:
        """Expire SENT quotes past ``valid_until``."""
        now = now or utcnow()
        with unit_of_work(self.db):
            quotes = (
                self.db.query(Quote)
                .filter(Quote.status == QuoteStatus.SENT, Quote.valid_until < now)
                .with_for_update()
                .all()
            )
            for quote in quotes:
                quote.status = QuoteStatus.EXPIRED
        if quotes:
            logger.info("Expired %s quotes", len(quotes))
        return len(quotes)
