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

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.enums import EventStatus, InvoiceStatus, PaymentMethod, QuoteStatus
from gearhire.services.finance import FinanceService, calculate_totals
from gearhire.utils.helpers import utcnow

LINES = [
    {"description": "PA system hire", "quantity": 2, "unit_price": "10000.00"},
    {"description": "Delivery", "quantity": 1, "unit_price": "5000.00"},
]


@pytest.fixture
def finance(db):
    return FinanceService(db)


@pytest.fixture
def invoice(finance, client):
    # 25000 + 7% tax = 26750
    return finance.create_invoice(client.id, LINES, tax_rate=7)


def test_calculate_totals():
    totals = calculate_totals(LINES, discount=Decimal("1000"), tax_rate=Decimal("15"))
    assert totals["subtotal"] == Decimal("25000.00")
    assert totals["tax_amount"] == Decimal("3600.00")
    assert totals["total"] == Decimal("27600.00")


def test_calculate_totals_rejects_bad_input():
    with pytest.raises(ValidationError):
        calculate_totals(LINES, discount=Decimal("-1"))
    with pytest.raises(ValidationError):
        calculate_totals(LINES, discount=Decimal("30000"))
    with pytest.raises(ValidationError):
        calculate_totals(LINES, tax_rate=Decimal("101"))


def test_default_tax_rate_from_settings(finance, client):
    invoice = finance.create_invoice(client.id, LINES)
    assert invoice.tax_rate == Decimal("15.00")
    assert invoice.total == Decimal("28750.00")


def test_invoice_numbers_are_sequential(finance, client, invoice):
    prefix = f"INV-{utcnow():%Y%m}"
    assert invoice.invoice_number == f"{prefix}-0001"
    second = finance.create_invoice(client.id, LINES)
    assert second.invoice_number == f"{prefix}-0002"
    quote = finance.create_quote(client.id, LINES)
    assert quote.quote_number == f"QT-{utcnow():%Y%m}-0001"


def test_payments_drive_invoice_status(finance, invoice):
    assert invoice.total == Decimal("26750.00")
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)

    finance.create_payment(invoice.id, "13375.00", payment_method=PaymentMethod.EFT)
    invoice = finance.get_invoice(invoice.id)
    assert invoice.status == InvoiceStatus.PARTIALLY_PAID
    assert invoice.amount_paid == Decimal("13375.00")
    assert invoice.balance_due == Decimal("13375.00")

    finance.create_payment(invoice.id, Decimal("13375"), payment_method="MPESA")
    invoice = finance.get_invoice(invoice.id)
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.balance_due == Decimal("0.00")

    with pytest.raises(ValidationError) as exc:
        finance.create_payment(invoice.id, "1.00")
    assert "exceeds balance due (R0.00)" in exc.value.message
    assert len(finance.list_payments(invoice.id)) == 2


def test_overpayment_rejected(finance, invoice):
    with pytest.raises(ValidationError) as exc:
        finance.create_payment(invoice.id, "30000")
    assert "R26750.00" in exc.value.message
    assert finance.get_invoice(invoice.id).amount_paid == Decimal("0.00")


def test_payment_amount_must_be_positive(finance, invoice):
    with pytest.raises(ValidationError):
        finance.create_payment(invoice.id, 0)
    with pytest.raises(ValidationError):
        finance.create_payment(invoice.id, "abc")


def test_cancelled_invoice_takes_no_payments(finance, invoice):
    finance.update_invoice_status(invoice.id, InvoiceStatus.CANCELLED)
    with pytest.raises(ValidationError) as exc:
        finance.create_payment(invoice.id, "100")
    assert "cancelled invoice" in exc.value.message


def test_paid_cannot_be_set_by_hand(finance, invoice):
    with pytest.raises(ValidationError):
        finance.update_invoice_status(invoice.id, InvoiceStatus.PAID)


def test_delete_payment_recomputes(finance, invoice):
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)
    first = finance.create_payment(invoice.id, "13375")
    second = finance.create_payment(invoice.id, "13375")

    invoice = finance.delete_payment(second.id)
    assert invoice.status == InvoiceStatus.PARTIALLY_PAID
    assert invoice.amount_paid == Decimal("13375.00")

    invoice = finance.delete_payment(first.id)
    assert invoice.status == InvoiceStatus.SENT
    assert invoice.amount_paid == Decimal("0.00")

    with pytest.raises(NotFoundError):
        finance.delete_payment(first.id)


def test_invoice_with_payments_is_frozen(finance, invoice):
    finance.create_payment(invoice.id, "100")
    with pytest.raises(ValidationError) as exc:
        finance.delete_invoice(invoice.id)
    assert "with payments" in exc.value.message
    with pytest.raises(ValidationError):
        finance.update_invoice(invoice.id, discount="10")


def test_update_draft_invoice_recomputes_totals(finance, invoice):
    invoice = finance.update_invoice(
        invoice.id, line_items=[{"description": "Lighting", "quantity": 1, "unit_price": "1000"}]
    )
    assert invoice.subtotal == Decimal("1000.00")
    assert invoice.total == Decimal("1070.00")
    assert len(invoice.line_items) == 1


def test_quote_lifecycle(db, finance, client, make_event):
    event = make_event()
    quote = finance.create_quote(client.id, LINES, event_id=event.id, tax_rate=7)
    assert quote.status == QuoteStatus.DRAFT

    finance.update_quote_status(quote.id, QuoteStatus.SENT)
    db.refresh(event)
    assert event.status == EventStatus.QUOTED

    quote = finance.update_quote_status(quote.id, QuoteStatus.ACCEPTED)
    assert quote.accepted_at is not None

    invoice = finance.create_invoice_from_quote(quote.id)
    assert invoice.quote_id == quote.id
    assert invoice.total == quote.total == Decimal("26750.00")
    assert len(invoice.line_items) == 2
    assert invoice.status == InvoiceStatus.DRAFT

    with pytest.raises(ConflictError):
        finance.create_invoice_from_quote(quote.id)


def test_only_accepted_quotes_are_invoiced(finance, client):
    quote = finance.create_quote(client.id, LINES)
    with pytest.raises(ValidationError):
        finance.create_invoice_from_quote(quote.id)


def test_quote_transitions(finance, client):
    quote = finance.create_quote(client.id, LINES)
    with pytest.raises(ValidationError):
        finance.update_quote_status(quote.id, QuoteStatus.ACCEPTED)
    finance.update_quote_status(quote.id, QuoteStatus.SENT)
    with pytest.raises(ValidationError):
        finance.update_quote(quote.id, notes="Too late")
    with pytest.raises(ValidationError):
        finance.delete_quote(quote.id)
    quote = finance.update_quote_status(quote.id, QuoteStatus.REJECTED)
    assert quote.rejected_at is not None


def test_expired_quote_cannot_be_accepted(finance, client):
    quote = finance.create_quote(client.id, LINES, valid_until=utcnow() - timedelta(days=1))
    finance.update_quote_status(quote.id, QuoteStatus.SENT)
    with pytest.raises(ValidationError):
        finance.update_quote_status(quote.id, QuoteStatus.ACCEPTED)


def test_quote_event_must_belong_to_client(db, finance, make_event):
    from gearhire.models.client import Client

    other = Client(name="Other Co")
    db.add(other)
    db.commit()
    event = make_event()
    with pytest.raises(ValidationError):
        finance.create_quote(other.id, LINES, event_id=event.id)


def test_housekeeping(finance, client, invoice):
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)
    quote = finance.create_quote(client.id, LINES)
    finance.update_quote_status(quote.id, QuoteStatus.SENT)

    later = utcnow() + timedelta(days=60)
    assert finance.mark_overdue_invoices(later) == 1
    assert finance.expire_quotes(later) == 1
    assert finance.get_invoice(invoice.id).status == InvoiceStatus.OVERDUE
    assert finance.get_quote(quote.id).status == QuoteStatus.EXPIRED

    # Overdue invoices still take payments
    finance.create_payment(invoice.id, "26750")
    assert finance.get_invoice(invoice.id).status == InvoiceStatus.PAID


def test_financial_summary(finance, client, invoice):
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)
    finance.create_payment(invoice.id, "6750")
    summary = finance.financial_summary()
    assert summary["total_revenue"] == "6750.00"
    assert summary["outstanding"] == "20000.00"
    assert summary["invoices_by_status"]["PARTIALLY_PAID"] == 1
