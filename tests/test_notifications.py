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

import pytest

from gearhire.errors import NotFoundError
from gearhire.models.enums import (
    EventStatus,
    InvoiceStatus,
    NotificationPriority,
    NotificationType,
    QuoteStatus,
)
from gearhire.models.notification import Notification
from gearhire.services.finance import FinanceService
from gearhire.services.notifications import NotificationService
from gearhire.utils.helpers import utcnow

LINES = [{"description": "Lighting rig", "quantity": 1, "unit_price": "2000.00"}]
NOW = datetime(2025, 5, 1, 9, 0)


@pytest.fixture
def notifications(db):
    return NotificationService(db)


def _notices(db, user, notification_type=None):
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if notification_type is not None:
        query = query.filter(Notification.type == notification_type)
    return query.all()


def test_upcoming_event_reminders(db, notifications, events, client, admin, staff):
    week_out = events.create_event(
        client.id, "Gala", datetime(2025, 5, 8, 18, 0), datetime(2025, 5, 9)
    )
    soon = events.create_event(
        client.id, "Launch", datetime(2025, 5, 3, 10, 0), datetime(2025, 5, 3, 22, 0)
    )
    cancelled = events.create_event(
        client.id, "Called off", datetime(2025, 5, 8, 9, 0), datetime(2025, 5, 9)
    )
    events.update_event_status(cancelled.id, EventStatus.CANCELLED)

    assert notifications.check_upcoming_events(NOW) == 2
    # Already reminded for these intervals
    assert notifications.check_upcoming_events(NOW) == 0

    week_notice = _notices(db, admin, NotificationType.EVENT_UPCOMING_7D)
    assert [n.entity_id for n in week_notice] == [week_out.id]
    assert week_notice[0].priority == NotificationPriority.NORMAL
    assert week_notice[0].title == "Event in 7 days"
    assert '"Gala" for Acme Events' in week_notice[0].message

    soon_notice = _notices(db, admin, NotificationType.EVENT_UPCOMING_2D)
    assert [n.entity_id for n in soon_notice] == [soon.id]
    assert soon_notice[0].priority == NotificationPriority.HIGH

    # Only admins are notified
    assert _notices(db, staff) == []


def test_quote_decisions_notify_admins(db, client, admin):
    finance = FinanceService(db)
    accepted = finance.create_quote(client.id, LINES, tax_rate=0)
    finance.update_quote_status(accepted.id, QuoteStatus.SENT)
    finance.update_quote_status(accepted.id, QuoteStatus.ACCEPTED)

    rejected = finance.create_quote(client.id, LINES, tax_rate=0)
    finance.update_quote_status(rejected.id, QuoteStatus.SENT)
    finance.update_quote_status(rejected.id, QuoteStatus.REJECTED)

    [accept_notice] = _notices(db, admin, NotificationType.QUOTE_ACCEPTED)
    assert accept_notice.entity_type == "Quote"
    assert accept_notice.entity_id == accepted.id
    assert accept_notice.priority == NotificationPriority.HIGH
    assert "R2000.00" in accept_notice.message

    [reject_notice] = _notices(db, admin, NotificationType.QUOTE_REJECTED)
    assert reject_notice.entity_id == rejected.id


def test_full_payment_notifies_admins(db, client, admin):
    finance = FinanceService(db)
    invoice = finance.create_invoice(client.id, LINES, tax_rate=0)
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)

    finance.create_payment(invoice.id, "500.00")
    assert _notices(db, admin, NotificationType.INVOICE_PAID) == []

    finance.create_payment(invoice.id, "1500.00")
    [notice] = _notices(db, admin, NotificationType.INVOICE_PAID)
    assert notice.entity_id == invoice.id
    assert invoice.invoice_number in notice.message


def test_overdue_invoice_notified_once(db, client, admin):
    finance = FinanceService(db)
    invoice = finance.create_invoice(
        client.id, LINES, tax_rate=0, due_date=utcnow() - timedelta(days=1)
    )
    finance.update_invoice_status(invoice.id, InvoiceStatus.SENT)
    assert finance.mark_overdue_invoices() == 1

    # Paid in part, payment removed, flagged overdue again
    payment = finance.create_payment(invoice.id, "100.00")
    finance.delete_payment(payment.id)
    assert finance.mark_overdue_invoices() == 1

    [notice] = _notices(db, admin, NotificationType.INVOICE_OVERDUE)
    assert notice.priority == NotificationPriority.HIGH
    assert "Balance due: R2000.00" in notice.message


def test_inbox_read_and_dismiss(db, notifications, admin, staff):
    for n in range(3):
        notifications.notify_admins(NotificationType.INVOICE_PAID, f"Paid {n}", "Paid in full")
    db.commit()

    page = notifications.list_for_user(admin.id)
    assert page["total"] == 3
    assert page["unread_count"] == 3
    newest = page["notifications"][0]

    read = notifications.mark_read(newest.id, admin.id)
    assert read.is_read is True
    assert read.read_at is not None
    assert notifications.list_for_user(admin.id, is_read=False)["total"] == 2

    notifications.dismiss(newest.id, admin.id)
    page = notifications.list_for_user(admin.id)
    assert page["total"] == 2
    assert newest.id not in [n.id for n in page["notifications"]]

    assert notifications.mark_all_read(admin.id) == 2
    assert notifications.list_for_user(admin.id)["unread_count"] == 0

    # Another user's notification is not visible to them
    with pytest.raises(NotFoundError):
        notifications.mark_read(newest.id, staff.id)
