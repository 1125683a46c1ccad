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

"""Repositories, one per aggregate.

Repositories wrap a session and own the queries and row locks. They never
commit; the calling service decides the transaction boundary.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from gearhire.errors import NotFoundError
from gearhire.models.enums import (
    ACTIVE_TICKET_STATUSES,
    BLOCKING_BOOKING_STATUSES,
    CLOSED_BOOKING_STATUSES,
    BookingStatus,
    EquipmentStatus,
)
from gearhire.models.equipment import EquipmentCategory, EquipmentItem, EquipmentStatusHistory
from gearhire.models.event import Event, EventEquipmentBooking
from gearhire.models.finance import DocumentCounter, Invoice, Payment, Quote
from gearhire.models.maintenance import MaintenanceTicket
from gearhire.models.transactions import (
    CheckInItem,
    CheckInTransaction,
    CheckOutItem,
    CheckOutTransaction,
)
from gearhire.utils.helpers import to_money

logger = logging.getLogger(__name__)


def _locked(query):
    """Row lock that also refreshes any copy already in the identity map."""
    return query.with_for_update().populate_existing()


class EquipmentRepository:
    """Equipment items, categories and their status history."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, equipment_id: int, for_update: bool = False) -> Optional[EquipmentItem]:
        query = self.db.query(EquipmentItem).filter(EquipmentItem.id == equipment_id)
        if for_update:
            query = _locked(query)
        return query.first()

    def require(self, equipment_id: int, for_update: bool = False) -> EquipmentItem:
        item = self.get(equipment_id, for_update=for_update)
        if item is None:
            raise NotFoundError(f"Equipment {equipment_id} not found")
        return item

    def lock_many(self, equipment_ids: Iterable[int]) -> Dict[int, EquipmentItem]:
        """Lock several items in ascending id order.

        A fixed lock order keeps two multi-item operations from deadlocking
        on each other.

        Raises:
            NotFoundError: If any id does not exist.
        """
        ids = sorted(set(equipment_ids))
        items = (
            _locked(
                self.db.query(EquipmentItem)
                .filter(EquipmentItem.id.in_(ids))
                .order_by(EquipmentItem.id)
            ).all()
        )
        found = {item.id: item for item in items}
        for equipment_id in ids:
            if equipment_id not in found:
                raise NotFoundError(f"Equipment {equipment_id} not found")
        return found

    def find_by_serial(self, serial_number: str) -> Optional[EquipmentItem]:
        return self.db.query(EquipmentItem).filter(EquipmentItem.serial_number == serial_number).first()

    def find_by_barcode(self, barcode: str) -> Optional[EquipmentItem]:
        return self.db.query(EquipmentItem).filter(EquipmentItem.barcode == barcode).first()

    def set_status(
        self,
        item: EquipmentItem,
        new_status: EquipmentStatus,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> EquipmentStatusHistory:
        """Write a new status and its history row in the current transaction.

        The caller must hold the row lock on ``item``.
        """
        entry = EquipmentStatusHistory(
            equipment_id=item.id,
            previous_status=item.current_status,
            new_status=new_status,
            reason=reason,
            changed_by=actor_id,
        )
        logger.debug(
            "Equipment %s status %s -> %s (%s)", item.id, item.current_status, new_status, reason
        )
        item.current_status = new_status
        self.db.add(entry)
        return entry

    def history(self, equipment_id: int) -> List[EquipmentStatusHistory]:
        return (
            self.db.query(EquipmentStatusHistory)
            .filter(EquipmentStatusHistory.equipment_id == equipment_id)
            .order_by(EquipmentStatusHistory.id.desc())
            .all()
        )

    def get_category(self, category_id: int) -> Optional[EquipmentCategory]:
        return self.db.query(EquipmentCategory).filter(EquipmentCategory.id == category_id).first()

    def require_category(self, category_id: int) -> EquipmentCategory:
        category = self.get_category(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    def find_category_by_name(self, name: str) -> Optional[EquipmentCategory]:
        return self.db.query(EquipmentCategory).filter(EquipmentCategory.name == name).first()

    def count_items_in_category(self, category_id: int) -> int:
        return (
            self.db.query(func.count(EquipmentItem.id))
            .filter(EquipmentItem.category_id == category_id)
            .scalar()
        )

    def has_custody_records(self, equipment_id: int) -> bool:
        checked_out = (
            self.db.query(CheckOutItem.id).filter(CheckOutItem.equipment_id == equipment_id).first()
        )
        return checked_out is not None


class EventRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: int, for_update: bool = False) -> Optional[Event]:
        query = self.db.query(Event).filter(Event.id == event_id)
        if for_update:
            query = _locked(query)
        return query.first()

    def require(self, event_id: int, for_update: bool = False) -> Event:
        event = self.get(event_id, for_update=for_update)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event


class BookingRepository:
    """Event equipment bookings and the overlap query."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: int) -> Optional[EventEquipmentBooking]:
        return (
            self.db.query(EventEquipmentBooking)
            .filter(EventEquipmentBooking.id == booking_id)
            .first()
        )

    def get_for_pair(self, event_id: int, equipment_id: int) -> Optional[EventEquipmentBooking]:
        return (
            self.db.query(EventEquipmentBooking)
            .filter(
                EventEquipmentBooking.event_id == event_id,
                EventEquipmentBooking.equipment_id == equipment_id,
            )
            .first()
        )

    def list_for_event(
        self, event_id: int, statuses: Optional[Sequence[BookingStatus]] = None
    ) -> List[EventEquipmentBooking]:
        query = self.db.query(EventEquipmentBooking).filter(
            EventEquipmentBooking.event_id == event_id
        )
        if statuses:
            query = query.filter(EventEquipmentBooking.status.in_(statuses))
        return query.order_by(EventEquipmentBooking.equipment_id).all()

    def find_overlapping(
        self,
        equipment_id: int,
        start_date: datetime,
        end_date: datetime,
        exclude_event_id: Optional[int] = None,
    ) -> List[EventEquipmentBooking]:
        """Blocking bookings of the item on events intersecting the range.

        Bounds are inclusive: an event ending exactly when another starts
        counts as overlapping.
        """
        query = (
            self.db.query(EventEquipmentBooking)
            .join(Event, EventEquipmentBooking.event_id == Event.id)
            .options(joinedload(EventEquipmentBooking.event))
            .filter(
                EventEquipmentBooking.equipment_id == equipment_id,
                EventEquipmentBooking.status.in_(BLOCKING_BOOKING_STATUSES),
                Event.start_date <= end_date,
                Event.end_date >= start_date,
            )
        )
        if exclude_event_id is not None:
            query = query.filter(EventEquipmentBooking.event_id != exclude_event_id)
        return query.order_by(Event.start_date).all()

    def count_open_for_event(self, event_id: int) -> int:
        """Bookings of the event not yet returned or cancelled."""
        return (
            self.db.query(func.count(EventEquipmentBooking.id))
            .filter(
                EventEquipmentBooking.event_id == event_id,
                EventEquipmentBooking.status.notin_(CLOSED_BOOKING_STATUSES),
            )
            .scalar()
        )

    def count_active_for_equipment(self, equipment_id: int) -> int:
        return (
            self.db.query(func.count(EventEquipmentBooking.id))
            .filter(
                EventEquipmentBooking.equipment_id == equipment_id,
                EventEquipmentBooking.status.in_(
                    (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_OUT)
                ),
            )
            .scalar()
        )

    def checked_out_for_equipment(self, equipment_id: int) -> Optional[EventEquipmentBooking]:
        """The booking currently holding the item out, if any."""
        return (
            self.db.query(EventEquipmentBooking)
            .options(joinedload(EventEquipmentBooking.event))
            .filter(
                EventEquipmentBooking.equipment_id == equipment_id,
                EventEquipmentBooking.status == BookingStatus.CHECKED_OUT,
            )
            .first()
        )

    def list_checked_out(self, ended_before: Optional[datetime] = None) -> List[EventEquipmentBooking]:
        query = (
            self.db.query(EventEquipmentBooking)
            .join(Event, EventEquipmentBooking.event_id == Event.id)
            .options(
                joinedload(EventEquipmentBooking.event),
                joinedload(EventEquipmentBooking.equipment),
            )
            .filter(EventEquipmentBooking.status == BookingStatus.CHECKED_OUT)
        )
        if ended_before is not None:
            query = query.filter(Event.end_date < ended_before)
        return query.order_by(Event.end_date, EventEquipmentBooking.id).all()


class TransactionRepository:
    """Read side of the custody ledger."""

    def __init__(self, db: Session):
        self.db = db

    def checked_out_equipment_ids(self, event_id: int) -> set:
        rows = (
            self.db.query(CheckOutItem.equipment_id)
            .join(CheckOutTransaction, CheckOutItem.transaction_id == CheckOutTransaction.id)
            .filter(CheckOutTransaction.event_id == event_id)
            .distinct()
            .all()
        )
        return {row[0] for row in rows}

    def check_outs_for_event(self, event_id: int) -> List[CheckOutTransaction]:
        return (
            self.db.query(CheckOutTransaction)
            .filter(CheckOutTransaction.event_id == event_id)
            .order_by(CheckOutTransaction.checked_out_at.desc(), CheckOutTransaction.id.desc())
            .all()
        )

    def check_ins_for_event(self, event_id: int) -> List[CheckInTransaction]:
        return (
            self.db.query(CheckInTransaction)
            .filter(CheckInTransaction.event_id == event_id)
            .order_by(CheckInTransaction.checked_in_at.desc(), CheckInTransaction.id.desc())
            .all()
        )

    def check_out_items_for_equipment(self, equipment_id: int, skip: int = 0, take: int = 20):
        return (
            self.db.query(CheckOutItem)
            .join(CheckOutTransaction, CheckOutItem.transaction_id == CheckOutTransaction.id)
            .filter(CheckOutItem.equipment_id == equipment_id)
            .order_by(CheckOutTransaction.checked_out_at.desc(), CheckOutItem.id.desc())
            .offset(skip)
            .limit(take)
            .all()
        )

    def check_in_items_for_equipment(self, equipment_id: int, skip: int = 0, take: int = 20):
        return (
            self.db.query(CheckInItem)
            .join(CheckInTransaction, CheckInItem.transaction_id == CheckInTransaction.id)
            .filter(CheckInItem.equipment_id == equipment_id)
            .order_by(CheckInTransaction.checked_in_at.desc(), CheckInItem.id.desc())
            .offset(skip)
            .limit(take)
            .all()
        )


class MaintenanceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, ticket_id: int, for_update: bool = False) -> Optional[MaintenanceTicket]:
        query = self.db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket_id)
        if for_update:
            query = _locked(query)
        return query.first()

    def require(self, ticket_id: int, for_update: bool = False) -> MaintenanceTicket:
        ticket = self.get(ticket_id, for_update=for_update)
        if ticket is None:
            raise NotFoundError(f"Maintenance ticket {ticket_id} not found")
        return ticket

    def active_for_equipment(self, equipment_id: int) -> Optional[MaintenanceTicket]:
        return (
            self.db.query(MaintenanceTicket)
            .filter(
                MaintenanceTicket.equipment_id == equipment_id,
                MaintenanceTicket.status.in_(ACTIVE_TICKET_STATUSES),
            )
            .order_by(MaintenanceTicket.id)
            .first()
        )


class QuoteRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, quote_id: int, for_update: bool = False) -> Optional[Quote]:
        query = self.db.query(Quote).filter(Quote.id == quote_id)
        if for_update:
            query = _locked(query)
        return query.first()

    def require(self, quote_id: int, for_update: bool = False) -> Quote:
        quote = self.get(quote_id, for_update=for_update)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote


class InvoiceRepository:
    """Invoices, payments and document numbering."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, invoice_id: int, for_update: bool = False) -> Optional[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if for_update:
            query = _locked(query)
        return query.first()

    def require(self, invoice_id: int, for_update: bool = False) -> Invoice:
        invoice = self.get(invoice_id, for_update=for_update)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def sum_payments(self, invoice_id: int) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Payment.amount), 0))
            .filter(Payment.invoice_id == invoice_id)
            .scalar()
        )
        return to_money(total)

    def find_by_quote(self, quote_id: int) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(Invoice.quote_id == quote_id).first()

    def _locked_counter(self, scope: str) -> Optional[DocumentCounter]:
        return _locked(
            self.db.query(DocumentCounter).filter(DocumentCounter.scope == scope)
        ).first()

    def next_number(self, prefix: str, when: datetime) -> str:
        """Allocate the next ``PREFIX-YYYYMM-NNNN`` number.

        The counter row is locked and incremented inside the caller's
        transaction. Two transactions creating the first number of a month
        race on the insert; the loser hits the unique constraint inside a
        savepoint and continues with the winner's row.
        """
        scope = f"{prefix}-{when:%Y%m}"
        counter = self._locked_counter(scope)
        if counter is None:
            try:
                with self.db.begin_nested():
                    counter = DocumentCounter(scope=scope, last_value=0)
                    self.db.add(counter)
            except IntegrityError:
                logger.info("Counter %s created concurrently, retrying", scope)
                counter = self._locked_counter(scope)
        counter.last_value += 1
        self.db.flush()
        return f"{scope}-{counter.last_value:04d}"
