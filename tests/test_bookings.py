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

import threading
from datetime import datetime

import pytest

from gearhire.database import build_engine, create_tables, make_session_factory
from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.client import Client
from gearhire.models.enums import BookingStatus, EquipmentStatus, EventStatus
from gearhire.models.event import EventEquipmentBooking
from gearhire.services.bookings import BookingEngine
from gearhire.services.equipment import EquipmentRegistry
from gearhire.services.events import EventService


def test_booking_starts_pending(booking_engine, make_event, speaker):
    event = make_event()
    booking = booking_engine.book_equipment(event.id, speaker.id, quantity=2, notes="Main stage")
    assert booking.status == BookingStatus.PENDING
    assert booking.quantity == 2
    assert booking.notes == "Main stage"


def test_booking_same_item_twice_for_event_conflicts(booking_engine, make_event, speaker):
    event = make_event()
    booking_engine.book_equipment(event.id, speaker.id)
    with pytest.raises(ConflictError):
        booking_engine.book_equipment(event.id, speaker.id)


def test_quantity_bounded_by_pool(booking_engine, make_event, speaker):
    event = make_event()
    with pytest.raises(ValidationError):
        booking_engine.book_equipment(event.id, speaker.id, quantity=5)
    with pytest.raises(ValidationError):
        booking_engine.book_equipment(event.id, speaker.id, quantity=0)


def test_unbookable_equipment_refused(registry, booking_engine, make_event, speaker):
    registry.set_status(speaker.id, EquipmentStatus.UNDER_REPAIR)
    with pytest.raises(ValidationError) as exc:
        booking_engine.book_equipment(make_event().id, speaker.id)
    assert "UNDER_REPAIR" in exc.value.message


def test_unknown_event_or_equipment(booking_engine, make_event, speaker):
    with pytest.raises(NotFoundError):
        booking_engine.book_equipment(999, speaker.id)
    with pytest.raises(NotFoundError):
        booking_engine.book_equipment(make_event().id, 999)


def test_overlap_with_confirmed_event_names_it(booking_engine, make_event, speaker):
    first = make_event("Event E", (2025, 6, 1), (2025, 6, 3))
    second = make_event("Event F", (2025, 6, 2), (2025, 6, 4))
    booking_engine.book_equipment(first.id, speaker.id)
    booking_engine.confirm_bookings(first.id)

    with pytest.raises(ConflictError) as exc:
        booking_engine.book_equipment(second.id, speaker.id)
    assert "Event E" in exc.value.message
    assert "2025-06-01 to 2025-06-03" in exc.value.message


def test_touching_events_overlap(booking_engine, make_event, speaker):
    first = make_event("Morning", (2025, 6, 1), (2025, 6, 2))
    second = make_event("Evening", (2025, 6, 2), (2025, 6, 3))
    booking_engine.book_equipment(first.id, speaker.id)
    booking_engine.confirm_bookings(first.id)
    with pytest.raises(ConflictError):
        booking_engine.book_equipment(second.id, speaker.id)


def test_disjoint_events_share_equipment(booking_engine, make_event, speaker):
    first = make_event("June", (2025, 6, 1), (2025, 6, 3))
    second = make_event("July", (2025, 7, 1), (2025, 7, 3))
    booking_engine.book_equipment(first.id, speaker.id)
    booking_engine.confirm_bookings(first.id)
    booking_engine.book_equipment(second.id, speaker.id)
    result = booking_engine.confirm_bookings(second.id)
    assert result["confirmed"] == 1


def test_second_confirmation_loses_the_race(db, booking_engine, make_event, speaker):
    first = make_event("Event E", (2025, 6, 1), (2025, 6, 3))
    second = make_event("Event F", (2025, 6, 2), (2025, 6, 4))
    # Both pending: pending bookings do not block each other
    booking_engine.book_equipment(first.id, speaker.id)
    booking_engine.book_equipment(second.id, speaker.id)

    booking_engine.confirm_bookings(first.id)
    with pytest.raises(ConflictError) as exc:
        booking_engine.confirm_bookings(second.id)
    assert "Event E" in exc.value.message

    # Nothing from the failed confirmation was kept
    pending = (
        db.query(EventEquipmentBooking).filter(EventEquipmentBooking.event_id == second.id).one()
    )
    assert pending.status == BookingStatus.PENDING
    db.refresh(second)
    assert second.status == EventStatus.DRAFT



def test_concurrent_confirmations_admit_one_event(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables(engine)
    SessionLocal = make_session_factory(engine)

    setup = SessionLocal()
    try:
        client = Client(name="Acme Events")
        setup.add(client)
        setup.commit()
        registry = EquipmentRegistry(setup)
        category = registry.create_category("Audio")
        item = registry.create_item("PA Speaker", category.id)
        events = EventService(setup)
        first = events.create_event(client.id, "Event E", datetime(2025, 6, 1), datetime(2025, 6, 3))
        second = events.create_event(client.id, "Event F", datetime(2025, 6, 2), datetime(2025, 6, 4))
        BookingEngine(setup).book_equipment(first.id, item.id)
        BookingEngine(setup).book_equipment(second.id, item.id)
        event_ids = (first.id, second.id)
        item_id = item.id
    finally:
        setup.close()

    barrier = threading.Barrier(len(event_ids), timeout=10)
    outcomes = {}

    def confirm(event_id):
        session = SessionLocal()
        try:
            barrier.wait()
            BookingEngine(session).confirm_bookings(event_id)
            outcomes[event_id] = "confirmed"
        except ConflictError:
            outcomes[event_id] = "conflict"
        finally:
            session.close()

    threads = [threading.Thread(target=confirm, args=(event_id,)) for event_id in event_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes.values()) == ["confirmed", "conflict"]

    check = SessionLocal()
    try:
        confirmed = (
            check.query(EventEquipmentBooking)
            .filter(
                EventEquipmentBooking.equipment_id == item_id,
                EventEquipmentBooking.status == BookingStatus.CONFIRMED,
            )
            .count()
        )
        assert confirmed == 1
    finally:
        check.close()
        engine.dispose()

def test_confirm_bookings_is_idempotent(booking_engine, events, make_event, speaker, mixer):
    event = make_event()
    booking_engine.book_equipment(event.id, speaker.id)
    booking_engine.book_equipment(event.id, mixer.id)

    first = booking_engine.confirm_bookings(event.id)
    assert first["confirmed"] == 2
    assert first["event_status"] == "CONFIRMED"

    second = booking_engine.confirm_bookings(event.id)
    assert second["confirmed"] == 0
    assert second["event_status"] == "CONFIRMED"
    assert all(b.status == BookingStatus.CONFIRMED for b in booking_engine.list_event_bookings(event.id))


def test_bulk_booking_collects_errors(registry, booking_engine, make_event, speaker, mixer):
    registry.set_status(mixer.id, EquipmentStatus.LOST)
    event = make_event()
    result = booking_engine.book_multiple_equipment(
        event.id,
        [
            {"equipment_id": speaker.id, "quantity": 2},
            {"equipment_id": mixer.id},
            {"equipment_id": 999},
        ],
    )
    assert [b.equipment_id for b in result["success"]] == [speaker.id]
    errors = {e["equipment_id"]: e for e in result["errors"]}
    assert errors[mixer.id]["kind"] == "validation"
    assert errors[999]["kind"] == "not_found"


def test_bulk_booking_limit(settings, booking_engine, make_event):
    settings.booking.max_items_per_request = 2
    items = [{"equipment_id": i} for i in range(1, 4)]
    with pytest.raises(ValidationError):
        booking_engine.book_multiple_equipment(make_event().id, items)


def test_remove_and_cancel_booking(booking_engine, make_event, speaker, mixer):
    event = make_event()
    removable = booking_engine.book_equipment(event.id, speaker.id)
    cancellable = booking_engine.book_equipment(event.id, mixer.id)

    booking_engine.remove_booking(event.id, removable.id)
    cancelled = booking_engine.cancel_booking(event.id, cancellable.id)
    assert cancelled.status == BookingStatus.CANCELLED
    assert [b.id for b in booking_engine.list_event_bookings(event.id)] == [cancellable.id]

    with pytest.raises(ValidationError):
        booking_engine.remove_booking(event.id, cancellable.id)
    with pytest.raises(NotFoundError):
        booking_engine.remove_booking(event.id, removable.id)


def test_closed_event_cannot_book(events, booking_engine, make_event, speaker):
    event = make_event()
    events.update_event_status(event.id, EventStatus.CANCELLED)
    with pytest.raises(ValidationError):
        booking_engine.book_equipment(event.id, speaker.id)
