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

from datetime import datetime

import pytest

from gearhire.errors import ConflictError, NotFoundError, ValidationError
from gearhire.models.enums import BookingStatus, EventStatus, QuoteStatus
from gearhire.services.finance import FinanceService
from gearhire.services.transactions import TransactionProcessor


def test_create_event_validation(events, client):
    with pytest.raises(ValidationError):
        events.create_event(client.id, "Backwards", datetime(2025, 6, 3), datetime(2025, 6, 1))
    with pytest.raises(ValidationError):
        events.create_event(client.id, "  ", datetime(2025, 6, 1), datetime(2025, 6, 3))
    with pytest.raises(NotFoundError):
        events.create_event(999, "Nobody", datetime(2025, 6, 1), datetime(2025, 6, 3))


def test_inactive_client_refused(db, events, client):
    client.is_active = False
    db.commit()
    with pytest.raises(ValidationError):
        events.create_event(client.id, "Gala", datetime(2025, 6, 1), datetime(2025, 6, 3))


def test_create_event_with_details(events, client):
    event = events.create_event(
        client.id,
        "Gala",
        datetime(2025, 6, 1, 18),
        datetime(2025, 6, 1, 23),
        venue="City Hall",
        notes="<b>Black tie</b>",
    )
    assert event.status == EventStatus.DRAFT
    assert event.venue == "City Hall"
    assert event.notes == "Black tie"


def test_status_transitions(events, make_event):
    event = make_event()
    with pytest.raises(ValidationError):
        events.update_event_status(event.id, EventStatus.COMPLETED)
    events.update_event_status(event.id, EventStatus.QUOTED)
    events.update_event_status(event.id, EventStatus.CONFIRMED)
    with pytest.raises(ValidationError):
        events.update_event_status(event.id, EventStatus.DRAFT)


def test_cancel_releases_bookings(events, booking_engine, make_event, speaker):
    event = make_event("Event E", (2025, 6, 1), (2025, 6, 3))
    booking_engine.book_equipment(event.id, speaker.id)
    booking_engine.confirm_bookings(event.id)

    events.update_event_status(event.id, EventStatus.CANCELLED)
    assert booking_engine.list_event_bookings(event.id)[0].status == BookingStatus.CANCELLED

    # The speaker is free again for the same dates
    other = make_event("Event F", (2025, 6, 2), (2025, 6, 4))
    booking_engine.book_equipment(other.id, speaker.id)
    assert booking_engine.confirm_bookings(other.id)["confirmed"] == 1


def test_cannot_close_event_with_gear_out(db, events, confirmed_event, speaker):
    TransactionProcessor(db).create_check_out(confirmed_event.id, [{"equipment_id": speaker.id}])
    for status in (EventStatus.COMPLETED, EventStatus.CANCELLED):
        with pytest.raises(ValidationError) as exc:
            events.update_event_status(confirmed_event.id, status)
        assert "still checked out" in exc.value.message


def test_moving_dates_rechecks_overlaps(events, booking_engine, make_event, speaker):
    june = make_event("June", (2025, 6, 1), (2025, 6, 3))
    july = make_event("July", (2025, 7, 1), (2025, 7, 3))
    for event in (june, july):
        booking_engine.book_equipment(event.id, speaker.id)
        booking_engine.confirm_bookings(event.id)

    with pytest.raises(ConflictError) as exc:
        events.update_event(july.id, start_date=datetime(2025, 6, 2))
    assert "June" in exc.value.message
    assert events.get_event(july.id).start_date == datetime(2025, 7, 1)

    moved = events.update_event(july.id, start_date=datetime(2025, 6, 20), venue="Park")
    assert moved.venue == "Park"


def test_update_rejects_unknown_fields(events, make_event):
    with pytest.raises(ValidationError):
        events.update_event(make_event().id, status=EventStatus.COMPLETED)


def test_list_events_window(events, make_event):
    make_event("June", (2025, 6, 1), (2025, 6, 3))
    make_event("August", (2025, 8, 1), (2025, 8, 3))
    found, total = events.list_events(start_date=datetime(2025, 7, 15), end_date=datetime(2025, 9, 1))
    assert total == 1
    assert found[0].name == "August"


def test_assign_staff(events, make_event, staff):
    event = make_event()
    assignment = events.assign_staff(event.id, staff.id, role="Sound tech")
    assert assignment.role == "Sound tech"
    assert [a.user_id for a in events.list_staff(event.id)] == [staff.id]

    with pytest.raises(ConflictError):
        events.assign_staff(event.id, staff.id)

    events.remove_staff_assignment(event.id, assignment.id)
    assert events.list_staff(event.id) == []
    with pytest.raises(NotFoundError):
        events.remove_staff_assignment(event.id, assignment.id)


def test_staff_double_booking_refused(events, make_event, staff):
    first = make_event("Day one", (2025, 6, 1), (2025, 6, 3))
    second = make_event("Day two", (2025, 6, 2), (2025, 6, 4))
    events.assign_staff(first.id, staff.id)
    events.update_event_status(first.id, EventStatus.CONFIRMED)

    with pytest.raises(ConflictError) as exc:
        events.assign_staff(second.id, staff.id)
    assert "Day one" in exc.value.message


def test_inactive_staff_refused(db, events, make_event, staff):
    staff.is_active = False
    db.commit()
    with pytest.raises(ValidationError):
        events.assign_staff(make_event().id, staff.id)


def test_create_from_accepted_quote(db, events, client, speaker):
    finance = FinanceService(db)
    quote = finance.create_quote(
        client.id, [{"description": "PA package", "quantity": 1, "unit_price": "4500"}]
    )
    with pytest.raises(ValidationError):
        events.create_from_quote(quote.id, datetime(2025, 6, 1), datetime(2025, 6, 3))

    finance.update_quote_status(quote.id, QuoteStatus.SENT)
    finance.update_quote_status(quote.id, QuoteStatus.ACCEPTED)
    event, errors = events.create_from_quote(
        quote.id,
        datetime(2025, 6, 1),
        datetime(2025, 6, 3),
        equipment_ids=[speaker.id, 999],
        venue="Town Hall",
    )

    assert event.status == EventStatus.CONFIRMED
    assert event.name == "Event for Acme Events"
    assert event.venue == "Town Hall"
    assert finance.get_quote(quote.id).event_id == event.id
    assert [b.status for b in event.bookings] == [BookingStatus.CONFIRMED]
    assert errors[0]["equipment_id"] == 999
    assert errors[0]["kind"] == "not_found"

    with pytest.raises(ValidationError):
        events.create_from_quote(quote.id, datetime(2025, 6, 3), datetime(2025, 6, 1))
    with pytest.raises(NotFoundError):
        events.create_from_quote(999, datetime(2025, 6, 1), datetime(2025, 6, 3))


def test_available_staff(events, make_event, admin, staff):
    event = make_event("Concert", (2025, 6, 1), (2025, 6, 3))
    events.assign_staff(event.id, staff.id)
    window = (datetime(2025, 6, 2), datetime(2025, 6, 5))

    # Draft events do not tie staff up yet
    assert [u.id for u in events.get_available_staff(*window)] == [admin.id, staff.id]

    events.update_event_status(event.id, EventStatus.CONFIRMED)
    assert [u.id for u in events.get_available_staff(*window)] == [admin.id]
    assert len(events.get_available_staff(*window, exclude_event_id=event.id)) == 2
    assert len(events.get_available_staff(datetime(2025, 6, 10), datetime(2025, 6, 12))) == 2

    with pytest.raises(ValidationError):
        events.get_available_staff(datetime(2025, 6, 5), datetime(2025, 6, 2))


def test_calendar(events, make_event):
    june = make_event("June", (2025, 6, 1), (2025, 6, 3))
    make_event("Late June", (2025, 6, 20), (2025, 6, 22))
    make_event("August", (2025, 8, 1), (2025, 8, 3))
    events.update_event_status(june.id, EventStatus.CONFIRMED)

    found = events.get_calendar(datetime(2025, 6, 3), datetime(2025, 6, 30))
    assert [e.name for e in found] == ["June", "Late June"]

    confirmed = events.get_calendar(
        datetime(2025, 6, 1), datetime(2025, 6, 30), status=EventStatus.CONFIRMED
    )
    assert [e.name for e in confirmed] == ["June"]


def test_statistics(events, make_event):
    make_event("Early June", (2025, 6, 1), (2025, 6, 3))
    later = make_event("Late June", (2025, 6, 20), (2025, 6, 22))
    called_off = make_event("July", (2025, 7, 1), (2025, 7, 2))
    events.update_event_status(later.id, EventStatus.CONFIRMED)
    events.update_event_status(called_off.id, EventStatus.CANCELLED)

    stats = events.get_statistics(now=datetime(2025, 6, 15))
    assert stats["total_events"] == 3
    assert stats["by_status"]["DRAFT"] == 1
    assert stats["by_status"]["CONFIRMED"] == 1
    assert stats["by_status"]["CANCELLED"] == 1
    assert stats["this_month"] == 2
    assert stats["upcoming"] == 1
    assert [e.name for e in stats["upcoming_events"]] == ["Late June"]
