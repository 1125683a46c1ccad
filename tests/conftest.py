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

from gearhire.config import Settings, update_settings
from gearhire.database import build_engine, create_tables, make_session_factory
from gearhire.models.client import Client
from gearhire.models.enums import UserRole
from gearhire.models.user import User
from gearhire.services.bookings import BookingEngine
from gearhire.services.equipment import EquipmentRegistry
from gearhire.services.events import EventService


@pytest.fixture(autouse=True)
def settings():
    """Default settings for every test, independent of any config file."""
    settings = Settings()
    update_settings(settings)
    return settings


@pytest.fixture
def engine():
    # StaticPool in-memory database: one connection, so one session at a time
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    client = Client(name="Acme Events", contact_person="Jane Doe", email="jane@acme.test")
    db.add(client)
    db.commit()
    return client


@pytest.fixture
def admin(db):
    user = User(email="admin@gearhire.test", first_name="Ada", last_name="Admin", role=UserRole.ADMIN)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def staff(db):
    user = User(email="sam@gearhire.test", first_name="Sam", last_name="Crew")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def registry(db):
    return EquipmentRegistry(db)


@pytest.fixture
def events(db):
    return EventService(db)


@pytest.fixture
def booking_engine(db):
    return BookingEngine(db)


@pytest.fixture
def category(registry):
    return registry.create_category("Audio", "Speakers, desks and mics")


@pytest.fixture
def speaker(registry, category):
    return registry.create_item("PA Speaker", category.id, quantity=4, serial_number="SPK-001")


@pytest.fixture
def mixer(registry, category):
    return registry.create_item("Mixing Desk", category.id, barcode="MIX-100")


@pytest.fixture
def make_event(events, client):
    """Factory for DRAFT events on the seeded client."""

    def _make(name="Wedding", start=(2025, 6, 1), end=(2025, 6, 3)):
        return events.create_event(client.id, name, datetime(*start), datetime(*end))

    return _make


@pytest.fixture
def confirmed_event(make_event, booking_engine, speaker, mixer):
    """CONFIRMED event holding the speaker (3 units) and the mixer."""
    event = make_event("Festival")
    booking_engine.book_equipment(event.id, speaker.id, quantity=3)
    booking_engine.book_equipment(event.id, mixer.id)
    booking_engine.confirm_bookings(event.id)
    return event
