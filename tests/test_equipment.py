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
from gearhire.models.enums import EquipmentStatus


def test_new_item_starts_available_with_history(registry, speaker):
    assert speaker.current_status == EquipmentStatus.AVAILABLE
    history = registry.get_history(speaker.id)
    assert len(history) == 1
    assert history[0].previous_status is None
    assert history[0].new_status == EquipmentStatus.AVAILABLE
    assert history[0].reason == "Item created"


def test_duplicate_serial_and_barcode_rejected(registry, category, speaker, mixer):
    with pytest.raises(ConflictError) as exc:
        registry.create_item("Another Speaker", category.id, serial_number="SPK-001")
    assert "SPK-001" in exc.value.message

    with pytest.raises(ConflictError):
        registry.create_item("Another Desk", category.id, barcode="MIX-100")

    # Blank identifiers are stored as NULL and never collide
    first = registry.create_item("Cable A", category.id, serial_number="  ")
    second = registry.create_item("Cable B", category.id, serial_number="")
    assert first.serial_number is None and second.serial_number is None


def test_create_item_validation(registry, category):
    with pytest.raises(ValidationError):
        registry.create_item("", category.id)
    with pytest.raises(ValidationError):
        registry.create_item("Truss", category.id, quantity=0)
    with pytest.raises(ValidationError):
        registry.create_item("Truss", 999)


def test_set_status_records_history(registry, speaker):
    registry.set_status(speaker.id, EquipmentStatus.DAMAGED, reason="Cone torn", actor_id=7)
    item = registry.get_item(speaker.id)
    assert item.current_status == EquipmentStatus.DAMAGED
    assert not item.is_bookable

    latest = registry.get_history(speaker.id)[0]
    assert latest.previous_status == EquipmentStatus.AVAILABLE
    assert latest.new_status == item.current_status
    assert latest.reason == "Cone torn"
    assert latest.changed_by == 7


def test_in_use_is_reserved_for_check_out(registry, speaker):
    with pytest.raises(ValidationError) as exc:
        registry.set_status(speaker.id, EquipmentStatus.IN_USE)
    assert "check-out" in exc.value.message
    assert registry.get_item(speaker.id).current_status == EquipmentStatus.AVAILABLE


def test_update_item_rejects_unknown_fields(registry, speaker):
    with pytest.raises(ValidationError):
        registry.update_item(speaker.id, current_status=EquipmentStatus.RETIRED)

    item = registry.update_item(speaker.id, name="PA Speaker 15in", quantity=6)
    assert item.name == "PA Speaker 15in"
    assert item.quantity == 6


def test_delete_category_with_items_refused(registry, category, speaker):
    with pytest.raises(ValidationError) as exc:
        registry.delete_category(category.id)
    assert exc.value.message == "Cannot delete category Audio with 1 items"

    registry.delete_item(speaker.id)
    registry.delete_category(category.id)
    assert registry.list_categories() == []


def test_delete_item_with_active_booking_refused(registry, booking_engine, make_event, speaker):
    event = make_event()
    booking_engine.book_equipment(event.id, speaker.id)
    with pytest.raises(ValidationError):
        registry.delete_item(speaker.id)


def test_find_by_barcode(registry, mixer):
    assert registry.find_by_barcode("MIX-100").id == mixer.id
    with pytest.raises(NotFoundError):
        registry.find_by_barcode("NOPE")


def test_list_items_filters(registry, speaker, mixer):
    items, total = registry.list_items(search="desk")
    assert total == 1 and items[0].id == mixer.id

    registry.set_status(speaker.id, EquipmentStatus.RETIRED)
    items, total = registry.list_items(status=EquipmentStatus.RETIRED)
    assert [i.id for i in items] == [speaker.id]


def test_check_availability(registry, booking_engine, make_event, speaker, mixer):
    event = make_event("Gala", (2025, 7, 10), (2025, 7, 12))
    booking_engine.book_equipment(event.id, speaker.id)
    booking_engine.confirm_bookings(event.id)

    report = registry.check_availability(
        [speaker.id, mixer.id, 999], datetime(2025, 7, 11), datetime(2025, 7, 13)
    )
    by_id = {entry["equipment_id"]: entry for entry in report}
    assert by_id[speaker.id]["is_available"] is False
    assert by_id[speaker.id]["conflicts"][0]["event_name"] == "Gala"
    assert by_id[mixer.id]["is_available"] is True
    assert by_id[999]["reason"] == "Not found"


def test_statistics(registry, speaker, mixer):
    registry.set_status(mixer.id, EquipmentStatus.UNDER_REPAIR)
    stats = registry.statistics()
    assert stats["total_items"] == 2
    assert stats["total_units"] == 5
    assert stats["by_status"]["AVAILABLE"] == 1
    assert stats["by_status"]["UNDER_REPAIR"] == 1
    assert stats["by_category"][0]["count"] == 2


def test_available_items(registry, booking_engine, make_event, category, speaker, mixer):
    gala = make_event("Gala", (2025, 7, 10), (2025, 7, 12))
    booking_engine.book_equipment(gala.id, speaker.id)
    booking_engine.confirm_bookings(gala.id)
    # Pending bookings do not hold equipment
    launch = make_event("Launch", (2025, 7, 11), (2025, 7, 11, 23))
    booking_engine.book_equipment(launch.id, mixer.id)

    start, end = datetime(2025, 7, 11), datetime(2025, 7, 13)
    assert [i.id for i in registry.get_available_items(start, end)] == [mixer.id]
    assert [i.name for i in registry.get_available_items(start, end, exclude_event_id=gala.id)] == [
        "Mixing Desk",
        "PA Speaker",
    ]
    assert len(registry.get_available_items(datetime(2025, 7, 13), datetime(2025, 7, 14))) == 2

    registry.set_status(mixer.id, EquipmentStatus.UNDER_REPAIR)
    assert registry.get_available_items(start, end) == []

    lighting = registry.create_category("Lighting")
    august = (datetime(2025, 8, 1), datetime(2025, 8, 2))
    assert registry.get_available_items(*august, category_id=lighting.id) == []
    assert len(registry.get_available_items(*august, category_id=category.id)) == 1

    with pytest.raises(ValidationError):
        registry.get_available_items(end, start)
