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

import pytest

from gearhire.errors import NotFoundError, ValidationError
from gearhire.models.enums import EquipmentStatus, MaintenancePriority, MaintenanceStatus
from gearhire.models.maintenance import MaintenanceTicket
from gearhire.services.maintenance import MaintenanceService
from gearhire.services.transactions import TransactionProcessor


@pytest.fixture
def maintenance(db):
    return MaintenanceService(db)


def test_ticket_takes_item_out_of_service(db, registry, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Crackling output", priority="HIGH")
    assert ticket.status == MaintenanceStatus.OPEN
    assert ticket.priority == MaintenancePriority.HIGH

    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.UNDER_REPAIR
    assert registry.get_history(speaker.id)[0].reason == "Maintenance ticket created: Crackling output"


def test_damaged_item_keeps_damaged_status(db, registry, maintenance, speaker):
    registry.set_status(speaker.id, EquipmentStatus.DAMAGED)
    maintenance.create_ticket(speaker.id, "Inspect")
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.DAMAGED


def test_ticket_on_checked_out_item_refused(db, maintenance, confirmed_event, speaker):
    TransactionProcessor(db).create_check_out(confirmed_event.id, [{"equipment_id": speaker.id}])
    with pytest.raises(ValidationError):
        maintenance.create_ticket(speaker.id, "Rattle")


def test_status_flow_and_completion(db, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Replace cone")

    ticket = maintenance.update_status(ticket.id, MaintenanceStatus.IN_PROGRESS)
    started = ticket.started_at
    assert started is not None

    maintenance.update_status(ticket.id, MaintenanceStatus.WAITING_PARTS)
    ticket = maintenance.update_status(ticket.id, MaintenanceStatus.IN_PROGRESS)
    assert ticket.started_at == started

    ticket = maintenance.complete(ticket.id, repair_notes="New cone fitted", diagnosis="Torn cone")
    assert ticket.status == MaintenanceStatus.COMPLETED
    assert ticket.completed_at is not None
    assert ticket.return_to_service_at is not None
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.AVAILABLE


def test_complete_without_returning_to_service(db, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Needs recone")
    maintenance.complete(ticket.id, set_available=False)
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.UNDER_REPAIR


def test_complete_via_update_status(db, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Loose jack")
    ticket = maintenance.update_status(ticket.id, MaintenanceStatus.COMPLETED, notes="Resoldered")
    assert ticket.repair_notes == "Resoldered"
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.AVAILABLE


def test_cancel_leaves_equipment_status(db, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "False alarm")
    ticket = maintenance.cancel(ticket.id, reason="Works fine")
    assert ticket.status == MaintenanceStatus.CANCELLED
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.UNDER_REPAIR


def test_terminal_tickets_cannot_change(maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Replace grille")
    maintenance.complete(ticket.id)
    with pytest.raises(ValidationError):
        maintenance.cancel(ticket.id)
    with pytest.raises(ValidationError):
        maintenance.update_status(ticket.id, MaintenanceStatus.IN_PROGRESS)
    with pytest.raises(ValidationError):
        maintenance.update_ticket(ticket.id, title="Too late")


def test_invalid_transition(maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Hum")
    maintenance.update_status(ticket.id, MaintenanceStatus.IN_PROGRESS)
    with pytest.raises(ValidationError):
        maintenance.update_status(ticket.id, MaintenanceStatus.OPEN)


def test_assignment_requires_active_user(db, maintenance, speaker, staff):
    ticket = maintenance.create_ticket(speaker.id, "Hum", assigned_to_id=staff.id)
    assert ticket.assigned_to_id == staff.id

    staff.is_active = False
    db.commit()
    with pytest.raises(ValidationError):
        maintenance.update_ticket(ticket.id, assigned_to_id=staff.id)
    with pytest.raises(NotFoundError):
        maintenance.update_ticket(ticket.id, assigned_to_id=999)


def test_statistics(maintenance, speaker, mixer):
    maintenance.create_ticket(speaker.id, "A", priority=MaintenancePriority.CRITICAL)
    done = maintenance.create_ticket(mixer.id, "B")
    maintenance.complete(done.id)
    stats = maintenance.statistics()
    assert stats["by_status"]["OPEN"] == 1
    assert stats["by_status"]["COMPLETED"] == 1
    assert stats["active_by_priority"]["CRITICAL"] == 1
    assert stats["active_by_priority"]["MEDIUM"] == 0


def test_open_ticket_blocks_manual_return_to_service(db, registry, maintenance, speaker):
    ticket = maintenance.create_ticket(speaker.id, "Blown driver")
    with pytest.raises(ValidationError, match=f"open maintenance ticket {ticket.id}"):
        registry.set_status(speaker.id, EquipmentStatus.AVAILABLE)
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.UNDER_REPAIR

    # Moving between out-of-service states is still allowed
    registry.set_status(speaker.id, EquipmentStatus.DAMAGED)

    maintenance.cancel(ticket.id)
    registry.set_status(speaker.id, EquipmentStatus.AVAILABLE)
    db.refresh(speaker)
    assert speaker.current_status == EquipmentStatus.AVAILABLE


def test_ticket_cannot_release_checked_out_item(db, maintenance, confirmed_event, speaker):
    TransactionProcessor(db).create_check_out(confirmed_event.id, [{"equipment_id": speaker.id}])
    ticket = MaintenanceTicket(
        equipment_id=speaker.id, title="Stale ticket", status=MaintenanceStatus.OPEN
    )
    db.add(ticket)
    db.commit()

    with pytest.raises(ValidationError, match="checked out for event Festival"):
        maintenance.complete(ticket.id)
    with pytest.raises(ValidationError, match="checked out"):
        maintenance.update_status(ticket.id, MaintenanceStatus.IN_PROGRESS)

    db.refresh(speaker)
    db.refresh(ticket)
    assert speaker.current_status == EquipmentStatus.IN_USE
    assert ticket.status == MaintenanceStatus.OPEN
