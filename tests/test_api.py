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
from fastapi.testclient import TestClient

from gearhire.database import get_db
from gearhire.main import app
from gearhire.models.enums import NotificationType
from gearhire.services.notifications import NotificationService


@pytest.fixture
def api(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _event(api, client_id, name, start, end):
    response = api.post(
        "/api/events",
        json={"client_id": client_id, "name": name, "start_date": start, "end_date": end},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_equipment_crud(api, category):
    response = api.post(
        "/api/equipment",
        json={"name": "Wireless Mic", "category_id": category.id, "barcode": "MIC-1", "purchase_price": "850.5"},
        headers={"X-Actor-Id": "3"},
    )
    assert response.status_code == 201
    item = response.json()
    assert item["current_status"] == "AVAILABLE"
    assert item["purchase_price"] == "850.50"

    duplicate = api.post("/api/equipment", json={"name": "Mic 2", "category_id": category.id, "barcode": "MIC-1"})
    assert duplicate.status_code == 409
    assert "MIC-1" in duplicate.json()["detail"]

    response = api.put(f"/api/equipment/{item['id']}/status", json={"status": "IN_USE"})
    assert response.status_code == 400

    response = api.put(f"/api/equipment/{item['id']}/status", json={"status": "RETIRED", "reason": "Old"})
    assert response.status_code == 200
    history = api.get(f"/api/equipment/{item['id']}/history").json()
    assert history[0]["new_status"] == "RETIRED"
    assert history[0]["changed_by"] is None

    assert api.get("/api/equipment/barcode/MIC-1").json()["id"] == item["id"]
    assert api.get("/api/equipment/9999").status_code == 404


def test_booking_flow_over_http(api, client, speaker):
    first = _event(api, client.id, "Event E", "2025-06-01T00:00:00", "2025-06-03T00:00:00")
    second = _event(api, client.id, "Event F", "2025-06-02T00:00:00", "2025-06-04T00:00:00")

    response = api.post(f"/api/events/{first['id']}/bookings", json={"equipment_id": speaker.id})
    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"

    confirmed = api.post(f"/api/events/{first['id']}/bookings/confirm").json()
    assert confirmed["confirmed"] == 1
    assert confirmed["event_status"] == "CONFIRMED"

    clash = api.post(f"/api/events/{second['id']}/bookings", json={"equipment_id": speaker.id})
    assert clash.status_code == 409
    assert clash.json()["kind"] == "conflict"
    assert "Event E" in clash.json()["detail"]

    bulk = api.post(
        f"/api/events/{second['id']}/bookings/bulk",
        json={"items": [{"equipment_id": speaker.id}, {"equipment_id": 9999}]},
    )
    assert bulk.status_code == 200
    assert bulk.json()["success"] == []
    assert {e["kind"] for e in bulk.json()["errors"]} == {"conflict", "not_found"}


def test_custody_round_trip_over_http(api, client, speaker):
    event = _event(api, client.id, "Concert", "2025-06-01T00:00:00Z", "2025-06-02T00:00:00Z")
    api.post(f"/api/events/{event['id']}/bookings", json={"equipment_id": speaker.id, "quantity": 2})
    api.post(f"/api/events/{event['id']}/bookings/confirm")

    response = api.post(
        "/api/transactions/check-out",
        json={"event_id": event["id"], "items": [{"equipment_id": speaker.id}]},
    )
    assert response.status_code == 201, response.text
    assert response.json()["event"]["status"] == "IN_PROGRESS"
    assert api.get("/api/transactions/pending").json()["total_pending"] == 1

    response = api.post(
        "/api/transactions/check-in",
        json={
            "event_id": event["id"],
            "items": [{"equipment_id": speaker.id, "condition": "DAMAGED", "damage_notes": "Dented"}],
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["items_with_issues"] == 1
    assert body["all_returned"] is True
    assert body["tickets"][0]["priority"] == "HIGH"

    equipment = api.get(f"/api/equipment/{speaker.id}").json()
    assert equipment["current_status"] == "DAMAGED"

    ticket_id = body["tickets"][0]["id"]
    response = api.post(f"/api/maintenance/{ticket_id}/complete", json={"repair_notes": "Panel replaced"})
    assert response.status_code == 200
    assert api.get(f"/api/equipment/{speaker.id}").json()["current_status"] == "AVAILABLE"


def test_invoice_payments_over_http(api, client):
    response = api.post(
        "/api/finance/invoices",
        json={
            "client_id": client.id,
            "tax_rate": "7",
            "line_items": [{"description": "Full production", "quantity": 1, "unit_price": "25000"}],
        },
    )
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["total"] == "26750.00"

    url = f"/api/finance/invoices/{invoice['id']}/payments"
    first = api.post(url, json={"amount": "13375", "payment_method": "ECOCASH"})
    assert first.status_code == 201
    assert first.json()["invoice"]["status"] == "PARTIALLY_PAID"

    second = api.post(url, json={"amount": "13375"})
    assert second.json()["invoice"]["status"] == "PAID"

    third = api.post(url, json={"amount": "1"})
    assert third.status_code == 400
    assert "balance due" in third.json()["detail"]

    bad_method = api.post(url, json={"amount": "1", "payment_method": "CHEQUE"})
    assert bad_method.status_code == 422


def test_admin_routes_need_admin(api, admin, staff):
    assert api.get("/api/admin/cron-jobs").status_code == 403
    assert api.get("/api/admin/cron-jobs", headers={"X-Actor-Id": str(staff.id)}).status_code == 403

    response = api.get("/api/admin/action-log", headers={"X-Actor-Id": str(admin.id)})
    assert response.status_code == 200
    assert response.json()["entries"] == []


def test_notification_inbox_over_http(api, db, admin):
    service = NotificationService(db)
    service.notify_admins(NotificationType.QUOTE_ACCEPTED, "Quote Accepted", "QT-1 accepted")
    service.notify_admins(NotificationType.INVOICE_PAID, "Invoice Paid in Full", "INV-1 paid")
    db.commit()
    headers = {"X-Actor-Id": str(admin.id)}

    assert api.get("/api/notifications").status_code == 403

    inbox = api.get("/api/notifications", headers=headers).json()
    assert inbox["total"] == 2
    assert inbox["unread_count"] == 2
    first_id = inbox["notifications"][0]["id"]

    response = api.put(f"/api/notifications/{first_id}/read", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    unread = api.get("/api/notifications", params={"is_read": "false"}, headers=headers).json()
    assert unread["total"] == 1

    response = api.put("/api/notifications/read-all", headers=headers)
    assert response.json()["updated"] == 1

    assert api.put(f"/api/notifications/{first_id}/dismiss", headers=headers).status_code == 200
    assert api.get("/api/notifications", headers=headers).json()["total"] == 1
    assert api.put("/api/notifications/999/read", headers=headers).status_code == 404


def test_planning_views_over_http(api, client, staff, speaker, mixer):
    quote = api.post(
        "/api/finance/quotes",
        json={"client_id": client.id, "line_items": [{"description": "PA", "unit_price": "4500"}]},
    ).json()
    api.put(f"/api/finance/quotes/{quote['id']}/status", json={"status": "SENT"})
    api.put(f"/api/finance/quotes/{quote['id']}/status", json={"status": "ACCEPTED"})

    response = api.post(
        "/api/events/from-quote",
        json={
            "quote_id": quote["id"],
            "name": "Launch Party",
            "start_date": "2025-06-01T00:00:00",
            "end_date": "2025-06-03T00:00:00",
            "equipment_ids": [speaker.id],
        },
    )
    assert response.status_code == 201, response.text
    event = response.json()
    assert event["status"] == "CONFIRMED"
    assert event["bookings"][0]["status"] == "CONFIRMED"
    assert event["booking_errors"] == []

    window = {"start_date": "2025-06-02T00:00:00", "end_date": "2025-06-04T00:00:00"}
    available = api.get("/api/equipment/available", params=window).json()
    assert [item["id"] for item in available] == [mixer.id]

    api.post(f"/api/events/{event['id']}/staff", json={"user_id": staff.id})
    assert api.get("/api/events/available-staff", params=window).json() == []

    calendar = api.get("/api/events/calendar", params=window).json()
    assert [e["name"] for e in calendar] == ["Launch Party"]

    stats = api.get("/api/events/statistics").json()
    assert stats["total_events"] == 1
    assert stats["by_status"]["CONFIRMED"] == 1
