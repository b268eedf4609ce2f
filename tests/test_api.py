"""Tests for the HTTP API."""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings


@pytest.fixture
def app(tmp_path):
    return create_app(Settings(data_dir=tmp_path, access_password="pw", start_scheduler=False))


@pytest.fixture
def client(app):
    client = TestClient(app)
    token = client.post("/auth/login", json={"password": "pw"}).json()["token"]
    client.headers.update({"Authorization": f"Bearer {token}"})
    return client


def new_sub(client, days=3, **extra):
    body = {
        "name": "Netflix",
        "price": 15.49,
        "billing_cycle": "monthly",
        "next_billing_date": (date.today() + timedelta(days=days)).isoformat(),
    }
    body.update(extra)
    resp = client.post("/api/subscriptions", json=body)
    assert resp.status_code == 201
    return resp.json()


class TestAuth:
    def test_wrong_password(self, app):
        resp = TestClient(app).post("/auth/login", json={"password": "nope"})
        assert resp.json()["status"] == "error"

    def test_api_requires_token(self, app):
        resp = TestClient(app).get("/api/subscriptions")
        assert resp.status_code == 401


class TestSubscriptions:
    def test_create_defaults_category_from_name(self, client):
        record = new_sub(client, days=20)
        assert record["category"] == "entertainment"
        assert record["status"] == "active"
        listed = client.get("/api/subscriptions").json()["subscriptions"]
        assert [s["id"] for s in listed] == [record["id"]]

    def test_update_and_delete(self, client):
        record = new_sub(client, days=20)
        resp = client.put(f"/api/subscriptions/{record['id']}", json={"price": 17.99})
        assert resp.json()["price"] == 17.99
        assert resp.json()["name"] == "Netflix"

        assert client.delete(f"/api/subscriptions/{record['id']}").status_code == 200
        assert client.get(f"/api/subscriptions/{record['id']}").status_code == 404

    def test_missing_subscription(self, client):
        assert client.put("/api/subscriptions/nope", json={"price": 1}).status_code == 404
        assert client.delete("/api/subscriptions/nope").status_code == 404

    def test_negative_price_rejected(self, client):
        body = {"name": "X", "price": -1, "next_billing_date": date.today().isoformat()}
        assert client.post("/api/subscriptions", json=body).status_code == 422

    def test_unsortable_field_is_bad_request(self, client, app):
        new_sub(client, days=20)
        app.state.store.create("Subscription", {"name": "Imported", "price": "9.99"})
        resp = client.get("/api/subscriptions", params={"sort": "price"})
        assert resp.status_code == 400
        assert client.get("/api/subscriptions", params={"sort": "name"}).status_code == 200


class TestNotifications:
    def test_creating_due_subscription_triggers_reminder(self, client):
        record = new_sub(client, days=3)
        notifications = client.get("/api/notifications").json()["notifications"]
        assert [n["id"] for n in notifications] == [f"{record['id']}-3"]
        assert notifications[0]["message"] == "Netflix payment of $15.49 due in 3 days."
        assert client.get("/api/notifications/unread-count").json() == {"unread": 1}

    def test_manual_run_is_idempotent(self, client):
        new_sub(client, days=1, status="trial")
        assert client.post("/api/reminders/run").json() == {"created": []}
        notifications = client.get("/api/notifications").json()["notifications"]
        assert len(notifications) == 1
        assert notifications[0]["title"] == "Free trial ending soon"

    def test_mark_read_and_clear(self, client):
        record = new_sub(client, days=3)
        resp = client.post(f"/api/notifications/{record['id']}-3/read")
        assert resp.json()["notifications"][0]["read"] is True
        assert client.get("/api/notifications/unread-count").json() == {"unread": 0}

        client.delete("/api/notifications")
        assert client.get("/api/notifications").json() == {"notifications": []}

    def test_preferences(self, client):
        assert client.get("/api/notifications/preferences").json()["reminder_days"] == [3, 1]
        resp = client.put("/api/notifications/preferences", json={"in_app_enabled": False, "email_enabled": False})
        assert resp.json()["in_app_enabled"] is False

        new_sub(client, days=3)
        assert client.get("/api/notifications").json() == {"notifications": []}


class TestLists:
    def test_delete_list_detaches_subscriptions(self, client):
        lst = client.post("/api/lists", json={"name": "Work"}).json()
        record = new_sub(client, days=20, list_id=lst["id"])
        assert client.put(f"/api/lists/{lst['id']}", json={"name": "Office"}).json()["name"] == "Office"

        resp = client.delete(f"/api/lists/{lst['id']}")
        assert resp.json()["detached_subscriptions"] == 1
        assert client.get(f"/api/subscriptions/{record['id']}").json()["list_id"] is None
        assert client.get("/api/lists").json() == {"lists": []}


class TestPriceHistory:
    def test_history_and_savings(self, client):
        record = new_sub(client, days=20)
        url = f"/api/subscriptions/{record['id']}/price-history"
        client.post(url, json={"old_price": 15.49, "new_price": 17.99, "change_date": "2025-01-01"})
        client.post(url, json={"old_price": 17.99, "new_price": 12.99,
                               "change_date": "2025-02-01", "change_type": "decrease"})

        data = client.get(url).json()
        assert [h["change_date"] for h in data["history"]] == ["2025-02-01", "2025-01-01"]
        assert data["total_savings"] == 5.0

    def test_unknown_subscription(self, client):
        assert client.get("/api/subscriptions/nope/price-history").status_code == 404


class TestReportAndExport:
    def test_report(self, client):
        new_sub(client, days=20)
        new_sub(client, days=20, name="Gym", price=10, billing_cycle="weekly")
        report = client.get("/api/report").json()
        assert report["total_active"] == 2
        assert report["monthly_total"] == pytest.approx(55.49)

    def test_export(self, client):
        new_sub(client, days=20)
        resp = client.get("/api/export")
        assert resp.headers["content-disposition"].startswith("attachment;")
        document = resp.json()
        assert document["version"] == "1.0"
        assert document["subscriptions"][0]["name"] == "Netflix"
        assert "exported_at" in document

    def test_scheduler_status(self, client):
        status = client.get("/api/scheduler/status").json()
        assert status["running"] is False
        assert status["interval_minutes"] == 60
