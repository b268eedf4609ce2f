"""Shared fakes for the reminder evaluator's collaborators."""

import copy
from datetime import date, datetime, timedelta, timezone

import pytest

TODAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_sub(sub_id="s1", name="Netflix", price=15.49, status="active", days=3, **extra):
    record = {
        "id": sub_id,
        "name": name,
        "price": price,
        "billing_cycle": "monthly",
        "next_billing_date": (TODAY + timedelta(days=days)).isoformat(),
        "category": "entertainment",
        "status": status,
    }
    record.update(extra)
    return record


class FakeStore:
    def __init__(self, subscriptions=None):
        self.subscriptions = list(subscriptions or [])

    def list(self, entity, sort=None):
        assert entity == "Subscription"
        return copy.deepcopy(self.subscriptions)


class FakeUsers:
    def __init__(self, email="me@example.com", notifications=None, preferences=None):
        self.profile = {
            "email": email,
            "notifications": list(notifications or []),
            "notification_preferences": preferences,
        }
        self.updates = []
        self.fail_updates = False

    def me(self):
        return copy.deepcopy(self.profile)

    def update_me(self, **partial):
        if self.fail_updates:
            raise ConnectionError("profile service unavailable")
        dumped = {
            k: [n.model_dump(mode="json") if hasattr(n, "model_dump") else n for n in v]
            if isinstance(v, list) else
            (v.model_dump(mode="json") if hasattr(v, "model_dump") else v)
            for k, v in partial.items()
        }
        self.updates.append(dumped)
        self.profile.update(dumped)
        return self.me()


class FakeMailer:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send_email(self, to, subject, body):
        if any(name in body for name in self.fail_for):
            raise OSError("smtp down")
        self.sent.append({"to": to, "subject": subject, "body": body})


@pytest.fixture
def mailer():
    return FakeMailer()
