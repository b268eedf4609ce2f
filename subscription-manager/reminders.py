"""
reminders.py — SubTrack renewal reminders

One pass:
  1. read subscriptions + the user's notification list and preferences
  2. for every active/trial subscription whose next billing date is exactly
     one of the configured `reminder_days` away, build a notification unless
     one with the same (subscription, day offset) key already exists
  3. email each new reminder (best effort — a failed send never blocks the pass)
  4. merge, keep the newest 50, write the list back in a single update

The key makes reminders at-most-once: once "<sub id>-3" is stored, that
subscription never gets another 3-day reminder.
"""

import logging
import threading
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import ValidationError

from models import (
    Notification,
    NotificationKey,
    NotificationPreferences,
    NotificationType,
    PreferencesPatch,
    Subscription,
    SubscriptionStatus,
)

log = logging.getLogger(__name__)

NOTIFICATION_CAP = 50


# ── Helpers ───────────────────────────────────────────────────────────────────
def days_until(billing_date: date, today: date) -> int:
    """Whole calendar days from today to billing_date (negative when overdue)."""
    return (billing_date - today).days


def format_price(price: float) -> str:
    """15.49 → '15.49', 10.0 → '10', 9.5 → '9.5'."""
    price = float(price)
    if price.is_integer():
        return str(int(price))
    return repr(price)


def format_long_date(d: date) -> str:
    return f"{d:%B} {d.day}, {d.year}"


def load_preferences(raw) -> NotificationPreferences:
    """Stored preferences, or the defaults when missing or unreadable."""
    if not raw:
        return NotificationPreferences()
    try:
        return NotificationPreferences.model_validate(raw)
    except ValidationError as exc:
        log.warning(f"Ignoring malformed notification preferences: {exc.error_count()} error(s)")
        return NotificationPreferences()


def load_notifications(raw: list) -> list[Notification]:
    notifications = []
    for item in raw or []:
        try:
            notifications.append(Notification.model_validate(item))
        except ValidationError:
            log.warning(f"Dropping malformed notification record: {item!r}")
    return notifications


def load_subscriptions(raw: list) -> list[Subscription]:
    subs = []
    for item in raw:
        try:
            subs.append(Subscription.model_validate(item))
        except ValidationError:
            log.warning(f"Skipping malformed subscription {item.get('id', '?')}")
    return subs


def build_notification(sub: Subscription, days: int, now: datetime) -> Notification:
    day_word = "day" if days == 1 else "days"
    price = format_price(sub.price)
    if sub.status == SubscriptionStatus.trial:
        kind = NotificationType.trial
        title = "Free trial ending soon"
        message = f"Your {sub.name} trial ends in {days} {day_word}. It will auto-renew for ${price}."
    else:
        kind = NotificationType.payment
        title = "Payment due soon"
        message = f"{sub.name} payment of ${price} due in {days} {day_word}."

    key = NotificationKey(sub.id, days)
    return Notification(
        id=str(key),
        subscription_id=sub.id,
        type=kind,
        title=title,
        message=message,
        created_at=now,
        read=False,
        day_offset=days,
    )


def render_email_body(notification: Notification, sub: Subscription) -> str:
    return (
        f"{notification.title}\n\n"
        f"{notification.message}\n\n"
        f"Payment date: {format_long_date(sub.next_billing_date)}\n"
        f"Amount: ${format_price(sub.price)}\n"
    )


def merge_notifications(
    existing: list[Notification],
    new: list[Notification],
    cap: int = NOTIFICATION_CAP,
) -> list[Notification]:
    """Newest first by created_at, truncated to `cap`."""
    merged = sorted(existing + new, key=lambda n: n.created_at, reverse=True)
    return merged[:cap]


# ── Evaluator ─────────────────────────────────────────────────────────────────
class ReminderEvaluator:
    def __init__(self, store, users, mailer):
        self.store = store
        self.users = users
        self.mailer = mailer
        self._in_flight = threading.Lock()
        self._list_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._in_flight.locked()

    def run_pass(self, today: Optional[date] = None, now: Optional[datetime] = None) -> list[Notification]:
        """Create and persist any due reminders. Returns the new notifications."""
        if not self._in_flight.acquire(blocking=False):
            log.info("Reminder pass already running — skipping.")
            return []
        try:
            return self._run_pass(today or date.today(), now or datetime.now(timezone.utc))
        finally:
            self._in_flight.release()

    def _run_pass(self, today: date, now: datetime) -> list[Notification]:
        user = self.users.me()
        prefs = load_preferences(user.get("notification_preferences"))
        if not prefs.in_app_enabled and not prefs.email_enabled:
            log.info("Reminders disabled (in-app and email both off).")
            return []

        existing = load_notifications(user.get("notifications"))
        seen_keys = {n.key for n in existing if n.key is not None}
        seen_ids = {n.id for n in existing}
        email = (user.get("email") or "").strip()

        new: list[Notification] = []
        for sub in load_subscriptions(self.store.list("Subscription")):
            if not sub.is_billable:
                continue
            days = days_until(sub.next_billing_date, today)
            if days not in prefs.reminder_days:
                continue
            key = NotificationKey(sub.id, days)
            # records stored without day_offset only carry the id
            if key in seen_keys or str(key) in seen_ids:
                continue

            notification = build_notification(sub, days, now)
            new.append(notification)
            seen_keys.add(key)

            if prefs.email_enabled and email:
                try:
                    self.mailer.send_email(
                        to=email,
                        subject=notification.title,
                        body=render_email_body(notification, sub),
                    )
                except Exception as exc:
                    log.warning(f"Reminder email for {sub.name} failed: {exc}")

        if new:
            # re-read: mark_read / clear_all may have landed while emails were sending
            with self._list_lock:
                current = load_notifications(self.users.me().get("notifications"))
                current_ids = {n.id for n in current}
                merged = merge_notifications(current, [n for n in new if n.id not in current_ids])
                self.users.update_me(notifications=merged)
            log.info(f"Reminder pass: {len(new)} new notification(s), {len(merged)} stored.")
        else:
            log.info("Reminder pass: nothing due.")
        return new

    # ── Notification center operations ─────────────────────────────────────
    def notifications(self) -> list[Notification]:
        return load_notifications(self.users.me().get("notifications"))

    def unread_count(self) -> int:
        return sum(1 for n in self.notifications() if not n.read)

    def mark_read(self, notification_id: str) -> list[Notification]:
        """Flip `read` on the matching stored record; other records are written back untouched."""
        with self._list_lock:
            raw = list(self.users.me().get("notifications") or [])
            matched = False
            for item in raw:
                if isinstance(item, dict) and item.get("id") == notification_id:
                    item["read"] = True
                    matched = True
            if matched:
                self.users.update_me(notifications=raw)
        return load_notifications(raw)

    def clear_all(self):
        with self._list_lock:
            self.users.update_me(notifications=[])

    def preferences(self) -> NotificationPreferences:
        return load_preferences(self.users.me().get("notification_preferences"))

    def update_preferences(self, patch: PreferencesPatch) -> NotificationPreferences:
        current = self.preferences()
        merged = NotificationPreferences.model_validate(
            {**current.model_dump(), **patch.model_dump(exclude_none=True)}
        )
        self.users.update_me(notification_preferences=merged)
        return merged
