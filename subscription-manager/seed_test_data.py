"""
seed_test_data.py — writes realistic demo subscriptions for testing.
Run this to try the report and reminders without entering data by hand.
Two entries are due soon so the first reminder pass has something to do.
"""
import logging
from datetime import date, timedelta

from config import load_settings
from store import EntityStore, UserService


def make_records(today: date) -> list[dict]:
    subs = [
        # (name, price, cycle, days_until_billing, category, status, color)
        ("Netflix",        15.49, "monthly",   3,   "entertainment", "active",    "#E50914"),
        ("Spotify",         9.99, "monthly",  12,   "entertainment", "active",    "#1DB954"),
        ("Apple TV+",       9.99, "monthly",   1,   "entertainment", "trial",     "#000000"),
        ("Notion",         96.00, "yearly",  140,   "productivity",  "active",    "#000000"),
        ("GitHub",          4.00, "monthly",  20,   "productivity",  "active",    "#24292e"),
        ("iCloud",          2.99, "monthly",   6,   "utilities",     "active",    "#3693F3"),
        ("Duolingo",       29.99, "quarterly", 45,  "education",     "active",    "#58CC02"),
        ("Gym Membership", 12.00, "weekly",    4,   "health",        "active",    "#f97316"),
        ("Xbox Game Pass", 16.99, "monthly",   9,   "gaming",        "paused",    "#107C10"),
        ("NYTimes",         4.00, "monthly",  25,   "news",          "cancelled", "#000000"),
    ]
    records = []
    for name, price, cycle, days, category, status, color in subs:
        records.append({
            "name": name,
            "price": price,
            "billing_cycle": cycle,
            "next_billing_date": (today + timedelta(days=days)).isoformat(),
            "category": category,
            "status": status,
            "is_free_trial": status == "trial",
            "color": color,
            "notes": "",
        })
    return records


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    settings = load_settings()
    store = EntityStore(settings.data_dir)
    records = make_records(date.today())
    for record in records:
        store.create("Subscription", record)
    UserService(settings.profile_file).update_me(email="demo@example.com")
    print(f"Wrote {len(records)} demo subscriptions to {settings.data_dir.resolve()}")
