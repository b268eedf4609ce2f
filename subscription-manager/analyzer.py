"""
analyzer.py — Subscription spending analyzer

Turns the stored subscriptions into a structured report: normalized monthly
spend, category and billing-cycle breakdowns, the most expensive services,
renewals due this week and trial counts. Also builds the JSON export.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Optional

from models import BillingCycle, Category, PriceChange, PriceChangeType, Subscription, SubscriptionStatus

log = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

# Multiply a price by this to get its monthly equivalent.
CYCLE_MULTIPLIERS = {
    BillingCycle.weekly: 4,
    BillingCycle.monthly: 1,
    BillingCycle.quarterly: 1 / 3,
    BillingCycle.yearly: 1 / 12,
}

# ── Category mapping ──────────────────────────────────────────────────────────
# Maps lowercase keywords in service names to a category.
CATEGORY_RULES: list[tuple[list[str], Category]] = [
    (["netflix", "hulu", "disney", "hbo", "max", "peacock", "paramount", "apple tv", "prime video",
      "crunchyroll", "youtube", "spotify", "apple music", "tidal", "deezer", "twitch"], Category.entertainment),
    (["notion", "github", "gitlab", "linear", "asana", "trello", "slack", "zoom", "figma", "adobe",
      "canva", "openai", "chatgpt", "anthropic", "claude", "grammarly", "1password"], Category.productivity),
    (["icloud", "dropbox", "google one", "onedrive", "nordvpn", "expressvpn", "surfshark",
      "internet", "phone", "electric"], Category.utilities),
    (["gym", "peloton", "strava", "headspace", "calm", "fitbit", "myfitnesspal"], Category.health),
    (["duolingo", "masterclass", "coursera", "udemy", "skillshare", "brilliant"], Category.education),
    (["xbox", "playstation", "nintendo", "steam", "ea play", "ubisoft"], Category.gaming),
    (["nytimes", "new york times", "washington post", "wsj", "medium", "substack", "economist",
      "bloomberg"], Category.news),
    (["linkedin", "patreon", "discord", "tinder", "bumble", "x premium"], Category.social),
    (["quickbooks", "xero", "ynab", "mint", "robinhood", "freshbooks"], Category.finance),
]


def categorize(name: str) -> Category:
    """Assign a category to a service name."""
    lower = name.lower()
    for keywords, category in CATEGORY_RULES:
        if any(kw in lower for kw in keywords):
            return category
    return Category.other


# ── Per-subscription figures ──────────────────────────────────────────────────
def monthly_cost(sub: Subscription) -> float:
    return sub.price * CYCLE_MULTIPLIERS.get(sub.billing_cycle, 1)


def billable(subs: list[Subscription]) -> list[Subscription]:
    """Active and trial subscriptions — the ones that cost money."""
    return [s for s in subs if s.is_billable]


def upcoming_renewals(subs: list[Subscription], today: date, days: int = 7) -> list[dict]:
    """Billable subscriptions whose next billing date is within `days` days."""
    upcoming = []
    for s in billable(subs):
        days_until = (s.next_billing_date - today).days
        if 0 <= days_until <= days:
            upcoming.append({
                "id": s.id,
                "name": s.name,
                "price": s.price,
                "next_billing_date": s.next_billing_date.isoformat(),
                "days_until": days_until,
                "status": s.status.value,
            })
    upcoming.sort(key=lambda x: x["days_until"])
    return upcoming


def category_breakdown(subs: list[Subscription]) -> list[dict]:
    by_category: dict[str, dict] = defaultdict(lambda: {"count": 0, "monthly_total": 0.0})
    for s in billable(subs):
        entry = by_category[s.category.value]
        entry["count"] += 1
        entry["monthly_total"] += monthly_cost(s)
    return sorted(
        [
            {"category": cat, "count": v["count"], "monthly_total": round(v["monthly_total"], 2)}
            for cat, v in by_category.items()
        ],
        key=lambda x: -x["monthly_total"],
    )


def cycle_breakdown(subs: list[Subscription]) -> dict[str, dict]:
    by_cycle: dict[str, dict] = {}
    for s in billable(subs):
        entry = by_cycle.setdefault(s.billing_cycle.value, {"count": 0, "total": 0.0})
        entry["count"] += 1
        entry["total"] = round(entry["total"] + s.price, 2)
    return by_cycle


def top_subscriptions(subs: list[Subscription], n: int = 5) -> list[dict]:
    ranked = sorted(billable(subs), key=monthly_cost, reverse=True)[:n]
    return [
        {"id": s.id, "name": s.name, "category": s.category.value, "monthly_cost": round(monthly_cost(s), 2)}
        for s in ranked
    ]


def price_history_savings(changes: list[PriceChange]) -> float:
    """Money saved per billing period by price drops and switches."""
    saved = sum(
        c.old_price - c.new_price
        for c in changes
        if c.change_type in (PriceChangeType.decrease, PriceChangeType.switch)
    )
    return round(saved, 2)


# ── Main analysis entry point ─────────────────────────────────────────────────
def run_analysis(subs: list[Subscription], today: Optional[date] = None) -> dict:
    """
    Build the spending report.

    Report structure:
    {
        "generated_at": "...",
        "total_active": N,
        "monthly_total": X.XX,
        "yearly_total": X.XX,
        "daily_cost": X.XX,
        "upcoming_count": N,           # billing within 7 days
        "upcoming_amount": X.XX,
        "trial_count": N,
        "category_breakdown": [...],
        "cycle_breakdown": {...},
        "top_subscriptions": [...],
        "upcoming_renewals": [...],
    }
    """
    today = today or date.today()
    active = billable(subs)
    monthly_total = sum(monthly_cost(s) for s in active)
    upcoming = upcoming_renewals(subs, today, days=7)
    trials = [s for s in subs if s.status == SubscriptionStatus.trial or s.is_free_trial]

    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "total_active": len(active),
        "monthly_total": round(monthly_total, 2),
        "yearly_total": round(monthly_total * 12, 2),
        "daily_cost": round(monthly_total / 30, 2),
        "upcoming_count": len(upcoming),
        "upcoming_amount": round(sum(u["price"] for u in upcoming), 2),
        "trial_count": len(trials),
        "category_breakdown": category_breakdown(subs),
        "cycle_breakdown": cycle_breakdown(subs),
        "top_subscriptions": top_subscriptions(subs),
        "upcoming_renewals": upcoming,
    }

    log.info(
        f"Analysis complete: {len(active)} active | "
        f"${report['monthly_total']}/mo | {len(upcoming)} due this week | {len(trials)} trials"
    )
    return report


def build_export(subs: list[Subscription], now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "subscriptions": [s.model_dump(mode="json") for s in subs],
        "exported_at": now.isoformat(),
        "version": EXPORT_VERSION,
    }
