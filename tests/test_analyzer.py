"""Tests for spending statistics and the data export."""

from datetime import date, datetime, timedelta, timezone

import pytest

import analyzer
from models import Category, PriceChange, Subscription

TODAY = date(2025, 3, 10)


def sub(sub_id, price, cycle="monthly", days=10, status="active", category="other", **extra):
    return Subscription(
        id=sub_id,
        name=sub_id.title(),
        price=price,
        billing_cycle=cycle,
        next_billing_date=TODAY + timedelta(days=days),
        category=category,
        status=status,
        **extra,
    )


class TestMonthlyCost:
    def test_cycle_multipliers(self):
        assert analyzer.monthly_cost(sub("w", 10, "weekly")) == 40
        assert analyzer.monthly_cost(sub("m", 10, "monthly")) == 10
        assert analyzer.monthly_cost(sub("q", 30, "quarterly")) == pytest.approx(10)
        assert analyzer.monthly_cost(sub("y", 120, "yearly")) == pytest.approx(10)


class TestCategorize:
    def test_known_services(self):
        assert analyzer.categorize("Netflix Premium") == Category.entertainment
        assert analyzer.categorize("Notion") == Category.productivity
        assert analyzer.categorize("Duolingo Super") == Category.education

    def test_unknown_is_other(self):
        assert analyzer.categorize("Acme Widgets") == Category.other


class TestRunAnalysis:
    def subs(self):
        return [
            sub("netflix", 15.49, days=3, category="entertainment"),
            sub("gym", 12, "weekly", days=20, category="health"),
            sub("notion", 96, "yearly", days=100, category="productivity"),
            sub("trialapp", 9.99, days=1, status="trial", category="entertainment"),
            sub("paused", 50, days=2, status="paused"),
            sub("gone", 99, days=5, status="cancelled"),
            sub("freebie", 5, days=30, is_free_trial=True),
        ]

    def test_totals_exclude_paused_and_cancelled(self):
        report = analyzer.run_analysis(self.subs(), today=TODAY)
        monthly = 15.49 + 48 + 8 + 9.99 + 5
        assert report["total_active"] == 5
        assert report["monthly_total"] == pytest.approx(round(monthly, 2))
        assert report["yearly_total"] == pytest.approx(round(monthly * 12, 2))
        assert report["daily_cost"] == pytest.approx(round(monthly / 30, 2))

    def test_upcoming_within_week(self):
        report = analyzer.run_analysis(self.subs(), today=TODAY)
        assert [u["id"] for u in report["upcoming_renewals"]] == ["trialapp", "netflix"]
        assert report["upcoming_count"] == 2
        assert report["upcoming_amount"] == pytest.approx(25.48)

    def test_trial_count_includes_free_trial_flag(self):
        assert analyzer.run_analysis(self.subs(), today=TODAY)["trial_count"] == 2

    def test_breakdowns(self):
        report = analyzer.run_analysis(self.subs(), today=TODAY)
        categories = {c["category"]: c for c in report["category_breakdown"]}
        assert categories["health"]["monthly_total"] == 48
        assert categories["entertainment"]["count"] == 2
        assert report["category_breakdown"][0]["category"] == "health"
        assert report["cycle_breakdown"]["monthly"]["count"] == 3
        assert report["top_subscriptions"][0]["id"] == "gym"

    def test_empty(self):
        report = analyzer.run_analysis([], today=TODAY)
        assert report["total_active"] == 0
        assert report["monthly_total"] == 0
        assert report["upcoming_renewals"] == []


class TestPriceHistory:
    def test_savings_count_decreases_and_switches(self):
        changes = [
            PriceChange(id="1", subscription_id="s", old_price=10, new_price=12,
                        change_date=TODAY, change_type="increase"),
            PriceChange(id="2", subscription_id="s", old_price=12, new_price=9,
                        change_date=TODAY, change_type="decrease"),
            PriceChange(id="3", subscription_id="s", old_price=9, new_price=7.5,
                        change_date=TODAY, change_type="switch"),
        ]
        assert analyzer.price_history_savings(changes) == 4.5


class TestExport:
    def test_export_document(self):
        now = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
        document = analyzer.build_export([sub("netflix", 15.49)], now=now)
        assert document["version"] == "1.0"
        assert document["exported_at"] == now.isoformat()
        assert document["subscriptions"][0]["name"] == "Netflix"
        assert document["subscriptions"][0]["next_billing_date"] == "2025-03-20"
