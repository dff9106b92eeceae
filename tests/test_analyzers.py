"""Tests for src/core/analyzers.py."""

import random
from datetime import date

import pytest

from tests.conftest import make_transaction, ts
from src.core.analyzers import (
    analyze_category_patterns,
    bucket_monthly_cash_flow,
    detect_anomalies,
    forecast_cash_flow,
    score_financial_health,
    score_savings_rate,
)
from src.models.schemas import AnomalyKind, Severity


def _history(amounts, category="Groceries", start_day=1):
    return [
        make_transaction(
            amount=a,
            category_name=category,
            category_id=f"cat-{category.lower()}",
            merchant="BigBasket",
            txn_date=f"2025-01-{start_day + i:02d}",
            id=f"hist-{category}-{i}",
        )
        for i, a in enumerate(amounts)
    ]


# --- Anomaly Detection ---


class TestDetectSpikes:
    def test_large_expense_is_a_spike(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=500, merchant="Nature's Basket", txn_date="2025-01-20", id="new"),
        ]
        findings = detect_anomalies(txns)
        spikes = [f for f in findings if f.kind == AnomalyKind.SPIKE]
        assert len(spikes) == 1
        assert spikes[0].severity == Severity.HIGH
        assert spikes[0].amount == 500
        assert spikes[0].date == date(2025, 1, 20)
        assert "Groceries" in spikes[0].title
        assert "Nature's Basket" in spikes[0].description
        assert "₹500.00" in spikes[0].description
        assert "₹100.25" in spikes[0].description

    def test_ordinary_expense_is_not_a_spike(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=103, txn_date="2025-01-20", id="new"),
        ]
        findings = detect_anomalies(txns)
        assert [f for f in findings if f.kind == AnomalyKind.SPIKE] == []

    def test_no_history_means_no_finding(self):
        txns = [make_transaction(amount=5000, id="only")]
        assert detect_anomalies(txns) == []

    def test_other_categories_are_not_history(self):
        txns = _history([100, 102, 98, 101], category="Dining") + [
            make_transaction(amount=500, txn_date="2025-01-20", id="new"),
        ]
        assert detect_anomalies(txns) == []

    def test_income_is_never_a_spike(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=500, type_="income", txn_date="2025-01-20", id="salary"),
        ]
        assert detect_anomalies(txns) == []

    def test_only_recent_transactions_are_checked(self):
        # The spike is the oldest row, outside the two most recent
        txns = [make_transaction(amount=500, txn_date="2025-01-01", id="old")]
        txns += _history([100, 102, 98, 101], start_day=10)
        assert detect_anomalies(txns, recent_count=2) == []
        assert len(detect_anomalies(txns, recent_count=10)) == 1

    def test_similarity_band_excludes_distant_history(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=500, txn_date="2025-01-20", id="new"),
        ]
        assert detect_anomalies(txns, similarity_band=0.2) == []

    def test_custom_sigma(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=103, txn_date="2025-01-20", id="new"),
        ]
        findings = detect_anomalies(txns, spike_sigma=1.0)
        assert [f.amount for f in findings] == [103]

    def test_does_not_mutate_input(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=500, txn_date="2025-01-20", id="new"),
        ]
        snapshot = [t.model_copy() for t in txns]
        detect_anomalies(txns)
        assert txns == snapshot

    def test_empty_input(self):
        assert detect_anomalies([]) == []


class TestDetectDuplicates:
    def _pair(self, minutes_apart):
        first = make_transaction(amount=250, merchant="Swiggy", created_at=ts(10), id="a")
        second = make_transaction(
            amount=250,
            merchant="Swiggy",
            created_at=(ts(10) if minutes_apart == 0 else ts(10 + minutes_apart // 60, minutes_apart % 60)),
            id="b",
        )
        return [first, second]

    def test_ten_minutes_apart_is_one_duplicate(self):
        findings = detect_anomalies(self._pair(10))
        assert len(findings) == 1
        assert findings[0].kind == AnomalyKind.DUPLICATE
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].amount == 250
        assert "Swiggy and Swiggy" in findings[0].description

    def test_ninety_minutes_apart_is_not(self):
        assert detect_anomalies(self._pair(90)) == []

    def test_identical_timestamp_is_not(self):
        assert detect_anomalies(self._pair(0)) == []

    def test_different_kind_is_not(self):
        txns = [
            make_transaction(amount=250, created_at=ts(10), id="a"),
            make_transaction(amount=250, type_="income", created_at=ts(10, 5), id="b"),
        ]
        assert detect_anomalies(txns) == []

    def test_different_amount_is_not(self):
        txns = [
            make_transaction(amount=250, created_at=ts(10), id="a"),
            make_transaction(amount=251, created_at=ts(10, 5), id="b"),
        ]
        findings = detect_anomalies(txns)
        assert [f for f in findings if f.kind == AnomalyKind.DUPLICATE] == []

    def test_missing_created_at_is_skipped(self):
        txns = [
            make_transaction(amount=250, created_at=ts(10), id="a"),
            make_transaction(amount=250, created_at=None, id="b"),
        ]
        assert detect_anomalies(txns) == []

    def test_three_close_entries_give_three_pairs(self):
        txns = [
            make_transaction(amount=99, created_at=ts(9, minute), id=f"t{minute}")
            for minute in (0, 10, 20)
        ]
        assert len(detect_anomalies(txns)) == 3

    def test_spikes_come_before_duplicates(self):
        txns = _history([100, 102, 98, 101]) + [
            make_transaction(amount=500, txn_date="2025-01-20", created_at=ts(8, day=20), id="new"),
            make_transaction(amount=40, category_name="Dining", category_id="cat-dining",
                             txn_date="2025-01-19", created_at=ts(12, day=19), id="d1"),
            make_transaction(amount=40, category_name="Dining", category_id="cat-dining",
                             txn_date="2025-01-19", created_at=ts(12, 30, day=19), id="d2"),
        ]
        kinds = [f.kind for f in detect_anomalies(txns)]
        assert kinds == [AnomalyKind.SPIKE, AnomalyKind.DUPLICATE]


# --- Category Patterns ---


class TestAnalyzeCategoryPatterns:
    REF = date(2025, 6, 15)

    def test_groups_and_sorts_by_average(self):
        txns = [
            make_transaction(amount=100, category_name="Groceries", txn_date="2025-06-01"),
            make_transaction(amount=300, category_name="Groceries", txn_date="2025-05-01"),
            make_transaction(amount=1000, category_name="Rent", txn_date="2025-06-01"),
            make_transaction(amount=1000, category_name="Rent", txn_date="2025-05-01"),
        ]
        result = analyze_category_patterns(txns, self.REF)
        assert [p.category for p in result] == ["Rent", "Groceries"]
        groceries = result[1]
        assert groceries.avg_amount == 200
        assert groceries.std_deviation == 100
        assert groceries.amounts == [300, 100]
        assert groceries.confidence == pytest.approx(0.2)

    def test_monthly_trend_buckets(self):
        txns = [
            make_transaction(amount=100, txn_date="2025-01-10"),
            make_transaction(amount=50, txn_date="2025-03-02"),
            make_transaction(amount=25, txn_date="2025-03-28"),
            make_transaction(amount=70, txn_date="2025-06-01"),
            make_transaction(amount=999, txn_date="2024-12-31"),  # outside the 6 buckets
        ]
        result = analyze_category_patterns(txns, self.REF)
        assert result[0].monthly_trend == [100, 0, 75, 0, 0, 70]

    def test_single_observation_dropped(self):
        txns = [
            make_transaction(amount=100, category_name="Travel", txn_date="2025-06-01"),
            make_transaction(amount=10, category_name="Coffee", txn_date="2025-06-01"),
            make_transaction(amount=12, category_name="Coffee", txn_date="2025-06-02"),
        ]
        result = analyze_category_patterns(txns, self.REF)
        assert [p.category for p in result] == ["Coffee"]

    def test_missing_category_uses_sentinel(self):
        txns = [
            make_transaction(amount=10, category_name=None, category_id=None, txn_date="2025-06-01"),
            make_transaction(amount=20, category_name=None, category_id=None, txn_date="2025-06-02"),
        ]
        result = analyze_category_patterns(txns, self.REF)
        assert result[0].category == "Uncategorized"

    def test_confidence_saturates(self):
        txns = [
            make_transaction(amount=10 + i, txn_date=f"2025-06-{i + 1:02d}")
            for i in range(15)
        ]
        assert analyze_category_patterns(txns, self.REF)[0].confidence == 1.0

    def test_ignores_income(self):
        txns = [
            make_transaction(amount=5000, type_="income", category_name="Salary", txn_date="2025-05-01"),
            make_transaction(amount=5000, type_="income", category_name="Salary", txn_date="2025-06-01"),
        ]
        assert analyze_category_patterns(txns, self.REF) == []

    def test_order_independent(self):
        txns = [
            make_transaction(amount=0.1 * i + 7, category_name=cat, txn_date=f"2025-0{m}-1{i % 9}")
            for i, (cat, m) in enumerate(
                [("A", 2), ("B", 3), ("A", 4), ("C", 5), ("B", 6), ("A", 6), ("C", 3), ("B", 2)]
            )
        ]
        shuffled = txns[:]
        random.Random(7).shuffle(shuffled)
        assert analyze_category_patterns(txns, self.REF) == analyze_category_patterns(shuffled, self.REF)
        assert analyze_category_patterns(txns, self.REF) == analyze_category_patterns(txns, self.REF)

    def test_empty(self):
        assert analyze_category_patterns([], self.REF) == []


# --- Cash-Flow Forecast ---


def _monthly(income, expense, months):
    txns = []
    for m in months:
        txns.append(make_transaction(amount=income, type_="income", merchant="Employer",
                                     txn_date=f"{m}-01", id=f"inc-{m}"))
        txns.append(make_transaction(amount=expense, merchant="Spend",
                                     txn_date=f"{m}-05", id=f"exp-{m}"))
    return txns


class TestForecastCashFlow:
    MONTHS = ["2025-01", "2025-02", "2025-03", "2025-04", "2025-05", "2025-06"]

    def test_flat_history(self):
        txns = _monthly(50000, 40000, self.MONTHS)
        result = forecast_cash_flow(txns, date(2025, 6, 20), months_ahead=3)
        assert len(result) == 3
        for point in result:
            assert point.projected_income == 50000
            assert point.projected_expense == 40000
            assert point.projected_savings == 10000
            assert point.confidence == 0.75
        assert [p.month for p in result] == ["2025-07", "2025-08", "2025-09"]
        assert result[0].label == "Jul 2025"

    def test_rising_expense_trend_is_damped(self):
        txns = _monthly(50000, 0, self.MONTHS[:3])
        for m, amount in zip(self.MONTHS[:3], (100, 110, 120)):
            txns.append(make_transaction(amount=amount, txn_date=f"{m}-10", id=f"x-{m}"))
        result = forecast_cash_flow(txns, date(2025, 3, 31), months_ahead=1)
        expected = 110 * (1 + (10 / 110) * 0.5)
        assert result[0].projected_expense == pytest.approx(expected)
        assert result[0].month == "2025-04"

    def test_collapsing_trend_floors_at_zero(self):
        txns = [
            make_transaction(amount=1000, type_="income", txn_date="2025-01-01", id="a"),
            make_transaction(amount=5, txn_date="2025-02-01", id="b"),
        ]
        # income [1000, 0] has trend ratio -2, so the damped factor is exactly 0
        result = forecast_cash_flow(txns, date(2025, 2, 15), months_ahead=1)
        assert result[0].projected_income == 0.0
        assert result[0].projected_savings == -result[0].projected_expense

    def test_horizon_from_month_end(self):
        txns = _monthly(100, 50, ["2025-01"])
        result = forecast_cash_flow(txns, date(2025, 1, 31), months_ahead=2)
        assert [p.month for p in result] == ["2025-02", "2025-03"]

    def test_no_transactions(self):
        assert forecast_cash_flow([], date(2025, 6, 1)) == []

    def test_transfers_create_a_bucket(self):
        txns = [
            make_transaction(amount=1000, type_="income", txn_date="2025-01-01", id="a"),
            make_transaction(amount=700, type_="transfer", txn_date="2025-02-01", id="b"),
        ]
        assert bucket_monthly_cash_flow(txns) == {
            "2025-01": (1000.0, 0.0),
            "2025-02": (0.0, 0.0),
        }


# --- Financial Health ---


class TestHealthScore:
    @pytest.mark.parametrize(
        "income, expense, score, band",
        [
            (50000, 32500, 95, "Excellent"),
            (50000, 37500, 85, "Very Good"),
            (50000, 42500, 70, "Good"),
            (50000, 47500, 50, "Fair"),
            (50000, 49000, 30, "Needs Improvement"),
            (50000, 50000, 30, "Needs Improvement"),
            (50000, 60000, 10, "Critical"),
        ],
    )
    def test_ladder(self, income, expense, score, band):
        result = score_savings_rate(income, expense)
        assert (result.score, result.band) == (score, band)

    def test_breakdown(self):
        result = score_savings_rate(50000, 49000)
        assert result.breakdown == {
            "savings_rate": 2.0,
            "expense_to_income": 98.0,
            "monthly_income": 50000,
            "monthly_expense": 49000,
        }

    def test_no_income(self):
        result = score_savings_rate(0, 1200)
        assert (result.score, result.band, result.breakdown) == (0, "No Income", {})

    def test_from_transactions(self):
        txns = [
            make_transaction(amount=50000, type_="income", id="salary"),
            make_transaction(amount=30000, id="rent"),
            make_transaction(amount=2500, id="food"),
            make_transaction(amount=9999, type_="transfer", id="move"),
        ]
        result = score_financial_health(txns)
        assert (result.score, result.band) == (95, "Excellent")

    def test_no_data_differs_from_no_income(self):
        assert score_financial_health([]).band == "No Data"
        assert score_financial_health([make_transaction(amount=10)]).band == "No Income"
