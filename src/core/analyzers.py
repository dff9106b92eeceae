"""Pure analysis functions over ledger transactions.

All functions take already-fetched domain objects plus an explicit
reference date and return result dataclasses. They perform no I/O and never read
the current date.
"""

import logging
from datetime import date, timedelta

from src.core.dates import add_months, month_key, month_label, trailing_month_starts
from src.core.stats import linear_trend_ratio, mean, stddev
from src.models.results import (
    AnomalyFinding,
    CategoryAggregate,
    ForecastPoint,
    HealthScore,
)
from src.models.schemas import AnomalyKind, Severity, Transaction, TransactionKind

logger = logging.getLogger(__name__)

# Anomaly policy. Heuristics, not physics: exposed as keyword arguments
# below with these defaults.
SPIKE_SIGMA = 2.0
DUPLICATE_WINDOW = timedelta(minutes=60)
RECENT_COUNT = 10

PATTERN_MONTHS = 6
CONFIDENCE_SATURATION = 10

TREND_WINDOW = 3
TREND_DAMPING = 0.5
FORECAST_CONFIDENCE = 0.75

# (minimum savings rate %, score, band), checked top to bottom
HEALTH_LADDER = [
    (35.0, 95, "Excellent"),
    (25.0, 85, "Very Good"),
    (15.0, 70, "Good"),
    (5.0, 50, "Fair"),
    (0.0, 30, "Needs Improvement"),
]
CRITICAL_SCORE = (10, "Critical")


def _money(amount: float) -> str:
    return f"₹{amount:,.2f}"


def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
    # Stable, so same-day rows keep the order the ledger returned them in
    return sorted(transactions, key=lambda t: t.transaction_date, reverse=True)


# --- Anomaly Detection ---


def detect_anomalies(
    transactions: list[Transaction],
    recent_count: int = RECENT_COUNT,
    spike_sigma: float = SPIKE_SIGMA,
    duplicate_window: timedelta = DUPLICATE_WINDOW,
    similarity_band: float | None = None,
) -> list[AnomalyFinding]:
    """Flag spending spikes among the latest transactions, then duplicates.

    A recent expense is a spike when it exceeds the mean of the other
    expenses in its category by more than *spike_sigma* population standard
    deviations. When *similarity_band* is given (e.g. ``0.2``), only history
    within that fraction of the candidate's amount counts as comparable.

    Duplicates are pairs with the same amount and kind created strictly
    between 0 and *duplicate_window* apart.
    """
    if not transactions:
        return []

    ordered = _newest_first(transactions)
    findings = _find_spikes(ordered, recent_count, spike_sigma, similarity_band)
    findings.extend(_find_duplicates(ordered, duplicate_window))
    logger.debug("anomaly scan: %d transactions, %d findings", len(ordered), len(findings))
    return findings


def _find_spikes(
    ordered: list[Transaction],
    recent_count: int,
    spike_sigma: float,
    similarity_band: float | None,
) -> list[AnomalyFinding]:
    findings: list[AnomalyFinding] = []

    for txn in ordered[:recent_count]:
        if txn.type != TransactionKind.EXPENSE:
            continue

        baseline = [
            t.amount for t in ordered
            if t.id != txn.id
            and t.type == TransactionKind.EXPENSE
            and t.category_id == txn.category_id
            and (
                similarity_band is None
                or abs(t.amount - txn.amount) < txn.amount * similarity_band
            )
        ]
        if not baseline:
            continue  # no history to compare against

        avg = mean(baseline)
        if txn.amount > avg + spike_sigma * stddev(baseline):
            findings.append(AnomalyFinding(
                kind=AnomalyKind.SPIKE,
                severity=Severity.HIGH,
                title=f"Unusual spike in {txn.category_name} spending",
                description=(
                    f"You spent {_money(txn.amount)} on {txn.merchant or 'Unknown'} "
                    f"({txn.category_name}), "
                    f"which is significantly higher than your average of {_money(avg)}"
                ),
                amount=txn.amount,
                date=txn.transaction_date,
            ))

    return findings


def _find_duplicates(
    ordered: list[Transaction],
    window: timedelta,
) -> list[AnomalyFinding]:
    findings: list[AnomalyFinding] = []

    for i, first in enumerate(ordered):
        if first.created_at is None:
            continue
        for second in ordered[i + 1:]:
            if second.created_at is None:
                continue
            if first.amount != second.amount or first.type != second.type:
                continue
            gap = abs(first.created_at - second.created_at)
            if timedelta(0) < gap < window:
                merchants = f"{first.merchant or 'Unknown'} and {second.merchant or 'Unknown'}"
                findings.append(AnomalyFinding(
                    kind=AnomalyKind.DUPLICATE,
                    severity=Severity.MEDIUM,
                    title="Possible duplicate transaction detected",
                    description=(
                        f"Found similar transactions: {merchants} "
                        f"with amounts {_money(first.amount)}"
                    ),
                    amount=first.amount,
                    date=first.transaction_date,
                ))

    return findings


# --- Category Patterns ---


def analyze_category_patterns(
    transactions: list[Transaction],
    reference_date: date,
    num_months: int = PATTERN_MONTHS,
) -> list[CategoryAggregate]:
    """Per-category averages, spread and monthly totals for expenses.

    Categories with fewer than two expenses are dropped. The result is
    sorted by average amount, largest first, and does not depend on the
    order of *transactions*.
    """
    groups: dict[str, list[Transaction]] = {}
    for t in transactions:
        if t.type != TransactionKind.EXPENSE:
            continue
        groups.setdefault(t.category_name, []).append(t)

    month_starts = trailing_month_starts(reference_date, num_months)
    month_keys = [month_key(m) for m in month_starts]

    patterns: list[CategoryAggregate] = []
    for category, txns in groups.items():
        if len(txns) < 2:
            continue

        txns = sorted(txns, key=lambda t: (t.transaction_date, t.amount))
        amounts = [t.amount for t in txns]

        buckets = {k: 0.0 for k in month_keys}
        for t in txns:
            key = month_key(t.transaction_date)
            if key in buckets:
                buckets[key] += t.amount

        patterns.append(CategoryAggregate(
            category=category,
            amounts=amounts,
            avg_amount=mean(amounts),
            std_deviation=stddev(amounts),
            monthly_trend=[buckets[k] for k in month_keys],
            confidence=min(len(amounts) / CONFIDENCE_SATURATION, 1.0),
        ))

    return sorted(patterns, key=lambda p: (-p.avg_amount, p.category))


# --- Cash-Flow Forecast ---


def bucket_monthly_cash_flow(
    transactions: list[Transaction],
) -> dict[str, tuple[float, float]]:
    """Map ``YYYY-MM`` -> (income, expense), chronological.

    Every month with any transaction gets a bucket, transfers included,
    even though transfers add to neither side.
    """
    monthly: dict[str, list[float]] = {}
    for t in transactions:
        bucket = monthly.setdefault(month_key(t.transaction_date), [0.0, 0.0])
        if t.type == TransactionKind.INCOME:
            bucket[0] += t.amount
        elif t.type == TransactionKind.EXPENSE:
            bucket[1] += t.amount
    return {m: (monthly[m][0], monthly[m][1]) for m in sorted(monthly)}


def forecast_cash_flow(
    transactions: list[Transaction],
    reference_date: date,
    months_ahead: int = 3,
) -> list[ForecastPoint]:
    """Project income, expense and savings for the next *months_ahead* months.

    Uses the average of every bucketed month, nudged by half the short-term
    trend ratio of the last three months. Confidence is a fixed constant.
    """
    monthly = bucket_monthly_cash_flow(transactions)
    if not monthly:
        return []

    income_values = [income for income, _ in monthly.values()]
    expense_values = [expense for _, expense in monthly.values()]

    avg_income = mean(income_values)
    avg_expense = mean(expense_values)
    income_trend = linear_trend_ratio(income_values[-TREND_WINDOW:])
    expense_trend = linear_trend_ratio(expense_values[-TREND_WINDOW:])

    projected_income = max(0.0, avg_income * (1 + income_trend * TREND_DAMPING))
    projected_expense = max(0.0, avg_expense * (1 + expense_trend * TREND_DAMPING))

    forecasts: list[ForecastPoint] = []
    for i in range(1, months_ahead + 1):
        target = add_months(reference_date, i)
        forecasts.append(ForecastPoint(
            month=month_key(target),
            label=month_label(target),
            projected_income=projected_income,
            projected_expense=projected_expense,
            projected_savings=projected_income - projected_expense,
            confidence=FORECAST_CONFIDENCE,
        ))
    return forecasts


# --- Financial Health ---


def score_savings_rate(income: float, expense: float) -> HealthScore:
    """Map one month's income and expense onto the health ladder."""
    if income == 0:
        return HealthScore(score=0, band="No Income")

    savings_rate = (income - expense) * 100 / income

    score, band = CRITICAL_SCORE
    for threshold, ladder_score, ladder_band in HEALTH_LADDER:
        if savings_rate >= threshold:
            score, band = ladder_score, ladder_band
            break

    return HealthScore(
        score=score,
        band=band,
        breakdown={
            "savings_rate": savings_rate,
            "expense_to_income": expense * 100 / income,
            "monthly_income": income,
            "monthly_expense": expense,
        },
    )


def score_financial_health(transactions: list[Transaction]) -> HealthScore:
    """Health score for a one-month slice of transactions.

    No transactions at all scores 0 as "No Data", which is distinct from
    a month with spending but no income ("No Income").
    """
    if not transactions:
        return HealthScore(score=0, band="No Data")

    income = sum(t.amount for t in transactions if t.type == TransactionKind.INCOME)
    expense = sum(t.amount for t in transactions if t.type == TransactionKind.EXPENSE)
    return score_savings_rate(income, expense)
