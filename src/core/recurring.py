"""Recurring payment inference and due-rule scheduling.

Detection groups expenses by exact (merchant, amount), measures the gaps
between occurrences and classifies the cadence. Scheduling works out, for
rules already accepted into the rule store, which are due and what their
next occurrence becomes.

Neither operation persists anything. ``advance_due_rules`` in particular
assumes the caller writes each new next occurrence conditionally on the
previous one; two unguarded concurrent runs against the same rule could
both see the stale date and advance or materialize twice.
"""

import logging
from datetime import date

from src.core.dates import advance
from src.core.stats import mean
from src.models.results import (
    DueRulesResult,
    MaterializeInstruction,
    RecurringRuleCandidate,
    RuleAdvance,
)
from src.models.schemas import Frequency, RecurringRule, Transaction, TransactionKind

logger = logging.getLogger(__name__)

# Upper bounds (exclusive) on the average gap in days. Midpoints between
# canonical periods; kept as-is so classifications stay stable.
FREQUENCY_THRESHOLDS = [
    (2, Frequency.DAILY),
    (10, Frequency.WEEKLY),
    (20, Frequency.BIWEEKLY),
    (60, Frequency.MONTHLY),
    (120, Frequency.QUARTERLY),
]

MIN_OCCURRENCES = 2


def classify_frequency(average_gap_days: float) -> Frequency:
    """Bucket an average inter-occurrence gap into a frequency class."""
    for upper, frequency in FREQUENCY_THRESHOLDS:
        if average_gap_days < upper:
            return frequency
    return Frequency.YEARLY


def next_occurrence(last: date, frequency: Frequency) -> date:
    """One period after *last*; calendar months for monthly and longer."""
    return advance(last, frequency)


# --- Detection ---


def detect_recurring_transactions(
    transactions: list[Transaction],
) -> list[RecurringRuleCandidate]:
    """Suggest recurring rules from repeated (merchant, amount) expenses.

    Groups are emitted in the order their first transaction appears in
    *transactions*. Candidates never enable auto-create; that is the
    user's call when accepting the rule.
    """
    groups: dict[tuple[str | None, float], list[Transaction]] = {}
    for t in transactions:
        if t.type != TransactionKind.EXPENSE:
            continue
        groups.setdefault((t.merchant, t.amount), []).append(t)

    candidates: list[RecurringRuleCandidate] = []
    for (merchant, amount), txns in groups.items():
        if len(txns) < MIN_OCCURRENCES:
            continue

        txns = sorted(txns, key=lambda t: t.transaction_date)
        gaps = [
            (later.transaction_date - earlier.transaction_date).days
            for earlier, later in zip(txns, txns[1:])
        ]
        average_gap = mean(gaps)
        frequency = classify_frequency(average_gap)
        first = txns[0]

        candidates.append(RecurringRuleCandidate(
            merchant=merchant or "Unknown",
            amount=amount,
            frequency=frequency,
            start_date=first.transaction_date,
            next_occurrence=next_occurrence(txns[-1].transaction_date, frequency),
            occurrences=len(txns),
            average_interval_days=average_gap,
            account_id=first.account_id,
            category_id=first.category_id,
        ))

    return candidates


# --- Scheduling ---


def advance_due_rules(as_of: date, rules: list[RecurringRule]) -> DueRulesResult:
    """Work out what happens to every active rule due on or before *as_of*.

    - A rule whose next occurrence is past its end date is deactivated and
      nothing else happens to it.
    - An auto-create rule yields a :class:`MaterializeInstruction` dated
      *as_of*.
    - The new next occurrence is one period after the previous next
      occurrence, not after *as_of*, so a late check doesn't drift the
      schedule.

    Input rules are left untouched.
    """
    result = DueRulesResult(as_of=as_of)

    for rule in rules:
        if not rule.is_active or rule.next_occurrence > as_of:
            continue

        previous = rule.next_occurrence
        if rule.end_date is not None and previous > rule.end_date:
            logger.info("Recurring rule %s ended on %s; deactivating", rule.id, rule.end_date)
            result.advances.append(RuleAdvance(
                rule=rule,
                previous_next_occurrence=previous,
                next_occurrence=None,
                deactivated=True,
            ))
            continue

        materialize = None
        if rule.auto_create:
            materialize = MaterializeInstruction(
                rule_id=rule.id,
                merchant=rule.merchant,
                amount=rule.amount,
                transaction_date=as_of,
                account_id=rule.account_id,
                category_id=rule.category_id,
            )

        result.advances.append(RuleAdvance(
            rule=rule,
            previous_next_occurrence=previous,
            next_occurrence=next_occurrence(previous, rule.frequency),
            materialize=materialize,
        ))

    return result
