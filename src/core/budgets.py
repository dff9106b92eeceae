"""Month-to-date budget threshold checks.

Only the threshold logic lives here; delivering the alert is up to the
caller.
"""

import logging
from datetime import date

from src.models.results import BudgetAlert
from src.models.schemas import Budget, Transaction, TransactionKind

DEFAULT_ALERT_PERCENTAGE = 80.0

logger = logging.getLogger(__name__)


def budget_spend(budget: Budget, transactions: list[Transaction]) -> float:
    """Expense total counted against *budget*.

    A budget with a category only counts that category; one without a
    category counts every expense.
    """
    return sum(
        t.amount
        for t in transactions
        if t.type == TransactionKind.EXPENSE
        and (budget.category_id is None or t.category_id == budget.category_id)
    )


def check_budget_alerts(
    budgets: list[Budget],
    transactions: list[Transaction],
    reference_date: date,
) -> list[BudgetAlert]:
    """Budgets whose spend this month reached their alert percentage.

    Only transactions from the first of *reference_date*'s month up to
    *reference_date* count. Budgets with a zero limit are skipped.
    Alerts come back in input order.
    """
    month_start = reference_date.replace(day=1)
    this_month = [
        t for t in transactions if month_start <= t.transaction_date <= reference_date
    ]

    alerts = []
    for budget in budgets:
        if not budget.is_active:
            continue
        if budget.amount <= 0:
            logger.debug("Skipping budget %s with no limit", budget.id)
            continue

        spent = budget_spend(budget, this_month)
        percentage = spent * 100 / budget.amount
        threshold = budget.alert_at_percentage or DEFAULT_ALERT_PERCENTAGE
        if percentage >= threshold:
            alerts.append(BudgetAlert(
                budget=budget,
                spent=spent,
                percentage=percentage,
                threshold=threshold,
            ))
    return alerts
