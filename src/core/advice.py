"""Canned, rule-based financial advice.

Nothing here talks to a language model: each function summarizes the
transactions it is given and picks from fixed wording.
"""

import math

from src.models.results import (
    CategoryShare,
    DebtStrategy,
    InvestmentGuidance,
    SavingsPlan,
    SpendingSummary,
)
from src.models.schemas import Loan, Transaction, TransactionKind

TOP_CATEGORY_LIMIT = 5
MIN_INVESTABLE_SAVINGS = 5000.0

SAVINGS_TIPS = [
    "Review and cancel unused subscriptions and memberships",
    "Negotiate bills (internet, mobile, insurance) quarterly",
    "Use public transport or carpool for commuting",
    "Cook at home more often instead of eating out",
]

BUILD_SAVINGS_STEPS = [
    "Focus on increasing savings to at least ₹10,000 before investing",
    "Build an emergency fund first (3-6 months of expenses)",
]

INVESTMENT_ALLOCATION = [
    ("Emergency Fund (3-6 months)", "Build first"),
    ("High-Interest Savings Account", "20-30%"),
    ("Equity Mutual Funds (SIP)", "40-50%"),
    ("Debt Mutual Funds", "20-30%"),
    ("Gold/Real Estate", "10% (long-term)"),
]

INVESTMENT_STEPS = [
    "Start a SIP in diversified equity mutual funds",
    "Consider tax-saving schemes (ELSS)",
    "Review insurance coverage",
    "Plan for long-term goals with inflation-adjusted targets",
]


def _totals(transactions: list[Transaction]) -> tuple[float, float]:
    income = sum(t.amount for t in transactions if t.type == TransactionKind.INCOME)
    expense = sum(t.amount for t in transactions if t.type == TransactionKind.EXPENSE)
    return income, expense


def summarize_spending(
    transactions: list[Transaction],
    num_months: int = 3,
) -> SpendingSummary | None:
    """Total spend and the biggest categories, or ``None`` without expenses."""
    expenses = [t for t in transactions if t.type == TransactionKind.EXPENSE]
    if not expenses:
        return None

    by_category: dict[str, float] = {}
    for t in expenses:
        by_category[t.category_name] = by_category.get(t.category_name, 0.0) + t.amount
    total = sum(by_category.values())

    ranked = sorted(by_category.items(), key=lambda kv: (-kv[1], kv[0]))
    top = [
        CategoryShare(
            category=cat,
            amount=amount,
            pct_of_total=(amount / total * 100) if total > 0 else 0.0,
        )
        for cat, amount in ranked[:TOP_CATEGORY_LIMIT]
    ]

    return SpendingSummary(
        num_months=num_months,
        total_spent=total,
        transaction_count=len(expenses),
        top_categories=top,
    )


def suggest_savings(transactions: list[Transaction], target_amount: float) -> SavingsPlan:
    """Suggestions for saving *target_amount* a month, given last month's spend."""
    _, expense = _totals(transactions)
    reduction_pct = (target_amount / expense * 100) if expense > 0 else 0.0
    first = f"Reduce discretionary spending by {reduction_pct:.0f}% (₹{target_amount:,.2f})"
    return SavingsPlan(
        target_amount=target_amount,
        monthly_expense=expense,
        reduction_pct=reduction_pct,
        suggestions=[first, *SAVINGS_TIPS],
    )


def investment_guidance(transactions: list[Transaction]) -> InvestmentGuidance:
    """Allocation advice once monthly savings clear a minimum."""
    income, expense = _totals(transactions)
    savings = income - expense
    rate = (savings * 100 / income) if income > 0 else 0.0

    if savings < MIN_INVESTABLE_SAVINGS:
        return InvestmentGuidance(
            monthly_income=income,
            monthly_expense=expense,
            monthly_savings=savings,
            savings_rate=rate,
            ready_to_invest=False,
            next_steps=list(BUILD_SAVINGS_STEPS),
        )

    return InvestmentGuidance(
        monthly_income=income,
        monthly_expense=expense,
        monthly_savings=savings,
        savings_rate=rate,
        ready_to_invest=True,
        allocation=list(INVESTMENT_ALLOCATION),
        next_steps=list(INVESTMENT_STEPS),
    )


# --- Debt ---


def _payoff_priority(loan: Loan) -> float:
    # Interest per unit of remaining balance; a loan near its end with a
    # high rate is cleared first.
    return loan.interest_rate / loan.remaining_amount


def estimate_months_to_debt_free(loans: list[Loan]) -> int:
    """Months of current EMIs needed to clear every balance, 0 without EMIs."""
    total_debt = sum(loan.remaining_amount for loan in loans)
    total_emi = sum(loan.emi_amount for loan in loans)
    if total_emi == 0:
        return 0
    return math.ceil(total_debt / total_emi)


def debt_repayment_strategy(loans: list[Loan]) -> DebtStrategy | None:
    """Order active loans for the avalanche method.

    Loans with nothing left to pay are ignored. Returns ``None`` when no
    active balance remains.
    """
    open_loans = [loan for loan in loans if loan.is_active and loan.remaining_amount > 0]
    if not open_loans:
        return None

    ordered = sorted(open_loans, key=lambda loan: (-_payoff_priority(loan), loan.name))
    return DebtStrategy(
        loans=ordered,
        total_debt=sum(loan.remaining_amount for loan in ordered),
        total_emi=sum(loan.emi_amount for loan in ordered),
        months_to_debt_free=estimate_months_to_debt_free(ordered),
    )
