"""Shared test fixtures for finance analytics tests."""

from datetime import date, datetime, timezone

from src.models.schemas import Budget, Frequency, Loan, RecurringRule, Transaction, TransactionKind


def make_transaction(
    amount: float = 450.0,
    type_: str = "expense",
    category_name: str | None = "Groceries",
    category_id: str | None = "cat-groceries",
    merchant: str | None = "BigBasket",
    txn_date: str = "2025-01-15",
    created_at: str | None = None,
    id: str | None = None,
    account_id: str | None = "acc-checking",
) -> Transaction:
    slug = (merchant or "unknown").lower().replace(" ", "-")
    return Transaction(
        id=id or f"txn-{slug}-{txn_date}-{amount:g}",
        amount=amount,
        type=TransactionKind(type_),
        category_id=category_id,
        category_name=category_name,
        merchant=merchant,
        account_id=account_id,
        transaction_date=date.fromisoformat(txn_date),
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


def make_rule(
    merchant: str = "Netflix",
    amount: float = 499.0,
    frequency: str = "monthly",
    start_date: str = "2025-01-01",
    next_occurrence: str = "2025-02-01",
    end_date: str | None = None,
    is_active: bool = True,
    auto_create: bool = False,
    category_id: str | None = "cat-subscriptions",
) -> RecurringRule:
    return RecurringRule(
        id=f"rule-{merchant.lower().replace(' ', '-')}",
        user_id="user-1",
        category_id=category_id,
        account_id="acc-checking",
        merchant=merchant,
        amount=amount,
        frequency=Frequency(frequency),
        start_date=date.fromisoformat(start_date),
        end_date=date.fromisoformat(end_date) if end_date else None,
        next_occurrence=date.fromisoformat(next_occurrence),
        is_active=is_active,
        auto_create=auto_create,
    )


def make_loan(
    name: str = "Home Loan",
    remaining: float = 1_000_000.0,
    rate: float = 8.5,
    emi: float | None = 15_000.0,
    is_active: bool = True,
) -> Loan:
    return Loan(
        id=f"loan-{name.lower().replace(' ', '-')}",
        name=name,
        remaining_amount=remaining,
        interest_rate=rate,
        emi_amount=emi,
        is_active=is_active,
    )


def make_budget(
    name: str = "Groceries",
    amount: float = 10_000.0,
    category_id: str | None = "cat-groceries",
    alert_at: float | None = None,
) -> Budget:
    return Budget(
        id=f"budget-{name.lower().replace(' ', '-')}",
        name=name,
        amount=amount,
        category_id=category_id,
        alert_at_percentage=alert_at,
    )


def ts(hour: int, minute: int = 0, day: int = 15) -> str:
    """ISO timestamp on 2025-01-<day> in UTC, for created_at values."""
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc).isoformat()
