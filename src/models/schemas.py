"""Pydantic models for ledger records and tool inputs."""

import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


UNCATEGORIZED = "Uncategorized"


# --- Enums ---

class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class AnomalyKind(str, Enum):
    SPIKE = "spike"
    DUPLICATE = "duplicate"
    PATTERN_BREAK = "pattern-break"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _check_amount(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError("amount must be a finite number")
    if value < 0:
        raise ValueError("amount must be non-negative; use the type field for direction")
    return value


# --- Ledger Records ---

class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount: float
    type: TransactionKind
    category_id: Optional[str] = None
    category_name: str = UNCATEGORIZED
    merchant: Optional[str] = None
    account_id: Optional[str] = None
    transaction_date: date
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_category(cls, data: Any) -> Any:
        # The backend embeds the joined row as {"categories": {"name": ...}}
        if isinstance(data, dict) and not data.get("category_name"):
            joined = data.get("categories")
            name = joined.get("name") if isinstance(joined, dict) else None
            data = {**data, "category_name": name or UNCATEGORIZED}
        return data

    @field_validator("amount")
    @classmethod
    def _amount_is_valid(cls, v: float) -> float:
        return _check_amount(v)


class RecurringRule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: Optional[str] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    merchant: str
    amount: float
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    next_occurrence: date
    is_active: bool = True
    auto_create: bool = False

    @field_validator("amount")
    @classmethod
    def _amount_is_valid(cls, v: float) -> float:
        return _check_amount(v)


class Loan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    remaining_amount: float
    interest_rate: float = 0.0
    emi_amount: float = 0.0
    is_active: bool = True

    @field_validator("remaining_amount", "interest_rate")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        return _check_amount(v)

    @field_validator("emi_amount", mode="before")
    @classmethod
    def _missing_emi_is_zero(cls, v: Any) -> Any:
        return 0.0 if v is None else v


class Budget(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    amount: float
    category_id: Optional[str] = None
    alert_at_percentage: Optional[float] = None
    is_active: bool = True

    @field_validator("amount")
    @classmethod
    def _amount_is_valid(cls, v: float) -> float:
        return _check_amount(v)


class LedgerFilter(BaseModel):
    """Row filter for ledger reads."""
    model_config = ConfigDict(extra="forbid")

    since_date: Optional[date] = None
    until_date: Optional[date] = None
    kind: Optional[TransactionKind] = None

    @model_validator(mode="after")
    def _range_is_ordered(self) -> "LedgerFilter":
        if self.since_date and self.until_date and self.since_date > self.until_date:
            raise ValueError("since_date must be on or before until_date")
        return self


# --- MCP Tool Input Models ---


class DetectAnomaliesInput(BaseModel):
    """Input for spending anomaly detection."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(
        None, description="Ledger user id. Defaults to FINANCE_USER_ID."
    )
    num_months: int = Field(
        default=3, ge=1, le=12, description="Months of history to compare against"
    )
    recent_count: int = Field(
        default=10, ge=1, le=100, description="How many of the latest transactions to check for spikes"
    )


class CategoryPatternsInput(BaseModel):
    """Input for per-category spending pattern analysis."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    num_months: int = Field(default=6, ge=2, le=24, description="Months of history to analyze")


class ForecastInput(BaseModel):
    """Input for cash-flow projection."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    months_ahead: int = Field(default=3, ge=1, le=12, description="Forecast horizon in months")


class HealthScoreInput(BaseModel):
    """Input for the financial health score."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")


class DetectRecurringInput(BaseModel):
    """Input for recurring payment detection."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    num_months: int = Field(default=3, ge=1, le=24, description="Months of history to scan")


class RunRecurringRulesInput(BaseModel):
    """Input for advancing due recurring rules."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    as_of: Optional[date] = Field(
        None, description="Process rules due on or before this date (YYYY-MM-DD). Defaults to today."
    )


class SpendingSummaryInput(BaseModel):
    """Input for the spending summary."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    num_months: int = Field(default=3, ge=1, le=12, description="Months of spending to summarize")


class SavingsSuggestionInput(BaseModel):
    """Input for savings suggestions."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    target_amount: float = Field(..., gt=0, description="Amount to save each month")


class CreateRecurringRuleInput(BaseModel):
    """Input for saving a recurring rule, usually an accepted detection."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    user_id: Optional[str] = Field(None, description="Ledger user id")
    merchant: str = Field(..., min_length=1, description="Merchant or payee name")
    amount: float = Field(..., gt=0, description="Amount charged each period")
    frequency: Frequency = Field(..., description="How often the payment repeats")
    start_date: date = Field(..., description="First occurrence (YYYY-MM-DD)")
    next_occurrence: Optional[date] = Field(
        None, description="Next expected charge. Defaults to start_date."
    )
    end_date: Optional[date] = Field(None, description="Last date the rule applies")
    account_id: Optional[str] = Field(None, description="Account charged")
    category_id: Optional[str] = Field(None, description="Category for created entries")
    auto_create: bool = Field(
        default=False, description="Create the ledger entry automatically when due"
    )

    @model_validator(mode="after")
    def _dates_are_ordered(self) -> "CreateRecurringRuleInput":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.next_occurrence and self.next_occurrence < self.start_date:
            raise ValueError("next_occurrence must be on or after start_date")
        return self


class UpdateRecurringRuleInput(BaseModel):
    """Input for editing a recurring rule. Only the given fields change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    rule_id: str = Field(..., min_length=1, description="Rule to edit")
    merchant: Optional[str] = Field(None, min_length=1)
    amount: Optional[float] = Field(None, gt=0)
    frequency: Optional[Frequency] = None
    next_occurrence: Optional[date] = None
    end_date: Optional[date] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    is_active: Optional[bool] = None
    auto_create: Optional[bool] = None

    @model_validator(mode="after")
    def _has_changes(self) -> "UpdateRecurringRuleInput":
        if not self.changes():
            raise ValueError("at least one field to change is required")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields to write, JSON-ready, excluding the rule id."""
        return self.model_dump(mode="json", exclude={"rule_id"}, exclude_none=True)
