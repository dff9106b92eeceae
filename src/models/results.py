"""Result dataclasses for analyzer outputs.

Derived results handed from the analytics core to the formatters and
the recurring runner. Never persisted as-is.
"""

from dataclasses import dataclass, field
from datetime import date

from src.models.schemas import AnomalyKind, Budget, Frequency, Loan, RecurringRule, Severity


@dataclass
class AnomalyFinding:
    """A transaction (or pair) that looks out of the ordinary."""
    kind: AnomalyKind
    severity: Severity
    title: str
    description: str
    amount: float
    date: date


@dataclass
class CategoryAggregate:
    """Spending statistics for one category over the lookback window."""
    category: str
    amounts: list[float]
    avg_amount: float
    std_deviation: float
    monthly_trend: list[float]   # one bucket per month, most recent last
    confidence: float            # 0..1, saturates at 10 observations


@dataclass
class ForecastPoint:
    """Projected cash flow for a single future month."""
    month: str                   # "YYYY-MM"
    label: str                   # "Nov 2026"
    projected_income: float
    projected_expense: float
    projected_savings: float
    confidence: float


@dataclass
class HealthScore:
    """Rule-based score derived from the savings rate."""
    score: int
    band: str
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass
class RecurringRuleCandidate:
    """An inferred merchant/amount pair that appears to repeat."""
    merchant: str
    amount: float
    frequency: Frequency
    start_date: date
    next_occurrence: date
    occurrences: int
    average_interval_days: float
    account_id: str | None = None
    category_id: str | None = None
    is_active: bool = True
    auto_create: bool = False


@dataclass
class MaterializeInstruction:
    """A ledger entry the caller should create for an auto-create rule."""
    rule_id: str
    merchant: str
    amount: float
    transaction_date: date
    account_id: str | None = None
    category_id: str | None = None

    @property
    def description(self) -> str:
        return f"Recurring: {self.merchant}"


@dataclass
class RuleAdvance:
    """What should happen to one due rule."""
    rule: RecurringRule
    previous_next_occurrence: date
    next_occurrence: date | None    # None when the rule was deactivated
    deactivated: bool = False
    materialize: MaterializeInstruction | None = None


@dataclass
class DueRulesResult:
    """Outcome of a single scheduler pass."""
    as_of: date
    advances: list[RuleAdvance] = field(default_factory=list)

    @property
    def triggered(self) -> list[RuleAdvance]:
        return [a for a in self.advances if not a.deactivated]

    @property
    def deactivated(self) -> list[RuleAdvance]:
        return [a for a in self.advances if a.deactivated]

    @property
    def materializations(self) -> list[MaterializeInstruction]:
        return [a.materialize for a in self.advances if a.materialize is not None]


@dataclass
class CategoryShare:
    """A category's slice of total spending."""
    category: str
    amount: float
    pct_of_total: float


@dataclass
class SpendingSummary:
    """Headline numbers for a spending period."""
    num_months: int
    total_spent: float
    transaction_count: int
    top_categories: list[CategoryShare] = field(default_factory=list)

    @property
    def biggest_category(self) -> str | None:
        return self.top_categories[0].category if self.top_categories else None


@dataclass
class SavingsPlan:
    """Canned suggestions for reaching a monthly savings target."""
    target_amount: float
    monthly_expense: float
    reduction_pct: float
    suggestions: list[str] = field(default_factory=list)


@dataclass
class InvestmentGuidance:
    """Canned allocation advice based on monthly surplus."""
    monthly_income: float
    monthly_expense: float
    monthly_savings: float
    savings_rate: float
    ready_to_invest: bool
    allocation: list[tuple[str, str]] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)


@dataclass
class DebtStrategy:
    """Avalanche-style payoff order for active loans."""
    loans: list[Loan]            # payoff order, priority first
    total_debt: float
    total_emi: float
    months_to_debt_free: int     # 0 when no EMI is recorded

    @property
    def priority(self) -> Loan:
        return self.loans[0]


@dataclass
class BudgetAlert:
    """A budget whose month-to-date spend reached its alert threshold."""
    budget: Budget
    spent: float
    percentage: float
    threshold: float

    @property
    def over_budget(self) -> bool:
        return self.percentage >= 100
