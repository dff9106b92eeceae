"""Markdown formatters for MCP tool responses.

Pure functions that take result objects and return human-readable Markdown strings.
"""

from __future__ import annotations

from datetime import date

from src.models.results import (
    AnomalyFinding,
    BudgetAlert,
    CategoryAggregate,
    DebtStrategy,
    DueRulesResult,
    ForecastPoint,
    HealthScore,
    InvestmentGuidance,
    RecurringRuleCandidate,
    SavingsPlan,
    SpendingSummary,
)
from src.models.schemas import RecurringRule, Severity

CURRENCY = "₹"

_SEVERITY_MARKERS = {
    Severity.HIGH: "!!",
    Severity.MEDIUM: "!",
    Severity.LOW: "i",
}


def _money(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}{CURRENCY}{abs(amount):,.2f}"


def _months(n: int) -> str:
    return "month" if n == 1 else f"{n} months"


def format_anomalies(findings: list[AnomalyFinding]) -> str:
    if not findings:
        return "No unusual activity found in your recent transactions."

    lines = [f"## Spending Alerts ({len(findings)})\n"]
    for f in findings:
        marker = _SEVERITY_MARKERS[f.severity]
        lines.append(f"- [{marker}] **{f.title}** ({f.date.isoformat()})")
        lines.append(f"  {f.description}")
    return "\n".join(lines)


def format_category_patterns(patterns: list[CategoryAggregate]) -> str:
    if not patterns:
        return "Not enough spending history to find category patterns."

    lines = ["## Category Patterns\n"]
    lines.append("| Category | Avg | Std Dev | Monthly (oldest → latest) | Confidence |")
    lines.append("|---|---|---|---|---|")
    for p in patterns:
        trend = " / ".join(f"{v:,.0f}" for v in p.monthly_trend)
        lines.append(
            f"| {p.category} | {_money(p.avg_amount)} | {_money(p.std_deviation)} "
            f"| {trend} | {p.confidence:.0%} |"
        )
    return "\n".join(lines)


def format_forecast(points: list[ForecastPoint]) -> str:
    if not points:
        return "No transactions yet, so there is nothing to forecast."

    lines = ["## Cash-Flow Forecast\n"]
    lines.append("| Month | Income | Expense | Savings |")
    lines.append("|---|---|---|---|")
    for p in points:
        lines.append(
            f"| {p.label} | {_money(p.projected_income)} | {_money(p.projected_expense)} "
            f"| {_money(p.projected_savings)} |"
        )
    lines.append(f"\n_Confidence: {points[0].confidence:.0%} (trailing averages with damped trend)_")
    return "\n".join(lines)


def format_health_score(result: HealthScore) -> str:
    lines = [
        "## Financial Health\n",
        f"**Score:** {result.score}/100 ({result.band})",
    ]
    if result.band == "No Data":
        lines.append("\nNo transactions in the last month yet.")
        return "\n".join(lines)
    if result.band == "No Income":
        lines.append("\nNo income recorded in the last month, so a savings rate can't be computed.")
        return "\n".join(lines)

    b = result.breakdown
    lines.extend([
        "",
        f"- **Income:** {_money(b['monthly_income'])}",
        f"- **Expenses:** {_money(b['monthly_expense'])}",
        f"- **Savings rate:** {b['savings_rate']:.1f}%",
        f"- **Expense to income:** {b['expense_to_income']:.1f}%",
    ])
    return "\n".join(lines)


def format_recurring_candidates(candidates: list[RecurringRuleCandidate]) -> str:
    if not candidates:
        return "No recurring payments detected."

    lines = [f"## Possible Recurring Payments ({len(candidates)})\n"]
    for c in candidates:
        lines.append(
            f"- **{c.merchant}** {_money(c.amount)} {c.frequency.value} "
            f"| seen {c.occurrences}x since {c.start_date.isoformat()} "
            f"| next ~{c.next_occurrence.isoformat()}"
        )
    lines.append("\nThese are suggestions only. Confirm any you want tracked as rules.")
    return "\n".join(lines)


def format_recurring_rules(rules: list[RecurringRule]) -> str:
    if not rules:
        return "No active recurring rules."

    lines = ["## Recurring Rules\n"]
    lines.extend(f"- {_rule_line(r)}" for r in rules)
    return "\n".join(lines)


def _rule_line(rule: RecurringRule) -> str:
    auto = " (auto-create)" if rule.auto_create else ""
    ends = f" until {rule.end_date.isoformat()}" if rule.end_date else ""
    return (
        f"**{rule.merchant}** {_money(rule.amount)} {rule.frequency.value}{auto} "
        f"| next {rule.next_occurrence.isoformat()}{ends} | id `{rule.id}`"
    )


def format_rule_saved(rule: RecurringRule, created: bool = True) -> str:
    verb = "Saved" if created else "Updated"
    state = "" if rule.is_active else " (inactive)"
    return f"{verb} recurring rule{state}: {_rule_line(rule)}"


def format_due_rules(
    result: DueRulesResult,
    created: int = 0,
    failed: int = 0,
    conflicts: int = 0,
) -> str:
    if not result.advances:
        return f"No recurring rules due as of {result.as_of.isoformat()}."

    lines = [f"## Recurring Rules Processed ({result.as_of.isoformat()})\n"]
    for a in result.triggered:
        lines.append(
            f"- **{a.rule.merchant}**: {a.previous_next_occurrence.isoformat()} -> "
            f"{a.next_occurrence.isoformat()}"
        )
    for a in result.deactivated:
        lines.append(f"- **{a.rule.merchant}**: ended, rule deactivated")

    lines.append("")
    lines.append(f"**Transactions created:** {created}")
    if failed:
        lines.append(f"**Failed to process:** {failed}")
    if conflicts:
        lines.append(f"**Skipped (already advanced elsewhere):** {conflicts}")
    return "\n".join(lines)


def format_spending_summary(summary: SpendingSummary | None) -> str:
    """Narrative summary of a spending period."""
    if summary is None:
        return "Not enough transaction data to analyze spending patterns."

    top = ", ".join(
        f"{s.category}: {s.pct_of_total:.0f}%" for s in summary.top_categories
    )
    return "\n".join([
        f"Based on your last {_months(summary.num_months)} of spending:",
        f"- Total spent: {_money(summary.total_spent)}",
        f"- Transaction count: {summary.transaction_count}",
        f"- Top spending categories: {top}",
        "",
        f"Your biggest spending opportunity is on {summary.biggest_category}.",
        "Consider setting a strict budget for this category to improve your savings rate.",
    ])


def format_savings_plan(plan: SavingsPlan) -> str:
    lines = [f"To save {_money(plan.target_amount)} monthly, focus on:"]
    lines.extend(f"- {s}" for s in plan.suggestions)
    return "\n".join(lines)


def format_investment_guidance(guidance: InvestmentGuidance) -> str:
    if not guidance.ready_to_invest:
        lines = [
            f"Your current monthly savings ({_money(guidance.monthly_savings)}) "
            "are too low for investments."
        ]
        lines.extend(f"- {s}" for s in guidance.next_steps)
        return "\n".join(lines)

    lines = [
        f"## Investment Allocation for {_money(guidance.monthly_savings)} Monthly Savings\n",
        f"Savings rate: {guidance.savings_rate:.1f}%\n",
        "**Recommended portfolio** (depends on age and risk profile):",
    ]
    lines.extend(f"- {name}: {share}" for name, share in guidance.allocation)
    lines.append("\n**Next steps:**")
    lines.extend(f"{i}. {step}" for i, step in enumerate(guidance.next_steps, 1))
    return "\n".join(lines)


def format_debt_strategy(strategy: DebtStrategy | None) -> str:
    if strategy is None:
        return "No active loans found. Great job staying out of debt!"

    priority = strategy.priority
    lines = [
        "## Debt Repayment Strategy (Avalanche Method)\n",
        f'1. Priority: pay extra on "{priority.name}" ({priority.interest_rate:g}% interest)',
        "2. Continue minimum payments on the other loans",
        f"3. Total remaining debt: {_money(strategy.total_debt)}",
        "",
        "**Payoff order:**",
    ]
    lines.extend(
        f"{i}. {loan.name}: {_money(loan.remaining_amount)} at {loan.interest_rate:g}%"
        f" (EMI {_money(loan.emi_amount)})"
        for i, loan in enumerate(strategy.loans, 1)
    )
    lines.append("\nOnce a loan is cleared, redirect its payment to the next one.")
    if strategy.months_to_debt_free:
        lines.append(f"Estimated timeline: {strategy.months_to_debt_free} months at current EMIs.")
    else:
        lines.append("Add EMI amounts to your loans to estimate a payoff timeline.")
    return "\n".join(lines)


def format_budget_alerts(alerts: list[BudgetAlert], as_of: date) -> str:
    if not alerts:
        return f"All budgets are below their alert thresholds as of {as_of.isoformat()}."

    lines = [f"## Budget Alerts ({len(alerts)})\n"]
    for a in alerts:
        marker = "!!" if a.over_budget else "!"
        lines.append(
            f"- [{marker}] You've used {a.percentage:.0f}% of your {a.budget.name} budget "
            f"({_money(a.spent)} of {_money(a.budget.amount)}; alert at {a.threshold:g}%)"
        )
    return "\n".join(lines)
