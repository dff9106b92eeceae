"""Finance Analytics MCP Server.

Exposes the ledger analytics (anomalies, category patterns, cash-flow
forecast, health score, recurring payments and rules, budget alerts, debt
strategy, canned advice) as MCP tools.
Each tool fetches its window from the ledger, runs a pure analyzer with
today's date passed in explicitly, and renders Markdown.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
import httpx
from dotenv import load_dotenv
from mcp.server.fastmcp import Context, FastMCP

# Ensure project root is on sys.path so `src` is importable when loaded
# directly by tools like `mcp dev` (which use importlib, not `python -m`).
_project_root = str(Path(__file__).resolve().parent.parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

load_dotenv()

from src.core.advice import (
    debt_repayment_strategy,
    investment_guidance,
    suggest_savings,
    summarize_spending,
)
from src.core.analyzers import (
    analyze_category_patterns,
    detect_anomalies,
    forecast_cash_flow,
    score_financial_health,
)
from src.core.budgets import check_budget_alerts
from src.core.dates import window_start
from src.core.errors import InvalidInputError
from src.core.ledger_client import LedgerClient, LedgerError
from src.core.recurring import advance_due_rules, detect_recurring_transactions
from src.mcp.error_handling import describe_error, handle_tool_errors
from src.mcp.formatters import (
    format_anomalies,
    format_budget_alerts,
    format_category_patterns,
    format_debt_strategy,
    format_due_rules,
    format_forecast,
    format_health_score,
    format_investment_guidance,
    format_recurring_candidates,
    format_recurring_rules,
    format_rule_saved,
    format_savings_plan,
    format_spending_summary,
)
from src.models.schemas import (
    CategoryPatternsInput,
    CreateRecurringRuleInput,
    DetectAnomaliesInput,
    DetectRecurringInput,
    ForecastInput,
    HealthScoreInput,
    LedgerFilter,
    RunRecurringRulesInput,
    SavingsSuggestionInput,
    SpendingSummaryInput,
    TransactionKind,
    UpdateRecurringRuleInput,
)

logging.basicConfig(
    level=os.environ.get("FINANCE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger("finance_mcp")

FORECAST_HISTORY_MONTHS = 6


# --- Lifespan: initialize shared resources ---


@asynccontextmanager
async def app_lifespan(server: FastMCP):
    url = os.environ.get("SUPABASE_URL", "")
    key = os.environ.get("SUPABASE_KEY", "")

    if not url or not key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_KEY environment variables are required."
        )

    client = LedgerClient(base_url=url, api_key=key)
    default_user = os.environ.get("FINANCE_USER_ID") or None

    yield {"ledger": client, "default_user": default_user}

    await client.close()


mcp = FastMCP("finance_mcp", lifespan=app_lifespan)


# --- Helpers ---


def _get_deps(ctx, user_id: str | None) -> tuple[LedgerClient, str]:
    state = ctx.request_context.lifespan_context
    resolved = user_id or state["default_user"]
    if not resolved:
        raise InvalidInputError("user_id", user_id, "pass user_id or set FINANCE_USER_ID")
    return state["ledger"], resolved


async def _fetch_window(
    ledger: LedgerClient,
    user_id: str,
    today: date,
    num_months: int,
    kind: TransactionKind | None = None,
):
    return await ledger.list_transactions(
        user_id,
        LedgerFilter(since_date=window_start(today, num_months), until_date=today, kind=kind),
    )


_READ_ONLY = {
    "readOnlyHint": True,
    "destructiveHint": False,
    "idempotentHint": True,
    "openWorldHint": True,
}


# --- Analysis Tools ---


@mcp.tool(
    name="finance_detect_anomalies",
    annotations={"title": "Detect Spending Anomalies", **_READ_ONLY},
)
@handle_tool_errors
async def finance_detect_anomalies(params: DetectAnomaliesInput, ctx: Context) -> str:
    """Flag unusually large recent expenses and likely duplicate entries."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    transactions = await _fetch_window(ledger, user_id, date.today(), params.num_months)
    findings = detect_anomalies(transactions, recent_count=params.recent_count)
    return format_anomalies(findings)


@mcp.tool(
    name="finance_category_patterns",
    annotations={"title": "Category Spending Patterns", **_READ_ONLY},
)
@handle_tool_errors
async def finance_category_patterns(params: CategoryPatternsInput, ctx: Context) -> str:
    """Average, spread and month-by-month totals for each spending category."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    today = date.today()
    transactions = await _fetch_window(
        ledger, user_id, today, params.num_months, kind=TransactionKind.EXPENSE
    )
    patterns = analyze_category_patterns(transactions, today, num_months=params.num_months)
    return format_category_patterns(patterns)


@mcp.tool(
    name="finance_forecast_cash_flow",
    annotations={"title": "Cash-Flow Forecast", **_READ_ONLY},
)
@handle_tool_errors
async def finance_forecast_cash_flow(params: ForecastInput, ctx: Context) -> str:
    """Project income, expenses and savings for the coming months."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    today = date.today()
    transactions = await _fetch_window(ledger, user_id, today, FORECAST_HISTORY_MONTHS)
    points = forecast_cash_flow(transactions, today, months_ahead=params.months_ahead)
    return format_forecast(points)


@mcp.tool(
    name="finance_health_score",
    annotations={"title": "Financial Health Score", **_READ_ONLY},
)
@handle_tool_errors
async def finance_health_score(params: HealthScoreInput, ctx: Context) -> str:
    """Score last month's savings rate from 0 to 100."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    transactions = await _fetch_window(ledger, user_id, date.today(), 1)
    return format_health_score(score_financial_health(transactions))


# --- Recurring Payments ---


@mcp.tool(
    name="finance_detect_recurring",
    annotations={"title": "Detect Recurring Payments", **_READ_ONLY},
)
@handle_tool_errors
async def finance_detect_recurring(params: DetectRecurringInput, ctx: Context) -> str:
    """Suggest recurring rules from repeated merchant/amount expenses."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    transactions = await _fetch_window(
        ledger, user_id, date.today(), params.num_months, kind=TransactionKind.EXPENSE
    )
    return format_recurring_candidates(detect_recurring_transactions(transactions))


@mcp.tool(
    name="finance_list_recurring_rules",
    annotations={"title": "List Recurring Rules", **_READ_ONLY},
)
@handle_tool_errors
async def finance_list_recurring_rules(ctx: Context, user_id: str | None = None) -> str:
    """List active recurring rules, soonest first."""
    ledger, resolved = _get_deps(ctx, user_id)
    rules = await ledger.list_recurring_rules(resolved)
    return format_recurring_rules(rules)


@mcp.tool(
    name="finance_run_recurring_rules",
    annotations={
        "title": "Run Due Recurring Rules",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
@handle_tool_errors
async def finance_run_recurring_rules(params: RunRecurringRulesInput, ctx: Context) -> str:
    """Advance every due recurring rule and create entries for auto-create rules."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    as_of = params.as_of or date.today()

    rules = await ledger.list_recurring_rules(user_id)
    result = advance_due_rules(as_of, rules)

    created = failed = conflicts = 0
    for advance in result.advances:
        # Claim the rule first; a lost race means another run handles it
        try:
            claimed = await ledger.advance_rule(
                advance.rule.id,
                advance.previous_next_occurrence,
                next_occurrence=advance.next_occurrence,
                deactivate=advance.deactivated,
            )
        except (LedgerError, httpx.HTTPError) as e:
            failed += 1
            logger.error("Failed to advance recurring rule %s: %s", advance.rule.id, describe_error(e))
            continue
        if not claimed:
            conflicts += 1
            logger.warning(
                "Recurring rule %s was already advanced past %s",
                advance.rule.id, advance.previous_next_occurrence,
            )
            continue

        if advance.materialize is None:
            continue
        try:
            await ledger.create_transaction(user_id, advance.materialize)
            created += 1
        except (LedgerError, httpx.HTTPError) as e:
            # The rule is already claimed; report it and move on to the next one
            failed += 1
            logger.error(
                "Failed to create recurring entry for rule %s: %s",
                advance.rule.id, describe_error(e),
            )

    return format_due_rules(result, created=created, failed=failed, conflicts=conflicts)


_WRITE = {
    "readOnlyHint": False,
    "destructiveHint": False,
    "idempotentHint": False,
    "openWorldHint": True,
}


@mcp.tool(
    name="finance_create_recurring_rule",
    annotations={"title": "Create Recurring Rule", **_WRITE},
)
@handle_tool_errors
async def finance_create_recurring_rule(params: CreateRecurringRuleInput, ctx: Context) -> str:
    """Save a recurring rule, e.g. to accept a detected recurring payment."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    rule = await ledger.create_rule(user_id, params)
    logger.info("Created recurring rule %s for %s", rule.id, rule.merchant)
    return format_rule_saved(rule)


@mcp.tool(
    name="finance_update_recurring_rule",
    annotations={"title": "Update Recurring Rule", **_WRITE, "idempotentHint": True},
)
@handle_tool_errors
async def finance_update_recurring_rule(params: UpdateRecurringRuleInput, ctx: Context) -> str:
    """Edit a recurring rule; set is_active=false to pause it."""
    ledger = ctx.request_context.lifespan_context["ledger"]
    rule = await ledger.update_rule(params.rule_id, params.changes())
    if rule is None:
        return f"No recurring rule with id '{params.rule_id}'."
    return format_rule_saved(rule, created=False)


@mcp.tool(
    name="finance_delete_recurring_rule",
    annotations={
        "title": "Delete Recurring Rule",
        **_WRITE,
        "destructiveHint": True,
        "idempotentHint": True,
    },
)
@handle_tool_errors
async def finance_delete_recurring_rule(ctx: Context, rule_id: str) -> str:
    """Delete a recurring rule. Transactions it already created are kept."""
    ledger = ctx.request_context.lifespan_context["ledger"]
    if not await ledger.delete_rule(rule_id):
        return f"No recurring rule with id '{rule_id}'."
    logger.info("Deleted recurring rule %s", rule_id)
    return f"Deleted recurring rule '{rule_id}'."


# --- Debt and Budgets ---


@mcp.tool(
    name="finance_debt_strategy",
    annotations={"title": "Debt Repayment Strategy", **_READ_ONLY},
)
@handle_tool_errors
async def finance_debt_strategy(ctx: Context, user_id: str | None = None) -> str:
    """Avalanche payoff order and debt-free estimate for active loans."""
    ledger, resolved = _get_deps(ctx, user_id)
    loans = await ledger.list_loans(resolved)
    return format_debt_strategy(debt_repayment_strategy(loans))


@mcp.tool(
    name="finance_budget_alerts",
    annotations={"title": "Budget Alerts", **_READ_ONLY},
)
@handle_tool_errors
async def finance_budget_alerts(ctx: Context, user_id: str | None = None) -> str:
    """Budgets whose spending this month reached their alert threshold."""
    ledger, resolved = _get_deps(ctx, user_id)
    today = date.today()
    budgets = await ledger.list_budgets(resolved)
    transactions = await ledger.list_transactions(
        resolved,
        LedgerFilter(
            since_date=today.replace(day=1), until_date=today, kind=TransactionKind.EXPENSE
        ),
    )
    return format_budget_alerts(check_budget_alerts(budgets, transactions, today), today)


# --- Advice Tools ---


@mcp.tool(
    name="finance_spending_summary",
    annotations={"title": "Spending Summary", **_READ_ONLY},
)
@handle_tool_errors
async def finance_spending_summary(params: SpendingSummaryInput, ctx: Context) -> str:
    """Summarize total spending and the biggest categories."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    transactions = await _fetch_window(
        ledger, user_id, date.today(), params.num_months, kind=TransactionKind.EXPENSE
    )
    return format_spending_summary(summarize_spending(transactions, params.num_months))


@mcp.tool(
    name="finance_savings_suggestions",
    annotations={"title": "Savings Suggestions", **_READ_ONLY},
)
@handle_tool_errors
async def finance_savings_suggestions(params: SavingsSuggestionInput, ctx: Context) -> str:
    """Suggest how to reach a monthly savings target."""
    ledger, user_id = _get_deps(ctx, params.user_id)
    transactions = await _fetch_window(
        ledger, user_id, date.today(), 1, kind=TransactionKind.EXPENSE
    )
    return format_savings_plan(suggest_savings(transactions, params.target_amount))


@mcp.tool(
    name="finance_investment_guidance",
    annotations={"title": "Investment Guidance", **_READ_ONLY},
)
@handle_tool_errors
async def finance_investment_guidance(ctx: Context, user_id: str | None = None) -> str:
    """Suggest an allocation for last month's surplus."""
    ledger, resolved = _get_deps(ctx, user_id)
    transactions = await _fetch_window(ledger, resolved, date.today(), 1)
    return format_investment_guidance(investment_guidance(transactions))


# --- Entry point ---

if __name__ == "__main__":
    mcp.run()
