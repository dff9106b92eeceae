"""Ledger client for the managed backend.

Async HTTP client for the backend's PostgREST interface
(``{SUPABASE_URL}/rest/v1``). Handles authentication, error mapping and
the conditional update that keeps recurring rules from double-advancing.
"""

import logging
from datetime import date
from typing import Any, Optional

import httpx

from src.models.results import MaterializeInstruction
from src.models.schemas import (
    Budget,
    CreateRecurringRuleInput,
    LedgerFilter,
    Loan,
    RecurringRule,
    Transaction,
    TransactionKind,
)

DEFAULT_TIMEOUT = 30.0

TRANSACTION_COLUMNS = (
    "id,amount,type,merchant,account_id,category_id,"
    "transaction_date,created_at,categories(name)"
)

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for ledger backend errors."""

    def __init__(self, status_code: int, code: str, message: str, detail: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.detail = detail
        super().__init__(f"Ledger Error [{status_code}] {code}: {message}")


class LedgerClient:
    """Async client for the ledger tables."""

    def __init__(self, base_url: str, api_key: str):
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.api_key = api_key
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=DEFAULT_TIMEOUT,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any] | list[tuple[str, str]]] = None,
        json_data: Optional[Any] = None,
        returning: bool = False,
    ) -> Any:
        """Make an authenticated request and return the decoded body.

        When *returning* is ``True`` the backend is asked to echo the
        affected rows, which is how writes report what they matched.
        """
        headers = {"Prefer": "return=representation"} if returning else None
        logger.debug("%s %s %s", method, path, params)

        try:
            response = await self.client.request(
                method=method,
                url=path,
                params=params,
                json=json_data,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json() if e.response.content else {}
            except ValueError:
                # Gateways answer with HTML pages
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise LedgerError(
                status_code=e.response.status_code,
                code=str(body.get("code") or e.response.status_code),
                message=body.get("message") or e.response.reason_phrase or "unknown_error",
                detail=body.get("details") or body.get("hint") or str(e),
            ) from e
        except httpx.TimeoutException as e:
            raise LedgerError(
                status_code=408,
                code="timeout",
                message="request_timeout",
                detail="Request to the ledger timed out. Please try again.",
            ) from e

        if not response.content:
            return []
        return response.json()

    # --- Transactions ---

    async def list_transactions(
        self,
        user_id: str,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transaction]:
        """Transactions for *user_id*, newest first."""
        ledger_filter = ledger_filter or LedgerFilter()
        params: list[tuple[str, str]] = [
            ("select", TRANSACTION_COLUMNS),
            ("user_id", f"eq.{user_id}"),
            ("order", "transaction_date.desc"),
        ]
        if ledger_filter.since_date:
            params.append(("transaction_date", f"gte.{ledger_filter.since_date.isoformat()}"))
        if ledger_filter.until_date:
            params.append(("transaction_date", f"lte.{ledger_filter.until_date.isoformat()}"))
        if ledger_filter.kind:
            params.append(("type", f"eq.{ledger_filter.kind.value}"))

        rows = await self._request("GET", "/transactions", params=params)
        return [Transaction(**row) for row in rows]

    async def create_transaction(
        self,
        user_id: str,
        instruction: MaterializeInstruction,
    ) -> Transaction:
        """Write the ledger entry for a fired auto-create rule."""
        payload = {
            "user_id": user_id,
            "account_id": instruction.account_id,
            "category_id": instruction.category_id,
            "amount": instruction.amount,
            "type": TransactionKind.EXPENSE.value,
            "merchant": instruction.merchant,
            "description": instruction.description,
            "transaction_date": instruction.transaction_date.isoformat(),
            "is_recurring": True,
            "raw_data": {"recurring_rule_id": instruction.rule_id},
        }
        rows = await self._request(
            "POST",
            "/transactions",
            params={"select": TRANSACTION_COLUMNS},
            json_data=payload,
            returning=True,
        )
        return Transaction(**rows[0])

    # --- Recurring Rules ---

    async def list_recurring_rules(
        self,
        user_id: str,
        active_only: bool = True,
    ) -> list[RecurringRule]:
        """Recurring rules for *user_id*, soonest next occurrence first."""
        params: dict[str, Any] = {
            "select": "*",
            "user_id": f"eq.{user_id}",
            "order": "next_occurrence.asc",
        }
        if active_only:
            params["is_active"] = "eq.true"
        rows = await self._request("GET", "/recurring_rules", params=params)
        return [RecurringRule(**row) for row in rows]

    async def advance_rule(
        self,
        rule_id: str,
        previous_next_occurrence: date,
        next_occurrence: Optional[date] = None,
        deactivate: bool = False,
    ) -> bool:
        """Conditionally update a rule keyed on its previous next occurrence.

        Returns ``False`` when no row matched, meaning another run already
        moved the rule on and this one should not act on it.
        """
        updates: dict[str, Any] = {}
        if next_occurrence is not None:
            updates["next_occurrence"] = next_occurrence.isoformat()
        if deactivate:
            updates["is_active"] = False

        rows = await self._request(
            "PATCH",
            "/recurring_rules",
            params={
                "id": f"eq.{rule_id}",
                "next_occurrence": f"eq.{previous_next_occurrence.isoformat()}",
            },
            json_data=updates,
            returning=True,
        )
        return bool(rows)

    async def create_rule(
        self,
        user_id: str,
        rule_input: CreateRecurringRuleInput,
    ) -> RecurringRule:
        """Save a new active rule; the first due date defaults to the start date."""
        payload = rule_input.model_dump(mode="json", exclude={"user_id"})
        payload["user_id"] = user_id
        payload["next_occurrence"] = payload["next_occurrence"] or payload["start_date"]
        payload["is_active"] = True

        rows = await self._request(
            "POST", "/recurring_rules", json_data=payload, returning=True
        )
        return RecurringRule(**rows[0])

    async def update_rule(
        self,
        rule_id: str,
        updates: dict[str, Any],
    ) -> Optional[RecurringRule]:
        """Apply *updates* to a rule. Returns ``None`` when the rule doesn't exist."""
        rows = await self._request(
            "PATCH",
            "/recurring_rules",
            params={"id": f"eq.{rule_id}"},
            json_data=updates,
            returning=True,
        )
        return RecurringRule(**rows[0]) if rows else None

    async def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule. Returns ``False`` when nothing matched."""
        rows = await self._request(
            "DELETE",
            "/recurring_rules",
            params={"id": f"eq.{rule_id}"},
            returning=True,
        )
        return bool(rows)

    # --- Loans and Budgets ---

    async def list_loans(self, user_id: str, active_only: bool = True) -> list[Loan]:
        params: dict[str, Any] = {"select": "*", "user_id": f"eq.{user_id}"}
        if active_only:
            params["is_active"] = "eq.true"
        rows = await self._request("GET", "/loans", params=params)
        return [Loan(**row) for row in rows]

    async def list_budgets(self, user_id: str, active_only: bool = True) -> list[Budget]:
        params: dict[str, Any] = {
            "select": "id,name,amount,category_id,alert_at_percentage,is_active",
            "user_id": f"eq.{user_id}",
        }
        if active_only:
            params["is_active"] = "eq.true"
        rows = await self._request("GET", "/budgets", params=params)
        return [Budget(**row) for row in rows]
