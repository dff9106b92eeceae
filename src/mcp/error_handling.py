"""Turn exceptions raised inside finance tools into readable replies.

MCP tools must return ``str``, never raise, so every tool is wrapped in
:func:`handle_tool_errors`. :func:`describe_error` is the single mapping
from exception to message and is also used by the recurring-rule runner
when it reports per-rule failures.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

import httpx
from pydantic import ValidationError

from src.core.errors import InvalidInputError
from src.core.ledger_client import LedgerError

logger = logging.getLogger("finance_mcp")

_LEDGER_HINTS = {
    401: "Check SUPABASE_KEY; the ledger rejected the credentials.",
    403: "The key in SUPABASE_KEY is not allowed to read this data.",
    404: "The ledger table or row does not exist.",
    408: "The ledger is slow right now. Please try again.",
}

MAX_FIELDS_LISTED = 3


def _validation_fields(e: ValidationError) -> str:
    names = []
    for err in e.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "input"
        if loc not in names:
            names.append(loc)
    shown = ", ".join(names[:MAX_FIELDS_LISTED])
    if len(names) > MAX_FIELDS_LISTED:
        shown += f" (+{len(names) - MAX_FIELDS_LISTED} more)"
    return shown


def describe_error(e: Exception) -> str:
    if isinstance(e, LedgerError):
        text = f"Ledger error: {e.message} ({e.detail})"
        hint = _LEDGER_HINTS.get(e.status_code)
        return f"{text} {hint}" if hint else text
    if isinstance(e, InvalidInputError):
        return f"Invalid input: {e}"
    if isinstance(e, httpx.ConnectError):
        return "Cannot reach the ledger. Check SUPABASE_URL and your network connection."
    if isinstance(e, httpx.TimeoutException):
        return "Request to the ledger timed out. Please try again."
    if isinstance(e, ValidationError):
        return (
            f"Invalid data: {e.error_count()} validation error(s) in "
            f"{_validation_fields(e)}."
        )
    return f"Unexpected error: {type(e).__name__}: {e}"


def handle_tool_errors(fn: Callable) -> Callable:
    """Wrap an async tool so failures come back as a message string."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except (LedgerError, httpx.ConnectError, httpx.TimeoutException) as e:
            logger.warning("Ledger call failed in %s: %s", fn.__name__, e)
            return describe_error(e)
        except (InvalidInputError, ValidationError) as e:
            logger.info("Rejected input in %s: %s", fn.__name__, e)
            return describe_error(e)
        except Exception as e:
            logger.exception("Unexpected error in tool %s", fn.__name__)
            return describe_error(e)

    return wrapper
