"""Errors raised by the analytics core."""

from __future__ import annotations


class InvalidInputError(ValueError):
    """Raised when upstream data is malformed (non-finite amount, bad date).

    This signals a data-integrity bug upstream, so it is raised immediately
    rather than skipped like ordinary missing history.
    """

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")
