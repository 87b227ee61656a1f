"""
zeclub.services.errors — Ledger Error Taxonomy
===============================================

Business-rule violations raised by the service layer.  Each carries the
HTTP status the API maps it to and an optional ``details`` payload that
is returned to the client verbatim.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for every expected, client-facing failure."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(LedgerError):
    status_code = 400


class NotFound(LedgerError):
    status_code = 404


class RewardLocked(LedgerError):
    """The member's rank or leaderboard position doesn't unlock the reward."""

    status_code = 403


class Conflict(LedgerError):
    """A state guard rejected the operation."""

    status_code = 409


class InvalidState(Conflict):
    """The target is not in the state the transition starts from."""


class InsufficientBalance(Conflict):
    def __init__(self, required: int, current: int) -> None:
        super().__init__(
            "Insufficient ZE Coins",
            {"required": required, "current": current},
        )


class OutOfStock(Conflict):
    def __init__(self, reward_name: str | None = None) -> None:
        super().__init__(
            "Reward is out of stock",
            {"reward": reward_name} if reward_name else None,
        )
