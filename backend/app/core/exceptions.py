"""Typed errors raised by the ledger and fulfillment services.

Every error carries a machine-readable ``code`` and a human-readable
message. All of them subclass ``ValueError`` so callers that only care
about "the request was rejected" can keep catching ``ValueError``.
"""

from __future__ import annotations

from typing import Any


class LedgerError(ValueError):
    code = "LEDGER_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class NotFoundError(LedgerError):
    code = "NOT_FOUND"


class InvalidAmountError(LedgerError):
    code = "INVALID_AMOUNT"


class CreditLimitExceededError(LedgerError):
    code = "CREDIT_LIMIT_EXCEEDED"


class PickingIncompleteError(LedgerError):
    code = "PICKING_INCOMPLETE"


class InvalidTransitionError(LedgerError):
    code = "INVALID_TRANSITION"


class AuthorizationPendingError(LedgerError):
    code = "AUTHORIZATION_PENDING"


class AuthorizationDeniedError(LedgerError):
    code = "AUTHORIZATION_DENIED"


class PersistenceFailure(LedgerError):
    """The store rejected a write; the surrounding unit was rolled back."""

    code = "PERSISTENCE_FAILURE"
