# Overview: Typed error taxonomy shared by the ledger services and API routes.

"""
Ledger error taxonomy.

Every error carries a human message plus a `details` dict with the
structured fields (entry id, offending quantity, ...) the UI needs to render
a field-level or form-level message. Routes map each kind to a status code
via `http_status`.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger errors."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": type(self).__name__,
            "details": self.details,
        }


class ValidationError(LedgerError, ValueError):
    """400-level input problem (non-positive quantity, bad payment split, ...)."""


class NotFoundError(LedgerError, LookupError):
    """Unknown entry, transaction or khata sale."""

    http_status = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., sale already undone)."""

    http_status = 409


class InsufficientQuantityError(ConflictError):
    """Requested consumption exceeds the entry's available quantity."""

    def __init__(self, entry_id: int, requested, available):
        super().__init__(
            f"Cannot take {requested} from entry {entry_id}: only {available} available",
            details={
                "entry_id": entry_id,
                "requested": str(requested),
                "available": str(available),
            },
        )
        self.entry_id = entry_id
        self.requested = requested
        self.available = available
