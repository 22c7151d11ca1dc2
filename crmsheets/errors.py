"""Error types raised by the CRM data-access core.

Transport failures (googleapiclient.errors.HttpError) are not wrapped; they
propagate as-is so callers can inspect status codes.
"""
from __future__ import annotations


class CrmError(Exception):
    """Base class for all errors raised by crmsheets."""


class RecordNotFoundError(CrmError):
    """No row matched the business key a caller asked for."""


class BusinessRuleError(CrmError):
    """A user-facing rule rejected the operation (e.g. delete blocked by references)."""

    def __init__(self, message: str, code: str = "RULE_VIOLATION") -> None:
        super().__init__(message)
        self.code = code


class RowIndexUnknownError(CrmError):
    """A row position is missing or could not be parsed from an append response."""


class StaleRowRefError(CrmError):
    """A row reference no longer points at the record it was read from."""


class SheetNotFoundError(CrmError):
    """A worksheet tab name could not be resolved to a sheet id."""
