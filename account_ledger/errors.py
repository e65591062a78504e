from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger rule violations."""

    status_code = 400


class ValidationError(LedgerError):
    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class RestrictedPartyError(LedgerError):
    """Raised for manual actions on automatically managed parties."""

    status_code = 403


class SettledEntryError(LedgerError):
    """Raised when a settled entry would be changed without removing its Monday Final."""

    status_code = 409


class NothingToSettleError(LedgerError):
    status_code = 409
