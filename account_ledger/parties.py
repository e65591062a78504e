"""Party naming, search, validation and the restrictions on managed parties.

Two kinds of party are maintained by the system itself: the ``Commission``
party that collects commission postings, and the company party whose name is
the configured company name. Neither may be edited, deleted, given manual
transactions or settled through a Monday Final.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

from account_ledger.commission import WITH_COMMISSION
from account_ledger.errors import RestrictedPartyError, ValidationError

COMMISSION_PARTY = "Commission"
DEFAULT_COMPANY_NAME = "Company"
ACTIVE_STATUSES = {"A", "Active"}

_DISPLAY_NAME = re.compile(r"^([^(]+)")


def party_name(party: Mapping[str, Any]) -> str:
    return str(party.get("name") or party.get("party_name") or "")


def display_name(party: Mapping[str, Any]) -> str:
    name = party_name(party)
    company = party.get("company_name")
    if company and company != name:
        return f"{name} ({company})"
    return name


def name_from_display(value: str) -> str:
    match = _DISPLAY_NAME.match(value)
    return match.group(1).strip() if match else value.strip()


def find_by_display_name(parties: Iterable[Mapping[str, Any]], value: str) -> Mapping[str, Any] | None:
    name = name_from_display(value)
    return next((p for p in parties if party_name(p) == name), None)


def search_parties(
    parties: Sequence[Mapping[str, Any]],
    term: str = "",
    exclude: str | None = None,
    limit: int | None = None,
) -> list[Mapping[str, Any]]:
    """Substring match on name or company; names starting with the term first."""
    candidates = [p for p in parties if not exclude or party_name(p) != exclude]
    needle = term.strip().lower()
    if needle:
        candidates = [
            p
            for p in candidates
            if needle in party_name(p).lower() or needle in (p.get("company_name") or "").lower()
        ]
        candidates.sort(
            key=lambda p: (not party_name(p).lower().startswith(needle), party_name(p).lower())
        )
    return candidates[:limit] if limit and limit > 0 else candidates


def is_active(party: Mapping[str, Any]) -> bool:
    return party.get("status") in ACTIVE_STATUSES


def validate_party(party: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    if not party_name(party).strip():
        errors.append("Party name is required")
    if party.get("m_commission") == WITH_COMMISSION:
        try:
            rate = float(party.get("rate") or 0)
        except (TypeError, ValueError):
            rate = 0.0
        if rate <= 0:
            errors.append("Commission rate is required when commission is enabled")
    return errors


def ensure_valid_party(party: Mapping[str, Any]) -> None:
    errors = validate_party(party)
    if errors:
        raise ValidationError("; ".join(errors))


def is_commission_party(name: str) -> bool:
    return name.strip().lower() == COMMISSION_PARTY.lower()


def is_company_party(name: str, company_name: str) -> bool:
    if not company_name or company_name == DEFAULT_COMPANY_NAME:
        return False
    return name == company_name


def is_restricted(name: str, company_name: str) -> bool:
    return is_commission_party(name) or is_company_party(name, company_name)


def ensure_unrestricted(name: str, company_name: str, action: str) -> None:
    if is_commission_party(name):
        raise RestrictedPartyError(
            f"Commission parties are automatically managed and cannot be used to {action}"
        )
    if is_company_party(name, company_name):
        raise RestrictedPartyError(
            f"Company parties are automatically managed and cannot be used to {action}"
        )


def settlement_status(open_entries: int, settlements: int) -> str:
    """``Yes`` once settled with nothing posted since, otherwise ``No``."""
    return "Yes" if settlements > 0 and open_entries == 0 else "No"
