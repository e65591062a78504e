"""Posting, modifying and deleting ledger entries."""

from __future__ import annotations

import uuid
from datetime import date
from pathlib import Path
from typing import Any, Mapping

import structlog

from account_ledger import persistence
from account_ledger.balance import CREDIT, DEBIT, is_marker, is_settled, running_balances
from account_ledger.commission import calculate_commission, commission_side
from account_ledger.errors import NotFoundError, SettledEntryError, ValidationError
from account_ledger.parties import (
    COMMISSION_PARTY,
    ensure_unrestricted,
    is_active,
    is_restricted,
)

logger = structlog.get_logger(__name__)

ENTRY_ID_KEYS = ("entry_id", "entryId", "id", "_id", "ti")


def new_entry_id() -> str:
    return uuid.uuid4().hex[:16]


def entry_identifier(ref: str | Mapping[str, Any]) -> str | None:
    """Accept a bare id or any of the id spellings clients send."""
    if isinstance(ref, str):
        return ref.strip() or None
    for key in ENTRY_ID_KEYS:
        value = ref.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def compose_remarks(counterparty: str, remarks: str) -> str:
    if counterparty and remarks:
        return f"{counterparty}({remarks})"
    return counterparty or remarks or "Transaction"


def _entry(
    party_name: str, tns_type: str, amount: float, remarks: str, entry_date: str, counterparty: str | None
) -> dict[str, Any]:
    return {
        "entry_id": new_entry_id(),
        "party_name": party_name,
        "entry_date": entry_date,
        "remarks": remarks,
        "tns_type": tns_type,
        "credit": amount if tns_type == CREDIT else 0.0,
        "debit": amount if tns_type == DEBIT else 0.0,
        "counterparty": counterparty or None,
    }


def _opposite(tns_type: str) -> str:
    return DEBIT if tns_type == CREDIT else CREDIT


def _with_balances(db_path: Path, stored: list[dict[str, Any]]) -> list[dict[str, Any]]:
    wanted = {e["entry_id"] for e in stored}
    out: list[dict[str, Any]] = []
    for party_name in dict.fromkeys(e["party_name"] for e in stored):
        out += [
            e for e in running_balances(persistence.list_entries(db_path, party_name))
            if e["entry_id"] in wanted
        ]
    order = {e["entry_id"]: i for i, e in enumerate(stored)}
    return sorted(out, key=lambda e: order[e["entry_id"]])


def post_transaction(
    db_path: Path,
    party_name: str,
    amount: float,
    counterparty: str = "",
    remarks: str = "",
    entry_date: str | None = None,
    apply_commission: bool = False,
    company_name: str = "Company",
    high_value_threshold: float = 100000.0,
) -> dict[str, Any]:
    """Post ``amount`` to ``party_name``; positive credits the party, negative debits it.

    Depending on the counterparty and the party's commission set-up this
    writes up to four entries atomically: the main entry, a mirrored entry on
    the counterparty's ledger, and a commission entry pair on the owner and
    on the ``Commission`` party.
    """
    if amount == 0:
        raise ValidationError("Please enter a valid amount")
    party = persistence.get_party(db_path, party_name)
    if party is None:
        raise NotFoundError(f"party {party_name!r} not found")
    ensure_unrestricted(party_name, company_name, "add transactions")
    if not is_active(party):
        raise ValidationError("Cannot create transactions for inactive parties")

    counterparty = counterparty.strip()
    remarks = remarks.strip()
    entry_date = entry_date or date.today().isoformat()
    tns_type = CREDIT if amount > 0 else DEBIT
    value = round(abs(amount), 2)

    main = _entry(party_name, tns_type, value, compose_remarks(counterparty, remarks), entry_date, counterparty)
    entries = [main]

    involved = None
    counterparty_party = (
        persistence.get_party(db_path, counterparty)
        if counterparty and counterparty != party_name
        else None
    )
    if (
        counterparty_party is not None
        and not remarks
        and is_active(counterparty_party)
        and not is_restricted(counterparty, company_name)
        and counterparty.lower() not in {"company", "settlement"}
    ):
        involved = _entry(counterparty, _opposite(tns_type), value, party_name, entry_date, party_name)
        entries.append(involved)

    commission = None
    new_parties: list[str] = []
    if apply_commission:
        commission_amount = calculate_commission(value, party)
        if commission_amount > 0:
            new_parties.append(COMMISSION_PARTY)
            side = commission_side(party)
            commission = _entry(
                party_name, side, float(commission_amount), COMMISSION_PARTY, entry_date, COMMISSION_PARTY
            )
            entries.append(commission)
            entries.append(
                _entry(
                    COMMISSION_PARTY, _opposite(side), float(commission_amount), party_name, entry_date, party_name
                )
            )

    stored = _with_balances(db_path, persistence.insert_entries(db_path, entries, new_parties))
    by_id = {e["entry_id"]: e for e in stored}

    warnings: list[str] = []
    if value >= high_value_threshold:
        warnings.append(f"High value transaction of {value:,.2f} recorded; consider review")
    limit = float(party.get("balance_limit") or 0)
    closing = [e for e in stored if e["party_name"] == party_name][-1]["balance"]
    if limit > 0 and abs(closing) > limit:
        warnings.append(f"Balance {closing:,.2f} exceeds the party limit of {limit:,.2f}")

    persistence.log_audit_event(
        db_path, event_type="entry_posted", action="create",
        entity_type="party", entity_id=party_name,
        detail=f"{tns_type} {value:.2f} entries={len(entries)}",
        new_value=main["entry_id"],
    )
    logger.info(
        "transaction_posted",
        party=party_name,
        tns_type=tns_type,
        amount=value,
        entries=len(entries),
        warnings=len(warnings),
    )
    return {
        "main_entry": by_id[main["entry_id"]],
        "involved_entry": by_id[involved["entry_id"]] if involved else None,
        "commission_entry": by_id[commission["entry_id"]] if commission else None,
        "entries": stored,
        "warnings": warnings,
    }


def _current_entry(db_path: Path, entry_id: str, action: str) -> dict[str, Any]:
    entry = persistence.get_entry(db_path, entry_id)
    if entry is None:
        raise NotFoundError(f"entry {entry_id} not found")
    if is_settled(entry):
        raise SettledEntryError(
            f"entry {entry_id} is settled by Monday Final {entry['settlement_id']}; "
            f"remove that Monday Final before you {action} it"
        )
    if is_marker(entry):
        raise ValidationError(
            f"entry {entry_id} is a settlement marker; delete Monday Final {entry['marker_for']} instead"
        )
    return entry


def modify_entry(
    db_path: Path,
    entry_id: str,
    remarks: str | None = None,
    amount: float | None = None,
    tns_type: str | None = None,
    entry_date: str | None = None,
) -> dict[str, Any]:
    entry = _current_entry(db_path, entry_id, "modify")
    new_type = tns_type or entry["tns_type"]
    if new_type not in (CREDIT, DEBIT):
        raise ValidationError("tns_type must be CR or DR")
    value = abs(amount) if amount is not None else float(entry["credit"] or entry["debit"])
    if value == 0:
        raise ValidationError("Please enter a valid amount")

    changes: dict[str, Any] = {
        "tns_type": new_type,
        "credit": value if new_type == CREDIT else 0.0,
        "debit": value if new_type == DEBIT else 0.0,
    }
    if remarks is not None:
        changes["remarks"] = remarks.strip() or "Transaction"
    if entry_date:
        changes["entry_date"] = entry_date

    persistence.update_entry(db_path, entry_id, changes)
    persistence.log_audit_event(
        db_path, event_type="entry_modified", action="update",
        entity_type="entry", entity_id=entry_id,
        old_value=f"{entry['tns_type']} {entry['credit'] or entry['debit']:.2f}",
        new_value=f"{new_type} {value:.2f}",
    )
    logger.info("entry_modified", entry_id=entry_id, party=entry["party_name"])
    updated = _with_balances(db_path, [entry])
    return updated[0]


def delete_entries(db_path: Path, refs: list[str | Mapping[str, Any]]) -> dict[str, Any]:
    """Delete entries by id; unknown ids are reported, settled ones refuse the batch."""
    ids = list(dict.fromkeys(i for i in (entry_identifier(r) for r in refs) if i))
    if not ids:
        raise ValidationError("no entry ids given")

    found: list[dict[str, Any]] = []
    missing: list[str] = []
    for entry_id in ids:
        entry = persistence.get_entry(db_path, entry_id)
        if entry is None:
            missing.append(entry_id)
        else:
            found.append(entry)

    settled = [e["entry_id"] for e in found if is_settled(e)]
    if settled:
        raise SettledEntryError(
            f"entries {', '.join(settled)} are settled; remove their Monday Final first"
        )
    markers = [e["entry_id"] for e in found if is_marker(e)]
    if markers:
        raise ValidationError(
            f"entries {', '.join(markers)} are settlement markers; delete the Monday Final instead"
        )

    deleted = persistence.delete_entries(db_path, [e["entry_id"] for e in found])
    for entry in found:
        persistence.log_audit_event(
            db_path, event_type="entry_deleted", action="delete",
            entity_type="entry", entity_id=entry["entry_id"],
            detail=f"party={entry['party_name']}",
            old_value=f"{entry['tns_type']} {entry['credit'] or entry['debit']:.2f}",
        )
    logger.info("entries_deleted", deleted=deleted, missing=len(missing))
    return {
        "deleted_count": deleted,
        "deleted_ids": [e["entry_id"] for e in found],
        "missing_ids": missing,
    }
