"""Monday Final settlement and the party ledger view built on the partition.

A Monday Final freezes every current entry of a party: the entries are
stamped with the settlement id, the settlement row records the period totals
and a zero-amount ``Monday Settlement`` marker is appended to the current
set. The marker keeps the closing balance visible as the next period's
opening line. Settled entries stay immutable until the settlement is removed,
and only a party's latest settlement can be removed.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import structlog

from account_ledger import persistence
from account_ledger.balance import (
    SETTLEMENT_MARKER_TYPE,
    MondayFinalData,
    compute_monday_final,
    is_marker,
    old_records_view,
    partition_entries,
    running_balances,
    search_entries,
    summarize,
)
from account_ledger.errors import LedgerError, NotFoundError, SettledEntryError
from account_ledger.parties import ensure_unrestricted, settlement_status

logger = structlog.get_logger(__name__)


def new_settlement_id() -> str:
    return f"{datetime.now(UTC).strftime('mf-%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


def _require_party(db_path: Path, party_name: str) -> dict[str, Any]:
    party = persistence.get_party(db_path, party_name)
    if party is None:
        raise NotFoundError(f"party {party_name!r} not found")
    return party


def monday_final(
    db_path: Path,
    party_name: str,
    company_name: str = "Company",
    settled_on: str | None = None,
) -> dict[str, Any]:
    _require_party(db_path, party_name)
    ensure_unrestricted(party_name, company_name, "run Monday Final")

    ledger = running_balances(persistence.list_entries(db_path, party_name))
    partition = partition_entries(ledger)
    previous = persistence.latest_settlement(db_path, party_name)
    opening = float(previous["final_balance"]) if previous else 0.0

    data = compute_monday_final(partition.current, starting_balance=opening)
    closing = ledger[-1]["balance"]
    if abs(closing - data.final_balance) > 0.005:
        raise LedgerError(
            f"closing balance {closing:.2f} does not match settlement total {data.final_balance:.2f}"
        )

    settlement_id = new_settlement_id()
    settlement = {
        "settlement_id": settlement_id,
        "party_name": party_name,
        "settled_on": settled_on or date.today().isoformat(),
        **asdict(data),
    }
    marker = {
        "entry_id": uuid.uuid4().hex[:16],
        "remarks": f"Monday Final Settlement {data.final_balance:,.2f}",
        "tns_type": SETTLEMENT_MARKER_TYPE,
    }
    saved = persistence.save_settlement(
        db_path, settlement, [e["entry_id"] for e in partition.current], marker
    )
    persistence.log_audit_event(
        db_path, event_type="monday_final", action="settled",
        entity_type="party", entity_id=party_name,
        detail=f"count={data.transaction_count} final={data.final_balance:.2f}",
        new_value=settlement_id,
    )
    logger.info(
        "monday_final_created",
        party=party_name,
        settlement_id=settlement_id,
        transactions=data.transaction_count,
        final_balance=data.final_balance,
    )
    return saved


def bulk_monday_final(
    db_path: Path,
    party_names: list[str],
    company_name: str = "Company",
    settled_on: str | None = None,
) -> dict[str, Any]:
    """Settle each party in turn; parties that cannot be settled are skipped with a reason."""
    settled: list[dict[str, Any]] = []
    skipped: list[dict[str, str]] = []
    for name in dict.fromkeys(party_names):
        try:
            settled.append(monday_final(db_path, name, company_name, settled_on))
        except LedgerError as exc:
            skipped.append({"party_name": name, "reason": str(exc)})
    logger.info("bulk_monday_final", settled=len(settled), skipped=len(skipped))
    return {"settled": settled, "skipped": skipped}


def remove_monday_final(db_path: Path, settlement_id: str) -> dict[str, Any]:
    settlement = persistence.get_settlement(db_path, settlement_id)
    if settlement is None:
        raise NotFoundError(f"Monday Final {settlement_id} not found")
    latest = persistence.latest_settlement(db_path, settlement["party_name"])
    if latest is None or latest["settlement_id"] != settlement_id:
        raise SettledEntryError(
            f"Monday Final {settlement_id} is covered by a later Monday Final; remove that first"
        )
    released = persistence.delete_settlement(db_path, settlement_id)
    persistence.log_audit_event(
        db_path, event_type="monday_final", action="removed",
        entity_type="party", entity_id=settlement["party_name"],
        old_value=settlement_id, detail=f"released={released}",
    )
    logger.info("monday_final_removed", settlement_id=settlement_id, released=released)
    return {"settlement": settlement, "released_count": released}


def party_ledger(
    db_path: Path,
    party_name: str,
    search: str | None = None,
    show_old_records: bool = False,
) -> dict[str, Any]:
    party = _require_party(db_path, party_name)
    ledger = running_balances(persistence.list_entries(db_path, party_name))
    partition = partition_entries(ledger)
    latest = persistence.latest_settlement(db_path, party_name)

    if latest:
        monday_final_data = MondayFinalData(
            transaction_count=latest["transaction_count"],
            total_credit=latest["total_credit"],
            total_debit=latest["total_debit"],
            starting_balance=latest["starting_balance"],
            final_balance=latest["final_balance"],
        )
    else:
        monday_final_data = MondayFinalData()

    shown = old_records_view(partition) if show_old_records else partition.current
    open_entries = sum(1 for e in partition.current if not is_marker(e))
    settlements = len(persistence.list_settlements(db_path, party_name))

    return {
        "party": party,
        "ledger_entries": partition.current,
        "old_records": partition.old_records,
        "display_entries": search_entries(shown, search),
        "closing_balance": ledger[-1]["balance"] if ledger else 0.0,
        "summary": asdict(summarize(ledger)),
        "monday_final_data": asdict(monday_final_data),
        "settlement_status": settlement_status(open_entries, settlements),
    }
