"""Running balance, ledger summary and the settled/current partition.

Entries are plain dicts as returned by ``persistence``. The fields used here
are ``seq`` (posting position), ``credit``, ``debit``, ``settlement_id`` and
``marker_for`` (set on the marker entry written by a Monday Final).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from account_ledger.errors import LedgerError, NothingToSettleError

CREDIT = "CR"
DEBIT = "DR"
SETTLEMENT_MARKER_TYPE = "Monday Settlement"


@dataclass
class LedgerSummary:
    total_credit: float = 0.0
    total_debit: float = 0.0
    calculated_balance: float = 0.0
    total_entries: int = 0


@dataclass
class MondayFinalData:
    transaction_count: int = 0
    total_credit: float = 0.0
    total_debit: float = 0.0
    starting_balance: float = 0.0
    final_balance: float = 0.0


@dataclass
class LedgerPartition:
    current: list[dict[str, Any]] = field(default_factory=list)
    old_records: list[dict[str, Any]] = field(default_factory=list)


def _side(entry: Mapping[str, Any], key: str) -> float:
    value = float(entry.get(key) or 0)
    if value < 0:
        raise LedgerError(f"{key} must not be negative (entry {entry.get('entry_id')})")
    return value


def running_balances(
    entries: Iterable[Mapping[str, Any]], opening_balance: float = 0.0
) -> list[dict[str, Any]]:
    """Copy ``entries`` in order, setting ``balance`` after each one."""
    balance = opening_balance
    rows: list[dict[str, Any]] = []
    for entry in entries:
        balance += _side(entry, "credit") - _side(entry, "debit")
        row = dict(entry)
        row["balance"] = round(balance, 2)
        rows.append(row)
    return rows


def summarize(entries: Iterable[Mapping[str, Any]]) -> LedgerSummary:
    total_credit = 0.0
    total_debit = 0.0
    count = 0
    for entry in entries:
        total_credit += _side(entry, "credit")
        total_debit += _side(entry, "debit")
        count += 1
    return LedgerSummary(
        total_credit=round(total_credit, 2),
        total_debit=round(total_debit, 2),
        calculated_balance=round(total_credit - total_debit, 2),
        total_entries=count,
    )


def is_settled(entry: Mapping[str, Any]) -> bool:
    return bool(entry.get("settlement_id"))


def is_marker(entry: Mapping[str, Any]) -> bool:
    return bool(entry.get("marker_for"))


def partition_entries(entries: Iterable[Mapping[str, Any]]) -> LedgerPartition:
    """Split into current and old records, keeping posting order within each."""
    partition = LedgerPartition()
    for entry in entries:
        if is_settled(entry):
            partition.old_records.append(dict(entry))
        else:
            partition.current.append(dict(entry))
    return partition


def merge_partition(partition: LedgerPartition) -> list[dict[str, Any]]:
    """Inverse of ``partition_entries``: restore the original posting order."""
    return sorted(partition.current + partition.old_records, key=lambda e: e["seq"])


def old_records_view(partition: LedgerPartition) -> list[dict[str, Any]]:
    """Old records plus the settlement markers still in the current set."""
    markers = [e for e in partition.current if is_marker(e)]
    return sorted(partition.old_records + markers, key=lambda e: e["seq"])


def compute_monday_final(
    current: Sequence[Mapping[str, Any]], starting_balance: float = 0.0
) -> MondayFinalData:
    """Totals for settling ``current``; the previous marker does not count as a transaction."""
    transactions = [e for e in current if not is_marker(e)]
    if not transactions:
        raise NothingToSettleError("no unsettled entries to settle")
    summary = summarize(transactions)
    return MondayFinalData(
        transaction_count=summary.total_entries,
        total_credit=summary.total_credit,
        total_debit=summary.total_debit,
        starting_balance=round(starting_balance, 2),
        final_balance=round(starting_balance + summary.calculated_balance, 2),
    )


def search_entries(entries: Sequence[dict[str, Any]], term: str | None) -> list[dict[str, Any]]:
    if not term or not term.strip():
        return list(entries)
    needle = term.strip().lower()
    return [
        e
        for e in entries
        if needle in (e.get("remarks") or "").lower()
        or needle in (e.get("counterparty") or "").lower()
        or needle in (e.get("tns_type") or "").lower()
    ]
