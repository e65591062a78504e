from __future__ import annotations

from typing import Any, Iterable, Mapping


def build_trial_balance(
    party_totals: Iterable[Mapping[str, Any]], party_filter: str | None = None
) -> dict[str, Any]:
    """Place each party's closing balance on the credit or debit side.

    ``party_totals`` rows carry ``party_name``, ``total_credit`` and
    ``total_debit`` over all of the party's entries, settled or not.
    """
    needle = (party_filter or "").strip().lower()
    credit_entries: list[dict[str, Any]] = []
    debit_entries: list[dict[str, Any]] = []

    for row in party_totals:
        name = str(row["party_name"])
        if needle and needle not in name.lower():
            continue
        closing = round(float(row.get("total_credit") or 0) - float(row.get("total_debit") or 0), 2)
        if closing > 0:
            credit_entries.append({"id": name, "name": name, "amount": closing, "type": "credit"})
        elif closing < 0:
            debit_entries.append({"id": name, "name": name, "amount": -closing, "type": "debit"})

    credit_entries.sort(key=lambda e: e["name"].lower())
    debit_entries.sort(key=lambda e: e["name"].lower())
    credit_total = round(sum(e["amount"] for e in credit_entries), 2)
    debit_total = round(sum(e["amount"] for e in debit_entries), 2)

    return {
        "credit_entries": credit_entries,
        "debit_entries": debit_entries,
        "credit_total": credit_total,
        "debit_total": debit_total,
        "balance_difference": round(credit_total - debit_total, 2),
    }
