#!/usr/bin/env python3
"""Populate a ledger database with synthetic parties and transactions.

Creates parties (some with commission), posts a few weeks of transactions,
runs a Monday Final at the end of each week for a subset of parties, and can
render the resulting trial balance as a PDF.
"""

from __future__ import annotations

import argparse
import json
import random
import sys
from datetime import date, timedelta
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from account_ledger import persistence
from account_ledger.logging_config import configure_logging
from account_ledger.posting import post_transaction
from account_ledger.reports import render_trial_balance_pdf
from account_ledger.settlement import bulk_monday_final
from account_ledger.trial_balance import build_trial_balance

FIRST_NAMES = [
    "Rahul", "Amit", "Priya", "Sunil", "Kavita",
    "Vikram", "Neha", "Arjun", "Meera", "Ravi",
]
REMARKS = ["cash", "bank transfer", "adjustment", "", "", ""]


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate a demo ledger database.")
    p.add_argument("--db", type=Path, default=Path("data/ledger.db"))
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--parties", type=int, default=8)
    p.add_argument("--weeks", type=int, default=3)
    p.add_argument("--per-week", type=int, default=12, help="transactions per week")
    p.add_argument("--render-pdf", type=Path, default=None, help="write the trial balance PDF here")
    return p.parse_args()


def generate(args: argparse.Namespace) -> dict:
    rng = random.Random(args.seed)
    persistence.init_db(args.db)

    names = FIRST_NAMES[: args.parties]
    for i, name in enumerate(names, start=1):
        with_commission = rng.random() < 0.4
        if persistence.get_party(args.db, name) is not None:
            continue
        persistence.create_party(
            args.db,
            {
                "name": name,
                "sr_no": str(i),
                "commi_system": rng.choice(["Take", "Give"]),
                "m_commission": "With Commission" if with_commission else "No Commission",
                "rate": rng.choice([1.5, 2.0, 3.0]) if with_commission else 0.0,
                "balance_limit": rng.choice([0.0, 50000.0]),
            },
        )

    start = date.today() - timedelta(weeks=args.weeks)
    posted = 0
    settlements = 0
    for week in range(args.weeks):
        monday = start + timedelta(weeks=week)
        for _ in range(args.per_week):
            owner = rng.choice(names)
            amount = round(rng.uniform(500, 20000), 0) * rng.choice([1, -1])
            counterparty = rng.choice(names + ["", ""])
            post_transaction(
                args.db,
                party_name=owner,
                amount=amount,
                counterparty=counterparty if counterparty != owner else "",
                remarks=rng.choice(REMARKS),
                entry_date=(monday + timedelta(days=rng.randint(0, 5))).isoformat(),
                apply_commission=rng.random() < 0.5,
            )
            posted += 1
        to_settle = rng.sample(names, k=max(1, len(names) // 2))
        result = bulk_monday_final(args.db, to_settle, settled_on=(monday + timedelta(days=7)).isoformat())
        settlements += len(result["settled"])

    tb = build_trial_balance(persistence.list_party_totals(args.db))
    if args.render_pdf:
        args.render_pdf.parent.mkdir(parents=True, exist_ok=True)
        render_trial_balance_pdf(str(args.render_pdf), tb, as_of=date.today().isoformat())

    return {
        "db": str(args.db),
        "parties": len(names),
        "transactions": posted,
        "settlements": settlements,
        "credit_total": tb["credit_total"],
        "debit_total": tb["debit_total"],
    }


def main() -> None:
    configure_logging("WARNING", "console")
    print(json.dumps(generate(parse_args()), indent=2))


if __name__ == "__main__":
    main()
