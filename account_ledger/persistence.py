from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from account_ledger.errors import LedgerError, ValidationError

PARTY_COLUMNS = (
    "name",
    "sr_no",
    "status",
    "commi_system",
    "balance_limit",
    "m_commission",
    "rate",
    "monday_final",
    "company_name",
)

ENTRY_COLUMNS = """
    seq, entry_id, party_name, entry_date, remarks, tns_type, credit, debit,
    counterparty, settlement_id, marker_for, created_at
"""


def utc_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def get_conn(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    with get_conn(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS parties (
                name TEXT PRIMARY KEY,
                sr_no TEXT,
                status TEXT NOT NULL DEFAULT 'A',
                commi_system TEXT NOT NULL DEFAULT 'Take',
                balance_limit REAL NOT NULL DEFAULT 0,
                m_commission TEXT NOT NULL DEFAULT 'No Commission',
                rate REAL NOT NULL DEFAULT 0,
                monday_final TEXT NOT NULL DEFAULT 'No',
                company_name TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS settlements (
                settlement_id TEXT PRIMARY KEY,
                party_name TEXT NOT NULL,
                settled_on TEXT NOT NULL,
                transaction_count INTEGER NOT NULL,
                total_credit REAL NOT NULL,
                total_debit REAL NOT NULL,
                starting_balance REAL NOT NULL,
                final_balance REAL NOT NULL,
                marker_entry_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (party_name) REFERENCES parties(name)
            );

            CREATE TABLE IF NOT EXISTS ledger_entries (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_id TEXT NOT NULL UNIQUE,
                party_name TEXT NOT NULL,
                entry_date TEXT NOT NULL,
                remarks TEXT NOT NULL,
                tns_type TEXT NOT NULL,
                credit REAL NOT NULL DEFAULT 0 CHECK (credit >= 0),
                debit REAL NOT NULL DEFAULT 0 CHECK (debit >= 0),
                counterparty TEXT,
                settlement_id TEXT,
                marker_for TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (party_name) REFERENCES parties(name),
                FOREIGN KEY (settlement_id) REFERENCES settlements(settlement_id)
            );

            CREATE INDEX IF NOT EXISTS idx_entries_party ON ledger_entries(party_name, seq);

            CREATE TABLE IF NOT EXISTS audit_events (
                event_id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                event_type TEXT NOT NULL,
                action TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                actor TEXT NOT NULL DEFAULT 'system',
                detail TEXT,
                old_value TEXT,
                new_value TEXT
            );
            """
        )


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

def create_party(db_path: Path, party: dict[str, Any]) -> dict[str, Any]:
    now = utc_now()
    values = {col: party.get(col) for col in PARTY_COLUMNS}
    with get_conn(db_path) as conn:
        try:
            conn.execute(
                """
                INSERT INTO parties(
                    name, sr_no, status, commi_system, balance_limit,
                    m_commission, rate, monday_final, company_name, created_at, updated_at
                ) VALUES (
                    :name, :sr_no, COALESCE(:status, 'A'), COALESCE(:commi_system, 'Take'),
                    COALESCE(:balance_limit, 0), COALESCE(:m_commission, 'No Commission'),
                    COALESCE(:rate, 0), COALESCE(:monday_final, 'No'), :company_name, :now, :now
                )
                """,
                {**values, "now": now},
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"party {values['name']!r} already exists") from exc
    return get_party(db_path, str(values["name"])) or {}


def ensure_party(db_path: Path, name: str) -> dict[str, Any]:
    """Return the party, creating it with defaults if missing."""
    now = utc_now()
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO parties(name, created_at, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(name) DO NOTHING
            """,
            (name, now, now),
        )
    return get_party(db_path, name) or {}


def update_party(db_path: Path, name: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    fields = {k: v for k, v in changes.items() if k in PARTY_COLUMNS and k != "name"}
    if fields:
        assignments = ", ".join(f"{col} = :{col}" for col in fields)
        with get_conn(db_path) as conn:
            conn.execute(
                f"UPDATE parties SET {assignments}, updated_at = :now WHERE name = :name",
                {**fields, "now": utc_now(), "name": name},
            )
    return get_party(db_path, name)


def get_party(db_path: Path, name: str) -> dict[str, Any] | None:
    with get_conn(db_path) as conn:
        row = conn.execute("SELECT * FROM parties WHERE name = ?", (name,)).fetchone()
        return None if row is None else dict(row)


def list_parties(db_path: Path) -> list[dict[str, Any]]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            """
            SELECT p.*,
                   COALESCE(e.open_entries, 0) AS open_entries,
                   COALESCE(s.settlements, 0) AS settlements
            FROM parties p
            LEFT JOIN (
                SELECT party_name,
                       SUM(CASE WHEN settlement_id IS NULL AND marker_for IS NULL THEN 1 ELSE 0 END)
                           AS open_entries
                FROM ledger_entries
                GROUP BY party_name
            ) e ON e.party_name = p.name
            LEFT JOIN (
                SELECT party_name, COUNT(*) AS settlements
                FROM settlements
                GROUP BY party_name
            ) s ON s.party_name = p.name
            ORDER BY p.name COLLATE NOCASE
            """
        ).fetchall()
        return [dict(row) for row in rows]


def delete_party(db_path: Path, name: str) -> bool:
    with get_conn(db_path) as conn:
        used = conn.execute(
            "SELECT COUNT(*) AS n FROM ledger_entries WHERE party_name = ?", (name,)
        ).fetchone()
        if used["n"]:
            raise ValidationError(f"party {name!r} has ledger entries and cannot be deleted")
        cur = conn.execute("DELETE FROM parties WHERE name = ?", (name,))
        return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------

def insert_entries(
    db_path: Path,
    entries: list[dict[str, Any]],
    new_parties: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Insert all entries in one transaction and return them as stored.

    Parties named in ``new_parties`` are created with defaults in the same
    transaction when missing.
    """
    now = utc_now()
    with get_conn(db_path) as conn:
        for name in new_parties or []:
            conn.execute(
                """
                INSERT INTO parties(name, created_at, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO NOTHING
                """,
                (name, now, now),
            )
        for entry in entries:
            conn.execute(
                """
                INSERT INTO ledger_entries(
                    entry_id, party_name, entry_date, remarks, tns_type,
                    credit, debit, counterparty, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry["entry_id"],
                    entry["party_name"],
                    entry["entry_date"],
                    entry["remarks"],
                    entry["tns_type"],
                    entry.get("credit", 0.0),
                    entry.get("debit", 0.0),
                    entry.get("counterparty"),
                    now,
                ),
            )
    return [get_entry(db_path, e["entry_id"]) or {} for e in entries]


def get_entry(db_path: Path, entry_id: str) -> dict[str, Any] | None:
    with get_conn(db_path) as conn:
        row = conn.execute(
            f"SELECT {ENTRY_COLUMNS} FROM ledger_entries WHERE entry_id = ?", (entry_id,)
        ).fetchone()
        return None if row is None else dict(row)


def list_entries(db_path: Path, party_name: str) -> list[dict[str, Any]]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            f"SELECT {ENTRY_COLUMNS} FROM ledger_entries WHERE party_name = ? ORDER BY seq",
            (party_name,),
        ).fetchall()
        return [dict(row) for row in rows]


def update_entry(db_path: Path, entry_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
    allowed = {"remarks", "tns_type", "credit", "debit", "entry_date"}
    fields = {k: v for k, v in changes.items() if k in allowed}
    if fields:
        assignments = ", ".join(f"{col} = :{col}" for col in fields)
        with get_conn(db_path) as conn:
            cur = conn.execute(
                f"""
                UPDATE ledger_entries SET {assignments}
                WHERE entry_id = :entry_id AND settlement_id IS NULL
                """,
                {**fields, "entry_id": entry_id},
            )
            if cur.rowcount == 0:
                raise LedgerError(f"entry {entry_id} changed concurrently")
    return get_entry(db_path, entry_id)


def delete_entries(db_path: Path, entry_ids: list[str]) -> int:
    """Delete unsettled, non-marker entries; all or nothing."""
    if not entry_ids:
        return 0
    placeholders = ",".join("?" for _ in entry_ids)
    with get_conn(db_path) as conn:
        cur = conn.execute(
            f"""
            DELETE FROM ledger_entries
            WHERE entry_id IN ({placeholders})
              AND settlement_id IS NULL
              AND marker_for IS NULL
            """,
            entry_ids,
        )
        if cur.rowcount != len(entry_ids):
            raise LedgerError("ledger changed during delete; nothing was deleted")
        return cur.rowcount


def list_party_totals(db_path: Path) -> list[dict[str, Any]]:
    with get_conn(db_path) as conn:
        rows = conn.execute(
            """
            SELECT p.name AS party_name,
                   COALESCE(SUM(e.credit), 0) AS total_credit,
                   COALESCE(SUM(e.debit), 0) AS total_debit,
                   COUNT(e.seq) AS entry_count
            FROM parties p
            LEFT JOIN ledger_entries e ON e.party_name = p.name
            GROUP BY p.name
            ORDER BY p.name COLLATE NOCASE
            """
        ).fetchall()
        return [dict(row) for row in rows]


# ---------------------------------------------------------------------------
# Settlements (Monday Final)
# ---------------------------------------------------------------------------

def save_settlement(
    db_path: Path,
    settlement: dict[str, Any],
    covered_entry_ids: list[str],
    marker: dict[str, Any],
) -> dict[str, Any]:
    """Stamp the covered entries, write the settlement row and its marker entry."""
    now = utc_now()
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO settlements(
                settlement_id, party_name, settled_on, transaction_count, total_credit,
                total_debit, starting_balance, final_balance, marker_entry_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                settlement["settlement_id"],
                settlement["party_name"],
                settlement["settled_on"],
                settlement["transaction_count"],
                settlement["total_credit"],
                settlement["total_debit"],
                settlement["starting_balance"],
                settlement["final_balance"],
                marker["entry_id"],
                now,
            ),
        )
        placeholders = ",".join("?" for _ in covered_entry_ids)
        cur = conn.execute(
            f"""
            UPDATE ledger_entries SET settlement_id = ?
            WHERE entry_id IN ({placeholders})
              AND party_name = ?
              AND settlement_id IS NULL
            """,
            (settlement["settlement_id"], *covered_entry_ids, settlement["party_name"]),
        )
        if cur.rowcount != len(covered_entry_ids):
            raise LedgerError("ledger changed during settlement; nothing was settled")
        conn.execute(
            """
            INSERT INTO ledger_entries(
                entry_id, party_name, entry_date, remarks, tns_type,
                credit, debit, marker_for, created_at
            ) VALUES (?, ?, ?, ?, ?, 0, 0, ?, ?)
            """,
            (
                marker["entry_id"],
                settlement["party_name"],
                settlement["settled_on"],
                marker["remarks"],
                marker["tns_type"],
                settlement["settlement_id"],
                now,
            ),
        )
    return get_settlement(db_path, settlement["settlement_id"]) or {}


def get_settlement(db_path: Path, settlement_id: str) -> dict[str, Any] | None:
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM settlements WHERE settlement_id = ?", (settlement_id,)
        ).fetchone()
        return None if row is None else dict(row)


def latest_settlement(db_path: Path, party_name: str) -> dict[str, Any] | None:
    with get_conn(db_path) as conn:
        row = conn.execute(
            """
            SELECT s.* FROM settlements s
            JOIN ledger_entries m ON m.entry_id = s.marker_entry_id
            WHERE s.party_name = ?
            ORDER BY m.seq DESC
            LIMIT 1
            """,
            (party_name,),
        ).fetchone()
        return None if row is None else dict(row)


def list_settlements(db_path: Path, party_name: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
    with get_conn(db_path) as conn:
        if party_name:
            rows = conn.execute(
                """
                SELECT * FROM settlements WHERE party_name = ?
                ORDER BY created_at DESC, settlement_id DESC LIMIT ?
                """,
                (party_name, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM settlements ORDER BY created_at DESC, settlement_id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]


def delete_settlement(db_path: Path, settlement_id: str) -> int:
    """Release the covered entries and drop the marker; returns the released count."""
    with get_conn(db_path) as conn:
        row = conn.execute(
            "SELECT marker_entry_id FROM settlements WHERE settlement_id = ?", (settlement_id,)
        ).fetchone()
        if row is None:
            return 0
        marker = conn.execute(
            "SELECT settlement_id FROM ledger_entries WHERE entry_id = ?",
            (row["marker_entry_id"],),
        ).fetchone()
        if marker is not None and marker["settlement_id"]:
            raise LedgerError("settlement marker is covered by a later settlement")
        cur = conn.execute(
            "UPDATE ledger_entries SET settlement_id = NULL WHERE settlement_id = ?",
            (settlement_id,),
        )
        released = cur.rowcount
        conn.execute("DELETE FROM ledger_entries WHERE entry_id = ?", (row["marker_entry_id"],))
        conn.execute("DELETE FROM settlements WHERE settlement_id = ?", (settlement_id,))
        return released


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

def log_audit_event(
    db_path: Path,
    event_type: str,
    action: str,
    entity_type: str,
    entity_id: str,
    actor: str = "system",
    detail: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO audit_events(
                created_at, event_type, action, entity_type, entity_id,
                actor, detail, old_value, new_value
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (utc_now(), event_type, action, entity_type, entity_id, actor, detail, old_value, new_value),
        )


def list_audit_events(
    db_path: Path,
    entity_type: str | None = None,
    entity_id: str | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if entity_type:
        clauses.append("entity_type = ?")
        params.append(entity_type)
    if entity_id:
        clauses.append("entity_id = ?")
        params.append(entity_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    with get_conn(db_path) as conn:
        rows = conn.execute(
            f"SELECT * FROM audit_events {where} ORDER BY event_id DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [dict(row) for row in rows]
