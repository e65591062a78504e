from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from typing import Any, Literal

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.responses import Response

from account_ledger import persistence
from account_ledger.commission import commission_details
from account_ledger.errors import LedgerError, NotFoundError
from account_ledger.logging_config import configure_logging
from account_ledger.parties import (
    display_name,
    ensure_unrestricted,
    ensure_valid_party,
    search_parties,
    settlement_status,
)
from account_ledger.posting import delete_entries, modify_entry, post_transaction
from account_ledger.reports import ledger_csv, trial_balance_csv, trial_balance_pdf_bytes
from account_ledger.settings import get_settings
from account_ledger.settlement import (
    bulk_monday_final,
    monday_final,
    party_ledger,
    remove_monday_final,
)
from account_ledger.trial_balance import build_trial_balance

SETTINGS = get_settings()
DB_PATH = SETTINGS.db_path

configure_logging(SETTINGS.log_level, SETTINGS.log_format)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    persistence.init_db(DB_PATH)
    logger.info("ledger_started", db_path=str(DB_PATH))
    yield


app = FastAPI(title="Account Ledger", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(_: Request, exc: LedgerError) -> JSONResponse:
    logger.warning("request_rejected", error=type(exc).__name__, detail=str(exc))
    return JSONResponse({"detail": str(exc)}, status_code=exc.status_code)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PartyRequest(CamelModel):
    name: str = Field(validation_alias=AliasChoices("name", "party_name", "partyName"))
    sr_no: str | None = None
    status: Literal["A", "R", "I"] = "A"
    commi_system: Literal["Take", "Give"] = "Take"
    balance_limit: float = Field(default=0.0, ge=0)
    m_commission: Literal["No Commission", "With Commission"] = "No Commission"
    rate: float = Field(default=0.0, ge=0)
    monday_final: Literal["Yes", "No"] = "No"
    company_name: str | None = None


class PartyUpdateRequest(CamelModel):
    sr_no: str | None = None
    status: Literal["A", "R", "I"] | None = None
    commi_system: Literal["Take", "Give"] | None = None
    balance_limit: float | None = Field(default=None, ge=0)
    m_commission: Literal["No Commission", "With Commission"] | None = None
    rate: float | None = Field(default=None, ge=0)
    monday_final: Literal["Yes", "No"] | None = None
    company_name: str | None = None


class PostEntryRequest(CamelModel):
    party_name: str
    amount: float
    counterparty: str = Field(
        default="",
        validation_alias=AliasChoices("counterparty", "involvedParty", "involved_party"),
    )
    remarks: str = ""
    entry_date: date | None = Field(default=None, validation_alias=AliasChoices("entry_date", "entryDate", "date"))
    apply_commission: bool = False


class ModifyEntryRequest(CamelModel):
    remarks: str | None = None
    amount: float | None = None
    tns_type: Literal["CR", "DR"] | None = None
    entry_date: date | None = Field(default=None, validation_alias=AliasChoices("entry_date", "entryDate", "date"))


class BulkDeleteRequest(BaseModel):
    entries: list[str | dict[str, Any]] = Field(
        validation_alias=AliasChoices("entries", "entry_ids", "entryIds", "transactionIds", "ids")
    )


class MondayFinalRequest(CamelModel):
    party_name: str
    settled_on: date | None = None


class BulkMondayFinalRequest(CamelModel):
    party_names: list[str] = Field(min_length=1)
    settled_on: date | None = None


class CommissionRequest(CamelModel):
    party_name: str
    amount: float


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


@app.get("/health")
def health() -> JSONResponse:
    return JSONResponse({"ok": True, "service": "account-ledger"})


@app.get("/api/v1/health")
def api_health() -> JSONResponse:
    return JSONResponse({"ok": True})


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

@app.get("/api/v1/parties")
def api_list_parties(
    search: str = "", exclude: str | None = None, limit: int | None = Query(default=None, ge=1)
) -> JSONResponse:
    rows = search_parties(persistence.list_parties(DB_PATH), search, exclude=exclude, limit=limit)
    parties = [
        {
            **row,
            "display_name": display_name(row),
            "settlement_status": settlement_status(row["open_entries"], row["settlements"]),
        }
        for row in rows
    ]
    return JSONResponse({"rows": parties, "count": len(parties)})


@app.post("/api/v1/parties")
def api_create_party(payload: PartyRequest) -> JSONResponse:
    data = payload.model_dump()
    data["name"] = data["name"].strip()
    ensure_valid_party(data)
    row = persistence.create_party(DB_PATH, data)
    persistence.log_audit_event(
        DB_PATH, event_type="party_created", action="create",
        entity_type="party", entity_id=row["name"], actor="user",
    )
    return JSONResponse({"ok": True, "party": row})


@app.get("/api/v1/parties/{name}")
def api_get_party(name: str) -> JSONResponse:
    row = persistence.get_party(DB_PATH, name)
    if row is None:
        raise HTTPException(status_code=404, detail="party not found")
    return JSONResponse({"party": row, "display_name": display_name(row)})


@app.put("/api/v1/parties/{name}")
def api_update_party(name: str, payload: PartyUpdateRequest) -> JSONResponse:
    current = persistence.get_party(DB_PATH, name)
    if current is None:
        raise HTTPException(status_code=404, detail="party not found")
    ensure_unrestricted(name, SETTINGS.company_name, "edit parties")
    changes = payload.model_dump(exclude_none=True)
    ensure_valid_party({**current, **changes})
    row = persistence.update_party(DB_PATH, name, changes)
    persistence.log_audit_event(
        DB_PATH, event_type="party_updated", action="update",
        entity_type="party", entity_id=name, actor="user",
        detail=", ".join(sorted(changes)),
    )
    return JSONResponse({"ok": True, "party": row})


@app.delete("/api/v1/parties/{name}")
def api_delete_party(name: str) -> JSONResponse:
    ensure_unrestricted(name, SETTINGS.company_name, "delete parties")
    if not persistence.delete_party(DB_PATH, name):
        raise HTTPException(status_code=404, detail="party not found")
    persistence.log_audit_event(
        DB_PATH, event_type="party_deleted", action="delete",
        entity_type="party", entity_id=name, actor="user",
    )
    return JSONResponse({"ok": True})


# ---------------------------------------------------------------------------
# Ledger entries
# ---------------------------------------------------------------------------

@app.get("/api/v1/ledger/{party_name}")
def api_party_ledger(party_name: str, search: str | None = None, show_old_records: bool = False) -> JSONResponse:
    """Current entries, old records, closing balance and the latest Monday Final."""
    return JSONResponse(party_ledger(DB_PATH, party_name, search=search, show_old_records=show_old_records))


@app.post("/api/v1/entries")
def api_post_entry(payload: PostEntryRequest) -> JSONResponse:
    result = post_transaction(
        DB_PATH,
        party_name=payload.party_name,
        amount=payload.amount,
        counterparty=payload.counterparty,
        remarks=payload.remarks,
        entry_date=_iso(payload.entry_date),
        apply_commission=payload.apply_commission,
        company_name=SETTINGS.company_name,
        high_value_threshold=SETTINGS.high_value_threshold,
    )
    return JSONResponse({"ok": True, **result})


@app.put("/api/v1/entries/{entry_id}")
def api_modify_entry(entry_id: str, payload: ModifyEntryRequest) -> JSONResponse:
    entry = modify_entry(
        DB_PATH,
        entry_id,
        remarks=payload.remarks,
        amount=payload.amount,
        tns_type=payload.tns_type,
        entry_date=_iso(payload.entry_date),
    )
    return JSONResponse({"ok": True, "entry": entry})


@app.delete("/api/v1/entries/{entry_id}")
def api_delete_entry(entry_id: str) -> JSONResponse:
    result = delete_entries(DB_PATH, [entry_id])
    if result["missing_ids"]:
        raise NotFoundError(f"entry {entry_id} not found")
    return JSONResponse({"ok": True, **result})


@app.post("/api/v1/entries/bulk-delete")
def api_bulk_delete(payload: BulkDeleteRequest) -> JSONResponse:
    return JSONResponse({"ok": True, **delete_entries(DB_PATH, payload.entries)})


# ---------------------------------------------------------------------------
# Monday Final
# ---------------------------------------------------------------------------

@app.get("/api/v1/monday-final")
def api_list_monday_finals(party_name: str | None = None, limit: int = 100) -> JSONResponse:
    rows = persistence.list_settlements(DB_PATH, party_name=party_name, limit=limit)
    return JSONResponse({"rows": rows, "count": len(rows)})


@app.post("/api/v1/monday-final")
def api_monday_final(payload: MondayFinalRequest) -> JSONResponse:
    row = monday_final(DB_PATH, payload.party_name, SETTINGS.company_name, _iso(payload.settled_on))
    return JSONResponse({"ok": True, "settlement": row})


@app.post("/api/v1/monday-final/bulk")
def api_bulk_monday_final(payload: BulkMondayFinalRequest) -> JSONResponse:
    result = bulk_monday_final(DB_PATH, payload.party_names, SETTINGS.company_name, _iso(payload.settled_on))
    return JSONResponse({"ok": True, "updated_count": len(result["settled"]), **result})


@app.delete("/api/v1/monday-final/{settlement_id}")
def api_remove_monday_final(settlement_id: str) -> JSONResponse:
    return JSONResponse({"ok": True, **remove_monday_final(DB_PATH, settlement_id)})


# ---------------------------------------------------------------------------
# Commission and trial balance
# ---------------------------------------------------------------------------

@app.post("/api/v1/commission/calculate")
def api_calculate_commission(payload: CommissionRequest) -> JSONResponse:
    party = persistence.get_party(DB_PATH, payload.party_name)
    if party is None:
        raise HTTPException(status_code=404, detail="party not found")
    return JSONResponse(asdict(commission_details(payload.amount, party)))


@app.get("/api/v1/trial-balance")
def api_trial_balance(party: str | None = None) -> JSONResponse:
    return JSONResponse(build_trial_balance(persistence.list_party_totals(DB_PATH), party_filter=party))


# ---------------------------------------------------------------------------
# Exports and audit
# ---------------------------------------------------------------------------

def _download(content: str | bytes, media_type: str, filename: str) -> Response:
    persistence.log_audit_event(
        DB_PATH, event_type="export", action="downloaded",
        entity_type="export", entity_id=filename, actor="user",
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/v1/exports/trial-balance.csv")
def api_export_trial_balance_csv() -> Response:
    tb = build_trial_balance(persistence.list_party_totals(DB_PATH))
    return _download(trial_balance_csv(tb), "text/csv", "trial-balance.csv")


@app.get("/api/v1/exports/trial-balance.pdf")
def api_export_trial_balance_pdf() -> Response:
    tb = build_trial_balance(persistence.list_party_totals(DB_PATH))
    pdf = trial_balance_pdf_bytes(tb, SETTINGS.company_name, date.today().isoformat())
    return _download(pdf, "application/pdf", "trial-balance.pdf")


@app.get("/api/v1/exports/ledger/{party_name}.csv")
def api_export_ledger_csv(party_name: str) -> Response:
    view = party_ledger(DB_PATH, party_name)
    entries = sorted(view["old_records"] + view["ledger_entries"], key=lambda e: e["seq"])
    return _download(ledger_csv(entries), "text/csv", f"ledger-{party_name}.csv")


@app.get("/api/v1/audit")
def api_audit_events(entity_type: str | None = None, entity_id: str | None = None, limit: int = 100) -> JSONResponse:
    rows = persistence.list_audit_events(DB_PATH, entity_type=entity_type, entity_id=entity_id, limit=limit)
    return JSONResponse({"rows": rows, "count": len(rows)})
