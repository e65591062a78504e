"""CSV exports and the printable trial balance."""

from __future__ import annotations

import csv
import io
from typing import Any, BinaryIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

LEDGER_FIELDS = [
    "entry_id",
    "entry_date",
    "remarks",
    "tns_type",
    "credit",
    "debit",
    "balance",
    "counterparty",
    "settlement_id",
]


def ledger_csv(entries: list[dict[str, Any]]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=LEDGER_FIELDS, extrasaction="ignore")
    writer.writeheader()
    for entry in entries:
        writer.writerow(entry)
    return output.getvalue()


def trial_balance_csv(trial_balance: dict[str, Any]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=["name", "type", "amount"], extrasaction="ignore")
    writer.writeheader()
    for entry in trial_balance["credit_entries"] + trial_balance["debit_entries"]:
        writer.writerow(entry)
    writer.writerow({"name": "TOTAL", "type": "credit", "amount": trial_balance["credit_total"]})
    writer.writerow({"name": "TOTAL", "type": "debit", "amount": trial_balance["debit_total"]})
    return output.getvalue()


def render_trial_balance_pdf(
    out: str | BinaryIO,
    trial_balance: dict[str, Any],
    company_name: str = "Company",
    as_of: str = "",
) -> None:
    """Two side-by-side tables, credit on the left and debit on the right."""
    w, h = A4
    c = canvas.Canvas(out, pagesize=A4)
    left_x, right_x = 40, w / 2 + 10
    col_w = w / 2 - 50

    def draw_header(page_num: int) -> float:
        c.setFillColor(colors.HexColor("#1e3a5f"))
        c.rect(0, h - 60, w, 60, fill=True, stroke=False)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 15)
        c.drawString(40, h - 32, company_name)
        c.setFont("Helvetica", 9)
        c.drawString(40, h - 48, f"Final Trial Balance  {as_of}".rstrip())
        c.drawRightString(w - 40, h - 32, f"Page {page_num}")

        y = h - 85
        for x, title in ((left_x, "Credit"), (right_x, "Debit")):
            c.setFillColor(colors.HexColor("#e8edf2"))
            c.rect(x - 5, y - 4, col_w + 10, 16, fill=True, stroke=False)
            c.setFillColor(colors.HexColor("#1e3a5f"))
            c.setFont("Helvetica-Bold", 8.5)
            c.drawString(x, y, f"{title} - Party")
            c.drawRightString(x + col_w, y, "Amount")
        c.setFillColor(colors.black)
        c.setFont("Helvetica", 8.5)
        return y - 16

    credits = trial_balance["credit_entries"]
    debits = trial_balance["debit_entries"]
    page = 1
    y = draw_header(page)
    for i in range(max(len(credits), len(debits))):
        if y < 70:
            c.showPage()
            page += 1
            y = draw_header(page)
        for x, rows in ((left_x, credits), (right_x, debits)):
            if i < len(rows):
                c.drawString(x, y, str(rows[i]["name"])[:34])
                c.drawRightString(x + col_w, y, f"{rows[i]['amount']:,.2f}")
        y -= 13

    y -= 4
    c.setStrokeColor(colors.HexColor("#1e3a5f"))
    c.setLineWidth(0.8)
    c.line(30, y + 12, w - 30, y + 12)
    c.setFont("Helvetica-Bold", 9)
    c.drawString(left_x, y, "Total")
    c.drawRightString(left_x + col_w, y, f"{trial_balance['credit_total']:,.2f}")
    c.drawString(right_x, y, "Total")
    c.drawRightString(right_x + col_w, y, f"{trial_balance['debit_total']:,.2f}")
    c.drawString(left_x, y - 16, f"Difference: {trial_balance['balance_difference']:,.2f}")
    c.save()


def trial_balance_pdf_bytes(trial_balance: dict[str, Any], company_name: str = "Company", as_of: str = "") -> bytes:
    buf = io.BytesIO()
    render_trial_balance_pdf(buf, trial_balance, company_name, as_of)
    return buf.getvalue()
