from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from account_ledger import main, persistence


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.db = Path(tmp.name) / "ledger.db"
        persistence.init_db(self.db)
        patcher = mock.patch.object(main, "DB_PATH", self.db)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = TestClient(main.app)

    def _create(self, payload: dict) -> dict:
        resp = self.client.post("/api/v1/parties", json=payload)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()["party"]

    def _post(self, payload: dict) -> dict:
        resp = self.client.post("/api/v1/entries", json=payload)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def test_health(self) -> None:
        self.assertTrue(self.client.get("/health").json()["ok"])

    def test_party_crud(self) -> None:
        party = self._create({"partyName": "Rahul", "companyName": "Shubh Labh", "balanceLimit": 5000})
        self.assertEqual(party["balance_limit"], 5000)

        rows = self.client.get("/api/v1/parties", params={"search": "shubh"}).json()["rows"]
        self.assertEqual(rows[0]["display_name"], "Rahul (Shubh Labh)")
        self.assertEqual(rows[0]["settlement_status"], "No")

        resp = self.client.put("/api/v1/parties/Rahul", json={"status": "I"})
        self.assertEqual(resp.json()["party"]["status"], "I")

        self.assertEqual(self.client.delete("/api/v1/parties/Rahul").status_code, 200)
        self.assertEqual(self.client.get("/api/v1/parties/Rahul").status_code, 404)

    def test_party_search_limit_must_be_positive(self) -> None:
        self._create({"name": "Rahul"})
        self._create({"name": "Priya"})
        self.assertEqual(self.client.get("/api/v1/parties", params={"limit": -1}).status_code, 422)
        self.assertEqual(self.client.get("/api/v1/parties", params={"limit": 1}).json()["count"], 1)

    def test_party_validation(self) -> None:
        resp = self.client.post("/api/v1/parties", json={"name": "Amit", "mCommission": "With Commission"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Commission rate", resp.json()["detail"])
        self.assertEqual(self.client.post("/api/v1/parties", json={"name": "Amit", "status": "X"}).status_code, 422)

    def test_post_entry_with_commission(self) -> None:
        self._create({"name": "Amit", "mCommission": "With Commission", "rate": "2"})
        result = self._post({"partyName": "Amit", "amount": 1000, "applyCommission": True, "date": "2026-10-12"})
        self.assertEqual(result["main_entry"]["entry_date"], "2026-10-12")
        self.assertEqual(result["commission_entry"]["debit"], 20)

        ledger = self.client.get("/api/v1/ledger/Amit").json()
        self.assertEqual(ledger["closing_balance"], 980)
        self.assertEqual(ledger["summary"]["total_entries"], 2)

        calc = self.client.post("/api/v1/commission/calculate", json={"partyName": "Amit", "amount": 2500}).json()
        self.assertEqual(calc["commission_amount"], 50)
        self.assertEqual(calc["settlement_amount"], 2450)

    def test_restricted_and_unknown_parties(self) -> None:
        self.assertEqual(self.client.get("/api/v1/ledger/Nobody").status_code, 404)
        persistence.ensure_party(self.db, "Commission")
        resp = self.client.post("/api/v1/entries", json={"partyName": "Commission", "amount": 10})
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.client.delete("/api/v1/parties/Commission").status_code, 403)

    def test_monday_final_flow(self) -> None:
        self._create({"name": "Rahul"})
        first = self._post({"partyName": "Rahul", "amount": 1000})["main_entry"]
        self._post({"partyName": "Rahul", "amount": -300})

        resp = self.client.post("/api/v1/monday-final", json={"partyName": "Rahul", "settledOn": "2026-10-12"})
        self.assertEqual(resp.status_code, 200, resp.text)
        settlement = resp.json()["settlement"]
        self.assertEqual(settlement["final_balance"], 700)
        self.assertEqual(settlement["settled_on"], "2026-10-12")

        self.assertEqual(self.client.post("/api/v1/monday-final", json={"partyName": "Rahul"}).status_code, 409)
        self.assertEqual(self.client.delete(f"/api/v1/entries/{first['entry_id']}").status_code, 409)
        resp = self.client.put(f"/api/v1/entries/{first['entry_id']}", json={"amount": 5})
        self.assertEqual(resp.status_code, 409)

        rows = self.client.get("/api/v1/monday-final", params={"party_name": "Rahul"}).json()["rows"]
        self.assertEqual(len(rows), 1)

        resp = self.client.delete(f"/api/v1/monday-final/{settlement['settlement_id']}")
        self.assertEqual(resp.json()["released_count"], 2)
        self.assertEqual(self.client.delete(f"/api/v1/entries/{first['entry_id']}").status_code, 200)

    def test_bulk_monday_final(self) -> None:
        self._create({"name": "Rahul"})
        self._create({"name": "Priya"})
        self._post({"partyName": "Rahul", "amount": 100})
        result = self.client.post("/api/v1/monday-final/bulk", json={"partyNames": ["Rahul", "Priya"]}).json()
        self.assertEqual(result["updated_count"], 1)
        self.assertEqual(result["skipped"][0]["party_name"], "Priya")

    def test_bulk_delete_accepts_client_id_shapes(self) -> None:
        self._create({"name": "Rahul"})
        a = self._post({"partyName": "Rahul", "amount": 100})["main_entry"]["entry_id"]
        b = self._post({"partyName": "Rahul", "amount": 50})["main_entry"]["entry_id"]
        resp = self.client.post("/api/v1/entries/bulk-delete", json={"transactionIds": [{"_id": a}, {"ti": b}, "gone"]})
        body = resp.json()
        self.assertEqual(body["deleted_count"], 2)
        self.assertEqual(body["missing_ids"], ["gone"])
        self.assertEqual(self.client.delete("/api/v1/entries/gone").status_code, 404)

    def test_trial_balance_and_exports(self) -> None:
        self._create({"name": "Rahul"})
        self._create({"name": "Priya"})
        self._post({"partyName": "Rahul", "amount": -500, "involvedParty": "Priya"})

        tb = self.client.get("/api/v1/trial-balance").json()
        self.assertEqual(tb["credit_entries"][0]["name"], "Priya")
        self.assertEqual(tb["debit_entries"][0]["name"], "Rahul")
        self.assertEqual(tb["balance_difference"], 0)

        csv_resp = self.client.get("/api/v1/exports/trial-balance.csv")
        self.assertIn("TOTAL", csv_resp.text)
        self.assertIn("attachment", csv_resp.headers["content-disposition"])
        pdf_resp = self.client.get("/api/v1/exports/trial-balance.pdf")
        self.assertTrue(pdf_resp.content.startswith(b"%PDF"))
        ledger_resp = self.client.get("/api/v1/exports/ledger/Rahul.csv")
        self.assertEqual(len(ledger_resp.text.strip().splitlines()), 2)

        audit = self.client.get("/api/v1/audit", params={"entity_type": "export"}).json()
        self.assertEqual(audit["count"], 3)


if __name__ == "__main__":
    unittest.main()
