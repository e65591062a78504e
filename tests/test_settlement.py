from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from account_ledger import persistence
from account_ledger.errors import NothingToSettleError, RestrictedPartyError, SettledEntryError, ValidationError
from account_ledger.posting import delete_entries, modify_entry, post_transaction
from account_ledger.settlement import (
    bulk_monday_final,
    monday_final,
    party_ledger,
    remove_monday_final,
)


class MondayFinalTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.db = Path(tmp.name) / "ledger.db"
        persistence.init_db(self.db)
        persistence.create_party(self.db, {"name": "Rahul"})
        self.first = post_transaction(self.db, "Rahul", 1000)["main_entry"]
        self.second = post_transaction(self.db, "Rahul", -300)["main_entry"]

    def test_first_settlement(self) -> None:
        settlement = monday_final(self.db, "Rahul", settled_on="2026-10-12")
        self.assertEqual(settlement["transaction_count"], 2)
        self.assertEqual(settlement["total_credit"], 1000)
        self.assertEqual(settlement["total_debit"], 300)
        self.assertEqual(settlement["starting_balance"], 0)
        self.assertEqual(settlement["final_balance"], 700)
        self.assertTrue(settlement["settlement_id"].startswith("mf-"))

        view = party_ledger(self.db, "Rahul")
        self.assertEqual(len(view["old_records"]), 2)
        self.assertEqual(len(view["ledger_entries"]), 1)
        marker = view["ledger_entries"][0]
        self.assertEqual(marker["tns_type"], "Monday Settlement")
        self.assertEqual(marker["balance"], 700)
        self.assertEqual(marker["remarks"], "Monday Final Settlement 700.00")
        self.assertEqual(view["closing_balance"], 700)
        self.assertEqual(view["monday_final_data"]["final_balance"], 700)
        self.assertEqual(view["settlement_status"], "Yes")

    def test_second_settlement_starts_from_previous_final(self) -> None:
        monday_final(self.db, "Rahul")
        post_transaction(self.db, "Rahul", 200)
        self.assertEqual(party_ledger(self.db, "Rahul")["settlement_status"], "No")

        settlement = monday_final(self.db, "Rahul")
        self.assertEqual(settlement["transaction_count"], 1)
        self.assertEqual(settlement["total_credit"], 200)
        self.assertEqual(settlement["starting_balance"], 700)
        self.assertEqual(settlement["final_balance"], 900)

        view = party_ledger(self.db, "Rahul", show_old_records=True)
        self.assertEqual(len(view["old_records"]), 4)
        self.assertEqual(len(view["display_entries"]), 5)
        self.assertEqual(view["closing_balance"], 900)

    def test_nothing_to_settle(self) -> None:
        monday_final(self.db, "Rahul")
        with self.assertRaises(NothingToSettleError):
            monday_final(self.db, "Rahul")
        persistence.create_party(self.db, {"name": "Priya"})
        with self.assertRaises(NothingToSettleError):
            monday_final(self.db, "Priya")

    def test_settled_entries_are_immutable(self) -> None:
        monday_final(self.db, "Rahul")
        with self.assertRaises(SettledEntryError):
            modify_entry(self.db, self.first["entry_id"], amount=5)
        with self.assertRaises(SettledEntryError):
            delete_entries(self.db, [self.second["entry_id"]])
        marker = party_ledger(self.db, "Rahul")["ledger_entries"][0]
        with self.assertRaises(ValidationError):
            delete_entries(self.db, [marker["entry_id"]])
        self.assertEqual(len(persistence.list_entries(self.db, "Rahul")), 3)

    def test_only_latest_settlement_can_be_removed(self) -> None:
        first = monday_final(self.db, "Rahul")
        post_transaction(self.db, "Rahul", 200)
        second = monday_final(self.db, "Rahul")

        with self.assertRaises(SettledEntryError):
            remove_monday_final(self.db, first["settlement_id"])

        result = remove_monday_final(self.db, second["settlement_id"])
        self.assertEqual(result["released_count"], 2)
        view = party_ledger(self.db, "Rahul")
        self.assertEqual(len(view["ledger_entries"]), 2)
        self.assertEqual(view["closing_balance"], 900)
        self.assertEqual(view["monday_final_data"]["final_balance"], 700)

        remove_monday_final(self.db, first["settlement_id"])
        view = party_ledger(self.db, "Rahul")
        self.assertEqual(view["old_records"], [])
        self.assertEqual([e["balance"] for e in view["ledger_entries"]], [1000, 700, 900])
        self.assertEqual(view["monday_final_data"]["transaction_count"], 0)

    def test_restricted_parties_cannot_be_settled(self) -> None:
        post_transaction(self.db, "Rahul", 100, remarks="x")
        persistence.ensure_party(self.db, "Commission")
        with self.assertRaises(RestrictedPartyError):
            monday_final(self.db, "Commission")

    def test_bulk_skips_failures(self) -> None:
        persistence.create_party(self.db, {"name": "Priya"})
        result = bulk_monday_final(self.db, ["Rahul", "Priya", "Rahul", "Nobody"])
        self.assertEqual([s["party_name"] for s in result["settled"]], ["Rahul"])
        self.assertEqual([s["party_name"] for s in result["skipped"]], ["Priya", "Nobody"])

    def test_search_filters_display_entries(self) -> None:
        post_transaction(self.db, "Rahul", 50, remarks="bank transfer")
        view = party_ledger(self.db, "Rahul", search="bank")
        self.assertEqual(len(view["display_entries"]), 1)
        self.assertEqual(len(view["ledger_entries"]), 3)


if __name__ == "__main__":
    unittest.main()
