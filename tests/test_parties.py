from __future__ import annotations

import unittest

from account_ledger.errors import RestrictedPartyError, ValidationError
from account_ledger.parties import (
    display_name,
    ensure_unrestricted,
    ensure_valid_party,
    find_by_display_name,
    is_active,
    is_company_party,
    is_restricted,
    name_from_display,
    search_parties,
    settlement_status,
    validate_party,
)

PARTIES = [
    {"name": "Rahul", "company_name": "Shubh Labh"},
    {"name": "Arjun", "company_name": None},
    {"name": "Priya", "company_name": "Rahul Traders"},
    {"name": "Meera", "company_name": "Meera"},
]


class DisplayNameTests(unittest.TestCase):
    def test_company_is_appended_when_different(self) -> None:
        self.assertEqual(display_name(PARTIES[0]), "Rahul (Shubh Labh)")
        self.assertEqual(display_name(PARTIES[3]), "Meera")
        self.assertEqual(display_name({"party_name": "Ravi"}), "Ravi")

    def test_round_trip_from_display(self) -> None:
        self.assertEqual(name_from_display("Rahul (Shubh Labh)"), "Rahul")
        self.assertEqual(name_from_display("  Arjun "), "Arjun")
        self.assertIs(find_by_display_name(PARTIES, "Rahul (Shubh Labh)"), PARTIES[0])
        self.assertIsNone(find_by_display_name(PARTIES, "Nobody"))


class SearchTests(unittest.TestCase):
    def test_prefix_matches_rank_first(self) -> None:
        names = [p["name"] for p in search_parties(PARTIES, "ra")]
        self.assertEqual(names, ["Rahul", "Meera", "Priya"])

    def test_exclude_and_limit(self) -> None:
        names = [p["name"] for p in search_parties(PARTIES, "", exclude="Rahul")]
        self.assertEqual(names, ["Arjun", "Priya", "Meera"])
        self.assertEqual(len(search_parties(PARTIES, "", limit=2)), 2)

    def test_non_positive_limit_returns_everything(self) -> None:
        self.assertEqual(len(search_parties(PARTIES, "", limit=-1)), 4)
        self.assertEqual(len(search_parties(PARTIES, "", limit=0)), 4)


class ValidationTests(unittest.TestCase):
    def test_name_required(self) -> None:
        self.assertIn("Party name is required", validate_party({"name": "  "}))

    def test_commission_needs_rate(self) -> None:
        errors = validate_party({"name": "Amit", "m_commission": "With Commission", "rate": 0})
        self.assertEqual(errors, ["Commission rate is required when commission is enabled"])
        with self.assertRaises(ValidationError):
            ensure_valid_party({"name": "Amit", "m_commission": "With Commission"})
        ensure_valid_party({"name": "Amit", "m_commission": "With Commission", "rate": 2})

    def test_active_statuses(self) -> None:
        self.assertTrue(is_active({"status": "A"}))
        self.assertFalse(is_active({"status": "I"}))
        self.assertFalse(is_active({"status": "R"}))


class RestrictionTests(unittest.TestCase):
    def test_commission_party_is_always_restricted(self) -> None:
        self.assertTrue(is_restricted("commission", "Company"))
        with self.assertRaises(RestrictedPartyError):
            ensure_unrestricted("Commission", "Company", "run Monday Final")

    def test_company_party_needs_configured_name(self) -> None:
        self.assertFalse(is_company_party("Company", "Company"))
        self.assertTrue(is_company_party("Shubh Labh", "Shubh Labh"))
        with self.assertRaises(RestrictedPartyError):
            ensure_unrestricted("Shubh Labh", "Shubh Labh", "delete parties")
        ensure_unrestricted("Rahul", "Shubh Labh", "delete parties")

    def test_settlement_status(self) -> None:
        self.assertEqual(settlement_status(open_entries=0, settlements=1), "Yes")
        self.assertEqual(settlement_status(open_entries=2, settlements=1), "No")
        self.assertEqual(settlement_status(open_entries=0, settlements=0), "No")


if __name__ == "__main__":
    unittest.main()
