from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from account_ledger.balance import CREDIT, DEBIT

WITH_COMMISSION = "With Commission"
NO_COMMISSION = "No Commission"
TAKE = "Take"
GIVE = "Give"


@dataclass
class CommissionDetails:
    transaction_amount: float
    rate: float
    direction: str
    commission_amount: int
    settlement_amount: float


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def commission_rate(party: Mapping[str, Any]) -> float:
    """Rate in percent, or 0 when the party is not set up for commission."""
    if party.get("m_commission") != WITH_COMMISSION:
        return 0.0
    try:
        rate = float(party.get("rate") or 0)
    except (TypeError, ValueError):
        return 0.0
    return rate if rate > 0 else 0.0


def has_commission(party: Mapping[str, Any]) -> bool:
    return commission_rate(party) > 0


def direction(party: Mapping[str, Any]) -> str:
    return GIVE if party.get("commi_system") == GIVE else TAKE


def calculate_commission(amount: float, party: Mapping[str, Any]) -> int:
    rate = commission_rate(party)
    if rate == 0:
        return 0
    return round_half_up(abs(amount) * rate / 100)


def commission_side(party: Mapping[str, Any]) -> str:
    """Ledger side of the owner's commission entry: Take debits, Give credits."""
    return DEBIT if direction(party) == TAKE else CREDIT


def signed_commission(amount: float, party: Mapping[str, Any]) -> int:
    """Effect of the commission on the owner's balance."""
    value = calculate_commission(amount, party)
    return -value if commission_side(party) == DEBIT else value


def commission_details(amount: float, party: Mapping[str, Any]) -> CommissionDetails:
    value = calculate_commission(amount, party)
    return CommissionDetails(
        transaction_amount=round(abs(amount), 2),
        rate=commission_rate(party),
        direction=direction(party),
        commission_amount=value,
        settlement_amount=round(abs(amount) - value, 2),
    )
