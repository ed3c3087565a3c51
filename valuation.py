#!/usr/bin/env python3
"""
Valuation — position snapshots and USD net value
================================================

Data model shared by the LP and perpetuals readers, and the one formula
this service computes:

  lp_total_usd = q_sol × spot + u_usdc

computed only when all three inputs are finite numbers. A missing input
yields ``None`` — never 0 — so an unreadable position is not reported as
a position that lost its funds.

Sign convention for perpetuals: ``signed_size`` keeps the venue's native
sign (negative = short). ``side`` and ``abs_size`` are derived from it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from lp_reader.coercion import Quantity, is_finite_number
from lp_reader.token_registry import AssetReference, POSITIONAL


def value_position(q_sol: Any, u_usdc: Any, spot: Any) -> Optional[float]:
    """
    Net USD value of a SOL/USDC position.

    Examples:
        >>> value_position(10, 200, 20)
        400
        >>> value_position(None, 200, 20) is None
        True
    """
    if not (is_finite_number(q_sol) and is_finite_number(u_usdc) and is_finite_number(spot)):
        return None
    return q_sol * spot + u_usdc


class LookupState(str, Enum):
    """Progress of one position lookup (no branching back)."""

    START = "START"
    META_RESOLVED = "META_RESOLVED"
    PRICE_RESOLVED = "PRICE_RESOLVED"
    AMOUNTS_RESOLVED = "AMOUNTS_RESOLVED"
    VALUED = "VALUED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SlotAmounts:
    """Human amounts placed in the sheet's SOL and USDC slots."""

    sol: Optional[float] = None
    usdc: Optional[float] = None


@dataclass(frozen=True)
class PositionSnapshot:
    """One LP position as read for one request. Never persisted."""

    position_id: str
    venue_id: Optional[str] = None
    owner: Optional[str] = None
    asset_x: AssetReference = AssetReference(None, None)
    asset_y: AssetReference = AssetReference(None, None)
    quantity_x: Optional[Quantity] = None
    quantity_y: Optional[Quantity] = None
    venue_price: Optional[float] = None
    reference_price: Optional[float] = None
    holdings: SlotAmounts = SlotAmounts()
    fees_claimed: SlotAmounts = SlotAmounts()
    fees_unclaimed: SlotAmounts = SlotAmounts()
    slot_assignment: str = POSITIONAL
    amounts_source: Optional[str] = None
    state: LookupState = LookupState.START
    failure: Optional[str] = None
    meta_raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def q_sol(self) -> Optional[float]:
        return self.holdings.sol

    @property
    def u_usdc(self) -> Optional[float]:
        return self.holdings.usdc

    @property
    def lp_total_usd(self) -> Optional[float]:
        return value_position(self.q_sol, self.u_usdc, self.reference_price)


@dataclass(frozen=True)
class PerpPositionSnapshot:
    """One wallet's position in one perpetual market."""

    wallet: str
    coin: str
    signed_size: float = 0.0
    entry_price: Optional[float] = None
    unrealized_pnl_usd: Optional[float] = None
    cumulative_funding_usd: Optional[float] = None
    funding_8h_usd: Optional[float] = None

    @property
    def side(self) -> str:
        if self.signed_size > 0:
            return "long"
        if self.signed_size < 0:
            return "short"
        return "flat"

    @property
    def abs_size(self) -> float:
        return abs(self.signed_size)

    @classmethod
    def flat(cls, wallet: str, coin: str) -> "PerpPositionSnapshot":
        """No open position in ``coin`` — an explicit state, not an error."""
        return cls(wallet=wallet, coin=coin)
