#!/usr/bin/env python3
"""
Perpetuals Reader — Hyperliquid price, funding and position snapshot
====================================================================

Flow per request (``GET /hl/{wallet}``), three independent calls:
  1. allMids             → mid price (normal path)
  2. metaAndAssetCtxs    → funding rate; price fallback (midPx, else markPx)
  3. clearinghouseState  → size, entry, unrealized P&L, funding of ``coin``

Price and funding failures degrade to ``null``; a failed account lookup
fails the request. A wallet with no position in ``coin`` is flat
(``signed_size = 0``), not an error.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lp_reader.coercion import coerce_float
from lp_reader.errors import InvalidInputError, LpReaderError
from lp_reader.hyperliquid_client import (
    HyperliquidClient,
    funding_from_asset_ctx,
    locate_asset_ctx,
    mid_from_all_mids,
    price_from_asset_ctx,
)
from lp_reader.schema_aliases import HYPERLIQUID_V1
from valuation import PerpPositionSnapshot

logger = logging.getLogger(__name__)

PRICE_SOURCE_MIDS = "allMids"
PRICE_SOURCE_CTX = "metaAndAssetCtxs"

# Marks a payload the caller has not fetched (``None`` is a valid body)
NOT_FETCHED = object()


def normalize_coin(coin: Optional[str], default: str = "SOL") -> str:
    return (coin or default).strip().upper() or default


def _cumulative_funding(position: dict) -> Optional[float]:
    value = HYPERLIQUID_V1.pick(position, "cum_funding")
    if isinstance(value, dict):
        value = HYPERLIQUID_V1.pick(value, "cum_funding_nested")
    return coerce_float(value)


def extract_perp_position(state: Any, wallet: str, coin: str) -> PerpPositionSnapshot:
    """
    Pick ``coin`` out of a ``clearinghouseState`` payload.

    Symbol match is case-insensitive; the first matching entry wins.
    """
    entries = HYPERLIQUID_V1.pick(state, "asset_positions") if isinstance(state, dict) else None
    if not isinstance(entries, list):
        return PerpPositionSnapshot.flat(wallet, coin)

    wanted = coin.strip().upper()
    for entry in entries:
        position = HYPERLIQUID_V1.pick(entry, "position") if isinstance(entry, dict) else None
        if not isinstance(position, dict):
            continue
        symbol = HYPERLIQUID_V1.pick(position, "coin")
        if symbol is None or str(symbol).strip().upper() != wanted:
            continue
        size = coerce_float(HYPERLIQUID_V1.pick(position, "size"))
        return PerpPositionSnapshot(
            wallet=wallet,
            coin=wanted,
            signed_size=size if size is not None else 0.0,
            entry_price=coerce_float(HYPERLIQUID_V1.pick(position, "entry_px")),
            unrealized_pnl_usd=coerce_float(HYPERLIQUID_V1.pick(position, "unrealized_pnl")),
            cumulative_funding_usd=_cumulative_funding(position),
            funding_8h_usd=coerce_float(HYPERLIQUID_V1.pick(position, "funding_8h")),
        )
    return PerpPositionSnapshot.flat(wallet, coin)


@dataclass
class PerpReport:
    """Everything ``/hl`` reports for one wallet/coin pair."""

    position: PerpPositionSnapshot
    price: Optional[float] = None
    price_source: Optional[str] = None
    funding_rate: Optional[float] = None
    errors: List[str] = field(default_factory=list)


class PerpReader:
    """
    Usage:
        reader = PerpReader(HyperliquidClient(settings))
        report = await reader.read("0xWALLET", "SOL")
    """

    def __init__(self, client: HyperliquidClient):
        self.client = client

    async def resolve_perp_position(self, wallet: str, coin: str) -> PerpPositionSnapshot:
        wallet = (wallet or "").strip()
        if not wallet:
            raise InvalidInputError("missing wallet")
        coin = normalize_coin(coin)
        state = await self.client.clearinghouse_state(wallet)
        return extract_perp_position(state, wallet, coin)

    async def resolve_coin_price(
        self, coin: str, mids: Any = NOT_FETCHED, meta_and_ctxs: Any = NOT_FETCHED
    ) -> tuple:
        """
        Two-tier price lookup. Returns ``(price, source)``.

        The bulk ``allMids`` map is the normal path; the universe/context
        pair is consulted only when the symbol is missing there. Payloads
        already fetched by the caller are reused.
        """
        coin = normalize_coin(coin)
        if mids is NOT_FETCHED:
            mids = await self.client.all_mids()
        price = mid_from_all_mids(mids, coin)
        if price is not None:
            return price, PRICE_SOURCE_MIDS

        if meta_and_ctxs is NOT_FETCHED:
            meta_and_ctxs = await self.client.meta_and_asset_ctxs()
        _, ctx = locate_asset_ctx(meta_and_ctxs, coin)
        price = price_from_asset_ctx(ctx)
        return price, (PRICE_SOURCE_CTX if price is not None else None)

    async def read(self, wallet: str, coin: str) -> PerpReport:
        """
        Fan out the three lookups concurrently and assemble the report.

        Raises:
            InvalidInputError: Empty wallet.
            UpstreamUnavailableError: Account state could not be fetched.
        """
        wallet = (wallet or "").strip()
        if not wallet:
            raise InvalidInputError("missing wallet")
        coin = normalize_coin(coin)

        mids, meta_and_ctxs, position = await asyncio.gather(
            self.client.all_mids(),
            self.client.meta_and_asset_ctxs(),
            self.resolve_perp_position(wallet, coin),
            return_exceptions=True,
        )
        for result in (mids, meta_and_ctxs, position):
            if isinstance(result, BaseException) and not isinstance(result, LpReaderError):
                raise result
        if isinstance(position, LpReaderError):
            raise position

        errors: List[str] = []
        if isinstance(mids, LpReaderError):
            errors.append(f"allMids: {mids.message}")
            mids = {}
        if isinstance(meta_and_ctxs, LpReaderError):
            errors.append(f"metaAndAssetCtxs: {meta_and_ctxs.message}")
            meta_and_ctxs = []

        price, source = await self.resolve_coin_price(coin, mids, meta_and_ctxs)
        _, ctx = locate_asset_ctx(meta_and_ctxs, coin)

        for err in errors:
            logger.warning("Hyperliquid lookup degraded for %s: %s", coin, err)

        return PerpReport(
            position=position,
            price=price,
            price_source=source,
            funding_rate=funding_from_asset_ctx(ctx),
            errors=errors,
        )


def build_hl_payload(report: PerpReport) -> Dict[str, Any]:
    """JSON shape of ``GET /hl/{wallet}``."""
    pos = report.position
    return {
        "ok": True,
        "hl_price": report.price,
        "funding_rate": report.funding_rate,
        "position_sz": pos.signed_size,
        "entry_px": pos.entry_price,
        "pnl_usd": pos.unrealized_pnl_usd,
        "funding_acc_usd": pos.cumulative_funding_usd,
        "funding_8h_usd": pos.funding_8h_usd,
        "meta": {"hl_coin": pos.coin, "side": pos.side},
        "debug": {
            "source": "allMids + metaAndAssetCtxs + clearinghouseState",
            "price_source": report.price_source,
            "errors": report.errors,
        },
    }
