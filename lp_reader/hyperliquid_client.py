#!/usr/bin/env python3
"""
Hyperliquid Client — unified ``/info`` endpoint
================================================

Request kinds (POST JSON ``{"type": ...}``):

  allMids              → {"SOL": "85.30", "BTC": "…", …}
  metaAndAssetCtxs     → [{"universe": [{"name": "BTC"}, …]}, [{"midPx": …}, …]]
  clearinghouseState   → {"assetPositions": [{"position": {"coin", "szi", …}}], …}

``universe`` and the context list are parallel: index i of one describes
index i of the other.

Ref: https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/info-endpoint
"""

from typing import Any, Optional, Tuple

import httpx

from lp_reader.central_config import HyperliquidAPI, Settings
from lp_reader.coercion import coerce_float
from lp_reader.rpc_helpers import post_json
from lp_reader.schema_aliases import HYPERLIQUID_V1


class HyperliquidClient:
    """Thin async wrapper over the public info endpoint."""

    def __init__(self, settings: Settings = None, client: httpx.AsyncClient = None):
        settings = settings or Settings()
        self.info_url = settings.hyperliquid_info_url
        self._client = client

    async def _info(self, body: dict) -> Any:
        return await post_json(self.info_url, body, client=self._client)

    async def all_mids(self) -> Any:
        return await self._info({"type": HyperliquidAPI.ALL_MIDS})

    async def meta_and_asset_ctxs(self) -> Any:
        return await self._info({"type": HyperliquidAPI.META_AND_ASSET_CTXS})

    async def clearinghouse_state(self, user: str) -> Any:
        return await self._info({"type": HyperliquidAPI.CLEARINGHOUSE_STATE, "user": user})


def mid_from_all_mids(mids: Any, coin: str) -> Optional[float]:
    """Mid price for ``coin`` from an ``allMids`` map (exact symbol key)."""
    if not isinstance(mids, dict):
        return None
    return coerce_float(mids.get(coin))


def locate_asset_ctx(meta_and_ctxs: Any, coin: str) -> Tuple[Optional[int], Optional[dict]]:
    """
    Find ``coin`` in the universe list and return (index, ctx at that index).

    Symbol match is case-insensitive. Returns ``(None, None)`` when the
    payload has an unexpected shape or the coin is not listed.
    """
    if not isinstance(meta_and_ctxs, (list, tuple)) or len(meta_and_ctxs) < 2:
        return None, None
    meta, ctxs = meta_and_ctxs[0], meta_and_ctxs[1]
    universe = HYPERLIQUID_V1.pick(meta, "universe") if isinstance(meta, dict) else None
    if not isinstance(universe, list) or not isinstance(ctxs, list):
        return None, None

    wanted = coin.strip().upper()
    for index, asset in enumerate(universe):
        name = HYPERLIQUID_V1.pick(asset, "asset_name") if isinstance(asset, dict) else None
        if name is not None and str(name).strip().upper() == wanted:
            ctx = ctxs[index] if index < len(ctxs) else None
            return index, ctx if isinstance(ctx, dict) else None
    return None, None


def price_from_asset_ctx(ctx: Optional[dict]) -> Optional[float]:
    """Mid price, else mark price, from one asset context."""
    if not ctx:
        return None
    for key in HYPERLIQUID_V1.keys_for("ctx_price"):
        px = coerce_float(ctx.get(key))
        if px is not None:
            return px
    return None


def funding_from_asset_ctx(ctx: Optional[dict]) -> Optional[float]:
    if not ctx:
        return None
    return coerce_float(HYPERLIQUID_V1.pick(ctx, "ctx_funding"))
