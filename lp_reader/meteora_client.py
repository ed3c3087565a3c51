#!/usr/bin/env python3
"""
Meteora Client — position metadata + pool spot price
====================================================

Two hosted indexers:

  GET {POSITION_BASE_URL}/{positionId}  → pair address, owner, claimed fees
  GET {POOL_BASE_URL}/{poolAddress}     → current pool price

Field names drift between deployments; all reads go through
``schema_aliases.METEORA_POSITION_V1`` / ``METEORA_POOL_V1``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from lp_reader.central_config import MeteoraAPI, Settings
from lp_reader.coercion import coerce_float
from lp_reader.errors import NotFoundError, UpstreamStatusError
from lp_reader.rpc_helpers import get_json
from lp_reader.schema_aliases import METEORA_POOL_V1, METEORA_POSITION_V1

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionMeta:
    """Venue (pool) and owner of a position, plus the raw indexer record."""

    venue_id: str
    owner: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


class MeteoraClient:
    """Meteora DLMM indexer client."""

    def __init__(self, settings: Settings = None, client: httpx.AsyncClient = None):
        settings = settings or Settings()
        self.position_api = settings.meteora_position_api
        self.pool_api = settings.meteora_pool_api
        self._client = client

    async def position_meta(self, position_id: str) -> Any:
        """Raw position record (``NotFoundError`` on HTTP 404)."""
        url = MeteoraAPI.get_position_url(position_id, self.position_api)
        try:
            return await get_json(url, client=self._client)
        except UpstreamStatusError as exc:
            if exc.upstream_status == 404:
                raise NotFoundError(f"position {position_id} not found") from exc
            raise

    async def pool(self, pool_address: str) -> Any:
        """Raw pool record."""
        url = MeteoraAPI.get_pool_url(pool_address, self.pool_api)
        return await get_json(url, client=self._client)

    async def resolve_position_meta(self, position_id: str) -> PositionMeta:
        """
        Resolve a position id to its venue and owner.

        Raises:
            NotFoundError: No venue id under any known alias.
        """
        raw = await self.position_meta(position_id)
        record = raw if isinstance(raw, dict) else {}
        venue = METEORA_POSITION_V1.pick(record, "pool")
        if not venue or not str(venue).strip():
            raise NotFoundError("pool not found for this positionId")
        owner = METEORA_POSITION_V1.pick(record, "owner")
        return PositionMeta(
            venue_id=str(venue).strip(),
            owner=str(owner) if owner is not None else None,
            raw=record,
        )

    async def resolve_venue_price(self, venue_id: str) -> Optional[float]:
        """
        Current pool price, or ``None`` if the indexer omits it.

        Transport failures propagate; a missing or non-numeric field does not.
        """
        data = await self.pool(venue_id)
        price = coerce_float(METEORA_POOL_V1.pick(data if isinstance(data, dict) else {}, "spot_price"))
        if price is None:
            logger.info("No spot price for pool %s", venue_id)
        return price
