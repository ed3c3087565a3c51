#!/usr/bin/env python3
"""
LP Position Reader for Meteora DLMM
===================================

Reads one DLMM position and values it in USD.

Pipeline (one request, nothing persisted):
──────────────────────────────────────────
1. Position metadata indexer  → pool (venue) id, owner, claimed fees
2. Pool pricing indexer        → spot price of token X in token Y
3. Amount source               → raw X/Y amounts + scales
     • SdkAmountSource     — on-chain DLMM SDK (bin aggregation, black box)
     • IndexerAmountSource — amounts embedded in the metadata record, if any
4. Decimal normalization       → human amounts, placed in SOL / USDC slots
5. Valuation                   → lp_total_usd = q_sol × spot + u_usdc

Steps 2 and 3 both depend only on step 1 and run concurrently.

State machine:
  START → META_RESOLVED → PRICE_RESOLVED → AMOUNTS_RESOLVED → VALUED
  any failure after START → FAILED(reason)

Strict readers (the HTTP endpoint) raise on FAILED; lenient readers
return the partial snapshot with ``failure`` set.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from lp_reader.central_config import Settings, http_policy
from lp_reader.coercion import Quantity, coerce_float, coerce_integer, coerce_scale, pick_first_present
from lp_reader.dlmm_sdk import LazySdk, SdkHandle, pool_token_reference
from lp_reader.errors import (
    ConfigurationError,
    InvalidInputError,
    LpReaderError,
    UpstreamUnavailableError,
)
from lp_reader.meteora_client import MeteoraClient, PositionMeta
from lp_reader.rpc_helpers import get_token_decimals
from lp_reader.schema_aliases import DLMM_SDK_POSITION_V1, METEORA_POSITION_V1
from lp_reader.token_registry import AssetReference, assign_slots
from valuation import LookupState, PositionSnapshot, SlotAmounts

logger = logging.getLogger(__name__)

# Solana public keys are base58, 32 bytes → 32..44 characters
_BASE58_KEY = re.compile(r"[1-9A-HJ-NP-Za-km-z]{32,44}")

# Indexer metrics passed through as display numbers
_INDEXER_METRICS = {
    "total_fee_usd_claimed": "fee_usd_claimed",
    "total_reward_x_claimed": "reward_x_claimed",
    "total_reward_y_claimed": "reward_y_claimed",
    "total_reward_usd_claimed": "reward_usd_claimed",
    "fee_apr_24h": "fee_apr_24h",
    "fee_apy_24h": "fee_apy_24h",
    "daily_fee_yield": "daily_fee_yield",
}


def validate_position_id(position_id: Optional[str]) -> str:
    """Trimmed position id; ``InvalidInputError`` if empty or not base58."""
    pid = (position_id or "").strip()
    if not pid:
        raise InvalidInputError("missing positionId")
    if not _BASE58_KEY.fullmatch(pid):
        raise InvalidInputError(f"invalid positionId: {pid[:48]}")
    return pid


# ── Amount sources ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class PositionAmounts:
    """Raw per-side amounts of one position. Any part may be unknown."""

    asset_x: AssetReference = AssetReference(None, None)
    asset_y: AssetReference = AssetReference(None, None)
    raw_x: Optional[int] = None
    raw_y: Optional[int] = None
    fee_x_unclaimed: Optional[int] = None
    fee_y_unclaimed: Optional[int] = None
    source: str = "unknown"

    @property
    def scale_x(self) -> Optional[int]:
        return self.asset_x.scale

    @property
    def scale_y(self) -> Optional[int]:
        return self.asset_y.scale


class AmountSource(ABC):
    """Strategy resolving a position's raw token amounts."""

    name = "abstract"

    def preflight(self) -> None:
        """Raise before any upstream call if this source cannot work."""

    @abstractmethod
    async def fetch(self, meta: PositionMeta, position_id: str) -> PositionAmounts:
        ...


class SdkAmountSource(AmountSource):
    """On-chain amounts via the DLMM SDK (needs an RPC credential)."""

    name = "sdk"

    def __init__(
        self,
        sdk: Union[LazySdk, SdkHandle],
        rpc_url: str,
        timeout: float = http_policy.TIMEOUT_SECONDS,
        retries: int = http_policy.RETRIES,
        backoff: float = http_policy.BACKOFF_SECONDS,
    ):
        self._sdk = sdk
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff

    def _handle(self) -> SdkHandle:
        return self._sdk.handle() if isinstance(self._sdk, LazySdk) else self._sdk

    def preflight(self) -> None:
        if not self.rpc_url:
            raise ConfigurationError("Missing HELIUS_API_KEY env")
        self._handle().require()

    async def _load_position(self, pool_address: str, position_id: str):
        """
        ``create`` then ``get_position``, each bounded by the timeout.

        Timeouts and SDK exceptions are retried with linear backoff; the
        last failure surfaces as ``UpstreamUnavailableError``.
        """
        sdk = self._handle().require()
        last_error = "no attempt made"

        for attempt in range(self.retries + 1):
            if attempt:
                await asyncio.sleep(self.backoff * attempt)
            try:
                pool = await asyncio.wait_for(
                    sdk.create(self.rpc_url, pool_address), self.timeout
                )
                position = await asyncio.wait_for(
                    pool.get_position(position_id), self.timeout
                )
            except LpReaderError:
                raise
            except asyncio.TimeoutError:
                last_error = f"DLMM SDK call timed out after {self.timeout:g}s"
            except Exception as exc:  # noqa: BLE001
                last_error = f"DLMM SDK call failed: {type(exc).__name__}: {exc}"
            else:
                return pool, position

            if attempt < self.retries:
                logger.warning(
                    "DLMM SDK read failed (attempt %d/%d): %s",
                    attempt + 1, self.retries + 1, last_error,
                )

        raise UpstreamUnavailableError(last_error)

    async def fetch(self, meta: PositionMeta, position_id: str) -> PositionAmounts:
        self.preflight()
        pool, position = await self._load_position(meta.venue_id, position_id)

        # Amounts usually sit under positionData; older builds return them flat
        data = DLMM_SDK_POSITION_V1.pick(position, "position_data")

        def _raw(field_name: str) -> Optional[int]:
            keys = DLMM_SDK_POSITION_V1.keys_for(field_name)
            value = pick_first_present(data, keys)
            if value is None:
                value = pick_first_present(position, keys)
            return coerce_integer(value)

        return PositionAmounts(
            asset_x=pool_token_reference(pool, "x"),
            asset_y=pool_token_reference(pool, "y"),
            raw_x=_raw("amount_x"),
            raw_y=_raw("amount_y"),
            fee_x_unclaimed=_raw("fee_x_unclaimed"),
            fee_y_unclaimed=_raw("fee_y_unclaimed"),
            source=self.name,
        )


class IndexerAmountSource(AmountSource):
    """Amounts embedded in the indexer's position record (absent → unknown)."""

    name = "indexer"

    async def fetch(self, meta: PositionMeta, position_id: str) -> PositionAmounts:
        raw = meta.raw

        def _mint(field_name: str) -> Optional[str]:
            value = METEORA_POSITION_V1.pick(raw, field_name)
            if value is None:
                return None
            return str(value).strip() or None

        return PositionAmounts(
            asset_x=AssetReference(
                _mint("mint_x"), coerce_scale(METEORA_POSITION_V1.pick(raw, "decimals_x"))
            ),
            asset_y=AssetReference(
                _mint("mint_y"), coerce_scale(METEORA_POSITION_V1.pick(raw, "decimals_y"))
            ),
            raw_x=coerce_integer(METEORA_POSITION_V1.pick(raw, "amount_x")),
            raw_y=coerce_integer(METEORA_POSITION_V1.pick(raw, "amount_y")),
            fee_x_unclaimed=coerce_integer(METEORA_POSITION_V1.pick(raw, "fee_x_unclaimed")),
            fee_y_unclaimed=coerce_integer(METEORA_POSITION_V1.pick(raw, "fee_y_unclaimed")),
            source=self.name,
        )


def select_amount_source(settings: Settings, sdk: Union[LazySdk, SdkHandle, None] = None) -> AmountSource:
    """
    Pick the amount strategy from ``LP_AMOUNTS_SOURCE``.

    ``auto`` uses the SDK when one is configured, else the indexer.
    """
    if sdk is None:
        sdk = LazySdk(settings.dlmm_sdk)
    sdk_configured = sdk.configured if isinstance(sdk, LazySdk) else True
    mode = settings.amounts_source
    if mode == "sdk" or (mode == "auto" and sdk_configured):
        return SdkAmountSource(sdk, settings.rpc_url)
    return IndexerAmountSource()


# ── Scale resolution ────────────────────────────────────────────────────


class ScaleResolver:
    """
    Fills unknown decimals: source value → static table → RPC lookup.

    RPC failures leave the scale unknown (→ amount ``None``); they never
    abort the request.
    """

    def __init__(self, rpc_url: str = "", client: httpx.AsyncClient = None):
        self.rpc_url = rpc_url
        self._client = client

    async def resolve(self, ref: AssetReference) -> AssetReference:
        ref = ref.with_fallback_scale()
        if ref.scale is not None or not ref.mint or not self.rpc_url:
            return ref
        try:
            decimals = await get_token_decimals(self.rpc_url, ref.mint, client=self._client)
        except UpstreamUnavailableError as exc:
            logger.warning("Decimals lookup failed for %s: %s", ref.mint, exc)
            return ref
        return AssetReference(ref.mint, decimals)


# ── Position Reader ─────────────────────────────────────────────────────


def _slot(values: Dict[str, Optional[float]], sol_side: str, usdc_side: str) -> SlotAmounts:
    return SlotAmounts(sol=values.get(sol_side), usdc=values.get(usdc_side))


def _human(raw: Optional[int], ref: AssetReference) -> Optional[float]:
    quantity = Quantity.from_wire(raw, ref.scale)
    return quantity.human_value if quantity is not None else None


def sol_price_from_pool_price(price: Optional[float], sol_side: str) -> Optional[float]:
    """
    The pool quotes token X in token Y. When SOL is token Y the USD price
    of SOL is the reciprocal.
    """
    if price is None:
        return None
    if sol_side == "x":
        return price
    return 1.0 / price if price > 0 else None


class PositionReader:
    """
    Reads one Meteora DLMM position.

    Usage:
        reader = PositionReader(MeteoraClient(settings), select_amount_source(settings))
        snapshot = await reader.read_position("8xQ…")
        payload = build_lp_payload(snapshot)
    """

    def __init__(
        self,
        meteora: MeteoraClient,
        amount_source: AmountSource,
        scales: ScaleResolver = None,
        strict: bool = True,
    ):
        self.meteora = meteora
        self.amount_source = amount_source
        self.scales = scales or ScaleResolver()
        self.strict = strict

    async def resolve_position_amounts(self, meta: PositionMeta, position_id: str) -> PositionAmounts:
        """Raw amounts from the configured source, with scales filled in."""
        amounts = await self.amount_source.fetch(meta, position_id)
        asset_x, asset_y = await asyncio.gather(
            self.scales.resolve(amounts.asset_x),
            self.scales.resolve(amounts.asset_y),
        )
        return PositionAmounts(
            asset_x=asset_x,
            asset_y=asset_y,
            raw_x=amounts.raw_x,
            raw_y=amounts.raw_y,
            fee_x_unclaimed=amounts.fee_x_unclaimed,
            fee_y_unclaimed=amounts.fee_y_unclaimed,
            source=amounts.source,
        )

    def _fail(self, fields: Dict[str, Any], state: LookupState, exc: LpReaderError) -> PositionSnapshot:
        exc.state = state.value
        if self.strict:
            raise exc
        logger.warning("Position %s failed in %s: %s", fields["position_id"], state.value, exc.message)
        return PositionSnapshot(**fields, state=LookupState.FAILED, failure=exc.message)

    async def read_position(self, position_id: str) -> PositionSnapshot:
        """
        Resolve, normalise and value one position.

        Raises (strict mode):
            InvalidInputError, ConfigurationError, SdkUnavailableError,
            NotFoundError, UpstreamUnavailableError
        """
        position_id = validate_position_id(position_id)
        fields: Dict[str, Any] = {
            "position_id": position_id,
            "amounts_source": self.amount_source.name,
        }
        state = LookupState.START

        # Configuration problems are whole-request failures in every mode
        self.amount_source.preflight()

        # ── START → META_RESOLVED ───────────────────────────────────
        try:
            meta = await self.meteora.resolve_position_meta(position_id)
        except LpReaderError as exc:
            return self._fail(fields, state, exc)
        fields.update(venue_id=meta.venue_id, owner=meta.owner, meta_raw=meta.raw)
        state = LookupState.META_RESOLVED

        # ── price ∥ amounts ────────────────────────────────────────
        price_result, amounts_result = await asyncio.gather(
            self.meteora.resolve_venue_price(meta.venue_id),
            self.resolve_position_amounts(meta, position_id),
            return_exceptions=True,
        )
        for result in (price_result, amounts_result):
            if isinstance(result, BaseException) and not isinstance(result, LpReaderError):
                raise result

        # ── META_RESOLVED → PRICE_RESOLVED ──────────────────────────
        if isinstance(price_result, LpReaderError):
            if isinstance(amounts_result, PositionAmounts):
                fields.update(self._normalise(meta, amounts_result, None))
            return self._fail(fields, state, price_result)
        fields["venue_price"] = price_result
        state = LookupState.PRICE_RESOLVED

        # ── PRICE_RESOLVED → AMOUNTS_RESOLVED ───────────────────────
        if isinstance(amounts_result, LpReaderError):
            return self._fail(fields, state, amounts_result)
        fields.update(self._normalise(meta, amounts_result, price_result))
        state = LookupState.AMOUNTS_RESOLVED

        # ── AMOUNTS_RESOLVED → VALUED ───────────────────────────────
        snapshot = PositionSnapshot(**fields, state=LookupState.VALUED)
        logger.info(
            "Position %s valued: pool=%s spot=%s q_sol=%s u_usdc=%s total=%s",
            position_id, snapshot.venue_id, snapshot.reference_price,
            snapshot.q_sol, snapshot.u_usdc, snapshot.lp_total_usd,
        )
        return snapshot

    def _normalise(
        self, meta: PositionMeta, amounts: PositionAmounts, venue_price: Optional[float]
    ) -> Dict[str, Any]:
        """Scale raw amounts and place them in SOL / USDC slots."""
        ax, ay = amounts.asset_x, amounts.asset_y
        sol_side, usdc_side, method = assign_slots(ax.mint, ay.mint)

        holdings = {"x": _human(amounts.raw_x, ax), "y": _human(amounts.raw_y, ay)}
        unclaimed = {
            "x": _human(amounts.fee_x_unclaimed, ax),
            "y": _human(amounts.fee_y_unclaimed, ay),
        }
        claimed = {
            "x": _human(coerce_integer(METEORA_POSITION_V1.pick(meta.raw, "fee_x_claimed")), ax),
            "y": _human(coerce_integer(METEORA_POSITION_V1.pick(meta.raw, "fee_y_claimed")), ay),
        }

        return {
            "asset_x": ax,
            "asset_y": ay,
            "quantity_x": Quantity.from_wire(amounts.raw_x, ax.scale),
            "quantity_y": Quantity.from_wire(amounts.raw_y, ay.scale),
            "reference_price": sol_price_from_pool_price(venue_price, sol_side),
            "holdings": _slot(holdings, sol_side, usdc_side),
            "fees_claimed": _slot(claimed, sol_side, usdc_side),
            "fees_unclaimed": _slot(unclaimed, sol_side, usdc_side),
            "slot_assignment": method,
            "amounts_source": amounts.source,
        }


def indexer_metrics(meta_raw: Dict[str, Any]) -> Dict[str, Optional[float]]:
    """Display-only numbers the indexer reports alongside the position."""
    return {
        out_key: coerce_float(METEORA_POSITION_V1.pick(meta_raw, field_name))
        for out_key, field_name in _INDEXER_METRICS.items()
    }


def build_lp_payload(snapshot: PositionSnapshot) -> Dict[str, Any]:
    """Flat JSON shape consumed by the spreadsheet (``GET /lp/{id}``)."""
    payload = {
        "ok": snapshot.failure is None,
        "positionId": snapshot.position_id,
        "pool": snapshot.venue_id,
        "owner": snapshot.owner,
        "tokenXMint": snapshot.asset_x.mint,
        "tokenYMint": snapshot.asset_y.mint,
        "spot": snapshot.reference_price,
        "q_sol": snapshot.q_sol,
        "u_usdc": snapshot.u_usdc,
        "lp_total_usd": snapshot.lp_total_usd,
        "fee_sol_claimed": snapshot.fees_claimed.sol,
        "fee_usdc_claimed": snapshot.fees_claimed.usdc,
        "fee_sol_unclaimed": snapshot.fees_unclaimed.sol,
        "fee_usdc_unclaimed": snapshot.fees_unclaimed.usdc,
    }
    payload.update(indexer_metrics(snapshot.meta_raw))
    payload["meta"] = snapshot.meta_raw
    payload["meta_debug"] = {
        "state": snapshot.state.value,
        "amounts_source": snapshot.amounts_source,
        "slot_assignment": snapshot.slot_assignment,
        "pool_price": snapshot.venue_price,
        "scale_x": snapshot.asset_x.scale,
        "scale_y": snapshot.asset_y.scale,
    }
    if snapshot.failure is not None:
        payload["error"] = snapshot.failure
    return payload

