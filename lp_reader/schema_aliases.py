"""
Schema Aliases — ordered wire-key lists per upstream payload version
====================================================================

Upstream schemas rename the same logical field across API and SDK
versions. Each payload gets one versioned :class:`AliasSet`; readers ask
for logical fields and never hard-code wire keys inline.

Order matters: the first key present (and not null) wins.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Tuple

from lp_reader.coercion import pick_first_present


@dataclass(frozen=True)
class AliasSet:
    """Ordered aliases for every logical field of one upstream payload."""

    source: str
    version: str
    fields: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def keys_for(self, name: str) -> Tuple[str, ...]:
        """Wire keys for a logical field (``KeyError`` if unknown)."""
        return self.fields[name]

    def pick(self, record: Any, name: str) -> Any:
        return pick_first_present(record, self.keys_for(name))


# ── Meteora DLMM API: GET /position/{id} ────────────────────────────────
# Claimed fee amounts are raw integer token amounts; USD totals and
# yield ratios are plain numbers.

METEORA_POSITION_V1 = AliasSet(
    source="dlmm-api/position",
    version="v1",
    fields={
        "pool": ("pair_address", "pairAddress", "pool", "lb_pair"),
        "owner": ("owner",),
        "fee_x_claimed": ("total_fee_x_claimed",),
        "fee_y_claimed": ("total_fee_y_claimed",),
        "fee_usd_claimed": ("total_fee_usd_claimed",),
        "reward_x_claimed": ("total_reward_x_claimed",),
        "reward_y_claimed": ("total_reward_y_claimed",),
        "reward_usd_claimed": ("total_reward_usd_claimed",),
        "fee_apr_24h": ("fee_apr_24h",),
        "fee_apy_24h": ("fee_apy_24h",),
        "daily_fee_yield": ("daily_fee_yield",),
        # Only some indexer deployments embed the live amounts
        "amount_x": ("total_x_amount", "totalXAmount", "amount_x"),
        "amount_y": ("total_y_amount", "totalYAmount", "amount_y"),
        "mint_x": ("mint_x", "token_x_mint", "tokenXMint"),
        "mint_y": ("mint_y", "token_y_mint", "tokenYMint"),
        "decimals_x": ("decimals_x", "token_x_decimals"),
        "decimals_y": ("decimals_y", "token_y_decimals"),
        "fee_x_unclaimed": ("fee_x", "unclaimed_fee_x"),
        "fee_y_unclaimed": ("fee_y", "unclaimed_fee_y"),
    },
)

# ── Meteora Data API: GET /pools/{address} ──────────────────────────────

METEORA_POOL_V1 = AliasSet(
    source="datapi/pools",
    version="v1",
    fields={
        "spot_price": ("current_price", "price", "spot_price"),
        "mint_x": ("mint_x", "token_x_mint"),
        "mint_y": ("mint_y", "token_y_mint"),
    },
)

# ── DLMM SDK: pool.getPosition(...) result ──────────────────────────────
# The SDK wraps the aggregate in ``positionData`` in most versions.

DLMM_SDK_POSITION_V1 = AliasSet(
    source="dlmm-sdk/position",
    version="v1",
    fields={
        "position_data": ("positionData", "position_data"),
        "amount_x": ("totalXAmount", "totalX", "amountX", "tokenXAmount"),
        "amount_y": ("totalYAmount", "totalY", "amountY", "tokenYAmount"),
        "fee_x_unclaimed": ("feeX", "feeXAmount", "unclaimedFeeX"),
        "fee_y_unclaimed": ("feeY", "feeYAmount", "unclaimedFeeY"),
    },
)

DLMM_SDK_TOKEN_V1 = AliasSet(
    source="dlmm-sdk/token",
    version="v1",
    fields={
        "token_x": ("tokenX", "token_x"),
        "token_y": ("tokenY", "token_y"),
        "mint": ("publicKey", "public_key", "mint", "address"),
        "decimals": ("decimal", "decimals"),
    },
)

# ── Hyperliquid /info ───────────────────────────────────────────────────

HYPERLIQUID_V1 = AliasSet(
    source="hyperliquid/info",
    version="v1",
    fields={
        "asset_positions": ("assetPositions",),
        "position": ("position",),
        "coin": ("coin",),
        "size": ("szi",),
        "entry_px": ("entryPx",),
        "unrealized_pnl": ("unrealizedPnl", "pnl", "uPnL"),
        "cum_funding": ("cumFunding", "cumulativeFunding", "funding"),
        # cumFunding is an object in current API versions
        "cum_funding_nested": ("sinceOpen", "allTime"),
        "funding_8h": ("fundingSinceOpen8h", "funding8h"),
        "universe": ("universe",),
        "asset_name": ("name", "coin"),
        "ctx_price": ("midPx", "markPx"),
        "ctx_funding": ("funding", "fundingRate", "funding_rate"),
    },
)

ALL_ALIAS_SETS = (
    METEORA_POSITION_V1,
    METEORA_POOL_V1,
    DLMM_SDK_POSITION_V1,
    DLMM_SDK_TOKEN_V1,
    HYPERLIQUID_V1,
)
