"""
Project Configuration — API endpoints, version, HTTP policy, settings
=====================================================================

Upstream endpoints, the single set of outbound HTTP constants, and the
runtime settings read from the environment (or a local ``.env`` file).

Sources:
  Meteora DLMM API   : https://dlmm-api.meteora.ag
  Meteora Data API   : https://dlmm.datapi.meteora.ag
  Hyperliquid Info   : https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/info-endpoint
  Helius RPC         : https://docs.helius.dev/
"""

import os
import re
from dataclasses import dataclass
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from urllib.parse import quote

from dotenv import load_dotenv

# Version: read from pyproject.toml
try:
    PROJECT_VERSION = version("meteora-lp-reader")
except PackageNotFoundError:
    # Dev / CI: package not installed, read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "meteora-lp-reader"


@dataclass(frozen=True)
class MeteoraAPI:
    """Meteora DLMM indexers (position metadata + pool pricing)."""

    POSITION_BASE_URL: str = "https://dlmm-api.meteora.ag/position"
    POOL_BASE_URL: str = "https://dlmm.datapi.meteora.ag/pools"

    @classmethod
    def get_position_url(cls, position_id: str, base: str = None) -> str:
        """URL of the position-metadata record."""
        return f"{(base or cls.POSITION_BASE_URL).rstrip('/')}/{quote(position_id, safe='')}"

    @classmethod
    def get_pool_url(cls, pool_address: str, base: str = None) -> str:
        """URL of the pool record carrying the spot price."""
        return f"{(base or cls.POOL_BASE_URL).rstrip('/')}/{quote(pool_address, safe='')}"


@dataclass(frozen=True)
class HyperliquidAPI:
    """Hyperliquid public info endpoint (no key required)."""

    INFO_URL: str = "https://api.hyperliquid.xyz/info"

    # Request kinds used by this service
    ALL_MIDS: str = "allMids"
    META_AND_ASSET_CTXS: str = "metaAndAssetCtxs"
    CLEARINGHOUSE_STATE: str = "clearinghouseState"


@dataclass(frozen=True)
class HttpPolicy:
    """Outbound call policy — one set of constants for every upstream."""

    TIMEOUT_SECONDS: float = 20.0
    RETRIES: int = 2               # extra attempts after the first
    BACKOFF_SECONDS: float = 0.5   # linear: attempt × backoff
    RETRY_STATUSES: frozenset = frozenset({429, 500, 502, 503, 504})


HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"

AMOUNT_SOURCES = ("auto", "sdk", "indexer")


def helius_rpc_url(api_key: str) -> str:
    """Helius mainnet RPC URL for an API key ('' when no key)."""
    key = (api_key or "").strip()
    return HELIUS_RPC_TEMPLATE.format(key=quote(key, safe="")) if key else ""


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Build with :meth:`from_env`."""

    helius_api_key: str = ""
    solana_rpc_url: str = ""
    dlmm_sdk: str = ""
    amounts_source: str = "auto"
    memo_ttl_seconds: float = 15.0
    default_coin: str = "SOL"
    host: str = "0.0.0.0"
    port: int = 10000
    log_level: str = "INFO"
    meteora_position_api: str = MeteoraAPI.POSITION_BASE_URL
    meteora_pool_api: str = MeteoraAPI.POOL_BASE_URL
    hyperliquid_info_url: str = HyperliquidAPI.INFO_URL

    @property
    def rpc_url(self) -> str:
        """Explicit RPC URL wins over the Helius key."""
        return self.solana_rpc_url or helius_rpc_url(self.helius_api_key)

    @property
    def has_rpc_credential(self) -> bool:
        return bool(self.rpc_url)

    @classmethod
    def from_env(cls, environ=None, dotenv: bool = True) -> "Settings":
        """
        Read settings from ``environ`` (default: ``os.environ``).

        A ``.env`` file in the working directory is loaded first when
        ``dotenv`` is true; variables already set are never overridden.
        """
        if dotenv and environ is None:
            load_dotenv(override=False)
        env = os.environ if environ is None else environ

        source = (env.get("LP_AMOUNTS_SOURCE") or "auto").strip().lower()
        if source not in AMOUNT_SOURCES:
            raise ValueError(
                f"LP_AMOUNTS_SOURCE must be one of {AMOUNT_SOURCES}, got {source!r}"
            )

        return cls(
            helius_api_key=(env.get("HELIUS_API_KEY") or "").strip(),
            solana_rpc_url=(env.get("SOLANA_RPC_URL") or "").strip(),
            dlmm_sdk=(env.get("DLMM_SDK") or "").strip(),
            amounts_source=source,
            memo_ttl_seconds=float(env.get("LP_MEMO_TTL_SECONDS") or 15),
            default_coin=(env.get("DEFAULT_COIN") or "SOL").strip().upper(),
            host=(env.get("HOST") or "0.0.0.0").strip(),
            port=int(env.get("PORT") or 10000),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
            meteora_position_api=(
                env.get("METEORA_POSITION_API") or MeteoraAPI.POSITION_BASE_URL
            ).strip(),
            meteora_pool_api=(
                env.get("METEORA_POOL_API") or MeteoraAPI.POOL_BASE_URL
            ).strip(),
            hyperliquid_info_url=(
                env.get("HYPERLIQUID_INFO_URL") or HyperliquidAPI.INFO_URL
            ).strip(),
        )


# Global instances
http_policy = HttpPolicy()
