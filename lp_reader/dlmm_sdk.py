"""
DLMM SDK — injected on-chain client interface and lazy loader
=============================================================

Per-position token amounts of a DLMM pool are an aggregation over the
position's liquidity bins, performed by the Meteora DLMM SDK. This
service treats the SDK as a black box with two calls:

  sdk.create(rpc_url, pool_address)  → pool handle (tokenX / tokenY)
  pool.get_position(position_id)     → raw amounts (positionData.totalXAmount …)

The SDK is named by a ``module:attribute`` target (``DLMM_SDK``) and
imported on first use. A failed import is kept as an error on the
handle and reported per request; it never leaves a silently-null global.
"""

import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from lp_reader.coercion import coerce_scale
from lp_reader.errors import SdkUnavailableError
from lp_reader.schema_aliases import DLMM_SDK_TOKEN_V1
from lp_reader.token_registry import AssetReference

logger = logging.getLogger(__name__)


@runtime_checkable
class DlmmPool(Protocol):
    """Pool handle returned by :meth:`DlmmSdk.create`."""

    async def get_position(self, position_id: str) -> Any: ...


@runtime_checkable
class DlmmSdk(Protocol):
    """Anything with an async ``create(rpc_url, pool_address)``."""

    async def create(self, rpc_url: str, pool_address: str) -> DlmmPool: ...


@dataclass(frozen=True)
class SdkHandle:
    """Outcome of constructing the SDK: the SDK or the reason it failed."""

    target: str
    sdk: Optional[Any] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.sdk is not None

    def require(self) -> Any:
        """The SDK, or ``SdkUnavailableError`` with the load failure."""
        if not self.ok:
            raise SdkUnavailableError(
                f"DLMM SDK failed to load: {self.error or 'not configured'}"
            )
        return self.sdk

    @classmethod
    def of(cls, sdk: Any) -> "SdkHandle":
        """Wrap an already-built SDK (dependency injection, tests)."""
        return cls(target=type(sdk).__name__, sdk=sdk)


def _has_create(obj: Any) -> bool:
    return callable(getattr(obj, "create", None))


def load_dlmm_sdk(target: str) -> SdkHandle:
    """
    Import ``module[:attribute]`` and return a handle to its DLMM SDK.

    The attribute (or the module itself) may expose ``create`` directly,
    or through a ``DLMM`` / ``default`` member. A class without a usable
    ``create`` is instantiated once with no arguments.
    """
    target = (target or "").strip()
    if not target:
        return SdkHandle(target="", error="DLMM_SDK is not set")

    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
        obj = getattr(module, attr) if attr else module
    except (ImportError, AttributeError) as exc:
        logger.error("DLMM load error (%s): %s", target, exc)
        return SdkHandle(target=target, error=f"{type(exc).__name__}: {exc}")

    for candidate in (obj, getattr(obj, "DLMM", None), getattr(obj, "default", None)):
        if candidate is not None and _has_create(candidate):
            return SdkHandle(target=target, sdk=candidate)

    if inspect.isclass(obj):
        try:
            instance = obj()
        except Exception as exc:  # noqa: BLE001
            logger.error("DLMM SDK construction failed (%s): %s", target, exc)
            return SdkHandle(target=target, error=f"{type(exc).__name__}: {exc}")
        if _has_create(instance):
            return SdkHandle(target=target, sdk=instance)

    exports = sorted(k for k in dir(obj) if not k.startswith("_"))[:20]
    error = f"DLMM.create missing. exports keys={','.join(exports)}"
    logger.error("DLMM load error (%s): %s", target, error)
    return SdkHandle(target=target, error=error)


class LazySdk:
    """Loads the SDK on first request and keeps the outcome."""

    def __init__(self, target: str):
        self.target = target
        self._handle: Optional[SdkHandle] = None

    @property
    def configured(self) -> bool:
        return bool(self.target)

    def handle(self) -> SdkHandle:
        if self._handle is None:
            self._handle = load_dlmm_sdk(self.target)
        return self._handle


def _mint_to_str(mint: Any) -> Optional[str]:
    """Base58 string of a mint (str, Pubkey-like, or ``toBase58`` object)."""
    if mint is None:
        return None
    to_base58 = getattr(mint, "toBase58", None) or getattr(mint, "to_base58", None)
    text = to_base58() if callable(to_base58) else str(mint)
    text = text.strip() if isinstance(text, str) else None
    return text or None


def pool_token_reference(pool: Any, side: str) -> AssetReference:
    """Mint and decimals of one pool side (``"x"`` / ``"y"``) as reported by the SDK."""
    token = DLMM_SDK_TOKEN_V1.pick(pool, f"token_{side}")
    if token is None:
        return AssetReference(None, None)
    mint = _mint_to_str(DLMM_SDK_TOKEN_V1.pick(token, "mint"))
    scale = coerce_scale(DLMM_SDK_TOKEN_V1.pick(token, "decimals"))
    return AssetReference(mint, scale)
