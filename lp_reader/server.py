"""
HTTP API — FastAPI application
==============================

Endpoints:
  GET /                        service banner
  GET /health                  RPC credential + Hyperliquid reachability
  GET /lp/{positionId}         Meteora DLMM position valuation (strict)
  GET /hl/{wallet}[/{coin}]    Hyperliquid price, funding and position

Every non-200 body is ``{"ok": false, "error": "..."}``.

Run:
  python run.py serve
  uvicorn lp_reader.server:create_app --factory --port 10000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lp_reader.central_config import PROJECT_NAME, PROJECT_VERSION, Settings, http_policy
from lp_reader.dlmm_sdk import LazySdk, SdkHandle
from lp_reader.errors import InvalidInputError, LpReaderError
from lp_reader.hyperliquid_client import HyperliquidClient
from lp_reader.memo import ResponseMemo
from lp_reader.meteora_client import MeteoraClient
from lp_reader.rpc_helpers import get_solana_version
from perp_reader import PerpReader, build_hl_payload, normalize_coin
from position_reader import PositionReader, ScaleResolver, build_lp_payload, select_amount_source

logger = logging.getLogger(__name__)

ENDPOINTS = ["/health", "/lp/:positionId", "/hl/:wallet?coin=SOL", "/hl/:wallet/:coin"]


def _rpc_endpoint_label(settings: Settings) -> str:
    if settings.solana_rpc_url:
        return "custom"
    return "helius" if settings.helius_api_key else "missing"


def _internal_error(where: str, exc: Exception) -> JSONResponse:
    logger.exception("[%s] unexpected error", where)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": f"internal error: {type(exc).__name__}"},
    )


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sdk: Union[LazySdk, SdkHandle, None] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Runtime settings (default: read from the environment).
        http_client: Shared outbound client (default: one owned by the app).
        sdk: DLMM SDK handle (default: lazily loaded from ``DLMM_SDK``).
    """
    settings = settings or Settings.from_env()
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=http_policy.TIMEOUT_SECONDS)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if owns_client:
            await client.aclose()

    app = FastAPI(title=PROJECT_NAME, version=PROJECT_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.http_client = client
    app.state.sdk = sdk if sdk is not None else LazySdk(settings.dlmm_sdk)
    app.state.memo = ResponseMemo(settings.memo_ttl_seconds)

    @app.exception_handler(LpReaderError)
    async def _lp_reader_error(request: Request, exc: LpReaderError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.get("/")
    async def root():
        return {
            "ok": True,
            "service": PROJECT_NAME,
            "version": PROJECT_VERSION,
            "endpoints": ENDPOINTS,
        }

    @app.get("/health")
    async def health():
        try:
            return await _health_report()
        except Exception as exc:  # noqa: BLE001
            return _internal_error("health", exc)

    async def _health_report():
        out = {
            "ok": True,
            "heliusKeyPresent": bool(settings.helius_api_key),
            "rpcEndpoint": _rpc_endpoint_label(settings),
        }
        if settings.has_rpc_credential:
            try:
                out["solanaVersion"] = await get_solana_version(settings.rpc_url, client=client)
            except LpReaderError as exc:
                out["solana"] = {"ok": False, "error": exc.message}
        try:
            mids = await HyperliquidClient(settings, client).all_mids()
            out["hyperliquid"] = {"ok": bool(mids)}
        except LpReaderError as exc:
            out["hyperliquid"] = {"ok": False, "error": exc.message}
        return out

    @app.get("/lp")
    @app.get("/lp/")
    async def lp_missing_id():
        raise InvalidInputError("missing positionId")

    @app.get("/lp/{position_id}")
    async def lp(position_id: str):
        position_id = position_id.strip()
        memo: ResponseMemo = app.state.memo
        cached = memo.get(position_id)
        if cached is not None:
            return cached

        reader = PositionReader(
            MeteoraClient(settings, client),
            select_amount_source(settings, app.state.sdk),
            ScaleResolver(settings.rpc_url, client),
            strict=True,
        )
        try:
            snapshot = await reader.read_position(position_id)
        except LpReaderError:
            raise
        except Exception as exc:  # noqa: BLE001
            return _internal_error("lp", exc)

        payload = build_lp_payload(snapshot)
        memo.put(position_id, payload)
        return payload

    async def _hl(wallet: str, coin: Optional[str]):
        reader = PerpReader(HyperliquidClient(settings, client))
        try:
            report = await reader.read(wallet, normalize_coin(coin, settings.default_coin))
        except LpReaderError:
            raise
        except Exception as exc:  # noqa: BLE001
            return _internal_error("hl", exc)
        return build_hl_payload(report)

    @app.get("/hl")
    @app.get("/hl/")
    async def hl_missing_wallet():
        raise InvalidInputError("missing wallet")

    @app.get("/hl/{wallet}")
    async def hl(wallet: str, coin: Optional[str] = None):
        return await _hl(wallet, coin)

    @app.get("/hl/{wallet}/{coin}")
    async def hl_coin(wallet: str, coin: str):
        return await _hl(wallet, coin)

    return app

