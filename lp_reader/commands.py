"""
meteora-lp-reader — Command Implementations
===========================================

All CLI command handlers live here, keeping run.py as a thin argparse
dispatcher. Each public function corresponds to a subcommand
(info, serve, lp, hl, health).
"""

from __future__ import annotations

import json

import httpx

from lp_reader.central_config import (
    PROJECT_NAME,
    PROJECT_VERSION,
    Settings,
    http_policy,
)
from lp_reader.errors import LpReaderError
from lp_reader.hyperliquid_client import HyperliquidClient
from lp_reader.meteora_client import MeteoraClient
from lp_reader.rpc_helpers import get_solana_version, mask_rpc_url


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _mask_wallet(wallet: str) -> str:
    """Show only the ends of an address in console output."""
    return wallet if len(wallet) <= 12 else f"{wallet[:6]}…{wallet[-4:]}"


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info(settings: Settings) -> None:
    """Display service configuration (secrets masked)."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 LP source   : Meteora DLMM (position + pool indexers)")
    print("🔗 Perp source : Hyperliquid /info")
    print(f"🌐 Solana RPC  : {mask_rpc_url(settings.rpc_url)}")
    print(f"🧩 DLMM SDK    : {settings.dlmm_sdk or 'not configured'}")
    print(f"📥 Amounts     : {settings.amounts_source}")
    print(f"⏱️  Timeout     : {http_policy.TIMEOUT_SECONDS:g}s × {http_policy.RETRIES + 1} attempts")
    print(f"🗃️  Memo TTL    : {settings.memo_ttl_seconds:g}s")
    print()
    print("📁 Files:")
    print("   run.py                — CLI entry point")
    print("   position_reader.py    — LP position pipeline (meta → price → amounts → value)")
    print("   perp_reader.py        — Hyperliquid price, funding, position")
    print("   valuation.py          — Snapshots and USD valuation")
    print("   lp_reader/            — API clients, config, coercion, HTTP server")
    print()
    print("🔗 Quick Start:")
    print("   python run.py serve --port 10000")
    print("   python run.py lp  <positionId>")
    print("   python run.py hl  <wallet> --coin SOL")


def cmd_serve(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    from lp_reader.server import create_app

    host = host or settings.host
    port = port or settings.port
    print(f"🚀 {PROJECT_NAME} listening on :{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


async def cmd_lp(settings: Settings, position_id: str, lenient: bool = False) -> int:
    """Read and value one LP position; print the JSON payload."""
    from position_reader import (
        PositionReader,
        ScaleResolver,
        build_lp_payload,
        select_amount_source,
    )

    print(f"\n📖 Reading position {position_id[:12]}…")
    async with httpx.AsyncClient(timeout=http_policy.TIMEOUT_SECONDS) as client:
        reader = PositionReader(
            MeteoraClient(settings, client),
            select_amount_source(settings),
            ScaleResolver(settings.rpc_url, client),
            strict=not lenient,
        )
        try:
            snapshot = await reader.read_position(position_id)
        except LpReaderError as exc:
            print(f"❌ {exc.message}" + (f" (in {exc.state})" if exc.state else ""))
            return 1

    payload = build_lp_payload(snapshot)
    _print_json(payload)
    if snapshot.failure:
        print(f"⚠️  Partial result: {snapshot.failure}")
        return 1
    total = snapshot.lp_total_usd
    print(f"✅ LP total: {'$' + format(total, ',.2f') if total is not None else 'n/a'}")
    return 0


async def cmd_hl(settings: Settings, wallet: str, coin: str | None = None) -> int:
    """Hyperliquid price, funding and position for one wallet."""
    from perp_reader import PerpReader, build_hl_payload, normalize_coin

    coin = normalize_coin(coin, settings.default_coin)
    print(f"\n📈 Hyperliquid {coin} for {_mask_wallet(wallet)}")
    async with httpx.AsyncClient(timeout=http_policy.TIMEOUT_SECONDS) as client:
        try:
            report = await PerpReader(HyperliquidClient(settings, client)).read(wallet, coin)
        except LpReaderError as exc:
            print(f"❌ {exc.message}")
            return 1
    _print_json(build_hl_payload(report))
    print(f"✅ {coin} {report.position.side} {report.position.abs_size:g}")
    return 0


async def cmd_health(settings: Settings) -> bool:
    """Check upstream reachability. Returns True when everything answered."""
    print(f"\n🧪 {PROJECT_NAME} v{PROJECT_VERSION} — Health Check")
    print("=" * 55)
    ok = True
    async with httpx.AsyncClient(timeout=http_policy.TIMEOUT_SECONDS) as client:
        if settings.has_rpc_credential:
            try:
                version = await get_solana_version(settings.rpc_url, client=client)
                print(f"  ✅ Solana RPC ({mask_rpc_url(settings.rpc_url)}): {version}")
            except LpReaderError as exc:
                print(f"  ❌ Solana RPC: {exc.message}")
                ok = False
        else:
            print("  ⚠️  Solana RPC: missing (set HELIUS_API_KEY or SOLANA_RPC_URL)")

        try:
            mids = await HyperliquidClient(settings, client).all_mids()
            print(f"  ✅ Hyperliquid: {len(mids or {})} mids")
        except LpReaderError as exc:
            print(f"  ❌ Hyperliquid: {exc.message}")
            ok = False
    print("=" * 55)
    return ok
