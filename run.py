#!/usr/bin/env python3
"""
meteora-lp-reader -- DLMM + Hyperliquid reader
==============================================

Reads a Meteora DLMM liquidity position and a Hyperliquid perpetual
position and reshapes both into flat JSON for a spreadsheet.

Usage:
  python run.py serve [--host 0.0.0.0] [--port 10000]   Start the HTTP API
  python run.py lp <positionId> [--lenient]            Value one LP position
  python run.py hl <wallet> [--coin SOL]               Perp price/funding/position
  python run.py health                                 Check upstream reachability
  python run.py info                                   Configuration overview

Sources:
  Meteora DLMM API   : https://dlmm-api.meteora.ag
  Hyperliquid Info   : https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/info-endpoint
"""

import sys
import asyncio
import argparse
from pathlib import Path

# ── Imports ───────────────────────────────────────────────────────────────

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lp_reader.central_config import PROJECT_VERSION, PROJECT_NAME, Settings
from lp_reader.commands import cmd_info, cmd_serve, cmd_lp, cmd_hl, cmd_health
from lp_reader.log_config import configure_logging


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lp-reader",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION} — DLMM + Hyperliquid reader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py serve --port 10000
  python run.py lp 8xQ…positionId
  python run.py lp 8xQ…positionId --lenient     Print partial data on failure
  python run.py hl 0xWALLET --coin SOL
  python run.py health

Environment:
  HELIUS_API_KEY / SOLANA_RPC_URL   Solana RPC credential
  DLMM_SDK                          module:attribute of the DLMM SDK adapter
  LP_AMOUNTS_SOURCE                 auto | sdk | indexer
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}"
    )
    parser.add_argument(
        "--log-level", type=str, default=None, help="Logging level (default: LOG_LEVEL or INFO)"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    serve_p = sub.add_parser("serve", help="Start the HTTP API")
    serve_p.add_argument("--host", type=str, default=None, help="Bind address (default: HOST or 0.0.0.0)")
    serve_p.add_argument("--port", type=int, default=None, help="Port (default: PORT or 10000)")

    lp_p = sub.add_parser("lp", help="Value one Meteora DLMM position")
    lp_p.add_argument("position_id", help="Position account address (base58)")
    lp_p.add_argument(
        "--lenient",
        action="store_true",
        help="Return partial data instead of aborting when a lookup fails",
    )

    hl_p = sub.add_parser("hl", help="Hyperliquid price, funding and position")
    hl_p.add_argument("wallet", help="Wallet address (0x…)")
    hl_p.add_argument("--coin", type=str, default=None, help="Perp symbol (default: DEFAULT_COIN or SOL)")

    sub.add_parser("health", help="Check upstream reachability")
    sub.add_parser("info", help="Configuration overview")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        # Malformed LP_AMOUNTS_SOURCE, PORT or LP_MEMO_TTL_SECONDS
        message = str(exc)
        print(f"❌ Invalid configuration: {message}")
        return 2
    configure_logging(args.log_level or settings.log_level)

    if args.command == "info":
        cmd_info(settings)
        return 0
    if args.command == "serve":
        cmd_serve(settings, host=args.host, port=args.port)
        return 0
    if args.command == "lp":
        return asyncio.run(cmd_lp(settings, args.position_id, lenient=args.lenient))
    if args.command == "hl":
        return asyncio.run(cmd_hl(settings, args.wallet, coin=args.coin))
    if args.command == "health":
        ok = asyncio.run(cmd_health(settings))
        return 0 if ok else 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
