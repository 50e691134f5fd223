#!/usr/bin/env python3
"""Approve both CTF exchanges for USDC (and optionally outcome tokens).

Requires POL for gas on Polygon mainnet.  Run this AFTER funding the wallet.

Usage:
    python scripts/set_allowances.py [--conditional] [--check-only]

Environment variables:
    POLYMARKET_PRIVATE_KEY  - Wallet private key
    POLYMARKET_API_KEY      - CLOB API key
    POLYMARKET_SECRET       - CLOB API secret
    POLYMARKET_PASSPHRASE   - CLOB API passphrase
    POLYGON_RPC_URLS        - Comma-separated RPC endpoints
"""
import argparse
import asyncio
import json
import sys

from config.settings import settings
from core.client import ClobTradingCore
from core.errors import ClobCoreError
from core.logger import setup_logging
from models.auth import ApiCredentials


def _print_report(report) -> None:
    print(json.dumps(report.model_dump(mode="json"), indent=2))


async def main(include_conditional: bool, check_only: bool) -> int:
    async with ClobTradingCore() as core:
        address = await core.capability.get_active_address()
        print(f"Wallet address: {address}")

        print("\n=== Current Allowances ===")
        report = await core.check_allowance(address, include_conditional)
        _print_report(report)

        if not report.needs_approval:
            print("\n✅ Allowances already set!")
            return 0
        if check_only:
            print("\n⏳ Approvals missing (run without --check-only to set them)")
            return 0

        if not settings.POLYMARKET_API_KEY:
            print("ERROR: POLYMARKET_API_KEY/SECRET/PASSPHRASE required to sync", file=sys.stderr)
            return 1
        creds = ApiCredentials(
            api_key=settings.POLYMARKET_API_KEY,
            secret=settings.POLYMARKET_SECRET,
            passphrase=settings.POLYMARKET_PASSPHRASE,
        )

        print("\n⏳ Approving exchange contracts...")
        try:
            report = await core.ensure_allowance(address, creds, include_conditional)
        except ClobCoreError as exc:
            print(f"Error setting allowance: {exc.message}", file=sys.stderr)
            print("  Ensure you have POL for gas on Polygon mainnet.", file=sys.stderr)
            return 1

        print("\n=== Result ===")
        _print_report(report)
        if report.sync_errors:
            print("\nWARNING: approvals are mined but the exchange sync failed;")
            print("the exchange will pick up on-chain state on its own.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--conditional", action="store_true", help="also approve outcome tokens (needed to sell)")
    parser.add_argument("--check-only", action="store_true", help="read on-chain state, send nothing")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(main(args.conditional, args.check_only)))
