#!/usr/bin/env python3
"""Generate or derive CLOB API credentials with the configured private key.

Signs a ClobAuth assertion (L1) and asks the exchange to derive the
existing credentials, creating new ones only if none exist.  Output is in
``.env`` format on stdout; progress goes to stderr.

Usage:
    python scripts/generate_creds.py
"""
import asyncio
import sys

from config.settings import settings
from core.client import ClobTradingCore
from core.errors import ClobCoreError
from core.logger import setup_logging


async def main() -> int:
    if settings.SIGNER_BACKEND != "local" or not settings.POLYMARKET_PRIVATE_KEY:
        print("ERROR: set SIGNER_BACKEND=local and POLYMARKET_PRIVATE_KEY", file=sys.stderr)
        return 1

    async with ClobTradingCore() as core:
        address = await core.capability.get_active_address()
        print(f"Deriving API credentials for {address}...", file=sys.stderr)
        try:
            creds = await core.create_api_credentials(address)
        except ClobCoreError as exc:
            print(f"ERROR: {exc.message} ({exc.status_code})", file=sys.stderr)
            return 1

    print(f"POLYMARKET_API_KEY={creds.api_key}")
    print(f"POLYMARKET_SECRET={creds.secret.get_secret_value()}")
    print(f"POLYMARKET_PASSPHRASE={creds.passphrase.get_secret_value()}")
    print("Done!", file=sys.stderr)
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
