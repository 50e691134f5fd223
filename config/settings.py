"""Pydantic BaseSettings — all monetary values as Decimal, never float."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────
    APP_ENV: Literal["dev", "staging", "prod"] = "dev"
    APP_NAME: str = "clob-signing-core"
    LOG_LEVEL: str = "INFO"

    # ── Network / API ───────────────────────────────────────────
    CLOB_REST_BASE_URL: str = "https://clob.polymarket.com"
    CHAIN_ID: int = 137
    POLYGON_RPC_URLS: str = "https://polygon-rpc.com,https://polygon-bor-rpc.publicnode.com"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # ── Response cache (never a source of correctness) ──────────
    RESPONSE_CACHE_TTL_SECONDS: float = 5.0
    RESPONSE_CACHE_MAX_ENTRIES: int = 256

    # ── Contracts (Polygon mainnet) ─────────────────────────────
    CTF_EXCHANGE_ADDRESS: str = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
    NEG_RISK_CTF_EXCHANGE_ADDRESS: str = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
    COLLATERAL_TOKEN_ADDRESS: str = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"  # USDC.e
    CONDITIONAL_TOKENS_ADDRESS: str = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"

    # ── Signing ─────────────────────────────────────────────────
    SIGNER_BACKEND: Literal["local", "external"] = "local"
    SIGNATURE_TYPE: int = Field(default=0, ge=0, le=2)  # 0=EOA 1=POLY_PROXY 2=POLY_GNOSIS_SAFE

    # ── Approvals ───────────────────────────────────────────────
    APPROVAL_GAS_LIMIT: int = 100_000
    APPROVAL_TX_TIMEOUT_SECONDS: float = 120.0
    MAX_GAS_PRICE_GWEI: Decimal = Field(default=Decimal("500"))

    # ── Credentials (never commit real values) ──────────────────
    POLYMARKET_API_KEY: str = ""
    POLYMARKET_SECRET: str = ""
    POLYMARKET_PASSPHRASE: str = ""
    POLYMARKET_PRIVATE_KEY: str = ""

    @property
    def rpc_urls(self) -> list[str]:
        """RPC endpoints in priority order."""
        return [u.strip() for u in self.POLYGON_RPC_URLS.split(",") if u.strip()]


settings = Settings()
