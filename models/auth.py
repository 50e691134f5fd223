"""Credentials and the L1 auth assertion."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ApiCredentials(BaseModel):
    """L2 API credentials.  Owned by the caller; passed by reference."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_key: str = Field(..., min_length=1, alias="apiKey")
    secret: SecretStr = Field(..., description="url-safe base64 HMAC key")
    passphrase: SecretStr

    @classmethod
    def from_api(cls, data: dict) -> ApiCredentials:
        """Build from an exchange response (``apiKey`` or ``api_key``)."""
        return cls(
            api_key=data.get("apiKey") or data.get("api_key") or "",
            secret=data.get("secret", ""),
            passphrase=data.get("passphrase", ""),
        )


class AuthAssertion(BaseModel):
    """Signed proof that ``address`` controlled its key at ``timestamp``."""

    model_config = ConfigDict(frozen=True)

    address: str
    timestamp: str
    nonce: int = 0
    signature: str
