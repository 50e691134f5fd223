"""L1 / L2 request authentication headers for the CLOB REST API.

L1: an EIP-712 ``ClobAuth`` assertion, used only to create or derive API
credentials.  L2: HMAC-SHA256 over ``timestamp + METHOD + path + body`` keyed
by the API secret, used on every authenticated call.

Pure functions; the caller issues the request and must send exactly the
body string that was signed.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from models.auth import ApiCredentials, AuthAssertion

POLY_ADDRESS = "POLY_ADDRESS"
POLY_SIGNATURE = "POLY_SIGNATURE"
POLY_TIMESTAMP = "POLY_TIMESTAMP"
POLY_NONCE = "POLY_NONCE"
POLY_API_KEY = "POLY_API_KEY"
POLY_PASSPHRASE = "POLY_PASSPHRASE"


def serialize_body(payload: Any) -> str | None:
    """Compact JSON for a request body; strings pass through unchanged."""
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, separators=(",", ":"))


def build_hmac_signature(
    secret: str,
    timestamp: str | int,
    method: str,
    request_path: str,
    body: str | None = None,
) -> str:
    """url-safe base64 HMAC-SHA256 over the request metadata.

    *secret* is url-safe base64 (standard base64 is accepted too).
    """
    key = base64.urlsafe_b64decode(secret)
    message = f"{timestamp}{method.upper()}{request_path}"
    if body:
        message += body
    digest = hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8")


def build_l2_headers(
    address: str,
    credentials: ApiCredentials,
    method: str,
    request_path: str,
    body: str | None = None,
    timestamp: int | None = None,
) -> dict[str, str]:
    """Header set for an L2-authenticated call."""
    ts = str(timestamp if timestamp is not None else int(time.time()))
    signature = build_hmac_signature(
        credentials.secret.get_secret_value(),
        ts,
        method,
        request_path,
        body,
    )
    return {
        POLY_ADDRESS: address.lower(),
        POLY_SIGNATURE: signature,
        POLY_TIMESTAMP: ts,
        POLY_API_KEY: credentials.api_key,
        POLY_PASSPHRASE: credentials.passphrase.get_secret_value(),
    }


def build_l1_headers(assertion: AuthAssertion) -> dict[str, str]:
    """Header set for creating / deriving API credentials."""
    return {
        POLY_ADDRESS: assertion.address,
        POLY_SIGNATURE: assertion.signature,
        POLY_TIMESTAMP: assertion.timestamp,
        POLY_NONCE: str(assertion.nonce),
    }
