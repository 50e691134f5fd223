"""Error taxonomy for the order-signing core.

Anything that affects fund safety (bad price, address mismatch, wrong
domain) fails closed before a signature is requested.  Recoverable lookups
(nonce absent) never reach this module: they are resolved in place.
"""

from __future__ import annotations

from typing import Any


class ClobCoreError(Exception):
    """Base error for the signing core."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.endpoint = endpoint
        self.status_code = status_code
        self.details = details


# ── Validation ───────────────────────────────────────────────────────


class InvalidParameters(ClobCoreError):
    """Malformed order intent.  Never retried."""


# ── Signing capability ───────────────────────────────────────────────


class SignerError(ClobCoreError):
    """Wallet / key capability failure.  Retry by re-running the whole flow."""


class SignerRejected(SignerError):
    """The user declined the request in an external wallet."""


class SignerUnavailable(SignerError):
    """No signing capability or no active account."""


class WrongChain(SignerError):
    """Capability is not on, and could not be switched to, the target chain."""

    def __init__(self, expected: int, actual: int | None) -> None:
        super().__init__(
            f"Wallet is on chain {actual}, expected {expected}",
            field="chainId",
        )
        self.expected = expected
        self.actual = actual


class AddressMismatch(ClobCoreError):
    """Capability's active address differs from the declared signer."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Signer address mismatch: expected {expected}, wallet has {actual}",
            field="signer",
        )
        self.expected = expected
        self.actual = actual


# ── Network ──────────────────────────────────────────────────────────


class NetworkDegraded(ClobCoreError):
    """A supporting endpoint failed to answer."""


class NetworkUnavailable(NetworkDegraded):
    """Every endpoint in a fallback chain failed."""


# ── Protocol / exchange ──────────────────────────────────────────────


class ProtocolMismatchError(ClobCoreError):
    """Computed amounts or signing domain inconsistent with the market.  Fatal."""


class OrderRejected(ClobCoreError):
    """The exchange refused an order or cancel request."""

    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.error_code = error_code


class AuthenticationFailed(ClobCoreError):
    """L2 credentials were refused (expired or invalid)."""


class ApiKeyError(ClobCoreError):
    """An API key request (create, derive, list, revoke) failed."""


# ── Allowances ───────────────────────────────────────────────────────


class AllowanceError(ClobCoreError):
    """An approval transaction failed, reverted or timed out."""

    def __init__(self, message: str, tx_hash: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
