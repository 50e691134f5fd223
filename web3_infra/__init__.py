"""Signing core — web3_infra package.

- signing capabilities (local key / external wallet)
- EIP-712 typed-data signing for auth assertions and orders
- L1 / L2 request headers
- RPC failover and approval transactions
"""

from .approvals import ApprovalAdapter, ApprovalConfig, ApprovalTxResult
from .eip712_signer import TypedDataSigner, generate_salt
from .hmac_auth import build_hmac_signature, build_l1_headers, build_l2_headers
from .rpc_manager import RPCError, RPCManager
from .signing import (
    ExternalWalletSigner,
    LocalKeySigner,
    SigningCapability,
    build_signing_capability,
)

__all__ = [
    "ApprovalAdapter",
    "ApprovalConfig",
    "ApprovalTxResult",
    "ExternalWalletSigner",
    "LocalKeySigner",
    "RPCError",
    "RPCManager",
    "SigningCapability",
    "TypedDataSigner",
    "build_hmac_signature",
    "build_l1_headers",
    "build_l2_headers",
    "build_signing_capability",
    "generate_salt",
]
