"""Shared fixtures: well-known test keys, intents and a scripted wallet."""

from __future__ import annotations

from typing import Any

import pytest

from web3_infra.signing import LocalKeySigner, WalletRpcError

# Hardhat / anvil default accounts #0 and #1 — public test keys, never funded on mainnet.
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
OTHER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

CTF_EXCHANGE = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_EXCHANGE = "0xC5d563A36AE78145C45a50134d48A1215220f80a"

TOKEN_ID = (
    "71321045679252212594626385532706912750332728571942532289631379312455583992563"
)

# url-safe base64 of 32 bytes
API_SECRET = "dGhpcy1pcy1hLXRlc3Qtc2VjcmV0LTMyLWJ5dGVzISE="


def make_intent_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "token_id": TOKEN_ID,
        "side": "BUY",
        "price": "0.50",
        "size": "100",
        "maker": ADDRESS,
        "signer": ADDRESS,
    }
    data.update(overrides)
    return data


@pytest.fixture
def local_signer() -> LocalKeySigner:
    return LocalKeySigner(PRIVATE_KEY)


class ScriptedWallet:
    """EIP-1193 transport double.

    ``responses`` maps a method to a value, a ``WalletRpcError`` to raise,
    or a callable taking the params.  Every call is recorded in ``calls``.
    """

    def __init__(self, chain_id: int = 137, accounts: list[str] | None = None) -> None:
        self.chain_id = chain_id
        self.accounts = [ADDRESS] if accounts is None else accounts
        self.responses: dict[str, Any] = {}
        self.calls: list[tuple[str, list[Any] | None]] = []

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        self.calls.append((method, params))
        if method in self.responses:
            response = self.responses[method]
            if isinstance(response, WalletRpcError):
                raise response
            if callable(response):
                return response(params)
            return response
        if method in ("eth_accounts", "eth_requestAccounts"):
            return self.accounts
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "wallet_switchEthereumChain":
            self.chain_id = int(params[0]["chainId"], 16)
            return None
        raise WalletRpcError(f"unsupported method {method}", code=4200)

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]


@pytest.fixture
def wallet() -> ScriptedWallet:
    return ScriptedWallet()
