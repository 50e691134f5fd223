"""Unit tests for the order, auth and allowance models."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import ADDRESS, TOKEN_ID, make_intent_data
from models import (
    AllowanceReport,
    AllowanceStatus,
    ApiCredentials,
    AssetType,
    ComputedAmounts,
    OrderIntent,
    OrderType,
    Side,
    SignedOrder,
    ZERO_ADDRESS,
)


# ──────────────────────────────────────────────
# OrderIntent
# ──────────────────────────────────────────────

class TestOrderIntent:
    """OrderIntent validation."""

    def _make(self, **overrides) -> OrderIntent:
        return OrderIntent(**make_intent_data(**overrides))

    def test_create_valid(self):
        intent = self._make()
        assert intent.side is Side.BUY
        assert intent.price == Decimal("0.50")
        assert intent.expiration == 0
        assert intent.fee_rate_bps == 0
        assert intent.neg_risk is False
        assert intent.order_type is OrderType.GTC
        assert intent.nonce is None

    def test_addresses_checksummed(self):
        intent = self._make(maker=ADDRESS.lower(), signer=ADDRESS.lower())
        assert intent.maker == ADDRESS
        assert intent.signer == ADDRESS

    def test_invalid_address(self):
        with pytest.raises(ValidationError, match="maker"):
            self._make(maker="0x1234")

    def test_bad_checksum_rejected(self):
        # ADDRESS with the case of its first letter flipped
        with pytest.raises(ValidationError, match="checksum"):
            self._make(maker="0xF39Fd6e51aad88F6F4ce6aB8827279cffFb92266")

    def test_upper_case_address_accepted(self):
        intent = self._make(signer="0x" + ADDRESS[2:].upper())
        assert intent.signer == ADDRESS

    @pytest.mark.parametrize("token_id", ["", "abc", "-1", "1.5", str(2**256)])
    def test_invalid_token_id(self, token_id):
        with pytest.raises(ValidationError):
            self._make(token_id=token_id)

    def test_token_id_normalized(self):
        assert self._make(token_id=" 0042 ").token_id == "42"

    def test_large_token_id_kept_exact(self):
        assert self._make().token_id == TOKEN_ID

    @pytest.mark.parametrize("price", ["0", "1.0001", "-0.5"])
    def test_price_bounds(self, price):
        with pytest.raises(ValidationError):
            self._make(price=price)

    def test_price_one_allowed(self):
        assert self._make(price="1").price == Decimal("1")

    def test_size_positive(self):
        with pytest.raises(ValidationError):
            self._make(size="0")

    def test_gtd_requires_expiration(self):
        with pytest.raises(ValidationError, match="GTD"):
            self._make(order_type="GTD")
        assert self._make(order_type="GTD", expiration=1_900_000_000).expiration == 1_900_000_000

    def test_expiration_only_for_gtd(self):
        with pytest.raises(ValidationError, match="expiration"):
            self._make(expiration=1_900_000_000)

    def test_frozen(self):
        intent = self._make()
        with pytest.raises(ValidationError):
            intent.price = Decimal("0.6")


# ──────────────────────────────────────────────
# ComputedAmounts / SignedOrder
# ──────────────────────────────────────────────

class TestSignedOrder:
    """Wire representation of a signed order."""

    def _make(self, **overrides) -> SignedOrder:
        defaults = dict(
            salt="1234567890123",
            maker=ADDRESS,
            signer=ADDRESS,
            token_id=TOKEN_ID,
            maker_amount="50000000",
            taker_amount="100000000",
            expiration="0",
            nonce="0",
            fee_rate_bps="0",
            side=Side.BUY,
            signature_type=0,
            signature="0x" + "ab" * 65,
            verifying_contract="0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E",
        )
        defaults.update(overrides)
        return SignedOrder(**defaults)

    def test_to_dict_camel_case(self):
        d = self._make().to_dict()
        assert d["tokenId"] == TOKEN_ID
        assert d["makerAmount"] == "50000000"
        assert d["feeRateBps"] == "0"
        assert d["taker"] == ZERO_ADDRESS
        assert d["side"] == "BUY"

    def test_api_payload(self):
        payload = self._make(side=Side.SELL).to_api_payload("key-123", OrderType.FOK)
        assert payload["owner"] == "key-123"
        assert payload["orderType"] == "FOK"
        assert payload["deferExec"] is False
        assert payload["order"]["salt"] == 1234567890123
        assert payload["order"]["side"] == "SELL"
        assert payload["order"]["tokenId"] == TOKEN_ID

    def test_api_payload_defaults_to_built_order_type(self):
        order = self._make(expiration="1900000000", order_type=OrderType.GTD)
        assert order.to_api_payload("key-123")["orderType"] == "GTD"
        assert order.to_api_payload("key-123", OrderType.FOK)["orderType"] == "FOK"
        assert self._make().to_api_payload("key-123")["orderType"] == "GTC"

    def test_numeric_strings_round_trip(self):
        order = self._make(nonce=str(2**64), maker_amount=str(2**60))
        assert int(order.nonce) == 2**64
        assert int(order.to_dict()["makerAmount"]) == 2**60

    def test_computed_amount_units(self):
        amounts = ComputedAmounts(maker_amount="5", taker_amount="10")
        assert amounts.maker_units == 5
        assert amounts.taker_units == 10


# ──────────────────────────────────────────────
# Credentials / allowance
# ──────────────────────────────────────────────

class TestApiCredentials:

    def test_from_api_camel_case(self):
        creds = ApiCredentials.from_api({"apiKey": "k", "secret": "s", "passphrase": "p"})
        assert creds.api_key == "k"
        assert creds.secret.get_secret_value() == "s"

    def test_from_api_snake_case(self):
        creds = ApiCredentials.from_api({"api_key": "k", "secret": "s", "passphrase": "p"})
        assert creds.api_key == "k"

    def test_secret_hidden_in_repr(self):
        creds = ApiCredentials(api_key="k", secret="topsecret", passphrase="pp")
        assert "topsecret" not in repr(creds)

    def test_missing_key(self):
        with pytest.raises(ValidationError):
            ApiCredentials.from_api({"secret": "s", "passphrase": "p"})


class TestAllowanceReport:

    def test_needs_approval_from_any_asset(self):
        report = AllowanceReport(
            wallet=ADDRESS,
            collateral=AllowanceStatus(asset_type=AssetType.COLLATERAL),
            conditional=AllowanceStatus(
                asset_type=AssetType.CONDITIONAL,
                approvals={"0xA": True, "0xB": False},
                needs_approval=True,
            ),
        )
        assert report.needs_approval is True
        assert report.conditional.spenders_needing_approval == ["0xB"]

    def test_empty_report(self):
        assert AllowanceReport(wallet=ADDRESS).needs_approval is False
