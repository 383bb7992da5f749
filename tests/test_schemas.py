from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import Settings
from app.domain import TokenInfo
from app.schemas import NormalizedWinnerSchema, PayoutManifestSchema, TokenInfoSchema, WinnerRowSchema


def _token_payload() -> dict:
    return {"address": "0x" + "7" * 40, "symbol": "SUPR", "name": "SuperDapp Token", "decimals": 18, "chainId": 570}


def _manifest_payload(**overrides) -> dict:
    winner = {
        "address": "0x" + "1" * 40,
        "amount": "100",
        "rank": 1,
        "id": "w-1",
        "token": _token_payload(),
    }
    payload = {
        "id": "m-1",
        "winners": [winner],
        "token": _token_payload(),
        "totalAmount": "100",
        "createdBy": "0x" + "0" * 40,
        "createdAt": "2024-01-01T00:00:00Z",
        "roundId": "r",
        "groupId": "g",
        "version": "1.0",
        "hash": "0x00",
        "totals": {"amountWei": "100"},
    }
    payload.update(overrides)
    return payload


def test_token_schema_accepts_camel_and_snake_case():
    camel = TokenInfoSchema.model_validate(_token_payload())
    snake = TokenInfoSchema(address="0x" + "7" * 40, symbol="SUPR", name="x", decimals=6, chain_id="0x23a")

    assert camel.to_domain() == TokenInfo(
        address="0x" + "7" * 40, symbol="SUPR", name="SuperDapp Token", decimals=18, chain_id=570
    )
    assert snake.chain_id == "0x23a"


def test_token_decimals_are_bounded():
    with pytest.raises(ValidationError):
        TokenInfoSchema.model_validate({**_token_payload(), "decimals": 78})


def test_winner_row_schema_stringifies_loose_input():
    row = WinnerRowSchema(address=None, amount=1.5, rank=2, id=12).to_domain()

    assert row.address == ""
    assert row.id == "12"
    assert row.amount == 1.5


def test_normalized_winner_requires_integer_amount():
    with pytest.raises(ValidationError):
        NormalizedWinnerSchema.model_validate(
            {"address": "0x" + "1" * 40, "amount": "1.5", "rank": 1, "id": "w", "token": _token_payload()}
        )


def test_manifest_schema_accepts_consistent_payload():
    manifest = PayoutManifestSchema.model_validate(_manifest_payload()).to_domain()

    assert manifest.total_amount_wei == 100
    assert manifest.winners[0].token.chain_id == 570


@pytest.mark.parametrize(
    "overrides",
    [
        {"totalAmount": "101", "totals": {"amountWei": "101"}},
        {"totals": {"amountWei": "99"}},
        {"totalAmount": "-100"},
        {"options": {"gasStrategy": "turbo"}},
    ],
)
def test_manifest_schema_rejects_inconsistent_payload(overrides):
    with pytest.raises(ValidationError):
        PayoutManifestSchema.model_validate(_manifest_payload(**overrides))


def test_manifest_schema_rejects_duplicate_winners():
    payload = _manifest_payload()
    duplicate = {**payload["winners"][0], "address": payload["winners"][0]["address"].upper().replace("0X", "0x"), "amount": "0"}
    payload["winners"].append(duplicate)

    with pytest.raises(ValidationError):
        PayoutManifestSchema.model_validate(payload)


def test_settings_parse_airdrop_overrides():
    settings = Settings(airdrop_addresses="137=0x" + "4" * 40 + ", 8453=0x" + "5" * 40)

    assert settings.airdrop_addresses == {137: "0x" + "4" * 40, 8453: "0x" + "5" * 40}


@pytest.mark.parametrize("value", ["137", "abc=0x" + "4" * 40, "137=0x1234"])
def test_settings_reject_malformed_airdrop_overrides(value):
    with pytest.raises(ValidationError):
        Settings(airdrop_addresses=value)


def test_settings_normalize_private_key():
    assert Settings(signer_private_key="4c" * 32).signer_private_key == "0x" + "4c" * 32
    assert Settings(signer_private_key="  ").signer_private_key is None
    with pytest.raises(ValidationError):
        Settings(signer_private_key="0x1234")


def test_resolved_rpc_url_requires_configuration():
    with pytest.raises(ValueError):
        _ = Settings(rpc_url=None).resolved_rpc_url
    assert Settings(rpc_url="http://localhost:8545").resolved_rpc_url.startswith("http://localhost:8545")
