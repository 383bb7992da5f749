from __future__ import annotations

import pytest

from payouts.addresses import ZERO_ADDRESS
from payouts.chains import (
    ROLLUX_MAINNET,
    ROLLUX_TESTNET,
    configured_chain_ids,
    explorer_url,
    get_airdrop_address,
    get_chain_metadata,
    get_supr_token_config,
    is_supported_chain,
    native_token_info,
    normalize_chain_id,
    supported_chain_ids,
)


@pytest.mark.parametrize(("value", "expected"), [(570, 570), ("570", 570), ("0x23a", 570), ("abc", None), (True, None)])
def test_normalize_chain_id(value, expected):
    assert normalize_chain_id(value) == expected


def test_rollux_mainnet_metadata(test_settings):
    metadata = get_chain_metadata("570")

    assert metadata.name == "Rollux Mainnet"
    assert metadata.native_token == "SYS"
    assert metadata.default_rpc_url.startswith("https://")
    assert get_chain_metadata(999999) is None


def test_only_chains_with_airdrop_are_supported(test_settings):
    assert is_supported_chain(ROLLUX_MAINNET)
    assert not is_supported_chain(ROLLUX_TESTNET)
    assert not is_supported_chain(1)
    assert not is_supported_chain(999999)
    assert supported_chain_ids() == [ROLLUX_MAINNET]


def test_settings_override_adds_supported_chain(test_settings):
    override = "0x" + "4" * 40
    test_settings.airdrop_addresses = {137: override, 424242: override}

    assert get_airdrop_address(137) == override
    assert 424242 in configured_chain_ids()
    assert supported_chain_ids() == [137, ROLLUX_MAINNET, 424242]


def test_supr_token_config(test_settings):
    token = get_supr_token_config(ROLLUX_MAINNET)

    assert token.symbol == "SUPR"
    assert token.decimals == 18
    assert token.chain_id == ROLLUX_MAINNET
    with pytest.raises(ValueError):
        get_supr_token_config(1)


def test_native_token_info(test_settings):
    token = native_token_info(ROLLUX_MAINNET)

    assert token.is_native
    assert token.address == ZERO_ADDRESS
    assert token.symbol == "SYS"
    with pytest.raises(ValueError):
        native_token_info(999999)


def test_explorer_urls():
    tx_hash = "0x" + "ab" * 32
    address = "0x" + "1" * 40

    assert explorer_url(1, tx_hash) == f"https://etherscan.io/tx/{tx_hash}"
    assert explorer_url(1, address) == f"https://etherscan.io/address/{address}"
    with pytest.raises(ValueError):
        explorer_url(999999, address)
