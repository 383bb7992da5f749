"""Chain metadata and airdrop contract registry."""

from __future__ import annotations

from dataclasses import dataclass

from app.core import config
from app.domain import ChainId, TokenInfo

from .addresses import ZERO_ADDRESS, is_zero_address, validate_and_checksum_address

ROLLUX_MAINNET = 570
ROLLUX_TESTNET = 57000


@dataclass(slots=True, frozen=True)
class ChainMetadata:
    name: str
    native_token: str
    is_testnet: bool
    block_explorer: str | None = None
    rpc_urls: tuple[str, ...] = ()
    airdrop: str = ZERO_ADDRESS
    supr_token: str | None = None

    @property
    def default_rpc_url(self) -> str | None:
        return self.rpc_urls[0] if self.rpc_urls else None


CHAIN_METADATA: dict[int, ChainMetadata] = {
    1: ChainMetadata(
        name="Ethereum Mainnet",
        native_token="ETH",
        is_testnet=False,
        block_explorer="https://etherscan.io",
    ),
    ROLLUX_MAINNET: ChainMetadata(
        name="Rollux Mainnet",
        native_token="SYS",
        is_testnet=False,
        block_explorer="https://explorer.rollux.com",
        rpc_urls=(
            "https://api.superdapp.ai/rpc/rollux/mainnet",
            "https://rpc.rollux.com",
            "https://rollux.rpc.syscoin.org",
        ),
        airdrop="0x2aACce8B9522F81F14834883198645BB6894Bfc0",
        supr_token="0x3390108E913824B8eaD638444cc52B9aBdF63798",
    ),
    ROLLUX_TESTNET: ChainMetadata(
        name="Rollux Testnet",
        native_token="tSYS",
        is_testnet=True,
        block_explorer="https://rollux-tanenbaum.blockscout.com",
        rpc_urls=(
            "https://api.superdapp.ai/rpc/rollux/testnet",
            "https://rpc-tanenbaum.rollux.com",
        ),
        supr_token=ZERO_ADDRESS,
    ),
    137: ChainMetadata(
        name="Polygon Mainnet",
        native_token="MATIC",
        is_testnet=False,
        block_explorer="https://polygonscan.com",
    ),
    42161: ChainMetadata(
        name="Arbitrum One",
        native_token="ETH",
        is_testnet=False,
        block_explorer="https://arbiscan.io",
    ),
    10: ChainMetadata(
        name="Optimism",
        native_token="ETH",
        is_testnet=False,
        block_explorer="https://optimistic.etherscan.io",
    ),
    8453: ChainMetadata(
        name="Base",
        native_token="ETH",
        is_testnet=False,
        block_explorer="https://basescan.org",
    ),
}


@dataclass(slots=True, frozen=True)
class _SuprToken:
    address: str
    symbol: str
    name: str
    decimals: int = 18


_SUPR_TOKENS: dict[int, _SuprToken] = {
    ROLLUX_MAINNET: _SuprToken(
        address="0x3390108E913824B8eaD638444cc52B9aBdF63798",
        symbol="SUPR",
        name="SuperDapp Token",
    ),
    ROLLUX_TESTNET: _SuprToken(
        address=ZERO_ADDRESS,
        symbol="tSUPR",
        name="SuperDapp Token (Testnet)",
    ),
}


def normalize_chain_id(chain_id: ChainId) -> int | None:
    if isinstance(chain_id, bool):
        return None
    if isinstance(chain_id, int):
        return chain_id
    try:
        text = str(chain_id).strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    except (TypeError, ValueError):
        return None


def get_chain_metadata(chain_id: ChainId) -> ChainMetadata | None:
    numeric = normalize_chain_id(chain_id)
    if numeric is None:
        return None
    return CHAIN_METADATA.get(numeric)


def get_airdrop_address(chain_id: ChainId) -> str | None:
    """Return the configured airdrop contract, preferring settings overrides."""

    numeric = normalize_chain_id(chain_id)
    if numeric is None:
        return None
    override = config.get_settings().airdrop_addresses.get(numeric)
    if override:
        return validate_and_checksum_address(override)
    metadata = CHAIN_METADATA.get(numeric)
    if metadata is None:
        return None
    return validate_and_checksum_address(metadata.airdrop)


def is_supported_chain(chain_id: ChainId) -> bool:
    return not is_zero_address(get_airdrop_address(chain_id))


def configured_chain_ids() -> list[int]:
    overrides = config.get_settings().airdrop_addresses
    return sorted(set(CHAIN_METADATA) | set(overrides))


def supported_chain_ids() -> list[int]:
    return [chain_id for chain_id in configured_chain_ids() if is_supported_chain(chain_id)]


def get_supr_token_config(chain_id: ChainId) -> TokenInfo:
    numeric = normalize_chain_id(chain_id)
    token = _SUPR_TOKENS.get(numeric) if numeric is not None else None
    if token is None:
        raise ValueError(f"SUPR token not available on chain {chain_id}")
    return TokenInfo(
        address=token.address,
        symbol=token.symbol,
        name=token.name,
        decimals=token.decimals,
        chain_id=numeric,
        is_native=False,
    )


def native_token_info(chain_id: ChainId) -> TokenInfo:
    numeric = normalize_chain_id(chain_id)
    metadata = get_chain_metadata(chain_id)
    if metadata is None or numeric is None:
        raise ValueError(f"Chain {chain_id} is not a configured chain")
    return TokenInfo(
        address=ZERO_ADDRESS,
        symbol=metadata.native_token,
        name=f"{metadata.name} native token",
        decimals=18,
        chain_id=numeric,
        is_native=True,
    )


def explorer_url(chain_id: ChainId, value: str) -> str:
    """Link a transaction hash or an address on the chain's block explorer."""

    metadata = get_chain_metadata(chain_id)
    if metadata is None or not metadata.block_explorer:
        raise ValueError(f"No block explorer configured for chain {chain_id}")
    is_transaction = len(value) == 66 and value.startswith("0x")
    path = "tx" if is_transaction else "address"
    return f"{metadata.block_explorer}/{path}/{value}"


__all__ = [
    "CHAIN_METADATA",
    "ChainMetadata",
    "ROLLUX_MAINNET",
    "ROLLUX_TESTNET",
    "configured_chain_ids",
    "explorer_url",
    "get_airdrop_address",
    "get_chain_metadata",
    "get_supr_token_config",
    "is_supported_chain",
    "native_token_info",
    "normalize_chain_id",
    "supported_chain_ids",
]
