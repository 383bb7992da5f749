"""Call-data encoding for payout transactions and Transfer log decoding."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from eth_abi import decode, encode
from web3 import Web3

TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"

ERC20_TRANSFER = ("transfer(address,uint256)", ("address", "uint256"))
ERC20_APPROVE = ("approve(address,uint256)", ("address", "uint256"))
BATCH_TOKEN_TRANSFER = (
    "batchTokenTransfer(address,address[],uint256[])",
    ("address", "address[]", "uint256[]"),
)
BATCH_NATIVE_TRANSFER = (
    "batchNativeTransfer(address[],uint256[])",
    ("address[]", "uint256[]"),
)


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return value if value.startswith(("0x", "0X")) else "0x" + value
    raise TypeError(f"Expected hex string or bytes, got {type(value).__name__}")


def event_topic(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature))


def function_selector(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


TRANSFER_EVENT_TOPIC = event_topic(TRANSFER_EVENT_SIGNATURE)


def encode_call(function: tuple[str, Sequence[str]], args: Sequence[Any]) -> str:
    signature, types = function
    return function_selector(signature) + encode(list(types), list(args)).hex()


def decode_call(function: tuple[str, Sequence[str]], data: str | bytes) -> tuple[Any, ...]:
    """Decode ``data`` produced by :func:`encode_call` for ``function``."""

    signature, types = function
    raw = _hex(data)
    selector = function_selector(signature)
    if raw[:10].lower() != selector:
        raise ValueError(f"call data does not start with the {signature} selector")
    return decode(list(types), bytes.fromhex(raw[10:]))


def address_from_topic(topic: Any) -> str:
    raw = _hex(topic)[2:]
    if len(raw) != 64:
        raise ValueError(f"topic is not 32 bytes: {topic!r}")
    return Web3.to_checksum_address("0x" + raw[-40:])


def decode_transfer_log(log: Mapping[str, Any]) -> tuple[str, str, int] | None:
    """Return ``(sender, recipient, amount)`` for a Transfer log.

    Logs of other events return ``None``; Transfer logs that cannot be
    decoded raise ``ValueError``.
    """

    topics = log.get("topics") or []
    if not topics or _hex(topics[0]).lower() != TRANSFER_EVENT_TOPIC:
        return None
    if len(topics) < 3:
        # ERC-721 shares the signature but indexes the token id instead of emitting data.
        raise ValueError("Transfer log is missing indexed sender/recipient topics")
    sender = address_from_topic(topics[1])
    recipient = address_from_topic(topics[2])
    data = _hex(log.get("data") or "0x")
    try:
        amount = int(data, 16) if len(data) > 2 else 0
    except ValueError as exc:
        raise ValueError(f"Transfer log data is not hex: {data!r}") from exc
    return sender, recipient, amount


__all__ = [
    "BATCH_NATIVE_TRANSFER",
    "BATCH_TOKEN_TRANSFER",
    "ERC20_APPROVE",
    "ERC20_TRANSFER",
    "TRANSFER_EVENT_SIGNATURE",
    "TRANSFER_EVENT_TOPIC",
    "address_from_topic",
    "decode_call",
    "decode_transfer_log",
    "encode_call",
    "event_topic",
    "function_selector",
]
