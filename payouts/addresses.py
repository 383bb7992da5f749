from __future__ import annotations

import re
from typing import Any

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_HEX_BODY = re.compile(r"^[0-9a-f]{40}$")


def validate_and_checksum_address(address: Any) -> str | None:
    """Return the EIP-55 form of ``address`` or ``None`` when it is malformed.

    The ``0x`` prefix is optional and letter case is ignored on input, so two
    spellings of the same account always normalize to the same string.
    """

    if not isinstance(address, str):
        return None
    candidate = address.strip()
    if candidate[:2].lower() == "0x":
        candidate = candidate[2:]
    body = candidate.lower()
    if not _HEX_BODY.match(body):
        return None
    return Web3.to_checksum_address("0x" + body)


def is_zero_address(address: str | None) -> bool:
    if not address:
        return True
    return address.lower() == ZERO_ADDRESS


def same_address(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return left.lower() == right.lower()


__all__ = ["ZERO_ADDRESS", "is_zero_address", "same_address", "validate_and_checksum_address"]
