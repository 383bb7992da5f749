from __future__ import annotations

import json
from typing import Any, Mapping

from app.domain import WinnerRow
from app.schemas import WinnerRowSchema

_ADDRESS_KEYS = ("address", "wallet", "wallet_address", "walletAddress", "recipient")
_AMOUNT_KEYS = ("amount", "prize", "reward", "amountDecimal")
_RANK_KEYS = ("rank", "position", "place")
_ID_KEYS = ("id", "winner_id", "winnerId", "user_id", "userId")
_RESERVED_KEYS = frozenset(_ADDRESS_KEYS + _AMOUNT_KEYS + _RANK_KEYS + _ID_KEYS + ("metadata",))


def _first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    """Return value as a dict when possible, decoding JSON strings."""
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _parse_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _clean_amount(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().replace("_", "")
    return "" if value is None else value


def normalize_winner_row(raw: Mapping[str, Any], index: int) -> WinnerRow:
    """Map a loosely-shaped input record onto a :class:`WinnerRow`.

    Only shape is handled here; address and amount validity is left to the
    manifest builder so bad rows are reported rather than dropped silently.
    Rows without a rank take their 1-based position in the file.
    """

    metadata = _as_dict(raw.get("metadata"))
    for key, value in raw.items():
        if key in _RESERVED_KEYS or key is None:
            continue
        if value is None or value == "":
            continue
        metadata.setdefault(str(key), value)

    rank = _parse_int(_first(raw, _RANK_KEYS))
    address = _first(raw, _ADDRESS_KEYS)
    schema = WinnerRowSchema(
        address=address.strip() if isinstance(address, str) else address,
        amount=_clean_amount(_first(raw, _AMOUNT_KEYS)),
        rank=rank if rank is not None else index + 1,
        id=_first(raw, _ID_KEYS),
        metadata=metadata or None,
    )
    return schema.to_domain()
