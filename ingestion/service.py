from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

from loguru import logger

from app.domain import WinnerRow

from .normalize import normalize_winner_row


def _read_csv(path: Path) -> list[dict[str, Any]]:
    with path.open(newline="", encoding="utf-8-sig") as handle:
        return [dict(row) for row in csv.DictReader(handle)]


def _read_json(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        candidates = (payload.get("winners"), payload.get("rows"), payload.get("data"))
        payload = next((value for value in candidates if isinstance(value, list)), None)
    if not isinstance(payload, list):
        raise ValueError(f"{path} does not contain a list of winner rows")
    return [item for item in payload if isinstance(item, dict)]


def load_winner_rows(path: str | Path) -> list[WinnerRow]:
    """Load raw winner rows from a ``.csv`` or ``.json`` file."""

    source = Path(path)
    suffix = source.suffix.lower()
    if suffix == ".csv":
        records = _read_csv(source)
    elif suffix == ".json":
        records = _read_json(source)
    else:
        raise ValueError(f"Unsupported winners file type: {source.suffix or '<none>'}")

    rows = [normalize_winner_row(record, index) for index, record in enumerate(records)]
    logger.info("Loaded {} winner rows from {}", len(rows), source)
    return rows
