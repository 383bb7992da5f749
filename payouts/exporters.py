from __future__ import annotations

import csv
import io

from loguru import logger
from pydantic import ValidationError

from app.domain import PayoutManifest
from app.schemas import PayoutManifestSchema

from .builder import compute_manifest_hash
from .canonical import canonical_json

CSV_COLUMNS = ("address", "amountWei", "symbol", "roundId", "groupId")


def to_csv(
    manifest: PayoutManifest,
    *,
    include_header: bool = True,
    include_metadata: bool = False,
    delimiter: str = ",",
) -> str:
    """Render one row per winner in manifest order.

    Metadata, when included, is written last as canonical JSON. Rows are
    separated by ``\\n`` without a trailing terminator.
    """

    if len(delimiter) != 1:
        raise ValueError("delimiter must be a single character")

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    if include_header:
        header = list(CSV_COLUMNS)
        if include_metadata:
            header.append("metadata")
        writer.writerow(header)
    for winner in manifest.winners:
        row = [
            winner.address,
            winner.amount,
            manifest.token.symbol,
            manifest.round_id,
            manifest.group_id,
        ]
        if include_metadata:
            row.append(canonical_json(winner.metadata))
        writer.writerow(row)
    return buffer.getvalue().removesuffix("\n")


def to_json(manifest: PayoutManifest) -> str:
    return canonical_json(PayoutManifestSchema.from_domain(manifest).to_payload())


def manifest_from_json(payload: str | bytes) -> PayoutManifest:
    """Load an exported manifest; raises ``pydantic.ValidationError`` on malformed input."""

    return PayoutManifestSchema.model_validate_json(payload).to_domain()


def verify_manifest_hash(manifest: PayoutManifest) -> bool:
    """Return ``True`` only when ``manifest.hash`` matches its content.

    A manifest whose totals or winners no longer serialize consistently
    fails the check instead of raising.
    """

    try:
        expected = compute_manifest_hash(manifest)
    except ValidationError:
        logger.warning("Manifest {} is internally inconsistent; hash check failed", manifest.id)
        return False
    return expected == manifest.hash


__all__ = ["CSV_COLUMNS", "manifest_from_json", "to_csv", "to_json", "verify_manifest_hash"]
