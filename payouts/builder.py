"""Turn raw winner rows into an immutable, hashed payout manifest."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from uuid import NAMESPACE_URL, uuid4, uuid5

from loguru import logger

from app.domain import ManifestOptions, NormalizedWinner, PayoutManifest, TokenInfo, WinnerRow
from app.schemas import PayoutManifestSchema

from .addresses import ZERO_ADDRESS, validate_and_checksum_address
from .amounts import clamp_decimals as clamp_amount
from .amounts import decimal_to_wei
from .base import ManifestBuildError
from .canonical import canonical_hash, canonical_json

MANIFEST_VERSION = "1.0"

# Fields that change on every build and therefore stay out of the hash pre-image.
VOLATILE_FIELDS = ("id", "createdAt", "hash")


@dataclass(slots=True)
class BuildManifestOptions:
    token: TokenInfo
    round_id: str
    group_id: str
    clamp_decimals: int | None = None
    created_by: str = ZERO_ADDRESS
    description: str | None = None
    options: ManifestOptions | None = None


@dataclass(slots=True)
class RejectedRow:
    index: int
    address: Any
    reason: str


@dataclass(slots=True)
class BuildManifestResult:
    manifest: PayoutManifest
    rejected_addresses: list[str] = field(default_factory=list)
    rejected_rows: list[RejectedRow] = field(default_factory=list)
    duplicates: dict[str, list[int]] = field(default_factory=dict)


@dataclass(slots=True)
class _Accumulator:
    row: WinnerRow
    address: str
    amount: int
    metadata: dict[str, Any]
    sources: list[int]


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _coerce_row(row: WinnerRow | Mapping[str, Any]) -> WinnerRow:
    if isinstance(row, WinnerRow):
        return row
    rank = row.get("rank", 0)
    try:
        rank = int(rank)
    except (TypeError, ValueError):
        rank = 0
    raw_id = row.get("id")
    return WinnerRow(
        address=row.get("address"),
        amount=row.get("amount"),
        rank=rank,
        id=None if raw_id in (None, "") else str(raw_id),
        metadata=row.get("metadata"),
    )


def _clean_metadata(metadata: Any) -> dict[str, Any] | None:
    """Return ``metadata`` with string keys, or ``None`` if it cannot be hashed."""

    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        return None
    cleaned = {str(key): value for key, value in metadata.items()}
    try:
        canonical_json(cleaned)
    except (TypeError, ValueError):
        return None
    return cleaned


def _validate_options(options: BuildManifestOptions) -> str:
    if not isinstance(options, BuildManifestOptions):
        raise ManifestBuildError("build options must be a BuildManifestOptions instance")
    token = options.token
    if token is None:
        raise ManifestBuildError("token is required to build a manifest")
    if not isinstance(token, TokenInfo):
        raise ManifestBuildError("token must be a TokenInfo")
    if (
        isinstance(token.decimals, bool)
        or not isinstance(token.decimals, int)
        or not 0 <= token.decimals <= 77
    ):
        raise ManifestBuildError(f"token decimals must be an integer in [0, 77], got {token.decimals!r}")
    if not options.round_id or not options.group_id:
        raise ManifestBuildError("round_id and group_id are required")
    if options.clamp_decimals is not None and (
        not isinstance(options.clamp_decimals, int) or options.clamp_decimals < 0
    ):
        raise ManifestBuildError("clamp_decimals must be a non-negative integer")
    created_by = validate_and_checksum_address(options.created_by)
    if created_by is None:
        raise ManifestBuildError(f"created_by is not a valid address: {options.created_by!r}")
    return created_by


def _winner_id(options: BuildManifestOptions, address: str) -> str:
    return str(uuid5(NAMESPACE_URL, f"payout:{options.round_id}:{options.group_id}:{address.lower()}"))


def manifest_hash_payload(manifest: PayoutManifest) -> dict[str, Any]:
    """Return the semantic fields of ``manifest`` that its hash covers."""

    payload = PayoutManifestSchema.from_domain(manifest).to_payload()
    for key in VOLATILE_FIELDS:
        payload.pop(key, None)
    return payload


def compute_manifest_hash(manifest: PayoutManifest) -> str:
    return canonical_hash(manifest_hash_payload(manifest))


def build_manifest(
    rows: Iterable[WinnerRow | Mapping[str, Any]],
    options: BuildManifestOptions,
) -> BuildManifestResult:
    """Build a deterministic manifest from raw rows.

    Rows with malformed addresses, amounts or metadata, and values that are
    not rows at all, are skipped and reported; they never abort the build.
    Metadata keys are stringified. Repeated addresses (compared case-insensitively)
    are merged by summing their amounts while the first occurrence keeps its
    rank, id and metadata.
    """

    created_by = _validate_options(options)
    token = options.token
    rejected_addresses: list[str] = []
    rejected_rows: list[RejectedRow] = []
    merged: dict[str, _Accumulator] = {}

    for index, raw in enumerate(rows):
        if not isinstance(raw, (WinnerRow, Mapping)):
            rejected_rows.append(RejectedRow(index=index, address=raw, reason="unsupported row type"))
            logger.warning("Row {} rejected: unsupported row type {}", index, type(raw).__name__)
            continue
        row = _coerce_row(raw)
        checksum_address = validate_and_checksum_address(row.address)
        if checksum_address is None:
            rejected_addresses.append(row.address if isinstance(row.address, str) else str(row.address))
            rejected_rows.append(RejectedRow(index=index, address=row.address, reason="invalid address"))
            logger.warning("Invalid address rejected: {}", row.address)
            continue

        try:
            amount_wei = decimal_to_wei(row.amount, token.decimals)
        except ValueError as exc:
            rejected_rows.append(RejectedRow(index=index, address=row.address, reason=str(exc)))
            logger.warning("Row {} for {} rejected: {}", index, checksum_address, exc)
            continue

        if options.clamp_decimals is not None:
            amount_wei = clamp_amount(amount_wei, token.decimals, options.clamp_decimals)

        existing = merged.get(checksum_address)
        if existing is not None:
            existing.amount += amount_wei
            existing.sources.append(index)
            continue

        metadata = _clean_metadata(row.metadata)
        if metadata is None:
            rejected_rows.append(
                RejectedRow(index=index, address=row.address, reason="metadata not serializable")
            )
            logger.warning("Row {} for {} rejected: metadata not serializable", index, checksum_address)
            continue
        merged[checksum_address] = _Accumulator(
            row=row, address=checksum_address, amount=amount_wei, metadata=metadata, sources=[index]
        )

    winners = tuple(
        NormalizedWinner(
            address=entry.address,
            amount=str(entry.amount),
            rank=entry.row.rank,
            id=entry.row.id or _winner_id(options, entry.address),
            token=token,
            metadata=entry.metadata,
        )
        for entry in merged.values()
    )
    total_amount = sum(entry.amount for entry in merged.values())
    duplicates = {
        address: list(entry.sources) for address, entry in merged.items() if len(entry.sources) > 1
    }
    if duplicates:
        logger.info("Merged {} duplicated addresses into single winners", len(duplicates))

    draft = PayoutManifest(
        id=str(uuid4()),
        winners=winners,
        token=token,
        total_amount=str(total_amount),
        created_by=created_by,
        created_at=_timestamp(),
        round_id=options.round_id,
        group_id=options.group_id,
        version=MANIFEST_VERSION,
        hash="",
        description=options.description,
        options=options.options,
    )
    manifest = replace(draft, hash=compute_manifest_hash(draft))

    logger.info(
        "Built manifest {} with {} winners (rejected={}, total={})",
        manifest.id,
        len(winners),
        len(rejected_rows),
        manifest.total_amount,
    )
    return BuildManifestResult(
        manifest=manifest,
        rejected_addresses=rejected_addresses,
        rejected_rows=rejected_rows,
        duplicates=duplicates,
    )


__all__ = [
    "BuildManifestOptions",
    "BuildManifestResult",
    "MANIFEST_VERSION",
    "RejectedRow",
    "build_manifest",
    "compute_manifest_hash",
    "manifest_hash_payload",
]
