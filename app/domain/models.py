"""Typed domain representations shared by the payout pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

ChainId = int | str


@dataclass(slots=True, frozen=True)
class TokenInfo:
    """Token being distributed, supplied by the caller."""

    address: str
    symbol: str
    name: str
    decimals: int
    chain_id: ChainId
    is_native: bool = False


@dataclass(slots=True)
class WinnerRow:
    """Raw recipient row; nothing about it has been validated yet."""

    address: str
    amount: Any
    rank: int
    id: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class NormalizedWinner:
    """Recipient with a checksummed address and an integer smallest-unit amount."""

    address: str
    amount: str
    rank: int
    id: str
    token: TokenInfo
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def amount_wei(self) -> int:
        return int(self.amount)


@dataclass(slots=True, frozen=True)
class ManifestOptions:
    batch_transactions: bool | None = None
    gas_strategy: str | None = None
    custom_gas_price: str | None = None


@dataclass(slots=True, frozen=True)
class PayoutManifest:
    """Immutable, hashed record of one payout round."""

    id: str
    winners: tuple[NormalizedWinner, ...]
    token: TokenInfo
    total_amount: str
    created_by: str
    created_at: str
    round_id: str
    group_id: str
    version: str
    hash: str
    description: str | None = None
    options: ManifestOptions | None = None

    @property
    def totals(self) -> dict[str, str]:
        return {"amountWei": self.total_amount}

    @property
    def total_amount_wei(self) -> int:
        return int(self.total_amount)


@dataclass(slots=True)
class PreparedTx:
    """Fully formed transaction awaiting signature and submission.

    ``value`` is the native currency attached to the call. ``recipients`` and
    ``amounts`` describe what the call delivers to manifest winners, which for
    ERC-20 paths differs from ``value``.
    """

    kind: str
    to: str
    value: int
    data: str
    gas_limit: int
    gas_price: int
    nonce: int | None
    chain_id: ChainId
    type: int | None = 2
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    recipients: tuple[str, ...] = ()
    amounts: tuple[int, ...] = ()

    @property
    def transfer_total(self) -> int:
        return sum(self.amounts)


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PayoutSummary:
    recipient_count: int
    total_amount: str
    token: TokenInfo
    estimated_duration: str


@dataclass(slots=True)
class PreparedPayout:
    """Ordered transaction plan derived from a manifest, valid or not."""

    manifest_id: str
    transactions: list[PreparedTx]
    estimated_gas_cost: str
    prepared_at: str
    summary: PayoutSummary
    validation: ValidationResult


@dataclass(slots=True)
class ExecutionOutcome:
    index: int
    tx: PreparedTx
    tx_hash: str | None = None
    error: str | None = None
    reverted: bool = False

    @property
    def submitted(self) -> bool:
        return self.tx_hash is not None


class ReconcileStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class RecipientStatus(str, Enum):
    CONFIRMED = "confirmed"
    OVERPAID = "overpaid"
    UNDERPAID = "underpaid"
    MISSING = "missing"

    @property
    def is_confirmed(self) -> bool:
        return self in (RecipientStatus.CONFIRMED, RecipientStatus.OVERPAID)


@dataclass(slots=True, frozen=True)
class TransferRecord:
    recipient: str
    amount: str
    tx_hash: str
    log_index: int


@dataclass(slots=True)
class RecipientReconciliation:
    address: str
    expected_amount: str
    received_amount: str
    status: RecipientStatus
    successful_transfers: int = 0
    failed_transfers: int = 0
    tx_hashes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ReceiptCheck:
    tx_hash: str
    status: str
    transfer_count: int = 0
    error: str | None = None


@dataclass(slots=True)
class ReconciliationReport:
    manifest_id: str
    success: bool
    status: ReconcileStatus
    total_amount_found: str
    expected_total_amount: str
    recipients_confirmed: int
    expected_recipients: int
    recipients: list[RecipientReconciliation] = field(default_factory=list)
    transfers: list[TransferRecord] = field(default_factory=list)
    receipts: list[ReceiptCheck] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    reconciled_at: datetime | None = None

    @property
    def missing_recipients(self) -> list[RecipientReconciliation]:
        return [item for item in self.recipients if not item.status.is_confirmed]
