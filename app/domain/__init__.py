"""Domain models representing payout manifests, plans and reports."""

from .models import (
    ChainId,
    ExecutionOutcome,
    ManifestOptions,
    NormalizedWinner,
    PayoutManifest,
    PayoutSummary,
    PreparedPayout,
    PreparedTx,
    ReceiptCheck,
    RecipientReconciliation,
    RecipientStatus,
    ReconcileStatus,
    ReconciliationReport,
    TokenInfo,
    TransferRecord,
    ValidationResult,
    WinnerRow,
)

__all__ = [
    "ChainId",
    "ExecutionOutcome",
    "ManifestOptions",
    "NormalizedWinner",
    "PayoutManifest",
    "PayoutSummary",
    "PreparedPayout",
    "PreparedTx",
    "ReceiptCheck",
    "RecipientReconciliation",
    "RecipientStatus",
    "ReconcileStatus",
    "ReconciliationReport",
    "TokenInfo",
    "TransferRecord",
    "ValidationResult",
    "WinnerRow",
]
