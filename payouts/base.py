from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence


class PayoutError(Exception):
    """Base class for payout pipeline failures."""


class ManifestBuildError(PayoutError):
    """Raised when build options are structurally unusable."""


class PayoutPlanError(PayoutError):
    """Raised when asked to execute a plan that failed validation."""


class TransactionSubmissionError(PayoutError):
    """Raised by the executor only when ``stop_on_fail`` halts a run."""

    def __init__(self, message: str, *, index: int, submitted_hashes: Sequence[str]) -> None:
        super().__init__(message)
        self.index = index
        self.submitted_hashes = list(submitted_hashes)


class RpcError(PayoutError):
    """Raised when a JSON-RPC endpoint rejects a call or cannot be reached."""

    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class ReceiptTimeoutError(RpcError):
    """Raised when a receipt does not reach the requested confirmations in time."""


class Signer(Protocol):
    """Capability that signs and broadcasts a transaction."""

    def send_transaction(self, tx: Mapping[str, Any]) -> str:
        """Submit ``tx`` and return its transaction hash; may raise on failure."""
        raise NotImplementedError


class ReadClient(Protocol):
    """Read-only chain access used for receipts."""

    def get_transaction_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        """Return the receipt for ``tx_hash`` or ``None`` when it is not mined."""
        raise NotImplementedError

    def wait_for_transaction_receipt(
        self, tx_hash: str, confirmations: int = 1
    ) -> Mapping[str, Any]:
        """Block until ``tx_hash`` has ``confirmations`` confirmations."""
        raise NotImplementedError


__all__ = [
    "ManifestBuildError",
    "PayoutError",
    "PayoutPlanError",
    "ReadClient",
    "ReceiptTimeoutError",
    "RpcError",
    "Signer",
    "TransactionSubmissionError",
]
