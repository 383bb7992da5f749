"""Reconcile executed payouts against on-chain Transfer events.

Receipts are fetched concurrently but the report is assembled in the order
of the supplied hashes and the manifest's winners, so the output does not
depend on which lookup finishes first.

Recipient policy: the on-chain amounts received by an address are summed
across every supplied transaction before they are compared with the
manifest, so split deliveries count.

- equal to the manifest amount: ``confirmed``
- more than the manifest amount: ``overpaid`` (confirmed, with a warning)
- less than the manifest amount but above zero: ``underpaid``
- nothing received: ``missing``
"""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from loguru import logger

from app.core import config
from app.domain import (
    PayoutManifest,
    ReceiptCheck,
    RecipientReconciliation,
    RecipientStatus,
    ReconcileStatus,
    ReconciliationReport,
    TransferRecord,
)

from .abi import decode_transfer_log
from .addresses import same_address
from .base import ReadClient

_SUCCESS_STATUSES = {"success", "0x1", "1"}
_REVERTED_STATUSES = {"reverted", "failure", "failed", "0x0", "0"}


def receipt_succeeded(receipt: Mapping[str, Any] | None) -> bool:
    """Interpret the ``status`` field of a receipt in any common encoding."""

    if receipt is None:
        return False
    status = receipt.get("status")
    if status is None:
        # Receipts from before status codes existed carry no outcome.
        return True
    if isinstance(status, bool):
        return status
    if isinstance(status, int):
        return status == 1
    text = str(status).strip().lower()
    if text in _SUCCESS_STATUSES:
        return True
    if text in _REVERTED_STATUSES:
        return False
    try:
        return int(text, 16 if text.startswith("0x") else 10) == 1
    except ValueError:
        return False


def _log_index(log: Mapping[str, Any], fallback: int) -> int:
    value = log.get("logIndex")
    if value is None:
        return fallback
    if isinstance(value, int):
        return value
    try:
        text = str(value)
        return int(text, 16) if text.startswith("0x") else int(text)
    except ValueError:
        return fallback


def _unique(hashes: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for tx_hash in hashes:
        key = tx_hash.lower()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(tx_hash)
    return ordered


def _fetch_receipt(
    read_client: ReadClient, tx_hash: str, confirmations: int
) -> tuple[Mapping[str, Any] | None, str | None]:
    try:
        if confirmations > 0:
            return read_client.wait_for_transaction_receipt(tx_hash, confirmations), None
        return read_client.get_transaction_receipt(tx_hash), None
    except Exception as exc:  # noqa: BLE001
        logger.exception("Reconciling transaction {} failed", tx_hash)
        return None, str(exc) or type(exc).__name__


def _empty_report(manifest: PayoutManifest, message: str) -> ReconciliationReport:
    return ReconciliationReport(
        manifest_id=manifest.id,
        success=False,
        status=ReconcileStatus.FAILED,
        total_amount_found="0",
        expected_total_amount=manifest.total_amount,
        recipients_confirmed=0,
        expected_recipients=len(manifest.winners),
        recipients=[
            RecipientReconciliation(
                address=winner.address,
                expected_amount=winner.amount,
                received_amount="0",
                status=RecipientStatus.MISSING,
                failed_transfers=1,
            )
            for winner in manifest.winners
        ],
        errors=[message],
        reconciled_at=datetime.now(timezone.utc),
    )


def reconcile_push(
    read_client: ReadClient,
    token_address: str,
    manifest: PayoutManifest,
    tx_hashes: Iterable[str],
    *,
    max_workers: int | None = None,
    confirmations: int | None = None,
    planned_recipients: Mapping[str, Iterable[str]] | None = None,
) -> ReconciliationReport:
    """Verify that ``tx_hashes`` delivered what ``manifest`` promised.

    Missing, reverted or undecodable receipts only leave the affected
    recipients unconfirmed; reconciliation of the other hashes continues.

    ``planned_recipients`` maps a transaction hash to the addresses it was
    prepared to pay. With it, ``failed_transfers`` counts the failed
    transactions that targeted each recipient. An unconfirmed recipient with
    no known failed transaction still counts its undelivered transfer as one.
    """

    hashes = _unique(tx_hashes or [])
    if not hashes:
        logger.warning("Reconciliation of manifest {} received no transaction hashes", manifest.id)
        return _empty_report(manifest, "No transaction hashes provided for reconciliation")

    settings = config.get_settings()
    workers = max_workers or settings.reconcile_max_workers
    wait_confirmations = settings.reconcile_confirmations if confirmations is None else confirmations

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(hashes)))) as pool:
        fetched = list(
            pool.map(lambda tx_hash: _fetch_receipt(read_client, tx_hash, wait_confirmations), hashes)
        )

    expected = {winner.address.lower(): winner for winner in manifest.winners}
    received: dict[str, int] = defaultdict(int)
    transfer_counts: dict[str, int] = defaultdict(int)
    recipient_hashes: dict[str, list[str]] = defaultdict(list)
    transfers: list[TransferRecord] = []
    receipts: list[ReceiptCheck] = []
    errors: list[str] = []
    warnings: list[str] = []
    failed_hashes: list[str] = []
    any_reverted = False
    unexpected_transfers = 0

    for tx_hash, (receipt, fetch_error) in zip(hashes, fetched):
        if fetch_error is not None:
            receipts.append(ReceiptCheck(tx_hash=tx_hash, status="error", error=fetch_error))
            failed_hashes.append(tx_hash)
            errors.append(f"Failed to analyze transaction {tx_hash}: {fetch_error}")
            continue
        if receipt is None:
            receipts.append(ReceiptCheck(tx_hash=tx_hash, status="missing"))
            failed_hashes.append(tx_hash)
            errors.append(f"Receipt for transaction {tx_hash} not found")
            continue
        if not receipt_succeeded(receipt):
            any_reverted = True
            receipts.append(ReceiptCheck(tx_hash=tx_hash, status="reverted"))
            failed_hashes.append(tx_hash)
            errors.append(f"Transaction {tx_hash} was reverted")
            continue

        check = ReceiptCheck(tx_hash=tx_hash, status="success")
        receipts.append(check)
        for position, log in enumerate(receipt.get("logs") or []):
            emitter = log.get("address")
            if emitter is not None and not same_address(emitter, token_address):
                continue
            try:
                decoded = decode_transfer_log(log)
            except (ValueError, TypeError) as exc:
                check.status = "undecodable"
                check.error = str(exc)
                errors.append(f"Failed to decode transfer log {position} in transaction {tx_hash}: {exc}")
                continue
            if decoded is None:
                continue
            _, recipient, amount = decoded
            key = recipient.lower()
            if key not in expected:
                unexpected_transfers += 1
                continue
            received[key] += amount
            transfer_counts[key] += 1
            if tx_hash not in recipient_hashes[key]:
                recipient_hashes[key].append(tx_hash)
            check.transfer_count += 1
            transfers.append(
                TransferRecord(
                    recipient=recipient,
                    amount=str(amount),
                    tx_hash=tx_hash,
                    log_index=_log_index(log, position),
                )
            )

    planned = {
        tx_hash.lower(): [address.lower() for address in addresses]
        for tx_hash, addresses in (planned_recipients or {}).items()
    }
    failed_counts: dict[str, int] = defaultdict(int)
    for tx_hash in failed_hashes:
        for key in set(planned.get(tx_hash.lower(), ())):
            failed_counts[key] += 1

    recipients: list[RecipientReconciliation] = []
    for winner in manifest.winners:
        key = winner.address.lower()
        got = received.get(key, 0)
        want = winner.amount_wei
        if got == want:
            status = RecipientStatus.CONFIRMED
        elif got > want:
            status = RecipientStatus.OVERPAID
            warnings.append(f"Overpayment for {winner.address}: expected {want}, found {got}")
        elif got > 0:
            status = RecipientStatus.UNDERPAID
            errors.append(f"Amount mismatch for {winner.address}: expected {want}, found {got}")
        else:
            status = RecipientStatus.MISSING
            errors.append(f"No transfer found for {winner.address} (expected {want})")
        failed = failed_counts.get(key, 0)
        if not failed and not status.is_confirmed:
            failed = 1
        recipients.append(
            RecipientReconciliation(
                address=winner.address,
                expected_amount=winner.amount,
                received_amount=str(got),
                status=status,
                successful_transfers=transfer_counts.get(key, 0),
                failed_transfers=failed,
                tx_hashes=recipient_hashes.get(key, []),
            )
        )

    confirmed = sum(1 for item in recipients if item.status.is_confirmed)
    total_found = sum(int(item.received_amount) for item in recipients)
    if total_found != manifest.total_amount_wei:
        errors.append(
            f"Total amount mismatch: expected {manifest.total_amount}, found {total_found}"
        )
    if unexpected_transfers:
        warnings.append(f"Ignored {unexpected_transfers} transfers to addresses outside the manifest")

    if confirmed == len(recipients) and not any_reverted:
        status = ReconcileStatus.COMPLETED
    elif confirmed == 0:
        status = ReconcileStatus.FAILED
    else:
        status = ReconcileStatus.PARTIAL

    report = ReconciliationReport(
        manifest_id=manifest.id,
        success=status is ReconcileStatus.COMPLETED,
        status=status,
        total_amount_found=str(total_found),
        expected_total_amount=manifest.total_amount,
        recipients_confirmed=confirmed,
        expected_recipients=len(manifest.winners),
        recipients=recipients,
        transfers=transfers,
        receipts=receipts,
        errors=errors,
        warnings=warnings,
        reconciled_at=datetime.now(timezone.utc),
    )
    emit = logger.info if report.success else logger.warning
    emit(
        "Reconciled manifest {}: status={} confirmed={}/{} found={} expected={}",
        manifest.id,
        status.value,
        confirmed,
        len(recipients),
        report.total_amount_found,
        report.expected_total_amount,
    )
    return report


def quick_reconcile_check(
    read_client: ReadClient,
    manifest: PayoutManifest,
    tx_hashes: Iterable[str],
) -> bool:
    """Return ``True`` only when every winner is confirmed and nothing reverted."""

    try:
        report = reconcile_push(read_client, manifest.token.address, manifest, tx_hashes)
    except Exception:  # noqa: BLE001
        logger.exception("Quick reconcile check failed for manifest {}", manifest.id)
        return False
    return report.success


__all__ = ["quick_reconcile_check", "receipt_succeeded", "reconcile_push"]
