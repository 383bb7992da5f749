"""Submit prepared payout transactions through an injected signer."""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from app.domain import ExecutionOutcome, PreparedPayout, PreparedTx

from .base import PayoutPlanError, ReadClient, Signer, TransactionSubmissionError
from .chains import normalize_chain_id
from .reconcile import receipt_succeeded

ProgressCallback = Callable[[int, PreparedTx, str | None], None]
ReceiptCallback = Callable[[int, str], None]


def to_signer_payload(tx: PreparedTx) -> dict[str, Any]:
    """Translate a prepared transaction into a web3-style transaction dict."""

    payload: dict[str, Any] = {
        "to": tx.to,
        "value": tx.value,
        "data": tx.data,
        "gas": tx.gas_limit,
        "chainId": normalize_chain_id(tx.chain_id) or tx.chain_id,
    }
    if tx.nonce is not None:
        payload["nonce"] = tx.nonce
    if tx.type == 2 or tx.max_fee_per_gas is not None:
        if tx.max_fee_per_gas is not None:
            payload["maxFeePerGas"] = tx.max_fee_per_gas
        if tx.max_priority_fee_per_gas is not None:
            payload["maxPriorityFeePerGas"] = tx.max_priority_fee_per_gas
        payload["type"] = 2
    else:
        payload["gasPrice"] = tx.gas_price
    return payload


def run_tx_plan(
    plan: PreparedPayout,
    signer: Signer,
    *,
    stop_on_fail: bool = False,
    read_client: ReadClient | None = None,
    confirmations: int = 1,
    on_progress: ProgressCallback | None = None,
    on_receipt: ReceiptCallback | None = None,
) -> list[ExecutionOutcome]:
    """Submit every transaction of ``plan`` once, in order.

    A failed submission is recorded and skipped unless ``stop_on_fail`` is
    set, in which case :class:`TransactionSubmissionError` stops the run.
    When ``read_client`` is given each submission waits for its receipt and a
    reverted receipt counts as a failure.

    Raises :class:`PayoutPlanError` before anything is sent when
    ``plan.validation.is_valid`` is false.
    """

    if not plan.validation.is_valid:
        raise PayoutPlanError(
            f"Refusing to execute invalid plan for manifest {plan.manifest_id}: "
            + "; ".join(plan.validation.errors)
        )

    outcomes: list[ExecutionOutcome] = []
    if not plan.transactions:
        logger.warning("Plan for manifest {} has no transactions to execute", plan.manifest_id)
        return outcomes

    submitted: list[str] = []
    for index, tx in enumerate(plan.transactions):
        outcome = ExecutionOutcome(index=index, tx=tx)
        outcomes.append(outcome)
        try:
            if on_progress is not None:
                on_progress(index, tx, None)
            tx_hash = signer.send_transaction(to_signer_payload(tx))
            outcome.tx_hash = tx_hash
            submitted.append(tx_hash)
            logger.info("Submitted transaction {} ({}) as {}", index, tx.kind, tx_hash)
            if on_progress is not None:
                on_progress(index, tx, tx_hash)

            if read_client is not None:
                receipt = read_client.wait_for_transaction_receipt(tx_hash, confirmations)
                if on_receipt is not None:
                    on_receipt(index, tx_hash)
                if not receipt_succeeded(receipt):
                    outcome.reverted = True
                    outcome.error = f"Transaction {tx_hash} was reverted"
                    logger.error("Transaction {} ({}) was reverted", index, tx_hash)
                    if stop_on_fail:
                        raise TransactionSubmissionError(
                            outcome.error, index=index, submitted_hashes=submitted
                        )
        except TransactionSubmissionError:
            raise
        except Exception as exc:  # noqa: BLE001
            outcome.error = str(exc) or type(exc).__name__
            logger.exception("Transaction {} execution failed", index)
            if stop_on_fail:
                raise TransactionSubmissionError(
                    f"Transaction {index} failed: {outcome.error}",
                    index=index,
                    submitted_hashes=submitted,
                ) from exc

    failures = sum(1 for outcome in outcomes if outcome.error)
    if failures:
        logger.warning(
            "Execution completed with {} failed transactions out of {} total",
            failures,
            len(outcomes),
        )
    return outcomes


def execute_tx_plan(
    plan: PreparedPayout,
    signer: Signer,
    *,
    stop_on_fail: bool = False,
    read_client: ReadClient | None = None,
    confirmations: int = 1,
    on_progress: ProgressCallback | None = None,
    on_receipt: ReceiptCallback | None = None,
) -> list[str]:
    """Return the hashes of transactions the signer accepted, in plan order.

    Raises :class:`PayoutPlanError` for a plan that failed validation, and
    :class:`TransactionSubmissionError` on the first failure when
    ``stop_on_fail`` is set.
    """

    outcomes = run_tx_plan(
        plan,
        signer,
        stop_on_fail=stop_on_fail,
        read_client=read_client,
        confirmations=confirmations,
        on_progress=on_progress,
        on_receipt=on_receipt,
    )
    return [outcome.tx_hash for outcome in outcomes if outcome.tx_hash is not None]


__all__ = ["execute_tx_plan", "run_tx_plan", "to_signer_payload"]
