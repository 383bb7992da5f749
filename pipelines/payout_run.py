"""End-to-end payout run: build, export, prepare, execute and reconcile."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import ExecutionOutcome, PayoutManifest, ReconciliationReport, TokenInfo
from app.schemas import PreparedPayoutSchema, ReconciliationReportSchema, TokenInfoSchema
from ingestion.service import load_winner_rows
from payouts.amounts import wei_to_decimal
from payouts.base import PayoutError, ReadClient, Signer, TransactionSubmissionError
from payouts.builder import BuildManifestOptions, build_manifest
from payouts.chains import get_supr_token_config, native_token_info, normalize_chain_id
from payouts.execute import run_tx_plan
from payouts.exporters import to_csv, to_json
from payouts.reconcile import reconcile_push
from payouts.rpc import JsonRpcClient, LocalAccountSigner
from payouts.tx_preparer import PushPrepareOptions, prepare_push_txs

from .context import PayoutContext


@dataclass(slots=True)
class PayoutRunSummary:
    run_id: str
    round_id: str
    group_id: str
    dry_run: bool
    status: str = "built"
    manifest_id: str | None = None
    manifest_hash: str | None = None
    token_symbol: str | None = None
    recipient_count: int = 0
    total_amount: str = "0"
    total_amount_display: str = "0"
    rejected_rows: list[dict[str, Any]] = field(default_factory=list)
    duplicates: dict[str, list[int]] = field(default_factory=dict)
    transaction_count: int = 0
    estimated_gas_cost: str = "0"
    plan_errors: list[str] = field(default_factory=list)
    plan_warnings: list[str] = field(default_factory=list)
    tx_hashes: list[str] = field(default_factory=list)
    failed_transactions: list[dict[str, Any]] = field(default_factory=list)
    reconciliation_status: str | None = None
    artifacts: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "round_id": self.round_id,
            "group_id": self.group_id,
            "dry_run": self.dry_run,
            "status": self.status,
            "manifest_id": self.manifest_id,
            "manifest_hash": self.manifest_hash,
            "token_symbol": self.token_symbol,
            "recipient_count": self.recipient_count,
            "total_amount": self.total_amount,
            "total_amount_display": self.total_amount_display,
            "rejected_rows": self.rejected_rows,
            "duplicates": self.duplicates,
            "transaction_count": self.transaction_count,
            "estimated_gas_cost": self.estimated_gas_cost,
            "plan_errors": self.plan_errors,
            "plan_warnings": self.plan_warnings,
            "tx_hashes": self.tx_hashes,
            "failed_transactions": self.failed_transactions,
            "reconciliation_status": self.reconciliation_status,
            "artifacts": self.artifacts,
        }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Build and optionally execute a token payout")
    parser.add_argument("--winners", type=Path, required=True, help="CSV or JSON file of winner rows")
    parser.add_argument("--round-id", required=True)
    parser.add_argument("--group-id", required=True)
    parser.add_argument(
        "--token-json",
        type=Path,
        default=None,
        help="JSON file describing the token (address, symbol, name, decimals, chainId)",
    )
    parser.add_argument("--token-address", default=None)
    parser.add_argument("--token-symbol", default=None)
    parser.add_argument("--token-name", default=None)
    parser.add_argument("--token-decimals", type=int, default=18)
    parser.add_argument(
        "--chain-id",
        type=int,
        default=settings.chain_id,
        help="Chain of the token (defaults to CHAIN_ID)",
    )
    parser.add_argument(
        "--native",
        action="store_true",
        help="Pay out in the chain's native currency",
    )
    parser.add_argument(
        "--supr",
        action="store_true",
        help="Pay out in the chain's registered SUPR token",
    )
    parser.add_argument("--clamp-decimals", type=int, default=None)
    parser.add_argument("--description", default=None)
    parser.add_argument(
        "--airdrop",
        default=None,
        help="Airdrop contract address or 'auto' to use the chain registry",
    )
    parser.add_argument("--max-per-batch", type=int, default=None)
    parser.add_argument(
        "--no-single-approval",
        action="store_true",
        help="Skip the single ERC-20 approve before batched transfers",
    )
    parser.add_argument("--starting-nonce", type=int, default=None)
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Sign and submit the prepared transactions (dry-run otherwise)",
    )
    parser.add_argument("--stop-on-fail", action="store_true")
    parser.add_argument(
        "--confirmations",
        type=int,
        default=1,
        help="Confirmations to wait for after each submitted transaction",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=Path(settings.payout_output_dir),
        help="Directory receiving the run artifacts",
    )
    parser.add_argument("--summary-path", type=Path, default=None)
    return parser.parse_args(argv)


def _resolve_token(args: argparse.Namespace) -> TokenInfo:
    if args.token_json is not None:
        payload = json.loads(Path(args.token_json).read_text(encoding="utf-8"))
        return TokenInfoSchema.model_validate(payload).to_domain()
    if args.chain_id is None:
        raise ValueError("--chain-id (or CHAIN_ID) is required unless --token-json is given")
    if args.native:
        return native_token_info(args.chain_id)
    if args.supr:
        return get_supr_token_config(args.chain_id)
    if not args.token_address or not args.token_symbol:
        raise ValueError("--token-address and --token-symbol are required for ERC-20 payouts")
    return TokenInfo(
        address=args.token_address,
        symbol=args.token_symbol,
        name=args.token_name or args.token_symbol,
        decimals=args.token_decimals,
        chain_id=args.chain_id,
    )


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content if content.endswith("\n") else content + "\n", encoding="utf-8")


def _write_summary(path: Path, summary: PayoutRunSummary) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(summary.to_dict(), indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def _record_failures(summary: PayoutRunSummary, outcomes: list[ExecutionOutcome]) -> None:
    for outcome in outcomes:
        if outcome.tx_hash is not None:
            summary.tx_hashes.append(outcome.tx_hash)
        if outcome.error:
            summary.failed_transactions.append(
                {
                    "index": outcome.index,
                    "kind": outcome.tx.kind,
                    "tx_hash": outcome.tx_hash,
                    "error": outcome.error,
                }
            )


def _reconcile(
    context: PayoutContext,
    read_client: ReadClient,
    manifest: PayoutManifest,
    summary: PayoutRunSummary,
    planned_recipients: dict[str, tuple[str, ...]],
) -> ReconciliationReport | None:
    if manifest.token.is_native:
        # Native transfers emit no Transfer logs.
        logger.info("Skipping log reconciliation for native payout {}", manifest.id)
        return None
    report = reconcile_push(
        read_client,
        manifest.token.address,
        manifest,
        summary.tx_hashes,
        planned_recipients=planned_recipients,
    )
    path = context.artifact_path("reconciliation.json")
    _write_text(
        path,
        ReconciliationReportSchema.from_domain(report).model_dump_json(by_alias=True, indent=2),
    )
    summary.artifacts["reconciliation"] = str(path)
    summary.reconciliation_status = report.status.value
    return report


def run_payout(
    args: argparse.Namespace,
    settings: Settings,
    *,
    signer: Signer | None = None,
    read_client: ReadClient | None = None,
) -> PayoutRunSummary:
    """Run one payout round.

    Nothing is signed unless ``args.execute`` is set. A signer and read client
    can be injected; otherwise they are built from ``settings`` (RPC URL and
    signer key) only when execution is requested.
    """

    run_id = str(uuid4())
    token = _resolve_token(args)
    if (
        args.execute
        and settings.chain_id is not None
        and normalize_chain_id(token.chain_id) != settings.chain_id
    ):
        raise PayoutError(
            f"Token chain {token.chain_id} does not match configured CHAIN_ID {settings.chain_id}"
        )

    context = PayoutContext(
        run_id=run_id,
        started_at=datetime.now(timezone.utc),
        output_dir=Path(args.out_dir) / f"{args.round_id}-{args.group_id}-{run_id[:8]}",
        settings=settings,
        dry_run=not args.execute,
    )
    summary = PayoutRunSummary(
        run_id=run_id,
        round_id=args.round_id,
        group_id=args.group_id,
        dry_run=context.dry_run,
        token_symbol=token.symbol,
    )
    logger.info(
        "Starting payout run {} for round={} group={} (dry_run={})",
        run_id,
        args.round_id,
        args.group_id,
        context.dry_run,
    )

    rows = load_winner_rows(args.winners)
    result = build_manifest(
        rows,
        BuildManifestOptions(
            token=token,
            round_id=args.round_id,
            group_id=args.group_id,
            clamp_decimals=args.clamp_decimals,
            description=args.description,
        ),
    )
    manifest = result.manifest
    summary.manifest_id = manifest.id
    summary.manifest_hash = manifest.hash
    summary.recipient_count = len(manifest.winners)
    summary.total_amount = manifest.total_amount
    summary.total_amount_display = wei_to_decimal(manifest.total_amount_wei, token.decimals)
    summary.rejected_rows = [
        {"index": row.index, "address": str(row.address), "reason": row.reason}
        for row in result.rejected_rows
    ]
    summary.duplicates = result.duplicates

    manifest_path = context.artifact_path("manifest.json")
    csv_path = context.artifact_path("winners.csv")
    _write_text(manifest_path, to_json(manifest))
    _write_text(csv_path, to_csv(manifest, include_metadata=True))
    summary.artifacts.update({"manifest": str(manifest_path), "csv": str(csv_path)})

    plan = prepare_push_txs(
        manifest,
        PushPrepareOptions(
            token=token,
            max_per_batch=args.max_per_batch,
            single_approval=False if args.no_single_approval else None,
            airdrop=args.airdrop,
            starting_nonce=args.starting_nonce,
        ),
    )
    plan_path = context.artifact_path("plan.json")
    _write_text(plan_path, PreparedPayoutSchema.from_domain(plan).model_dump_json(by_alias=True, indent=2))
    summary.artifacts["plan"] = str(plan_path)
    summary.transaction_count = len(plan.transactions)
    summary.estimated_gas_cost = plan.estimated_gas_cost
    summary.plan_errors = list(plan.validation.errors)
    summary.plan_warnings = list(plan.validation.warnings)
    summary.status = "prepared" if plan.validation.is_valid else "invalid_plan"

    if not plan.validation.is_valid:
        logger.error("Plan for manifest {} is invalid; nothing will be executed", manifest.id)
    elif context.dry_run:
        logger.info("Dry run: {} transactions prepared, none submitted", len(plan.transactions))
    else:
        owned_client: JsonRpcClient | None = None
        try:
            if signer is None or read_client is None:
                owned_client = JsonRpcClient(settings.resolved_rpc_url)
                read_client = read_client or owned_client
                if signer is None:
                    if not settings.signer_private_key:
                        raise PayoutError("SIGNER_PRIVATE_KEY must be set to execute payouts")
                    signer = LocalAccountSigner(owned_client, settings.signer_private_key)

            try:
                outcomes = run_tx_plan(
                    plan,
                    signer,
                    stop_on_fail=args.stop_on_fail,
                    read_client=read_client,
                    confirmations=args.confirmations,
                )
            except TransactionSubmissionError as exc:
                summary.tx_hashes = list(exc.submitted_hashes)
                planned = dict(zip(exc.submitted_hashes, (tx.recipients for tx in plan.transactions)))
                summary.failed_transactions.append(
                    {"index": exc.index, "kind": plan.transactions[exc.index].kind, "error": str(exc)}
                )
                summary.status = "halted"
                logger.error("Payout run {} halted at transaction {}", run_id, exc.index)
            else:
                _record_failures(summary, outcomes)
                planned = {
                    outcome.tx_hash: outcome.tx.recipients for outcome in outcomes if outcome.tx_hash
                }
                summary.status = "executed_with_errors" if summary.failed_transactions else "executed"
            if summary.tx_hashes:
                _reconcile(context, read_client, manifest, summary, planned)
        finally:
            if owned_client is not None:
                owned_client.close()

    logger.info(
        "Payout run {} finished: status={} recipients={} transactions={}",
        run_id,
        summary.status,
        summary.recipient_count,
        summary.transaction_count,
    )

    summary_path = args.summary_path or context.artifact_path("summary.json")
    summary.artifacts["summary"] = str(summary_path)
    _write_summary(summary_path, summary)
    logger.info("Wrote payout summary to {}", summary_path)
    return summary


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()
    summary = run_payout(args, settings)
    if summary.status in {"invalid_plan", "executed_with_errors", "halted"}:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
