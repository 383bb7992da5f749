"""Payout pipeline: manifest building, export, preparation, execution and reconciliation."""

from .addresses import validate_and_checksum_address
from .amounts import clamp_decimals, decimal_to_wei, wei_to_decimal
from .base import (
    ManifestBuildError,
    PayoutError,
    PayoutPlanError,
    ReadClient,
    Signer,
    TransactionSubmissionError,
)
from .builder import BuildManifestOptions, BuildManifestResult, build_manifest
from .canonical import canonical_hash, canonical_json
from .execute import execute_tx_plan, run_tx_plan
from .exporters import manifest_from_json, to_csv, to_json, verify_manifest_hash
from .reconcile import quick_reconcile_check, reconcile_push
from .tx_preparer import AIRDROP_AUTO, PushPrepareOptions, prepare_push_txs

__all__ = [
    "AIRDROP_AUTO",
    "BuildManifestOptions",
    "BuildManifestResult",
    "ManifestBuildError",
    "PayoutError",
    "PayoutPlanError",
    "PushPrepareOptions",
    "ReadClient",
    "Signer",
    "TransactionSubmissionError",
    "build_manifest",
    "canonical_hash",
    "canonical_json",
    "clamp_decimals",
    "decimal_to_wei",
    "execute_tx_plan",
    "manifest_from_json",
    "prepare_push_txs",
    "quick_reconcile_check",
    "reconcile_push",
    "run_tx_plan",
    "to_csv",
    "to_json",
    "validate_and_checksum_address",
    "verify_manifest_hash",
    "wei_to_decimal",
]
