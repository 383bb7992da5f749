from __future__ import annotations

import json
from pathlib import Path

from payouts.exporters import manifest_from_json, verify_manifest_hash
from pipelines import payout_run
from pipelines.payout_run import run_payout

from conftest import ALICE, BOB, FakeReadClient, FakeSigner, make_receipt, transfer_log

HASH_1 = "0x" + format(1, "064x")
HASH_2 = "0x" + format(2, "064x")


def _delivered() -> FakeReadClient:
    return FakeReadClient(
        {
            HASH_1: make_receipt(transfer_log(ALICE, 10 * 10**18)),
            HASH_2: make_receipt(transfer_log(BOB, 55 * 10**17)),
        }
    )


def test_dry_run_builds_and_prepares_without_signing(payout_args, test_settings):
    signer = FakeSigner()

    summary = run_payout(payout_args, test_settings, signer=signer, read_client=FakeReadClient())

    assert summary.dry_run
    assert summary.status == "prepared"
    assert summary.recipient_count == 2
    assert summary.total_amount_display == "15.5"
    assert summary.transaction_count == 2
    assert summary.rejected_rows == [{"index": 2, "address": "not-an-address", "reason": "invalid address"}]
    assert signer.sent == []

    manifest_text = Path(summary.artifacts["manifest"]).read_text(encoding="utf-8")
    manifest = manifest_from_json(manifest_text)
    assert verify_manifest_hash(manifest)
    assert manifest.hash == summary.manifest_hash

    csv_lines = Path(summary.artifacts["csv"]).read_text(encoding="utf-8").splitlines()
    assert csv_lines[0] == "address,amountWei,symbol,roundId,groupId,metadata"
    assert len(csv_lines) == 3

    plan = json.loads(Path(summary.artifacts["plan"]).read_text(encoding="utf-8"))
    assert plan["validation"]["isValid"] is True
    assert len(plan["transactions"]) == 2

    written = json.loads(payout_args.summary_path.read_text(encoding="utf-8"))
    assert written["status"] == "prepared"
    assert written["artifacts"]["summary"] == str(payout_args.summary_path)


def test_execute_submits_and_reconciles(payout_args, test_settings):
    payout_args.execute = True
    signer = FakeSigner()

    summary = run_payout(payout_args, test_settings, signer=signer, read_client=_delivered())

    assert summary.status == "executed"
    assert summary.tx_hashes == [HASH_1, HASH_2]
    assert summary.reconciliation_status == "completed"
    report = json.loads(Path(summary.artifacts["reconciliation"]).read_text(encoding="utf-8"))
    assert report["recipientsConfirmed"] == 2
    assert len(signer.sent) == 2


def test_failed_submission_is_recorded(payout_args, test_settings):
    payout_args.execute = True

    summary = run_payout(
        payout_args, test_settings, signer=FakeSigner(fail_on={1}), read_client=_delivered()
    )

    assert summary.status == "executed_with_errors"
    assert summary.tx_hashes == [HASH_1]
    assert summary.failed_transactions[0]["index"] == 1
    assert summary.reconciliation_status == "partial"


def test_stop_on_fail_halts_the_run(payout_args, test_settings):
    payout_args.execute = True
    payout_args.stop_on_fail = True
    signer = FakeSigner(fail_on={0})

    summary = run_payout(payout_args, test_settings, signer=signer, read_client=_delivered())

    assert summary.status == "halted"
    assert summary.tx_hashes == []
    assert summary.reconciliation_status is None
    assert signer.sent == []


def test_invalid_plan_is_never_executed(payout_args, test_settings):
    payout_args.execute = True
    payout_args.airdrop = "0xnot-an-airdrop"
    signer = FakeSigner()

    summary = run_payout(payout_args, test_settings, signer=signer, read_client=_delivered())

    assert summary.status == "invalid_plan"
    assert summary.plan_errors
    assert signer.sent == []


def test_main_dry_run_writes_summary(monkeypatch, payout_args, test_settings):
    monkeypatch.setattr(payout_run, "get_settings", lambda: test_settings)

    payout_run.main(
        [
            "--winners",
            str(payout_args.winners),
            "--round-id",
            "round-9",
            "--group-id",
            "group-2",
            "--token-json",
            str(payout_args.token_json),
            "--out-dir",
            str(payout_args.out_dir),
            "--summary-path",
            str(payout_args.summary_path),
        ]
    )

    written = json.loads(payout_args.summary_path.read_text(encoding="utf-8"))
    assert written["round_id"] == "round-9"
    assert written["dry_run"] is True
    assert written["status"] == "prepared"
