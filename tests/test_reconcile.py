from __future__ import annotations

import pytest

from app.domain import RecipientStatus, ReconcileStatus
from payouts.builder import BuildManifestOptions, build_manifest
from payouts.reconcile import quick_reconcile_check, receipt_succeeded, reconcile_push

from conftest import ALICE, BOB, CAROL, TOKEN_ADDRESS, FakeReadClient, make_receipt, transfer_log

TX1 = "0x" + "a1" * 32
TX2 = "0x" + "b2" * 32
TX3 = "0x" + "c3" * 32

ALICE_AMOUNT = 10 * 10**18
BOB_AMOUNT = 55 * 10**17
CAROL_AMOUNT = 25 * 10**16


@pytest.fixture
def manifest(token, winner_rows, test_settings):
    return build_manifest(
        winner_rows, BuildManifestOptions(token=token, round_id="r", group_id="g")
    ).manifest


def _full_delivery() -> dict:
    return make_receipt(
        transfer_log(ALICE, ALICE_AMOUNT, log_index=0),
        transfer_log(BOB, BOB_AMOUNT, log_index=1),
        transfer_log(CAROL, CAROL_AMOUNT, log_index=2),
    )


def test_complete_delivery_is_confirmed(manifest):
    client = FakeReadClient({TX1: _full_delivery()})

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.success
    assert report.status is ReconcileStatus.COMPLETED
    assert report.recipients_confirmed == 3
    assert report.total_amount_found == manifest.total_amount
    assert report.expected_total_amount == manifest.total_amount
    assert [item.status for item in report.recipients] == [RecipientStatus.CONFIRMED] * 3
    assert [record.log_index for record in report.transfers] == [0, 1, 2]
    assert report.errors == []


def test_split_delivery_is_summed(manifest):
    client = FakeReadClient(
        {
            TX1: make_receipt(transfer_log(ALICE, 4 * 10**18), transfer_log(BOB, BOB_AMOUNT, log_index=1)),
            TX2: make_receipt(transfer_log(ALICE, 6 * 10**18), transfer_log(CAROL, CAROL_AMOUNT, log_index=1)),
        }
    )

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1, TX2])

    alice = report.recipients[0]
    assert report.success
    assert alice.status is RecipientStatus.CONFIRMED
    assert alice.successful_transfers == 2
    assert alice.tx_hashes == [TX1, TX2]


def test_underpayment_is_partial(manifest):
    client = FakeReadClient(
        {
            TX1: make_receipt(
                transfer_log(ALICE, ALICE_AMOUNT),
                transfer_log(BOB, BOB_AMOUNT - 1, log_index=1),
                transfer_log(CAROL, CAROL_AMOUNT, log_index=2),
            )
        }
    )

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.status is ReconcileStatus.PARTIAL
    assert not report.success
    assert report.recipients[1].status is RecipientStatus.UNDERPAID
    assert report.recipients[1].failed_transfers == 1
    assert [item.address for item in report.missing_recipients] == [BOB]
    assert any("Amount mismatch" in error for error in report.errors)


def test_overpayment_counts_as_confirmed_with_warning(manifest):
    client = FakeReadClient(
        {
            TX1: make_receipt(
                transfer_log(ALICE, ALICE_AMOUNT + 5),
                transfer_log(BOB, BOB_AMOUNT, log_index=1),
                transfer_log(CAROL, CAROL_AMOUNT, log_index=2),
            )
        }
    )

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.status is ReconcileStatus.COMPLETED
    assert report.recipients[0].status is RecipientStatus.OVERPAID
    assert any("Overpayment" in warning for warning in report.warnings)


def test_reverted_receipt_demotes_only_its_recipients(manifest):
    client = FakeReadClient(
        {
            TX1: make_receipt(transfer_log(ALICE, ALICE_AMOUNT)),
            TX2: make_receipt(transfer_log(BOB, BOB_AMOUNT), status="0x0"),
            TX3: make_receipt(transfer_log(CAROL, CAROL_AMOUNT)),
        }
    )

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1, TX2, TX3])

    assert report.status is ReconcileStatus.PARTIAL
    assert [item.status for item in report.recipients] == [
        RecipientStatus.CONFIRMED,
        RecipientStatus.MISSING,
        RecipientStatus.CONFIRMED,
    ]
    assert [check.status for check in report.receipts] == ["success", "reverted", "success"]


def test_failed_transfers_count_failed_transactions_per_recipient(manifest):
    client = FakeReadClient(
        {
            TX1: make_receipt(transfer_log(ALICE, ALICE_AMOUNT)),
            TX2: make_receipt(status="0x0"),
        }
    )
    client.errors[TX3] = ConnectionError("node unavailable")
    planned = {
        TX1: (ALICE,),
        TX2: (BOB, CAROL),
        TX3.upper().replace("0X", "0x"): (CAROL.lower(),),
    }

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1, TX2, TX3], planned_recipients=planned)

    assert [item.failed_transfers for item in report.recipients] == [0, 1, 2]
    assert [item.status for item in report.recipients] == [
        RecipientStatus.CONFIRMED,
        RecipientStatus.MISSING,
        RecipientStatus.MISSING,
    ]


def test_missing_and_erroring_receipts_do_not_abort(manifest):
    client = FakeReadClient({TX1: make_receipt(transfer_log(ALICE, ALICE_AMOUNT))})
    client.errors[TX3] = ConnectionError("node unavailable")

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1, TX2, TX3])

    assert report.recipients_confirmed == 1
    assert report.status is ReconcileStatus.PARTIAL
    assert [check.status for check in report.receipts] == ["success", "missing", "error"]
    assert any("node unavailable" in error for error in report.errors)


def test_zero_hashes_fail_without_raising(manifest):
    report = reconcile_push(FakeReadClient(), TOKEN_ADDRESS, manifest, [])

    assert report.status is ReconcileStatus.FAILED
    assert report.recipients_confirmed == 0
    assert report.transfers == []
    assert not report.success


def test_no_confirmed_winner_is_failed(manifest):
    client = FakeReadClient({TX1: make_receipt()})

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.status is ReconcileStatus.FAILED
    assert report.total_amount_found == "0"


def test_logs_from_other_contracts_are_ignored(manifest):
    other_token = "0x" + "5" * 40
    receipt = _full_delivery()
    receipt["logs"].append(transfer_log(ALICE, 10**18, token=other_token, log_index=3))
    client = FakeReadClient({TX1: receipt})

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.recipients[0].received_amount == str(ALICE_AMOUNT)
    assert report.success


def test_undecodable_log_is_reported(manifest):
    receipt = _full_delivery()
    broken = transfer_log(ALICE, 1, log_index=3)
    broken["topics"] = broken["topics"][:2]
    receipt["logs"].append(broken)
    client = FakeReadClient({TX1: receipt})

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1])

    assert report.receipts[0].status == "undecodable"
    assert report.recipients_confirmed == 3
    assert any("Failed to decode" in error for error in report.errors)


def test_transfers_to_strangers_are_counted_as_warning(manifest):
    receipt = _full_delivery()
    receipt["logs"].append(transfer_log("0x" + "6" * 40, 1, log_index=3))

    report = reconcile_push(FakeReadClient({TX1: receipt}), TOKEN_ADDRESS, manifest, [TX1])

    assert report.success
    assert any("outside the manifest" in warning for warning in report.warnings)


def test_duplicate_hashes_are_counted_once(manifest):
    client = FakeReadClient({TX1: _full_delivery()})

    report = reconcile_push(client, TOKEN_ADDRESS, manifest, [TX1, TX1.upper().replace("0X", "0x")])

    assert report.success
    assert report.total_amount_found == manifest.total_amount
    assert len(report.receipts) == 1


def test_report_follows_manifest_order_not_hash_order(manifest):
    receipts = {
        TX1: make_receipt(transfer_log(CAROL, CAROL_AMOUNT)),
        TX2: make_receipt(transfer_log(ALICE, ALICE_AMOUNT)),
        TX3: make_receipt(transfer_log(BOB, BOB_AMOUNT)),
    }

    forward = reconcile_push(FakeReadClient(receipts), TOKEN_ADDRESS, manifest, [TX1, TX2, TX3])
    backward = reconcile_push(FakeReadClient(receipts), TOKEN_ADDRESS, manifest, [TX3, TX2, TX1])

    assert [item.address for item in forward.recipients] == [ALICE, BOB, CAROL]
    assert [item.address for item in backward.recipients] == [ALICE, BOB, CAROL]
    assert [item.received_amount for item in forward.recipients] == [
        item.received_amount for item in backward.recipients
    ]


def test_quick_reconcile_check(manifest):
    assert quick_reconcile_check(FakeReadClient({TX1: _full_delivery()}), manifest, [TX1])
    assert not quick_reconcile_check(FakeReadClient(), manifest, [TX1])


@pytest.mark.parametrize(
    ("status", "expected"),
    [(1, True), (0, False), ("0x1", True), ("0x0", False), ("success", True), ("reverted", False), (None, True)],
)
def test_receipt_status_encodings(status, expected):
    assert receipt_succeeded({"status": status}) is expected
