from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Mapping

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app.core.config import Settings
from app.domain import TokenInfo, WinnerRow
from payouts.abi import TRANSFER_EVENT_TOPIC

TOKEN_ADDRESS = "0x" + "7" * 40
PAYER_ADDRESS = "0x" + "9" * 40
ALICE = "0x" + "1" * 40
BOB = "0x" + "2" * 40
CAROL = "0x" + "3" * 40


def _topic(address: str) -> str:
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


def transfer_log(
    recipient: str,
    amount: int,
    *,
    token: str = TOKEN_ADDRESS,
    sender: str = PAYER_ADDRESS,
    log_index: int = 0,
) -> dict[str, Any]:
    return {
        "address": token,
        "topics": [TRANSFER_EVENT_TOPIC, _topic(sender), _topic(recipient)],
        "data": "0x" + format(amount, "064x"),
        "logIndex": hex(log_index),
    }


def make_receipt(*logs: Mapping[str, Any], status: str = "0x1", block: int = 100) -> dict[str, Any]:
    return {"status": status, "blockNumber": hex(block), "logs": list(logs)}


class FakeSigner:
    """Signer double returning deterministic hashes, optionally failing some indices."""

    def __init__(self, fail_on: set[int] | None = None, always_fail: bool = False) -> None:
        self.fail_on = fail_on or set()
        self.always_fail = always_fail
        self.sent: list[dict[str, Any]] = []
        self._calls = 0

    def send_transaction(self, tx: Mapping[str, Any]) -> str:
        index = self._calls
        self._calls += 1
        if self.always_fail or index in self.fail_on:
            raise RuntimeError(f"signer rejected transaction {index}")
        self.sent.append(dict(tx))
        return "0x" + format(index + 1, "064x")


class FakeReadClient:
    """Read client double backed by a hash -> receipt mapping."""

    def __init__(self, receipts: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self.receipts = dict(receipts or {})
        self.errors: dict[str, Exception] = {}
        self.requested: list[str] = []

    def get_transaction_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        self.requested.append(tx_hash)
        if tx_hash in self.errors:
            raise self.errors[tx_hash]
        return self.receipts.get(tx_hash)

    def wait_for_transaction_receipt(self, tx_hash: str, confirmations: int = 1) -> Mapping[str, Any]:
        receipt = self.get_transaction_receipt(tx_hash)
        if receipt is None:
            raise TimeoutError(f"no receipt for {tx_hash}")
        return receipt


@pytest.fixture
def token() -> TokenInfo:
    return TokenInfo(
        address=TOKEN_ADDRESS,
        symbol="SUPR",
        name="SuperDapp Token",
        decimals=18,
        chain_id=570,
    )


@pytest.fixture
def native_token() -> TokenInfo:
    return TokenInfo(
        address="0x0000000000000000000000000000000000000000",
        symbol="SYS",
        name="Syscoin",
        decimals=18,
        chain_id=570,
        is_native=True,
    )


@pytest.fixture
def winner_rows() -> list[WinnerRow]:
    return [
        WinnerRow(address=ALICE, amount="10", rank=1, metadata={"handle": "alice"}),
        WinnerRow(address=BOB, amount="5.5", rank=2),
        WinnerRow(address=CAROL, amount="0.25", rank=3),
    ]


@pytest.fixture
def receipt_factory() -> Callable[..., dict[str, Any]]:
    return make_receipt


@pytest.fixture
def fake_signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def fake_read_client() -> FakeReadClient:
    return FakeReadClient()


@pytest.fixture
def winners_csv(tmp_path) -> Path:
    path = tmp_path / "winners.csv"
    path.write_text(
        "wallet,prize,position,team\n"
        f"{ALICE},10,1,red\n"
        f"{BOB.removeprefix('0x')},5.5,2,blue\n"
        "not-an-address,1,3,green\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def token_json(tmp_path) -> Path:
    path = tmp_path / "token.json"
    path.write_text(
        json.dumps(
            {
                "address": TOKEN_ADDRESS,
                "symbol": "SUPR",
                "name": "SuperDapp Token",
                "decimals": 18,
                "chainId": 570,
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def payout_args(tmp_path, winners_csv, token_json) -> argparse.Namespace:
    return argparse.Namespace(
        winners=winners_csv,
        round_id="round-7",
        group_id="group-1",
        token_json=token_json,
        token_address=None,
        token_symbol=None,
        token_name=None,
        token_decimals=18,
        chain_id=None,
        native=False,
        supr=False,
        clamp_decimals=None,
        description=None,
        airdrop=None,
        max_per_batch=None,
        no_single_approval=False,
        starting_nonce=None,
        execute=False,
        stop_on_fail=False,
        confirmations=1,
        out_dir=tmp_path / "runs",
        summary_path=tmp_path / "summary.json",
    )


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        rpc_url="http://localhost:8545",
        chain_id=None,
        airdrop_addresses={},
        reconcile_max_workers=4,
        payout_output_dir=str(tmp_path / "runs"),
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings
