from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from eth_account import Account
from loguru import logger

from app.core.config import settings

from .base import ReceiptTimeoutError, RpcError


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


class JsonRpcClient:
    """Minimal Ethereum JSON-RPC reader over HTTP.

    Satisfies the read-client contract used by the executor and reconciler.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        timeout: float | None = None,
        poll_interval: float | None = None,
        receipt_timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.resolved_rpc_url
        self.timeout = timeout or settings.rpc_timeout_seconds
        self.poll_interval = poll_interval or settings.receipt_poll_interval_seconds
        self.receipt_timeout = receipt_timeout or settings.receipt_timeout_seconds
        self._ids = itertools.count(1)
        self.client = httpx.Client(timeout=self.timeout, transport=transport)

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        logger.debug("JSON-RPC {} params={}", method, payload["params"])
        try:
            response = self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RpcError(f"{method} request failed: {exc}") from exc
        if not isinstance(body, dict):
            raise RpcError(f"{method} returned a malformed response")
        error = body.get("error")
        if error:
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            data = error.get("data") if isinstance(error, dict) else None
            raise RpcError(f"{method} failed: {message}", code=code, data=data)
        return body.get("result")

    def get_chain_id(self) -> int:
        return _to_int(self.call("eth_chainId"))

    def get_block_number(self) -> int:
        return _to_int(self.call("eth_blockNumber"))

    def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return _to_int(self.call("eth_getTransactionCount", [address, block]))

    def get_transaction_receipt(self, tx_hash: str) -> Mapping[str, Any] | None:
        return self.call("eth_getTransactionReceipt", [tx_hash])

    def wait_for_transaction_receipt(
        self, tx_hash: str, confirmations: int = 1
    ) -> Mapping[str, Any]:
        deadline = time.monotonic() + self.receipt_timeout
        while True:
            receipt = self.get_transaction_receipt(tx_hash)
            if receipt is not None and receipt.get("blockNumber") is not None:
                mined_at = _to_int(receipt["blockNumber"])
                if confirmations <= 1 or self.get_block_number() - mined_at + 1 >= confirmations:
                    return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(
                    f"Receipt for {tx_hash} not confirmed within {self.receipt_timeout}s"
                )
            time.sleep(self.poll_interval)

    def send_raw_transaction(self, raw_transaction: bytes | str) -> str:
        if isinstance(raw_transaction, (bytes, bytearray)):
            raw_transaction = "0x" + bytes(raw_transaction).hex()
        return self.call("eth_sendRawTransaction", [raw_transaction])

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "JsonRpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LocalAccountSigner:
    """Sign with a local private key and broadcast through a JSON-RPC client."""

    def __init__(self, client: JsonRpcClient, private_key: str) -> None:
        self.client = client
        self.account = Account.from_key(private_key)
        self._next_nonce: int | None = None

    @property
    def address(self) -> str:
        return self.account.address

    def send_transaction(self, tx: Mapping[str, Any]) -> str:
        payload = dict(tx)
        if payload.get("nonce") is None:
            if self._next_nonce is None:
                self._next_nonce = self.client.get_transaction_count(self.address, "pending")
            payload["nonce"] = self._next_nonce
        if payload.get("type") == 2:
            payload.pop("gasPrice", None)
        signed = self.account.sign_transaction(payload)
        tx_hash = self.client.send_raw_transaction(signed.raw_transaction)
        # The nonce only advances once the node has accepted the transaction.
        self._next_nonce = payload["nonce"] + 1
        logger.info("Broadcast transaction nonce={} hash={}", payload["nonce"], tx_hash)
        return tx_hash


@dataclass(slots=True)
class RpcConnectionCheck:
    is_valid: bool
    error: str | None = None
    actual_chain_id: int | None = None


def validate_rpc_connection(
    rpc_url: str,
    chain_id: int,
    *,
    transport: httpx.BaseTransport | None = None,
) -> RpcConnectionCheck:
    """Check that ``rpc_url`` answers and serves ``chain_id``."""

    try:
        with JsonRpcClient(rpc_url, transport=transport) as client:
            actual = client.get_chain_id()
    except RpcError as exc:
        return RpcConnectionCheck(is_valid=False, error=str(exc))
    if actual != chain_id:
        return RpcConnectionCheck(
            is_valid=False,
            error=f"Chain ID mismatch: expected {chain_id}, got {actual}",
            actual_chain_id=actual,
        )
    return RpcConnectionCheck(is_valid=True, actual_chain_id=actual)


__all__ = ["JsonRpcClient", "LocalAccountSigner", "RpcConnectionCheck", "validate_rpc_connection"]
