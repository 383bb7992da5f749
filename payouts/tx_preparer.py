"""Prepare push-payout transaction plans from a manifest."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Sequence

from loguru import logger

from app.core import config
from app.core.config import Settings
from app.domain import (
    PayoutManifest,
    PayoutSummary,
    PreparedPayout,
    PreparedTx,
    TokenInfo,
    ValidationResult,
)

from .abi import (
    BATCH_NATIVE_TRANSFER,
    BATCH_TOKEN_TRANSFER,
    ERC20_APPROVE,
    ERC20_TRANSFER,
    encode_call,
)
from .addresses import same_address, validate_and_checksum_address
from .chains import get_airdrop_address, get_chain_metadata, is_supported_chain, normalize_chain_id

AIRDROP_AUTO = "auto"


@dataclass(slots=True, frozen=True)
class GasConfig:
    native_transfer: int
    erc20_transfer: int
    approve: int
    batch: int
    gas_price: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    tx_type: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "GasConfig":
        return cls(
            native_transfer=settings.gas_limit_native_transfer,
            erc20_transfer=settings.gas_limit_erc20_transfer,
            approve=settings.gas_limit_approve,
            batch=settings.gas_limit_batch,
            gas_price=settings.gas_price_wei,
            max_fee_per_gas=settings.max_fee_per_gas_wei,
            max_priority_fee_per_gas=settings.max_priority_fee_per_gas_wei,
        )


@dataclass(slots=True)
class PushPrepareOptions:
    token: TokenInfo
    max_per_batch: int | None = None
    single_approval: bool | None = None
    airdrop: str | None = None
    starting_nonce: int | None = None
    batch_limit: int | None = None
    gas: GasConfig | None = None


@dataclass(slots=True, frozen=True)
class _Resolved:
    max_per_batch: int
    single_approval: bool
    batch_limit: int
    gas: GasConfig
    gas_cost_warning: int
    seconds_per_tx: int


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _chunk(items: Sequence, size: int) -> list[Sequence]:
    return [items[start : start + size] for start in range(0, len(items), size)]


def _resolve(options: PushPrepareOptions) -> _Resolved:
    settings = config.get_settings()
    return _Resolved(
        max_per_batch=options.max_per_batch
        if options.max_per_batch is not None
        else settings.payout_max_per_batch,
        single_approval=options.single_approval
        if options.single_approval is not None
        else settings.payout_single_approval,
        batch_limit=options.batch_limit
        if options.batch_limit is not None
        else settings.payout_protocol_batch_limit,
        gas=options.gas or GasConfig.from_settings(settings),
        gas_cost_warning=settings.gas_cost_warning_wei,
        seconds_per_tx=settings.seconds_per_transaction,
    )


def _tx(
    kind: str,
    *,
    to: str,
    token: TokenInfo,
    gas: GasConfig,
    gas_limit: int,
    value: int = 0,
    data: str = "0x",
    recipients: Sequence[str] = (),
    amounts: Sequence[int] = (),
) -> PreparedTx:
    return PreparedTx(
        kind=kind,
        to=to,
        value=value,
        data=data,
        gas_limit=gas_limit,
        gas_price=gas.gas_price,
        nonce=None,
        chain_id=token.chain_id,
        type=gas.tx_type,
        max_fee_per_gas=gas.max_fee_per_gas if gas.tx_type == 2 else None,
        max_priority_fee_per_gas=gas.max_priority_fee_per_gas if gas.tx_type == 2 else None,
        recipients=tuple(recipients),
        amounts=tuple(amounts),
    )


def _direct_transfers(
    manifest: PayoutManifest, token: TokenInfo, gas: GasConfig
) -> list[PreparedTx]:
    transactions: list[PreparedTx] = []
    for winner in manifest.winners:
        amount = winner.amount_wei
        if token.is_native:
            transactions.append(
                _tx(
                    "native_transfer",
                    to=winner.address,
                    token=token,
                    gas=gas,
                    gas_limit=gas.native_transfer,
                    value=amount,
                    recipients=(winner.address,),
                    amounts=(amount,),
                )
            )
        else:
            transactions.append(
                _tx(
                    "erc20_transfer",
                    to=token.address,
                    token=token,
                    gas=gas,
                    gas_limit=gas.erc20_transfer,
                    data=encode_call(ERC20_TRANSFER, [winner.address, amount]),
                    recipients=(winner.address,),
                    amounts=(amount,),
                )
            )
    return transactions


def _airdrop_transfers(
    manifest: PayoutManifest,
    token: TokenInfo,
    airdrop: str,
    resolved: _Resolved,
    warnings: list[str],
) -> list[PreparedTx]:
    gas = resolved.gas
    total = manifest.total_amount_wei
    recipients = [winner.address for winner in manifest.winners]
    amounts = [winner.amount_wei for winner in manifest.winners]
    transactions: list[PreparedTx] = []

    if not recipients:
        return transactions

    if token.is_native:
        transactions.append(
            _tx("fund", to=airdrop, token=token, gas=gas, gas_limit=gas.native_transfer, value=total)
        )
    elif resolved.single_approval:
        transactions.append(
            _tx(
                "approve",
                to=token.address,
                token=token,
                gas=gas,
                gas_limit=gas.approve,
                data=encode_call(ERC20_APPROVE, [airdrop, total]),
            )
        )
    else:
        warnings.append(
            f"No approval transaction emitted; {airdrop} must already hold an allowance of {total}"
        )

    for batch_recipients, batch_amounts in zip(
        _chunk(recipients, resolved.max_per_batch), _chunk(amounts, resolved.max_per_batch)
    ):
        if token.is_native:
            kind = "batch_native_transfer"
            data = encode_call(BATCH_NATIVE_TRANSFER, [list(batch_recipients), list(batch_amounts)])
        else:
            kind = "batch_token_transfer"
            data = encode_call(
                BATCH_TOKEN_TRANSFER,
                [token.address, list(batch_recipients), list(batch_amounts)],
            )
        transactions.append(
            _tx(
                kind,
                to=airdrop,
                token=token,
                gas=gas,
                gas_limit=gas.batch,
                data=data,
                recipients=batch_recipients,
                amounts=batch_amounts,
            )
        )
    return transactions


def _resolve_airdrop(airdrop: str | None, token: TokenInfo, errors: list[str]) -> tuple[bool, str | None]:
    """Return ``(ok, address)``; ``address`` is ``None`` for direct transfers."""

    if airdrop is None:
        return True, None
    if airdrop == AIRDROP_AUTO:
        resolved = get_airdrop_address(token.chain_id)
        if resolved is None or not is_supported_chain(token.chain_id):
            metadata = get_chain_metadata(token.chain_id)
            chain_name = metadata.name if metadata else f"Chain ID {token.chain_id}"
            errors.append(
                f"Airdrop contract not configured for {chain_name}. "
                "Please provide the airdrop contract address manually."
            )
            return False, None
        return True, resolved
    checksum = validate_and_checksum_address(airdrop)
    if checksum is None:
        errors.append(f"Airdrop address is invalid: {airdrop}")
        return False, None
    return True, checksum


def _validate(
    manifest: PayoutManifest,
    token: TokenInfo,
    transactions: list[PreparedTx],
    resolved: _Resolved,
    estimated_gas_cost: int,
    errors: list[str],
    warnings: list[str],
) -> None:
    manifest_total = manifest.total_amount_wei
    winners_total = sum(winner.amount_wei for winner in manifest.winners)
    if winners_total != manifest_total:
        errors.append(
            f"Manifest totalAmount {manifest_total} does not equal the sum of winner amounts {winners_total}"
        )

    transfer_total = sum(tx.transfer_total for tx in transactions)
    if transfer_total != manifest_total:
        errors.append(
            f"Prepared transfers total {transfer_total} does not match manifest total {manifest_total}"
        )

    for tx in transactions:
        if tx.kind == "fund" and tx.value != manifest_total:
            errors.append(f"Funding value {tx.value} does not match manifest total {manifest_total}")
        if len(tx.recipients) > resolved.batch_limit:
            errors.append(
                f"Batch of {len(tx.recipients)} recipients exceeds the protocol limit of {resolved.batch_limit}"
            )
        if len(tx.recipients) != len(tx.amounts):
            errors.append("Recipients and amounts arrays must have same length")

    seen: set[str] = set()
    for winner in manifest.winners:
        key = winner.address.lower()
        if key in seen:
            errors.append(f"Manifest lists {winner.address} more than once")
        seen.add(key)
        if winner.amount_wei == 0:
            warnings.append(f"Winner {winner.address} has a zero amount")

    if not manifest.winners:
        warnings.append("Manifest has no winners; nothing to transfer")

    if estimated_gas_cost > resolved.gas_cost_warning:
        warnings.append(
            f"Estimated gas cost {estimated_gas_cost} exceeds the warning threshold {resolved.gas_cost_warning}"
        )


def _empty_plan(manifest: PayoutManifest, errors: list[str], warnings: list[str]) -> PreparedPayout:
    return PreparedPayout(
        manifest_id=manifest.id,
        transactions=[],
        estimated_gas_cost="0",
        prepared_at=_timestamp(),
        summary=PayoutSummary(
            recipient_count=0,
            total_amount="0",
            token=manifest.token,
            estimated_duration="0s",
        ),
        validation=ValidationResult(is_valid=False, errors=errors, warnings=warnings),
    )


def prepare_push_txs(manifest: PayoutManifest, options: PushPrepareOptions) -> PreparedPayout:
    """Build an ordered transaction plan for ``manifest``.

    Without an airdrop contract every winner gets a direct transfer. With one,
    winners are packed into batches of ``max_per_batch`` recipients, preceded
    by an ERC-20 approval (or a native funding transfer). Data problems never
    raise: they land in ``validation.errors`` so the caller can inspect the
    plan before spending any fee.
    """

    errors: list[str] = []
    warnings: list[str] = []
    token = options.token
    resolved = _resolve(options)

    if resolved.max_per_batch < 1:
        errors.append(f"max_per_batch must be at least 1, got {resolved.max_per_batch}")
        return _empty_plan(manifest, errors, warnings)

    if not same_address(token.address, manifest.token.address) or normalize_chain_id(
        token.chain_id
    ) != normalize_chain_id(manifest.token.chain_id):
        errors.append(
            f"Token {token.symbol} on chain {token.chain_id} does not match manifest token "
            f"{manifest.token.symbol} on chain {manifest.token.chain_id}"
        )

    token_address = validate_and_checksum_address(token.address)
    if token_address is None:
        errors.append(f"Token address is invalid: {token.address}")
        return _empty_plan(manifest, errors, warnings)
    token = replace(token, address=token_address)

    for winner in manifest.winners:
        if validate_and_checksum_address(winner.address) != winner.address:
            errors.append(f"Recipient address failed validation: {winner.address}")
    if errors:
        logger.warning("Preparation aborted for manifest {}: {}", manifest.id, "; ".join(errors))
        return _empty_plan(manifest, errors, warnings)

    ok, airdrop = _resolve_airdrop(options.airdrop, token, errors)
    if not ok:
        logger.warning("Preparation aborted for manifest {}: {}", manifest.id, "; ".join(errors))
        return _empty_plan(manifest, errors, warnings)

    if airdrop is None:
        transactions = _direct_transfers(manifest, token, resolved.gas)
    else:
        transactions = _airdrop_transfers(manifest, token, airdrop, resolved, warnings)

    if options.starting_nonce is not None:
        for offset, tx in enumerate(transactions):
            tx.nonce = options.starting_nonce + offset

    estimated_gas_cost = sum(tx.gas_limit * tx.gas_price for tx in transactions)
    _validate(manifest, token, transactions, resolved, estimated_gas_cost, errors, warnings)

    plan = PreparedPayout(
        manifest_id=manifest.id,
        transactions=transactions,
        estimated_gas_cost=str(estimated_gas_cost),
        prepared_at=_timestamp(),
        summary=PayoutSummary(
            recipient_count=len(manifest.winners),
            total_amount=manifest.total_amount,
            token=manifest.token,
            estimated_duration=f"{len(transactions) * resolved.seconds_per_tx}s",
        ),
        validation=ValidationResult(is_valid=not errors, errors=errors, warnings=warnings),
    )
    if errors:
        logger.warning(
            "Prepared plan for manifest {} is invalid: {}", manifest.id, "; ".join(errors)
        )
    else:
        logger.info(
            "Prepared {} transactions for manifest {} (gas estimate {})",
            len(transactions),
            manifest.id,
            plan.estimated_gas_cost,
        )
    return plan


__all__ = ["AIRDROP_AUTO", "GasConfig", "PushPrepareOptions", "prepare_push_txs"]
