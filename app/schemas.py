from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.domain import (
    ManifestOptions,
    NormalizedWinner,
    PayoutManifest,
    PreparedPayout,
    PreparedTx,
    ReconciliationReport,
    TokenInfo,
    WinnerRow,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_integer_string(value: Any) -> str:
    if isinstance(value, bool):
        raise ValueError("amount must be an integer string")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str) or not value.isdigit():
        raise ValueError("amount must be a non-negative integer string")
    return value


class TokenInfoSchema(_CamelModel):
    address: str
    symbol: str
    name: str
    decimals: int = Field(ge=0, le=77)
    chain_id: int | str
    is_native: bool | None = None

    @classmethod
    def from_domain(cls, token: TokenInfo) -> "TokenInfoSchema":
        return cls(
            address=token.address,
            symbol=token.symbol,
            name=token.name,
            decimals=token.decimals,
            chain_id=token.chain_id,
            is_native=True if token.is_native else None,
        )

    def to_domain(self) -> TokenInfo:
        return TokenInfo(
            address=self.address,
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            chain_id=self.chain_id,
            is_native=bool(self.is_native),
        )


class WinnerRowSchema(_CamelModel):
    """Loose shape for raw rows; address and amount are validated later by the builder."""

    address: str
    amount: str | int | float
    rank: int = 0
    id: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("address", mode="before")
    @classmethod
    def _stringify_address(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    def to_domain(self) -> WinnerRow:
        return WinnerRow(
            address=self.address,
            amount=self.amount,
            rank=self.rank,
            id=self.id,
            metadata=dict(self.metadata) if self.metadata else None,
        )


class NormalizedWinnerSchema(_CamelModel):
    address: str
    amount: str
    rank: int
    id: str
    token: TokenInfoSchema
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount", mode="before")
    @classmethod
    def _check_amount(cls, value: Any) -> str:
        return _require_integer_string(value)


class ManifestTotalsSchema(_CamelModel):
    amount_wei: str


class ManifestOptionsSchema(_CamelModel):
    batch_transactions: bool | None = None
    gas_strategy: str | None = Field(default=None, pattern="^(fast|standard|slow|custom)$")
    custom_gas_price: str | None = None


class PayoutManifestSchema(_CamelModel):
    """Serialized manifest exactly as exported for audit."""

    id: str
    winners: list[NormalizedWinnerSchema]
    token: TokenInfoSchema
    total_amount: str
    created_by: str
    created_at: str
    round_id: str
    group_id: str
    version: str
    hash: str
    description: str | None = None
    totals: ManifestTotalsSchema
    options: ManifestOptionsSchema | None = None

    @field_validator("total_amount", mode="before")
    @classmethod
    def _check_total(cls, value: Any) -> str:
        return _require_integer_string(value)

    @model_validator(mode="after")
    def _check_totals_consistent(self) -> "PayoutManifestSchema":
        summed = sum(int(winner.amount) for winner in self.winners)
        if summed != int(self.total_amount):
            raise ValueError(
                f"totalAmount {self.total_amount} does not match the sum of winner amounts {summed}"
            )
        if self.totals.amount_wei != self.total_amount:
            raise ValueError("totals.amountWei must equal totalAmount")
        seen: set[str] = set()
        for winner in self.winners:
            key = winner.address.lower()
            if key in seen:
                raise ValueError(f"duplicate winner address {winner.address}")
            seen.add(key)
        return self

    @classmethod
    def from_domain(cls, manifest: PayoutManifest) -> "PayoutManifestSchema":
        token = TokenInfoSchema.from_domain(manifest.token)
        options = None
        if manifest.options is not None:
            options = ManifestOptionsSchema(
                batch_transactions=manifest.options.batch_transactions,
                gas_strategy=manifest.options.gas_strategy,
                custom_gas_price=manifest.options.custom_gas_price,
            )
        return cls(
            id=manifest.id,
            winners=[
                NormalizedWinnerSchema(
                    address=winner.address,
                    amount=winner.amount,
                    rank=winner.rank,
                    id=winner.id,
                    token=TokenInfoSchema.from_domain(winner.token),
                    metadata=dict(winner.metadata),
                )
                for winner in manifest.winners
            ],
            token=token,
            total_amount=manifest.total_amount,
            created_by=manifest.created_by,
            created_at=manifest.created_at,
            round_id=manifest.round_id,
            group_id=manifest.group_id,
            version=manifest.version,
            hash=manifest.hash,
            description=manifest.description,
            totals=ManifestTotalsSchema(amount_wei=manifest.total_amount),
            options=options,
        )

    def to_domain(self) -> PayoutManifest:
        token = self.token.to_domain()
        options = None
        if self.options is not None:
            options = ManifestOptions(
                batch_transactions=self.options.batch_transactions,
                gas_strategy=self.options.gas_strategy,
                custom_gas_price=self.options.custom_gas_price,
            )
        return PayoutManifest(
            id=self.id,
            winners=tuple(
                NormalizedWinner(
                    address=winner.address,
                    amount=winner.amount,
                    rank=winner.rank,
                    id=winner.id,
                    token=winner.token.to_domain(),
                    metadata=dict(winner.metadata),
                )
                for winner in self.winners
            ),
            token=token,
            total_amount=self.total_amount,
            created_by=self.created_by,
            created_at=self.created_at,
            round_id=self.round_id,
            group_id=self.group_id,
            version=self.version,
            hash=self.hash,
            description=self.description,
            options=options,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PreparedTxSchema(_CamelModel):
    kind: str
    to: str
    value: str
    data: str
    gas_limit: str
    gas_price: str
    nonce: int | None = None
    chain_id: int | str
    type: int | None = None
    max_fee_per_gas: str | None = None
    max_priority_fee_per_gas: str | None = None
    recipient_count: int

    @classmethod
    def from_domain(cls, tx: PreparedTx) -> "PreparedTxSchema":
        return cls(
            kind=tx.kind,
            to=tx.to,
            value=str(tx.value),
            data=tx.data,
            gas_limit=str(tx.gas_limit),
            gas_price=str(tx.gas_price),
            nonce=tx.nonce,
            chain_id=tx.chain_id,
            type=tx.type,
            max_fee_per_gas=None if tx.max_fee_per_gas is None else str(tx.max_fee_per_gas),
            max_priority_fee_per_gas=None
            if tx.max_priority_fee_per_gas is None
            else str(tx.max_priority_fee_per_gas),
            recipient_count=len(tx.recipients),
        )


class ValidationSchema(_CamelModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PreparedPayoutSchema(_CamelModel):
    manifest_id: str
    transactions: list[PreparedTxSchema]
    estimated_gas_cost: str
    prepared_at: str
    recipient_count: int
    total_amount: str
    estimated_duration: str
    validation: ValidationSchema

    @classmethod
    def from_domain(cls, plan: PreparedPayout) -> "PreparedPayoutSchema":
        return cls(
            manifest_id=plan.manifest_id,
            transactions=[PreparedTxSchema.from_domain(tx) for tx in plan.transactions],
            estimated_gas_cost=plan.estimated_gas_cost,
            prepared_at=plan.prepared_at,
            recipient_count=plan.summary.recipient_count,
            total_amount=plan.summary.total_amount,
            estimated_duration=plan.summary.estimated_duration,
            validation=ValidationSchema(
                is_valid=plan.validation.is_valid,
                errors=list(plan.validation.errors),
                warnings=list(plan.validation.warnings),
            ),
        )


class RecipientReconciliationSchema(_CamelModel):
    address: str
    expected_amount: str
    received_amount: str
    status: str
    successful_transfers: int
    failed_transfers: int
    tx_hashes: list[str] = Field(default_factory=list)


class ReceiptCheckSchema(_CamelModel):
    tx_hash: str
    status: str
    transfer_count: int
    error: str | None = None


class ReconciliationReportSchema(_CamelModel):
    manifest_id: str
    success: bool
    status: str
    total_amount_found: str
    expected_total_amount: str
    recipients_confirmed: int
    expected_recipients: int
    recipients: list[RecipientReconciliationSchema]
    receipts: list[ReceiptCheckSchema]
    errors: list[str]
    warnings: list[str]

    @classmethod
    def from_domain(cls, report: ReconciliationReport) -> "ReconciliationReportSchema":
        return cls(
            manifest_id=report.manifest_id,
            success=report.success,
            status=report.status.value,
            total_amount_found=report.total_amount_found,
            expected_total_amount=report.expected_total_amount,
            recipients_confirmed=report.recipients_confirmed,
            expected_recipients=report.expected_recipients,
            recipients=[
                RecipientReconciliationSchema(
                    address=item.address,
                    expected_amount=item.expected_amount,
                    received_amount=item.received_amount,
                    status=item.status.value,
                    successful_transfers=item.successful_transfers,
                    failed_transfers=item.failed_transfers,
                    tx_hashes=list(item.tx_hashes),
                )
                for item in report.recipients
            ],
            receipts=[
                ReceiptCheckSchema(
                    tx_hash=item.tx_hash,
                    status=item.status,
                    transfer_count=item.transfer_count,
                    error=item.error,
                )
                for item in report.receipts
            ],
            errors=list(report.errors),
            warnings=list(report.warnings),
        )
