from functools import lru_cache
import re
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_GWEI = 1_000_000_000
_ADDRESS_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable verbose pipeline diagnostics")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    rpc_url: AnyUrl | str | None = Field(
        default=None,
        description="JSON-RPC endpoint used for receipts, nonces and raw submissions",
    )
    chain_id: int | None = Field(
        default=None,
        description="Chain the payouts run against; checked against the RPC endpoint",
    )
    signer_private_key: str | None = Field(
        default=None,
        description="Hex private key of the payer account (only needed with --execute)",
    )
    rpc_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to every JSON-RPC request",
        gt=0,
    )
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        description="Delay between receipt polls while waiting for confirmations",
        gt=0,
    )
    receipt_timeout_seconds: float = Field(
        default=120.0,
        description="Give up waiting for a receipt after this many seconds",
        gt=0,
    )
    payout_max_per_batch: int = Field(
        default=50,
        description="Maximum recipients packed into one airdrop call",
        ge=1,
    )
    payout_protocol_batch_limit: int = Field(
        default=500,
        description="Hard upper bound on recipients per airdrop call enforced by the contract",
        ge=1,
    )
    payout_single_approval: bool = Field(
        default=True,
        description="Emit one ERC-20 approve for the whole payout before batched transfers",
    )
    gas_limit_native_transfer: int = Field(default=21_000, ge=21_000)
    gas_limit_erc20_transfer: int = Field(default=65_000, ge=1)
    gas_limit_approve: int = Field(default=100_000, ge=1)
    gas_limit_batch: int = Field(default=500_000, ge=1)
    gas_price_wei: int = Field(
        default=20 * _GWEI,
        description="Legacy gas price, also used for plan cost estimates",
        ge=0,
    )
    max_fee_per_gas_wei: int = Field(default=25 * _GWEI, ge=0)
    max_priority_fee_per_gas_wei: int = Field(default=2 * _GWEI, ge=0)
    gas_cost_warning_wei: int = Field(
        default=10**17,
        description="Plans whose estimated gas cost exceeds this value carry a warning",
        ge=0,
    )
    seconds_per_transaction: int = Field(
        default=15,
        description="Rough confirmation time per transaction used for duration estimates",
        ge=0,
    )
    reconcile_max_workers: int = Field(
        default=8,
        description="Number of receipt lookups issued concurrently during reconciliation",
        ge=1,
    )
    reconcile_confirmations: int = Field(
        default=0,
        description="Confirmations to wait for per receipt during reconciliation (0 = plain lookup)",
        ge=0,
    )
    airdrop_addresses: dict[int, str] = Field(
        default_factory=dict,
        description="Per-chain airdrop contract overrides keyed by chain id",
    )
    payout_output_dir: str = Field(
        default="../payout_runs",
        description="Directory where manifests, CSV exports and run summaries are written",
    )

    @field_validator("airdrop_addresses", mode="before")
    @classmethod
    def _parse_airdrop_addresses(cls, value: Any) -> dict[int, str]:
        if value in (None, "", {}):
            return {}
        if isinstance(value, str):
            entries: dict[Any, Any] = {}
            for token in (part.strip() for part in value.split(",")):
                if not token:
                    continue
                if "=" not in token:
                    raise ValueError(
                        "AIRDROP_ADDRESSES entries must be formatted as CHAIN_ID=ADDRESS"
                    )
                chain, address = token.split("=", 1)
                entries[chain.strip()] = address.strip()
            value = entries
        if not isinstance(value, dict):
            raise ValueError(
                "AIRDROP_ADDRESSES must be provided as a mapping or comma-separated CHAIN_ID=ADDRESS list"
            )
        parsed: dict[int, str] = {}
        for chain, address in value.items():
            try:
                chain_id = int(chain)
            except (TypeError, ValueError) as exc:
                raise ValueError("AIRDROP_ADDRESSES keys must be numeric chain ids") from exc
            if not isinstance(address, str) or not _ADDRESS_PATTERN.match(address):
                raise ValueError(f"AIRDROP_ADDRESSES entry for chain {chain_id} is not a valid address")
            parsed[chain_id] = address
        return parsed

    @field_validator("signer_private_key")
    @classmethod
    def _normalize_private_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        candidate = value.strip()
        if not candidate:
            return None
        body = candidate[2:] if candidate.lower().startswith("0x") else candidate
        if len(body) != 64 or not all(char in "0123456789abcdefABCDEF" for char in body):
            raise ValueError("SIGNER_PRIVATE_KEY must be a 32-byte hex string")
        return "0x" + body

    @property
    def resolved_rpc_url(self) -> str:
        if not self.rpc_url:
            raise ValueError("RPC_URL must be set to talk to a chain")
        return str(self.rpc_url)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
