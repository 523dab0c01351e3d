from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

GWEI_DECIMALS = 9
_SEVERITIES = ("debug", "info", "success", "warning", "error", "critical")


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a decimal token amount into integer base units."""

    scaled = amount.scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        env_prefix="STAKEBOT_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Contracts
    staking_contract_address: str = Field(
        default="0x321b7ff75154472B18EDb199033fF4D116F340Ff",
        description="Staking contract that pays rewards and accepts deposits",
    )
    token_contract_address: str = Field(
        default="0xacfE6019Ed1A7Dc6f7B508C02d1b04ec88cC21bf",
        description="ERC20 token that is claimed and staked",
    )
    rpc_url: str = Field(default="https://mainnet.base.org", description="JSON-RPC endpoint")

    # Cycle cadence
    interval_hours: int = Field(default=24, gt=0, description="Hours between claim and stake cycles")
    health_check_interval_minutes: Optional[int] = Field(
        default=60,
        gt=0,
        description="Minutes between health probes; unset disables periodic probes",
    )

    # Retry behaviour
    max_retries: int = Field(default=3, gt=0, description="Attempts per transaction submission")
    base_delay_ms: int = Field(default=1000, gt=0, description="Base exponential backoff delay")

    # Economic gates
    gas_limit_multiplier: Decimal = Field(
        default=Decimal("1.2"),
        gt=0,
        description="Multiplier the ledger client applies to gas limit estimates",
    )
    min_stake_amount: Optional[Decimal] = Field(
        default=Decimal("0.001"),
        ge=0,
        description="Minimum reward amount (token units) worth claiming and staking",
    )
    max_gas_price_gwei: Optional[Decimal] = Field(
        default=Decimal("50"),
        ge=0,
        description="Network fee ceiling in gwei; unset disables the fee gate",
    )
    confirmation_timeout_seconds: int = Field(
        default=300,
        gt=0,
        description="How long to wait for a transaction receipt",
    )

    # Observability
    enable_metrics: bool = Field(default=True, description="Accumulate cycle metrics")
    log_level: str = Field(default="INFO", description="Logging level")
    alert_webhook_url: Optional[str] = Field(
        default=None,
        description="Optional URL that receives bot events as JSON",
    )
    alert_min_severity: str = Field(
        default="warning",
        description="Lowest event severity forwarded to the alert webhook",
    )
    status_api_enabled: bool = Field(default=False, description="Serve the read-only status API")
    status_host: str = Field(default="127.0.0.1", description="Status API host")
    status_port: int = Field(default=8787, description="Status API port")

    # Collaborators
    ledger_factory: Optional[str] = Field(
        default=None,
        description="Import path ('package.module:callable') that builds the ledger client",
    )
    signing_key_env: str = Field(
        default="STAKEBOT_SIGNING_KEY",
        description="Environment variable holding the signing key",
    )

    @field_validator("staking_contract_address", "token_contract_address")
    @classmethod
    def _checksum_address(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"Invalid contract address: {value}")
        return to_checksum_address(value)

    @field_validator("min_stake_amount", "max_gas_price_gwei", "gas_limit_multiplier", mode="before")
    @classmethod
    def _exact_decimal(cls, value: Any) -> Any:
        # Floats go through their shortest repr so no binary rounding leaks in.
        if isinstance(value, float):
            return Decimal(str(value))
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("health_check_interval_minutes", "ledger_factory", "alert_webhook_url", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("alert_min_severity")
    @classmethod
    def _known_severity(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _SEVERITIES:
            raise ValueError(f"Unknown severity '{value}'. Expected one of {list(_SEVERITIES)}")
        return normalized

    @property
    def interval_seconds(self) -> float:
        return float(self.interval_hours * 60 * 60)

    @property
    def health_check_interval_seconds(self) -> Optional[float]:
        if not self.health_check_interval_minutes:
            return None
        return float(self.health_check_interval_minutes * 60)

    def min_stake_base_units(self, decimals: int) -> Optional[int]:
        if self.min_stake_amount is None:
            return None
        return to_base_units(self.min_stake_amount, decimals)

    def max_gas_price_wei(self) -> Optional[int]:
        if self.max_gas_price_gwei is None:
            return None
        return to_base_units(self.max_gas_price_gwei, GWEI_DECIMALS)

    def with_updates(self, **changes: Any) -> "Settings":
        """Return a validated copy with ``changes`` applied.

        Unknown field names raise ``ValueError`` instead of being ignored so a
        typo in an operator update never silently drops a setting.
        """

        unknown = sorted(set(changes) - set(type(self).model_fields))
        if unknown:
            raise ValueError(f"Unknown configuration fields: {unknown}")
        merged: Dict[str, Any] = {**self.model_dump(), **changes}
        try:
            return type(self).model_validate(merged)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

    def summary(self) -> Dict[str, Any]:
        """Operator-facing view of the effective configuration."""

        data = self.model_dump(mode="json")
        data.pop("signing_key_env", None)
        return data


# Global settings instance
settings = Settings()
