"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation. Runtime-adjustable knobs
(scan interval, thresholds, approval mode) live in ``SystemSettings``,
which the lifecycle controller owns and updates through its API.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from defi_arbitrage.config.constants import (
    ASSESSMENT_DELAY,
    DEFAULT_GAS_PRICE,
    DEFAULT_MAX_SLIPPAGE_PCT,
    DEFAULT_MIN_PROFIT_PCT,
    DEFAULT_NATIVE_PRICE_USD,
    DEFAULT_SCAN_INTERVAL,
    DEFAULT_TRADE_AMOUNT_USD,
    EXECUTION_DELAY,
    HIGH_RISK_MARGIN,
    HIGH_RISK_PRICE_DIFFERENCE,
    HIGH_RISK_SLIPPAGE,
    MAX_SCAN_INTERVAL,
    MAX_SLIPPAGE_PCT,
    MEDIUM_RISK_MARGIN,
    MEDIUM_RISK_SLIPPAGE,
    MIN_SCAN_INTERVAL,
    PRICE_REQUEST_TIMEOUT,
    RECEIPT_TIMEOUT,
    SIMULATED_LATENCY,
)
from defi_arbitrage.core.errors import SettingsError


class SystemSettings(BaseModel):
    """
    Runtime settings adjustable while the system is running.

    ``min_profit_usd`` and ``max_slippage`` are percentages; the relative
    thresholds fed to the detector and risk evaluator divide them by 100.
    Serialized with camelCase keys to match the control surface.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
    )

    scan_interval: int = Field(
        default=DEFAULT_SCAN_INTERVAL,
        ge=MIN_SCAN_INTERVAL,
        le=MAX_SCAN_INTERVAL,
        alias="scanInterval",
    )
    min_profit_usd: float = Field(
        default=DEFAULT_MIN_PROFIT_PCT,
        ge=0.0,
        alias="minProfitUSD",
    )
    max_slippage: float = Field(
        default=DEFAULT_MAX_SLIPPAGE_PCT,
        ge=0.0,
        le=MAX_SLIPPAGE_PCT,
        alias="maxSlippage",
    )
    require_approval: bool = Field(
        default=True,
        alias="requireApproval",
    )

    @property
    def min_profit_threshold(self) -> float:
        """Relative profit threshold (percentage / 100)."""
        return self.min_profit_usd / 100

    @property
    def max_slippage_fraction(self) -> float:
        """Relative slippage ceiling (percentage / 100)."""
        return self.max_slippage / 100

    def merged(self, partial: dict[str, Any]) -> "SystemSettings":
        """
        Return a new settings object with ``partial`` applied.

        Accepts camelCase or snake_case keys. Validation happens on the
        full merged object, so an invalid update leaves ``self`` untouched.

        Raises:
            SettingsError: If any key is unknown or any value out of range.
        """
        if not isinstance(partial, dict):
            raise SettingsError("Settings update must be an object")

        data = self.model_dump()
        for key, value in partial.items():
            field_name = _ALIAS_TO_FIELD.get(key, key)
            data[field_name] = value

        try:
            return SystemSettings.model_validate(data)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise SettingsError(f"Invalid settings: {errors}") from e

    def to_dict(self) -> dict[str, Any]:
        """Serialize with wire (camelCase) keys."""
        return self.model_dump(by_alias=True)


_ALIAS_TO_FIELD: dict[str, str] = {
    info.alias: name for name, info in SystemSettings.model_fields.items() if info.alias
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Sensitive values use SecretStr for safe handling.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Price Source
    # =========================================================================

    price_source: Literal["mock", "live"] = Field(
        default="mock",
        description="Use simulated prices or query CoinGecko/DexScreener",
    )

    coingecko_api_key: SecretStr | None = Field(
        default=None,
        description="Optional CoinGecko Pro API key",
    )

    use_dexscreener_fallback: bool = Field(
        default=True,
        description="Fall back to DexScreener when CoinGecko has no quote",
    )

    price_request_timeout: float = Field(
        default=PRICE_REQUEST_TIMEOUT,
        gt=0.0,
        le=60.0,
        description="HTTP timeout for price requests in seconds",
    )

    token_pairs: list[str] | None = Field(
        default=None,
        description="Pairs to scan as 'A/B' strings; defaults depend on price_source",
    )

    # =========================================================================
    # Chain Configuration
    # =========================================================================

    rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com",
        description="JSON-RPC endpoint used for real executions",
    )

    chain_id: int = Field(
        default=11155111,
        ge=1,
        description="EIP-155 chain id for signed transactions",
    )

    wallet_private_key: SecretStr | None = Field(
        default=None,
        description="Hex private key; when unset every execution is simulated",
    )

    transfer_amount: float = Field(
        default=0.0001,
        gt=0.0,
        description="Native amount sent by each real execution",
    )

    receipt_timeout: float = Field(
        default=RECEIPT_TIMEOUT,
        gt=0.0,
        description="Seconds to wait for a transaction receipt",
    )

    # =========================================================================
    # Trade Economics
    # =========================================================================

    trade_amount_usd: float = Field(
        default=DEFAULT_TRADE_AMOUNT_USD,
        gt=0.0,
        description="Notional trade size used for risk assessment",
    )

    gas_price: float = Field(
        default=DEFAULT_GAS_PRICE,
        gt=0.0,
        description="Gas price in micro-native units per gas unit",
    )

    native_price_usd: float = Field(
        default=DEFAULT_NATIVE_PRICE_USD,
        gt=0.0,
        description="USD price of the chain's native token",
    )

    native_token: str | None = Field(
        default=None,
        description="Token symbol whose scanned USD price replaces native_price_usd",
    )

    # =========================================================================
    # Risk Classification
    # =========================================================================

    risk_high_margin: float = Field(default=HIGH_RISK_MARGIN, ge=0.0, le=1.0)
    risk_high_slippage: float = Field(default=HIGH_RISK_SLIPPAGE, ge=0.0, le=1.0)
    risk_high_price_difference: float = Field(default=HIGH_RISK_PRICE_DIFFERENCE, ge=0.0, le=1.0)
    risk_medium_margin: float = Field(default=MEDIUM_RISK_MARGIN, ge=0.0, le=1.0)
    risk_medium_slippage: float = Field(default=MEDIUM_RISK_SLIPPAGE, ge=0.0, le=1.0)

    # =========================================================================
    # Lifecycle Pacing
    # =========================================================================

    assessment_delay: float = Field(
        default=ASSESSMENT_DELAY,
        ge=0.0,
        description="Seconds between detection and risk verdict",
    )

    execution_delay: float = Field(
        default=EXECUTION_DELAY,
        ge=0.0,
        description="Seconds between approval and execution in autonomous mode",
    )

    simulated_latency: float = Field(
        default=SIMULATED_LATENCY,
        ge=0.0,
        description="Simulated transaction confirmation time",
    )

    approval_timeout: float | None = Field(
        default=None,
        gt=0.0,
        description="Reject pending approvals after this many seconds; None waits forever",
    )

    # =========================================================================
    # Runtime Defaults
    # =========================================================================

    scan_interval: int = Field(
        default=DEFAULT_SCAN_INTERVAL,
        ge=MIN_SCAN_INTERVAL,
        le=MAX_SCAN_INTERVAL,
    )
    min_profit_usd: float = Field(default=DEFAULT_MIN_PROFIT_PCT, ge=0.0)
    max_slippage_pct: float = Field(default=DEFAULT_MAX_SLIPPAGE_PCT, ge=0.0, le=MAX_SLIPPAGE_PCT)
    require_approval: bool = Field(default=True)

    # =========================================================================
    # Service
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    log_file: str | None = Field(
        default=None,
        description="Optional path for a log file",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the HTTP API",
    )

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for improved async performance",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("token_pairs", mode="after")
    @classmethod
    def validate_token_pairs(cls, v: list[str] | None) -> list[str] | None:
        """Ensure every pair has the form 'A/B'."""
        if v is None:
            return v
        for pair in v:
            parts = pair.split("/")
            if len(parts) != 2 or not all(p.strip() for p in parts):
                raise ValueError(f"Invalid token pair '{pair}', expected 'A/B'")
        return v

    @field_validator("wallet_private_key", mode="after")
    @classmethod
    def validate_private_key(cls, v: SecretStr | None) -> SecretStr | None:
        """Treat an empty key as unset."""
        if v is not None and not v.get_secret_value().strip():
            return None
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def execution_enabled(self) -> bool:
        """Check whether real chain executions can be signed."""
        return self.wallet_private_key is not None

    @property
    def parsed_token_pairs(self) -> list[tuple[str, str]] | None:
        """Token pairs as (token_a, token_b) tuples."""
        if self.token_pairs is None:
            return None
        pairs = []
        for pair in self.token_pairs:
            token_a, token_b = pair.split("/")
            pairs.append((token_a.strip(), token_b.strip()))
        return pairs

    def initial_system_settings(self) -> SystemSettings:
        """Build the runtime settings the controller starts with."""
        return SystemSettings(
            scan_interval=self.scan_interval,
            min_profit_usd=self.min_profit_usd,
            max_slippage=self.max_slippage_pct,
            require_approval=self.require_approval,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()
