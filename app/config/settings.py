"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.constants import (
    DEFAULT_ADDRESS_REFRESH_INTERVAL,
    DEFAULT_MAX_BLOCK_RANGE,
    DEFAULT_MAX_DEPOSIT_RETRIES,
    DEFAULT_SCAN_INTERVAL,
)
from app.utils.validation import normalize_address, validate_evm_address


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # HD wallet master secret (BIP-39 mnemonic).
    # Stored as SecretStr so it never shows up in repr() or logs.
    master_mnemonic: SecretStr | None = None

    # Custody hot wallet
    hot_wallet_address: str
    hot_wallet_private_key: SecretStr | None = None

    # Monitored token
    token_contract_address: str
    token_symbol: str = "USDC"
    token_decimals: int = Field(default=6, ge=0, le=36)

    # Blockchain RPC
    rpc_url: str

    # Database
    database_url: str
    database_echo: bool = False

    # Deposit monitor cadence
    scan_interval: int = Field(
        default=DEFAULT_SCAN_INTERVAL,
        ge=1,
        description="Block scan tick interval in seconds",
    )
    address_refresh_interval: int = Field(
        default=DEFAULT_ADDRESS_REFRESH_INTERVAL,
        ge=1,
        description="Deposit address registry refresh interval in seconds",
    )
    max_block_range: int = Field(
        default=DEFAULT_MAX_BLOCK_RANGE,
        ge=1,
        description="Maximum number of blocks covered by one eth_getLogs query",
    )
    scan_start_block: int | None = Field(
        default=None,
        ge=0,
        description="Block to resume from when no watermark is stored",
    )
    max_deposit_retries: int = Field(
        default=DEFAULT_MAX_DEPOSIT_RETRIES,
        ge=1,
        description="Retry budget per deposit before it is marked failed",
    )
    auto_start_deposit_monitor: bool = False

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    health_check_host: str = "0.0.0.0"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Status HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("hot_wallet_address", "token_contract_address")
    @classmethod
    def validate_eth_address(cls, v: str) -> str:
        """Validate Ethereum address format."""
        if not validate_evm_address(v):
            raise ValueError(
                f"Invalid Ethereum address: {v}. "
                "Must be 0x + 40 hex characters, non-zero, "
                "with a valid checksum if mixed-case."
            )
        return normalize_address(v)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")
        ):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "(or sqlite+aiosqlite:// for local runs)"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if self.database_url.startswith("sqlite"):
                raise ValueError(
                    "SQLite is not supported in production. "
                    "Use postgresql+asyncpg:// for DATABASE_URL."
                )

        if self.hot_wallet_private_key is None:
            # Sweeps need the hot wallet for gas funding; scanning still works
            logger.warning(
                "HOT_WALLET_PRIVATE_KEY is not configured. "
                "Deposits without native gas cannot be swept."
            )
        return self

    def get_database_url(self) -> str:
        """Return database URL with the async driver selected."""
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace(
                "postgresql://", "postgresql+asyncpg://", 1
            )
        return self.database_url


# Global settings instance
settings = Settings()
