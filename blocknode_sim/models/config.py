"""Configuration management using Pydantic settings."""

from enum import Enum
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetworkName(str, Enum):
    """Named networks with a known mirror node."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    PREVIEWNET = "previewnet"
    LOCAL = "local"


class FallbackStrategy(str, Enum):
    """
    How the router handles primary source failures.

    - auto: divert to the mirror node automatically
    - manual: divert as well, events let the caller react
    - disabled: never contact the mirror node
    """
    AUTO = "auto"
    MANUAL = "manual"
    DISABLED = "disabled"


class SimulatorConfig(BaseSettings):
    """Configuration for the mock block stream."""

    block_interval_ms: int = Field(default=2000, gt=0, description="Interval between blocks in milliseconds")
    transactions_per_block: int = Field(default=5, gt=0, description="Transactions generated per block")
    # Reserved: generated blocks always carry a proof for now.
    enable_state_proofs: bool = Field(default=False, description="Gate block proofs")
    failure_rate: float = Field(default=0.0, ge=0.0, le=1.0, description="Probability of an injected tick failure")
    start_block_number: int = Field(default=1, ge=0, description="Number of the first generated block")

    model_config = SettingsConfigDict(
        env_prefix="BLOCKNODE_SIM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def block_interval_seconds(self) -> float:
        return self.block_interval_ms / 1000.0


class FallbackConfig(BaseSettings):
    """Configuration for the mirror node fallback router."""

    network: NetworkName = Field(default=NetworkName.TESTNET, description="Network used to resolve the mirror URL")
    mirror_node_url: Optional[str] = Field(default=None, description="Explicit mirror node base URL")
    strategy: FallbackStrategy = Field(default=FallbackStrategy.AUTO, description="Fallback strategy")
    timeout_ms: int = Field(default=10_000, gt=0, description="Per-request timeout in milliseconds")

    model_config = SettingsConfigDict(
        env_prefix="BLOCKNODE_FALLBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class LoggingConfig(BaseSettings):
    """Logging settings."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size_mb: int = Field(default=100, description="Max log file size in MB")
    log_backup_count: int = Field(default=5, description="Number of log backups")

    model_config = SettingsConfigDict(
        env_prefix="BLOCKNODE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
