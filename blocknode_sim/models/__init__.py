"""Data models and configuration."""

from blocknode_sim.models.config import (
    SimulatorConfig,
    FallbackConfig,
    LoggingConfig,
    NetworkName,
    FallbackStrategy,
)
from blocknode_sim.models.blockchain import (
    Block,
    BlockHeader,
    BlockItem,
    BlockProof,
    EventTransaction,
    StateChange,
    StateProof,
    AccountBalance,
)

__all__ = [
    "SimulatorConfig",
    "FallbackConfig",
    "LoggingConfig",
    "NetworkName",
    "FallbackStrategy",
    "Block",
    "BlockHeader",
    "BlockItem",
    "BlockProof",
    "EventTransaction",
    "StateChange",
    "StateProof",
    "AccountBalance",
]
