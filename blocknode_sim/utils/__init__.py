"""Utility functions and helpers."""

from blocknode_sim.utils.logging import setup_logging, get_logger
from blocknode_sim.utils.time import (
    get_current_utc,
    to_utc_timestamp,
    to_iso8601,
    mirror_timestamp_to_iso,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_utc",
    "to_utc_timestamp",
    "to_iso8601",
    "mirror_timestamp_to_iso",
]
