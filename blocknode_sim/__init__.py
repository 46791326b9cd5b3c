"""
Block Node Simulator

A mock block node for local development: a timer-driven stream of synthetic
hash-linked blocks, a query index over them, and a router that degrades to a
public mirror node REST API when the local source cannot answer.
"""

__version__ = "1.0.0"
__author__ = "Block Node Tooling Team"
__description__ = "Mock block stream, query index and mirror node fallback"

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.query_index import QueryIndex
from blocknode_sim.core.fallback_router import FallbackRouter
from blocknode_sim.models.config import SimulatorConfig, FallbackConfig

__all__ = [
    "MockBlockStream",
    "QueryIndex",
    "FallbackRouter",
    "SimulatorConfig",
    "FallbackConfig",
]
