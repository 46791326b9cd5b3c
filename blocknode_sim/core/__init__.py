"""Core block node simulator components."""

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.query_index import QueryIndex
from blocknode_sim.core.fallback_router import FallbackRouter
from blocknode_sim.core.mirror_client import MirrorNodeClient
from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.result import Ok, Err, Result

__all__ = [
    "MockBlockStream",
    "QueryIndex",
    "FallbackRouter",
    "MirrorNodeClient",
    "ErrorCode",
    "SimulatorError",
    "Ok",
    "Err",
    "Result",
]
