"""Error codes and the simulator error type."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    # Stream lifecycle (1xxx)
    STREAM_NOT_STARTED = "SIM_1001"
    STREAM_ALREADY_RUNNING = "SIM_1002"
    MOCK_DATA_ERROR = "SIM_1003"

    # Query input / lookup (2xxx)
    INVALID_BLOCK_NUMBER = "SIM_2001"
    INVALID_ACCOUNT_ID = "SIM_2002"
    INVALID_TRANSACTION_ID = "SIM_2003"
    NOT_FOUND = "SIM_2004"

    # Remote source / fallback (3xxx)
    INVALID_NETWORK = "SIM_3001"
    MIRROR_NODE_UNAVAILABLE = "SIM_3002"
    FALLBACK_DISABLED = "SIM_3003"
    FALLBACK_FAILED = "SIM_3004"
    SCHEMA_VIOLATION = "SIM_3005"


INVALID_INPUT_CODES = frozenset({
    ErrorCode.INVALID_BLOCK_NUMBER,
    ErrorCode.INVALID_ACCOUNT_ID,
    ErrorCode.INVALID_TRANSACTION_ID,
})


class SimulatorError(Exception):
    """Error raised or returned by the simulator components."""

    def __init__(self, code: ErrorCode, message: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def is_invalid_input(self) -> bool:
        return self.code in INVALID_INPUT_CODES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"SimulatorError({self.code.name}, {self.message!r})"
