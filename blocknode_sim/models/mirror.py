"""Mirror node REST response schemas.

Payloads from the remote source are validated here before anything is mapped
into the internal block model. Field types are strict: a malformed response is
rejected, never coerced.
"""

import re
from typing import List, Optional
from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator

from blocknode_sim.utils.time import mirror_timestamp_to_iso

MIRROR_TIMESTAMP_PATTERN = re.compile(r"^\d+(\.\d{1,9})?$")


def _check_mirror_timestamp(value: str) -> str:
    if not MIRROR_TIMESTAMP_PATTERN.match(value):
        raise ValueError(f"Expected '<seconds>.<nanos>' timestamp, got {value!r}")
    try:
        mirror_timestamp_to_iso(value)
    except (OverflowError, OSError, ValueError):
        raise ValueError(f"Timestamp {value!r} is out of range")
    return value


class MirrorTokenBalance(BaseModel):
    token_id: StrictStr
    balance: StrictInt


class MirrorBalance(BaseModel):
    """Balance snapshot embedded in an account response."""

    balance: StrictInt = Field(..., description="Balance in tinybars")
    timestamp: StrictStr = Field(..., description="Consensus timestamp of the snapshot")
    tokens: List[MirrorTokenBalance] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v):
        return _check_mirror_timestamp(v)


class MirrorAccount(BaseModel):
    """`GET /api/v1/accounts/{id}`."""

    account: StrictStr = Field(..., description="Account id")
    balance: MirrorBalance


class MirrorTransfer(BaseModel):
    account: StrictStr
    amount: StrictInt


class MirrorTokenTransfer(BaseModel):
    token_id: StrictStr
    account: StrictStr
    amount: StrictInt


class MirrorTransaction(BaseModel):
    """A transaction record as the mirror node reports it."""

    transaction_id: StrictStr = Field(..., description="Mirror-style id: <payer>-<seconds>-<nanos>")
    name: StrictStr = Field(..., description="Upper-case transaction type name")
    node: Optional[StrictStr] = None
    result: StrictStr = Field(..., description="Receipt status")
    charged_tx_fee: StrictInt = Field(..., ge=0)
    consensus_timestamp: StrictStr
    memo_base64: Optional[StrictStr] = None
    transfers: List[MirrorTransfer] = Field(default_factory=list)
    token_transfers: List[MirrorTokenTransfer] = Field(default_factory=list)

    @field_validator("consensus_timestamp")
    @classmethod
    def validate_timestamp(cls, v):
        return _check_mirror_timestamp(v)


class MirrorTransactionList(BaseModel):
    """`GET /api/v1/transactions/{id}` and `GET /api/v1/transactions`."""

    transactions: List[MirrorTransaction]


class MirrorTimestampRange(BaseModel):
    start: StrictStr = Field(..., alias="from")
    end: StrictStr = Field(..., alias="to")

    @field_validator("start", "end")
    @classmethod
    def validate_timestamp(cls, v):
        return _check_mirror_timestamp(v)


class MirrorBlock(BaseModel):
    """`GET /api/v1/blocks/{number}`."""

    number: StrictInt = Field(..., ge=0)
    hash: StrictStr
    previous_hash: StrictStr
    timestamp: MirrorTimestampRange
    count: StrictInt = Field(..., ge=0, description="Transactions in the block")
    gas_used: StrictInt = Field(default=0, ge=0)


class MirrorBlockList(BaseModel):
    """`GET /api/v1/blocks`."""

    blocks: List[MirrorBlock]
