"""Block stream data models.

Internal, already-validated records produced by the block generator and served
by the query index. Blocks are immutable once created, so every record is a
frozen dataclass holding tuples rather than lists.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class TransactionType(str, Enum):
    """Supported transaction body types."""
    # Crypto
    CRYPTO_TRANSFER = "CryptoTransfer"
    CRYPTO_CREATE = "CryptoCreate"
    CRYPTO_UPDATE = "CryptoUpdate"
    CRYPTO_DELETE = "CryptoDelete"
    CRYPTO_APPROVE_ALLOWANCE = "CryptoApproveAllowance"
    # Smart contracts
    CONTRACT_CALL = "ContractCall"
    CONTRACT_CREATE = "ContractCreate"
    CONTRACT_UPDATE = "ContractUpdate"
    CONTRACT_DELETE = "ContractDelete"
    # Token service
    TOKEN_MINT = "TokenMint"
    TOKEN_BURN = "TokenBurn"
    TOKEN_TRANSFER = "TokenTransfer"
    TOKEN_CREATE = "TokenCreate"
    TOKEN_ASSOCIATE = "TokenAssociate"
    TOKEN_DISSOCIATE = "TokenDissociate"
    TOKEN_FREEZE = "TokenFreeze"
    TOKEN_UNFREEZE = "TokenUnfreeze"
    TOKEN_PAUSE = "TokenPause"
    TOKEN_UNPAUSE = "TokenUnpause"
    # Consensus service
    CONSENSUS_SUBMIT_MESSAGE = "ConsensusSubmitMessage"
    CONSENSUS_CREATE_TOPIC = "ConsensusCreateTopic"
    CONSENSUS_UPDATE_TOPIC = "ConsensusUpdateTopic"
    CONSENSUS_DELETE_TOPIC = "ConsensusDeleteTopic"
    # Files
    FILE_CREATE = "FileCreate"
    FILE_UPDATE = "FileUpdate"
    FILE_DELETE = "FileDelete"
    FILE_APPEND = "FileAppend"
    # Scheduling
    SCHEDULE_CREATE = "ScheduleCreate"
    SCHEDULE_SIGN = "ScheduleSign"
    SCHEDULE_DELETE = "ScheduleDelete"


CONTRACT_TRANSACTION_TYPES = frozenset({
    TransactionType.CONTRACT_CALL,
    TransactionType.CONTRACT_CREATE,
})


class ResponseCode(str, Enum):
    """Transaction receipt status codes."""
    SUCCESS = "SUCCESS"
    INVALID_TRANSACTION = "INVALID_TRANSACTION"
    PAYER_ACCOUNT_NOT_FOUND = "PAYER_ACCOUNT_NOT_FOUND"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INSUFFICIENT_PAYER_BALANCE = "INSUFFICIENT_PAYER_BALANCE"
    INSUFFICIENT_TX_FEE = "INSUFFICIENT_TX_FEE"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"
    CONTRACT_REVERT_EXECUTED = "CONTRACT_REVERT_EXECUTED"
    RECEIPT_NOT_FOUND = "RECEIPT_NOT_FOUND"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    INVALID_ACCOUNT_ID = "INVALID_ACCOUNT_ID"
    THROTTLED_AT_CONSENSUS = "THROTTLED_AT_CONSENSUS"
    BUSY = "BUSY"
    UNKNOWN = "UNKNOWN"


class StateChangeType(str, Enum):
    """Categories of state that a transaction can mutate."""
    BALANCE = "BALANCE"
    NONCE = "NONCE"
    STORAGE = "STORAGE"
    TOKEN_BALANCE = "TOKEN_BALANCE"
    TOKEN_ASSOCIATION = "TOKEN_ASSOCIATION"
    ALLOWANCE = "ALLOWANCE"
    STAKING_INFO = "STAKING_INFO"
    CONTRACT_BYTECODE = "CONTRACT_BYTECODE"
    CONTRACT_STORAGE = "CONTRACT_STORAGE"
    TOPIC_MESSAGE = "TOPIC_MESSAGE"
    SCHEDULE_STATUS = "SCHEDULE_STATUS"
    NFT_OWNERSHIP = "NFT_OWNERSHIP"


class SystemEventType(str, Enum):
    """Network-level events that can appear as block items."""
    EPOCH_CHANGE = "EPOCH_CHANGE"
    FREEZE_START = "FREEZE_START"
    FREEZE_ABORT = "FREEZE_ABORT"
    STAKE_PERIOD_START = "STAKE_PERIOD_START"
    MAINTENANCE = "MAINTENANCE"


class ItemKind(str, Enum):
    """Tag of a block item."""
    TRANSACTION = "transaction"
    STATE_CHANGE = "stateChange"
    SYSTEM_EVENT = "systemEvent"


class StreamEventType(str, Enum):
    """Tag of a granular stream event."""
    BLOCK_START = "BLOCK_START"
    BLOCK_ITEM = "BLOCK_ITEM"
    BLOCK_END = "BLOCK_END"
    STREAM_ERROR = "STREAM_ERROR"
    STREAM_HEARTBEAT = "STREAM_HEARTBEAT"


HASH_ALGORITHM = "SHA_384"
TINYBARS_PER_HBAR = 100_000_000


def _to_plain(value: Any) -> Any:
    """Recursively convert records, enums and tuples into JSON-ready values."""
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (tuple, list)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


class _Record:
    """Shared serialization for the frozen records below."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: _to_plain(getattr(self, name))
            for name in self.__dataclass_fields__  # type: ignore[attr-defined]
        }


@dataclass(frozen=True)
class Transfer(_Record):
    """Signed ledger entry. Negative amounts are debits."""
    account_id: str
    amount: int


@dataclass(frozen=True)
class TokenTransfer(_Record):
    """Signed token ledger entry."""
    token_id: str
    account_id: str
    amount: int


@dataclass(frozen=True)
class TransactionReceipt(_Record):
    """Transaction receipt with status and created entity ids."""
    status: ResponseCode
    account_id: Optional[str] = None
    contract_id: Optional[str] = None
    topic_id: Optional[str] = None
    token_id: Optional[str] = None
    serial_numbers: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ContractLog(_Record):
    contract_id: str
    data: str
    topics: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContractFunctionResult(_Record):
    """EVM execution result attached to contract call/create transactions."""
    contract_id: str
    result: str
    gas_used: int
    gas: int
    amount: int = 0
    error_message: Optional[str] = None
    logs: Tuple[ContractLog, ...] = ()


@dataclass(frozen=True)
class EventTransaction(_Record):
    """A transaction record inside a block."""
    transaction_id: str
    type: TransactionType
    payer_account_id: str
    receipt: TransactionReceipt
    fee: int
    consensus_timestamp: str
    valid_start_timestamp: str
    valid_duration_seconds: int = 120
    node_account_id: Optional[str] = None
    transfers: Tuple[Transfer, ...] = ()
    token_transfers: Tuple[TokenTransfer, ...] = ()
    contract_result: Optional[ContractFunctionResult] = None
    transaction_hash: Optional[str] = None
    memo: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.receipt.status == ResponseCode.SUCCESS


@dataclass(frozen=True)
class StateChange(_Record):
    """Before/after mutation of an entity's tracked value.

    Values are stringified so numeric, hash and boolean state share one shape.
    ``transaction_id`` is a correlation id only.
    """
    entity_id: str
    change_type: StateChangeType
    previous_value: str
    new_value: str
    transaction_id: str
    consensus_timestamp: str


@dataclass(frozen=True)
class SystemEvent(_Record):
    event_type: SystemEventType
    timestamp: str
    description: Optional[str] = None


ItemData = Union[EventTransaction, StateChange, SystemEvent]

_ITEM_PAYLOADS = {
    ItemKind.TRANSACTION: EventTransaction,
    ItemKind.STATE_CHANGE: StateChange,
    ItemKind.SYSTEM_EVENT: SystemEvent,
}


@dataclass(frozen=True)
class BlockItem(_Record):
    """One entry of a block, tagged by ``kind``."""
    kind: ItemKind
    data: ItemData

    def __post_init__(self):
        expected = _ITEM_PAYLOADS[ItemKind(self.kind)]
        if not isinstance(self.data, expected):
            raise ValueError(
                f"Block item of kind {ItemKind(self.kind).value!r} requires "
                f"{expected.__name__}, got {type(self.data).__name__}"
            )

    @classmethod
    def transaction(cls, tx: EventTransaction) -> "BlockItem":
        return cls(kind=ItemKind.TRANSACTION, data=tx)

    @classmethod
    def state_change(cls, change: StateChange) -> "BlockItem":
        return cls(kind=ItemKind.STATE_CHANGE, data=change)

    @classmethod
    def system_event(cls, event: SystemEvent) -> "BlockItem":
        return cls(kind=ItemKind.SYSTEM_EVENT, data=event)


@dataclass(frozen=True)
class BlockHeader(_Record):
    """Block metadata."""
    number: int
    hash: str
    previous_hash: str
    timestamp: str
    item_count: int
    software_version: Optional[str] = None
    hash_algorithm: str = HASH_ALGORITHM


@dataclass(frozen=True)
class BlockProof(_Record):
    """Integrity artifact for a block.

    Structurally present only; the signature is random bytes.
    """
    block_number: int
    block_hash: str
    signature: str
    verified: bool
    signature_algorithm: Optional[str] = None


@dataclass(frozen=True)
class Block(_Record):
    """A complete block: header, ordered items and proof."""
    header: BlockHeader
    items: Tuple[BlockItem, ...]
    proof: Optional[BlockProof] = None
    gas_used: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0

    @property
    def number(self) -> int:
        return self.header.number

    @property
    def hash(self) -> str:
        return self.header.hash

    @property
    def transactions(self) -> Tuple[EventTransaction, ...]:
        return tuple(i.data for i in self.items if i.kind == ItemKind.TRANSACTION)

    @property
    def state_changes(self) -> Tuple[StateChange, ...]:
        return tuple(i.data for i in self.items if i.kind == ItemKind.STATE_CHANGE)


@dataclass(frozen=True)
class BlockSummary(_Record):
    item_count: int
    gas_used: int
    success_count: int
    fail_count: int


@dataclass(frozen=True)
class BlockStartEvent(_Record):
    header: BlockHeader
    type: StreamEventType = field(default=StreamEventType.BLOCK_START, init=False)


@dataclass(frozen=True)
class BlockItemEvent(_Record):
    item: BlockItem
    block_number: int
    type: StreamEventType = field(default=StreamEventType.BLOCK_ITEM, init=False)


@dataclass(frozen=True)
class BlockEndEvent(_Record):
    proof: Optional[BlockProof]
    block_number: int
    summary: BlockSummary
    type: StreamEventType = field(default=StreamEventType.BLOCK_END, init=False)


@dataclass(frozen=True)
class StreamErrorEvent(_Record):
    error: str
    recoverable: bool
    block_number: Optional[int] = None
    type: StreamEventType = field(default=StreamEventType.STREAM_ERROR, init=False)


@dataclass(frozen=True)
class StreamHeartbeatEvent(_Record):
    timestamp: str
    latest_block_number: int
    type: StreamEventType = field(default=StreamEventType.STREAM_HEARTBEAT, init=False)


BlockStreamEvent = Union[
    BlockStartEvent,
    BlockItemEvent,
    BlockEndEvent,
    StreamErrorEvent,
    StreamHeartbeatEvent,
]


@dataclass(frozen=True)
class TokenBalance(_Record):
    token_id: str
    balance: int
    decimals: int = 0


@dataclass(frozen=True)
class AccountBalance(_Record):
    """Account balance snapshot."""
    account_id: str
    balance_tinybars: int
    hbars: str
    tokens: Tuple[TokenBalance, ...] = ()
    at_block_number: Optional[int] = None
    timestamp: Optional[str] = None


@dataclass(frozen=True)
class StateProof(_Record):
    """Proof of an entity's state as of a block."""
    entity_id: str
    state_value: str
    at_block_number: int
    timestamp: str
    verified: bool
    merkle_path: Tuple[str, ...] = ()
    state_root_hash: Optional[str] = None
