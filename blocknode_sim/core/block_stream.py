"""Timer-driven mock block stream."""

import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import structlog

from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.events import TypedEventEmitter
from blocknode_sim.core.random_data import (
    chance,
    make_transaction_id,
    random_account_id,
    random_entity_id,
    random_hex,
    random_int,
    random_node_account_id,
    weighted_pick,
)
from blocknode_sim.models.blockchain import (
    CONTRACT_TRANSACTION_TYPES,
    Block,
    BlockEndEvent,
    BlockHeader,
    BlockItem,
    BlockItemEvent,
    BlockProof,
    BlockStartEvent,
    BlockSummary,
    ContractFunctionResult,
    EventTransaction,
    ItemKind,
    ResponseCode,
    StateChange,
    StateChangeType,
    StreamErrorEvent,
    StreamHeartbeatEvent,
    TokenTransfer,
    TransactionReceipt,
    TransactionType,
    Transfer,
)
from blocknode_sim.models.config import SimulatorConfig
from blocknode_sim.utils.time import get_current_utc, offset_ms, to_iso8601

logger = structlog.get_logger(__name__)

SOFTWARE_VERSION = "0.74.0"
SUCCESS_RATE = 0.95
TX_SPACING_MS = 50
VALID_START_LEAD_MS = 5000

# Transfer-like types are three times as common as the rest.
TRANSACTION_TYPE_WEIGHTS = {
    TransactionType.CRYPTO_TRANSFER: 3,
    TransactionType.TOKEN_TRANSFER: 3,
    TransactionType.CONTRACT_CALL: 1,
    TransactionType.CONTRACT_CREATE: 1,
    TransactionType.CONSENSUS_SUBMIT_MESSAGE: 1,
    TransactionType.TOKEN_MINT: 1,
    TransactionType.CRYPTO_CREATE: 1,
}

STATE_CHANGE_TYPE_WEIGHTS = {
    StateChangeType.BALANCE: 2,
    StateChangeType.NONCE: 1,
    StateChangeType.TOKEN_BALANCE: 1,
    StateChangeType.CONTRACT_STORAGE: 1,
}


class MockBlockStream(TypedEventEmitter):
    """
    Generates synthetic blocks on a repeating timer.

    Lifecycle: idle -> running -> (paused <-> running) -> stopped. Each tick
    either injects a recoverable failure (with probability ``failure_rate``)
    or assembles one block, appends it to the in-memory log and emits:

    1. ``streamEvent`` BLOCK_START
    2. per item: ``streamEvent`` BLOCK_ITEM, then ``transaction`` or ``stateChange``
    3. ``streamEvent`` BLOCK_END
    4. ``block``

    While paused, ticks emit ``heartbeat`` instead of producing blocks.
    """

    EVENTS = frozenset({
        "block",
        "transaction",
        "stateChange",
        "streamEvent",
        "heartbeat",
        "error",
        "paused",
        "resumed",
        "end",
    })

    def __init__(self, config: Optional[SimulatorConfig] = None, log=None):
        super().__init__()
        self.config = config or SimulatorConfig()
        self.logger = (log or logger).bind(component="mock_block_stream")

        self._blocks: List[Block] = []
        self._by_number: Dict[int, Block] = {}
        self._current_block_number = self.config.start_block_number
        self._running = False
        self._paused = False
        self._chain_broken = False
        self._timer: Optional[asyncio.Task] = None

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """
        Produce the first block immediately, then one per interval.

        Raises:
            SimulatorError: STREAM_ALREADY_RUNNING if already started.
        """
        if self._running:
            raise SimulatorError(
                ErrorCode.STREAM_ALREADY_RUNNING,
                "MockBlockStream is already running. Call stop() before starting again.",
            )

        self._running = True
        self._paused = False

        self.logger.info("Mock block stream started",
                         block_interval_ms=self.config.block_interval_ms,
                         transactions_per_block=self.config.transactions_per_block,
                         failure_rate=self.config.failure_rate,
                         start_block_number=self._current_block_number)

        self._generate_and_emit_block()

        # A listener may have stopped the stream during the first block.
        if self._running:
            self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def stop(self) -> None:
        """Cancel the timer and emit ``end``. Idempotent."""
        timer, self._timer = self._timer, None
        was_running = self._running
        self._running = False
        self._paused = False

        if timer is not None:
            timer.cancel()
            if timer is not asyncio.current_task():
                with suppress(asyncio.CancelledError):
                    await timer

        if not was_running:
            return

        self.emit("end")
        self.logger.info("Mock block stream stopped", blocks_generated=len(self._blocks))

    def pause(self) -> None:
        """Pause block generation. Heartbeats continue while paused."""
        if not self._running or self._paused:
            return
        self._paused = True
        self.emit("paused")
        self.logger.debug("Mock block stream paused")

    def resume(self) -> None:
        """Resume block generation after a pause."""
        if not self._running or not self._paused:
            return
        self._paused = False
        self.emit("resumed")
        self.logger.debug("Mock block stream resumed")

    def seek(self, block_number: int) -> None:
        """
        Set the number of the next block to produce.

        Past blocks are not replayed, and the next block starts a new chain
        segment with an empty ``previous_hash``.

        Raises:
            SimulatorError: INVALID_BLOCK_NUMBER for negative or non-integer input.
        """
        if isinstance(block_number, bool) or not isinstance(block_number, int) or block_number < 0:
            raise SimulatorError(
                ErrorCode.INVALID_BLOCK_NUMBER,
                f"Block number must be a non-negative integer, got {block_number!r}",
                {"block_number": block_number},
            )
        self._current_block_number = block_number
        self._chain_broken = True
        self.logger.info("Mock block stream seeked", block_number=block_number)

    def tick(self) -> Optional[Block]:
        """
        Run one timer tick now.

        Returns the generated block, or None when paused or on an injected failure.

        Raises:
            SimulatorError: STREAM_NOT_STARTED if the stream is not running.
        """
        if not self._running:
            raise SimulatorError(
                ErrorCode.STREAM_NOT_STARTED,
                "MockBlockStream is not running. Call start() first.",
            )
        if self._paused:
            self._emit_heartbeat()
            return None
        return self._generate_and_emit_block()

    async def _run_timer(self) -> None:
        interval = self.config.block_interval_seconds
        while self._running:
            await asyncio.sleep(interval)
            if not self._running:
                break
            try:
                self.tick()
            except Exception as e:
                # A failing error listener must not kill the timer.
                self.logger.error("Timer tick failed", error=str(e))

    # ==================== Accessors ====================

    def is_running(self) -> bool:
        return self._running

    def is_paused(self) -> bool:
        return self._paused

    @property
    def current_block_number(self) -> int:
        """Number the next generated block will carry."""
        return self._current_block_number

    @property
    def block_count(self) -> int:
        return len(self._blocks)

    def get_blocks(self) -> Tuple[Block, ...]:
        return tuple(self._blocks)

    def blocks_since(self, offset: int) -> Sequence[Block]:
        """Blocks appended to the log at position ``offset`` or later."""
        return self._blocks[offset:]

    def get_block(self, block_number: int) -> Optional[Block]:
        """First block generated with the given number, if any."""
        return self._by_number.get(block_number)

    def get_latest_block(self) -> Optional[Block]:
        return self._blocks[-1] if self._blocks else None

    # ==================== Block generation ====================

    def _emit_heartbeat(self) -> None:
        latest = self._blocks[-1].number if self._blocks else self._current_block_number - 1
        self.emit("heartbeat", latest)
        self.emit("streamEvent", StreamHeartbeatEvent(
            timestamp=to_iso8601(get_current_utc()),
            latest_block_number=latest,
        ))

    def _generate_and_emit_block(self) -> Optional[Block]:
        try:
            if chance(self.config.failure_rate):
                self._emit_injected_failure()
                return None

            block = self._assemble_block(get_current_utc())

            self._blocks.append(block)
            self._by_number.setdefault(block.number, block)
            self._current_block_number = block.number + 1
            self._chain_broken = False

            self._emit_block_events(block)

            self.logger.debug("Block generated",
                              block_number=block.number,
                              transactions=len(block.transactions),
                              state_changes=len(block.state_changes))
            return block

        except Exception as e:
            error = e if isinstance(e, SimulatorError) else SimulatorError(
                ErrorCode.MOCK_DATA_ERROR,
                f"Error generating block: {e}",
                {"block_number": self._current_block_number},
            )
            self.logger.error("Error generating block",
                              block_number=self._current_block_number,
                              error=str(e))
            self._emit_error(error)
            return None

    def _emit_injected_failure(self) -> None:
        message = "Simulated stream error (failure injection)"
        block_number = self._current_block_number
        self.logger.debug("Injected stream failure", block_number=block_number)
        self.emit("streamEvent", StreamErrorEvent(
            error=message,
            recoverable=True,
            block_number=block_number,
        ))
        self._emit_error(SimulatorError(
            ErrorCode.MOCK_DATA_ERROR,
            message,
            {"block_number": block_number, "recoverable": True},
        ))

    def _emit_error(self, error: SimulatorError) -> None:
        try:
            self.emit("error", error)
        except Exception as e:
            self.logger.error("Error listener raised",
                              error_code=error.code.value,
                              listener_error=str(e))

    def _emit_block_events(self, block: Block) -> None:
        number = block.number

        self.emit("streamEvent", BlockStartEvent(header=block.header))

        for item in block.items:
            self.emit("streamEvent", BlockItemEvent(item=item, block_number=number))
            if item.kind == ItemKind.TRANSACTION:
                self.emit("transaction", item.data)
            elif item.kind == ItemKind.STATE_CHANGE:
                self.emit("stateChange", item.data)

        self.emit("streamEvent", BlockEndEvent(
            proof=block.proof,
            block_number=number,
            summary=BlockSummary(
                item_count=len(block.items),
                gas_used=block.gas_used,
                success_count=block.successful_transactions,
                fail_count=block.failed_transactions,
            ),
        ))

        self.emit("block", block)

    def _assemble_block(self, now: datetime) -> Block:
        number = self._current_block_number

        transactions = self._generate_transactions(now)
        state_changes = self._generate_state_changes(transactions)

        items = tuple(
            [BlockItem.transaction(tx) for tx in transactions]
            + [BlockItem.state_change(sc) for sc in state_changes]
        )

        if self._chain_broken or not self._blocks:
            previous_hash = ""
        else:
            previous_hash = self._blocks[-1].header.hash

        header = BlockHeader(
            number=number,
            hash=random_hex(48),
            previous_hash=previous_hash,
            timestamp=to_iso8601(now),
            item_count=len(items),
            software_version=SOFTWARE_VERSION,
        )

        proof = BlockProof(
            block_number=number,
            block_hash=header.hash,
            signature=random_hex(64),
            verified=True,
        )

        success_count = sum(1 for tx in transactions if tx.succeeded)
        gas_used = sum(tx.contract_result.gas_used for tx in transactions if tx.contract_result)

        return Block(
            header=header,
            items=items,
            proof=proof,
            gas_used=gas_used,
            successful_transactions=success_count,
            failed_transactions=len(transactions) - success_count,
        )

    def _generate_transactions(self, block_time: datetime) -> List[EventTransaction]:
        return [
            self._generate_transaction(offset_ms(block_time, i * TX_SPACING_MS))
            for i in range(self.config.transactions_per_block)
        ]

    def _generate_transaction(self, tx_time: datetime) -> EventTransaction:
        payer = random_account_id()
        tx_type = weighted_pick(TRANSACTION_TYPE_WEIGHTS)
        succeeded = chance(SUCCESS_RATE)
        fee = random_int(50_000, 5_000_000)
        node = random_node_account_id()

        receipt = TransactionReceipt(
            status=ResponseCode.SUCCESS if succeeded else ResponseCode.INVALID_TRANSACTION,
            account_id=random_account_id() if succeeded and tx_type == TransactionType.CRYPTO_CREATE else None,
            serial_numbers=(random_int(1, 10_000),) if succeeded and tx_type == TransactionType.TOKEN_MINT else (),
        )

        contract_result = None
        if tx_type in CONTRACT_TRANSACTION_TYPES:
            contract_result = ContractFunctionResult(
                contract_id=random_entity_id(),
                result=f"0x{random_hex(32)}",
                gas_used=random_int(21_000, 800_000),
                gas=1_000_000,
            )

        return EventTransaction(
            transaction_id=make_transaction_id(payer, tx_time),
            type=tx_type,
            payer_account_id=payer,
            receipt=receipt,
            fee=fee,
            consensus_timestamp=to_iso8601(tx_time),
            valid_start_timestamp=to_iso8601(offset_ms(tx_time, -VALID_START_LEAD_MS)),
            valid_duration_seconds=120,
            node_account_id=node,
            transfers=self._generate_transfers(payer, node, fee),
            token_transfers=self._generate_token_transfers() if tx_type == TransactionType.TOKEN_TRANSFER else (),
            contract_result=contract_result,
            transaction_hash=random_hex(48),
        )

    @staticmethod
    def _generate_transfers(payer: str, node: str, fee: int) -> Tuple[Transfer, ...]:
        """Payer debit balanced by the recipient credit and the node fee."""
        amount = random_int(1_000_000, 100_000_000)
        return (
            Transfer(account_id=payer, amount=-(amount + fee)),
            Transfer(account_id=random_account_id(), amount=amount),
            Transfer(account_id=node, amount=fee),
        )

    @staticmethod
    def _generate_token_transfers() -> Tuple[TokenTransfer, ...]:
        token_id = random_entity_id()
        amount = random_int(1, 10_000)
        return (
            TokenTransfer(token_id=token_id, account_id=random_account_id(), amount=-amount),
            TokenTransfer(token_id=token_id, account_id=random_account_id(), amount=amount),
        )

    @staticmethod
    def _generate_state_changes(transactions: Sequence[EventTransaction]) -> List[StateChange]:
        changes = []
        for tx in transactions:
            if not tx.succeeded:
                continue
            previous = random_int(0, 1_000_000_000)
            new = max(0, previous + random_int(-100_000_000, 100_000_000))
            changes.append(StateChange(
                entity_id=tx.payer_account_id,
                change_type=weighted_pick(STATE_CHANGE_TYPE_WEIGHTS),
                previous_value=str(previous),
                new_value=str(new),
                transaction_id=tx.transaction_id,
                consensus_timestamp=tx.consensus_timestamp,
            ))
        return changes
