"""Refresh-on-read query index over the mock block stream."""

import re
from decimal import Decimal
from typing import Any, Dict, List, Optional
import structlog

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.random_data import random_hex, random_int
from blocknode_sim.core.result import Result, err, ok
from blocknode_sim.models.blockchain import (
    TINYBARS_PER_HBAR,
    AccountBalance,
    Block,
    EventTransaction,
    ItemKind,
    StateChange,
    StateProof,
)
from blocknode_sim.utils.time import get_current_utc, to_iso8601

logger = structlog.get_logger(__name__)

ACCOUNT_ID_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
TRANSACTION_ID_PATTERN = re.compile(r"^\d+\.\d+\.\d+@\d+\.\d+$")

# Well-known system accounts start from fixed balances (tinybars).
DEFAULT_BALANCES = {
    "0.0.2": 5_000_000_000_000,   # Treasury
    "0.0.3": 100_000_000_000,     # Node
    "0.0.4": 100_000_000_000,     # Node
    "0.0.5": 100_000_000_000,     # Node
    "0.0.98": 500_000_000_000,    # Fee collector
    "0.0.100": 50_000_000_000,    # Common test account
    "0.0.800": 200_000_000_000,   # Staking rewards
}

SEED_BALANCE_RANGE = (1_000_000_000, 100_000_000_000)


def tinybars_to_hbars(tinybars: int) -> str:
    """Format tinybars as an HBAR decimal string with 8 places."""
    return f"{Decimal(tinybars) / Decimal(TINYBARS_PER_HBAR):.8f}"


def validate_block_number(block_number: Any) -> Optional[SimulatorError]:
    if isinstance(block_number, bool) or not isinstance(block_number, int) or block_number < 0:
        return SimulatorError(
            ErrorCode.INVALID_BLOCK_NUMBER,
            f"Block number must be a non-negative integer, got {block_number!r}",
            {"block_number": block_number},
        )
    return None


def validate_account_id(account_id: Any) -> Optional[SimulatorError]:
    if not isinstance(account_id, str) or not ACCOUNT_ID_PATTERN.match(account_id):
        return SimulatorError(
            ErrorCode.INVALID_ACCOUNT_ID,
            f"Invalid account ID format {account_id!r}. Expected: 0.0.12345",
            {"account_id": account_id},
        )
    return None


def validate_transaction_id(transaction_id: Any) -> Optional[SimulatorError]:
    if not isinstance(transaction_id, str) or not TRANSACTION_ID_PATTERN.match(transaction_id):
        return SimulatorError(
            ErrorCode.INVALID_TRANSACTION_ID,
            f"Invalid transaction ID format {transaction_id!r}. "
            f"Expected: 0.0.12345@1709000000.000000000",
            {"transaction_id": transaction_id},
        )
    return None


class QueryIndex:
    """
    Point and range queries over a MockBlockStream's block log.

    Indexes are folded lazily: before every read, blocks appended to the log
    since the previous read are folded into the transaction, balance and
    state-change maps. The stream is only ever read, never mutated.
    """

    def __init__(self, stream: MockBlockStream, log=None):
        self.stream = stream
        self.logger = (log or logger).bind(component="query_index")

        self._tx_index: Dict[str, EventTransaction] = {}
        self._balance_index: Dict[str, int] = dict(DEFAULT_BALANCES)
        self._state_index: Dict[str, List[StateChange]] = {}
        self._block_index: Dict[int, Block] = {}

        self._last_indexed_block = -1
        self._log_offset = 0

    @property
    def last_indexed_block(self) -> int:
        """Highest block number folded so far (-1 before the first block)."""
        return self._last_indexed_block

    # ==================== Point queries ====================

    def get_block(self, block_number: int) -> Result[Block]:
        """Retrieve a block by number."""
        invalid = validate_block_number(block_number)
        if invalid:
            return err(invalid)

        self.refresh()

        block = self._block_index.get(block_number)
        if block is None:
            available = self.stream.block_count
            return err(SimulatorError(
                ErrorCode.NOT_FOUND,
                f"Block #{block_number} not found. {available} blocks available.",
                {"block_number": block_number, "available_blocks": available},
            ))

        self.logger.debug("Block queried", block_number=block_number)
        return ok(block)

    def get_transaction(self, transaction_id: str) -> Result[EventTransaction]:
        """Retrieve a transaction by id."""
        invalid = validate_transaction_id(transaction_id)
        if invalid:
            return err(invalid)

        self.refresh()

        tx = self._tx_index.get(transaction_id)
        if tx is None:
            indexed = len(self._tx_index)
            return err(SimulatorError(
                ErrorCode.NOT_FOUND,
                f"Transaction {transaction_id!r} not found. {indexed} transactions indexed.",
                {"transaction_id": transaction_id, "total_indexed": indexed},
            ))

        self.logger.debug("Transaction queried", transaction_id=transaction_id)
        return ok(tx)

    def get_account_balance(self, account_id: str) -> Result[AccountBalance]:
        """
        Balance folded from transfer lists, clamped at zero.

        Accounts never seen in a transfer get a random seed balance on first
        lookup; the seed is remembered.
        """
        invalid = validate_account_id(account_id)
        if invalid:
            return err(invalid)

        self.refresh()

        tinybars = self._balance_index.get(account_id)
        if tinybars is None:
            tinybars = self._seed_balance(account_id)

        latest = self.stream.get_latest_block()
        displayed = max(0, tinybars)
        balance = AccountBalance(
            account_id=account_id,
            balance_tinybars=displayed,
            hbars=tinybars_to_hbars(displayed),
            at_block_number=latest.number if latest else None,
            timestamp=latest.header.timestamp if latest else None,
        )

        self.logger.debug("Account balance queried", account_id=account_id, hbars=balance.hbars)
        return ok(balance)

    def get_state_proof(self, entity_id: str) -> Result[StateProof]:
        """
        State proof anchored at the latest block.

        The proven value is the entity's most recent state change, or its
        balance when no change was recorded.
        """
        invalid = validate_account_id(entity_id)
        if invalid:
            return err(invalid)

        self.refresh()

        changes = self._state_index.get(entity_id)
        if changes:
            state_value = changes[-1].new_value
        else:
            tinybars = self._balance_index.get(entity_id)
            if tinybars is None:
                tinybars = self._seed_balance(entity_id)
            state_value = str(max(0, tinybars))

        latest = self.stream.get_latest_block()
        proof = StateProof(
            entity_id=entity_id,
            state_value=state_value,
            at_block_number=latest.number if latest else 0,
            timestamp=latest.header.timestamp if latest else to_iso8601(get_current_utc()),
            verified=True,
            merkle_path=(random_hex(48), random_hex(48), random_hex(48)),
            state_root_hash=latest.header.hash if latest else random_hex(48),
        )

        self.logger.debug("State proof queried", entity_id=entity_id, at_block=proof.at_block_number)
        return ok(proof)

    # ==================== Listing ====================

    def get_latest_block(self) -> Result[Block]:
        """Most recently generated block."""
        self.refresh()

        latest = self.stream.get_latest_block()
        if latest is None:
            return err(SimulatorError(
                ErrorCode.NOT_FOUND,
                "No blocks available. Is the MockBlockStream running?",
                {"available_blocks": 0},
            ))
        return ok(latest)

    def get_block_range(self, start: int, end: int) -> Result[List[Block]]:
        """Blocks with ``start <= number <= end`` in log order."""
        for value in (start, end):
            invalid = validate_block_number(value)
            if invalid:
                return err(invalid)
        if end < start:
            return err(SimulatorError(
                ErrorCode.INVALID_BLOCK_NUMBER,
                f"Invalid range: from={start}, to={end}.",
                {"from": start, "to": end},
            ))

        self.refresh()

        blocks = [b for b in self.stream.get_blocks() if start <= b.number <= end]
        return ok(blocks)

    def get_transactions_by_account(self, payer_account_id: str) -> Result[List[EventTransaction]]:
        """All indexed transactions paid for by the given account."""
        invalid = validate_account_id(payer_account_id)
        if invalid:
            return err(invalid)

        self.refresh()

        return ok([
            tx for tx in self._tx_index.values()
            if tx.payer_account_id == payer_account_id
        ])

    def get_stats(self) -> Dict[str, int]:
        """Summary statistics of the indexed data."""
        self.refresh()

        latest = self.stream.get_latest_block()
        return {
            "total_blocks": self.stream.block_count,
            "total_transactions": len(self._tx_index),
            "total_accounts": len(self._balance_index),
            "latest_block_number": latest.number if latest else -1,
            "last_indexed_block": self._last_indexed_block,
        }

    # ==================== Indexing ====================

    def refresh(self) -> int:
        """
        Fold blocks appended since the previous refresh.

        Returns the number of blocks folded. Each block in the log is folded
        exactly once; the watermark only moves forward.
        """
        new_blocks = self.stream.blocks_since(self._log_offset)
        if not new_blocks:
            return 0

        for block in new_blocks:
            self._fold_block(block)
            self._last_indexed_block = max(self._last_indexed_block, block.number)

        self._log_offset += len(new_blocks)

        self.logger.debug("Indexes refreshed",
                          blocks_folded=len(new_blocks),
                          last_indexed_block=self._last_indexed_block)
        return len(new_blocks)

    def _fold_block(self, block: Block) -> None:
        self._block_index.setdefault(block.number, block)

        for item in block.items:
            if item.kind == ItemKind.TRANSACTION:
                tx = item.data
                self._tx_index[tx.transaction_id] = tx
                for transfer in tx.transfers:
                    current = self._balance_index.get(transfer.account_id, 0)
                    self._balance_index[transfer.account_id] = current + transfer.amount

            elif item.kind == ItemKind.STATE_CHANGE:
                change = item.data
                self._state_index.setdefault(change.entity_id, []).append(change)

    def _seed_balance(self, account_id: str) -> int:
        balance = random_int(*SEED_BALANCE_RANGE)
        self._balance_index[account_id] = balance
        return balance
