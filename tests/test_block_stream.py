"""
Unit tests for MockBlockStream.

Blocks are produced with tick() so generation is deterministic in count;
the timer interval in the fixtures is long enough never to fire.
"""

import asyncio
import re

import pytest

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.models.blockchain import (
    CONTRACT_TRANSACTION_TYPES,
    ItemKind,
    StreamEventType,
)
from blocknode_sim.models.config import SimulatorConfig

TRANSACTION_ID = re.compile(r"^0\.0\.\d+@\d+\.\d{9}$")


class TestLifecycle:
    """Tests for start/stop/pause/resume."""

    @pytest.mark.asyncio
    async def test_start_produces_first_block_immediately(self, stream):
        """Test the first block exists as soon as start() returns."""
        assert stream.is_running()
        assert stream.block_count == 1

        first = stream.get_latest_block()
        assert first.number == 1
        assert first.header.previous_hash == ""
        assert stream.current_block_number == 2

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, stream):
        """Test starting a running stream is lifecycle misuse."""
        with pytest.raises(SimulatorError) as exc_info:
            await stream.start()

        assert exc_info.value.code == ErrorCode.STREAM_ALREADY_RUNNING

    def test_tick_before_start_raises(self, sim_config):
        """Test tick() requires a running stream."""
        block_stream = MockBlockStream(sim_config)

        with pytest.raises(SimulatorError) as exc_info:
            block_stream.tick()

        assert exc_info.value.code == ErrorCode.STREAM_NOT_STARTED
        assert block_stream.block_count == 0

    @pytest.mark.asyncio
    async def test_stop_emits_end_once(self, sim_config):
        """Test end fires on the running -> stopped transition only."""
        block_stream = MockBlockStream(sim_config)
        ends = []
        block_stream.on("end", lambda: ends.append(True))

        await block_stream.stop()
        assert ends == []

        await block_stream.start()
        await block_stream.stop()
        await block_stream.stop()

        assert ends == [True]
        assert not block_stream.is_running()

    @pytest.mark.asyncio
    async def test_tick_after_stop_raises(self, sim_config):
        """Test a stopped stream rejects ticks."""
        block_stream = MockBlockStream(sim_config)
        await block_stream.start()
        await block_stream.stop()

        with pytest.raises(SimulatorError) as exc_info:
            block_stream.tick()
        assert exc_info.value.code == ErrorCode.STREAM_NOT_STARTED

    @pytest.mark.asyncio
    async def test_pause_emits_heartbeats_instead_of_blocks(self, stream):
        """Test paused ticks produce heartbeats and no blocks."""
        heartbeats = []
        stream_events = []
        paused = []
        stream.on("heartbeat", heartbeats.append)
        stream.on("streamEvent", stream_events.append)
        stream.on("paused", lambda: paused.append(True))

        stream.pause()
        stream.pause()
        assert stream.is_paused()
        assert paused == [True]

        assert stream.tick() is None
        assert stream.block_count == 1
        assert heartbeats == [1]
        assert stream_events[0].type == StreamEventType.STREAM_HEARTBEAT
        assert stream_events[0].latest_block_number == 1

    @pytest.mark.asyncio
    async def test_resume_restarts_generation(self, stream):
        """Test resume() emits resumed and blocks flow again."""
        resumed = []
        stream.on("resumed", lambda: resumed.append(True))

        stream.resume()
        assert resumed == []

        stream.pause()
        stream.resume()
        assert resumed == [True]
        assert not stream.is_paused()

        block = stream.tick()
        assert block is not None
        assert block.number == 2

    def test_pause_when_idle_is_noop(self, sim_config):
        """Test pause() does nothing on a stream that is not running."""
        block_stream = MockBlockStream(sim_config)
        events = []
        block_stream.on("paused", lambda: events.append(True))

        block_stream.pause()

        assert events == []
        assert not block_stream.is_paused()

    @pytest.mark.asyncio
    async def test_timer_produces_blocks(self):
        """Test the interval timer generates blocks on its own."""
        block_stream = MockBlockStream(SimulatorConfig(block_interval_ms=5, transactions_per_block=1))
        produced = asyncio.Event()

        def on_block(block):
            if block.number >= 3:
                produced.set()

        block_stream.on("block", on_block)
        await block_stream.start()
        try:
            await asyncio.wait_for(produced.wait(), timeout=5)
        finally:
            await block_stream.stop()

        assert block_stream.block_count >= 3


class TestBlockGeneration:
    """Tests for generated block content."""

    @pytest.mark.asyncio
    async def test_hash_chain_and_numbering(self, stream):
        """Test each block links to its predecessor and numbers increase."""
        for _ in range(5):
            stream.tick()

        blocks = stream.get_blocks()
        assert len(blocks) == 6

        for previous, current in zip(blocks, blocks[1:]):
            assert current.header.previous_hash == previous.hash
            assert current.number == previous.number + 1

    @pytest.mark.asyncio
    async def test_transfers_sum_to_zero(self, stream):
        """Test every transaction's transfer list is balanced."""
        for _ in range(5):
            stream.tick()

        for block in stream.get_blocks():
            for tx in block.transactions:
                assert sum(t.amount for t in tx.transfers) == 0
                assert sum(t.amount for t in tx.token_transfers) == 0

    @pytest.mark.asyncio
    async def test_fee_is_paid_to_node(self, stream):
        """Test the node account receives exactly the fee."""
        tx = stream.get_latest_block().transactions[0]

        node_credit = [t for t in tx.transfers if t.account_id == tx.node_account_id]
        assert node_credit[-1].amount == tx.fee
        assert tx.transfers[0].account_id == tx.payer_account_id
        assert tx.transfers[0].amount < 0

    @pytest.mark.asyncio
    async def test_block_structure(self, stream, sim_config):
        """Test header, items, proof and summary counts agree."""
        block = stream.tick()

        assert block.header.item_count == len(block.items)
        assert len(block.transactions) == sim_config.transactions_per_block
        assert block.successful_transactions + block.failed_transactions == len(block.transactions)
        assert block.proof.block_number == block.number
        assert block.proof.block_hash == block.hash
        assert len(block.hash) == 96
        assert block.header.hash_algorithm == "SHA_384"

    @pytest.mark.asyncio
    async def test_transactions_precede_state_changes(self, stream):
        """Test item order: all transactions first, then state changes."""
        block = stream.tick()
        kinds = [item.kind for item in block.items]

        tx_count = len(block.transactions)
        assert kinds[:tx_count] == [ItemKind.TRANSACTION] * tx_count
        assert all(k == ItemKind.STATE_CHANGE for k in kinds[tx_count:])

    @pytest.mark.asyncio
    async def test_state_changes_only_for_successful_transactions(self, stream):
        """Test failed transactions leave no state change behind."""
        for _ in range(10):
            stream.tick()

        for block in stream.get_blocks():
            successful = {tx.transaction_id for tx in block.transactions if tx.succeeded}
            changed = [sc.transaction_id for sc in block.state_changes]
            assert set(changed) == successful
            assert len(changed) == len(successful)
            for change in block.state_changes:
                assert int(change.new_value) >= 0

    @pytest.mark.asyncio
    async def test_transaction_fields(self, stream):
        """Test ids, fees and type-specific payloads."""
        for _ in range(10):
            stream.tick()

        for block in stream.get_blocks():
            for tx in block.transactions:
                assert TRANSACTION_ID.match(tx.transaction_id)
                assert tx.transaction_id.startswith(tx.payer_account_id + "@")
                assert 50_000 <= tx.fee <= 5_000_000
                assert tx.node_account_id in {"0.0.3", "0.0.4", "0.0.5", "0.0.6", "0.0.7"}
                if tx.type in CONTRACT_TRANSACTION_TYPES:
                    assert tx.contract_result is not None
                else:
                    assert tx.contract_result is None


class TestEventOrdering:
    """Tests for the per-block event sequence."""

    @pytest.mark.asyncio
    async def test_events_for_one_block(self, stream):
        """Test start -> items (each followed by its typed event) -> end -> block."""
        sequence = []
        stream.on("streamEvent", lambda e: sequence.append(("streamEvent", e.type)))
        stream.on("transaction", lambda tx: sequence.append(("transaction", None)))
        stream.on("stateChange", lambda sc: sequence.append(("stateChange", None)))
        stream.on("block", lambda b: sequence.append(("block", None)))

        block = stream.tick()

        expected = [("streamEvent", StreamEventType.BLOCK_START)]
        for item in block.items:
            expected.append(("streamEvent", StreamEventType.BLOCK_ITEM))
            if item.kind == ItemKind.TRANSACTION:
                expected.append(("transaction", None))
            else:
                expected.append(("stateChange", None))
        expected.append(("streamEvent", StreamEventType.BLOCK_END))
        expected.append(("block", None))

        assert sequence == expected

    @pytest.mark.asyncio
    async def test_block_end_summary(self, stream):
        """Test the block-end event summarises the block."""
        ends = []
        stream.on("streamEvent",
                  lambda e: ends.append(e) if e.type == StreamEventType.BLOCK_END else None)

        block = stream.tick()

        assert len(ends) == 1
        summary = ends[0].summary
        assert ends[0].block_number == block.number
        assert summary.item_count == len(block.items)
        assert summary.success_count == block.successful_transactions
        assert summary.fail_count == block.failed_transactions
        assert summary.gas_used == block.gas_used


class TestFailureHandling:
    """Tests for injected failures and failing listeners."""

    @pytest.mark.asyncio
    async def test_injected_failure(self):
        """Test failure_rate=1 emits recoverable errors and no blocks."""
        block_stream = MockBlockStream(SimulatorConfig(block_interval_ms=60_000, failure_rate=1.0))
        errors = []
        stream_events = []
        block_stream.on("error", errors.append)
        block_stream.on("streamEvent", stream_events.append)

        await block_stream.start()
        try:
            assert block_stream.tick() is None
        finally:
            await block_stream.stop()

        assert block_stream.block_count == 0
        assert block_stream.current_block_number == 1
        assert len(errors) == 2
        assert all(e.code == ErrorCode.MOCK_DATA_ERROR for e in errors)
        assert stream_events[0].type == StreamEventType.STREAM_ERROR
        assert stream_events[0].recoverable is True
        assert stream_events[0].block_number == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_wedge_stream(self, stream):
        """Test a tick that raises degrades to an error event."""
        errors = []
        stream.on("error", errors.append)

        def explode(block):
            raise RuntimeError("listener failure")

        stream.on("block", explode)
        stream.tick()
        stream.off("block", explode)

        assert len(errors) == 1
        assert errors[0].code == ErrorCode.MOCK_DATA_ERROR
        assert "listener failure" in errors[0].message

        block = stream.tick()
        assert block is not None
        assert block.number == 3

    @pytest.mark.asyncio
    async def test_failing_error_listener_does_not_wedge_start(self):
        """Test a raising error listener leaves start() and the lifecycle usable."""
        block_stream = MockBlockStream(SimulatorConfig(block_interval_ms=60_000, failure_rate=1.0))

        def explode(error):
            raise RuntimeError("error listener failure")

        block_stream.on("error", explode)
        await block_stream.start()
        try:
            assert block_stream.is_running()
            assert block_stream.tick() is None
        finally:
            await block_stream.stop()

        block_stream.off("error", explode)
        assert not block_stream.is_running()
        await block_stream.start()
        assert block_stream.is_running()
        await block_stream.stop()


class TestSeek:
    """Tests for seek()."""

    @pytest.mark.asyncio
    async def test_seek_breaks_chain(self, stream):
        """Test the block after a seek has the requested number and no parent."""
        stream.seek(100)
        block = stream.tick()

        assert block.number == 100
        assert block.header.previous_hash == ""

        following = stream.tick()
        assert following.number == 101
        assert following.header.previous_hash == block.hash

    @pytest.mark.parametrize("value", [-1, True, "5", 2.0])
    def test_seek_rejects_invalid_numbers(self, sim_config, value):
        """Test seek() only accepts non-negative integers."""
        block_stream = MockBlockStream(sim_config)

        with pytest.raises(SimulatorError) as exc_info:
            block_stream.seek(value)

        assert exc_info.value.code == ErrorCode.INVALID_BLOCK_NUMBER
        assert block_stream.current_block_number == 1

    @pytest.mark.asyncio
    async def test_first_block_with_number_wins(self, stream):
        """Test lookups keep the first block generated with a number."""
        original = stream.get_block(1)
        stream.seek(1)
        duplicate = stream.tick()

        assert duplicate.number == 1
        assert duplicate is not original
        assert stream.get_block(1) is original
        assert stream.get_latest_block() is duplicate
