"""Unit tests for records, results, errors and the mirror node schemas."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.random_data import make_transaction_id, weighted_pick
from blocknode_sim.core.result import Err, Ok, err, ok
from blocknode_sim.models.blockchain import (
    BlockItem,
    BlockStartEvent,
    BlockHeader,
    EventTransaction,
    ItemKind,
    ResponseCode,
    StateChange,
    StateChangeType,
    StreamEventType,
    TransactionReceipt,
    TransactionType,
    Transfer,
)
from blocknode_sim.models.mirror import MirrorAccount, MirrorBlock, MirrorTransaction
from blocknode_sim.utils.time import epoch_millis, mirror_timestamp_to_iso, to_iso8601


@pytest.fixture
def transaction():
    return EventTransaction(
        transaction_id="0.0.1234@1709000000.000000000",
        type=TransactionType.CRYPTO_TRANSFER,
        payer_account_id="0.0.1234",
        receipt=TransactionReceipt(status=ResponseCode.SUCCESS),
        fee=100_000,
        consensus_timestamp="2024-02-27T02:13:20.000Z",
        valid_start_timestamp="2024-02-27T02:13:15.000Z",
        node_account_id="0.0.3",
        transfers=(
            Transfer(account_id="0.0.1234", amount=-1_100_000),
            Transfer(account_id="0.0.5678", amount=1_000_000),
            Transfer(account_id="0.0.3", amount=100_000),
        ),
    )


class TestRecords:
    """Tests for the frozen block records."""

    def test_block_item_kind_must_match_payload(self, transaction):
        """Test a block item rejects a payload of the wrong kind."""
        with pytest.raises(ValueError):
            BlockItem(kind=ItemKind.STATE_CHANGE, data=transaction)

        item = BlockItem.transaction(transaction)
        assert item.kind == ItemKind.TRANSACTION

    def test_to_dict_is_json_ready(self, transaction):
        """Test enums become values and tuples become lists."""
        data = transaction.to_dict()

        assert data["type"] == "CryptoTransfer"
        assert data["receipt"]["status"] == "SUCCESS"
        assert data["transfers"][1] == {"account_id": "0.0.5678", "amount": 1_000_000}
        json.dumps(data)

    def test_succeeded(self, transaction):
        """Test success is derived from the receipt status."""
        assert transaction.succeeded

    def test_records_are_frozen(self, transaction):
        """Test records cannot be mutated after creation."""
        with pytest.raises(AttributeError):
            transaction.fee = 0

    def test_stream_event_type_is_fixed(self):
        """Test stream events carry their discriminator."""
        header = BlockHeader(number=1, hash="aa", previous_hash="", timestamp="t", item_count=0)
        event = BlockStartEvent(header=header)

        assert event.type == StreamEventType.BLOCK_START
        assert event.to_dict()["type"] == "BLOCK_START"

    def test_state_change_item(self):
        """Test state change items round out the tagged union."""
        change = StateChange(
            entity_id="0.0.1234",
            change_type=StateChangeType.BALANCE,
            previous_value="10",
            new_value="5",
            transaction_id="0.0.1234@1709000000.000000000",
            consensus_timestamp="2024-02-27T02:13:20.000Z",
        )
        item = BlockItem.state_change(change)
        assert item.to_dict()["kind"] == "stateChange"


class TestResultAndErrors:
    """Tests for Ok/Err and SimulatorError."""

    def test_ok(self):
        result = ok(5)
        assert isinstance(result, Ok)
        assert result.ok
        assert result.unwrap() == 5

    def test_err_unwrap_raises(self):
        """Test unwrapping a failure raises the carried error."""
        error = SimulatorError(ErrorCode.NOT_FOUND, "missing", {"id": 1})
        result = err(error)

        assert isinstance(result, Err)
        assert not result.ok
        with pytest.raises(SimulatorError) as exc_info:
            result.unwrap()
        assert exc_info.value is error

    def test_error_to_dict(self):
        """Test errors serialise code, name, message and details."""
        error = SimulatorError(ErrorCode.INVALID_ACCOUNT_ID, "bad id", {"account_id": "x"})

        assert error.to_dict() == {
            "code": "SIM_2002",
            "name": "INVALID_ACCOUNT_ID",
            "message": "bad id",
            "details": {"account_id": "x"},
        }
        assert error.is_invalid_input
        assert str(error) == "bad id"

    def test_not_found_is_not_invalid_input(self):
        assert not SimulatorError(ErrorCode.NOT_FOUND, "missing").is_invalid_input


class TestMirrorSchemas:
    """Tests for strict mirror node schema validation."""

    def test_string_integer_rejected(self):
        """Test integers are not coerced from strings."""
        with pytest.raises(ValidationError):
            MirrorBlock.model_validate({
                "number": "1",
                "hash": "aa",
                "previous_hash": "bb",
                "timestamp": {"from": "1.0", "to": "2.0"},
                "count": 0,
            })

    def test_missing_field_rejected(self):
        """Test required fields are enforced."""
        with pytest.raises(ValidationError):
            MirrorAccount.model_validate({"account": "0.0.1"})

    def test_negative_fee_rejected(self):
        """Test charged fees cannot be negative."""
        with pytest.raises(ValidationError):
            MirrorTransaction.model_validate({
                "transaction_id": "0.0.1-1-0",
                "name": "CRYPTOTRANSFER",
                "result": "SUCCESS",
                "charged_tx_fee": -1,
                "consensus_timestamp": "1.000000000",
            })

    def test_transaction_defaults(self):
        """Test optional lists default to empty."""
        tx = MirrorTransaction.model_validate({
            "transaction_id": "0.0.1-1-0",
            "name": "CRYPTOTRANSFER",
            "result": "SUCCESS",
            "charged_tx_fee": 1,
            "consensus_timestamp": "1.000000000",
        })
        assert tx.transfers == []
        assert tx.token_transfers == []
        assert tx.node is None


class TestHelpers:
    """Tests for time and id helpers."""

    def test_to_iso8601(self):
        """Test millisecond precision with a Z suffix."""
        dt = datetime(2024, 2, 27, 2, 13, 20, 123456, tzinfo=timezone.utc)
        assert to_iso8601(dt) == "2024-02-27T02:13:20.123Z"

    def test_epoch_millis(self):
        dt = datetime(2024, 2, 27, 2, 13, 20, 123999, tzinfo=timezone.utc)
        assert epoch_millis(dt) == 1_709_000_000_123

    def test_mirror_timestamp_to_iso(self):
        assert mirror_timestamp_to_iso("1709000000.500000000") == "2024-02-27T02:13:20.500Z"
        assert mirror_timestamp_to_iso("1709000000") == "2024-02-27T02:13:20.000Z"

    def test_make_transaction_id(self):
        """Test ids are <payer>@<seconds>.<nanos> at millisecond granularity."""
        dt = datetime(2024, 2, 27, 2, 13, 20, 123999, tzinfo=timezone.utc)
        assert make_transaction_id("0.0.42", dt) == "0.0.42@1709000000.123000000"

    def test_same_millisecond_ids_collide(self):
        """Test the known limitation: one payer, one millisecond, one id."""
        a = datetime(2024, 2, 27, 2, 13, 20, 123100, tzinfo=timezone.utc)
        b = datetime(2024, 2, 27, 2, 13, 20, 123900, tzinfo=timezone.utc)
        assert make_transaction_id("0.0.42", a) == make_transaction_id("0.0.42", b)

    def test_weighted_pick_ignores_zero_weights(self):
        for _ in range(50):
            assert weighted_pick({"a": 1, "b": 0}) == "a"
