"""Pytest configuration and fixtures for block node simulator tests."""

import httpx
import pytest
import pytest_asyncio

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.query_index import QueryIndex
from blocknode_sim.models.config import SimulatorConfig


# ============================================================================
# SIMULATOR FIXTURES
# ============================================================================

@pytest.fixture
def sim_config():
    """Simulator configuration whose timer never fires during a test."""
    return SimulatorConfig(
        block_interval_ms=60_000,
        transactions_per_block=3,
        failure_rate=0.0,
        start_block_number=1,
    )


@pytest_asyncio.fixture
async def stream(sim_config):
    """Running stream with the first block already produced."""
    block_stream = MockBlockStream(sim_config)
    await block_stream.start()
    yield block_stream
    await block_stream.stop()


@pytest.fixture
def index(stream):
    """Query index over the running stream."""
    return QueryIndex(stream)


# ============================================================================
# MIRROR NODE FIXTURES
# ============================================================================

@pytest.fixture
def mirror_block_payload():
    """Sample /api/v1/blocks/{number} response."""
    return {
        "number": 42,
        "hash": "0x" + "ab" * 48,
        "previous_hash": "0x" + "cd" * 48,
        "timestamp": {"from": "1709000000.000000000", "to": "1709000001.999999999"},
        "count": 7,
        "gas_used": 120000,
        "hapi_version": "0.47.0",
    }


@pytest.fixture
def mirror_transaction_payload():
    """Sample /api/v1/transactions/{id} response."""
    return {
        "transactions": [
            {
                "transaction_id": "0.0.1234-1709000000-000000000",
                "name": "CRYPTOTRANSFER",
                "node": "0.0.3",
                "result": "SUCCESS",
                "charged_tx_fee": 84_000,
                "consensus_timestamp": "1709000005.123456789",
                "memo_base64": "aGVsbG8=",
                "transfers": [
                    {"account": "0.0.1234", "amount": -1_084_000},
                    {"account": "0.0.5678", "amount": 1_000_000},
                    {"account": "0.0.3", "amount": 84_000},
                ],
                "token_transfers": [],
            }
        ]
    }


@pytest.fixture
def mirror_account_payload():
    """Sample /api/v1/accounts/{id} response."""
    return {
        "account": "0.0.1234",
        "balance": {
            "balance": 250_000_000,
            "timestamp": "1709000010.000000000",
            "tokens": [{"token_id": "0.0.9999", "balance": 15}],
        },
    }


@pytest.fixture
def mirror_transport():
    """
    Factory for an httpx.MockTransport serving a ``{path: (status, body)}``
    route table. Unknown paths get a 404. Handled requests are recorded on
    ``transport.requests``.
    """
    def factory(routes=None):
        routes = routes or {}
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            status, body = routes.get(
                request.url.path,
                (404, {"_status": {"messages": [{"message": "Not found"}]}}),
            )
            return httpx.Response(status, json=body)

        transport = httpx.MockTransport(handler)
        transport.requests = requests
        return transport

    return factory
