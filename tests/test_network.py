"""Unit tests for network resolution and mirror id conversion."""

import pytest

from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.network import (
    MIRROR_NODE_URLS,
    from_mirror_transaction_id,
    parse_network,
    payer_from_transaction_id,
    resolve_mirror_node_url,
    to_mirror_transaction_id,
)
from blocknode_sim.models.config import NetworkName


class TestNetworks:
    """Tests for network name handling."""

    @pytest.mark.parametrize("name", ["mainnet", "testnet", "previewnet", "local"])
    def test_known_networks(self, name):
        network = parse_network(name)
        assert network.value == name
        assert resolve_mirror_node_url(name) == MIRROR_NODE_URLS[network]

    def test_unknown_network(self):
        """Test unknown names raise INVALID_NETWORK."""
        with pytest.raises(SimulatorError) as exc_info:
            parse_network("devnet")

        assert exc_info.value.code == ErrorCode.INVALID_NETWORK
        assert exc_info.value.details == {"network": "devnet"}

    def test_custom_url(self):
        """Test a custom URL bypasses the lookup table."""
        assert resolve_mirror_node_url(NetworkName.MAINNET, "http://mirror:5551/") == "http://mirror:5551"

    def test_local_url(self):
        assert resolve_mirror_node_url("local") == "http://localhost:5551"


class TestTransactionIds:
    """Tests for transaction id formats."""

    def test_to_mirror_format(self):
        assert to_mirror_transaction_id("0.0.1234@1709000000.000000001") == "0.0.1234-1709000000-000000001"

    def test_from_mirror_format(self):
        assert from_mirror_transaction_id("0.0.1234-1709000000-000000001") == "0.0.1234@1709000000.000000001"

    def test_unrecognised_formats_pass_through(self):
        """Test ids without the expected separators are returned as is."""
        assert to_mirror_transaction_id("0.0.1234") == "0.0.1234"
        assert from_mirror_transaction_id("0.0.1234") == "0.0.1234"

    @pytest.mark.parametrize("transaction_id", [
        "0.0.1234@1709000000.000000000",
        "0.0.1234-1709000000-000000000",
    ])
    def test_payer(self, transaction_id):
        assert payer_from_transaction_id(transaction_id) == "0.0.1234"
