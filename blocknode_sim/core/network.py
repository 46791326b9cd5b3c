"""Network names, mirror node URLs and id conversions."""

from typing import Optional, Union

from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.models.config import NetworkName

MIRROR_NODE_URLS = {
    NetworkName.MAINNET: "https://mainnet.mirrornode.hedera.com",
    NetworkName.TESTNET: "https://testnet.mirrornode.hedera.com",
    NetworkName.PREVIEWNET: "https://previewnet.mirrornode.hedera.com",
    NetworkName.LOCAL: "http://localhost:5551",
}


def parse_network(network: Union[str, NetworkName]) -> NetworkName:
    try:
        return NetworkName(network)
    except ValueError:
        raise SimulatorError(
            ErrorCode.INVALID_NETWORK,
            f"Unknown network {network!r}. Expected one of: "
            f"{', '.join(n.value for n in NetworkName)}",
            {"network": str(network)},
        ) from None


def resolve_mirror_node_url(network: Union[str, NetworkName],
                            custom_url: Optional[str] = None) -> str:
    """Mirror node base URL for a network, unless overridden."""
    if custom_url:
        return custom_url.rstrip("/")
    return MIRROR_NODE_URLS[parse_network(network)]


def to_mirror_transaction_id(transaction_id: str) -> str:
    """``0.0.1234@1709000000.000000000`` -> ``0.0.1234-1709000000-000000000``."""
    payer, _, valid_start = transaction_id.partition("@")
    if not valid_start:
        return transaction_id
    return f"{payer}-{valid_start.replace('.', '-')}"


def from_mirror_transaction_id(mirror_id: str) -> str:
    """``0.0.1234-1709000000-000000000`` -> ``0.0.1234@1709000000.000000000``."""
    parts = mirror_id.split("-")
    if len(parts) != 3:
        return mirror_id
    payer, seconds, nanos = parts
    return f"{payer}@{seconds}.{nanos}"


def payer_from_transaction_id(transaction_id: str) -> str:
    return transaction_id.split("@")[0].split("-")[0]
