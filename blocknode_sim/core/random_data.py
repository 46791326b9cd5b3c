"""Random data helpers for plausible ids, hashes and amounts."""

import random
import secrets
from datetime import datetime
from typing import Mapping, Sequence, TypeVar

from blocknode_sim.utils.time import epoch_millis

T = TypeVar("T")

NODE_ACCOUNT_NUMBERS = (3, 4, 5, 6, 7)


def random_hex(num_bytes: int) -> str:
    """Hex string of ``num_bytes`` random bytes."""
    return secrets.token_hex(num_bytes)


def random_int(low: int, high: int) -> int:
    """Random integer in ``[low, high]``."""
    return random.randint(low, high)


def random_pick(items: Sequence[T]) -> T:
    return random.choice(items)


def weighted_pick(weights: Mapping[T, int]) -> T:
    """Pick a key with probability proportional to its weight."""
    keys = list(weights)
    return random.choices(keys, weights=[weights[k] for k in keys], k=1)[0]


def chance(probability: float) -> bool:
    """True with the given probability."""
    return probability > 0 and random.random() < probability


def random_account_id() -> str:
    return f"0.0.{random_int(100, 9_999_999)}"


def random_node_account_id() -> str:
    return f"0.0.{random_pick(NODE_ACCOUNT_NUMBERS)}"


def random_entity_id(low: int = 1000, high: int = 99_999) -> str:
    return f"0.0.{random_int(low, high)}"


def make_transaction_id(payer_account_id: str, timestamp: datetime) -> str:
    """
    Build ``<payer>@<seconds>.<nanos>`` from a payer and a timestamp.

    Millisecond granularity: two ids from the same payer within the same
    millisecond collide.
    """
    millis = epoch_millis(timestamp)
    seconds, remainder = divmod(millis, 1000)
    nanos = remainder * 1_000_000
    return f"{payer_account_id}@{seconds}.{nanos:09d}"
