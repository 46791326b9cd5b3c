"""
Explicit success/failure values for data-dependent outcomes.

Query call sites branch on ``result.ok`` instead of catching exceptions:

    result = index.get_block(3)
    if result.ok:
        print(result.value.header.hash)
    else:
        print(result.error.code, result.error.message)
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from blocknode_sim.core.errors import SimulatorError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: SimulatorError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]


def ok(value: T) -> Ok[T]:
    return Ok(value)


def err(error: SimulatorError) -> Err:
    return Err(error)
