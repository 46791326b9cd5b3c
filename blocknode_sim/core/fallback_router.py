"""
Fallback router: primary query source with mirror node degradation.

Queries go to the primary source (normally a QueryIndex) first. When the
primary fails, the router switches to the mirror node REST API and stays
there until reset_fallback() is called.

Usage:
    router = FallbackRouter(network="testnet", primary=index)
    result = await router.get_account_balance("0.0.100")
    if result.ok:
        print(result.value.hbars)
"""

import base64
import binascii
import inspect
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union
import httpx
import structlog
from pydantic import BaseModel

from blocknode_sim.core.errors import ErrorCode, SimulatorError
from blocknode_sim.core.events import TypedEventEmitter
from blocknode_sim.core.mirror_client import MirrorNodeClient
from blocknode_sim.core.network import (
    from_mirror_transaction_id,
    parse_network,
    payer_from_transaction_id,
    resolve_mirror_node_url,
    to_mirror_transaction_id,
)
from blocknode_sim.core.query_index import (
    tinybars_to_hbars,
    validate_account_id,
    validate_block_number,
    validate_transaction_id,
)
from blocknode_sim.core.result import Err, Ok, Result, err, ok
from blocknode_sim.models.blockchain import (
    AccountBalance,
    Block,
    BlockHeader,
    EventTransaction,
    ResponseCode,
    StateProof,
    TokenBalance,
    TokenTransfer,
    TransactionReceipt,
    TransactionType,
    Transfer,
)
from blocknode_sim.models.config import FallbackConfig, FallbackStrategy, NetworkName
from blocknode_sim.models.mirror import (
    MirrorAccount,
    MirrorBlock,
    MirrorBlockList,
    MirrorTransaction,
    MirrorTransactionList,
)
from blocknode_sim.utils.time import get_current_utc, mirror_timestamp_to_iso

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ACCOUNT_TRANSACTIONS_LIMIT = 25

# Mirror node names are upper-case without separators; a few differ from ours.
MIRROR_TRANSACTION_NAMES: Dict[str, TransactionType] = {
    t.value.upper(): t for t in TransactionType
}
MIRROR_TRANSACTION_NAMES.update({
    "CRYPTOCREATEACCOUNT": TransactionType.CRYPTO_CREATE,
    "CRYPTOUPDATEACCOUNT": TransactionType.CRYPTO_UPDATE,
    "CONTRACTCREATEINSTANCE": TransactionType.CONTRACT_CREATE,
    "CONTRACTUPDATEINSTANCE": TransactionType.CONTRACT_UPDATE,
    "CONTRACTDELETEINSTANCE": TransactionType.CONTRACT_DELETE,
    "TOKENCREATION": TransactionType.TOKEN_CREATE,
})


def map_transaction_name(name: str) -> TransactionType:
    """Mirror node transaction name to TransactionType (CryptoTransfer if unknown)."""
    key = name.upper().replace("_", "")
    return MIRROR_TRANSACTION_NAMES.get(key, TransactionType.CRYPTO_TRANSFER)


def map_response_code(result: str) -> ResponseCode:
    """Mirror node result string to ResponseCode (UNKNOWN if unrecognised)."""
    try:
        return ResponseCode(result)
    except ValueError:
        return ResponseCode.UNKNOWN


def _decode_memo(memo_base64: Optional[str]) -> Optional[str]:
    if not memo_base64:
        return None
    try:
        return base64.b64decode(memo_base64, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def _valid_start_from_id(transaction_id: str, fallback: str) -> str:
    _, _, valid_start = transaction_id.partition("@")
    try:
        return mirror_timestamp_to_iso(valid_start)
    except (ArithmeticError, ValueError):
        return fallback


# ==================== Mirror -> internal mapping ====================

def map_mirror_block(data: MirrorBlock) -> Block:
    """Mirror blocks carry no item detail: items stay empty, no proof."""
    header = BlockHeader(
        number=data.number,
        hash=data.hash,
        previous_hash=data.previous_hash,
        timestamp=mirror_timestamp_to_iso(data.timestamp.start),
        item_count=0,
    )
    return Block(
        header=header,
        items=(),
        proof=None,
        gas_used=data.gas_used,
        successful_transactions=data.count,
        failed_transactions=0,
    )


def map_mirror_transaction(tx: MirrorTransaction) -> EventTransaction:
    transaction_id = from_mirror_transaction_id(tx.transaction_id)
    consensus = mirror_timestamp_to_iso(tx.consensus_timestamp)

    return EventTransaction(
        transaction_id=transaction_id,
        type=map_transaction_name(tx.name),
        payer_account_id=payer_from_transaction_id(tx.transaction_id),
        receipt=TransactionReceipt(status=map_response_code(tx.result)),
        fee=tx.charged_tx_fee,
        consensus_timestamp=consensus,
        valid_start_timestamp=_valid_start_from_id(transaction_id, consensus),
        valid_duration_seconds=120,
        node_account_id=tx.node,
        transfers=tuple(Transfer(account_id=t.account, amount=t.amount) for t in tx.transfers),
        token_transfers=tuple(
            TokenTransfer(token_id=t.token_id, account_id=t.account, amount=t.amount)
            for t in tx.token_transfers
        ),
        memo=_decode_memo(tx.memo_base64),
    )


def map_mirror_account(data: MirrorAccount) -> AccountBalance:
    tinybars = data.balance.balance
    return AccountBalance(
        account_id=data.account,
        balance_tinybars=tinybars,
        hbars=tinybars_to_hbars(tinybars),
        tokens=tuple(
            TokenBalance(token_id=t.token_id, balance=t.balance, decimals=0)
            for t in data.balance.tokens
        ),
        timestamp=mirror_timestamp_to_iso(data.balance.timestamp),
    )


def map_mirror_state_proof(data: MirrorAccount) -> StateProof:
    """The mirror node cannot prove state: the balance is reported unverified."""
    return StateProof(
        entity_id=data.account,
        state_value=str(data.balance.balance),
        at_block_number=0,
        timestamp=mirror_timestamp_to_iso(data.balance.timestamp),
        verified=False,
    )


# ==================== Health ====================

class SourceStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"
    UNKNOWN = "unknown"


@dataclass
class SourceHealth:
    """Health metrics for the mirror node."""
    status: SourceStatus = SourceStatus.UNKNOWN
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    avg_response_time_ms: float = 0.0
    total_requests: int = 0
    total_failures: int = 0

    def record_success(self, response_time_ms: float):
        """Record successful request."""
        self.last_success = get_current_utc()
        self.consecutive_failures = 0
        self.total_requests += 1

        # Update rolling average
        if self.avg_response_time_ms == 0:
            self.avg_response_time_ms = response_time_ms
        else:
            self.avg_response_time_ms = (self.avg_response_time_ms * 0.9) + (response_time_ms * 0.1)

        self.status = SourceStatus.HEALTHY

    def record_failure(self, error: str = ""):
        """Record failed request."""
        self.last_failure = get_current_utc()
        self.last_error = error or None
        self.consecutive_failures += 1
        self.total_requests += 1
        self.total_failures += 1

        if self.consecutive_failures >= 5:
            self.status = SourceStatus.DOWN
        elif self.consecutive_failures >= 2:
            self.status = SourceStatus.DEGRADED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_failure": self.last_failure.isoformat() if self.last_failure else None,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "avg_response_time_ms": round(self.avg_response_time_ms, 1),
            "total_requests": self.total_requests,
            "success_rate": round((self.total_requests - self.total_failures) / max(1, self.total_requests) * 100, 1),
        }


# ==================== Router ====================

class FallbackRouter(TypedEventEmitter):
    """
    Same query contract as QueryIndex, but async and mirror-node backed.

    Dispatch per call:
    1. Malformed input is rejected up front; nothing else happens.
    2. With a primary and fallback inactive, the primary answers. Its
       successful result is returned unchanged.
    3. On primary failure (Err or raised exception) or with no primary:
       strategy ``disabled`` returns FALLBACK_DISABLED without any remote
       call; otherwise fallback is activated and the mirror node answers.

    Fallback stays active until reset_fallback(). ``manual`` dispatches like
    ``auto``; the events let the caller decide when to reset.

    Events:
    - fallbackActivated(reason)
    - fallbackDeactivated()
    - mirrorQuery(endpoint, duration_ms)
    - mirrorError(endpoint, error)
    """

    EVENTS = frozenset({
        "fallbackActivated",
        "fallbackDeactivated",
        "mirrorQuery",
        "mirrorError",
    })

    def __init__(self,
                 network: Union[str, NetworkName] = NetworkName.TESTNET,
                 mirror_node_url: Optional[str] = None,
                 primary: Optional[Any] = None,
                 strategy: Union[str, FallbackStrategy] = FallbackStrategy.AUTO,
                 timeout_ms: int = 10_000,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 log=None):
        """
        Initialize the fallback router.

        Args:
            network: Network used to resolve the default mirror node URL
            mirror_node_url: Explicit mirror node base URL (overrides network)
            primary: Query source tried first; any object with QueryIndex's
                query methods, sync or async
            strategy: auto, manual or disabled
            timeout_ms: Per-request mirror node timeout
            transport: Optional httpx transport for the mirror node client

        Raises:
            SimulatorError: INVALID_NETWORK for an unknown network name.
        """
        super().__init__()
        self.network = parse_network(network)
        self.primary = primary
        self.strategy = FallbackStrategy(strategy)
        self.logger = (log or logger).bind(component="fallback_router")

        self.client = MirrorNodeClient(
            resolve_mirror_node_url(self.network, mirror_node_url),
            timeout_ms=timeout_ms,
            transport=transport,
            log=log,
        )
        self.health = SourceHealth()
        self._fallback_active = False

    @classmethod
    def from_config(cls, config: FallbackConfig, primary: Optional[Any] = None,
                    transport: Optional[httpx.AsyncBaseTransport] = None, log=None) -> "FallbackRouter":
        return cls(
            network=config.network,
            mirror_node_url=config.mirror_node_url,
            primary=primary,
            strategy=config.strategy,
            timeout_ms=config.timeout_ms,
            transport=transport,
            log=log,
        )

    # ==================== Queries ====================

    async def get_block(self, block_number: int) -> Result[Block]:
        """Block by number (mirror: /api/v1/blocks/{number})."""
        invalid = validate_block_number(block_number)
        if invalid:
            return err(invalid)

        async def remote():
            data = await self._mirror_get(f"/api/v1/blocks/{block_number}", MirrorBlock)
            return ok(map_mirror_block(data))

        return await self._dispatch("get_block", (block_number,), remote)

    async def get_transaction(self, transaction_id: str) -> Result[EventTransaction]:
        """Transaction by id (mirror: /api/v1/transactions/{mirror_id})."""
        invalid = validate_transaction_id(transaction_id)
        if invalid:
            return err(invalid)

        async def remote():
            mirror_id = to_mirror_transaction_id(transaction_id)
            data = await self._mirror_get(f"/api/v1/transactions/{mirror_id}", MirrorTransactionList)
            if not data.transactions:
                return err(SimulatorError(
                    ErrorCode.NOT_FOUND,
                    f"Transaction {transaction_id!r} not found on mirror node.",
                    {"transaction_id": transaction_id, "mirror_id": mirror_id},
                ))
            return ok(map_mirror_transaction(data.transactions[0]))

        return await self._dispatch("get_transaction", (transaction_id,), remote)

    async def get_account_balance(self, account_id: str) -> Result[AccountBalance]:
        """Account balance (mirror: /api/v1/accounts/{id})."""
        invalid = validate_account_id(account_id)
        if invalid:
            return err(invalid)

        async def remote():
            data = await self._mirror_get(f"/api/v1/accounts/{account_id}", MirrorAccount)
            return ok(map_mirror_account(data))

        return await self._dispatch("get_account_balance", (account_id,), remote)

    async def get_state_proof(self, entity_id: str) -> Result[StateProof]:
        """State proof (mirror: /api/v1/accounts/{id}, reported unverified)."""
        invalid = validate_account_id(entity_id)
        if invalid:
            return err(invalid)

        async def remote():
            data = await self._mirror_get(f"/api/v1/accounts/{entity_id}", MirrorAccount)
            return ok(map_mirror_state_proof(data))

        return await self._dispatch("get_state_proof", (entity_id,), remote)

    async def get_latest_block(self) -> Result[Block]:
        """Most recent block (mirror: /api/v1/blocks?order=desc&limit=1)."""
        async def remote():
            data = await self._mirror_get("/api/v1/blocks", MirrorBlockList,
                                          {"order": "desc", "limit": 1})
            if not data.blocks:
                return err(SimulatorError(
                    ErrorCode.NOT_FOUND,
                    "Mirror node returned no blocks.",
                    {"available_blocks": 0},
                ))
            return ok(map_mirror_block(data.blocks[0]))

        return await self._dispatch("get_latest_block", (), remote)

    async def get_transactions_by_account(self, payer_account_id: str) -> Result[List[EventTransaction]]:
        """Transactions involving an account (mirror: /api/v1/transactions?account.id=)."""
        invalid = validate_account_id(payer_account_id)
        if invalid:
            return err(invalid)

        async def remote():
            data = await self._mirror_get(
                "/api/v1/transactions",
                MirrorTransactionList,
                {"account.id": payer_account_id, "limit": ACCOUNT_TRANSACTIONS_LIMIT, "order": "desc"},
            )
            return ok([map_mirror_transaction(tx) for tx in data.transactions])

        return await self._dispatch("get_transactions_by_account", (payer_account_id,), remote)

    # ==================== State ====================

    def is_fallback_active(self) -> bool:
        return self._fallback_active

    @property
    def mirror_node_url(self) -> str:
        return self.client.base_url

    def reset_fallback(self) -> None:
        """Route the next query to the primary again."""
        if not self._fallback_active:
            return
        self._fallback_active = False
        self.emit("fallbackDeactivated")
        self.logger.info("Fallback deactivated, will retry primary source")

    def get_health_status(self) -> Dict[str, Any]:
        """Mirror node health plus the router's routing state."""
        return {
            "network": self.network.value,
            "mirror_node_url": self.mirror_node_url,
            "strategy": self.strategy.value,
            "fallback_active": self._fallback_active,
            "primary_configured": self.primary is not None,
            "mirror_node": self.health.to_dict(),
        }

    # ==================== Dispatch ====================

    async def _dispatch(self, method: str, args: Tuple[Any, ...],
                        remote: Callable[[], Awaitable[Result]]) -> Result:
        if self.primary is not None and not self._fallback_active:
            result, reason = await self._call_primary(method, args)
            if result is not None:
                return result
        elif self.primary is None:
            reason = "No primary source configured"
        else:
            reason = None

        if self.strategy == FallbackStrategy.DISABLED:
            self.logger.debug("Primary failed and fallback is disabled", method=method, reason=reason)
            return err(SimulatorError(
                ErrorCode.FALLBACK_DISABLED,
                f"Fallback is disabled. Primary source failed: {reason}",
                {"method": method, "reason": reason},
            ))

        if reason is not None:
            self._activate_fallback(reason)

        try:
            return await remote()
        except SimulatorError as e:
            return err(e)
        except Exception as e:
            self.logger.error("Fallback query failed", method=method, error=str(e))
            return err(SimulatorError(
                ErrorCode.FALLBACK_FAILED,
                f"{method} fallback failed: {e}",
                {"method": method},
            ))

    async def _call_primary(self, method: str, args: Tuple[Any, ...]) -> Tuple[Optional[Result], Optional[str]]:
        """Returns (result, None) on success, or (None, failure reason)."""
        try:
            result = getattr(self.primary, method)(*args)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, (Ok, Err)):
                raise TypeError(f"{method} returned {type(result).__name__}, expected a Result")
            if result.ok:
                return result, None
            return None, result.error.message
        except Exception as e:
            self.logger.warning("Primary source raised", method=method, error=str(e))
            return None, f"{type(e).__name__}: {e}"

    def _activate_fallback(self, reason: str) -> None:
        if self._fallback_active:
            return
        self._fallback_active = True
        self.emit("fallbackActivated", reason)
        self.logger.warning("Fallback activated, routing to mirror node",
                            reason=reason,
                            mirror_node_url=self.mirror_node_url)

    async def _mirror_get(self, endpoint: str, schema: Type[ModelT],
                          params: Optional[Dict[str, Any]] = None) -> ModelT:
        start = time.monotonic()
        try:
            data = await self.client.get(endpoint, schema, params)
        except SimulatorError as e:
            self.health.record_failure(e.message)
            self.emit("mirrorError", endpoint, e)
            self.logger.warning("Mirror node request failed",
                                endpoint=endpoint,
                                code=e.code.value,
                                error=e.message)
            raise

        duration_ms = (time.monotonic() - start) * 1000
        self.health.record_success(duration_ms)
        self.emit("mirrorQuery", endpoint, duration_ms)
        self.logger.debug("Mirror node response", endpoint=endpoint, duration_ms=round(duration_ms, 1))
        return data
