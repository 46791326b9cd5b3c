"""
Mirror node REST API client.

Read-only access to the public mirror node used as the fallback source when
the simulated block node cannot answer a query.

Endpoints used by the fallback router:
- GET /api/v1/blocks/{number}
- GET /api/v1/blocks?order=desc&limit=1
- GET /api/v1/transactions/{transaction_id}
- GET /api/v1/transactions?account.id={account}
- GET /api/v1/accounts/{account}
"""

import asyncio
import json
from typing import Any, Dict, Optional, Type, TypeVar
import httpx
import structlog
from pydantic import BaseModel, ValidationError

from blocknode_sim.core.errors import ErrorCode, SimulatorError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_AGENT = "BlockNode-Simulator/1.0.0"


class MirrorNodeClient:
    """
    Async mirror node client with strict response validation.

    Every request is bounded by ``timeout_ms``; on expiry the in-flight
    request is cancelled. Failures are raised as SimulatorError:

    - MIRROR_NODE_UNAVAILABLE: timeout, transport error or non-2xx status
    - SCHEMA_VIOLATION: body is not JSON or does not match the schema
    """

    def __init__(self,
                 base_url: str,
                 timeout_ms: int = 10_000,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 log=None):
        """
        Initialize the mirror node client.

        Args:
            base_url: Mirror node base URL, without the /api/v1 suffix
            timeout_ms: Per-request timeout in milliseconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            log: Optional structlog logger to bind instead of the module logger
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms
        self._transport = transport
        self.logger = (log or logger).bind(component="mirror_node_client")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    async def get(self, endpoint: str, schema: Type[ModelT],
                  params: Optional[Dict[str, Any]] = None) -> ModelT:
        """GET ``endpoint`` and validate the JSON body against ``schema``."""
        url = f"{self.base_url}{endpoint}"
        self.logger.debug("Mirror node request", url=url, params=params)

        try:
            response = await asyncio.wait_for(
                self._send(url, params),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise SimulatorError(
                ErrorCode.MIRROR_NODE_UNAVAILABLE,
                f"Mirror node request timed out after {self.timeout_ms}ms",
                {"url": url, "timeout_ms": self.timeout_ms},
            ) from None
        except httpx.HTTPError as e:
            raise SimulatorError(
                ErrorCode.MIRROR_NODE_UNAVAILABLE,
                f"Mirror node request failed: {e}",
                {"url": url},
            ) from e

        if not response.is_success:
            raise SimulatorError(
                ErrorCode.MIRROR_NODE_UNAVAILABLE,
                f"Mirror node returned {response.status_code}: {response.text[:200]}",
                {"url": url, "status": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SimulatorError(
                ErrorCode.SCHEMA_VIOLATION,
                f"Mirror node returned a non-JSON body: {e}",
                {"url": url},
            ) from e

        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise SimulatorError(
                ErrorCode.SCHEMA_VIOLATION,
                f"Mirror node response failed {schema.__name__} validation: "
                f"{e.error_count()} error(s)",
                {"url": url, "errors": json.loads(e.json(include_url=False))},
            ) from e

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            timeout=self.timeout_seconds,
        ) as client:
            return await client.get(url, params=params)

