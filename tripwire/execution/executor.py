"""Instruction executor boundary.

The executor interprets a free-text instruction against a payload and
either produces text for the owner or decides the payload does not match.
Tripwire only talks to it through :class:`InstructionExecutor`; the HTTP
adapter below is the production implementation.
"""

from dataclasses import asdict
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
import structlog

from tripwire.exceptions import TripwireError
from tripwire.utils.constants import (
    DEFAULT_EXECUTOR_TIMEOUT_SECONDS,
    IGNORE_SENTINEL,
)

from .types import Delivered, ExecutionResult, Ignored, InstructionRequest

logger = structlog.get_logger()


class InstructionExecutorError(TripwireError):
    """The instruction executor failed or returned an unusable response."""


@runtime_checkable
class InstructionExecutor(Protocol):
    """Interprets an instruction against a payload."""

    async def execute(self, request: InstructionRequest) -> ExecutionResult: ...


class HttpInstructionExecutor:
    """Posts instruction requests to a remote executor service.

    The service answers ``{"text": "..."}`` or ``{"ignore": true}``. A bare
    ``"IGNORE"`` text is accepted for executors that still signal skips
    in-band; it is converted to :class:`Ignored` here and nowhere else.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout_seconds: float = DEFAULT_EXECUTOR_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def execute(self, request: InstructionRequest) -> ExecutionResult:
        """Send one instruction to the executor service."""
        body = asdict(request)
        try:
            response = await self._client.post(
                self.url, json=body, headers=self._headers
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise InstructionExecutorError(
                f"Instruction executor request failed: {e}"
            ) from e

        return self._parse_result(data)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _parse_result(self, data: Any) -> ExecutionResult:
        if not isinstance(data, dict):
            raise InstructionExecutorError(
                f"Unexpected executor response type: {type(data).__name__}"
            )
        if data.get("ignore"):
            return Ignored()

        text = data.get("text")
        if text is None:
            raise InstructionExecutorError("Executor response has no 'text'")
        text = str(text)
        if text.strip() == IGNORE_SENTINEL:
            return Ignored()
        return Delivered(text=text)


class UnconfiguredInstructionExecutor:
    """Used when no executor endpoint is configured.

    Instruction-based listeners and actions still fire; they just produce
    no output.
    """

    async def execute(self, request: InstructionRequest) -> ExecutionResult:
        logger.warning(
            "No instruction executor configured, skipping instruction",
            source=request.context.kind,
            source_id=request.context.source_id,
        )
        return Ignored()
