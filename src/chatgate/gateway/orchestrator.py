"""Drives a single completion request end-to-end.

Non-streaming requests await one provider call and assemble a
``CompletionResponse``. Streaming requests are wrapped in a
``CompletionStream`` that turns upstream deltas into OpenAI chunks one at a
time and always ends with exactly one terminal chunk.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from .errors import GatewayError, err_provider_unavailable, err_upstream_failure
from .ids import IdGenerator, RandomIdGenerator
from .models import (
    ChatChoice,
    ChoiceMessage,
    ChunkChoice,
    ChunkDelta,
    CompletionChunk,
    CompletionRequest,
    CompletionResponse,
    Usage,
)
from .providers import (
    CompletionResult,
    ProviderUnavailableError,
    StreamDelta,
    UpstreamError,
)
from .resolver import ResolvedTarget

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]

_END = object()


class StreamState(enum.Enum):
    IDLE = "idle"
    STARTED = "started"
    EMITTING = "emitting"
    TERMINATED = "terminated"


def translate_provider_error(exc: BaseException, target: ResolvedTarget) -> GatewayError:
    """Convert whatever a provider raised into a structured gateway error."""

    if isinstance(exc, GatewayError):
        return exc
    provider_id = target.provider.id
    if isinstance(exc, ProviderUnavailableError):
        return err_provider_unavailable(provider_id, str(exc) or None)
    if isinstance(exc, UpstreamError):
        return err_upstream_failure(provider_id, str(exc) or None)
    logger.error(
        "[orchestrator] Provider '%s' raised unexpectedly: %r", provider_id, exc
    )
    return err_upstream_failure(provider_id)


class CompletionStream:
    """One streamed completion: ``IDLE -> STARTED -> EMITTING* -> TERMINATED``."""

    def __init__(
        self,
        upstream: AsyncIterator[StreamDelta],
        *,
        target: ResolvedTarget,
        completion_id: str,
        created: int,
        model: str,
        is_disconnected: Optional[DisconnectCheck] = None,
    ):
        self._upstream = upstream
        self.target = target
        self.id = completion_id
        self.created = created
        self.model = model
        self._is_disconnected = is_disconnected
        self._first: Any = _END
        self._role_sent = False
        self._closed = False
        self.state = StreamState.IDLE
        self.cancelled = False
        self.failed = False

    async def start(self) -> None:
        """Open the upstream and pull its first increment.

        Failures here still surface as a regular HTTP error because no
        response bytes have been committed yet.
        """

        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"stream already {self.state.value}")
        try:
            self._first = await self._next()
        except BaseException as exc:
            await self._close_upstream()
            self.state = StreamState.TERMINATED
            if isinstance(exc, Exception):
                raise translate_provider_error(exc, self.target) from exc
            raise
        self.state = StreamState.STARTED

    def __aiter__(self) -> AsyncIterator[CompletionChunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[CompletionChunk]:
        if self.state is StreamState.IDLE:
            await self.start()
        pending = self._first
        finish_reason: Optional[str] = None
        usage: Optional[Usage] = None
        try:
            try:
                while pending is not _END:
                    delta: StreamDelta = pending
                    if delta.usage is not None:
                        usage = delta.usage
                    if delta.finish_reason:
                        finish_reason = delta.finish_reason
                    if delta.content:
                        yield self._emit(self._content_chunk(delta.content))
                    if await self._client_gone():
                        return
                    pending = await self._next()
            except Exception as exc:  # noqa: BLE001
                self.failed = True
                logger.warning(
                    "[orchestrator] Upstream %s failed mid-stream for %s: %s",
                    self.target.composite_id,
                    self.id,
                    exc,
                )
                yield self._emit(self._error_chunk(translate_provider_error(exc, self.target)))
                return
            yield self._emit(self._terminal_chunk(finish_reason or "stop", usage))
        finally:
            if self.state is not StreamState.TERMINATED:
                self.state = StreamState.TERMINATED
            # Must complete even when the consuming task is being cancelled.
            await asyncio.shield(self._close_upstream())

    async def aclose(self) -> None:
        self.state = StreamState.TERMINATED
        await self._close_upstream()

    async def _next(self) -> Any:
        try:
            return await self._upstream.__anext__()
        except StopAsyncIteration:
            return _END

    async def _client_gone(self) -> bool:
        if self._is_disconnected is None:
            return False
        if await self._is_disconnected():
            self.cancelled = True
            logger.info(
                "[orchestrator] Client disconnected; cancelling upstream for %s", self.id
            )
            return True
        return False

    async def _close_upstream(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._upstream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:  # noqa: BLE001
            logger.warning("[orchestrator] Failed to close upstream for %s: %s", self.id, exc)

    def _emit(self, chunk: CompletionChunk) -> CompletionChunk:
        if self.state is StreamState.TERMINATED:
            raise RuntimeError(f"stream {self.id} already terminated")
        if self.state is StreamState.IDLE:
            raise RuntimeError(f"stream {self.id} not started")
        self.state = StreamState.TERMINATED if chunk.is_terminal else StreamState.EMITTING
        return chunk

    def _chunk(self, choice: ChunkChoice, **extra: Any) -> CompletionChunk:
        return CompletionChunk(
            id=self.id,
            created=self.created,
            model=self.model,
            choices=[choice],
            **extra,
        )

    def _content_chunk(self, content: str) -> CompletionChunk:
        role = None
        if not self._role_sent:
            role = "assistant"
            self._role_sent = True
        return self._chunk(ChunkChoice(delta=ChunkDelta(role=role, content=content)))

    def _terminal_chunk(self, finish_reason: str, usage: Optional[Usage]) -> CompletionChunk:
        return self._chunk(ChunkChoice(finish_reason=finish_reason), usage=usage)

    def _error_chunk(self, error: GatewayError) -> CompletionChunk:
        return self._chunk(
            ChunkChoice(finish_reason="error"),
            error={
                "message": error.message,
                "type": "upstream_error",
                "code": "stream_error",
            },
        )


class CompletionOrchestrator:
    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.id_generator = id_generator or RandomIdGenerator()
        self.clock = clock

    async def complete(
        self, request: CompletionRequest, target: ResolvedTarget
    ) -> CompletionResponse:
        started = time.monotonic()
        try:
            result = await target.provider.complete(
                target.model, request.message_dicts(), request.provider_params()
            )
        except Exception as exc:  # noqa: BLE001
            raise translate_provider_error(exc, target) from exc
        if not isinstance(result, CompletionResult):
            raise err_upstream_failure(target.provider.id, "malformed completion result")
        logger.info(
            "[orchestrator] %s completed in %.1f ms",
            target.composite_id,
            (time.monotonic() - started) * 1000,
        )
        return CompletionResponse(
            id=self.id_generator(),
            created=int(self.clock()),
            model=request.model,
            choices=[
                ChatChoice(
                    message=ChoiceMessage(content=result.content),
                    finish_reason=result.finish_reason or "stop",
                )
            ],
            usage=result.usage,
        )

    async def open_stream(
        self,
        request: CompletionRequest,
        target: ResolvedTarget,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> CompletionStream:
        try:
            upstream = target.provider.stream(
                target.model, request.message_dicts(), request.provider_params()
            )
        except Exception as exc:  # noqa: BLE001
            raise translate_provider_error(exc, target) from exc
        stream = CompletionStream(
            upstream,
            target=target,
            completion_id=self.id_generator(),
            created=int(self.clock()),
            model=request.model,
            is_disconnected=is_disconnected,
        )
        await stream.start()
        return stream


def stream_log_record(stream: CompletionStream) -> Dict[str, Any]:
    return {
        "id": stream.id,
        "model": stream.model,
        "provider": stream.target.provider.id,
        "stream": True,
        "cancelled": stream.cancelled,
        "failed": stream.failed,
    }
