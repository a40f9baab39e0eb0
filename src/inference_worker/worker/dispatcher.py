"""
Request Dispatcher - routes inbound messages to their handlers.

``admit`` validates a message and registers its correlation; ``run`` runs
the handler for its kind and converts whatever happens into exactly one terminal
response (a stream gets exactly one completion chunk or one error).

Requests run concurrently as independent tasks. Inference-class requests
are never serialized against each other; only load/unload are serialized,
and that happens inside the lifecycle manager.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Tuple

from ..engines.base import BaseComputeEngine
from ..errors import (
    ComputeEngineFailure,
    DuplicateCorrelationIdError,
    RequestCancelledError,
    WorkerError,
)
from ..protocol.messages import (
    EmbedResult,
    InferResult,
    RequestKind,
    ResponseKind,
    TokenUsage,
    WorkerRequest,
    WorkerResponse,
)
from ..protocol.validation import extract_correlation_id, parse_request
from ..utils.logging_config import get_logger
from .lifecycle import ModelLifecycleManager
from .registry import CorrelationRegistry, RequestToken
from .streaming import Deliver, StreamEmitter

logger = get_logger(__name__)


class RequestDispatcher:
    """Decodes, validates and routes requests; turns outcomes into responses."""

    def __init__(
        self,
        lifecycle: ModelLifecycleManager,
        engine: BaseComputeEngine,
        registry: CorrelationRegistry,
        emitter: StreamEmitter,
        deliver: Deliver,
        require_stream_correlation_id: bool = True,
    ) -> None:
        self._lifecycle = lifecycle
        self._engine = engine
        self._registry = registry
        self._emitter = emitter
        self._deliver = deliver
        self._require_stream_correlation_id = require_stream_correlation_id
        self._handlers: Dict[RequestKind, Callable[[WorkerRequest, RequestToken], Awaitable[None]]] = {
            RequestKind.LOAD_MODEL: self._handle_load_model,
            RequestKind.UNLOAD_MODEL: self._handle_unload_model,
            RequestKind.INFER: self._handle_infer,
            RequestKind.EMBED: self._handle_embed,
            RequestKind.STREAM_INFER: self._handle_stream_infer,
        }

    def admit(self, raw: Any) -> Tuple[WorkerRequest, RequestToken]:
        """
        Validate *raw* and register its correlation.

        Synchronous, so a request is cancellable from the moment it is
        received, before its task gets to run.

        Raises:
            WorkerError: The message is malformed or its id is in flight.
        """
        request = parse_request(raw, self._require_stream_correlation_id)
        token = self._registry.register(request.correlation_id, request.kind)
        return request, token

    async def reject(self, raw: Any, error: WorkerError) -> None:
        """Report a message that failed ``admit``.

        A duplicate id is not echoed: the id belongs to the request already
        in flight, which still gets its own terminal response.
        """
        correlation_id = extract_correlation_id(raw)
        logger.warning(
            "[Dispatcher] Rejected message (correlationId=%s): %s: %s",
            correlation_id,
            error.code,
            error.message,
        )
        if isinstance(error, DuplicateCorrelationIdError):
            correlation_id = None
        await self._deliver(None, WorkerResponse.failure(correlation_id, error))

    async def handle(self, raw: Any) -> None:
        """
        Process one inbound message end to end.

        Never raises except for ``asyncio.CancelledError``; every other
        failure is reported to the caller as an ``error`` response.
        """
        try:
            request, token = self.admit(raw)
        except WorkerError as exc:
            await self.reject(raw, exc)
            return
        await self.run(request, token)

    async def run(self, request: WorkerRequest, token: RequestToken) -> None:
        """Run an admitted request and send its terminal response."""
        token.task = asyncio.current_task()
        try:
            if token.cancelled:
                logger.info("[Dispatcher] %s cancelled before it started", token.key)
                if token.notify_on_cancel:
                    await self._fail(token, RequestCancelledError("request was cancelled"))
                return

            logger.info("[Dispatcher] Received %s (%s)", request.kind.value, token.key)
            try:
                await self._handlers[request.kind](request, token)
            except asyncio.CancelledError:
                if token.cancelled and token.notify_on_cancel:
                    await self._fail(token, RequestCancelledError("request was cancelled"))
                raise
            except WorkerError as exc:
                logger.warning(
                    "[Dispatcher] %s (%s) failed: %s: %s",
                    request.kind.value,
                    token.key,
                    exc.code,
                    exc.message,
                )
                await self._fail(token, exc)
            except Exception as exc:  # noqa: BLE001 - every request gets a terminal outcome
                logger.exception("[Dispatcher] Unexpected error handling %s (%s)", request.kind.value, token.key)
                await self._fail(token, ComputeEngineFailure.from_exception(exc, request.kind.value))
        finally:
            self._registry.sweep(token)

    async def _fail(self, token: RequestToken, error: WorkerError) -> None:
        await self._deliver(token, WorkerResponse.failure(token.correlation_id, error))

    async def _call_engine(self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        try:
            return await func(*args)
        except WorkerError:
            raise
        except Exception as exc:
            raise ComputeEngineFailure.from_exception(exc, operation) from exc

    # ------------------------------------------------------------------
    # Lifecycle requests
    # ------------------------------------------------------------------

    async def _handle_load_model(self, request: WorkerRequest, token: RequestToken) -> None:
        info = await self._lifecycle.load_model(request.model_path, request.config)
        await self._deliver(
            token, WorkerResponse.ok(ResponseKind.MODEL_LOADED, token.correlation_id, info)
        )

    async def _handle_unload_model(self, request: WorkerRequest, token: RequestToken) -> None:
        unloaded = await self._lifecycle.unload_model()
        await self._deliver(
            token,
            WorkerResponse.ok(ResponseKind.MODEL_UNLOADED, token.correlation_id, {"unloaded": unloaded}),
        )

    # ------------------------------------------------------------------
    # Inference-class requests
    # ------------------------------------------------------------------

    async def _handle_infer(self, request: WorkerRequest, token: RequestToken) -> None:
        snapshot = self._lifecycle.require_loaded()
        config = {**snapshot.config, **request.config}
        content = await self._call_engine("infer", self._engine.infer, request.prompt, config)
        self._lifecycle.ensure_current(snapshot)
        if not isinstance(content, str):
            raise ComputeEngineFailure(
                f"engine returned {type(content).__name__}, expected str",
                details={"operation": "infer"},
            )
        result = InferResult(content=content, usage=TokenUsage.from_texts(request.prompt, content))
        await self._deliver(
            token, WorkerResponse.ok(ResponseKind.INFER_RESULT, token.correlation_id, result)
        )

    async def _handle_embed(self, request: WorkerRequest, token: RequestToken) -> None:
        snapshot = self._lifecycle.require_loaded()
        vector = await self._call_engine("embed", self._engine.embed, request.text)
        self._lifecycle.ensure_current(snapshot)
        try:
            embedding = [float(v) for v in vector]
        except (TypeError, ValueError) as exc:
            raise ComputeEngineFailure(
                f"engine returned an invalid embedding: {exc}",
                details={"operation": "embed"},
            ) from exc
        await self._deliver(
            token,
            WorkerResponse.ok(ResponseKind.EMBED_RESULT, token.correlation_id, EmbedResult(embedding)),
        )

    async def _handle_stream_infer(self, request: WorkerRequest, token: RequestToken) -> None:
        snapshot = self._lifecycle.require_loaded()
        config = {**snapshot.config, **request.config}
        try:
            fragments = self._engine.stream_infer(request.prompt, config)
        except Exception as exc:
            raise ComputeEngineFailure.from_exception(exc, "stream_infer") from exc

        summary = await self._emitter.emit(
            token,
            fragments,
            request.prompt,
            still_valid=lambda: self._lifecycle.is_current(snapshot),
        )
        if summary.cancelled and token.notify_on_cancel and not token.terminal:
            raise RequestCancelledError(
                "stream was cancelled",
                details={"chunksSent": summary.chunks},
            )
