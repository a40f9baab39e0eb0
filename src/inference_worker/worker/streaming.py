"""
Streaming Emitter - turns an engine's fragment stream into chunk messages.

For one correlation id it sends a ``streamChunk`` per fragment with indices
0, 1, 2, ... and then a single completion chunk (empty content,
``isComplete=True``, aggregate usage) as the last message. On failure it
raises and lets the dispatcher send the terminal error; nothing is emitted
after that.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from ..errors import ComputeEngineFailure, ModelNotLoadedError
from ..protocol.messages import ResponseKind, StreamChunk, TokenUsage, WorkerResponse
from ..utils.logging_config import get_logger
from .registry import RequestToken

logger = get_logger(__name__)

Deliver = Callable[[Optional[RequestToken], WorkerResponse], Awaitable[bool]]


@dataclass
class StreamSummary:
    """Outcome of one stream."""

    chunks: int
    content: str
    usage: Optional[TokenUsage]
    cancelled: bool = False


class StreamEmitter:
    def __init__(self, deliver: Deliver, chunk_interval: float = 0.0) -> None:
        """
        Args:
            deliver: Coroutine that routes a response through the registry
                to the transport.
            chunk_interval: Seconds to wait after each content chunk.
        """
        self._deliver = deliver
        self._chunk_interval = chunk_interval

    async def emit(
        self,
        token: RequestToken,
        fragments: AsyncIterator[str],
        prompt: str,
        still_valid: Optional[Callable[[], bool]] = None,
    ) -> StreamSummary:
        """
        Emit the chunks of one stream.

        Args:
            token: Registry token of the streaming request.
            fragments: Lazy, finite sequence of text fragments from the engine.
            prompt: Prompt of the request, used for usage accounting.
            still_valid: Checked before every chunk; returning ``False``
                aborts the stream with ``ModelNotLoadedError``.

        Returns:
            A ``StreamSummary``; ``cancelled`` is set when the token was
            cancelled before the completion chunk was sent.

        Raises:
            ComputeEngineFailure: The engine failed mid-stream.
            ModelNotLoadedError: The model was unloaded mid-stream.
        """
        iterator = fragments.__aiter__()
        parts = []
        index = 0
        try:
            while True:
                if token.cancelled or token.terminal:
                    return self._stopped(token, index, parts)
                try:
                    fragment = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as exc:
                    logger.error("[Stream] %s failed after %d chunks: %s", token.key, index, exc)
                    raise ComputeEngineFailure.from_exception(exc, "stream_infer") from exc

                if not isinstance(fragment, str):
                    raise ComputeEngineFailure(
                        f"engine produced a {type(fragment).__name__} fragment, expected str",
                        details={"operation": "stream_infer"},
                    )
                if token.cancelled or token.terminal:
                    return self._stopped(token, index, parts)
                self._check_valid(still_valid)

                chunk = StreamChunk(content=fragment, index=index)
                await self._deliver(
                    token,
                    WorkerResponse.ok(ResponseKind.STREAM_CHUNK, token.correlation_id, chunk),
                )
                parts.append(fragment)
                index += 1
                if self._chunk_interval > 0:
                    await asyncio.sleep(self._chunk_interval)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        if token.cancelled or token.terminal:
            return self._stopped(token, index, parts)
        self._check_valid(still_valid)

        content = "".join(parts)
        usage = TokenUsage.from_texts(prompt, content)
        final = StreamChunk(
            content="",
            index=index,
            is_complete=True,
            finish_reason="stop",
            usage=usage,
        )
        await self._deliver(
            token,
            WorkerResponse.ok(ResponseKind.STREAM_CHUNK, token.correlation_id, final),
        )
        logger.info("[Stream] %s complete: %d chunks, %d tokens", token.key, index + 1, usage.total_tokens)
        return StreamSummary(chunks=index + 1, content=content, usage=usage)

    @staticmethod
    def _check_valid(still_valid: Optional[Callable[[], bool]]) -> None:
        if still_valid is not None and not still_valid():
            raise ModelNotLoadedError("model was unloaded during the stream")

    @staticmethod
    def _stopped(token: RequestToken, index: int, parts: list) -> StreamSummary:
        logger.info("[Stream] %s stopped after %d chunks", token.key, index)
        return StreamSummary(chunks=index, content="".join(parts), usage=None, cancelled=True)
