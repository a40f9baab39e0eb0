"""
Message channels between the controlling side and the worker.

The worker only needs two primitives from a channel: ``send(message)`` for
outbound dicts and ``receive()`` for the next inbound one (``None`` once the
channel is closed).

- ``QueueTransport``: in-process asyncio queues, for embedding the worker
  in another asyncio application and for tests.
- ``JsonLinesTransport``: one JSON object per line over text streams,
  stdin/stdout by default, for running the worker as a subprocess.
"""

import asyncio
import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TextIO

from ..errors import RequestValidationError
from ..protocol.messages import WorkerResponse
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class BaseTransport(ABC):
    """Abstract bidirectional message channel."""

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """Send one outbound message. May raise if the channel is broken."""

    @abstractmethod
    async def receive(self) -> Optional[Any]:
        """Return the next inbound message, or ``None`` once the channel closed."""

    async def close(self) -> None:
        """Close the channel."""


class QueueTransport(BaseTransport):
    """
    In-process transport backed by two asyncio queues.

    The controlling side uses ``post`` / ``close_inbox`` to feed messages in
    and ``next_outbound`` / ``drain_outbound`` to read what the worker sent.
    """

    def __init__(self) -> None:
        self._inbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def post(self, message: Any) -> None:
        """Queue an inbound message for the worker."""
        self._inbox.put_nowait(message)

    def close_inbox(self) -> None:
        """Signal end of input; ``receive`` returns ``None`` afterwards."""
        self._inbox.put_nowait(_CLOSED)

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionError("transport is closed")
        self._outbox.put_nowait(message)

    async def receive(self) -> Optional[Any]:
        if self._closed:
            return None
        message = await self._inbox.get()
        if message is _CLOSED:
            return None
        return message

    async def next_outbound(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait for the next message the worker sent."""
        return await asyncio.wait_for(self._outbox.get(), timeout)

    def drain_outbound(self) -> List[Dict[str, Any]]:
        """Return (and remove) every message sent so far."""
        messages = []
        while not self._outbox.empty():
            messages.append(self._outbox.get_nowait())
        return messages

    async def close(self) -> None:
        self._closed = True
        self._inbox.put_nowait(_CLOSED)


class JsonLinesTransport(BaseTransport):
    """
    Newline-delimited JSON over a pair of text streams.

    Lines that are not valid JSON are answered directly with a
    ``ValidationError`` response and skipped.
    """

    def __init__(self, reader: Optional[TextIO] = None, writer: Optional[TextIO] = None) -> None:
        self._reader = reader or sys.stdin
        self._writer = writer or sys.stdout
        self._write_lock = asyncio.Lock()
        self._closed = False

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise ConnectionError("transport is closed")
        line = json.dumps(message, ensure_ascii=False)
        async with self._write_lock:
            self._writer.write(line + "\n")
            self._writer.flush()

    async def receive(self) -> Optional[Any]:
        while not self._closed:
            line = await asyncio.to_thread(self._reader.readline)
            if line == "":
                return None
            line = line.strip()
            if not line:
                continue
            try:
                return json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("[Transport] Ignoring malformed line (%d chars): %s", len(line), exc)
                error = RequestValidationError(f"message is not valid JSON: {exc.msg}")
                await self.send(WorkerResponse.failure(None, error).to_dict())
        return None

    async def close(self) -> None:
        self._closed = True
