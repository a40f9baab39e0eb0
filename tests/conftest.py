"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from inference_worker.config import WorkerConfig
from inference_worker.engines.base import BaseComputeEngine
from inference_worker.transport.transports import QueueTransport
from inference_worker.worker.session import WorkerSession


class ScriptedEngine(BaseComputeEngine):
    """
    Compute engine whose behaviour is scripted by the test.

    - ``gates[op]``: an ``asyncio.Event`` the operation waits on
      (ops: ``load``, ``unload``, ``infer``, ``embed``, ``stream``)
    - ``fail[op]``: an exception the operation raises
    - ``stream_fail_after``: raise after this many fragments
    - ``stream_gate_at``: index of the first fragment held by ``gates["stream"]``
    """

    def __init__(
        self,
        reply: str = "Hello there, how can I help?",
        fragments: Optional[List[str]] = None,
        embedding: Optional[List[float]] = None,
    ):
        self.reply = reply
        self.fragments = list(fragments) if fragments is not None else ["The ", "quick ", "brown ", "fox."]
        self.embedding = embedding if embedding is not None else [0.6, 0.8]
        self.calls: List[str] = []
        self.fail: Dict[str, BaseException] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.stream_fail_after: Optional[int] = None
        self.stream_gate_at = 0
        self.stream_closed = False
        self.active_loads = 0
        self.max_active_loads = 0
        self.last_config: Optional[Dict[str, Any]] = None
        self.closed = False

    async def _enter(self, op: str) -> None:
        self.calls.append(op)
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if op in self.fail:
            raise self.fail[op]

    async def load(self, path: str, config: Dict[str, Any]) -> Dict[str, Any]:
        self.active_loads += 1
        self.max_active_loads = max(self.max_active_loads, self.active_loads)
        try:
            await self._enter("load")
        finally:
            self.active_loads -= 1
        return {"path": path}

    async def unload(self) -> None:
        await self._enter("unload")

    async def infer(self, prompt: str, config: Dict[str, Any]) -> str:
        self.last_config = config
        await self._enter("infer")
        return self.reply

    async def embed(self, text: str) -> List[float]:
        await self._enter("embed")
        return list(self.embedding)

    async def stream_infer(self, prompt: str, config: Dict[str, Any]):
        self.calls.append("stream_infer")
        self.last_config = config
        try:
            for i, fragment in enumerate(self.fragments):
                if self.stream_fail_after is not None and i >= self.stream_fail_after:
                    raise RuntimeError("engine crashed mid-stream")
                gate = self.gates.get("stream")
                if gate is not None and i >= self.stream_gate_at:
                    await gate.wait()
                else:
                    await asyncio.sleep(0)
                yield fragment
        finally:
            self.stream_closed = True

    def get_engine_name(self) -> str:
        return "scripted"

    async def close(self) -> None:
        self.closed = True


class BrokenTransport(QueueTransport):
    """Transport whose sends always fail."""

    async def send(self, message):
        raise BrokenPipeError("pipe closed")


async def settle(rounds: int = 5) -> None:
    """Let other tasks run for a few event-loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def engine():
    """A scripted engine with default replies."""
    return ScriptedEngine()


@pytest.fixture
def transport():
    """An in-process queue transport."""
    return QueueTransport()


@pytest.fixture
def worker_config():
    """Default worker settings."""
    return WorkerConfig()


@pytest.fixture
def session(engine, transport, worker_config):
    """A worker session wired to the scripted engine and queue transport."""
    return WorkerSession(engine, transport, worker_config)


@pytest.fixture
def call(session, transport):
    """
    Fixture returning a coroutine that dispatches one message, waits for it
    to finish and returns everything the worker sent meanwhile.
    """
    async def _call(message: Any) -> List[Dict[str, Any]]:
        await session.on_receive(message)
        return transport.drain_outbound()

    return _call


@pytest.fixture
def load_message():
    def _make(path: str = "m1", correlation_id: Optional[str] = "load-1", **extra):
        message = {"kind": "loadModel", "modelPath": path, **extra}
        if correlation_id is not None:
            message["correlationId"] = correlation_id
        return message

    return _make
