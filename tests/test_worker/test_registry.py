"""
Tests for CorrelationRegistry.
"""

import asyncio

import pytest

from inference_worker.errors import DuplicateCorrelationIdError, ModelNotLoadedError
from inference_worker.protocol.messages import (
    RequestKind,
    ResponseKind,
    StreamChunk,
    WorkerResponse,
)
from inference_worker.worker.registry import CorrelationRegistry


def _chunk(cid, index, complete=False):
    return WorkerResponse.ok(
        ResponseKind.STREAM_CHUNK, cid, StreamChunk("", index, is_complete=complete)
    )


def test_register_and_sweep():
    registry = CorrelationRegistry()
    token = registry.register("a", RequestKind.INFER)

    assert "a" in registry
    assert len(registry) == 1
    assert registry.get("a") is token
    assert token.task is None  # bound by the dispatcher when the request runs

    assert registry.sweep(token) is True
    assert "a" not in registry
    assert registry.sweep(token) is False
    assert registry.sweep("a") is False


def test_sweep_by_id():
    registry = CorrelationRegistry()
    registry.register("a", RequestKind.EMBED)
    assert registry.sweep("a") is True
    assert len(registry) == 0


def test_duplicate_in_flight_id_is_rejected():
    registry = CorrelationRegistry()
    registry.register("dup", RequestKind.INFER)

    with pytest.raises(DuplicateCorrelationIdError) as exc_info:
        registry.register("dup", RequestKind.EMBED)
    assert exc_info.value.code == "ValidationError"


def test_id_can_be_reused_after_sweep():
    registry = CorrelationRegistry()
    first = registry.register("x", RequestKind.INFER)
    registry.sweep(first)
    second = registry.register("x", RequestKind.INFER)
    assert second is not first
    assert registry.get("x") is second


def test_anonymous_requests_get_distinct_keys():
    registry = CorrelationRegistry()
    a = registry.register(None, RequestKind.INFER)
    b = registry.register(None, RequestKind.INFER)

    assert a.anonymous and b.anonymous
    assert a.key != b.key
    assert a.key.startswith("anon-")
    assert len(registry) == 2


def test_resolve_drops_everything_after_terminal():
    registry = CorrelationRegistry()
    token = registry.register("s", RequestKind.STREAM_INFER)

    assert registry.resolve(token, _chunk("s", 0)) is True
    assert registry.resolve(token, _chunk("s", 1)) is True
    assert token.terminal is False
    assert registry.resolve(token, _chunk("s", 2, complete=True)) is True
    assert token.terminal is True

    # late error or duplicate completion: no-op
    assert registry.resolve(token, WorkerResponse.failure("s", ModelNotLoadedError("x"))) is False
    assert registry.resolve(token, _chunk("s", 2, complete=True)) is False
    assert token.emitted == 3


def test_cancel_marks_token():
    registry = CorrelationRegistry()
    token = registry.register("c", RequestKind.INFER)

    assert registry.cancel("c") is True
    assert token.cancelled is True
    assert token.notify_on_cancel is True
    # already cancelled
    assert registry.cancel("c") is False
    assert registry.cancel("missing") is False


def test_cancel_terminal_request_is_noop():
    registry = CorrelationRegistry()
    token = registry.register("t", RequestKind.INFER)
    registry.resolve(token, WorkerResponse.ok(ResponseKind.INFER_RESULT, "t", None))
    assert registry.cancel("t") is False


def test_cancel_all_is_silent_by_default():
    registry = CorrelationRegistry()
    tokens = [registry.register(f"r{i}", RequestKind.EMBED) for i in range(3)]
    registry.register(None, RequestKind.INFER)

    assert registry.cancel_all() == 4
    assert all(t.cancelled and not t.notify_on_cancel for t in tokens)
    assert registry.cancel_all() == 0


@pytest.mark.asyncio
async def test_cancel_cancels_running_task():
    registry = CorrelationRegistry()
    token = registry.register("long", RequestKind.INFER)
    started = asyncio.Event()

    async def request():
        token.task = asyncio.current_task()
        started.set()
        await asyncio.sleep(3600)

    task = asyncio.create_task(request())
    await started.wait()

    assert registry.cancel("long", notify=False) is True
    with pytest.raises(asyncio.CancelledError):
        await task


def test_cancel_before_task_is_bound_only_marks_token():
    registry = CorrelationRegistry()
    token = registry.register("queued", RequestKind.EMBED)

    assert registry.cancel("queued") is True
    assert token.cancelled is True
    assert token.task is None
    assert "queued" in registry
