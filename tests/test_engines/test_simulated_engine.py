"""Tests for SimulatedComputeEngine."""

import numpy as np
import pytest

from inference_worker.engines.simulated import (
    CANNED_REPLIES,
    LOAD_STAGES,
    STREAM_REPLY,
    SimulatedComputeEngine,
    string_hash,
)


@pytest.fixture
def engine():
    return SimulatedComputeEngine(latency_scale=0, embedding_dimension=16, seed=42)


def test_string_hash():
    assert string_hash("") == 0
    assert string_hash("a") == 97
    assert string_hash("ab") == 97 * 31 + 98
    # wraps like a signed 32-bit integer and is made non-negative
    assert string_hash("x" * 50) >= 0


@pytest.mark.asyncio
async def test_load_reports_stages(engine):
    details = await engine.load("models/demo", {})
    assert details == {"stages": len(LOAD_STAGES), "embeddingDimension": 16}


@pytest.mark.asyncio
async def test_infer_returns_canned_reply(engine):
    await engine.load("models/demo", {})
    reply = await engine.infer("hello", {})
    assert reply in CANNED_REPLIES


@pytest.mark.asyncio
async def test_seeded_replies_are_reproducible():
    a = SimulatedComputeEngine(latency_scale=0, seed=3)
    b = SimulatedComputeEngine(latency_scale=0, seed=3)
    assert [await a.infer("q", {}) for _ in range(5)] == [await b.infer("q", {}) for _ in range(5)]


@pytest.mark.asyncio
async def test_embedding_is_deterministic_unit_vector(engine):
    first = await engine.embed("hello world")
    second = await engine.embed("hello world")
    other = await engine.embed("goodbye")

    assert first == second
    assert first != other
    assert len(first) == 16
    assert np.linalg.norm(first) == pytest.approx(1.0)
    assert all(-1.0 <= v <= 1.0 for v in first)


@pytest.mark.asyncio
async def test_stream_yields_reply_characters(engine):
    fragments = [f async for f in engine.stream_infer("hi", {})]
    assert "".join(fragments) == STREAM_REPLY
    assert all(len(f) == 1 for f in fragments)


@pytest.mark.asyncio
async def test_unload(engine):
    await engine.load("models/demo", {})
    await engine.unload()
    assert engine._model_path is None


def test_engine_name(engine):
    assert engine.get_engine_name() == "simulated"
