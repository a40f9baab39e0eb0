"""Tests for EngineFactory."""

import pytest

from inference_worker.config import WorkerConfig
from inference_worker.engines.base import BaseComputeEngine
from inference_worker.engines.factory import EngineFactory
from inference_worker.engines.openai_compatible import OpenAICompatibleEngine
from inference_worker.engines.simulated import SimulatedComputeEngine


def test_get_available_engines():
    assert EngineFactory.get_available_engines() == ["simulated", "openai"]


def test_create_simulated_uses_config():
    factory = EngineFactory(WorkerConfig(latency_scale=0.5, embedding_dimension=32))
    engine = factory.create("simulated")

    assert isinstance(engine, SimulatedComputeEngine)
    assert isinstance(engine, BaseComputeEngine)
    assert engine.latency_scale == 0.5
    assert engine.embedding_dimension == 32


def test_create_is_case_insensitive():
    assert isinstance(EngineFactory().create("Simulated"), SimulatedComputeEngine)


def test_create_openai_requires_base_url():
    with pytest.raises(ValueError, match="OPENAI_BASE_URL"):
        EngineFactory().create("openai")


@pytest.mark.asyncio
async def test_create_openai_from_config():
    config = WorkerConfig(engine="openai", openai_base_url="http://localhost:8000/v1")
    engine = EngineFactory(config).create_from_config()

    assert isinstance(engine, OpenAICompatibleEngine)
    assert engine.get_engine_name() == "openai"
    await engine.close()


def test_unknown_engine():
    with pytest.raises(ValueError, match="Unknown engine"):
        EngineFactory().create("tensorrt")
