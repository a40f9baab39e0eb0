"""
Simulated compute engine.

Stands in for a real model runtime: loading walks through a fixed list of
stages, inference returns canned replies, embeddings are deterministic
pseudo-random unit vectors and streaming emits a fixed reply one character
at a time. Every delay is multiplied by ``latency_scale`` so tests can run
it at ``latency_scale=0``.

Typical usage:

    engine = SimulatedComputeEngine(latency_scale=0.1)
    await engine.load("models/demo", {})
    reply = await engine.infer("hi", {})
"""

import asyncio
import random
from typing import Any, AsyncIterator, Dict, List, Optional

import numpy as np

from .base import BaseComputeEngine
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

LOAD_STAGES = [
    "Reading model files",
    "Parsing model structure",
    "Initializing runtime",
    "Loading model parameters",
    "Optimizing compute graph",
    "Preparing inference tasks",
]

CANNED_REPLIES = [
    "Hello, I'm your assistant. Could you describe your question?",
    "That's an interesting topic. We can look at it from a few angles...",
    "For your question I'd suggest a few steps:\n"
    "1. Analyse the root cause\n"
    "2. Draft a detailed plan\n"
    "3. Evaluate the result after rollout",
    "Thanks for the detailed description. Let's go through the system, "
    "the business side and operations...",
    "To help you better I can offer some concrete suggestions. Start by "
    "fixing the goal, then move through the plan step by step.",
]

STREAM_REPLY = "Hello, I'm your assistant. I can help you; here is a detailed explanation with suggestions."


def string_hash(text: str) -> int:
    """Deterministic 32-bit string hash (``h = h * 31 + ord(c)``), made non-negative."""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


class SimulatedComputeEngine(BaseComputeEngine):
    """Placeholder engine with realistic timing and no real model behind it."""

    def __init__(
        self,
        latency_scale: float = 1.0,
        embedding_dimension: int = 384,
        seed: Optional[int] = None,
    ) -> None:
        """
        Args:
            latency_scale: Multiplier for all simulated delays.
            embedding_dimension: Length of the vectors returned by ``embed``.
            seed: Seed for reply selection and jitter (``None`` = random).
        """
        self.latency_scale = latency_scale
        self.embedding_dimension = embedding_dimension
        self._rng = random.Random(seed)
        self._model_path: Optional[str] = None

    async def _sleep(self, low: float, high: float) -> None:
        delay = self._rng.uniform(low, high) * self.latency_scale
        # Always yield once so callers observe a real suspension point.
        await asyncio.sleep(delay if delay > 0 else 0)

    async def load(self, path: str, config: Dict[str, Any]) -> Dict[str, Any]:
        total = self._rng.uniform(2.0, 5.0) * self.latency_scale
        logger.info("[Simulated] Loading '%s', expected %.0fms", path, total * 1000)
        stage_time = total / len(LOAD_STAGES)
        for i, stage in enumerate(LOAD_STAGES, 1):
            await asyncio.sleep(stage_time)
            logger.debug("[Simulated] %s... (%d/%d)", stage, i, len(LOAD_STAGES))
        self._model_path = path
        return {"stages": len(LOAD_STAGES), "embeddingDimension": self.embedding_dimension}

    async def unload(self) -> None:
        await asyncio.sleep(0.5 * self.latency_scale)
        logger.info("[Simulated] Unloaded '%s'", self._model_path)
        self._model_path = None

    async def infer(self, prompt: str, config: Dict[str, Any]) -> str:
        await self._sleep(1.0, 3.0)
        return self._rng.choice(CANNED_REPLIES)

    async def embed(self, text: str) -> List[float]:
        await self._sleep(0.2, 0.7)
        seed = string_hash(text)
        # sin-based generator keeps vectors reproducible across platforms
        x = np.sin(np.arange(seed, seed + self.embedding_dimension, dtype=np.float64)) * 10000
        vector = (x - np.floor(x)) * 2 - 1
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    async def stream_infer(self, prompt: str, config: Dict[str, Any]) -> AsyncIterator[str]:
        for ch in STREAM_REPLY:
            await self._sleep(0.05, 0.15)
            yield ch

    def get_engine_name(self) -> str:
        return "simulated"
