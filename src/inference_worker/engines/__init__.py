"""
Compute engines.

The worker core calls into an engine for the real model work. All engines
implement ``BaseComputeEngine``.
"""

from .base import BaseComputeEngine
from .factory import EngineFactory
from .openai_compatible import OpenAICompatibleEngine
from .simulated import SimulatedComputeEngine

__all__ = [
    "BaseComputeEngine",
    "EngineFactory",
    "OpenAICompatibleEngine",
    "SimulatedComputeEngine",
]
