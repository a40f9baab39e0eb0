"""
Inference Worker - Core Package

Runs long-running model operations (load, unload, inference, embedding,
streaming inference) on an isolated asyncio worker that talks to its
controlling side through messages.

This package provides:
- Wire protocol: request/response messages and validation
- Worker core: lifecycle state machine, correlation registry, streaming
- Compute engine abstraction (simulated and OpenAI-compatible engines)
- Transports: in-process queues and JSON lines over stdio
"""

__version__ = "0.1.0"

from .config import WorkerConfig
from .engines import BaseComputeEngine, EngineFactory
from .worker import WorkerSession

from . import engines
from . import protocol
from . import transport
from . import utils
from . import worker

__all__ = [
    "BaseComputeEngine",
    "EngineFactory",
    "WorkerConfig",
    "WorkerSession",
    "engines",
    "protocol",
    "transport",
    "utils",
    "worker",
]
