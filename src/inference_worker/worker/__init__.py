"""
Worker core.

- ``CorrelationRegistry``: in-flight request tracking
- ``ModelLifecycleManager``: the model state machine
- ``StreamEmitter``: ordered chunk emission
- ``RequestDispatcher``: validation and routing
- ``WorkerSession``: owns all of the above for one controlling side
"""

from .dispatcher import RequestDispatcher
from .lifecycle import (
    Loaded,
    Loading,
    ModelLifecycleManager,
    ModelState,
    Unloaded,
    Unloading,
)
from .registry import CorrelationRegistry, RequestToken
from .session import WorkerSession
from .streaming import StreamEmitter, StreamSummary

__all__ = [
    "CorrelationRegistry",
    "Loaded",
    "Loading",
    "ModelLifecycleManager",
    "ModelState",
    "RequestDispatcher",
    "RequestToken",
    "StreamEmitter",
    "StreamSummary",
    "Unloaded",
    "Unloading",
    "WorkerSession",
]
