"""
Model Lifecycle Manager - owns the worker's single model state.

``ModelState`` is the only shared mutable resource in the worker. It is
changed exclusively here, and every change runs under one ``asyncio.Lock``
so that load and unload never interleave. Reads are lock-free and always
see the last committed state.

Inference-class handlers take a ``Loaded`` snapshot with ``require_loaded``
and, after every suspension point, re-validate it with ``is_current`` /
``ensure_current`` before using the result.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from ..engines.base import BaseComputeEngine
from ..errors import (
    ComputeEngineFailure,
    ConcurrentLifecycleOperationError,
    ModelNotLoadedError,
)
from ..protocol.messages import LoadInfo
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

POLICY_QUEUE = "queue"
POLICY_REJECT = "reject"


@dataclass(frozen=True)
class Unloaded:
    name = "unloaded"


@dataclass(frozen=True)
class Loading:
    path: str
    name = "loading"


@dataclass(frozen=True)
class Loaded:
    path: str
    config: Dict[str, Any] = field(default_factory=dict, compare=False)
    loaded_at: int = 0  # epoch milliseconds
    generation: int = 0
    name = "loaded"


@dataclass(frozen=True)
class Unloading:
    path: Optional[str] = None
    name = "unloading"


ModelState = Union[Unloaded, Loading, Loaded, Unloading]

UNLOADED = Unloaded()


def _now_ms() -> int:
    return int(time.time() * 1000)


class ModelLifecycleManager:
    """
    Serializes model load/unload and exposes the committed state.

    Overlapping lifecycle calls are handled according to ``policy``:

    - ``queue`` (default): the call waits for the in-flight one to finish,
      then runs.
    - ``reject``: the call fails immediately with
      ``ConcurrentLifecycleOperationError``.

    Engine failures (and cancellation) during a transition always leave the
    state ``Unloaded``.
    """

    def __init__(self, engine: BaseComputeEngine, policy: str = POLICY_QUEUE) -> None:
        if policy not in (POLICY_QUEUE, POLICY_REJECT):
            raise ValueError(f"Unknown lifecycle policy: {policy}")
        self._engine = engine
        self._policy = policy
        self._lock = asyncio.Lock()
        self._state: ModelState = UNLOADED
        self._generation = 0

    # ------------------------------------------------------------------
    # Lock-free reads
    # ------------------------------------------------------------------

    @property
    def policy(self) -> str:
        return self._policy

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    @property
    def current_path(self) -> Optional[str]:
        state = self._state
        return state.path if isinstance(state, Loaded) else None

    @property
    def loaded_at(self) -> Optional[int]:
        state = self._state
        return state.loaded_at if isinstance(state, Loaded) else None

    @property
    def busy(self) -> bool:
        """True while a load or unload is in flight or queued."""
        return self._lock.locked()

    def require_loaded(self) -> Loaded:
        """Return the current ``Loaded`` snapshot or raise ``ModelNotLoadedError``."""
        state = self._state
        if not isinstance(state, Loaded):
            raise ModelNotLoadedError(
                "model is not loaded", details={"state": state.name}
            )
        return state

    def is_current(self, snapshot: Loaded) -> bool:
        """True if *snapshot* is still the committed state."""
        return self._state is snapshot

    def ensure_current(self, snapshot: Loaded) -> None:
        """Raise ``ModelNotLoadedError`` if the model changed since *snapshot*."""
        if not self.is_current(snapshot):
            raise ModelNotLoadedError(
                f"model '{snapshot.path}' was unloaded while the request was running",
                details={"state": self._state.name},
            )

    # ------------------------------------------------------------------
    # Serialized transitions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _serialized(self, operation: str):
        if self._policy == POLICY_REJECT and self._lock.locked():
            raise ConcurrentLifecycleOperationError(
                f"cannot {operation}: another lifecycle operation is in progress",
                details={"operation": operation, "state": self._state.name},
            )
        if self._lock.locked():
            logger.info("[Lifecycle] %s queued behind in-flight operation", operation)
        async with self._lock:
            yield

    async def load_model(self, path: str, config: Optional[Dict[str, Any]] = None) -> LoadInfo:
        """
        Load *path*, unloading any current model first.

        Args:
            path: Model location passed to the engine.
            config: Load-time options; kept with the ``Loaded`` state and used
                as defaults for later inference requests.

        Returns:
            ``LoadInfo`` describing the loaded model.

        Raises:
            ConcurrentLifecycleOperationError: Under the ``reject`` policy.
            ComputeEngineFailure: The engine failed; state is ``Unloaded``.
        """
        config = dict(config or {})
        async with self._serialized("load model"):
            if not isinstance(self._state, Unloaded):
                logger.info("[Lifecycle] Implicit unload of '%s' before load", self.current_path)
                await self._unload_locked()

            logger.info("[Lifecycle] Loading model: %s", path)
            self._state = Loading(path)
            started = time.monotonic()
            try:
                details = await self._engine.load(path, config)
            except asyncio.CancelledError:
                self._state = UNLOADED
                logger.warning("[Lifecycle] Load of '%s' cancelled", path)
                raise
            except Exception as exc:
                self._state = UNLOADED
                logger.error("[Lifecycle] Load of '%s' failed: %s", path, exc)
                raise ComputeEngineFailure.from_exception(exc, "load") from exc

            self._generation += 1
            loaded = Loaded(
                path=path,
                config=config,
                loaded_at=_now_ms(),
                generation=self._generation,
            )
            self._state = loaded
            duration_ms = (time.monotonic() - started) * 1000
            logger.info("[Lifecycle] Model loaded: %s (%.1fms)", path, duration_ms)
            return LoadInfo(
                model_path=path,
                load_time=loaded.loaded_at,
                load_duration_ms=duration_ms,
                engine=self._engine.get_engine_name(),
                details=dict(details or {}),
            )

    async def unload_model(self) -> bool:
        """
        Unload the current model.

        Returns:
            ``True`` if a model was unloaded, ``False`` if nothing was loaded
            (no engine call is made in that case).

        Raises:
            ConcurrentLifecycleOperationError: Under the ``reject`` policy.
            ComputeEngineFailure: The engine failed; state is ``Unloaded``.
        """
        async with self._serialized("unload model"):
            if isinstance(self._state, Unloaded):
                logger.debug("[Lifecycle] Unload requested with no model loaded")
                return False
            await self._unload_locked()
            return True

    async def _unload_locked(self) -> None:
        path = self.current_path
        self._state = Unloading(path)
        try:
            await self._engine.unload()
        except asyncio.CancelledError:
            self._state = UNLOADED
            raise
        except Exception as exc:
            self._state = UNLOADED
            logger.error("[Lifecycle] Unload of '%s' failed: %s", path, exc)
            raise ComputeEngineFailure.from_exception(exc, "unload") from exc
        self._state = UNLOADED
        logger.info("[Lifecycle] Model unloaded: %s", path)
