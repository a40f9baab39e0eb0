"""
Worker Session - one explicit, constructible worker instance.

A session owns the lifecycle manager, the correlation registry, the stream
emitter and the dispatcher, and wires them to a transport. Nothing is kept
in module globals: create a session, feed it messages, close it.

Usage:
    engine = SimulatedComputeEngine(latency_scale=0)
    transport = QueueTransport()

    async with WorkerSession(engine, transport) as session:
        session.on_receive({"kind": "loadModel", "correlationId": "1", "modelPath": "m1"})
        print(await transport.next_outbound())
        print(session.get_status())
"""

import asyncio
import time
from typing import Any, Dict, Optional, Set

from ..config import WorkerConfig
from ..engines.base import BaseComputeEngine
from ..errors import ChannelSendFailure, WorkerError
from ..protocol.messages import WorkerResponse
from ..transport.transports import BaseTransport
from ..utils.logging_config import get_logger
from .dispatcher import RequestDispatcher
from .lifecycle import Loaded, ModelLifecycleManager
from .registry import CorrelationRegistry, RequestToken
from .streaming import StreamEmitter

logger = get_logger(__name__)


class WorkerSession:
    """
    Runs the worker protocol for one controlling side.

    Every inbound message becomes its own task, so a long load or stream
    never blocks other requests. Outbound messages all pass through
    ``_deliver``, which consults the registry before touching the
    transport.
    """

    def __init__(
        self,
        engine: BaseComputeEngine,
        transport: Optional[BaseTransport] = None,
        config: Optional[WorkerConfig] = None,
    ) -> None:
        """
        Args:
            engine: Compute engine doing the model work.
            transport: Channel for outbound (and, with ``serve``, inbound)
                messages.
            config: Worker settings; defaults are used when omitted.
        """
        self.config = config or WorkerConfig()
        self.engine = engine
        self.transport = transport
        self.lifecycle = ModelLifecycleManager(engine, policy=self.config.lifecycle_policy)
        self.registry = CorrelationRegistry()
        self.emitter = StreamEmitter(self._deliver, chunk_interval=self.config.stream_chunk_interval)
        self.dispatcher = RequestDispatcher(
            lifecycle=self.lifecycle,
            engine=engine,
            registry=self.registry,
            emitter=self.emitter,
            deliver=self._deliver,
            require_stream_correlation_id=self.config.require_stream_correlation_id,
        )
        self.send_failures = 0
        self._tasks: Set[asyncio.Task] = set()
        self._started_at = time.monotonic()
        self._closed = False
        logger.info(
            "[Session] Initialized (engine=%s, policy=%s)",
            engine.get_engine_name(),
            self.lifecycle.policy,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_receive(self, message: Any) -> asyncio.Task:
        """
        Dispatch one inbound message as an independent task.

        The message is validated and registered before this returns, so its
        correlation id can be cancelled right away. Must be called from
        within the running event loop.

        Returns:
            The task handling the message (useful for awaiting in tests).
        """
        if self._closed:
            raise RuntimeError("WorkerSession is closed")
        try:
            request, token = self.dispatcher.admit(message)
        except WorkerError as exc:
            coro = self.dispatcher.reject(message, exc)
        else:
            coro = self.dispatcher.run(request, token)
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def serve(self) -> None:
        """Pump messages from the transport until it closes, then drain."""
        if self.transport is None:
            raise RuntimeError("WorkerSession.serve() needs a transport")
        logger.info("[Session] Serving")
        while not self._closed:
            message = await self.transport.receive()
            if message is None:
                break
            self.on_receive(message)
        logger.info("[Session] Input closed, draining %d request(s)", len(self._tasks))
        await self.drain()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _deliver(self, token: Optional[RequestToken], response: WorkerResponse) -> bool:
        """Send *response* unless its request is already terminal.

        Returns ``True`` if the message reached the transport. Send errors
        are logged as ``ChannelSendFailure`` and not retried.
        """
        if token is not None and not self.registry.resolve(token, response):
            return False
        if self.transport is None:
            logger.warning("[Session] No transport; dropping %s", response.kind.value)
            return False
        try:
            await self.transport.send(response.to_dict())
        except Exception as exc:  # noqa: BLE001 - a broken channel must not kill the request
            failure = ChannelSendFailure(
                f"failed to send {response.kind.value}: {exc}",
                details={"correlationId": response.correlation_id},
            )
            self.send_failures += 1
            logger.error("[Session] %s: %s", failure.code, failure.message)
            return False
        return True

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, correlation_id: str, notify: bool = True) -> bool:
        """
        Cancel the in-flight request *correlation_id*.

        With ``notify`` the request's terminal response is a
        ``RequestCancelled`` error; without it nothing more is sent.
        """
        return self.registry.cancel(correlation_id, notify=notify)

    def on_peer_gone(self) -> int:
        """The controlling side disappeared: stop every request silently."""
        count = self.registry.cancel_all(notify=False)
        if count:
            logger.warning("[Session] Peer gone; cancelled %d request(s)", count)
        return count

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """
        Synchronous snapshot of the worker state. Never raises.

        Returns:
            ``modelLoaded``, ``modelPath`` and ``loadTime`` (epoch ms) when
            loaded, ``uptime`` (ms since the model was loaded, 0 when not
            loaded), ``state``, ``inFlight`` and ``sessionUptime`` (ms).
        """
        try:
            state = self.lifecycle.state
            now_ms = int(time.time() * 1000)
            status: Dict[str, Any] = {
                "modelLoaded": isinstance(state, Loaded),
                "uptime": 0,
                "state": state.name,
                "inFlight": len(self.registry),
                "sessionUptime": int((time.monotonic() - self._started_at) * 1000),
            }
            if isinstance(state, Loaded):
                status["modelPath"] = state.path
                status["loadTime"] = state.loaded_at
                status["uptime"] = max(0, now_ms - state.loaded_at)
            return status
        except Exception:  # noqa: BLE001 - status must always answer
            logger.exception("[Session] Failed to build status")
            return {"modelLoaded": False, "uptime": 0}

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait until every dispatched request has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """
        Tear the session down: cancel in-flight requests, unload the model,
        close the engine and the transport. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        # running requests are cancelled; queued ones see the flag and stop
        self.registry.cancel_all(notify=False)
        await self.drain()

        try:
            await self.lifecycle.unload_model()
        except WorkerError as exc:
            logger.warning("[Session] Unload during close failed: %s", exc.message)
        await self.engine.close()
        if self.transport is not None:
            await self.transport.close()
        logger.info("[Session] Closed (send failures: %d)", self.send_failures)

    async def __aenter__(self) -> "WorkerSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
