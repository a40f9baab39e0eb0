"""
Correlation Registry - tracks in-flight requests.

Each dispatched request is registered under its correlation id (or an
anonymous key when the caller sent none). Outbound responses pass through
``resolve`` so that nothing is ever sent after a terminal response, and
``sweep`` releases the entry exactly once.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..errors import DuplicateCorrelationIdError
from ..protocol.messages import RequestKind, WorkerResponse
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RequestToken:
    """Book-keeping for one in-flight request."""

    correlation_id: Optional[str]
    kind: RequestKind
    key: str
    registered_at: float = field(default_factory=time.monotonic)
    task: Optional["asyncio.Task"] = None  # set once the request starts running
    cancelled: bool = False
    notify_on_cancel: bool = True
    terminal: bool = False
    released: bool = False
    emitted: int = 0

    @property
    def anonymous(self) -> bool:
        return self.correlation_id is None

    @property
    def age_ms(self) -> float:
        return (time.monotonic() - self.registered_at) * 1000


class CorrelationRegistry:
    """
    Registry of in-flight requests keyed by correlation id.

    All methods are synchronous and are only ever called from the worker's
    event loop, so no locking is needed.
    """

    def __init__(self) -> None:
        self._active: Dict[str, RequestToken] = {}

    def register(self, correlation_id: Optional[str], kind: RequestKind) -> RequestToken:
        """
        Start tracking a request.

        Registration happens before the request's task runs, so a cancel
        can arrive while ``token.task`` is still ``None``; the task checks
        ``token.cancelled`` when it starts.

        Args:
            correlation_id: Caller-supplied id, or ``None`` for
                fire-and-forget requests.
            kind: Kind of the originating request.

        Returns:
            The token to pass to ``resolve`` and ``sweep``.

        Raises:
            DuplicateCorrelationIdError: *correlation_id* is already in flight.
        """
        if correlation_id is None:
            key = f"anon-{uuid.uuid4().hex}"
        else:
            if correlation_id in self._active:
                raise DuplicateCorrelationIdError(
                    f"correlation id {correlation_id!r} is already in flight",
                    details={"correlationId": correlation_id},
                )
            key = correlation_id

        token = RequestToken(correlation_id=correlation_id, kind=kind, key=key)
        self._active[key] = token
        logger.debug("[Registry] Registered %s (%s)", key, kind.value)
        return token

    def resolve(self, token: RequestToken, response: WorkerResponse) -> bool:
        """
        Record an outbound response for *token*.

        Returns:
            ``True`` if the response may be sent. Once a terminal response
            has been resolved, later calls are no-ops returning ``False``.
        """
        if token.terminal:
            logger.debug(
                "[Registry] Dropping %s for %s: request already terminal",
                response.kind.value,
                token.key,
            )
            return False
        token.emitted += 1
        if response.is_terminal:
            token.terminal = True
        return True

    def sweep(self, token_or_id: Union[RequestToken, str]) -> bool:
        """
        Release a request's entry.

        Returns:
            ``True`` the first time, ``False`` on every later call.
        """
        if isinstance(token_or_id, RequestToken):
            token = token_or_id
        else:
            token = self._active.get(token_or_id)
            if token is None:
                return False
        if token.released:
            return False
        token.released = True
        token.task = None
        if self._active.get(token.key) is token:
            del self._active[token.key]
        logger.debug("[Registry] Released %s after %.1fms", token.key, token.age_ms)
        return True

    def get(self, correlation_id: str) -> Optional[RequestToken]:
        return self._active.get(correlation_id)

    def cancel(self, correlation_id: str, notify: bool = True) -> bool:
        """
        Cancel an in-flight request.

        Args:
            correlation_id: Id of the request to cancel.
            notify: Send a ``RequestCancelled`` error as the terminal
                response. Pass ``False`` when the controlling side is gone.

        Returns:
            ``True`` if a live request was found and cancelled.
        """
        token = self._active.get(correlation_id)
        if token is None or token.terminal or token.cancelled:
            return False
        self._cancel_token(token, notify)
        return True

    def cancel_all(self, notify: bool = False) -> int:
        """Cancel every in-flight request; returns how many were cancelled."""
        count = 0
        for token in list(self._active.values()):
            if not token.terminal and not token.cancelled:
                self._cancel_token(token, notify)
                count += 1
        return count

    def _cancel_token(self, token: RequestToken, notify: bool) -> None:
        token.cancelled = True
        token.notify_on_cancel = notify
        if token.task is not None and not token.task.done():
            token.task.cancel()
        logger.info("[Registry] Cancelled %s (notify=%s)", token.key, notify)

    def in_flight(self) -> List[RequestToken]:
        return list(self._active.values())

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._active
