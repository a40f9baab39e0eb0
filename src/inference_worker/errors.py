"""
Error taxonomy for the inference worker.

Every failure a request can meet is represented by a ``WorkerError``
subclass carrying a stable ``code``. The dispatcher turns any of them into a
terminal ``error`` response, so callers can switch on the code instead of
parsing messages.
"""

from typing import Any, Dict, Optional


class WorkerError(Exception):
    """Base class for all worker errors."""

    code = "WorkerError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation used in the ``error`` field of a response."""
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class RequestValidationError(WorkerError):
    """Malformed message or missing required field. Never touches state."""

    code = "ValidationError"


class DuplicateCorrelationIdError(RequestValidationError):
    """The correlation id is already used by an in-flight request."""


class ModelNotLoadedError(WorkerError):
    """Inference-class request issued while no model is loaded."""

    code = "ModelNotLoaded"


class ConcurrentLifecycleOperationError(WorkerError):
    """A load/unload was issued while another one was in flight."""

    code = "ConcurrentLifecycleOperation"


class UnknownMessageKindError(WorkerError):
    code = "UnknownMessageKind"


class ChannelSendFailure(WorkerError):
    """The transport refused an outbound message. Logged, never retried."""

    code = "ChannelSendFailure"


class RequestCancelledError(WorkerError):
    code = "RequestCancelled"


class ComputeEngineFailure(WorkerError):
    """Wraps an exception raised by the compute engine."""

    code = "ComputeEngineFailure"

    @classmethod
    def from_exception(cls, exc: BaseException, operation: str) -> "ComputeEngineFailure":
        """
        Wrap *exc*, keeping its message verbatim.

        Args:
            exc: The exception raised by the engine.
            operation: Engine operation that failed (``load``, ``infer`` ...).
        """
        message = str(exc) or type(exc).__name__
        return cls(
            message,
            details={"operation": operation, "exceptionType": type(exc).__name__},
        )


__all__ = [
    "WorkerError",
    "RequestValidationError",
    "DuplicateCorrelationIdError",
    "ModelNotLoadedError",
    "ConcurrentLifecycleOperationError",
    "UnknownMessageKindError",
    "ChannelSendFailure",
    "RequestCancelledError",
    "ComputeEngineFailure",
]
