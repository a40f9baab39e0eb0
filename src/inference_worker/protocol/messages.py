"""
Message types exchanged over the worker channel.

Requests arrive as plain dicts and are turned into ``WorkerRequest`` objects
by ``inference_worker.protocol.validation.parse_request``. Responses are
built as ``WorkerResponse`` objects and flattened with ``to_dict()`` right
before they hit the transport. Wire keys are camelCase; attributes are
snake_case.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import WorkerError
from ..utils.tokens import count_tokens


class RequestKind(str, Enum):
    """Inbound message kinds."""

    LOAD_MODEL = "loadModel"
    UNLOAD_MODEL = "unloadModel"
    INFER = "inference"
    EMBED = "embedding"
    STREAM_INFER = "streamInference"

    @property
    def is_lifecycle(self) -> bool:
        return self in (RequestKind.LOAD_MODEL, RequestKind.UNLOAD_MODEL)


class ResponseKind(str, Enum):
    """Outbound message kinds."""

    MODEL_LOADED = "modelLoaded"
    MODEL_UNLOADED = "modelUnloaded"
    INFER_RESULT = "inferenceResult"
    EMBED_RESULT = "embeddingResult"
    STREAM_CHUNK = "streamChunk"
    ERROR = "error"


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting; ``total_tokens`` is always prompt + completion."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts must be non-negative")
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError(
                f"total_tokens ({self.total_tokens}) must equal prompt_tokens "
                f"+ completion_tokens ({self.prompt_tokens} + {self.completion_tokens})"
            )

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)

    @classmethod
    def from_texts(cls, prompt: str, completion: str) -> "TokenUsage":
        return cls.from_counts(count_tokens(prompt), count_tokens(completion))

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class LoadInfo:
    """Payload of a ``modelLoaded`` response."""

    model_path: str
    load_time: int  # epoch milliseconds
    load_duration_ms: float
    engine: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelPath": self.model_path,
            "loadTime": self.load_time,
            "loadDurationMs": round(self.load_duration_ms, 3),
            "engine": self.engine,
            "details": dict(self.details),
        }


@dataclass
class InferResult:
    content: str
    usage: TokenUsage
    finish_reason: str = "stop"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "finishReason": self.finish_reason,
            "usage": self.usage.to_dict(),
        }


@dataclass
class EmbedResult:
    embedding: List[float]

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    def to_dict(self) -> Dict[str, Any]:
        return {"embedding": list(self.embedding), "dimension": self.dimension}


@dataclass(frozen=True)
class StreamChunk:
    """One piece of a streamed reply; the last chunk has ``is_complete``."""

    content: str
    index: int
    is_complete: bool = False
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None

    def __post_init__(self):
        if self.index < 0:
            raise ValueError("chunk index must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "content": self.content,
            "index": self.index,
            "isComplete": self.is_complete,
        }
        if self.finish_reason is not None:
            payload["finishReason"] = self.finish_reason
        if self.usage is not None:
            payload["usage"] = self.usage.to_dict()
        return payload


@dataclass
class WorkerRequest:
    """A validated inbound request."""

    kind: RequestKind
    correlation_id: Optional[str] = None
    model_path: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    prompt: Optional[str] = None
    text: Optional[str] = None


@dataclass
class WorkerResponse:
    """An outbound message. ``correlation_id`` echoes the request verbatim."""

    kind: ResponseKind
    correlation_id: Optional[str]
    success: bool
    data: Any = None
    error: Optional[WorkerError] = None

    @classmethod
    def ok(cls, kind: ResponseKind, correlation_id: Optional[str], data: Any = None) -> "WorkerResponse":
        return cls(kind=kind, correlation_id=correlation_id, success=True, data=data)

    @classmethod
    def failure(cls, correlation_id: Optional[str], error: WorkerError) -> "WorkerResponse":
        return cls(kind=ResponseKind.ERROR, correlation_id=correlation_id, success=False, error=error)

    @property
    def is_terminal(self) -> bool:
        """False only for a stream chunk that is not the completion marker."""
        if self.kind is ResponseKind.STREAM_CHUNK:
            return isinstance(self.data, StreamChunk) and self.data.is_complete
        return True

    def to_dict(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"kind": self.kind.value, "success": self.success}
        if self.correlation_id is not None:
            message["correlationId"] = self.correlation_id
        if self.data is not None:
            message["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            message["error"] = self.error.to_dict()
        return message
