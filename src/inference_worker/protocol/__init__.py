"""
Wire protocol of the inference worker.

Defines the request/response message types, the payload dataclasses and
the validation applied to every inbound message.
"""

from .messages import (
    EmbedResult,
    InferResult,
    LoadInfo,
    RequestKind,
    ResponseKind,
    StreamChunk,
    TokenUsage,
    WorkerRequest,
    WorkerResponse,
)
from .validation import extract_correlation_id, parse_request

__all__ = [
    "EmbedResult",
    "InferResult",
    "LoadInfo",
    "RequestKind",
    "ResponseKind",
    "StreamChunk",
    "TokenUsage",
    "WorkerRequest",
    "WorkerResponse",
    "extract_correlation_id",
    "parse_request",
]
