"""
Decoding and validation of inbound messages.

All checks run before any side-effecting work: a message that fails here
never reaches the lifecycle manager or the compute engine.
"""

from typing import Any, Mapping, Optional

from ..errors import RequestValidationError, UnknownMessageKindError
from .messages import RequestKind, WorkerRequest

# Required string fields per kind: (wire key, attribute name).
REQUIRED_FIELDS = {
    RequestKind.LOAD_MODEL: [("modelPath", "model_path")],
    RequestKind.UNLOAD_MODEL: [],
    RequestKind.INFER: [("prompt", "prompt")],
    RequestKind.EMBED: [("text", "text")],
    RequestKind.STREAM_INFER: [("prompt", "prompt")],
}

_KINDS_BY_VALUE = {kind.value: kind for kind in RequestKind}


def extract_correlation_id(raw: Any) -> Optional[str]:
    """Return the correlation id to echo on an early error, if any.

    ``id`` is accepted as an alias of ``correlationId``. Only string ids are
    echoed; anything else cannot be matched by the caller anyway.
    """
    if not isinstance(raw, Mapping):
        return None
    value = raw.get("correlationId", raw.get("id"))
    return value if isinstance(value, str) else None


def _optional_str(raw: Mapping, key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RequestValidationError(
            f"'{key}' must be a string, got {type(value).__name__}",
            details={"field": key},
        )
    return value


def parse_request(raw: Any, require_stream_correlation_id: bool = True) -> WorkerRequest:
    """
    Turn an inbound message into a ``WorkerRequest``.

    Args:
        raw: Decoded message, normally a dict.
        require_stream_correlation_id: Reject ``streamInference`` requests
            that carry no correlation id.

    Returns:
        The validated request.

    Raises:
        RequestValidationError: Malformed message or missing required field.
        UnknownMessageKindError: ``kind`` is not one of ``RequestKind``.
    """
    if not isinstance(raw, Mapping):
        raise RequestValidationError(
            f"message must be an object, got {type(raw).__name__}"
        )

    kind_value = raw.get("kind", raw.get("type"))
    if kind_value is None or kind_value == "":
        raise RequestValidationError("message is missing 'kind'", details={"field": "kind"})
    kind = _KINDS_BY_VALUE.get(kind_value) if isinstance(kind_value, str) else None
    if kind is None:
        raise UnknownMessageKindError(
            f"unknown message kind: {kind_value!r}",
            details={"kind": str(kind_value)},
        )

    correlation_key = "correlationId" if "correlationId" in raw else "id"
    correlation_id = _optional_str(raw, correlation_key)
    if correlation_id == "":
        raise RequestValidationError(
            "'correlationId' must not be empty", details={"field": "correlationId"}
        )

    config = raw.get("config")
    if config is None:
        config = {}
    elif not isinstance(config, Mapping):
        raise RequestValidationError(
            f"'config' must be an object, got {type(config).__name__}",
            details={"field": "config"},
        )

    request = WorkerRequest(
        kind=kind,
        correlation_id=correlation_id,
        model_path=_optional_str(raw, "modelPath"),
        config=dict(config),
        prompt=_optional_str(raw, "prompt"),
        text=_optional_str(raw, "text"),
    )

    for wire_key, attr in REQUIRED_FIELDS[kind]:
        if not getattr(request, attr):
            raise RequestValidationError(
                f"'{kind.value}' requires a non-empty '{wire_key}'",
                details={"field": wire_key},
            )

    if (
        kind is RequestKind.STREAM_INFER
        and require_stream_correlation_id
        and correlation_id is None
    ):
        raise RequestValidationError(
            "'streamInference' requires a 'correlationId' so its chunks can be told apart",
            details={"field": "correlationId"},
        )

    return request
