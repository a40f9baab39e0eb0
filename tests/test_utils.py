"""
Tests for shared helpers: retry policy, error taxonomy and logging setup.
"""

import io
import logging

import httpx
import openai
import pytest
from unittest.mock import AsyncMock

from inference_worker.errors import ComputeEngineFailure, RequestValidationError, WorkerError
from inference_worker.utils.logging_config import get_logger, setup_logging
from inference_worker.utils.retry import call_with_retry, should_retry_exception


REQUEST = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")


def _status_error(cls, status_code):
    return cls(f"HTTP {status_code}", response=httpx.Response(status_code, request=REQUEST), body=None)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (openai.APIConnectionError(request=REQUEST), True),
        (openai.APITimeoutError(request=REQUEST), True),
        (_status_error(openai.RateLimitError, 429), True),
        (_status_error(openai.InternalServerError, 503), True),
        (_status_error(openai.APIStatusError, 504), True),
        (_status_error(openai.NotFoundError, 404), False),
        (_status_error(openai.BadRequestError, 400), False),
        (_status_error(openai.AuthenticationError, 401), False),
        (TimeoutError(), True),
        (ConnectionError(), True),
        (RuntimeError("CUDA device temporarily unavailable"), True),
        (RuntimeError("Connection reset by peer"), True),
        (ValueError("invalid prompt"), False),
        (KeyError("model"), False),
    ],
)
def test_should_retry_exception(exc, expected):
    assert should_retry_exception(exc) is expected


@pytest.mark.asyncio
async def test_call_with_retry_recovers():
    func = AsyncMock(side_effect=[TimeoutError("timed out"), "ok"])

    result = await call_with_retry(func, "a", max_retries=3, initial_wait=0, max_wait=0, flag=True)

    assert result == "ok"
    assert func.await_count == 2
    func.assert_awaited_with("a", flag=True)


@pytest.mark.asyncio
async def test_call_with_retry_stops_on_permanent_error():
    func = AsyncMock(side_effect=ValueError("bad input"))

    with pytest.raises(ValueError):
        await call_with_retry(func, max_retries=5, initial_wait=0, max_wait=0)
    assert func.await_count == 1


def test_error_to_dict():
    assert RequestValidationError("bad").to_dict() == {"code": "ValidationError", "message": "bad"}
    assert isinstance(RequestValidationError("bad"), WorkerError)


def test_engine_failure_from_exception():
    failure = ComputeEngineFailure.from_exception(KeyError(), "embed")
    assert failure.message == "KeyError"
    assert failure.details == {"operation": "embed", "exceptionType": "KeyError"}


def test_get_logger_is_namespaced():
    assert get_logger("inference_worker.worker.session").name == "inference_worker.worker.session"
    assert get_logger("demo").name == "inference_worker.demo"


def test_setup_logging_replaces_handler():
    root = logging.getLogger("inference_worker")
    saved = (root.level, root.propagate, list(root.handlers))
    try:
        stream = io.StringIO()
        setup_logging("DEBUG", stream=stream)
        setup_logging("DEBUG", stream=stream)
        get_logger("demo").debug("hello")

        assert len(root.handlers) == len(saved[2]) + 1
        assert "hello" in stream.getvalue()
    finally:
        for handler in list(root.handlers):
            if handler not in saved[2]:
                root.removeHandler(handler)
        root.setLevel(saved[0])
        root.propagate = saved[1]
