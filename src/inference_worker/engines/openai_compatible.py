"""
OpenAI-Compatible Compute Engine.

Uses the vanilla ``AsyncOpenAI`` client with a configurable ``base_url``,
making it work with any endpoint that speaks the OpenAI protocol: Ollama,
vLLM, HuggingFace TEI, Together AI, direct OpenAI, etc.

Here "loading" a model means binding the engine to a model id (the request's
``modelPath``) after checking that the endpoint knows it. The weights live
on the server; the worker only tracks which model its requests target.
"""

import time
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .base import BaseComputeEngine
from ..utils.logging_config import get_logger
from ..utils.retry import call_with_retry

logger = get_logger(__name__)

# Request config keys forwarded to chat completions.
_CHAT_PARAMS = ("temperature", "max_tokens", "top_p", "stop", "seed")


class OpenAICompatibleEngine(BaseComputeEngine):
    """Compute engine backed by any OpenAI-protocol-compatible endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "not-needed",
        embedding_model: Optional[str] = None,
        max_retries: int = 3,
        initial_wait: float = 1.0,
        max_wait: float = 10.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """
        Args:
            base_url: Root URL of the API (e.g. ``http://localhost:11434/v1``).
            api_key: API key / bearer token. Defaults to ``"not-needed"``
                for local servers that do not require auth.
            embedding_model: Model used for embeddings unless a load config
                names one (``embedding_model``). Defaults to the loaded model.
            max_retries: Attempts for transient errors on non-streaming calls.
            initial_wait: Initial backoff in seconds.
            max_wait: Maximum backoff in seconds.
            client: Pre-built client (tests inject a mock here).
        """
        self._base_url = base_url
        self._default_embedding_model = embedding_model
        self._embedding_model: Optional[str] = None
        self._retry = dict(max_retries=max_retries, initial_wait=initial_wait, max_wait=max_wait)
        self._client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)
        self._model: Optional[str] = None
        self._load_config: Dict[str, Any] = {}
        logger.info("Initialized OpenAICompatibleEngine (base_url=%s)", base_url)

    def _require_model(self) -> str:
        if self._model is None:
            raise RuntimeError("no model bound to the engine; load a model first")
        return self._model

    def _chat_params(self, prompt: str, config: Dict[str, Any]) -> dict:
        merged = {**self._load_config, **config}
        params: dict = {
            "model": self._require_model(),
            "messages": [{"role": "user", "content": prompt}],
        }
        for key in _CHAT_PARAMS:
            if merged.get(key) is not None:
                params[key] = merged[key]
        return params

    async def load(self, path: str, config: Dict[str, Any]) -> Dict[str, Any]:
        start_time = time.time()
        model = await call_with_retry(self._client.models.retrieve, path, **self._retry)
        self._model = path
        self._load_config = dict(config)
        self._embedding_model = config.get("embedding_model", self._default_embedding_model)
        latency_ms = (time.time() - start_time) * 1000
        logger.info("[OpenAI] Bound model '%s' in %.1fms", path, latency_ms)
        return {
            "baseUrl": self._base_url,
            "ownedBy": getattr(model, "owned_by", None),
        }

    async def unload(self) -> None:
        logger.info("[OpenAI] Released model '%s'", self._model)
        self._model = None
        self._load_config = {}
        self._embedding_model = None

    async def infer(self, prompt: str, config: Dict[str, Any]) -> str:
        params = self._chat_params(prompt, config)
        response = await call_with_retry(
            self._client.chat.completions.create, **params, **self._retry
        )
        return response.choices[0].message.content or ""

    async def embed(self, text: str) -> List[float]:
        model = self._embedding_model or self._require_model()
        response = await call_with_retry(
            self._client.embeddings.create, model=model, input=[text], **self._retry
        )
        return list(response.data[0].embedding)

    async def stream_infer(self, prompt: str, config: Dict[str, Any]) -> AsyncIterator[str]:
        # Streams are not retried: a restart would replay fragments already sent.
        params = self._chat_params(prompt, config)
        stream = await self._client.chat.completions.create(stream=True, **params)
        async for event in stream:
            if not event.choices:
                continue
            delta = event.choices[0].delta.content
            if delta:
                yield delta

    def get_engine_name(self) -> str:
        return "openai"

    async def close(self) -> None:
        await self._client.close()
