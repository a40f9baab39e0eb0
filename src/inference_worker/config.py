"""
Configuration management for the inference worker.

Loads configuration from environment variables (typically from a .env file).
Uses python-dotenv to load .env automatically.

Usage:
    from inference_worker.config import WorkerConfig

    config = WorkerConfig.from_env()
    print(config.engine, config.lifecycle_policy)
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

ENV_PREFIX = "INFERENCE_WORKER_"

LIFECYCLE_POLICIES = ("queue", "reject")
ENGINES = ("simulated", "openai")


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a .env file into ``os.environ`` without overriding set values.

    Looks in the current working directory when *path* is not given.
    Returns ``True`` if a file was found and loaded.
    """
    env_path = path or Path.cwd() / ".env"
    if env_path.exists():
        return load_dotenv(env_path, override=False)
    return False


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name, default)


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")


def _env_number(name: str, default: Any, cast=float):
    value = _env(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ValueError(
            f"{ENV_PREFIX}{name} must be a {cast.__name__}, got {value!r}"
        ) from e


@dataclass
class WorkerConfig:
    """
    Settings for a worker session and its compute engine.

    Attributes:
        engine: Compute engine to build (``simulated`` or ``openai``).
        lifecycle_policy: ``queue`` makes overlapping load/unload calls wait
            their turn; ``reject`` fails them with
            ``ConcurrentLifecycleOperation``.
        require_stream_correlation_id: Reject ``streamInference`` requests
            that carry no correlation id.
        stream_chunk_interval: Seconds to pause between stream chunks.
        embedding_dimension: Vector size produced by the simulated engine.
        latency_scale: Multiplier on the simulated engine's delays
            (0 disables them).
        engine_max_retries: Attempts for transient engine errors.
        engine_initial_wait: Initial backoff between attempts, in seconds.
        engine_max_wait: Maximum backoff between attempts, in seconds.
        openai_base_url: Endpoint for the OpenAI-compatible engine.
        openai_api_key: API key for the OpenAI-compatible engine.
        log_level: Package log level.
    """

    engine: str = "simulated"
    lifecycle_policy: str = "queue"
    require_stream_correlation_id: bool = True
    stream_chunk_interval: float = 0.0
    embedding_dimension: int = 384
    latency_scale: float = 1.0
    engine_max_retries: int = 3
    engine_initial_wait: float = 1.0
    engine_max_wait: float = 10.0
    openai_base_url: Optional[str] = None
    openai_api_key: str = "not-needed"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate settings."""
        self.engine = self.engine.lower()
        self.lifecycle_policy = self.lifecycle_policy.lower()
        if self.engine not in ENGINES:
            raise ValueError(
                f"Unknown engine: {self.engine}. Available engines: {', '.join(ENGINES)}"
            )
        if self.lifecycle_policy not in LIFECYCLE_POLICIES:
            raise ValueError(
                f"Unknown lifecycle policy: {self.lifecycle_policy}. "
                f"Expected one of: {', '.join(LIFECYCLE_POLICIES)}"
            )
        if self.stream_chunk_interval < 0:
            raise ValueError("stream_chunk_interval must be >= 0")
        if self.embedding_dimension <= 0:
            raise ValueError("embedding_dimension must be positive")
        if self.latency_scale < 0:
            raise ValueError("latency_scale must be >= 0")
        if self.engine_max_retries < 1:
            raise ValueError("engine_max_retries must be at least 1")
        if self.engine == "openai" and not self.openai_base_url:
            raise ValueError(
                "The openai engine needs an endpoint. "
                "Set OPENAI_BASE_URL (e.g. http://localhost:11434/v1)."
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> "WorkerConfig":
        """
        Build a config from the environment.

        Environment variables can be set:
        1. In a .env file in the working directory
        2. In the system environment
        3. In a container/deployment environment

        Args:
            **overrides: Values that win over the environment (e.g. CLI flags).
                ``None`` values are ignored.

        Raises:
            ValueError: If a variable cannot be parsed or a value is invalid.
        """
        load_env_file()
        values = dict(
            engine=_env("ENGINE", "simulated"),
            lifecycle_policy=_env("LIFECYCLE_POLICY", "queue"),
            require_stream_correlation_id=_env_bool("REQUIRE_STREAM_ID", True),
            stream_chunk_interval=_env_number("STREAM_CHUNK_INTERVAL", 0.0),
            embedding_dimension=_env_number("EMBEDDING_DIMENSION", 384, int),
            latency_scale=_env_number("LATENCY_SCALE", 1.0),
            engine_max_retries=_env_number("ENGINE_MAX_RETRIES", 3, int),
            engine_initial_wait=_env_number("ENGINE_INITIAL_WAIT", 1.0),
            engine_max_wait=_env_number("ENGINE_MAX_WAIT", 10.0),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY", "not-needed"),
            log_level=_env("LOG_LEVEL", "INFO"),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "WorkerConfig":
        """Return a copy with the given fields replaced (re-validated)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
