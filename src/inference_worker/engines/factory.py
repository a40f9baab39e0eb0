"""
Engine Factory - Creates compute engine instances by name.

Lets the CLI and embedding applications pick an engine from configuration
without importing engine classes directly.
"""

from typing import Optional

from .base import BaseComputeEngine
from .openai_compatible import OpenAICompatibleEngine
from .simulated import SimulatedComputeEngine
from ..config import ENGINES, WorkerConfig


class EngineFactory:
    """
    Factory for creating compute engines.

    Usage:
        factory = EngineFactory(WorkerConfig.from_env())
        engine = factory.create_from_config()

        engine = factory.create("simulated")
    """

    def __init__(self, config: Optional[WorkerConfig] = None):
        """
        Args:
            config: Optional WorkerConfig. If not provided, defaults are used.
        """
        self.config = config or WorkerConfig()

    def create(self, engine_name: str) -> BaseComputeEngine:
        """
        Create an engine by name using this factory's configuration.

        Raises:
            ValueError: If engine_name is unknown or not configured.
        """
        engine_name = engine_name.lower()
        cfg = self.config

        if engine_name == "simulated":
            return SimulatedComputeEngine(
                latency_scale=cfg.latency_scale,
                embedding_dimension=cfg.embedding_dimension,
            )
        elif engine_name == "openai":
            if not cfg.openai_base_url:
                raise ValueError("The openai engine needs OPENAI_BASE_URL to be set.")
            return OpenAICompatibleEngine(
                base_url=cfg.openai_base_url,
                api_key=cfg.openai_api_key,
                max_retries=cfg.engine_max_retries,
                initial_wait=cfg.engine_initial_wait,
                max_wait=cfg.engine_max_wait,
            )
        else:
            raise ValueError(
                f"Unknown engine: {engine_name}. "
                f"Available engines: {', '.join(self.get_available_engines())}"
            )

    def create_from_config(self) -> BaseComputeEngine:
        """Create the engine named by ``config.engine``."""
        return self.create(self.config.engine)

    @staticmethod
    def get_available_engines() -> list[str]:
        return list(ENGINES)
