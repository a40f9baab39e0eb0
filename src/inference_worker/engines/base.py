"""
Base class for compute engines.

A compute engine performs the actual model work: loading weights, running
inference, producing embeddings and streaming generated text. The worker
core only orchestrates calls into it; every method may take arbitrary time
and may fail, and the core is written with that in mind.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List


class BaseComputeEngine(ABC):
    """
    Abstract base class for all compute engines.

    Implementations must be safe to call concurrently for ``infer``,
    ``embed`` and ``stream_infer``. ``load`` and ``unload`` are never
    called concurrently with each other: the lifecycle manager serializes
    them.
    """

    @abstractmethod
    async def load(self, path: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Load the model found at *path*.

        Args:
            path: Model location or identifier.
            config: Load-time options supplied by the caller.

        Returns:
            JSON-encodable details about the loaded model (reported back to
            the caller inside ``LoadInfo.details``).
        """

    @abstractmethod
    async def unload(self) -> None:
        """Release the currently loaded model."""

    @abstractmethod
    async def infer(self, prompt: str, config: Dict[str, Any]) -> str:
        """Generate a complete reply for *prompt*."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector of *text*."""

    @abstractmethod
    def stream_infer(self, prompt: str, config: Dict[str, Any]) -> AsyncIterator[str]:
        """
        Generate a reply for *prompt* as a lazy sequence of text fragments.

        The sequence is finite and cannot be restarted. Implementations are
        usually async generators.
        """

    @abstractmethod
    def get_engine_name(self) -> str:
        """Return a short identifier for this engine (e.g. ``'simulated'``)."""

    async def close(self) -> None:
        """Release engine resources (HTTP clients, etc.)."""

    async def __aenter__(self) -> "BaseComputeEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
