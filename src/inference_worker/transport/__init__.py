"""Transports carrying worker messages."""

from .transports import BaseTransport, JsonLinesTransport, QueueTransport

__all__ = ["BaseTransport", "JsonLinesTransport", "QueueTransport"]
