"""Real-time event publishing.

The broadcast transport lives outside this service. Services depend only
on the ``Publisher`` interface; channels are named ``user:<id>``,
``role:<role>`` or ``room:<id>``.
"""
from typing import Any, Dict, Protocol

from app.core.logging import get_logger

logger = get_logger(__name__)


class Publisher(Protocol):
    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class NullPublisher:
    """Drops events. Used when no transport is wired in."""

    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        logger.debug(f"Event {event} for {channel} dropped (no transport)")

