"""
Mama Mind - Subject Channel Notifications

Real-time push of triage events to a subject's channel.

Architecture:
    - NotificationPublisher protocol: ``publish(subject_id, event, payload)``
    - ChannelNotifier: fans out to every WebSocket the subject has open on
      ``/ws/subjects/{subject_id}``
    - NoOpNotifier: used when push is disabled

Publishing is fire-and-forget from the orchestrator's point of view. The
notifier raises NotificationError only when every delivery attempt failed,
and the orchestrator logs it without surfacing it to the caller.

Frame format (server -> client):
    {"type": "<event>", "subject_id": "...", "data": {...}}
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Any, Dict, Protocol, Set, runtime_checkable

from fastapi import WebSocket

from mamamind.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


# Event names published by the service.
EVENT_CRITICAL_VITALS = "vitals.critical"
EVENT_ALERT_CREATED = "alert.created"


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class NotificationPublisher(Protocol):
    """Protocol for publishing to a subject's real-time channel."""

    @abstractmethod
    async def publish(self, subject_id: str, event: str, payload: Dict[str, Any]) -> int:
        """
        Publish an event to a subject's channel.

        Returns:
            Number of connections the event was delivered to

        Raises:
            NotificationError: if delivery failed for every connection
        """
        ...


# =============================================================================
# WebSocket Channel Implementation
# =============================================================================

class ChannelNotifier:
    """
    Publishes to WebSocket connections grouped by subject.

    The registry is only touched from the event loop, so no lock is needed.
    In a multi-worker deployment each worker only reaches its own sockets;
    fan-out across workers needs a shared broker.
    """

    def __init__(self):
        self._channels: Dict[str, Set[WebSocket]] = {}

    def subscribe(self, subject_id: str, websocket: WebSocket) -> None:
        """Register a connection on a subject's channel."""
        self._channels.setdefault(subject_id, set()).add(websocket)
        logger.info(
            "Channel subscriber added (subscribers=%d)",
            len(self._channels[subject_id]),
        )

    def unsubscribe(self, subject_id: str, websocket: WebSocket) -> None:
        """Remove a connection; empty channels are dropped."""
        connections = self._channels.get(subject_id)
        if not connections:
            return
        connections.discard(websocket)
        if not connections:
            self._channels.pop(subject_id, None)

    def subscriber_count(self, subject_id: str) -> int:
        return len(self._channels.get(subject_id, ()))

    def active_channel_count(self) -> int:
        return len(self._channels)

    async def publish(self, subject_id: str, event: str, payload: Dict[str, Any]) -> int:
        connections = list(self._channels.get(subject_id, ()))
        if not connections:
            logger.debug("No subscribers for %s event", event)
            return 0

        message = {"type": event, "subject_id": subject_id, "data": payload}
        delivered = 0
        failures = 0
        for websocket in connections:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                failures += 1
                logger.warning("Dropping channel subscriber after send failure: %s", e)
                self.unsubscribe(subject_id, websocket)

        if delivered == 0:
            raise NotificationError(
                f"Failed to deliver {event} to any subscriber",
                details={"failures": failures},
            )
        return delivered


# =============================================================================
# No-Op Implementation
# =============================================================================

class NoOpNotifier:
    """Notifier used when real-time push is disabled."""

    async def publish(self, subject_id: str, event: str, payload: Dict[str, Any]) -> int:
        return 0
