"""
Mama Mind - WebSocket Handlers

Real-time channel that pushes triage events to a subject's devices.

Architecture:
    Connections register with the ChannelNotifier under their subject id.
    The IntakeOrchestrator publishes through the same notifier, so a critical
    reading recorded over REST reaches every open connection for that subject.

Authentication:
    Browsers cannot set headers on a WebSocket handshake, so the bearer token
    travels as the ``token`` query parameter. A patient may only open their
    own channel; clinicians may open any subject's channel.

Protocol:
    Client -> Server:
        {"type": "ping"}

    Server -> Client:
        {"type": "connected", "subject_id": "...", "message": "..."}
        {"type": "pong"}
        {"type": "vitals.critical", "subject_id": "...", "data": {...}}
        {"type": "alert.created", "subject_id": "...", "data": {...}}
        {"type": "error", "message": "..."}
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from typing import Optional
import json
import logging

from mamamind.core.exceptions import AuthenticationError, UpstreamUnavailableError
from mamamind.core.logging import mask_subject_id
from mamamind.core.notifier import ChannelNotifier
from mamamind.core.types import Principal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# =============================================================================
# WebSocket Endpoint
# =============================================================================

@router.websocket("/ws/subjects/{subject_id}")
async def subject_channel(websocket: WebSocket, subject_id: str, token: Optional[str] = None):
    """
    Subscribe to a subject's real-time channel.

    The connection stays open until the client disconnects. Incoming frames
    other than ping are answered with an error frame and otherwise ignored.
    """
    notifier: ChannelNotifier = websocket.app.state.notifier

    principal = await authenticate_websocket(websocket, token)
    if principal is None:
        return

    if principal.subject_id != subject_id and not principal.is_clinician:
        logger.info("WebSocket rejected: subject mismatch")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    notifier.subscribe(subject_id, websocket)

    logger.info("WebSocket connected: subject=%s", mask_subject_id(subject_id))

    try:
        await websocket.send_json({
            "type": "connected",
            "subject_id": subject_id,
            "message": "Subscribed to alerts.",
        })

        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "message": "Invalid JSON format",
                })
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({
                    "type": "error",
                    "message": "Unsupported message; this channel is server-push only",
                })

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: subject=%s", mask_subject_id(subject_id))
    except Exception as e:
        logger.error(
            "WebSocket error (subject=%s): %s",
            mask_subject_id(subject_id), str(e),
            exc_info=True,
        )
    finally:
        notifier.unsubscribe(subject_id, websocket)


# =============================================================================
# Helpers
# =============================================================================

async def authenticate_websocket(websocket: WebSocket, token: Optional[str]) -> Optional[Principal]:
    """
    Resolve the handshake token, closing the socket on failure.

    Returns:
        The principal, or None if the connection was closed
    """
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    try:
        return await websocket.app.state.authenticator.authenticate(token)
    except AuthenticationError:
        logger.info("WebSocket rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    except UpstreamUnavailableError as e:
        logger.warning("WebSocket rejected: %s", e.message)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    return None

