"""Session router providing the pairing HTTP endpoints and the WebSocket.

This module provides:
    - POST /start-session: Create a session and return its pairing payload
    - POST /delete-session: Tear down a session (notifies and disconnects peers)
    - WebSocket /ws: Realtime file exchange (see coordinator for the protocol)

The handlers are thin: all state lives in the SessionCoordinator.
"""
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket
from fastapi.responses import JSONResponse

from qrshare.errors import InvalidRequest

from .coordinator import get_coordinator
from .schemas import (
    DeleteSessionRequest,
    DeleteSessionResponse,
    StartSessionRequest,
    StartSessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


@router.post("/start-session", response_model=StartSessionResponse)
async def start_session(body: Optional[StartSessionRequest] = None):
    """Create a pairing session.

    Args:
        body: Optional {"duration": minutes}. Defaults to the configured TTL.

    Returns:
        StartSessionResponse with sessionId, qrData and expiresAt.
    """
    duration = body.duration if body else None
    try:
        ticket = get_coordinator().create_session(duration)
    except InvalidRequest as e:
        return JSONResponse({"detail": str(e)}, status_code=422)

    logger.info(f"[SESSION] Started {ticket.session_id}")
    return StartSessionResponse(
        sessionId=ticket.session_id,
        qrData=ticket.qr_data,
        expiresAt=int(ticket.expires_at * 1000),
    )


@router.post("/delete-session", response_model=DeleteSessionResponse)
async def delete_session(body: Optional[DeleteSessionRequest] = None):
    """Delete a session, its files, and disconnect its peers.

    Deleting an unknown or already-deleted session is not an error on the
    server side; it is reported with success=false and status 400.
    """
    session_id = body.id if body else None
    if session_id and await get_coordinator().delete_session(session_id):
        return DeleteSessionResponse(success=True, message="Session deleted")

    logger.info(f"[SESSION] Delete requested for invalid session {session_id!r}")
    return JSONResponse(
        DeleteSessionResponse(success=False, message="Invalid session ID").model_dump(),
        status_code=400,
    )


@router.websocket("/ws")
async def session_websocket(websocket: WebSocket) -> None:
    """WebSocket endpoint for realtime file exchange.

    The connection starts unbound; the client must send
    {type: "init", sessionId} before any other message is served.
    """
    await websocket.accept()
    await get_coordinator().handle_connection(websocket)
