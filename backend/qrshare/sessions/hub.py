"""WebSocket connection hub for pairing sessions.

This module tracks which realtime connections are attached to which
session and fans messages out to them.

Key features:
    - Per-session membership lists (join order preserved)
    - Reverse index connection -> session for disconnect handling
    - Concurrent delivery with asyncio.gather()
    - Closed or failing connections are skipped, never raised; membership
      is only removed by leave() or drop_session()

Thread Safety:
    Membership maps are guarded by a threading.Lock. Sends are performed
    on a snapshot taken under the lock, never while holding it.
"""
import asyncio
import logging
import threading
from typing import Dict, List, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from qrshare.errors import SessionExpired, SessionNotFound

from .registry import SessionRegistry

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Maps session ids to their attached WebSocket connections."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self._lock = threading.Lock()

        # session_id -> list of attached WebSocket connections
        self.active_connections: Dict[str, List[WebSocket]] = {}

        # websocket -> session_id for disconnect handling
        self.websocket_to_session: Dict[WebSocket, str] = {}

    # =========================================================================
    # Membership
    # =========================================================================

    def join(self, session_id: str, websocket: WebSocket) -> None:
        """Attach a connection to a session.

        The session must exist and be before its deadline at this moment;
        membership is not re-checked later. The check runs under the hub
        lock so a concurrent teardown either sees this member or rejects it.

        Raises:
            SessionNotFound: If the session id is unknown.
            SessionExpired: If the session is at or past its deadline.
        """
        with self._lock:
            session = self._registry.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if session.is_expired(self._registry.clock()):
                raise SessionExpired(session_id)
            current = self.websocket_to_session.get(websocket)
            if current is not None and current != session_id:
                self._remove_locked(websocket)
            connections = self.active_connections.setdefault(session_id, [])
            if websocket not in connections:
                connections.append(websocket)
            self.websocket_to_session[websocket] = session_id
            size = len(connections)
        logger.info(f"[Hub] Connection joined session {session_id} ({size} attached)")

    def leave(self, websocket: WebSocket) -> Optional[str]:
        """Detach a connection from whatever session holds it.

        Returns:
            The session id it belonged to, or None if it was not a member.
        """
        with self._lock:
            return self._remove_locked(websocket)

    def _remove_locked(self, websocket: WebSocket) -> Optional[str]:
        session_id = self.websocket_to_session.pop(websocket, None)
        if session_id is None:
            return None
        connections = self.active_connections.get(session_id)
        if connections is not None:
            if websocket in connections:
                connections.remove(websocket)
            if not connections:
                del self.active_connections[session_id]
        return session_id

    def drop_session(self, session_id: str) -> List[WebSocket]:
        """Remove a session's entry entirely and return its former members."""
        with self._lock:
            connections = self.active_connections.pop(session_id, [])
            for ws in connections:
                self.websocket_to_session.pop(ws, None)
        return connections

    def session_of(self, websocket: WebSocket) -> Optional[str]:
        with self._lock:
            return self.websocket_to_session.get(websocket)

    def members(self, session_id: str) -> List[WebSocket]:
        """Snapshot of the connections attached to a session."""
        with self._lock:
            return list(self.active_connections.get(session_id, []))

    def size(self, session_id: str) -> int:
        """Get the number of connections attached to a session."""
        with self._lock:
            return len(self.active_connections.get(session_id, []))

    def sessions(self) -> List[str]:
        with self._lock:
            return list(self.active_connections)

    def clear(self) -> None:
        with self._lock:
            self.active_connections.clear()
            self.websocket_to_session.clear()

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def broadcast(
        self,
        session_id: str,
        message: dict,
        exclude: Optional[WebSocket] = None,
    ) -> None:
        """Send a message to every member of a session except *exclude*."""
        connections = [ws for ws in self.members(session_id) if ws is not exclude]
        await self._deliver(connections, message)

    async def broadcast_all(self, message: dict) -> None:
        """Send a message to every attached connection across all sessions."""
        with self._lock:
            connections = list(self.websocket_to_session)
        await self._deliver(connections, message)

    async def notify_and_close(self, session_id: str, message: dict) -> int:
        """Send *message* to every member, close them, and forget the session.

        Returns:
            Number of connections that were attached.
        """
        connections = self.drop_session(session_id)
        if not connections:
            return 0

        await asyncio.gather(
            *[self.send(conn, message) for conn in connections],
            return_exceptions=True
        )
        await asyncio.gather(
            *[self._safe_close(conn) for conn in connections],
            return_exceptions=True
        )
        logger.info(f"[Hub] Notified and closed {len(connections)} connection(s) for session {session_id}")
        return len(connections)

    async def _deliver(self, connections: List[WebSocket], message: dict) -> None:
        if not connections:
            return

        # Failed members stay attached until their receive loop ends and the
        # coordinator calls leave(), which announces the disconnect.
        results = await asyncio.gather(
            *[self.send(conn, message) for conn in connections],
            return_exceptions=True
        )

        failed = sum(1 for success in results if success is not True)
        if failed:
            logger.debug(f"[Hub] Skipped {failed} unreachable connection(s)")

    @staticmethod
    def is_open(connection: WebSocket) -> bool:
        return (
            connection.application_state == WebSocketState.CONNECTED
            and connection.client_state == WebSocketState.CONNECTED
        )

    async def send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection with error handling.

        Returns:
            True if successful, False if the connection is closed or failed.
        """
        if not self.is_open(connection):
            return False
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    async def _safe_close(self, connection: WebSocket) -> None:
        if connection.application_state != WebSocketState.CONNECTED:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"Failed to close connection: {e}")
