"""Session coordinator: the realtime protocol state machine.

This module drives one WebSocket connection at a time through its
lifecycle and owns the single teardown procedure shared by explicit
deletion and expiry.

Connection states:
    UNBOUND -> BOUND -> CLOSED

Protocol Flow:
    1. Client sends: {type: "init", sessionId}
       → unknown/expired: server sends {type: "expired"} and closes
       → otherwise: server sends {type: "init-ok"}
    2. Client sends: {type: "client-connected"}
       → sender gets {type: "ready"}, other members get {type: "client-connected"}
    3. Client sends: {type: "list"} → {type: "list", files: [...]}
    4. Client sends: {type: "download", file} → {type: "file", name, content}
       or {type: "error", message}
    5. Client sends: {type: "upload", name, content}
       → members (or every connection, see upload_broadcast_scope)
         get {type: "list", files: [...]}
    6. On disconnect → remaining members get {type: "client-disconnected"}
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Literal, Optional

from fastapi import WebSocket, WebSocketDisconnect

from qrshare.config import AppConfig, get_config
from qrshare.errors import (
    BlobIOError,
    InvalidRequest,
    MalformedMessage,
    SessionExpired,
    SessionNotFound,
)
from qrshare.files.service import BlobStore

from . import protocol
from .hub import ConnectionHub
from .registry import SessionRegistry
from .sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

UploadScope = Literal["session", "global"]

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class ConnectionState(str, Enum):
    """Lifecycle state of a single realtime connection."""
    UNBOUND = "unbound"  # open, no session assigned yet
    BOUND = "bound"      # joined a session via init
    CLOSED = "closed"    # terminal


@dataclass
class PeerConnection:
    """Per-connection protocol state."""
    websocket: WebSocket
    state: ConnectionState = ConnectionState.UNBOUND
    session_id: Optional[str] = None


@dataclass(frozen=True)
class SessionTicket:
    """What the HTTP layer hands back after creating a session."""
    session_id: str
    expires_at: float
    qr_data: str


class SessionCoordinator:
    """Validates realtime messages and turns them into state changes and broadcasts."""

    def __init__(
        self,
        registry: SessionRegistry,
        hub: ConnectionHub,
        blobs: BlobStore,
        *,
        upload_broadcast_scope: UploadScope = "session",
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        ws_url: str = "ws://localhost:5000/ws",
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.blobs = blobs
        self.upload_broadcast_scope = upload_broadcast_scope
        self.max_upload_bytes = max_upload_bytes
        self.ws_url = ws_url

        self._handlers: Dict[type, Callable] = {
            protocol.ClientConnectedMessage: self._handle_client_connected,
            protocol.ListMessage: self._handle_list,
            protocol.DownloadMessage: self._handle_download,
            protocol.UploadMessage: self._handle_upload,
        }

    # =========================================================================
    # Operations called by the HTTP layer
    # =========================================================================

    def create_session(self, ttl_minutes: Optional[float] = None) -> SessionTicket:
        """Create a session and build its pairing payload.

        Raises:
            InvalidRequest: If *ttl_minutes* is not positive.
        """
        ttl_seconds = None if ttl_minutes is None else ttl_minutes * 60
        session_id = self.registry.create(ttl_seconds)
        session = self.registry.get(session_id)
        qr_data = json.dumps({"wsUrl": self.ws_url, "sessionId": session_id})
        return SessionTicket(
            session_id=session_id,
            expires_at=session.expires_at if session else 0.0,
            qr_data=qr_data,
        )

    async def delete_session(self, session_id: str) -> bool:
        """Tear down a session on explicit request.

        Returns:
            False if the session was unknown or already gone.
        """
        return await self.teardown(session_id)

    def list_files(self) -> List[str]:
        return self.blobs.list()

    # =========================================================================
    # Shared teardown (explicit delete and expiry)
    # =========================================================================

    async def teardown(self, session_id: str) -> bool:
        """Remove a session, delete its files, and disconnect its members.

        Idempotent: a second call for the same id is a no-op returning False.
        """
        session = self.registry.pop(session_id)
        if session is None:
            logger.info("[SESSION] Teardown skipped, %s not found", session_id)
            return False

        deleted = 0
        for name in session.files:
            try:
                if self.blobs.delete(name):
                    deleted += 1
                else:
                    logger.debug("[SESSION] File already gone: %s", name)
            except BlobIOError as e:
                logger.error("[SESSION] Error deleting file %s: %s", name, e)

        closed = await self.hub.notify_and_close(session_id, protocol.expired())
        logger.info(
            "[SESSION] Expired and cleaned: %s (%d file(s) deleted, %d connection(s) closed)",
            session_id, deleted, closed,
        )
        return True

    # =========================================================================
    # Realtime connection lifecycle
    # =========================================================================

    async def handle_connection(self, websocket: WebSocket) -> None:
        """Serve an accepted WebSocket until it closes."""
        peer = PeerConnection(websocket=websocket)
        logger.info("[WS] Client connected")
        try:
            while peer.state is not ConnectionState.CLOSED:
                raw = await self._receive_frame(websocket)
                await self.handle_frame(peer, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await self.close(peer)

    @staticmethod
    async def _receive_frame(websocket: WebSocket) -> str:
        """Receive the next frame as text; binary frames are decoded as UTF-8."""
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))
        text = message.get("text")
        if text is None:
            text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
        return text

    async def handle_frame(self, peer: PeerConnection, raw: str) -> None:
        """Process one text frame. Never raises except on disconnect."""
        try:
            message = protocol.decode(raw)
        except MalformedMessage as e:
            logger.warning("[WS] Invalid message: %s", e)
            return

        try:
            await self.dispatch(peer, message)
        except WebSocketDisconnect:
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("[WS] Error handling '%s' message: %s", message.type, e)

    async def dispatch(self, peer: PeerConnection, message) -> None:
        """Route a decoded message according to the connection's state."""
        if peer.state is ConnectionState.CLOSED:
            return

        if isinstance(message, protocol.UnknownMessage):
            logger.warning("[WS] Unknown message type: %s", message.type)
            return

        if isinstance(message, protocol.InitMessage):
            if peer.state is ConnectionState.BOUND:
                logger.warning(
                    "[WS] Ignoring repeated init; connection already bound to %s",
                    peer.session_id,
                )
                return
            await self._handle_init(peer, message)
            return

        if peer.state is ConnectionState.UNBOUND:
            logger.warning("[WS] Ignoring '%s' before init", message.type)
            return

        # Teardown drops the session from the hub; the connection is done.
        if self.hub.session_of(peer.websocket) != peer.session_id:
            logger.info(
                "[WS] Ignoring '%s' after session %s ended", message.type, peer.session_id
            )
            peer.state = ConnectionState.CLOSED
            return

        await self._handlers[type(message)](peer, message)

    async def close(self, peer: PeerConnection) -> None:
        """Move a connection to CLOSED and tell the remaining members."""
        peer.state = ConnectionState.CLOSED
        session_id = self.hub.leave(peer.websocket)
        if session_id is not None:
            await self.hub.broadcast(session_id, protocol.client_disconnected())
        logger.info("[WS] Client disconnected")

    # =========================================================================
    # Message handlers
    # =========================================================================

    async def _reply(self, peer: PeerConnection, message: dict) -> None:
        await self.hub.send(peer.websocket, message)

    async def _handle_init(self, peer: PeerConnection, message: protocol.InitMessage) -> None:
        try:
            self.hub.join(message.sessionId, peer.websocket)
        except (SessionNotFound, SessionExpired) as e:
            logger.info("[WS] init rejected (%s): %s", type(e).__name__, message.sessionId)
            await self._reply(peer, protocol.expired())
            peer.state = ConnectionState.CLOSED
            try:
                await peer.websocket.close()
            except Exception as e:  # pylint: disable=broad-except
                logger.debug("[WS] Close after expired failed: %s", e)
            return

        peer.state = ConnectionState.BOUND
        peer.session_id = message.sessionId
        await self._reply(peer, protocol.init_ok())

    async def _handle_client_connected(self, peer: PeerConnection, message) -> None:
        await self._reply(peer, protocol.ready())
        await self.hub.broadcast(
            peer.session_id, protocol.client_connected(), exclude=peer.websocket
        )

    async def _handle_list(self, peer: PeerConnection, message) -> None:
        await self._reply(peer, protocol.file_list(self.blobs.list()))

    async def _handle_download(
        self, peer: PeerConnection, message: protocol.DownloadMessage
    ) -> None:
        if not message.file:
            logger.info("[WS] download without a file name, ignoring")
            return

        try:
            content = self.blobs.get(message.file)
        except BlobIOError as e:
            logger.error("[WS] Error reading file %s: %s", message.file, e)
            await self._reply(peer, protocol.error("Failed to read file"))
            return

        if content is None:
            await self._reply(peer, protocol.error("Requested file does not exist"))
            return

        encoded = base64.b64encode(content).decode("ascii")
        await self._reply(peer, protocol.file_payload(message.file, encoded))

    async def _handle_upload(
        self, peer: PeerConnection, message: protocol.UploadMessage
    ) -> None:
        try:
            content = base64.b64decode(message.content)
        except (binascii.Error, ValueError) as e:
            logger.warning("[WS] Upload %s has invalid base64 content: %s", message.name, e)
            await self._reply(peer, protocol.error("Invalid file content"))
            return

        if len(content) > self.max_upload_bytes:
            logger.warning(
                "[WS] Upload %s rejected: %d bytes exceeds limit of %d",
                message.name, len(content), self.max_upload_bytes,
            )
            await self._reply(peer, protocol.error("File exceeds upload size limit"))
            return

        if peer.session_id not in self.registry:
            logger.info("[WS] Upload %s dropped, session %s is gone", message.name, peer.session_id)
            peer.state = ConnectionState.CLOSED
            return

        try:
            self.blobs.put(message.name, content)
        except (BlobIOError, InvalidRequest) as e:
            logger.error("[WS] Error uploading file: %s", e)
            await self._reply(peer, protocol.error("Failed to upload file"))
            return

        if not self.registry.record_file(peer.session_id, message.name):
            # Session torn down during the write; the blob has no owner.
            self.blobs.delete(message.name)
            peer.state = ConnectionState.CLOSED
            return
        logger.info("[WS] Uploaded file: %s", message.name)

        listing = protocol.file_list(self.blobs.list())
        if self.upload_broadcast_scope == "global":
            await self.hub.broadcast_all(listing)
        else:
            await self.hub.broadcast(peer.session_id, listing)


# =============================================================================
# Process-wide instance
# =============================================================================


def build_coordinator(config: AppConfig) -> SessionCoordinator:
    """Wire registry, hub and blob store from configuration."""
    session_cfg = config.session
    max_ttl = session_cfg.max_ttl_minutes
    registry = SessionRegistry(
        default_ttl_seconds=session_cfg.default_ttl_minutes * 60,
        max_ttl_seconds=max_ttl * 60 if max_ttl is not None else None,
    )
    return SessionCoordinator(
        registry=registry,
        hub=ConnectionHub(registry),
        blobs=BlobStore(config.storage.upload_dir),
        upload_broadcast_scope=session_cfg.upload_broadcast_scope,
        max_upload_bytes=config.storage.max_upload_bytes,
        ws_url=f"ws://{config.server.public_host}:{config.server.port}/ws",
    )


def build_sweeper(coordinator: SessionCoordinator, config: AppConfig) -> ExpirySweeper:
    return ExpirySweeper(
        registry=coordinator.registry,
        teardown=coordinator.teardown,
        interval_seconds=config.session.sweep_interval_seconds,
    )


_coordinator: Optional[SessionCoordinator] = None


def get_coordinator() -> SessionCoordinator:
    """Get the global coordinator, building it from config on first use."""
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator(get_config())
    return _coordinator


def set_coordinator(coordinator: Optional[SessionCoordinator]) -> None:
    """Set (or clear, with None) the global coordinator instance."""
    global _coordinator
    _coordinator = coordinator
