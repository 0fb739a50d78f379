"""Pairing session module.

Sessions are created over HTTP, joined over a WebSocket with the
identifier from the pairing QR code, and torn down on explicit delete or
when their TTL runs out.

Components:
    - SessionRegistry: session id -> expiry and uploaded file names.
    - ConnectionHub: session id -> attached WebSocket connections.
    - ExpirySweeper: periodic eviction of expired sessions.
    - SessionCoordinator: realtime protocol state machine and teardown.
"""

from .coordinator import SessionCoordinator, get_coordinator, set_coordinator
from .hub import ConnectionHub
from .registry import Session, SessionRegistry
from .router import router
from .sweeper import ExpirySweeper

__all__ = [
    "ConnectionHub",
    "ExpirySweeper",
    "Session",
    "SessionCoordinator",
    "SessionRegistry",
    "get_coordinator",
    "router",
    "set_coordinator",
]
