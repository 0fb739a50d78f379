"""Shared test fixtures and configuration for backend tests."""
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from qrshare.files.service import BlobStore
from qrshare.sessions.coordinator import SessionCoordinator, set_coordinator
from qrshare.sessions.hub import ConnectionHub
from qrshare.sessions.registry import SessionRegistry
from qrshare.sessions.sweeper import ExpirySweeper


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """Records what the server sends; replays queued frames on receive()."""

    def __init__(self, frames: Optional[List[str]] = None, fail_send: bool = False) -> None:
        self.sent: List[dict] = []
        self.frames = list(frames or [])
        self.fail_send = fail_send
        self.closed = False
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, message: dict) -> None:
        if self.fail_send:
            raise RuntimeError("connection reset")
        self.sent.append(message)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.application_state = WebSocketState.DISCONNECTED

    async def receive(self) -> dict:
        if self.frames:
            return {"type": "websocket.receive", "text": self.frames.pop(0)}
        self.client_state = WebSocketState.DISCONNECTED
        return {"type": "websocket.disconnect", "code": 1000}

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return SessionRegistry(default_ttl_seconds=600, clock=clock)


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(str(tmp_path / "uploads"))


@pytest.fixture
def hub(registry):
    return ConnectionHub(registry)


@pytest.fixture
def coordinator(registry, hub, blobs):
    return SessionCoordinator(
        registry=registry,
        hub=hub,
        blobs=blobs,
        upload_broadcast_scope="session",
        ws_url="ws://test-host:5000/ws",
    )


@pytest.fixture
def sweeper(coordinator):
    return ExpirySweeper(coordinator.registry, coordinator.teardown, interval_seconds=10)


@pytest.fixture
def api_client(coordinator):
    """Provide a TestClient for the main FastAPI app wired to the test coordinator.

    All WebSockets share the client portal (one event loop), so tests can
    drive expiry with client.portal.call(sweeper.sweep_once).
    """
    from qrshare.main import app

    set_coordinator(coordinator)
    with TestClient(app) as client:
        yield client
    set_coordinator(None)
