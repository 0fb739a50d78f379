"""Pydantic schemas for the session HTTP endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class StartSessionRequest(BaseModel):
    """Body of POST /start-session. Omit duration for the configured default."""
    duration: Optional[float] = Field(
        default=None,
        gt=0,
        description="Session lifetime in minutes",
    )


class StartSessionResponse(BaseModel):
    """Identifier and pairing payload for a freshly created session.

    qrData is the JSON string a client renders as a QR code so another
    device can open the WebSocket and send init with the same sessionId.
    """
    sessionId: str = Field(..., description="Session identifier")
    qrData: str = Field(..., description="JSON pairing payload: {wsUrl, sessionId}")
    expiresAt: int = Field(..., description="Expiry deadline in milliseconds since epoch")


class DeleteSessionRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Session identifier to delete")


class DeleteSessionResponse(BaseModel):
    success: bool
    message: str
