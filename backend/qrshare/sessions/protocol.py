"""Realtime message envelopes exchanged over the session WebSocket.

Every frame is a JSON object with a ``type`` field. Inbound frames are
parsed into one pydantic model per type (a discriminated union), so the
Coordinator can dispatch on the model class. Frames with a well-formed
envelope but an unrecognized type become :class:`UnknownMessage`; anything
else raises :class:`~qrshare.errors.MalformedMessage`.

Inbound (client -> server):
    - init: {sessionId}
    - client-connected
    - list
    - download: {file}
    - upload: {name, content (base64)}

Outbound (server -> client):
    - init-ok, expired, ready, client-connected, client-disconnected
    - list: {files}
    - file: {name, content (base64)}
    - error: {message}
"""
import json
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from qrshare.errors import MalformedMessage


class MessageType(str, Enum):
    """All envelope types, both directions."""
    INIT = "init"
    INIT_OK = "init-ok"
    EXPIRED = "expired"
    CLIENT_CONNECTED = "client-connected"
    READY = "ready"
    CLIENT_DISCONNECTED = "client-disconnected"
    LIST = "list"
    DOWNLOAD = "download"
    FILE = "file"
    UPLOAD = "upload"
    ERROR = "error"


# =============================================================================
# Inbound messages
# =============================================================================


class InitMessage(BaseModel):
    """Bind the connection to a session."""
    type: Literal["init"]
    sessionId: str = Field(..., description="Session identifier from the pairing QR")


class ClientConnectedMessage(BaseModel):
    """Announce a newly joined peer to the rest of the session."""
    type: Literal["client-connected"]


class ListMessage(BaseModel):
    type: Literal["list"]


class DownloadMessage(BaseModel):
    """Request a stored file. An absent or empty name is ignored."""
    type: Literal["download"]
    file: Optional[str] = Field(default=None, description="File name to download")


class UploadMessage(BaseModel):
    """Store a file and refresh everyone's listing."""
    type: Literal["upload"]
    name: str = Field(..., description="File name to store under")
    content: str = Field(..., description="Base64-encoded file content")


class UnknownMessage(BaseModel):
    """Well-formed envelope with a type this server does not handle."""
    type: str


ClientMessage = Annotated[
    Union[
        InitMessage,
        ClientConnectedMessage,
        ListMessage,
        DownloadMessage,
        UploadMessage,
    ],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)

INBOUND_TYPES = frozenset({
    MessageType.INIT.value,
    MessageType.CLIENT_CONNECTED.value,
    MessageType.LIST.value,
    MessageType.DOWNLOAD.value,
    MessageType.UPLOAD.value,
})


def decode(raw: str) -> Union[ClientMessage, UnknownMessage]:
    """Parse a text frame into an inbound message model.

    Raises:
        MalformedMessage: If the frame is not a JSON object with a string
            ``type`` field, or a known type is missing required fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage("Envelope must be a JSON object")
    message_type = data.get("type")
    if not isinstance(message_type, str):
        raise MalformedMessage("Envelope is missing a string 'type' field")

    if message_type not in INBOUND_TYPES:
        return UnknownMessage(type=message_type)

    try:
        return _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessage(
            f"Invalid '{message_type}' message: {e.error_count()} error(s)"
        ) from e


# =============================================================================
# Outbound messages
# =============================================================================


def _envelope(message_type: MessageType, **fields) -> dict:
    return {"type": message_type.value, **fields}


def init_ok() -> dict:
    return _envelope(MessageType.INIT_OK)


def expired() -> dict:
    return _envelope(MessageType.EXPIRED)


def ready() -> dict:
    return _envelope(MessageType.READY)


def client_connected() -> dict:
    return _envelope(MessageType.CLIENT_CONNECTED)


def client_disconnected() -> dict:
    return _envelope(MessageType.CLIENT_DISCONNECTED)


def file_list(files: List[str]) -> dict:
    return _envelope(MessageType.LIST, files=list(files))


def file_payload(name: str, content: str) -> dict:
    """File reply; *content* is already base64-encoded."""
    return _envelope(MessageType.FILE, name=name, content=content)


def error(message: str) -> dict:
    return _envelope(MessageType.ERROR, message=message)
