"""
Live Session Base Types

This module defines the core data structures for the duplex live session:
connection state, response chunks, tool calls and the session error
taxonomy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
)


class ConnectionState(str, Enum):
    """State of the live session connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ACTIVE = "active"


class TurnPhase(str, Enum):
    """Implicit turn phase, inferred from frame traffic."""
    IDLE = "idle"
    USER_STREAMING = "user_streaming"
    AWAITING_MODEL = "awaiting_model"
    MODEL_STREAMING = "model_streaming"


class ChunkType(str, Enum):
    """Kinds of response chunks produced by the session."""
    TEXT = "text"
    AUDIO = "audio"
    TOOL_CALL = "tool_call"
    TURN_COMPLETE = "turn_complete"
    ERROR = "error"


class CallbackKind(str, Enum):
    """The five independent callback channels of a session."""
    TRANSCRIPT = "transcript"
    RESPONSE = "response"
    AUDIO = "audio"
    ERROR = "error"
    CONNECTION = "connection"


@dataclass(frozen=True)
class FunctionCall:
    """A single function the model wants executed."""

    id: str
    name: str
    args: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCall:
    """Tool invocation request carried by a response chunk."""

    function_calls: List[FunctionCall] = field(default_factory=list)


@dataclass(frozen=True)
class ResponseChunk:
    """One unit of model output, discriminated by ``type``."""

    type: ChunkType
    text: Optional[str] = None
    audio: Optional[bytes] = None
    mime_type: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    error: Optional["LiveSessionError"] = None

    @classmethod
    def text_fragment(cls, text: str) -> "ResponseChunk":
        return cls(type=ChunkType.TEXT, text=text)

    @classmethod
    def audio_fragment(cls, audio: bytes, mime_type: Optional[str] = None) -> "ResponseChunk":
        return cls(type=ChunkType.AUDIO, audio=audio, mime_type=mime_type)

    @classmethod
    def tool(cls, tool_call: ToolCall) -> "ResponseChunk":
        return cls(type=ChunkType.TOOL_CALL, tool_call=tool_call)

    @classmethod
    def turn_complete(cls) -> "ResponseChunk":
        return cls(type=ChunkType.TURN_COMPLETE)

    @classmethod
    def failure(cls, error: "LiveSessionError") -> "ResponseChunk":
        return cls(type=ChunkType.ERROR, error=error)


@dataclass(frozen=True)
class Session:
    """Snapshot of the single live session owned by a client."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    session_id: Optional[str] = None
    pending_turn: bool = False
    turn_phase: TurnPhase = TurnPhase.IDLE

    @property
    def is_active(self) -> bool:
        return self.state == ConnectionState.ACTIVE


# =============================================================================
# Exceptions
# =============================================================================

class LiveSessionError(Exception):
    """Base exception for live session operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "LIVE_SESSION_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class InvalidEndpointError(LiveSessionError):
    """The session URL could not be constructed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_ENDPOINT", **kwargs)


class ConnectionTimeoutError(LiveSessionError):
    """The transport did not open within the connect timeout."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONNECTION_TIMEOUT", **kwargs)


class NotConnectedError(LiveSessionError):
    """An operation required an active session."""

    def __init__(self, message: str = "Not connected to live session", **kwargs):
        super().__init__(message, code="NOT_CONNECTED", **kwargs)


class TransportError(LiveSessionError):
    """The underlying transport failed while opening or sending."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="TRANSPORT_ERROR", **kwargs)


class RemoteDisconnectError(LiveSessionError):
    """The remote side closed the connection."""

    def __init__(self, reason: str = "", close_code: Optional[int] = None, **kwargs):
        super().__init__(
            f"Disconnected: {reason or 'no reason'} (code: {close_code})",
            code="REMOTE_DISCONNECT",
            **kwargs,
        )
        self.reason = reason
        self.close_code = close_code


class FrameDecodeError(LiveSessionError):
    """An inbound frame could not be decoded."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="FRAME_DECODE_ERROR", **kwargs)


class RemoteError(LiveSessionError):
    """The remote model reported an error inside a frame."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="REMOTE_ERROR", **kwargs)


__all__ = [
    "ConnectionState",
    "TurnPhase",
    "ChunkType",
    "CallbackKind",
    "FunctionCall",
    "ToolCall",
    "ResponseChunk",
    "Session",
    "LiveSessionError",
    "InvalidEndpointError",
    "ConnectionTimeoutError",
    "NotConnectedError",
    "TransportError",
    "RemoteDisconnectError",
    "FrameDecodeError",
    "RemoteError",
]
