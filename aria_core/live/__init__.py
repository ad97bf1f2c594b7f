"""
Live Session Package

Duplex streaming session with the remote conversational model.
"""

from aria_core.live.base import (
    CallbackKind,
    ChunkType,
    ConnectionState,
    ConnectionTimeoutError,
    FrameDecodeError,
    FunctionCall,
    InvalidEndpointError,
    LiveSessionError,
    NotConnectedError,
    RemoteDisconnectError,
    RemoteError,
    ResponseChunk,
    Session,
    ToolCall,
    TransportError,
    TurnPhase,
)
from aria_core.live.client import LiveSessionClient, default_connector
from aria_core.live.protocol import build_endpoint_url, decode_frame


__all__ = [
    "CallbackKind",
    "ChunkType",
    "ConnectionState",
    "ConnectionTimeoutError",
    "FrameDecodeError",
    "FunctionCall",
    "InvalidEndpointError",
    "LiveSessionError",
    "NotConnectedError",
    "RemoteDisconnectError",
    "RemoteError",
    "ResponseChunk",
    "Session",
    "ToolCall",
    "TransportError",
    "TurnPhase",
    "LiveSessionClient",
    "default_connector",
    "build_endpoint_url",
    "decode_frame",
]
