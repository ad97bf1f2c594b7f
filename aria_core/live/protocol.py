"""
Live Session Wire Protocol
==========================

Frame builders for outbound messages and a pydantic-backed decoder for
inbound server frames. Key names are bit-exact with the remote streaming
endpoint (camelCase JSON).
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, urlsplit
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, ValidationError

from aria_core.live.base import (
    ChunkType,
    FrameDecodeError,
    FunctionCall,
    InvalidEndpointError,
    RemoteError,
    ResponseChunk,
    ToolCall,
)


CONTEXT_UPDATE_NAME = "context_update"


# =============================================================================
# Endpoint
# =============================================================================


def build_endpoint_url(base_url: str, model: str, api_key: str) -> str:
    """Build the session URL for a specific model version."""
    if not model or not model.strip() or "/" in model.strip():
        raise InvalidEndpointError(f"Invalid model identifier: {model!r}")

    base = (base_url or "").rstrip("/")
    parts = urlsplit(base)
    if parts.scheme not in ("ws", "wss") or not parts.netloc:
        raise InvalidEndpointError(
            f"Invalid session endpoint: {base_url!r}",
            details={"scheme": parts.scheme},
        )

    return f"{base}/{quote(model.strip())}:streamGenerateContent?key={quote(api_key, safe='')}"


# =============================================================================
# Outbound frames
# =============================================================================


def setup_frame(
    model: str,
    system_instruction: str,
    response_modalities: List[str],
    voice_name: str,
) -> Dict[str, Any]:
    """The one-time session setup frame."""
    return {
        "setup": {
            "model": f"models/{model}",
            "generationConfig": {
                "responseModalities": list(response_modalities),
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice_name},
                    },
                },
            },
            "systemInstruction": {
                "parts": [{"text": system_instruction}],
            },
        }
    }


def audio_frame(data: bytes, mime_type: str = "audio/pcm") -> Dict[str, Any]:
    """Append audio to the current user turn."""
    return {
        "realtimeInput": {
            "mediaChunks": [
                {
                    "mimeType": mime_type,
                    "data": base64.b64encode(data).decode("ascii"),
                }
            ]
        }
    }


def text_turn_frame(text: str, role: str = "user") -> Dict[str, Any]:
    """A complete user turn, marked done in one frame."""
    return {
        "clientContent": {
            "turns": [{"role": role, "parts": [{"text": text}]}],
            "turnComplete": True,
        }
    }


def turn_complete_frame() -> Dict[str, Any]:
    """End of an in-progress audio turn."""
    return {"clientContent": {"turnComplete": True}}


def tool_response_frame(call_id: str, name: str, response: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "toolResponse": {
            "functionResponses": [
                {"id": call_id, "name": name, "response": response},
            ]
        }
    }


def context_frame(context: str) -> Dict[str, Any]:
    """Out-of-band context update, delivered as a tool response."""
    return tool_response_frame(
        call_id=f"context_{uuid4()}",
        name=CONTEXT_UPDATE_NAME,
        response={"context": context},
    )


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


# =============================================================================
# Inbound frames
# =============================================================================


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InlineData(_Model):
    mimeType: Optional[str] = None
    data: Optional[str] = None


class Part(_Model):
    text: Optional[str] = None
    inlineData: Optional[InlineData] = None


class ModelTurn(_Model):
    parts: Optional[List[Part]] = None


class ServerContent(_Model):
    modelTurn: Optional[ModelTurn] = None
    turnComplete: Optional[bool] = None
    inputTranscript: Optional[str] = None


class WireFunctionCall(_Model):
    id: str
    name: str
    args: Optional[Dict[str, Any]] = None


class WireToolCall(_Model):
    functionCalls: Optional[List[WireFunctionCall]] = None


class SetupComplete(_Model):
    sessionId: Optional[str] = None


class WireError(_Model):
    code: Optional[Union[int, str]] = None
    message: Optional[str] = None


class ServerMessage(_Model):
    serverContent: Optional[ServerContent] = None
    toolCall: Optional[WireToolCall] = None
    setupComplete: Optional[SetupComplete] = None
    error: Optional[WireError] = None


@dataclass
class DecodedFrame:
    """Typed events extracted from one inbound frame, in wire order."""

    chunks: List[ResponseChunk] = field(default_factory=list)
    transcript: Optional[str] = None
    setup_complete: bool = False
    session_id: Optional[str] = None

    @property
    def has_model_output(self) -> bool:
        return any(c.text is not None or c.audio is not None for c in self.chunks)

    @property
    def turn_complete(self) -> bool:
        return any(c.type == ChunkType.TURN_COMPLETE for c in self.chunks)


def _stringify_args(args: Optional[Dict[str, Any]]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for key, value in (args or {}).items():
        result[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return result


def decode_frame(raw: Union[str, bytes]) -> DecodedFrame:
    """
    Decode one inbound frame.

    Raises:
        FrameDecodeError: the frame is not JSON, not an object, or does not
            match the server message schema.
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FrameDecodeError(f"Invalid JSON frame: {e}") from e

    if not isinstance(payload, dict):
        raise FrameDecodeError(f"Frame is not an object: {type(payload).__name__}")

    try:
        message = ServerMessage.model_validate(payload)
    except ValidationError as e:
        raise FrameDecodeError(
            "Frame does not match server schema",
            details={"errors": e.errors(include_url=False)},
        ) from e

    decoded = DecodedFrame()

    if message.setupComplete is not None:
        decoded.setup_complete = True
        decoded.session_id = message.setupComplete.sessionId

    content = message.serverContent
    if content is not None:
        parts = (content.modelTurn.parts if content.modelTurn else None) or []
        for part in parts:
            if part.text is not None:
                decoded.chunks.append(ResponseChunk.text_fragment(part.text))
            if part.inlineData is not None and part.inlineData.data:
                try:
                    audio = base64.b64decode(part.inlineData.data, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise FrameDecodeError(f"Invalid base64 audio: {e}") from e
                decoded.chunks.append(
                    ResponseChunk.audio_fragment(audio, part.inlineData.mimeType)
                )

        if content.turnComplete:
            decoded.chunks.append(ResponseChunk.turn_complete())

        if content.inputTranscript is not None:
            decoded.transcript = content.inputTranscript

    if message.toolCall is not None:
        calls = [
            FunctionCall(id=fc.id, name=fc.name, args=_stringify_args(fc.args))
            for fc in message.toolCall.functionCalls or []
        ]
        decoded.chunks.append(ResponseChunk.tool(ToolCall(function_calls=calls)))

    if message.error is not None:
        decoded.chunks.append(
            ResponseChunk.failure(
                RemoteError(
                    message.error.message or "Remote error",
                    details={"remote_code": message.error.code},
                )
            )
        )

    return decoded


__all__ = [
    "CONTEXT_UPDATE_NAME",
    "build_endpoint_url",
    "setup_frame",
    "audio_frame",
    "text_turn_frame",
    "turn_complete_frame",
    "tool_response_frame",
    "context_frame",
    "encode_frame",
    "ServerMessage",
    "DecodedFrame",
    "decode_frame",
]
