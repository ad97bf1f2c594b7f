"""
Live Session Client
===================

Owns exactly one duplex connection to the remote streaming conversational
endpoint and translates its wire protocol into typed callback events.

State machine::

    DISCONNECTED -> CONNECTING -> ACTIVE (setup frame sent)

Any transport error or remote close returns the client to DISCONNECTED and
fires the error and connection callbacks. There is no auto-reconnect and no
internal retry; a fresh ``connect()`` is required.
"""

from __future__ import annotations

import asyncio
import math
from uuid import uuid4
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Protocol,
    Union,
)

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from aria_core.config import LiveSessionConfig
from aria_core.live.base import (
    CallbackKind,
    ConnectionState,
    ConnectionTimeoutError,
    FrameDecodeError,
    LiveSessionError,
    NotConnectedError,
    RemoteDisconnectError,
    ResponseChunk,
    Session,
    TransportError,
    TurnPhase,
)
from aria_core.live.events import Callback, CallbackRegistry
from aria_core.live.protocol import (
    audio_frame,
    build_endpoint_url,
    context_frame,
    decode_frame,
    encode_frame,
    setup_frame,
    text_turn_frame,
    tool_response_frame,
    turn_complete_frame,
)


logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """The subset of a websocket connection the client relies on."""

    async def send(self, message: Union[str, bytes]) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[..., Awaitable[Transport]]


def default_connector(url: str, **kwargs: Any) -> Awaitable[Transport]:
    """Open a websocket connection."""
    return websockets.connect(url, **kwargs)


class LiveSessionClient:
    """
    Duplex client for the remote conversational model.

    Usage:
        client = LiveSessionClient(api_key, config)
        client.set_callbacks(on_response=handle_chunk, on_error=handle_error)
        await client.connect()
        await client.send_text("what's on my calendar today")
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[LiveSessionConfig] = None,
        connector: Optional[Connector] = None,
    ):
        self.config = config or LiveSessionConfig()
        self._api_key = api_key
        self._connector = connector or default_connector

        self._state = ConnectionState.DISCONNECTED
        self._session_id: Optional[str] = None
        self._pending_turn = False
        self._turn_phase = TurnPhase.IDLE

        self._transport: Optional[Transport] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()
        self._generation = 0

        self._callbacks = CallbackRegistry()
        self._logger = structlog.get_logger("live_session")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.ACTIVE

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def session(self) -> Session:
        """Snapshot of the current session."""
        return Session(
            state=self._state,
            session_id=self._session_id,
            pending_turn=self._pending_turn,
            turn_phase=self._turn_phase,
        )

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        self._logger.info(
            "connection_state_changed",
            previous=previous.value,
            state=state.value,
        )
        if state == ConnectionState.ACTIVE:
            self._callbacks.emit(CallbackKind.CONNECTION, True)
        elif previous == ConnectionState.ACTIVE:
            self._callbacks.emit(CallbackKind.CONNECTION, False)

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def set_callbacks(
        self,
        on_transcript: Optional[Callable[[str], Any]] = None,
        on_response: Optional[Callable[[ResponseChunk], Any]] = None,
        on_audio: Optional[Callable[[bytes], Any]] = None,
        on_error: Optional[Callable[[LiveSessionError], Any]] = None,
        on_connection_change: Optional[Callable[[bool], Any]] = None,
    ) -> None:
        """Replace all five callbacks at once."""
        self._callbacks.set(CallbackKind.TRANSCRIPT, on_transcript)
        self._callbacks.set(CallbackKind.RESPONSE, on_response)
        self._callbacks.set(CallbackKind.AUDIO, on_audio)
        self._callbacks.set(CallbackKind.ERROR, on_error)
        self._callbacks.set(CallbackKind.CONNECTION, on_connection_change)

    def set_callback(self, kind: CallbackKind, callback: Optional[Callback]) -> None:
        """Replace a single callback."""
        self._callbacks.set(kind, callback)

    async def flush_callbacks(self) -> None:
        """Wait until every queued callback delivery has run."""
        await self._callbacks.flush()

    # -------------------------------------------------------------------------
    # Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the transport and send the setup frame.

        Raises:
            InvalidEndpointError: the session URL could not be constructed
            ConnectionTimeoutError: the transport did not open in time
            TransportError: the transport failed while opening
        """
        async with self._connect_lock:
            if self._state == ConnectionState.ACTIVE:
                return

            url = build_endpoint_url(self.config.base_url, self.config.model, self._api_key)
            generation = self._generation

            self._set_state(ConnectionState.CONNECTING)
            try:
                transport = await self._open_transport(url)
            except LiveSessionError:
                self._set_state(ConnectionState.DISCONNECTED)
                raise

            if generation != self._generation:
                await self._close_transport(transport)
                self._set_state(ConnectionState.DISCONNECTED)
                raise TransportError("Connect aborted by disconnect")

            self._transport = transport
            self._receive_task = asyncio.create_task(self._receive_loop(transport))

            try:
                await self._send(
                    setup_frame(
                        model=self.config.model,
                        system_instruction=self.config.system_instruction,
                        response_modalities=self.config.response_modalities,
                        voice_name=self.config.voice_name,
                    )
                )
            except LiveSessionError:
                await self._teardown()
                self._set_state(ConnectionState.DISCONNECTED)
                raise

            self._turn_phase = TurnPhase.IDLE
            self._pending_turn = False
            self._set_state(ConnectionState.ACTIVE)
            self._logger.info("session_connected", model=self.config.model)

    async def _open_transport(self, url: str) -> Transport:
        """Start opening the transport and poll for it until the timeout."""
        kwargs: Dict[str, Any] = {}
        if self._connector is default_connector:
            kwargs["ping_interval"] = self.config.ping_interval

        open_task = asyncio.ensure_future(self._connector(url, **kwargs))

        attempts = max(1, math.ceil(self.config.connect_timeout / self.config.poll_interval))
        for _ in range(attempts):
            done, _ = await asyncio.wait({open_task}, timeout=self.config.poll_interval)
            if done:
                break

        if not open_task.done():
            open_task.cancel()
            try:
                await open_task
            except (asyncio.CancelledError, Exception):
                pass
            self._logger.warning("connect_timeout", timeout=self.config.connect_timeout)
            raise ConnectionTimeoutError(
                f"Connection timed out after {self.config.connect_timeout}s"
            )

        error = open_task.exception()
        if error is not None:
            self._logger.error("connect_failed", error=str(error))
            raise TransportError(f"Failed to open session: {error}") from error

        return open_task.result()

    async def disconnect(self) -> None:
        """Close the transport unconditionally. Safe to call repeatedly."""
        self._generation += 1
        had_transport = self._transport is not None

        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)

        if had_transport:
            self._logger.info("session_disconnected")

    async def aclose(self) -> None:
        """Disconnect and stop all callback delivery."""
        await self.disconnect()
        await self._callbacks.close()

    async def _teardown(self) -> None:
        transport, self._transport = self._transport, None
        task, self._receive_task = self._receive_task, None

        self._session_id = None
        self._pending_turn = False
        self._turn_phase = TurnPhase.IDLE

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if transport is not None:
            await self._close_transport(transport)

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except (WebSocketException, OSError) as e:
            self._logger.debug("transport_close_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Audio Streaming
    # -------------------------------------------------------------------------

    async def stream_audio(self, data: bytes) -> None:
        """Append audio to the current user turn."""
        self._require_active()
        await self._send(audio_frame(data, self.config.audio_mime_type))
        self._turn_phase = TurnPhase.USER_STREAMING
        self._pending_turn = True

    async def end_audio_stream(self) -> None:
        """Signal end-of-turn for an in-progress audio turn."""
        self._require_active()
        await self._send(turn_complete_frame())
        self._turn_phase = TurnPhase.AWAITING_MODEL

    # -------------------------------------------------------------------------
    # Text Input
    # -------------------------------------------------------------------------

    async def send_text(self, text: str) -> None:
        """Send a complete user turn."""
        self._require_active()
        await self._send(text_turn_frame(text))
        self._turn_phase = TurnPhase.AWAITING_MODEL
        self._pending_turn = True

    # -------------------------------------------------------------------------
    # Context Injection
    # -------------------------------------------------------------------------

    async def inject_context(self, context: str) -> None:
        """Deliver a structured context update; never appears as a spoken turn."""
        self._require_active()
        await self._send(context_frame(context))

    async def send_tool_response(
        self,
        call_id: str,
        name: str,
        response: Dict[str, Any],
    ) -> None:
        """Feed the result of a tool call back to the model."""
        self._require_active()
        await self._send(tool_response_frame(call_id, name, response))

    # -------------------------------------------------------------------------
    # Internal Methods
    # -------------------------------------------------------------------------

    def _require_active(self) -> None:
        if self._state != ConnectionState.ACTIVE or self._transport is None:
            raise NotConnectedError()

    async def _send(self, frame: Dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise NotConnectedError()

        try:
            await transport.send(encode_frame(frame))
        except ConnectionClosed as e:
            error = self._closed_error(e)
            self._handle_transport_loss(transport, error)
            raise error from e
        except (WebSocketException, OSError) as e:
            error = TransportError(f"Send failed: {e}")
            self._handle_transport_loss(transport, error)
            raise error from e

    async def _receive_loop(self, transport: Transport) -> None:
        """Read inbound frames until the transport goes away."""
        try:
            while True:
                raw = await transport.recv()
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            self._handle_transport_loss(transport, self._closed_error(e))
        except (WebSocketException, OSError) as e:
            self._handle_transport_loss(transport, TransportError(f"Receive failed: {e}"))
            await self._close_transport(transport)

    @staticmethod
    def _closed_error(exc: ConnectionClosed) -> RemoteDisconnectError:
        frame = exc.rcvd or exc.sent
        if frame is None:
            return RemoteDisconnectError("connection lost", None)
        return RemoteDisconnectError(frame.reason, int(frame.code))

    def _handle_transport_loss(self, transport: Transport, error: LiveSessionError) -> None:
        if self._transport is not transport:
            return

        self._logger.warning("session_lost", error=error.message, code=error.code)

        task = self._receive_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        self._transport = None
        self._receive_task = None
        self._session_id = None
        self._pending_turn = False
        self._turn_phase = TurnPhase.IDLE

        self._callbacks.emit(CallbackKind.ERROR, error)
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_frame(self, raw: Union[str, bytes]) -> None:
        try:
            decoded = decode_frame(raw)
        except FrameDecodeError as e:
            self._logger.warning("frame_decode_failed", error=e.message)
            self._callbacks.emit(CallbackKind.ERROR, e)
            return

        if decoded.setup_complete:
            self._session_id = decoded.session_id or self._session_id or f"sess_{uuid4().hex}"
            self._logger.info("session_setup_complete", session_id=self._session_id)

        if decoded.transcript is not None:
            self._callbacks.emit(CallbackKind.TRANSCRIPT, decoded.transcript)

        if decoded.has_model_output:
            self._turn_phase = TurnPhase.MODEL_STREAMING

        for chunk in decoded.chunks:
            if chunk.audio is not None:
                self._callbacks.emit(CallbackKind.AUDIO, chunk.audio)
            self._callbacks.emit(CallbackKind.RESPONSE, chunk)

        if decoded.turn_complete:
            self._turn_phase = TurnPhase.IDLE
            self._pending_turn = False


__all__ = [
    "Transport",
    "Connector",
    "default_connector",
    "LiveSessionClient",
]
