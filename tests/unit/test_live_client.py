"""Unit tests for the live session client."""

import asyncio
import base64

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from aria_core.config import LiveSessionConfig
from aria_core.live.base import (
    CallbackKind,
    ChunkType,
    ConnectionState,
    ConnectionTimeoutError,
    FrameDecodeError,
    InvalidEndpointError,
    NotConnectedError,
    RemoteDisconnectError,
    TransportError,
    TurnPhase,
)
from aria_core.live.client import LiveSessionClient


class Recorder:
    """Collects callback payloads per kind."""

    def __init__(self, client: LiveSessionClient):
        self.transcripts = []
        self.chunks = []
        self.audio = []
        self.errors = []
        self.connection = []
        client.set_callbacks(
            on_transcript=self.transcripts.append,
            on_response=self.chunks.append,
            on_audio=self.audio.append,
            on_error=self.errors.append,
            on_connection_change=self.connection.append,
        )


class TestConnect:
    """Tests for connection management."""

    @pytest.mark.asyncio
    async def test_connect_sends_single_setup_frame(self, live_client, transport, settle):
        """Test connecting opens the transport and sends setup once."""
        recorder = Recorder(live_client)

        await live_client.connect()
        await settle(live_client)

        assert live_client.state == ConnectionState.ACTIVE
        assert live_client.is_connected
        setups = transport.frames_with("setup")
        assert len(setups) == 1
        assert setups[0]["setup"]["model"] == "models/test-model"
        assert recorder.connection == [True]

    @pytest.mark.asyncio
    async def test_connect_url(self, live_client, connector):
        """Test the connector receives the model endpoint URL."""
        await live_client.connect()

        assert connector.calls == [
            "wss://live.example.test/v1beta/models/test-model:streamGenerateContent?key=test-key"
        ]

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_handshake(self, live_client, connector, transport):
        """Test concurrent connect calls never run two setup handshakes."""
        await asyncio.gather(live_client.connect(), live_client.connect(), live_client.connect())

        assert len(connector.calls) == 1
        assert len(transport.frames_with("setup")) == 1

    @pytest.mark.asyncio
    async def test_connect_when_active_is_noop(self, live_client, connector, transport):
        """Test connecting an active session does nothing."""
        await live_client.connect()
        await live_client.connect()

        assert len(connector.calls) == 1
        assert len(transport.frames_with("setup")) == 1

    @pytest.mark.asyncio
    async def test_connect_timeout(self, live_config, make_connector):
        """Test a transport that never opens times out."""
        connector = make_connector(delay=10.0)
        config = live_config.model_copy(update={"connect_timeout": 0.05})
        client = LiveSessionClient("test-key", config, connector=connector)

        with pytest.raises(ConnectionTimeoutError):
            await client.connect()

        assert client.state == ConnectionState.DISCONNECTED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_transport_failure(self, live_config, make_connector):
        """Test an opening failure surfaces as TransportError."""
        connector = make_connector(error=OSError("connection refused"))
        client = LiveSessionClient("test-key", live_config, connector=connector)

        with pytest.raises(TransportError):
            await client.connect()

        assert client.state == ConnectionState.DISCONNECTED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_invalid_endpoint_never_opens_transport(self, connector):
        """Test a bad base URL fails before any transport is opened."""
        config = LiveSessionConfig(base_url="http://not-a-socket.test", model="m")
        client = LiveSessionClient("test-key", config, connector=connector)

        with pytest.raises(InvalidEndpointError):
            await client.connect()

        assert connector.calls == []
        assert client.state == ConnectionState.DISCONNECTED
        await client.aclose()

    @pytest.mark.asyncio
    async def test_setup_complete_assigns_session_id(self, live_client, transport, settle):
        """Test the session id comes from the setup acknowledgement."""
        await live_client.connect()
        transport.feed({"setupComplete": {"sessionId": "sess_abc"}})
        await settle(live_client)

        assert live_client.session_id == "sess_abc"
        assert live_client.session.is_active

    @pytest.mark.asyncio
    async def test_setup_complete_without_id_generates_one(self, live_client, transport, settle):
        """Test a local session id is generated when the server sends none."""
        await live_client.connect()
        transport.feed({"setupComplete": {}})
        await settle(live_client)

        assert live_client.session_id.startswith("sess_")


class TestDisconnect:
    """Tests for disconnection."""

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, live_client, transport, settle):
        """Test repeated disconnects close once and notify once."""
        recorder = Recorder(live_client)
        await live_client.connect()

        await live_client.disconnect()
        await live_client.disconnect()
        await settle(live_client)

        assert transport.closed
        assert live_client.state == ConnectionState.DISCONNECTED
        assert live_client.session_id is None
        assert recorder.connection == [True, False]

    @pytest.mark.asyncio
    async def test_disconnect_without_connect(self, live_client):
        """Test disconnecting a fresh client is a no-op."""
        await live_client.disconnect()

        assert live_client.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_remote_close(self, live_client, transport, settle):
        """Test a remote close reports an error and drops to disconnected."""
        recorder = Recorder(live_client)
        await live_client.connect()

        transport.remote_close(1011, "server going away")
        await settle(live_client)

        assert live_client.state == ConnectionState.DISCONNECTED
        assert len(recorder.errors) == 1
        error = recorder.errors[0]
        assert isinstance(error, RemoteDisconnectError)
        assert error.close_code == 1011
        assert error.reason == "server going away"
        assert recorder.connection == [True, False]

    @pytest.mark.asyncio
    async def test_reconnect_after_remote_close(self, live_client, connector, transport, settle):
        """Test a fresh connect works after the session dropped."""
        await live_client.connect()
        transport.remote_close()
        await settle(live_client)

        await live_client.connect()

        assert live_client.is_connected
        assert len(connector.calls) == 2
        assert len(transport.frames_with("setup")) == 2


class TestSending:
    """Tests for outbound operations."""

    @pytest.mark.asyncio
    async def test_operations_require_active_session(self, live_client):
        """Test sends before connecting raise NotConnectedError."""
        with pytest.raises(NotConnectedError):
            await live_client.send_text("hello")
        with pytest.raises(NotConnectedError):
            await live_client.stream_audio(b"\x00")
        with pytest.raises(NotConnectedError):
            await live_client.end_audio_stream()
        with pytest.raises(NotConnectedError):
            await live_client.inject_context("ctx")
        with pytest.raises(NotConnectedError):
            await live_client.send_tool_response("c1", "tool", {})

    @pytest.mark.asyncio
    async def test_send_text(self, live_client, transport):
        """Test a text turn is sent and marks a pending turn."""
        await live_client.connect()

        await live_client.send_text("what's on my calendar")

        turns = transport.frames_with("clientContent")
        assert turns[-1]["clientContent"]["turns"][0]["parts"][0]["text"] == "what's on my calendar"
        assert live_client.session.pending_turn
        assert live_client.session.turn_phase == TurnPhase.AWAITING_MODEL

    @pytest.mark.asyncio
    async def test_audio_stream(self, live_client, transport):
        """Test audio frames followed by the end-of-turn marker."""
        await live_client.connect()

        await live_client.stream_audio(b"\x01\x02")
        await live_client.stream_audio(b"\x03")
        assert live_client.session.turn_phase == TurnPhase.USER_STREAMING
        await live_client.end_audio_stream()
        assert live_client.session.turn_phase == TurnPhase.AWAITING_MODEL

        media = transport.frames_with("realtimeInput")
        assert len(media) == 2
        decoded = base64.b64decode(media[0]["realtimeInput"]["mediaChunks"][0]["data"])
        assert decoded == b"\x01\x02"
        assert transport.frames[-1] == {"clientContent": {"turnComplete": True}}

    @pytest.mark.asyncio
    async def test_inject_context(self, live_client, transport):
        """Test context travels through the side channel."""
        await live_client.connect()

        await live_client.inject_context("Current context:\n- Time: 9:00")

        response = transport.frames[-1]["toolResponse"]["functionResponses"][0]
        assert response["name"] == "context_update"
        assert response["response"]["context"].startswith("Current context:")

    @pytest.mark.asyncio
    async def test_send_failure_drops_session(self, live_client, transport, settle):
        """Test a failed send reports the error and disconnects."""
        recorder = Recorder(live_client)
        await live_client.connect()
        transport.send_error = ConnectionClosed(Close(1006, "abnormal"), None)

        with pytest.raises(RemoteDisconnectError):
            await live_client.send_text("hello")
        await settle(live_client)

        assert live_client.state == ConnectionState.DISCONNECTED
        assert len(recorder.errors) == 1
        assert recorder.connection == [True, False]


class TestReceiving:
    """Tests for inbound frame dispatch."""

    @pytest.mark.asyncio
    async def test_malformed_frame_reports_once_and_stays_active(self, live_client, transport, settle):
        """Test a malformed frame fires one error and keeps the session."""
        recorder = Recorder(live_client)
        await live_client.connect()

        transport.feed("{this is not json")
        await settle(live_client)

        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], FrameDecodeError)
        assert live_client.state == ConnectionState.ACTIVE

        transport.feed({"serverContent": {"modelTurn": {"parts": [{"text": "still here"}]}}})
        await settle(live_client)

        assert [c.text for c in recorder.chunks] == ["still here"]
        assert len(recorder.errors) == 1

    @pytest.mark.asyncio
    async def test_chunks_delivered_in_order(self, live_client, transport, settle, reply):
        """Test response chunks keep wire order."""
        recorder = Recorder(live_client)
        await live_client.connect()
        await live_client.send_text("hi")

        reply(transport, "Hel", "lo", "!")
        await settle(live_client)

        assert [c.type for c in recorder.chunks] == [
            ChunkType.TEXT,
            ChunkType.TEXT,
            ChunkType.TEXT,
            ChunkType.TURN_COMPLETE,
        ]
        assert "".join(c.text for c in recorder.chunks if c.text) == "Hello!"
        assert not live_client.session.pending_turn
        assert live_client.session.turn_phase == TurnPhase.IDLE

    @pytest.mark.asyncio
    async def test_audio_and_transcript_callbacks(self, live_client, transport, settle):
        """Test audio bytes and transcripts reach their own callbacks."""
        recorder = Recorder(live_client)
        await live_client.connect()

        transport.feed({"serverContent": {"inputTranscript": "read my email"}})
        transport.feed({
            "serverContent": {
                "modelTurn": {
                    "parts": [{"inlineData": {"mimeType": "audio/pcm", "data": base64.b64encode(b"pcm").decode()}}]
                }
            }
        })
        await settle(live_client)

        assert recorder.transcripts == ["read my email"]
        assert recorder.audio == [b"pcm"]
        assert recorder.chunks[0].type == ChunkType.AUDIO

    @pytest.mark.asyncio
    async def test_tool_call_chunk(self, live_client, transport, settle):
        """Test tool calls arrive as TOOL_CALL chunks."""
        recorder = Recorder(live_client)
        await live_client.connect()

        transport.feed({
            "toolCall": {"functionCalls": [{"id": "c9", "name": "get_weather", "args": {"city": "Oslo"}}]}
        })
        await settle(live_client)

        chunk = recorder.chunks[0]
        assert chunk.type == ChunkType.TOOL_CALL
        assert chunk.tool_call.function_calls[0].args == {"city": "Oslo"}

    @pytest.mark.asyncio
    async def test_callbacks_are_replaceable(self, live_client, transport, settle):
        """Test a replaced callback receives later deliveries."""
        first, second = [], []
        live_client.set_callback(CallbackKind.RESPONSE, first.append)
        await live_client.connect()

        transport.feed({"serverContent": {"modelTurn": {"parts": [{"text": "one"}]}}})
        await settle(live_client)
        live_client.set_callback(CallbackKind.RESPONSE, second.append)
        transport.feed({"serverContent": {"modelTurn": {"parts": [{"text": "two"}]}}})
        await settle(live_client)

        assert [c.text for c in first] == ["one"]
        assert [c.text for c in second] == ["two"]

    @pytest.mark.asyncio
    async def test_async_callback_and_failing_callback(self, live_client, transport, settle):
        """Test async callbacks are awaited and a failing one does not stop delivery."""
        received = []

        async def on_response(chunk):
            await asyncio.sleep(0)
            if chunk.text == "boom":
                raise RuntimeError("callback bug")
            received.append(chunk.text)

        live_client.set_callback(CallbackKind.RESPONSE, on_response)
        await live_client.connect()

        transport.feed({"serverContent": {"modelTurn": {"parts": [{"text": "boom"}, {"text": "ok"}]}}})
        await settle(live_client)

        assert received == ["ok"]
        assert live_client.is_connected
