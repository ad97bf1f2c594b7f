"""
Conversation Orchestrator
=========================

Routes each user input through two concurrent paths: the local intent
classifier with its response cache, and the remote live session. A cached
response for a confidently classified intent is served immediately; the
remote turn still runs in the background and refreshes the cache when it
completes.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    List,
    Optional,
    Set,
)
from uuid import uuid4

import structlog

from aria_core.config import LiveSessionConfig, Settings, get_settings
from aria_core.conversation.base import MissingCredentialError, TurnTimeoutError
from aria_core.conversation.cache import ResponseCache
from aria_core.conversation.context import ConversationContext
from aria_core.conversation.intents import ClassificationResult, LocalIntentClassifier
from aria_core.live.base import (
    ChunkType,
    FunctionCall,
    LiveSessionError,
    NotConnectedError,
    ResponseChunk,
)
from aria_core.live.client import LiveSessionClient
from aria_core.storage.base import StorageBackend, StorageError


logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str, LiveSessionConfig], LiveSessionClient]

TURN_RECORD_TYPE = "conversation_turn"


def default_client_factory(api_key: str, config: LiveSessionConfig) -> LiveSessionClient:
    return LiveSessionClient(api_key, config)


@dataclass
class _Turn:
    """A user turn awaiting its remote turn-complete."""

    sequence: int
    transcript: str
    done: asyncio.Future
    voice: bool = False
    background: bool = False
    orphaned: bool = False
    fragments: List[str] = field(default_factory=list)

    @property
    def response(self) -> str:
        return "".join(self.fragments)


class ConversationOrchestrator:
    """
    Local/remote race for user input.

    Usage:
        orchestrator = ConversationOrchestrator(settings)
        orchestrator.on_response = print
        if await orchestrator.connect():
            await orchestrator.process_text("check my balance")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        classifier: Optional[LocalIntentClassifier] = None,
        cache: Optional[ResponseCache] = None,
        client_factory: Optional[ClientFactory] = None,
        storage: Optional[StorageBackend] = None,
    ):
        self.settings = settings or get_settings()
        self.config = self.settings.orchestrator
        self.classifier = classifier or LocalIntentClassifier()
        self.cache = cache or ResponseCache(ttl_seconds=self.config.cache_ttl_seconds)
        self.storage = storage
        self._client_factory = client_factory or default_client_factory

        self._client: Optional[LiveSessionClient] = None
        self._turns: Deque[_Turn] = deque()
        self._voice_turn: Optional[_Turn] = None
        self._sequence = itertools.count(1)
        self._background: Set[asyncio.Task] = set()
        self._pending_tool_calls: Dict[str, FunctionCall] = {}
        self._inputs_in_flight = 0

        # Observable state
        self.current_transcript = ""
        self.last_response = ""
        self.last_error: Optional[Exception] = None

        # Callbacks
        self.on_response: Optional[Callable[[str], Any]] = None
        self.on_audio: Optional[Callable[[bytes], Any]] = None
        self.on_tool_call: Optional[Callable[[str, Dict[str, str]], Any]] = None
        self.on_error: Optional[Callable[[Exception], Any]] = None
        self.on_connection_change: Optional[Callable[[bool], Any]] = None

        self._logger = structlog.get_logger("orchestrator")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def client(self) -> Optional[LiveSessionClient]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    @property
    def is_processing(self) -> bool:
        if self._inputs_in_flight:
            return True
        return any(not (turn.background or turn.orphaned) for turn in self._turns)

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Build the live session client and connect it.

        Returns:
            True once the session is active, False if the connection failed
            (the failure is delivered through ``on_error``).

        Raises:
            MissingCredentialError: no credential is configured; no client or
                transport is created.
        """
        if not self.settings.has_credential:
            raise MissingCredentialError()

        if self._client is None:
            self._client = self._client_factory(self.settings.gemini_api_key, self.settings.live)
            self._client.set_callbacks(
                on_transcript=self._handle_transcript,
                on_response=self._handle_chunk,
                on_audio=self._handle_audio,
                on_error=self._handle_client_error,
                on_connection_change=self._handle_connection_change,
            )

        try:
            await self._client.connect()
        except LiveSessionError as e:
            await self._report_error(e)
            return False

        if self.config.preload_queries:
            await self.classifier.preload_common_queries()

        self._logger.info("orchestrator_connected", session_id=self._client.session_id)
        return True

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.disconnect()
        self._fail_pending_turns()

    async def close(self) -> None:
        """Disconnect and wait for background turns to settle."""
        await self.disconnect()
        await self.wait_background()
        if self._client is not None:
            await self._client.aclose()

    async def wait_background(self) -> None:
        """Wait for cache-refresh turns still running in the background."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Text Processing
    # -------------------------------------------------------------------------

    async def process_text(self, text: str) -> None:
        """Race local classification against the remote model."""
        self._inputs_in_flight += 1
        self.current_transcript = text
        try:
            turn = self._new_turn(text)
            remote = asyncio.create_task(self._run_remote_turn(turn))

            local = await self.classifier.classify(text)
            cached = self._cached_response(local)

            if cached is not None:
                turn.background = True
                self._track_background(remote)
                self.last_response = cached
                self._logger.info(
                    "cache_hit",
                    intent=local.intent.value,
                    confidence=local.confidence,
                )
                await self._invoke(self.on_response, cached)
                return

            await remote
        finally:
            self._inputs_in_flight -= 1

    def _cached_response(self, local: ClassificationResult) -> Optional[str]:
        if local.confidence <= self.config.cache_hit_confidence:
            return None
        return self.cache.get(local.intent)

    def _new_turn(self, transcript: str, voice: bool = False) -> _Turn:
        return _Turn(
            sequence=next(self._sequence),
            transcript=transcript,
            done=asyncio.get_running_loop().create_future(),
            voice=voice,
        )

    def _track_background(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_remote_turn(self, turn: _Turn) -> None:
        client = self._client
        if client is None or not client.is_connected:
            await self._report_error(NotConnectedError())
            return

        self._turns.append(turn)
        try:
            await client.send_text(turn.transcript)
        except LiveSessionError as e:
            self._discard_turn(turn)
            await self._report_error(e)
            return

        try:
            await asyncio.wait_for(asyncio.shield(turn.done), timeout=self.config.turn_timeout)
        except asyncio.TimeoutError:
            self._orphan_turn(turn)
            await self._report_error(
                TurnTimeoutError(
                    f"Remote turn did not complete within {self.config.turn_timeout}s",
                    details={"sequence": turn.sequence},
                )
            )

    def _discard_turn(self, turn: _Turn) -> None:
        try:
            self._turns.remove(turn)
        except ValueError:
            pass
        if not turn.done.done():
            turn.done.set_result(None)

    def _orphan_turn(self, turn: _Turn) -> None:
        # The server still owes this turn a reply; keep its queue slot so the
        # late chunks are consumed here instead of landing on the next turn.
        turn.orphaned = True
        if not turn.done.done():
            turn.done.set_result(None)

    def _fail_pending_turns(self) -> None:
        while self._turns:
            turn = self._turns.popleft()
            if not turn.done.done():
                turn.done.set_result(None)
        self._voice_turn = None

    # -------------------------------------------------------------------------
    # Voice Processing
    # -------------------------------------------------------------------------

    async def process_voice(self, audio: bytes) -> None:
        """Stream captured audio to the remote model."""
        if self._client is None:
            await self._report_error(NotConnectedError())
            return

        self._inputs_in_flight += 1
        try:
            await self._client.stream_audio(audio)
            if self._voice_turn is None:
                self._voice_turn = self._new_turn(self.current_transcript, voice=True)
                self._turns.append(self._voice_turn)
        except LiveSessionError as e:
            await self._report_error(e)
        finally:
            self._inputs_in_flight -= 1

    async def end_voice_input(self) -> None:
        if self._client is None:
            await self._report_error(NotConnectedError())
            return

        try:
            await self._client.end_audio_stream()
        except LiveSessionError as e:
            await self._report_error(e)
        finally:
            self._voice_turn = None

    # -------------------------------------------------------------------------
    # Context and Tools
    # -------------------------------------------------------------------------

    async def inject_context(self, context: ConversationContext) -> None:
        """Forward ambient context through the session side channel."""
        if self._client is None:
            await self._report_error(NotConnectedError())
            return

        try:
            await self._client.inject_context(context.format())
        except LiveSessionError as e:
            await self._report_error(e)

    async def submit_tool_result(
        self,
        name: str,
        result: Dict[str, Any],
        call_id: Optional[str] = None,
    ) -> None:
        """Send a tool result back; the call id defaults to the latest call of ``name``."""
        if call_id is None:
            matches = [c for c in self._pending_tool_calls.values() if c.name == name]
            call_id = matches[-1].id if matches else f"call_{uuid4().hex[:12]}"
        self._pending_tool_calls.pop(call_id, None)

        if self._client is None:
            await self._report_error(NotConnectedError())
            return

        try:
            await self._client.send_tool_response(call_id, name, result)
        except LiveSessionError as e:
            await self._report_error(e)

    # -------------------------------------------------------------------------
    # Session Callbacks
    # -------------------------------------------------------------------------

    def _handle_transcript(self, transcript: str) -> None:
        self.current_transcript = transcript
        if self._voice_turn is not None:
            self._voice_turn.transcript = transcript

    async def _handle_audio(self, audio: bytes) -> None:
        await self._invoke(self.on_audio, audio)

    async def _handle_client_error(self, error: LiveSessionError) -> None:
        await self._report_error(error)

    async def _handle_connection_change(self, connected: bool) -> None:
        self._logger.info("connection_changed", connected=connected)
        if not connected:
            self._fail_pending_turns()
        await self._invoke(self.on_connection_change, connected)

    async def _handle_chunk(self, chunk: ResponseChunk) -> None:
        turn = self._turns[0] if self._turns else None

        if turn is not None and turn.orphaned and chunk.type != ChunkType.ERROR:
            if chunk.type == ChunkType.TURN_COMPLETE:
                self._turns.popleft()
                self._logger.debug("late_reply_dropped", sequence=turn.sequence)
            return

        if chunk.type == ChunkType.TEXT and chunk.text is not None:
            if turn is None or not turn.background:
                if turn is not None and not turn.fragments:
                    self.last_response = ""
                self.last_response += chunk.text
                await self._invoke(self.on_response, chunk.text)
            if turn is not None:
                turn.fragments.append(chunk.text)

        elif chunk.type == ChunkType.TOOL_CALL and chunk.tool_call is not None:
            for call in chunk.tool_call.function_calls:
                self._pending_tool_calls[call.id] = call
                self._logger.info("tool_call_received", tool=call.name, call_id=call.id)
                await self._invoke(self.on_tool_call, call.name, dict(call.args))

        elif chunk.type == ChunkType.TURN_COMPLETE:
            if turn is not None:
                self._turns.popleft()
                if turn is self._voice_turn:
                    self._voice_turn = None
                await self._complete_turn(turn)

        elif chunk.type == ChunkType.ERROR and chunk.error is not None:
            await self._report_error(chunk.error)

    async def _complete_turn(self, turn: _Turn) -> None:
        response = turn.response
        try:
            if response:
                classification = await self.classifier.classify(turn.transcript)
                if classification.confidence > self.config.cache_store_confidence:
                    stored = self.cache.put(
                        classification.intent,
                        response,
                        sequence=turn.sequence,
                    )
                    self._logger.debug(
                        "response_cached",
                        intent=classification.intent.value,
                        sequence=turn.sequence,
                        stored=stored,
                    )
                await self._record_turn(turn, classification)
        finally:
            if not turn.done.done():
                turn.done.set_result(None)

    async def _record_turn(self, turn: _Turn, classification: ClassificationResult) -> None:
        if self.storage is None:
            return

        record = {
            "sequence": turn.sequence,
            "transcript": turn.transcript,
            "response": turn.response,
            "intent": classification.intent.value,
            "confidence": classification.confidence,
            "voice": turn.voice,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.storage.put(TURN_RECORD_TYPE, f"turn_{uuid4().hex}", record)
        except StorageError as e:
            self._logger.warning("turn_record_failed", error=e.message)

    # -------------------------------------------------------------------------
    # Internal Methods
    # -------------------------------------------------------------------------

    async def _report_error(self, error: Exception) -> None:
        self.last_error = error
        self._logger.warning("conversation_error", error=str(error))
        await self._invoke(self.on_error, error)

    async def _invoke(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._logger.error("callback_failed", error=str(e), exc_info=True)


__all__ = [
    "ClientFactory",
    "TURN_RECORD_TYPE",
    "default_client_factory",
    "ConversationOrchestrator",
]
