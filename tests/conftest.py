"""Shared pytest fixtures for testing."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from aria_core.config import (
    AttentionConfig,
    LiveSessionConfig,
    OrchestratorConfig,
    Settings,
)
from aria_core.conversation.intents import LocalIntentClassifier
from aria_core.live.client import LiveSessionClient
from aria_core.storage.base import InMemoryStorage


# =============================================================================
# Fake Transport
# =============================================================================


class FakeTransport:
    """In-process stand-in for a websocket connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self.send_error: Optional[Exception] = None
        self.responder: Optional[Callable[["FakeTransport", Dict[str, Any]], None]] = None
        self._incoming: "asyncio.Queue[Union[str, Exception]]" = asyncio.Queue()

    @property
    def frames(self) -> List[Dict[str, Any]]:
        return [json.loads(message) for message in self.sent]

    def frames_with(self, key: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.frames if key in frame]

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        if self.responder is not None:
            self.responder(self, json.loads(message))

    async def recv(self) -> str:
        item = await self._incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def feed(self, frame: Union[Dict[str, Any], str]) -> None:
        """Queue an inbound frame."""
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def remote_close(self, code: int = 1000, reason: str = "bye") -> None:
        self._incoming.put_nowait(ConnectionClosed(Close(code, reason), None))


class FakeConnector:
    """Records connection attempts and hands out a FakeTransport."""

    def __init__(
        self,
        transport: Optional[FakeTransport] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.transport = transport or FakeTransport()
        self.delay = delay
        self.error = error
        self.calls: List[str] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeTransport:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.transport


def model_reply(transport: FakeTransport, *fragments: str) -> None:
    """Queue a streamed model turn followed by turn-complete."""
    for fragment in fragments:
        transport.feed({"serverContent": {"modelTurn": {"parts": [{"text": fragment}]}}})
    transport.feed({"serverContent": {"turnComplete": True}})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def live_config() -> LiveSessionConfig:
    """Live session config with fast timeouts."""
    return LiveSessionConfig(
        base_url="wss://live.example.test/v1beta/models",
        model="test-model",
        connect_timeout=0.3,
        poll_interval=0.01,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def connector(transport: FakeTransport) -> FakeConnector:
    return FakeConnector(transport)


@pytest.fixture
def fake_tagger() -> Callable[[str], List]:
    """Entity tagger that finds nothing."""
    return lambda text: []


@pytest.fixture
def classifier(fake_tagger) -> LocalIntentClassifier:
    return LocalIntentClassifier(tagger=fake_tagger)


@pytest.fixture
def settings(live_config: LiveSessionConfig) -> Settings:
    return Settings(
        gemini_api_key="test-key",
        live=live_config,
        orchestrator=OrchestratorConfig(turn_timeout=2.0),
        attention=AttentionConfig(),
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest_asyncio.fixture
async def live_client(live_config: LiveSessionConfig, connector: FakeConnector):
    """A live session client wired to the fake connector."""
    client = LiveSessionClient("test-key", live_config, connector=connector)
    yield client
    await client.aclose()


@pytest.fixture
def settle() -> Callable:
    """Let the receive loop run, then wait for callback delivery."""

    async def _settle(client: LiveSessionClient, rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
        await client.flush_callbacks()

    return _settle


@pytest.fixture
def eventually() -> Callable:
    """Poll a predicate until it holds or the timeout expires."""

    async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(0.01)
        return predicate()

    return _eventually


@pytest.fixture
def make_connector() -> Callable[..., FakeConnector]:
    """Factory for connectors with a custom delay or failure."""
    return FakeConnector


@pytest.fixture
def reply() -> Callable[..., None]:
    return model_reply
