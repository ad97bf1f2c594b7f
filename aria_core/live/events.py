"""
Callback Delivery Channels

Each callback kind owns one ordered queue drained by a single task, so
deliveries are asynchronous relative to the producer, ordered within a kind
and unordered across kinds. The registered callback is looked up at delivery
time, which makes it replaceable at any point.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, Iterable, Optional

import structlog

from aria_core.live.base import CallbackKind


logger = structlog.get_logger(__name__)

Callback = Callable[[Any], Any]


class CallbackChannel:
    """Single-slot, ordered delivery channel for one callback kind."""

    def __init__(self, kind: CallbackKind):
        self.kind = kind
        self.callback: Optional[Callback] = None
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.pending = 0

    def emit(self, payload: Any) -> None:
        """Queue a payload for delivery; never blocks the producer."""
        self.pending += 1
        self._queue.put_nowait(payload)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                callback = self.callback
                if callback is not None:
                    result = callback(payload)
                    if inspect.isawaitable(result):
                        await result
            except Exception as e:
                logger.error(
                    "callback_failed",
                    kind=self.kind.value,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self.pending -= 1
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued payload has been delivered."""
        await self._queue.join()

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._queue = asyncio.Queue()
        self.pending = 0


class CallbackRegistry:
    """The five callback channels of a live session."""

    def __init__(self) -> None:
        self._channels: Dict[CallbackKind, CallbackChannel] = {
            kind: CallbackChannel(kind) for kind in CallbackKind
        }

    def set(self, kind: CallbackKind, callback: Optional[Callback]) -> None:
        self._channels[kind].callback = callback

    def get(self, kind: CallbackKind) -> Optional[Callback]:
        return self._channels[kind].callback

    def emit(self, kind: CallbackKind, payload: Any) -> None:
        self._channels[kind].emit(payload)

    def channels(self) -> Iterable[CallbackChannel]:
        return self._channels.values()

    async def flush(self) -> None:
        """Wait until every channel is idle, including chained deliveries."""
        while any(channel.pending for channel in self._channels.values()):
            for channel in self._channels.values():
                await channel.join()

    async def close(self) -> None:
        for channel in self._channels.values():
            await channel.close()


__all__ = ["Callback", "CallbackChannel", "CallbackRegistry"]
