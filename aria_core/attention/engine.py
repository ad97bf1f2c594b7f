"""
Attention Engine
================

Aggregates attention items from every registered source into one short,
prioritised list.

Each refresh queries all sources concurrently, rescoring, filtering and
truncating the merged result before publishing it as an immutable tuple.
The published list never holds more than ``max_items`` entries, every entry
meets the urgency threshold, and entries are sorted by urgency, highest
first.
"""

import asyncio
import inspect
import itertools
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

import structlog

from aria_core.attention.base import AttentionError, AttentionItem, parse_datetime
from aria_core.attention.scorer import PriorityScorer
from aria_core.attention.sources import AttentionSource, default_sources
from aria_core.config import AttentionConfig
from aria_core.storage.base import InMemoryStorage, StorageBackend, StorageError


logger = structlog.get_logger(__name__)

DISMISSAL_RECORD_TYPE = "attention_dismissal"
SNOOZE_RECORD_TYPE = "attention_snooze"

Subscriber = Callable[[Tuple[AttentionItem, ...]], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttentionEngine:
    """
    Computes and publishes the top attention items.

    Usage:
        engine = AttentionEngine(config, storage=storage)
        engine.subscribe(render)
        await engine.start()
        ...
        await engine.dismiss(engine.items[0])
    """

    def __init__(
        self,
        config: Optional[AttentionConfig] = None,
        storage: Optional[StorageBackend] = None,
        sources: Optional[Sequence[AttentionSource]] = None,
        scorer: Optional[PriorityScorer] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or AttentionConfig()
        self.storage = storage or InMemoryStorage()
        self.scorer = scorer or PriorityScorer(self.config.type_boosts)
        self._clock = clock

        self._sources: List[AttentionSource] = list(sources) if sources is not None else []
        self._sources_injected = sources is not None

        self._items: Tuple[AttentionItem, ...] = ()
        self._generation = itertools.count(1)
        self._published_generation = 0
        self._loading = 0

        self._dismissed: Set[str] = set()
        self._snoozed: Dict[str, datetime] = {}
        self._origins: Dict[str, AttentionSource] = {}

        self._running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._refresh_tasks: Set[asyncio.Task] = set()
        self._snooze_tasks: Dict[str, asyncio.Task] = {}
        self._subscribers: List[Subscriber] = []

        self._logger = structlog.get_logger("attention_engine")

    # -------------------------------------------------------------------------
    # Published State
    # -------------------------------------------------------------------------

    @property
    def items(self) -> Tuple[AttentionItem, ...]:
        return self._items

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    @property
    def sources(self) -> List[AttentionSource]:
        return list(self._sources)

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for published lists. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Register sources, refresh once and schedule periodic refreshes."""
        if self._running:
            return

        if not self._sources_injected and not self._sources:
            self._sources = default_sources(self.storage, self._clock)

        await self._load_suppressions()

        self._running = True
        await self.refresh()
        self._timer_task = asyncio.create_task(self._refresh_loop())

        self._logger.info(
            "attention_engine_started",
            sources=len(self._sources),
            interval=self.config.refresh_interval,
        )

    async def stop(self) -> None:
        """Cancel the periodic timer. An in-flight refresh runs to completion."""
        self._running = False

        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        self._logger.info("attention_engine_stopped")

    async def close(self) -> None:
        """Stop, wait for in-flight refreshes and drop pending snooze timers."""
        await self.stop()

        if self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks), return_exceptions=True)

        for task in list(self._snooze_tasks.values()):
            task.cancel()
        if self._snooze_tasks:
            await asyncio.gather(*self._snooze_tasks.values(), return_exceptions=True)
        self._snooze_tasks.clear()

    async def _refresh_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.config.refresh_interval)
                # Refreshes run outside the timer so stop() never cancels one
                task = asyncio.create_task(self.refresh())
                self._refresh_tasks.add(task)
                task.add_done_callback(self._refresh_tasks.discard)
            except asyncio.CancelledError:
                break

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self) -> Tuple[AttentionItem, ...]:
        """Query every source and publish the new top list."""
        generation = next(self._generation)
        self._loading += 1
        try:
            sources = list(self._sources)
            results = await asyncio.gather(*(self._query(source) for source in sources))

            now = self._clock()
            origins: Dict[str, AttentionSource] = {}
            candidates: List[AttentionItem] = []
            for source, items in zip(sources, results):
                for item in items:
                    origins.setdefault(item.key, source)
                    candidates.append(item)

            selected = self._select(self.scorer.score(candidates), now)

            if self._publish(selected, generation):
                self._origins = origins
                self._logger.debug(
                    "attention_refreshed",
                    candidates=len(candidates),
                    published=len(selected),
                )
                await self._notify()
            return self._items
        finally:
            self._loading -= 1

    async def _query(self, source: AttentionSource) -> List[AttentionItem]:
        try:
            return list(await source.get_items())
        except Exception as e:
            self._logger.error(
                "attention_source_error",
                source=getattr(source, "name", type(source).__name__),
                error=str(e),
            )
            return []

    def _select(self, items: Iterable[AttentionItem], now: datetime) -> Tuple[AttentionItem, ...]:
        best: Dict[str, AttentionItem] = {}
        for item in items:
            if item.key in self._dismissed:
                continue
            until = self._snoozed.get(item.key)
            if until is not None and until > now:
                continue
            if item.is_expired(now):
                continue
            if item.urgency < self.config.urgency_threshold:
                continue
            current = best.get(item.key)
            if current is None or item.urgency > current.urgency:
                best[item.key] = item

        ranked = sorted(best.values(), key=lambda i: i.urgency, reverse=True)
        return tuple(ranked[: self.config.max_items])

    def _publish(self, items: Tuple[AttentionItem, ...], generation: int) -> bool:
        if generation < self._published_generation:
            self._logger.debug("stale_refresh_discarded", generation=generation)
            return False
        self._published_generation = generation
        self._items = items
        return True

    async def _notify(self) -> None:
        snapshot = self._items
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.error("subscriber_failed", error=str(e), exc_info=True)

    async def _remove_published(self, key: str) -> None:
        # Edits the live list in place; an in-flight refresh re-applies the
        # suppression when it selects, so no generation is taken here.
        self._items = tuple(i for i in self._items if i.key != key)
        await self._notify()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def dismiss(self, item: AttentionItem) -> None:
        """Remove an item and keep it out of future refreshes."""
        key = item.key
        self._dismissed.add(key)
        self._snoozed.pop(key, None)
        task = self._snooze_tasks.pop(key, None)
        if task is not None:
            task.cancel()

        await self._remove_published(key)
        self._logger.info("attention_dismissed", key=key)

        await self._store(
            DISMISSAL_RECORD_TYPE,
            key,
            {
                "key": key,
                "dismissed_at": self._clock().isoformat(),
                "item": item.to_dict(),
            },
        )
        await self._delete(SNOOZE_RECORD_TYPE, key)

    async def snooze(self, item: AttentionItem, duration: float) -> None:
        """Hide an item for ``duration`` seconds, then bring it back if still relevant."""
        if duration < 0:
            raise AttentionError(
                f"Snooze duration must be non-negative, got {duration}",
                code="INVALID_SNOOZE",
            )

        key = item.key
        until = self._clock() + timedelta(seconds=duration)
        self._snoozed[key] = until

        await self._remove_published(key)
        self._logger.info("attention_snoozed", key=key, duration=duration)

        await self._store(
            SNOOZE_RECORD_TYPE,
            key,
            {"key": key, "until": until.isoformat(), "item": item.to_dict()},
        )
        self._schedule_reinsertion(item, duration)

    def _schedule_reinsertion(self, item: AttentionItem, delay: float) -> None:
        previous = self._snooze_tasks.pop(item.key, None)
        if previous is not None:
            previous.cancel()

        task = asyncio.create_task(self._reinsert_after(item, delay))
        self._snooze_tasks[item.key] = task

        def _done(t: asyncio.Task, key: str = item.key) -> None:
            if self._snooze_tasks.get(key) is t:
                del self._snooze_tasks[key]

        task.add_done_callback(_done)

    async def _reinsert_after(self, item: AttentionItem, delay: float) -> None:
        await asyncio.sleep(delay)

        key = item.key
        self._snoozed.pop(key, None)
        await self._delete(SNOOZE_RECORD_TYPE, key)
        if key in self._dismissed:
            return

        origin = self._origins.get(key)
        sources = [origin] if origin is not None else list(self._sources)
        results = await asyncio.gather(*(self._query(source) for source in sources))

        current = next(
            (candidate for items in results for candidate in items if candidate.key == key),
            None,
        )
        if current is None:
            self._logger.debug("snoozed_item_gone", key=key)
            return

        merged = [i for i in self._items if i.key != key]
        merged.append(self.scorer.score_item(current))
        self._items = self._select(merged, self._clock())
        self._logger.info("attention_unsnoozed", key=key)
        await self._notify()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _load_suppressions(self) -> None:
        """Restore dismissals and pending snoozes from storage."""
        try:
            dismissals = await self.storage.list(DISMISSAL_RECORD_TYPE)
            snoozes = await self.storage.list(SNOOZE_RECORD_TYPE)
        except StorageError as e:
            self._logger.warning("attention_suppressions_unavailable", error=e.message)
            return

        self._dismissed.update(record["key"] for record in dismissals if "key" in record)

        now = self._clock()
        for record in snoozes:
            try:
                until = parse_datetime(record["until"])
                item = AttentionItem.from_dict(record["item"])
            except (KeyError, TypeError, ValueError) as e:
                self._logger.warning("snooze_record_invalid", error=str(e))
                continue

            if until is None or item.key in self._dismissed:
                continue
            self._snoozed[item.key] = until
            self._schedule_reinsertion(item, max(0.0, (until - now).total_seconds()))

    async def _store(self, entity_type: str, key: str, data: Dict[str, Any]) -> None:
        try:
            await self.storage.put(entity_type, key, data)
        except StorageError as e:
            self._logger.warning("attention_persist_failed", entity_type=entity_type, error=e.message)

    async def _delete(self, entity_type: str, key: str) -> None:
        try:
            await self.storage.delete(entity_type, key)
        except StorageError as e:
            self._logger.warning("attention_persist_failed", entity_type=entity_type, error=e.message)


__all__ = [
    "DISMISSAL_RECORD_TYPE",
    "SNOOZE_RECORD_TYPE",
    "Subscriber",
    "AttentionEngine",
]
