"""Unit tests for the attention engine."""

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from aria_core.attention import (
    AttentionEngine,
    AttentionError,
    AttentionItem,
    AttentionType,
    CallAction,
    DataSource,
    PayAction,
    PriorityScorer,
    QuickAction,
    SnoozeAction,
)
from aria_core.attention.engine import DISMISSAL_RECORD_TYPE
from aria_core.attention.sources import AttentionSource
from aria_core.config import AttentionConfig


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_item(ref, urgency, type=AttentionType.TASK_DUE, source=DataSource.TASK, **kwargs):
    return AttentionItem(
        type=type,
        title=f"Item {ref}",
        urgency=urgency,
        source=source,
        source_ref=ref,
        **kwargs,
    )


class StaticSource(AttentionSource):
    name = "static"

    def __init__(self, items=()):
        self.items = list(items)
        self.calls = 0

    async def get_items(self):
        self.calls += 1
        return list(self.items)


class FailingSource(AttentionSource):
    name = "failing"

    async def get_items(self):
        raise RuntimeError("backend unavailable")


class GatedSource(StaticSource):
    """Blocks inside get_items while ``blocked`` is set, until the gate opens."""

    name = "gated"

    def __init__(self, items=()):
        super().__init__(items)
        self.blocked = False
        self.gate = asyncio.Event()

    async def get_items(self):
        if self.blocked:
            await self.gate.wait()
        return await super().get_items()


@pytest.fixture
def config():
    return AttentionConfig(refresh_interval=60)


class TestAttentionItem:
    """Tests for AttentionItem."""

    def test_urgency_is_clamped(self):
        assert make_item("a", 1.7).urgency == 1.0
        assert make_item("b", -0.3).urgency == 0.0

    def test_replace_clamps(self):
        item = make_item("a", 0.9)

        assert dataclasses.replace(item, urgency=1.4).urgency == 1.0

    def test_key_prefers_source_ref(self):
        assert make_item("t1", 0.5).key == "task:t1"

        anonymous = AttentionItem(
            type=AttentionType.CUSTOM,
            title="x",
            urgency=0.5,
            source=DataSource.MANUAL,
        )
        assert anonymous.key == f"manual:{anonymous.id}"

    def test_icon(self):
        assert make_item("a", 0.5).icon == "checklist"
        custom = make_item("b", 0.5, type=AttentionType.CUSTOM, custom_icon="star")
        assert custom.icon == "star"

    def test_dict_round_trip(self):
        item = make_item(
            "bill_1",
            0.8,
            type=AttentionType.PAYMENT_DUE,
            source=DataSource.BANKING,
            actions=(
                QuickAction(title="Pay", icon="creditcard", action=PayAction("bill_1")),
                QuickAction(title="Snooze", icon="clock", action=SnoozeAction(3600)),
            ),
            expires_at=NOW,
        )

        restored = AttentionItem.from_dict(item.to_dict())

        assert restored == item

    def test_is_expired(self):
        item = make_item("a", 0.5, expires_at=NOW)

        assert item.is_expired(NOW)
        assert not item.is_expired(NOW - timedelta(seconds=1))
        assert not make_item("b", 0.5).is_expired(NOW)


class TestPriorityScorer:
    """Tests for PriorityScorer."""

    def test_default_boosts(self):
        scorer = PriorityScorer()

        call = make_item("c", 0.85, type=AttentionType.MISSED_CALL, source=DataSource.CONTACTS)
        bill = make_item("b", 0.98, type=AttentionType.PAYMENT_DUE, source=DataSource.BANKING)
        task = make_item("t", 0.6)

        scored = scorer.score([call, bill, task])

        assert scored[0].urgency == pytest.approx(0.95)
        assert scored[1].urgency == 1.0
        assert scored[2] is task

    def test_custom_boosts(self):
        scorer = PriorityScorer({"task_due": 0.25})

        assert scorer.score_item(make_item("t", 0.5)).urgency == pytest.approx(0.75)


class TestRefresh:
    """Tests for AttentionEngine.refresh."""

    @pytest.mark.asyncio
    async def test_filters_sorts_and_truncates(self, config):
        """Test the published list is thresholded, sorted and capped."""
        urgencies = [0.55, 0.9, 0.2, 0.7, 0.49, 0.6, 0.8, 0.95]
        source = StaticSource(make_item(f"t{i}", u) for i, u in enumerate(urgencies))
        engine = AttentionEngine(config, sources=[source])

        items = await engine.refresh()

        assert [i.urgency for i in items] == [0.95, 0.9, 0.8, 0.7, 0.6]
        assert items == engine.items

    @pytest.mark.asyncio
    async def test_failing_source_does_not_block_others(self, config):
        """Test a throwing source contributes nothing while others still publish."""
        good = StaticSource([make_item("ok", 0.8)])
        engine = AttentionEngine(config, sources=[FailingSource(), good])

        items = await engine.refresh()

        assert [i.key for i in items] == ["task:ok"]
        assert not engine.is_loading

    @pytest.mark.asyncio
    async def test_boost_can_lift_item_over_threshold(self, config):
        missed = make_item("m", 0.45, type=AttentionType.MISSED_CALL, source=DataSource.CONTACTS,
                           actions=(QuickAction(title="Call", icon="phone", action=CallAction("555")),))
        engine = AttentionEngine(config, sources=[StaticSource([missed])])

        items = await engine.refresh()

        assert len(items) == 1
        assert items[0].urgency == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_configured_boosts(self):
        config = AttentionConfig(type_boosts={"task_due": 0.3})
        engine = AttentionEngine(config, sources=[StaticSource([make_item("t", 0.4)])])

        items = await engine.refresh()

        assert items[0].urgency == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_duplicate_keys_keep_highest(self, config):
        engine = AttentionEngine(
            config,
            sources=[StaticSource([make_item("t1", 0.6)]), StaticSource([make_item("t1", 0.9)])],
        )

        items = await engine.refresh()

        assert len(items) == 1
        assert items[0].urgency == 0.9

    @pytest.mark.asyncio
    async def test_expired_items_excluded(self, config):
        source = StaticSource([
            make_item("old", 0.9, expires_at=NOW - timedelta(minutes=1)),
            make_item("new", 0.8, expires_at=NOW + timedelta(minutes=1)),
        ])
        engine = AttentionEngine(config, sources=[source], clock=lambda: NOW)

        items = await engine.refresh()

        assert [i.source_ref for i in items] == ["new"]

    @pytest.mark.asyncio
    async def test_subscribers(self, config):
        received = []
        engine = AttentionEngine(config, sources=[StaticSource([make_item("t", 0.8)])])
        unsubscribe = engine.subscribe(received.append)

        await engine.refresh()
        unsubscribe()
        await engine.refresh()

        assert len(received) == 1
        assert isinstance(received[0], tuple)


class TestLifecycle:
    """Tests for start/stop behaviour."""

    @pytest.mark.asyncio
    async def test_start_refreshes_once(self, config):
        source = StaticSource([make_item("t", 0.8)])
        engine = AttentionEngine(config, sources=[source])

        await engine.start()
        await engine.start()

        assert engine.is_running
        assert source.calls == 1
        assert len(engine.items) == 1

        await engine.close()
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_refresh_finish(self, eventually):
        """Test stop() cancels the timer but not a refresh already running."""
        source = GatedSource([make_item("a", 0.8)])
        engine = AttentionEngine(AttentionConfig(refresh_interval=0.01), sources=[source])
        await engine.start()

        source.blocked = True
        source.items = [make_item("a", 0.8), make_item("b", 0.9)]
        assert await eventually(lambda: engine.is_loading)

        await engine.stop()
        source.gate.set()
        await engine.close()

        assert [i.source_ref for i in engine.items] == ["b", "a"]
        assert not engine.is_loading

    @pytest.mark.asyncio
    async def test_default_sources_registered(self, config, storage):
        engine = AttentionEngine(config, storage=storage)

        await engine.start()
        await engine.close()

        assert {s.name for s in engine.sources} == {
            "email", "calendar", "task", "banking", "shopping",
        }


class TestDismissAndSnooze:
    """Tests for user actions on items."""

    @pytest.mark.asyncio
    async def test_dismiss(self, config, storage):
        source = StaticSource([make_item("a", 0.9), make_item("b", 0.8)])
        engine = AttentionEngine(config, storage=storage, sources=[source])
        await engine.refresh()

        await engine.dismiss(engine.items[0])

        assert [i.source_ref for i in engine.items] == ["b"]
        await engine.refresh()
        assert [i.source_ref for i in engine.items] == ["b"]
        assert await storage.get(DISMISSAL_RECORD_TYPE, "task:a") is not None

    @pytest.mark.asyncio
    async def test_dismiss_during_refresh_keeps_refresh_result(self, config, eventually):
        """Test a refresh still publishes new items when a dismissal lands mid-flight."""
        source = GatedSource([make_item("a", 0.9), make_item("b", 0.8)])
        engine = AttentionEngine(config, sources=[source])
        await engine.refresh()
        dismissed = engine.items[1]

        source.items = [make_item("a", 0.9), make_item("b", 0.8), make_item("new", 0.95)]
        source.blocked = True
        task = asyncio.create_task(engine.refresh())
        assert await eventually(lambda: engine.is_loading)

        await engine.dismiss(dismissed)
        assert [i.source_ref for i in engine.items] == ["a"]

        source.gate.set()
        result = await task

        assert [i.source_ref for i in result] == ["new", "a"]
        assert [i.source_ref for i in engine.items] == ["new", "a"]

    @pytest.mark.asyncio
    async def test_snooze_during_refresh_keeps_refresh_result(self, config, eventually):
        source = GatedSource([make_item("a", 0.9), make_item("b", 0.8)])
        engine = AttentionEngine(config, sources=[source])
        await engine.refresh()
        snoozed = engine.items[0]

        source.items = [make_item("a", 0.9), make_item("b", 0.8), make_item("new", 0.95)]
        source.blocked = True
        task = asyncio.create_task(engine.refresh())
        assert await eventually(lambda: engine.is_loading)

        await engine.snooze(snoozed, 3600)
        source.gate.set()
        await task

        assert [i.source_ref for i in engine.items] == ["new", "b"]
        await engine.close()

    @pytest.mark.asyncio
    async def test_dismissal_survives_restart(self, config, storage):
        items = [make_item("a", 0.9), make_item("b", 0.8)]
        first = AttentionEngine(config, storage=storage, sources=[StaticSource(items)])
        await first.refresh()
        await first.dismiss(first.items[0])

        second = AttentionEngine(config, storage=storage, sources=[StaticSource(items)])
        await second.start()
        await second.close()

        assert [i.source_ref for i in second.items] == ["b"]

    @pytest.mark.asyncio
    async def test_snooze_reinserts(self, config, eventually):
        source = StaticSource([make_item("a", 0.9), make_item("b", 0.8)])
        engine = AttentionEngine(config, sources=[source])
        await engine.refresh()

        await engine.snooze(engine.items[0], 0.05)

        assert [i.source_ref for i in engine.items] == ["b"]
        await engine.refresh()
        assert [i.source_ref for i in engine.items] == ["b"]

        assert await eventually(lambda: [i.source_ref for i in engine.items] == ["a", "b"])
        await engine.close()

    @pytest.mark.asyncio
    async def test_snoozed_item_gone_stays_gone(self, config):
        source = StaticSource([make_item("a", 0.9)])
        engine = AttentionEngine(config, sources=[source])
        await engine.refresh()

        await engine.snooze(engine.items[0], 0.02)
        source.items = []
        await asyncio.sleep(0.1)

        assert engine.items == ()
        await engine.close()

    @pytest.mark.asyncio
    async def test_snooze_survives_restart(self, config, storage):
        items = [make_item("a", 0.9)]
        first = AttentionEngine(config, storage=storage, sources=[StaticSource(items)])
        await first.refresh()
        await first.snooze(first.items[0], 3600)
        await first.close()

        second = AttentionEngine(config, storage=storage, sources=[StaticSource(items)])
        await second.start()

        assert second.items == ()
        await second.close()

    @pytest.mark.asyncio
    async def test_negative_snooze_rejected(self, config):
        engine = AttentionEngine(config, sources=[StaticSource([make_item("a", 0.9)])])
        await engine.refresh()

        with pytest.raises(AttentionError) as exc_info:
            await engine.snooze(engine.items[0], -1)

        assert exc_info.value.code == "INVALID_SNOOZE"
        assert len(engine.items) == 1


class TestDefaultSources:
    """Tests for the built-in storage-backed sources."""

    @pytest.mark.asyncio
    async def test_records_become_items(self, config, storage):
        def at(**delta):
            return (NOW + timedelta(**delta)).isoformat()

        await storage.put("email", "e1", {
            "id": "e1", "subject": "Contract review", "sender": "Dana",
            "is_read": False, "requires_response": True, "priority_score": 80,
            "received_at": at(minutes=-30),
        })
        await storage.put("email", "e2", {
            "id": "e2", "subject": "Newsletter", "is_read": True,
            "requires_response": False, "received_at": at(hours=-1),
        })
        await storage.put("calendar_event", "ev1", {
            "id": "ev1", "title": "Standup", "start_date": at(minutes=10),
            "url": "https://meet.example.test/standup",
        })
        await storage.put("calendar_event", "ev2", {
            "id": "ev2", "title": "Offsite", "start_date": at(hours=5),
        })
        await storage.put("task", "t1", {
            "id": "t1", "title": "File expenses", "priority": 40, "due_date": at(hours=-2),
        })
        await storage.put("task", "t2", {
            "id": "t2", "title": "Old thing", "priority": 100, "status": "done",
        })
        await storage.put("bill", "b1", {
            "id": "b1", "payee": "Electric Co", "amount": 84.2, "due_date": at(hours=30),
        })
        await storage.put("bill", "b2", {
            "id": "b2", "payee": "Water", "amount": 20, "due_date": at(days=30),
        })
        await storage.put("shopping_order", "o1", {
            "id": "o1", "store_name": "Grocer", "status": "delivering",
        })
        await storage.put("task", "bad", {"id": "bad"})

        engine = AttentionEngine(config, storage=storage, clock=lambda: NOW)
        await engine.start()
        await engine.close()

        items = engine.items
        assert len(items) == 5
        assert [i.key for i in items[:3]] == ["calendar:ev1", "email:e1", "banking:b1"]
        assert {i.key for i in items[3:]} == {"task:t1", "shopping:o1"}

        by_key = {i.key: i for i in items}
        assert by_key["calendar:ev1"].urgency == pytest.approx(0.95)
        assert by_key["email:e1"].urgency == pytest.approx(0.92)
        assert by_key["banking:b1"].title == "Electric Co due tomorrow"
        assert by_key["banking:b1"].subtitle == "$84.20"
        assert by_key["task:t1"].subtitle == "Overdue"
        assert by_key["calendar:ev1"].expires_at == NOW + timedelta(minutes=10)
