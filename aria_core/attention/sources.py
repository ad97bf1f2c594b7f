"""
Attention Sources

Per-domain adapters that turn stored domain records into attention items.

Record shapes read from storage:

    email           {id, subject, sender, snippet, is_read, is_archived,
                     requires_response, priority_score (0-100), received_at}
    calendar_event  {id, title, location, url, start_date, is_all_day, status}
    task            {id, title, notes, due_date, priority (0-100), status}
    bill            {id, payee, amount, account, due_date, is_paid}
    shopping_order  {id, store_name, status, item_count, tracking_url,
                     estimated_delivery_time, actual_delivery_time}
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
)

import structlog

from aria_core.attention.base import (
    AttentionItem,
    AttentionType,
    CompleteAction,
    DataSource,
    DismissAction,
    OpenAction,
    PayAction,
    QuickAction,
    ReplyAction,
    SnoozeAction,
    parse_datetime,
)
from aria_core.storage.base import StorageBackend


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


class AttentionSource(ABC):
    """
    Produces attention items for one domain.

    ``get_items`` must never raise; a failing source returns what it can
    (usually nothing).
    """

    name: str = "source"

    @abstractmethod
    async def get_items(self) -> List[AttentionItem]:
        """Current items from this source."""
        pass


class StorageAttentionSource(AttentionSource):
    """Reads records of one entity type from storage and maps each to an item."""

    entity_type: str = ""
    data_source: DataSource = DataSource.MANUAL

    def __init__(self, storage: StorageBackend, clock: Clock = _utcnow):
        self.storage = storage
        self._clock = clock

    async def get_items(self) -> List[AttentionItem]:
        try:
            records = await self.storage.list(self.entity_type)
        except Exception as e:
            logger.error(
                "attention_source_failed",
                source=self.name,
                entity_type=self.entity_type,
                error=str(e),
            )
            return []

        now = self._clock()
        items: List[AttentionItem] = []
        for record in records:
            try:
                item = self.to_item(record, now)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "attention_record_skipped",
                    source=self.name,
                    record_id=record.get("id"),
                    error=str(e),
                )
                continue
            if item is not None:
                items.append(item)
        return items

    @abstractmethod
    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        """Map one record to an item, or None if it needs no attention."""
        pass


class EmailAttentionSource(StorageAttentionSource):
    """Unread or reply-needed emails."""

    name = "email"
    entity_type = "email"
    data_source = DataSource.EMAIL

    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        is_read = bool(record.get("is_read", False))
        requires_response = bool(record.get("requires_response", False))
        if record.get("is_archived") or (is_read and not requires_response):
            return None

        urgency = float(record.get("priority_score", 0)) / 100.0 * 0.4
        if not is_read:
            urgency += 0.2
        if requires_response:
            urgency += 0.2

        received_at = parse_datetime(record.get("received_at"))
        if received_at is not None:
            hours_ago = _hours_between(received_at, now)
            if hours_ago < 1:
                urgency += 0.2
            elif hours_ago < 6:
                urgency += 0.1

        email_id = str(record["id"])
        return AttentionItem(
            type=AttentionType.URGENT_EMAIL,
            title=record["subject"],
            subtitle=record.get("sender") or record.get("snippet"),
            urgency=urgency,
            source=self.data_source,
            source_ref=email_id,
            actions=(
                QuickAction(title="Reply", icon="arrowshape.turn.up.left", action=ReplyAction(email_id)),
                QuickAction(title="Archive", icon="archivebox", action=DismissAction()),
            ),
        )


class CalendarAttentionSource(StorageAttentionSource):
    """Events starting within the next two hours."""

    name = "calendar"
    entity_type = "calendar_event"
    data_source = DataSource.CALENDAR

    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        if record.get("is_all_day") or record.get("status") == "cancelled":
            return None

        start = parse_datetime(record["start_date"])
        minutes_until = (start - now).total_seconds() / 60
        if minutes_until < 0 or minutes_until > 120:
            return None

        if minutes_until <= 15:
            urgency = 0.9
        elif minutes_until <= 60:
            urgency = 0.7
        else:
            urgency = 0.5

        actions = []
        if record.get("url"):
            actions.append(QuickAction(title="Join", icon="video", action=OpenAction(record["url"])))
        actions.append(QuickAction(title="Snooze", icon="clock", action=SnoozeAction(600)))

        location = record.get("location")
        subtitle = f"In {int(minutes_until)} min" + (f" at {location}" if location else "")

        return AttentionItem(
            type=AttentionType.CALENDAR_REMINDER,
            title=record["title"],
            subtitle=subtitle,
            urgency=urgency,
            source=self.data_source,
            source_ref=str(record["id"]),
            actions=tuple(actions),
            expires_at=start,
        )


class TaskAttentionSource(StorageAttentionSource):
    """Open tasks, scored by priority and due date."""

    name = "task"
    entity_type = "task"
    data_source = DataSource.TASK

    CLOSED_STATUSES = {"done", "cancelled", "delegated"}

    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        if record.get("status", "pending") in self.CLOSED_STATUSES:
            return None

        urgency = float(record.get("priority", 0)) / 100.0 * 0.5
        due = parse_datetime(record.get("due_date"))
        subtitle = record.get("notes")
        if due is not None:
            hours_until = _hours_between(now, due)
            if hours_until < 0:
                urgency += 0.5
                subtitle = "Overdue"
            elif hours_until < 24:
                urgency += 0.4
                subtitle = "Due today"
            elif hours_until < 72:
                urgency += 0.3
            elif hours_until < 168:
                urgency += 0.2

        task_id = str(record["id"])
        return AttentionItem(
            type=AttentionType.TASK_DUE,
            title=record["title"],
            subtitle=subtitle,
            urgency=urgency,
            source=self.data_source,
            source_ref=task_id,
            actions=(
                QuickAction(title="Done", icon="checkmark", action=CompleteAction(task_id)),
                QuickAction(title="Snooze", icon="clock", action=SnoozeAction(3600)),
            ),
        )


class BankingAttentionSource(StorageAttentionSource):
    """Unpaid bills due within a week."""

    name = "banking"
    entity_type = "bill"
    data_source = DataSource.BANKING

    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        if record.get("is_paid"):
            return None

        due = parse_datetime(record["due_date"])
        hours_until = _hours_between(now, due)
        if hours_until < 0:
            urgency, when = 1.0, "overdue"
        elif hours_until < 24:
            urgency, when = 0.9, "due today"
        elif hours_until < 48:
            urgency, when = 0.8, "due tomorrow"
        elif hours_until < 168:
            urgency, when = 0.5, f"due {due:%A}"
        else:
            return None

        payee = record["payee"]
        subtitle = f"${float(record.get('amount', 0)):,.2f}"
        if record.get("account"):
            subtitle += f" from {record['account']}"

        bill_id = str(record["id"])
        return AttentionItem(
            type=AttentionType.PAYMENT_DUE,
            title=f"{payee} {when}",
            subtitle=subtitle,
            urgency=urgency,
            source=self.data_source,
            source_ref=bill_id,
            actions=(
                QuickAction(title="Pay Now", icon="creditcard", action=PayAction(bill_id)),
                QuickAction(title="Snooze", icon="clock", action=SnoozeAction(3600)),
            ),
        )


class ShoppingAttentionSource(StorageAttentionSource):
    """Orders out for delivery or just delivered."""

    name = "shopping"
    entity_type = "shopping_order"
    data_source = DataSource.SHOPPING

    def to_item(self, record: Dict[str, Any], now: datetime) -> Optional[AttentionItem]:
        status = record.get("status")
        store = record.get("store_name", "Your order")

        if status == "delivering":
            urgency = 0.7
            title = f"{store} order on the way"
            eta = parse_datetime(record.get("estimated_delivery_time"))
            subtitle = f"Arriving {eta:%H:%M}" if eta else None
            expires_at = None
        elif status == "delivered":
            delivered = parse_datetime(record.get("actual_delivery_time"))
            if delivered is None or _hours_between(delivered, now) > 2:
                return None
            urgency = 0.5
            title = f"{store} order delivered"
            subtitle = f"{record.get('item_count', 0)} items"
            expires_at = delivered + timedelta(hours=2)
        else:
            return None

        actions = []
        if record.get("tracking_url"):
            actions.append(QuickAction(title="Track", icon="map", action=OpenAction(record["tracking_url"])))
        actions.append(QuickAction(title="Dismiss", icon="xmark", action=DismissAction()))

        return AttentionItem(
            type=AttentionType.DELIVERY_UPDATE,
            title=title,
            subtitle=subtitle,
            urgency=urgency,
            source=self.data_source,
            source_ref=str(record["id"]),
            actions=tuple(actions),
            expires_at=expires_at,
        )


def default_sources(storage: StorageBackend, clock: Clock = _utcnow) -> List[AttentionSource]:
    """The built-in sources, one per domain."""
    return [
        EmailAttentionSource(storage, clock),
        CalendarAttentionSource(storage, clock),
        TaskAttentionSource(storage, clock),
        BankingAttentionSource(storage, clock),
        ShoppingAttentionSource(storage, clock),
    ]


__all__ = [
    "AttentionSource",
    "StorageAttentionSource",
    "EmailAttentionSource",
    "CalendarAttentionSource",
    "TaskAttentionSource",
    "BankingAttentionSource",
    "ShoppingAttentionSource",
    "default_sources",
]
