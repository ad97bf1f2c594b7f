"""
Attention Base Types

Data structures for attention items: things that currently demand the
user's attention, each carrying an urgency in [0, 1] and a set of quick
actions.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
    Union,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AttentionType(str, Enum):
    """Kinds of attention items."""
    MISSED_CALL = "missed_call"
    URGENT_EMAIL = "urgent_email"
    TASK_DUE = "task_due"
    PAYMENT_DUE = "payment_due"
    CALENDAR_REMINDER = "calendar_reminder"
    DELIVERY_UPDATE = "delivery_update"
    CUSTOM = "custom"


class DataSource(str, Enum):
    """Domain an attention item originates from."""
    EMAIL = "email"
    CALENDAR = "calendar"
    TASK = "task"
    BANKING = "banking"
    SHOPPING = "shopping"
    CONTACTS = "contacts"
    VOICE = "voice"
    MANUAL = "manual"


TYPE_ICONS: Dict[AttentionType, str] = {
    AttentionType.MISSED_CALL: "phone.arrow.down.left",
    AttentionType.URGENT_EMAIL: "envelope.badge",
    AttentionType.TASK_DUE: "checklist",
    AttentionType.PAYMENT_DUE: "creditcard",
    AttentionType.CALENDAR_REMINDER: "calendar",
    AttentionType.DELIVERY_UPDATE: "shippingbox",
}


# =============================================================================
# Quick Actions
# =============================================================================


class ActionKind(str, Enum):
    """Discriminator for quick action payloads."""
    CALL = "call"
    REPLY = "reply"
    COMPLETE = "complete"
    PAY = "pay"
    OPEN = "open"
    DISMISS = "dismiss"
    SNOOZE = "snooze"
    CUSTOM = "custom"


@dataclass(frozen=True)
class CallAction:
    phone_number: str
    kind: ActionKind = field(default=ActionKind.CALL, init=False)


@dataclass(frozen=True)
class ReplyAction:
    email_id: str
    kind: ActionKind = field(default=ActionKind.REPLY, init=False)


@dataclass(frozen=True)
class CompleteAction:
    task_id: str
    kind: ActionKind = field(default=ActionKind.COMPLETE, init=False)


@dataclass(frozen=True)
class PayAction:
    payment_id: str
    kind: ActionKind = field(default=ActionKind.PAY, init=False)


@dataclass(frozen=True)
class OpenAction:
    url: str
    kind: ActionKind = field(default=ActionKind.OPEN, init=False)


@dataclass(frozen=True)
class DismissAction:
    kind: ActionKind = field(default=ActionKind.DISMISS, init=False)


@dataclass(frozen=True)
class SnoozeAction:
    duration: float
    kind: ActionKind = field(default=ActionKind.SNOOZE, init=False)


@dataclass(frozen=True)
class CustomAction:
    action: str
    kind: ActionKind = field(default=ActionKind.CUSTOM, init=False)


ActionType = Union[
    CallAction,
    ReplyAction,
    CompleteAction,
    PayAction,
    OpenAction,
    DismissAction,
    SnoozeAction,
    CustomAction,
]

_ACTION_CLASSES = {
    ActionKind.CALL: (CallAction, "phone_number"),
    ActionKind.REPLY: (ReplyAction, "email_id"),
    ActionKind.COMPLETE: (CompleteAction, "task_id"),
    ActionKind.PAY: (PayAction, "payment_id"),
    ActionKind.OPEN: (OpenAction, "url"),
    ActionKind.DISMISS: (DismissAction, None),
    ActionKind.SNOOZE: (SnoozeAction, "duration"),
    ActionKind.CUSTOM: (CustomAction, "action"),
}


@dataclass(frozen=True)
class QuickAction:
    """A one-tap action offered alongside an attention item. Carries no behaviour."""

    title: str
    icon: str
    action: ActionType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.action.kind.value}
        _, attr = _ACTION_CLASSES[self.action.kind]
        if attr is not None:
            payload[attr] = getattr(self.action, attr)
        return {
            "id": self.id,
            "title": self.title,
            "icon": self.icon,
            "action": payload,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuickAction":
        payload = data["action"]
        action_cls, attr = _ACTION_CLASSES[ActionKind(payload["kind"])]
        action = action_cls() if attr is None else action_cls(payload[attr])
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            title=data["title"],
            icon=data["icon"],
            action=action,
        )


# =============================================================================
# Attention Item
# =============================================================================


@dataclass(frozen=True)
class AttentionItem:
    """An item that demands the user's attention."""

    type: AttentionType
    title: str
    urgency: float
    source: DataSource
    subtitle: Optional[str] = None
    source_ref: Optional[str] = None
    actions: Tuple[QuickAction, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None
    custom_icon: Optional[str] = None

    def __post_init__(self):
        # Clamp on every construction, including dataclasses.replace
        object.__setattr__(self, "urgency", min(1.0, max(0.0, float(self.urgency))))
        object.__setattr__(self, "actions", tuple(self.actions))

    @property
    def key(self) -> str:
        """Stable identity across refreshes."""
        return f"{self.source.value}:{self.source_ref or self.id}"

    @property
    def icon(self) -> str:
        if self.type == AttentionType.CUSTOM:
            return self.custom_icon or "questionmark.circle"
        return TYPE_ICONS[self.type]

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "subtitle": self.subtitle,
            "urgency": self.urgency,
            "source": self.source.value,
            "source_ref": self.source_ref,
            "actions": [action.to_dict() for action in self.actions],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "custom_icon": self.custom_icon,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttentionItem":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            type=AttentionType(data["type"]),
            title=data["title"],
            subtitle=data.get("subtitle"),
            urgency=data.get("urgency", 0.0),
            source=DataSource(data["source"]),
            source_ref=data.get("source_ref"),
            actions=tuple(QuickAction.from_dict(a) for a in data.get("actions", [])),
            created_at=parse_datetime(data.get("created_at")) or _utcnow(),
            expires_at=parse_datetime(data.get("expires_at")),
            custom_icon=data.get("custom_icon"),
        )


class AttentionError(Exception):
    """Base exception for attention operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "ATTENTION_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


__all__ = [
    "parse_datetime",
    "AttentionType",
    "DataSource",
    "ActionKind",
    "CallAction",
    "ReplyAction",
    "CompleteAction",
    "PayAction",
    "OpenAction",
    "DismissAction",
    "SnoozeAction",
    "CustomAction",
    "ActionType",
    "QuickAction",
    "AttentionItem",
    "AttentionError",
]
