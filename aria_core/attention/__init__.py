"""
Attention Package

Aggregation of prioritised signals from per-domain sources into a short,
ordered list of items that need the user's attention.
"""

from aria_core.attention.base import (
    ActionKind,
    ActionType,
    AttentionError,
    AttentionItem,
    AttentionType,
    CallAction,
    CompleteAction,
    CustomAction,
    DataSource,
    DismissAction,
    OpenAction,
    PayAction,
    QuickAction,
    ReplyAction,
    SnoozeAction,
)
from aria_core.attention.engine import AttentionEngine
from aria_core.attention.scorer import DEFAULT_TYPE_BOOSTS, PriorityScorer
from aria_core.attention.sources import (
    AttentionSource,
    BankingAttentionSource,
    CalendarAttentionSource,
    EmailAttentionSource,
    ShoppingAttentionSource,
    StorageAttentionSource,
    TaskAttentionSource,
    default_sources,
)


__all__ = [
    "ActionKind",
    "ActionType",
    "AttentionError",
    "AttentionItem",
    "AttentionType",
    "CallAction",
    "CompleteAction",
    "CustomAction",
    "DataSource",
    "DismissAction",
    "OpenAction",
    "PayAction",
    "QuickAction",
    "ReplyAction",
    "SnoozeAction",
    "AttentionEngine",
    "DEFAULT_TYPE_BOOSTS",
    "PriorityScorer",
    "AttentionSource",
    "BankingAttentionSource",
    "CalendarAttentionSource",
    "EmailAttentionSource",
    "ShoppingAttentionSource",
    "StorageAttentionSource",
    "TaskAttentionSource",
    "default_sources",
]
