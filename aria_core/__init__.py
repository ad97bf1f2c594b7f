"""
Aria Core

Real-time conversational orchestration for a personal assistant: the live
session client, local intent classification with a response cache, the
conversation orchestrator and the attention engine.
"""

__version__ = "0.1.0"

from aria_core.config import Settings, get_settings
from aria_core.attention import AttentionEngine, AttentionItem
from aria_core.conversation import (
    ConversationContext,
    ConversationOrchestrator,
    LocalIntentClassifier,
    ResponseCache,
)
from aria_core.live import LiveSessionClient


__all__ = [
    "__version__",
    "Settings",
    "get_settings",
    "AttentionEngine",
    "AttentionItem",
    "ConversationContext",
    "ConversationOrchestrator",
    "LocalIntentClassifier",
    "ResponseCache",
    "LiveSessionClient",
]
