"""
Conversation Package

Local intent classification, the intent response cache and the
orchestrator that races them against the live session.
"""

from aria_core.conversation.base import (
    ConversationError,
    MissingCredentialError,
    TurnTimeoutError,
)
from aria_core.conversation.cache import CacheEntry, ResponseCache
from aria_core.conversation.context import ConversationContext
from aria_core.conversation.intents import (
    INTENT_PATTERNS,
    ClassificationResult,
    EntityExtractor,
    Intent,
    LocalIntentClassifier,
    SpacyEntityTagger,
)
from aria_core.conversation.orchestrator import ConversationOrchestrator


__all__ = [
    "ConversationError",
    "MissingCredentialError",
    "TurnTimeoutError",
    "CacheEntry",
    "ResponseCache",
    "ConversationContext",
    "INTENT_PATTERNS",
    "ClassificationResult",
    "EntityExtractor",
    "Intent",
    "LocalIntentClassifier",
    "SpacyEntityTagger",
    "ConversationOrchestrator",
]
