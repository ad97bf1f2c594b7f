"""
Local Intent Classification

Fast, on-device intent matching for common queries. Patterns live in a
fixed, ordered table so classification is deterministic: ties keep the
first entry in table order.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

import structlog


logger = structlog.get_logger(__name__)


class Intent(str, Enum):
    """Closed intent vocabulary."""

    # Communication
    READ_EMAIL = "read_email"
    SEND_EMAIL = "send_email"
    CALL = "call"
    TEXT = "text"

    # Calendar
    CHECK_CALENDAR = "check_calendar"
    SCHEDULE_EVENT = "schedule_event"
    CANCEL_EVENT = "cancel_event"

    # Tasks
    ADD_TASK = "add_task"
    LIST_TASKS = "list_tasks"
    COMPLETE_TASK = "complete_task"

    # Banking
    CHECK_BALANCE = "check_balance"
    RECENT_TRANSACTIONS = "recent_transactions"
    SPENDING_SUMMARY = "spending_summary"

    # Shopping
    ADD_TO_CART = "add_to_cart"
    ORDER_STATUS = "order_status"
    REORDER = "reorder"

    # Meta
    BRIEFING = "briefing"
    ATTENTION = "attention"
    CANCEL = "cancel"
    CONFIRM = "confirm"

    UNKNOWN = "unknown"


INTENT_PATTERNS: Tuple[Tuple[Intent, Tuple[str, ...]], ...] = (
    (Intent.READ_EMAIL, (
        "read my email", "check email", "any new emails", "important emails",
        "read messages", "check my inbox", "what emails",
    )),
    (Intent.SEND_EMAIL, (
        "send email", "email to", "reply to", "write email", "compose email",
    )),
    (Intent.CALL, ("call", "phone", "dial", "ring")),
    (Intent.TEXT, ("text", "message", "send a text", "sms")),
    (Intent.CHECK_CALENDAR, (
        "what's on my calendar", "my schedule", "what's my day", "meetings today",
        "when am i free", "calendar", "what's next", "upcoming events",
    )),
    (Intent.SCHEDULE_EVENT, (
        "schedule", "add to calendar", "create event", "book", "set up a meeting",
    )),
    (Intent.CANCEL_EVENT, (
        "cancel meeting", "cancel event", "remove from calendar", "delete event",
    )),
    (Intent.ADD_TASK, (
        "add task", "remind me", "add to my list", "create a task", "todo",
    )),
    (Intent.LIST_TASKS, (
        "what should i do", "my tasks", "todo list", "what's on my list",
        "what's overdue", "pending tasks",
    )),
    (Intent.COMPLETE_TASK, ("mark done", "complete task", "finished", "done with")),
    (Intent.CHECK_BALANCE, (
        "balance", "how much in my account", "account balance", "how much do i have",
    )),
    (Intent.RECENT_TRANSACTIONS, (
        "recent transactions", "what did i spend", "purchases", "charges",
    )),
    (Intent.SPENDING_SUMMARY, ("spending", "how much spent", "expenses", "budget")),
    (Intent.ADD_TO_CART, ("add to cart", "order", "buy", "get me", "need to buy")),
    (Intent.ORDER_STATUS, (
        "order status", "where's my order", "delivery status", "tracking",
    )),
    (Intent.REORDER, ("reorder", "order again", "same as last time", "usual order")),
    (Intent.BRIEFING, (
        "give me the rundown", "morning briefing", "what's happening",
        "catch me up", "summary",
    )),
    (Intent.ATTENTION, ("what needs attention", "what's important", "priorities", "urgent")),
    (Intent.CANCEL, ("cancel", "never mind", "stop", "forget it")),
    (Intent.CONFIRM, (
        "yes", "confirm", "do it", "go ahead", "sounds good", "that's right",
    )),
)

TIME_EXPRESSIONS: Tuple[str, ...] = (
    "today", "tomorrow", "tonight", "this morning", "this afternoon",
    "this evening", "next week", "monday", "tuesday", "wednesday",
    "thursday", "friday", "saturday", "sunday",
)

MONEY_PATTERN = re.compile(r"\$[\d,]+(?:\.\d{2})?")

COMMON_QUERIES: Tuple[str, ...] = (
    "what's my day look like",
    "read my emails",
    "what needs my attention",
    "check my balance",
    "what's on my calendar today",
)

CACHE_CONFIDENCE = 0.8


@dataclass(frozen=True)
class ClassificationResult:
    """Result of local intent classification."""

    intent: Intent
    confidence: float
    entities: Dict[str, str] = field(default_factory=dict)

    @property
    def is_unknown(self) -> bool:
        return self.intent == Intent.UNKNOWN


# A tagger yields (entity_kind, value) pairs where entity_kind is one of
# "person", "organization" or "location".
EntityTagger = Callable[[str], Iterable[Tuple[str, str]]]


class SpacyEntityTagger:
    """Named-entity tagger backed by a spaCy pipeline, loaded on first use."""

    LABELS = {
        "PERSON": "person",
        "ORG": "organization",
        "GPE": "location",
        "LOC": "location",
        "FAC": "location",
    }

    def __init__(self, model_name: str = "en_core_web_sm"):
        self.model_name = model_name
        self._nlp = None
        self._unavailable = False

    def _load(self):
        if self._nlp is None and not self._unavailable:
            import spacy

            try:
                self._nlp = spacy.load(self.model_name)
            except OSError as e:
                self._unavailable = True
                logger.warning(
                    "entity_model_unavailable",
                    model=self.model_name,
                    error=str(e),
                )
        return self._nlp

    def __call__(self, text: str) -> List[Tuple[str, str]]:
        nlp = self._load()
        if nlp is None:
            return []

        return [
            (self.LABELS[ent.label_], ent.text)
            for ent in nlp(text).ents
            if ent.label_ in self.LABELS
        ]


class EntityExtractor:
    """Extracts person/organization/location, time and amount entities."""

    def __init__(self, tagger: Optional[EntityTagger] = None):
        self._tagger = tagger if tagger is not None else SpacyEntityTagger()

    def extract(self, text: str) -> Dict[str, str]:
        entities: Dict[str, str] = {}

        # Later entities of the same kind replace earlier ones
        for kind, value in self._tagger(text):
            entities[kind] = value

        lowered = text.lower()
        for expression in TIME_EXPRESSIONS:
            if expression in lowered:
                entities["time"] = expression
                break

        match = MONEY_PATTERN.search(text)
        if match:
            entities["amount"] = match.group(0)

        return entities


def pattern_similarity(text: str, pattern: str) -> float:
    """Substring match scores 1.0, otherwise pattern word coverage."""
    pattern_words = set(pattern.split())
    if not pattern_words:
        return 0.0

    if pattern in text:
        return 1.0

    text_words = set(text.split())
    return len(text_words & pattern_words) / len(pattern_words)


class LocalIntentClassifier:
    """
    Pattern-table intent classifier with a memo of confident results.

    Usage:
        classifier = LocalIntentClassifier()
        result = await classifier.classify("check my balance")
        if result.confidence > 0.9:
            ...
    """

    def __init__(
        self,
        patterns: Tuple[Tuple[Intent, Tuple[str, ...]], ...] = INTENT_PATTERNS,
        extractor: Optional[EntityExtractor] = None,
        tagger: Optional[EntityTagger] = None,
    ):
        self._patterns = patterns
        self._extractor = extractor or EntityExtractor(tagger)
        self._cache: Dict[str, ClassificationResult] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def classify(self, text: str) -> ClassificationResult:
        """Classify a user utterance. Never suspends."""
        return self.classify_sync(text)

    def classify_sync(self, text: str) -> ClassificationResult:
        normalized = text.lower().strip()

        cached = self._cache.get(normalized)
        if cached is not None:
            return cached

        best_intent, best_score = Intent.UNKNOWN, 0.0
        for intent, patterns in self._patterns:
            for pattern in patterns:
                score = pattern_similarity(normalized, pattern)
                if score > best_score:
                    best_intent, best_score = intent, score

        result = ClassificationResult(
            intent=best_intent,
            confidence=best_score,
            entities=self._extractor.extract(text),
        )

        if result.confidence > CACHE_CONFIDENCE:
            self._cache[normalized] = result

        logger.debug(
            "intent_classified",
            intent=result.intent.value,
            confidence=result.confidence,
        )
        return result

    async def preload_common_queries(self) -> None:
        """Warm the cache with frequently asked queries."""
        for query in COMMON_QUERIES:
            await self.classify(query)

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = [
    "Intent",
    "INTENT_PATTERNS",
    "TIME_EXPRESSIONS",
    "MONEY_PATTERN",
    "COMMON_QUERIES",
    "ClassificationResult",
    "EntityTagger",
    "SpacyEntityTagger",
    "EntityExtractor",
    "pattern_similarity",
    "LocalIntentClassifier",
]
