"""
Attention priority scoring.
"""

import dataclasses
from typing import Dict, Iterable, List, Optional

from aria_core.attention.base import AttentionItem, AttentionType


DEFAULT_TYPE_BOOSTS: Dict[str, float] = {
    AttentionType.MISSED_CALL.value: 0.10,
    AttentionType.PAYMENT_DUE.value: 0.05,
    AttentionType.CALENDAR_REMINDER.value: 0.05,
}


class PriorityScorer:
    """Applies per-type urgency boosts; the item constructor clamps the result."""

    def __init__(self, type_boosts: Optional[Dict[str, float]] = None):
        self.type_boosts = dict(DEFAULT_TYPE_BOOSTS if type_boosts is None else type_boosts)

    def boost_for(self, item: AttentionItem) -> float:
        return self.type_boosts.get(item.type.value, 0.0)

    def score_item(self, item: AttentionItem) -> AttentionItem:
        boost = self.boost_for(item)
        if not boost:
            return item
        return dataclasses.replace(item, urgency=item.urgency + boost)

    def score(self, items: Iterable[AttentionItem]) -> List[AttentionItem]:
        return [self.score_item(item) for item in items]


__all__ = ["DEFAULT_TYPE_BOOSTS", "PriorityScorer"]
