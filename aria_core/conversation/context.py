"""
Conversation context injected into the live session out of band.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ConversationContext:
    """Ambient facts about the user's situation."""

    current_time: str
    location: Optional[str] = None
    upcoming_events: List[str] = field(default_factory=list)
    recent_email_summary: Optional[str] = None
    pending_tasks_summary: Optional[str] = None

    def format(self) -> str:
        return "\n".join([
            "Current context:",
            f"- Time: {self.current_time}",
            f"- Location: {self.location or 'Unknown'}",
            f"- Upcoming events: {', '.join(self.upcoming_events)}",
            f"- Recent emails: {self.recent_email_summary or 'None'}",
            f"- Pending tasks: {self.pending_tasks_summary or 'None'}",
        ])


__all__ = ["ConversationContext"]
