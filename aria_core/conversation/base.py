"""
Conversation Base Types

Exceptions raised by the conversation orchestrator.
"""

from typing import Any, Dict, Optional


class ConversationError(Exception):
    """Base exception for conversation operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CONVERSATION_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class MissingCredentialError(ConversationError):
    """No credential is configured for the remote model."""

    def __init__(self, message: str = "No API key configured (set ARIA_GEMINI_API_KEY)", **kwargs):
        super().__init__(message, code="MISSING_CREDENTIAL", **kwargs)


class TurnTimeoutError(ConversationError):
    """A remote turn did not complete in time."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="TURN_TIMEOUT", **kwargs)


__all__ = [
    "ConversationError",
    "MissingCredentialError",
    "TurnTimeoutError",
]
