"""
Configuration for the Aria assistant core.

This module defines all configuration options for the live session client,
the conversation orchestrator, the attention engine and the embedding
service. Values are read from the environment (``ARIA_`` prefix) and an
optional ``.env`` file.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PERSONA = """You are Aria, a personal AI assistant. You are helpful, concise, and proactive.

Key behaviors:
- Respond conversationally but efficiently
- When asked about tasks, emails, calendar, or finances, use the provided context
- Suggest actions when appropriate ("Would you like me to...")
- If you can complete a task autonomously, offer to do so
- Keep responses brief for voice - expand only when asked

Available capabilities:
- Email: Read, search, reply, compose
- Calendar: View events, create/modify/delete appointments
- Tasks: Create, complete, prioritize
- Contacts: Look up, call, text
- Banking: Check balances, view transactions, track spending
- Shopping: Add to cart, reorder, track deliveries

Always prioritize user safety and privacy. Never share sensitive information."""


class LiveSessionConfig(BaseSettings):
    """Configuration for the duplex live session."""

    model_config = SettingsConfigDict(env_prefix="ARIA_LIVE_", extra="ignore")

    base_url: str = Field(
        default="wss://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL of the streaming conversational endpoint",
    )
    model: str = Field(
        default="gemini-3.0-flash-preview",
        description="Model version the session is opened against",
    )
    response_modalities: List[str] = Field(
        default=["AUDIO", "TEXT"],
        description="Modalities requested in the setup frame",
    )
    voice_name: str = Field(default="Aria", description="Prebuilt voice name")
    system_instruction: str = Field(
        default=DEFAULT_PERSONA,
        description="Persona/instructions sent once in the setup frame",
    )
    audio_mime_type: str = Field(default="audio/pcm", description="MIME type of streamed audio")
    connect_timeout: float = Field(
        default=3.0,
        gt=0.0,
        le=60.0,
        description="Seconds to wait for the transport to open",
    )
    poll_interval: float = Field(
        default=0.1,
        gt=0.0,
        le=5.0,
        description="Seconds between transport-open polls",
    )
    ping_interval: Optional[float] = Field(
        default=20.0,
        description="Websocket keepalive ping interval",
    )

    @field_validator("response_modalities")
    @classmethod
    def validate_modalities(cls, v: List[str]) -> List[str]:
        """Validate response modalities."""
        valid = {"TEXT", "AUDIO"}
        normalized = [m.upper() for m in v]
        invalid = [m for m in normalized if m not in valid]
        if invalid or not normalized:
            raise ValueError(f"Invalid response modalities: {v}. Must be a non-empty subset of {valid}")
        return normalized


class OrchestratorConfig(BaseSettings):
    """Configuration for the local/remote race."""

    model_config = SettingsConfigDict(env_prefix="ARIA_ORCHESTRATOR_", extra="ignore")

    cache_hit_confidence: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Local confidence above which a cached response is served",
    )
    cache_store_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Re-classification confidence above which a response is cached",
    )
    cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Response cache entry lifetime",
    )
    turn_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for a remote turn to complete",
    )
    preload_queries: bool = Field(
        default=True,
        description="Warm the classifier cache after connecting",
    )


class AttentionConfig(BaseSettings):
    """Configuration for the attention engine."""

    model_config = SettingsConfigDict(env_prefix="ARIA_ATTENTION_", extra="ignore")

    max_items: int = Field(default=5, ge=1, le=50, description="Published list size")
    urgency_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum urgency for an item to surface",
    )
    refresh_interval: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between refresh cycles",
    )
    type_boosts: Dict[str, float] = Field(
        default={
            "missed_call": 0.10,
            "payment_due": 0.05,
            "calendar_reminder": 0.05,
        },
        description="Urgency boost per attention type",
    )


class EmbeddingConfig(BaseSettings):
    """Configuration for the embedding service."""

    model_config = SettingsConfigDict(env_prefix="ARIA_EMBEDDING_", extra="ignore")

    model: str = Field(default="models/text-embedding-004", description="Embedding model")
    batch_size: int = Field(default=100, ge=1, le=1000, description="Texts per batch")
    max_concurrency: int = Field(default=8, ge=1, le=128, description="Parallel requests per batch")
    cache_key_length: int = Field(default=200, ge=1, description="Prefix length used as cache key")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ARIA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="aria-core", description="Service name for identification")
    log_level: str = Field(default="info", description="Logging level")
    log_format: str = Field(default="pretty", description="Logging format (json, pretty, simple)")

    gemini_api_key: str = Field(default="", description="Credential for the live session and embeddings")
    database_url: str = Field(
        default="sqlite+aiosqlite:///aria.db",
        description="Storage URL for SQLStorage",
    )

    live: LiveSessionConfig = Field(default_factory=LiveSessionConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    attention: AttentionConfig = Field(default_factory=AttentionConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.lower()

    @property
    def has_credential(self) -> bool:
        return bool(self.gemini_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


__all__ = [
    "DEFAULT_PERSONA",
    "LiveSessionConfig",
    "OrchestratorConfig",
    "AttentionConfig",
    "EmbeddingConfig",
    "Settings",
    "get_settings",
]
