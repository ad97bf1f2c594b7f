"""
Embeddings Package
"""

from aria_core.embeddings.service import (
    EmbeddingBackend,
    EmbeddingError,
    EmbeddingService,
    GeminiEmbeddingBackend,
    Vector,
)


__all__ = [
    "EmbeddingBackend",
    "EmbeddingError",
    "EmbeddingService",
    "GeminiEmbeddingBackend",
    "Vector",
]
