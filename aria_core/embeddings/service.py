"""
Embedding Service

Text embeddings for semantic search over emails, tasks, contacts and
conversation history.
"""

import asyncio
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

import google.generativeai as genai
import structlog

from aria_core.config import EmbeddingConfig


logger = structlog.get_logger(__name__)

Vector = List[float]
EmbeddingBackend = Callable[[str], Awaitable[Vector]]


class EmbeddingError(Exception):
    """Base exception for embedding operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "EMBEDDING_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class GeminiEmbeddingBackend:
    """Calls the Gemini embedding API in a worker thread."""

    def __init__(self, api_key: str, model: str = "models/text-embedding-004"):
        self.model = model
        genai.configure(api_key=api_key)

    async def __call__(self, text: str) -> Vector:
        response = await asyncio.to_thread(
            genai.embed_content,
            model=self.model,
            content=text,
        )
        return list(response.get("embedding") or [])


class EmbeddingService:
    """
    Embedding generation with a text-prefix cache.

    Usage:
        service = EmbeddingService(api_key)
        vector = await service.embed("Quarterly report due Friday")
        vectors = await service.embed_batch(texts)
    """

    def __init__(
        self,
        api_key: str = "",
        config: Optional[EmbeddingConfig] = None,
        backend: Optional[EmbeddingBackend] = None,
    ):
        self.config = config or EmbeddingConfig()
        self._backend = backend or GeminiEmbeddingBackend(api_key, self.config.model)
        self._cache: Dict[str, Vector] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def embed(self, text: str) -> Vector:
        """Embed a single text."""
        key = text[: self.config.cache_key_length]
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            vector = await self._backend(text)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error("embedding_request_failed", error=str(e))
            raise EmbeddingError(f"Embedding request failed: {e}", code="REQUEST_FAILED") from e

        if not vector:
            raise EmbeddingError("No embedding returned from API", code="NO_EMBEDDING")

        vector = [float(v) for v in vector]
        self._cache[key] = vector
        return vector

    async def embed_batch(
        self,
        texts: Sequence[str],
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ) -> List[Vector]:
        """Embed many texts; results are returned in input order."""
        batch_size = batch_size or self.config.batch_size
        semaphore = asyncio.Semaphore(max_concurrency or self.config.max_concurrency)

        vectors: List[Vector] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            vectors.extend(await self._embed_batch(batch, semaphore))

        logger.debug("embedding_batch_complete", count=len(vectors))
        return vectors

    async def _embed_batch(
        self,
        texts: Sequence[str],
        semaphore: asyncio.Semaphore,
    ) -> List[Vector]:
        results: List[Tuple[int, Vector]] = []

        async def run(index: int, text: str) -> None:
            async with semaphore:
                vector = await self.embed(text)
            results.append((index, vector))

        await asyncio.gather(*(run(i, text) for i, text in enumerate(texts)))

        results.sort(key=lambda pair: pair[0])
        return [vector for _, vector in results]

    # -------------------------------------------------------------------------
    # Specialized Embeddings
    # -------------------------------------------------------------------------

    async def embed_email(self, subject: str, body: str, sender: str) -> Vector:
        return await self.embed(f"Email from {sender}: {subject}. {body[:500]}")

    async def embed_task(
        self,
        title: str,
        notes: Optional[str] = None,
        context: Sequence[str] = (),
    ) -> Vector:
        text = f"Task: {title}"
        if notes:
            text += f". {notes}"
        if context:
            text += f". Context: {', '.join(context)}"
        return await self.embed(text)

    async def embed_contact(
        self,
        name: str,
        company: Optional[str] = None,
        contexts: Sequence[str] = (),
    ) -> Vector:
        text = f"Contact: {name}"
        if company:
            text += f" at {company}"
        if contexts:
            text += f". {', '.join(contexts)}"
        return await self.embed(text)

    async def embed_conversation(self, role: str, content: str) -> Vector:
        return await self.embed(f"{role}: {content}")


__all__ = [
    "Vector",
    "EmbeddingBackend",
    "EmbeddingError",
    "GeminiEmbeddingBackend",
    "EmbeddingService",
]
