"""OpenAI embeddings for knowledge entries and playbook documents."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from openai import OpenAI

from playbook_sync.config import settings

logger = logging.getLogger(__name__)

# Embedding inputs are truncated to stay well under the model's token limit
MAX_INPUT_CHARS = 24_000


class EmbeddingError(Exception):
    """Raised when the embedding service returns an unusable result."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 for empty or mismatched vectors."""
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


class EmbeddingProvider:
    """Converts text to fixed-length vectors via the OpenAI embeddings API.

    Usage:
        provider = EmbeddingProvider()
        vector = await provider.embed("tip: use a 2-line subject")
        vectors = await provider.embed_many([doc_a, doc_b])
    """

    def __init__(
        self,
        client: OpenAI | None = None,
        model: str | None = None,
        dimension: int | None = None,
    ) -> None:
        self._client = client
        self.model = model or settings.embedding_model
        self.dimension = dimension or settings.embedding_dim

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=settings.openai_api_key)
        return self._client

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts in a single request (blocking)."""
        if not texts:
            return []

        response = self.client.embeddings.create(
            model=self.model,
            input=[t[:MAX_INPUT_CHARS] for t in texts],
        )

        embeddings: list[list[float]] = []
        for i, item in enumerate(response.data):
            vector = list(item.embedding)
            if len(vector) != self.dimension:
                raise EmbeddingError(
                    f"Embedding dimension mismatch for text {i}: "
                    f"expected {self.dimension}, got {len(vector)}"
                )
            embeddings.append(vector)

        if len(embeddings) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(embeddings)}")

        logger.debug("Generated %d embeddings using %s", len(embeddings), self.model)
        return embeddings

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await asyncio.to_thread(self.embed_texts, [text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed independent texts with one batched request."""
        return await asyncio.to_thread(self.embed_texts, texts)
