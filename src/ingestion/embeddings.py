"""Embedding helpers using OpenAI text-embedding-3-large."""

from __future__ import annotations

import asyncio
import logging

from openai import OpenAI

from src.config import settings
from src.resilience import call_external

logger = logging.getLogger(__name__)


class Embedder:
    """Turns text into fixed-length vectors via the OpenAI embeddings API.

    The SDK call is synchronous, so it runs in a worker thread; every call
    goes through the ``openai`` retry and timeout policy.
    """

    def __init__(
        self,
        client: OpenAI | None = None,
        model: str | None = None,
        dimensions: int | None = None,
    ) -> None:
        self._client = client
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=settings.openai_api_key or None)
        return self._client

    def _create(self, texts: list[str]) -> list[list[float]]:
        response = self.client.embeddings.create(
            input=texts,
            model=self.model,
            dimensions=self.dimensions,
        )
        return [item.embedding for item in response.data]

    async def embed(self, text: str) -> list[float]:
        """Embed a single string."""
        vectors = await call_external(
            lambda: asyncio.to_thread(self._create, [text]),
            "openai",
            "embedding",
        )
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* one call at a time, preserving order."""
        vectors: list[list[float]] = []
        for i, text in enumerate(texts):
            vectors.append(await self.embed(text))
            logger.debug("Embedded %d/%d texts", i + 1, len(texts))
        return vectors
