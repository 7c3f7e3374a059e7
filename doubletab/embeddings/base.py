"""Embedding provider protocol and the shared HTTP provider base."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Maps text to a fixed-dimension float vector."""

    @property
    def dimensions(self) -> int: ...

    @property
    def name(self) -> str: ...

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts. Returns list of float vectors."""
        ...

    async def embedOne(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    async def close(self) -> None: ...


class HttpEmbedder:
    """Common plumbing for providers that POST text batches to an HTTP endpoint.

    Subclasses implement ``_request`` and set ``kind``. Vectors whose length differs
    from the configured dimensionality are rejected here, before they reach the store.
    """

    kind = "http"

    def __init__(self, model: str, dimensions: int, client: httpx.AsyncClient):
        self._model = model
        self._dimensions = dimensions
        self._client = client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def name(self) -> str:
        return f"{self.kind}/{self._model}"

    async def _request(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = await self._request(texts)
        if len(vectors) != len(texts):
            raise ValueError(f"{self.name} returned {len(vectors)} vectors for {len(texts)} inputs")
        for vec in vectors:
            if len(vec) != self._dimensions:
                raise ValueError(
                    f"{self.name} returned {len(vec)}-dim vectors, configured for {self._dimensions}; "
                    "set embedding.dimensions to match the model"
                )
        return vectors

    async def embedOne(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    async def close(self) -> None:
        await self._client.aclose()
