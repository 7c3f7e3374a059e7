"""Ollama embeddings via the local /api/embed endpoint."""

from __future__ import annotations

import httpx

from doubletab.embeddings.base import HttpEmbedder


class OllamaProvider(HttpEmbedder):
    kind = "ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        dimensions: int = 768,
        url: str = "http://localhost:11434",
    ):
        super().__init__(model, dimensions, httpx.AsyncClient(base_url=url.rstrip("/"), timeout=60.0))

    async def _request(self, texts: list[str]) -> list[list[float]]:
        resp = await self._client.post("/api/embed", json={"model": self._model, "input": texts})
        resp.raise_for_status()
        return resp.json()["embeddings"]

    async def healthCheck(self) -> bool:
        """True when the server answers and has the model pulled."""
        try:
            resp = await self._client.get("/api/tags")
            resp.raise_for_status()
            pulled = [m["name"] for m in resp.json().get("models", [])]
        except (httpx.HTTPError, KeyError):
            return False
        # "nomic-embed-text" matches "nomic-embed-text:latest"
        return any(name.split(":")[0] == self._model.split(":")[0] for name in pulled)
