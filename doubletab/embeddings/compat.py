"""OpenAI-compatible /embeddings endpoint (OpenAI, OpenRouter, self-hosted gateways)."""

from __future__ import annotations

import os

import httpx

from doubletab.embeddings.base import HttpEmbedder


class CompatProvider(HttpEmbedder):
    kind = "compat"

    def __init__(
        self,
        model: str = "text-embedding-ada-002",
        api_key: str | None = None,
        dimensions: int = 1536,
        url: str = "https://api.openai.com/v1",
    ):
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("API key required: set OPENAI_API_KEY or embedding.api_key")
        client = httpx.AsyncClient(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=60.0,
        )
        super().__init__(model, dimensions, client)

    async def _request(self, texts: list[str]) -> list[list[float]]:
        resp = await self._client.post(
            "/embeddings",
            json={"model": self._model, "input": texts, "encoding_format": "float"},
        )
        resp.raise_for_status()
        # Batch results may come back out of order
        items = sorted(resp.json()["data"], key=lambda x: x["index"])
        return [item["embedding"] for item in items]
