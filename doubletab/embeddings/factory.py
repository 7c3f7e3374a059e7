"""Embedding provider factory."""

from __future__ import annotations

import logging

from doubletab.config import EmbeddingConfig
from doubletab.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)


async def createProvider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Create embedding provider from config: compat (default) or ollama."""
    provider = config.provider.lower()

    if provider == "ollama":
        return await _tryOllama(config)
    elif provider == "compat":
        return _createCompat(config)
    raise ValueError(f"Unknown embedding provider {config.provider!r}; use compat or ollama")


async def _tryOllama(config: EmbeddingConfig) -> EmbeddingProvider:
    from doubletab.embeddings.ollama import OllamaProvider

    p = OllamaProvider(model=config.model, dimensions=config.dimensions, url=config.ollama_url)
    if await p.healthCheck():
        logger.info("Using Ollama provider: %s", p.name)
        return p  # type: ignore[return-value]
    await p.close()
    raise ConnectionError(
        f"Ollama not reachable at {config.ollama_url} or model '{config.model}' not found"
    )


def _createCompat(config: EmbeddingConfig) -> EmbeddingProvider:
    from doubletab.embeddings.compat import CompatProvider

    p = CompatProvider(
        model=config.model,
        api_key=config.api_key,
        dimensions=config.dimensions,
        url=config.api_url,
    )
    logger.info("Using compat provider: %s", p.name)
    return p  # type: ignore[return-value]
