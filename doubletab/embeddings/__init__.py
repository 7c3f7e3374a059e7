"""Embedding providers for knowledge and memory vectors."""

from doubletab.embeddings.base import EmbeddingProvider, HttpEmbedder
from doubletab.embeddings.factory import createProvider

__all__ = ["EmbeddingProvider", "HttpEmbedder", "createProvider"]
