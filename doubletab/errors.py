"""Failure taxonomy shared by the store, the providers and the orchestrator."""

from __future__ import annotations


class DoubleTabError(Exception):
    """Base for every failure the session loop knows how to report."""


class TransportFailure(DoubleTabError):
    """LLM provider unreachable or returned an error. Fatal to the session."""


class RetrievalUnavailable(DoubleTabError):
    """Embedding provider failed while storing or querying."""


class PersistenceFailure(DoubleTabError):
    """Vector store read or write failed."""


class DimensionMismatch(PersistenceFailure):
    def __init__(self, expected: int, got: int):
        super().__init__(f"Embedding has {got} dimensions, store expects {expected}")
        self.expected = expected
        self.got = got


class SessionCancelled(DoubleTabError):
    """Cancellation was observed at a suspension point."""
