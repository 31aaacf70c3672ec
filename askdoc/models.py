"""Data models for the question-answering pipeline."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    import numpy as np

    from .errors import ErrorRecord, ErrorType, ProviderErrorCategory
    from .vector_store import FaissVectorIndex

T = TypeVar("T")


@dataclass
class DocumentChunk:
    """Represents a chunk of text from a document."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None


class IndexStatus(StrEnum):
    """Lifecycle of a session's searchable index."""

    NOT_CREATED = "not_created"
    CREATING = "creating"
    READY = "ready"
    DEGRADED = "degraded"
    ERROR = "error"


# Reset may move any state back to NOT_CREATED; it bypasses this table.
ALLOWED_TRANSITIONS: dict[IndexStatus, frozenset[IndexStatus]] = {
    IndexStatus.NOT_CREATED: frozenset({IndexStatus.CREATING}),
    IndexStatus.CREATING: frozenset(
        {
            IndexStatus.READY,
            IndexStatus.DEGRADED,
            IndexStatus.ERROR,
            IndexStatus.NOT_CREATED,
        }
    ),
    IndexStatus.READY: frozenset(),
    IndexStatus.DEGRADED: frozenset(),
    IndexStatus.ERROR: frozenset(),
}


@dataclass
class Session:
    """Per-user conversation state binding one document to its chunks/index."""

    id: str
    created_at: datetime.datetime
    last_accessed_at: datetime.datetime
    document_name: str | None = None
    chunks: list[DocumentChunk] = field(default_factory=list)
    index: FaissVectorIndex | None = None
    index_status: IndexStatus = IndexStatus.NOT_CREATED
    errors: list[ErrorRecord] = field(default_factory=list)
    indexed_chunk_count: int = 0
    index_complete: bool = False
    ingestion_token: str | None = None


class SearchStrategy(StrEnum):
    """Which retrieval strategy produced a result."""

    VECTOR = "vector"
    TEXT = "text"
    HYBRID = "hybrid"


@dataclass
class SearchResult:
    """A retrieved passage with its (strategy-scaled) relevance score."""

    content: str
    score: float | None
    source: str
    strategy: SearchStrategy
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchOutcome:
    """Results of one retrieval call and the strategy that served it."""

    results: list[SearchResult]
    strategy: SearchStrategy

    @property
    def total_found(self) -> int:
        return len(self.results)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed result.

    ``message`` is always safe to show to an end user; ``detail`` keeps the raw
    diagnostic text for server-side logs; ``category`` buckets provider
    failures so callers can pick a status code.
    """

    error_type: ErrorType
    message: str
    detail: str | None = None
    category: ProviderErrorCategory | None = None

    @property
    def ok(self) -> bool:
        return False


Result = Ok[T] | Err
