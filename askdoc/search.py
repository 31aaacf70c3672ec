"""Retrieval: lexical, vector and hybrid search with adaptive strategy choice."""

from __future__ import annotations

import asyncio
import math
import re
from typing import TYPE_CHECKING

from .config import config
from .errors import ErrorType
from .models import Err, Ok, Result, SearchOutcome, SearchResult, SearchStrategy

if TYPE_CHECKING:
    from .models import DocumentChunk
    from .vector_store import FaissVectorIndex

logger = config.get_logger(__name__)

NO_RESULTS_SENTINEL = "No relevant information found in the uploaded document."
NO_RESOURCES_MESSAGE = "No search resources available"
NO_STRATEGY_MESSAGE = "No suitable search method available"

MIN_TERM_LENGTH = 3
SHORT_QUERY_LENGTH = 20
LONG_QUERY_LENGTH = 100
VECTOR_OVERFETCH = 3
VECTOR_SHARE = 0.7
TEXT_SHARE = 0.5
VECTOR_WEIGHT = 1.2
TEXT_WEIGHT = 0.8
DEDUP_PREFIX_LENGTH = 100
DISPLAY_PREVIEW_LENGTH = 500
DEFAULT_SOURCE = "Uploaded document"

_WHITESPACE = re.compile(r"\s+")


def result_key(content: str) -> str:
    """Dedup key: case-folded, whitespace-collapsed first 100 characters."""  # noqa: DOC201
    return _WHITESPACE.sub(" ", content[:DEDUP_PREFIX_LENGTH].lower()).strip()


def _source_of(chunk: DocumentChunk) -> str:
    return str(chunk.metadata.get("source") or DEFAULT_SOURCE)


def query_terms(query: str) -> list[str]:
    """Lowercased whitespace tokens of at least three characters."""  # noqa: DOC201
    return [term for term in query.lower().split() if len(term) >= MIN_TERM_LENGTH]


def text_search(
    chunks: list[DocumentChunk],
    query: str,
    max_results: int | None = None,
) -> Result[SearchOutcome]:
    """Score chunks by term frequency weighted by term length.

    Each query term adds ``occurrences * len(term) / 10``; a chunk containing
    the whole query verbatim gets a bonus of twice the term count. Ties keep
    document order, so the ranking is deterministic.

    Returns:
        Ok with up to ``max_results`` results (possibly none), or Err for an
        empty query.
    """
    if max_results is None:
        max_results = config.MAX_SEARCH_RESULTS
    if not query or not query.strip():
        return Err(ErrorType.SEARCH_ERROR, "Query cannot be empty")

    phrase = query.strip().lower()
    terms = query_terms(query)
    phrase_bonus = max(len(terms), 1) * 2

    scored: list[tuple[DocumentChunk, float]] = []
    for chunk in chunks:
        content = chunk.content.lower()
        score = 0.0
        for term in terms:
            score += content.count(term) * (len(term) / 10)
        if phrase in content:
            score += phrase_bonus
        if score > 0:
            scored.append((chunk, score))

    scored.sort(key=lambda item: item[1], reverse=True)
    results = [
        SearchResult(
            content=chunk.content,
            score=score,
            source=_source_of(chunk),
            strategy=SearchStrategy.TEXT,
            metadata=dict(chunk.metadata),
        )
        for chunk, score in scored[: max(max_results, 0)]
    ]
    logger.info("Text search found %d results in %d chunks", len(results), len(chunks))
    return Ok(SearchOutcome(results=results, strategy=SearchStrategy.TEXT))


async def vector_search(
    index: FaissVectorIndex,
    query: str,
    max_results: int | None = None,
    *,
    min_score: float | None = None,
    min_length: int | None = None,
) -> Result[SearchOutcome]:
    """Nearest-neighbour search with relevance and length filtering.

    Over-fetches so that filtering out weak matches and fragments still
    leaves up to ``max_results`` usable passages.

    Returns:
        Ok with the filtered results, or Err(SEARCH_ERROR) if the provider or
        index failed.
    """
    if max_results is None:
        max_results = config.MAX_SEARCH_RESULTS
    if min_score is None:
        min_score = config.MIN_VECTOR_SCORE
    if min_length is None:
        min_length = config.MIN_CHUNK_LENGTH
    if not query or not query.strip():
        return Err(ErrorType.SEARCH_ERROR, "Query cannot be empty")

    try:
        raw_results = await index.search(query, top_k=max_results * VECTOR_OVERFETCH)
    except Exception as exc:
        logger.exception("Vector search failed")
        return Err(ErrorType.SEARCH_ERROR, "Vector search failed", detail=str(exc))

    results: list[SearchResult] = []
    for chunk, score in raw_results:
        if score < min_score:
            continue
        if len(chunk.content.strip()) < min_length:
            continue
        results.append(
            SearchResult(
                content=chunk.content,
                score=score,
                source=_source_of(chunk),
                strategy=SearchStrategy.VECTOR,
                metadata=dict(chunk.metadata),
            )
        )
        if len(results) >= max_results:
            break

    logger.info("Vector search found %d usable results", len(results))
    return Ok(SearchOutcome(results=results, strategy=SearchStrategy.VECTOR))


def _normalized_text_scores(results: list[SearchResult]) -> list[float]:
    best = max((result.score or 0.0 for result in results), default=0.0)
    if best <= 0:
        return [0.0 for _ in results]
    return [(result.score or 0.0) / best for result in results]


async def hybrid_search(
    index: FaissVectorIndex,
    chunks: list[DocumentChunk],
    query: str,
    max_results: int | None = None,
) -> Result[SearchOutcome]:
    """Run vector and lexical search concurrently and merge the results.

    Lexical scores are rescaled to [0, 1] by the best lexical score so they
    are comparable with cosine similarity. Vector scores are weighted by 1.2,
    lexical by 0.8; a passage found by both strategies is kept once and its
    lexical contribution is added to the vector score.

    Returns:
        Ok with at most ``max_results`` deduplicated results, or Err if both
        strategies failed.
    """
    if max_results is None:
        max_results = config.MAX_SEARCH_RESULTS

    async def _text() -> Result[SearchOutcome]:
        return text_search(chunks, query, math.ceil(max_results * TEXT_SHARE))

    vector_result, text_result = await asyncio.gather(
        vector_search(index, query, math.ceil(max_results * VECTOR_SHARE)),
        _text(),
    )

    if isinstance(vector_result, Err) and isinstance(text_result, Err):
        return Err(
            ErrorType.SEARCH_ERROR,
            "Hybrid search failed",
            detail=f"vector: {vector_result.detail}; text: {text_result.message}",
        )

    combined: dict[str, SearchResult] = {}

    if isinstance(vector_result, Ok):
        for result in vector_result.value.results:
            key = result_key(result.content)
            if key in combined:
                continue
            combined[key] = SearchResult(
                content=result.content,
                score=(result.score or 0.0) * VECTOR_WEIGHT,
                source=result.source,
                strategy=SearchStrategy.HYBRID,
                metadata=result.metadata,
            )
    else:
        logger.warning("Hybrid search continuing without vector results")

    if isinstance(text_result, Ok):
        text_results = text_result.value.results
        for result, normalized in zip(
            text_results, _normalized_text_scores(text_results), strict=True
        ):
            key = result_key(result.content)
            weighted = normalized * TEXT_WEIGHT
            existing = combined.get(key)
            if existing is not None:
                existing.score = (existing.score or 0.0) + weighted
                continue
            combined[key] = SearchResult(
                content=result.content,
                score=weighted,
                source=result.source,
                strategy=SearchStrategy.HYBRID,
                metadata=result.metadata,
            )

    final = sorted(combined.values(), key=lambda r: r.score or 0.0, reverse=True)
    final = final[:max_results]
    logger.info("Hybrid search found %d results", len(final))
    return Ok(SearchOutcome(results=final, strategy=SearchStrategy.HYBRID))


class SearchService:
    """Picks a retrieval strategy per query and formats context blocks."""

    def __init__(
        self,
        max_results: int | None = None,
        max_context_results: int | None = None,
        max_context_length: int | None = None,
    ) -> None:
        self.max_results = (
            config.MAX_SEARCH_RESULTS if max_results is None else max_results
        )
        self.max_context_results = (
            config.MAX_CONTEXT_RESULTS
            if max_context_results is None
            else max_context_results
        )
        self.max_context_length = (
            config.MAX_CONTEXT_LENGTH
            if max_context_length is None
            else max_context_length
        )

    @staticmethod
    def choose_strategy(
        query: str,
        *,
        has_index: bool,
        has_chunks: bool,
    ) -> SearchStrategy | None:
        """Select a strategy from query length and available resources.

        Short queries read like keywords, so vector search alone is used when
        possible. Long, narrative queries never rely on vector search alone.

        Returns:
            The strategy to run, or None when nothing is searchable or a long
            query would have to rely on vector search alone.
        """
        if not has_index and not has_chunks:
            return None

        query_length = len(query.strip())
        if query_length < SHORT_QUERY_LENGTH:
            return SearchStrategy.VECTOR if has_index else SearchStrategy.TEXT
        if has_index and has_chunks:
            return SearchStrategy.HYBRID
        if has_chunks:
            return SearchStrategy.TEXT
        if query_length > LONG_QUERY_LENGTH:
            return None
        return SearchStrategy.VECTOR

    async def smart_search(
        self,
        index: FaissVectorIndex | None,
        chunks: list[DocumentChunk],
        query: str,
        max_results: int | None = None,
    ) -> Result[SearchOutcome]:
        """Search with the strategy choose_strategy() selects.

        A failed vector-only search falls back to lexical search when chunks
        are available.

        Returns:
            Ok with the outcome, or Err(SEARCH_ERROR) when there is nothing
            to search or every applicable strategy failed.
        """
        if max_results is None:
            max_results = self.max_results

        has_index = index is not None and index.size > 0
        has_chunks = bool(chunks)
        strategy = self.choose_strategy(
            query, has_index=has_index, has_chunks=has_chunks
        )
        logger.info(
            "Smart search strategy=%s (query length %d, index=%s, chunks=%d)",
            strategy,
            len(query.strip()),
            has_index,
            len(chunks),
        )

        if strategy is None:
            message = (
                NO_STRATEGY_MESSAGE
                if has_index or has_chunks
                else NO_RESOURCES_MESSAGE
            )
            return Err(ErrorType.SEARCH_ERROR, message)
        if strategy is SearchStrategy.TEXT:
            return text_search(chunks, query, max_results)
        if strategy is SearchStrategy.HYBRID and index is not None:
            return await hybrid_search(index, chunks, query, max_results)

        if index is None:  # pragma: no cover - guarded by choose_strategy
            return Err(ErrorType.SEARCH_ERROR, NO_RESOURCES_MESSAGE)
        result = await vector_search(index, query, max_results)
        if isinstance(result, Err) and has_chunks:
            logger.warning("Vector search failed; falling back to text search")
            return text_search(chunks, query, max_results)
        return result

    def format_search_results(self, results: list[SearchResult]) -> str:
        """Build the delimited context block handed to the answer generator.

        At most ``max_context_results`` entries are included. Whole trailing
        entries are dropped to stay within ``max_context_length``; individual
        entries are never cut. The first entry is always kept, and only if it
        alone exceeds the budget is the block itself truncated.

        Returns:
            The context block, or NO_RESULTS_SENTINEL when there are no results.
        """
        if not results:
            return NO_RESULTS_SENTINEL

        header = "=== RELEVANT INFORMATION FROM DOCUMENT ===\n\n"
        footer = "\n\n=== END OF RELEVANT INFORMATION ==="

        sections: list[str] = []
        used = len(header) + len(footer)
        for position, result in enumerate(results[: self.max_context_results], 1):
            relevance = (
                f" (Relevance: {result.score:.3f})" if result.score is not None else ""
            )
            section = (
                f"--- Relevant Section {position} ---\n"
                f"{result.content.strip()}\n"
                f"[Source: {result.source or DEFAULT_SOURCE}]{relevance}"
            )
            cost = len(section) + (2 if sections else 0)
            if sections and used + cost > self.max_context_length:
                logger.info(
                    "Context budget reached; dropping %d trailing sections",
                    len(results[: self.max_context_results]) - len(sections),
                )
                break
            sections.append(section)
            used += cost

        block = header + "\n\n".join(sections) + footer
        if len(block) > self.max_context_length:
            block = block[: self.max_context_length]
        return block

    @staticmethod
    def format_search_results_for_display(results: list[SearchResult]) -> str:
        """Short numbered preview of results for terminal output."""  # noqa: DOC201
        if not results:
            return "No relevant information found."

        lines = []
        for position, result in enumerate(results, 1):
            preview = result.content[:DISPLAY_PREVIEW_LENGTH]
            if len(result.content) > DISPLAY_PREVIEW_LENGTH:
                preview += "..."
            score_text = f" (Score: {result.score:.3f})" if result.score else ""
            lines.append(f"{position}. {preview}{score_text} [Source: {result.source}]")
        return "\n\n".join(lines)
