"""In-memory FAISS index over a session's document chunks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import faiss
import numpy as np

from askdoc.config import config

if TYPE_CHECKING:
    from askdoc.embeddings import EmbeddingProvider
    from askdoc.models import DocumentChunk

logger = config.get_logger(__name__)


class FaissVectorIndex:
    """Append-only cosine-similarity index bound to one embedding provider.

    The provider used to embed chunks is kept on the index and reused for
    queries, so a query can never be embedded with a different model than the
    vectors it is compared against.
    """

    backend = "faiss"

    def __init__(self, embedder: EmbeddingProvider) -> None:
        """Create an empty index that embeds with ``embedder``."""
        self.embedder = embedder
        self.embedding_model = embedder.embedding_model
        self.index: faiss.IndexIDMap | None = None
        self.chunks: list[DocumentChunk] = []

    @property
    def size(self) -> int:
        return 0 if self.index is None else int(self.index.ntotal)

    @property
    def dimension(self) -> int | None:
        return None if self.index is None else int(self.index.d)

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.asarray(embedding, dtype="float32").copy()
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector.reshape(1, -1))
        return vector

    def _init_index(self, dimension: int) -> None:
        """Initialize FAISS index if missing."""
        base_index = faiss.IndexFlatIP(dimension)
        self.index = faiss.IndexIDMap(base_index)
        logger.info("Initialized FAISS IndexIDMap with dimension %d", dimension)

    async def add_chunks(self, chunks: list[DocumentChunk]) -> None:
        """Embed a batch of chunks and append them to the index.

        The whole batch is embedded before anything is added, so a failed
        call leaves the index exactly as it was and can be retried.

        Raises:
            ValueError: If embedding dimension mismatches the index or the
                provider returned the wrong number of vectors.
        """
        if not chunks:
            return

        embeddings = await self.embedder.embed_batch(
            [chunk.content for chunk in chunks]
        )
        if len(embeddings) != len(chunks):
            msg = (
                f"Embedding provider returned {len(embeddings)} vectors "
                f"for {len(chunks)} chunks"
            )
            raise ValueError(msg)

        vectors = np.vstack(
            [self._normalize_embedding(embedding) for embedding in embeddings]
        ).astype("float32")

        if self.index is None:
            self._init_index(vectors.shape[1])
        elif vectors.shape[1] != self.index.d:
            msg = (
                f"Embedding dimension {vectors.shape[1]} does not match "
                f"FAISS index dimension {self.index.d}"
            )
            raise ValueError(msg)

        first_id = len(self.chunks)
        ids_array = np.arange(first_id, first_id + len(chunks), dtype="int64")
        self.index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue]  # FAISS stubs may not reflect add_with_ids signature

        for chunk, vector in zip(chunks, vectors, strict=True):
            chunk.embedding = vector
            self.chunks.append(chunk)
        logger.info("Added %d vectors to FAISS index", len(chunks))

    async def search(
        self,
        query: str,
        top_k: int = 5,
    ) -> list[tuple[DocumentChunk, float]]:
        """Embed the query and return the most similar chunks.

        Returns:
            Ranked list of (DocumentChunk, cosine score) tuples.
        """
        index = self.index
        if index is None or index.ntotal == 0 or top_k <= 0:
            logger.warning("FAISS index empty; returning no results")
            return []

        query_embedding = await self.embedder.embed(query)
        normalized_query = self._normalize_embedding(np.asarray(query_embedding))
        if normalized_query.shape[0] != index.d:
            msg = (
                f"Query embedding dimension {normalized_query.shape[0]} does not "
                f"match FAISS index dimension {index.d}"
            )
            raise ValueError(msg)

        scores, vector_ids = index.search(
            normalized_query.reshape(1, -1),
            min(top_k, index.ntotal),
        )  # pyright: ignore[reportCallIssue]

        results: list[tuple[DocumentChunk, float]] = []
        for score, vector_id in zip(scores[0], vector_ids[0], strict=True):
            if int(vector_id) == -1:  # faiss returns -1 for empty results
                continue
            results.append((self.chunks[int(vector_id)], float(score)))
        return results
