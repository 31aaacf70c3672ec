"""Ingestion pipeline orchestrating Extract -> Split -> Embed -> Index."""

from __future__ import annotations

import asyncio
import math
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import PurePath

from .config import config
from .document_processing import (
    DocumentLoader,
    ProcessingProfile,
    TextChunker,
    select_processing_profile,
)
from .embeddings import ProviderHandle
from .errors import ErrorType, PipelineError, ProviderInitError
from .messages import get_message
from .models import DocumentChunk, Err, IndexStatus, Ok, Result
from .session_store import SessionStore
from .vector_store import FaissVectorIndex

logger = config.get_logger(__name__)

SUPERSEDED_MESSAGE = "Upload was superseded by a newer request or a session reset"


class IngestionSupersededError(Exception):
    """The session moved on (reset, deleted, re-uploaded) mid-ingestion."""


def validate_upload(
    data: bytes,
    filename: str | None,
    max_bytes: int | None = None,
    allowed_extensions: Sequence[str] | None = None,
) -> Err | None:
    """Check an upload before anything touches the session.

    Returns:
        An Err(VALIDATION_ERROR) describing the first problem found, or None
        if the upload is acceptable.
    """
    if max_bytes is None:
        max_bytes = config.max_file_size_bytes()
    if allowed_extensions is None:
        allowed_extensions = config.ALLOWED_EXTENSIONS

    if not data:
        return Err(ErrorType.VALIDATION_ERROR, "Uploaded file is empty")

    extension = PurePath(filename or "").suffix.lower()
    if not extension:
        return Err(ErrorType.VALIDATION_ERROR, "File name must have an extension")
    if extension not in allowed_extensions:
        allowed = ", ".join(allowed_extensions)
        return Err(
            ErrorType.VALIDATION_ERROR,
            f"Unsupported file type: {extension}. Allowed types: {allowed}",
        )

    if len(data) > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        return Err(
            ErrorType.VALIDATION_ERROR,
            f"File is too large. Maximum size is {limit_mb:g} MB",
        )
    return None


def timeout_for_size(size_bytes: int) -> float:
    """Overall ingestion timeout for an upload of ``size_bytes``."""  # noqa: DOC201
    if size_bytes < config.SMALL_FILE_THRESHOLD_BYTES:
        return config.SMALL_FILE_TIMEOUT
    return config.LARGE_FILE_TIMEOUT


def sample_chunks(
    chunks: list[DocumentChunk],
    max_chunks: int | None = None,
) -> list[DocumentChunk]:
    """Select every Nth chunk so at most ``max_chunks`` are indexed.

    The stride is ``ceil(len(chunks) / max_chunks)``, which spreads the sample
    evenly from the start to the end of the document.

    Returns:
        The chunks to index, in document order.
    """
    if max_chunks is None:
        max_chunks = config.MAX_INDEXED_CHUNKS
    if max_chunks <= 0 or len(chunks) <= max_chunks:
        return list(chunks)
    stride = math.ceil(len(chunks) / max_chunks)
    sampled = chunks[::stride]
    logger.info(
        "Sampling %d of %d chunks for indexing (stride %d)",
        len(sampled),
        len(chunks),
        stride,
    )
    return sampled


@dataclass(frozen=True)
class IngestionReport:
    """Outcome of one successful (possibly degraded) ingestion."""

    session_id: str
    document_name: str
    status: IndexStatus
    chunk_count: int
    indexed_chunk_count: int
    index_complete: bool
    profile: str
    warning: str | None = None


class IngestionPipeline:
    """Turns an uploaded document into searchable session state.

    Index construction failures never fail the upload: the session is marked
    degraded and keeps its full chunk list for lexical search. Only input the
    system cannot use at all (invalid upload, no text, no chunks) or the
    overall timeout is reported as a failure.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: SessionStore,
        provider_handle: ProviderHandle,
        loader: type[DocumentLoader] = DocumentLoader,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        max_indexed_chunks: int | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        language: str | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            store: Session registry the pipeline writes results into.
            provider_handle: Shared embedding provider.
            loader: Text extraction implementation.
            max_retries: Attempts per index batch. Defaults to
                config.EMBED_MAX_RETRIES.
            backoff_base: Retry n waits ``backoff_base ** n`` seconds.
            max_indexed_chunks: Stride-sampling ceiling.
            sleep: Awaitable used for backoff delays.
            language: Language of the degraded-mode warning.
        """
        self.store = store
        self.provider_handle = provider_handle
        self.loader = loader
        self.max_retries = max_retries or config.EMBED_MAX_RETRIES
        self.backoff_base = (
            config.RETRY_BACKOFF_BASE if backoff_base is None else backoff_base
        )
        self.max_indexed_chunks = max_indexed_chunks or config.MAX_INDEXED_CHUNKS
        self._sleep = sleep
        self.language = language

    async def ingest(
        self,
        session_id: str,
        data: bytes,
        filename: str,
    ) -> Result[IngestionReport]:
        """Run the whole ingestion for one upload.

        Returns:
            Ok with an IngestionReport (status ready or degraded), or Err with
            the terminal error type.
        """
        invalid = validate_upload(data, filename)
        if invalid is not None:
            logger.warning("Rejected upload %r: %s", filename, invalid.message)
            return invalid

        if not self.store.exists(session_id):
            return Err(ErrorType.SESSION_ERROR, "Session not found")

        async with self.store.ingestion_lock(session_id):
            token = uuid.uuid4().hex
            if not self.store.reset(session_id):
                return Err(ErrorType.SESSION_ERROR, "Session not found")
            self.store.update(
                session_id, ingestion_token=token, document_name=filename
            )
            if not self.store.transition(
                session_id, IndexStatus.CREATING, expected_token=token
            ):
                return Err(ErrorType.SESSION_ERROR, SUPERSEDED_MESSAGE)

            overall_timeout = timeout_for_size(len(data))
            logger.info(
                "Ingesting %s (%d bytes) into session %s, timeout %.0fs",
                filename,
                len(data),
                session_id,
                overall_timeout,
            )
            try:
                async with asyncio.timeout(overall_timeout):
                    return await self._run(session_id, token, data, filename)
            except TimeoutError:
                message = (
                    f"Document processing timed out after {overall_timeout:.0f} "
                    "seconds"
                )
                logger.warning("%s (session %s)", message, session_id)
                return self._fail(
                    session_id, token, ErrorType.TIMEOUT_ERROR, message
                )
            except PipelineError as exc:
                logger.warning(
                    "Ingestion of %s failed: %s: %s",
                    filename,
                    exc.error_type,
                    exc.message,
                )
                return self._fail(session_id, token, exc.error_type, exc.message)
            except IngestionSupersededError:
                logger.info("Ingestion for session %s was superseded", session_id)
                return Err(ErrorType.SESSION_ERROR, SUPERSEDED_MESSAGE)
            except Exception as exc:
                logger.exception("Unexpected ingestion failure for %s", session_id)
                self.store.record_error(
                    session_id,
                    ErrorType.SESSION_ERROR,
                    str(exc),
                    expected_token=token,
                )
                self.store.transition(
                    session_id, IndexStatus.ERROR, expected_token=token
                )
                return Err(
                    ErrorType.SESSION_ERROR,
                    "Unexpected error while processing the document",
                    detail=str(exc),
                )

    def _fail(
        self,
        session_id: str,
        token: str,
        error_type: ErrorType,
        message: str,
    ) -> Err:
        """Roll the session back to not_created and log the error."""  # noqa: DOC201
        recorded = self.store.record_error(
            session_id, error_type, message, expected_token=token
        )
        rolled_back = self.store.transition(
            session_id,
            IndexStatus.NOT_CREATED,
            expected_token=token,
            document_name=None,
            chunks=[],
            index=None,
            ingestion_token=None,
        )
        if not (recorded and rolled_back):
            return Err(ErrorType.SESSION_ERROR, SUPERSEDED_MESSAGE, detail=message)
        return Err(error_type, message)

    async def _extract(self, data: bytes, filename: str) -> str:
        try:
            return await self.loader.extract_text_async(data, filename)
        except ValueError as exc:
            raise PipelineError(ErrorType.VALIDATION_ERROR, str(exc)) from exc

    @staticmethod
    def _split(
        text: str,
        filename: str,
        profile: ProcessingProfile,
    ) -> list[DocumentChunk]:
        try:
            chunker = TextChunker(
                chunk_size=profile.chunk_size, overlap=profile.chunk_overlap
            )
            chunks = chunker.chunk_text(text, source=filename)
        except ValueError as exc:
            msg = f"Failed to split document: {exc}"
            raise PipelineError(ErrorType.DOCUMENT_SPLITTING_ERROR, msg) from exc
        if not chunks:
            msg = "Document could not be split into any chunks"
            raise PipelineError(ErrorType.DOCUMENT_SPLITTING_ERROR, msg)
        return chunks

    async def _run(
        self,
        session_id: str,
        token: str,
        data: bytes,
        filename: str,
    ) -> Ok[IngestionReport]:
        text = await self._extract(data, filename)
        profile = select_processing_profile(len(text))
        logger.info(
            "Using %s document profile (chunk %d, overlap %d, batch %d)",
            profile.name,
            profile.chunk_size,
            profile.chunk_overlap,
            profile.batch_size,
        )

        chunks = self._split(text, filename, profile)
        if not self.store.update(session_id, expected_token=token, chunks=chunks):
            raise IngestionSupersededError

        to_index = sample_chunks(chunks, self.max_indexed_chunks)
        index, warning = await self._build_index(session_id, token, to_index, profile)

        status = IndexStatus.READY if index is not None else IndexStatus.DEGRADED
        indexed_count = index.size if index is not None else 0
        index_complete = index is not None and indexed_count == len(chunks)
        if not self.store.transition(
            session_id,
            status,
            expected_token=token,
            index=index,
            indexed_chunk_count=indexed_count,
            index_complete=index_complete,
        ):
            raise IngestionSupersededError

        logger.info(
            "Ingestion finished for session %s: %s, %d chunks, %d indexed",
            session_id,
            status,
            len(chunks),
            indexed_count,
        )
        return Ok(
            IngestionReport(
                session_id=session_id,
                document_name=filename,
                status=status,
                chunk_count=len(chunks),
                indexed_chunk_count=indexed_count,
                index_complete=index_complete,
                profile=profile.name,
                warning=warning,
            )
        )

    async def _build_index(
        self,
        session_id: str,
        token: str,
        chunks: list[DocumentChunk],
        profile: ProcessingProfile,
    ) -> tuple[FaissVectorIndex | None, str | None]:
        """Embed and index ``chunks`` batch by batch.

        Returns:
            (index, None) on success, or (None, warning) when the session has
            to fall back to lexical search.
        """
        try:
            provider = await self.provider_handle.get()
        except ProviderInitError as exc:
            return None, self._degrade(
                session_id, token, f"Embedding provider unavailable: {exc.message}"
            )

        index = FaissVectorIndex(provider)
        batch_size = max(profile.batch_size, 1)
        batches = [
            chunks[start : start + batch_size]
            for start in range(0, len(chunks), batch_size)
        ]

        try:
            async with asyncio.timeout(profile.index_timeout):
                for number, batch in enumerate(batches, 1):
                    await self._add_batch(index, batch, number, len(batches))
        except TimeoutError:
            return None, self._degrade(
                session_id,
                token,
                f"Index construction timed out after {profile.index_timeout:.0f}s",
            )
        except Exception as exc:  # noqa: BLE001
            return None, self._degrade(
                session_id, token, f"Index construction failed: {exc}"
            )
        return index, None

    async def _add_batch(
        self,
        index: FaissVectorIndex,
        batch: list[DocumentChunk],
        number: int,
        total: int,
    ) -> None:
        """Add one batch, retrying with exponential backoff.

        Raises:
            PipelineError: When every attempt failed.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                await index.add_chunks(batch)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "Batch %d/%d failed (attempt %d/%d): %s",
                    number,
                    total,
                    attempt,
                    self.max_retries,
                    exc,
                )
                if attempt < self.max_retries:
                    await self._sleep(self.backoff_base**attempt)
            else:
                logger.info("Indexed batch %d/%d (%d chunks)", number, total, len(batch))
                return

        msg = f"Batch {number} failed after {self.max_retries} attempts: {last_error}"
        raise PipelineError(ErrorType.VECTORSTORE_ERROR, msg) from last_error

    def _degrade(self, session_id: str, token: str, detail: str) -> str:
        """Record an index failure and return the user-facing warning."""  # noqa: DOC201
        logger.warning(
            "Falling back to lexical search for session %s: %s", session_id, detail
        )
        self.store.record_error(
            session_id, ErrorType.VECTORSTORE_ERROR, detail, expected_token=token
        )
        return get_message("degraded_warning", self.language)
