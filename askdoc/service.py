"""Upload, query, reset and health operations over the shared components."""

from __future__ import annotations

import datetime
from dataclasses import asdict, dataclass, field
from typing import Any

from .config import config
from .embeddings import ProviderHandle, check_provider
from .errors import (
    HTTP_BAD_GATEWAY,
    HTTP_BAD_REQUEST,
    HTTP_CONFLICT,
    HTTP_INTERNAL_ERROR,
    HTTP_NOT_FOUND,
    ErrorType,
    ProviderErrorCategory,
    ProviderInitError,
    status_code_for,
)
from .external_api import ExternalApiClient, ExternalApiError
from .generation import AnswerGenerator
from .models import Err, IndexStatus
from .pipeline import IngestionPipeline, validate_upload
from .search import SearchService
from .session_store import SessionStore

logger = config.get_logger(__name__)

HTTP_OK = 200


@dataclass
class UploadResponse:
    """Result of an upload request."""

    message: str
    filename: str
    agent_ready: bool
    session_id: str | None = None
    index_status: str | None = None
    chunk_count: int = 0
    indexed_chunk_count: int = 0
    index_complete: bool = False
    warning: str | None = None
    error: str | None = None
    error_type: str | None = None
    status_code: int = HTTP_OK

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ChatResponse:
    """Result of a question, from the local pipeline or the external proxy."""

    response: str
    session_id: str | None = None
    requires_upload: bool = False
    strategy: str | None = None
    sources: list[Any] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    notice: str | None = None
    error: str | None = None
    error_type: str | None = None
    status_code: int = HTTP_OK

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ResetResponse:
    """Result of a session reset."""

    success: bool
    message: str
    session_id: str | None = None
    error: str | None = None
    status_code: int = HTTP_OK

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HealthResponse:
    """Process liveness, optionally with one session's full status."""

    status: str
    active_sessions: int
    external_api: bool
    timestamp: str
    provider_available: bool | None = None
    provider_error: str | None = None
    session: dict[str, Any] | None = None
    status_code: int = HTTP_OK

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DocumentQAService:
    """Entry point for every external operation.

    Owns no state of its own: sessions live in the store and the model
    provider behind the shared handle, both injected by build_service().
    """

    def __init__(  # noqa: PLR0913
        self,
        store: SessionStore,
        provider_handle: ProviderHandle,
        pipeline: IngestionPipeline,
        search_service: SearchService,
        generator: AnswerGenerator,
        external_client: ExternalApiClient | None = None,
    ) -> None:
        self.store = store
        self.provider_handle = provider_handle
        self.pipeline = pipeline
        self.search_service = search_service
        self.generator = generator
        self.external_client = external_client

    @property
    def external_mode(self) -> bool:
        return self.external_client is not None

    def _message(self, key: str) -> str:
        return self.generator.message(key)

    def _resolve_session(self, session_id: str | None) -> str:
        if session_id and self.store.exists(session_id):
            logger.info("Reusing existing session: %s", session_id)
            return session_id
        if session_id:
            logger.info("Session %s not found, creating new session", session_id)
        return self.store.create()

    async def upload(
        self,
        data: bytes,
        filename: str,
        session_id: str | None = None,
    ) -> UploadResponse:
        """Validate, then ingest a document into a new or existing session.

        Returns:
            UploadResponse with ``agent_ready`` set when the session can be
            queried (ready or degraded).
        """
        invalid = validate_upload(data, filename)
        if invalid is not None:
            return UploadResponse(
                message="Invalid upload",
                filename=filename or "",
                agent_ready=False,
                session_id=session_id,
                error=invalid.message,
                error_type=str(invalid.error_type),
                status_code=HTTP_BAD_REQUEST,
            )

        if self.external_client is not None:
            return await self._upload_external(
                self.external_client, data, filename, session_id
            )

        try:
            await self.provider_handle.get()
        except ProviderInitError as exc:
            return UploadResponse(
                message="Service initialization failed",
                filename=filename,
                agent_ready=False,
                session_id=session_id,
                error=self._message(
                    "rate_limit"
                    if exc.category is ProviderErrorCategory.RATE_LIMIT
                    else "config"
                ),
                error_type=str(exc.error_type),
                status_code=status_code_for(exc.error_type, exc.category),
            )

        resolved_id = self._resolve_session(session_id)
        result = await self.pipeline.ingest(resolved_id, data, filename)
        if isinstance(result, Err):
            return UploadResponse(
                message="Failed to process document",
                filename=filename,
                agent_ready=False,
                session_id=resolved_id,
                index_status=self.store.status(resolved_id)["index_status"],
                error=result.message,
                error_type=str(result.error_type),
                status_code=status_code_for(result.error_type, result.category),
            )

        report = result.value
        return UploadResponse(
            message=(
                "Document uploaded successfully with warnings"
                if report.warning
                else "Document uploaded and processed successfully"
            ),
            filename=filename,
            agent_ready=True,
            session_id=report.session_id,
            index_status=str(report.status),
            chunk_count=report.chunk_count,
            indexed_chunk_count=report.indexed_chunk_count,
            index_complete=report.index_complete,
            warning=report.warning,
        )

    async def _upload_external(
        self,
        client: ExternalApiClient,
        data: bytes,
        filename: str,
        session_id: str | None,
    ) -> UploadResponse:
        try:
            ack = await client.upload(data, filename)
        except ExternalApiError:
            logger.exception("External upload failed")
            return UploadResponse(
                message="External upload failed",
                filename=filename,
                agent_ready=False,
                session_id=session_id,
                error=self._message("external_unavailable"),
                error_type=str(ErrorType.API_ERROR),
                status_code=HTTP_BAD_GATEWAY,
            )

        resolved_id = self._resolve_session(session_id)
        self.store.reset(resolved_id)
        self.store.update(resolved_id, document_name=ack.filename)
        self.store.transition(resolved_id, IndexStatus.CREATING)
        self.store.transition(resolved_id, IndexStatus.READY)
        return UploadResponse(
            message=ack.message or "Document forwarded to the external service",
            filename=ack.filename,
            agent_ready=True,
            session_id=resolved_id,
            index_status=str(IndexStatus.READY),
        )

    async def query(self, question: str, session_id: str | None) -> ChatResponse:
        """Answer a question against the session's document.

        Missing sessions and sessions without a document are guided states,
        not errors: the response asks the user to upload first and no
        provider call is made.

        Returns:
            ChatResponse with the answer or a user-safe message.
        """
        if not isinstance(question, str) or not question.strip():
            return ChatResponse(
                response=self._message("invalid_question"),
                session_id=session_id,
                error="Invalid question format",
                error_type=str(ErrorType.VALIDATION_ERROR),
                status_code=HTTP_BAD_REQUEST,
            )

        if self.external_client is not None:
            return await self._query_external(
                self.external_client, question, session_id
            )

        session = self.store.get(session_id)
        if session is None:
            return ChatResponse(
                response=self._message("upload_first"),
                session_id=session_id,
                requires_upload=True,
                error="No session found",
            )
        if session.index_status is IndexStatus.CREATING:
            return ChatResponse(
                response=self._message("processing"),
                session_id=session_id,
                error="Document is still processing",
                status_code=HTTP_CONFLICT,
            )
        if session.index_status in {IndexStatus.NOT_CREATED, IndexStatus.ERROR}:
            return ChatResponse(
                response=self._message("upload_first"),
                session_id=session_id,
                requires_upload=True,
                error="No document uploaded for this session",
            )

        if len(question) > config.MAX_QUESTION_LENGTH:
            return ChatResponse(
                response=self._message("question_too_long"),
                session_id=session_id,
                error=(
                    "Question is too long. Maximum length is "
                    f"{config.MAX_QUESTION_LENGTH} characters."
                ),
                error_type=str(ErrorType.VALIDATION_ERROR),
                status_code=HTTP_BAD_REQUEST,
            )

        # Borrowed for this request only; a concurrent reset replaces them.
        index = session.index
        chunks = list(session.chunks)

        search_result = await self.search_service.smart_search(
            index, chunks, question
        )
        if isinstance(search_result, Err):
            logger.warning(
                "Search failed for session %s: %s",
                session_id,
                search_result.detail or search_result.message,
            )
            return ChatResponse(
                response=self._message("search_failed"),
                session_id=session_id,
                error=search_result.message,
                error_type=str(search_result.error_type),
                status_code=HTTP_INTERNAL_ERROR,
            )

        outcome = search_result.value
        context = self.search_service.format_search_results(outcome.results)
        logger.info(
            "Search context length %d characters from %d sections",
            len(context),
            outcome.total_found,
        )

        answer = await self.generator.generate(question, context)
        if isinstance(answer, Err):
            logger.warning(
                "Answer generation failed for session %s: %s (%s)",
                session_id,
                answer.error_type,
                answer.detail,
            )
            return ChatResponse(
                response=answer.message,
                session_id=session_id,
                strategy=str(outcome.strategy),
                error=answer.message,
                error_type=str(answer.error_type),
                status_code=status_code_for(answer.error_type, answer.category),
            )

        return ChatResponse(
            response=answer.value,
            session_id=session_id,
            strategy=str(outcome.strategy),
        )

    async def _query_external(
        self,
        client: ExternalApiClient,
        question: str,
        session_id: str | None,
    ) -> ChatResponse:
        try:
            external = await client.chat(question)
        except ExternalApiError:
            logger.exception("External chat failed")
            return ChatResponse(
                response=self._message("external_unavailable"),
                session_id=session_id,
                error="External answering service failed",
                error_type=str(ErrorType.API_ERROR),
                status_code=HTTP_BAD_GATEWAY,
            )
        return ChatResponse(
            response=external.answer,
            session_id=session_id,
            sources=external.sources,
            suggestions=external.suggestions,
            notice=external.notice,
        )

    def reset(self, session_id: str | None) -> ResetResponse:
        """Clear a session's document state; idempotent.

        Returns:
            ResetResponse, 400 without an id and 404 for an unknown session.
        """
        if not session_id:
            return ResetResponse(
                success=False,
                message="Session ID is required",
                error="Session ID is required",
                status_code=HTTP_BAD_REQUEST,
            )
        if not self.store.reset(session_id):
            return ResetResponse(
                success=False,
                message="Session not found or reset failed",
                session_id=session_id,
                error="Session not found",
                status_code=HTTP_NOT_FOUND,
            )
        return ResetResponse(
            success=True,
            message="Session reset successfully",
            session_id=session_id,
        )

    async def health(
        self,
        session_id: str | None = None,
        *,
        include_provider: bool = False,
    ) -> HealthResponse:
        """Report liveness and, with an id, that session's full status.

        Returns:
            HealthResponse; status is ``degraded`` when the provider check
            was requested and failed.
        """
        self.store.maybe_sweep()
        response = HealthResponse(
            status="healthy",
            active_sessions=self.store.count(),
            external_api=self.external_mode,
            timestamp=datetime.datetime.now(tz=datetime.UTC).isoformat(),
        )
        if include_provider and not self.external_mode:
            healthy, category = await check_provider(self.provider_handle)
            response.provider_available = healthy
            response.provider_error = category
            if not healthy:
                response.status = "degraded"
        if session_id:
            response.session = self.store.status(session_id)
        return response

    def delete_session(self, session_id: str | None) -> bool:
        return self.store.delete(session_id)

    def sweep_sessions(self) -> int:
        return self.store.sweep()


def build_service() -> DocumentQAService:
    """Composition root: one provider handle and one session store.

    Returns:
        A DocumentQAService wired from the current configuration.
    """
    provider_handle = ProviderHandle()
    store = SessionStore()
    external_client = ExternalApiClient() if config.EXTERNAL_API_ENABLED else None
    service = DocumentQAService(
        store=store,
        provider_handle=provider_handle,
        pipeline=IngestionPipeline(
            store, provider_handle, language=config.ANSWER_LANGUAGE
        ),
        search_service=SearchService(),
        generator=AnswerGenerator(provider_handle),
        external_client=external_client,
    )
    logger.info(
        "Service ready (external proxy: %s, language: %s)",
        service.external_mode,
        service.generator.language,
    )
    return service
