"""Test configuration and fixtures for askdoc tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock providers (embeddings and chat completions)
- Text processing fixtures
- Session store, pipeline, search and generation fixtures
- Service factory for end-to-end tests
"""

import asyncio
import hashlib
from unittest.mock import Mock

import numpy as np
import pytest

from askdoc import (
    AnswerGenerator,
    DocumentChunk,
    DocumentQAService,
    IngestionPipeline,
    ProviderHandle,
    ProviderInitError,
    SearchService,
    SessionStore,
    TextChunker,
)
from askdoc.errors import ProviderErrorCategory


class TestConstants:
    """Centralized test constants to avoid repetition across test files.

    All test constants are defined here to maintain consistency across
    the test suite and make it easy to update values globally.
    """

    __test__ = False

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 64

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Documents
    FIRE_SAFETY_TEXT = (
        "Every commercial building must install automatic sprinkler systems on "
        "each floor. Fire extinguishers shall be inspected by a licensed "
        "technician every six months. Emergency exits must remain unobstructed "
        "and clearly marked with illuminated signage. Evacuation drills are "
        "mandatory at least twice per year for all occupants. Smoke detectors "
        "must be tested monthly and batteries replaced annually."
    )
    FIRE_SAFETY_FILENAME = "fire_safety.txt"
    STUB_ANSWER = "Sprinklers are required on each floor."


def _tokens(text: str) -> list[str]:
    return [token.strip(".,!?;:").lower() for token in text.split() if token.strip()]


class MockEmbeddingProvider:
    """Mock embedding provider for testing without API calls.

    Generates deterministic embeddings from hashed word counts, so texts that
    share words are close in cosine similarity and results are consistent
    across runs.
    """

    def __init__(
        self,
        dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION,
        embedding_model: str = TestConstants.TEST_OPENAI_MODEL,
    ) -> None:
        self.dimension = dimension
        self.embedding_model = embedding_model
        self.embed_calls = 0
        self.batch_calls = 0
        self.batch_failures_remaining = 0
        self.batch_error: Exception | None = None
        self.embed_error: Exception | None = None
        self.batch_delay = 0.0

    def vector_for(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in _tokens(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimension] += 1.0
        return vector

    async def embed(self, text: str) -> np.ndarray:
        self.embed_calls += 1
        if self.embed_error is not None:
            raise self.embed_error
        return self.vector_for(text)

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        self.batch_calls += 1
        if self.batch_delay:
            await asyncio.sleep(self.batch_delay)
        if self.batch_error is not None:
            raise self.batch_error
        if self.batch_failures_remaining > 0:
            self.batch_failures_remaining -= 1
            msg = "Temporary embedding failure"
            raise RuntimeError(msg)
        return [self.vector_for(text) for text in texts]


class StubChatProvider(MockEmbeddingProvider):
    """Full provider stub: mock embeddings plus a scripted chat model."""

    def __init__(self, answer: str = TestConstants.STUB_ANSWER, **kwargs) -> None:
        super().__init__(**kwargs)
        self.answer = answer
        self.complete_calls = 0
        self.prompts: list[str] = []
        self.complete_error: Exception | None = None
        self.complete_delay = 0.0

    @property
    def total_calls(self) -> int:
        return self.embed_calls + self.batch_calls + self.complete_calls

    async def complete(self, prompt: str) -> str:
        self.complete_calls += 1
        self.prompts.append(prompt)
        if self.complete_delay:
            await asyncio.sleep(self.complete_delay)
        if self.complete_error is not None:
            raise self.complete_error
        return self.answer


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


def make_chunk(content: str, chunk_id: int = 0, source: str = "doc.txt"):
    return DocumentChunk(
        content=content,
        metadata={
            "source": source,
            "chunk_id": chunk_id,
            "start_char": chunk_id * 100,
            "end_char": chunk_id * 100 + len(content),
            "length": len(content),
        },
    )


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""
    presets: dict[str, tuple[int, int]] = {
        "small": (
            TestConstants.SMALL_CHUNK_SIZE,
            TestConstants.SMALL_CHUNK_OVERLAP,
        ),
        "default": (
            TestConstants.DEFAULT_CHUNK_SIZE,
            TestConstants.DEFAULT_CHUNK_OVERLAP,
        ),
    }

    def _create_chunker(
        name: str = "default",
        *,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> TextChunker:
        if chunk_size is None or overlap is None:
            try:
                preset_chunk_size, preset_overlap = presets[name]
            except KeyError as exc:
                msg = f"Unknown text chunker preset: {name}"
                raise ValueError(msg) from exc
            chunk_size = preset_chunk_size if chunk_size is None else chunk_size
            overlap = preset_overlap if overlap is None else overlap

        return TextChunker(chunk_size=chunk_size, overlap=overlap)

    return _create_chunker


@pytest.fixture
def text_chunker_small(text_chunker_factory):
    """Text chunker configured for small chunks (100/20)."""
    return text_chunker_factory("small")


@pytest.fixture
def mock_embedding_provider():
    """Deterministic embedding-only provider."""
    return MockEmbeddingProvider()


@pytest.fixture
def stub_provider():
    """Scripted provider serving both embeddings and completions."""
    return StubChatProvider()


@pytest.fixture
def provider_handle(stub_provider):
    """ProviderHandle that always yields ``stub_provider``."""
    return ProviderHandle(factory=lambda: stub_provider)


@pytest.fixture
def failing_provider_handle():
    """ProviderHandle whose initialization always fails with a config error."""

    def _factory():
        msg = "OpenAI API key is not configured."
        raise ProviderInitError(msg, ProviderErrorCategory.CONFIG)

    return ProviderHandle(factory=_factory)


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def recorded_sleeps():
    """Fake asyncio.sleep that records requested delays without waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def pipeline_factory(session_store, provider_handle, recorded_sleeps):
    """Factory for IngestionPipeline instances sharing the test store."""

    def _create_pipeline(handle=None, **kwargs) -> IngestionPipeline:
        kwargs.setdefault("sleep", recorded_sleeps)
        return IngestionPipeline(
            session_store,
            handle or provider_handle,
            language="en",
            **kwargs,
        )

    return _create_pipeline


@pytest.fixture
def search_service():
    return SearchService()


@pytest.fixture
def generator_factory(provider_handle):
    """Factory for AnswerGenerator instances bound to the stub provider."""

    def _create_generator(handle=None, **kwargs) -> AnswerGenerator:
        kwargs.setdefault("language", "en")
        return AnswerGenerator(handle or provider_handle, **kwargs)

    return _create_generator


@pytest.fixture
def service_factory(session_store, provider_handle, recorded_sleeps):
    """Factory for fully wired DocumentQAService instances."""

    def _create_service(
        handle=None,
        external_client=None,
        llm_timeout: float | None = None,
    ) -> DocumentQAService:
        handle = handle or provider_handle
        return DocumentQAService(
            store=session_store,
            provider_handle=handle,
            pipeline=IngestionPipeline(
                session_store, handle, sleep=recorded_sleeps, language="en"
            ),
            search_service=SearchService(),
            generator=AnswerGenerator(handle, language="en", timeout=llm_timeout),
            external_client=external_client,
        )

    return _create_service


@pytest.fixture
def sample_text_chunks():
    """Create sample document chunks with text and metadata only (no embeddings)."""
    texts = [
        "Machine learning is a subset of artificial intelligence research.",
        "Neural networks are computational models inspired by the human brain.",
        "Deep learning uses multiple layers to learn complex patterns in data.",
        "Supervised learning uses labeled training data to fit a model.",
        "Unsupervised learning finds hidden patterns in unlabeled data sets.",
    ]
    return [
        make_chunk(text, chunk_id=i, source=f"test_doc_{i // 3}.txt")
        for i, text in enumerate(texts)
    ]
