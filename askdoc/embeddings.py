"""OpenAI embeddings and chat completions provider."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

import numpy as np
from openai import AsyncOpenAI

from .config import config
from .errors import ProviderErrorCategory, ProviderInitError, classify_provider_error

logger = config.get_logger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that can turn text into vectors."""

    embedding_model: str

    async def embed(self, text: str) -> np.ndarray: ...

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]: ...


class ChatProvider(Protocol):
    """Anything that can complete a prompt."""

    async def complete(self, prompt: str) -> str: ...


class Provider(EmbeddingProvider, ChatProvider, Protocol):
    """One provider connection serving both embeddings and completions."""


class OpenAIProvider:
    """Handles OpenAI embeddings generation and chat completions."""

    def __init__(
        self,
        api_key: str | None = None,
        embedding_model: str | None = None,
        chat_model: str | None = None,
    ) -> None:
        """Initialize the provider with an OpenAI API key and model names.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            embedding_model: Embedding model name. If None, uses
                config.EMBEDDING_MODEL.
            chat_model: Chat model name. If None, uses config.CHAT_MODEL.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
        )
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.chat_model = chat_model or config.CHAT_MODEL

    async def embed(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.
        """
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )
            embedding = np.array(response.data[0].embedding)
        except Exception:
            logger.exception("Error generating embedding")
            raise
        else:
            return embedding

    async def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Get embeddings for multiple texts in a single request.

        Batching across requests is the caller's concern; the ingestion
        pipeline sizes its batches per document tier.

        Args:
            texts: List of input texts to generate embeddings for.

        Returns:
            list[np.ndarray]: Embedding vectors in input order.
        """
        if not texts:
            return []
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=texts,
            )
        except Exception:
            logger.exception("Error generating batch embeddings")
            raise
        return [np.array(data.embedding) for data in response.data]

    async def complete(self, prompt: str) -> str:
        """Send a single-turn prompt to the chat model.

        Returns:
            The model's reply text (empty string if it returned nothing).
        """
        response = await self.client.chat.completions.create(
            model=self.chat_model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=config.CHAT_MAX_TOKENS,
            temperature=config.CHAT_TEMPERATURE,
        )
        return response.choices[0].message.content or ""


def openai_provider_factory() -> OpenAIProvider:
    """Build the OpenAI provider after validating credentials.

    Returns:
        A configured OpenAIProvider.

    Raises:
        ProviderInitError: If the API key is missing or the client cannot be
            constructed.
    """
    api_key = config.get_openai_api_key()
    if not api_key:
        msg = (
            "OpenAI API key is not configured. "
            "Please set OPENAI_API_KEY environment variable."
        )
        raise ProviderInitError(msg)
    try:
        return OpenAIProvider(api_key=api_key)
    except Exception as exc:
        category = classify_provider_error(exc)
        msg = f"OpenAI client initialization failed: {exc}"
        raise ProviderInitError(msg, category) from exc


class ProviderHandle:
    """Lazily constructs the one provider shared by every session.

    Concurrent first callers wait on the same lock, so the factory runs at
    most once per successful initialization. A failed initialization is not
    cached; the next call tries again.
    """

    def __init__(
        self,
        factory: Callable[[], Provider] = openai_provider_factory,
    ) -> None:
        self._factory = factory
        self._provider: Provider | None = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._provider is not None

    async def get(self) -> Provider:
        """Return the shared provider, constructing it on first use.

        Raises:
            ProviderInitError: If construction fails.
        """  # noqa: DOC201
        if self._provider is not None:
            return self._provider
        async with self._lock:
            if self._provider is None:
                try:
                    self._provider = self._factory()
                except ProviderInitError:
                    logger.exception("Provider initialization failed")
                    raise
                except Exception as exc:
                    logger.exception("Provider initialization failed")
                    msg = f"Provider initialization failed: {exc}"
                    raise ProviderInitError(
                        msg,
                        classify_provider_error(exc),
                    ) from exc
                logger.info(
                    "Initialized provider %s", type(self._provider).__name__
                )
        return self._provider


async def check_provider(handle: ProviderHandle) -> tuple[bool, str | None]:
    """Round-trip a tiny embedding request to confirm the provider works.

    Returns:
        (healthy, error category or None).
    """
    try:
        provider = await handle.get()
        vector = await provider.embed("health check")
    except Exception as exc:  # noqa: BLE001
        category = classify_provider_error(exc)
        logger.warning("Provider health check failed (%s): %s", category, exc)
        return False, str(category)
    if len(vector) == 0:
        return False, str(ProviderErrorCategory.GENERIC)
    return True, None
