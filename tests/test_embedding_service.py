"""Tests for the OpenAI provider and the shared provider handle."""

import asyncio
import os
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest

from askdoc import OpenAIProvider, ProviderHandle, ProviderInitError
from askdoc.config import config
from askdoc.embeddings import check_provider, openai_provider_factory
from askdoc.errors import ProviderErrorCategory
from tests.conftest import (
    StubChatProvider,
    TestConstants,
    create_mock_chat_response,
    create_mock_openai_response,
)


@pytest.fixture
def openai_provider():
    return OpenAIProvider(api_key=TestConstants.TEST_API_KEY)


def test_init_with_api_key(openai_provider) -> None:
    assert openai_provider.client.api_key == "test-key"
    assert openai_provider.embedding_model == config.EMBEDDING_MODEL
    assert openai_provider.chat_model == config.CHAT_MODEL


def test_init_with_env_api_key() -> None:
    with patch.dict(os.environ, {"OPENAI_API_KEY": "env-key"}):
        provider = OpenAIProvider(embedding_model="text-embedding-3-large")
        assert provider.embedding_model == "text-embedding-3-large"
        assert provider.client.api_key == "env-key"


@pytest.mark.asyncio
async def test_embed_success(openai_provider) -> None:
    mock_create = AsyncMock(
        return_value=create_mock_openai_response([[0.1, 0.2, 0.3, 0.4, 0.5]])
    )
    with patch.object(openai_provider.client.embeddings, "create", mock_create):
        result = await openai_provider.embed("test text")

    mock_create.assert_awaited_once_with(
        model=openai_provider.embedding_model,
        input="test text",
    )
    assert isinstance(result, np.ndarray)
    np.testing.assert_array_equal(result, np.array([0.1, 0.2, 0.3, 0.4, 0.5]))


@pytest.mark.asyncio
async def test_embed_api_error(openai_provider) -> None:
    mock_create = AsyncMock(side_effect=Exception("API Error"))
    with (
        patch.object(openai_provider.client.embeddings, "create", mock_create),
        pytest.raises(Exception, match="API Error"),
    ):
        await openai_provider.embed("test text")


@pytest.mark.asyncio
async def test_embed_batch_success(openai_provider) -> None:
    expected = [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6], [0.7, 0.8, 0.9]]
    mock_create = AsyncMock(return_value=create_mock_openai_response(expected))
    texts = ["text1", "text2", "text3"]
    with patch.object(openai_provider.client.embeddings, "create", mock_create):
        results = await openai_provider.embed_batch(texts)

    mock_create.assert_awaited_once_with(
        model=openai_provider.embedding_model,
        input=texts,
    )
    assert len(results) == 3
    for result, vector in zip(results, expected, strict=True):
        np.testing.assert_array_equal(result, np.array(vector))


@pytest.mark.asyncio
async def test_embed_batch_empty_skips_api(openai_provider) -> None:
    mock_create = AsyncMock()
    with patch.object(openai_provider.client.embeddings, "create", mock_create):
        assert await openai_provider.embed_batch([]) == []
    mock_create.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(("content", "expected"), [("Answer", "Answer"), (None, "")])
async def test_complete(openai_provider, content, expected) -> None:
    mock_create = AsyncMock(return_value=create_mock_chat_response(content))
    with patch.object(openai_provider.client.chat.completions, "create", mock_create):
        assert await openai_provider.complete("prompt") == expected

    kwargs = mock_create.await_args.kwargs
    assert kwargs["model"] == openai_provider.chat_model
    assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
    assert kwargs["max_tokens"] == config.CHAT_MAX_TOKENS


def test_factory_requires_api_key() -> None:
    with (
        patch.object(config, "get_openai_api_key", return_value=""),
        pytest.raises(ProviderInitError, match="OPENAI_API_KEY") as exc_info,
    ):
        openai_provider_factory()

    assert exc_info.value.category is ProviderErrorCategory.CONFIG


def test_factory_builds_provider() -> None:
    with patch.object(config, "get_openai_api_key", return_value="factory-key"):
        provider = openai_provider_factory()

    assert isinstance(provider, OpenAIProvider)
    assert provider.client.api_key == "factory-key"


@pytest.mark.asyncio
async def test_provider_handle_constructs_once_under_concurrency() -> None:
    calls = 0
    provider = StubChatProvider()

    def _factory():
        nonlocal calls
        calls += 1
        return provider

    handle = ProviderHandle(factory=_factory)
    assert not handle.initialized

    results = await asyncio.gather(*(handle.get() for _ in range(5)))

    assert calls == 1
    assert all(result is provider for result in results)
    assert handle.initialized


@pytest.mark.asyncio
async def test_provider_handle_does_not_cache_failures() -> None:
    attempts = 0
    provider = StubChatProvider()

    def _factory():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            msg = "You exceeded your current quota"
            raise RuntimeError(msg)
        return provider

    handle = ProviderHandle(factory=_factory)

    with pytest.raises(ProviderInitError) as exc_info:
        await handle.get()
    assert exc_info.value.category is ProviderErrorCategory.RATE_LIMIT
    assert not handle.initialized

    assert await handle.get() is provider
    assert attempts == 2


@pytest.mark.asyncio
async def test_check_provider_healthy(provider_handle, stub_provider) -> None:
    assert await check_provider(provider_handle) == (True, None)
    assert stub_provider.embed_calls == 1


@pytest.mark.asyncio
async def test_check_provider_reports_init_failure(failing_provider_handle) -> None:
    healthy, category = await check_provider(failing_provider_handle)

    assert healthy is False
    assert category == "config"


@pytest.mark.asyncio
async def test_check_provider_reports_embedding_failure(
    provider_handle, stub_provider
) -> None:
    stub_provider.embed_error = TimeoutError("embedding request timed out")

    assert await check_provider(provider_handle) == (False, "timeout")
