"""Tests for the Config class."""

import logging
import os
from importlib import reload
from pathlib import Path
from unittest.mock import call, patch

import pytest

from askdoc import config as config_module
from askdoc.config import Config


def test_get_openai_api_key_from_env():
    """Test OpenAI API key retrieval from environment."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test-api-key"}):
        assert Config.get_openai_api_key() == "test-api-key"


def test_get_openai_api_key_empty_when_not_set():
    """Test OpenAI API key returns empty string when not set."""
    with patch.dict(os.environ, {}, clear=True):
        assert not Config.get_openai_api_key()


def test_validate_success_with_api_key():
    """Test validation passes when API key is set."""
    with (
        patch.object(Config, "EXTERNAL_API_ENABLED", False),
        patch.object(Config, "get_openai_api_key", return_value="test-key"),
    ):
        Config.validate()


def test_validate_fails_without_api_key():
    """Test validation fails when API key is not set."""
    with (
        patch.object(Config, "EXTERNAL_API_ENABLED", False),
        patch.object(Config, "get_openai_api_key", return_value=""),
        pytest.raises(ValueError, match="OPENAI_API_KEY is required"),
    ):
        Config.validate()


def test_validate_external_mode_requires_base_url():
    with (
        patch.object(Config, "EXTERNAL_API_ENABLED", True),
        patch.object(Config, "EXTERNAL_API_BASE_URL", ""),
        pytest.raises(ValueError, match="EXTERNAL_API_BASE_URL"),
    ):
        Config.validate()


def test_validate_external_mode_skips_api_key():
    with (
        patch.object(Config, "EXTERNAL_API_ENABLED", True),
        patch.object(Config, "EXTERNAL_API_BASE_URL", "http://answers.local"),
        patch.object(Config, "get_openai_api_key", return_value=""),
    ):
        Config.validate()


@pytest.mark.parametrize(
    ("env_var", "default_value", "test_value", "expected_type"),
    [
        ("LOG_LEVEL", "INFO", "debug", str),
        ("EMBEDDING_MODEL", "text-embedding-3-small", "text-embedding-ada-002", str),
        ("CHAT_MODEL", "gpt-4o-mini", "gpt-3.5-turbo", str),
        ("CHAT_MAX_TOKENS", 1024, "2048", int),
        ("CHAT_TEMPERATURE", 0.2, "0.5", float),
        ("MAX_FILE_SIZE_MB", 10, "5", int),
        ("SMALL_DOC_CHUNK_SIZE", 800, "600", int),
        ("MEDIUM_DOC_BATCH_SIZE", 25, "30", int),
        ("LARGE_DOC_INDEX_TIMEOUT", 90.0, "45", float),
        ("MAX_INDEXED_CHUNKS", 100, "50", int),
        ("EMBED_MAX_RETRIES", 3, "5", int),
        ("MAX_SEARCH_RESULTS", 3, "4", int),
        ("MIN_VECTOR_SCORE", 0.1, "0.2", float),
        ("MAX_CONTEXT_LENGTH", 8000, "4000", int),
        ("LLM_TIMEOUT", 30.0, "10", float),
        ("SESSION_IDLE_HOURS", 24.0, "1", float),
    ],
)
def test_config_loading_from_env(env_var, default_value, test_value, expected_type):
    with patch.dict(os.environ, {}, clear=True):
        reload(config_module)
        actual_default = getattr(config_module.Config, env_var)
        assert actual_default == default_value

    with patch.dict(os.environ, {env_var: test_value}):
        reload(config_module)
        actual_value = getattr(config_module.Config, env_var)
        if expected_type is int:
            expected = int(test_value)
        elif expected_type is float:
            expected = float(test_value)
        elif env_var == "LOG_LEVEL":
            expected = test_value.upper()
        else:
            expected = test_value
        assert actual_value == expected

    reload(config_module)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (".pdf,.txt", (".pdf", ".txt")),
        (" .PDF , .md ,", (".pdf", ".md")),
    ],
)
def test_allowed_extensions_parsing(raw, expected):
    with patch.dict(os.environ, {"ALLOWED_EXTENSIONS": raw}):
        reload(config_module)
        assert config_module.Config.ALLOWED_EXTENSIONS == expected
    reload(config_module)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("1", True), ("yes", True), ("false", False), ("off", False)],
)
def test_external_api_enabled_parsing(raw, expected):
    with patch.dict(os.environ, {"EXTERNAL_API_ENABLED": raw}):
        reload(config_module)
        assert config_module.Config.EXTERNAL_API_ENABLED is expected
    reload(config_module)


def test_max_file_size_bytes():
    with patch.object(Config, "MAX_FILE_SIZE_MB", 2):
        assert Config.max_file_size_bytes() == 2 * 1024 * 1024


@pytest.mark.parametrize(
    ("env_value", "is_dev", "is_prod"),
    [
        ("development", True, False),
        ("DEVELOPMENT", True, False),
        ("production", False, True),
        ("staging", False, False),
    ],
)
def test_environment_detection(env_value, is_dev, is_prod):
    """Test environment detection methods."""
    with patch.object(Config, "ENVIRONMENT", env_value):
        assert Config.is_development() == is_dev
        assert Config.is_production() == is_prod


@pytest.mark.parametrize(
    ("log_level", "openai_level", "expected_level", "expected_openai_level"),
    [
        ("INFO", "WARNING", logging.INFO, logging.WARNING),
        ("DEBUG", "ERROR", logging.DEBUG, logging.ERROR),
        ("INVALID", "INVALID", logging.INFO, logging.WARNING),
    ],
)
def test_setup_logging_levels(
    log_level, openai_level, expected_level, expected_openai_level
):
    """Verify logging setup respects overrides and falls back on invalid values."""
    with (
        patch.object(Config, "LOG_LEVEL", log_level),
        patch.object(Config, "OPENAI_LOG_LEVEL", openai_level),
        patch("askdoc.config.logging.basicConfig") as mock_basic,
        patch("askdoc.config.logging.getLogger") as mock_get_logger,
    ):
        mock_logger = mock_get_logger.return_value

        Config.setup_logging()

        mock_basic.assert_called_once_with(
            level=expected_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        assert mock_get_logger.call_args_list == [call("openai"), call("httpx")]
        mock_logger.setLevel.assert_called_with(expected_openai_level)


def test_get_api_headers_uses_user_agent():
    with patch.object(Config, "API_USER_AGENT", "askdoc-tests/1.0"):
        assert Config.get_api_headers() == {"User-Agent": "askdoc-tests/1.0"}

    with patch.object(Config, "API_USER_AGENT", ""):
        assert Config.get_api_headers() == {}


@pytest.mark.parametrize(
    ("env_var", "invalid_value", "error_match"),
    [
        ("MAX_SEARCH_RESULTS", "not_a_number", "invalid literal for int"),
        ("CHAT_TEMPERATURE", "not_a_float", "could not convert string to float"),
    ],
)
def test_type_conversion_errors(env_var, invalid_value, error_match):
    """Test handling of invalid type conversions."""
    with (
        patch.dict(os.environ, {env_var: invalid_value}),
        pytest.raises(ValueError, match=error_match),
    ):
        reload(config_module)
    reload(config_module)


def test_no_dotenv_loading_when_missing():
    """Test that .env file loading is skipped when file doesn't exist."""
    with (
        patch.object(Path, "exists", return_value=False),
        patch("askdoc.config.load_dotenv") as mock_load,
    ):
        reload(config_module)

        mock_load.assert_not_called()
    reload(config_module)
