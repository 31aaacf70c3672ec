"""Configuration management for the askdoc question-answering service."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def _env_bool(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1024"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.2"))
    ANSWER_LANGUAGE: str = os.getenv("ANSWER_LANGUAGE", "en").lower()

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Upload validation
    MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "10"))
    ALLOWED_EXTENSIONS: tuple[str, ...] = _env_list("ALLOWED_EXTENSIONS", ".pdf,.txt")

    # Document size tiers (characters of extracted text)
    SMALL_DOC_THRESHOLD: int = int(os.getenv("SMALL_DOC_THRESHOLD", "20000"))
    MEDIUM_DOC_THRESHOLD: int = int(os.getenv("MEDIUM_DOC_THRESHOLD", "50000"))

    SMALL_DOC_CHUNK_SIZE: int = int(os.getenv("SMALL_DOC_CHUNK_SIZE", "800"))
    SMALL_DOC_CHUNK_OVERLAP: int = int(os.getenv("SMALL_DOC_CHUNK_OVERLAP", "100"))
    SMALL_DOC_BATCH_SIZE: int = int(os.getenv("SMALL_DOC_BATCH_SIZE", "10"))
    SMALL_DOC_INDEX_TIMEOUT: float = float(os.getenv("SMALL_DOC_INDEX_TIMEOUT", "60"))

    MEDIUM_DOC_CHUNK_SIZE: int = int(os.getenv("MEDIUM_DOC_CHUNK_SIZE", "1000"))
    MEDIUM_DOC_CHUNK_OVERLAP: int = int(os.getenv("MEDIUM_DOC_CHUNK_OVERLAP", "150"))
    MEDIUM_DOC_BATCH_SIZE: int = int(os.getenv("MEDIUM_DOC_BATCH_SIZE", "25"))
    MEDIUM_DOC_INDEX_TIMEOUT: float = float(
        os.getenv("MEDIUM_DOC_INDEX_TIMEOUT", "120")
    )

    LARGE_DOC_CHUNK_SIZE: int = int(os.getenv("LARGE_DOC_CHUNK_SIZE", "1200"))
    LARGE_DOC_CHUNK_OVERLAP: int = int(os.getenv("LARGE_DOC_CHUNK_OVERLAP", "200"))
    LARGE_DOC_BATCH_SIZE: int = int(os.getenv("LARGE_DOC_BATCH_SIZE", "50"))
    LARGE_DOC_INDEX_TIMEOUT: float = float(os.getenv("LARGE_DOC_INDEX_TIMEOUT", "90"))

    # Index construction
    MAX_INDEXED_CHUNKS: int = int(os.getenv("MAX_INDEXED_CHUNKS", "100"))
    EMBED_MAX_RETRIES: int = int(os.getenv("EMBED_MAX_RETRIES", "3"))
    RETRY_BACKOFF_BASE: float = float(os.getenv("RETRY_BACKOFF_BASE", "2.0"))

    # Overall ingestion timeouts (seconds), chosen by upload size
    SMALL_FILE_THRESHOLD_BYTES: int = int(
        os.getenv("SMALL_FILE_THRESHOLD_BYTES", "500000")
    )
    SMALL_FILE_TIMEOUT: float = float(os.getenv("SMALL_FILE_TIMEOUT", "180"))
    LARGE_FILE_TIMEOUT: float = float(os.getenv("LARGE_FILE_TIMEOUT", "300"))

    # Retrieval
    MAX_SEARCH_RESULTS: int = int(os.getenv("MAX_SEARCH_RESULTS", "3"))
    MIN_VECTOR_SCORE: float = float(os.getenv("MIN_VECTOR_SCORE", "0.1"))
    MIN_CHUNK_LENGTH: int = int(os.getenv("MIN_CHUNK_LENGTH", "50"))
    MAX_CONTEXT_RESULTS: int = int(os.getenv("MAX_CONTEXT_RESULTS", "5"))
    MAX_CONTEXT_LENGTH: int = int(os.getenv("MAX_CONTEXT_LENGTH", "8000"))

    # Generation
    LLM_TIMEOUT: float = float(os.getenv("LLM_TIMEOUT", "30"))
    MAX_QUESTION_LENGTH: int = int(os.getenv("MAX_QUESTION_LENGTH", "1000"))
    MAX_RESPONSE_LENGTH: int = int(os.getenv("MAX_RESPONSE_LENGTH", "10000"))

    # Sessions
    SESSION_IDLE_HOURS: float = float(os.getenv("SESSION_IDLE_HOURS", "24"))
    SESSION_SWEEP_INTERVAL_SECONDS: float = float(
        os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "600")
    )

    # External answering proxy
    EXTERNAL_API_ENABLED: bool = _env_bool("EXTERNAL_API_ENABLED", default=False)
    EXTERNAL_API_BASE_URL: str = os.getenv("EXTERNAL_API_BASE_URL", "")
    EXTERNAL_API_CHAT_PATH: str = os.getenv("EXTERNAL_API_CHAT_PATH", "/chat")
    EXTERNAL_API_UPLOAD_PATH: str = os.getenv("EXTERNAL_API_UPLOAD_PATH", "/upload")
    EXTERNAL_API_TIMEOUT: float = float(os.getenv("EXTERNAL_API_TIMEOUT", "60"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "askdoc/0.1")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set, or the external proxy is
                enabled without a base URL.
        """
        if cls.EXTERNAL_API_ENABLED:
            if not cls.EXTERNAL_API_BASE_URL:
                msg = "EXTERNAL_API_BASE_URL is required when EXTERNAL_API_ENABLED."
                raise ValueError(msg)
            return
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def max_file_size_bytes(cls) -> int:
        """Upload size ceiling in bytes.

        Returns:
            MAX_FILE_SIZE_MB expressed in bytes.
        """
        return cls.MAX_FILE_SIZE_MB * 1024 * 1024

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Configure third-party library log levels via environment variables
        third_party_level = getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        for name in ("openai", "httpx"):
            logging.getLogger(name).setLevel(third_party_level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
