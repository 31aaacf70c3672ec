"""Client for an external answering service that replaces the local pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import config

logger = config.get_logger(__name__)


class ExternalApiError(Exception):
    """The external service failed or returned a non-2xx response."""

    def __init__(self, path: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"External API {path} failed: {message}")
        self.path = path
        self.status_code = status_code


@dataclass(frozen=True)
class ExternalAnswer:
    """Answer returned by the external service."""

    answer: str
    sources: list[Any] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    notice: str | None = None


@dataclass(frozen=True)
class ExternalUpload:
    """Acknowledgement of a document forwarded to the external service."""

    message: str
    filename: str


class ExternalApiClient:
    """Posts uploads and questions to the configured external service."""

    def __init__(
        self,
        base_url: str | None = None,
        chat_path: str | None = None,
        upload_path: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service root URL. Defaults to config.EXTERNAL_API_BASE_URL.
            chat_path: Path of the chat endpoint.
            upload_path: Path of the upload endpoint.
            timeout: Per-request timeout in seconds.
            client: Optional httpx client (for testing with mocks)
        """
        self.base_url = (base_url or config.EXTERNAL_API_BASE_URL).rstrip("/")
        self.chat_path = chat_path or config.EXTERNAL_API_CHAT_PATH
        self.upload_path = upload_path or config.EXTERNAL_API_UPLOAD_PATH
        self.timeout = config.EXTERNAL_API_TIMEOUT if timeout is None else timeout
        self._client = client

    async def _post(self, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(
                timeout=self.timeout, headers=config.get_api_headers()
            )
            close_client = True

        try:
            response = await client.post(url, **kwargs)
            if response.is_error:
                raise ExternalApiError(
                    path,
                    f"{response.status_code} {response.text}",
                    status_code=response.status_code,
                )
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ExternalApiError(path, str(exc)) from exc
        except ValueError as exc:
            raise ExternalApiError(path, f"invalid JSON response: {exc}") from exc
        finally:
            if close_client:
                await client.aclose()

        if not isinstance(payload, dict):
            raise ExternalApiError(path, "response body is not a JSON object")
        return payload

    async def chat(self, query: str) -> ExternalAnswer:
        """Ask the external service a question.

        Returns:
            The service's answer with any sources, suggestions and notice.

        Raises:
            ExternalApiError: On network errors, non-2xx status or bad JSON.
        """
        payload = await self._post(self.chat_path, json={"query": query})
        logger.info(
            "External chat answered (%d sources)", len(payload.get("sources") or [])
        )
        return ExternalAnswer(
            answer=str(payload.get("answer") or ""),
            sources=list(payload.get("sources") or []),
            suggestions=[str(item) for item in payload.get("suggestions") or []],
            notice=payload.get("notice"),
        )

    async def upload(self, data: bytes, filename: str) -> ExternalUpload:
        """Forward a document to the external service as multipart form data.

        Returns:
            The service's acknowledgement.

        Raises:
            ExternalApiError: On network errors, non-2xx status or bad JSON.
        """
        payload = await self._post(
            self.upload_path, files={"file": (filename, data)}
        )
        return ExternalUpload(
            message=str(payload.get("message") or ""),
            filename=str(payload.get("filename") or filename),
        )
