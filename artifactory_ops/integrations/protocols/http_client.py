"""HTTP Client Protocol for Artifactory integrations."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any
import time

from httpx import AsyncClient, HTTPError, Request, Response

from artifactory_ops.core.exceptions import HttpError
from artifactory_ops.core.logger import artifactory_logger as logger


class HTTPClient(ABC):
    """Abstract base class defining the request tracing shared by HTTP integrations.

    Subclasses own the client configuration; this class sends prepared
    requests and writes sanitized debug traces for them.
    """

    @property
    @abstractmethod
    def provider(self) -> str: ...

    async def execute_request(
        self,
        client: AsyncClient,
        request: Request,
        stream: bool = False,
    ) -> Response:
        """Send a prepared request, logging it with secrets masked."""
        logger.debug(
            '[%s] Preparing %s request to %s headers=%s',
            self.provider,
            request.method,
            request.url,
            self._redact_headers(request.headers),
        )

        start_time = time.perf_counter()
        try:
            response = await client.send(request, stream=stream)
        except HTTPError as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(
                '[%s] HTTP %s %s failed after %.2fms error=%s',
                self.provider,
                request.method,
                request.url,
                duration_ms,
                exc,
            )
            raise self.handle_http_error(exc) from exc

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            '[%s] HTTP %s %s completed status=%s duration_ms=%.2f response_headers=%s response_preview=%s',
            self.provider,
            request.method,
            request.url,
            response.status_code,
            duration_ms,
            self._redact_headers(response.headers),
            self._get_response_preview(response),
        )

        return response

    def handle_http_error(self, e: HTTPError) -> HttpError:
        """Convert transport failures into the Artifactory error hierarchy."""
        logger.warning(f'HTTP error on {self.provider} API: {type(e).__name__} : {e}')
        return HttpError(0, f'{type(e).__name__}: {e}')

    def _redact_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        """Mask sensitive header values such as authorization tokens."""
        sensitive_keywords = ('authorization', 'token', 'secret', 'cookie', 'api')
        return {
            key: '***'
            if any(keyword in key.lower() for keyword in sensitive_keywords)
            else value
            for key, value in headers.items()
        }

    def _get_response_preview(self, response: Any) -> str:
        """Return a truncated, log-safe preview of the HTTP response body."""
        try:
            text = response.text  # type: ignore[assignment]
        except Exception:
            # Streamed responses are not read yet.
            return '<streamed>'

        if text is None:
            return '<empty>'

        if not isinstance(text, str):
            return '<unavailable>'

        sanitized = text.replace('\n', '\\n')
        limit = 500
        if len(sanitized) > limit:
            return f'{sanitized[:limit]}... [truncated]'
        return sanitized
