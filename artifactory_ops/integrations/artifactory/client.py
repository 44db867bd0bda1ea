from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator

import httpx
from pydantic import TypeAdapter, ValidationError

from artifactory_ops.core.config.artifactory_config import (
    ArtifactoryConfig,
    ArtifactoryCredentials,
)
from artifactory_ops.core.exceptions import (
    ConfigurationError,
    DecodeError,
    HttpError,
    ServerError,
)
from artifactory_ops.core.logger import artifactory_logger as logger
from artifactory_ops.integrations.artifactory import payloads
from artifactory_ops.integrations.artifactory.models import (
    ArchiveRequest,
    ArtifactoryErrorEntry,
    ArtifactoryErrorEnvelope,
    BuildCollection,
    BuildInfo,
    PromoteRequest,
    PromoteResult,
    Repository,
    UploadResult,
)
from artifactory_ops.integrations.protocols.http_client import HTTPClient
from artifactory_ops.utils.http_session import httpx_verify_option


def create_client(
    credentials: ArtifactoryCredentials,
    config: ArtifactoryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an authenticated client rooted at the credentials' base URL.

    Basic credentials are sent with the first request instead of waiting for
    a 401 challenge; Artifactory takes API keys through the same header.
    """
    config = config or ArtifactoryConfig()
    base_url = credentials.normalized_base_url()

    auth = None
    user_name = (credentials.user_name or '').strip()
    if user_name:
        auth = httpx.BasicAuth(user_name, credentials.password_value() or '')
    elif credentials.password_value():
        raise ConfigurationError('A password or API key requires a user name')

    return httpx.AsyncClient(
        base_url=base_url,
        auth=auth,
        headers={'User-Agent': config.user_agent()},
        timeout=config.timeout,
        verify=httpx_verify_option(config.verify_ssl),
        transport=transport,
    )


def _decode_errors(payload: str | bytes) -> list[ArtifactoryErrorEntry] | None:
    try:
        return ArtifactoryErrorEnvelope.model_validate_json(payload).errors
    except ValidationError:
        return None


def _log_status_line(response: httpx.Response) -> None:
    logger.error('%s %s', response.status_code, response.reason_phrase)


def parse_typed(response: httpx.Response, expected: Any = None) -> Any:
    """Decode a JSON response or raise the matching Artifactory error.

    Artifactory sometimes sends its error envelope with a success status, so
    the envelope is checked before the status code. ``expected=None`` only
    checks for errors and returns None.
    """
    payload = response.text

    errors = _decode_errors(payload)
    if errors:
        for error in errors:
            logger.error('%s', error)
        raise ServerError(errors)

    if not response.is_success:
        _log_status_line(response)
        raise HttpError(response.status_code, response.reason_phrase)

    if expected is None:
        return None

    try:
        return TypeAdapter(expected).validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f'Unexpected response from Artifactory: {exc}') from exc


async def _empty_stream() -> AsyncIterator[bytes]:
    for chunk in ():
        yield chunk


async def parse_content(response: httpx.Response) -> AsyncIterator[bytes]:
    """Return the body stream of a download, or an empty stream on failure.

    Failures are logged rather than raised so callers can still write their
    (empty) output file. The body of a successful response is not buffered.
    """
    if response.is_success:
        return response.aiter_bytes()

    payload = await response.aread()
    errors = _decode_errors(payload)
    if errors:
        for error in errors:
            logger.error('%s', error)
    else:
        _log_status_line(response)
    return _empty_stream()


@dataclass
class ArtifactoryClient(HTTPClient):
    """HTTP client for the Artifactory REST API.

    Use as an async context manager; the underlying connection is closed on
    exit.
    """

    credentials: ArtifactoryCredentials
    config: ArtifactoryConfig = field(default_factory=ArtifactoryConfig)
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    @property
    def provider(self) -> str:
        return 'artifactory'

    async def __aenter__(self) -> ArtifactoryClient:
        self._client = create_client(self.credentials, self.config, self.transport)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError('ArtifactoryClient must be used as an async context manager')
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        expected: Any = None,
        **kwargs: Any,
    ) -> Any:
        request = self.client.build_request(method, path, **kwargs)
        response = await self.execute_request(self.client, request)
        return parse_typed(response, expected)

    @asynccontextmanager
    async def _download(
        self, method: str, path: str, **kwargs: Any
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        request = self.client.build_request(method, path, **kwargs)
        response = await self.execute_request(self.client, request, stream=True)
        try:
            yield self._guard_stream(await parse_content(response))
        finally:
            await response.aclose()

    async def _guard_stream(self, content: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Report transport failures in the middle of a body as ``HttpError``."""
        try:
            async for chunk in content:
                yield chunk
        except httpx.HTTPError as exc:
            raise self.handle_http_error(exc) from exc

    async def promote_build(
        self, build_name: str, build_number: str, request: PromoteRequest
    ) -> PromoteResult:
        return await self._request(
            'POST',
            payloads.promote_path(build_name, build_number),
            PromoteResult,
            json=request.to_payload(),
        )

    async def upload_artifact(
        self,
        repository_key: str,
        path_to_artifact: str,
        content: bytes | AsyncIterable[bytes],
        content_length: int | None = None,
    ) -> UploadResult:
        """Upload ``content``; streamed bodies go out chunked unless a length is given."""
        headers = {}
        if content_length is not None:
            headers['Content-Length'] = str(content_length)
        return await self._request(
            'PUT',
            payloads.artifact_path(repository_key, path_to_artifact),
            UploadResult,
            content=content,
            headers=headers,
        )

    async def get_artifact_metadata(
        self, repository_key: str, path_to_artifact: str
    ) -> UploadResult:
        return await self._request(
            'GET', payloads.storage_path(repository_key, path_to_artifact), UploadResult
        )

    def retrieve_artifact(self, repository_key: str, path_to_artifact: str):
        """Context manager yielding the artifact's byte stream."""
        return self._download(
            'GET', payloads.artifact_path(repository_key, path_to_artifact)
        )

    def retrieve_build_archive(self, request: ArchiveRequest):
        """Context manager yielding the zip archive of a build's artifacts."""
        return self._download(
            'POST', payloads.ARCHIVE_BUILD_ARTIFACTS_PATH, json=request.to_payload()
        )

    async def upload_build(self, info: BuildInfo) -> None:
        await self._request('PUT', payloads.BUILD_PATH, json=info.to_payload())

    async def list_builds(self) -> list[str]:
        collection: BuildCollection = await self._request(
            'GET', payloads.BUILD_PATH, BuildCollection
        )
        return [build.uri.strip('/') for build in collection.builds]

    async def list_repositories(self) -> list[str]:
        repositories: list[Repository] = await self._request(
            'GET', payloads.REPOSITORIES_PATH, list[Repository]
        )
        return [repository.key for repository in repositories]
