from __future__ import annotations

import asyncio
import io
import json
import logging
from pathlib import Path

import httpx
import pytest

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
from artifactory_ops.operations import (
    OPERATIONS,
    OperationContext,
    PromoteBuildOperation,
    UploadArtifactOperation,
    bind_operation,
    get_operation,
    run_operation,
)
from artifactory_ops.storage.files import FileStore, LocalFileStore

CREDENTIALS = {
    'BaseUrl': 'https://example.jfrog.io/artifactory',
    'UserName': 'admin',
    'Password': 'secret',
}


def _context(tmp_path: Path, handler, **kwargs) -> OperationContext:
    kwargs.setdefault('file_store', LocalFileStore(tmp_path))
    return OperationContext(transport=httpx.MockTransport(handler), **kwargs)


class _RecordingFile(io.BytesIO):
    """In-memory file that remembers being closed and what it held."""

    def __init__(self, initial: bytes = b'') -> None:
        super().__init__(initial)
        self.was_closed = False
        self.contents = initial

    def close(self) -> None:
        if not self.closed:
            self.contents = self.getvalue()
        self.was_closed = True
        super().close()


class _RecordingFileStore(FileStore):
    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files = dict(files or {})
        self.handles: list[_RecordingFile] = []

    def open_for_read(self, path: str) -> _RecordingFile:
        handle = _RecordingFile(self.files[path])
        self.handles.append(handle)
        return handle

    def open_for_write(self, path: str) -> _RecordingFile:
        handle = _RecordingFile()
        self.handles.append(handle)
        return handle

    def size(self, path: str) -> int:
        return len(self.files[path])


class _BodyStream(httpx.AsyncByteStream):
    def __init__(self, body: bytes) -> None:
        self.body = body
        self.closed = False

    async def __aiter__(self):
        yield self.body

    async def aclose(self) -> None:
        self.closed = True


class _StalledStream(httpx.AsyncByteStream):
    """Sends one chunk, then waits forever for the next."""

    def __init__(self) -> None:
        self.waiting = asyncio.Event()
        self.closed = False

    async def __aiter__(self):
        yield b'first'
        self.waiting.set()
        await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


class _FailingStream(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b'partial'
        raise httpx.ReadError('connection reset')


def test_registry_contains_every_operation() -> None:
    assert sorted(OPERATIONS) == [
        'Artifactory::Get-Artifact-Metadata',
        'Artifactory::Promote-Build',
        'Artifactory::Retrieve-All-Build-Artifacts',
        'Artifactory::Retrieve-Artifact',
        'Artifactory::Upload-Artifact',
        'Artifactory::Upload-Build',
    ]
    assert get_operation('promote-build') is PromoteBuildOperation
    with pytest.raises(ConfigurationError):
        get_operation('Artifactory::Delete-Everything')


def test_bind_operation_reports_missing_arguments() -> None:
    with pytest.raises(ConfigurationError, match='BuildNumber'):
        bind_operation('Promote-Build', {**CREDENTIALS, 'BuildName': 'app', 'Status': 'x'})


@pytest.mark.asyncio
async def test_promote_build_logs_server_messages(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured['path'] = request.url.path
        captured['body'] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                'messages': [
                    {'level': 'warn', 'message': 'Nothing to move'},
                    {'level': 'TRACE', 'message': 'trace detail'},
                    {'level': 'ERROR', 'message': 'Partial failure'},
                ]
            },
        )

    arguments = {
        **CREDENTIALS,
        'BuildName': 'app',
        'BuildNumber': '42',
        'Status': 'Released',
        'Properties': {'foo': ['bar', 'baz'], 'abc': '1'},
        'FromRepository': 'libs-staging',
        'ToRepository': 'libs-release',
        'Scopes': ['compile', 'runtime'],
    }

    with caplog.at_level(logging.DEBUG, logger='artifactory_ops'):
        result = await run_operation(
            'Artifactory::Promote-Build',
            arguments,
            _context(tmp_path, handler, simulation=True),
        )

    assert len(result.messages) == 3
    assert captured['path'] == '/artifactory/api/build/promote/app/42'
    body = captured['body']
    assert isinstance(body, dict)
    assert body['dryRun'] is True
    assert body['dependencies'] is True
    assert body['properties'] == {'foo': ['bar', 'baz'], 'abc': ['1']}

    levels = {record.getMessage(): record.levelno for record in caplog.records}
    assert levels['Nothing to move'] == logging.WARNING
    assert levels['trace detail'] == logging.DEBUG
    assert levels['Partial failure'] == logging.ERROR


@pytest.mark.asyncio
async def test_promote_build_surfaces_server_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={'errors': [{'status': 404, 'message': 'Build not found'}]}
        )

    operation = PromoteBuildOperation.model_validate(
        {**CREDENTIALS, 'BuildName': 'app', 'BuildNumber': '1', 'Status': 'Released'}
    )

    with pytest.raises(ServerError) as exc_info:
        await operation.execute(_context(tmp_path, handler))

    assert str(exc_info.value) == '404 Build not found'


@pytest.mark.asyncio
async def test_upload_artifact_returns_artifact_data(tmp_path: Path) -> None:
    (tmp_path / 'build').mkdir()
    (tmp_path / 'build' / 'app.zip').write_bytes(b'zip content')
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured['path'] = request.url.path
        captured['content'] = request.content
        captured['length'] = request.headers.get('Content-Length')
        return httpx.Response(
            201,
            json={
                'repo': 'generic-local',
                'path': '/releases/app',
                'checksums': {'md5': 'md5sum', 'sha1': 'sha1sum'},
            },
        )

    output = await run_operation(
        'Upload-Artifact',
        {
            **CREDENTIALS,
            'Repository': 'generic-local',
            'Path': 'releases/app.zip',
            'FromFile': 'build/app.zip',
        },
        _context(tmp_path, handler),
    )

    assert output == {'type': 'zip', 'sha1': 'sha1sum', 'md5': 'md5sum', 'name': 'app.zip'}
    assert captured['path'] == '/artifactory/generic-local/releases/app.zip'
    assert captured['content'] == b'zip content'
    assert captured['length'] == '11'


@pytest.mark.asyncio
async def test_upload_artifact_closes_file_when_response_cannot_be_decoded(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    store = _RecordingFileStore({'app.zip': b'zip content'})
    body = _BodyStream(b'{"uri": "no checksums"}')

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, stream=body)

    with caplog.at_level(logging.ERROR, logger='artifactory_ops'):
        with pytest.raises(DecodeError):
            await run_operation(
                'Upload-Artifact',
                {
                    **CREDENTIALS,
                    'Repository': 'generic-local',
                    'Path': 'app.zip',
                    'FromFile': 'app.zip',
                },
                _context(tmp_path, handler, file_store=store),
            )

    assert [handle.was_closed for handle in store.handles] == [True]
    assert body.closed
    failure = next(r for r in caplog.records if 'Upload-Artifact failed' in r.getMessage())
    assert failure.levelno == logging.ERROR
    assert failure.exc_info is not None


@pytest.mark.asyncio
async def test_upload_artifact_missing_file_raises(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError('no request expected')

    operation = UploadArtifactOperation(
        Repository='generic-local', Path='a.zip', FromFile='missing.zip', **CREDENTIALS
    )

    with pytest.raises(FileNotFoundError):
        await operation.execute(_context(tmp_path, handler))


@pytest.mark.asyncio
async def test_get_artifact_metadata(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == 'GET'
        assert request.url.path == '/artifactory/api/storage/libs/com/acme/app.jar'
        return httpx.Response(
            200,
            json={
                'uri': 'https://example.jfrog.io/artifactory/api/storage/libs/com/acme/app.jar',
                'mimeType': 'application/java-archive',
                'checksums': {'md5': 'm', 'sha1': 's'},
            },
        )

    output = await run_operation(
        'Get-Artifact-Metadata',
        {**CREDENTIALS, 'Repository': 'libs', 'Path': 'com/acme/app.jar'},
        _context(tmp_path, handler),
    )

    assert output == {'type': 'jar', 'sha1': 's', 'md5': 'm', 'name': 'app.jar'}


@pytest.mark.asyncio
async def test_retrieve_artifact_writes_file(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == '/artifactory/libs/app.jar'
        return httpx.Response(200, content=b'jar bytes')

    written = await run_operation(
        'Retrieve-Artifact',
        {**CREDENTIALS, 'Repository': 'libs', 'Path': 'app.jar', 'ToFile': 'out/app.jar'},
        _context(tmp_path, handler),
    )

    assert written == len(b'jar bytes')
    assert (tmp_path / 'out' / 'app.jar').read_bytes() == b'jar bytes'


@pytest.mark.asyncio
async def test_retrieve_artifact_writes_empty_file_on_error(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404, json={'errors': [{'status': 404, 'message': 'File not found.'}]}
        )

    with caplog.at_level(logging.ERROR, logger='artifactory_ops'):
        written = await run_operation(
            'Retrieve-Artifact',
            {**CREDENTIALS, 'Repository': 'libs', 'Path': 'nope.jar', 'ToFile': 'nope.jar'},
            _context(tmp_path, handler),
        )

    assert written == 0
    assert (tmp_path / 'nope.jar').read_bytes() == b''
    assert '404 File not found.' in caplog.text


@pytest.mark.asyncio
async def test_retrieve_artifact_interrupted_transfer_leaves_empty_file(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=_FailingStream())

    with caplog.at_level(logging.WARNING, logger='artifactory_ops'):
        with pytest.raises(HttpError) as exc_info:
            await run_operation(
                'Retrieve-Artifact',
                {**CREDENTIALS, 'Repository': 'libs', 'Path': 'app.jar', 'ToFile': 'app.jar'},
                _context(tmp_path, handler),
            )

    assert exc_info.value.status_code == 0
    assert (tmp_path / 'app.jar').read_bytes() == b''
    failure = next(
        r for r in caplog.records if 'Retrieve-Artifact failed' in r.getMessage()
    )
    assert failure.levelno == logging.WARNING


@pytest.mark.asyncio
async def test_cancelled_retrieve_artifact_releases_file_and_stream(
    tmp_path: Path,
) -> None:
    store = _RecordingFileStore()
    stream = _StalledStream()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=stream)

    task = asyncio.create_task(
        run_operation(
            'Retrieve-Artifact',
            {**CREDENTIALS, 'Repository': 'libs', 'Path': 'big.iso', 'ToFile': 'big.iso'},
            _context(tmp_path, handler, file_store=store),
        )
    )
    await asyncio.wait_for(stream.waiting.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert stream.closed
    assert len(store.handles) == 1
    assert store.handles[0].was_closed
    assert store.handles[0].contents == b'first'


@pytest.mark.asyncio
async def test_retrieve_all_build_artifacts(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured['path'] = request.url.path
        captured['body'] = json.loads(request.content)
        return httpx.Response(200, content=b'PK zip')

    with caplog.at_level(logging.DEBUG, logger='artifactory_ops'):
        written = await run_operation(
            'Retrieve-All-Build-Artifacts',
            {
                **CREDENTIALS,
                'BuildName': 'app',
                'BuildNumber': 'LATEST',
                'Status': 'Released',
                'ToFile': 'artifacts.zip',
                'Mappings': [
                    {'input': '(.+)/(.+)-sources.jar', 'output': '$1/sources/$2.jar'},
                    {'output': 'x'},
                ],
            },
            _context(tmp_path, handler),
        )

    assert written == len(b'PK zip')
    assert (tmp_path / 'artifacts.zip').read_bytes() == b'PK zip'
    assert captured['path'] == '/artifactory/api/archive/buildArtifacts'
    assert captured['body'] == {
        'buildName': 'app',
        'buildNumber': 'LATEST',
        'buildStatus': 'Released',
        'archiveType': 'zip',
        'mappings': [{'input': '(.+)/(.+)-sources.jar', 'output': '$1/sources/$2.jar'}],
    }
    assert 'Mapping missing "input" key.' in caplog.text
    assert 'Retrieving the latest build of app with status Released' in caplog.text


@pytest.mark.asyncio
async def test_upload_build_uses_named_credentials(tmp_path: Path) -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured['method'] = request.method
        captured['path'] = request.url.path
        captured['body'] = json.loads(request.content)
        return httpx.Response(204)

    config = ArtifactoryConfig(
        credentials={
            'prod': ArtifactoryCredentials(
                base_url='https://artifacts.example.com/', user_name='ci', password='key'
            )
        }
    )

    result = await run_operation(
        'Upload-Build',
        {
            'Credentials': 'prod',
            'Name': 'app',
            'Version': '1.2.0',
            'Number': '15',
            'BuildType': 'GRADLE',
            'Properties': {'release': '1.2.0'},
            'Modules': [{'id': 'app', 'artifacts': []}],
            'BuildAgentName': 'Jenkins',
            'BuildAgentVersion': '2.401',
        },
        _context(
            tmp_path,
            handler,
            config=config,
            execution_url='https://buildmaster.example.com/executions/execution-details?executionId=9',
        ),
    )

    assert result is None
    assert captured['method'] == 'PUT'
    assert captured['path'] == '/api/build'
    body = captured['body']
    assert isinstance(body, dict)
    assert body['name'] == 'app'
    assert body['version'] == '1.2.0'
    assert body['type'] == 'GRADLE'
    assert body['artifactoryPrincipal'] == 'ci'
    assert body['buildAgent'] == {'name': 'Jenkins', 'version': '2.401'}
    assert body['url'].endswith('executionId=9')
    assert body['modules'] == [{'id': 'app', 'artifacts': []}]
    assert 'started' not in body


@pytest.mark.asyncio
async def test_unknown_credentials_raise_configuration_error(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError('no request expected')

    with pytest.raises(ConfigurationError):
        await run_operation(
            'Get-Artifact-Metadata',
            {'Credentials': 'missing', 'Repository': 'libs', 'Path': 'a.jar'},
            _context(tmp_path, handler),
        )
