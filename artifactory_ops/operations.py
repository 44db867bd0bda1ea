"""Host-facing Artifactory operations.

Each operation is a pydantic model whose field aliases are the names the
host's scripts use (``BuildName``, ``FromRepository``, ...). Hosts bind
arguments with :func:`run_operation` or by validating the model directly and
awaiting :meth:`ArtifactoryOperation.execute`.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, BinaryIO, ClassVar, Mapping

import anyio
import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from artifactory_ops.core.config.artifactory_config import (
    ArtifactoryConfig,
    ArtifactoryCredentials,
    resolve_credentials,
)
from artifactory_ops.core.exceptions import (
    ArtifactoryAPIError,
    ConfigurationError,
    HttpError,
)
from artifactory_ops.core.logger import artifactory_logger as logger
from artifactory_ops.core.logger import get_artifactory_log_level
from artifactory_ops.integrations.artifactory import payloads
from artifactory_ops.integrations.artifactory.client import ArtifactoryClient
from artifactory_ops.integrations.artifactory.models import (
    BuildType,
    PromoteResult,
)
from artifactory_ops.storage.files import FileStore, LocalFileStore

SCRIPT_NAMESPACE = 'Artifactory'
CHUNK_SIZE = 64 * 1024


@dataclass
class OperationContext:
    """What the host provides to a running operation."""

    file_store: FileStore = field(default_factory=LocalFileStore)
    config: ArtifactoryConfig = field(default_factory=ArtifactoryConfig)
    simulation: bool = False
    execution_url: str | None = None
    transport: httpx.AsyncBaseTransport | None = None


async def _read_chunks(file: BinaryIO) -> AsyncIterator[bytes]:
    while True:
        chunk = await anyio.to_thread.run_sync(file.read, CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


async def _copy_to_file(
    content: AsyncIterator[bytes], file_store: FileStore, path: str
) -> int:
    """Write a download to ``path``; an interrupted transfer leaves it empty."""
    written = 0
    with await anyio.to_thread.run_sync(file_store.open_for_write, path) as output:
        try:
            async for chunk in content:
                await anyio.to_thread.run_sync(output.write, chunk)
                written += len(chunk)
        except HttpError:
            await anyio.to_thread.run_sync(output.truncate, 0)
            raise
    return written


class ArtifactoryOperation(BaseModel):
    """Credentials shared by every operation."""

    script_name: ClassVar[str]

    credential_name: str | None = Field(default=None, alias='Credentials')
    base_url: str | None = Field(default=None, alias='BaseUrl')
    user_name: str | None = Field(default=None, alias='UserName')
    password: SecretStr | None = Field(default=None, alias='Password')

    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    def resolve_credentials(self, context: OperationContext) -> ArtifactoryCredentials:
        return resolve_credentials(
            context.config,
            credential_name=self.credential_name,
            base_url=self.base_url,
            user_name=self.user_name,
            password=self.password,
        )

    def create_client(self, context: OperationContext) -> ArtifactoryClient:
        return ArtifactoryClient(
            credentials=self.resolve_credentials(context),
            config=context.config,
            transport=context.transport,
        )

    @abstractmethod
    async def execute(self, context: OperationContext) -> Any: ...


class PromoteBuildOperation(ArtifactoryOperation):
    """Change the status of a build, optionally moving or copying its artifacts."""

    script_name: ClassVar[str] = 'Promote-Build'

    build_name: str = Field(alias='BuildName')
    build_number: str = Field(alias='BuildNumber')
    status: str = Field(alias='Status')
    comment: str | None = Field(default=None, alias='Comment')
    properties: dict[str, Any] | None = Field(default=None, alias='Properties')
    from_repository: str | None = Field(default=None, alias='FromRepository')
    to_repository: str | None = Field(default=None, alias='ToRepository')
    copy_artifacts: bool = Field(default=False, alias='Copy')
    scopes: list[str] = Field(default_factory=list, alias='Scopes')

    async def execute(self, context: OperationContext) -> PromoteResult:
        request = payloads.build_promote_request(
            status=self.status,
            comment=self.comment,
            dry_run=context.simulation,
            source_repo=self.from_repository,
            target_repo=self.to_repository,
            copy=self.copy_artifacts,
            scopes=self.scopes,
            properties=self.properties,
        )

        async with self.create_client(context) as client:
            result = await client.promote_build(
                self.build_name, self.build_number, request
            )

        for message in result.messages:
            logger.log(get_artifactory_log_level(message.level), '%s', message.message)
        return result


class UploadArtifactOperation(ArtifactoryOperation):
    """Upload a file to a repository and return its artifact data."""

    script_name: ClassVar[str] = 'Upload-Artifact'

    repository_key: str = Field(alias='Repository')
    path_to_artifact: str = Field(alias='Path')
    from_file: str = Field(alias='FromFile')

    async def execute(self, context: OperationContext) -> dict[str, str]:
        file_store = context.file_store
        with await anyio.to_thread.run_sync(file_store.open_for_read, self.from_file) as file:
            size = await anyio.to_thread.run_sync(file_store.size, self.from_file)
            async with self.create_client(context) as client:
                result = await client.upload_artifact(
                    self.repository_key,
                    self.path_to_artifact,
                    _read_chunks(file),
                    content_length=size,
                )

        logger.debug('Artifact uploaded to %s', result.uri)
        return payloads.artifact_data(self.path_to_artifact, result)


class GetArtifactMetadataOperation(ArtifactoryOperation):
    script_name: ClassVar[str] = 'Get-Artifact-Metadata'

    repository_key: str = Field(alias='Repository')
    path_to_artifact: str = Field(alias='Path')

    async def execute(self, context: OperationContext) -> dict[str, str]:
        async with self.create_client(context) as client:
            result = await client.get_artifact_metadata(
                self.repository_key, self.path_to_artifact
            )

        logger.debug('Artifact is at %s', result.uri)
        return payloads.artifact_data(self.path_to_artifact, result)


class RetrieveArtifactOperation(ArtifactoryOperation):
    """Download one artifact to a file; returns the number of bytes written."""

    script_name: ClassVar[str] = 'Retrieve-Artifact'

    repository_key: str = Field(alias='Repository')
    path_to_artifact: str = Field(alias='Path')
    to_file: str = Field(alias='ToFile')

    async def execute(self, context: OperationContext) -> int:
        async with self.create_client(context) as client:
            async with client.retrieve_artifact(
                self.repository_key, self.path_to_artifact
            ) as content:
                return await _copy_to_file(content, context.file_store, self.to_file)


class RetrieveAllBuildArtifactsOperation(ArtifactoryOperation):
    """Download every artifact of a build as a zip archive.

    ``BuildNumber`` may be ``LATEST``, optionally narrowed by ``Status``.
    """

    script_name: ClassVar[str] = 'Retrieve-All-Build-Artifacts'

    build_name: str = Field(alias='BuildName')
    build_number: str = Field(alias='BuildNumber')
    status: str | None = Field(default=None, alias='Status')
    to_file: str = Field(alias='ToFile')
    mappings: list[dict[str, Any]] | None = Field(default=None, alias='Mappings')

    async def execute(self, context: OperationContext) -> int:
        request = payloads.build_archive_request(
            build_name=self.build_name,
            build_number=self.build_number,
            build_status=self.status,
            mappings=self.mappings,
        )
        if request.is_latest():
            logger.debug(
                'Retrieving the latest build of %s with status %s',
                request.build_name,
                request.build_status or '(any)',
            )

        async with self.create_client(context) as client:
            async with client.retrieve_build_archive(request) as content:
                return await _copy_to_file(content, context.file_store, self.to_file)


class UploadBuildOperation(ArtifactoryOperation):
    """Create a new build in Artifactory."""

    script_name: ClassVar[str] = 'Upload-Build'

    build_name: str = Field(alias='Name')
    build_version: str = Field(alias='Version')
    build_number: str = Field(alias='Number')
    build_type: BuildType = Field(default=BuildType.GENERIC, alias='BuildType')
    properties: dict[str, Any] | None = Field(default=None, alias='Properties')
    modules: list[Any] | None = Field(default=None, alias='Modules')
    vcs_url: str | None = Field(default=None, alias='VcsUrl')
    vcs_revision: str | None = Field(default=None, alias='VcsRevision')
    build_agent_name: str | None = Field(default=None, alias='BuildAgentName')
    build_agent_version: str | None = Field(default=None, alias='BuildAgentVersion')
    started: datetime | None = Field(default=None, alias='Started')

    async def execute(self, context: OperationContext) -> None:
        client = self.create_client(context)
        info = payloads.build_build_info(
            name=self.build_name,
            number=self.build_number,
            version=self.build_version,
            build_type=self.build_type,
            properties=self.properties,
            modules=self.modules,
            principal=client.credentials.user_name,
            build_agent_name=self.build_agent_name,
            build_agent_version=self.build_agent_version,
            started=self.started,
            vcs_url=self.vcs_url,
            vcs_revision=self.vcs_revision,
            execution_url=context.execution_url,
        )

        async with client:
            await client.upload_build(info)


OPERATIONS: dict[str, type[ArtifactoryOperation]] = {
    f'{SCRIPT_NAMESPACE}::{operation.script_name}': operation
    for operation in (
        PromoteBuildOperation,
        UploadArtifactOperation,
        GetArtifactMetadataOperation,
        RetrieveArtifactOperation,
        RetrieveAllBuildArtifactsOperation,
        UploadBuildOperation,
    )
}


def get_operation(name: str) -> type[ArtifactoryOperation]:
    """Look up an operation by script name, with or without the namespace."""
    qualified = name if '::' in name else f'{SCRIPT_NAMESPACE}::{name}'
    for key, operation in OPERATIONS.items():
        if key.lower() == qualified.lower():
            return operation
    raise ConfigurationError(f'Unknown Artifactory operation {name!r}')


def bind_operation(name: str, arguments: Mapping[str, Any]) -> ArtifactoryOperation:
    operation = get_operation(name)
    try:
        return operation.model_validate(dict(arguments))
    except ValidationError as e:
        raise ConfigurationError(f'Invalid arguments for {name}: {e}')


async def run_operation(
    name: str, arguments: Mapping[str, Any], context: OperationContext | None = None
) -> Any:
    """Bind and execute an operation.

    Errors are re-raised after logging: fatal ones (bad configuration, a
    response that cannot be decoded) with a traceback, the rest as warnings.
    """
    operation = bind_operation(name, arguments)
    try:
        return await operation.execute(context or OperationContext())
    except ArtifactoryAPIError as e:
        if e.fatal:
            logger.exception('%s failed: %s', operation.script_name, e)
        else:
            logger.warning('%s failed: %s', operation.script_name, e)
        raise
