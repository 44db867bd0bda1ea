"""Request shaping for the Artifactory REST API.

Every function here is pure: it maps operation inputs to the path and body
Artifactory expects and performs no I/O.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping
from urllib.parse import quote

from artifactory_ops import __product_name__, __version__
from artifactory_ops.core.exceptions import ConfigurationError
from artifactory_ops.core.logger import artifactory_logger as logger
from artifactory_ops.integrations.artifactory.models import (
    ArchiveMapping,
    ArchiveRequest,
    BuildAgent,
    BuildArtifact,
    BuildDependency,
    BuildInfo,
    BuildModule,
    BuildType,
    PromoteRequest,
    UploadResult,
    format_timestamp,
)
from artifactory_ops.integrations.artifactory.runtime_value import (
    as_list,
    as_map,
    as_string,
    as_string_map,
    is_list,
)

BUILD_PATH = 'api/build'
REPOSITORIES_PATH = 'api/repositories'
ARCHIVE_BUILD_ARTIFACTS_PATH = 'api/archive/buildArtifacts'

_MAPPING_KEYS = ('input', 'output')
_MODULE_KEYS = ('id', 'properties', 'artifacts', 'dependencies')


def _require(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ConfigurationError(f'{field} is required')
    return str(value)


def plugin_agent() -> BuildAgent:
    """Identity of this module as reported to Artifactory."""
    return BuildAgent(name=__product_name__, version=__version__)


def artifact_path(repository_key: str, path_to_artifact: str) -> str:
    repository_key = _require(repository_key, 'Repository key').strip('/')
    path_to_artifact = _require(path_to_artifact, 'Artifact path').strip('/')
    return f'{repository_key}/{path_to_artifact}'


def storage_path(repository_key: str, path_to_artifact: str) -> str:
    return f'api/storage/{artifact_path(repository_key, path_to_artifact)}'


def promote_path(build_name: str, build_number: str) -> str:
    return (
        f'api/build/promote/{quote(_require(build_name, "Build name"))}'
        f'/{quote(_require(build_number, "Build number"))}'
    )


def artifact_data(path_to_artifact: str, result: UploadResult) -> dict[str, str]:
    """Build the artifact-data map used as a build module artifact.

    Type and name come from the requested path because some repository
    types drop the extension from the name they report.
    """
    local = PurePosixPath(path_to_artifact.replace('\\', '/').strip('/'))
    return {
        'type': local.suffix.lstrip('.'),
        'sha1': result.checksums.sha1,
        'md5': result.checksums.md5,
        'name': local.name,
    }


def build_promote_request(
    status: str,
    comment: str | None = None,
    dry_run: bool = False,
    source_repo: str | None = None,
    target_repo: str | None = None,
    copy: bool = False,
    scopes: Iterable[str] | None = None,
    properties: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> PromoteRequest:
    return PromoteRequest(
        status=_require(status, 'Status'),
        comment=comment,
        ci_user=__product_name__,
        timestamp=format_timestamp(now or datetime.now(timezone.utc)),
        dry_run=dry_run,
        source_repo=source_repo,
        target_repo=target_repo,
        copy_artifacts=copy,
        scopes=list(scopes or []),
        properties={key: as_list(value) for key, value in (properties or {}).items()},
    )


def convert_mappings(
    mappings: Iterable[Mapping[str, Any]] | None,
) -> list[ArchiveMapping] | None:
    """Validate archive mappings.

    Entries without an ``input`` key are dropped; unknown keys are reported
    but otherwise ignored.
    """
    if not mappings:
        return None

    converted: list[ArchiveMapping] = []
    for mapping in mappings:
        if 'input' not in mapping:
            logger.warning('Mapping missing "input" key.')
        for key in mapping:
            if key not in _MAPPING_KEYS:
                logger.warning('Mapping contains unknown key "%s".', key)
        if 'input' not in mapping:
            continue
        output = mapping.get('output')
        converted.append(
            ArchiveMapping(
                input=as_string(mapping['input']),
                output=as_string(output) if output is not None else None,
            )
        )
    return converted or None


def build_archive_request(
    build_name: str,
    build_number: str,
    build_status: str | None = None,
    mappings: Iterable[Mapping[str, Any]] | None = None,
) -> ArchiveRequest:
    return ArchiveRequest(
        build_name=_require(build_name, 'Build name'),
        build_number=_require(build_number, 'Build number'),
        build_status=build_status,
        mappings=convert_mappings(mappings),
    )


def _module_entries(value: Any, field: str) -> list[dict[str, Any]]:
    if not is_list(value):
        raise ConfigurationError(f'Build module "{field}" must be a list')
    return [as_map(item) for item in value]


def _entry_field(entry: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in entry:
        raise ConfigurationError(f'Build {kind} missing "{key}" field.')
    return entry[key]


def build_artifact(entry: Mapping[str, Any]) -> BuildArtifact:
    return BuildArtifact(
        type=as_string(_entry_field(entry, 'type', 'artifact')),
        sha1=as_string(_entry_field(entry, 'sha1', 'artifact')),
        md5=as_string(_entry_field(entry, 'md5', 'artifact')),
        name=as_string(_entry_field(entry, 'name', 'artifact')),
    )


def build_dependency(entry: Mapping[str, Any]) -> BuildDependency:
    return BuildDependency(
        type=as_string(_entry_field(entry, 'type', 'dependency')),
        sha1=as_string(_entry_field(entry, 'sha1', 'dependency')),
        md5=as_string(_entry_field(entry, 'md5', 'dependency')),
        id=as_string(_entry_field(entry, 'id', 'dependency')),
        scopes=as_list(_entry_field(entry, 'scopes', 'dependency')),
    )


def build_module(value: Any) -> BuildModule:
    module = as_map(value)
    for key in module:
        if key not in _MODULE_KEYS:
            logger.warning('Build module has unknown field "%s".', key)
    if 'id' not in module:
        logger.warning('Build module missing "id" field.')
        raise ConfigurationError('Build module missing "id" field.')

    artifacts = module.get('artifacts')
    dependencies = module.get('dependencies')
    return BuildModule(
        id=as_string(module['id']),
        properties=as_string_map(module.get('properties')),
        artifacts=(
            [build_artifact(a) for a in _module_entries(artifacts, 'artifacts')]
            if artifacts is not None
            else None
        ),
        dependencies=(
            [build_dependency(d) for d in _module_entries(dependencies, 'dependencies')]
            if dependencies is not None
            else None
        ),
    )


def build_build_info(
    name: str,
    number: str,
    version: str | None = None,
    build_type: BuildType | str = BuildType.GENERIC,
    properties: Mapping[str, Any] | None = None,
    modules: Iterable[Any] | None = None,
    principal: str | None = None,
    build_agent_name: str | None = None,
    build_agent_version: str | None = None,
    started: datetime | None = None,
    vcs_url: str | None = None,
    vcs_revision: str | None = None,
    execution_url: str | None = None,
) -> BuildInfo:
    build_agent = None
    if build_agent_name:
        build_agent = BuildAgent(
            name=build_agent_name, version=build_agent_version or ''
        )

    try:
        resolved_type = BuildType(str(getattr(build_type, 'value', build_type)).upper())
    except ValueError:
        raise ConfigurationError(f'Unknown build type {build_type!r}')

    agent = plugin_agent()
    return BuildInfo(
        name=_require(name, 'Build name'),
        number=_require(number, 'Build number'),
        version=version,
        type=resolved_type,
        properties=as_string_map(properties),
        build_agent=build_agent,
        agent=agent,
        started=started,
        artifactory_plugin_version=agent.version,
        artifactory_principal=principal,
        url=execution_url,
        vcs_revision=vcs_revision,
        vcs_url=vcs_url,
        modules=[build_module(m) for m in modules] if modules is not None else None,
    )
