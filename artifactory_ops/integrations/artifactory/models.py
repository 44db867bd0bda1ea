from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

ARTIFACTORY_TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%S.%f%z'
LATEST_BUILD = 'LATEST'


def format_timestamp(value: datetime) -> str:
    """Format a timestamp the way Artifactory accepts it.

    Artifactory only takes ``yyyy-MM-ddTHH:mm:ss.fff+0000``; naive values are
    treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return (
        value.strftime('%Y-%m-%dT%H:%M:%S')
        + f'.{value.microsecond // 1000:03d}+0000'
    )


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, ARTIFACTORY_TIMESTAMP_FORMAT)


class ArtifactoryModel(BaseModel):
    """Base for wire models: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class ArtifactoryErrorEntry(ArtifactoryModel):
    status: int
    message: str

    def __str__(self) -> str:
        return f'{self.status} {self.message}'


class ArtifactoryErrorEnvelope(ArtifactoryModel):
    errors: list[ArtifactoryErrorEntry]


class Checksums(ArtifactoryModel):
    md5: str
    sha1: str


class UploadResult(ArtifactoryModel):
    """Item information returned by deploy and storage requests."""

    uri: str | None = None
    download_uri: str | None = None
    repo: str | None = None
    path: str | None = None
    created: datetime | None = None
    created_by: str | None = None
    size_bytes: int | None = Field(default=None, alias='size')
    mime_type: str | None = None
    checksums: Checksums

    @field_validator('created', mode='before')
    @classmethod
    def parse_created(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return parse_timestamp(value)
            except ValueError:
                return value
        return value


class BuildMessage(ArtifactoryModel):
    level: str
    message: str


class PromoteResult(ArtifactoryModel):
    messages: list[BuildMessage]


class BuildSummary(ArtifactoryModel):
    uri: str
    last_started: str | None = None


class BuildCollection(ArtifactoryModel):
    uri: str | None = None
    builds: list[BuildSummary]


class Repository(ArtifactoryModel):
    key: str
    type: str | None = None
    url: str | None = None
    package_type: str | None = None


class BuildType(str, Enum):
    GENERIC = 'GENERIC'
    MAVEN = 'MAVEN'
    GRADLE = 'GRADLE'
    ANT = 'ANT'
    IVY = 'IVY'


class BuildAgent(ArtifactoryModel):
    name: str
    version: str


class BuildArtifact(ArtifactoryModel):
    type: str
    sha1: str
    md5: str
    name: str


class BuildDependency(ArtifactoryModel):
    type: str
    sha1: str
    md5: str
    id: str
    scopes: list[str]


class BuildModule(ArtifactoryModel):
    id: str
    properties: dict[str, str] | None = None
    artifacts: list[BuildArtifact] | None = None
    dependencies: list[BuildDependency] | None = None


class BuildInfo(ArtifactoryModel):
    """Build information uploaded with ``PUT api/build``."""

    name: str
    number: str
    version: str | None = None
    type: BuildType = BuildType.GENERIC
    properties: dict[str, str] | None = None
    build_agent: BuildAgent | None = None
    agent: BuildAgent
    started: datetime | None = None
    artifactory_plugin_version: str
    artifactory_principal: str | None = None
    url: str | None = None
    vcs_revision: str | None = None
    vcs_url: str | None = None
    modules: list[BuildModule] | None = None

    @field_serializer('started')
    def serialize_started(self, started: datetime | None) -> str | None:
        if started is None:
            return None
        return format_timestamp(started)

    @field_validator('started', mode='before')
    @classmethod
    def parse_started(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    @computed_field(alias='durationMillis')  # type: ignore[prop-decorator]
    @property
    def duration_millis(self) -> float | None:
        if self.started is None:
            return None
        started = self.started
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return (datetime.now(timezone.utc) - started).total_seconds() * 1000


class PromoteRequest(ArtifactoryModel):
    """Body of ``POST api/build/promote/{name}/{number}``."""

    status: str
    comment: str | None = None
    ci_user: str | None = None
    timestamp: str | None = None
    dry_run: bool = False
    source_repo: str | None = None
    target_repo: str | None = None
    copy_artifacts: bool = Field(default=False, alias='copy')
    scopes: list[str] = Field(default_factory=list)
    properties: dict[str, list[str]] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dependencies(self) -> bool:
        return bool(self.scopes)

    def to_payload(self) -> dict:
        # Absent fields mean "no change" to Artifactory, so empties are dropped.
        payload = super().to_payload()
        return {
            key: value for key, value in payload.items() if value not in ('', [], {})
        }


class ArchiveMapping(ArtifactoryModel):
    input: str
    output: str | None = None


class ArchiveRequest(ArtifactoryModel):
    """Body of ``POST api/archive/buildArtifacts``."""

    build_name: str
    build_number: str
    build_status: str | None = None
    archive_type: str = 'zip'
    mappings: list[ArchiveMapping] | None = None

    @field_validator('build_status', mode='before')
    @classmethod
    def blank_status_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def is_latest(self) -> bool:
        return self.build_number.strip().upper() == LATEST_BUILD
