"""Read-only queries used to populate autocomplete suggestions.

A failing query never aborts the caller; it logs a warning and returns an
empty list.
"""

from __future__ import annotations

import httpx

from artifactory_ops.core.config.artifactory_config import (
    ArtifactoryConfig,
    ArtifactoryCredentials,
)
from artifactory_ops.core.exceptions import ArtifactoryAPIError
from artifactory_ops.core.logger import artifactory_logger as logger
from artifactory_ops.integrations.artifactory.client import ArtifactoryClient


async def list_builds(
    credentials: ArtifactoryCredentials,
    config: ArtifactoryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[str]:
    try:
        async with ArtifactoryClient(
            credentials, config or ArtifactoryConfig(), transport
        ) as client:
            return await client.list_builds()
    except ArtifactoryAPIError as e:
        logger.warning('Unable to list Artifactory builds: %s', e)
        return []


async def list_repositories(
    credentials: ArtifactoryCredentials,
    config: ArtifactoryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[str]:
    try:
        async with ArtifactoryClient(
            credentials, config or ArtifactoryConfig(), transport
        ) as client:
            return await client.list_repositories()
    except ArtifactoryAPIError as e:
        logger.warning('Unable to list Artifactory repositories: %s', e)
        return []
