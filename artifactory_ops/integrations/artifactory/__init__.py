"""Integration utilities for working with JFrog Artifactory."""

from .client import ArtifactoryClient, create_client, parse_content, parse_typed
from .suggestions import list_builds, list_repositories

__all__ = [
    'ArtifactoryClient',
    'create_client',
    'list_builds',
    'list_repositories',
    'parse_content',
    'parse_typed',
]
