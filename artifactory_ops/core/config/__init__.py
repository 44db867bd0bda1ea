from artifactory_ops.core.config.artifactory_config import (
    ArtifactoryConfig,
    ArtifactoryCredentials,
    resolve_credentials,
)
from artifactory_ops.core.config.utils import load_artifactory_config

__all__ = [
    'ArtifactoryConfig',
    'ArtifactoryCredentials',
    'load_artifactory_config',
    'resolve_credentials',
]
