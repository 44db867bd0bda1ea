import os
import tomllib
from pathlib import Path

from pydantic import SecretStr

from artifactory_ops.core.config.artifactory_config import (
    DEFAULT_CREDENTIAL_NAME,
    ArtifactoryConfig,
    ArtifactoryCredentials,
)
from artifactory_ops.core.exceptions import ConfigurationError
from artifactory_ops.core.logger import artifactory_logger as logger

DEFAULT_CONFIG_FILE = 'config.toml'


def load_from_toml(path: str | Path) -> ArtifactoryConfig:
    """Load the [artifactory] section of a toml file.

    A missing file or a file without the section yields the defaults.
    """
    config_path = Path(path)
    try:
        with config_path.open('rb') as toml_file:
            toml_config = tomllib.load(toml_file)
    except FileNotFoundError:
        logger.debug('Config file %s not found, using defaults', config_path)
        return ArtifactoryConfig()
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f'Cannot parse config file {config_path}: {e}')

    section = toml_config.get('artifactory')
    if section is None:
        return ArtifactoryConfig()
    if not isinstance(section, dict):
        raise ConfigurationError('[artifactory] must be a table')
    return ArtifactoryConfig.from_toml_section(section)['artifactory']


def load_from_env(config: ArtifactoryConfig, env: dict[str, str] | None = None) -> None:
    """Fill the default credential entry from ARTIFACTORY_* environment variables."""
    env = dict(os.environ) if env is None else env

    base_url = env.get('ARTIFACTORY_BASE_URL')
    user_name = env.get('ARTIFACTORY_USER_NAME')
    password = env.get('ARTIFACTORY_PASSWORD')
    if not (base_url or user_name or password):
        return

    current = config.credentials.get(DEFAULT_CREDENTIAL_NAME) or ArtifactoryCredentials()
    config.credentials[DEFAULT_CREDENTIAL_NAME] = ArtifactoryCredentials(
        base_url=base_url or current.base_url,
        user_name=user_name or current.user_name,
        password=SecretStr(password) if password else current.password,
    )


def load_artifactory_config(path: str | Path | None = None) -> ArtifactoryConfig:
    if path is None:
        path = os.environ.get('ARTIFACTORY_OPS_CONFIG', DEFAULT_CONFIG_FILE)
    config = load_from_toml(path)
    load_from_env(config)
    return config
