from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from artifactory_ops import __package_name__, __version__
from artifactory_ops.core.exceptions import ConfigurationError

ARTIFACTORY_API_TIMEOUT = 100.0
DEFAULT_CREDENTIAL_NAME = 'default'
DEFAULT_HOST_PRODUCT_NAME = 'BuildMaster'
DEFAULT_HOST_PRODUCT_VERSION = '0.0.0'


class ArtifactoryCredentials(BaseModel):
    """Connection details for a JFrog Artifactory server."""

    base_url: str | None = Field(
        default=None,
        description='Base URL for Artifactory, e.g. https://example.jfrog.io/example/',
    )
    user_name: str | None = Field(default=None, description='Artifactory user name')
    password: SecretStr | None = Field(
        default=None, description='Artifactory password or API key'
    )

    model_config = ConfigDict(extra='forbid')

    def is_configured(self) -> bool:
        """Return True when a base URL has been supplied."""

        return bool(self.base_url and self.base_url.strip())

    def normalized_base_url(self) -> str:
        """Return the base URL with exactly one trailing slash."""

        if not self.is_configured():
            raise ConfigurationError('Artifactory base URL is required')

        base_url = self.base_url.strip().rstrip('/') + '/'  # type: ignore[union-attr]
        try:
            parts = urlsplit(base_url)
        except ValueError as exc:
            raise ConfigurationError(
                f'Invalid Artifactory base URL {self.base_url!r}: {exc}'
            ) from exc
        if parts.scheme not in ('http', 'https') or not parts.netloc:
            raise ConfigurationError(
                f'Invalid Artifactory base URL {self.base_url!r}: '
                'expected an absolute http(s) URL'
            )
        return base_url

    def password_value(self) -> str | None:
        if not self.password:
            return None
        return self.password.get_secret_value()


class ArtifactoryConfig(BaseModel):
    """Configuration for the Artifactory operations.

    Attributes:
        credentials: Named credential entries that operations refer to by name
        host_product_name: Product token sent in the User-Agent header for the host
        host_product_version: Version of the host product
        timeout: Request timeout in seconds
        verify_ssl: Whether TLS certificates are verified
    """

    credentials: dict[str, ArtifactoryCredentials] = Field(
        default_factory=dict,
        description='Named Artifactory credentials',
    )
    host_product_name: str = Field(
        default=DEFAULT_HOST_PRODUCT_NAME,
        description='Host product name reported in the User-Agent header',
    )
    host_product_version: str = Field(
        default=DEFAULT_HOST_PRODUCT_VERSION,
        description='Host product version reported in the User-Agent header',
    )
    timeout: float = Field(
        default=ARTIFACTORY_API_TIMEOUT, description='Request timeout in seconds'
    )
    verify_ssl: bool = Field(
        default=True, description='Verify TLS certificates of the Artifactory server'
    )

    model_config = ConfigDict(extra='forbid')

    def user_agent(self) -> str:
        """Return the User-Agent header value with the host and module tokens."""

        return (
            f'{self.host_product_name}/{self.host_product_version} '
            f'{__package_name__}/{__version__}'
        )

    def get_credentials(self, name: str | None) -> ArtifactoryCredentials | None:
        if not name:
            return None
        return self.credentials.get(name)

    @classmethod
    def from_toml_section(cls, data: dict) -> dict[str, 'ArtifactoryConfig']:
        """Create a mapping of ArtifactoryConfig instances from the [artifactory] toml section.

        Returns:
            dict[str, ArtifactoryConfig]: A mapping where the key "artifactory" corresponds to the [artifactory] configuration
        """
        artifactory_mapping: dict[str, ArtifactoryConfig] = {}

        try:
            artifactory_mapping['artifactory'] = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f'Invalid artifactory configuration: {e}')

        return artifactory_mapping


def _coalesce(*values: str | None) -> str | None:
    for value in values:
        if value is not None and value.strip():
            return value
    return None


def resolve_credentials(
    config: ArtifactoryConfig,
    credential_name: str | None = None,
    base_url: str | None = None,
    user_name: str | None = None,
    password: str | SecretStr | None = None,
) -> ArtifactoryCredentials:
    """Combine inline values with a named credential entry.

    Inline values win when they are not blank.
    """
    stored = config.get_credentials(credential_name)
    if credential_name and stored is None:
        raise ConfigurationError(f'Unknown Artifactory credentials {credential_name!r}')
    stored = stored or ArtifactoryCredentials()

    inline_password = (
        password.get_secret_value() if isinstance(password, SecretStr) else password
    )
    resolved_password = _coalesce(inline_password, stored.password_value())

    return ArtifactoryCredentials(
        base_url=_coalesce(base_url, stored.base_url),
        user_name=_coalesce(user_name, stored.user_name),
        password=SecretStr(resolved_password) if resolved_password else None,
    )
