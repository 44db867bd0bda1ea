from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from artifactory_ops.integrations.artifactory.models import ArtifactoryErrorEntry


class ArtifactoryAPIError(RuntimeError):
    """Raised when calls to the Artifactory API fail."""

    fatal: bool = False


class ConfigurationError(ArtifactoryAPIError):
    """Raised for a malformed base URL or a missing or unusable argument."""

    fatal = True


class ServerError(ArtifactoryAPIError):
    """Artifactory answered with an ``{"errors": [...]}`` envelope."""

    def __init__(self, errors: Sequence[ArtifactoryErrorEntry]) -> None:
        self.errors = list(errors)
        super().__init__('; '.join(str(error) for error in self.errors))


class HttpError(ArtifactoryAPIError):
    """Non-success status without a decodable error envelope."""

    def __init__(self, status_code: int, reason_phrase: str) -> None:
        self.status_code = status_code
        self.reason_phrase = reason_phrase
        super().__init__(f'{status_code} {reason_phrase}')


class DecodeError(ArtifactoryAPIError):
    """The response succeeded but its body does not match the expected schema."""

    fatal = True
