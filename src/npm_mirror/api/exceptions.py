"""Registry and migration exceptions."""

from typing import Optional


class RegistryError(Exception):
    """Base exception for registry errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        """Initialize registry error.

        Args:
            message: Error message
            status_code: HTTP status code
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class PackageNotFoundError(RegistryError):
    """Package does not exist in the registry."""

    pass


class MetadataFetchError(RegistryError):
    """Network or parse failure while reading package metadata."""

    pass


class RegistryAuthenticationError(RegistryError):
    """Authentication with a registry failed."""

    pass


class VersionResolutionError(RegistryError):
    """No version satisfies the requested spec."""

    def __init__(self, package_name: str, version_spec: str, **kwargs):
        super().__init__(
            f'Could not resolve version {version_spec} for {package_name}', **kwargs
        )
        self.package_name = package_name
        self.version_spec = version_spec


class TransportError(RegistryError):
    """Artifact download or upload command failed."""

    def __init__(self, message: str, stderr: str = '', **kwargs):
        super().__init__(message, **kwargs)
        self.stderr = stderr


class PublishConflictError(RegistryError):
    """Destination registry already holds this exact version."""

    pass


class TransientPublishError(RegistryError):
    """Retryable download/upload failure."""

    pass


class RetriesExhaustedError(RegistryError):
    """Publishing failed after the maximum number of attempts."""

    def __init__(self, message: str, attempts: int, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ManifestError(Exception):
    """Root manifest could not be read or parsed."""

    pass
