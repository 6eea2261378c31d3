"""Package entity models."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class PackageRef:
    """Unresolved (name, version range) pair awaiting resolution."""

    name: str
    version_spec: str = 'latest'

    @property
    def key(self) -> str:
        """Traversal identity: the literal ``name@version_spec``."""
        return f'{self.name}@{self.version_spec}'

    @classmethod
    def parse(cls, package_spec: str) -> 'PackageRef':
        """Parse ``name``, ``name@spec``, ``@scope/name`` or ``@scope/name@spec``.

        Args:
            package_spec: Package spec string

        Returns:
            Parsed package reference (``latest`` when no spec is given)
        """
        package_spec = package_spec.strip()
        if not package_spec:
            raise ValueError('Empty package spec')

        # The scope's leading '@' is part of the name
        at_pos = package_spec.find('@', 1)
        if at_pos == -1:
            return cls(name=package_spec)

        name = package_spec[:at_pos]
        version_spec = package_spec[at_pos + 1 :].strip()
        return cls(name=name, version_spec=version_spec or 'latest')

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ResolvedPackage:
    """Package with an exact, registry-confirmed version."""

    name: str
    version: str

    @property
    def key(self) -> str:
        """Publish identity: ``name@version``."""
        return f'{self.name}@{self.version}'

    @property
    def is_scoped(self) -> bool:
        return self.name.startswith('@')

    def __str__(self) -> str:
        return self.key


class VersionInfo(BaseModel):
    """Dependency lists of one published version."""

    dependencies: Dict[str, str] = Field(default_factory=dict)
    peer_dependencies: Dict[str, str] = Field(default_factory=dict)
    optional_dependencies: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_registry(cls, data: Any) -> 'VersionInfo':
        """Build from a registry version document."""
        if not isinstance(data, dict):
            return cls()

        return cls(
            dependencies=_string_map(data.get('dependencies')),
            peer_dependencies=_string_map(data.get('peerDependencies')),
            optional_dependencies=_string_map(data.get('optionalDependencies')),
        )


class RegistryMetadata(BaseModel):
    """Registry document for one package."""

    name: Optional[str] = Field(default=None, description='Package name')
    versions: Dict[str, VersionInfo] = Field(
        default_factory=dict, description='Published versions'
    )
    dist_tags: Dict[str, str] = Field(
        default_factory=dict, description='Dist-tag to version mapping'
    )

    @classmethod
    def from_registry(cls, data: Dict[str, Any]) -> 'RegistryMetadata':
        """Build from the JSON body of ``GET {registry}/{name}``.

        Args:
            data: Decoded registry response

        Returns:
            Parsed metadata
        """
        versions = data.get('versions') or {}
        if not isinstance(versions, dict):
            raise ValueError('versions must be an object')

        return cls(
            name=data.get('name'),
            versions={
                str(version): VersionInfo.from_registry(info)
                for version, info in versions.items()
            },
            dist_tags=_string_map(data.get('dist-tags')),
        )

    def has_version(self, version: str) -> bool:
        return version in self.versions


class PublishOutcome(str, Enum):
    """Terminal classification of a package after the publish phase."""

    PUBLISHED = 'published'
    SKIPPED = 'skipped'
    FAILED = 'failed'


class PublishResult(BaseModel):
    """Publish outcome for a single package."""

    package: str = Field(..., description='Package key (name@version)')
    outcome: PublishOutcome = Field(..., description='Publish outcome')
    attempts: int = Field(default=0, description='Upload attempts made')
    tag: Optional[str] = Field(default=None, description='Dist-tag used')
    reason: Optional[str] = Field(default=None, description='Skip reason')
    error_message: Optional[str] = Field(
        default=None, description='Error message if failed'
    )


def _string_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}
