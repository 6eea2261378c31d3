"""Data models for registry packages."""

from .package import (
    PackageRef,
    ResolvedPackage,
    RegistryMetadata,
    VersionInfo,
    PublishOutcome,
    PublishResult,
)

__all__ = [
    'PackageRef',
    'ResolvedPackage',
    'RegistryMetadata',
    'VersionInfo',
    'PublishOutcome',
    'PublishResult',
]
