"""Artifact transport interface."""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..models.package import ResolvedPackage


@dataclass
class Artifact:
    """A package tarball staged locally between download and upload."""

    package: ResolvedPackage
    path: Optional[str] = None
    size: int = 0

    def cleanup(self) -> None:
        """Remove the staged tarball if it is still on disk."""
        if self.path and os.path.exists(self.path):
            try:
                os.remove(self.path)
            except OSError as e:
                logger.warning(f'Could not remove staged tarball {self.path}: {e}')


class ArtifactTransport(ABC):
    """Moves package tarballs between registries."""

    @abstractmethod
    async def fetch(self, package: ResolvedPackage, registry_url: str) -> Artifact:
        """Download the tarball for ``package`` from a registry.

        Raises:
            TransportError: If the download fails
        """
        pass

    @abstractmethod
    async def push(
        self,
        artifact: Artifact,
        registry_url: str,
        tag: str = 'latest',
        access: Optional[str] = None,
    ) -> None:
        """Upload a staged tarball to a registry under a dist-tag.

        Raises:
            TransportError: If the upload fails
        """
        pass
