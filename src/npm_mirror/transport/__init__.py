"""Artifact transports for moving tarballs between registries."""

from .base import Artifact, ArtifactTransport
from .npm_cli import NpmCliTransport

__all__ = ['Artifact', 'ArtifactTransport', 'NpmCliTransport']
