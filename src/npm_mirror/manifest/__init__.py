"""Manifest readers producing root package refs."""

from .reader import collect_dependencies, collect_lockfile_dependencies, load_manifest

__all__ = ['collect_dependencies', 'collect_lockfile_dependencies', 'load_manifest']
