"""Dependency discovery and publish orchestration."""

from .walker import DependencyGraphWalker, DiscoveryOptions, TraversalState
from .pipeline import (
    PublishPipeline,
    PublishOptions,
    PublishSummary,
    select_dist_tag,
    is_conflict_error,
)
from .orchestrator import MigrationCoordinator, MigrationSummary
from .engine import MigrationEngine

__all__ = [
    'DependencyGraphWalker',
    'DiscoveryOptions',
    'TraversalState',
    'PublishPipeline',
    'PublishOptions',
    'PublishSummary',
    'select_dist_tag',
    'is_conflict_error',
    'MigrationCoordinator',
    'MigrationSummary',
    'MigrationEngine',
]
