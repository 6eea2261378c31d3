"""Migration coordinator sequencing discovery and publishing."""

import asyncio
from datetime import datetime
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from ..models.package import PackageRef, PublishResult
from .pipeline import PublishOptions, PublishPipeline
from .walker import DependencyGraphWalker, DiscoveryOptions


class MigrationSummary(BaseModel):
    """Summary of migration results."""

    total_discovered: int = Field(default=0, description='Packages discovered')
    published: int = Field(default=0, description='Packages published')
    skipped: int = Field(default=0, description='Packages skipped')
    failed: int = Field(default=0, description='Packages failed')

    # Timing
    started_at: datetime = Field(..., description='Migration start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Migration completion time'
    )

    no_dependencies: bool = Field(
        default=False, description='Root set was empty; nothing to do'
    )
    cancelled: bool = Field(default=False, description='Run was cancelled')
    dry_run: bool = Field(default=False, description='Publish phase was skipped')

    discovered: List[str] = Field(
        default_factory=list, description='Discovered package keys'
    )
    results: List[PublishResult] = Field(
        default_factory=list, description='Per-package publish results'
    )

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


class MigrationCoordinator:
    """Runs discovery to completion, then the publish phase."""

    def __init__(
        self,
        walker: DependencyGraphWalker,
        pipeline: PublishPipeline,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize migration coordinator.

        Args:
            walker: Dependency discovery component
            pipeline: Publish component
            cancel_event: Shared cancellation signal (created if omitted)
        """
        self.walker = walker
        self.pipeline = pipeline
        self.cancel_event = cancel_event or asyncio.Event()
        self.walker.cancel_event = self.cancel_event
        self.pipeline.cancel_event = self.cancel_event
        self.logger = logger.bind(component='MigrationCoordinator')

    def cancel(self) -> None:
        """Stop starting new waves and batches; in-flight work finishes."""
        self.logger.warning('Cancellation requested')
        self.cancel_event.set()

    async def run(
        self,
        roots: Sequence[PackageRef],
        discovery_options: Optional[DiscoveryOptions] = None,
        publish_options: Optional[PublishOptions] = None,
        dry_run: bool = False,
    ) -> MigrationSummary:
        """Discover the dependency closure of ``roots`` and publish it.

        Args:
            roots: Root package refs
            discovery_options: Discovery settings
            publish_options: Publish settings
            dry_run: Stop after discovery

        Returns:
            Migration summary
        """
        started_at = datetime.now()

        if not roots:
            self.logger.info('No dependencies found to migrate.')
            return MigrationSummary(
                started_at=started_at,
                completed_at=datetime.now(),
                no_dependencies=True,
                dry_run=dry_run,
            )

        self.logger.info(f'Found {len(roots)} direct dependencies to process')

        discovered = await self.walker.discover(roots, discovery_options)
        discovered_keys = sorted(pkg.key for pkg in discovered)

        self.logger.info(
            f'Discovered {len(discovered)} total packages '
            '(including transitive dependencies)'
        )

        if dry_run or self.cancel_event.is_set():
            return MigrationSummary(
                total_discovered=len(discovered),
                started_at=started_at,
                completed_at=datetime.now(),
                cancelled=self.cancel_event.is_set(),
                dry_run=dry_run,
                discovered=discovered_keys,
            )

        publish = await self.pipeline.publish_all(discovered, publish_options)

        summary = MigrationSummary(
            total_discovered=len(discovered),
            published=publish.published,
            skipped=publish.skipped,
            failed=publish.failed,
            started_at=started_at,
            completed_at=datetime.now(),
            cancelled=publish.cancelled,
            discovered=discovered_keys,
            results=publish.results,
        )

        self.logger.info(
            f'Migration completed: {summary.total_discovered} discovered, '
            f'{summary.published} published, {summary.skipped} skipped, '
            f'{summary.failed} failed'
        )
        return summary
