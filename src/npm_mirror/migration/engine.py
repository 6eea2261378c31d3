"""Migration engine - main entry point for migration operations."""

from typing import Optional, Sequence

from loguru import logger

from ..api.client import RegistryClientFactory
from ..config.config import Config
from ..models.package import PackageRef
from ..transport.base import ArtifactTransport
from ..transport.npm_cli import NpmCliTransport
from .orchestrator import MigrationCoordinator, MigrationSummary
from .pipeline import PublishOptions, PublishPipeline
from .walker import DependencyGraphWalker, DiscoveryOptions, ProgressCallback


class MigrationEngine:
    """Builds the migration components from configuration and runs them."""

    def __init__(
        self,
        config: Config,
        transport: Optional[ArtifactTransport] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            transport: Artifact transport (npm CLI if not provided)
            progress_callback: Receives (done, total, description) updates
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.client = RegistryClientFactory.create_client(config)
        self.transport = transport or NpmCliTransport(
            config.transport,
            tokens={
                config.source.url: config.source.token,
                config.destination.url: config.destination.token,
            },
        )

        self.walker = DependencyGraphWalker(self.client, progress_callback)
        self.pipeline = PublishPipeline(self.client, self.transport, progress_callback)
        self.coordinator = MigrationCoordinator(self.walker, self.pipeline)

    async def migrate(
        self, roots: Sequence[PackageRef], dry_run: Optional[bool] = None
    ) -> MigrationSummary:
        """Discover and publish the dependency closure of ``roots``.

        Args:
            roots: Root package refs
            dry_run: Stop after discovery; defaults to the configured value

        Raises:
            RegistryAuthenticationError: If login is required and fails
        """
        self.logger.info('Starting package migration')
        self.logger.info(f'Source registry: {self.config.source.url}')
        self.logger.info(f'Target registry: {self.config.destination.url}')

        if dry_run is None:
            dry_run = self.config.migration.dry_run

        try:
            await self._test_connectivity(dry_run)

            summary = await self.coordinator.run(
                list(roots),
                self._discovery_options(),
                self._publish_options(),
                dry_run=dry_run,
            )

            self.logger.info('Migration completed successfully')
            return summary

        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            self.close()

    async def dry_run(self, roots: Sequence[PackageRef]) -> MigrationSummary:
        """Discover the dependency closure without publishing anything."""
        return await self.migrate(roots, dry_run=True)

    def cancel(self) -> None:
        self.coordinator.cancel()

    def _discovery_options(self) -> DiscoveryOptions:
        migration = self.config.migration
        return DiscoveryOptions(
            source_registry=self.config.source.url,
            include_peer_deps=migration.include_peer_deps,
            include_optional_deps=migration.include_optional_deps,
            concurrency_limit=migration.concurrency,
        )

    def _publish_options(self) -> PublishOptions:
        migration = self.config.migration
        return PublishOptions(
            destination_registry=self.config.destination.url,
            source_registry=self.config.source.url,
            skip_existing=migration.skip_existing,
            concurrency_limit=migration.concurrency,
            max_retries=migration.max_retries,
            retry_delay=migration.retry_delay,
            batch_pause=migration.batch_pause,
        )

    async def _test_connectivity(self, dry_run: bool = False) -> None:
        """Check both registries and, when required, the destination login.

        Unreachable registries are only reported; per-package errors surface
        during the run.

        Raises:
            RegistryAuthenticationError: If login is required and fails
        """
        self.logger.info('Testing connectivity to registries')

        if not self.client.test_connection(self.config.source.url):
            self.logger.warning('Cannot reach source registry')

        if not dry_run:
            if not self.client.test_connection(self.config.destination.url):
                self.logger.warning('Cannot reach destination registry')

            if self.config.migration.require_login:
                username = self.client.whoami(self.config.destination.url)
                self.logger.info(f'Authenticated to destination as {username}')

    def close(self) -> None:
        """Release the registry client and the transport's staging area."""
        self.client.close()
        close = getattr(self.transport, 'close', None)
        if callable(close):
            close()
