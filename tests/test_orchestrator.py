"""Tests for the migration coordinator and engine."""

from unittest.mock import patch

import pytest

from npm_mirror.api.exceptions import RegistryAuthenticationError, TransportError
from npm_mirror.config.config import Config, MigrationConfig, RegistryConfig
from npm_mirror.migration.engine import MigrationEngine
from npm_mirror.migration.orchestrator import MigrationCoordinator, MigrationSummary
from npm_mirror.migration.pipeline import PublishOptions, PublishPipeline
from npm_mirror.migration.walker import DependencyGraphWalker, DiscoveryOptions
from npm_mirror.models.package import PackageRef, PublishOutcome

from fakes import DESTINATION, SOURCE, FakeRegistryClient, FakeTransport, registry_doc


def _registry():
    return FakeRegistryClient(
        packages={
            'app': registry_doc({'1.0.0': {'left-pad': '^1.0.0', '@acme/ui': '~2.1.0'}}),
            'left-pad': registry_doc({'1.0.0': None, '1.3.0': None}),
            '@acme/ui': registry_doc(
                {'2.1.0': {'left-pad': '1.3.0'}, '2.1.4-beta.0': None}, latest='2.1.0'
            ),
        }
    )


class TestMigrationCoordinator:
    """Test discovery followed by publishing."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = _registry()
        self.transport = FakeTransport()
        self.coordinator = MigrationCoordinator(
            DependencyGraphWalker(self.client),
            PublishPipeline(self.client, self.transport),
        )
        self.discovery_options = DiscoveryOptions(source_registry=SOURCE)
        self.publish_options = PublishOptions(
            source_registry=SOURCE, destination_registry=DESTINATION, batch_pause=0
        )

    @pytest.mark.asyncio
    async def test_empty_roots_make_no_calls(self):
        summary = await self.coordinator.run(
            [], self.discovery_options, self.publish_options
        )

        assert summary.no_dependencies
        assert summary.total_discovered == 0
        assert self.client.network_calls == 0
        assert self.transport.fetched == []

    @pytest.mark.asyncio
    async def test_full_run(self):
        self.client.destination = {'left-pad': {'1.3.0'}}

        summary = await self.coordinator.run(
            [PackageRef('app', '1.0.0')], self.discovery_options, self.publish_options
        )

        assert summary.discovered == ['@acme/ui@2.1.4-beta.0', 'app@1.0.0', 'left-pad@1.3.0']
        assert summary.total_discovered == 3
        assert summary.published == 2
        assert summary.skipped == 1
        assert summary.failed == 0
        assert summary.completed_at >= summary.started_at

        pushed = {entry['package']: entry for entry in self.transport.pushed}
        assert pushed['@acme/ui@2.1.4-beta.0']['tag'] == 'beta'
        assert pushed['@acme/ui@2.1.4-beta.0']['access'] == 'public'
        assert pushed['app@1.0.0']['tag'] == 'latest'

    @pytest.mark.asyncio
    async def test_failures_are_reported_not_raised(self):
        self.transport.push_errors = {
            'app@1.0.0': [TransportError('ECONNRESET') for _ in range(3)]
        }
        options = self.publish_options.copy(update={'retry_delay': 0})

        summary = await self.coordinator.run(
            [PackageRef('app', '1.0.0')], self.discovery_options, options
        )

        assert summary.failed == 1
        assert summary.published == 2
        failed = [r for r in summary.results if r.outcome == PublishOutcome.FAILED]
        assert failed[0].package == 'app@1.0.0'

    @pytest.mark.asyncio
    async def test_dry_run_stops_after_discovery(self):
        summary = await self.coordinator.run(
            [PackageRef('app', '1.0.0')],
            self.discovery_options,
            self.publish_options,
            dry_run=True,
        )

        assert summary.dry_run
        assert summary.total_discovered == 3
        assert summary.results == []
        assert self.client.exists_calls == []
        assert self.transport.fetched == []

    @pytest.mark.asyncio
    async def test_cancel_skips_publishing(self):
        self.coordinator.cancel()

        summary = await self.coordinator.run(
            [PackageRef('app', '1.0.0')], self.discovery_options, self.publish_options
        )

        assert summary.cancelled
        assert summary.total_discovered == 0
        assert self.transport.fetched == []

    def test_shared_cancel_event(self):
        assert self.coordinator.walker.cancel_event is self.coordinator.cancel_event
        assert self.coordinator.pipeline.cancel_event is self.coordinator.cancel_event

    def test_summary_serializes(self):
        summary = MigrationSummary(started_at='2024-01-01T00:00:00')

        assert '2024-01-01T00:00:00' in summary.json()


class TestMigrationEngine:
    """Test the configured engine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = _registry()
        self.transport = FakeTransport()
        self.config = Config(
            source=RegistryConfig(url=SOURCE),
            destination=RegistryConfig(url=DESTINATION, token='secret'),
            migration=MigrationConfig(retry_delay=0, batch_pause=0),
        )

    def _engine(self):
        with patch(
            'npm_mirror.migration.engine.RegistryClientFactory.create_client',
            return_value=self.client,
        ):
            return MigrationEngine(self.config, transport=self.transport)

    def test_options_follow_config(self):
        self.config.migration.concurrency = 2
        self.config.migration.include_peer_deps = False
        engine = self._engine()

        discovery = engine._discovery_options()
        publish = engine._publish_options()

        assert discovery.source_registry == SOURCE
        assert discovery.concurrency_limit == 2
        assert not discovery.include_peer_deps
        assert publish.destination_registry == DESTINATION
        assert publish.batch_size == 2

    @pytest.mark.asyncio
    async def test_migrate(self):
        summary = await self._engine().migrate([PackageRef('app', '1.0.0')])

        assert summary.published == 3
        assert self.client.closed

    @pytest.mark.asyncio
    async def test_unreachable_registry_is_not_fatal(self):
        self.client.unreachable = {SOURCE, DESTINATION}

        summary = await self._engine().migrate([PackageRef('app', '1.0.0')])

        assert summary.total_discovered == 3

    @pytest.mark.asyncio
    async def test_required_login_failure_is_fatal(self):
        self.config.migration.require_login = True
        self.client.username = None

        with pytest.raises(RegistryAuthenticationError):
            await self._engine().migrate([PackageRef('app', '1.0.0')])

        assert self.client.fetch_calls == []
        assert self.client.closed

    @pytest.mark.asyncio
    async def test_dry_run(self):
        summary = await self._engine().dry_run([PackageRef('app', '1.0.0')])

        assert summary.dry_run
        assert summary.total_discovered == 3
        assert self.transport.pushed == []
        assert self.config.migration.dry_run is False
