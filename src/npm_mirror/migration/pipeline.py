"""Batched, retrying publish of discovered packages."""

import asyncio
import re
from typing import Iterable, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, Field, validator

from ..api.client import RegistryClient
from ..api.exceptions import (
    PublishConflictError,
    RegistryError,
    RetriesExhaustedError,
    TransientPublishError,
)
from ..config.config import DEFAULT_DESTINATION_REGISTRY, DEFAULT_SOURCE_REGISTRY
from ..models.package import PublishOutcome, PublishResult, ResolvedPackage
from ..transport.base import ArtifactTransport
from ..versioning.resolver import is_version_range, resolve_or_raise
from .walker import ProgressCallback

MAX_BATCH_SIZE = 5

CONFLICT_PATTERN = re.compile(
    r'epublishconflict'
    r'|\be403\b'
    r'|\b403 forbidden\b'
    r'|\b409 conflict\b'
    r'|already exists'
    r'|already present'
    r'|over the previously published version'
    r'|cannot publish over'
)


def select_dist_tag(version: str) -> str:
    """Pick the dist-tag a version is published under.

    Pre-releases use their first identifier (``1.0.0-beta.1`` -> ``beta``);
    everything else goes to ``latest``.
    """
    if '-' not in version:
        return 'latest'
    prerelease = version.split('-', 1)[1].split('.', 1)[0]
    return prerelease or 'prerelease'


def is_conflict_error(error: BaseException) -> bool:
    """Whether an upload error means the destination already has the version."""
    if isinstance(error, PublishConflictError):
        return True
    if getattr(error, 'status_code', None) in (403, 409):
        return True

    # npm's own output when there is one; the message embeds the package key
    text = getattr(error, 'stderr', '') or str(error)
    return CONFLICT_PATTERN.search(text.lower()) is not None


class PublishOptions(BaseModel):
    """Settings for one publish run."""

    destination_registry: str = Field(
        default=DEFAULT_DESTINATION_REGISTRY, description='Registry to publish to'
    )
    source_registry: str = Field(
        default=DEFAULT_SOURCE_REGISTRY, description='Registry to download from'
    )
    skip_existing: bool = Field(
        default=True, description='Skip versions already on the destination'
    )
    concurrency_limit: int = Field(default=5, description='Concurrency limit')
    max_retries: int = Field(default=3, description='Attempts per package')
    retry_delay: float = Field(default=1.0, description='Backoff unit (seconds)')
    batch_pause: float = Field(default=1.0, description='Pause between batches')

    @validator('concurrency_limit', 'max_retries')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('Value must be positive')
        return v

    @property
    def batch_size(self) -> int:
        return min(MAX_BATCH_SIZE, self.concurrency_limit)


class PublishSummary(BaseModel):
    """Aggregate result of a publish run."""

    published: int = Field(default=0, description='Packages published')
    skipped: int = Field(default=0, description='Packages skipped')
    failed: int = Field(default=0, description='Packages failed')
    cancelled: bool = Field(default=False, description='Run was cancelled')
    results: List[PublishResult] = Field(
        default_factory=list, description='Per-package results'
    )

    @property
    def total(self) -> int:
        return self.published + self.skipped + self.failed


class PublishCounters:
    """Outcome counters and publish-key claims shared by a batch's tasks."""

    def __init__(self):
        self.published = 0
        self.skipped = 0
        self.failed = 0
        self._claimed: Set[str] = set()
        self._lock = asyncio.Lock()

    async def record(self, outcome: PublishOutcome) -> None:
        async with self._lock:
            if outcome == PublishOutcome.PUBLISHED:
                self.published += 1
            elif outcome == PublishOutcome.SKIPPED:
                self.skipped += 1
            else:
                self.failed += 1

    async def claim(self, key: str) -> bool:
        """Reserve a ``name@version`` for this run; False if already taken."""
        async with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True


class PublishPipeline:
    """Publishes packages to the destination registry in small batches."""

    def __init__(
        self,
        client: RegistryClient,
        transport: ArtifactTransport,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize publish pipeline.

        Args:
            client: Registry metadata client
            transport: Moves tarballs between registries
            progress_callback: Called with (done, total, description) after
                every batch
            cancel_event: When set, no further batches are started
        """
        self.client = client
        self.transport = transport
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self.logger = logger.bind(component='PublishPipeline')

    async def publish_all(
        self,
        packages: Iterable[ResolvedPackage],
        options: Optional[PublishOptions] = None,
    ) -> PublishSummary:
        """Publish every package, batch by batch.

        Args:
            packages: Packages to publish
            options: Publish settings

        Returns:
            Counts and per-package results
        """
        options = options or PublishOptions()
        counters = PublishCounters()

        ordered = sorted(set(packages), key=lambda p: p.key)
        batch_size = options.batch_size
        batches = [
            ordered[i : i + batch_size] for i in range(0, len(ordered), batch_size)
        ]

        self.logger.info(
            f'Publishing {len(ordered)} packages to {options.destination_registry} '
            f'in {len(batches)} batches'
        )

        results: List[PublishResult] = []
        cancelled = False
        done = 0

        for index, batch in enumerate(batches):
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.logger.warning(
                    f'Publishing cancelled with {len(ordered) - done} packages left'
                )
                cancelled = True
                break

            if index > 0 and options.batch_pause > 0:
                await asyncio.sleep(options.batch_pause)

            batch_results = await asyncio.gather(
                *[self.publish_package(pkg, options, counters) for pkg in batch],
                return_exceptions=True,
            )

            for package, result in zip(batch, batch_results):
                if isinstance(result, Exception):
                    self.logger.error(f'Failed to publish {package.key}: {result}')
                    await counters.record(PublishOutcome.FAILED)
                    result = PublishResult(
                        package=package.key,
                        outcome=PublishOutcome.FAILED,
                        error_message=str(result),
                    )
                results.append(result)

            done += len(batch)
            self.logger.info(f'Publishing progress: {done}/{len(ordered)}')
            if self.progress_callback:
                self.progress_callback(done, len(ordered), 'Publishing packages')

        return PublishSummary(
            published=counters.published,
            skipped=counters.skipped,
            failed=counters.failed,
            cancelled=cancelled,
            results=results,
        )

    async def publish_package(
        self,
        package: ResolvedPackage,
        options: PublishOptions,
        counters: Optional[PublishCounters] = None,
    ) -> PublishResult:
        """Publish one package and count its outcome exactly once."""
        counters = counters or PublishCounters()

        try:
            result = await self._publish(package, options, counters)
        except Exception as e:
            self.logger.error(f'Unexpected error publishing {package.key}: {e}')
            result = PublishResult(
                package=package.key,
                outcome=PublishOutcome.FAILED,
                error_message=str(e),
            )

        await counters.record(result.outcome)
        return result

    async def _publish(
        self,
        package: ResolvedPackage,
        options: PublishOptions,
        counters: PublishCounters,
    ) -> PublishResult:
        if is_version_range(package.version):
            self.logger.debug(
                f'Resolving version range {package.version} for {package.name}'
            )
            try:
                metadata = await self.client.fetch_metadata(
                    package.name, options.source_registry
                )
                version = resolve_or_raise(metadata, package.name, package.version)
            except RegistryError as e:
                self.logger.error(f'Failed to resolve version for {package.key}: {e}')
                return PublishResult(
                    package=package.key,
                    outcome=PublishOutcome.FAILED,
                    error_message=str(e),
                )
            package = ResolvedPackage(package.name, version)

        if not await counters.claim(package.key):
            self.logger.debug(f'{package.key} already handled in this run')
            return PublishResult(
                package=package.key,
                outcome=PublishOutcome.SKIPPED,
                reason='duplicate',
            )

        if options.skip_existing:
            try:
                exists = await self.client.package_version_exists(
                    package.name, package.version, options.destination_registry
                )
            except Exception as e:
                self.logger.debug(f'Error checking if {package.key} exists: {e}')
                exists = False

            if exists:
                self.logger.info(
                    f'Package {package.key} already exists in registry, skipping.'
                )
                return PublishResult(
                    package=package.key,
                    outcome=PublishOutcome.SKIPPED,
                    reason='already exists',
                )

        tag = select_dist_tag(package.version)
        return await self._publish_with_retries(package, tag, options)

    async def _publish_with_retries(
        self, package: ResolvedPackage, tag: str, options: PublishOptions
    ) -> PublishResult:
        access = 'public' if package.is_scoped else None
        last_error: Optional[TransientPublishError] = None

        for attempt in range(1, options.max_retries + 1):
            try:
                await self._attempt(package, tag, access, options)
            except PublishConflictError:
                self.logger.info(f'Package {package.key} already exists in registry.')
                return PublishResult(
                    package=package.key,
                    outcome=PublishOutcome.SKIPPED,
                    attempts=attempt,
                    tag=tag,
                    reason='conflict',
                )
            except TransientPublishError as e:
                last_error = e
                if attempt < options.max_retries:
                    delay = attempt * options.retry_delay
                    self.logger.warning(
                        f'Publishing {package.key} failed (attempt {attempt}/'
                        f'{options.max_retries}), retrying in {delay:.1f}s: {e}'
                    )
                    await asyncio.sleep(delay)
                continue

            self.logger.info(f'Published {package.key} with tag {tag}')
            return PublishResult(
                package=package.key,
                outcome=PublishOutcome.PUBLISHED,
                attempts=attempt,
                tag=tag,
            )

        error = RetriesExhaustedError(
            f'Failed to publish {package.key} after {options.max_retries} '
            f'attempts: {last_error}',
            attempts=options.max_retries,
            cause=last_error,
        )
        self.logger.error(str(error))
        return PublishResult(
            package=package.key,
            outcome=PublishOutcome.FAILED,
            attempts=options.max_retries,
            tag=tag,
            error_message=str(error),
        )

    async def _attempt(
        self,
        package: ResolvedPackage,
        tag: str,
        access: Optional[str],
        options: PublishOptions,
    ) -> None:
        """Download then upload once; the staged tarball never outlives this call."""
        try:
            artifact = await self.transport.fetch(package, options.source_registry)
        except Exception as e:
            raise TransientPublishError(f'Download of {package.key} failed: {e}', cause=e)

        try:
            await self.transport.push(
                artifact, options.destination_registry, tag=tag, access=access
            )
        except Exception as e:
            if is_conflict_error(e):
                raise PublishConflictError(
                    f'{package.key} already exists on destination', cause=e
                )
            raise TransientPublishError(f'Upload of {package.key} failed: {e}', cause=e)
        finally:
            artifact.cleanup()
