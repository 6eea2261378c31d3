"""Breadth-first discovery of the transitive dependency set."""

import asyncio
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, Field, validator

from ..api.client import RegistryClient
from ..api.exceptions import PackageNotFoundError, RegistryError
from ..config.config import DEFAULT_SOURCE_REGISTRY
from ..models.package import PackageRef, ResolvedPackage, VersionInfo
from ..versioning.resolver import resolve_version

ProgressCallback = Callable[[int, int, str], None]


class DiscoveryOptions(BaseModel):
    """Settings for one discovery run."""

    source_registry: str = Field(
        default=DEFAULT_SOURCE_REGISTRY, description='Registry to read metadata from'
    )
    include_peer_deps: bool = Field(default=True, description='Follow peer deps')
    include_optional_deps: bool = Field(
        default=True, description='Follow optional deps'
    )
    concurrency_limit: int = Field(default=5, description='Packages per wave')

    @validator('concurrency_limit')
    def validate_concurrency(cls, v):
        if v <= 0:
            raise ValueError('Concurrency limit must be positive')
        return v


class TraversalState:
    """Seen/processed bookkeeping shared by the tasks of a discovery run.

    ``all_packages`` holds every ``name@version_spec`` ever enqueued and
    ``processed_packages`` those taken off the queue. Both only grow.
    """

    def __init__(self):
        self.all_packages: Set[str] = set()
        self.processed_packages: Set[str] = set()
        self.resolved: Dict[str, ResolvedPackage] = {}
        self.failed: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def add_if_new(self, key: str) -> bool:
        """Insert ``key`` into ``all_packages``; False if it was already there."""
        async with self._lock:
            if key in self.all_packages:
                return False
            self.all_packages.add(key)
            return True

    async def mark_processed(self, key: str) -> bool:
        """Claim ``key`` for processing; False if another task already did."""
        async with self._lock:
            if key in self.processed_packages:
                return False
            self.processed_packages.add(key)
            return True

    async def record_resolution(self, key: str, package: ResolvedPackage) -> None:
        async with self._lock:
            self.resolved[key] = package

    async def record_failure(self, key: str, reason: str) -> None:
        async with self._lock:
            self.failed[key] = reason

    @property
    def is_complete(self) -> bool:
        return self.processed_packages == self.all_packages


class DependencyGraphWalker:
    """Discovers every package reachable from a set of root refs."""

    def __init__(
        self,
        client: RegistryClient,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize dependency walker.

        Args:
            client: Registry metadata client
            progress_callback: Called with (processed, total, description)
                after every wave
            cancel_event: When set, no further waves are started
        """
        self.client = client
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self.state = TraversalState()
        self.logger = logger.bind(component='DependencyGraphWalker')

    async def discover(
        self, roots: Iterable[PackageRef], options: Optional[DiscoveryOptions] = None
    ) -> Set[ResolvedPackage]:
        """Walk the dependency graph in bounded-concurrency waves.

        Args:
            roots: Root package refs
            options: Discovery settings

        Returns:
            Resolved packages for every ref whose version could be resolved
        """
        options = options or DiscoveryOptions()
        self.state = TraversalState()
        queue: Deque[PackageRef] = deque()

        for ref in roots:
            if await self.state.add_if_new(ref.key):
                queue.append(ref)

        self.logger.info(f'Discovering dependencies of {len(queue)} root packages')

        wave = 0
        while queue:
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.logger.warning(
                    f'Discovery cancelled with {len(queue)} packages still queued'
                )
                break

            wave_refs = [
                queue.popleft() for _ in range(min(options.concurrency_limit, len(queue)))
            ]
            wave += 1

            results = await asyncio.gather(
                *[self._process_package(ref, queue, options) for ref in wave_refs],
                return_exceptions=True,
            )

            for ref, result in zip(wave_refs, results):
                if isinstance(result, Exception):
                    self.logger.error(f'Error processing {ref.key}: {result}')
                    await self.state.record_failure(ref.key, str(result))

            total = len(self.state.all_packages)
            processed = total - len(queue)
            self.logger.info(
                f'Progress: {processed}/{total} packages processed (wave {wave})'
            )
            if self.progress_callback:
                self.progress_callback(processed, total, 'Discovering dependencies')

        resolved = set(self.state.resolved.values())
        self.logger.info(
            f'Discovered {len(self.state.all_packages)} package specs '
            f'({len(resolved)} resolved, {len(self.state.failed)} unresolved)'
        )
        return resolved

    async def _process_package(
        self, ref: PackageRef, queue: Deque[PackageRef], options: DiscoveryOptions
    ) -> None:
        """Resolve one ref and enqueue its unseen dependencies."""
        # Claimed before any I/O so sibling branches cannot re-process it
        if not await self.state.mark_processed(ref.key):
            return

        self.logger.debug(f'Processing {ref.key}')

        try:
            metadata = await self.client.fetch_metadata(
                ref.name, options.source_registry
            )
        except PackageNotFoundError as e:
            self.logger.warning(f'Package {ref.name} not found in source registry')
            await self.state.record_failure(ref.key, str(e))
            return
        except RegistryError as e:
            self.logger.error(f'Error fetching metadata for {ref.key}: {e}')
            await self.state.record_failure(ref.key, str(e))
            return

        version = resolve_version(metadata, ref.version_spec)
        if not version:
            self.logger.error(
                f'Could not resolve version {ref.version_spec} for {ref.name}'
            )
            await self.state.record_failure(ref.key, 'unresolvable version')
            return

        await self.state.record_resolution(ref.key, ResolvedPackage(ref.name, version))

        version_info = metadata.versions.get(version)
        if version_info is None:
            self.logger.warning(
                f'{ref.name}@{version} is tagged but missing from versions; '
                'not following its dependencies'
            )
            return

        for child in self._dependencies_of(version_info, options):
            if await self.state.add_if_new(child.key):
                queue.append(child)

    @staticmethod
    def _dependencies_of(
        version_info: VersionInfo, options: DiscoveryOptions
    ) -> List[PackageRef]:
        groups = [version_info.dependencies]
        if options.include_peer_deps:
            groups.append(version_info.peer_dependencies)
        if options.include_optional_deps:
            groups.append(version_info.optional_dependencies)

        return [
            PackageRef(name=name, version_spec=spec)
            for group in groups
            for name, spec in group.items()
        ]
