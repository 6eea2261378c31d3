"""Artifact transport backed by the npm command line."""

import asyncio
import os
import shutil
import tempfile
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from loguru import logger

from ..api.exceptions import TransportError
from ..config.config import TransportConfig
from ..models.package import ResolvedPackage
from .base import Artifact, ArtifactTransport


class NpmCliTransport(ArtifactTransport):
    """Runs ``npm pack`` and ``npm publish`` in a private staging directory."""

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        tokens: Optional[Dict[str, str]] = None,
    ):
        """Initialize npm transport.

        Args:
            config: Transport configuration
            tokens: Optional auth tokens keyed by registry URL
        """
        self.config = config or TransportConfig()
        self.tokens = {url: token for url, token in (tokens or {}).items() if token}
        self.logger = logger.bind(component='NpmCliTransport')

        self.staging_dir = tempfile.mkdtemp(
            prefix='npm-mirror-', dir=self.config.temp_dir
        )
        self.userconfig = self._write_userconfig()
        self.logger.debug(f'Created staging directory: {self.staging_dir}')

    def _write_userconfig(self) -> str:
        """Write an isolated .npmrc holding registry tokens."""
        lines = []
        for url, token in self.tokens.items():
            parsed = urlparse(url)
            path = parsed.path.rstrip('/')
            lines.append(f'//{parsed.netloc}{path}/:_authToken={token}')
        if not self.config.strict_ssl:
            lines.append('strict-ssl=false')

        npmrc_path = os.path.join(self.staging_dir, '.npmrc')
        with open(npmrc_path, 'w', encoding='utf-8') as f:
            f.write('\n'.join(lines) + '\n')
        os.chmod(npmrc_path, 0o600)
        return npmrc_path

    async def fetch(self, package: ResolvedPackage, registry_url: str) -> Artifact:
        """Download ``package`` with ``npm pack`` into the staging directory."""
        returncode, stdout, stderr = await self._run_npm(
            [
                'pack',
                package.key,
                '--registry',
                registry_url,
                '--pack-destination',
                self.staging_dir,
                '--quiet',
            ]
        )

        if returncode != 0:
            raise TransportError(
                f'npm pack {package.key} failed with return code {returncode}: '
                f'{stderr.strip() or "Unknown error"}',
                stderr=stderr,
            )

        lines = [line.strip() for line in stdout.splitlines() if line.strip()]
        if not lines:
            raise TransportError(f'npm pack {package.key} produced no tarball')

        tarball = os.path.join(self.staging_dir, os.path.basename(lines[-1]))
        if not os.path.exists(tarball):
            raise TransportError(f'Tarball file not found: {tarball}')

        self.logger.debug(f'Downloaded tarball: {tarball}')
        return Artifact(package=package, path=tarball, size=os.path.getsize(tarball))

    async def push(
        self,
        artifact: Artifact,
        registry_url: str,
        tag: str = 'latest',
        access: Optional[str] = None,
    ) -> None:
        """Publish a staged tarball with ``npm publish``."""
        if not artifact.path:
            raise TransportError(f'No staged tarball for {artifact.package.key}')

        args = [
            'publish',
            artifact.path,
            '--registry',
            registry_url,
            '--tag',
            tag,
        ]
        if access:
            args.append(f'--access={access}')

        returncode, stdout, stderr = await self._run_npm(args)

        if returncode != 0:
            raise TransportError(
                f'npm publish {artifact.package.key} failed with return code '
                f'{returncode}: {stderr.strip() or stdout.strip() or "Unknown error"}',
                stderr=stderr,
            )

        self.logger.debug(f'Published {artifact.package.key} with tag {tag}')

    async def _run_npm(self, args: List[str]) -> Tuple[int, str, str]:
        """Run an npm command in the staging directory.

        Returns:
            Tuple of (return code, stdout, stderr)
        """
        cmd = [self.config.npm_executable, *args, '--userconfig', self.userconfig]
        self.logger.debug(f'Executing npm command: {" ".join(cmd)}')

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.staging_dir,
            )
        except FileNotFoundError as e:
            raise TransportError(
                f'npm executable not found: {self.config.npm_executable}', cause=e
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.timeout
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise TransportError(
                f'npm {args[0]} timed out after {self.config.timeout}s', cause=e
            )

        return (
            process.returncode,
            stdout.decode() if stdout else '',
            stderr.decode() if stderr else '',
        )

    def close(self) -> None:
        """Remove the staging directory."""
        shutil.rmtree(self.staging_dir, ignore_errors=True)
        self.logger.debug(f'Cleaned up staging directory: {self.staging_dir}')
