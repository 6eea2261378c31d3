"""Registry metadata client implementation."""

import asyncio
import json
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import aiohttp
import requests
from loguru import logger

from ..config.config import Config
from ..models.package import RegistryMetadata
from .exceptions import (
    MetadataFetchError,
    PackageNotFoundError,
    RegistryAuthenticationError,
    RegistryError,
)
from .rate_limiter import RateLimiter

USER_AGENT = 'npm-mirror/0.1.0'


def build_package_url(registry_url: str, package_name: str) -> str:
    """Build the metadata URL for a package.

    Scoped names keep their leading ``@`` and encode the ``/``
    (``@scope%2Fname``), matching what npm registries expect.
    """
    return f'{registry_url.rstrip("/")}/{quote(package_name, safe="@")}'


class RegistryClient:
    """Async client for npm registry metadata with retries and caching."""

    def __init__(
        self,
        timeout: float = 15.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        rate_limit_per_second: float = 20.0,
        tokens: Optional[Dict[str, str]] = None,
    ):
        """Initialize registry client.

        Args:
            timeout: Per-attempt request timeout in seconds
            retries: Attempts per metadata fetch
            retry_delay: Backoff unit between attempts (seconds)
            rate_limit_per_second: Request rate limit across all registries
            tokens: Optional bearer tokens keyed by registry URL
        """
        self.timeout = timeout
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.tokens = {
            url.rstrip('/'): token for url, token in (tokens or {}).items() if token
        }
        self.rate_limiter = RateLimiter(rate_limit_per_second)
        self.session = requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})
        self.logger = logger.bind(component='RegistryClient')

        self._cache: Dict[Tuple[str, str], RegistryMetadata] = {}

    def _headers(self, registry_url: str) -> Dict[str, str]:
        headers = {'Accept': 'application/json', 'User-Agent': USER_AGENT}
        token = self.tokens.get(registry_url.rstrip('/'))
        if token:
            headers['Authorization'] = f'Bearer {token}'
        return headers

    async def _get_json(self, url: str, registry_url: str) -> Any:
        """Make a single GET request and decode the JSON body.

        Raises:
            PackageNotFoundError: On HTTP 404
            MetadataFetchError: On any other status, network error or bad JSON
        """
        await self.rate_limiter.acquire()

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(
            headers=self._headers(registry_url), timeout=timeout
        ) as session:
            try:
                async with session.get(url) as response:
                    if response.status == 404:
                        raise PackageNotFoundError(
                            f'Package not found: {url}', status_code=404
                        )

                    body = await response.text()

                    if response.status != 200:
                        raise MetadataFetchError(
                            f'HTTP {response.status} from {url}: {body[:200]}',
                            status_code=response.status,
                        )

            except aiohttp.ClientError as e:
                raise MetadataFetchError(f'Network error: {e}', cause=e)
            except asyncio.TimeoutError as e:
                raise MetadataFetchError(
                    f'Request timed out after {self.timeout}s: {url}', cause=e
                )

        try:
            return json.loads(body)
        except ValueError as e:
            raise MetadataFetchError(f'Malformed JSON from {url}: {e}', cause=e)

    async def fetch_metadata(
        self, package_name: str, registry_url: str, use_cache: bool = True
    ) -> RegistryMetadata:
        """Fetch package metadata, retrying transient failures.

        Args:
            package_name: Package name (scoped names allowed)
            registry_url: Registry base URL
            use_cache: Serve and store results in the per-client cache

        Returns:
            Parsed registry metadata

        Raises:
            PackageNotFoundError: If the registry does not know the package
            MetadataFetchError: If every attempt failed
        """
        cache_key = (registry_url.rstrip('/'), package_name)
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        url = build_package_url(registry_url, package_name)
        last_error: Optional[MetadataFetchError] = None

        for attempt in range(1, self.retries + 1):
            try:
                data = await self._get_json(url, registry_url)
                metadata = self._parse_metadata(data, url)
            except MetadataFetchError as e:
                last_error = e
                if attempt < self.retries:
                    self.logger.warning(
                        f'Metadata fetch for {package_name} failed '
                        f'(attempt {attempt}/{self.retries}): {e}'
                    )
                    await asyncio.sleep(attempt * self.retry_delay)
                continue

            if use_cache:
                self._cache[cache_key] = metadata
            return metadata

        raise last_error

    @staticmethod
    def _parse_metadata(data: Any, url: str) -> RegistryMetadata:
        if not isinstance(data, dict):
            raise MetadataFetchError(f'Unexpected metadata document from {url}')
        try:
            return RegistryMetadata.from_registry(data)
        except (TypeError, ValueError) as e:
            raise MetadataFetchError(f'Invalid metadata from {url}: {e}', cause=e)

    async def package_version_exists(
        self, package_name: str, version: str, registry_url: str
    ) -> bool:
        """Check whether ``package_name@version`` is present in a registry.

        Best effort: any failure is reported as "does not exist".
        """
        try:
            metadata = await self.fetch_metadata(
                package_name, registry_url, use_cache=False
            )
        except PackageNotFoundError:
            return False
        except Exception as e:
            self.logger.debug(
                f'Existence check for {package_name}@{version} failed: {e}'
            )
            return False

        return metadata.has_version(version)

    def whoami(self, registry_url: str) -> str:
        """Return the user the registry authenticates us as.

        Raises:
            RegistryAuthenticationError: If the registry rejects the credentials
        """
        url = f'{registry_url.rstrip("/")}/-/whoami'

        try:
            response = self.session.get(
                url, headers=self._headers(registry_url), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RegistryError(f'Network error: {e}', cause=e)

        if response.status_code in (401, 403):
            raise RegistryAuthenticationError(
                f'Not authenticated to {registry_url}',
                status_code=response.status_code,
            )

        if response.status_code != 200:
            raise RegistryAuthenticationError(
                f'whoami failed with HTTP {response.status_code}',
                status_code=response.status_code,
            )

        try:
            username = response.json().get('username')
        except (ValueError, AttributeError):
            username = None

        if not username:
            raise RegistryAuthenticationError(f'No user logged in to {registry_url}')

        return username

    def test_connection(self, registry_url: str) -> bool:
        """Test connection to a registry.

        Returns:
            True if the registry answers its ping endpoint, False otherwise
        """
        try:
            response = self.session.get(
                f'{registry_url.rstrip("/")}/-/ping',
                headers=self._headers(registry_url),
                timeout=self.timeout,
            )
            return response.status_code < 400
        except Exception as e:
            self.logger.error(f'Connection test for {registry_url} failed: {e}')
            return False

    def clear_cache(self) -> None:
        self._cache.clear()

    def close(self):
        """Close the client session."""
        self.clear_cache()
        self.session.close()
        self.logger.debug('Registry client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class RegistryClientFactory:
    """Factory for creating registry clients."""

    @staticmethod
    def create_client(config: Config) -> RegistryClient:
        """Create a registry client from configuration.

        Timeouts and retries follow the source registry settings, which carry
        nearly all metadata traffic.
        """
        return RegistryClient(
            timeout=config.source.timeout,
            retries=config.source.retries,
            retry_delay=config.migration.retry_delay,
            rate_limit_per_second=config.source.rate_limit_per_second,
            tokens={
                config.source.url: config.source.token,
                config.destination.url: config.destination.token,
            },
        )
