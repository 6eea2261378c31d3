"""Configuration management for npm-mirror."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

DEFAULT_SOURCE_REGISTRY = 'https://registry.npmjs.org'
DEFAULT_DESTINATION_REGISTRY = 'http://localhost:4873'


class RegistryConfig(BaseModel):
    """Configuration for a package registry."""

    url: str = Field(..., description='Registry URL')
    token: Optional[str] = Field(default=None, description='Bearer auth token')
    timeout: float = Field(default=15.0, description='Request timeout in seconds')
    retries: int = Field(default=3, description='Metadata fetch attempts')
    rate_limit_per_second: float = Field(
        default=20.0, description='Registry requests per second limit'
    )

    @validator('url')
    def validate_url(cls, v):
        """Validate registry URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('timeout', 'rate_limit_per_second')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError('Value must be positive')
        return v

    @validator('retries')
    def validate_retries(cls, v):
        if v < 1:
            raise ValueError('At least one attempt is required')
        return v


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    include_dev_deps: bool = Field(
        default=True, description='Include devDependencies of the manifest'
    )
    include_peer_deps: bool = Field(
        default=True, description='Include peerDependencies'
    )
    include_optional_deps: bool = Field(
        default=True, description='Include optionalDependencies'
    )
    scope: Optional[str] = Field(
        default=None, description='Only migrate root packages with this name prefix'
    )

    concurrency: int = Field(default=5, description='Maximum concurrent packages')
    skip_existing: bool = Field(
        default=True, description='Skip versions already on the destination'
    )
    max_retries: int = Field(default=3, description='Publish attempts per package')
    retry_delay: float = Field(
        default=1.0, description='Backoff unit between publish attempts (seconds)'
    )
    batch_pause: float = Field(
        default=1.0, description='Pause between publish batches (seconds)'
    )

    require_login: bool = Field(
        default=False, description='Require a logged-in destination user'
    )
    dry_run: bool = Field(default=False, description='Discover without publishing')

    @validator('concurrency', 'max_retries')
    def validate_positive_int(cls, v):
        """Validate counts are positive."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v

    @validator('retry_delay', 'batch_pause')
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('Delay must not be negative')
        return v


class TransportConfig(BaseModel):
    """Artifact transport configuration."""

    temp_dir: Optional[str] = Field(
        default=None,
        description='Staging directory for tarballs. If not specified, uses system temp directory.',
    )
    npm_executable: str = Field(default='npm', description='npm binary to run')
    timeout: int = Field(
        default=300, description='pack/publish timeout in seconds (default: 5 minutes)'
    )
    strict_ssl: bool = Field(default=True, description='Verify registry TLS')

    @validator('temp_dir')
    def validate_temp_dir(cls, v):
        """Validate temp directory path."""
        if v is not None:
            temp_path = Path(v)
            if not temp_path.is_absolute():
                raise ValueError('temp_dir must be an absolute path')
            temp_path.mkdir(parents=True, exist_ok=True)
            if not temp_path.is_dir():
                raise ValueError(f'temp_dir path is not a directory: {v}')
        return v

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Transport timeout must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for npm-mirror."""

    source: RegistryConfig = Field(
        default_factory=lambda: RegistryConfig(url=DEFAULT_SOURCE_REGISTRY),
        description='Source (public) registry',
    )
    destination: RegistryConfig = Field(
        default_factory=lambda: RegistryConfig(url=DEFAULT_DESTINATION_REGISTRY),
        description='Destination (private) registry',
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    transport: TransportConfig = Field(
        default_factory=TransportConfig, description='Artifact transport settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config_data = {
            'source': {
                'url': os.getenv('SOURCE_REGISTRY_URL', DEFAULT_SOURCE_REGISTRY),
                'token': os.getenv('SOURCE_REGISTRY_TOKEN'),
            },
            'destination': {
                'url': os.getenv('DEST_REGISTRY_URL', DEFAULT_DESTINATION_REGISTRY),
                'token': os.getenv('DEST_REGISTRY_TOKEN'),
            },
            'migration': {
                'scope': os.getenv('MIGRATION_SCOPE'),
                'concurrency': int(os.getenv('MIGRATION_CONCURRENCY', 5)),
                'max_retries': int(os.getenv('MIGRATION_MAX_RETRIES', 3)),
                'skip_existing': _env_flag('MIGRATION_SKIP_EXISTING', True),
                'require_login': _env_flag('MIGRATION_REQUIRE_LOGIN', False),
            },
            'transport': {
                'temp_dir': os.getenv('NPM_MIRROR_TEMP_DIR'),
                'npm_executable': os.getenv('NPM_EXECUTABLE', 'npm'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'url': DEFAULT_SOURCE_REGISTRY,
                'timeout': 15,
                'retries': 3,
            },
            'destination': {
                'url': DEFAULT_DESTINATION_REGISTRY,
                'token': 'your-destination-registry-token',
                'timeout': 15,
                'retries': 3,
            },
            'migration': {
                'include_dev_deps': True,
                'include_peer_deps': True,
                'include_optional_deps': True,
                'scope': None,
                'concurrency': 5,
                'skip_existing': True,
                'max_retries': 3,
                'require_login': False,
                'dry_run': False,
            },
            'transport': {
                'temp_dir': '/tmp/npm-mirror',
                'npm_executable': 'npm',
                'timeout': 300,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')
