"""
Configuration Management

Handles loading configuration from environment variables and config files.

The two size parameters come from outside the core:
- max_artifact_size: the host-imposed ceiling no stored artifact may exceed
- chunk_size: the nominal slice length used when a file must be split
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

MiB = 1024 * 1024

DEFAULT_MAX_ARTIFACT_SIZE = 100 * MiB  # GitHub's per-file limit
DEFAULT_CHUNK_SIZE = 10 * MiB
DEFAULT_COMPRESSION_LEVEL = 19

MIN_COMPRESSION_LEVEL = 1
MAX_COMPRESSION_LEVEL = 22

CACHE_POLICIES = ('lru', 'unbounded')

ENV_PREFIX = 'CHUNKVAULT_'


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got {raw!r}"
        ) from None


@dataclass
class Config:
    """
    Chunkvault configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CHUNKVAULT_*)
    2. Config file (config.json)
    3. Default values
    """
    # Storage
    data_dir: Path = field(default_factory=lambda: Path('./chunkvault_data'))

    # Size limits
    max_artifact_size: int = DEFAULT_MAX_ARTIFACT_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE

    # Transform
    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    # Performance
    max_workers: int = 4
    cache_policy: str = 'lru'
    cache_max_bytes: int = 256 * MiB

    # Keys (opaque strings, never written by save())
    public_key: Optional[str] = None
    private_key: Optional[str] = None

    # Logging
    log_level: str = 'INFO'

    def validate(self) -> 'Config':
        """Check size and tuning parameters. Returns self for chaining."""
        if not isinstance(self.max_artifact_size, int) or self.max_artifact_size < 1:
            raise ConfigurationError(
                f"max_artifact_size must be a positive integer, got {self.max_artifact_size!r}"
            )
        if not isinstance(self.chunk_size, int) or self.chunk_size < 1:
            raise ConfigurationError(
                f"chunk_size must be a positive integer, got {self.chunk_size!r}"
            )
        if self.chunk_size > self.max_artifact_size:
            raise ConfigurationError(
                f"chunk_size ({self.chunk_size}) must not exceed "
                f"max_artifact_size ({self.max_artifact_size})"
            )
        for name in ('compression_level', 'max_workers', 'cache_max_bytes'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if not MIN_COMPRESSION_LEVEL <= self.compression_level <= MAX_COMPRESSION_LEVEL:
            raise ConfigurationError(
                f"compression_level must be between {MIN_COMPRESSION_LEVEL} and "
                f"{MAX_COMPRESSION_LEVEL}, got {self.compression_level}"
            )
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.cache_policy not in CACHE_POLICIES:
            raise ConfigurationError(
                f"cache_policy must be one of {', '.join(CACHE_POLICIES)}, "
                f"got {self.cache_policy!r}"
            )
        if self.cache_max_bytes < 0:
            raise ConfigurationError(
                f"cache_max_bytes must be >= 0, got {self.cache_max_bytes}"
            )
        return self

    @property
    def artifacts_dir(self) -> Path:
        return Path(self.data_dir) / 'artifacts'

    @property
    def manifests_dir(self) -> Path:
        return Path(self.data_dir) / 'manifests'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Storage
        data_dir = os.getenv(ENV_PREFIX + 'DATA_DIR')
        if data_dir:
            config.data_dir = Path(data_dir)

        # Size limits
        config.max_artifact_size = _env_int('MAX_ARTIFACT_SIZE', config.max_artifact_size)
        config.chunk_size = _env_int('CHUNK_SIZE', config.chunk_size)

        # Transform
        config.compression_level = _env_int('COMPRESSION_LEVEL', config.compression_level)

        # Performance
        config.max_workers = _env_int('MAX_WORKERS', config.max_workers)
        config.cache_policy = os.getenv(ENV_PREFIX + 'CACHE_POLICY', config.cache_policy).lower()
        config.cache_max_bytes = _env_int('CACHE_MAX_BYTES', config.cache_max_bytes)

        # Keys
        config.public_key = os.getenv(ENV_PREFIX + 'PUBLIC_KEY') or None
        config.private_key = os.getenv(ENV_PREFIX + 'PRIVATE_KEY') or None

        # Logging
        config.log_level = os.getenv(ENV_PREFIX + 'LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid config file {path}: {e}") from e

        config = cls()

        if 'data_dir' in data:
            config.data_dir = Path(data['data_dir'])

        config.max_artifact_size = data.get('max_artifact_size', config.max_artifact_size)
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.compression_level = data.get('compression_level', config.compression_level)
        config.max_workers = data.get('max_workers', config.max_workers)
        config.cache_policy = data.get('cache_policy', config.cache_policy)
        config.cache_max_bytes = data.get('cache_max_bytes', config.cache_max_bytes)
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary. Key material is left out."""
        return {
            'data_dir': str(self.data_dir),
            'max_artifact_size': self.max_artifact_size,
            'chunk_size': self.chunk_size,
            'compression_level': self.compression_level,
            'max_workers': self.max_workers,
            'cache_policy': self.cache_policy,
            'cache_max_bytes': self.cache_max_bytes,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings. The result is validated.
    """
    config = Config()

    if config_path and Path(config_path).exists():
        config = Config.from_file(config_path)

    env_config = Config.from_env()
    defaults = Config()

    # Merge (env takes precedence for non-default values)
    for key in ['data_dir', 'max_artifact_size', 'chunk_size', 'compression_level',
                'max_workers', 'cache_policy', 'cache_max_bytes', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    # Keys only ever come from the environment
    config.public_key = env_config.public_key
    config.private_key = env_config.private_key

    return config.validate()
