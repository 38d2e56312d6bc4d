"""Runtime configuration for pathstore.

All settings come from environment variables and are parsed once into an
immutable Settings object. Invalid values fail loudly with ConfigError.

Environment Variables:
    PATHSTORE_OBJECT_STORE_BACKEND: "memory" or "s3" (default: "memory")
    PATHSTORE_S3_BUCKET: Bucket holding all org content (required for s3)
    PATHSTORE_S3_ENDPOINT_URL: Endpoint for S3-compatible stores (optional)
    PATHSTORE_S3_REGION: Region name for the S3 client (optional)
    PATHSTORE_LIST_PAGE_SIZE: Keys fetched per listing page (default: 100)
    PATHSTORE_COLLISION_MAX_ATTEMPTS: Suffix retries before giving up (default: 10)
    PATHSTORE_PATH_INDEX_TTL_SECONDS: Lifetime of cached key existence (default: 30)
    PATHSTORE_MOVE_TOKEN_SECRET: Secret signing move continuation tokens; instances
        behind one endpoint must share it (default: random per process)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Final

logger = logging.getLogger(__name__)

ENV_OBJECT_STORE_BACKEND: Final[str] = "PATHSTORE_OBJECT_STORE_BACKEND"
ENV_S3_BUCKET: Final[str] = "PATHSTORE_S3_BUCKET"
ENV_S3_ENDPOINT_URL: Final[str] = "PATHSTORE_S3_ENDPOINT_URL"
ENV_S3_REGION: Final[str] = "PATHSTORE_S3_REGION"
ENV_LIST_PAGE_SIZE: Final[str] = "PATHSTORE_LIST_PAGE_SIZE"
ENV_COLLISION_MAX_ATTEMPTS: Final[str] = "PATHSTORE_COLLISION_MAX_ATTEMPTS"
ENV_PATH_INDEX_TTL_SECONDS: Final[str] = "PATHSTORE_PATH_INDEX_TTL_SECONDS"
ENV_MOVE_TOKEN_SECRET: Final[str] = "PATHSTORE_MOVE_TOKEN_SECRET"

DEFAULT_BACKEND: Final[str] = "memory"
DEFAULT_LIST_PAGE_SIZE: Final[int] = 100
DEFAULT_COLLISION_MAX_ATTEMPTS: Final[int] = 10
DEFAULT_PATH_INDEX_TTL_SECONDS: Final[int] = 30

SUPPORTED_BACKENDS: Final[frozenset[str]] = frozenset({"memory", "s3"})


class ConfigError(Exception):
    """Raised when configuration is invalid."""


@dataclass(frozen=True)
class Settings:
    """pathstore configuration (immutable).

    Attributes:
        backend: Object store backend name ("memory" or "s3").
        s3_bucket: Bucket for the s3 backend.
        s3_endpoint_url: Optional endpoint override for S3-compatible stores.
        s3_region: Optional region for the S3 client.
        list_page_size: Maximum keys requested per listing page.
        collision_max_attempts: Suffix attempts before collision resolution fails.
        path_index_ttl_seconds: How long a known-existing key stays cached.
        move_token_secret: Secret for move continuation tokens, None for a
            random per-process secret.
    """

    backend: str = DEFAULT_BACKEND
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    list_page_size: int = DEFAULT_LIST_PAGE_SIZE
    collision_max_attempts: int = DEFAULT_COLLISION_MAX_ATTEMPTS
    path_index_ttl_seconds: int = DEFAULT_PATH_INDEX_TTL_SECONDS
    move_token_secret: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigError(
                f"{ENV_OBJECT_STORE_BACKEND} must be one of "
                f"{sorted(SUPPORTED_BACKENDS)}, got '{self.backend}'"
            )
        if self.backend == "s3" and not self.s3_bucket:
            raise ConfigError(f"{ENV_S3_BUCKET} is required when backend is 's3'")
        if self.list_page_size <= 0:
            raise ConfigError(
                f"{ENV_LIST_PAGE_SIZE} must be a positive integer, got {self.list_page_size}"
            )
        if self.collision_max_attempts <= 0:
            raise ConfigError(
                f"{ENV_COLLISION_MAX_ATTEMPTS} must be a positive integer, "
                f"got {self.collision_max_attempts}"
            )
        if self.path_index_ttl_seconds < 0:
            raise ConfigError(
                f"{ENV_PATH_INDEX_TTL_SECONDS} must not be negative, "
                f"got {self.path_index_ttl_seconds}"
            )


def _get_env_str(key: str) -> str | None:
    """Get a stripped string from the environment, None when unset or blank."""
    raw = os.environ.get(key)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _parse_int(env_var: str, default: int) -> int:
    """Parse an integer from an environment variable.

    Raises:
        ConfigError: If the value is set but not an integer.
    """
    raw = _get_env_str(env_var)
    if raw is None:
        return default

    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{env_var} must be an integer, got '{raw}'") from e


def load_settings() -> Settings:
    """Load settings from environment variables.

    Returns:
        Settings with validated values.

    Raises:
        ConfigError: If any value is invalid.
    """
    settings = Settings(
        backend=(_get_env_str(ENV_OBJECT_STORE_BACKEND) or DEFAULT_BACKEND).lower(),
        s3_bucket=_get_env_str(ENV_S3_BUCKET),
        s3_endpoint_url=_get_env_str(ENV_S3_ENDPOINT_URL),
        s3_region=_get_env_str(ENV_S3_REGION),
        list_page_size=_parse_int(ENV_LIST_PAGE_SIZE, DEFAULT_LIST_PAGE_SIZE),
        collision_max_attempts=_parse_int(
            ENV_COLLISION_MAX_ATTEMPTS, DEFAULT_COLLISION_MAX_ATTEMPTS
        ),
        path_index_ttl_seconds=_parse_int(
            ENV_PATH_INDEX_TTL_SECONDS, DEFAULT_PATH_INDEX_TTL_SECONDS
        ),
        move_token_secret=_get_env_str(ENV_MOVE_TOKEN_SECRET),
    )
    logger.debug(
        "Loaded settings: backend=%s page_size=%s",
        settings.backend,
        settings.list_page_size,
    )
    return settings
