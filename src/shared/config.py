"""
Centralized configuration for the pharmacy operations backend.

- Pure dataclasses, loaded from OS env; a repo-root .env is read with python-dotenv.
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Database/Redis URLs never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

# ------------------------------------------------------------------------------
# .env loader
# ------------------------------------------------------------------------------
def _maybe_load_dotenv(env_path: Path) -> None:
    if env_path.exists():
        load_dotenv(dotenv_path=str(env_path), override=False)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


_DATABASE_SCHEMES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


def _validate_database_url(value: str, *, key: str) -> str:
    if not value.startswith(_DATABASE_SCHEMES):
        raise ValueError(f"{key} must start with one of {_DATABASE_SCHEMES}")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]
LogFormat = Literal["auto", "json", "console"]
IsolationLevel = Literal["READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False
    is_testing: bool = False

    # Partitions
    admin_database_url: str = "sqlite+aiosqlite:///./pharmacy_admin.db"
    tenant_database_url_template: str = "sqlite+aiosqlite:///./{database}.db"
    tenant_database_prefix: str = "pharmacy_t_"
    tenant_auto_create_schema: bool = True

    # Pooling / timeouts (per partition)
    tenant_pool_max_size: int = 50
    tenant_pool_min_size: int = 10
    pool_timeout_seconds: int = 30
    pool_recycle_seconds: int = 3600
    connect_timeout_seconds: int = 5
    socket_timeout_seconds: int = 45

    # Idle reclamation
    tenant_idle_timeout_seconds: int = 30 * 60
    tenant_sweep_interval_seconds: int = 5 * 60

    # Transactions
    transaction_isolation_level: IsolationLevel = "REPEATABLE READ"
    transaction_max_attempts: int = 3
    transaction_retry_base_ms: int = 25
    transaction_retry_jitter_ms: int = 25

    # Cache
    redis_url: Optional[str] = None
    cache_key_prefix: str = "pharmacy"
    cache_background_concurrency: int = 8

    # Observability
    log_level: str = "INFO"
    log_format: LogFormat = "auto"

    # Paths
    base_dir: Path = field(default_factory=lambda: Path(__file__).resolve().parent.parent)

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_staging: bool = field(init=False)
    is_dev: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )
        _validate_choice(self.log_format, choices=("auto", "json", "console"), key="LOG_FORMAT")
        _validate_choice(
            self.transaction_isolation_level,
            choices=("READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"),
            key="TRANSACTION_ISOLATION_LEVEL",
        )

        _validate_database_url(self.admin_database_url, key="ADMIN_DATABASE_URL")
        _validate_database_url(self.tenant_database_url_template, key="TENANT_DATABASE_URL_TEMPLATE")
        if "{database}" not in self.tenant_database_url_template:
            raise ValueError("TENANT_DATABASE_URL_TEMPLATE must contain a {database} placeholder")
        if not re.fullmatch(r"[a-z][a-z0-9_]*", self.tenant_database_prefix):
            raise ValueError("TENANT_DATABASE_PREFIX must be lowercase letters, digits or underscores")
        if self.redis_url:
            _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss"))

        if self.tenant_pool_min_size < 0 or self.tenant_pool_max_size <= 0:
            raise ValueError("TENANT_POOL_MIN_SIZE must be >= 0 and TENANT_POOL_MAX_SIZE > 0")
        if self.tenant_pool_min_size > self.tenant_pool_max_size:
            raise ValueError("TENANT_POOL_MIN_SIZE must be <= TENANT_POOL_MAX_SIZE")
        if self.connect_timeout_seconds <= 0 or self.socket_timeout_seconds <= 0:
            raise ValueError("CONNECT_TIMEOUT_SECONDS and SOCKET_TIMEOUT_SECONDS must be > 0")
        if self.tenant_idle_timeout_seconds <= 0 or self.tenant_sweep_interval_seconds <= 0:
            raise ValueError("Idle timeout and sweep interval must be > 0")
        if self.transaction_max_attempts < 1:
            raise ValueError("TRANSACTION_MAX_ATTEMPTS must be >= 1")
        if self.cache_background_concurrency < 1:
            raise ValueError("CACHE_BACKGROUND_CONCURRENCY must be >= 1")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        # Derived flags
        env = self.environment
        object.__setattr__(self, "is_prod", env == "prod")
        object.__setattr__(self, "is_staging", env == "staging")
        object.__setattr__(self, "is_dev", env == "dev")
        object.__setattr__(self, "is_local", env == "local")

    @property
    def exposes_internals(self) -> bool:
        """Development mode: error responses may carry stack detail."""
        return self.debug and (self.is_local or self.is_dev)

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "is_testing": self.is_testing,
            "admin_database_url": "<masked>" if self.admin_database_url else "<unset>",
            "tenant_database_url_template": "<masked>",
            "tenant_database_prefix": self.tenant_database_prefix,
            "tenant_pool_max_size": self.tenant_pool_max_size,
            "tenant_pool_min_size": self.tenant_pool_min_size,
            "connect_timeout_seconds": self.connect_timeout_seconds,
            "socket_timeout_seconds": self.socket_timeout_seconds,
            "tenant_idle_timeout_seconds": self.tenant_idle_timeout_seconds,
            "tenant_sweep_interval_seconds": self.tenant_sweep_interval_seconds,
            "transaction_isolation_level": self.transaction_isolation_level,
            "transaction_max_attempts": self.transaction_max_attempts,
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "cache_key_prefix": self.cache_key_prefix,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "base_dir": str(self.base_dir),
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Attempt to load .env from repo root (../.env relative to src/)
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    _maybe_load_dotenv(env_file)

    defaults = Settings()
    settings = Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        is_testing=_get_env_bool("IS_TESTING", False),
        admin_database_url=_get_env_str("ADMIN_DATABASE_URL", defaults.admin_database_url) or defaults.admin_database_url,
        tenant_database_url_template=(
            _get_env_str("TENANT_DATABASE_URL_TEMPLATE", defaults.tenant_database_url_template)
            or defaults.tenant_database_url_template
        ),
        tenant_database_prefix=_get_env_str("TENANT_DATABASE_PREFIX", defaults.tenant_database_prefix) or defaults.tenant_database_prefix,
        tenant_auto_create_schema=_get_env_bool("TENANT_AUTO_CREATE_SCHEMA", True),
        tenant_pool_max_size=_get_env_int("TENANT_POOL_MAX_SIZE", 50),
        tenant_pool_min_size=_get_env_int("TENANT_POOL_MIN_SIZE", 10),
        pool_timeout_seconds=_get_env_int("POOL_TIMEOUT_SECONDS", 30),
        pool_recycle_seconds=_get_env_int("POOL_RECYCLE_SECONDS", 3600),
        connect_timeout_seconds=_get_env_int("CONNECT_TIMEOUT_SECONDS", 5),
        socket_timeout_seconds=_get_env_int("SOCKET_TIMEOUT_SECONDS", 45),
        tenant_idle_timeout_seconds=_get_env_int("TENANT_IDLE_TIMEOUT_SECONDS", 30 * 60),
        tenant_sweep_interval_seconds=_get_env_int("TENANT_SWEEP_INTERVAL_SECONDS", 5 * 60),
        transaction_isolation_level=cast(
            IsolationLevel, _get_env_str("TRANSACTION_ISOLATION_LEVEL", "REPEATABLE READ") or "REPEATABLE READ"
        ),
        transaction_max_attempts=_get_env_int("TRANSACTION_MAX_ATTEMPTS", 3),
        transaction_retry_base_ms=_get_env_int("TRANSACTION_RETRY_BASE_MS", 25),
        transaction_retry_jitter_ms=_get_env_int("TRANSACTION_RETRY_JITTER_MS", 25),
        redis_url=_get_env_str("REDIS_URL", None) or None,
        cache_key_prefix=_get_env_str("CACHE_KEY_PREFIX", "pharmacy") or "pharmacy",
        cache_background_concurrency=_get_env_int("CACHE_BACKGROUND_CONCURRENCY", 8),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=cast(LogFormat, _get_env_str("LOG_FORMAT", "auto") or "auto"),
    )

    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
