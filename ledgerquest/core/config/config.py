"""
Static configuration management for LedgerQuest.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles infrastructure configuration that is set at process startup.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Game tunables (reward schedules, quest catalog) live in YAML and are
  served by ConfigManager
- Secrets management (use environment variables)

Environment Variables
---------------------
- DATABASE_URL: SQLAlchemy async URL (default: local SQLite file)
- DATABASE_POOL_SIZE / DATABASE_MAX_OVERFLOW / DATABASE_POOL_RECYCLE /
  DATABASE_POOL_TIMEOUT / DATABASE_STATEMENT_TIMEOUT_MS / DATABASE_ECHO
- DATABASE_SQLITE_BUSY_TIMEOUT_S: seconds a SQLite writer waits for the lock
- DATABASE_RETRY_MAX_ATTEMPTS / DATABASE_RETRY_INITIAL_BACKOFF_MS /
  DATABASE_RETRY_MAX_BACKOFF_MS / DATABASE_RETRY_JITTER_MS
- CIRCUIT_BREAKER_FAILURE_THRESHOLD / CIRCUIT_BREAKER_RECOVERY_TIMEOUT
- ENVIRONMENT, DEBUG, LOG_LEVEL, LOG_JSON, LOGS_DIR
- LEDGERQUEST_CONFIG_DIR: directory holding the YAML tunables
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

_TRUTHY = frozenset({"true", "yes", "1", "on"})
_FALSY = frozenset({"false", "no", "0", "off"})


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            logging.warning(
                f"Unknown environment '{value}', defaulting to development"
            )
            return cls.DEVELOPMENT


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, value: Any, default: Any):
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        self.validation_errors[key] = error


class Config:
    """
    Centralized static configuration for the LedgerQuest economy core.

    All values are class attributes so infrastructure code can read them
    without instantiation (``Config.DATABASE_URL``). ``Config.load()`` is run
    on import and may be re-run by tests after patching the environment.
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _enable_metrics: bool = True
    _validated: bool = False

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: str = "sqlite+aiosqlite:///./ledgerquest.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 3600
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_SQLITE_BUSY_TIMEOUT_S: int = 30

    DATABASE_RETRY_MAX_ATTEMPTS: int = 3
    DATABASE_RETRY_INITIAL_BACKOFF_MS: int = 50
    DATABASE_RETRY_MAX_BACKOFF_MS: int = 1000
    DATABASE_RETRY_JITTER_MS: int = 50

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None

    # =========================================================================
    # Directory Configuration
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # =========================================================================
    # Circuit Breaker
    # =========================================================================

    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = 60

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        if cls._enable_metrics and cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _fallback(cls, key: str, default: Any, reason: str) -> Any:
        """Log a rejected environment value and return ``default`` instead."""
        message = f"{key}: {reason}, using default {default}"
        logging.warning(message)
        if cls._metrics:
            cls._metrics.record_validation_error(key, message)
        return default

    @classmethod
    def _raw(cls, key: str, default: Any) -> Optional[str]:
        cls._init_metrics()
        raw_value = os.getenv(key)
        if raw_value is None and cls._metrics:
            cls._metrics.record_env_load(key, False, default, default)
        return raw_value

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Integer from the environment, bounded by ``min_val``/``max_val``.

        >>> Config._safe_int("DATABASE_POOL_SIZE", 20, min_val=1, max_val=200)
        20
        """
        raw_value = cls._raw(key, default)
        if raw_value is None:
            return default

        try:
            value = int(raw_value)
        except ValueError:
            return cls._fallback(key, default, f"{raw_value!r} is not an integer")

        if min_val is not None and value < min_val:
            return cls._fallback(key, default, f"{value} is below {min_val}")
        if max_val is not None and value > max_val:
            return cls._fallback(key, default, f"{value} is above {max_val}")

        if cls._metrics:
            cls._metrics.record_env_load(key, True, value, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """Accepts true/false, yes/no, 1/0 and on/off in any case."""
        raw_value = cls._raw(key, default)
        if raw_value is None:
            return default

        normalized = raw_value.strip().lower()
        if normalized in _TRUTHY:
            value = True
        elif normalized in _FALSY:
            value = False
        else:
            return cls._fallback(key, default, f"{raw_value!r} is not a boolean")

        if cls._metrics:
            cls._metrics.record_env_load(key, True, value, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str, required: bool = False) -> str:
        cls._init_metrics()

        value = os.getenv(key, default)
        from_env = key in os.environ

        if cls._metrics:
            cls._metrics.record_env_load(key, from_env, value, default)

        if required and not value:
            error = f"Required environment variable {key} is not set"
            logging.error(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)

        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called on module import; tests call it again after patching the
        environment.
        """
        cls._init_metrics()

        cls.DATABASE_URL = cls._safe_str(
            "DATABASE_URL",
            "sqlite+aiosqlite:///./ledgerquest.db",
            required=True,
        )
        cls.DATABASE_POOL_SIZE = cls._safe_int(
            "DATABASE_POOL_SIZE", 20, min_val=1, max_val=200
        )
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = bool(cls._safe_bool("DATABASE_ECHO", False))
        cls.DATABASE_POOL_RECYCLE = cls._safe_int(
            "DATABASE_POOL_RECYCLE", 3600, min_val=60
        )
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int(
            "DATABASE_POOL_TIMEOUT", 30, min_val=1, max_val=600
        )
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )
        cls.DATABASE_SQLITE_BUSY_TIMEOUT_S = cls._safe_int(
            "DATABASE_SQLITE_BUSY_TIMEOUT_S", 30, min_val=1, max_val=600
        )

        cls.DATABASE_RETRY_MAX_ATTEMPTS = cls._safe_int(
            "DATABASE_RETRY_MAX_ATTEMPTS", 3, min_val=1, max_val=20
        )
        cls.DATABASE_RETRY_INITIAL_BACKOFF_MS = cls._safe_int(
            "DATABASE_RETRY_INITIAL_BACKOFF_MS", 50, min_val=0
        )
        cls.DATABASE_RETRY_MAX_BACKOFF_MS = cls._safe_int(
            "DATABASE_RETRY_MAX_BACKOFF_MS", 1000, min_val=0
        )
        cls.DATABASE_RETRY_JITTER_MS = cls._safe_int(
            "DATABASE_RETRY_JITTER_MS", 50, min_val=0
        )

        cls.ENVIRONMENT = cls._safe_str("ENVIRONMENT", "development")
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)

        logs_dir = os.getenv("LOGS_DIR")
        if logs_dir:
            cls.LOGS_DIR = Path(logs_dir)
        config_dir = os.getenv("LEDGERQUEST_CONFIG_DIR")
        if config_dir:
            cls.CONFIG_DIR = Path(config_dir)

        cls.CIRCUIT_BREAKER_FAILURE_THRESHOLD = cls._safe_int(
            "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5, min_val=1, max_val=100
        )
        cls.CIRCUIT_BREAKER_RECOVERY_TIMEOUT = cls._safe_int(
            "CIRCUIT_BREAKER_RECOVERY_TIMEOUT", 60, min_val=1
        )

        if cls._metrics:
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError:
            If required config values are missing in production.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls._init_metrics()

        try:
            cls.load()

            if not cls.DATABASE_URL:
                raise ValueError("DATABASE_URL environment variable is required")

            if cls.is_production() and cls.DATABASE_URL.startswith("sqlite"):
                logger.warning(
                    "Production environment using a SQLite database - "
                    "this may be incorrect"
                )

            valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if cls.LOG_LEVEL.upper() not in valid_log_levels:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            if cls.is_production() and "user:password" in cls.DATABASE_URL:
                logger.error(
                    "SECURITY: Using default database credentials in production!"
                )

            cls._validated = True

            if cls._metrics and cls._metrics.validation_errors:
                logger.warning(
                    f"Configuration warnings: {cls._metrics.validation_errors}"
                )

        except ValueError as e:
            logger.warning(f"Config validation warning: {e}")
            if cls.is_production():
                raise

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return Environment.from_string(cls.ENVIRONMENT) is Environment.PRODUCTION

    @classmethod
    def is_development(cls) -> bool:
        return Environment.from_string(cls.ENVIRONMENT) is Environment.DEVELOPMENT

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() in ("testing", "test")

    # =========================================================================
    # Metrics
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        return cls._metrics


Config.validate()
