"""
ConfigManager: YAML-backed game tunables for LedgerQuest.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable economy values
  (daily reward schedule, quest catalog, rarity table, security rewards).
- Load every YAML file under the config directory once at startup and
  deep-merge them into a single tree.
- Expose immutable, versioned snapshots so a running unit of work sees one
  consistent view even if the tree is reloaded concurrently.

Responsibilities
----------------
- Discover and merge YAML files (PyYAML ``safe_load``).
- Serve reads with defaults and simple hit/miss metrics.
- Accept in-process overrides (tests, admin tooling) that bump the version.

Non-Responsibilities
--------------------
- Static infrastructure settings (handled by ``Config``).
- Interpreting tunables (each engine owns its section).
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml

from ledgerquest.core.config.config import Config
from ledgerquest.core.exceptions import ConfigurationError
from ledgerquest.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ConfigMetrics:
    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    reloads: int = 0
    overrides: int = 0
    errors: int = 0
    total_get_time_ms: float = 0.0


@dataclass(frozen=True)
class ConfigSnapshot:
    """Immutable view of the configuration tree at a specific version."""

    version: int
    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return _resolve(self.values, key, default)


def _resolve(tree: Mapping[str, Any], key: str, default: Any) -> Any:
    value: Any = tree
    for part in key.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return default
    return value if value is not None else default


def _deep_merge_dict(
    target: MutableMapping[str, Any],
    source: Mapping[str, Any],
) -> None:
    """Recursively merge ``source`` into ``target`` (in-place)."""
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _deep_merge_dict(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


class ConfigManager:
    """
    Dot-notation configuration access over merged YAML defaults.

    Examples
    --------
    >>> manager = ConfigManager.from_directory(Path("config"))
    >>> manager.get("daily_rewards.schedule")
    (50, 100, 150, 200, 250, 300, 1000)
    """

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None) -> None:
        self._tree: Dict[str, Any] = {}
        self._version = 0
        self._snapshot: Optional[ConfigSnapshot] = None
        self._metrics = ConfigMetrics()
        if defaults:
            _deep_merge_dict(self._tree, defaults)
        self._publish()

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_directory(cls, config_dir: Optional[Path] = None) -> "ConfigManager":
        """Build a manager from every ``*.yaml``/``*.yml`` file under ``config_dir``."""
        manager = cls()
        manager.load_directory(config_dir or Config.CONFIG_DIR)
        return manager

    def load_directory(self, config_dir: Path) -> None:
        """
        Recursively load YAML files from ``config_dir`` into the tree.

        Raises
        ------
        ConfigurationError
            If the directory is missing or a file cannot be parsed.
        """
        config_dir = Path(config_dir)
        if not config_dir.is_dir():
            raise ConfigurationError(
                "config_dir", f"Config directory not found: {config_dir}"
            )

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        merged: Dict[str, Any] = {}

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                self._metrics.errors += 1
                raise ConfigurationError(
                    str(yaml_file.relative_to(config_dir)),
                    f"Invalid YAML: {exc}",
                ) from exc

            if isinstance(data, dict):
                _deep_merge_dict(merged, data)
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        self._tree = merged
        self._metrics.reloads += 1
        self._publish()

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": len(yaml_files),
                "top_level_keys": sorted(self._tree.keys()),
                "config_version": self._version,
            },
        )

    def override(self, key: str, value: Any) -> None:
        """Set a value by dot path and publish a new snapshot version."""
        parts = key.split(".")
        node: Dict[str, Any] = self._tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)
        self._metrics.overrides += 1
        self._publish()

        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "config_version": self._version},
        )

    def _publish(self) -> None:
        self._version += 1
        self._snapshot = ConfigSnapshot(
            version=self._version,
            values=_freeze(self._tree),
        )

    # =========================================================================
    # READS
    # =========================================================================

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> ConfigSnapshot:
        assert self._snapshot is not None
        return self._snapshot

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Lists are returned as tuples and mappings as read-only proxies, so
        callers cannot mutate shared configuration.
        """
        start_time = time.perf_counter()
        self._metrics.gets += 1
        try:
            sentinel = object()
            value = self.snapshot().get(key, sentinel)
            if value is sentinel:
                self._metrics.cache_misses += 1
                return default
            self._metrics.cache_hits += 1
            return value
        finally:
            self._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    def require(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    def get_metrics(self) -> Dict[str, Any]:
        m = self._metrics
        avg = m.total_get_time_ms / m.gets if m.gets else 0.0
        return {
            "gets": m.gets,
            "cache_hits": m.cache_hits,
            "cache_misses": m.cache_misses,
            "reloads": m.reloads,
            "overrides": m.overrides,
            "errors": m.errors,
            "avg_get_time_ms": round(avg, 4),
            "config_version": self._version,
        }
