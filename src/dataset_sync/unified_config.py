"""Unified configuration for dataset-sync.

One configuration file is shared by the CLI, the hub server and embedding
applications.

Configuration is stored in ~/.datasetsync/config.toml
Local dataset data is stored in ~/.datasetsync/data/<db_name>.db (SQLite)
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dataset_sync.sync.sync_engine import DEFAULT_MAX_RETRY

logger = logging.getLogger(__name__)

# Valid identifiers in config: alphanumeric, hyphens, underscores, dots, colons
_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.:]+$")

_VALID_BACKENDS = frozenset({"sqlite", "memory"})
_VALID_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def get_datasetsync_dir() -> Path:
    """Get dataset-sync data directory.

    Priority:
    1. DATASETSYNC_DIR environment variable
    2. ~/.datasetsync/
    """
    env_dir = os.environ.get("DATASETSYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".datasetsync"


def _toml_str(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class SyncSettings:
    """Settings for reaching the remote hub."""

    hub_url: str = "http://localhost:8000"
    max_retry: int = DEFAULT_MAX_RETRY
    timeout_seconds: float = 30.0
    connectivity_probe_url: str = ""
    probe_interval_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.hub_url.startswith(("http://", "https://")):
            raise ValueError("hub_url must start with http:// or https://")
        if self.max_retry < 0:
            raise ValueError("max_retry must be >= 0")
        if self.timeout_seconds <= 0 or self.probe_interval_seconds <= 0:
            raise ValueError("timeouts and intervals must be positive")

    @property
    def probe_url(self) -> str:
        """URL polled for reachability, the hub health endpoint by default."""
        return self.connectivity_probe_url or f"{self.hub_url.rstrip('/')}/health"

    def to_dict(self) -> dict[str, Any]:
        return {
            "hub_url": self.hub_url,
            "max_retry": self.max_retry,
            "timeout_seconds": self.timeout_seconds,
            "connectivity_probe_url": self.connectivity_probe_url,
            "probe_interval_seconds": self.probe_interval_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        return cls(
            hub_url=data.get("hub_url", "http://localhost:8000"),
            max_retry=int(data.get("max_retry", DEFAULT_MAX_RETRY)),
            timeout_seconds=float(data.get("timeout_seconds", 30.0)),
            connectivity_probe_url=data.get("connectivity_probe_url", ""),
            probe_interval_seconds=float(data.get("probe_interval_seconds", 30.0)),
        )


@dataclass
class StorageSettings:
    """Settings for the local store."""

    backend: str = "sqlite"
    db_name: str = "datasets"

    def __post_init__(self) -> None:
        if self.backend not in _VALID_BACKENDS:
            raise ValueError(f"Invalid storage backend: {self.backend}")
        if not _NAME_PATTERN.match(self.db_name):
            raise ValueError("Invalid db_name")

    def to_dict(self) -> dict[str, Any]:
        return {"backend": self.backend, "db_name": self.db_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageSettings:
        return cls(
            backend=data.get("backend", "sqlite"),
            db_name=data.get("db_name", "datasets"),
        )


@dataclass
class LoggingSettings:
    """Settings for log output of the CLI and the server."""

    level: str = "WARNING"
    file: str = ""

    def __post_init__(self) -> None:
        self.level = self.level.upper()
        if self.level not in _VALID_LEVELS:
            raise ValueError(f"Invalid log level: {self.level}")

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "file": self.file}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        return cls(level=data.get("level", "WARNING"), file=data.get("file", ""))


@dataclass
class UnifiedConfig:
    """Unified configuration for dataset-sync.

    Storage location: ~/.datasetsync/config.toml
    Local data location: ~/.datasetsync/data/<db_name>.db
    """

    # Base directory for all dataset-sync data
    data_dir: Path = field(default_factory=get_datasetsync_dir)

    # Identity whose datasets are synchronized
    identity_id: str = "default"

    # Dataset used by CLI commands without --dataset
    current_dataset: str = "default"

    sync: SyncSettings = field(default_factory=SyncSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> UnifiedConfig:
        """Load configuration from file, or create default if doesn't exist."""
        if config_path is None:
            data_dir = get_datasetsync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        if not config_path.exists():
            config = cls(data_dir=data_dir)
            config.save()
            logger.info("Created default configuration at %s", config_path)
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(
            data_dir=data_dir,
            identity_id=data.get("identity_id", "default"),
            current_dataset=data.get("current_dataset", "default"),
            sync=SyncSettings.from_dict(data.get("sync", {})),
            storage=StorageSettings.from_dict(data.get("storage", {})),
            logging=LoggingSettings.from_dict(data.get("logging", {})),
            version=data.get("version", "1.0"),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.data_dir / "config.toml"

        # Validate names before writing to prevent TOML injection
        for value in (self.identity_id, self.current_dataset):
            if not _NAME_PATTERN.match(value):
                raise ValueError(f"Invalid name for config save: {value!r}")

        lines = [
            "# dataset-sync configuration",
            "",
            f"version = {_toml_str(self.version)}",
            f"identity_id = {_toml_str(self.identity_id)}",
            f"current_dataset = {_toml_str(self.current_dataset)}",
            "",
            "# Remote hub",
            "[sync]",
            f"hub_url = {_toml_str(self.sync.hub_url)}",
            f"max_retry = {self.sync.max_retry}",
            f"timeout_seconds = {float(self.sync.timeout_seconds)}",
            f"connectivity_probe_url = {_toml_str(self.sync.connectivity_probe_url)}",
            f"probe_interval_seconds = {float(self.sync.probe_interval_seconds)}",
            "",
            "# Local store",
            "[storage]",
            f"backend = {_toml_str(self.storage.backend)}",
            f"db_name = {_toml_str(self.storage.db_name)}",
            "",
            "[logging]",
            f"level = {_toml_str(self.logging.level)}",
            f"file = {_toml_str(self.logging.file)}",
        ]

        # Atomic write: write to temp file, then rename
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return self.data_dir / "config.toml"

    @property
    def db_dir(self) -> Path:
        """Get directory where local databases are stored."""
        return self.data_dir / "data"

    def get_db_path(self) -> Path:
        """Get path to the local SQLite database.

        Raises:
            ValueError: If db_name escapes the data directory
        """
        db_path = (self.db_dir / f"{self.storage.db_name}.db").resolve()
        if not db_path.is_relative_to(self.db_dir.resolve()):
            raise ValueError("Invalid db_name: path traversal detected")
        return db_path

    def use_dataset(self, dataset_name: str) -> None:
        """Switch the current dataset and save config."""
        if not _NAME_PATTERN.match(dataset_name):
            raise ValueError("Invalid dataset name")
        self.current_dataset = dataset_name
        self.save()


# Singleton instance for easy access
_config: UnifiedConfig | None = None


def get_config(reload: bool = False) -> UnifiedConfig:
    """Get the unified configuration (singleton).

    Args:
        reload: Force reload from disk

    Returns:
        UnifiedConfig instance
    """
    global _config
    if _config is None or reload:
        _config = UnifiedConfig.load()
    return _config
