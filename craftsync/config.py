"""
Craftify Sync - Configuration
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "CRAFTSYNC_"


@dataclass
class SyncConfig:
    """Configuration for the sync engine."""

    # API settings
    api_base_url: str = "http://localhost:8000"
    api_timeout: float = 30.0
    access_token: Optional[str] = None

    # Paging
    page_size: int = 200

    # Throttles (seconds)
    recipe_fetch_interval: float = 30.0  # Automatic refreshes only
    report_status_fetch_interval: float = 30.0
    submission_cooldown: float = 30.0

    # User state
    recent_search_limit: int = 10

    # Connectivity probing
    probe_interval: float = 15.0

    # Cache settings
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".craftsync")
    cache_db_name: str = "sync_cache.db"

    def __post_init__(self):
        """Ensure cache directory exists."""
        self.cache_dir = Path(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def cache_db_path(self) -> Path:
        """Full path to the cache database."""
        return self.cache_dir / self.cache_db_name

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "SyncConfig":
        """Build a config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in values.items() if k in known})

    @classmethod
    def from_file(cls, path: Path) -> "SyncConfig":
        """Load overrides from a JSON file; a missing file yields defaults."""
        path = Path(path)
        if not path.exists():
            logger.info(f"No config file at {path}, using defaults")
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            values = json.load(f)
        logger.info(f"Loaded config from {path}")
        return cls.from_dict(values)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "SyncConfig":
        """Read CRAFTSYNC_* environment variables on top of the defaults."""
        return cls(**_env_values(environ))

    @classmethod
    def load(cls, path: Optional[Path] = None, environ: Optional[dict[str, str]] = None) -> "SyncConfig":
        """JSON file settings (if any), then CRAFTSYNC_* environment overrides."""
        values = cls.from_file(path).to_dict() if path else {}
        values.update(_env_values(environ))
        return cls.from_dict(values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for saving."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["cache_dir"] = str(self.cache_dir)
        return data


def _env_values(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    for f in fields(SyncConfig):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        if f.type in (int, "int"):
            values[f.name] = int(raw)
        elif f.type in (float, "float"):
            values[f.name] = float(raw)
        else:
            values[f.name] = raw
    return values
