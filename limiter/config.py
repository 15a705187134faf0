"""
Central configuration for the distracting-sites limiter service.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Accounting
    checkpoint_interval_s: float = 15.0      # partial flush cadence while tracking
    usage_retention_days: int = 90           # 0 keeps every day forever

    # Enforcement
    interstitial_url: str = "http://127.0.0.1:8765/timeout"

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")
    sites_db: str = "sites.db"
    usage_db: str = "usage.db"

    # Logging
    log_level: str = "info"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def sites_db_path(self) -> Path:
        return self.data_dir / self.sites_db

    @property
    def usage_db_path(self) -> Path:
        return self.data_dir / self.usage_db

    @classmethod
    def load(cls, config_file: Path = _CONFIG_FILE) -> "Config":
        cfg = cls()
        if config_file.exists():
            overrides = json.loads(config_file.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, v)
        # environment variable overrides (LIMITER_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"LIMITER_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, type(getattr(cfg, k))(os.environ[env_key]))
        cfg.data_dir = Path(cfg.data_dir)
        cfg.data_dir.mkdir(parents=True, exist_ok=True)
        return cfg


# Module-level singleton
config = Config.load()
