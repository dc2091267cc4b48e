# Task board: configuration
# Override paths and timings via config.yaml or environment variables.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from .schema import DEFAULT_COLORS

CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass
class BoardConfig:
    """Runtime configuration for the task board."""

    # Local cache (SQLite key/value table)
    cache_path: str = "~/.local/share/taskboard/board.db"
    cache_key: str = "managementBoardData"

    # Persistence timing
    autosave_interval_secs: float = 60.0
    save_delay_secs: float = 0.5   # simulated storage latency

    # Ranking
    top_limit: int = 10
    palette: List[str] = field(default_factory=lambda: list(DEFAULT_COLORS))

    # HTTP layer
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""

    def resolve_paths(self):
        """Expand ~ in paths."""
        self.cache_path = str(Path(self.cache_path).expanduser())

    def apply_env(self):
        """Environment wins over the YAML file."""
        cache = os.environ.get("TASKBOARD_CACHE")
        if cache:
            self.cache_path = cache
        secret = os.environ.get("TASKBOARD_API_SECRET")
        if secret:
            self.api_secret = secret

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve_paths()
        return cfg
