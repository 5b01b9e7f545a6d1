"""
Configuration for the launcher.

Process-level settings come from environment variables (a local .env is
loaded first). Application toggles live in a JSON config file:

    {
        "UPDATE": {"Package": true, "EXCLUDED": ["fastapi"]},
        "removeSt": false
    }

load_config() builds one SupervisorConfig at startup which is then passed to
every component.
"""

import json
import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigLoadError


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass
class SupervisorConfig:
    """Launcher configuration."""

    # Files
    config_path: Path = Path("config.json")
    manifest_path: Path = Path("manifest.json")
    state_file: Path = Path("appstate.json")
    threads_file: Path = Path("data/threadsData.json")
    users_file: Path = Path("data/usersData.json")
    landing_page: Path = Path("static/index.html")

    # Worker
    worker_command: list[str] = field(
        default_factory=lambda: [sys.executable, "main.py"]
    )
    working_dir: Path = Path.cwd()

    # Listener
    host: str = "0.0.0.0"

    # Supervision
    restart_delay: float = 0.0
    max_restart_attempts: int = 0  # 0 means unlimited

    # Updates
    update_enabled: bool = False
    excluded: frozenset = frozenset()
    update_delay: float = 20.0
    pypi_url: str = "https://pypi.org/pypi"

    # State reset
    remove_state: bool = False
    reset_grace: float = 10.0

    # Logging
    log_file: Path = Path("respawn.log")
    log_level: str = "INFO"
    log_max_bytes: int = 10 * 1024 * 1024  # 10MB
    log_backup_count: int = 5

    # Raw JSON document, kept so the reset path can write it back intact
    raw: dict = field(default_factory=dict)

    def save(self):
        """Write the JSON config document back to disk."""
        self.raw["removeSt"] = self.remove_state
        self.config_path.write_text(json.dumps(self.raw, indent=2), encoding="utf-8")


def read_config_file(path: Path) -> dict:
    """Read the JSON config document, raising ConfigLoadError on failure."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigLoadError(f"Config file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigLoadError(f"Error loading {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config file {path} must contain a JSON object")
    return data


def load_config(config_path: str | Path | None = None) -> SupervisorConfig:
    """Build the launcher configuration from the environment and config file."""
    load_dotenv()

    path = Path(config_path or os.environ.get("RESPAWN_CONFIG", "config.json"))
    raw = read_config_file(path)

    update = raw.get("UPDATE") or {}
    command = os.environ.get("RESPAWN_WORKER_CMD")

    cfg = SupervisorConfig(
        config_path=path,
        manifest_path=Path(os.environ.get("RESPAWN_MANIFEST", "manifest.json")),
        state_file=Path(os.environ.get("STATE_FILE", "appstate.json")),
        threads_file=Path(os.environ.get("THREADS_FILE", "data/threadsData.json")),
        users_file=Path(os.environ.get("USERS_FILE", "data/usersData.json")),
        landing_page=Path(os.environ.get("LANDING_PAGE", "static/index.html")),
        working_dir=Path(os.environ.get("RESPAWN_WORKDIR", str(Path.cwd()))),
        host=os.environ.get("RESPAWN_HOST", "0.0.0.0"),
        restart_delay=_env_float("RESTART_DELAY", 0.0),
        max_restart_attempts=_env_int("MAX_RESTART_ATTEMPTS", 0),
        update_enabled=bool(update.get("Package", False)),
        excluded=frozenset(update.get("EXCLUDED") or []),
        update_delay=_env_float("UPDATE_DELAY", 20.0),
        pypi_url=os.environ.get("PYPI_URL", "https://pypi.org/pypi").rstrip("/"),
        remove_state=bool(raw.get("removeSt", False)),
        reset_grace=_env_float("RESET_GRACE", 10.0),
        log_file=Path(os.environ.get("LOG_FILE", "respawn.log")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        log_max_bytes=_env_int("LOG_MAX_BYTES", 10 * 1024 * 1024),
        log_backup_count=_env_int("LOG_BACKUP_COUNT", 5),
        raw=raw,
    )
    if command:
        cfg.worker_command = shlex.split(command)

    return cfg
