"""Configuration management for TaskVision."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

TASKVISION_HOME = Path(os.environ.get("TASKVISION_HOME", Path.home() / "taskvision"))
CONFIG_FILE = TASKVISION_HOME / "config" / "taskvision.conf"
TOKEN_FILE = TASKVISION_HOME / "config" / ".tokens.json"
DATA_DIR = TASKVISION_HOME / "data"


@dataclass
class Config:
    """TaskVision configuration."""

    store_backend: str = "file"  # "file" or "firestore"
    data_dir: str = ""
    firestore_project_id: str = ""
    firebase_api_key: str = ""
    user_id: str = ""
    lookahead_days: int = 14
    run_time: str = "01:00"
    timezone: str = "Asia/Tokyo"
    dedupe_instances: bool = False
    max_workers: int = 1


@dataclass
class Tokens:
    """Firebase auth tokens for the Firestore REST API."""

    id_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0

    def save(self) -> None:
        """Save tokens to file."""
        TOKEN_FILE.parent.mkdir(parents=True, exist_ok=True)
        TOKEN_FILE.write_text(
            json.dumps(
                {
                    "id_token": self.id_token,
                    "refresh_token": self.refresh_token,
                    "expires_at": self.expires_at,
                }
            )
        )
        TOKEN_FILE.chmod(0o600)

    @classmethod
    def load(cls) -> "Tokens":
        """Load tokens from file."""
        if not TOKEN_FILE.exists():
            return cls()
        try:
            data = json.loads(TOKEN_FILE.read_text())
            return cls(
                id_token=data.get("id_token", ""),
                refresh_token=data.get("refresh_token", ""),
                expires_at=data.get("expires_at", 0),
            )
        except (json.JSONDecodeError, KeyError):
            return cls()


def _parse_int(key: str, value: str, default: int) -> int:
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Invalid {key.upper()} value {value!r}, using {default}")
        return default
    if parsed < 1:
        logger.warning(f"{key.upper()} must be positive, using {default}")
        return default
    return parsed


def _parse_bool(key: str, value: str, default: bool) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid {key.upper()} value {value!r}, using {default}")
    return default


def load_config(path: Path | None = None) -> Config:
    """Load configuration from taskvision.conf file."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()

        # Handle quoted values with inline comments: "value" # comment
        if value.startswith('"') or value.startswith("'"):
            quote = value[0]
            end_quote = value.find(quote, 1)
            if end_quote != -1:
                value = value[1:end_quote]
            else:
                value = value[1:]
        else:
            # Unquoted: strip inline comments
            if "#" in value:
                value = value.split("#")[0].strip()

        match key:
            case "store_backend":
                if value.lower() in ("file", "firestore"):
                    config.store_backend = value.lower()
                else:
                    logger.warning(f"Unknown STORE_BACKEND {value!r}, using file")
            case "data_dir":
                config.data_dir = value
            case "firestore_project_id":
                config.firestore_project_id = value
            case "firebase_api_key":
                config.firebase_api_key = value
            case "user_id":
                config.user_id = value
            case "lookahead_days":
                config.lookahead_days = _parse_int(key, value, config.lookahead_days)
            case "run_time":
                config.run_time = value
            case "timezone":
                config.timezone = value
            case "dedupe_instances":
                config.dedupe_instances = _parse_bool(key, value, config.dedupe_instances)
            case "max_workers":
                config.max_workers = _parse_int(key, value, config.max_workers)

    return config
