"""Runtime configuration from the environment and the bundled defaults file."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from tabtree.models import UserSettings

_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "default_settings.yml"
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class AppConfig(BaseModel):
    db_path: str = "tabtree.db"
    flush_debounce_ms: int = 50
    flush_retries: int = 3
    cors_origin: str = "http://localhost:5173"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build the config from TABTREE_* variables, loading backend/.env first."""
        load_dotenv(_ENV_PATH)
        values: dict[str, str] = {}
        for field_name in cls.model_fields:
            raw = os.environ.get(f"TABTREE_{field_name.upper()}")
            if raw:
                values[field_name] = raw
        return cls.model_validate(values)


def load_default_settings(path: Path = _DEFAULT_SETTINGS_PATH) -> UserSettings:
    """Read behaviour defaults from YAML. A missing file yields the built-in defaults."""
    data: dict = {}
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    return UserSettings.model_validate(data)
