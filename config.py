from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from errors import ConfigError
from mailer import EmailSettings

ROOT_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_FILE = ROOT_DIR / "config" / "default.json"

DEFAULTS: Dict[str, Any] = {
    "template_path": str(ROOT_DIR / "data" / "certificate.pdf"),
    "layout_path": str(ROOT_DIR / "data" / "layout.json"),
    "output_dir": None,  # None -> next to this program
    "timeout": 60.0,
    "debug": False,
    "log_dir": None,
    "email": None,
}

# environment variable -> (section, key)
ENV_OVERRIDES: Dict[str, tuple[str | None, str]] = {
    "CERTIFICATE_SMTP_HOST": ("email", "host"),
    "CERTIFICATE_SMTP_PORT": ("email", "port"),
    "CERTIFICATE_SMTP_USER": ("email", "user"),
    "CERTIFICATE_SMTP_PASSWORD": ("email", "password"),
    "CERTIFICATE_OUTPUT_DIR": (None, "output_dir"),
}


class AppConfig(BaseModel):
    template_path: Path
    layout_path: Path
    output_dir: Path | None = None
    timeout: float = 60.0
    debug: bool = False
    log_dir: Path | None = None
    email: EmailSettings | None = None

    @property
    def resolved_output_dir(self) -> Path:
        return self.output_dir if self.output_dir is not None else ROOT_DIR


def _merge(target: Dict[str, Any], src: Dict[str, Any]) -> None:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(target.get(k), dict):
            _merge(target[k], v)
        else:
            target[k] = v


def _apply_env(data: Dict[str, Any]) -> None:
    for var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if not value:
            continue
        if section is None:
            data[key] = value
            continue
        if not isinstance(data.get(section), dict):
            data[section] = {}
        data[section][key] = value


def load_config(path: Path | str | None = None) -> AppConfig:
    """Defaults, then the JSON config file, then ``CERTIFICATE_*`` env vars.

    An explicit *path* must exist; the default ``config/default.json`` is
    optional.
    """
    load_dotenv()
    data: Dict[str, Any] = json.loads(json.dumps(DEFAULTS))  # deep copy

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    if path is not None or config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as f:
                incoming = json.load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
        if not isinstance(incoming, dict):
            raise ConfigError(f"{config_path} must contain a JSON object.")
        _merge(data, incoming)

    _apply_env(data)
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
