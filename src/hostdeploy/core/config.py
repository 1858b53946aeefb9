"""Deployment configuration snapshot and answers-file handling.

The configuration is gathered once, before any step runs, and frozen into a
:class:`DeployConfig`. Steps only ever read it.

An optional YAML answers file pre-supplies values for the interactive
prompts and the operator confirmations::

    mode: auto
    repo_url: git@github.com:org/repo.git
    branch: main
    app_name: shop
    answers:
      enable_frontend: true
      scaffold_backend: false
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import asdict, dataclass, fields
from enum import StrEnum
from pathlib import Path
from typing import Any, Mapping

from ruamel.yaml import YAML

from hostdeploy.core.constants import CONFIG_ENV_VAR, CONFIG_FILENAME, PROGRAM_NAME

logger = logging.getLogger(__name__)

__all__ = [
    "AppMode",
    "ConfigError",
    "DeployConfig",
    "StartMethod",
    "default_config_path",
    "load_answers_file",
    "save_config",
]


class ConfigError(ValueError):
    """Raised when configuration values cannot be parsed or validated."""


class AppMode(StrEnum):
    """Declared deployment mode."""

    AUTO = "auto"
    API_ONLY = "api-only"
    FRONTEND_ENABLED = "frontend-enabled"

    @classmethod
    def parse(cls, value: str) -> "AppMode":
        normalized = str(value).strip().lower()
        aliases = {
            "api": cls.API_ONLY,
            "mern": cls.FRONTEND_ENABLED,
            "frontend": cls.FRONTEND_ENABLED,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join([m.value for m in cls] + sorted(aliases))
            raise ConfigError(f"Unknown mode '{value}'. Valid modes: {valid}") from None


class StartMethod(StrEnum):
    """How PM2 launches the backend."""

    FILE = "file"
    NPM = "npm"


_BOOL_TRUE = {"y", "yes", "true", "1", "on"}
_BOOL_FALSE = {"n", "no", "false", "0", "off"}


def _coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _BOOL_TRUE:
        return True
    if text in _BOOL_FALSE:
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def _coerce_port(value: Any) -> int:
    try:
        port = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Invalid server_port: {value!r}") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"server_port out of range: {port}")
    return port


@dataclass(frozen=True)
class DeployConfig:
    """Immutable configuration snapshot read by every step."""

    repo_url: str = ""
    mode: AppMode = AppMode.AUTO
    branch: str = "main"
    app_dir: Path = Path("/var/www/app")
    app_name: str = "app"
    use_ssh_key: bool = True
    ssh_key_path: Path | None = None
    ssh_key_comment: str = ""
    wait_for_key: bool = True
    server_dir: str = "server"
    server_entry: str = "index.js"
    start_method: StartMethod = StartMethod.FILE
    server_port: int = 5000
    client_dir: str = "client"
    client_build_dir: str = "build"
    server_name: str = "_"
    enable_proxy: bool = True
    enable_firewall: bool = True
    skip_upgrade: bool = False
    offer_express: bool = True

    def __post_init__(self) -> None:
        # Key path and comment default from app_name, so fill them once here.
        if self.ssh_key_path is None:
            object.__setattr__(
                self, "ssh_key_path", Path.home() / ".ssh" / f"deploy_key_{self.app_name}"
            )
        if not self.ssh_key_comment:
            object.__setattr__(
                self, "ssh_key_comment", f"{self.app_name}@{socket.gethostname()}"
            )

    @property
    def backend_path(self) -> Path:
        if self.server_dir in ("", "."):
            return self.app_dir
        return self.app_dir / self.server_dir

    @property
    def frontend_path(self) -> Path:
        return self.app_dir / self.client_dir

    @property
    def build_output_path(self) -> Path:
        return self.frontend_path / self.client_build_dir

    @property
    def upstream(self) -> str:
        return f"http://127.0.0.1:{self.server_port}"

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DeployConfig":
        """Build a snapshot from loosely-typed values (prompts, YAML, env)."""
        known = set(cls.field_names())
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, raw in data.items():
            if raw is None:
                continue
            if key == "mode":
                values[key] = AppMode.parse(raw)
            elif key == "start_method":
                try:
                    values[key] = StartMethod(str(raw).strip().lower())
                except ValueError:
                    raise ConfigError(
                        f"Invalid start_method '{raw}': expected 'file' or 'npm'"
                    ) from None
            elif key in ("app_dir", "ssh_key_path"):
                values[key] = Path(str(raw)).expanduser()
            elif key == "server_port":
                values[key] = _coerce_port(raw)
            elif key in (
                "use_ssh_key",
                "wait_for_key",
                "enable_proxy",
                "enable_firewall",
                "skip_upgrade",
                "offer_express",
            ):
                values[key] = _coerce_bool(key, raw)
            else:
                values[key] = str(raw).strip()
        return cls(**values)

    def as_dict(self) -> dict[str, str]:
        """Return the parameter-name to string-value view of the snapshot."""
        result: dict[str, str] = {}
        for key, value in asdict(self).items():
            if isinstance(value, bool):
                result[key] = "y" if value else "n"
            else:
                result[key] = str(value)
        return result


def default_config_path() -> Path:
    """Return the answers-file location.

    Resolution order:
    1. ``HOSTDEPLOY_CONFIG`` environment variable
    2. ``<user config dir>/hostdeploy/deploy.yaml`` (via platformdirs)
    """
    if env_path := os.environ.get(CONFIG_ENV_VAR):
        return Path(env_path).expanduser()

    from platformdirs import user_config_dir

    return Path(user_config_dir(PROGRAM_NAME)) / CONFIG_FILENAME


def load_answers_file(path: Path) -> tuple[dict[str, Any], dict[str, bool]]:
    """Load configuration values and operator answers from a YAML file.

    Returns:
        ``(values, answers)`` where ``values`` are DeployConfig fields and
        ``answers`` maps operator question keys to booleans.
    """
    yaml = YAML()
    yaml.preserve_quotes = True

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.load(handle) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigError(f"Invalid config in {path}: expected a mapping at the top level")

    values = {str(k): v for k, v in data.items() if k != "answers"}
    answers_raw = data.get("answers") or {}
    if not isinstance(answers_raw, Mapping):
        raise ConfigError(f"Invalid answers section in {path}: expected a mapping")
    answers = {str(k): _coerce_bool(f"answers.{k}", v) for k, v in answers_raw.items()}

    logger.info(f"Loaded {len(values)} value(s) and {len(answers)} answer(s) from {path}")
    return values, answers


def save_config(path: Path, config: DeployConfig, answers: Mapping[str, bool] | None = None) -> None:
    """Write a snapshot as an answers file, preserving unrelated keys."""
    yaml = YAML()
    yaml.preserve_quotes = True

    if path.exists():
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.load(handle) or {}
    else:
        data = {}
        path.parent.mkdir(parents=True, exist_ok=True)

    for key, value in asdict(config).items():
        if isinstance(value, (bool, int)):
            data[key] = value
        else:
            data[key] = str(value)
    if answers:
        data["answers"] = dict(answers)

    with open(path, "w", encoding="utf-8") as handle:
        yaml.dump(data, handle)

    logger.info(f"Saved deploy config to {path}")
