"""YAML settings file holding the Twitter credentials."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .core import ArchiveError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MEDIARCHIVE_CONFIG"
DEFAULT_CONFIG_NAME = "settings.yml"


class ConfigError(ArchiveError):
    """The settings file is missing, malformed or incomplete."""


@dataclass(slots=True)
class TwitterCredentials:
    consumer_key: str = ""
    consumer_secret: str = ""
    access_key: str = ""
    access_secret: str = ""

    def _missing(self, names: tuple[str, ...]) -> list[str]:
        return [name for name in names if not getattr(self, name)]

    def require_consumer(self) -> None:
        missing = self._missing(("consumer_key", "consumer_secret"))
        if missing:
            raise ConfigError(f"twitter settings missing: {', '.join(missing)}")

    def require_access(self) -> None:
        missing = self._missing(("consumer_key", "consumer_secret", "access_key", "access_secret"))
        if missing:
            raise ConfigError(
                f"twitter settings missing: {', '.join(missing)} (run `mediarchive auth-twitter` to obtain access keys)"
            )


@dataclass(slots=True)
class AppConfig:
    twitter: TwitterCredentials = field(default_factory=TwitterCredentials)


def default_config_path() -> Path:
    env_override = os.environ.get(CONFIG_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser().resolve()
    return Path.cwd() / DEFAULT_CONFIG_NAME


def _credentials_from(section: Any) -> TwitterCredentials:
    if section is None:
        return TwitterCredentials()
    if not isinstance(section, dict):
        raise ConfigError("twitter settings must be a mapping")
    known = {f.name for f in fields(TwitterCredentials)}
    unknown = sorted(set(section) - known)
    if unknown:
        logger.warning("Ignoring unknown twitter settings: %s", ", ".join(map(str, unknown)))
    values = {name: str(section.get(name) or "").strip() for name in known}
    return TwitterCredentials(**values)


def load_config(path: Path | str) -> AppConfig:
    """Read and validate the settings file at ``path``."""
    config_path = Path(path).expanduser()
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"load config: {config_path} not found") from exc
    except OSError as exc:
        raise ConfigError(f"load config: cannot read {config_path}: {exc}") from exc

    try:
        document = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"load config: invalid YAML in {config_path}: {exc}") from exc

    if document is None:
        logger.warning("Config file %s is empty", config_path)
        document = {}
    if not isinstance(document, dict):
        raise ConfigError(f"load config: {config_path} must contain a mapping")

    logger.debug("Loaded configuration from %s", config_path)
    return AppConfig(twitter=_credentials_from(document.get("twitter")))


__all__ = [
    "AppConfig",
    "ConfigError",
    "TwitterCredentials",
    "default_config_path",
    "load_config",
]
