"""
Settings loader — reads wizard.yml into WizardSettings.

The settings file is optional.  It is located by, in order:
``--config``, the ``WIZ_CONFIG`` env var, or a search upward from the
working directory.  Without one, defaults apply.

Example ``wizard.yml``::

    home: ~/
    allowed_origins:
      - app://renderer/index.html
      - http://localhost:5173
    busy_timeout: 2.5
    marker_label: wizardplane environment
    reload_shell: true
    mock_adapters: true
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wizardplane.core.errors import ConfigError
from wizardplane.core.gateway.policy import DEFAULT_ALLOWED_ORIGINS

logger = logging.getLogger(__name__)

SETTINGS_FILE = "wizard.yml"
CONFIG_ENV_VAR = "WIZ_CONFIG"


class WizardSettings(BaseModel):
    """Validated runtime settings of the control-plane."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    home: Path = Field(default_factory=Path.home)
    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    busy_timeout: float | None = Field(default=None, gt=0)
    marker_label: str | None = None      # None → catalog's installer.env.variableBanner
    reload_shell: bool = True
    mock_adapters: bool = True

    @field_validator("home", mode="after")
    @classmethod
    def _expand_home(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("allowed_origins", mode="after")
    @classmethod
    def _non_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("allowed_origins cannot be empty")
        return v

    @field_validator("marker_label", mode="after")
    @classmethod
    def _single_line(cls, v: str | None) -> str | None:
        if v is not None and (not v.strip() or "\n" in v or "\r" in v):
            raise ValueError("marker_label must be a non-empty single line")
        return v


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Search for wizard.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to wizard.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / SETTINGS_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def resolve_settings_path(explicit: Path | None = None) -> Path | None:
    if explicit is not None:
        return explicit
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return find_settings_file()


def load_settings(path: Path | None = None) -> WizardSettings:
    """Load and validate wizard settings.

    Args:
        path: Explicit settings file.  If None, ``WIZ_CONFIG`` or an
            upward search is used; no file at all means defaults.

    Raises:
        ConfigError: If a named file is missing or any file is invalid.
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    path = resolve_settings_path(path)

    if path is None:
        logger.debug("No %s found, using default settings", SETTINGS_FILE)
        return WizardSettings()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Settings file not found: {path}")
        return WizardSettings()

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = WizardSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings from %s (home=%s)", path, settings.home)
    return settings
