"""
Settings Resolution for the Theta Lab Calculator

Works out which CalculatorSettings a session runs with and wires the
logging level to them.

Resolution order:
    1. Library defaults (CalculatorSettings())
    2. The environment's log level (development: DEBUG, test: WARNING)
    3. The top level of the settings file
    4. The file's section named after the environment, if present

Settings file:
    THETALAB_CONFIG names the file explicitly. Otherwise the first
    thetalab.yaml / thetalab.yml found in ./config, the working directory
    or ~/.thetalab is used. A file like

        market:
          spot: 45120
        positions:
          strike_step: 100
        risk:
          underlying: BANKNIFTY
        test:
          log_level: ERROR

    moves the desk defaults to BANKNIFTY and quiets logging under test.

Usage:
    from thetalab.config import get_settings, configure_logging

    settings = get_settings()       # THETALAB_ENV=test selects the test profile
    configure_logging(settings)
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from thetalab.config.settings import (
    CalculatorSettings,
    ConfigValidationError,
    validate_settings,
)

logger = logging.getLogger(__name__)


ENV_VAR = "THETALAB_ENV"
CONFIG_VAR = "THETALAB_CONFIG"
CONFIG_NAMES = ("thetalab.yaml", "thetalab.yml")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Environment(str, Enum):
    """Calculator run profiles."""

    DEVELOPMENT = "development"
    TEST = "test"


# Profile overrides applied before the settings file
PROFILE_DEFAULTS: Dict[Environment, Dict[str, Any]] = {
    Environment.DEVELOPMENT: {"log_level": "DEBUG"},
    Environment.TEST: {"log_level": "WARNING"},
}


def default_search_paths() -> List[Path]:
    """Directories searched for a settings file, most specific first."""
    cwd = Path.cwd()
    return [cwd / "config", cwd, Path.home() / ".thetalab"]


# =============================================================================
# Settings Store
# =============================================================================

class SettingsStore:
    """
    Resolves and caches the session's settings.

    Attributes:
        search_paths (List[Path]): Directories searched for thetalab.yaml
    """

    def __init__(self, search_paths: Optional[List[Path]] = None) -> None:
        self.search_paths = search_paths if search_paths is not None else default_search_paths()
        self._environment: Optional[Environment] = None
        self._settings: Optional[CalculatorSettings] = None

    @property
    def environment(self) -> Environment:
        """Pinned environment, else THETALAB_ENV, else development."""
        if self._environment is not None:
            return self._environment

        name = os.environ.get(ENV_VAR, Environment.DEVELOPMENT.value).strip().lower()
        try:
            return Environment(name)
        except ValueError:
            logger.warning(f"Unknown environment '{name}' in {ENV_VAR}, using development")
            return Environment.DEVELOPMENT

    def use(self, env: Union[Environment, str]) -> None:
        """
        Pin the environment and drop cached settings.

        Raises:
            ValueError: If env is not a known environment
        """
        self._environment = Environment(env.lower() if isinstance(env, str) else env)
        self._settings = None
        logger.info(f"Environment set to {self._environment.value}")

    def settings(self) -> CalculatorSettings:
        """
        Settings for the current environment, resolved once and cached.

        Raises:
            ConfigValidationError: If the resolved settings are invalid
        """
        if self._settings is None:
            self._settings = self._resolve()
        return self._settings

    def find_config_file(self) -> Optional[Path]:
        """Settings file to load, or None when there is none."""
        explicit = os.environ.get(CONFIG_VAR)
        if explicit:
            path = Path(explicit).expanduser()
            if not path.is_file():
                logger.warning(f"{CONFIG_VAR} points to missing file {path}")
                return None
            return path

        for directory in self.search_paths:
            for name in CONFIG_NAMES:
                candidate = Path(directory) / name
                if candidate.is_file():
                    return candidate
        return None

    def clear(self) -> None:
        """Forget the pinned environment and cached settings."""
        self._environment = None
        self._settings = None

    def _resolve(self) -> CalculatorSettings:
        env = self.environment
        data = merge_config({}, PROFILE_DEFAULTS[env])

        path = self.find_config_file()
        if path is not None:
            try:
                file_data = _read_yaml(path)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load {path}: {e}")
            else:
                data = merge_config(data, _scope_to(file_data, env))
                logger.debug(f"Loaded settings from {path} for {env.value}")

        settings = CalculatorSettings.from_dict(data)
        validate_settings(settings)
        return settings


def _scope_to(file_data: Dict[str, Any], env: Environment) -> Dict[str, Any]:
    """Top-level keys with the environment's own section laid over them."""
    profiles = {e.value for e in Environment}
    base = {k: v for k, v in file_data.items() if k not in profiles}
    section = file_data.get(env.value) or {}
    if not isinstance(section, dict):
        raise ConfigValidationError(
            f"Section '{env.value}' must be a mapping",
            errors=[f"{env.value}: expected mapping, got {type(section).__name__}"],
        )
    return merge_config(base, section)


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge nested dictionaries, override winning field by field."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Config file {path} must contain a mapping",
            errors=[f"{path}: expected mapping, got {type(data).__name__}"],
        )
    return data


# =============================================================================
# Module API
# =============================================================================

_store = SettingsStore()


def settings_store() -> SettingsStore:
    """The session-wide store used by get_settings()."""
    return _store


def get_environment() -> Environment:
    return _store.environment


def set_environment(env: Union[Environment, str]) -> None:
    _store.use(env)


def get_settings() -> CalculatorSettings:
    """Settings for the current environment (cached)."""
    return _store.settings()


def load_settings(path: Union[str, Path]) -> CalculatorSettings:
    """
    Load and validate settings from one YAML file, ignoring environments.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigValidationError: If the settings are invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    settings = CalculatorSettings.from_dict(_read_yaml(config_path))
    validate_settings(settings)
    logger.debug(f"Loaded settings from {config_path}")
    return settings


def configure_logging(settings: Optional[CalculatorSettings] = None) -> None:
    """
    Set the root log level from settings and attach handlers.

    A console handler is added only when the root logger has none, and a
    log file gets at most one handler however often this is called.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not root.handlers:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    if settings.log_file:
        target = os.path.abspath(settings.log_file)
        existing = [
            h for h in root.handlers
            if isinstance(h, logging.FileHandler) and h.baseFilename == target
        ]
        if existing:
            for handler in existing:
                handler.setLevel(level)
        else:
            file_handler = logging.FileHandler(target)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    logger.info(f"Logging configured at {settings.log_level.upper()}")
