"""
Release Gate Configuration Loader

Configuration Precedence:
    1. CLI --config <path> (explicit path)
    2. Environment variable RELEASE_GATE_CONFIG
    3. release-gate.yml / release-gate.yaml in the checkout
    4. release-gate.json in the checkout
    5. Built-in defaults

String values may reference environment variables as ``${NAME}``; unset
variables are left unexpanded.

Config Namespace Structure:
    registry:
        api_url: "https://crates.io/api/v1"
        user_agent: "release-gate"
        token_env: "CRATES_IO_TOKEN"
        timeout_seconds: 30
    release_host:
        api_url: "https://api.github.com"
        repository: null          # falls back to $GITHUB_REPOSITORY
        repository_env: "GITHUB_REPOSITORY"
        token_env: "GITHUB_TOKEN"
        title_template: "Release {version}"
        generate_notes: true
        make_latest: true
        timeout_seconds: 30
    packager:
        target_dir: null          # falls back to $CARGO_TARGET_DIR, then ./target
        all_features: true
        extension: ".crate"
    report:
        json_path: null
        text_path: null
    logging:
        level: "INFO"
        format: "text"

Usage:
    from release_gate.config import ReleaseGateConfigLoader

    loader = ReleaseGateConfigLoader(config_path=args.config, base_dir=args.checkout)
    config = loader.load()
    token_env = loader.get("registry", "token_env")
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from release_gate.errors import ConfigurationError
from release_gate.release_host import render_release_title

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RELEASE_GATE_CONFIG"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ${NAME}, where NAME starts with a letter or underscore
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


DEFAULT_CONFIG: Dict[str, Any] = {
    "registry": {
        "api_url": "https://crates.io/api/v1",
        "user_agent": "release-gate",
        "token_env": "CRATES_IO_TOKEN",
        "timeout_seconds": 30,
    },
    "release_host": {
        "api_url": "https://api.github.com",
        "repository": None,
        "repository_env": "GITHUB_REPOSITORY",
        "token_env": "GITHUB_TOKEN",
        "title_template": "Release {version}",
        "generate_notes": True,
        "make_latest": True,
        "timeout_seconds": 30,
    },
    "packager": {
        "target_dir": None,
        "all_features": True,
        "extension": ".crate",
    },
    "report": {
        "json_path": None,
        "text_path": None,
    },
    "logging": {
        "level": "INFO",
        "format": "text",
    },
}


def expand_env_vars_in_string(value: str, silent: bool = False) -> str:
    """
    Replace each ``${NAME}`` with the variable's value.

    Unset variables are left as the literal ``${NAME}``. Substituted values
    are not expanded again. Non-string input is returned unchanged.
    """
    if not isinstance(value, str):
        return value

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in os.environ:
            if not silent:
                logger.warning(f"Environment variable not set in config: {name}")
            return match.group(0)
        return os.environ[name]

    return ENV_VAR_PATTERN.sub(_replace, value)


def expand_env_vars_in_config(config: Any, silent: bool = False) -> Any:
    """Recursively expand environment variables in dicts, lists and strings."""
    if isinstance(config, dict):
        return {key: expand_env_vars_in_config(value, silent) for key, value in config.items()}
    if isinstance(config, list):
        return [expand_env_vars_in_config(item, silent) for item in config]
    if isinstance(config, str):
        return expand_env_vars_in_string(config, silent)
    return config


class ReleaseGateConfigLoader:
    """
    Configuration loader for the release gate.

    A missing config file means defaults. A config file that exists but is
    malformed raises ConfigurationError.
    """

    DEFAULT_CONFIG_FILES = [
        "release-gate.yml",
        "release-gate.yaml",
        "release-gate.json",
    ]

    def __init__(
        self,
        config_path: Optional[str] = None,
        base_dir: Optional[str] = None,
        silent: bool = False
    ):
        self.config_path = config_path
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.silent = silent
        self._config: Optional[Dict[str, Any]] = None
        self._resolved_path: Optional[Path] = None

    def _find_config_file(self) -> Optional[Path]:
        if self.config_path:
            path = Path(self.config_path)
            if path.exists():
                return path.resolve()
            raise ConfigurationError(f"Specified config file not found: {self.config_path}")

        env_config = os.environ.get(CONFIG_ENV_VAR)
        if env_config:
            path = Path(env_config)
            if path.exists():
                return path.resolve()
            if not self.silent:
                logger.warning(f"{CONFIG_ENV_VAR} path not found: {env_config}")

        for filename in self.DEFAULT_CONFIG_FILES:
            path = self.base_dir / filename
            if path.exists():
                return path.resolve()

        return None

    def _parse(self, content: str, filepath: Path) -> Dict[str, Any]:
        if filepath.suffix == ".json":
            try:
                data = json.loads(content) or {}
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"JSON parse error in {filepath}: {e}")
        else:
            try:
                data = yaml.safe_load(content) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"YAML parse error in {filepath}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root in {filepath} must be a mapping")
        return data

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; override wins, nested dicts merge."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _validate_config(self, config: Dict[str, Any]) -> None:
        for key in config.keys():
            if key not in DEFAULT_CONFIG and not self.silent:
                logger.warning(f"Unknown config key (ignored): {key}")

        for section in DEFAULT_CONFIG:
            value = config.get(section)
            if value is not None and not isinstance(value, dict):
                raise ConfigurationError(f"Config section '{section}' must be a mapping")

        for section in ("registry", "release_host"):
            timeout = (config.get(section) or {}).get("timeout_seconds")
            if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
                raise ConfigurationError(
                    f"{section}.timeout_seconds must be a positive number, got: {timeout}"
                )

        log_format = (config.get("logging") or {}).get("format")
        if log_format not in (None, "json", "text"):
            raise ConfigurationError(
                f"Invalid logging.format: {log_format}. Must be 'json' or 'text'."
            )

        log_level = (config.get("logging") or {}).get("level")
        if log_level is not None and str(log_level).upper() not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid logging.level: {log_level}. Must be one of {', '.join(LOG_LEVELS)}."
            )

        title_template = (config.get("release_host") or {}).get("title_template")
        if title_template is not None:
            if "{version}" not in str(title_template):
                raise ConfigurationError("release_host.title_template must contain {version}")
            render_release_title(title_template, version="0.0.0", name="package")

    def load(self) -> Dict[str, Any]:
        """
        Load and return the configuration (defaults + file config).

        Raises:
            ConfigurationError: If an explicit config path is missing or any
                config file is malformed
        """
        if self._config is not None:
            return self._config

        config = self._deep_merge({}, DEFAULT_CONFIG)

        config_file = self._find_config_file()
        if config_file:
            self._resolved_path = config_file
            try:
                content = config_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise ConfigurationError(f"Cannot read config file {config_file}: {e}")
            file_config = expand_env_vars_in_config(self._parse(content, config_file), self.silent)
            # an empty YAML section ("registry:") keeps its defaults
            file_config = {key: value for key, value in file_config.items() if value is not None}
            self._validate_config(file_config)
            config = self._deep_merge(config, file_config)
            if not self.silent:
                logger.info(f"Loaded config from: {config_file}")
        elif not self.silent:
            logger.debug("No config file found, using defaults")

        self._config = config
        return config

    def get(self, *keys: str, default: Any = None) -> Any:
        """Get a nested config value, e.g. ``get("registry", "api_url")``."""
        config = self.load()
        for key in keys:
            if isinstance(config, dict) and key in config:
                config = config[key]
            else:
                return default
        return config

    @property
    def resolved_path(self) -> Optional[Path]:
        return self._resolved_path

    def __repr__(self) -> str:
        path_str = str(self._resolved_path) if self._resolved_path else "None"
        return f"ReleaseGateConfigLoader(path={path_str})"


def merge_cli_with_config(
    cli_args: Dict[str, Any],
    config: Dict[str, Any],
    namespace: str
) -> Dict[str, Any]:
    """
    Overlay non-None CLI values on one config namespace.

    Returns:
        Merged configuration for the namespace.
    """
    result = dict(config.get(namespace, {}))
    for key, value in cli_args.items():
        if value is not None:
            result[key] = value
    return result
