"""Configuration system for the Browser Logger CLI with precedence handling.

Configuration is merged from several sources, highest precedence first:
CLI flags > environment variables > explicit config file >
auto-discovered config file > defaults
"""

import json
import os
import shlex
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

from ..models.capture import FormatMode

# Directory name probed in the working directory before falling back to home
LOCAL_LOG_DIR = "logs"
SESSION_DIR_PREFIX = "browser-"
SESSION_TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"


class OutputConfig(BaseModel):
    """Log output configuration."""
    log_root: Optional[Path] = Field(default=None, description="Root directory for session logs")
    session_name: Optional[str] = Field(default=None, description="Session directory suffix")
    format: FormatMode = Field(default=FormatMode.DEFAULT, description="Log record format")
    preview: bool = Field(default=False, description="Echo log lines to the terminal")
    silent: bool = Field(default=False, description="Suppress all terminal output")

    @field_validator('format', mode='before')
    @classmethod
    def validate_format(cls, v):
        if isinstance(v, str) and v.lower() not in ('default', 'json'):
            raise ValueError("format must be one of: default, json")
        return v.lower() if isinstance(v, str) else v

    @field_validator('session_name')
    @classmethod
    def validate_session_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if '/' in v or '\\' in v:
            raise ValueError("session name must not contain path separators")
        return v


class BrowserSettings(BaseModel):
    """Browser launch configuration."""
    executable_path: Optional[Path] = Field(default=None, description="Browser executable override")
    window_width: int = Field(default=1920, ge=200, le=10000, description="Window width in pixels")
    window_height: int = Field(default=1080, ge=200, le=10000, description="Window height in pixels")
    headless: bool = Field(default=False, description="Run the browser without a window")
    user_data_dir: Optional[Path] = Field(default=None, description="Profile directory (temporary profile if unset)")
    extra_args: List[str] = Field(default_factory=list, description="Additional Chromium command line switches")


class LoggingConfig(BaseModel):
    """Diagnostic logging configuration."""
    verbose: bool = Field(default=False, description="Verbose diagnostic logging")


class CLIConfiguration(BaseModel):
    """Complete CLI configuration with all sections."""

    output: OutputConfig = Field(default_factory=OutputConfig)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Metadata
    config_file_path: Optional[Path] = Field(default=None, description="Source config file")
    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")


class ConfigurationLoader:
    """Loads and merges configuration from multiple sources with proper precedence."""

    # Environment variable prefix
    ENV_PREFIX = "BROWSER_LOGGER_"

    # Default configuration file names (searched in order)
    DEFAULT_CONFIG_FILES = [
        "browser-logger.yaml",
        "browser-logger.yml",
        ".browser-logger.yaml",
        ".browser-logger.yml",
        "browser-logger.json",
        ".browser-logger.json",
    ]

    BOOLEAN_SETTINGS = ('.preview', '.silent', '.verbose', '.headless')
    INTEGER_SETTINGS = ('.window_width', '.window_height')
    PATH_SETTINGS = ('.log_root', '.executable_path', '.user_data_dir')
    LIST_SETTINGS = ('.extra_args',)

    def __init__(self):
        self.loaded_sources: List[str] = []

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        search_paths: Optional[List[Path]] = None
    ) -> CLIConfiguration:
        """Load configuration with proper precedence.

        Args:
            config_file: Explicitly specified config file
            cli_overrides: CLI flag overrides
            search_paths: Paths to search for config files

        Returns:
            Merged configuration

        Raises:
            FileNotFoundError: If the explicit config file does not exist
            ValueError: If a config file cannot be parsed
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = {}

        if not config_file:
            discovered = self._discover_config_file(search_paths or [Path.cwd()])
            if discovered:
                source_file, discovered_config = discovered
                config_data = self._merge_config(config_data, discovered_config)
                self.loaded_sources.append(f"auto-discovered: {source_file}")

        if config_file:
            if not config_file.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_file}")

            file_config = self._load_config_file(config_file)
            config_data = self._merge_config(config_data, file_config)
            self.loaded_sources.append(f"config file: {config_file}")

        env_config = self._load_environment_variables()
        if env_config:
            config_data = self._merge_config(config_data, env_config)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            config_data = self._merge_config(config_data, cli_overrides)
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        if config_file:
            config_data["config_file_path"] = config_file

        return CLIConfiguration(**config_data)

    def _discover_config_file(self, search_paths: List[Path]) -> Optional[Tuple[Path, Dict[str, Any]]]:
        """Find the first default config file in the search paths."""
        for search_path in search_paths:
            for config_filename in self.DEFAULT_CONFIG_FILES:
                config_path = search_path / config_filename
                if config_path.is_file():
                    return config_path, self._load_config_file(config_path)
        return None

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        suffix = config_path.suffix.lower()
        if suffix not in ('.yaml', '.yml', '.json'):
            raise ValueError(f"Unsupported config file format: {config_path.suffix}")

        try:
            content = config_path.read_text(encoding='utf-8')
            if suffix == '.json':
                data = json.loads(content)
            else:
                data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ValueError(f"Error loading config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        env_mapping = {
            f"{self.ENV_PREFIX}DIR": "output.log_root",
            f"{self.ENV_PREFIX}SESSION_NAME": "output.session_name",
            f"{self.ENV_PREFIX}FORMAT": "output.format",
            f"{self.ENV_PREFIX}PREVIEW": "output.preview",
            f"{self.ENV_PREFIX}SILENT": "output.silent",
            f"{self.ENV_PREFIX}BROWSER": "browser.executable_path",
            f"{self.ENV_PREFIX}WINDOW_WIDTH": "browser.window_width",
            f"{self.ENV_PREFIX}WINDOW_HEIGHT": "browser.window_height",
            f"{self.ENV_PREFIX}HEADLESS": "browser.headless",
            f"{self.ENV_PREFIX}USER_DATA_DIR": "browser.user_data_dir",
            f"{self.ENV_PREFIX}EXTRA_ARGS": "browser.extra_args",
            f"{self.ENV_PREFIX}VERBOSE": "logging.verbose",
        }

        for env_var, config_path in env_mapping.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value, config_path)
                self._set_nested_value(config, config_path, converted_value)

        return config

    def _convert_env_value(self, value: str, config_path: str) -> Any:
        """Convert environment variable string to appropriate type."""
        if config_path.endswith(self.BOOLEAN_SETTINGS):
            return value.lower() in ('true', '1', 'yes', 'on')

        if config_path.endswith(self.INTEGER_SETTINGS):
            return int(value)

        if config_path.endswith(self.PATH_SETTINGS):
            return Path(value).expanduser() if value else None

        if config_path.endswith(self.LIST_SETTINGS):
            return shlex.split(value)

        return value

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries, with override taking precedence."""
        if not override:
            return base

        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    search_paths: Optional[List[Path]] = None
) -> CLIConfiguration:
    """Convenience function to load configuration.

    Args:
        config_file: Path to configuration file
        cli_overrides: CLI flag overrides
        search_paths: Paths to search for config files

    Returns:
        Loaded and merged configuration
    """
    loader = ConfigurationLoader()
    return loader.load_configuration(config_file, cli_overrides, search_paths)


def load_config_file(config_file: Path) -> CLIConfiguration:
    """Parse and validate a single configuration file without merging.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be parsed or fails validation
    """
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    data = ConfigurationLoader()._load_config_file(config_file)
    return CLIConfiguration(**data, config_file_path=config_file)


def print_configuration(config: CLIConfiguration, format: str = "yaml") -> str:
    """Render configuration in the given format for debugging.

    Args:
        config: Configuration to print
        format: Output format (yaml, json)

    Returns:
        Formatted configuration string
    """
    config_dict = config.model_dump(
        mode="json",
        exclude={'loaded_from', 'config_file_path'},
        exclude_none=False
    )

    if format.lower() == "json":
        return json.dumps(config_dict, indent=2, default=str)
    return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)


def validate_configuration(config: CLIConfiguration) -> List[str]:
    """Validate configuration and return list of validation errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    executable = config.browser.executable_path
    if executable and not executable.exists():
        errors.append(f"Browser executable not found: {executable}")

    log_root = config.output.log_root
    if log_root and log_root.exists() and not log_root.is_dir():
        errors.append(f"Log root is not a directory: {log_root}")

    return errors


def resolve_log_root(
    log_root: Optional[Path] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Path:
    """Resolve the directory that holds session directories.

    An explicit root wins; otherwise ``./logs`` is used when it already
    exists, else ``~/logs``.
    """
    if log_root:
        return Path(log_root).expanduser()

    local_logs = (cwd or Path.cwd()) / LOCAL_LOG_DIR
    if local_logs.is_dir():
        return local_logs

    return (home or Path.home()) / LOCAL_LOG_DIR


def session_dir_name(session_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Name of one session's log directory.

    Returns ``browser-<name>`` for a named session, else a timestamped
    ``browser-YYYY-MM-DD-HH-MM-SS``.
    """
    if session_name:
        return f"{SESSION_DIR_PREFIX}{session_name}"
    return f"{SESSION_DIR_PREFIX}{(now or datetime.now()).strftime(SESSION_TIMESTAMP_FORMAT)}"


def resolve_session_dir(config: CLIConfiguration, now: Optional[datetime] = None) -> Path:
    """Full path of the log directory for the configured session."""
    return resolve_log_root(config.output.log_root) / session_dir_name(config.output.session_name, now)
