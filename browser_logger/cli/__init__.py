"""CLI module for Browser Logger.

This package provides the command-line interface: configuration loading with
precedence handling, the session runner and exit code mapping.
"""

from .runner import (
    # Exit codes
    ExitCode,

    # Session runner
    SessionRunner,
    run_session,
    build_session_config,
)
from .config import (
    # Configuration
    CLIConfiguration,
    ConfigurationLoader,
    load_configuration,
)

__all__ = [
    # Exit codes
    'ExitCode',

    # Session runner
    'SessionRunner',
    'run_session',
    'build_session_config',

    # Configuration
    'CLIConfiguration',
    'ConfigurationLoader',
    'load_configuration',
]
