"""CLI runner for Browser Logger with exit code mapping.

This module turns a resolved CLI configuration into a capture session, runs
it until Ctrl+C, SIGTERM or browser disconnection and maps startup and
runtime failures to exit codes.
"""

import asyncio
import logging
import signal
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Callable, Optional

import typer

from ..capture.browser_factory import BrowserLaunchError, BrowserNotFoundError
from ..capture.engine import SessionConfig, SessionController
from ..output.log_sink import CONSOLE_LOG_FILENAME, NETWORK_LOG_FILENAME, LogSinkError
from .config import CLIConfiguration, resolve_session_dir

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Signals that request an orderly shutdown
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitCode(IntEnum):
    """CLI exit codes."""
    SUCCESS = 0        # Session ran and was stopped cleanly
    START_ERROR = 1    # Browser not found, failed to launch, or logs not writable
    CONFIG_ERROR = 3   # Configuration or setup error
    RUNTIME_ERROR = 4  # Unexpected error while the session was running


def configure_logging(verbose: bool = False) -> None:
    """Configure diagnostic logging to stderr."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )


def build_session_config(config: CLIConfiguration, now: Optional[datetime] = None) -> SessionConfig:
    """Create the engine's session configuration from CLI configuration.

    Args:
        config: Merged CLI configuration
        now: Session start time used for unnamed session directories

    Returns:
        Fully resolved session configuration
    """
    executable = config.browser.executable_path
    return SessionConfig(
        output_dir=resolve_session_dir(config, now),
        # Silent mode wins over preview
        preview=config.output.preview and not config.output.silent,
        format_mode=config.output.format,
        browser_path=str(executable) if executable else None,
        window_size=(config.browser.window_width, config.browser.window_height),
        headless=config.browser.headless,
        user_data_dir=config.browser.user_data_dir,
        extra_args=config.browser.extra_args,
    )


class SessionRunner:
    """Runs one capture session from start to shutdown."""

    def __init__(
        self,
        session_config: SessionConfig,
        silent: bool = False,
        verbose: bool = False,
        controller_factory: Callable[[SessionConfig], SessionController] = SessionController,
    ):
        """Initialize session runner.

        Args:
            session_config: Resolved session configuration
            silent: Suppress banner and summary output
            verbose: Print tracebacks for unexpected errors
            controller_factory: Builds the session controller
        """
        self.session_config = session_config
        self.silent = silent
        self.verbose = verbose
        self.controller_factory = controller_factory
        self.controller: Optional[SessionController] = None
        self._signal_handlers_installed = False

    async def run(self) -> ExitCode:
        """Run the capture session until it is stopped.

        Returns:
            Exit code for the process
        """
        self.controller = self.controller_factory(self.session_config)

        try:
            await self.controller.start()
        except (BrowserNotFoundError, BrowserLaunchError, LogSinkError) as e:
            self._print_error(str(e))
            return ExitCode.START_ERROR
        except Exception as e:
            self._print_error(f"Failed to start session: {e}")
            return ExitCode.RUNTIME_ERROR

        self._install_signal_handlers()

        if not self.silent:
            self._print_header()

        try:
            await self.controller.wait_until_stopped()
            exit_code = ExitCode.SUCCESS

        except Exception as e:
            self._print_error(f"Runtime error: {e}")
            if self.verbose:
                import traceback
                traceback.print_exc()
            exit_code = ExitCode.RUNTIME_ERROR

        finally:
            self._remove_signal_handlers()
            await self.controller.stop()

        if not self.silent:
            self._print_summary()

        return exit_code

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self.controller.request_stop)
            self._signal_handlers_installed = True
        except (NotImplementedError, RuntimeError) as e:
            # Not supported on this platform, Ctrl+C arrives as KeyboardInterrupt
            logger.debug(f"Signal handlers unavailable: {e}")

    def _remove_signal_handlers(self) -> None:
        if not self._signal_handlers_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)
        self._signal_handlers_installed = False

    def _print_header(self) -> None:
        output_dir = Path(self.session_config.output_dir)
        typer.echo("🌐 Browser Logger started")
        typer.echo(f"📁 Log directory: {output_dir}")
        typer.echo(f"   Console: {output_dir / CONSOLE_LOG_FILENAME}")
        typer.echo(f"   Network: {output_dir / NETWORK_LOG_FILENAME}")
        if self.session_config.preview:
            typer.echo("👀 Preview mode: log lines are echoed below")
        typer.echo("Press Ctrl+C to stop")

    def _print_summary(self) -> None:
        stats = self.controller.stats
        typer.echo("")
        typer.echo("✅ Browser session ended")
        typer.echo(
            f"   Requests: {stats.total} total, {stats.logged} logged, {stats.filtered} filtered"
        )
        typer.echo(f"📁 Logs saved to: {self.session_config.output_dir}")

    def _print_error(self, message: str) -> None:
        typer.echo(f"❌ {message}", err=True)


def run_session(
    session_config: SessionConfig,
    silent: bool = False,
    verbose: bool = False,
) -> ExitCode:
    """Run a capture session on a fresh event loop.

    Args:
        session_config: Resolved session configuration
        silent: Suppress banner and summary output
        verbose: Print tracebacks for unexpected errors

    Returns:
        Exit code for the process
    """
    runner = SessionRunner(session_config, silent=silent, verbose=verbose)
    try:
        return asyncio.run(runner.run())
    except KeyboardInterrupt:
        # The session was already finalized while the run task unwound
        return ExitCode.SUCCESS
