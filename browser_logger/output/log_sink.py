"""Log sink owning the console and network output streams of a session.

The LogSink is the single writer for both files. It opens each stream exactly
once, writes header/footer framing, optionally echoes lines to the terminal
and silently drops writes that arrive after the streams were closed.
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union

import typer

from ..models.capture import (
    FormatMode,
    LogRecord,
    LogStream,
    NetworkStats,
    SessionEndEvent,
    SessionStartEvent,
)
from .formatters import render_record

logger = logging.getLogger(__name__)

CONSOLE_LOG_FILENAME = "console.log"
NETWORK_LOG_FILENAME = "network.log"


class LogSinkError(OSError):
    """Raised when the output directory or streams cannot be opened."""


class LogSink:
    """Append-only owner of the console.log and network.log streams."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        preview: bool = False,
        format_mode: Union[str, FormatMode] = FormatMode.DEFAULT,
    ):
        """Initialize log sink.

        Args:
            output_dir: Directory receiving console.log and network.log
            preview: Echo every written line to the terminal
            format_mode: ``default`` text blocks or ``json`` lines
        """
        self.output_dir = Path(output_dir)
        self.preview = preview
        self.format_mode = FormatMode(format_mode)

        self.started_at: datetime = datetime.now()
        self._start_monotonic = time.monotonic()

        self._console_stream: Optional[TextIO] = None
        self._network_stream: Optional[TextIO] = None
        self._initialized = False
        self._closed = False

    @property
    def console_path(self) -> Path:
        return self.output_dir / CONSOLE_LOG_FILENAME

    @property
    def network_path(self) -> Path:
        return self.output_dir / NETWORK_LOG_FILENAME

    @property
    def is_open(self) -> bool:
        """True between initialize() and finalize()."""
        return self._initialized and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def stamp(self) -> Dict[str, Any]:
        """Timestamp pair for a new record (wall clock, elapsed seconds)."""
        return {
            'timestamp': datetime.now(),
            'elapsed_seconds': time.monotonic() - self._start_monotonic,
        }

    def initialize(self) -> None:
        """Create the output directory, open both streams and write headers.

        Raises:
            LogSinkError: If the directory or files cannot be created, or the
                sink was already initialized
        """
        if self._initialized:
            raise LogSinkError(f"Log sink already initialized: {self.output_dir}")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            # Line buffered so every written line reaches the OS immediately
            self._console_stream = open(self.console_path, 'w', encoding='utf-8', buffering=1)
            self._network_stream = open(self.network_path, 'w', encoding='utf-8', buffering=1)
        except OSError as e:
            self._close_streams()
            raise LogSinkError(f"Cannot open log directory {self.output_dir}: {e}") from e

        self.started_at = datetime.now()
        self._start_monotonic = time.monotonic()
        self._initialized = True

        for stream in (LogStream.CONSOLE, LogStream.NETWORK):
            header = SessionStartEvent(
                stream=stream,
                output_dir=self.output_dir,
                timestamp=self.started_at,
            )
            self._write(stream, render_record(header, self.format_mode), echo=False)

        logger.info(f"Log sink initialized: {self.output_dir}")

    def write_console(self, line: str) -> bool:
        """Append a line to console.log.

        Returns:
            False if the line was dropped because the stream is not open
        """
        return self._write(LogStream.CONSOLE, line)

    def write_network(self, line: str) -> bool:
        """Append a line to network.log.

        Returns:
            False if the line was dropped because the stream is not open
        """
        return self._write(LogStream.NETWORK, line)

    def emit_console(self, record: LogRecord) -> bool:
        """Render a record in the sink's format mode and write it to console.log."""
        return self.write_console(render_record(record, self.format_mode))

    def emit_network(self, record: LogRecord) -> bool:
        """Render a record in the sink's format mode and write it to network.log."""
        return self.write_network(render_record(record, self.format_mode))

    def finalize(self, stats: Optional[NetworkStats] = None) -> None:
        """Write footers, then flush and close both streams.

        The network footer carries the final statistics. Calling finalize on a
        closed or never-initialized sink is a no-op.
        """
        if not self.is_open:
            return

        console_footer = SessionEndEvent(stream=LogStream.CONSOLE, **self.stamp())
        network_footer = SessionEndEvent(
            stream=LogStream.NETWORK,
            stats=stats.snapshot() if stats is not None else NetworkStats(),
            **self.stamp(),
        )
        self._write(LogStream.CONSOLE, render_record(console_footer, self.format_mode), echo=False)
        self._write(LogStream.NETWORK, render_record(network_footer, self.format_mode), echo=False)

        self._closed = True
        self._close_streams()
        logger.info(f"Log sink closed: {self.output_dir}")

    def _write(self, stream: LogStream, line: str, echo: bool = True) -> bool:
        if not self.is_open:
            logger.debug(f"Dropping {stream.value} write after close")
            return False

        target = self._console_stream if stream == LogStream.CONSOLE else self._network_stream
        target.write(line + '\n')

        if echo and self.preview:
            typer.echo(line)
        return True

    def _close_streams(self) -> None:
        for attr in ('_console_stream', '_network_stream'):
            stream = getattr(self, attr)
            if stream is None:
                continue
            try:
                stream.flush()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing log stream: {e}")
            setattr(self, attr, None)

    def __repr__(self) -> str:
        state = "open" if self.is_open else ("closed" if self._closed else "new")
        return f"LogSink(dir={self.output_dir}, format={self.format_mode.value}, state={state})"
