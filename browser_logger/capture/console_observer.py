"""Console and page error observers for capturing browser events.

This module provides ConsoleObserver and PageErrorObserver classes that
subscribe to CDP Runtime/Log events on one page session and forward every
console call, browser log entry and uncaught exception to the log sink.
"""

import logging
from typing import Any, Dict

from playwright.async_api import CDPSession

from ..models.capture import BrowserLogEvent, ConsoleEvent, ErrorEvent, StackFrame
from ..output.formatters import join_console_args
from ..output.log_sink import LogSink

logger = logging.getLogger(__name__)

# CDP console types that differ from the console method name
_LEVEL_ALIASES = {
    'warning': 'warn',
}


def normalize_console_level(console_type: str) -> str:
    """Map a CDP console call type to its console method name."""
    return _LEVEL_ALIASES.get(console_type, console_type or 'log')


class ConsoleObserver:
    """Observer for console API calls and browser log entries."""

    def __init__(self, session: CDPSession, sink: LogSink):
        """Initialize console observer for a page session.

        Args:
            session: CDP session attached to the page
            sink: Log sink receiving console records
        """
        self.session = session
        self.sink = sink
        self.message_count = 0

        self._setup_listeners()

    def _setup_listeners(self) -> None:
        """Setup CDP console event listeners."""
        self.session.on("Runtime.consoleAPICalled", self._on_console_api_called)
        self.session.on("Log.entryAdded", self._on_log_entry_added)
        logger.debug("Console observer listeners setup complete")

    def _on_console_api_called(self, params: Dict[str, Any]) -> None:
        """Handle Runtime.consoleAPICalled event.

        Args:
            params: CDP event parameters
        """
        try:
            location = None
            frames = (params.get('stackTrace') or {}).get('callFrames') or []
            if frames:
                location = StackFrame.from_cdp(frames[0]).location

            event = ConsoleEvent(
                level=normalize_console_level(params.get('type', 'log')),
                text=join_console_args(params.get('args') or []),
                source_location=location,
                **self.sink.stamp(),
            )
            self.sink.emit_console(event)
            self.message_count += 1

            logger.debug(f"Console {event.level}: {event.text[:100]}")

        except Exception as e:
            logger.error(f"Error processing console message: {e}")

    def _on_log_entry_added(self, params: Dict[str, Any]) -> None:
        """Handle Log.entryAdded event.

        Args:
            params: CDP event parameters
        """
        try:
            entry = params.get('entry') or {}
            location = None
            if entry.get('url'):
                location = entry['url']
                if entry.get('lineNumber') is not None:
                    location += f":{entry['lineNumber'] + 1}"

            event = BrowserLogEvent(
                level=entry.get('level', 'info'),
                source=entry.get('source', 'other'),
                text=entry.get('text', ''),
                source_location=location,
                **self.sink.stamp(),
            )
            self.sink.emit_console(event)
            self.message_count += 1

        except Exception as e:
            logger.error(f"Error processing log entry: {e}")

    def __repr__(self) -> str:
        return f"ConsoleObserver(messages={self.message_count})"


class PageErrorObserver:
    """Observer for uncaught JavaScript exceptions."""

    def __init__(self, session: CDPSession, sink: LogSink):
        """Initialize page error observer.

        Args:
            session: CDP session attached to the page
            sink: Log sink receiving error records
        """
        self.session = session
        self.sink = sink
        self.error_count = 0

        self._setup_listener()

    def _setup_listener(self) -> None:
        """Setup CDP exception event listener."""
        self.session.on("Runtime.exceptionThrown", self._on_exception_thrown)
        logger.debug("Page error observer listener setup complete")

    @staticmethod
    def describe_exception(details: Dict[str, Any]) -> str:
        """Build the error message from CDP exceptionDetails.

        Combines the short text (usually ``Uncaught``) with the first line of
        the exception description, which carries the error type and message.
        """
        text = (details.get('text') or '').strip()
        description = ((details.get('exception') or {}).get('description') or '').strip()
        first_line = description.splitlines()[0] if description else ''

        if text and first_line and first_line not in text:
            return f"{text} {first_line}"
        return text or first_line or "Unknown error"

    def _on_exception_thrown(self, params: Dict[str, Any]) -> None:
        """Handle Runtime.exceptionThrown event.

        Args:
            params: CDP event parameters
        """
        try:
            details = params.get('exceptionDetails') or {}
            frames = (details.get('stackTrace') or {}).get('callFrames') or []

            event = ErrorEvent(
                message=self.describe_exception(details),
                stack_frames=[StackFrame.from_cdp(frame) for frame in frames],
                **self.sink.stamp(),
            )
            self.sink.emit_console(event)
            self.error_count += 1

            logger.debug(f"Page error: {event.message}")

        except Exception as e:
            logger.error(f"Error processing page error: {e}")

    def __repr__(self) -> str:
        return f"PageErrorObserver(errors={self.error_count})"


class CombinedObserver:
    """Combined observer for both console messages and page errors."""

    def __init__(self, session: CDPSession, sink: LogSink):
        """Initialize combined observer.

        Args:
            session: CDP session attached to the page
            sink: Log sink receiving console records
        """
        self.session = session
        self.console_observer = ConsoleObserver(session, sink)
        self.error_observer = PageErrorObserver(session, sink)

    def get_stats(self) -> Dict[str, int]:
        """Get combined statistics.

        Returns:
            Dictionary with message and error counts
        """
        return {
            'console_messages': self.console_observer.message_count,
            'page_errors': self.error_observer.error_count,
        }

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (
            f"CombinedObserver(console_messages={stats['console_messages']}, "
            f"page_errors={stats['page_errors']})"
        )
