"""Pydantic models for browser session capture records and network state.

This module defines the data models used by the capture engine: the records
written to the console and network logs, the per-request correlation state,
and the session-wide network statistics.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FormatMode(str, Enum):
    """Output format of the log streams."""
    DEFAULT = "default"
    JSON = "json"


class LogStream(str, Enum):
    """The two independent log streams of a session."""
    CONSOLE = "console"
    NETWORK = "network"


class RecordKind(str, Enum):
    """Kinds of records written to the log streams."""
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    PAGE_MARKER = "page_marker"
    CONSOLE = "console"
    ERROR = "error"
    BROWSER_LOG = "browser_log"
    REQUEST = "request"
    RESPONSE = "response"
    RESPONSE_BODY = "response_body"


class StackFrame(BaseModel):
    """One frame of a JavaScript call stack."""

    function_name: Optional[str] = Field(
        default=None,
        description="Function name (None for anonymous functions)"
    )
    url: str = Field(default="", description="Script URL")
    line_number: int = Field(default=0, description="0-based line number")
    column_number: int = Field(default=0, description="0-based column number")

    @classmethod
    def from_cdp(cls, frame: Dict[str, Any]) -> "StackFrame":
        """Create StackFrame from a CDP Runtime.CallFrame dict."""
        return cls(
            function_name=frame.get('functionName') or None,
            url=frame.get('url', ''),
            line_number=frame.get('lineNumber', 0),
            column_number=frame.get('columnNumber', 0),
        )

    @property
    def location(self) -> str:
        """Editor-style ``file:line:column`` location (1-based)."""
        return f"{self.url}:{self.line_number + 1}:{self.column_number + 1}"


class LogRecord(BaseModel):
    """Base for every record written to a log stream."""

    kind: RecordKind
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="Wall-clock time the record was emitted"
    )
    elapsed_seconds: float = Field(
        default=0.0,
        description="Seconds since the session started"
    )


class SessionStartEvent(LogRecord):
    """Header block written when a stream is opened."""

    kind: RecordKind = RecordKind.SESSION_START
    stream: LogStream
    output_dir: Path


class SessionEndEvent(LogRecord):
    """Footer block written when a stream is closed."""

    kind: RecordKind = RecordKind.SESSION_END
    stream: LogStream
    stats: Optional["NetworkStats"] = Field(
        default=None,
        description="Final network statistics (network stream only)"
    )


class PageMarkerEvent(LogRecord):
    """Marker noting that a new page/tab is being monitored."""

    kind: RecordKind = RecordKind.PAGE_MARKER
    url: str = Field(description="Page URL at attach time")


class ConsoleEvent(LogRecord):
    """Console API invocation (console.log, console.warn, ...)."""

    kind: RecordKind = RecordKind.CONSOLE
    level: str = Field(description="Console call type (log, warn, error, ...)")
    text: str = Field(description="Space-joined argument representations")
    source_location: Optional[str] = Field(
        default=None,
        description="file:line:column of the calling frame"
    )


class ErrorEvent(LogRecord):
    """Uncaught JavaScript exception."""

    kind: RecordKind = RecordKind.ERROR
    message: str = Field(description="Error description")
    stack_frames: List[StackFrame] = Field(
        default_factory=list,
        description="Call stack, innermost frame first"
    )


class BrowserLogEvent(LogRecord):
    """Browser-generated log entry (CDP Log domain)."""

    kind: RecordKind = RecordKind.BROWSER_LOG
    level: str = Field(description="Entry level (verbose, info, warning, error)")
    source: str = Field(default="other", description="Entry source (network, violation, ...)")
    text: str = Field(description="Entry text")
    source_location: Optional[str] = Field(default=None)


class NetworkRequestEvent(LogRecord):
    """Outgoing HTTP request."""

    kind: RecordKind = RecordKind.REQUEST
    request_id: str
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None


class NetworkResponseEvent(LogRecord):
    """HTTP response headers received for a request."""

    kind: RecordKind = RecordKind.RESPONSE
    request_id: str
    method: str
    url: str
    status: int
    status_text: str = ""
    duration_ms: int = Field(description="Response time minus request time")
    headers: Dict[str, str] = Field(default_factory=dict)
    filtered: bool = Field(
        default=False,
        description="True for failed responses of suppressed requests"
    )


class NetworkBodyEvent(LogRecord):
    """Response body appended after asynchronous retrieval."""

    kind: RecordKind = RecordKind.RESPONSE_BODY
    request_id: str
    available: bool = Field(description="False when the body could not be retrieved")
    size_bytes: Optional[int] = None
    content: Optional[str] = None
    base64_encoded: bool = False


class PendingRequest(BaseModel):
    """In-flight request awaiting its response.

    Frozen: the logging decision is made once at request start.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    start_timestamp: float = Field(description="CDP monotonic timestamp in seconds")
    should_log: bool


class NetworkStats(BaseModel):
    """Session-wide network counters.

    Counters only grow; ``logged + filtered == total`` always holds because
    ``record_request`` updates ``total`` together with one of the two.
    """

    total: int = 0
    logged: int = 0
    filtered: int = 0
    filtered_errors: int = Field(
        default=0,
        description="Suppressed requests surfaced because the response failed"
    )

    def record_request(self, should_log: bool) -> None:
        """Count a new request and its logging decision."""
        self.total += 1
        if should_log:
            self.logged += 1
        else:
            self.filtered += 1

    def record_filtered_error(self) -> None:
        """Count a suppressed request whose response status was >= 400."""
        self.filtered_errors += 1

    def snapshot(self) -> "NetworkStats":
        """Return an independent copy of the current counters."""
        return self.model_copy()


SessionEndEvent.model_rebuild()
