"""Capture data models package."""

from .capture import (
    FormatMode,
    LogStream,
    RecordKind,
    StackFrame,
    LogRecord,
    SessionStartEvent,
    SessionEndEvent,
    PageMarkerEvent,
    ConsoleEvent,
    ErrorEvent,
    BrowserLogEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    NetworkBodyEvent,
    PendingRequest,
    NetworkStats,
)

__all__ = [
    # Enums
    'FormatMode',
    'LogStream',
    'RecordKind',

    # Log records
    'StackFrame',
    'LogRecord',
    'SessionStartEvent',
    'SessionEndEvent',
    'PageMarkerEvent',
    'ConsoleEvent',
    'ErrorEvent',
    'BrowserLogEvent',
    'NetworkRequestEvent',
    'NetworkResponseEvent',
    'NetworkBodyEvent',

    # Network state
    'PendingRequest',
    'NetworkStats',
]
