"""Log output: record formatting and the two-stream log sink."""

from .formatters import (
    TERMINATOR,
    human_size,
    join_console_args,
    render_record,
)
from .log_sink import LogSink, LogSinkError

__all__ = [
    'TERMINATOR',
    'human_size',
    'join_console_args',
    'render_record',
    'LogSink',
    'LogSinkError',
]
