"""Pure formatting functions turning capture records into log text.

Every record kind has a text formatter. ``render_record`` dispatches on the
record kind in default mode and serializes the record as one JSON object per
line in json mode.
"""

import json
from typing import Any, Callable, Dict, List, Mapping, Sequence

from ..models.capture import (
    BrowserLogEvent,
    ConsoleEvent,
    ErrorEvent,
    FormatMode,
    LogRecord,
    LogStream,
    NetworkBodyEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    PageMarkerEvent,
    RecordKind,
    SessionEndEvent,
    SessionStartEvent,
)

TERMINATOR = "=" * 40
OBJECT_PLACEHOLDER = "[Object]"
BASE64_PLACEHOLDER = "[Base64 Encoded Data]"
LEVEL_WIDTH = 7

_STREAM_TITLES = {
    LogStream.CONSOLE: "Console Output",
    LogStream.NETWORK: "Network Activity",
}


def format_stamp(record: LogRecord) -> str:
    """Wall-clock time plus elapsed session time, e.g. ``14:03:07 +12.345s``."""
    return f"{record.timestamp.strftime('%H:%M:%S')} +{record.elapsed_seconds:.3f}s"


def human_size(num_bytes: int) -> str:
    """Format a byte count as B, KB or MB with one decimal."""
    if num_bytes <= 0:
        return "0 B"
    size = float(num_bytes)
    for unit in ("B", "KB"):
        if size < 1024:
            return f"{_trim_decimal(size)} {unit}"
        size /= 1024
    return f"{_trim_decimal(size)} MB"


def _trim_decimal(value: float) -> str:
    text = f"{value:.1f}"
    return text[:-2] if text.endswith(".0") else text


def format_console_arg(arg: Mapping[str, Any]) -> str:
    """Render one CDP RemoteObject console argument.

    Prefers the literal value, then an unserializable value (NaN, 1n, ...),
    then the textual description, then a fixed placeholder.
    """
    if 'value' in arg:
        return _js_literal(arg['value'])
    if arg.get('unserializableValue'):
        return str(arg['unserializableValue'])
    if arg.get('description'):
        return str(arg['description'])
    return OBJECT_PLACEHOLDER


def _js_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def join_console_args(args: Sequence[Mapping[str, Any]]) -> str:
    """Join console arguments with single spaces."""
    return " ".join(format_console_arg(arg) for arg in args)


def format_headers(headers: Mapping[str, str]) -> List[str]:
    """Render a header block, or nothing when there are no headers."""
    if not headers:
        return []
    lines = ["Headers:"]
    lines.extend(f"  {name}: {value}" for name, value in headers.items())
    return lines


def format_session_start(event: SessionStartEvent) -> str:
    title = _STREAM_TITLES[event.stream]
    return "\n".join([
        f"=== Browser Logger Session - {title} ===",
        f"Started: {event.timestamp.isoformat()}",
        f"Log Directory: {event.output_dir}",
        "---",
        "",
    ])


def format_session_end(event: SessionEndEvent) -> str:
    lines = [
        "",
        "---",
        f"=== Session Ended: {event.timestamp.isoformat()} ===",
    ]
    if event.stats is not None:
        lines.extend([
            "=== Network Statistics ===",
            f"Total Requests: {event.stats.total}",
            f"Logged: {event.stats.logged}",
            f"Filtered: {event.stats.filtered}",
            f"Filtered Errors Surfaced: {event.stats.filtered_errors}",
        ])
    return "\n".join(lines)


def format_page_marker(event: PageMarkerEvent) -> str:
    return f"\n[INFO] Monitoring new page/tab: {event.url or 'about:blank'}"


def format_console(event: ConsoleEvent) -> str:
    """Format a console call as ``[stamp] CONSOLE.<TYPE> text``."""
    level = event.level.upper().ljust(LEVEL_WIDTH)
    line = f"[{format_stamp(event)}] CONSOLE.{level} {event.text}"
    if event.source_location:
        line += f"\n  Source: {event.source_location}"
    return line


def format_error(event: ErrorEvent) -> str:
    """Format an uncaught exception with one ``at`` line per frame."""
    lines = [f"[{format_stamp(event)}] JS.ERROR {event.message}"]
    for frame in event.stack_frames:
        name = frame.function_name or "(anonymous)"
        lines.append(f"    at {name} ({frame.location})")
    return "\n".join(lines)


def format_browser_log(event: BrowserLogEvent) -> str:
    level = event.level.upper().ljust(LEVEL_WIDTH)
    line = f"[{format_stamp(event)}] BROWSER.{level} [{event.source}] {event.text}"
    if event.source_location:
        line += f"\n  Source: {event.source_location}"
    return line


def format_request(event: NetworkRequestEvent) -> str:
    lines = [
        "",
        f"[{format_stamp(event)}] {TERMINATOR}",
        f"REQUEST: {event.method} {event.url}",
    ]
    lines.extend(format_headers(event.headers))
    if event.body:
        lines.append("Body:")
        lines.append(f"  {event.body}")
    return "\n".join(lines)


def format_response(event: NetworkResponseEvent) -> str:
    status = f"{event.status} {event.status_text}".rstrip()
    if event.filtered:
        # Minimal line for a failed request whose request block was suppressed
        return "\n".join([
            "",
            f"[{format_stamp(event)}] RESPONSE: {status} ({event.duration_ms}ms) "
            f"[filtered] {event.method} {event.url}",
            TERMINATOR,
        ])
    lines = [
        "",
        f"[{format_stamp(event)}] RESPONSE: {status} ({event.duration_ms}ms)",
        f"  {event.method} {event.url}",
    ]
    lines.extend(format_headers(event.headers))
    return "\n".join(lines)


def format_body(event: NetworkBodyEvent) -> str:
    """Format a response body block, always closed by the terminator."""
    if not event.available:
        head = "Body: [Not Available]"
    elif event.base64_encoded:
        head = f"Body ({human_size(event.size_bytes or 0)}): {BASE64_PLACEHOLDER}"
    elif not event.content:
        head = "Body: [Empty]"
    else:
        head = f"Body ({human_size(event.size_bytes or 0)}):\n  {event.content}"
    return f"{head}\n{TERMINATOR}"


_TEXT_FORMATTERS: Dict[RecordKind, Callable[[Any], str]] = {
    RecordKind.SESSION_START: format_session_start,
    RecordKind.SESSION_END: format_session_end,
    RecordKind.PAGE_MARKER: format_page_marker,
    RecordKind.CONSOLE: format_console,
    RecordKind.ERROR: format_error,
    RecordKind.BROWSER_LOG: format_browser_log,
    RecordKind.REQUEST: format_request,
    RecordKind.RESPONSE: format_response,
    RecordKind.RESPONSE_BODY: format_body,
}


def render_record(record: LogRecord, mode: FormatMode = FormatMode.DEFAULT) -> str:
    """Render a record for the given format mode."""
    if mode == FormatMode.JSON:
        return record.model_dump_json()
    return _TEXT_FORMATTERS[record.kind](record)
