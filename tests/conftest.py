"""Shared test fixtures and configuration for Browser Logger tests."""

from collections import defaultdict
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_logger.models.capture import NetworkStats
from browser_logger.output.log_sink import LogSink


class FakeCDPSession:
    """In-memory stand-in for a Playwright CDPSession.

    ``responses`` maps a protocol method to its result; an exception instance
    is raised instead of returned.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.handlers = defaultdict(list)
        self.send = AsyncMock(side_effect=self._send)
        self.detach = AsyncMock()

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def emit(self, event, params):
        for handler in list(self.handlers[event]):
            handler(params)

    async def _send(self, method, params=None):
        result = self.responses.get(method, {})
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def sent_methods(self):
        return [call.args[0] for call in self.send.await_args_list]


def _read_log(path: Path) -> str:
    return path.read_text(encoding='utf-8')


@pytest.fixture
def read_log():
    """Read a whole log file."""
    return _read_log


@pytest.fixture
def make_cdp_session():
    """Factory for fake CDP sessions with canned responses."""
    return FakeCDPSession


@pytest.fixture
def cdp_session():
    """Fake CDP session with no canned responses."""
    return FakeCDPSession()


@pytest.fixture
def stats():
    """Fresh session-wide network counters."""
    return NetworkStats()


@pytest.fixture
def sink(tmp_path):
    """Initialized log sink writing into a temporary session directory."""
    log_sink = LogSink(tmp_path / "browser-test")
    log_sink.initialize()
    yield log_sink
    log_sink.finalize()


@pytest.fixture
def mock_page():
    """Mock Playwright page at a fixed URL."""
    page = MagicMock()
    page.url = "https://app.local/dashboard"
    page.is_closed.return_value = False
    page.on = MagicMock()
    return page
