"""Unit tests for the session controller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from browser_logger.capture.browser_factory import BrowserConfig, BrowserLaunchError, BrowserNotFoundError
from browser_logger.capture.engine import SessionConfig, SessionController
from browser_logger.models.capture import FormatMode


def make_page(url="https://app.local/"):
    page = MagicMock()
    page.url = url
    page.is_closed.return_value = False
    return page


def fake_page_session(attach_result=True):
    """Replacement for PageSession that attaches without CDP."""
    def factory(page, sink, stats):
        page_session = MagicMock()
        page_session.page = page
        page_session.target_id = f"target-{id(page)}"
        page_session.attach = AsyncMock(return_value=attach_result)
        return page_session
    return factory


def handler_for(mock_on, event):
    for call in mock_on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"No handler registered for {event}")


class TestSessionConfig:
    """Tests for SessionConfig class."""

    def test_defaults(self, tmp_path):
        config = SessionConfig(output_dir=str(tmp_path))

        assert config.output_dir == tmp_path
        assert config.preview is False
        assert config.format_mode == FormatMode.DEFAULT
        assert config.window_size == (1920, 1080)

    def test_browser_config(self, tmp_path):
        config = SessionConfig(output_dir=tmp_path, browser_path="/usr/bin/chromium", window_size=(800, 600))

        browser_config = config.create_browser_config()

        assert browser_config.executable_path == "/usr/bin/chromium"
        assert browser_config.window_size == (800, 600)
        assert browser_config.headless is False


class TestSessionController:
    """Tests for SessionController class."""

    @pytest.fixture
    def executable(self, tmp_path):
        path = tmp_path / "chrome"
        path.write_text("")
        return path

    @pytest.fixture
    def context(self):
        context = MagicMock()
        context.pages = [make_page()]
        context.on = MagicMock()
        return context

    @pytest.fixture
    def factory(self, executable, context):
        factory = MagicMock()
        factory.config = BrowserConfig(executable_path=str(executable))
        factory.start = AsyncMock(return_value=context)
        factory.stop = AsyncMock()
        return factory

    @pytest.fixture
    def session_config(self, tmp_path):
        return SessionConfig(output_dir=tmp_path / "logs" / "browser-test")

    @pytest.fixture
    def page_sessions(self):
        with patch('browser_logger.capture.engine.PageSession', side_effect=fake_page_session()) as mock_cls:
            yield mock_cls

    @pytest.mark.asyncio
    async def test_start_attaches_existing_pages(self, session_config, factory, context, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)

        await controller.start()

        assert controller.is_running
        assert len(controller.attachments) == 1
        assert session_config.output_dir.joinpath("console.log").exists()
        events = [call.args[0] for call in context.on.call_args_list]
        assert "page" in events
        assert "close" in events
        await controller.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, session_config, factory, page_sessions, read_log):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        await controller.stop()
        await controller.stop()

        assert controller.is_stopped
        factory.stop.assert_awaited_once_with(close_browser=True)
        assert read_log(controller.sink.console_path).count("=== Session Ended:") == 1
        assert read_log(controller.sink.network_path).count("=== Network Statistics ===") == 1

    @pytest.mark.asyncio
    async def test_missing_browser_is_fatal(self, session_config, factory, tmp_path):
        factory.config = BrowserConfig(executable_path=str(tmp_path / "missing"))
        controller = SessionController(session_config, browser_factory=factory)

        with pytest.raises(BrowserNotFoundError):
            await controller.start()

        factory.start.assert_not_awaited()
        assert not session_config.output_dir.exists()
        assert controller.is_stopped

    @pytest.mark.asyncio
    async def test_launch_failure_finalizes_logs(self, session_config, factory, read_log):
        factory.start.side_effect = BrowserLaunchError("Failed to launch")
        controller = SessionController(session_config, browser_factory=factory)

        with pytest.raises(BrowserLaunchError):
            await controller.start()

        assert "=== Session Ended:" in read_log(controller.sink.console_path)
        factory.stop.assert_awaited_once_with(close_browser=False)

    @pytest.mark.asyncio
    async def test_cancelled_launch_finalizes_logs(self, session_config, factory, read_log):
        """Ctrl+C during browser launch still writes footers and stops Playwright."""
        launching = asyncio.Event()

        async def hanging_start():
            launching.set()
            await asyncio.Event().wait()

        factory.start.side_effect = hanging_start
        controller = SessionController(session_config, browser_factory=factory)

        start_task = asyncio.create_task(controller.start())
        await asyncio.wait_for(launching.wait(), timeout=1)
        start_task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await start_task

        assert controller.is_stopped
        assert not controller.sink.is_open
        assert "=== Session Ended:" in read_log(controller.sink.console_path)
        assert "=== Network Statistics ===" in read_log(controller.sink.network_path)
        factory.stop.assert_awaited_once_with(close_browser=True)
        await asyncio.wait_for(controller.wait_until_stopped(), timeout=1)

    @pytest.mark.asyncio
    async def test_attach_failure_does_not_abort(self, session_config, factory):
        with patch('browser_logger.capture.engine.PageSession', side_effect=fake_page_session(False)):
            controller = SessionController(session_config, browser_factory=factory)
            await controller.start()

        assert controller.is_running
        assert controller.attachments == {}
        await controller.stop()

    @pytest.mark.asyncio
    async def test_new_page_attached(self, session_config, factory, context, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        handler_for(context.on, "page")(make_page("https://app.local/other"))
        await asyncio.gather(*list(controller._attach_tasks))

        assert len(controller.attachments) == 2
        await controller.stop()

    @pytest.mark.asyncio
    async def test_same_page_attached_once(self, session_config, factory, context, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        assert await controller.attach_page(context.pages[0]) is None
        assert len(controller.attachments) == 1
        await controller.stop()

    @pytest.mark.asyncio
    async def test_closed_page_dropped(self, session_config, factory, context, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()
        page = context.pages[0]

        handler_for(page.on, "close")(page)

        assert controller.attachments == {}
        await controller.stop()

    @pytest.mark.asyncio
    async def test_browser_disconnect_stops_session(self, session_config, factory, context, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        handler_for(context.on, "close")(context)
        assert len(controller._stop_tasks) == 1
        await asyncio.wait_for(controller.wait_until_stopped(), timeout=1)

        assert controller.is_stopped
        factory.stop.assert_awaited_once_with(close_browser=False)

    @pytest.mark.asyncio
    async def test_request_stop(self, session_config, factory, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        controller.request_stop()
        assert len(controller._stop_tasks) == 1
        await asyncio.wait_for(controller.wait_until_stopped(), timeout=1)
        await asyncio.gather(*list(controller._stop_tasks))

        factory.stop.assert_awaited_once_with(close_browser=True)
        assert controller._stop_tasks == set()

    @pytest.mark.asyncio
    async def test_browser_close_error_still_writes_footer(self, session_config, factory, page_sessions, read_log):
        factory.stop.side_effect = RuntimeError("browser crashed")
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        await controller.stop()

        assert "=== Session Ended:" in read_log(controller.sink.network_path)
        assert controller.is_stopped

    @pytest.mark.asyncio
    async def test_footer_error_still_closes_browser(self, session_config, factory, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        with patch.object(controller.sink, 'finalize', side_effect=OSError("disk full")):
            await controller.stop()

        factory.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_stats(self, session_config, factory, page_sessions):
        controller = SessionController(session_config, browser_factory=factory)
        await controller.start()

        stats = controller.get_stats()

        assert stats['pages_monitored'] == 1
        assert stats['network'] == {'total': 0, 'logged': 0, 'filtered': 0, 'filtered_errors': 0}
        assert stats['stopped'] is False
        await controller.stop()
