"""Session controller that owns the browser lifecycle and page attachments.

This module provides the SessionController class that launches the browser,
opens the log sink, attaches a PageSession to every existing and newly opened
tab and performs an orderly, idempotent shutdown.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Set, Tuple, Union

from playwright.async_api import Page

from .browser_factory import BrowserConfig, BrowserFactory, DEFAULT_WINDOW_SIZE
from .page_session import PageSession
from ..models.capture import FormatMode, NetworkStats
from ..output.log_sink import LogSink

logger = logging.getLogger(__name__)


class SessionConfig:
    """Fully resolved configuration for one capture session."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        preview: bool = False,
        format_mode: Union[str, FormatMode] = FormatMode.DEFAULT,
        browser_path: Optional[str] = None,
        window_size: Tuple[int, int] = DEFAULT_WINDOW_SIZE,
        headless: bool = False,
        user_data_dir: Optional[Union[str, Path]] = None,
        extra_args: Optional[Sequence[str]] = None,
    ):
        """Initialize session configuration.

        Args:
            output_dir: Directory receiving console.log and network.log
            preview: Echo log lines to the terminal
            format_mode: ``default`` text blocks or ``json`` lines
            browser_path: Explicit browser executable (skips discovery)
            window_size: Browser window (width, height)
            headless: Run browser without a window
            user_data_dir: Browser profile directory (temporary profile if None)
            extra_args: Additional Chromium command line switches
        """
        self.output_dir = Path(output_dir)
        self.preview = preview
        self.format_mode = FormatMode(format_mode)
        self.browser_path = browser_path
        self.window_size = window_size
        self.headless = headless
        self.user_data_dir = Path(user_data_dir) if user_data_dir else None
        self.extra_args = list(extra_args or [])

    def create_browser_config(self) -> BrowserConfig:
        """Create browser configuration for this session."""
        return BrowserConfig(
            executable_path=self.browser_path,
            headless=self.headless,
            window_size=self.window_size,
            user_data_dir=self.user_data_dir,
            extra_args=self.extra_args,
        )


class SessionController:
    """Top-level lifecycle of a browser capture session."""

    def __init__(
        self,
        config: SessionConfig,
        browser_factory: Optional[BrowserFactory] = None,
    ):
        """Initialize session controller.

        Args:
            config: Session configuration
            browser_factory: Factory used to launch the browser (created from
                the configuration if None)
        """
        self.config = config
        self.browser_factory = browser_factory or BrowserFactory(config.create_browser_config())
        self.sink = LogSink(config.output_dir, preview=config.preview, format_mode=config.format_mode)
        self.stats = NetworkStats()

        # Active attachments keyed by CDP target id
        self.attachments: Dict[str, PageSession] = {}

        self.start_time: Optional[datetime] = None
        self._known_pages: Set[int] = set()
        self._attach_tasks: Set[asyncio.Task] = set()
        self._stop_tasks: Set[asyncio.Task] = set()
        self._started = False
        self._stopped = False
        self._browser_gone = False
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    async def start(self) -> None:
        """Launch the browser, open the logs and attach to every page.

        Raises:
            BrowserNotFoundError: If no browser executable can be found
            BrowserLaunchError: If the browser fails to launch
            LogSinkError: If the output directory cannot be created
        """
        if self._started:
            logger.warning("Session already started")
            return

        self._started = True
        self.start_time = datetime.now()
        logger.info("Starting capture session")

        try:
            # Fail before creating any log file when there is no browser
            browser_config = self.browser_factory.config
            browser_config.executable_path = browser_config.resolve_executable()

            self.sink.initialize()
            context = await self.browser_factory.start()

        except asyncio.CancelledError:
            logger.info("Capture session start cancelled")
            await self.stop()
            raise

        except Exception as e:
            logger.error(f"Failed to start capture session: {e}")
            await self.stop(close_browser=False)
            raise

        context.on("page", self._on_new_page)
        context.on("close", self._on_browser_disconnected)

        for page in list(context.pages):
            await self.attach_page(page)

        logger.info(f"Capture session started ({len(self.attachments)} page(s) monitored)")

    async def attach_page(self, page: Page) -> Optional[PageSession]:
        """Attach capture to one page.

        Failures are logged and never abort the session.

        Returns:
            The attached PageSession, or None if the page was skipped
        """
        if self._stopped:
            return None

        page_key = id(page)
        if page_key in self._known_pages:
            return None

        try:
            if page.is_closed():
                return None
        except Exception as e:
            logger.debug(f"Failed to check page state: {e}")

        self._known_pages.add(page_key)
        page_session = PageSession(page, self.sink, self.stats)

        try:
            attached = await page_session.attach()
        except Exception as e:
            logger.warning(f"Failed to monitor page: {e}")
            attached = False

        if not attached:
            self._known_pages.discard(page_key)
            return None

        self.attachments[page_session.target_id] = page_session
        page.on("close", lambda _: self._on_page_closed(page_session))
        return page_session

    def _on_new_page(self, page: Page) -> None:
        """Handle a newly opened tab."""
        if self._stopped:
            return
        task = asyncio.get_running_loop().create_task(self.attach_page(page))
        self._attach_tasks.add(task)
        task.add_done_callback(self._attach_tasks.discard)

    def _on_page_closed(self, page_session: PageSession) -> None:
        self.attachments.pop(page_session.target_id, None)
        self._known_pages.discard(id(page_session.page))
        logger.debug(f"Page closed: {page_session.target_id}")

    def _on_browser_disconnected(self, *_: Any) -> None:
        """Treat browser disconnection as an implicit stop request."""
        if self._stopped:
            return
        logger.info("Browser disconnected")
        self._browser_gone = True
        self._schedule_stop(close_browser=False)

    def request_stop(self) -> None:
        """Schedule stop() from a signal handler."""
        if self._stopped:
            return
        self._schedule_stop()

    def _schedule_stop(self, close_browser: bool = True) -> None:
        task = asyncio.get_running_loop().create_task(self.stop(close_browser=close_browser))
        self._stop_tasks.add(task)
        task.add_done_callback(self._stop_tasks.discard)

    async def stop(self, close_browser: bool = True) -> None:
        """Write footers, close the logs and optionally close the browser.

        Idempotent: only the first call does anything. Log finalization and
        browser shutdown are attempted independently of each other.
        """
        if self._stopped:
            return
        self._stopped = True

        logger.info("Stopping capture session")

        for task in list(self._attach_tasks):
            task.cancel()

        try:
            self.sink.finalize(self.stats)
        except Exception as e:
            logger.error(f"Error writing log footers: {e}")

        try:
            await self.browser_factory.stop(close_browser=close_browser and not self._browser_gone)
        except Exception as e:
            logger.error(f"Error closing browser: {e}")

        self.attachments.clear()
        self._known_pages.clear()
        self._stop_event.set()

        logger.info("Capture session stopped")

    async def wait_until_stopped(self) -> None:
        """Block until the session has been stopped."""
        await self._stop_event.wait()

    def get_stats(self) -> Dict[str, Any]:
        """Get session statistics.

        Returns:
            Dictionary with network counters and monitored pages
        """
        return {
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'output_dir': str(self.config.output_dir),
            'pages_monitored': len(self.attachments),
            'network': self.stats.model_dump(),
            'stopped': self._stopped,
        }

    def __repr__(self) -> str:
        return (
            f"SessionController(output_dir={self.config.output_dir}, "
            f"pages={len(self.attachments)}, running={self.is_running})"
        )
