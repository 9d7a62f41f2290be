"""Browser factory for locating and launching a Chromium-family browser.

This module provides executable discovery for installed Chromium-based
browsers and the BrowserFactory class that launches one through Playwright as
a visible, persistent browser context and shuts it down again.
"""

import logging
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = (1920, 1080)

KNOWN_EXECUTABLES: Dict[str, List[str]] = {
    'darwin': [
        '/Applications/Google Chrome.app/Contents/MacOS/Google Chrome',
        '/Applications/Brave Browser.app/Contents/MacOS/Brave Browser',
        '/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge',
        '/Applications/Arc.app/Contents/MacOS/Arc',
        '/Applications/Chromium.app/Contents/MacOS/Chromium',
    ],
    'win32': [
        'C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe',
        'C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe',
        'C:\\Program Files\\Microsoft\\Edge\\Application\\msedge.exe',
        'C:\\Program Files (x86)\\Microsoft\\Edge\\Application\\msedge.exe',
    ],
    'linux': [
        '/usr/bin/google-chrome',
        '/usr/bin/google-chrome-stable',
        '/usr/bin/chromium-browser',
        '/usr/bin/chromium',
        '/snap/bin/chromium',
    ],
}

PATH_EXECUTABLE_NAMES = (
    'google-chrome',
    'google-chrome-stable',
    'chromium',
    'chromium-browser',
    'brave-browser',
    'microsoft-edge',
)


class BrowserNotFoundError(RuntimeError):
    """No usable Chromium-family browser executable was found."""


class BrowserLaunchError(RuntimeError):
    """The browser executable could not be launched."""


def _platform_key(platform: str) -> str:
    if platform.startswith('linux'):
        return 'linux'
    return platform


def find_chromium_executable(platform: Optional[str] = None) -> Optional[str]:
    """Find an installed Chromium-family browser.

    Args:
        platform: ``sys.platform`` value to search for (defaults to current)

    Returns:
        Path to the first executable found, or None
    """
    key = _platform_key(platform or sys.platform)

    for candidate in KNOWN_EXECUTABLES.get(key, []):
        if Path(candidate).exists():
            return candidate

    for name in PATH_EXECUTABLE_NAMES:
        found = shutil.which(name)
        if found:
            return found

    return None


class BrowserConfig:
    """Configuration for browser launch."""

    def __init__(
        self,
        executable_path: Optional[str] = None,
        headless: bool = False,
        window_size: Tuple[int, int] = DEFAULT_WINDOW_SIZE,
        user_data_dir: Optional[Path] = None,
        extra_args: Optional[Sequence[str]] = None,
        **kwargs
    ):
        """Initialize browser configuration.

        Args:
            executable_path: Explicit browser executable (skips discovery)
            headless: Run browser in headless mode
            window_size: Browser window (width, height)
            user_data_dir: Profile directory (temporary profile if None)
            extra_args: Additional Chromium command line switches
        """
        self.executable_path = executable_path
        self.headless = headless
        self.window_size = window_size
        self.user_data_dir = user_data_dir
        self.extra_args = list(extra_args or [])
        self.extra_options = kwargs

    def resolve_executable(self) -> str:
        """Return the explicit executable or discover an installed one.

        Raises:
            BrowserNotFoundError: If no executable can be found
        """
        if self.executable_path:
            if not Path(self.executable_path).exists():
                raise BrowserNotFoundError(f"Browser executable not found: {self.executable_path}")
            return self.executable_path

        found = find_chromium_executable()
        if not found:
            raise BrowserNotFoundError(
                "Chrome/Chromium not found. Please install Chrome, Edge, or Brave, "
                "or pass the browser path explicitly."
            )
        return found

    def to_launch_options(self, executable_path: str) -> Dict[str, Any]:
        """Convert to Playwright persistent context launch options."""
        width, height = self.window_size
        options = {
            'executable_path': executable_path,
            'headless': self.headless,
            # Use the window size instead of a fixed viewport
            'no_viewport': True,
            'ignore_default_args': ['--enable-automation'],
            'args': [
                '--no-first-run',
                '--no-default-browser-check',
                f'--window-size={width},{height}',
                *self.extra_args,
            ],
        }

        options.update(self.extra_options)

        return options


class BrowserFactory:
    """Launches and closes the monitored browser."""

    def __init__(self, config: BrowserConfig):
        """Initialize browser factory with configuration.

        Args:
            config: Browser configuration object
        """
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.context: Optional[BrowserContext] = None
        self.executable_path: Optional[str] = None

    async def start(self) -> BrowserContext:
        """Start Playwright and launch the browser.

        Returns:
            The persistent browser context holding every tab

        Raises:
            BrowserNotFoundError: If no executable can be found
            BrowserLaunchError: If the browser fails to launch
        """
        if self.context is not None:
            logger.warning("Browser factory already started")
            return self.context

        self.executable_path = self.config.resolve_executable()
        logger.info(f"Launching browser: {self.executable_path}")

        try:
            self.playwright = await async_playwright().start()
            user_data_dir = str(self.config.user_data_dir) if self.config.user_data_dir else ""
            self.context = await self.playwright.chromium.launch_persistent_context(
                user_data_dir,
                **self.config.to_launch_options(self.executable_path),
            )

            logger.info(f"Browser launched successfully (headless={self.config.headless})")
            return self.context

        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            await self.stop()
            raise BrowserLaunchError(f"Failed to launch {self.executable_path}: {e}") from e

    async def stop(self, close_browser: bool = True) -> None:
        """Close the browser and stop Playwright.

        Errors are logged, never raised.

        Args:
            close_browser: False when the browser is already gone
        """
        logger.info("Stopping browser factory")

        if self.context is not None:
            if close_browser:
                try:
                    await self.context.close()
                except Exception as e:
                    logger.warning(f"Error closing browser: {e}")
            self.context = None

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self.playwright = None

    @property
    def pages(self) -> List[Page]:
        """Pages currently open in the browser."""
        if self.context is None:
            return []
        return list(self.context.pages)

    @property
    def is_running(self) -> bool:
        return self.context is not None

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(executable={self.executable_path}, "
            f"headless={self.config.headless}, running={self.is_running})"
        )
