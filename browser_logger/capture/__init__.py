"""Browser capture engine for Browser Logger.

This module attaches to a Chromium browser over the remote-debugging protocol
and records console output, uncaught exceptions, browser log entries and
network traffic of every open tab.

Main Components:
- Browser Factory: Executable discovery and browser launch
- Page Session: One CDP session per tab with enabled protocol domains
- Console Observer: Console calls, browser log entries and page errors
- Network Observer: Request/response correlation and noise filtering
- Session Controller: Session lifecycle and page attachment registry

Usage:
    from browser_logger.capture import SessionConfig, SessionController

    controller = SessionController(SessionConfig(output_dir="logs/browser-demo"))
    await controller.start()
    await controller.wait_until_stopped()
"""

__all__ = [
    # Main components
    "SessionController",
    "SessionConfig",
    "BrowserFactory",
    "BrowserConfig",
    "PageSession",

    # Observers
    "NetworkObserver",
    "ConsoleObserver",
    "PageErrorObserver",
    "CombinedObserver",

    # Errors
    "BrowserNotFoundError",
    "BrowserLaunchError",

    # Convenience functions
    "find_chromium_executable",
    "should_log_request",
]

from .engine import SessionConfig, SessionController

from .browser_factory import (
    BrowserConfig,
    BrowserFactory,
    BrowserLaunchError,
    BrowserNotFoundError,
    find_chromium_executable,
)

from .page_session import PageSession

from .network_observer import NetworkObserver, should_log_request
from .console_observer import CombinedObserver, ConsoleObserver, PageErrorObserver
