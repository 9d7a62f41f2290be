"""Page session binding one CDP session to one browser page.

This module provides the PageSession class that opens a CDP session for a
page, enables the Runtime, Log and Network domains and wires the console and
network observers to it.
"""

import logging
from typing import Any, Dict, Optional

from playwright.async_api import CDPSession, Page

from .console_observer import CombinedObserver
from .network_observer import NetworkObserver
from ..models.capture import NetworkStats, PageMarkerEvent
from ..output.log_sink import LogSink

logger = logging.getLogger(__name__)

PROTOCOL_DOMAINS = ("Runtime", "Log", "Network")
PAGE_TARGET_TYPE = "page"


class PageSession:
    """Attaches capture observers to one page/tab."""

    def __init__(self, page: Page, sink: LogSink, stats: NetworkStats):
        """Initialize page session.

        Args:
            page: Playwright page to monitor
            sink: Log sink shared by the whole browser session
            stats: Session-wide network counters
        """
        self.page = page
        self.sink = sink
        self.stats = stats

        self.cdp_session: Optional[CDPSession] = None
        self.target_id: Optional[str] = None
        self.target_type: Optional[str] = None
        self.console_observer: Optional[CombinedObserver] = None
        self.network_observer: Optional[NetworkObserver] = None

    @property
    def is_attached(self) -> bool:
        return self.network_observer is not None

    @property
    def url(self) -> str:
        try:
            return self.page.url or "about:blank"
        except Exception:
            return "about:blank"

    async def attach(self) -> bool:
        """Open the CDP session, enable domains and start observing.

        Failures are contained here: they are logged and the page is skipped.

        Returns:
            True if the page is now being monitored
        """
        if self.is_attached:
            return True

        try:
            self.cdp_session = await self.page.context.new_cdp_session(self.page)

            target_info = await self._get_target_info()
            self.target_id = target_info.get('targetId') or str(id(self.page))
            self.target_type = target_info.get('type', PAGE_TARGET_TYPE)

            if self.target_type != PAGE_TARGET_TYPE:
                logger.debug(f"Skipping non-page target ({self.target_type}): {self.url}")
                await self._detach_quietly()
                return False

            for domain in PROTOCOL_DOMAINS:
                await self.cdp_session.send(f"{domain}.enable")

        except Exception as e:
            logger.warning(f"Failed to attach to page {self.url}: {e}")
            await self._detach_quietly()
            return False

        self.console_observer = CombinedObserver(self.cdp_session, self.sink)
        self.network_observer = NetworkObserver(self.cdp_session, self.page, self.sink, self.stats)

        marker = PageMarkerEvent(url=self.url, **self.sink.stamp())
        self.sink.emit_console(marker)
        self.sink.emit_network(marker)

        logger.info(f"Monitoring page: {self.url}")
        return True

    async def _get_target_info(self) -> Dict[str, Any]:
        result = await self.cdp_session.send("Target.getTargetInfo")
        return result.get('targetInfo') or {}

    async def _detach_quietly(self) -> None:
        if self.cdp_session is None:
            return
        try:
            await self.cdp_session.detach()
        except Exception as e:
            logger.debug(f"Failed to detach CDP session: {e}")
        self.cdp_session = None

    def get_stats(self) -> Dict[str, Any]:
        """Get page session statistics.

        Returns:
            Dictionary with attachment state and observer statistics
        """
        stats: Dict[str, Any] = {
            'target_id': self.target_id,
            'url': self.url,
            'attached': self.is_attached,
        }
        if self.console_observer:
            stats['console'] = self.console_observer.get_stats()
        if self.network_observer:
            stats['network'] = self.network_observer.get_stats()
        return stats

    def __repr__(self) -> str:
        return f"PageSession(target={self.target_id}, url={self.url}, attached={self.is_attached})"
