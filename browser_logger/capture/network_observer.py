"""Network request observer correlating CDP request/response events.

This module provides the NetworkObserver class that hooks into CDP Network
events for one page, decides once per request whether it is worth logging,
writes request and response blocks as they happen and appends response bodies
after retrieving them asynchronously.
"""

import asyncio
import logging
from http import HTTPStatus
from typing import Any, Dict, Optional, Set
from urllib.parse import urlsplit

from playwright.async_api import CDPSession, Page

from ..models.capture import (
    NetworkBodyEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    NetworkStats,
    PendingRequest,
)
from ..output.log_sink import LogSink

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({'POST', 'PUT', 'PATCH', 'DELETE'})

STATIC_EXTENSIONS = (
    # Scripts
    '.js', '.mjs', '.jsx', '.ts', '.tsx',
    # Stylesheets
    '.css', '.scss', '.sass',
    # Images
    '.png', '.jpg', '.jpeg', '.gif', '.svg', '.ico', '.webp',
    # Fonts
    '.woff', '.woff2', '.ttf', '.otf', '.eot',
    # Source maps
    '.map',
)

DEV_SERVER_PATH_FRAGMENTS = (
    '/@vite/',
    '/node_modules/.vite/',
    '/@react-refresh',
    '/@fs/',
    '/__webpack_hmr',
    '.hot-update.',
)


DEFAULT_PORTS = {'http': 80, 'https': 443, 'ws': 80, 'wss': 443}


def _origin(url: str) -> Optional[str]:
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return None

    scheme = parts.scheme.lower()
    port = parts.port
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        return f"{scheme}://{parts.hostname}"
    return f"{scheme}://{parts.hostname}:{port}"


def should_log_request(
    method: str,
    url: str,
    page_url: Optional[str] = None,
    status: Optional[int] = None,
) -> bool:
    """Decide whether a request is material enough to persist.

    Args:
        method: HTTP method
        url: Request URL
        page_url: URL of the page issuing the request
        status: Response status, when already known

    Returns:
        False only for same-origin static assets and dev-server module traffic
    """
    if method.upper() in MUTATING_METHODS:
        return True

    if status is not None and status >= 400:
        return True

    try:
        parts = urlsplit(url)
        request_origin = _origin(url)
    except ValueError:
        return True
    if request_origin is None:
        return True

    page_origin = None
    if page_url and not page_url.startswith('about:'):
        try:
            page_origin = _origin(page_url)
        except ValueError:
            page_origin = None

    # Cross-origin traffic is most likely an API call
    if page_origin and request_origin != page_origin:
        return True

    path = parts.path.lower()
    if path.endswith(STATIC_EXTENSIONS):
        return False

    if any(fragment in path for fragment in DEV_SERVER_PATH_FRAGMENTS):
        return False

    return True


def _status_text(status: int, status_text: str) -> str:
    """Use the standard reason phrase when the protocol sends none (HTTP/2)."""
    if status_text:
        return status_text
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def _base64_decoded_size(data: str) -> int:
    padding = len(data) - len(data.rstrip('='))
    return max(len(data) * 3 // 4 - padding, 0)


class NetworkObserver:
    """Observes network events of one page and writes them to the network log."""

    def __init__(
        self,
        session: CDPSession,
        page: Page,
        sink: LogSink,
        stats: NetworkStats,
    ):
        """Initialize network observer for a page session.

        Args:
            session: CDP session attached to the page
            page: Playwright page, consulted for its current URL
            sink: Log sink receiving network records
            stats: Session-wide network counters
        """
        self.session = session
        self.page = page
        self.sink = sink
        self.stats = stats

        self._pending: Dict[str, PendingRequest] = {}
        self._body_tasks: Set[asyncio.Task] = set()

        self._setup_listeners()

    def _setup_listeners(self) -> None:
        """Setup CDP listeners for network events."""
        self.session.on("Network.requestWillBeSent", self._on_request_will_be_sent)
        self.session.on("Network.responseReceived", self._on_response_received)

        logger.debug("Network observer listeners setup complete")

    @property
    def pending_requests(self) -> Dict[str, PendingRequest]:
        """In-flight requests keyed by CDP request id."""
        return dict(self._pending)

    def _current_page_url(self) -> Optional[str]:
        try:
            return self.page.url
        except Exception as e:
            logger.debug(f"Failed to read page URL: {e}")
            return None

    def _on_request_will_be_sent(self, params: Dict[str, Any]) -> None:
        """Handle request start event.

        Args:
            params: CDP Network.requestWillBeSent parameters
        """
        try:
            request = params.get('request') or {}
            request_id = params['requestId']
            method = request.get('method', 'GET')
            url = request.get('url', '')

            should_log = should_log_request(method, url, self._current_page_url())

            pending = PendingRequest(
                request_id=request_id,
                method=method,
                url=url,
                headers=request.get('headers') or {},
                body=request.get('postData'),
                start_timestamp=params.get('timestamp', 0.0),
                should_log=should_log,
            )
            self._pending[request_id] = pending
            self.stats.record_request(should_log)

            if not should_log:
                logger.debug(f"Request filtered: {method} {url}")
                return

            self.sink.emit_network(NetworkRequestEvent(
                request_id=request_id,
                method=method,
                url=url,
                headers=pending.headers,
                body=pending.body,
                **self.sink.stamp(),
            ))

            logger.debug(f"Request started: {method} {url}")

        except Exception as e:
            logger.error(f"Error processing request start: {e}")

    def _on_response_received(self, params: Dict[str, Any]) -> None:
        """Handle response received event.

        Args:
            params: CDP Network.responseReceived parameters
        """
        request_id = params.get('requestId')
        pending = self._pending.get(request_id)

        if pending is None:
            logger.debug(f"Response received for untracked request: {request_id}")
            return

        try:
            response = params.get('response') or {}
            status = int(response.get('status', 0))
            duration_ms = round((params.get('timestamp', pending.start_timestamp) - pending.start_timestamp) * 1000)

            if not pending.should_log:
                self._pending.pop(request_id, None)
                if status >= 400:
                    self._log_filtered_failure(pending, status, response, duration_ms)
                return

            # Written before the body fetch so a failed fetch loses nothing
            self.sink.emit_network(NetworkResponseEvent(
                request_id=request_id,
                method=pending.method,
                url=pending.url,
                status=status,
                status_text=_status_text(status, response.get('statusText', '')),
                duration_ms=duration_ms,
                headers=response.get('headers') or {},
                **self.sink.stamp(),
            ))

            logger.debug(f"Response received: {status} {pending.url}")

        except Exception as e:
            logger.error(f"Error processing response: {e}")
            self._pending.pop(request_id, None)
            return

        self._schedule_body_fetch(pending)

    def _log_filtered_failure(
        self,
        pending: PendingRequest,
        status: int,
        response: Dict[str, Any],
        duration_ms: int,
    ) -> None:
        """Surface a failed response whose request block was suppressed."""
        self.stats.record_filtered_error()
        self.sink.emit_network(NetworkResponseEvent(
            request_id=pending.request_id,
            method=pending.method,
            url=pending.url,
            status=status,
            status_text=_status_text(status, response.get('statusText', '')),
            duration_ms=duration_ms,
            filtered=True,
            **self.sink.stamp(),
        ))
        logger.debug(f"Filtered request failed: {status} {pending.url}")

    def _schedule_body_fetch(self, pending: PendingRequest) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop running, the body cannot be fetched
            self._write_body(pending, NetworkBodyEvent(
                request_id=pending.request_id,
                available=False,
                **self.sink.stamp(),
            ))
            return

        task = loop.create_task(self._append_response_body(pending))
        self._body_tasks.add(task)
        task.add_done_callback(self._body_tasks.discard)

    async def _append_response_body(self, pending: PendingRequest) -> None:
        """Retrieve the response body and append it as a self-contained block."""
        try:
            result = await self.session.send(
                "Network.getResponseBody",
                {"requestId": pending.request_id},
            )
        except Exception as e:
            # No-content responses, opaque cross-origin responses, closed targets
            logger.debug(f"Response body not available for {pending.url}: {e}")
            event = NetworkBodyEvent(
                request_id=pending.request_id,
                available=False,
                **self.sink.stamp(),
            )
        else:
            body = result.get('body') or ''
            if result.get('base64Encoded'):
                event = NetworkBodyEvent(
                    request_id=pending.request_id,
                    available=True,
                    base64_encoded=True,
                    size_bytes=_base64_decoded_size(body),
                    **self.sink.stamp(),
                )
            else:
                event = NetworkBodyEvent(
                    request_id=pending.request_id,
                    available=True,
                    size_bytes=len(body.encode('utf-8')),
                    content=body,
                    **self.sink.stamp(),
                )

        self._write_body(pending, event)

    def _write_body(self, pending: PendingRequest, event: NetworkBodyEvent) -> None:
        # The sink drops the write if the session already stopped
        self.sink.emit_network(event)
        if self._pending.get(pending.request_id) is pending:
            del self._pending[pending.request_id]

    async def wait_for_bodies(self) -> None:
        """Wait until every scheduled body retrieval has resolved."""
        while self._body_tasks:
            await asyncio.gather(*list(self._body_tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, int]:
        """Get observer statistics.

        Returns:
            Dictionary with pending request and body fetch counts
        """
        return {
            'pending_requests': len(self._pending),
            'pending_bodies': len(self._body_tasks),
        }

    def __repr__(self) -> str:
        return (
            f"NetworkObserver(pending={len(self._pending)}, "
            f"total={self.stats.total}, logged={self.stats.logged}, "
            f"filtered={self.stats.filtered})"
        )
