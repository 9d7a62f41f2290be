"""Unit tests for network observer."""

import pytest

from browser_logger.capture.network_observer import NetworkObserver, should_log_request
from browser_logger.models.capture import PendingRequest


def request_params(request_id, url, method="GET", timestamp=100.0, headers=None, post_data=None):
    request = {'url': url, 'method': method, 'headers': headers or {}}
    if post_data is not None:
        request['postData'] = post_data
    return {'requestId': request_id, 'request': request, 'timestamp': timestamp}


def response_params(request_id, status=200, status_text="OK", timestamp=100.25, headers=None):
    return {
        'requestId': request_id,
        'timestamp': timestamp,
        'response': {'status': status, 'statusText': status_text, 'headers': headers or {}},
    }


class TestShouldLogRequest:
    """Tests for the request filtering policy."""

    PAGE = "https://app.local/dashboard"

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "post"])
    def test_mutating_methods_always_logged(self, method):
        """Mutating requests are logged even for static-looking URLs."""
        assert should_log_request(method, "https://app.local/bundle.js", self.PAGE) is True

    @pytest.mark.parametrize("path", [
        "/bundle.js", "/styles/site.css", "/logo.png", "/fonts/inter.woff2",
        "/app.js.map", "/components/App.tsx", "/favicon.ico",
    ])
    def test_same_origin_static_assets_filtered(self, path):
        assert should_log_request("GET", f"https://app.local{path}", self.PAGE) is False

    @pytest.mark.parametrize("path", [
        "/@vite/client",
        "/node_modules/.vite/deps/react.js?v=123",
        "/@react-refresh",
        "/@fs/home/dev/project/src/main",
        "/__webpack_hmr",
        "/main.abc123.hot-update.json",
    ])
    def test_dev_server_traffic_filtered(self, path):
        assert should_log_request("GET", f"https://app.local{path}", self.PAGE) is False

    def test_cross_origin_always_logged(self):
        """Cross-origin requests are logged even with static extensions."""
        assert should_log_request("GET", "https://api.external.com/users", self.PAGE) is True
        assert should_log_request("GET", "https://cdn.other.com/lib.js", self.PAGE) is True

    def test_default_port_is_same_origin(self):
        assert should_log_request("GET", "https://app.local:443/bundle.js", self.PAGE) is False
        assert should_log_request("GET", "http://app.local:80/bundle.js", "http://app.local/") is False

    def test_explicit_port_is_cross_origin(self):
        assert should_log_request("GET", "https://app.local:8443/bundle.js", self.PAGE) is True
        assert should_log_request("GET", "http://localhost:5173/main.js", "http://localhost:3000/") is True

    def test_same_origin_api_logged(self):
        assert should_log_request("GET", "https://app.local/api/users", self.PAGE) is True

    def test_failed_status_always_logged(self):
        assert should_log_request("GET", "https://app.local/logo.png", self.PAGE, status=404) is True

    def test_unparseable_url_fails_open(self):
        assert should_log_request("GET", "not a url", self.PAGE) is True
        assert should_log_request("GET", "http://[broken/asset.js", self.PAGE) is True

    def test_blank_page_uses_path_rules(self):
        assert should_log_request("GET", "https://app.local/app.js", "about:blank") is False
        assert should_log_request("GET", "https://app.local/api", "about:blank") is True

    def test_query_string_ignored_for_extension(self):
        assert should_log_request("GET", "https://app.local/app.css?v=2", self.PAGE) is False


class TestNetworkObserver:
    """Tests for NetworkObserver class."""

    @pytest.fixture
    def observer(self, cdp_session, mock_page, sink, stats):
        """Create network observer for testing."""
        return NetworkObserver(cdp_session, mock_page, sink, stats)

    def test_observer_initialization(self, observer, cdp_session):
        """Test observer initialization and listener registration."""
        assert observer.pending_requests == {}
        assert "Network.requestWillBeSent" in cdp_session.handlers
        assert "Network.responseReceived" in cdp_session.handlers

    def test_static_asset_filtered(self, observer, cdp_session, sink, stats, read_log):
        """Same-origin bundle is counted as filtered and never written."""
        cdp_session.emit("Network.requestWillBeSent", request_params("1", "https://app.local/bundle.js"))
        cdp_session.emit("Network.responseReceived", response_params("1"))

        assert stats.total == 1
        assert stats.filtered == 1
        assert stats.logged == 0
        assert observer.pending_requests == {}
        assert "bundle.js" not in read_log(sink.network_path)

    @pytest.mark.asyncio
    async def test_cross_origin_request_logged(self, observer, cdp_session, sink, stats, read_log):
        """Cross-origin request gets request, response and body blocks."""
        cdp_session.responses["Network.getResponseBody"] = {'body': '[]', 'base64Encoded': False}

        cdp_session.emit("Network.requestWillBeSent", request_params(
            "2", "https://api.external.com/users",
            headers={'Accept': 'application/json'},
        ))
        cdp_session.emit("Network.responseReceived", response_params(
            "2", timestamp=100.25, headers={'content-type': 'application/json'},
        ))
        await observer.wait_for_bodies()

        content = read_log(sink.network_path)
        assert "REQUEST: GET https://api.external.com/users" in content
        assert "  Accept: application/json" in content
        assert "RESPONSE: 200 OK (250ms)" in content
        assert "  GET https://api.external.com/users" in content
        assert "  content-type: application/json" in content
        assert "Body (2 B):\n  []" in content
        assert content.index("REQUEST:") < content.index("RESPONSE:") < content.index("Body (")

        assert stats.logged == 1
        assert observer.pending_requests == {}

    @pytest.mark.asyncio
    async def test_post_request_with_body(self, observer, cdp_session, sink, read_log):
        """POST body is written with the request; response body follows."""
        cdp_session.responses["Network.getResponseBody"] = {'body': '{"id":1}', 'base64Encoded': False}

        cdp_session.emit("Network.requestWillBeSent", request_params(
            "3", "https://app.local/save", method="POST", post_data='{"name":"report"}',
        ))
        cdp_session.emit("Network.responseReceived", response_params("3", status=201, status_text="Created"))
        await observer.wait_for_bodies()

        content = read_log(sink.network_path)
        assert "REQUEST: POST https://app.local/save" in content
        assert 'Body:\n  {"name":"report"}' in content
        assert "RESPONSE: 201 Created" in content
        assert 'Body (8 B):\n  {"id":1}\n========================================' in content

        cdp_session.send.assert_any_await("Network.getResponseBody", {"requestId": "3"})

    @pytest.mark.asyncio
    async def test_base64_body_placeholder(self, observer, cdp_session, sink, read_log):
        cdp_session.responses["Network.getResponseBody"] = {'body': 'aGVsbG8=', 'base64Encoded': True}

        cdp_session.emit("Network.requestWillBeSent", request_params("4", "https://api.external.com/img"))
        cdp_session.emit("Network.responseReceived", response_params("4"))
        await observer.wait_for_bodies()

        assert "Body (5 B): [Base64 Encoded Data]" in read_log(sink.network_path)

    @pytest.mark.asyncio
    async def test_body_not_available(self, observer, cdp_session, sink, read_log):
        """Failed body retrieval is written inline and the entry removed."""
        cdp_session.responses["Network.getResponseBody"] = RuntimeError("No resource with given identifier")

        cdp_session.emit("Network.requestWillBeSent", request_params("5", "https://api.external.com/gone"))
        cdp_session.emit("Network.responseReceived", response_params("5", status=204, status_text="No Content"))
        await observer.wait_for_bodies()

        content = read_log(sink.network_path)
        assert "Body: [Not Available]\n========================================" in content
        assert observer.pending_requests == {}

    @pytest.mark.asyncio
    async def test_empty_body(self, observer, cdp_session, sink, read_log):
        cdp_session.responses["Network.getResponseBody"] = {'body': '', 'base64Encoded': False}

        cdp_session.emit("Network.requestWillBeSent", request_params("6", "https://api.external.com/ping"))
        cdp_session.emit("Network.responseReceived", response_params("6"))
        await observer.wait_for_bodies()

        assert "Body: [Empty]" in read_log(sink.network_path)

    def test_filtered_failure_surfaced(self, observer, cdp_session, sink, stats, read_log):
        """A suppressed request that fails gets a minimal tagged line."""
        cdp_session.emit("Network.requestWillBeSent", request_params("7", "https://app.local/missing.js"))
        cdp_session.emit("Network.responseReceived", response_params(
            "7", status=404, status_text="", timestamp=100.05,
        ))

        content = read_log(sink.network_path)
        assert "RESPONSE: 404 Not Found (50ms) [filtered] GET https://app.local/missing.js" in content
        assert "REQUEST: GET https://app.local/missing.js" not in content
        assert stats.filtered == 1
        assert stats.filtered_errors == 1
        assert stats.total == stats.logged + stats.filtered

    def test_untracked_response_ignored(self, observer, cdp_session, sink, read_log):
        before = read_log(sink.network_path)

        cdp_session.emit("Network.responseReceived", response_params("unknown"))

        assert read_log(sink.network_path) == before
        cdp_session.send.assert_not_awaited()

    def test_body_written_synchronously_without_loop(self, observer, cdp_session, sink, read_log):
        """Outside an event loop the body is reported as not available."""
        cdp_session.emit("Network.requestWillBeSent", request_params("8", "https://api.external.com/x"))
        cdp_session.emit("Network.responseReceived", response_params("8"))

        assert "Body: [Not Available]" in read_log(sink.network_path)
        assert observer.pending_requests == {}

    @pytest.mark.asyncio
    async def test_body_after_close_dropped(self, observer, cdp_session, sink, read_log):
        """Bodies resolving after the sink closed are silently dropped."""
        cdp_session.responses["Network.getResponseBody"] = {'body': 'late', 'base64Encoded': False}

        cdp_session.emit("Network.requestWillBeSent", request_params("9", "https://api.external.com/slow"))
        cdp_session.emit("Network.responseReceived", response_params("9"))
        sink.finalize()
        await observer.wait_for_bodies()

        content = read_log(sink.network_path)
        assert "RESPONSE: 200 OK" in content
        assert "late" not in content
        assert content.rstrip().endswith("Filtered Errors Surfaced: 0")

    def test_pending_request_is_frozen(self, observer, cdp_session):
        cdp_session.emit("Network.requestWillBeSent", request_params("10", "https://api.external.com/a"))

        pending = observer.pending_requests["10"]
        assert isinstance(pending, PendingRequest)
        assert pending.should_log is True
        with pytest.raises(Exception):
            pending.should_log = False

    def test_counters_invariant(self, observer, cdp_session, stats):
        """logged + filtered equals total after every request."""
        urls = [
            ("GET", "https://app.local/bundle.js"),
            ("GET", "https://api.external.com/users"),
            ("POST", "https://app.local/save"),
            ("GET", "https://app.local/logo.png"),
            ("GET", "https://app.local/api/me"),
        ]
        for index, (method, url) in enumerate(urls):
            cdp_session.emit("Network.requestWillBeSent", request_params(str(index), url, method=method))
            assert stats.total == stats.logged + stats.filtered

        assert stats.total == 5
        assert stats.filtered == 2
        assert stats.logged == 3

    def test_malformed_request_contained(self, observer, cdp_session, stats):
        """A request event without an id is logged as an error, not raised."""
        cdp_session.emit("Network.requestWillBeSent", {'request': {'url': 'https://a.b/'}})

        assert stats.total == 0
        assert observer.pending_requests == {}

    def test_get_stats(self, observer, cdp_session):
        cdp_session.emit("Network.requestWillBeSent", request_params("11", "https://api.external.com/a"))

        assert observer.get_stats() == {'pending_requests': 1, 'pending_bodies': 0}
        assert "pending=1" in repr(observer)
