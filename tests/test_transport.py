"""
Tests for the transport client: critical option overlay, URI resolution,
throttle detection, cookie harvesting, retries and debug output.
"""

import json
import threading

import pytest
from curl_cffi.requests.errors import RequestsError

from conftest import FakeResponse, FakeSession
from ig_bridge.errors import MalformedResponse, Throttled, TransportFailure
from ig_bridge.request import CriticalOptions, RequestOptions
from ig_bridge.responses import ApiResponse
from ig_bridge.retry import RetryMiddleware, no_delay
from ig_bridge import transport as transport_module
from ig_bridge.transport import Transport, format_bytes


class TestOverlay:
    def test_critical_options_always_win(self):
        caller = RequestOptions(
            headers={"Cookie": "evil=1", "X-Test": "1"},
            verify=False,
            proxy="http://caller:1",
            interface="eth9",
        )
        critical = CriticalOptions(cookie_header="csrftoken=t", verify=True, proxy="http://proxy:8080", interface="eth0")
        kwargs = caller.overlay(critical)

        assert kwargs["headers"] == {"X-Test": "1", "Cookie": "csrftoken=t"}
        assert kwargs["verify"] is True
        assert kwargs["proxy"] == "http://proxy:8080"
        assert kwargs["interface"] == "eth0"

    def test_empty_interface_never_applied(self):
        kwargs = RequestOptions().overlay(CriticalOptions(cookie_header="", verify=True, proxy=None, interface=""))
        assert "interface" not in kwargs
        assert "Cookie" not in kwargs["headers"]
        assert kwargs["proxy"] is None


class TestSend:
    def test_relative_endpoint_resolved_against_api_url(self, transport, fake_session):
        fake_session.queue(FakeResponse(200, b'{"status": "ok"}'))
        transport.api_request("GET", "accounts/current_user/")
        assert fake_session.calls[0].url == "https://i.instagram.com/api/v1/accounts/current_user/"

    def test_absolute_uri_used_verbatim(self, transport, fake_session):
        fake_session.queue(FakeResponse(200, b"0-10/100"))
        transport.api_request("POST", "https://upload.instagram.com/x?job=1")
        assert fake_session.calls[0].url == "https://upload.instagram.com/x?job=1"

    def test_session_cookies_and_critical_settings_sent(self, transport, fake_session, bridge_settings):
        fake_session.queue(FakeResponse(200, b"{}"))
        transport.api_request("GET", "feed/timeline/", RequestOptions(headers={"User-Agent": "ua"}))
        kwargs = fake_session.calls[0].kwargs
        assert kwargs["headers"]["Cookie"] == "csrftoken=tok123"
        assert kwargs["verify"] is True
        assert kwargs["timeout"] == (bridge_settings.connect_timeout, bridge_settings.request_timeout)
        assert kwargs["max_redirects"] == 8

    def test_throttled_on_429(self, transport, fake_session, persistence):
        fake_session.queue(FakeResponse(429, b"", [("Set-Cookie", "rur=FRC")]))
        with pytest.raises(Throttled) as exc_info:
            transport.api_request("GET", "feed/timeline/")
        assert exc_info.value.status_code == 429
        # Cookies are still absorbed and persisted.
        assert transport.account.cookies.get("rur").value == "FRC"
        assert persistence.saves == 1

    @pytest.mark.parametrize("status", [400, 404, 500])
    def test_other_statuses_are_valid_responses(self, transport, fake_session, status):
        fake_session.queue(FakeResponse(status, b'{"status": "fail"}'))
        result = transport.api_request("GET", "users/nobody/usernameinfo/")
        assert result.status == status
        assert result.body == b'{"status": "fail"}'

    def test_set_cookie_merged_and_persisted(self, transport, fake_session, persistence):
        fake_session.queue(
            FakeResponse(
                200,
                b"{}",
                [("Set-Cookie", "csrftoken=new; Max-Age=31449600"), ("Set-Cookie", "mid=m1")],
            )
        )
        transport.api_request("GET", "feed/timeline/")
        assert transport.account.token == "new"
        assert transport.account.cookies.get("mid").value == "m1"
        assert '"mid"' in persistence.raw
        assert fake_session.cookies.cleared == 1

    def test_connect_timeout_retried_then_succeeds(self, transport, fake_session):
        fake_session.queue(
            RequestsError("Failed to perform, curl: (28) Connection timed out after 30000 milliseconds", 28),
            FakeResponse(200, b'{"status": "ok"}'),
        )
        result = transport.api_request("GET", "feed/timeline/", decode_to=ApiResponse)
        assert result.object.is_ok()
        assert len(fake_session.calls) == 2

    def test_dns_failure_propagates_as_transport_failure(self, transport, fake_session):
        fake_session.queue(RequestsError("Could not resolve host: i.instagram.com", 6))
        with pytest.raises(TransportFailure) as exc_info:
            transport.api_request("GET", "feed/timeline/")
        assert exc_info.value.curl_code == 6
        assert len(fake_session.calls) == 1

    def test_retry_ceiling_through_transport(self, account, bridge_settings):
        session = FakeSession([RequestsError(f"curl: (28) timeout {i}", 28) for i in range(11)])
        transport = Transport(
            account,
            settings=bridge_settings,
            retry=RetryMiddleware(delay=no_delay),
            session_factory=lambda: session,
        )
        with pytest.raises(TransportFailure):
            transport.api_request("GET", "feed/timeline/")
        assert len(session.calls) == 11

    def test_decode_failure_is_malformed(self, transport, fake_session):
        fake_session.queue(FakeResponse(200, b"<html>redirected</html>"))
        with pytest.raises(MalformedResponse):
            transport.api_request("GET", "bogus/", decode_to=ApiResponse)


class TestDebugOutput:
    def test_debug_event_logged(self, account, bridge_settings, fake_session, caplog):
        settings = bridge_settings.model_copy(update={"debug": True})
        transport = Transport(account, settings=settings, retry=RetryMiddleware(delay=no_delay),
                              session_factory=lambda: fake_session)
        fake_session.queue(FakeResponse(200, b'{"status": "ok"}', [("Content-Length", "16")]))

        with caplog.at_level("INFO", logger="ig_bridge"):
            transport.api_request(
                "POST",
                "upload/photo/",
                RequestOptions(body=b"x" * 2048),
                debug_uploaded_bytes=True,
            )

        event = json.loads(caplog.records[-1].getMessage())
        assert event["method"] == "POST"
        assert event["uri"] == "upload/photo/"
        assert event["uploaded_bytes"] == "2.00kB"
        assert "uploaded_body" not in event
        assert event["status"] == 200
        assert event["response_bytes"] == "16B"
        assert event["response_body"] == '{"status": "ok"}'

    def test_no_debug_suppresses_output(self, account, bridge_settings, fake_session, caplog):
        settings = bridge_settings.model_copy(update={"debug": True})
        transport = Transport(account, settings=settings, retry=RetryMiddleware(delay=no_delay),
                              session_factory=lambda: fake_session)
        fake_session.queue(FakeResponse(200, b"{}"))
        with caplog.at_level("INFO", logger="ig_bridge"):
            transport.api_request("GET", "feed/timeline/", no_debug=True)
        assert caplog.records == []

    def test_debug_off_by_default(self, transport, fake_session, caplog):
        fake_session.queue(FakeResponse(200, b"{}"))
        with caplog.at_level("INFO", logger="ig_bridge"):
            transport.api_request("GET", "feed/timeline/")
        assert caplog.records == []


def test_format_bytes():
    assert format_bytes(512) == "512B"
    assert format_bytes(1536) == "1.50kB"
    assert format_bytes(3 * 1024 * 1024) == "3.00MB"


class TestCookiesOnFailure:
    def test_partial_response_cookies_are_kept(self, transport, fake_session, account, persistence):
        partial = FakeResponse(200, b"", [("Set-Cookie", "rur=NEW; Path=/")])
        fake_session.queue(RequestsError("curl: (28) Operation timed out after 240000 milliseconds", 28, partial))

        with pytest.raises(TransportFailure) as exc_info:
            transport.api_request("POST", "upload/photo/", RequestOptions(body=b"x"))

        assert exc_info.value.response_received is True
        assert len(fake_session.calls) == 1
        assert account.cookies.get("rur").value == "NEW"
        assert "rur" in persistence.raw
        assert fake_session.cookies.cleared == 1

    def test_no_response_leaves_store_alone(self, transport, fake_session, account):
        fake_session.queue(RequestsError("Could not resolve host: i.instagram.com", 6))
        with pytest.raises(TransportFailure):
            transport.api_request("GET", "feed/timeline/")
        assert [c.name for c in account.cookies] == ["csrftoken"]
        assert fake_session.cookies.cleared == 0


class PooledSession:
    def __init__(self, impersonate=None):
        self.closed = False

    def close(self):
        self.closed = True


class TestSessionPool:
    @pytest.fixture(autouse=True)
    def empty_pool(self, monkeypatch):
        monkeypatch.setattr(transport_module, "_session_pool", {})
        monkeypatch.setattr(transport_module.requests, "Session", PooledSession)

    def test_same_thread_reuses_session(self):
        assert transport_module._get_session("chrome") is transport_module._get_session("chrome")
        assert transport_module._get_session("chrome", proxy="http://p:1") is not transport_module._get_session("chrome")

    def test_sessions_of_finished_threads_are_closed(self):
        opened = []
        worker = threading.Thread(target=lambda: opened.append(transport_module._get_session("chrome")))
        worker.start()
        worker.join()
        assert len(transport_module._session_pool) == 1

        mine = transport_module._get_session("chrome")

        assert opened[0].closed
        assert not mine.closed
        assert list(transport_module._session_pool.values()) == [mine]
