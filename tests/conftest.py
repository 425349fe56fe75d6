import time
from types import SimpleNamespace

import pytest

from ig_bridge.account import AccountSession
from ig_bridge.config import BridgeSettings
from ig_bridge.cookies import CookieEntry, MemoryCookiePersistence, cookies_to_json
from ig_bridge.retry import RetryMiddleware, no_delay
from ig_bridge.transport import Transport

API_HOST = "i.instagram.com"


class FakeHeaders:
    """Multi-valued, case-insensitive headers like curl_cffi's Headers."""

    def __init__(self, items=None):
        if isinstance(items, dict):
            items = list(items.items())
        self._items = [(k.lower(), v) for k, v in (items or [])]

    def get(self, key, default=None):
        for k, v in self._items:
            if k == key.lower():
                return v
        return default

    def get_list(self, key):
        return [v for k, v in self._items if k == key.lower()]


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content.encode("utf-8") if isinstance(content, str) else content
        self.headers = FakeHeaders(headers)


class FakeCookies:
    def __init__(self):
        self.cleared = 0

    def clear(self):
        self.cleared += 1


class FakeSession:
    """Replays queued responses (or raises queued exceptions) and records calls."""

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls = []
        self.cookies = FakeCookies()

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    def request(self, method, url, **kwargs):
        self.calls.append(SimpleNamespace(method=method, url=url, kwargs=kwargs))
        if not self.outcomes:
            raise AssertionError(f"Unexpected request: {method} {url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def ok_json(payload: str, status_code: int = 200, headers=None) -> FakeResponse:
    return FakeResponse(status_code, payload, headers)


@pytest.fixture
def bridge_settings():
    return BridgeSettings(
        debug=False,
        proxy=None,
        output_interface=None,
        verify_ssl=True,
        cookies_path=None,
        signature_key="test-key",
    )


@pytest.fixture
def csrf_cookie():
    return CookieEntry(name="csrftoken", domain=API_HOST, value="tok123", expires=int(time.time()) + 3600)


@pytest.fixture
def persistence(csrf_cookie):
    return MemoryCookiePersistence(cookies_to_json([csrf_cookie]))


@pytest.fixture
def account(bridge_settings, persistence):
    account = AccountSession(
        username="tester",
        persistence=persistence,
        session_uuid="B0UNDARY-UUID",
        settings=bridge_settings,
    )
    account.load_cookies()
    account.mark_logged_in("42")
    return account


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def transport(account, bridge_settings, fake_session):
    return Transport(
        account,
        settings=bridge_settings,
        retry=RetryMiddleware(delay=no_delay),
        session_factory=lambda: fake_session,
    )
