"""
Transport client: every HTTP call to the API goes through here.

Wraps curl_cffi with the pieces every request needs: session cookies,
TLS verification, proxy and outbound interface (applied as a critical overlay
the caller cannot undo), connect-timeout retries, throttle detection and
optional debug output.

Only HTTP 429 is treated as fatal at this level. The API answers "user not
found" style lookups with real 404s and silently redirects unknown endpoints,
so every other status is returned for the caller to judge by the JSON
`status` field instead.
"""

import json
import threading
from dataclasses import replace
from typing import Any, Callable
from urllib.parse import urlsplit

from curl_cffi import requests

from .account import AccountSession
from .config import BridgeSettings
from .decoder import DecodedResponse, api_body_decode, map_response
from .errors import LoginRequired, Throttled, TransportFailure
from .logger import logger
from .request import CriticalOptions, RequestDescriptor, RequestOptions
from .responses import ApiResponse
from .retry import RetryMiddleware

HTTP_TOO_MANY_REQUESTS = 429


# ─── Session Pool ────────────────────────────────────────────────────────────
# Reuse curl sessions for keep-alive. curl handles are not thread safe, so the
# pool key includes the calling thread. Sessions of finished threads are closed
# whenever a new one is opened, which bounds the pool by the live threads.

_session_pool: dict[tuple[str, str | None, str | None, int], requests.Session] = {}
_pool_lock = threading.Lock()


def _evict_finished_threads() -> None:
    live = {t.ident for t in threading.enumerate()}
    for key in [k for k in _session_pool if k[3] not in live]:
        _session_pool.pop(key).close()


def _get_session(impersonate: str, proxy: str | None = None, interface: str | None = None) -> requests.Session:
    key = (impersonate, proxy, interface, threading.get_ident())
    with _pool_lock:
        if key not in _session_pool:
            _evict_finished_threads()
            _session_pool[key] = requests.Session(impersonate=impersonate)
        return _session_pool[key]


def format_bytes(size: int | str | None) -> str:
    if size is None:
        return "?"
    size = float(size)
    for unit in ("B", "kB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.2f}{unit}"
        size /= 1024
    return f"{size:.2f}GB"


def _response_received(exc: Exception) -> bool:
    # curl_cffi attaches a partial response to most errors; a zero status
    # means no headers ever arrived.
    response = getattr(exc, "response", None)
    return bool(getattr(response, "status_code", 0))


class Transport:
    def __init__(
        self,
        account: AccountSession,
        settings: BridgeSettings | None = None,
        retry: RetryMiddleware | None = None,
        session_factory: Callable[[], Any] | None = None,
    ):
        self.account = account
        self.settings = settings or account.settings
        self.retry = retry or RetryMiddleware.from_settings(self.settings)
        self._session_factory = session_factory

    def _session(self):
        if self._session_factory is not None:
            return self._session_factory()
        return _get_session(self.settings.impersonate, self.settings.proxy, self.settings.output_interface)

    def ensure_logged_in(self) -> None:
        """Fail fast, without touching the network, if the account is logged out."""
        if not self.account.is_logged_in():
            raise LoginRequired()

    def resolve_uri(self, endpoint: str) -> str:
        if endpoint.startswith(("http:", "https:")):
            return endpoint
        return self.settings.api_url + endpoint

    def critical_options(self, uri: str) -> CriticalOptions:
        host = urlsplit(uri).hostname or self.settings.api_host
        return CriticalOptions(
            cookie_header=self.account.cookies.cookie_header(host),
            verify=self.settings.verify_ssl,
            proxy=self.settings.proxy,
            interface=self.settings.output_interface or None,
        )

    def default_options(self, options: RequestOptions) -> RequestOptions:
        """Fill in the configured timeouts and redirect limit where the caller left them unset."""
        return replace(
            options,
            timeout=options.timeout if options.timeout is not None
            else (self.settings.connect_timeout, self.settings.request_timeout),
            max_redirects=options.max_redirects if options.max_redirects is not None
            else self.settings.max_redirects,
        )

    # ─── Low level ───────────────────────────────────────────────────────────

    def _harvest_cookies(self, session, response, uri: str) -> None:
        host = urlsplit(uri).hostname or self.settings.api_host
        self.account.cookies.merge_set_cookie_headers(response.headers.get_list("set-cookie"), host)
        # The store owns cookies; don't let curl replay its own copy.
        session.cookies.clear()

    def _perform(self, request: RequestDescriptor):
        session = self._session()
        kwargs = self.default_options(request.options).overlay(self.critical_options(request.uri))
        try:
            response = session.request(request.method, request.uri, **kwargs)
        except requests.errors.RequestsError as e:
            received = _response_received(e)
            if received:
                # Headers arrived before the failure; their cookies still count.
                self._harvest_cookies(session, e.response, request.uri)
            raise TransportFailure(
                f"{request.method} {request.uri}: {e}",
                curl_code=getattr(e, "code", None),
                response_received=received,
            ) from e

        self._harvest_cookies(session, response, request.uri)
        return response

    def send(self, request: RequestDescriptor):
        """
        Perform one logical request (with connect-timeout retries).
        Raises TransportFailure on socket errors and Throttled on HTTP 429.
        Any other status is returned as-is.
        """
        try:
            response = self.retry(request, lambda: self._perform(request))
        finally:
            self.account.cookies.save()

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise Throttled(request.uri)
        return response

    # ─── API level ───────────────────────────────────────────────────────────

    def api_request(
        self,
        method: str,
        endpoint: str,
        options: RequestOptions | None = None,
        no_debug: bool = False,
        debug_uploaded_body: bool = False,
        debug_uploaded_bytes: bool = False,
        decode_to: type[ApiResponse] | None = None,
    ) -> DecodedResponse:
        """
        Send a request to `endpoint` (relative to the API base, or a full
        http(s) URI used verbatim) and optionally map the reply onto
        `decode_to`, which also enforces a successful `status`.
        """
        request = RequestDescriptor(
            method=method,
            uri=self.resolve_uri(endpoint),
            options=options or RequestOptions(),
            no_debug=no_debug,
            debug_uploaded_body=debug_uploaded_body,
            debug_uploaded_bytes=debug_uploaded_bytes,
            decode_to=decode_to,
        )
        response = self.send(request)
        body = response.content

        # Must be shown before a possible decoding error.
        if self.settings.debug and not request.no_debug:
            self._print_debug(request, endpoint, response, body)

        if decode_to is None:
            return DecodedResponse(status=response.status_code, body=body, response=response)

        obj = map_response(decode_to, api_body_decode(body), True, response.status_code)
        return DecodedResponse(
            status=response.status_code,
            body=body,
            tree=obj.full_response,
            object=obj,
            response=response,
        )

    def _print_debug(self, request: RequestDescriptor, endpoint: str, response, body: bytes) -> None:
        event: dict[str, Any] = {"method": request.method, "uri": endpoint}

        uploaded = request.body_bytes
        if request.debug_uploaded_body and uploaded is not None:
            event["uploaded_body"] = uploaded.decode("utf-8", errors="replace")
        if request.debug_uploaded_bytes and uploaded is not None:
            event["uploaded_bytes"] = format_bytes(len(uploaded))

        length = response.headers.get("x-encoded-content-length") or response.headers.get("content-length")
        event["status"] = response.status_code
        event["response_bytes"] = format_bytes(length if length is not None else len(body))

        text = body.decode("utf-8", errors="replace")
        if self.settings.truncated_debug and len(text) > 1000:
            text = text[:1000] + "..."
        event["response_body"] = text

        logger.info(json.dumps(event))
