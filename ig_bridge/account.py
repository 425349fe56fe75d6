"""
Per-account session state: identity, cookies and the cached login flag.

The login flag is only a cache. It starts out False, drops back to False
whenever the cookie jar cannot vouch for a session, and is only set True by
whoever observed a successful authenticated response (the login flow).
"""

import threading

from .config import BridgeSettings, settings as default_settings
from .constants import CSRF_COOKIE
from .cookies import CookiePersistence, CookieStore, FileCookiePersistence
from .device import Device
from .logger import logger
from .signatures import generate_uuid


class AccountSession:
    def __init__(
        self,
        username: str | None = None,
        device: Device | None = None,
        persistence: CookiePersistence | None = None,
        session_uuid: str | None = None,
        settings: BridgeSettings | None = None,
    ):
        self.settings = settings or default_settings
        self.username = username
        self.username_id: str | None = None
        self.device = device or Device()
        self.user_agent = self.device.user_agent
        # Reused as the multipart boundary and as the client-context token.
        self.uuid = session_uuid or generate_uuid()
        if persistence is None and self.settings.cookies_path is not None:
            persistence = FileCookiePersistence(self.settings.cookies_path)
        self.cookies = CookieStore(persistence)
        self._logged_in = False
        self._lock = threading.Lock()

    def load_cookies(self) -> bool:
        """Restore cookies; returns whether the jar holds a usable csrftoken."""
        restored = self.cookies.load()
        valid = restored and self.cookies.has_valid_csrftoken(self.settings.api_host)
        if not valid:
            logger.info("No valid csrftoken in restored cookies; session marked logged out")
            with self._lock:
                self._logged_in = False
        return valid

    def mark_logged_in(self, username_id: str | None = None) -> None:
        with self._lock:
            self._logged_in = True
            if username_id is not None:
                self.username_id = str(username_id)

    def mark_logged_out(self) -> None:
        with self._lock:
            self._logged_in = False

    def is_logged_in(self) -> bool:
        with self._lock:
            flag = self._logged_in
        return flag and self.cookies.has_valid_csrftoken(self.settings.api_host)

    @property
    def token(self) -> str | None:
        cookie = self.cookies.get(CSRF_COOKIE)
        return cookie.value if cookie is not None else None
