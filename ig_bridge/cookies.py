"""
Session cookie store: single owner of cookie state for one account.

Entries are keyed by (name, domain); the last Set-Cookie seen for a key wins.
All access goes through one lock so concurrent calls for the same account
can read the Cookie header and merge response cookies without interleaving.
"""

import json
import threading
import time
from dataclasses import asdict, dataclass
from email.utils import parsedate_to_datetime
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Iterable, Protocol

from .constants import CSRF_COOKIE
from .logger import logger


@dataclass(frozen=True)
class CookieEntry:
    name: str
    domain: str
    value: str
    expires: int | None = None  # unix seconds; None = session cookie
    path: str = "/"
    secure: bool = False
    http_only: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.domain)

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires is None:
            return False
        return self.expires <= (time.time() if now is None else now)

    def matches_host(self, host: str) -> bool:
        return host == self.domain or host.endswith("." + self.domain)

    @classmethod
    def from_set_cookie(
        cls, header: str, default_domain: str, now: float | None = None
    ) -> list["CookieEntry"]:
        """Parse one Set-Cookie header line. Max-Age wins over Expires."""
        now = time.time() if now is None else now
        jar = SimpleCookie()
        try:
            jar.load(header)
        except CookieError:
            logger.warning(f"Ignoring unparseable Set-Cookie header: {header[:100]}")
            return []

        entries = []
        for name, morsel in jar.items():
            domain = (morsel["domain"] or default_domain).lstrip(".").lower()
            expires = None
            if morsel["max-age"]:
                try:
                    expires = int(now) + int(morsel["max-age"])
                except ValueError:
                    expires = None
            elif morsel["expires"]:
                try:
                    expires = int(parsedate_to_datetime(morsel["expires"]).timestamp())
                except (TypeError, ValueError):
                    expires = None
            entries.append(
                cls(
                    name=name,
                    domain=domain,
                    value=morsel.value,
                    expires=expires,
                    path=morsel["path"] or "/",
                    secure=bool(morsel["secure"]),
                    http_only=bool(morsel["httponly"]),
                )
            )
        return entries


class CookiePersistence(Protocol):
    def load_cookies(self) -> list[CookieEntry]: ...

    def save_cookies(self, cookies: list[CookieEntry]) -> None: ...


def cookies_to_json(cookies: Iterable[CookieEntry]) -> str:
    return json.dumps([asdict(c) for c in cookies])


def cookies_from_json(raw: str) -> list[CookieEntry]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("cookie JSON must be an array")
    return [CookieEntry(**item) for item in data]


class FileCookiePersistence:
    """Cookies kept as a JSON array on disk. A missing file is an empty jar."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load_cookies(self) -> list[CookieEntry]:
        if not self.path.exists():
            return []
        return cookies_from_json(self.path.read_text(encoding="utf-8"))

    def save_cookies(self, cookies: list[CookieEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(cookies_to_json(cookies), encoding="utf-8")
        tmp.replace(self.path)


class MemoryCookiePersistence:
    """Holds the serialized JSON string, like any external key-value setting."""

    def __init__(self, raw: str = "[]"):
        self.raw = raw
        self.saves = 0

    def load_cookies(self) -> list[CookieEntry]:
        return cookies_from_json(self.raw)

    def save_cookies(self, cookies: list[CookieEntry]) -> None:
        self.raw = cookies_to_json(cookies)
        self.saves += 1


class CookieStore:
    def __init__(self, persistence: CookiePersistence | None = None):
        self.persistence = persistence
        self._entries: dict[tuple[str, str], CookieEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self):
        return iter(self.entries())

    def entries(self) -> list[CookieEntry]:
        with self._lock:
            return list(self._entries.values())

    def load(self) -> bool:
        """Replace the contents from persistence. Returns False if the restore failed."""
        if self.persistence is None:
            return True
        try:
            restored = self.persistence.load_cookies()
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Cookie restore failed, starting with an empty jar: {e}")
            restored = []
            ok = False
        else:
            ok = True
        with self._lock:
            self._entries = {c.key: c for c in restored}
        return ok

    def save(self) -> None:
        if self.persistence is None:
            return
        self.persistence.save_cookies(self.entries())

    def merge(self, cookies: Iterable[CookieEntry], now: float | None = None) -> None:
        """Last write wins per (name, domain). Already-expired entries delete the key."""
        with self._lock:
            for cookie in cookies:
                if cookie.is_expired(now):
                    self._entries.pop(cookie.key, None)
                else:
                    self._entries[cookie.key] = cookie

    def merge_set_cookie_headers(self, headers: Iterable[str], default_domain: str, now: float | None = None) -> None:
        parsed: list[CookieEntry] = []
        for header in headers:
            parsed.extend(CookieEntry.from_set_cookie(header, default_domain, now))
        self.merge(parsed, now)

    def get(self, name: str, domain: str | None = None) -> CookieEntry | None:
        with self._lock:
            for cookie in self._entries.values():
                if cookie.name == name and (domain is None or cookie.domain == domain):
                    return cookie
        return None

    def cookie_header(self, host: str, now: float | None = None) -> str:
        host = host.lower()
        with self._lock:
            pairs = [
                f"{c.name}={c.value}"
                for c in self._entries.values()
                if c.matches_host(host) and not c.is_expired(now)
            ]
        return "; ".join(pairs)

    def has_valid_csrftoken(self, api_host: str, now: float | None = None) -> bool:
        """
        Preliminary login check: a non-expired csrftoken for the API host.
        The server may still reject the session, but without it we are
        definitely logged out.
        """
        host = api_host.lower()
        with self._lock:
            return any(
                c.name == CSRF_COOKIE and c.matches_host(host) and not c.is_expired(now)
                for c in self._entries.values()
            )

    def to_json(self) -> str:
        return cookies_to_json(self.entries())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
