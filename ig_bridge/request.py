"""
Request descriptors and the two option layers every call is built from.

Caller options are assembled first; the critical overlay (cookies, TLS
verification, proxy, network interface) is applied on top of them, never the
other way round, so no call can accidentally switch those off.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class CriticalOptions:
    cookie_header: str
    verify: bool | str
    proxy: str | None
    # Never applied when empty; an empty interface name breaks curl.
    interface: str | None = None


@dataclass(frozen=True)
class RequestOptions:
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | str | None = None
    timeout: float | tuple[float, float] | None = None
    allow_redirects: bool = True
    max_redirects: int | None = None
    verify: bool | str | None = None
    proxy: str | None = None
    interface: str | None = None

    def overlay(self, critical: CriticalOptions) -> dict[str, Any]:
        """curl_cffi request kwargs with the critical layer applied last."""
        headers = {k: v for k, v in self.headers.items() if k.lower() != "cookie"}
        if critical.cookie_header:
            headers["Cookie"] = critical.cookie_header

        kwargs: dict[str, Any] = {
            "headers": headers,
            "allow_redirects": self.allow_redirects,
        }
        if self.body is not None:
            kwargs["data"] = self.body
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        if self.max_redirects is not None:
            kwargs["max_redirects"] = self.max_redirects
        if self.interface:
            kwargs["interface"] = self.interface

        kwargs["verify"] = critical.verify
        kwargs["proxy"] = critical.proxy
        if critical.interface:
            kwargs["interface"] = critical.interface
        return kwargs


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    uri: str
    options: RequestOptions = field(default_factory=RequestOptions)
    # Library-level flags.
    no_debug: bool = False
    debug_uploaded_body: bool = False
    debug_uploaded_bytes: bool = False
    decode_to: type | None = None

    @property
    def body_bytes(self) -> bytes | None:
        body = self.options.body
        if isinstance(body, str):
            return body.encode("utf-8")
        return body
