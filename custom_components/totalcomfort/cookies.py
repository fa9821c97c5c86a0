"""Session cookie storage for the Total Connect Comfort portal."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from http.cookies import CookieError, SimpleCookie
import threading
import time
from typing import Any

from yarl import URL

from .const import EXCLUDED_COOKIE

MonotonicCallable = Callable[[], float]


@dataclass(frozen=True, slots=True)
class Cookie:
    """Immutable view of a stored session cookie."""

    name: str
    value: str
    domain: str | None = None
    path: str = "/"
    max_age: float | None = None
    created_at: float = 0.0
    host_only: bool = False

    def expired(self, now: float) -> bool:
        """Return True once ``max_age`` seconds have passed since creation."""

        if self.max_age is None:
            return False
        return now - self.created_at >= self.max_age

    def domain_matches(self, host: str) -> bool:
        """Return True when the cookie may be sent to ``host``."""

        if self.domain is None:
            return False
        host = host.lower().rstrip(".")
        if self.host_only:
            return host == self.domain
        return host == self.domain or host.endswith(f".{self.domain}")

    def path_matches(self, path: str) -> bool:
        """Return True when ``path`` falls under the cookie path."""

        return (path or "/").startswith(self.path or "/")


def _is_excluded(name: str) -> bool:
    """Return True for the cookie the portal chokes on when echoed back."""

    normalized = name[1:] if name.startswith(".") else name
    return normalized.lower() == EXCLUDED_COOKIE.lower()


def _set_cookie_values(headers: Any) -> list[str]:
    """Return every ``Set-Cookie`` value carried by ``headers``."""

    if headers is None:
        return []
    getall = getattr(headers, "getall", None)
    if callable(getall):
        return [str(value) for value in getall("Set-Cookie", [])]
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if str(key).lower() != "set-cookie":
                continue
            if isinstance(value, str):
                return [value]
            return [str(item) for item in value]
        return []
    if isinstance(headers, str):
        return [headers]
    return [str(value) for value in headers]


def _parse_max_age(morsel: Any) -> float | None:
    """Return the lifetime of ``morsel`` in seconds, if it declares one."""

    raw_max_age = morsel["max-age"]
    if raw_max_age:
        try:
            return float(int(str(raw_max_age).strip()))
        except ValueError:
            return None
    raw_expires = morsel["expires"]
    if raw_expires:
        try:
            expires = parsedate_to_datetime(str(raw_expires))
        except (TypeError, ValueError):
            return None
        return expires.timestamp() - time.time()
    return None


class CookieJar:
    """Store session cookies by name and build ``Cookie`` request headers."""

    def __init__(self, *, monotonic: MonotonicCallable | None = None) -> None:
        """Initialise an empty jar."""

        self._cookies: dict[str, Cookie] = {}
        self._lock = threading.Lock()
        self._monotonic = monotonic or time.monotonic

    def ingest(self, headers: Any, origin: str | URL | None = None) -> None:
        """Update the jar from the ``Set-Cookie`` headers of a response.

        Blank values and ``Max-Age=0`` delete the named cookie. Headers that
        cannot be parsed are skipped.
        """

        origin_host = _host_of(origin)
        now = self._monotonic()
        for header in _set_cookie_values(headers):
            parsed = SimpleCookie()
            try:
                parsed.load(header)
            except CookieError:
                continue
            for name, morsel in parsed.items():
                self._store(name, morsel, origin_host, now)

    def _store(self, name: str, morsel: Any, origin_host: str | None, now: float) -> None:
        """Insert, replace or delete a single parsed cookie."""

        value = morsel.value
        max_age = _parse_max_age(morsel)
        with self._lock:
            if not value or not value.strip() or (max_age is not None and max_age <= 0):
                self._cookies.pop(name, None)
                return
            raw_domain = str(morsel["domain"] or "").strip().lstrip(".").lower()
            if raw_domain:
                domain: str | None = raw_domain
                host_only = False
            else:
                domain = origin_host
                host_only = origin_host is not None
            self._cookies[name] = Cookie(
                name=name,
                value=value,
                domain=domain,
                path=str(morsel["path"] or "/"),
                max_age=max_age,
                created_at=now,
                host_only=host_only,
            )

    def header_for(self, url: str | URL) -> str:
        """Return the ``Cookie`` header value to send with a request to ``url``."""

        try:
            target = url if isinstance(url, URL) else URL(str(url))
        except (TypeError, ValueError):
            return ""
        host = target.host
        if not target.is_absolute() or not host:
            return ""
        path = target.path or "/"
        now = self._monotonic()
        with self._lock:
            for name in [n for n, c in self._cookies.items() if c.expired(now)]:
                del self._cookies[name]
            selected = [
                cookie
                for cookie in self._cookies.values()
                if cookie.domain_matches(host)
                and cookie.path_matches(path)
                and not _is_excluded(cookie.name)
            ]
        return "; ".join(f"{cookie.name}={cookie.value}" for cookie in selected)

    def get(self, name: str) -> Cookie | None:
        """Return the stored cookie called ``name``."""

        with self._lock:
            return self._cookies.get(name)

    def names(self) -> list[str]:
        """Return the names of every stored cookie."""

        with self._lock:
            return list(self._cookies)

    def clear(self) -> None:
        """Forget every stored cookie."""

        with self._lock:
            self._cookies.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._cookies

    def __iter__(self) -> Iterator[Cookie]:
        with self._lock:
            return iter(list(self._cookies.values()))


def _host_of(origin: str | URL | None) -> str | None:
    """Return the lower-cased host of ``origin`` or None."""

    if origin is None:
        return None
    try:
        url = origin if isinstance(origin, URL) else URL(str(origin))
    except (TypeError, ValueError):
        return None
    host = url.host
    return host.lower() if host else None
