"""Cookie-session HTTP client for the Total Connect Comfort portal."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
import json
import logging
import time
from typing import Any, TypeVar

import aiohttp

from .const import (
    ACCEPT_JSON,
    BASE_HEADERS,
    BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
    FORM_PASSWORD,
    FORM_REMEMBER_ME,
    FORM_TIME_OFFSET,
    FORM_USERNAME,
    INVALID_CREDENTIALS_MARKER,
    MAX_RETRY_AFTER,
    RATE_LIMIT_BACKOFF,
    RATE_LIMIT_MARKER,
    REMEMBER_ME_VALUE,
    REQUEST_ATTEMPTS,
    RETRY_DELAY,
    SUCCESS_KEY,
    TIME_OFFSET_VALUE,
)
from .cookies import CookieJar
from .errors import (
    ApiRejected,
    AuthenticationFailed,
    CommunicationFailure,
    MalformedResponse,
    NotAuthenticated,
    RateLimited,
    SessionExpired,
    TotalComfortError,
    UnexpectedResponse,
)
from .util import bool_or_none, float_or_none, preview, username_domain

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

SleepCallable = Callable[[float], Awaitable[Any]]
MonotonicCallable = Callable[[], float]


class SessionState(StrEnum):
    """Lifecycle of the portal session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True, slots=True)
class Credentials:
    """Account credentials; fixed for the lifetime of a client."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class RawResponse:
    """Status, headers and body of a completed HTTP exchange."""

    status: int
    text: str
    headers: Mapping[str, str]
    url: str

    @property
    def ok(self) -> bool:
        """Return True for 2xx statuses."""

        return 200 <= self.status < 300


def _is_rate_limited(raw: RawResponse) -> bool:
    """Return True for a 429 or a page carrying the rate-limit notice."""

    return raw.status == 429 or RATE_LIMIT_MARKER in raw.text.lower()


def _retry_after(headers: Mapping[str, str], default: float) -> float:
    """Return the cool-down requested by a ``Retry-After`` header."""

    seconds = float_or_none(headers.get("Retry-After")) if headers else None
    if seconds is None or seconds <= 0:
        return default
    return min(seconds, float(MAX_RETRY_AFTER))


class SessionClient:
    """Thin async client for the Total Connect Comfort web session.

    The portal authenticates with ASP.NET forms cookies rather than tokens,
    so every request carries the cookies held in :class:`CookieJar` and every
    response feeds ``Set-Cookie`` back into it. HTTP outcomes are mapped onto
    the exceptions in :mod:`.errors`.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        session: aiohttp.ClientSession | None = None,
        base_url: str = BASE_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        cookie_jar: CookieJar | None = None,
        attempts: int = REQUEST_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF,
        sleep: SleepCallable | None = None,
        monotonic: MonotonicCallable | None = None,
    ) -> None:
        """Initialise the client; no network traffic happens here."""

        self._credentials = credentials
        self._session = session
        self._owns_session = session is None
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._jar = cookie_jar or CookieJar(monotonic=monotonic)
        self._attempts = max(1, attempts)
        self._retry_delay = retry_delay
        self._rate_limit_backoff = rate_limit_backoff
        self._sleep = sleep or asyncio.sleep
        self._monotonic = monotonic or time.monotonic

        self._lock = asyncio.Lock()
        self._state = SessionState.UNAUTHENTICATED
        self._prior_state = SessionState.UNAUTHENTICATED
        self._rate_limited_until = 0.0
        self._generation = 0
        self._effective_url: str | None = None
        self._last_auth: float | None = None
        self._last_keepalive: float | None = None

    # ----------------- State -----------------

    @property
    def state(self) -> SessionState:
        """Return the current session state, expiring any finished cool-down."""

        if (
            self._state is SessionState.RATE_LIMITED
            and self._monotonic() >= self._rate_limited_until
        ):
            _LOGGER.debug("Rate-limit cool-down finished; back to %s", self._prior_state)
            self._state = self._prior_state
        return self._state

    @property
    def is_authenticated(self) -> bool:
        """Return True when requests may be sent."""

        return self.state is SessionState.AUTHENTICATED

    @property
    def rate_limit_remaining(self) -> float:
        """Return the seconds left in the current rate-limit cool-down."""

        if self.state is not SessionState.RATE_LIMITED:
            return 0.0
        return max(self._rate_limited_until - self._monotonic(), 0.0)

    @property
    def effective_url(self) -> str:
        """Return the post-redirect portal URL recorded at login."""

        return self._effective_url or self._base_url

    @property
    def cookie_jar(self) -> CookieJar:
        """Expose the cookie jar (shared with command handling)."""

        return self._jar

    @property
    def username(self) -> str:
        """Return the configured account name."""

        return self._credentials.username

    @property
    def last_auth(self) -> float | None:
        """Return the monotonic timestamp of the last successful login."""

        return self._last_auth

    @property
    def keepalive_age(self) -> float:
        """Return the seconds since the portal last confirmed the session."""

        if self._last_keepalive is None:
            return float("inf")
        return max(self._monotonic() - self._last_keepalive, 0.0)

    def _enter_rate_limit(self, retry_after: float) -> None:
        """Switch to RATE_LIMITED until ``retry_after`` seconds from now."""

        current = self.state
        if current is not SessionState.RATE_LIMITED:
            self._prior_state = current
        self._state = SessionState.RATE_LIMITED
        self._rate_limited_until = self._monotonic() + retry_after
        _LOGGER.warning("Rate limited by portal; cooling down for %.0fs", retry_after)

    def _set_unauthenticated_state(self, state: SessionState, generation: int) -> None:
        """Demote the session unless a newer login already replaced it."""

        if generation != self._generation:
            _LOGGER.debug("Ignoring stale %s from a previous session", state)
            return
        if self._state is SessionState.RATE_LIMITED:
            self._prior_state = state
        else:
            self._state = state

    def _require_authenticated(self) -> None:
        """Raise unless the session may carry requests right now."""

        state = self.state
        if state is SessionState.RATE_LIMITED:
            raise RateLimited(
                "Rate-limit cool-down in progress",
                retry_after=self.rate_limit_remaining,
            )
        if state is not SessionState.AUTHENTICATED:
            raise NotAuthenticated(f"Session is {state}")

    # ----------------- Transport -----------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Return the aiohttp session, creating an owned one on demand."""

        if self._session is None:
            # Cookies only flow through our jar.
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        """Return an absolute portal URL for ``path``."""

        return path if path.startswith("http") else f"{self._base_url}{path}"

    def _headers(self, **extra: str) -> dict[str, str]:
        """Return the fixed header set plus ``extra``."""

        headers = dict(BASE_HEADERS)
        headers["Referer"] = self.effective_url
        headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        **kwargs: Any,
    ) -> RawResponse:
        """Perform one HTTP exchange and update the cookie jar."""

        session = self._ensure_session()
        request_headers = dict(headers)
        cookie = self._jar.header_for(url)
        if cookie:
            request_headers["Cookie"] = cookie
        _LOGGER.debug("HTTP %s %s", method, url)
        try:
            async with session.request(
                method, url, headers=request_headers, timeout=self._timeout, **kwargs
            ) as resp:
                for hop in getattr(resp, "history", None) or ():
                    self._jar.ingest(hop.headers, getattr(hop, "url", url))
                final_url = str(getattr(resp, "url", None) or url)
                self._jar.ingest(resp.headers, final_url)
                text = await resp.text()
                ctype = resp.headers.get("Content-Type", "")
                _LOGGER.debug("HTTP %s -> %s, ctype=%s", url, resp.status, ctype)
                return RawResponse(
                    status=resp.status,
                    text=text or "",
                    headers=resp.headers,
                    url=final_url,
                )
        except UnicodeDecodeError as err:
            raise MalformedResponse(f"Undecodable body from {url}") from err
        except (aiohttp.ClientError, TimeoutError) as err:
            raise CommunicationFailure(
                f"{method} {url} failed: {type(err).__name__}: {err}"
            ) from err

    async def _with_retries(self, label: str, attempt: Callable[[], Awaitable[_T]]) -> _T:
        """Run ``attempt`` with the bounded retry policy for transient errors."""

        for number in range(1, self._attempts + 1):
            try:
                return await attempt()
            except TotalComfortError as err:
                if not err.retryable or number >= self._attempts:
                    if err.retryable:
                        _LOGGER.warning(
                            "%s failed after %s attempts: %s", label, number, err
                        )
                    raise
                _LOGGER.debug(
                    "%s attempt %s/%s failed (%s); retrying in %ss",
                    label,
                    number,
                    self._attempts,
                    err,
                    self._retry_delay,
                )
                await self._sleep(self._retry_delay)
        raise AssertionError("unreachable")  # pragma: no cover

    # ----------------- Classification -----------------

    def _check_status(
        self, raw: RawResponse, generation: int, *, probe: bool = False
    ) -> None:
        """Raise the classified error for non-success statuses."""

        if _is_rate_limited(raw):
            retry_after = _retry_after(raw.headers, self._rate_limit_backoff)
            self._enter_rate_limit(retry_after)
            raise RateLimited(
                "You are being rate-limited. Try waiting a bit.",
                retry_after=retry_after,
            )
        if raw.status == 401:
            self._set_unauthenticated_state(
                SessionState.UNAUTHENTICATED if probe else SessionState.EXPIRED,
                generation,
            )
            raise SessionExpired("Session has timed out (401)")
        if raw.status == 403:
            self._set_unauthenticated_state(SessionState.EXPIRED, generation)
            raise SessionExpired("Session has timed out (403)")
        if not raw.ok:
            _LOGGER.error(
                "Portal returned %s from %s: %s", raw.status, raw.url, preview(raw.text)
            )
            raise UnexpectedResponse(raw.status)

    def _decode(self, raw: RawResponse) -> Any:
        """Return the JSON payload of a successful response."""

        body = raw.text.strip()
        if not body or body[:1] not in ("{", "["):
            ctype = raw.headers.get("Content-Type", "") if raw.headers else ""
            _LOGGER.error(
                "Unexpected response type from %s: %s; body=%s",
                raw.url,
                ctype,
                preview(raw.text),
            )
            raise MalformedResponse(f"Expected JSON from {raw.url}, got {ctype or 'text'}")
        try:
            payload = json.loads(body)
        except ValueError as err:
            raise MalformedResponse(f"Invalid JSON from {raw.url}") from err
        if isinstance(payload, dict) and SUCCESS_KEY in payload:
            if not bool_or_none(payload[SUCCESS_KEY]):
                raise ApiRejected(f"Portal rejected request to {raw.url}")
        return payload

    # ----------------- Public API -----------------

    async def login(self) -> None:
        """Authenticate with the portal.

        Raises :class:`AuthenticationFailed` when the credentials are refused
        or the fresh session does not survive one keepalive probe.
        """

        await self._authenticate(force=True)

    async def ensure_authenticated(self) -> None:
        """Log in unless the session is already usable."""

        await self._authenticate(force=False)

    async def _authenticate(self, *, force: bool) -> None:
        async with self._lock:
            if not force and self.state is SessionState.AUTHENTICATED:
                return
            if self.state is SessionState.RATE_LIMITED:
                raise RateLimited(
                    "Rate-limit cool-down in progress",
                    retry_after=self.rate_limit_remaining,
                )
            _LOGGER.debug(
                "Logging in for user domain=%s",
                username_domain(self._credentials.username),
            )
            try:
                await self._login_unlocked()
            except TotalComfortError as err:
                self._generation += 1
                if self._state is SessionState.RATE_LIMITED:
                    self._prior_state = SessionState.UNAUTHENTICATED
                else:
                    self._state = SessionState.UNAUTHENTICATED
                _LOGGER.error("Login failed: %s", err)
                raise

    async def _login_unlocked(self) -> None:
        """Run the GET/POST/keepalive handshake; caller holds the lock."""

        portal = self._base_url
        generation = self._generation

        async def _prime() -> RawResponse:
            return await self._send("GET", portal, headers=self._headers())

        prime = await self._with_retries("Login page", _prime)
        if _is_rate_limited(prime):
            self._check_status(prime, generation)
        if not prime.ok:
            raise AuthenticationFailed(f"Failed to fetch login page: {prime.status}")

        form = {
            FORM_USERNAME: self._credentials.username,
            FORM_PASSWORD: self._credentials.password,
            FORM_REMEMBER_ME: REMEMBER_ME_VALUE,
            FORM_TIME_OFFSET: TIME_OFFSET_VALUE,
        }

        async def _submit() -> RawResponse:
            return await self._send(
                "POST", portal, headers=self._headers(Referer=portal), data=form
            )

        resp = await self._with_retries("Login", _submit)
        if _is_rate_limited(resp):
            self._check_status(resp, generation)
        if INVALID_CREDENTIALS_MARKER in resp.text:
            raise AuthenticationFailed("Invalid username or password")
        if not resp.ok:
            raise AuthenticationFailed(f"Login failed with status {resp.status}")

        effective_url = resp.url or portal
        try:
            await self._probe(effective_url, generation, probe=True)
        except RateLimited:
            raise
        except TotalComfortError as err:
            raise AuthenticationFailed(
                f"Login failed during keepalive check: {err}"
            ) from err

        self._generation += 1
        self._effective_url = effective_url
        self._state = SessionState.AUTHENTICATED
        self._last_auth = self._last_keepalive = self._monotonic()
        _LOGGER.info(
            "Login successful for user domain=%s",
            username_domain(self._credentials.username),
        )

    async def _probe(self, url: str, generation: int, *, probe: bool) -> None:
        """GET ``url`` and classify the status only."""

        async def _attempt() -> None:
            raw = await self._send("GET", url, headers=self._headers())
            self._check_status(raw, generation, probe=probe)

        await self._with_retries("Keepalive", _attempt)

    async def keepalive(self) -> None:
        """Check that the portal still honours the session."""

        self._require_authenticated()
        await self._probe(self.effective_url, self._generation, probe=True)
        self._last_keepalive = self._monotonic()
        _LOGGER.debug("Session refreshed")

    async def get(self, path: str, *, params: Mapping[str, str] | None = None) -> Any:
        """Send an authenticated GET and return the decoded payload."""

        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        *,
        data: Mapping[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        """Send an authenticated POST with a form or JSON body."""

        kwargs: dict[str, Any] = {}
        if json_body is not None:
            kwargs["json"] = json_body
        else:
            kwargs["data"] = dict(data or {})
        return await self._request("POST", path, **kwargs)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send an authenticated request and classify the outcome."""

        self._require_authenticated()
        generation = self._generation
        url = self._url(path)
        headers = self._headers(Accept=ACCEPT_JSON)
        kwargs = {key: value for key, value in kwargs.items() if value is not None}

        async def _attempt() -> Any:
            raw = await self._send(method, url, headers=headers, **kwargs)
            self._check_status(raw, generation)
            return self._decode(raw)

        return await self._with_retries(f"{method} {path}", _attempt)

    async def close(self) -> None:
        """Drop the session state and cookies; safe to call repeatedly."""

        self._generation += 1
        self._state = SessionState.UNAUTHENTICATED
        self._prior_state = SessionState.UNAUTHENTICATED
        self._rate_limited_until = 0.0
        self._effective_url = None
        self._last_keepalive = None
        self._jar.clear()
        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            await session.close()


__all__ = ["Credentials", "RawResponse", "SessionClient", "SessionState"]
