"""Recurring poll cycle for a Total Connect Comfort account."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import time
from typing import Any

from .api import TotalComfortApi
from .client import SessionClient, SessionState
from .const import (
    DEFAULT_AUTH_RETRY_DELAY,
    DEFAULT_DETAIL_PARALLELISM,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MAX_BACKOFF,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    STOP_TIMEOUT,
)
from .errors import (
    AuthenticationFailed,
    ErrorKind,
    RateLimited,
    TotalComfortError,
)
from .inventory import Device, InventoryCache
from .registry import DeviceConsumerRegistry
from .util import mask_identifier

_LOGGER = logging.getLogger(__name__)

# Upper bound for the backoff exponent.
_MAX_BACKOFF_EXPONENT = 16


class ConnectionStatus(StrEnum):
    """Connection status published to the host."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class StatusDetail(StrEnum):
    """Reason attached to an OFFLINE status."""

    NONE = "none"
    CONFIGURATION_ERROR = "configuration_error"
    COMMUNICATION_ERROR = "communication_error"


StatusListener = Callable[[ConnectionStatus, StatusDetail, str | None], Any]


@dataclass(slots=True)
class PollResult:
    """Outcome of one poll cycle."""

    timestamp: float
    succeeded: tuple[str, ...] = ()
    failed: dict[str, ErrorKind] = field(default_factory=dict)
    error: ErrorKind | None = None
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    skipped: bool = False

    @property
    def ok(self) -> bool:
        """Return True when the cycle completed without a cycle-level error."""

        return self.error is None


def clamp_interval(value: float) -> int:
    """Clamp a poll interval into the supported range."""

    return int(max(MIN_POLL_INTERVAL, min(MAX_POLL_INTERVAL, value)))


class PollScheduler:
    """Drive login, inventory and detail fetches on a fixed cadence.

    Each cycle runs under a single poll lock: the session is (re)established
    when needed, the inventory is refreshed, every device is fetched with
    bounded parallelism, and freshly updated devices are handed to their
    consumers. Repeated failures stretch the delay between cycles.
    """

    def __init__(
        self,
        client: SessionClient,
        api: TotalComfortApi,
        cache: InventoryCache,
        registry: DeviceConsumerRegistry,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        auth_retry_delay: float = DEFAULT_AUTH_RETRY_DELAY,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        detail_parallelism: int = DEFAULT_DETAIL_PARALLELISM,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        status_listener: StatusListener | None = None,
        monotonic: Callable[[], float] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._client = client
        self._api = api
        self._cache = cache
        self._registry = registry
        self._interval = clamp_interval(interval)
        self._auth_retry_delay = max(float(auth_retry_delay), float(self._interval))
        self._max_failures = max(1, int(max_consecutive_failures))
        self._parallelism = max(1, int(detail_parallelism))
        self._keepalive_interval = max(float(keepalive_interval), 0.0)
        self._listener = status_listener
        self._monotonic = monotonic or time.monotonic
        self._clock = clock or time.time

        self._poll_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._detail_tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

        self._status = ConnectionStatus.UNKNOWN
        self._detail = StatusDetail.NONE
        self._reason: str | None = None
        self._failures = 0
        self._auth_retry_at: float | None = None
        self._last_result: PollResult | None = None

    # ----------------- Introspection -----------------

    @property
    def interval(self) -> int:
        return self._interval

    @property
    def auth_retry_delay(self) -> float:
        return self._auth_retry_delay

    @property
    def keepalive_interval(self) -> float:
        return self._keepalive_interval

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def status_detail(self) -> StatusDetail:
        return self._detail

    @property
    def status_reason(self) -> str | None:
        return self._reason

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_result(self) -> PollResult | None:
        return self._last_result

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def auth_retry_remaining(self) -> float:
        """Return the seconds left before the next login attempt is allowed."""

        if self._auth_retry_at is None:
            return 0.0
        return max(self._auth_retry_at - self._monotonic(), 0.0)

    def next_delay(self) -> float:
        """Return the delay before the next cycle."""

        delay = float(self._interval)
        if self._failures >= self._max_failures:
            exponent = min(
                self._failures - self._max_failures + 1, _MAX_BACKOFF_EXPONENT
            )
            delay = max(delay, min(self._interval * 2**exponent, float(MAX_BACKOFF)))
        return max(delay, self._client.rate_limit_remaining, self.auth_retry_remaining())

    # ----------------- Status -----------------

    def _set_status(
        self, status: ConnectionStatus, detail: StatusDetail, reason: str | None
    ) -> None:
        """Publish a status change; repeated identical statuses are dropped."""

        if status is self._status and detail is self._detail:
            return
        self._status = status
        self._detail = detail
        self._reason = reason
        if status is ConnectionStatus.ONLINE:
            _LOGGER.info("Total Connect Comfort connection is online")
        else:
            _LOGGER.warning(
                "Total Connect Comfort connection is %s (%s): %s",
                status,
                detail,
                reason,
            )
        if self._listener is None:
            return
        try:
            self._listener(status, detail, reason)
        except Exception:
            _LOGGER.exception("Status listener raised")

    # ----------------- Cycle -----------------

    async def async_refresh(self) -> PollResult:
        """Run one cycle now and return its result."""

        async with self._poll_lock:
            try:
                result = await self._poll_once()
            except Exception:
                self._failures += 1
                raise
            if result.ok:
                self._failures = 0
            else:
                self._failures += 1
            self._last_result = result
        _LOGGER.debug(
            "Poll finished: status=%s ok=%s failed=%s consecutive_failures=%s",
            result.status,
            len(result.succeeded),
            len(result.failed),
            self._failures,
        )
        return result

    async def async_ensure_session(self) -> None:
        """Log in for a caller outside the poll cycle.

        Honours the retry deadline set after rejected credentials, so user
        commands cannot hammer the login endpoint.
        """

        if self._client.is_authenticated:
            return
        remaining = self.auth_retry_remaining()
        if remaining > 0:
            raise AuthenticationFailed(
                f"Login suspended for {remaining:.0f}s after rejected credentials"
            )
        await self._login()

    async def _login(self) -> None:
        try:
            await self._client.ensure_authenticated()
        except AuthenticationFailed as err:
            self._auth_retry_at = self._monotonic() + self._auth_retry_delay
            self._set_status(
                ConnectionStatus.OFFLINE, StatusDetail.CONFIGURATION_ERROR, str(err)
            )
            raise
        self._auth_retry_at = None

    def _result(self, timestamp: float, **kwargs: Any) -> PollResult:
        return PollResult(timestamp=timestamp, status=self._status, **kwargs)

    async def _poll_once(self) -> PollResult:
        now = self._clock()
        client = self._client

        if client.state is SessionState.RATE_LIMITED:
            _LOGGER.debug(
                "Skipping poll during rate-limit cool-down (%.0fs left)",
                client.rate_limit_remaining,
            )
            return self._result(now, error=ErrorKind.RATE_LIMITED, skipped=True)

        if not client.is_authenticated:
            remaining = self.auth_retry_remaining()
            if remaining > 0:
                _LOGGER.debug("Skipping poll; next login attempt in %.0fs", remaining)
                return self._result(
                    now, error=ErrorKind.AUTHENTICATION_FAILED, skipped=True
                )
            try:
                await self._login()
            except AuthenticationFailed as err:
                return self._result(now, error=err.kind)
            except RateLimited as err:
                _LOGGER.debug("Login deferred by rate limit: %s", err)
                return self._result(now, error=err.kind, skipped=True)
            except TotalComfortError as err:
                self._set_status(
                    ConnectionStatus.OFFLINE, StatusDetail.COMMUNICATION_ERROR, str(err)
                )
                return self._result(now, error=err.kind)
        elif client.keepalive_age >= self._keepalive_interval:
            try:
                await client.keepalive()
            except TotalComfortError as err:
                return self._inventory_failed(now, err.kind, str(err))

        try:
            records = await self._api.get_locations()
        except TotalComfortError as err:
            return self._inventory_failed(now, err.kind, str(err))
        self._cache.replace_locations(records)

        devices = self._cache.devices()
        updated, failed = await self._fetch_details(devices)
        for device in updated:
            await self._registry.async_dispatch(device)

        succeeded = tuple(device.device_id for device in updated)
        if devices and not succeeded:
            first_kind = next(iter(failed.values()), ErrorKind.COMMUNICATION_FAILURE)
            return self._inventory_failed(
                now, first_kind, "No device could be updated", failed=failed
            )

        self._set_status(ConnectionStatus.ONLINE, StatusDetail.NONE, None)
        return self._result(now, succeeded=succeeded, failed=failed)

    def _inventory_failed(
        self,
        now: float,
        kind: ErrorKind,
        reason: str,
        *,
        failed: Mapping[str, ErrorKind] | None = None,
    ) -> PollResult:
        """Map a cycle-level failure onto the published status."""

        if kind is ErrorKind.RATE_LIMITED:
            _LOGGER.debug("Inventory fetch rate limited: %s", reason)
        elif kind in (ErrorKind.SESSION_EXPIRED, ErrorKind.NOT_AUTHENTICATED):
            _LOGGER.info("Session ended (%s); logging in again next cycle", kind)
        else:
            self._set_status(
                ConnectionStatus.OFFLINE, StatusDetail.COMMUNICATION_ERROR, reason
            )
        return self._result(now, failed=dict(failed or {}), error=kind)

    async def _fetch_details(
        self, devices: Sequence[Device]
    ) -> tuple[list[Device], dict[str, ErrorKind]]:
        """Fetch every device concurrently; failures are collected per device."""

        if not devices:
            return [], {}
        semaphore = asyncio.Semaphore(self._parallelism)

        async def _fetch(device_id: str) -> dict[str, Any]:
            async with semaphore:
                return await self._api.get_device_data(device_id)

        tasks = [
            asyncio.create_task(
                _fetch(device.device_id), name=f"{DOMAIN}-detail-{device.device_id}"
            )
            for device in devices
        ]
        self._detail_tasks.update(tasks)
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._detail_tasks.difference_update(tasks)

        updated: list[Device] = []
        failed: dict[str, ErrorKind] = {}
        for device, outcome in zip(devices, outcomes):
            if isinstance(outcome, TotalComfortError):
                _LOGGER.warning(
                    "Update of device %s failed: %s",
                    mask_identifier(device.device_id),
                    outcome,
                )
                failed[device.device_id] = outcome.kind
                continue
            if isinstance(outcome, Exception):
                _LOGGER.error(
                    "Unexpected error updating device %s: %r",
                    mask_identifier(device.device_id),
                    outcome,
                )
                failed[device.device_id] = ErrorKind.MALFORMED_RESPONSE
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            merged = self._cache.update_device_snapshot(device.device_id, outcome)
            if merged is not None:
                updated.append(merged)
        return updated, failed

    # ----------------- Lifecycle -----------------

    async def async_start(self) -> None:
        """Start the background poll loop; the first cycle runs immediately."""

        if self.is_running:
            return
        self._closed = False
        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"{DOMAIN}-poll"
        )

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.async_refresh()
            except Exception:
                _LOGGER.exception("Unexpected error during poll cycle")
            delay = self.next_delay()
            _LOGGER.debug("Next poll in %.0fs", delay)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                continue

    async def async_stop(self, timeout: float = STOP_TIMEOUT) -> None:
        """Stop polling, cancel in-flight fetches and close the client once."""

        self._stop_event.set()
        task, self._task = self._task, None
        for detail_task in list(self._detail_tasks):
            detail_task.cancel()
        if task is not None and not task.done():
            task.cancel()
            done, _pending = await asyncio.wait({task}, timeout=timeout)
            if not done:
                _LOGGER.warning("Poll task did not stop within %.0fs", timeout)
        if not self._closed:
            self._closed = True
            await self._client.close()


__all__ = [
    "ConnectionStatus",
    "PollResult",
    "PollScheduler",
    "StatusDetail",
    "StatusListener",
    "clamp_interval",
]
