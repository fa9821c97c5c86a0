"""Account configuration for the Total Connect Comfort engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .const import (
    CONF_AUTH_RETRY_DELAY,
    CONF_DETAIL_PARALLELISM,
    CONF_KEEPALIVE_INTERVAL,
    CONF_MAX_CONSECUTIVE_FAILURES,
    CONF_PASSWORD,
    CONF_POLL_INTERVAL,
    CONF_REFRESH,
    CONF_TIMEOUT,
    CONF_USERNAME,
    DEFAULT_AUTH_RETRY_DELAY,
    DEFAULT_DETAIL_PARALLELISM,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    MAX_POLL_INTERVAL,
    MAX_REQUEST_TIMEOUT,
    MIN_POLL_INTERVAL,
    MIN_REQUEST_TIMEOUT,
)
from .util import float_or_none, int_or_none


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True, slots=True)
class AccountConfig:
    """Validated settings for one account."""

    username: str
    password: str = field(repr=False)
    poll_interval: int = DEFAULT_POLL_INTERVAL
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    auth_retry_delay: int = DEFAULT_AUTH_RETRY_DELAY
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    detail_parallelism: int = DEFAULT_DETAIL_PARALLELISM
    keepalive_interval: int = DEFAULT_KEEPALIVE_INTERVAL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AccountConfig:
        """Build a config from user-supplied settings.

        ``refresh`` is given in minutes and ``poll_interval`` in seconds; the
        latter wins when both are present. Numbers outside their allowed
        range are clamped, unparsable ones fall back to the defaults.
        """

        username = str(data.get(CONF_USERNAME) or "").strip()
        password = str(data.get(CONF_PASSWORD) or "")
        if not username:
            raise ValueError("A username is required")
        if not password.strip():
            raise ValueError("A password is required")

        interval = float_or_none(data.get(CONF_POLL_INTERVAL))
        if interval is None:
            minutes = float_or_none(data.get(CONF_REFRESH))
            interval = minutes * 60 if minutes is not None else None
        if interval is None:
            interval = DEFAULT_POLL_INTERVAL

        timeout = float_or_none(data.get(CONF_TIMEOUT))
        if timeout is None:
            timeout = DEFAULT_REQUEST_TIMEOUT

        auth_retry = int_or_none(data.get(CONF_AUTH_RETRY_DELAY))
        max_failures = int_or_none(data.get(CONF_MAX_CONSECUTIVE_FAILURES))
        parallelism = int_or_none(data.get(CONF_DETAIL_PARALLELISM))
        keepalive = int_or_none(data.get(CONF_KEEPALIVE_INTERVAL))

        return cls(
            username=username,
            password=password,
            poll_interval=int(_clamp(interval, MIN_POLL_INTERVAL, MAX_POLL_INTERVAL)),
            request_timeout=int(
                _clamp(timeout, MIN_REQUEST_TIMEOUT, MAX_REQUEST_TIMEOUT)
            ),
            auth_retry_delay=max(
                auth_retry if auth_retry and auth_retry > 0 else DEFAULT_AUTH_RETRY_DELAY,
                MIN_POLL_INTERVAL,
            ),
            max_consecutive_failures=(
                max_failures
                if max_failures and max_failures > 0
                else DEFAULT_MAX_CONSECUTIVE_FAILURES
            ),
            detail_parallelism=(
                parallelism
                if parallelism and parallelism > 0
                else DEFAULT_DETAIL_PARALLELISM
            ),
            keepalive_interval=(
                keepalive if keepalive and keepalive > 0 else DEFAULT_KEEPALIVE_INTERVAL
            ),
        )


__all__ = ["AccountConfig"]
