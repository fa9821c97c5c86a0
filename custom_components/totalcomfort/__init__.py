"""Cloud session and polling engine for Honeywell Total Connect Comfort."""

from __future__ import annotations

from .account import TotalComfortAccount
from .api import TotalComfortApi
from .client import Credentials, SessionClient, SessionState
from .config import AccountConfig
from .cookies import Cookie, CookieJar
from .errors import (
    ApiRejected,
    AuthenticationFailed,
    CommunicationFailure,
    ErrorKind,
    MalformedResponse,
    NotAuthenticated,
    RateLimited,
    SessionExpired,
    TotalComfortError,
    UnexpectedResponse,
)
from .inventory import Device, InventoryCache, Location
from .registry import DeviceConsumerRegistry
from .scheduler import ConnectionStatus, PollResult, PollScheduler, StatusDetail

__all__ = [
    "AccountConfig",
    "ApiRejected",
    "AuthenticationFailed",
    "CommunicationFailure",
    "ConnectionStatus",
    "Cookie",
    "CookieJar",
    "Credentials",
    "Device",
    "DeviceConsumerRegistry",
    "ErrorKind",
    "InventoryCache",
    "Location",
    "MalformedResponse",
    "NotAuthenticated",
    "PollResult",
    "PollScheduler",
    "RateLimited",
    "SessionClient",
    "SessionExpired",
    "SessionState",
    "StatusDetail",
    "TotalComfortAccount",
    "TotalComfortApi",
    "TotalComfortError",
    "UnexpectedResponse",
]
