"""Constants for the Total Connect Comfort integration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final

# Domain
DOMAIN: Final = "totalcomfort"

# HTTP base & paths
BASE_URL: Final = "https://www.mytotalconnectcomfort.com/portal"
LOCATIONS_PATH: Final = "/Location/GetLocationListData"
DEVICE_DATA_PATH_FMT: Final = "/Device/CheckDataSession/{device_id}"
CONTROL_PATH: Final = "/Device/SubmitControlScreenChanges"

# Browser-like headers; the portal rejects clients that do not look like one.
USER_AGENT: Final = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
ACCEPT_HTML: Final = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
)
ACCEPT_JSON: Final = "application/json, text/javascript, */*; q=0.01"
ACCEPT_LANGUAGE: Final = "en-US,en;q=0.9"
REQUESTED_WITH: Final = "XMLHttpRequest"

BASE_HEADERS: Final[Mapping[str, str]] = {
    "User-Agent": USER_AGENT,
    "Accept": ACCEPT_HTML,
    "Accept-Language": ACCEPT_LANGUAGE,
    "X-Requested-With": REQUESTED_WITH,
    "Connection": "keep-alive",
}

# Login form
FORM_USERNAME: Final = "UserName"
FORM_PASSWORD: Final = "Password"
FORM_REMEMBER_ME: Final = "RememberMe"
FORM_TIME_OFFSET: Final = "timeOffset"
REMEMBER_ME_VALUE: Final = "false"
TIME_OFFSET_VALUE: Final = "480"

# Response markers
SUCCESS_KEY: Final = "success"
INVALID_CREDENTIALS_MARKER: Final = "Invalid username or password"
RATE_LIMIT_MARKER: Final = "you are being rate-limited"

# Cookies
EXCLUDED_COOKIE: Final = "ASPXAUTH_TRUEHOME_RT"

# Inventory / detail payload keys
KEY_DEVICE_ID: Final = "DeviceID"
KEY_DR_DATA: Final = "drData"
KEY_DEVICE_LIVE: Final = "deviceLive"
KEY_COMMUNICATION_LOST: Final = "communicationLost"

# Mode tables (index == portal value)
SYSTEM_MODES: Final = ("emheat", "heat", "off", "cool", "auto")
FAN_MODES: Final = ("auto", "on", "circulate", "follow schedule")
EQUIPMENT_STATUS: Final = ("off/fan", "heat", "cool")

HOLD_NONE: Final = 0
HOLD_TEMPORARY: Final = 1
HOLD_PERMANENT: Final = 2

# Polling
DEFAULT_POLL_INTERVAL: Final = 120  # seconds
MIN_POLL_INTERVAL: Final = 60  # seconds
MAX_POLL_INTERVAL: Final = 3600  # seconds
MAX_BACKOFF: Final = 3600  # seconds
DEFAULT_AUTH_RETRY_DELAY: Final = 600  # seconds
DEFAULT_MAX_CONSECUTIVE_FAILURES: Final = 3
DEFAULT_DETAIL_PARALLELISM: Final = 3
DEFAULT_KEEPALIVE_INTERVAL: Final = 300  # seconds
STOP_TIMEOUT: Final = 10.0  # seconds

# HTTP
DEFAULT_REQUEST_TIMEOUT: Final = 30  # seconds
MIN_REQUEST_TIMEOUT: Final = 5  # seconds
MAX_REQUEST_TIMEOUT: Final = 120  # seconds
REQUEST_ATTEMPTS: Final = 3
RETRY_DELAY: Final = 1.0  # seconds
RATE_LIMIT_BACKOFF: Final = 300  # seconds
MAX_RETRY_AFTER: Final = 3600  # seconds

# Configuration keys
CONF_USERNAME: Final = "username"
CONF_PASSWORD: Final = "password"
CONF_POLL_INTERVAL: Final = "poll_interval"
CONF_REFRESH: Final = "refresh"
CONF_TIMEOUT: Final = "timeout"
CONF_AUTH_RETRY_DELAY: Final = "auth_retry_delay"
CONF_MAX_CONSECUTIVE_FAILURES: Final = "max_consecutive_failures"
CONF_DETAIL_PARALLELISM: Final = "detail_parallelism"
CONF_KEEPALIVE_INTERVAL: Final = "keepalive_interval"
