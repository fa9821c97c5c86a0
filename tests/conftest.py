# ruff: noqa: D100,D101,D102,D103,D105,D107,INP001
from __future__ import annotations

import asyncio
import copy
import inspect
import json
from pathlib import Path
import sys
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from custom_components.totalcomfort.client import Credentials, SessionClient
from custom_components.totalcomfort.const import BASE_URL


def pytest_configure(config: pytest.Config) -> None:
    """Register the asyncio marker when pytest-asyncio is not installed."""

    if not config.pluginmanager.hasplugin("pytest_asyncio"):
        config.addinivalue_line(
            "markers", "asyncio: run the coroutine test on a fresh event loop."
        )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``@pytest.mark.asyncio`` coroutine tests without a plugin."""

    if pyfuncitem.config.pluginmanager.hasplugin("pytest_asyncio"):
        return None
    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None
    argnames = pyfuncitem._fixtureinfo.argnames
    kwargs = {name: pyfuncitem.funcargs[name] for name in argnames}
    with asyncio.Runner(debug=False) as runner:
        runner.run(testfunction(**kwargs))
    return True


class MockResponse:
    """Scripted aiohttp response usable as ``async with`` target."""

    def __init__(
        self,
        status: int = 200,
        text_data: str = "",
        *,
        headers: dict[str, Any] | None = None,
        url: str | None = None,
        history: tuple[Any, ...] = (),
        text_exc: BaseException | None = None,
    ) -> None:
        self.status = status
        self._text = text_data
        self._text_exc = text_exc
        self.headers = headers or {}
        self.url = url
        self.history = history
        self.request_info = None
        self.text_calls = 0

    async def __aenter__(self) -> MockResponse:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def text(self) -> str:
        self.text_calls += 1
        if self._text_exc is not None:
            raise self._text_exc
        return self._text


def json_response(
    payload: Any,
    status: int = 200,
    *,
    headers: dict[str, Any] | None = None,
) -> MockResponse:
    merged = {"Content-Type": "application/json; charset=utf-8"}
    merged.update(headers or {})
    return MockResponse(status, json.dumps(payload), headers=merged)


def html_response(
    text_data: str = "<html></html>",
    status: int = 200,
    *,
    headers: dict[str, Any] | None = None,
    url: str | None = None,
) -> MockResponse:
    merged = {"Content-Type": "text/html; charset=utf-8"}
    merged.update(headers or {})
    return MockResponse(status, text_data, headers=merged, url=url)


class FakeSession:
    """Queue-driven stand-in for ``aiohttp.ClientSession``."""

    def __init__(self) -> None:
        self._queue: list[Any] = []
        self.request_calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    def queue(self, *responses: Any) -> None:
        self._queue.extend(responses)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        kwargs.pop("timeout", None)
        self.request_calls.append((method, url, copy.deepcopy(kwargs)))
        if not self._queue:
            raise AssertionError(f"Unexpected {method} {url} with no queued response")
        result = self._queue.pop(0)
        if callable(result) and not isinstance(result, MockResponse):
            result = result()
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Record requested sleeps without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


def queue_login(session: FakeSession, *, cookie: str = ".ASPXAUTH_TRUEHOME=abc") -> None:
    """Queue the three exchanges of a successful login."""

    session.queue(
        html_response(headers={"Set-Cookie": "SessionCookie=s1; Path=/"}),
        html_response(url=BASE_URL, headers={"Set-Cookie": f"{cookie}; Path=/"}),
        html_response(url=BASE_URL),
    )


def make_client(
    session: FakeSession,
    *,
    clock: FakeClock | None = None,
    sleep: FakeSleep | None = None,
    **kwargs: Any,
) -> SessionClient:
    return SessionClient(
        Credentials("user@example.com", "secret"),
        session=session,
        monotonic=clock or FakeClock(),
        sleep=sleep or FakeSleep(),
        **kwargs,
    )


def location_payload(*locations: tuple[str, list[str]]) -> list[dict[str, Any]]:
    """Build a ``GetLocationListData`` body from ``(location_id, device_ids)``."""

    return [
        {
            "LocationID": int(location_id),
            "Name": f"Home {location_id}",
            "Devices": [
                {"DeviceID": int(device_id), "Name": f"Stat {device_id}", "MacID": f"MAC{device_id}"}
                for device_id in device_ids
            ],
        }
        for location_id, device_ids in locations
    ]


def device_payload(
    temperature: float = 21.5, *, live: bool = True, **ui: Any
) -> dict[str, Any]:
    """Build a ``CheckDataSession`` body."""

    ui_data = {
        "DispTemperature": temperature,
        "HeatSetpoint": 20,
        "CoolSetpoint": 25,
        "IndoorHumidity": 40,
        "SystemSwitchPosition": 1,
        "EquipmentOutputStatus": 1,
        "DisplayUnits": "C",
    }
    ui_data.update(ui)
    return {
        "success": True,
        "deviceLive": live,
        "communicationLost": not live,
        "latestData": {
            "uiData": ui_data,
            "fanData": {"fanMode": 0, "fanIsRunning": False},
            "drData": {"Phase": -1},
        },
    }
