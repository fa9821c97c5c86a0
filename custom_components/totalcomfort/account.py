"""Per-account orchestration of the Total Connect Comfort engine."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import time as dt_time
import logging
from types import TracebackType
from typing import Any

import aiohttp

from .api import (
    TotalComfortApi,
    build_fan_mode_changes,
    build_hold_changes,
    build_setpoint_changes,
    build_system_mode_changes,
)
from .client import Credentials, SessionClient
from .codecs.tcc_codec import encode_control_changes
from .config import AccountConfig
from .inventory import Device, InventoryCache, Location
from .registry import DeviceConsumer, DeviceConsumerRegistry
from .scheduler import (
    ConnectionStatus,
    PollResult,
    PollScheduler,
    StatusDetail,
    StatusListener,
)
from .util import mask_identifier, username_domain

_LOGGER = logging.getLogger(__name__)


class TotalComfortAccount:
    """Own every component serving one portal account."""

    def __init__(
        self,
        config: AccountConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        status_listener: StatusListener | None = None,
        client: SessionClient | None = None,
        **scheduler_kwargs: Any,
    ) -> None:
        """Wire the client, cache, registry and scheduler for ``config``."""

        self._config = config
        self._client = client or SessionClient(
            Credentials(config.username, config.password),
            session=session,
            request_timeout=config.request_timeout,
        )
        self._api = TotalComfortApi(self._client)
        self._cache = InventoryCache()
        self._registry = DeviceConsumerRegistry()
        self._scheduler = PollScheduler(
            self._client,
            self._api,
            self._cache,
            self._registry,
            interval=config.poll_interval,
            auth_retry_delay=config.auth_retry_delay,
            max_consecutive_failures=config.max_consecutive_failures,
            detail_parallelism=config.detail_parallelism,
            keepalive_interval=config.keepalive_interval,
            status_listener=status_listener,
            **scheduler_kwargs,
        )

    @property
    def config(self) -> AccountConfig:
        return self._config

    @property
    def client(self) -> SessionClient:
        return self._client

    @property
    def api(self) -> TotalComfortApi:
        return self._api

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def status(self) -> ConnectionStatus:
        return self._scheduler.status

    @property
    def status_detail(self) -> StatusDetail:
        return self._scheduler.status_detail

    # ----------------- Consumers and inventory -----------------

    def register_consumer(
        self, device_id: str, consumer: DeviceConsumer
    ) -> Callable[[], None]:
        """Receive updates for ``device_id``; returns an unregister callable."""

        return self._registry.register(device_id, consumer)

    def unregister_consumer(self, device_id: str) -> bool:
        return self._registry.unregister(device_id)

    def get_device(self, device_id: str) -> Device | None:
        return self._cache.lookup(device_id)

    def locations(self) -> tuple[Location, ...]:
        return self._cache.all_locations()

    def devices(self) -> tuple[Device, ...]:
        return self._cache.devices()

    # ----------------- Lifecycle -----------------

    async def async_start(self) -> None:
        _LOGGER.debug(
            "Starting account for user domain=%s",
            username_domain(self._config.username),
        )
        await self._scheduler.async_start()

    async def async_stop(self) -> None:
        await self._scheduler.async_stop()

    async def async_refresh(self) -> PollResult:
        return await self._scheduler.async_refresh()

    async def __aenter__(self) -> TotalComfortAccount:
        await self.async_start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.async_stop()

    # ----------------- Commands -----------------

    async def async_submit_changes(
        self, device_id: str, changes: Mapping[str, Any], *, refresh: bool = True
    ) -> None:
        """Submit ``changes`` on an authenticated session, then refresh."""

        # Validate before touching the network.
        encode_control_changes(device_id, changes)
        await self._scheduler.async_ensure_session()
        await self._api.submit_control_changes(device_id, changes)
        _LOGGER.debug("Command accepted for device %s", mask_identifier(device_id))
        if refresh:
            await self._scheduler.async_refresh()

    async def async_set_heat_setpoint(
        self, device_id: str, temperature: float, *, refresh: bool = True
    ) -> None:
        await self.async_submit_changes(
            device_id, build_setpoint_changes("Heat", temperature), refresh=refresh
        )

    async def async_set_cool_setpoint(
        self, device_id: str, temperature: float, *, refresh: bool = True
    ) -> None:
        await self.async_submit_changes(
            device_id, build_setpoint_changes("Cool", temperature), refresh=refresh
        )

    async def async_set_system_mode(
        self, device_id: str, mode: str, *, refresh: bool = True
    ) -> None:
        await self.async_submit_changes(
            device_id, build_system_mode_changes(mode), refresh=refresh
        )

    async def async_set_fan_mode(
        self, device_id: str, mode: str, *, refresh: bool = True
    ) -> None:
        await self.async_submit_changes(
            device_id, build_fan_mode_changes(mode), refresh=refresh
        )

    async def async_set_hold(
        self,
        device_id: str,
        hold_type: str,
        *,
        permanent: bool = False,
        until: dt_time | None = None,
        refresh: bool = True,
    ) -> None:
        """Set or cancel a heat/cool hold, see :func:`.api.build_hold_changes`."""

        await self.async_submit_changes(
            device_id,
            build_hold_changes(hold_type, permanent=permanent, until=until),
            refresh=refresh,
        )


__all__ = ["TotalComfortAccount"]
