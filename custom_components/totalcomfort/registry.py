"""Per-device consumer registry."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import inspect
import logging
import threading
from typing import Any

from .inventory import Device
from .util import mask_identifier

_LOGGER = logging.getLogger(__name__)

DeviceConsumer = Callable[[Device], Awaitable[None] | None]


class DeviceConsumerRegistry:
    """Map a device id to at most one consumer callback."""

    def __init__(self) -> None:
        self._consumers: dict[str, DeviceConsumer] = {}
        self._lock = threading.Lock()

    def register(self, device_id: str, consumer: DeviceConsumer) -> Callable[[], None]:
        """Register ``consumer`` for ``device_id``, replacing any previous one.

        Returns a callable that removes this registration again.
        """

        with self._lock:
            if device_id in self._consumers:
                _LOGGER.debug(
                    "Replacing consumer for device %s", mask_identifier(device_id)
                )
            self._consumers[device_id] = consumer

        def _unregister() -> None:
            with self._lock:
                if self._consumers.get(device_id) is consumer:
                    del self._consumers[device_id]

        return _unregister

    def unregister(self, device_id: str) -> bool:
        """Remove the consumer for ``device_id``; return True if one existed."""

        with self._lock:
            return self._consumers.pop(device_id, None) is not None

    def get(self, device_id: str) -> DeviceConsumer | None:
        with self._lock:
            return self._consumers.get(device_id)

    def device_ids(self) -> list[str]:
        with self._lock:
            return list(self._consumers)

    def clear(self) -> None:
        with self._lock:
            self._consumers.clear()

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._consumers

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumers)

    async def async_dispatch(self, device: Device) -> bool:
        """Hand ``device`` to its consumer.

        Returns True when a consumer ran without raising. Consumer errors are
        logged and swallowed so one handler cannot break the poll cycle.
        """

        consumer = self.get(device.device_id)
        if consumer is None:
            return False
        try:
            result: Any = consumer(device)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _LOGGER.exception(
                "Consumer for device %s raised", mask_identifier(device.device_id)
            )
            return False
        return True


__all__ = ["DeviceConsumer", "DeviceConsumerRegistry"]
