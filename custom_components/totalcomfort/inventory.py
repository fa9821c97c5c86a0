"""Location/device inventory cache for a Total Connect Comfort account."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
import threading
import time
from types import MappingProxyType
from typing import Any

from .const import (
    EQUIPMENT_STATUS,
    FAN_MODES,
    KEY_COMMUNICATION_LOST,
    KEY_DEVICE_LIVE,
    SYSTEM_MODES,
)
from .util import bool_or_none, float_or_none, int_or_none, mask_identifier

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceRecord:
    """Device entry as listed by an inventory fetch."""

    device_id: str
    name: str
    mac_id: str | None = None


@dataclass(frozen=True, slots=True)
class LocationRecord:
    """Location entry as listed by an inventory fetch."""

    location_id: str
    name: str
    devices: tuple[DeviceRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class Location:
    """A location and the ordered ids of the devices it holds."""

    location_id: str
    name: str
    device_ids: tuple[str, ...] = ()


@dataclass(eq=False)
class Device:
    """Long-lived device whose snapshot is updated in place.

    Consumers may keep a reference; the cache never swaps the instance for a
    device that stays in the inventory.
    """

    device_id: str
    name: str
    location_id: str
    mac_id: str | None = None
    updated_at: float | None = None
    _snapshot: dict[str, Any] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def snapshot(self) -> Mapping[str, Any]:
        """Return a read-only copy of the latest snapshot."""

        with self._lock:
            return MappingProxyType(dict(self._snapshot))

    def get(self, key: str, default: Any = None) -> Any:
        """Return a single snapshot value."""

        with self._lock:
            return self._snapshot.get(key, default)

    def _merge(self, delta: Mapping[str, Any], timestamp: float) -> None:
        """Merge ``delta`` into the snapshot; cache-internal."""

        with self._lock:
            self._snapshot.update(delta)
            self.updated_at = timestamp

    # Typed views over the snapshot

    @property
    def device_live(self) -> bool | None:
        """Return the portal's ``deviceLive`` flag."""

        return bool_or_none(self.get(KEY_DEVICE_LIVE))

    @property
    def communication_lost(self) -> bool | None:
        """Return the portal's ``communicationLost`` flag."""

        return bool_or_none(self.get(KEY_COMMUNICATION_LOST))

    @property
    def is_alive(self) -> bool:
        """Return True when the device is live and reachable."""

        return bool(self.device_live) and not self.communication_lost

    @property
    def current_temperature(self) -> float | None:
        return float_or_none(self.get("DispTemperature"))

    @property
    def current_humidity(self) -> float | None:
        return float_or_none(self.get("IndoorHumidity"))

    @property
    def setpoint_heat(self) -> float | None:
        return float_or_none(self.get("HeatSetpoint"))

    @property
    def setpoint_cool(self) -> float | None:
        return float_or_none(self.get("CoolSetpoint"))

    @property
    def outdoor_temperature(self) -> float | None:
        """Return the outdoor temperature when the sensor is available."""

        if not bool_or_none(self.get("OutdoorTemperatureAvailable")):
            return None
        return float_or_none(self.get("OutdoorTemperature"))

    @property
    def outdoor_humidity(self) -> float | None:
        """Return the outdoor humidity when the sensor is available."""

        if not bool_or_none(self.get("OutdoorHumidityAvailable")):
            return None
        return float_or_none(self.get("OutdoorHumidity"))

    @property
    def fan_running(self) -> bool:
        return bool(bool_or_none(self.get("fanIsRunning")))

    @property
    def fan_mode(self) -> str | None:
        return _table_lookup(FAN_MODES, self.get("fanMode"))

    @property
    def system_mode(self) -> str | None:
        return _table_lookup(SYSTEM_MODES, self.get("SystemSwitchPosition"))

    @property
    def equipment_output_status(self) -> str | None:
        """Return ``off``/``fan``/``heat``/``cool`` for the running equipment."""

        status = int_or_none(self.get("EquipmentOutputStatus"))
        if status is None:
            return None
        if status == 0:
            return "fan" if self.fan_running else "off"
        return _table_lookup(EQUIPMENT_STATUS, status)

    @property
    def temperature_unit(self) -> str | None:
        unit = self.get("DisplayUnits")
        return str(unit) if unit is not None else None


def _table_lookup(table: tuple[str, ...], raw: Any) -> str | None:
    """Return ``table[raw]`` when ``raw`` is a valid index."""

    index = int_or_none(raw)
    if index is None or not 0 <= index < len(table):
        return None
    return table[index]


class InventoryCache:
    """In-memory table of location id → device id → :class:`Device`."""

    def __init__(self, *, clock: Any | None = None) -> None:
        """Initialise an empty cache."""

        self._lock = threading.RLock()
        self._locations: dict[str, Location] = {}
        self._devices: dict[str, Device] = {}
        self._clock = clock or time.time

    def replace_locations(
        self, records: Iterable[LocationRecord]
    ) -> tuple[frozenset[str], frozenset[str]]:
        """Swap the whole table for ``records``.

        Devices that stay in the inventory keep their instance. Returns the
        ids that were added and removed.
        """

        locations: dict[str, Location] = {}
        devices: dict[str, Device] = {}
        with self._lock:
            for record in records:
                if record.location_id in locations:
                    _LOGGER.warning(
                        "Location %s listed more than once; keeping the first",
                        mask_identifier(record.location_id),
                    )
                    continue
                device_ids: list[str] = []
                for device_record in record.devices:
                    device_id = device_record.device_id
                    if device_id in devices:
                        _LOGGER.warning(
                            "Device %s listed under more than one location; keeping the first",
                            mask_identifier(device_id),
                        )
                        continue
                    device = self._devices.get(device_id)
                    if device is None:
                        device = Device(
                            device_id=device_id,
                            name=device_record.name,
                            location_id=record.location_id,
                            mac_id=device_record.mac_id,
                        )
                    else:
                        device.name = device_record.name
                        device.mac_id = device_record.mac_id
                        device.location_id = record.location_id
                    devices[device_id] = device
                    device_ids.append(device_id)
                locations[record.location_id] = Location(
                    location_id=record.location_id,
                    name=record.name,
                    device_ids=tuple(device_ids),
                )

            added = frozenset(devices) - frozenset(self._devices)
            removed = frozenset(self._devices) - frozenset(devices)
            self._locations = locations
            self._devices = devices

        if added or removed:
            _LOGGER.debug(
                "Inventory changed: %s added, %s removed", len(added), len(removed)
            )
        return added, removed

    def update_device_snapshot(
        self, device_id: str, delta: Mapping[str, Any]
    ) -> Device | None:
        """Merge ``delta`` into a device snapshot.

        Returns ``None`` when the device left the inventory in the meantime.
        """

        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                _LOGGER.debug(
                    "Dropping snapshot for unknown device %s", mask_identifier(device_id)
                )
                return None
            device._merge(delta, self._clock())
            return device

    def lookup(self, device_id: str) -> Device | None:
        """Return the device with ``device_id``."""

        with self._lock:
            return self._devices.get(device_id)

    def all_locations(self) -> tuple[Location, ...]:
        """Return every known location."""

        with self._lock:
            return tuple(self._locations.values())

    def devices(self) -> tuple[Device, ...]:
        """Return every known device in inventory order."""

        with self._lock:
            return tuple(self._devices.values())

    def location_of(self, device_id: str) -> Location | None:
        """Return the location holding ``device_id``."""

        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return None
            return self._locations.get(device.location_id)

    def clear(self) -> None:
        """Forget every location and device."""

        with self._lock:
            self._locations = {}
            self._devices = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._devices


__all__ = [
    "Device",
    "DeviceRecord",
    "InventoryCache",
    "Location",
    "LocationRecord",
]
