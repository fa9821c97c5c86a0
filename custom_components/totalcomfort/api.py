"""Vendor endpoints of the Total Connect Comfort portal."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import time as dt_time
import logging
from typing import Any

from .client import SessionClient
from .codecs.tcc_codec import (
    decode_device_data_payload,
    decode_locations_payload,
    encode_control_changes,
)
from .const import (
    CONTROL_PATH,
    DEVICE_DATA_PATH_FMT,
    FAN_MODES,
    HOLD_NONE,
    HOLD_PERMANENT,
    HOLD_TEMPORARY,
    LOCATIONS_PATH,
    SYSTEM_MODES,
)
from .inventory import LocationRecord
from .util import float_or_none, mask_identifier

_LOGGER = logging.getLogger(__name__)

HOLD_TYPES = frozenset({"Heat", "Cool"})


class TotalComfortApi:
    """Typed access to the portal endpoints over a :class:`SessionClient`."""

    def __init__(self, client: SessionClient) -> None:
        self._client = client

    @property
    def client(self) -> SessionClient:
        return self._client

    async def get_locations(self) -> list[LocationRecord]:
        """Fetch every location and its devices."""

        payload = await self._client.post(
            LOCATIONS_PATH, data={"page": "1", "filter": ""}
        )
        records = decode_locations_payload(payload)
        _LOGGER.debug(
            "Retrieved %s locations with %s devices",
            len(records),
            sum(len(record.devices) for record in records),
        )
        return records

    async def get_device_data(self, device_id: str) -> dict[str, Any]:
        """Fetch the current snapshot delta for ``device_id``."""

        payload = await self._client.get(
            DEVICE_DATA_PATH_FMT.format(device_id=device_id)
        )
        return decode_device_data_payload(payload)

    async def submit_control_changes(
        self, device_id: str, changes: Mapping[str, Any]
    ) -> None:
        """Submit a control-screen change set for ``device_id``."""

        body = encode_control_changes(device_id, changes)
        _LOGGER.debug(
            "Submitting %s to device %s", sorted(changes), mask_identifier(device_id)
        )
        await self._client.post(CONTROL_PATH, json_body=body)

    async def set_heat_setpoint(self, device_id: str, temperature: float) -> None:
        await self.submit_control_changes(
            device_id, build_setpoint_changes("Heat", temperature)
        )

    async def set_cool_setpoint(self, device_id: str, temperature: float) -> None:
        await self.submit_control_changes(
            device_id, build_setpoint_changes("Cool", temperature)
        )

    async def set_system_mode(self, device_id: str, mode: str) -> None:
        """Switch the system mode (``emheat``, ``heat``, ``off``, ``cool``, ``auto``)."""

        await self.submit_control_changes(device_id, build_system_mode_changes(mode))

    async def set_fan_mode(self, device_id: str, mode: str) -> None:
        """Switch the fan mode (``auto``, ``on``, ``circulate``, ``follow schedule``)."""

        await self.submit_control_changes(device_id, build_fan_mode_changes(mode))

    async def set_hold(
        self,
        device_id: str,
        hold_type: str,
        *,
        permanent: bool = False,
        until: dt_time | None = None,
    ) -> None:
        """Set or cancel a heat/cool hold.

        A temporary hold ends at ``until`` which must sit on a 15-minute
        boundary; no ``until`` and no ``permanent`` cancels the hold.
        """

        await self.submit_control_changes(
            device_id, build_hold_changes(hold_type, permanent=permanent, until=until)
        )


def _mode_index(table: tuple[str, ...], mode: str, label: str) -> int:
    """Return the portal index of ``mode`` in ``table``."""

    normalized = str(mode).strip().lower()
    if normalized == "followschedule":
        normalized = "follow schedule"
    try:
        return table.index(normalized)
    except ValueError:
        raise ValueError(f"Invalid {label} mode: {mode!r}") from None


def build_setpoint_changes(setpoint_type: str, temperature: Any) -> dict[str, float]:
    """Return the control field for a heat or cool setpoint."""

    kind = str(setpoint_type).strip().capitalize()
    if kind not in HOLD_TYPES:
        raise ValueError(f"Invalid setpoint type: {setpoint_type!r}")
    value = float_or_none(temperature)
    if value is None:
        raise ValueError(f"Invalid temperature: {temperature!r}")
    return {f"{kind}Setpoint": value}


def build_system_mode_changes(mode: str) -> dict[str, int]:
    return {"SystemSwitch": _mode_index(SYSTEM_MODES, mode, "system")}


def build_fan_mode_changes(mode: str) -> dict[str, int]:
    return {"FanMode": _mode_index(FAN_MODES, mode, "fan")}


def build_hold_changes(
    hold_type: str, *, permanent: bool = False, until: dt_time | None = None
) -> dict[str, int]:
    """Return the control fields for a hold request."""

    kind = str(hold_type).strip().capitalize()
    if kind not in HOLD_TYPES:
        raise ValueError(f"Invalid hold type: {hold_type!r}")
    if permanent:
        return {f"Status{kind}": HOLD_PERMANENT, f"{kind}NextPeriod": 0}
    if until is not None:
        if until.minute % 15 or until.second or until.microsecond:
            raise ValueError("Hold time must be on a 15-minute boundary")
        quarter_hours = (until.hour * 60 + until.minute) // 15
        return {f"Status{kind}": HOLD_TEMPORARY, f"{kind}NextPeriod": quarter_hours}
    return {f"Status{kind}": HOLD_NONE, f"{kind}NextPeriod": 0}


__all__ = [
    "TotalComfortApi",
    "build_fan_mode_changes",
    "build_hold_changes",
    "build_setpoint_changes",
    "build_system_mode_changes",
]
