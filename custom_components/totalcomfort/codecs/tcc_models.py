"""Pydantic models for Total Connect Comfort portal payloads."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from custom_components.totalcomfort.const import (
    FAN_MODES,
    HOLD_PERMANENT,
    SYSTEM_MODES,
)

# Quarter-hours in a day.
_PERIODS_PER_DAY = 96


def _normalise_identifier(value: Any) -> str:
    """Return a portal identifier as a non-empty string."""

    if value is None or isinstance(value, bool):
        raise ValueError(f"Invalid identifier: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if not text:
        raise ValueError("Identifier must not be blank")
    return text


class PortalModel(BaseModel):
    """Base model for portal payloads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DeviceSummary(PortalModel):
    """Device entry inside ``GetLocationListData``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    device_id: str = Field(alias="DeviceID")
    name: str | None = Field(default=None, alias="Name")
    mac_id: str | None = Field(default=None, alias="MacID")

    @field_validator("device_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return _normalise_identifier(value)

    @field_validator("name", "mac_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class LocationSummary(PortalModel):
    """Location entry inside ``GetLocationListData``.

    Devices stay raw so a single malformed entry can be skipped on its own.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    location_id: str = Field(alias="LocationID")
    name: str | None = Field(default=None, alias="Name")
    devices: list[Any] = Field(default_factory=list, alias="Devices")

    @field_validator("location_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return _normalise_identifier(value)

    @field_validator("name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("devices", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class LocationListResponse(PortalModel):
    """Wrapped form of the location list."""

    locations: list[Any] | None = Field(default=None, alias="Locations")


class DeviceDataSections(PortalModel):
    """The ``uiData``/``fanData``/``drData`` sections of a device payload."""

    ui_data: dict[str, Any] | None = Field(default=None, alias="uiData")
    fan_data: dict[str, Any] | None = Field(default=None, alias="fanData")
    dr_data: dict[str, Any] | None = Field(default=None, alias="drData")

    @field_validator("ui_data", "fan_data", "dr_data", mode="before")
    @classmethod
    def _drop_non_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class DeviceDataResponse(DeviceDataSections):
    """``CheckDataSession`` payload, flat or wrapped in ``latestData``."""

    success: Any = None
    device_live: Any = Field(default=None, alias="deviceLive")
    communication_lost: Any = Field(default=None, alias="communicationLost")
    latest_data: DeviceDataSections | None = Field(default=None, alias="latestData")

    @field_validator("latest_data", mode="before")
    @classmethod
    def _drop_non_mapping_latest(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


def _bounded_index(value: Any, upper: int, label: str) -> int | None:
    """Validate an optional integer in ``range(upper)``."""

    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {label}: {value!r}")
    if not 0 <= value < upper:
        raise ValueError(f"{label} out of range: {value!r}")
    return value


class ControlChangesRequest(PortalModel):
    """Body of ``SubmitControlScreenChanges``; unset fields are sent as null."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    device_id: str = Field(alias="DeviceID")
    system_switch: int | None = Field(default=None, alias="SystemSwitch")
    heat_setpoint: float | None = Field(default=None, alias="HeatSetpoint")
    cool_setpoint: float | None = Field(default=None, alias="CoolSetpoint")
    heat_next_period: int | None = Field(default=None, alias="HeatNextPeriod")
    cool_next_period: int | None = Field(default=None, alias="CoolNextPeriod")
    status_heat: int | None = Field(default=None, alias="StatusHeat")
    status_cool: int | None = Field(default=None, alias="StatusCool")
    fan_mode: int | None = Field(default=None, alias="FanMode")

    @field_validator("device_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return _normalise_identifier(value)

    @field_validator("heat_setpoint", "cool_setpoint")
    @classmethod
    def _finite_setpoint(cls, value: float | None) -> float | None:
        if value is not None and not math.isfinite(value):
            raise ValueError(f"Invalid setpoint: {value!r}")
        return value

    @field_validator("system_switch", mode="before")
    @classmethod
    def _system_switch(cls, value: Any) -> int | None:
        return _bounded_index(value, len(SYSTEM_MODES), "SystemSwitch")

    @field_validator("fan_mode", mode="before")
    @classmethod
    def _fan_mode(cls, value: Any) -> int | None:
        return _bounded_index(value, len(FAN_MODES), "FanMode")

    @field_validator("status_heat", "status_cool", mode="before")
    @classmethod
    def _hold_status(cls, value: Any) -> int | None:
        return _bounded_index(value, HOLD_PERMANENT + 1, "hold status")

    @field_validator("heat_next_period", "cool_next_period", mode="before")
    @classmethod
    def _next_period(cls, value: Any) -> int | None:
        return _bounded_index(value, _PERIODS_PER_DAY, "next period")


__all__ = [
    "ControlChangesRequest",
    "DeviceDataResponse",
    "DeviceDataSections",
    "DeviceSummary",
    "LocationListResponse",
    "LocationSummary",
    "PortalModel",
]
