"""Codec helpers for Total Connect Comfort portal payloads."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from pydantic import ValidationError

from custom_components.totalcomfort.const import (
    KEY_COMMUNICATION_LOST,
    KEY_DEVICE_ID,
    KEY_DEVICE_LIVE,
    KEY_DR_DATA,
)
from custom_components.totalcomfort.errors import MalformedResponse
from custom_components.totalcomfort.inventory import DeviceRecord, LocationRecord
from custom_components.totalcomfort.util import mask_identifier

from .tcc_models import (
    ControlChangesRequest,
    DeviceDataResponse,
    DeviceSummary,
    LocationListResponse,
    LocationSummary,
)

_LOGGER = logging.getLogger(__name__)


def decode_locations_payload(raw: Any) -> list[LocationRecord]:
    """Validate a ``GetLocationListData`` payload into location records.

    The portal answers either with a bare list or with ``{"Locations": [...]}``.
    Entries without an identifier are skipped with a warning.
    """

    if isinstance(raw, Mapping):
        try:
            raw = LocationListResponse.model_validate(raw).locations
        except ValidationError as err:
            raise MalformedResponse("Invalid location list payload") from err
    if not isinstance(raw, list):
        raise MalformedResponse("Expected a list of locations")

    records: list[LocationRecord] = []
    for item in raw:
        try:
            location = LocationSummary.model_validate(item)
        except ValidationError:
            _LOGGER.warning("Skipping location entry without a usable LocationID")
            continue
        devices: list[DeviceRecord] = []
        for raw_device in location.devices:
            try:
                device = DeviceSummary.model_validate(raw_device)
            except ValidationError:
                _LOGGER.warning(
                    "Skipping device entry without a usable %s in location %s",
                    KEY_DEVICE_ID,
                    mask_identifier(location.location_id),
                )
                continue
            devices.append(
                DeviceRecord(
                    device_id=device.device_id,
                    name=device.name or f"Thermostat {device.device_id}",
                    mac_id=device.mac_id,
                )
            )
        records.append(
            LocationRecord(
                location_id=location.location_id,
                name=location.name or f"Location {location.location_id}",
                devices=tuple(devices),
            )
        )
    return records


def decode_device_data_payload(raw: Any) -> dict[str, Any]:
    """Flatten a ``CheckDataSession`` payload into a snapshot delta.

    ``uiData`` and ``fanData`` keys land at the top level, ``drData`` stays
    nested and the liveness flags are copied when present.
    """

    if not isinstance(raw, Mapping):
        raise MalformedResponse("Expected a device data object")
    try:
        model = DeviceDataResponse.model_validate(raw)
    except ValidationError as err:
        raise MalformedResponse("Invalid device data payload") from err

    sections = model.latest_data if model.latest_data is not None else model
    delta: dict[str, Any] = {}
    if sections.ui_data is not None:
        delta.update(sections.ui_data)
    if sections.fan_data is not None:
        delta.update(sections.fan_data)
    if sections.dr_data is not None:
        delta[KEY_DR_DATA] = dict(sections.dr_data)
    if "device_live" in model.model_fields_set:
        delta[KEY_DEVICE_LIVE] = model.device_live
    if "communication_lost" in model.model_fields_set:
        delta[KEY_COMMUNICATION_LOST] = model.communication_lost
    if not delta:
        raise MalformedResponse("Device data carried no known sections")
    return delta


def encode_control_changes(device_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
    """Return the full ``SubmitControlScreenChanges`` body for ``changes``.

    Raises ``ValueError`` for unknown fields or out-of-range values.
    """

    if not changes:
        raise ValueError("No changes to submit")
    try:
        model = ControlChangesRequest.model_validate(
            {**changes, KEY_DEVICE_ID: device_id}
        )
    except ValidationError as err:
        raise ValueError(f"Invalid control changes: {err}") from err
    return model.model_dump(by_alias=True)


__all__ = [
    "decode_device_data_payload",
    "decode_locations_payload",
    "encode_control_changes",
]
