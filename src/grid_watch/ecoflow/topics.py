"""EcoFlow MQTT topics and identifiers."""

from __future__ import annotations

import json
import uuid


def device_property_topic(device_sn: str) -> str:
    """Topic on which the device pushes its telemetry."""
    return f"/app/device/property/{device_sn}"


def property_get_topic(user_id: str, device_sn: str) -> str:
    """Topic for asking the device to push its current state."""
    return f"/app/{user_id}/{device_sn}/thing/property/get"


def build_get_request() -> str:
    return json.dumps({
        "version": "1.0",
        "moduleType": 0,
        "operateType": "get",
        "params": {},
    })


def build_client_id(user_id: str, device_sn: str) -> str:
    """Client id in the format the broker accepts: ``ANDROID_{uuid}_{user_id}``.

    The uuid is derived from the serial so restarts reuse the same id; the
    broker limits how many new client ids an account may use per day.
    """
    stable = uuid.uuid5(uuid.NAMESPACE_DNS, f"grid-watch-{device_sn}")
    return f"ANDROID_{stable}_{user_id}"


def mask_serial(device_sn: str) -> str:
    """Mask a serial number for logs: ``R3***484``."""
    if not device_sn or len(device_sn) < 6:
        return "***"
    return f"{device_sn[:2]}***{device_sn[-3:]}"
