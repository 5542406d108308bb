"""
UPS Status Parser

Translates the flat variable map returned by a NUT server (LIST VAR) into
a UPSStatus: typed values, composite values and the ordered list of
capabilities those values populate.

Pure functions only - no I/O, no state.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# ups.status flag -> readable label
STATE_TYPES = MappingProxyType({
    "OL": "Online",
    "OB": "On Battery",
    "LB": "Low Battery",
    "HB": "High Battery",
    "RB": "Battery Needs Replaced",
    "CHRG": "Battery Charging",
    "DISCHRG": "Battery Discharging",
    "BYPASS": "Bypass Active",
    "CAL": "Runtime Calibration",
    "OFF": "Offline",
    "OVER": "Overloaded",
    "TRIM": "Trimming Voltage",
    "BOOST": "Boosting Voltage",
    "FSD": "Forced Shutdown",
    "ALARM": "Alarm",
})

# Fields that describe the device rather than being exposed as capabilities
NOT_CAPABILITIES = frozenset({"name", "id"})

# Numbers are read from the start of the text; trailing junk is ignored
_LEADING_INT = re.compile(r"\s*[+-]?\d+")
_LEADING_FLOAT = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class UPSStatus:
    """Structured status of one NUT read"""
    values: dict[str, Any] = field(default_factory=dict)
    capabilities: list[str] = field(default_factory=list)

    def resolve(self, capability: str) -> Any:
        """
        Look up the value behind a capability name.

        "field.subfield" reads the subfield of a composite value (first
        segment is the field, last segment the subfield).
        """
        parts = capability.split(".")
        if len(parts) == 1:
            return self.values.get(capability)

        composite = self.values.get(parts[0])
        if not isinstance(composite, Mapping):
            return None
        return composite.get(parts[-1])


def blank(value: Any) -> bool:
    """Determine if the given value is "blank"."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (bool, int, float)):
        return False
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def filled(value: Any) -> bool:
    """Determine if the given value is "filled"."""
    return not blank(value)


def _parse_int(value: Any) -> int | None:
    # Leading integer of the text: "100.0" -> 100, "42abc" -> 42
    if blank(value):
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group()) if match else None


def _parse_float(value: Any) -> float | None:
    if blank(value):
        return None
    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return None
    number = float(match.group())
    if not math.isfinite(number):
        return None
    return number


def _text(value: Any) -> str | None:
    return value if filled(value) else None


def readable_status(raw_status: str) -> str:
    """
    Turn a ups.status flag string into readable labels.

    "OL CHRG" -> "Online, Battery Charging". Unknown flags are kept as-is.
    """
    return ", ".join(STATE_TYPES.get(token, token) for token in raw_status.split())


def is_alarm(raw_status: str) -> bool:
    """Any status that does not lead with OL (online) is an alarm"""
    tokens = raw_status.split()
    return not tokens or tokens[0] != "OL"


def build_capabilities(values: Mapping[str, Any]) -> list[str]:
    """Ordered capability names populated by a values map"""
    capabilities = []
    for key, value in values.items():
        if key in NOT_CAPABILITIES or not filled(value):
            continue
        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                if filled(sub_value):
                    capabilities.append(f"{key}.{sub_key}")
        else:
            capabilities.append(key)
    return capabilities


def parse_ups_status(body: Mapping[str, str]) -> UPSStatus:
    """
    Parse NUT variables into a UPSStatus.

    Never raises: missing or malformed variables become None. The optional
    fields measure_load and measure_battery_voltage are only present in
    values when the server reports them.
    """
    values: dict[str, Any] = {
        "name": _text(body.get("ups.model")),
        "measure_battery": _parse_int(body.get("battery.charge")),
        "measure_battery_runtime": _parse_int(body.get("battery.runtime")),
        "measure_temperature": _parse_float(body.get("battery.temperature")),
        "id": _text(body.get("ups.serial")),
        "measure_voltage": {
            "input": _parse_int(body.get("input.voltage")),
            "output": _parse_int(body.get("output.voltage")),
        },
        "status": _text(body.get("ups.status")),
        "alarm_status": False,
    }

    if filled(body.get("ups.load")):
        values["measure_load"] = _parse_int(body.get("ups.load"))
    if filled(body.get("battery.voltage")):
        values["measure_battery_voltage"] = _parse_float(body.get("battery.voltage"))

    raw_status = values["status"]
    if filled(raw_status):
        values["alarm_status"] = is_alarm(raw_status)
        values["status"] = readable_status(raw_status)

    return UPSStatus(values=values, capabilities=build_capabilities(values))
