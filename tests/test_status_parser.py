"""
Test UPS Status Parser

Checks translation of NUT variables into typed values, composite values,
the readable status string and the ordered capability list.
"""

from nut_monitor.services.ups.status_parser import (
    STATE_TYPES,
    blank,
    filled,
    parse_ups_status,
    readable_status,
)

FULL_VARS = {
    "ups.model": "Back-UPS XS 1400U",
    "ups.serial": "4B1234P56789",
    "battery.charge": "100",
    "battery.runtime": "2640",
    "battery.temperature": "29.5",
    "input.voltage": "232.0",
    "output.voltage": "230",
    "ups.status": "OL CHRG",
    "ups.load": "17",
    "battery.voltage": "27.3",
}


def test_filled_rules():
    assert blank(None)
    assert blank("")
    assert blank("   ")
    assert blank({})
    assert blank([])
    assert filled(0)
    assert filled(0.0)
    assert filled(False)
    assert filled("OL")
    assert filled({"input": None})


def test_full_status_values():
    status = parse_ups_status(FULL_VARS)

    assert status.values["name"] == "Back-UPS XS 1400U"
    assert status.values["id"] == "4B1234P56789"
    assert status.values["measure_battery"] == 100
    assert status.values["measure_battery_runtime"] == 2640
    assert status.values["measure_temperature"] == 29.5
    assert status.values["measure_voltage"] == {"input": 232, "output": 230}
    assert status.values["status"] == "Online, Battery Charging"
    assert status.values["alarm_status"] is False
    assert status.values["measure_load"] == 17
    assert status.values["measure_battery_voltage"] == 27.3


def test_full_status_capability_order():
    status = parse_ups_status(FULL_VARS)

    assert status.capabilities == [
        "measure_battery",
        "measure_battery_runtime",
        "measure_temperature",
        "measure_voltage.input",
        "measure_voltage.output",
        "status",
        "alarm_status",
        "measure_load",
        "measure_battery_voltage",
    ]


def test_name_and_id_never_capabilities():
    status = parse_ups_status(FULL_VARS)
    assert "name" not in status.capabilities
    assert "id" not in status.capabilities


def test_optional_fields_absent_not_null():
    raw = {k: v for k, v in FULL_VARS.items() if k not in ("ups.load", "battery.voltage")}
    status = parse_ups_status(raw)

    assert "measure_load" not in status.values
    assert "measure_battery_voltage" not in status.values
    assert "measure_load" not in status.capabilities
    assert "measure_battery_voltage" not in status.capabilities


def test_optional_fields_blank_are_absent():
    raw = {**FULL_VARS, "ups.load": "  ", "battery.voltage": ""}
    status = parse_ups_status(raw)

    assert "measure_load" not in status.values
    assert "measure_battery_voltage" not in status.values


def test_empty_variables():
    status = parse_ups_status({})

    assert status.values["name"] is None
    assert status.values["measure_battery"] is None
    assert status.values["measure_voltage"] == {"input": None, "output": None}
    assert status.values["status"] is None
    assert status.values["alarm_status"] is False
    # alarm_status is a bool, so always filled
    assert status.capabilities == ["alarm_status"]


def test_composite_partial():
    status = parse_ups_status({"input.voltage": "231"})

    assert status.values["measure_voltage"] == {"input": 231, "output": None}
    assert "measure_voltage.input" in status.capabilities
    assert "measure_voltage.output" not in status.capabilities


def test_unparsable_numbers_become_none():
    status = parse_ups_status({
        "battery.charge": "n/a",
        "battery.temperature": "nan",
        "battery.runtime": "inf",
        "battery.voltage": "1e999",
    })

    assert status.values["measure_battery"] is None
    assert status.values["measure_temperature"] is None
    assert status.values["measure_battery_runtime"] is None
    assert status.values["measure_battery_voltage"] is None
    assert "measure_battery" not in status.capabilities


def test_zero_is_a_capability():
    status = parse_ups_status({"ups.load": "0", "battery.charge": "0"})

    assert status.values["measure_load"] == 0
    assert "measure_load" in status.capabilities
    assert "measure_battery" in status.capabilities


def test_readable_status_round_trip():
    assert readable_status("OL CHRG") == "Online, Battery Charging"
    assert readable_status("OB DISCHRG LB") == "On Battery, Battery Discharging, Low Battery"
    assert readable_status("OL") == "Online"


def test_every_flag_has_a_label():
    for flag, label in STATE_TYPES.items():
        assert readable_status(flag) == label


def test_unknown_flag_rendered_raw():
    assert readable_status("OL ECO") == "Online, ECO"


def test_alarm_status():
    assert parse_ups_status({"ups.status": "OL"}).values["alarm_status"] is False
    assert parse_ups_status({"ups.status": "OL CHRG"}).values["alarm_status"] is False
    assert parse_ups_status({"ups.status": "OB"}).values["alarm_status"] is True
    assert parse_ups_status({"ups.status": "LB OL"}).values["alarm_status"] is True
    assert parse_ups_status({"ups.status": "FSD OB LB"}).values["alarm_status"] is True


def test_resolve_composite_and_scalar():
    status = parse_ups_status(FULL_VARS)

    assert status.resolve("measure_voltage.input") == 232
    assert status.resolve("measure_battery") == 100
    assert status.resolve("measure_missing") is None
    assert status.resolve("measure_battery.input") is None


def test_parse_is_deterministic():
    assert parse_ups_status(FULL_VARS) == parse_ups_status(dict(FULL_VARS))


def test_numbers_read_from_leading_text():
    status = parse_ups_status({
        "battery.charge": "42abc",
        "battery.runtime": "1_000",
        "input.voltage": " 230.7V",
        "battery.temperature": "31.5C",
        "battery.voltage": "-.5",
    })

    assert status.values["measure_battery"] == 42
    assert status.values["measure_battery_runtime"] == 1
    assert status.values["measure_voltage"]["input"] == 230
    assert status.values["measure_temperature"] == 31.5
    assert status.values["measure_battery_voltage"] == -0.5
