"""
Test Capability Reconciler

Dynamic capability discovery, first-run pruning, persisted set merging,
value propagation and idempotence.
"""

import asyncio

from conftest import make_device
from nut_monitor.common.exceptions import CapabilityWriteError
from nut_monitor.services.ups.capabilities import CapabilityState
from nut_monitor.services.ups.reconciler import CapabilityReconciler, merge_capabilities
from nut_monitor.services.ups.status_parser import UPSStatus, parse_ups_status

VARS = {
    "battery.charge": "87",
    "input.voltage": "230",
    "ups.status": "OL",
}


def reconcile(status, device):
    state = CapabilityState(device)
    asyncio.run(CapabilityReconciler().reconcile(status, state, device))
    return state


class RecordingDevice:
    """Wraps a LocalDevice and records mutating calls"""

    def __init__(self, device):
        self.device = device
        self.added = []
        self.removed = []
        self.store_writes = []
        self._add = device.add_capability
        self._remove = device.remove_capability
        self._set_store = device.set_store_value
        device.add_capability = self.add_capability
        device.remove_capability = self.remove_capability
        device.set_store_value = self.set_store_value

    async def add_capability(self, capability):
        self.added.append(capability)
        await self._add(capability)

    async def remove_capability(self, capability):
        self.removed.append(capability)
        await self._remove(capability)

    async def set_store_value(self, key, value):
        self.store_writes.append((key, value))
        await self._set_store(key, value)


def test_merge_capabilities():
    assert merge_capabilities(None, ["a", "b"]) == ["a", "b"]
    assert merge_capabilities([], ["a"]) == ["a"]
    assert merge_capabilities(["a"], ["a", "b"]) == ["a", "b"]
    assert merge_capabilities(["b", "a"], ["a", "c"]) == ["b", "a", "c"]


def test_first_run_pruning():
    device = make_device(
        capabilities=["measure_battery", "measure_voltage.input", "foo"],
        store={
            "first_run": True,
            "capabilities": ["measure_battery", "measure_voltage.input"],
        },
    )
    reconcile(parse_ups_status(VARS), device)

    assert not device.has_capability("foo")
    assert device.has_capability("measure_battery")
    assert device.has_capability("measure_voltage.input")
    assert device.get_store_value("first_run") is False


def test_first_run_unset_counts_as_pending():
    device = make_device(capabilities=["measure_battery", "foo"], store={})
    reconcile(parse_ups_status(VARS), device)

    assert not device.has_capability("foo")
    assert device.get_store_value("first_run") is False


def test_new_device_narrowed_to_first_read():
    # Template device, never read before: keep only what the UPS reports
    device = make_device()
    reconcile(parse_ups_status(VARS), device)

    assert device.get_capabilities() == [
        "measure_battery",
        "measure_voltage.input",
        "status",
        "alarm_status",
    ]
    assert device.get_capability_value("measure_battery") == 87
    assert device.get_capability_value("status") == "Online"
    assert device.get_capability_value("alarm_status") is False


def test_pruning_runs_once():
    device = make_device(
        capabilities=["measure_battery"],
        store={"first_run": False, "capabilities": ["measure_battery"]},
    )
    asyncio.run(device.add_capability("foo"))
    reconcile(parse_ups_status(VARS), device)

    assert device.has_capability("foo")


def test_union_merge():
    device = make_device(
        capabilities=["measure_battery", "measure_load"],
        store={"first_run": False, "capabilities": ["measure_battery"]},
    )
    status = UPSStatus(
        values={"measure_battery": 90, "measure_load": 12},
        capabilities=["measure_battery", "measure_load"],
    )
    state = reconcile(status, device)

    assert sorted(state.known_capabilities) == ["measure_battery", "measure_load"]


def test_known_set_initialized_from_status():
    device = make_device(store={"first_run": False})
    status = parse_ups_status(VARS)
    state = reconcile(status, device)

    assert state.known_capabilities == status.capabilities


def test_dynamic_capabilities_added():
    device = make_device(store={"first_run": False, "capabilities": ["measure_battery"]})
    status = parse_ups_status({**VARS, "ups.load": "21", "battery.voltage": "13.6"})
    reconcile(status, device)

    assert device.has_capability("measure_load")
    assert device.has_capability("measure_battery_voltage")
    assert device.get_capability_value("measure_load") == 21
    assert device.get_capability_value("measure_battery_voltage") == 13.6


def test_dynamic_capability_not_added_when_unreported():
    device = make_device(store={"first_run": False})
    reconcile(parse_ups_status(VARS), device)

    assert not device.has_capability("measure_load")
    assert not device.has_capability("measure_battery_voltage")


def test_idempotent_second_call():
    device = make_device(store={"first_run": False, "capabilities": []})
    status = parse_ups_status({**VARS, "ups.load": "21"})
    reconcile(status, device)

    recorder = RecordingDevice(device)
    capabilities_before = device.get_capabilities()
    known_before = device.get_store_value("capabilities")
    reconcile(status, device)

    assert recorder.added == []
    assert recorder.removed == []
    assert recorder.store_writes == []
    assert device.get_capabilities() == capabilities_before
    assert device.get_store_value("capabilities") == known_before


def test_stale_value_left_unchanged():
    device = make_device(store={"first_run": False})
    reconcile(parse_ups_status({**VARS, "battery.temperature": "31.5"}), device)
    assert device.get_capability_value("measure_temperature") == 31.5

    # Temperature no longer reported: still known, last value kept
    state = reconcile(parse_ups_status(VARS), device)

    assert "measure_temperature" in state.known_capabilities
    assert device.get_capability_value("measure_temperature") == 31.5


def test_write_failure_does_not_block_other_writes():
    device = make_device(store={"first_run": False})
    reconcile(parse_ups_status(VARS), device)

    original = device.set_capability_value
    attempted = []

    async def flaky_set(capability, value):
        attempted.append(capability)
        if capability == "measure_battery":
            raise CapabilityWriteError("rejected", capability=capability, value=value)
        await original(capability, value)

    device.set_capability_value = flaky_set
    reconcile(parse_ups_status({**VARS, "ups.status": "OB", "battery.charge": "40"}), device)

    assert attempted[0] == "measure_battery"
    assert "status" in attempted
    assert device.get_capability_value("measure_battery") == 87
    assert device.get_capability_value("status") == "On Battery"
    assert device.get_capability_value("alarm_status") is True


def test_write_to_pruned_capability_is_logged_not_raised():
    # Known capability that the live device no longer exposes
    device = make_device(
        capabilities=["measure_battery"],
        store={"first_run": False, "capabilities": ["measure_battery", "measure_voltage.input"]},
    )
    reconcile(parse_ups_status(VARS), device)

    assert device.get_capability_value("measure_battery") == 87
    assert not device.has_capability("measure_voltage.input")
