"""Shared test fixtures"""

import asyncio

import pytest

from nut_monitor.common import state
from nut_monitor.common.config import DeviceConfig, DeviceSettings
from nut_monitor.common.state import SharedState
from nut_monitor.services.ups.local_device import LocalDevice


@pytest.fixture(autouse=True)
def state_dir(tmp_path, monkeypatch):
    """Point persisted state at a per-test directory"""
    directory = tmp_path / "state"
    monkeypatch.setattr(state, "STATE_DIR", directory)
    SharedState.clear_cache()
    yield directory
    SharedState.clear_cache()


def make_config(device_id: str = "rack-ups", **settings) -> DeviceConfig:
    return DeviceConfig(
        id=device_id,
        name="ups",
        label="Rack UPS",
        settings=DeviceSettings(**settings),
    )


def make_device(
    capabilities: list[str] | None = None,
    store: dict | None = None,
    **settings,
) -> LocalDevice:
    """In-memory LocalDevice with the given capabilities and store"""
    device = LocalDevice(make_config(**settings), persist=False)
    if capabilities is not None:
        device._capabilities = list(capabilities)
    if store is not None:
        device._store = dict(store)
    return device


UPS_VARIABLES = {
    "ups.model": "Smart-UPS 1500",
    "battery.charge": "100",
    "input.voltage": "229",
    "output.voltage": "230",
    "ups.status": "OL",
}


class FakeClient:
    """Stands in for NutClient; behaviour is driven by the factory"""

    def __init__(self, factory, host, port, timeout):
        self.factory = factory
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        self.close_count = 0

    async def connect(self):
        self.calls.append("connect")
        if self.factory.connect_error:
            raise self.factory.connect_error

    async def authenticate(self, username, password):
        self.calls.append(("authenticate", username, password))
        if self.factory.auth_error:
            raise self.factory.auth_error

    async def fetch_variables(self, device_name):
        self.calls.append(("fetch", device_name))
        if self.factory.fetch_delay:
            await asyncio.sleep(self.factory.fetch_delay)
        if self.factory.fetch_error:
            raise self.factory.fetch_error
        return dict(self.factory.variables)

    async def close(self):
        self.close_count += 1


class FakeClientFactory:
    """Client factory recording every client it hands out"""

    def __init__(self, variables=None):
        self.variables = variables if variables is not None else UPS_VARIABLES
        self.connect_error = None
        self.auth_error = None
        self.fetch_error = None
        self.fetch_delay = 0.0
        self.clients = []

    def __call__(self, host, port, timeout):
        client = FakeClient(self, host, port, timeout)
        self.clients.append(client)
        return client
