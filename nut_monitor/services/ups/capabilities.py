"""
Device Capability API

The host-side view of a managed device: which capabilities it exposes,
their current values, a small persisted key/value store, its settings and
its availability. The reconciler and poller only talk to this interface.
"""

from abc import ABC, abstractmethod
from typing import Any

# Store keys holding the persisted capability state
FIRST_RUN_KEY = "first_run"
CAPABILITIES_KEY = "capabilities"


class DeviceCapabilityAPI(ABC):
    """Host platform operations for a single device"""

    @property
    @abstractmethod
    def device_id(self) -> str:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name"""

    # Capabilities

    @abstractmethod
    def has_capability(self, capability: str) -> bool:
        ...

    @abstractmethod
    def get_capabilities(self) -> list[str]:
        ...

    @abstractmethod
    async def add_capability(self, capability: str) -> None:
        ...

    @abstractmethod
    async def remove_capability(self, capability: str) -> None:
        ...

    @abstractmethod
    def get_capability_value(self, capability: str) -> Any:
        ...

    @abstractmethod
    async def set_capability_value(self, capability: str, value: Any) -> None:
        """
        Write a capability value.

        Raises:
            CapabilityWriteError: host rejected the write
        """

    # Persisted store

    @abstractmethod
    def get_store_value(self, key: str) -> Any:
        ...

    @abstractmethod
    async def set_store_value(self, key: str, value: Any) -> None:
        ...

    # Settings

    @abstractmethod
    def get_settings(self) -> dict[str, Any]:
        ...

    def get_setting(self, key: str) -> Any:
        return self.get_settings().get(key)

    # Availability

    @abstractmethod
    async def set_available(self) -> None:
        ...

    @abstractmethod
    async def set_unavailable(self, reason: str | None = None) -> None:
        ...


class CapabilityState:
    """
    Persisted capability history of one device.

    first_run: None (never reconciled), True (pruning pending) or False.
    known_capabilities: every capability ever seen filled, or None.
    """

    def __init__(self, device: DeviceCapabilityAPI):
        self._device = device

    @property
    def first_run(self) -> bool | None:
        return self._device.get_store_value(FIRST_RUN_KEY)

    @property
    def needs_first_run(self) -> bool:
        # Unset counts as pending
        return self.first_run is None or bool(self.first_run)

    async def mark_first_run_done(self) -> None:
        await self._device.set_store_value(FIRST_RUN_KEY, False)

    @property
    def known_capabilities(self) -> list[str] | None:
        stored = self._device.get_store_value(CAPABILITIES_KEY)
        if stored is None:
            return None
        return list(stored)

    async def set_known_capabilities(self, capabilities: list[str]) -> None:
        await self._device.set_store_value(CAPABILITIES_KEY, list(capabilities))
