"""
Local Device Host

File-backed implementation of DeviceCapabilityAPI. Capabilities, their
values and the device store are kept in memory and written through to
SharedState so they survive restarts.
"""

from datetime import datetime, timezone
from typing import Any

from nut_monitor.common.config import DeviceConfig
from nut_monitor.common.exceptions import CapabilityWriteError
from nut_monitor.common.logging_setup import get_service_logger
from nut_monitor.common.state import SharedState, device_state_key

from .capabilities import DeviceCapabilityAPI, FIRST_RUN_KEY

logger = get_service_logger("ups.host")

# Capabilities every new UPS device starts with, narrowed on its first read
TEMPLATE_CAPABILITIES = (
    "measure_battery",
    "measure_battery_runtime",
    "measure_temperature",
    "measure_voltage.input",
    "measure_voltage.output",
    "status",
    "alarm_status",
)


class LocalDevice(DeviceCapabilityAPI):
    """
    A UPS device hosted by this process.

    Created from persisted state when available; otherwise a fresh device
    with the template capabilities and a pending first run.
    """

    def __init__(self, config: DeviceConfig, persist: bool = True):
        self.config = config
        self._persist = persist

        self._capabilities: list[str] = []
        self._values: dict[str, Any] = {}
        self._store: dict[str, Any] = {}

        self.available = False
        self.unavailable_reason: str | None = None
        self.available_since: datetime | None = None
        self.is_new = True
        self._deleted = False

        if persist:
            self._load()
        if self.is_new:
            self._capabilities = list(TEMPLATE_CAPABILITIES)
            self._store = {FIRST_RUN_KEY: True}
            self._save()

    @property
    def device_id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.display_name

    # Persistence

    def _load(self) -> None:
        data = SharedState.read_fresh(device_state_key(self.device_id))
        if not data:
            return
        self._capabilities = list(data.get("capabilities", []))
        self._values = dict(data.get("values", {}))
        self._store = dict(data.get("store", {}))
        self.is_new = False
        logger.debug(f"[{self.name}] Restored {len(self._capabilities)} capabilities")

    def _save(self) -> None:
        if not self._persist or self._deleted:
            return
        SharedState.write(device_state_key(self.device_id), {
            "capabilities": self._capabilities,
            "values": self._values,
            "store": self._store,
        })

    def delete(self) -> None:
        """Drop the persisted state of this device; later changes stay in memory"""
        self._deleted = True
        if self._persist:
            SharedState.delete(device_state_key(self.device_id))

    # Capabilities

    def has_capability(self, capability: str) -> bool:
        return capability in self._capabilities

    def get_capabilities(self) -> list[str]:
        return list(self._capabilities)

    async def add_capability(self, capability: str) -> None:
        if capability in self._capabilities:
            return
        self._capabilities.append(capability)
        self._save()

    async def remove_capability(self, capability: str) -> None:
        if capability not in self._capabilities:
            return
        self._capabilities.remove(capability)
        self._values.pop(capability, None)
        self._save()

    def get_capability_value(self, capability: str) -> Any:
        return self._values.get(capability)

    async def set_capability_value(self, capability: str, value: Any) -> None:
        if capability not in self._capabilities:
            raise CapabilityWriteError(
                f"Capability {capability} is not exposed by {self.name}",
                device_id=self.device_id,
                capability=capability,
                value=value,
            )
        if self._values.get(capability) == value and capability in self._values:
            return
        self._values[capability] = value
        self._save()

    # Store

    def get_store_value(self, key: str) -> Any:
        return self._store.get(key)

    async def set_store_value(self, key: str, value: Any) -> None:
        self._store[key] = value
        self._save()

    # Settings

    def get_settings(self) -> dict[str, Any]:
        return self.config.settings.to_dict()

    # Availability

    async def set_available(self) -> None:
        if not self.available:
            logger.info(f"[{self.name}] Device available")
            self.available_since = datetime.now(timezone.utc)
        self.available = True
        self.unavailable_reason = None

    async def set_unavailable(self, reason: str | None = None) -> None:
        if self.available or reason != self.unavailable_reason:
            logger.warning(f"[{self.name}] Device unavailable: {reason or 'no reason given'}")
        self.available = False
        self.available_since = None
        self.unavailable_reason = reason

    def snapshot(self) -> dict:
        """JSON-safe view of the device for the status endpoints"""
        return {
            "id": self.device_id,
            "name": self.name,
            "ups": self.config.name,
            "available": self.available,
            "unavailable_reason": self.unavailable_reason,
            "available_since": self.available_since.isoformat() if self.available_since else None,
            "capabilities": self.get_capabilities(),
            "values": {c: self._values.get(c) for c in self._capabilities},
            "first_run": self._store.get(FIRST_RUN_KEY),
        }
