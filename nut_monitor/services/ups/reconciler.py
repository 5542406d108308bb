"""
Capability Reconciler

Applies a UPSStatus to a device:
1. Adds optional capabilities the UPS turns out to report
2. Prunes template capabilities once, on the first successful read
3. Merges the observed capabilities into the persisted set
4. Pushes every resolvable value to the device
"""

from nut_monitor.common.exceptions import CapabilityWriteError
from nut_monitor.common.logging_setup import get_service_logger, log_capability_write

from .capabilities import CapabilityState, DeviceCapabilityAPI
from .status_parser import UPSStatus, filled

logger = get_service_logger("ups.reconciler")

# Capabilities not in the device template, added once the UPS reports them
DYNAMIC_CAPABILITIES = ("measure_load", "measure_battery_voltage")


def merge_capabilities(known: list[str] | None, observed: list[str]) -> list[str]:
    """Order-preserving union of the persisted and observed capability names"""
    if not known:
        return list(observed)
    return list(dict.fromkeys([*known, *observed]))


class CapabilityReconciler:
    """
    Reconciles a device's exposed capabilities against UPS telemetry.

    Safe to call repeatedly with the same status: capabilities are only
    added when missing and the persisted set only changes when it grows.
    """

    def __init__(self, dynamic_capabilities: tuple[str, ...] = DYNAMIC_CAPABILITIES):
        self.dynamic_capabilities = dynamic_capabilities

    async def reconcile(
        self,
        status: UPSStatus,
        state: CapabilityState,
        device: DeviceCapabilityAPI,
    ) -> None:
        await self._add_dynamic_capabilities(status, device)

        if state.needs_first_run:
            await self._prune_unsupported(status, state, device)

        capability_list = await self._merge_known(status, state)

        await self._push_values(status, capability_list, device)

    async def _add_dynamic_capabilities(
        self,
        status: UPSStatus,
        device: DeviceCapabilityAPI,
    ) -> None:
        for capability in self.dynamic_capabilities:
            if filled(status.values.get(capability)) and not device.has_capability(capability):
                await device.add_capability(capability)
                logger.info(f"[{device.name}] Added dynamic capability: {capability}")

    async def _prune_unsupported(
        self,
        status: UPSStatus,
        state: CapabilityState,
        device: DeviceCapabilityAPI,
    ) -> None:
        """Remove template capabilities the UPS does not report (first run only)"""
        logger.info(f"[{device.name}] Running capability pruning for the first time")

        # A device that has never been read keeps what this read reports
        keep = state.known_capabilities or status.capabilities

        for capability in device.get_capabilities():
            if capability not in keep:
                await device.remove_capability(capability)
                logger.info(
                    f"[{device.name}] Removing capability not supported by device [{capability}]"
                )

        await state.mark_first_run_done()

    async def _merge_known(self, status: UPSStatus, state: CapabilityState) -> list[str]:
        known = state.known_capabilities
        merged = merge_capabilities(known, status.capabilities)
        if merged != known:
            await state.set_known_capabilities(merged)
        return merged or status.capabilities

    async def _push_values(
        self,
        status: UPSStatus,
        capability_list: list[str],
        device: DeviceCapabilityAPI,
    ) -> None:
        for capability in capability_list:
            value = status.resolve(capability)
            if not filled(value):
                # Not reported this time: keep the last value on the device
                continue

            try:
                await device.set_capability_value(capability, value)
                log_capability_write(logger, device.name, capability, value)
            except CapabilityWriteError as e:
                log_capability_write(logger, device.name, capability, value, success=False)
                logger.debug(f"[{device.name}] {e.message}")
