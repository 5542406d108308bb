"""
UPS Service - NUT polling

Responsibilities:
- Translate NUT variables into a structured UPS status
- Reconcile device capabilities against that status
- Poll each configured UPS on its own interval
"""

from .capabilities import CapabilityState, DeviceCapabilityAPI
from .device import PollState, UPSDevice
from .local_device import LocalDevice, TEMPLATE_CAPABILITIES
from .nut_client import NutClient
from .reconciler import CapabilityReconciler, DYNAMIC_CAPABILITIES
from .service import UpsService
from .status_parser import STATE_TYPES, UPSStatus, parse_ups_status

__all__ = [
    "CapabilityState",
    "DeviceCapabilityAPI",
    "PollState",
    "UPSDevice",
    "LocalDevice",
    "TEMPLATE_CAPABILITIES",
    "NutClient",
    "CapabilityReconciler",
    "DYNAMIC_CAPABILITIES",
    "UpsService",
    "STATE_TYPES",
    "UPSStatus",
    "parse_ups_status",
]
