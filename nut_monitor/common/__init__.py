"""
Common Utilities

Shared modules used across the monitor:
- state.py - File-based persisted state
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Interval scheduler
"""

from .state import SharedState, device_state_key
from .config import (
    DeviceSettings,
    DeviceConfig,
    ServiceConfig,
    MonitorConfig,
    load_device_settings,
    load_monitor_config,
    load_config_file,
)
from .exceptions import (
    NutMonitorError,
    ConfigError,
    DeviceError,
    NutConnectionError,
    AuthError,
    ProtocolError,
    CapabilityWriteError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    set_log_level,
    log_capability_write,
)
from .scheduler import ScheduledLoop

__all__ = [
    # State
    "SharedState",
    "device_state_key",
    # Config
    "DeviceSettings",
    "DeviceConfig",
    "ServiceConfig",
    "MonitorConfig",
    "load_device_settings",
    "load_monitor_config",
    "load_config_file",
    # Exceptions
    "NutMonitorError",
    "ConfigError",
    "DeviceError",
    "NutConnectionError",
    "AuthError",
    "ProtocolError",
    "CapabilityWriteError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "set_log_level",
    "log_capability_write",
    # Scheduling
    "ScheduledLoop",
]
