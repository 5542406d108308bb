"""
Configuration Dataclasses

Type-safe configuration structures for the monitor.
All configuration is read from a YAML file.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

DEFAULT_NUT_PORT = 3493
DEFAULT_POLL_INTERVAL_S = 60
DEFAULT_TIMEOUT_S = 10.0

# Setting keys a device understands (anything else is kept but ignored)
SETTING_KEYS = ("ip", "port", "username", "password", "interval", "timeout")


@dataclass
class DeviceSettings:
    """Per-device connection and polling settings"""
    ip: str = "127.0.0.1"
    port: int = DEFAULT_NUT_PORT
    username: str = ""
    password: str = ""
    interval: int = DEFAULT_POLL_INTERVAL_S  # seconds between polls
    timeout: float = DEFAULT_TIMEOUT_S       # connect/auth/fetch deadline

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeviceConfig:
    """A UPS exposed by a NUT server"""
    id: str
    name: str          # NUT device name (the <upsname> in LIST VAR)
    label: str = ""    # display name
    settings: DeviceSettings = field(default_factory=DeviceSettings)

    @property
    def display_name(self) -> str:
        return self.label or self.name


@dataclass
class ServiceConfig:
    """Service runtime configuration"""
    health_host: str = "127.0.0.1"
    health_port: int = 8085
    config_watch_interval_s: float = 15.0
    log_level: str = "INFO"


@dataclass
class MonitorConfig:
    """Complete monitor configuration"""
    service: ServiceConfig = field(default_factory=ServiceConfig)
    devices: list[DeviceConfig] = field(default_factory=list)

    def get_device(self, device_id: str) -> DeviceConfig | None:
        return next((d for d in self.devices if d.id == device_id), None)


def _as_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be an integer, got {value!r}")


def _as_float(value: Any, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be a number, got {value!r}")


def load_device_settings(data: dict | None, device_id: str = "") -> DeviceSettings:
    """Load DeviceSettings from a dictionary, validating numeric fields"""
    data = data or {}
    prefix = f"devices[{device_id}].settings" if device_id else "settings"

    settings = DeviceSettings(
        ip=str(data.get("ip", "127.0.0.1")),
        port=_as_int(data.get("port", DEFAULT_NUT_PORT), f"{prefix}.port"),
        username=str(data.get("username") or ""),
        password=str(data.get("password") or ""),
        interval=_as_int(data.get("interval", DEFAULT_POLL_INTERVAL_S), f"{prefix}.interval"),
        timeout=_as_float(data.get("timeout", DEFAULT_TIMEOUT_S), f"{prefix}.timeout"),
    )

    if settings.interval <= 0:
        raise ConfigError(f"{prefix}.interval must be > 0")
    if settings.timeout <= 0:
        raise ConfigError(f"{prefix}.timeout must be > 0")
    if not 0 < settings.port < 65536:
        raise ConfigError(f"{prefix}.port out of range: {settings.port}")

    return settings


def load_monitor_config(data: dict | None) -> MonitorConfig:
    """Load MonitorConfig from dictionary (e.g., parsed YAML)"""
    data = data or {}

    service_data = data.get("service", {}) or {}
    service = ServiceConfig(
        health_host=str(service_data.get("health_host", "127.0.0.1")),
        health_port=_as_int(service_data.get("health_port", 8085), "service.health_port"),
        config_watch_interval_s=_as_float(
            service_data.get("config_watch_interval_s", 15.0),
            "service.config_watch_interval_s",
        ),
        log_level=str(service_data.get("log_level", "INFO")),
    )

    devices = []
    seen_ids = set()
    for d in data.get("devices", []) or []:
        device_id = d.get("id")
        name = d.get("name")
        if not device_id:
            raise ConfigError("device entry missing id")
        if not name:
            raise ConfigError(f"device {device_id} missing name")
        device_id = str(device_id)
        if device_id in seen_ids:
            raise ConfigError(f"duplicate device id: {device_id}")
        seen_ids.add(device_id)

        devices.append(DeviceConfig(
            id=device_id,
            name=str(name),
            label=str(d.get("label", "")),
            settings=load_device_settings(d.get("settings"), device_id),
        ))

    return MonitorConfig(service=service, devices=devices)


def load_config_file(config_path: str | Path) -> MonitorConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigError: file missing, unreadable, or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading configuration: {e}")

    if data is not None and not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    return load_monitor_config(data)
