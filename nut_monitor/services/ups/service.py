"""
UPS Service - NUT polling

Responsible for:
- Loading device configuration
- Running one independent poller per configured UPS
- Applying configuration changes (settings, added/removed devices)
- Serving health and device status over HTTP
"""

import asyncio
import hashlib
import json
import signal
from datetime import datetime, timezone
from pathlib import Path

from aiohttp import web

from nut_monitor.common.config import (
    DeviceConfig,
    MonitorConfig,
    ServiceConfig,
    SETTING_KEYS,
    load_config_file,
)
from nut_monitor.common.exceptions import ConfigError
from nut_monitor.common.logging_setup import get_service_logger
from nut_monitor.common.state import DEVICE_KEY_PREFIX, SharedState, device_state_key

from .device import ClientFactory, UPSDevice, default_client_factory
from .local_device import LocalDevice

logger = get_service_logger("service")


def compute_settings_hash(device: DeviceConfig) -> str:
    """Hash of a device's identity and settings, used to detect changes"""
    content = json.dumps(
        {"name": device.name, "label": device.label, "settings": device.settings.to_dict()},
        sort_keys=True,
        default=str,
    )
    return hashlib.md5(content.encode()).hexdigest()


class UpsService:
    """
    UPS Service

    Owns one (LocalDevice, UPSDevice) pair per configured UPS. Devices are
    fully independent; the service only starts, updates and stops them.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        config: MonitorConfig | None = None,
        client_factory: ClientFactory = default_client_factory,
        persist: bool = True,
    ):
        self.config_path = Path(config_path) if config_path else None
        self.config = config or MonitorConfig()
        self.client_factory = client_factory
        self.persist = persist

        self._hosts: dict[str, LocalDevice] = {}
        self._pollers: dict[str, UPSDevice] = {}
        self._hashes: dict[str, str] = {}
        self._start_time = datetime.now(timezone.utc)

        # Health server
        self._health_app: web.Application | None = None
        self._health_runner: web.AppRunner | None = None

        # State
        self._running = False
        self._config_watch_task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def service_config(self) -> ServiceConfig:
        return self.config.service

    async def start(self, wait: bool = True) -> None:
        """Start the service; with wait=True, run until a shutdown signal"""
        logger.info("Starting UPS Service")
        self._running = True

        if self.config_path:
            self.config = load_config_file(self.config_path)

        await self.apply_config(self.config)
        if self.persist:
            self._delete_orphaned_state()

        await self._start_health_server()

        if self.config_path:
            self._config_watch_task = asyncio.create_task(self._config_watch_loop())

        logger.info(
            f"UPS Service started ({len(self._pollers)} devices)",
            extra={"device_count": len(self._pollers)},
        )

        if wait:
            self._setup_signal_handlers()
            await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop every poller and the health server"""
        logger.info("Stopping UPS Service")
        self._running = False

        if self._config_watch_task:
            self._config_watch_task.cancel()
            try:
                await self._config_watch_task
            except asyncio.CancelledError:
                pass
            self._config_watch_task = None

        for poller in list(self._pollers.values()):
            await poller.removed()
        self._pollers.clear()
        self._hosts.clear()
        self._hashes.clear()

        await self._stop_health_server()

        logger.info("UPS Service stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    # Device management

    async def apply_config(self, config: MonitorConfig) -> None:
        """Reconcile running devices with a (new) configuration"""
        self.config = config
        wanted = {d.id: d for d in config.devices}

        for device_id in [d for d in self._pollers if d not in wanted]:
            await self._remove_device(device_id)

        for device_id, device in wanted.items():
            if device_id not in self._pollers:
                await self._add_device(device)
            elif compute_settings_hash(device) != self._hashes.get(device_id):
                await self._update_device(device)

    async def _add_device(self, device: DeviceConfig) -> None:
        host = LocalDevice(device, persist=self.persist)
        poller = UPSDevice(host, device.name, client_factory=self.client_factory)

        self._hosts[device.id] = host
        self._pollers[device.id] = poller
        self._hashes[device.id] = compute_settings_hash(device)

        if host.is_new:
            await poller.added()
        await poller.initialize()

        logger.info(
            f"Registered device: {device.display_name} ups={device.name} "
            f"host={device.settings.ip} port={device.settings.port}"
        )

    async def _update_device(self, device: DeviceConfig) -> None:
        host = self._hosts[device.id]
        poller = self._pollers[device.id]
        old = host.config

        host.config = device
        poller.ups_name = device.name
        self._hashes[device.id] = compute_settings_hash(device)

        if old.display_name != device.display_name:
            await poller.renamed(device.display_name)

        old_settings = old.settings.to_dict()
        new_settings = device.settings.to_dict()
        changed_keys = [k for k in SETTING_KEYS if old_settings.get(k) != new_settings.get(k)]
        if changed_keys:
            await poller.settings_changed(old_settings, new_settings, changed_keys)

    async def _remove_device(self, device_id: str) -> None:
        poller = self._pollers.pop(device_id)
        host = self._hosts.pop(device_id)
        self._hashes.pop(device_id, None)

        await poller.removed()
        host.delete()
        logger.info(f"Removed device: {host.name} ({device_id})")

    def _delete_orphaned_state(self) -> None:
        """Delete saved state of devices removed from the config while stopped"""
        wanted = {device_state_key(device_id) for device_id in self._hosts}
        for key in SharedState.list_keys():
            if key.startswith(DEVICE_KEY_PREFIX) and key not in wanted:
                SharedState.delete(key)
                logger.info(f"Deleted state of unconfigured device: {key}")

    def get_poller(self, device_id: str) -> UPSDevice | None:
        return self._pollers.get(device_id)

    def get_host(self, device_id: str) -> LocalDevice | None:
        return self._hosts.get(device_id)

    async def _config_watch_loop(self) -> None:
        """
        Watch the config file and apply changes when detected.

        Compares the parsed configuration instead of file timestamps.
        """
        watch_interval = self.service_config.config_watch_interval_s

        while self._running:
            await asyncio.sleep(watch_interval)
            try:
                config = load_config_file(self.config_path)
                await self.apply_config(config)
            except ConfigError as e:
                logger.error(f"Ignoring invalid configuration: {e.message}")
            except Exception as e:
                logger.error(f"Error in config watch loop: {e}")

    # Health server

    def create_health_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/devices", self._devices_handler)
        app.router.add_get("/devices/{device_id}", self._device_handler)
        return app

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        self._health_app = self.create_health_app()

        self._health_runner = web.AppRunner(self._health_app)
        await self._health_runner.setup()

        site = web.TCPSite(
            self._health_runner,
            self.service_config.health_host,
            self.service_config.health_port,
        )
        await site.start()

        logger.info(f"Health server started on port {self.service_config.health_port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    def _device_status(self, device_id: str) -> dict:
        return {
            **self._hosts[device_id].snapshot(),
            "poller": self._pollers[device_id].get_stats(),
        }

    async def _health_handler(self, request: web.Request) -> web.Response:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        available = sum(1 for h in self._hosts.values() if h.available)

        return web.json_response({
            "status": "healthy" if self._running else "unhealthy",
            "service": "ups",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "devices": len(self._hosts),
            "available": available,
        })

    async def _devices_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            device_id: self._device_status(device_id) for device_id in self._hosts
        })

    async def _device_handler(self, request: web.Request) -> web.Response:
        device_id = request.match_info["device_id"]
        if device_id not in self._hosts:
            return web.json_response({"error": f"Unknown device: {device_id}"}, status=404)
        return web.json_response(self._device_status(device_id))
