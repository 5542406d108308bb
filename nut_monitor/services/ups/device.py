"""
UPS Device Poller

Drives one UPS: a repeating timer that, on each tick, opens a fresh NUT
connection, authenticates, fetches the variables, translates and
reconciles them, updates availability and always closes the connection.
"""

import asyncio
from enum import Enum
from typing import Any, Callable

from nut_monitor.common.config import DEFAULT_POLL_INTERVAL_S, DEFAULT_TIMEOUT_S
from nut_monitor.common.logging_setup import get_service_logger
from nut_monitor.common.scheduler import ScheduledLoop

from .capabilities import CAPABILITIES_KEY, CapabilityState, DeviceCapabilityAPI
from .nut_client import NutClient
from .reconciler import CapabilityReconciler
from .status_parser import parse_ups_status

logger = get_service_logger("ups.device")

# (host, port, timeout) -> client
ClientFactory = Callable[[str, int, float], NutClient]


class PollState(str, Enum):
    """Lifecycle of a polled device"""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READING = "reading"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    DESTROYED = "destroyed"


def default_client_factory(host: str, port: int, timeout: float) -> NutClient:
    return NutClient(host=host, port=port, timeout=timeout)


class UPSDevice:
    """
    Polls a NUT server for one UPS and keeps its host device in sync.

    Lifecycle hooks: initialize(), added(), settings_changed(), renamed(),
    removed().
    """

    def __init__(
        self,
        host: DeviceCapabilityAPI,
        ups_name: str,
        client_factory: ClientFactory = default_client_factory,
        reconciler: CapabilityReconciler | None = None,
    ):
        self.host = host
        self.ups_name = ups_name
        self.client_factory = client_factory
        self.reconciler = reconciler or CapabilityReconciler()
        self.capability_state = CapabilityState(host)

        self.state = PollState.UNINITIALIZED
        self.timer: ScheduledLoop | None = None
        self._tick_lock = asyncio.Lock()

    @property
    def log_prefix(self) -> str:
        return f"[{self.host.name}][{self.host.device_id}]"

    @property
    def interval(self) -> float:
        interval = self.host.get_setting("interval")
        return float(interval) if interval else float(DEFAULT_POLL_INTERVAL_S)

    # Lifecycle hooks

    async def initialize(self) -> None:
        """Mark the device as initializing and start polling"""
        await self.host.set_unavailable("Initializing...")
        logger.info(f"{self.log_prefix} Update interval: {self.interval}s")
        await self._start_timer(self.interval, run_immediately=True)
        logger.info(f"{self.log_prefix} UPS device has been initialized")

    async def added(self) -> None:
        logger.info(
            f"{self.log_prefix} Device added: ups={self.ups_name}, "
            f"capabilities={self.host.get_store_value(CAPABILITIES_KEY)}"
        )

    async def settings_changed(
        self,
        old_settings: dict[str, Any],
        new_settings: dict[str, Any],
        changed_keys: list[str],
    ) -> None:
        """Log setting changes and restart the timer when the interval changed"""
        for name in changed_keys:
            if name != "password":
                logger.info(
                    f"{self.log_prefix} Setting '{name}' set "
                    f"'{old_settings.get(name)}' => '{new_settings.get(name)}'"
                )

        if old_settings.get("interval") != new_settings.get("interval"):
            logger.info(
                f"{self.log_prefix} Replacing update interval of {old_settings.get('interval')}s "
                f"with {new_settings.get('interval')}s"
            )
            self._stop_timer()
            await self._start_timer(float(new_settings["interval"]))

    async def renamed(self, name: str) -> None:
        logger.info(f"{self.log_prefix} Renamed to {name}")

    async def removed(self) -> None:
        """
        Stop polling. Waits for a running tick, so nothing touches the
        host after this returns.
        """
        self.state = PollState.DESTROYED
        self._stop_timer()
        async with self._tick_lock:
            pass
        logger.info(f"{self.log_prefix} Device removed")

    # Timer

    async def _start_timer(self, interval: float, run_immediately: bool = False) -> None:
        if self.state == PollState.DESTROYED:
            return
        self.timer = ScheduledLoop(
            interval,
            self.poll_once,
            name=self.host.device_id,
            run_immediately=run_immediately,
        )
        await self.timer.start()

    def _stop_timer(self) -> None:
        if self.timer:
            self.timer.stop()
            self.timer = None

    # Polling

    async def poll_once(self) -> None:
        """
        One poll cycle. Never raises: failures mark the device unavailable.

        Ticks are serialized; a tick that fires while the previous one is
        still running is skipped.
        """
        if self.state == PollState.DESTROYED:
            return
        if self._tick_lock.locked():
            logger.warning(f"{self.log_prefix} Previous refresh still running, skipping tick")
            return

        async with self._tick_lock:
            await self._refresh()

    async def _refresh(self) -> None:
        logger.debug(f"{self.log_prefix} Refresh device")
        client = None
        try:
            self._set_state(PollState.CONNECTING)
            settings = self.host.get_settings()
            client = self.client_factory(
                settings.get("ip"),
                int(settings.get("port")),
                float(settings.get("timeout") or DEFAULT_TIMEOUT_S),
            )
            await client.connect()
            username = settings.get("username")
            if username:
                await client.authenticate(username, settings.get("password") or "")

            self._set_state(PollState.READING)
            raw = await client.fetch_variables(self.ups_name)
            logger.debug(f"{self.log_prefix} Received {len(raw)} variables")
            if self.state == PollState.DESTROYED:
                return

            status = parse_ups_status(raw)
            await self.reconciler.reconcile(status, self.capability_state, self.host)

            await self.host.set_available()
            self._set_state(PollState.AVAILABLE)
        except Exception as e:
            logger.error(f"{self.log_prefix} Refresh failed: {e}")
            if self.state != PollState.DESTROYED:
                await self.host.set_unavailable(f"Connection error: {e}")
                self._set_state(PollState.UNAVAILABLE)
        finally:
            if client is not None:
                await client.close()

    def _set_state(self, state: PollState) -> None:
        # A tick that outlives removal must not resurrect the device
        if self.state != PollState.DESTROYED:
            self.state = state

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "interval_s": self.interval,
            "timer": self.timer.get_stats() if self.timer else None,
        }
