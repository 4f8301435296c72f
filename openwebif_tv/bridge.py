"""
Process-level wiring: one synchronization engine per configured receiver

Each device gets its own logger (``openwebif_tv.<device name>``) fed by a
listener that renders engine events as log lines, honoring the per-device
``disableLog*`` and ``enableDebugMode`` switches. Devices that fail to start
(usually because the MAC is not known yet) are retried in the background.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from .config import DEFAULT_RESTART_INTERVAL, BridgeConfig, DeviceConfig
from .device import STATE_TASK, OpenWebIfDevice
from .errors import HttpError, Unreachable
from .events import DeviceStateChanged, Notice
from .models import DeviceInfo
from .mqtt import BridgeMqtt
from .mqtt_publisher import DeviceMqttPublisher

LOGGER = logging.getLogger(__name__)


class DeviceLogListener:
    """Renders one device's events on its logger."""

    def __init__(self, config: DeviceConfig, logger: logging.Logger) -> None:
        self.config = config
        self.logger = logger
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, device: OpenWebIfDevice) -> None:
        if self.config.enable_debug_mode:
            self.logger.setLevel(logging.DEBUG)
        self._unsubscribers = [
            device.notices.subscribe(self.on_notice),
            device.device_info.subscribe(self.on_device_info),
            device.state_changed.subscribe(self.on_state_changed),
            device.scheduler_state.subscribe(self.on_scheduler_state),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def on_notice(self, notice: Notice) -> None:
        prefix = f"Device: {self.config.host} {self.config.name}"
        if notice.level == "debug":
            if self.config.enable_debug_mode:
                self.logger.debug("%s, debug: %s", prefix, notice.message)
        elif notice.level == "success":
            if not self.config.disable_log_info:
                self.logger.info("%s, %s", prefix, notice.message)
        elif notice.level == "warn":
            self.logger.warning("%s, %s", prefix, notice.message)
        else:
            if self.config.disable_log_connect_error and self._is_connect_error(notice):
                return
            if notice.task:
                self.logger.error("%s, %s error: %s", prefix, notice.task, notice.message)
            else:
                self.logger.error("%s, %s", prefix, notice.message)

    def on_device_info(self, info: DeviceInfo) -> None:
        if self.config.disable_log_device_info:
            return
        self.logger.info(
            "-------- %s --------\nManufacturer: %s\nModel: %s\nKernel: %s\nChipset: %s\nWebif version: %s\nFirmware: %s\n----------------------------------",
            self.config.name,
            info.manufacturer,
            info.model,
            info.kernel_version,
            info.chipset,
            info.serial_number,
            info.firmware_revision,
        )

    def on_state_changed(self, event: DeviceStateChanged) -> None:
        if self.config.disable_log_info:
            return
        snapshot = event.snapshot
        self.logger.info(
            "Device: %s %s, Power: %s, Channel: %s, Event: %s, Reference: %s, Volume: %s, Mute: %s",
            self.config.host,
            self.config.name,
            "ON" if snapshot.power else "OFF",
            snapshot.name,
            snapshot.event_name,
            snapshot.reference,
            snapshot.volume,
            "ON" if snapshot.mute else "OFF",
        )

    def on_scheduler_state(self, running: bool) -> None:
        self.logger.debug("Device: %s %s, polling %s", self.config.host, self.config.name, "started" if running else "stopped")

    @staticmethod
    def _is_connect_error(notice: Notice) -> bool:
        return notice.task == STATE_TASK or isinstance(notice.cause, (Unreachable, HttpError))


class OpenWebIfBridge:
    def __init__(
        self,
        config: BridgeConfig,
        *,
        mqtt: BridgeMqtt | None = None,
        restart_interval: float = DEFAULT_RESTART_INTERVAL,
    ) -> None:
        self.config = config
        self.restart_interval = restart_interval
        self.mqtt = mqtt if mqtt is not None else (BridgeMqtt(config.mqtt) if config.mqtt.enabled else None)
        self.devices: list[OpenWebIfDevice] = []
        self._listeners: list[DeviceLogListener] = []
        self._publishers: list[DeviceMqttPublisher] = []
        self._tasks: set[asyncio.Task] = set()
        for device_config in config.devices:
            logger = logging.getLogger(f"openwebif_tv.{device_config.name}")
            device = OpenWebIfDevice(device_config, config.storage_dir, logger=logger)
            listener = DeviceLogListener(device_config, logger)
            listener.attach(device)
            self.devices.append(device)
            self._listeners.append(listener)

    async def start(self) -> int:
        """Start every device; failures are retried in the background.

        Returns:
            Number of devices started on the first attempt
        """
        loop = asyncio.get_running_loop()
        if self.mqtt is not None and self.mqtt.connect():
            for device in self.devices:
                publisher = DeviceMqttPublisher(
                    self.mqtt,
                    device,
                    commands=self.config.mqtt.commands,
                    loop=loop,
                    logger=logging.getLogger(f"openwebif_tv.{device.name}"),
                )
                publisher.attach()
                self._publishers.append(publisher)

        started = 0
        for device in self.devices:
            if await device.start():
                started += 1
            else:
                LOGGER.warning("Device %s not started, retrying in %.0fs", device.name, self.restart_interval)
                self._track(asyncio.create_task(self._restart(device), name=f"restart-{device.name}"))
        return started

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for device in self.devices:
            await device.stop()
        for publisher in self._publishers:
            publisher.detach()
        self._publishers = []
        for listener in self._listeners:
            listener.detach()
        if self.mqtt is not None:
            self.mqtt.disconnect()

    async def _restart(self, device: OpenWebIfDevice) -> None:
        while True:
            await asyncio.sleep(self.restart_interval)
            if await device.start():
                LOGGER.info("Device %s started", device.name)
                return

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)

        def _cleanup(_task: asyncio.Task) -> None:
            self._tasks.discard(_task)

        task.add_done_callback(_cleanup)
