"""MQTT mirror of one receiver.

Topics (all under ``<prefix>/<device name>``):

- ``Info``: device info as reported by ``/api/deviceinfo`` (retained)
- ``State``: current snapshot plus active input identifier (retained)
- ``Inputs``: the live input list (retained)
- ``Set``: optional command topic; a JSON object with any of ``Power``,
  ``Channel``, ``Volume``, ``Mute`` and ``RcControl``
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from .device import OpenWebIfDevice
from .errors import OpenWebIfError
from .events import DeviceStateChanged, InputsChanged
from .models import DeviceInfo
from .mqtt import BridgeMqtt
from .utils import parse_bool

LOGGER = logging.getLogger(__name__)


class DeviceMqttPublisher:
    def __init__(
        self,
        mqtt: BridgeMqtt,
        device: OpenWebIfDevice,
        *,
        commands: bool = False,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.mqtt = mqtt
        self.device = device
        self.commands = commands
        self._loop = loop
        self.logger = logger or LOGGER
        self.base_topic = f"{mqtt.config.prefix}/{device.name}"
        self.info_topic = f"{self.base_topic}/Info"
        self.state_topic = f"{self.base_topic}/State"
        self.inputs_topic = f"{self.base_topic}/Inputs"
        self.command_topic = f"{self.base_topic}/Set"
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self) -> None:
        if self._unsubscribers:
            return
        self._unsubscribers = [
            self.device.device_info.subscribe(self._on_device_info),
            self.device.state_changed.subscribe(self._on_state_changed),
            self.device.inputs_changed.subscribe(self._on_inputs_changed),
        ]
        if self.commands:
            self.mqtt.subscribe(self.command_topic, self._handle_command_message)

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _publish_json(self, topic: str, data: Any) -> None:
        self.mqtt.publish(topic, json.dumps(data, indent=2), retain=True)

    def _on_device_info(self, info: DeviceInfo) -> None:
        self._publish_json(self.info_topic, info.raw or info.to_dict())

    def _on_state_changed(self, event: DeviceStateChanged) -> None:
        payload = event.snapshot.to_dict()
        payload["activeIdentifier"] = event.active_identifier
        self._publish_json(self.state_topic, payload)

    def _on_inputs_changed(self, _event: InputsChanged) -> None:
        self._publish_json(self.inputs_topic, [entry.to_dict() for entry in self.device.inputs])

    def _handle_command_message(self, payload: str) -> None:
        if not self._loop:
            return
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            self.logger.debug("[mqtt] Ignoring malformed command: %s", payload)
            return
        if not isinstance(data, dict):
            self.logger.debug("[mqtt] Ignoring command that is not an object: %s", payload)
            return
        asyncio.run_coroutine_threadsafe(self.process_command(data), self._loop)

    async def process_command(self, data: dict[str, Any]) -> None:
        for key, value in data.items():
            try:
                if key == "Power":
                    await self.device.set_power(parse_bool(value))
                elif key == "Channel":
                    await self.device.dispatcher.dispatch("channel", value)
                elif key == "Volume":
                    await self.device.set_volume(value)
                elif key == "Mute":
                    await self.device.set_mute(parse_bool(value))
                elif key == "RcControl":
                    await self.device.send_remote_key(value)
                else:
                    self.logger.debug("[mqtt] Unknown command key '%s' for %s", key, self.device.name)
            except (OpenWebIfError, ValueError) as exc:
                self.logger.warning("[mqtt] Command %s=%r for %s failed: %s", key, value, self.device.name, exc)
