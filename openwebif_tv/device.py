"""
Synchronization core for one receiver

Wires the API client, state poller, input reconciler, command dispatcher and
scheduler together and exposes a single set of outward event channels:

- ``device_info``: DeviceInfo once identity is known
- ``state_changed``: DeviceStateChanged (snapshot plus active input identifier)
- ``inputs_changed``: InputsChanged from the reconciler
- ``display_order_changed``: identifier order for the accessory layer
- ``notices``: success/warn/error/debug notices from every component
- ``scheduler_state``: True/False when polling starts/stops

Startup needs the MAC address (the accessory's stable identity). When the box
is unreachable the cached device info and channel list from the previous run
are used instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .api import OpenWebIfClient
from .commands import Ack, CommandDispatcher, RemoteKey
from .config import DeviceConfig
from .errors import ConfigError, OpenWebIfError
from .events import DeviceStateChanged, EventChannel, InputsChanged, Notice, StateChanged
from .inputs import InputReconciler, OverlayStore
from .models import ChannelDescriptor, DeviceInfo, InputEntry, Snapshot, TaskDescriptor
from .poller import StatePoller
from .scheduler import ImpulseGenerator
from .storage import DeviceStorage

LOGGER = logging.getLogger(__name__)

STATE_TASK = "state"
INPUTS_TASK = "inputs"


class OpenWebIfDevice:
    zap_retry_delay = 4.0

    def __init__(
        self,
        config: DeviceConfig,
        storage_dir: Path,
        *,
        client: OpenWebIfClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self.storage = DeviceStorage(Path(storage_dir), config.host, self._logger)
        self.client = client or OpenWebIfClient(config)
        self.poller = StatePoller(self.client, self._logger)
        self.reconciler = InputReconciler(
            OverlayStore(self.storage),
            capacity=config.max_inputs,
            display_order=config.inputs_display_order,
            bouquets=config.bouquets,
            channels=config.inputs,
            logger=self._logger,
        )
        self.dispatcher = CommandDispatcher(
            self.client,
            self.poller,
            idempotent=config.idempotent_commands,
            info_button_command=config.info_button_command,
            logger=self._logger,
        )
        self.scheduler = ImpulseGenerator(
            {STATE_TASK: self._refresh_state, INPUTS_TASK: self._refresh_inputs},
            self._logger,
        )
        self.info: DeviceInfo | None = None
        self._active_identifier: int | None = None
        self._connected: bool | None = None

        self.device_info: EventChannel[DeviceInfo] = EventChannel("device.info", self._logger)
        self.state_changed: EventChannel[DeviceStateChanged] = EventChannel("device.state", self._logger)
        self.inputs_changed: EventChannel[InputsChanged] = EventChannel("device.inputs", self._logger)
        self.display_order_changed: EventChannel[tuple[int, ...]] = EventChannel(
            "device.display_order", self._logger
        )
        self.notices: EventChannel[Notice] = EventChannel("device.notices", self._logger)
        self.scheduler_state: EventChannel[bool] = EventChannel("device.scheduler", self._logger)

        self.poller.state_changed.subscribe(self._on_state_changed)
        self.reconciler.inputs_changed.subscribe(self.inputs_changed.publish)
        self.reconciler.display_order_changed.subscribe(self.display_order_changed.publish)
        self.reconciler.notices.subscribe(self.notices.publish)
        self.dispatcher.notices.subscribe(self.notices.publish)
        self.scheduler.errors.subscribe(self.notices.publish)
        self.scheduler.lifecycle.subscribe(self.scheduler_state.publish)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def snapshot(self) -> Snapshot:
        return self.poller.snapshot

    @property
    def active_identifier(self) -> int | None:
        return self._active_identifier

    @property
    def inputs(self) -> list[InputEntry]:
        return self.reconciler.entries

    async def start(self) -> bool:
        """Load identity and inputs, then start polling.

        Returns:
            False if a configuration problem (including a missing MAC) prevents startup
        """
        try:
            await self._prepare()
        except ConfigError as exc:
            self.notices.publish(Notice(level="error", message=str(exc), cause=exc))
            return False

        tasks = [TaskDescriptor(STATE_TASK, self.config.refresh_interval)]
        if self.config.get_inputs_from_device:
            tasks.append(TaskDescriptor(INPUTS_TASK, self.config.inputs_refresh_interval))
        await self.scheduler.start(tasks)
        self.scheduler.trigger(STATE_TASK)
        return True

    async def stop(self) -> None:
        await self.scheduler.stop()
        # The client must outlive in-flight polls.
        await self.scheduler.wait_idle(timeout=self.config.probe_timeout + self.config.request_timeout)
        await self.client.close()

    async def set_power(self, on: bool) -> Ack:
        return await self.dispatcher.dispatch("power", on)

    async def set_active_identifier(self, identifier: int) -> Ack:
        """Zap to the input with ``identifier``.

        A box in standby gets one grace period to wake up before the request
        is abandoned.

        Raises:
            KeyError: No live input has this identifier
        """
        entry = self.reconciler.by_identifier(identifier)
        if entry is None:
            raise KeyError(identifier)
        if not self.snapshot.power:
            await asyncio.sleep(self.zap_retry_delay)
            if not self.snapshot.power:
                self._debug(f"Power is off, channel {entry.name} not set")
                return Ack("channel", entry.reference, sent=False)
        return await self.dispatcher.dispatch("channel", entry.reference)

    async def set_volume(self, level: int) -> Ack:
        return await self.dispatcher.dispatch("volume", level)

    async def set_mute(self, on: bool) -> Ack:
        return await self.dispatcher.dispatch("mute", on)

    async def send_remote_key(self, key: RemoteKey | str | int) -> Ack:
        return await self.dispatcher.dispatch("remote_key", key)

    def rename_input(self, reference: str, name: str) -> bool:
        changed = self.reconciler.rename(reference, name)
        if changed:
            self.notices.publish(Notice(level="success", message=f"Saved input name: {name.strip()}, reference: {reference}"))
        return changed

    def set_input_visibility(self, reference: str, state: int | bool) -> bool:
        changed = self.reconciler.set_visibility(reference, state)
        if changed:
            label = "HIDDEN" if int(state) else "SHOWN"
            self.notices.publish(Notice(level="success", message=f"Saved input visibility: {label}, reference: {reference}"))
        return changed

    async def _prepare(self) -> None:
        self.storage.prepare()
        self.reconciler.overlays.load()
        cached_info = self.storage.load_device_info()
        cached_channels = self.storage.load_channels()

        self._debug("Requesting device info")
        info_payload: dict[str, Any] = cached_info
        fresh_info = False
        try:
            info_payload = await self.client.get_device_info()
            fresh_info = True
        except OpenWebIfError as exc:
            self.notices.publish(Notice(level="warn", message=f"Device info unavailable, using cached data: {exc}", cause=exc))

        info = DeviceInfo.from_payload(info_payload)
        if not info.mac:
            raise ConfigError(f"Device '{self.name}': MAC address unknown, check the connection and restart")

        channels = await self._initial_channels(cached_channels)
        try:
            if fresh_info:
                self.storage.save_device_info(info_payload)
        except OSError as exc:
            raise ConfigError(f"Device '{self.name}': unable to save device info: {exc}") from exc

        self.info = info
        self.device_info.publish(info)
        self._apply_channels(channels)

    async def _initial_channels(self, cached: list[ChannelDescriptor]) -> list[ChannelDescriptor]:
        if not self.config.get_inputs_from_device:
            return self.reconciler.build_candidates()
        self._debug("Requesting channel list")
        try:
            payload = await self.client.get_all_services()
            channels = self.reconciler.build_candidates(payload)
        except OpenWebIfError as exc:
            self.notices.publish(Notice(level="warn", message=f"Channel list unavailable, using cached data: {exc}", cause=exc))
            return cached
        self._save_channels(channels)
        return channels

    async def _refresh_state(self) -> None:
        try:
            await self.poller.poll()
        except OpenWebIfError:
            # None until the first success; only a lost connection is reported.
            if self._connected:
                self.notices.publish(Notice(level="warn", message="Disconnected", task=STATE_TASK))
                self.poller.reset()
                self._connected = False
            raise
        if self._connected is False:
            self.notices.publish(Notice(level="success", message="Reconnected", task=STATE_TASK))
        self._connected = True

    async def _refresh_inputs(self) -> None:
        payload = await self.client.get_all_services()
        channels = self.reconciler.build_candidates(payload)
        self._save_channels(channels)
        self._apply_channels(channels)

    def _apply_channels(self, channels: Sequence[ChannelDescriptor]) -> None:
        references = {channel.reference for channel in channels if channel.name and channel.reference}
        # An empty listing keeps the live set; otherwise anything no longer listed goes, fallback included.
        if references:
            stale = [entry.channel for entry in self.reconciler.entries if entry.reference not in references]
            if stale:
                self.reconciler.reconcile(stale, remove=True)
        self.reconciler.reconcile(channels)
        identifier = self.reconciler.identifier_for(self.snapshot.reference)
        if identifier is not None:
            self._active_identifier = identifier

    def _save_channels(self, channels: list[ChannelDescriptor]) -> None:
        try:
            self.storage.save_channels(channels)
        except OSError as exc:
            self.notices.publish(Notice(level="warn", message=f"Unable to cache channel list: {exc}", cause=exc))

    def _on_state_changed(self, event: StateChanged) -> None:
        identifier = self.reconciler.identifier_for(event.snapshot.reference)
        if identifier is not None:
            self._active_identifier = identifier
        self.state_changed.publish(DeviceStateChanged(snapshot=event.snapshot, active_identifier=self._active_identifier))

    def _debug(self, message: str) -> None:
        self.notices.publish(Notice(level="debug", message=message))
