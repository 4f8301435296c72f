"""Typed event payloads and publish/subscribe channels.

Each component owns the channels it publishes on; the synchronization core
subscribes to them and republishes on its own channels for the accessory
layer and the MQTT publisher.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from .models import InputEntry, Snapshot

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

NoticeLevel = Literal["success", "warn", "error", "debug"]


@dataclass(frozen=True, slots=True)
class StateChanged:
    """Full state tuple published when at least one tracked field changed."""

    snapshot: Snapshot


@dataclass(frozen=True, slots=True)
class DeviceStateChanged:
    snapshot: Snapshot
    active_identifier: int | None


@dataclass(frozen=True, slots=True)
class InputsChanged:
    entries: tuple[InputEntry, ...]
    remove: bool = False


@dataclass(frozen=True, slots=True)
class Notice:
    level: NoticeLevel
    message: str
    task: str | None = None
    cause: BaseException | None = None


class EventChannel(Generic[T]):
    """Synchronous fan-out to subscribed listeners.

    A failing listener is logged and skipped so one consumer cannot break
    delivery to the others or the publishing component.
    """

    def __init__(self, name: str, logger: logging.Logger | None = None) -> None:
        self.name = name
        self._logger = logger or LOGGER
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                self._logger.error("[events] Listener for '%s' failed: %s", self.name, exc, exc_info=True)

    def __len__(self) -> int:
        return len(self._listeners)

