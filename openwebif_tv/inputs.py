"""
Channel list reconciliation for the receiver's input sources

Merges the channel list (flattened from the device's bouquets, or taken from
the static config) with the user's persisted overrides and applies the result
to a bounded set of live inputs.

Rules:
- ``reference`` is the key; the first occurrence of a duplicate wins
- Entries without a name or reference are skipped with a warning
- An empty channel list on an empty live set yields one fallback input
- Identifiers are assigned once, increase monotonically and are never reused
- Additions beyond capacity are dropped silently (logged at debug)
- Removal only happens on an explicit ``remove=True`` pass
- Every add/update/remove recomputes the display order
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .api import GET_ALL_SERVICES
from .config import (
    DEFAULT_MAX_INPUTS,
    DISPLAY_ORDER_NAME_ASC,
    DISPLAY_ORDER_NAME_DESC,
    DISPLAY_ORDER_NONE,
    DISPLAY_ORDER_REFERENCE_ASC,
    DISPLAY_ORDER_REFERENCE_DESC,
    BouquetConfig,
)
from .errors import ParseError, ReconciliationWarning
from .events import EventChannel, InputsChanged, Notice
from .models import VISIBILITY_HIDDEN, VISIBILITY_SHOWN, ChannelDescriptor, InputEntry
from .storage import DeviceStorage

LOGGER = logging.getLogger(__name__)

FALLBACK_REFERENCE = "1:0:1:3DD2:640:13E:820000:0:0:0:"
FALLBACK_NAME = "Channel 1"


class OverlayStore:
    """User overrides for input names and visibility, keyed by reference.

    Changes are written to disk before they replace the in-memory mapping, so
    a failed write leaves both unchanged and the error reaches the caller.
    """

    def __init__(self, storage: DeviceStorage | None = None) -> None:
        self._storage = storage
        self._names: dict[str, str] = {}
        self._visibility: dict[str, int] = {}

    def load(self) -> None:
        if self._storage is None:
            return
        self._names = self._storage.load_names()
        self._visibility = self._storage.load_visibility()

    @property
    def names(self) -> dict[str, str]:
        return dict(self._names)

    @property
    def visibility(self) -> dict[str, int]:
        return dict(self._visibility)

    def name_for(self, reference: str) -> str | None:
        return self._names.get(reference)

    def visibility_for(self, reference: str) -> int:
        return self._visibility.get(reference, VISIBILITY_SHOWN)

    def set_name(self, reference: str, name: str) -> bool:
        if self._names.get(reference) == name:
            return False
        updated = {**self._names, reference: name}
        if self._storage is not None:
            self._storage.save_names(updated)
        self._names = updated
        return True

    def set_visibility(self, reference: str, state: int) -> bool:
        if reference in self._visibility and self._visibility[reference] == state:
            return False
        updated = {**self._visibility, reference: state}
        if self._storage is not None:
            self._storage.save_visibility(updated)
        self._visibility = updated
        return True


def flatten_bouquets(
    payload: dict[str, Any],
    bouquets: Iterable[BouquetConfig],
) -> tuple[list[ChannelDescriptor], list[str]]:
    """Collect the sub-services of each configured bouquet from ``/api/getallservices``.

    Returns:
        The channels in bouquet order and a warning per bouquet that was not found

    Raises:
        ParseError: The payload has no ``services`` list
    """
    services = payload.get("services")
    if not isinstance(services, list):
        raise ParseError(GET_ALL_SERVICES, "missing 'services' list")

    by_name: dict[str, dict[str, Any]] = {}
    for service in services:
        if isinstance(service, dict):
            by_name.setdefault(str(service.get("servicename") or ""), service)

    channels: list[ChannelDescriptor] = []
    warnings: list[str] = []
    for bouquet in bouquets:
        service = by_name.get(bouquet.name)
        if service is None:
            warnings.append(f"Bouquet '{bouquet.name}' not found on device, skipped")
            continue
        subservices = service.get("subservices")
        if not isinstance(subservices, list):
            warnings.append(f"Bouquet '{bouquet.name}' has no channel list, skipped")
            continue
        for sub in subservices:
            if not isinstance(sub, dict):
                continue
            channels.append(
                ChannelDescriptor(
                    name=str(sub.get("servicename") or "").strip(),
                    reference=str(sub.get("servicereference") or "").strip(),
                    display_type=bouquet.display_type,
                    name_prefix=bouquet.name_prefix,
                )
            )
    return channels, warnings


class InputReconciler:
    """Owns the live input set, its identifiers and its display order."""

    def __init__(
        self,
        overlays: OverlayStore | None = None,
        *,
        capacity: int = DEFAULT_MAX_INPUTS,
        display_order: int = DISPLAY_ORDER_NONE,
        bouquets: Iterable[BouquetConfig] = (),
        channels: Iterable[ChannelDescriptor] = (),
        logger: logging.Logger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("Input capacity must be at least 1")
        self.overlays = overlays or OverlayStore()
        self.capacity = capacity
        self._display_order_mode = display_order
        self._bouquets = tuple(bouquets)
        self._static_channels = tuple(channels)
        self._logger = logger or LOGGER
        self._entries: list[InputEntry] = []
        self._next_identifier = 1
        self._display_order: tuple[int, ...] = ()
        self.inputs_changed: EventChannel[InputsChanged] = EventChannel("inputs.changed", self._logger)
        self.display_order_changed: EventChannel[tuple[int, ...]] = EventChannel(
            "inputs.display_order", self._logger
        )
        self.notices: EventChannel[Notice] = EventChannel("inputs.notices", self._logger)

    @property
    def entries(self) -> list[InputEntry]:
        return [entry.copy() for entry in self._entries]

    @property
    def display_order(self) -> tuple[int, ...]:
        return self._display_order

    def __len__(self) -> int:
        return len(self._entries)

    def by_reference(self, reference: str) -> InputEntry | None:
        entry = self._find(reference)
        return entry.copy() if entry else None

    def by_identifier(self, identifier: int) -> InputEntry | None:
        for entry in self._entries:
            if entry.identifier == identifier:
                return entry.copy()
        return None

    def identifier_for(self, reference: str) -> int | None:
        entry = self._find(reference)
        return entry.identifier if entry else None

    def build_candidates(self, services_payload: dict[str, Any] | None = None) -> list[ChannelDescriptor]:
        """Channels from the device's bouquets, or the configured list when no payload is given."""
        if services_payload is None:
            return list(self._static_channels)
        channels, warnings = flatten_bouquets(services_payload, self._bouquets)
        for message in warnings:
            self._warn(message)
        return channels

    def reconcile(self, candidates: Iterable[ChannelDescriptor], remove: bool = False) -> list[InputEntry]:
        """Apply ``candidates`` to the live set.

        With ``remove=True`` the live entries whose references appear in
        ``candidates`` are deleted; otherwise new references are added and
        renamed ones updated in place.

        Returns:
            Copies of the entries that were added, updated or removed
        """
        if remove:
            return self._remove({channel.reference for channel in candidates})

        changed: list[InputEntry] = []
        dropped = 0
        for channel in self._prepare(candidates):
            name = self.overlays.name_for(channel.reference) or channel.name
            entry = self._find(channel.reference)
            if entry is None:
                if len(self._entries) >= self.capacity:
                    dropped += 1
                    continue
                entry = InputEntry(
                    identifier=self._next_identifier,
                    channel=channel,
                    name=name,
                    visibility=self.overlays.visibility_for(channel.reference),
                )
                self._next_identifier += 1
                self._entries.append(entry)
                changed.append(entry.copy())
            elif entry.name != name or entry.channel != channel:
                entry.name = name
                entry.channel = channel
                changed.append(entry.copy())

        if dropped:
            self._logger.debug("[inputs] Capacity %d reached, %d channel(s) not added", self.capacity, dropped)
        if changed:
            self._logger.debug("[inputs] Added/updated %d input(s)", len(changed))
            self.inputs_changed.publish(InputsChanged(entries=tuple(changed), remove=False))
            self._recompute_display_order()
        return changed

    def rename(self, reference: str, name: str) -> bool:
        """Persist a custom name for ``reference`` and apply it to the live entry.

        Raises:
            KeyError: No live input has this reference
            ValueError: The name is empty
            OSError: The overlay could not be written
        """
        entry = self._find(reference)
        if entry is None:
            raise KeyError(reference)
        name = name.strip()
        if not name:
            raise ValueError("Input name must not be empty")
        stored = self.overlays.set_name(reference, name)
        if not stored and entry.name == name:
            return False
        entry.name = name
        self.inputs_changed.publish(InputsChanged(entries=(entry.copy(),), remove=False))
        self._recompute_display_order()
        return True

    def set_visibility(self, reference: str, state: int | bool) -> bool:
        """Persist the target visibility (0 shown, 1 hidden) for ``reference``."""
        entry = self._find(reference)
        if entry is None:
            raise KeyError(reference)
        visibility = VISIBILITY_HIDDEN if int(state) else VISIBILITY_SHOWN
        stored = self.overlays.set_visibility(reference, visibility)
        if not stored and entry.visibility == visibility:
            return False
        entry.visibility = visibility
        self.inputs_changed.publish(InputsChanged(entries=(entry.copy(),), remove=False))
        return True

    def _prepare(self, candidates: Iterable[ChannelDescriptor]) -> list[ChannelDescriptor]:
        prepared: list[ChannelDescriptor] = []
        seen: set[str] = set()
        for channel in candidates:
            if not channel.name or not channel.reference:
                self._warn(
                    f"Input name: {channel.name or 'Missing'}, reference: {channel.reference or 'Missing'}, skipped"
                )
                continue
            if channel.reference in seen:
                continue
            seen.add(channel.reference)
            prepared.append(channel)
        if not prepared and not self._entries:
            prepared.append(ChannelDescriptor(name=FALLBACK_NAME, reference=FALLBACK_REFERENCE))
        return prepared

    def _remove(self, references: set[str]) -> list[InputEntry]:
        removed = [entry for entry in self._entries if entry.reference in references]
        if not removed:
            return []
        self._entries = [entry for entry in self._entries if entry.reference not in references]
        copies = [entry.copy() for entry in removed]
        self._logger.debug("[inputs] Removed %d input(s)", len(copies))
        self.inputs_changed.publish(InputsChanged(entries=tuple(copies), remove=True))
        self._recompute_display_order()
        return copies

    def _recompute_display_order(self) -> None:
        mode = self._display_order_mode
        entries = list(self._entries)
        if mode == DISPLAY_ORDER_NAME_ASC:
            entries.sort(key=lambda entry: entry.name.casefold())
        elif mode == DISPLAY_ORDER_NAME_DESC:
            entries.sort(key=lambda entry: entry.name.casefold(), reverse=True)
        elif mode == DISPLAY_ORDER_REFERENCE_ASC:
            entries.sort(key=lambda entry: entry.reference)
        elif mode == DISPLAY_ORDER_REFERENCE_DESC:
            entries.sort(key=lambda entry: entry.reference, reverse=True)
        else:
            entries.sort(key=lambda entry: entry.identifier)
        order = tuple(entry.identifier for entry in entries)
        if order == self._display_order:
            return
        self._display_order = order
        self.display_order_changed.publish(order)

    def _find(self, reference: str) -> InputEntry | None:
        for entry in self._entries:
            if entry.reference == reference:
                return entry
        return None

    def _warn(self, message: str) -> None:
        self._logger.debug("[inputs] %s", message)
        self.notices.publish(Notice(level="warn", message=message, cause=ReconciliationWarning(message)))
