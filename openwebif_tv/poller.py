"""Receiver status polling with change detection."""

from __future__ import annotations

import logging
from typing import Any

from .api import OpenWebIfClient
from .events import EventChannel, StateChanged
from .models import Snapshot
from .utils import clamp, parse_int

LOGGER = logging.getLogger(__name__)


def parse_status(payload: dict[str, Any]) -> Snapshot:
    """Turn an ``/api/statusinfo`` payload into a Snapshot.

    OpenWebIf reports ``inStandby`` as the *string* ``"true"``/``"false"``;
    only the exact string ``"false"`` means the box is on. ``muted`` arrives as
    a JSON boolean on most images and as a string on some, and a box in
    standby always reads as muted.
    """
    power = payload.get("inStandby") == "false"
    muted = payload.get("muted")
    mute = (muted is True or str(muted).strip().lower() == "true") if power else True
    return Snapshot(
        power=power,
        name=str(payload.get("currservice_station") or ""),
        event_name=str(payload.get("currservice_name") or ""),
        reference=str(payload.get("currservice_serviceref") or ""),
        volume=clamp(parse_int(payload.get("volume"), 0), 0, 100),
        mute=mute,
    )


class StatePoller:
    """Owns the Snapshot; the only place it is ever replaced."""

    def __init__(self, client: OpenWebIfClient, logger: logging.Logger | None = None) -> None:
        self._client = client
        self._logger = logger or LOGGER
        self._snapshot = Snapshot()
        self._primed = False
        self.state_changed: EventChannel[StateChanged] = EventChannel("poller.state_changed", self._logger)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def reset(self) -> None:
        """Make the next successful poll publish even if nothing changed."""
        self._primed = False

    async def fetch(self) -> Snapshot:
        """Read and parse the current status without touching the owned snapshot."""
        payload = await self._client.get_status()
        return parse_status(payload)

    async def poll(self) -> bool:
        """Fetch status and publish ``StateChanged`` if any tracked field differs.

        Transport errors propagate to the caller and leave the snapshot as is.

        Returns:
            True if the snapshot was replaced
        """
        current = await self.fetch()
        if self._primed and current == self._snapshot:
            return False
        previous = self._snapshot
        self._snapshot = current
        self._primed = True
        if self._logger.isEnabledFor(logging.DEBUG):
            changed = _changed_fields(previous, current)
            self._logger.debug("[poller] State changed (%s): %s", ", ".join(changed) or "initial", current)
        self.state_changed.publish(StateChanged(snapshot=current))
        return True


_TRACKED_FIELDS = ("power", "name", "event_name", "reference", "volume", "mute")


def _changed_fields(old: Snapshot, new: Snapshot) -> list[str]:
    return [name for name in _TRACKED_FIELDS if getattr(old, name) != getattr(new, name)]
