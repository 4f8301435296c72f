"""Data model shared by the synchronization engine components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

VISIBILITY_SHOWN = 0
VISIBILITY_HIDDEN = 1


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Authoritative view of the receiver state, replaced only after a parsed poll."""

    power: bool = False
    name: str = ""
    event_name: str = ""
    reference: str = ""
    volume: int = 0
    mute: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "power": self.power,
            "name": self.name,
            "eventName": self.event_name,
            "reference": self.reference,
            "volume": self.volume,
            "mute": self.mute,
        }


@dataclass(frozen=True, slots=True)
class ChannelDescriptor:
    """A channel as reported by the device or listed in the config.

    ``reference`` is the device-assigned service reference and the only key
    used for reconciliation.
    """

    name: str
    reference: str
    display_type: int = -1
    name_prefix: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChannelDescriptor:
        display_type = data.get("displayType", -1)
        try:
            display_type = int(display_type)
        except (TypeError, ValueError):
            display_type = -1
        return cls(
            name=str(data.get("name") or "").strip(),
            reference=str(data.get("reference") or "").strip(),
            display_type=display_type,
            name_prefix=bool(data.get("namePrefix", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "reference": self.reference,
            "displayType": self.display_type,
            "namePrefix": self.name_prefix,
        }


@dataclass(slots=True)
class InputEntry:
    """A live input owned by the reconciler."""

    identifier: int
    channel: ChannelDescriptor
    name: str
    visibility: int = VISIBILITY_SHOWN

    @property
    def reference(self) -> str:
        return self.channel.reference

    @property
    def hidden(self) -> bool:
        return self.visibility == VISIBILITY_HIDDEN

    def copy(self) -> InputEntry:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "reference": self.reference,
            "displayType": self.channel.display_type,
            "namePrefix": self.channel.name_prefix,
            "visibility": self.visibility,
        }


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    name: str
    interval: float

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Task name must not be empty")
        if self.interval <= 0:
            raise ValueError(f"Task '{self.name}' interval must be positive")


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Receiver identity as reported by ``/api/deviceinfo``."""

    manufacturer: str = "Unknown"
    model: str = "Unknown"
    serial_number: str = "Unknown"
    firmware_revision: str = "Unknown"
    kernel_version: str = "Unknown"
    chipset: str = "Unknown"
    mac: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DeviceInfo:
        interfaces = payload.get("ifaces")
        mac = None
        if isinstance(interfaces, list) and interfaces and isinstance(interfaces[0], dict):
            mac = interfaces[0].get("mac") or None
        return cls(
            manufacturer=str(payload.get("brand") or "Unknown"),
            model=str(payload.get("model") or "Unknown"),
            serial_number=str(payload.get("webifver") or "Unknown"),
            firmware_revision=str(payload.get("imagever") or "Unknown"),
            kernel_version=str(payload.get("kernelver") or "Unknown"),
            chipset=str(payload.get("chipset") or "Unknown"),
            mac=str(mac) if mac else None,
            raw=dict(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "manufacturer": self.manufacturer,
            "model": self.model,
            "serialNumber": self.serial_number,
            "firmwareRevision": self.firmware_revision,
            "kernelVersion": self.kernel_version,
            "chipset": self.chipset,
            "mac": self.mac,
        }
