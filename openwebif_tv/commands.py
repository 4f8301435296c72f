"""
Command dispatch from the accessory layer (or MQTT) to the receiver

Power and mute are idempotent by default: the dispatcher reads fresh state
first and skips the network command when the device already matches. Mute
goes through OpenWebIf's toggle endpoint, so sending it blindly would flip an
already-muted box back on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

from .api import POWER_STANDBY, POWER_WAKEUP, OpenWebIfClient
from .config import DEFAULT_INFO_BUTTON_COMMAND
from .errors import OpenWebIfError
from .events import EventChannel, Notice
from .poller import StatePoller

LOGGER = logging.getLogger(__name__)

CommandKind = Literal["power", "channel", "volume", "mute", "remote_key"]
COMMAND_KINDS: tuple[CommandKind, ...] = ("power", "channel", "volume", "mute", "remote_key")

RemoteKey = Literal[
    "REWIND",
    "FAST_FORWARD",
    "NEXT_TRACK",
    "PREVIOUS_TRACK",
    "ARROW_UP",
    "ARROW_DOWN",
    "ARROW_LEFT",
    "ARROW_RIGHT",
    "SELECT",
    "BACK",
    "EXIT",
    "PLAY_PAUSE",
    "INFORMATION",
    "VOLUME_UP",
    "VOLUME_DOWN",
    "MENU_SHOW",
    "MENU_HIDE",
]

# Enigma2 remote control key codes (linux input event codes)
REMOTE_KEY_CODES: dict[str, str] = {
    "REWIND": "168",
    "FAST_FORWARD": "159",
    "NEXT_TRACK": "407",
    "PREVIOUS_TRACK": "412",
    "ARROW_UP": "103",
    "ARROW_DOWN": "108",
    "ARROW_LEFT": "105",
    "ARROW_RIGHT": "106",
    "SELECT": "352",
    "BACK": "174",
    "EXIT": "174",
    "VOLUME_UP": "115",
    "VOLUME_DOWN": "114",
    "MENU_SHOW": "139",
    "MENU_HIDE": "174",
}
PLAY_CODE = "207"
PAUSE_CODE = "119"


@dataclass(frozen=True, slots=True)
class Ack:
    """Outcome of a dispatched command.

    ``sent`` is False when no network command was needed (or possible);
    ``assumed`` marks a value guessed because the state read failed.
    """

    kind: CommandKind
    value: Any
    sent: bool
    assumed: bool = False


class CommandDispatcher:
    def __init__(
        self,
        client: OpenWebIfClient,
        poller: StatePoller,
        *,
        idempotent: bool = True,
        info_button_command: str = DEFAULT_INFO_BUTTON_COMMAND,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._poller = poller
        self.idempotent = idempotent
        self._info_button_command = info_button_command
        self._logger = logger or LOGGER
        self._send_pause = False
        self.notices: EventChannel[Notice] = EventChannel("commands.notices", self._logger)

    async def dispatch(self, kind: CommandKind, value: Any) -> Ack:
        """Send one command to the receiver.

        Raises:
            ValueError: Unknown kind or an invalid value
            OpenWebIfError: The device could not be reached or rejected the request
        """
        try:
            if kind == "power":
                return await self._power(bool(value))
            if kind == "channel":
                return await self._channel(value)
            if kind == "volume":
                return await self._volume(value)
            if kind == "mute":
                return await self._mute(bool(value))
            if kind == "remote_key":
                return await self._remote_key(value)
            raise ValueError(f"Unknown command kind {kind!r}")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.notices.publish(Notice(level="warn", message=f"Set {kind} error: {exc}", cause=exc))
            raise

    def resolve_remote_key(self, key: RemoteKey | str | int) -> str:
        """Map a host key name (or a raw numeric code) to the device code."""
        if isinstance(key, int) and not isinstance(key, bool):
            return str(key)
        name = str(key).strip().upper()
        if name == "PLAY_PAUSE":
            return PAUSE_CODE if self._send_pause else PLAY_CODE
        if name == "INFORMATION":
            return self._info_button_command
        if name in REMOTE_KEY_CODES:
            return REMOTE_KEY_CODES[name]
        if name.isdigit():
            return name
        raise ValueError(f"Unknown remote key {key!r}")

    async def _power(self, on: bool) -> Ack:
        if self.idempotent:
            try:
                current = (await self._poller.fetch()).power
            except OpenWebIfError as exc:
                return self._assume("power", not on, exc)
        else:
            current = self._poller.snapshot.power
        if current == on:
            self._logger.debug("[commands] Power already %s, nothing sent", "ON" if on else "OFF")
            return Ack("power", on, sent=False)
        await self._client.set_power(POWER_WAKEUP if on else POWER_STANDBY)
        self._success(f"Set power: {'ON' if on else 'OFF'}")
        return Ack("power", on, sent=True)

    async def _channel(self, reference: Any) -> Ack:
        reference = str(reference or "").strip()
        if not reference:
            raise ValueError("Channel reference must not be empty")
        await self._client.zap(reference)
        self._success(f"Set channel: {reference}")
        return Ack("channel", reference, sent=True)

    async def _volume(self, level: Any) -> Ack:
        if isinstance(level, bool) or not isinstance(level, (int, float)):
            raise ValueError(f"Volume must be a number, got {level!r}")
        if not 0 <= level <= 100:
            raise ValueError(f"Volume must be 0-100, got {level}")
        await self._client.set_volume(int(level))
        self._success(f"Set volume: {int(level)}")
        return Ack("volume", int(level), sent=True)

    async def _mute(self, on: bool) -> Ack:
        if self.idempotent:
            try:
                current = (await self._poller.fetch()).mute
            except OpenWebIfError as exc:
                return self._assume("mute", not on, exc)
            if current == on:
                self._logger.debug("[commands] Mute already %s, nothing sent", "ON" if on else "OFF")
                return Ack("mute", on, sent=False)
        await self._client.toggle_mute()
        self._success(f"Set mute: {'ON' if on else 'OFF'}")
        return Ack("mute", on, sent=True)

    async def _remote_key(self, key: RemoteKey | str | int) -> Ack:
        code = self.resolve_remote_key(key)
        await self._client.send_remote_command(code)
        if isinstance(key, str) and key.strip().upper() == "PLAY_PAUSE":
            self._send_pause = not self._send_pause
        self._success(f"Set remote key: {code}")
        return Ack("remote_key", code, sent=True)

    def _assume(self, kind: CommandKind, value: bool, exc: OpenWebIfError) -> Ack:
        # Legacy heuristic: report the opposite of the request so the host UI reverts.
        self.notices.publish(
            Notice(level="warn", message=f"Unable to read {kind} state, assuming {'ON' if value else 'OFF'}: {exc}", cause=exc)
        )
        return Ack(kind, value, sent=False, assumed=True)

    def _success(self, message: str) -> None:
        self._logger.debug("[commands] %s", message)
        self.notices.publish(Notice(level="success", message=message))
