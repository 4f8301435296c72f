"""Async client for the OpenWebIf REST API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from .config import DeviceConfig
from .errors import HttpError, ParseError, Unreachable
from .reachability import is_reachable

LOGGER = logging.getLogger(__name__)

DEVICE_INFO = "/api/deviceinfo"
DEVICE_STATUS = "/api/statusinfo"
GET_ALL_SERVICES = "/api/getallservices"
SET_POWER = "/api/powerstate?newstate="
SET_CHANNEL = "/api/zap?sRef="
SET_VOLUME = "/api/vol?set=set"
TOGGLE_MUTE = "/api/vol?set=mute"
SET_RC_COMMAND = "/api/remotecontrol?command="

POWER_TOGGLE_STANDBY = 0
POWER_DEEP_STANDBY = 1
POWER_REBOOT = 2
POWER_RESTART_GUI = 3
POWER_WAKEUP = 4
POWER_STANDBY = 5

ProbeCallable = Callable[[str, int, float], Awaitable[bool]]


@dataclass(slots=True)
class OpenWebIfClient:
    config: DeviceConfig
    probe: ProbeCallable = is_reachable
    _client: httpx.AsyncClient = field(init=False, repr=False)
    _closed: bool = field(init=False, default=True, repr=False)

    def __post_init__(self) -> None:
        auth = httpx.BasicAuth(self.config.user, self.config.password) if self.config.auth else None
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            auth=auth,
            timeout=self.config.request_timeout,
            verify=False,
            trust_env=False,
        )
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    async def request(self, path: str) -> Any:
        """GET ``path`` and return the decoded JSON body.

        Raises:
            Unreachable: The TCP pre-check failed
            HttpError: Non-2xx status or transport failure
            ParseError: The body is not valid JSON
        """
        host, port = self.config.host, self.config.port
        if not await self.probe(host, port, self.config.probe_timeout):
            raise Unreachable(host, port)
        LOGGER.debug("[api] GET %s%s", self.config.base_url, path)
        try:
            response = await self._client.request("GET", path)
        except httpx.HTTPError as exc:
            raise HttpError(path, str(exc) or type(exc).__name__) from exc
        if not 200 <= response.status_code < 300:
            raise HttpError(path, response.text[:200], response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(path, str(exc)) from exc

    async def get_device_info(self) -> dict[str, Any]:
        return await self._request_object(DEVICE_INFO)

    async def get_status(self) -> dict[str, Any]:
        return await self._request_object(DEVICE_STATUS)

    async def get_all_services(self) -> dict[str, Any]:
        """Return the bouquet listing with each bouquet's ``subservices``."""
        return await self._request_object(GET_ALL_SERVICES)

    async def set_power(self, newstate: int) -> Any:
        if newstate not in range(POWER_TOGGLE_STANDBY, POWER_STANDBY + 1):
            raise ValueError(f"Power state must be 0-5, got {newstate}")
        return await self.request(f"{SET_POWER}{newstate}")

    async def zap(self, reference: str) -> Any:
        return await self.request(f"{SET_CHANNEL}{quote(reference, safe=':')}")

    async def set_volume(self, level: int) -> Any:
        return await self.request(f"{SET_VOLUME}{int(level)}")

    async def toggle_mute(self) -> Any:
        return await self.request(TOGGLE_MUTE)

    async def send_remote_command(self, code: int | str) -> Any:
        return await self.request(f"{SET_RC_COMMAND}{quote(str(code), safe='')}")

    async def _request_object(self, path: str) -> dict[str, Any]:
        payload = await self.request(path)
        if not isinstance(payload, dict):
            raise ParseError(path, f"expected an object, got {type(payload).__name__}")
        return payload
