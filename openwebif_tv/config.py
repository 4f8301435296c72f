"""Configuration helpers for the OpenWebIf bridge.

The bridge reads one JSON document describing the receivers (homebridge-style
``devices`` array plus an optional ``mqtt`` block). Environment variables can
override the storage directory, log level and broker settings. Everything is
validated once here; the engine never looks at raw dictionaries.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .models import ChannelDescriptor
from .utils import parse_bool, parse_float, parse_int, strip_or_none

DEFAULT_PORT = 80
DEFAULT_REFRESH_INTERVAL = 5.0
DEFAULT_INPUTS_REFRESH_INTERVAL = 300.0
DEFAULT_RESTART_INTERVAL = 15.0
DEFAULT_PROBE_TIMEOUT = 2.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_INFO_BUTTON_COMMAND = "139"

# The host allows 85 services per accessory; information, television and
# speaker services are always present.
MAX_ACCESSORY_SERVICES = 85
RESERVED_SERVICES = 3
DEFAULT_MAX_INPUTS = MAX_ACCESSORY_SERVICES - RESERVED_SERVICES

DISPLAY_ORDER_NONE = 0
DISPLAY_ORDER_NAME_ASC = 1
DISPLAY_ORDER_NAME_DESC = 2
DISPLAY_ORDER_REFERENCE_ASC = 3
DISPLAY_ORDER_REFERENCE_DESC = 4
DISPLAY_ORDERS = range(DISPLAY_ORDER_NONE, DISPLAY_ORDER_REFERENCE_DESC + 1)

DEFAULT_STORAGE_DIR = Path.home() / ".openwebif-tv"


@dataclass(frozen=True)
class BouquetConfig:
    name: str
    display_type: int = -1
    name_prefix: bool = False


@dataclass(frozen=True)
class MqttConfig:
    enabled: bool
    host: str | None
    port: int
    client_id: str | None
    prefix: str
    username: str | None
    password: str | None
    commands: bool = False

    @staticmethod
    def disabled() -> MqttConfig:
        return MqttConfig(
            enabled=False,
            host=None,
            port=1883,
            client_id=None,
            prefix="openwebif",
            username=None,
            password=None,
        )


@dataclass(frozen=True)
class DeviceConfig:
    name: str
    host: str
    port: int = DEFAULT_PORT
    auth: bool = False
    user: str = ""
    password: str = ""
    get_inputs_from_device: bool = False
    bouquets: tuple[BouquetConfig, ...] = ()
    inputs: tuple[ChannelDescriptor, ...] = ()
    inputs_display_order: int = DISPLAY_ORDER_NONE
    info_button_command: str = DEFAULT_INFO_BUTTON_COMMAND
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    inputs_refresh_interval: float = DEFAULT_INPUTS_REFRESH_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_inputs: int = DEFAULT_MAX_INPUTS
    idempotent_commands: bool = True
    enable_debug_mode: bool = False
    disable_log_info: bool = False
    disable_log_device_info: bool = False
    disable_log_connect_error: bool = False

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @staticmethod
    def from_dict(data: dict[str, Any]) -> DeviceConfig:
        if not isinstance(data, dict):
            raise ConfigError("Device entry must be an object")
        name = strip_or_none(data.get("name"))
        if not name:
            raise ConfigError("Device name missing")
        host = strip_or_none(data.get("host"))
        if not host:
            raise ConfigError(f"Device '{name}': host missing")

        port = parse_int(data.get("port"), DEFAULT_PORT)
        if not 0 < port < 65536:
            raise ConfigError(f"Device '{name}': port {data.get('port')!r} out of range")

        display_order = parse_int(data.get("inputsDisplayOrder"), DISPLAY_ORDER_NONE)
        if display_order not in DISPLAY_ORDERS:
            raise ConfigError(f"Device '{name}': inputsDisplayOrder must be 0-4, got {display_order}")

        refresh_interval = parse_float(data.get("refreshInterval"), DEFAULT_REFRESH_INTERVAL)
        inputs_refresh_interval = parse_float(data.get("inputsRefreshInterval"), DEFAULT_INPUTS_REFRESH_INTERVAL)
        probe_timeout = parse_float(data.get("probeTimeout"), DEFAULT_PROBE_TIMEOUT)
        request_timeout = parse_float(data.get("requestTimeout"), DEFAULT_REQUEST_TIMEOUT)
        for key, value in (
            ("refreshInterval", refresh_interval),
            ("inputsRefreshInterval", inputs_refresh_interval),
            ("probeTimeout", probe_timeout),
            ("requestTimeout", request_timeout),
        ):
            if value <= 0:
                raise ConfigError(f"Device '{name}': {key} must be positive")

        max_inputs = parse_int(data.get("maxInputs"), DEFAULT_MAX_INPUTS)
        max_inputs = max(1, min(DEFAULT_MAX_INPUTS, max_inputs))

        auth = parse_bool(data.get("auth"), False)
        user = str(data.get("user") or "")
        if auth and not user:
            raise ConfigError(f"Device '{name}': auth enabled but user missing")

        return DeviceConfig(
            name=name,
            host=host,
            port=port,
            auth=auth,
            user=user,
            password=str(data.get("pass") or ""),
            get_inputs_from_device=parse_bool(data.get("getInputsFromDevice"), False),
            bouquets=_parse_bouquets(name, data.get("bouquets")),
            inputs=_parse_inputs(name, data.get("inputs")),
            inputs_display_order=display_order,
            info_button_command=str(data.get("infoButtonCommand") or DEFAULT_INFO_BUTTON_COMMAND),
            refresh_interval=refresh_interval,
            inputs_refresh_interval=inputs_refresh_interval,
            probe_timeout=probe_timeout,
            request_timeout=request_timeout,
            max_inputs=max_inputs,
            idempotent_commands=parse_bool(data.get("idempotentCommands"), True),
            enable_debug_mode=parse_bool(data.get("enableDebugMode"), False),
            disable_log_info=parse_bool(data.get("disableLogInfo"), False),
            disable_log_device_info=parse_bool(data.get("disableLogDeviceInfo"), False),
            disable_log_connect_error=parse_bool(data.get("disableLogConnectError"), False),
        )


@dataclass(frozen=True)
class BridgeConfig:
    devices: tuple[DeviceConfig, ...]
    mqtt: MqttConfig
    storage_dir: Path
    log_level: str

    @staticmethod
    def from_dict(data: dict[str, Any], env: Mapping[str, str] | None = None) -> BridgeConfig:
        source = os.environ if env is None else env
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")
        raw_devices = data.get("devices")
        if not isinstance(raw_devices, list) or not raw_devices:
            raise ConfigError("No devices configured")
        devices = tuple(DeviceConfig.from_dict(item) for item in raw_devices)

        seen: set[str] = set()
        for device in devices:
            key = f"{device.host}:{device.port}"
            if key in seen:
                raise ConfigError(f"Device {key} configured more than once")
            seen.add(key)

        storage_dir = source.get("OPENWEBIF_STORAGE_DIR") or data.get("storageDir")
        log_level = source.get("OPENWEBIF_LOG_LEVEL") or data.get("logLevel") or "INFO"
        return BridgeConfig(
            devices=devices,
            mqtt=_parse_mqtt(data.get("mqtt"), source),
            storage_dir=Path(storage_dir).expanduser() if storage_dir else DEFAULT_STORAGE_DIR,
            log_level=str(log_level).upper(),
        )

    @staticmethod
    def from_file(path: Path | str, env: Mapping[str, str] | None = None) -> BridgeConfig:
        config_path = Path(path)
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file {config_path} is not valid JSON: {exc}") from exc
        return BridgeConfig.from_dict(data, env)


def _parse_bouquets(device_name: str, value: Any) -> tuple[BouquetConfig, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f"Device '{device_name}': bouquets must be a list")
    bouquets: list[BouquetConfig] = []
    for item in value:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        name = strip_or_none(item.get("name"))
        if not name:
            continue
        bouquets.append(
            BouquetConfig(
                name=name,
                display_type=parse_int(item.get("displayType"), -1),
                name_prefix=parse_bool(item.get("namePrefix"), False),
            )
        )
    return tuple(bouquets)


def _parse_inputs(device_name: str, value: Any) -> tuple[ChannelDescriptor, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f"Device '{device_name}': inputs must be a list")
    # Entries without name/reference are kept; the reconciler reports and skips them.
    return tuple(ChannelDescriptor.from_dict(item) for item in value if isinstance(item, dict))


def _parse_mqtt(value: Any, source: Mapping[str, str]) -> MqttConfig:
    data = value if isinstance(value, dict) else {}
    host = strip_or_none(source.get("MQTT_HOST")) or strip_or_none(data.get("host"))
    enabled = parse_bool(data.get("enabled"), bool(host))
    if enabled and not host:
        raise ConfigError("MQTT enabled but host missing")
    prefix = (strip_or_none(data.get("prefix")) or "openwebif").rstrip("/")
    return MqttConfig(
        enabled=enabled,
        host=host,
        port=parse_int(source.get("MQTT_PORT") or data.get("port"), 1883),
        client_id=strip_or_none(data.get("clientId")),
        prefix=prefix,
        username=strip_or_none(source.get("MQTT_USER")) or strip_or_none(data.get("user")),
        password=strip_or_none(source.get("MQTT_PASS")) or strip_or_none(data.get("pass")),
        commands=parse_bool(data.get("commands"), False),
    )
