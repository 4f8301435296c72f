"""Whole-file JSON persistence for per-device state.

Each receiver gets four files in the storage directory, suffixed with its
host (dots removed): cached device info, cached channel list, custom input
names and input target visibility. Files are always read and written whole;
writes go through a temporary file and ``os.replace`` so a crash never leaves
a half-written document behind.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .models import ChannelDescriptor
from .utils import host_suffix

LOGGER = logging.getLogger(__name__)


def read_json(path: Path, default: Any) -> Any:
    """Read a JSON document; empty or missing files yield ``default``.

    Raises:
        ConfigError: The file exists but cannot be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if not text.strip():
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc


def write_json(path: Path, data: Any) -> None:
    """Atomically replace ``path`` with the JSON encoding of ``data``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class DeviceStorage:
    """File locations and typed load/save helpers for one receiver."""

    def __init__(self, storage_dir: Path, host: str, logger: logging.Logger | None = None) -> None:
        suffix = host_suffix(host)
        self.storage_dir = storage_dir
        self.dev_info_file = storage_dir / f"devInfo_{suffix}"
        self.channels_file = storage_dir / f"channels_{suffix}"
        self.names_file = storage_dir / f"inputsNames_{suffix}"
        self.visibility_file = storage_dir / f"inputsTargetVisibility_{suffix}"
        self._logger = logger or LOGGER

    @property
    def files(self) -> tuple[Path, ...]:
        return (self.dev_info_file, self.channels_file, self.names_file, self.visibility_file)

    def prepare(self) -> None:
        """Create the storage directory and any missing (empty) files."""
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            for path in self.files:
                if not path.exists():
                    path.write_text("", encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to prepare storage in {self.storage_dir}: {exc}") from exc

    def load_device_info(self) -> dict[str, Any]:
        data = read_json(self.dev_info_file, {})
        return data if isinstance(data, dict) else {}

    def save_device_info(self, payload: dict[str, Any]) -> None:
        write_json(self.dev_info_file, payload)

    def load_channels(self) -> list[ChannelDescriptor]:
        data = read_json(self.channels_file, [])
        if not isinstance(data, list):
            self._logger.warning("[storage] Ignoring cached channels in %s: not a list", self.channels_file)
            return []
        return [ChannelDescriptor.from_dict(item) for item in data if isinstance(item, dict)]

    def save_channels(self, channels: list[ChannelDescriptor]) -> None:
        write_json(self.channels_file, [channel.to_dict() for channel in channels])

    def load_names(self) -> dict[str, str]:
        data = read_json(self.names_file, {})
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items() if isinstance(value, str) and value.strip()}

    def save_names(self, names: dict[str, str]) -> None:
        write_json(self.names_file, names)

    def load_visibility(self) -> dict[str, int]:
        data = read_json(self.visibility_file, {})
        if not isinstance(data, dict):
            return {}
        visibility: dict[str, int] = {}
        for key, value in data.items():
            if isinstance(value, bool) or value in (0, 1):
                visibility[str(key)] = int(value)
        return visibility

    def save_visibility(self, visibility: dict[str, int]) -> None:
        write_json(self.visibility_file, visibility)
