"""Shared test fixtures for the OpenWebIf bridge test suite.

This module provides reusable fixtures for:
- Device configuration objects
- httpx response mocking
- OpenWebIf payloads (status, device info, service listing)
- MQTT client mocking
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import Mock

import httpx
import paho.mqtt.client as mqtt
import pytest

from openwebif_tv.config import BouquetConfig, DeviceConfig, MqttConfig

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def device_config():
    """A receiver with a static channel list."""
    return DeviceConfig(name="Living Room", host="192.168.1.20", port=80)


@pytest.fixture
def device_config_from_device():
    """A receiver that reads its channels from two bouquets."""
    return DeviceConfig(
        name="Living Room",
        host="192.168.1.20",
        port=80,
        get_inputs_from_device=True,
        bouquets=(BouquetConfig(name="Favourites (TV)"), BouquetConfig(name="Radio", display_type=1)),
    )


@pytest.fixture
def mqtt_config():
    """Basic MQTT configuration for testing."""
    return MqttConfig(
        enabled=True,
        host="localhost",
        port=1883,
        client_id=None,
        prefix="openwebif",
        username=None,
        password=None,
    )


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def mock_response():
    """Create a factory for mock OpenWebIf responses.

    Usage:
        response = mock_response(status_code=200, json_data={"inStandby": "false"})
    """

    def _create_response(
        status_code: int = 200,
        json_data: Any = None,
        text: str = "",
        json_error: Exception | None = None,
    ) -> Mock:
        response = Mock(spec=httpx.Response)
        response.status_code = status_code
        if json_error is not None:
            response.json = Mock(side_effect=json_error)
        else:
            response.json = Mock(return_value={} if json_data is None else json_data)
        response.text = text
        response.is_success = 200 <= status_code < 300
        return response

    return _create_response


# ============================================================================
# OpenWebIf Payloads
# ============================================================================


def _make_status(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "inStandby": "false",
        "currservice_station": "Das Erste HD",
        "currservice_name": "Tagesschau",
        "currservice_serviceref": "1:0:19:283D:3FB:1:C00000:0:0:0:",
        "volume": 40,
        "muted": False,
    }
    payload.update(overrides)
    return payload


def _make_device_info(mac: str | None = "00:1d:ec:01:02:03") -> dict[str, Any]:
    return {
        "brand": "Vu+",
        "model": "Uno 4K SE",
        "webifver": "OWIF 1.4.9",
        "imagever": "OpenATV 7.3",
        "kernelver": "4.1.20",
        "chipset": "7252S",
        "ifaces": [{"name": "eth0", "mac": mac}] if mac else [],
    }


def _make_services() -> dict[str, Any]:
    return {
        "services": [
            {
                "servicename": "Favourites (TV)",
                "servicereference": "1:7:1:0:0:0:0:0:0:0:FROM BOUQUET \"userbouquet.favourites.tv\"",
                "subservices": [
                    {"servicename": "Das Erste HD", "servicereference": "1:0:19:283D:3FB:1:C00000:0:0:0:"},
                    {"servicename": "ZDF HD", "servicereference": "1:0:19:2B66:3F3:1:C00000:0:0:0:"},
                ],
            },
            {
                "servicename": "Radio",
                "servicereference": "1:7:2:0:0:0:0:0:0:0:FROM BOUQUET \"userbouquet.radio\"",
                "subservices": [
                    {"servicename": "Bayern 3", "servicereference": "1:0:2:6F37:3FB:1:C00000:0:0:0:"},
                ],
            },
        ]
    }


@pytest.fixture
def make_status():
    """Factory for /api/statusinfo payloads with field overrides."""
    return _make_status


@pytest.fixture
def make_device_info():
    return _make_device_info


@pytest.fixture
def status_payload():
    return _make_status()


@pytest.fixture
def device_info_payload():
    return _make_device_info()


@pytest.fixture
def services_payload():
    return _make_services()


# ============================================================================
# MQTT Fixtures
# ============================================================================


@pytest.fixture
def mock_mqtt_client():
    """Create a mock paho MQTT client."""
    client = Mock(spec=mqtt.Client)
    client.connect = Mock()
    client.disconnect = Mock()
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.message_callback_add = Mock()

    message_info = Mock(spec=mqtt.MQTTMessageInfo)
    message_info.rc = mqtt.MQTT_ERR_SUCCESS
    message_info.mid = 1
    client.publish = Mock(return_value=message_info)

    client.loop_start = Mock()
    client.loop_stop = Mock()
    client.is_connected = Mock(return_value=True)
    return client
