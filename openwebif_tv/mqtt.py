"""Thread-safe paho-mqtt wrapper shared by all receivers of one bridge.

Sessions are clean, so the broker forgets subscriptions on every reconnect;
command topics are kept here and subscribed again from ``on_connect``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

import paho.mqtt.client as mqtt

from .config import MqttConfig

KEEPALIVE = 30


class BridgeMqtt:
    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Callable[[str], None]] = {}

    @property
    def client_id(self) -> str:
        return self.config.client_id or f"openwebif-tv-{self.config.prefix.replace('/', '-')}"

    @property
    def broker(self) -> str:
        return f"{self.config.host}:{self.config.port}"

    def connect(self) -> bool:
        """Open the broker session and start paho's network thread.

        Returns:
            True when a session is open (or already was), False when MQTT is
            disabled or the broker refused the connection
        """
        if not self.config.enabled or not self.config.host:
            self._logger.debug("[mqtt] No broker configured, device topics will not be published")
            return False
        with self._lock:
            if self._client is not None:
                return True
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                clean_session=True,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            try:
                client.connect(self.config.host, self.config.port, keepalive=KEEPALIVE)
            except Exception as exc:
                self._logger.warning("[mqtt] Failed to connect to broker %s as %s: %s", self.broker, self.client_id, exc)
                return False
            client.loop_start()
            self._client = client
        self._logger.info("[mqtt] Session opened with broker %s as %s", self.broker, self.client_id)
        return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
            self._subscriptions.clear()
        if client:
            client.loop_stop()
            client.disconnect()
            self._logger.info("[mqtt] Session with broker %s closed", self.broker)

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if not client:
            return
        try:
            info = client.publish(topic, payload=payload, qos=qos, retain=retain)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("[mqtt] Publish to %s queued without a session (rc=%s)", topic, info.rc)

    def subscribe(self, topic: str, on_message: Callable[[str], None]) -> None:
        """Route decoded payloads on ``topic`` to ``on_message`` (called on paho's thread)."""
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")
        self._subscriptions[topic] = on_message
        client.message_callback_add(topic, self._make_callback(topic, on_message))
        self._subscribe(client, topic)

    def _subscribe(self, client: mqtt.Client, topic: str) -> None:
        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Subscribing to %s failed (rc=%s)", topic, result)

    def _make_callback(self, topic: str, on_message: Callable[[str], None]):  # type: ignore[no-untyped-def]
        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            try:
                on_message(message.payload.decode("utf-8", errors="ignore"))
            except Exception as exc:
                self._logger.error("[mqtt] Handler for %s failed: %s", topic, exc, exc_info=True)

        return _callback

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties) -> None:  # type: ignore[no-untyped-def]
        if reason_code.is_failure:
            self._logger.warning("[mqtt] Broker %s rejected the session: %s", self.broker, reason_code)
            return
        for topic in list(self._subscriptions):
            self._subscribe(client, topic)
        if self._subscriptions:
            self._logger.debug("[mqtt] Resubscribed to %d command topic(s)", len(self._subscriptions))

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties) -> None:  # type: ignore[no-untyped-def]
        if reason_code.is_failure:
            self._logger.warning("[mqtt] Lost broker %s (%s), paho will reconnect", self.broker, reason_code)
