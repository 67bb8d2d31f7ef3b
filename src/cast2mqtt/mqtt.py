"""MQTT bridge built on paho-mqtt.

paho runs its network loop in a thread of its own; connection changes and
incoming messages are handed to the asyncio loop with
``call_soon_threadsafe``. Topics passed to and from the bridge are relative
to the configured prefix.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from cast2mqtt.config import MqttConfig

_LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, Any], None]


def decode_payload(payload: bytes) -> Any:
    """Decode a JSON message payload.

    :param payload: Raw payload bytes.
    :returns: The decoded value, or None for an empty payload.
    :raises ValueError: If the payload is not valid UTF-8 JSON.
    """
    text = payload.decode("utf-8").strip()
    if not text:
        return None
    return json.loads(text)


class MqttBridge:
    """Publish device events and receive commands over MQTT."""

    def __init__(self, settings: MqttConfig, *, client: Any | None = None) -> None:
        """Initialize the bridge.

        :param settings: Broker settings.
        :param client: Optional pre-built paho client.
        """
        self.settings = settings
        self._prefix = settings.topic_prefix.strip("/")
        if client is None:
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=settings.client_id,
            )
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client
        self._loop: asyncio.AbstractEventLoop | None = None
        self._patterns: list[str] = []
        self._handlers: list[MessageHandler] = []
        self._connected = False
        self._started = False

    @property
    def connected(self) -> bool:
        """Return True while the broker connection is up.

        :returns: The connection flag.
        """
        return self._connected

    def topic(self, relative: str) -> str:
        """Return the absolute topic for ``relative``.

        :param relative: Topic below the prefix.
        :returns: The prefixed topic.
        """
        if not self._prefix:
            return relative
        return f"{self._prefix}/{relative}"

    def subscribe(self, pattern: str) -> None:
        """Subscribe to a topic pattern below the prefix.

        The subscription is renewed every time the broker connection comes
        back.

        :param pattern: Relative topic pattern, may contain ``+`` and ``#``.
        :returns: None
        """
        if pattern in self._patterns:
            return
        self._patterns.append(pattern)
        if self._connected:
            self._client.subscribe(self.topic(pattern))

    def on_message(self, handler: MessageHandler) -> None:
        """Register a handler for incoming messages.

        Handlers are called on the event loop with the relative topic and
        the decoded JSON payload.

        :param handler: Callable accepting ``(topic, payload)``.
        :returns: None
        """
        self._handlers.append(handler)

    def publish(self, topic: str, payload: Any) -> bool:
        """Publish ``payload`` as JSON on a topic below the prefix.

        :param topic: Relative topic.
        :param payload: JSON-serializable value.
        :returns: True if the message was handed to the client.
        """
        if not self._connected:
            _LOGGER.debug("Not connected to MQTT, dropping %s", topic)
            return False
        info = self._client.publish(
            self.topic(topic), json.dumps(payload), qos=0, retain=self.settings.retain
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            _LOGGER.warning("Publishing %s failed: %s", topic, mqtt.error_string(info.rc))
            return False
        return True

    async def start(self) -> None:
        """Connect to the broker in the background.

        The paho client keeps reconnecting on its own if the broker goes
        away.

        :returns: None
        """
        if self._started:
            return
        self._loop = asyncio.get_running_loop()
        _LOGGER.info(
            "Connecting to MQTT broker %s:%s", self.settings.host, self.settings.port
        )
        self._client.connect_async(
            self.settings.host, self.settings.port, self.settings.keepalive
        )
        self._client.loop_start()
        self._started = True

    async def close(self) -> None:
        """Disconnect and stop the network thread.

        :returns: None
        """
        if not self._started:
            return
        self._started = False
        self._connected = False
        self._client.disconnect()
        await asyncio.to_thread(self._client.loop_stop)

    # paho callbacks, network thread

    def _on_connect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any
    ) -> None:
        if reason_code.is_failure:
            _LOGGER.error("MQTT connection refused: %s", reason_code)
            return
        _LOGGER.info("Connected to MQTT broker %s", self.settings.host)
        self._connected = True
        for pattern in self._patterns:
            client.subscribe(self.topic(pattern))

    def _on_disconnect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any
    ) -> None:
        self._connected = False
        if self._started:
            _LOGGER.warning("Disconnected from MQTT broker: %s", reason_code)

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dispatch, msg.topic, msg.payload)

    # event loop

    def _dispatch(self, topic: str, payload: bytes) -> None:
        prefix = f"{self._prefix}/" if self._prefix else ""
        if not topic.startswith(prefix):
            _LOGGER.debug("Ignoring message outside %s: %s", self._prefix, topic)
            return
        relative = topic[len(prefix) :]
        try:
            value = decode_payload(payload)
        except ValueError as e:
            _LOGGER.warning("Ignoring malformed payload on %s: %s", topic, e)
            return
        for handler in list(self._handlers):
            try:
                handler(relative, value)
            except Exception:
                _LOGGER.exception("Message handler failed for %s", topic)


__all__ = ["MessageHandler", "MqttBridge", "decode_payload"]
