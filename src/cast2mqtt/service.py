"""Bridge service.

The BridgeService owns the configured cast devices, publishes their events
to MQTT and routes incoming MQTT commands to them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import cast2mqtt.event as _events
import cast2mqtt.types as _types
from cast2mqtt.config import Config
from cast2mqtt.device import CastDevice
from cast2mqtt.mqtt import MqttBridge

_LOGGER = logging.getLogger(__name__)

STATUS_TOPIC = "status"
COMMAND_TOPIC = "set"

CommandHandler = Callable[[CastDevice, Any], Awaitable[None]]


def _volume(device: CastDevice, payload: Any) -> Awaitable[None]:
    if isinstance(payload, bool) or not isinstance(payload, (int, float)):
        raise ValueError(f"volume expects a number, got {payload!r}")
    return device.set_volume(float(payload))


def _casting(device: CastDevice, payload: Any) -> Awaitable[None]:
    if not isinstance(payload, bool):
        raise ValueError(f"casting expects true or false, got {payload!r}")
    return device.set_casting(payload)


COMMANDS: dict[str, CommandHandler] = {
    "volume": _volume,
    "volup": lambda device, _: device.volume_up(),
    "voldown": lambda device, _: device.volume_down(),
    "play": lambda device, _: device.play(),
    "pause": lambda device, _: device.pause(),
    "stop": lambda device, _: device.stop_media(),
    "casting": _casting,
}


class BridgeService:
    """Runs every configured device against one MQTT connection."""

    def __init__(
        self,
        config: Config,
        mqtt: MqttBridge,
        *,
        client_factory: _types.CastClientFactory | None = None,
    ) -> None:
        """Create the service and its devices.

        :param config: The loaded configuration.
        :param mqtt: The MQTT bridge used for events and commands.
        :param client_factory: Optional CastClient factory for all devices.
        :returns: None
        """
        self._mqtt = mqtt
        self._devices: dict[str, CastDevice] = {}
        for entry in config.devices:
            device_id = _types.DeviceID(entry.id)
            self._devices[entry.id] = CastDevice(
                device_id, entry.target(), client_factory=client_factory
            )
        self._subscriptions: list[_types.Subscription] = []
        # Strong references to command tasks
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = False
        self._lock = asyncio.Lock()

    @property
    def devices(self) -> dict[str, CastDevice]:
        """Return the devices by id.

        :returns: Mapping of device id to CastDevice.
        """
        return dict(self._devices)

    async def start(self) -> None:
        """Connect to MQTT and start every device.

        :returns: None
        """
        async with self._lock:
            if self._running:
                return
            self._running = True

            for device in self._devices.values():
                self._subscriptions.append(device.events.subscribe(self._publish_event))
            self._mqtt.on_message(self._on_message)
            self._mqtt.subscribe(f"{COMMAND_TOPIC}/+/+")
            await self._mqtt.start()

            for device in self._devices.values():
                await device.start()

    async def stop(self) -> None:
        """Stop every device and close the MQTT connection.

        :returns: None
        """
        async with self._lock:
            if not self._running:
                return
            self._running = False

            for device in self._devices.values():
                await device.stop()
            for sub in self._subscriptions:
                sub.unsubscribe()
            self._subscriptions.clear()

            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
                self._tasks.clear()

            await self._mqtt.close()

    def _publish_event(self, ev: _events.DeviceEvent) -> None:
        """Publish a device event to ``status/<id>/<event>``.

        :param ev: The event to publish.
        :returns: None
        """
        payload = ev.payload()
        _LOGGER.info("%s/%s -> %s", ev.device_id, ev.name, payload)
        self._mqtt.publish(f"{STATUS_TOPIC}/{ev.device_id}/{ev.name}", payload)

    def _on_message(self, topic: str, payload: Any) -> None:
        """Route ``set/<id>/<action>`` to the device.

        :param topic: Topic relative to the prefix.
        :param payload: Decoded JSON payload.
        :returns: None
        """
        parts = topic.split("/")
        if len(parts) != 3 or parts[0] != COMMAND_TOPIC:  # noqa: PLR2004
            _LOGGER.debug("Ignoring message on %s", topic)
            return
        _, device_id, action = parts

        device = self._devices.get(device_id)
        if device is None:
            _LOGGER.error("Command for unknown device %s", device_id)
            return
        handler = COMMANDS.get(action)
        if handler is None:
            _LOGGER.error("%s: unknown action %s", device_id, action)
            return

        _LOGGER.debug("%s: command %s(%s)", device_id, action, payload)
        try:
            command = handler(device, payload)
        except ValueError as e:
            _LOGGER.error("%s: %s", device_id, e)
            return
        task: asyncio.Task[None] = asyncio.ensure_future(command)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = ["COMMANDS", "COMMAND_TOPIC", "STATUS_TOPIC", "BridgeService"]
