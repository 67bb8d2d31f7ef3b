"""Event types and the event channel of a cast device.

Every outbound notification is a typed ``DeviceEvent``. ``name`` is the
event name consumers see (it becomes the last MQTT topic level) and
``payload()`` is its JSON-compatible body.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

import cast2mqtt.types as _types

_LOGGER = logging.getLogger(__name__)

DeviceID = _types.DeviceID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeviceEvent:
    """Base class for events emitted by a cast device.

    :param device_id: Identifier of the emitting device.
    :param timestamp: Time the event was observed (timezone-aware UTC).
    """

    name: ClassVar[str] = ""

    device_id: DeviceID
    timestamp: datetime = field(default_factory=_utcnow, kw_only=True)

    def payload(self) -> Any:
        """Return the JSON-compatible body of the event.

        :returns: The event payload.
        """
        raise NotImplementedError


@dataclass
class ApplicationChanged(DeviceEvent):
    """A new receiver application session was seen.

    :param session: The new casting session.
    """

    name: ClassVar[str] = "application"

    session: _types.CastingSession

    def payload(self) -> dict[str, Any]:
        return self.session.to_payload()


@dataclass
class CastingChanged(DeviceEvent):
    """The derived casting flag flipped.

    :param casting: True while the device is playing or buffering.
    """

    name: ClassVar[str] = "casting"

    casting: bool

    def payload(self) -> bool:
        return self.casting


@dataclass
class MediaChanged(DeviceEvent):
    """Metadata of the loaded media was reported.

    :param metadata: Normalized media metadata.
    """

    name: ClassVar[str] = "media"

    metadata: _types.MediaMetadata

    def payload(self) -> dict[str, Any]:
        return self.metadata.to_payload()


@dataclass
class VolumeUpdated(DeviceEvent):
    """Volume level and mute state, as one object.

    :param volume_level: Current volume level (0.0 to 1.0).
    :param is_muted: True if the device is muted.
    """

    name: ClassVar[str] = "volume"

    volume_level: float
    is_muted: bool

    def payload(self) -> dict[str, Any]:
        return _types.VolumeStatus(self.volume_level, self.is_muted).to_payload()


@dataclass
class VolumeLevelUpdated(DeviceEvent):
    """Volume level alone."""

    name: ClassVar[str] = "volumeLevel"

    volume_level: float

    def payload(self) -> float:
        return self.volume_level


@dataclass
class VolumeMutedUpdated(DeviceEvent):
    """Mute state alone."""

    name: ClassVar[str] = "volumeMuted"

    is_muted: bool

    def payload(self) -> bool:
        return self.is_muted


@dataclass
class PlayerStateChanged(DeviceEvent):
    """A media status reported the player state.

    :param state: PLAYING, BUFFERING, PAUSED or IDLE.
    """

    name: ClassVar[str] = "playerState"

    state: str | None

    def payload(self) -> str | None:
        return self.state


@dataclass
class RepeatModeChanged(DeviceEvent):
    """A media status reported the queue repeat mode."""

    name: ClassVar[str] = "repeatMode"

    repeat_mode: str

    def payload(self) -> str:
        return self.repeat_mode


@dataclass
class DeviceError(DeviceEvent):
    """A fault occurred while talking to the device.

    :param message: Human-readable description of the fault.
    """

    name: ClassVar[str] = "error"

    message: str

    def payload(self) -> dict[str, Any]:
        return {"message": self.message}


EventCallback = Callable[[DeviceEvent], None]


class EventChannel:
    """Ordered, synchronous delivery of device events.

    Subscribers are called on the emitting thread in subscription order, so
    they observe events in exactly the order the state machine produced
    them. ``events()`` offers the same stream as an async iterator.
    """

    def __init__(self) -> None:
        """Create an empty channel.

        :returns: None
        """
        self._subscribers: list[EventCallback] = []
        self._queues: list[asyncio.Queue[DeviceEvent]] = []

    def subscribe(self, callback: EventCallback) -> _types.Subscription:
        """Register a callback for every emitted event.

        :param callback: Callable accepting a DeviceEvent.
        :returns: Subscription handle with an unsubscribe() method.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return _types.Subscription(_unsubscribe)

    def emit(self, ev: DeviceEvent) -> None:
        """Deliver an event to all subscribers and iterators.

        A failing subscriber is logged and does not prevent delivery to the
        others.

        :param ev: The event to deliver.
        :returns: None
        """
        for cb in list(self._subscribers):
            try:
                cb(ev)
            except Exception:
                _LOGGER.exception(
                    "Event subscriber failed for %s/%s", ev.device_id, ev.name
                )
        for queue in list(self._queues):
            queue.put_nowait(ev)

    async def events(self) -> AsyncIterator[DeviceEvent]:
        """Async iterator that yields events emitted after iteration starts.

        :returns: Async iterator over DeviceEvent objects.
        """
        queue: asyncio.Queue[DeviceEvent] = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)


__all__ = [
    "ApplicationChanged",
    "CastingChanged",
    "DeviceError",
    "DeviceEvent",
    "DeviceID",
    "EventCallback",
    "EventChannel",
    "MediaChanged",
    "PlayerStateChanged",
    "RepeatModeChanged",
    "VolumeLevelUpdated",
    "VolumeMutedUpdated",
    "VolumeUpdated",
]
