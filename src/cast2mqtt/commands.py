"""High-level commands for a cast device.

Every command is safe to call at any time. Without a joined media session
it does nothing, and failures reported by the device are logged and
published as ``error`` events instead of being raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import cast2mqtt.errors as _errors
import cast2mqtt.event as _events
import cast2mqtt.types as _types
from cast2mqtt.reconciler import StatusReconciler
from cast2mqtt.transport import SessionTransport

_LOGGER = logging.getLogger(__name__)

VOLUME_STEP = 0.05


def clamp_volume(level: float) -> float:
    """Clamp a volume level to the range accepted by the device.

    :param level: Requested level.
    :returns: The level limited to [0.0, 1.0].
    """
    return min(1.0, max(0.0, float(level)))


class CommandFacade:
    """Idempotent play/pause/stop/volume operations on one device."""

    def __init__(
        self,
        device_id: _types.DeviceID,
        label: str,
        transport: SessionTransport,
        reconciler: StatusReconciler,
        channel: _events.EventChannel,
    ) -> None:
        """Initialize the facade.

        :param device_id: Identifier stamped on error events.
        :param label: Device identity used in log messages.
        :param transport: Transport used for receiver-level commands.
        :param reconciler: Source of the session and cached volume.
        :param channel: Channel receiving error events.
        """
        self._device_id = device_id
        self._label = label
        self._transport = transport
        self._reconciler = reconciler
        self._channel = channel

    async def play(self) -> None:
        """Resume playback of the current media.

        :returns: None
        """
        handle = self._reconciler.media_handle
        if handle is None:
            _LOGGER.debug("%s: play ignored, no media session", self._label)
            return
        await self._run("play", handle.play)

    async def pause(self) -> None:
        """Pause playback of the current media.

        :returns: None
        """
        handle = self._reconciler.media_handle
        if handle is None:
            _LOGGER.debug("%s: pause ignored, no media session", self._label)
            return
        await self._run("pause", handle.pause)

    async def stop(self) -> None:
        """Stop playback of the current media.

        :returns: None
        """
        handle = self._reconciler.media_handle
        if handle is None:
            _LOGGER.debug("%s: stop ignored, no media session", self._label)
            return
        await self._run("stop", handle.stop)

    async def set_volume(self, level: float) -> None:
        """Set the device volume.

        :param level: Volume level; clamped to [0.0, 1.0].
        :returns: None
        """
        if self._reconciler.media_handle is None:
            _LOGGER.debug("%s: set_volume ignored, no media session", self._label)
            return
        target = clamp_volume(level)
        _LOGGER.debug(
            "%s: set_volume current=%s new=%s", self._label, self._reconciler.volume, target
        )

        async def _set() -> None:
            await self._transport.set_volume(target)

        await self._run("set_volume", _set)

    async def volume_up(self, step: float = VOLUME_STEP) -> None:
        """Raise the volume by ``step`` from the last reported level.

        :param step: Amount to add.
        :returns: None
        """
        await self.set_volume(self._reconciler.volume + step)

    async def volume_down(self, step: float = VOLUME_STEP) -> None:
        """Lower the volume by ``step`` from the last reported level.

        :param step: Amount to subtract.
        :returns: None
        """
        await self.set_volume(self._reconciler.volume - step)

    async def set_casting(self, on: bool) -> None:
        """Start or stop the current media.

        :param on: True to play, False to stop.
        :returns: None
        """
        currently = self._reconciler.is_casting
        _LOGGER.debug("%s: set_casting current=%s new=%s", self._label, currently, on)
        if bool(on) == currently:
            return
        if on:
            await self.play()
        else:
            await self.stop()

    async def _run(self, action: str, func: Callable[[], Awaitable[None]]) -> None:
        try:
            await func()
        except _errors.CommandFault as e:
            _LOGGER.warning("%s: %s failed: %s", self._label, action, e)
            self._channel.emit(
                _events.DeviceError(device_id=self._device_id, message=f"{action} failed: {e}")
            )


__all__ = ["VOLUME_STEP", "CommandFacade", "clamp_volume"]
