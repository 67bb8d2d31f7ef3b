"""Status reconciler: derives the external event stream of a cast device.

Raw receiver and media statuses are folded into the current casting session,
its media session and the casting flag. Only meaningful changes become
events: an ``application`` event per new receiver session, a ``casting``
event per flip of the flag, and the volume triple whenever a volume block
is reported.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import cast2mqtt.errors as _errors
import cast2mqtt.event as _events
import cast2mqtt.types as _types

_LOGGER = logging.getLogger(__name__)

Joiner = Callable[[_types.CastingSession], Awaitable[_types.MediaHandle | None]]
FaultHandler = Callable[[BaseException], None]


class StatusReconciler:
    """State machine over the casting session and media session of a device.

    The reconciler never touches the connection itself: joining goes through
    ``joiner`` and join failures are handed to ``on_fault``.
    """

    def __init__(
        self,
        device_id: _types.DeviceID,
        label: str,
        channel: _events.EventChannel,
        joiner: Joiner,
        on_fault: FaultHandler,
    ) -> None:
        """Initialize the reconciler.

        :param device_id: Identifier stamped on emitted events.
        :param label: Device identity used in log messages.
        :param channel: Channel receiving the derived events.
        :param joiner: Coroutine function joining the media channel of a
            session.
        :param on_fault: Called with a SessionJoinFault when joining fails.
        """
        self._device_id = device_id
        self._label = label
        self._channel = channel
        self._joiner = joiner
        self._on_fault = on_fault
        self._session: _types.ActiveSession | None = None
        self._handle: _types.MediaHandle | None = None
        self._is_casting = False
        self._volume = 0.0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def session(self) -> _types.ActiveSession | None:
        """Return the active session, if any.

        :returns: The ActiveSession or None.
        """
        return self._session

    @property
    def media(self) -> _types.MediaSession | None:
        """Return the media session of the active session, if joined.

        :returns: The MediaSession or None.
        """
        return self._session.media if self._session is not None else None

    @property
    def media_handle(self) -> _types.MediaHandle | None:
        """Return the handle of the joined media session, if any.

        :returns: The MediaHandle or None.
        """
        return self._handle

    @property
    def is_casting(self) -> bool:
        """Return the derived casting flag.

        :returns: True while playing or buffering.
        """
        return self._is_casting

    @property
    def volume(self) -> float:
        """Return the last reported volume level.

        :returns: Volume level between 0.0 and 1.0.
        """
        return self._volume

    def process_client_status(self, status: _types.ClientStatus) -> None:
        """Apply a raw receiver status.

        :param status: The receiver status.
        :returns: None
        """
        _LOGGER.debug("%s: received client status %s", self._label, status)

        applications = status.applications or []
        if not applications:
            if self._session is not None:
                _LOGGER.debug("%s: stopped casting", self._label)
            self._clear_session()
            self._set_casting(False)
        else:
            # Only the primary application is followed.
            app = applications[0]
            current_id = (
                self._session.application.session_id if self._session is not None else None
            )
            if app.session_id != current_id:
                self._start_session(_types.CastingSession.from_application(app))

        if status.volume is not None and isinstance(status.volume.level, (int, float)):
            self._store_volume(status.volume)

    def process_media_status(self, session_id: str, status: _types.MediaStatus) -> None:
        """Apply a raw media status of the joined session.

        Statuses of any other session are stale and ignored.

        :param session_id: The session the status belongs to.
        :param status: The media status.
        :returns: None
        """
        active = self._session
        if active is None or active.application.session_id != session_id:
            _LOGGER.debug("%s: ignoring media status of session %s", self._label, session_id)
            return
        if active.media is None:
            _LOGGER.debug("%s: media status before join completed", self._label)
            return
        self._apply_media_status(active.media, status)

    def reset(self) -> None:
        """Forget the session after the connection went away.

        :returns: None
        """
        self._clear_session()
        self._set_casting(False)
        self._volume = 0.0

    def _start_session(self, application: _types.CastingSession) -> None:
        self._clear_session()
        active = _types.ActiveSession(application=application)
        self._session = active
        _LOGGER.info(
            "%s: application %s (%s) session %s",
            self._label,
            application.display_name,
            application.app_id,
            application.session_id,
        )
        self._emit(_events.ApplicationChanged, session=application)
        self._spawn(self._join(active))

    async def _join(self, active: _types.ActiveSession) -> None:
        session_id = active.application.session_id
        try:
            handle = await self._joiner(active.application)
            if handle is None:
                raise _errors.SessionJoinFault(f"No media handle for session {session_id}")
        except Exception as e:
            if self._session is not active:
                return
            _LOGGER.warning("%s: failed to join session %s: %s", self._label, session_id, e)
            self._clear_session()
            fault = (
                e
                if isinstance(e, _errors.SessionJoinFault)
                else _errors.SessionJoinFault(f"Joining session {session_id} failed: {e}")
            )
            self._on_fault(fault)
            return

        if self._session is not active:
            # Superseded while joining
            handle.close()
            return

        _LOGGER.debug("%s: joined media session of %s", self._label, session_id)
        self._handle = handle
        active.media = _types.MediaSession()
        try:
            media_status = await handle.get_status()
        except _errors.CommandFault as e:
            _LOGGER.debug("%s: initial media status request failed: %s", self._label, e)
            return
        if media_status is not None and self._session is active and active.media is not None:
            self._apply_media_status(active.media, media_status)

    def _apply_media_status(
        self, media: _types.MediaSession, status: _types.MediaStatus
    ) -> None:
        _LOGGER.debug("%s: received media status %s", self._label, status)
        media.player_state = status.player_state
        media.current_time = status.current_time
        if status.volume is not None:
            media.volume = status.volume
        if status.repeat_mode is not None:
            media.repeat_mode = status.repeat_mode
        if status.metadata is not None:
            media.metadata = status.metadata

        if status.player_state:
            self._set_casting(media.is_casting)
        self._emit(_events.PlayerStateChanged, state=status.player_state)
        if status.volume is not None:
            self._store_volume(status.volume)
        if status.repeat_mode is not None:
            self._emit(_events.RepeatModeChanged, repeat_mode=status.repeat_mode)
        if status.metadata is not None:
            self._emit(_events.MediaChanged, metadata=status.metadata)

    def _clear_session(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()
        self._session = None

    def _set_casting(self, casting: bool) -> None:
        if casting == self._is_casting:
            return
        self._is_casting = casting
        _LOGGER.info("%s: now %s", self._label, "playing" if casting else "stopped")
        self._emit(_events.CastingChanged, casting=casting)

    def _store_volume(self, volume: _types.VolumeStatus) -> None:
        self._volume = volume.level or 0.0
        self._emit(_events.VolumeUpdated, volume_level=volume.level, is_muted=volume.muted)
        self._emit(_events.VolumeLevelUpdated, volume_level=volume.level)
        self._emit(_events.VolumeMutedUpdated, is_muted=volume.muted)

    def _emit(self, event_type: type[_events.DeviceEvent], **fields: Any) -> None:
        self._channel.emit(event_type(device_id=self._device_id, **fields))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task: asyncio.Task[None] = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = ["FaultHandler", "Joiner", "StatusReconciler"]
