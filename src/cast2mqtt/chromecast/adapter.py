"""Chromecast client adapter for cast2mqtt.

This module implements the CastClient and MediaHandle ports on top of the
pychromecast library. pychromecast runs its socket on a private thread; every
callback it makes is handed over to the event loop before it reaches the
rest of cast2mqtt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pychromecast  # type: ignore
from pychromecast.controllers import BaseController  # type: ignore
from pychromecast.controllers.media import MediaStatus as CastMediaStatus  # type: ignore
from pychromecast.controllers.receiver import CastStatusListener  # type: ignore
from pychromecast.error import PyChromecastError  # type: ignore
from pychromecast.socket_client import (  # type: ignore
    CONNECTION_STATUS_CONNECTED,
    CONNECTION_STATUS_DISCONNECTED,
    CONNECTION_STATUS_FAILED,
    CONNECTION_STATUS_LOST,
    ConnectionStatusListener,
)

import cast2mqtt.errors as _errors
import cast2mqtt.types as _types

if TYPE_CHECKING:
    from pychromecast.controllers.receiver import CastStatus
    from pychromecast.socket_client import ConnectionStatus

_LOGGER = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0
DISCONNECT_TIMEOUT = 5.0
RETRY_WAIT = 2.0

MEDIA_NAMESPACE = "urn:x-cast:com.google.cast.media"


def client_status_from_cast(status: CastStatus) -> _types.ClientStatus:
    """Convert a pychromecast receiver status.

    pychromecast only keeps the primary application and does not report its
    type, so ``app_type`` is always None here.

    :param status: The pychromecast CastStatus.
    :returns: The equivalent ClientStatus.
    """
    applications: list[_types.ApplicationStatus] = []
    if status.app_id and status.session_id:
        applications.append(
            _types.ApplicationStatus(
                app_id=status.app_id,
                display_name=status.display_name or "",
                session_id=status.session_id,
                transport_id=status.transport_id,
            )
        )
    volume = None
    if isinstance(status.volume_level, (int, float)):
        volume = _types.VolumeStatus(
            level=float(status.volume_level), muted=bool(status.volume_muted)
        )
    return _types.ClientStatus(applications=applications, volume=volume)


def media_status_from_cast(
    status: CastMediaStatus, repeat_mode: str | None = None
) -> _types.MediaStatus | None:
    """Convert a pychromecast media status.

    pychromecast does not keep the queue repeat mode, so it is passed in
    separately.

    :param status: The pychromecast MediaStatus.
    :param repeat_mode: The ``repeatMode`` of the raw status, if any.
    :returns: The equivalent MediaStatus, or None while the player state is
        still unknown.
    """
    if not status.player_state or status.player_state == "UNKNOWN":
        return None
    volume = None
    if isinstance(status.volume_level, (int, float)):
        volume = _types.VolumeStatus(
            level=float(status.volume_level), muted=bool(status.volume_muted)
        )
    raw_metadata: dict[str, Any] = status.media_metadata or {}
    return _types.MediaStatus(
        player_state=status.player_state,
        current_time=status.current_time or 0.0,
        volume=volume,
        repeat_mode=repeat_mode,
        metadata=_types.MediaMetadata.from_raw(raw_metadata) if raw_metadata else None,
    )


class _ClientForwarder(CastStatusListener, ConnectionStatusListener):
    """Receives pychromecast callbacks on the socket thread."""

    def __init__(self, client: ChromecastClient) -> None:
        self._client = client

    def new_cast_status(self, status: CastStatus) -> None:
        if status is None:
            return
        self._client.post(self._client.listener.on_status, client_status_from_cast(status))

    def new_connection_status(self, status: ConnectionStatus) -> None:
        self._client.post(self._client.handle_connection_status, status.status)


class _MediaStatusTracker(BaseController):
    """Follows MEDIA_STATUS messages on the media channel of a connection.

    Runs on the socket thread next to pychromecast's own media controller.
    The raw message is read here because pychromecast's MediaStatus has no
    ``repeatMode``.
    """

    def __init__(self, client: ChromecastClient) -> None:
        super().__init__(MEDIA_NAMESPACE)
        self._client = client
        self.status = CastMediaStatus()
        self.repeat_mode: str | None = None

    def receive_message(self, _message: Any, data: dict[str, Any]) -> bool:
        if data.get("type") != "MEDIA_STATUS":
            return False
        statuses = data.get("status") or []
        if not statuses:
            return True
        self.status.update(data)
        self.repeat_mode = statuses[0].get("repeatMode", self.repeat_mode)
        converted = self.current()
        if converted is not None:
            self._client.post(self._client.deliver_media_status, converted)
        return True

    def channel_disconnected(self) -> None:
        self.status = CastMediaStatus()
        self.repeat_mode = None

    def current(self) -> _types.MediaStatus | None:
        """Return the last media status seen on the channel.

        :returns: The converted status, or None while nothing is known.
        """
        return media_status_from_cast(self.status, self.repeat_mode)


class ChromecastMediaHandle(_types.MediaHandle):
    """Implementation of MediaHandle for a joined Chromecast session."""

    def __init__(
        self,
        client: ChromecastClient,
        cast_device: Any,
        on_status: _types.MediaStatusCallback,
    ) -> None:
        """Initialize the handle.

        :param client: The owning client, which routes media statuses here.
        :param cast_device: The pychromecast Chromecast object.
        :param on_status: Callback for pushed media statuses.
        """
        self._client = client
        self._cast = cast_device
        self._media_controller: Any = cast_device.media_controller
        self._on_status = on_status
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return True once the handle was closed.

        :returns: The closed flag.
        """
        return self._closed

    def deliver(self, status: _types.MediaStatus) -> None:
        """Pass a media status to the session's callback (event loop).

        :param status: The converted media status.
        :returns: None
        """
        if not self._closed:
            self._on_status(status)

    def _supports_media(self) -> bool:
        namespaces = getattr(self._cast.status, "namespaces", None) or []
        return MEDIA_NAMESPACE in namespaces

    async def get_status(self) -> _types.MediaStatus | None:
        """Request a fresh media status from the device.

        :returns: The media status, or None if the application has no media
            channel or nothing is loaded.
        """
        if not self._supports_media():
            return None
        await self._call(self._media_controller.update_status)
        return self._client.media_status()

    async def play(self) -> None:
        """Resume playback.

        :returns: None
        """
        await self._call(self._media_controller.play)

    async def pause(self) -> None:
        """Pause playback.

        :returns: None
        """
        await self._call(self._media_controller.pause)

    async def stop(self) -> None:
        """Stop playback.

        :returns: None
        """
        await self._call(self._media_controller.stop)

    def close(self) -> None:
        """Stop delivering status updates.

        :returns: None
        """
        self._closed = True

    async def _call(self, func: Callable[[], Any]) -> None:
        try:
            await asyncio.to_thread(func)
        except PyChromecastError as e:
            raise _errors.CommandFault(str(e) or type(e).__name__) from e


class ChromecastClient(_types.CastClient):
    """CastClient backed by a pychromecast Chromecast object.

    One instance serves one connection; the Session Transport creates a new
    one for every connection attempt.
    """

    def __init__(self, listener: _types.CastClientListener) -> None:
        """Initialize the client.

        :param listener: Receiver of the client's events.
        """
        self.listener = listener
        self._cast: Any | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._forwarder = _ClientForwarder(self)
        self._media_tracker = _MediaStatusTracker(self)
        self._handle: ChromecastMediaHandle | None = None
        self._connected = False
        self._closing = False

    def post(self, callback: Callable[..., None], *args: Any) -> None:
        """Run a callback on the event loop from any thread.

        :param callback: The callable to run.
        :param args: Positional arguments for the callable.
        :returns: None
        """
        if self._closing or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._invoke, callback, *args)

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        if not self._closing:
            callback(*args)

    def deliver_media_status(self, status: _types.MediaStatus) -> None:
        """Route a media status to the most recently joined handle.

        :param status: The converted media status.
        :returns: None
        """
        if self._handle is not None:
            self._handle.deliver(status)

    def media_status(self) -> _types.MediaStatus | None:
        """Return the last media status seen on this connection.

        :returns: The converted status, or None while nothing is known.
        """
        return self._media_tracker.current()

    def handle_connection_status(self, status: str) -> None:
        """React to a pychromecast connection status change.

        :param status: One of the pychromecast CONNECTION_STATUS_* values.
        :returns: None
        """
        _LOGGER.debug("Connection status: %s", status)
        if status == CONNECTION_STATUS_LOST:
            # pychromecast retries on its own before giving up.
            self.listener.on_timeout()
        elif status == CONNECTION_STATUS_CONNECTED:
            self._connected = True
        elif status in (CONNECTION_STATUS_DISCONNECTED, CONNECTION_STATUS_FAILED):
            if self._connected:
                self._connected = False
                self.listener.on_disconnected()

    async def connect(self, host: str, port: int) -> None:
        """Connect to the device and wait for its first status.

        :param host: Device address.
        :param port: Device cast port.
        :returns: None
        :raises ConnectFault: If the device cannot be reached.
        """
        self._loop = asyncio.get_running_loop()
        try:
            self._cast = await asyncio.to_thread(
                pychromecast.get_chromecast_from_host,
                (host, port, None, None, None),
                tries=1,
                retry_wait=RETRY_WAIT,
                timeout=CONNECT_TIMEOUT,
            )
            self._cast.register_status_listener(self._forwarder)
            self._cast.register_connection_listener(self._forwarder)
            self._cast.register_handler(self._media_tracker)
            await asyncio.to_thread(self._cast.wait, CONNECT_TIMEOUT)
        except (PyChromecastError, OSError) as e:
            await self.close()
            raise _errors.ConnectFault(
                f"Cannot connect to {host}:{port}: {str(e) or type(e).__name__}"
            ) from e
        self._connected = True

    async def get_status(self) -> _types.ClientStatus | None:
        """Return the receiver status cached by pychromecast.

        :returns: The current ClientStatus, or None before the first status.
        """
        if self._cast is None or self._cast.status is None:
            return None
        return client_status_from_cast(self._cast.status)

    async def join(
        self, session: _types.CastingSession, on_status: _types.MediaStatusCallback
    ) -> _types.MediaHandle | None:
        """Attach to the media channel of the session.

        pychromecast follows the running application by itself; joining
        only binds a handle to it.

        :param session: The session to join.
        :param on_status: Callback for pushed media statuses.
        :returns: A ChromecastMediaHandle.
        :raises SessionJoinFault: If the connection is going away.
        """
        cast_device = self._cast
        if cast_device is None or self._closing or not self._connected:
            raise _errors.SessionJoinFault(
                f"Cannot join session {session.session_id}: not connected"
            )
        current = cast_device.status
        if current is not None and current.session_id not in (None, session.session_id):
            _LOGGER.debug(
                "Joining session %s while receiver reports %s",
                session.session_id,
                current.session_id,
            )
        self._handle = ChromecastMediaHandle(self, cast_device, on_status)
        return self._handle

    async def set_volume(self, level: float) -> None:
        """Set the receiver master volume.

        :param level: Volume level between 0.0 and 1.0.
        :returns: None
        :raises CommandFault: If the device rejects the request.
        """
        if self._cast is None:
            raise _errors.CommandFault("Not connected")
        try:
            await asyncio.to_thread(self._cast.set_volume, level)
        except PyChromecastError as e:
            raise _errors.CommandFault(str(e) or type(e).__name__) from e

    async def close(self) -> None:
        """Disconnect from the device. Safe to call more than once.

        :returns: None
        """
        if self._closing:
            return
        self._closing = True
        self._connected = False
        self._handle = None
        cast_device, self._cast = self._cast, None
        if cast_device is None:
            return
        try:
            await asyncio.to_thread(cast_device.disconnect, DISCONNECT_TIMEOUT)
        except (PyChromecastError, OSError, RuntimeError):
            _LOGGER.debug("Error while disconnecting", exc_info=True)


__all__ = [
    "ChromecastClient",
    "ChromecastMediaHandle",
    "client_status_from_cast",
    "media_status_from_cast",
]
