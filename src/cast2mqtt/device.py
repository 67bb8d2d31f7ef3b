"""Lifecycle manager for one cast device.

A CastDevice wires discovery, the session transport, the status reconciler,
the reconnect controller and the command facade together. All of them run
on the event loop, so transitions need ordering, not locking.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import cast2mqtt.event as _events
import cast2mqtt.types as _types
from cast2mqtt.commands import CommandFacade
from cast2mqtt.discovery import DiscoveryWatcher
from cast2mqtt.reconciler import StatusReconciler
from cast2mqtt.reconnect import ReconnectController, RetryState
from cast2mqtt.transport import SessionTransport, TransportListener

_LOGGER = logging.getLogger(__name__)


class CastDevice(TransportListener):
    """Keeps a session with one cast device and reports what it does.

    Events are delivered through ``events``; commands are available on
    ``commands`` and, for convenience, on the device itself.
    """

    def __init__(
        self,
        device_id: _types.DeviceID,
        target: _types.DeviceTarget,
        *,
        client_factory: _types.CastClientFactory | None = None,
        discovery: DiscoveryWatcher | None = None,
    ) -> None:
        """Initialize the device.

        :param device_id: Identifier of the device, used in topics.
        :param target: The device to connect to.
        :param client_factory: Optional CastClient factory for the transport.
        :param discovery: Optional watcher to use instead of the default one;
            ignored for static targets.
        """
        self.id = device_id
        self.target = target
        self.events = _events.EventChannel()
        self._label = f'{device_id} "{target.name}"'
        self._transport = SessionTransport(self._label, self, client_factory)
        self._reconciler = StatusReconciler(
            device_id,
            self._label,
            self.events,
            joiner=self._transport.join,
            on_fault=self._on_session_fault,
        )
        self._reconnect = ReconnectController(
            self._label,
            static=target.static,
            reconnect=self._reconnect_known,
            rediscover=self._rediscover,
        )
        self._discovery: DiscoveryWatcher | None = None
        if not target.static:
            self._discovery = discovery or DiscoveryWatcher(target.name, self._on_found)
        self.commands = CommandFacade(
            device_id, self._label, self._transport, self._reconciler, self.events
        )
        self._running = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> _types.DeviceState:
        """Return the connection and session state of the device.

        :returns: Disconnected, Connecting or Connected.
        """
        connection = self._transport.state
        if connection is _types.ConnectionState.CONNECTING:
            return _types.Connecting()
        if connection is _types.ConnectionState.CONNECTED:
            return _types.Connected(session=self._reconciler.session)
        return _types.Disconnected()

    @property
    def is_casting(self) -> bool:
        """Return True while the device is playing or buffering.

        :returns: The casting flag.
        """
        return self._reconciler.is_casting

    @property
    def volume(self) -> float:
        """Return the last reported volume level.

        :returns: Volume level between 0.0 and 1.0.
        """
        return self._reconciler.volume

    @property
    def retry_state(self) -> RetryState:
        """Return the reconnect backoff state.

        :returns: The RetryState of the reconnect controller.
        """
        return self._reconnect.state

    async def start(self) -> None:
        """Connect to a static address, or start looking for the device.

        :returns: None
        """
        if self._running:
            return
        self._running = True
        _LOGGER.info("Loaded cast device %s", self._label)
        address = self.target.address
        if self.target.static and address is not None:
            self._spawn(self._transport.connect(*address))
        elif self._discovery is not None:
            await self._discovery.start()

    async def stop(self) -> None:
        """Stop discovery and retries and close the connection.

        :returns: None
        """
        if not self._running:
            return
        self._running = False
        self._reconnect.cancel()
        if self._discovery is not None:
            await self._discovery.stop()
        await self._transport.disconnect()
        self._reconciler.reset()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

    async def play(self) -> None:
        """See CommandFacade.play."""
        await self.commands.play()

    async def pause(self) -> None:
        """See CommandFacade.pause."""
        await self.commands.pause()

    async def stop_media(self) -> None:
        """See CommandFacade.stop."""
        await self.commands.stop()

    async def set_volume(self, level: float) -> None:
        """See CommandFacade.set_volume."""
        await self.commands.set_volume(level)

    async def volume_up(self) -> None:
        """See CommandFacade.volume_up."""
        await self.commands.volume_up()

    async def volume_down(self) -> None:
        """See CommandFacade.volume_down."""
        await self.commands.volume_down()

    async def set_casting(self, on: bool) -> None:
        """See CommandFacade.set_casting."""
        await self.commands.set_casting(on)

    # TransportListener

    def on_connected(self) -> None:
        self._reconnect.connection_succeeded()

    def on_client_status(self, status: _types.ClientStatus) -> None:
        self._reconciler.process_client_status(status)

    def on_media_status(self, session_id: str, status: _types.MediaStatus) -> None:
        self._reconciler.process_media_status(session_id, status)

    def on_timeout(self) -> None:
        _LOGGER.debug("%s: heartbeat timeout", self._label)

    def on_disconnected(self) -> None:
        _LOGGER.info("%s: disconnected", self._label)
        self._connection_lost()

    def on_transport_error(self, error: BaseException) -> None:
        _LOGGER.warning("%s: connection error: %s", self._label, error)
        self._report_error(str(error) or type(error).__name__)
        self._connection_lost()

    # Internal transitions

    def _connection_lost(self) -> None:
        self._reconciler.reset()
        if self._running:
            self._reconnect.connection_lost()

    def _on_session_fault(self, error: BaseException) -> None:
        _LOGGER.warning("%s: %s, reconnecting", self._label, error)
        self._report_error(str(error))
        self._spawn(self._drop_connection())

    async def _drop_connection(self) -> None:
        await self._transport.disconnect()
        self._connection_lost()

    def _reconnect_known(self) -> None:
        address = self.target.address
        if address is None:
            self._rediscover()
            return
        self._spawn(self._transport.connect(*address))

    def _rediscover(self) -> None:
        if self._discovery is None:
            return
        self.target.clear_address()
        if self._discovery.running:
            self._discovery.restart()
        else:
            self._spawn(self._discovery.start())

    def _on_found(self, host: str, port: int) -> None:
        if not self._running:
            return
        if (
            self._transport.state is not _types.ConnectionState.DISCONNECTED
            and self._transport.address == (host, port)
        ):
            return
        self.target.update_address(host, port)
        self._reconnect.connection_succeeded()
        self._spawn(self._connect_found(host, port))

    async def _connect_found(self, host: str, port: int) -> None:
        # An attempt still in flight targets the old address
        if self._transport.state is _types.ConnectionState.CONNECTING:
            await self._transport.disconnect()
        await self._transport.connect(host, port)

    def _report_error(self, message: str) -> None:
        self.events.emit(_events.DeviceError(device_id=self.id, message=message))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task: asyncio.Task[None] = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def __str__(self) -> str:
        media = self._reconciler.media
        return (
            f'Chromecast: "{self.target.name}" Volume: {self.volume} '
            f"Casting: {self.is_casting} Media: {media}"
        )


__all__ = ["CastDevice"]
