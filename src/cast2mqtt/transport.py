"""Session transport: the connection to one cast device.

The transport owns the connection state and the protocol client. It creates
a fresh client for every connection and numbers connections with a
generation counter; events raised by a client from an older generation are
dropped, so a superseded connection can never feed stale status into the
state machine.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from typing import Any

import cast2mqtt.errors as _errors
import cast2mqtt.types as _types

_LOGGER = logging.getLogger(__name__)


class TransportListener(ABC):
    """Receiver of Session Transport events, called on the event loop."""

    @abstractmethod
    def on_connected(self) -> None:
        """The connection is established."""

    @abstractmethod
    def on_client_status(self, status: _types.ClientStatus) -> None:
        """A receiver status arrived."""

    @abstractmethod
    def on_media_status(self, session_id: str, status: _types.MediaStatus) -> None:
        """A media status arrived for the joined session ``session_id``."""

    @abstractmethod
    def on_timeout(self) -> None:
        """The device missed heartbeats; the client is still retrying."""

    @abstractmethod
    def on_disconnected(self) -> None:
        """The connection was lost."""

    @abstractmethod
    def on_transport_error(self, error: BaseException) -> None:
        """Connecting failed or the client reported an error."""


class _ClientEvents(_types.CastClientListener):
    """Forwards events of one client generation to the transport."""

    def __init__(self, transport: SessionTransport, generation: int) -> None:
        self._transport = transport
        self._generation = generation

    def on_status(self, status: _types.ClientStatus) -> None:
        if self._transport.is_current(self._generation):
            self._transport.listener.on_client_status(status)

    def on_timeout(self) -> None:
        if self._transport.is_current(self._generation):
            self._transport.listener.on_timeout()

    def on_disconnected(self) -> None:
        if self._transport.is_current(self._generation):
            self._transport.connection_lost(None)

    def on_error(self, error: BaseException) -> None:
        if self._transport.is_current(self._generation):
            self._transport.connection_lost(error)


class SessionTransport:
    """Connection to a single cast device."""

    def __init__(
        self,
        label: str,
        listener: TransportListener,
        client_factory: _types.CastClientFactory | None = None,
    ) -> None:
        """Initialize the transport.

        :param label: Device identity used in log messages.
        :param listener: Receiver of transport events.
        :param client_factory: Callable building a CastClient for a
            listener; defaults to the pychromecast client.
        """
        if client_factory is None:
            # Deferred so injected factories never import pychromecast
            from cast2mqtt.chromecast.adapter import ChromecastClient  # noqa: PLC0415

            client_factory = ChromecastClient
        self.listener = listener
        self._label = label
        self._client_factory = client_factory
        self._client: _types.CastClient | None = None
        self._state = _types.ConnectionState.DISCONNECTED
        self._address: tuple[str, int] | None = None
        self._generation = 0
        # Strong references to background tasks
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> _types.ConnectionState:
        """Return the current connection state.

        :returns: The ConnectionState.
        """
        return self._state

    @property
    def address(self) -> tuple[str, int] | None:
        """Return the address of the current or last connection.

        :returns: ``(host, port)`` or None if never connected.
        """
        return self._address

    def is_current(self, generation: int) -> bool:
        """Return True if ``generation`` is the live connection.

        :param generation: Generation number handed to a client.
        :returns: True when the generation has not been superseded.
        """
        return generation == self._generation and self._client is not None

    async def connect(self, host: str, port: int) -> None:
        """Connect to ``host:port``.

        Only one attempt runs at a time: the call is ignored while another
        attempt is in flight, and an existing connection to a different
        address is dropped first. Failures are reported through
        ``on_transport_error`` and never raised.

        :param host: Device address.
        :param port: Device cast port.
        :returns: None
        """
        if self._state is _types.ConnectionState.CONNECTING:
            _LOGGER.debug("%s: connection attempt already in progress", self._label)
            return
        if self._state is _types.ConnectionState.CONNECTED:
            if self._address == (host, port):
                return
            await self.disconnect()

        self._generation += 1
        generation = self._generation
        client = self._client_factory(_ClientEvents(self, generation))
        self._client = client
        self._address = (host, port)
        self._state = _types.ConnectionState.CONNECTING
        _LOGGER.info("%s: connecting to %s:%s", self._label, host, port)

        try:
            await client.connect(host, port)
        except Exception as e:
            if generation == self._generation:
                self._client = None
                self._state = _types.ConnectionState.DISCONNECTED
            await client.close()
            if generation == self._generation:
                self.listener.on_transport_error(e)
            return

        if generation != self._generation:
            # disconnect() was called while the attempt was in flight
            await client.close()
            return

        self._state = _types.ConnectionState.CONNECTED
        _LOGGER.info("%s: connected", self._label)
        self.listener.on_connected()

        # Ask for the status right away: a device that is already casting
        # may not push anything until its state changes again.
        try:
            status = await client.get_status()
        except _errors.Cast2MqttError:
            _LOGGER.debug("%s: initial status request failed", self._label, exc_info=True)
            return
        if status is not None and self.is_current(generation):
            self.listener.on_client_status(status)

    async def disconnect(self) -> None:
        """Close the connection. Always safe, including when disconnected.

        :returns: None
        """
        self._generation += 1
        self._state = _types.ConnectionState.DISCONNECTED
        client, self._client = self._client, None
        if client is not None:
            _LOGGER.debug("%s: closing connection", self._label)
            await client.close()

    def connection_lost(self, error: BaseException | None) -> None:
        """Tear down after the client lost the connection or failed.

        :param error: The client error, or None for a plain disconnect.
        :returns: None
        """
        self._generation += 1
        self._state = _types.ConnectionState.DISCONNECTED
        client, self._client = self._client, None
        if client is not None:
            self._spawn(client.close())
        if error is None:
            self.listener.on_disconnected()
        else:
            self.listener.on_transport_error(error)

    async def join(
        self, session: _types.CastingSession
    ) -> _types.MediaHandle | None:
        """Join the media channel of ``session`` on the live connection.

        :param session: The session to join.
        :returns: The media handle, or None if the client could not join.
        :raises SessionJoinFault: If there is no live connection.
        """
        client = self._client
        if client is None or self._state is not _types.ConnectionState.CONNECTED:
            raise _errors.SessionJoinFault(
                f"Cannot join session {session.session_id}: not connected"
            )
        generation = self._generation
        session_id = session.session_id

        def _on_media_status(status: _types.MediaStatus) -> None:
            if self.is_current(generation):
                self.listener.on_media_status(session_id, status)

        return await client.join(session, _on_media_status)

    async def set_volume(self, level: float) -> None:
        """Set the receiver master volume.

        :param level: Volume level between 0.0 and 1.0.
        :returns: None
        :raises CommandFault: If there is no live connection.
        """
        client = self._client
        if client is None or self._state is not _types.ConnectionState.CONNECTED:
            raise _errors.CommandFault("Not connected")
        await client.set_volume(level)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task: asyncio.Task[None] = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = ["SessionTransport", "TransportListener"]
