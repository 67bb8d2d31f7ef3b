"""Shared fakes for cast2mqtt tests.

The fakes implement the CastClient and MediaHandle ports so the state
machine can be driven without pychromecast or a network.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

import cast2mqtt.event as _events
import cast2mqtt.types as _types


class FakeMediaHandle(_types.MediaHandle):
    """MediaHandle that records the commands it receives."""

    def __init__(
        self,
        on_status: _types.MediaStatusCallback,
        status: _types.MediaStatus | None = None,
    ) -> None:
        self.on_status = on_status
        self.status = status
        self.calls: list[str] = []
        self.fail_with: Exception | None = None
        self.closed = False

    def push(self, status: _types.MediaStatus) -> None:
        """Simulate a media status pushed by the device."""
        if not self.closed:
            self.on_status(status)

    async def get_status(self) -> _types.MediaStatus | None:
        return self.status

    async def _command(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def play(self) -> None:
        await self._command("play")

    async def pause(self) -> None:
        await self._command("pause")

    async def stop(self) -> None:
        await self._command("stop")

    def close(self) -> None:
        self.closed = True


class FakeClient(_types.CastClient):
    """CastClient whose behaviour is set by its factory."""

    def __init__(
        self, factory: FakeClientFactory, listener: _types.CastClientListener
    ) -> None:
        self.factory = factory
        self.listener = listener
        self.address: tuple[str, int] | None = None
        self.handles: list[FakeMediaHandle] = []
        self.volumes: list[float] = []
        self.closed = False

    async def connect(self, host: str, port: int) -> None:
        self.address = (host, port)
        if self.factory.connect_gate is not None:
            await self.factory.connect_gate.wait()
        if self.factory.connect_error is not None:
            raise self.factory.connect_error

    async def get_status(self) -> _types.ClientStatus | None:
        return self.factory.status

    async def join(
        self, session: _types.CastingSession, on_status: _types.MediaStatusCallback
    ) -> _types.MediaHandle | None:
        if self.factory.join_error is not None:
            raise self.factory.join_error
        if self.factory.join_returns_none:
            return None
        handle = FakeMediaHandle(on_status, self.factory.media_status)
        self.handles.append(handle)
        return handle

    async def set_volume(self, level: float) -> None:
        if self.factory.volume_error is not None:
            raise self.factory.volume_error
        self.volumes.append(level)

    async def close(self) -> None:
        self.closed = True


class FakeClientFactory:
    """CastClientFactory recording every client it builds."""

    def __init__(self) -> None:
        self.clients: list[FakeClient] = []
        self.connect_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.status: _types.ClientStatus | None = None
        self.media_status: _types.MediaStatus | None = None
        self.join_error: Exception | None = None
        self.join_returns_none = False
        self.volume_error: Exception | None = None

    def __call__(self, listener: _types.CastClientListener) -> FakeClient:
        client = FakeClient(self, listener)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        """Return the most recently built client."""
        return self.clients[-1]

    @property
    def last_handle(self) -> FakeMediaHandle:
        """Return the most recently joined media handle."""
        return self.last.handles[-1]


class EventRecorder:
    """Collects events emitted on a channel."""

    def __init__(self, channel: _events.EventChannel) -> None:
        self.events: list[_events.DeviceEvent] = []
        channel.subscribe(self.events.append)

    def named(self, name: str) -> list[Any]:
        """Return the payloads of the events called ``name``."""
        return [ev.payload() for ev in self.events if ev.name == name]

    def names(self) -> list[str]:
        """Return the names of all recorded events, in order."""
        return [ev.name for ev in self.events]

    def clear(self) -> None:
        """Forget everything recorded so far."""
        self.events.clear()


def app(session_id: str = "s1", app_id: str = "CC1AD845") -> _types.ApplicationStatus:
    """Build an application entry for a client status."""
    return _types.ApplicationStatus(
        app_id=app_id, display_name="Default Media Receiver", session_id=session_id
    )


def client_status(
    *apps: _types.ApplicationStatus, volume: float | None = None, muted: bool = False
) -> _types.ClientStatus:
    """Build a client status listing ``apps``."""
    vol = _types.VolumeStatus(level=volume, muted=muted) if volume is not None else None
    return _types.ClientStatus(applications=list(apps), volume=vol)


async def settle() -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def factory() -> FakeClientFactory:
    """Provide a fresh fake client factory.

    :returns: A FakeClientFactory.
    """
    return FakeClientFactory()


@pytest.fixture
def channel() -> _events.EventChannel:
    """Provide an empty event channel.

    :returns: An EventChannel.
    """
    return _events.EventChannel()


@pytest.fixture
def recorder(channel: _events.EventChannel) -> EventRecorder:
    """Provide a recorder subscribed to the channel fixture.

    :param channel: The channel fixture.
    :returns: An EventRecorder.
    """
    return EventRecorder(channel)


__all__ = [
    "EventRecorder",
    "FakeClient",
    "FakeClientFactory",
    "FakeMediaHandle",
    "app",
    "client_status",
    "settle",
]
