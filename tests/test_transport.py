"""Unit tests for cast2mqtt.transport module."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeClientFactory, app, client_status, settle

import cast2mqtt.errors as _errors
import cast2mqtt.transport as _transport
import cast2mqtt.types as _types


class RecordingListener(_transport.TransportListener):
    """TransportListener recording every callback."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    def on_connected(self) -> None:
        self.calls.append(("connected", None))

    def on_client_status(self, status: _types.ClientStatus) -> None:
        self.calls.append(("status", status))

    def on_media_status(self, session_id: str, status: _types.MediaStatus) -> None:
        self.calls.append(("media", (session_id, status)))

    def on_timeout(self) -> None:
        self.calls.append(("timeout", None))

    def on_disconnected(self) -> None:
        self.calls.append(("disconnected", None))

    def on_transport_error(self, error: BaseException) -> None:
        self.calls.append(("error", error))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]


@pytest.fixture
def listener() -> RecordingListener:
    """Provide a recording listener.

    :returns: A RecordingListener.
    """
    return RecordingListener()


@pytest.fixture
def transport(
    listener: RecordingListener, factory: FakeClientFactory
) -> _transport.SessionTransport:
    """Provide a transport using the fake client factory.

    :param listener: The listener fixture.
    :param factory: The factory fixture.
    :returns: A SessionTransport.
    """
    return _transport.SessionTransport("kitchen", listener, factory)


def _session(session_id: str = "s1") -> _types.CastingSession:
    return _types.CastingSession.from_application(app(session_id))


@pytest.mark.asyncio
async def test_connect_reports_status(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """A successful connect announces itself and forwards the first status."""
    factory.status = client_status(app("s1"))

    await transport.connect("10.0.0.2", 8009)

    assert transport.state is _types.ConnectionState.CONNECTED
    assert transport.address == ("10.0.0.2", 8009)
    assert listener.kinds() == ["connected", "status"]
    assert factory.last.address == ("10.0.0.2", 8009)


@pytest.mark.asyncio
async def test_connect_failure_reports_error(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """A failing connect closes the client and reports the error."""
    factory.connect_error = _errors.ConnectFault("refused")

    await transport.connect("10.0.0.2", 8009)

    assert transport.state is _types.ConnectionState.DISCONNECTED
    assert listener.kinds() == ["error"]
    assert factory.last.closed


@pytest.mark.asyncio
async def test_second_connect_ignored_while_connecting(
    transport: _transport.SessionTransport, factory: FakeClientFactory
) -> None:
    """Only one connection attempt is in flight at a time."""
    factory.connect_gate = asyncio.Event()

    first = asyncio.ensure_future(transport.connect("10.0.0.2", 8009))
    await settle()
    assert transport.state is _types.ConnectionState.CONNECTING

    await transport.connect("10.0.0.3", 8009)
    factory.connect_gate.set()
    await first

    assert len(factory.clients) == 1
    assert transport.address == ("10.0.0.2", 8009)


@pytest.mark.asyncio
async def test_connect_same_address_is_noop(
    transport: _transport.SessionTransport, factory: FakeClientFactory
) -> None:
    """Connecting to the current address again keeps the connection."""
    await transport.connect("10.0.0.2", 8009)
    await transport.connect("10.0.0.2", 8009)

    assert len(factory.clients) == 1


@pytest.mark.asyncio
async def test_connect_new_address_replaces_connection(
    transport: _transport.SessionTransport, factory: FakeClientFactory
) -> None:
    """Connecting elsewhere closes the old client first."""
    await transport.connect("10.0.0.2", 8009)
    old = factory.last

    await transport.connect("10.0.0.3", 8009)

    assert old.closed
    assert len(factory.clients) == 2
    assert transport.address == ("10.0.0.3", 8009)


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(
    transport: _transport.SessionTransport, factory: FakeClientFactory
) -> None:
    """disconnect() can be called at any time."""
    await transport.disconnect()
    await transport.connect("10.0.0.2", 8009)
    await transport.disconnect()
    await transport.disconnect()

    assert factory.last.closed
    assert transport.state is _types.ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_during_connect_drops_result(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """An attempt superseded by disconnect() never reports success."""
    factory.connect_gate = asyncio.Event()
    attempt = asyncio.ensure_future(transport.connect("10.0.0.2", 8009))
    await settle()

    await transport.disconnect()
    factory.connect_gate.set()
    await attempt

    assert listener.kinds() == []
    assert factory.last.closed
    assert transport.state is _types.ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_client_events_forwarded(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """Status and timeout events of the live client reach the listener."""
    await transport.connect("10.0.0.2", 8009)
    client = factory.last

    client.listener.on_status(client_status(app("s1")))
    client.listener.on_timeout()

    assert listener.kinds() == ["connected", "status", "timeout"]


@pytest.mark.asyncio
async def test_client_disconnect_tears_down(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """A client-side disconnect closes the client and notifies once."""
    await transport.connect("10.0.0.2", 8009)
    client = factory.last

    client.listener.on_disconnected()
    await settle()
    client.listener.on_disconnected()

    assert listener.kinds() == ["connected", "disconnected"]
    assert client.closed
    assert transport.state is _types.ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_client_error_reported(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """A client error is reported as a transport error."""
    await transport.connect("10.0.0.2", 8009)

    factory.last.listener.on_error(RuntimeError("socket closed"))

    assert listener.kinds() == ["connected", "error"]


@pytest.mark.asyncio
async def test_stale_client_events_dropped(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """Events from a replaced client are ignored."""
    await transport.connect("10.0.0.2", 8009)
    old = factory.last
    await transport.connect("10.0.0.3", 8009)
    listener.calls.clear()

    old.listener.on_status(client_status(app("s1")))
    old.listener.on_disconnected()

    assert listener.calls == []
    assert transport.state is _types.ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_join_requires_connection(
    transport: _transport.SessionTransport,
) -> None:
    """Joining without a connection is a join fault."""
    with pytest.raises(_errors.SessionJoinFault):
        await transport.join(_session())


@pytest.mark.asyncio
async def test_join_forwards_media_status(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """Media statuses carry the id of the session they belong to."""
    await transport.connect("10.0.0.2", 8009)
    handle = await transport.join(_session("s1"))
    assert handle is not None
    status = _types.MediaStatus(player_state="PLAYING")

    factory.last_handle.push(status)

    assert listener.calls[-1] == ("media", ("s1", status))


@pytest.mark.asyncio
async def test_media_status_after_disconnect_dropped(
    transport: _transport.SessionTransport,
    listener: RecordingListener,
    factory: FakeClientFactory,
) -> None:
    """A media status from a closed connection is ignored."""
    await transport.connect("10.0.0.2", 8009)
    await transport.join(_session("s1"))
    await transport.disconnect()
    listener.calls.clear()

    factory.last_handle.push(_types.MediaStatus(player_state="PLAYING"))

    assert listener.calls == []


@pytest.mark.asyncio
async def test_set_volume(
    transport: _transport.SessionTransport, factory: FakeClientFactory
) -> None:
    """set_volume goes to the live client and fails when disconnected."""
    with pytest.raises(_errors.CommandFault):
        await transport.set_volume(0.5)

    await transport.connect("10.0.0.2", 8009)
    await transport.set_volume(0.5)

    assert factory.last.volumes == [0.5]
