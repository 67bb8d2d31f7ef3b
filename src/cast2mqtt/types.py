"""Common data types and models for cast2mqtt.

This module contains the core data structures and the collaborator ports
used throughout the library to avoid circular import issues.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NewType, cast

# Identifier of a configured device, used in MQTT topics.
DeviceID = NewType("DeviceID", str)

DEFAULT_CAST_PORT = 8009

# Player states for which the device counts as casting.
ACTIVE_PLAYER_STATES = frozenset({"PLAYING", "BUFFERING"})


class ConnectionState(enum.Enum):
    """Connection state of a Session Transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class DeviceTarget:
    """The cast device a monitor is responsible for.

    Only rediscovery changes ``host`` and ``port`` after construction.
    A target built with both an address and a port is *static*: it is
    never rediscovered.

    :param name: Friendly name of the device as advertised over mDNS.
    :param host: Known IP address or host name, if any.
    :param port: Known cast port, if any.
    """

    name: str
    host: str | None = None
    port: int | None = None
    static: bool = field(init=False)

    def __post_init__(self) -> None:
        """Derive the static flag from the initial address.

        :returns: None
        """
        self.static = self.host is not None and self.port is not None

    @property
    def address(self) -> tuple[str, int] | None:
        """Return the known ``(host, port)`` pair, or None when unresolved.

        :returns: The address tuple or None.
        """
        if self.host is None or self.port is None:
            return None
        return (self.host, self.port)

    def update_address(self, host: str, port: int) -> None:
        """Record an address found by discovery.

        :param host: Discovered host.
        :param port: Discovered port.
        :returns: None
        """
        self.host = host
        self.port = port

    def clear_address(self) -> None:
        """Forget a discovered address so discovery resolves it again.

        :returns: None
        """
        if not self.static:
            self.host = None
            self.port = None


@dataclass(frozen=True)
class VolumeStatus:
    """Volume block reported by the receiver or a media session.

    :param level: Volume level between 0.0 and 1.0.
    :param muted: True if the device is muted.
    """

    level: float
    muted: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible ``volume`` payload.

        :returns: Mapping with ``level`` and ``muted``.
        """
        return {"level": self.level, "muted": self.muted}


@dataclass(frozen=True)
class ApplicationStatus:
    """A receiver application as listed in a raw client status.

    :param app_id: Cast application id (e.g. ``CC32E753``).
    :param display_name: Human-readable application name.
    :param session_id: Receiver session identifier.
    :param app_type: Application type (e.g. ``WEB``) when reported.
    :param transport_id: Transport id when reported; often absent for
        speaker groups.
    """

    app_id: str
    display_name: str
    session_id: str
    app_type: str | None = None
    transport_id: str | None = None


@dataclass(frozen=True)
class ClientStatus:
    """Raw receiver status.

    ``applications`` is None when the device omitted the list and empty when
    it reported none; both mean that nothing is casting.

    :param applications: Running applications, primary first.
    :param volume: Receiver master volume, when reported.
    """

    applications: list[ApplicationStatus] | None = None
    volume: VolumeStatus | None = None


@dataclass(frozen=True)
class MediaImage:
    """Representation of a media image (e.g., album art).

    :param url: URL of the image.
    :param width: Optional width in pixels.
    :param height: Optional height in pixels.
    """

    url: str
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class MediaMetadata:
    """Normalized metadata of the media currently loaded on the device.

    :param metadata_type: Cast metadata type (3 for music tracks).
    :param title: Content title.
    :param artist: Artist name.
    :param album_name: Album name.
    :param song_name: Song name, reported by some music applications.
    :param images: Associated images.
    """

    metadata_type: int | None = None
    title: str | None = None
    artist: str | None = None
    album_name: str | None = None
    song_name: str | None = None
    images: list[MediaImage] = field(default_factory=lambda: cast(list[MediaImage], []))

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> MediaMetadata:
        """Build metadata from the protocol's camelCase dictionary.

        :param raw: The ``media.metadata`` object of a media status.
        :returns: Normalized MediaMetadata.
        """
        images: list[MediaImage] = []
        for image in raw.get("images") or []:
            if isinstance(image, dict) and image.get("url"):
                images.append(
                    MediaImage(
                        url=str(image["url"]),
                        width=image.get("width"),
                        height=image.get("height"),
                    )
                )
        return cls(
            metadata_type=raw.get("metadataType"),
            title=raw.get("title"),
            artist=raw.get("artist"),
            album_name=raw.get("albumName"),
            song_name=raw.get("songName"),
            images=images,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible ``media`` payload.

        ``songName`` is only present when the application reported it.

        :returns: Mapping in the protocol's camelCase layout.
        """
        payload: dict[str, Any] = {
            "metadataType": self.metadata_type,
            "title": self.title,
            "artist": self.artist,
            "albumName": self.album_name,
            "images": [
                {
                    k: v
                    for k, v in (
                        ("url", img.url),
                        ("width", img.width),
                        ("height", img.height),
                    )
                    if v is not None
                }
                for img in self.images
            ],
        }
        if self.song_name is not None:
            payload["songName"] = self.song_name
        return payload


@dataclass(frozen=True)
class MediaStatus:
    """Raw media status pushed by a joined media session.

    :param player_state: One of PLAYING, BUFFERING, PAUSED or IDLE.
    :param current_time: Playback position in seconds.
    :param volume: Stream volume, when reported.
    :param repeat_mode: Queue repeat mode, when reported.
    :param metadata: Metadata of the loaded media, when reported.
    """

    player_state: str | None = None
    current_time: float = 0.0
    volume: VolumeStatus | None = None
    repeat_mode: str | None = None
    metadata: MediaMetadata | None = None


@dataclass(frozen=True)
class CastingSession:
    """The receiver application the device is currently running.

    Identity is ``session_id``; ``transport_id`` always equals it.
    """

    app_id: str
    app_type: str | None
    display_name: str
    session_id: str
    transport_id: str

    @classmethod
    def from_application(cls, app: ApplicationStatus) -> CastingSession:
        """Build a session, forcing ``transport_id`` to the session id.

        Speaker groups may omit ``transport_id`` entirely; the receiver
        addresses the session by its id in that case.

        :param app: The application listed in the client status.
        :returns: A CastingSession.
        """
        return cls(
            app_id=app.app_id,
            app_type=app.app_type,
            display_name=app.display_name,
            session_id=app.session_id,
            transport_id=app.session_id,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible ``application`` payload.

        :returns: Mapping with ``appId``, ``appType`` and ``displayName``.
        """
        return {
            "appId": self.app_id,
            "appType": self.app_type,
            "displayName": self.display_name,
        }


@dataclass
class MediaSession:
    """Live mirror of the last media status of the joined session."""

    player_state: str | None = None
    current_time: float = 0.0
    volume: VolumeStatus | None = None
    repeat_mode: str | None = None
    metadata: MediaMetadata | None = None

    @property
    def is_casting(self) -> bool:
        """Return True while the player is playing or buffering.

        :returns: The derived casting flag.
        """
        return self.player_state in ACTIVE_PLAYER_STATES


@dataclass
class ActiveSession:
    """A casting session and, once joined, its media session."""

    application: CastingSession
    media: MediaSession | None = None


@dataclass(frozen=True)
class Disconnected:
    """No connection to the device."""


@dataclass(frozen=True)
class Connecting:
    """A connection attempt is in flight."""


@dataclass(frozen=True)
class Connected:
    """Connected to the device, optionally with an active session.

    :param session: The active casting session, if any.
    """

    session: ActiveSession | None = None


DeviceState = Disconnected | Connecting | Connected

MediaStatusCallback = Callable[[MediaStatus], None]


class MediaHandle(ABC):
    """Handle on the media channel of a joined receiver session."""

    @abstractmethod
    async def get_status(self) -> MediaStatus | None:
        """Fetch the current media status.

        :returns: The media status, or None when nothing is loaded.
        """
        ...

    @abstractmethod
    async def play(self) -> None:
        """Resume playback.

        :returns: None
        """
        ...

    @abstractmethod
    async def pause(self) -> None:
        """Pause playback.

        :returns: None
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback.

        :returns: None
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop delivering status updates for this handle.

        :returns: None
        """
        ...


class CastClientListener(ABC):
    """Receiver of events pushed by a CastClient.

    Implementations are always invoked on the event loop thread.
    """

    @abstractmethod
    def on_status(self, status: ClientStatus) -> None:
        """Handle a pushed receiver status."""

    @abstractmethod
    def on_timeout(self) -> None:
        """Handle a heartbeat or connection-level timeout."""

    @abstractmethod
    def on_disconnected(self) -> None:
        """Handle the loss of the connection."""

    @abstractmethod
    def on_error(self, error: BaseException) -> None:
        """Handle a client-level error."""


class CastClient(ABC):
    """Cast protocol client for a single connection."""

    @abstractmethod
    async def connect(self, host: str, port: int) -> None:
        """Open the connection.

        :param host: Device address.
        :param port: Device cast port.
        :returns: None
        :raises ConnectFault: If the device cannot be reached.
        """
        ...

    @abstractmethod
    async def get_status(self) -> ClientStatus | None:
        """Fetch the receiver status.

        :returns: The current status, or None if unavailable.
        """
        ...

    @abstractmethod
    async def join(
        self, session: CastingSession, on_status: MediaStatusCallback
    ) -> MediaHandle | None:
        """Attach to the media channel of a running session.

        :param session: The session to join.
        :param on_status: Callback invoked on the event loop for each
            pushed media status.
        :returns: A MediaHandle, or None if the session could not be joined.
        """
        ...

    @abstractmethod
    async def set_volume(self, level: float) -> None:
        """Set the receiver master volume.

        :param level: Volume level between 0.0 and 1.0.
        :returns: None
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once.

        :returns: None
        """
        ...


CastClientFactory = Callable[[CastClientListener], CastClient]


class Subscription:
    """Lightweight handle for an event subscription with an unsubscribe method.

    :param unsubscribe: Callable invoked to cancel the subscription.
    """

    def __init__(self, unsubscribe: Callable[[], None]):
        """Create a Subscription that calls the provided unsubscribe function.

        :param unsubscribe: Callable invoked to cancel the subscription.
        :returns: None
        """
        self._unsubscribe = unsubscribe

    def unsubscribe(self) -> None:
        """Cancel the subscription and stop receiving events.

        :returns: None
        """
        self._unsubscribe()


__all__ = [
    "ACTIVE_PLAYER_STATES",
    "DEFAULT_CAST_PORT",
    "ActiveSession",
    "ApplicationStatus",
    "CastClient",
    "CastClientFactory",
    "CastClientListener",
    "CastingSession",
    "ClientStatus",
    "Connected",
    "Connecting",
    "ConnectionState",
    "DeviceID",
    "DeviceState",
    "DeviceTarget",
    "Disconnected",
    "MediaHandle",
    "MediaImage",
    "MediaMetadata",
    "MediaSession",
    "MediaStatus",
    "MediaStatusCallback",
    "Subscription",
    "VolumeStatus",
]
