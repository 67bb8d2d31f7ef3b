"""Exception types raised by cast2mqtt."""

from __future__ import annotations


class Cast2MqttError(Exception):
    """Base class for cast2mqtt errors."""


class ConfigError(Cast2MqttError):
    """The configuration file is missing, malformed or incomplete."""


class ConnectFault(Cast2MqttError):
    """The connection to a cast device could not be established or was lost."""


class SessionJoinFault(ConnectFault):
    """Joining the media channel of a receiver session failed.

    Handled like a ConnectFault: the connection is dropped and rebuilt.
    """


class CommandFault(Cast2MqttError):
    """A command could not be delivered to the device."""


__all__ = [
    "Cast2MqttError",
    "CommandFault",
    "ConfigError",
    "ConnectFault",
    "SessionJoinFault",
]
