"""cast2mqtt public API.

Bridges Chromecast devices to MQTT: each configured device is discovered,
connected and followed, its state changes are published as events, and
commands received over MQTT are applied to it.
"""

from __future__ import annotations

import cast2mqtt.config as _config
import cast2mqtt.errors as _errors
import cast2mqtt.event as _event
import cast2mqtt.types as _types
from cast2mqtt.device import CastDevice
from cast2mqtt.mqtt import MqttBridge
from cast2mqtt.service import BridgeService

# Re-export types for public API
ActiveSession = _types.ActiveSession
CastingSession = _types.CastingSession
Connected = _types.Connected
Connecting = _types.Connecting
DeviceID = _types.DeviceID
DeviceState = _types.DeviceState
DeviceTarget = _types.DeviceTarget
Disconnected = _types.Disconnected
MediaMetadata = _types.MediaMetadata
MediaSession = _types.MediaSession
Subscription = _types.Subscription

# Re-export events for public API
ApplicationChanged = _event.ApplicationChanged
CastingChanged = _event.CastingChanged
DeviceError = _event.DeviceError
DeviceEvent = _event.DeviceEvent
EventChannel = _event.EventChannel
MediaChanged = _event.MediaChanged
PlayerStateChanged = _event.PlayerStateChanged
RepeatModeChanged = _event.RepeatModeChanged
VolumeLevelUpdated = _event.VolumeLevelUpdated
VolumeMutedUpdated = _event.VolumeMutedUpdated
VolumeUpdated = _event.VolumeUpdated

# Configuration and errors
Config = _config.Config
load_config = _config.load_config
Cast2MqttError = _errors.Cast2MqttError
ConfigError = _errors.ConfigError

__all__ = [
    "ActiveSession",
    "ApplicationChanged",
    "BridgeService",
    "Cast2MqttError",
    "CastDevice",
    "CastingChanged",
    "CastingSession",
    "Config",
    "ConfigError",
    "Connected",
    "Connecting",
    "DeviceError",
    "DeviceEvent",
    "DeviceID",
    "DeviceState",
    "DeviceTarget",
    "Disconnected",
    "EventChannel",
    "MediaChanged",
    "MediaMetadata",
    "MediaSession",
    "MqttBridge",
    "PlayerStateChanged",
    "RepeatModeChanged",
    "Subscription",
    "VolumeLevelUpdated",
    "VolumeMutedUpdated",
    "VolumeUpdated",
    "load_config",
]
