"""Configuration file loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

import cast2mqtt.errors as _errors
import cast2mqtt.types as _types

CONFIG_ENV = "CAST2MQTT_CONFIG"
DEFAULT_CONFIG_PATH = "config.yml"


@dataclass(frozen=True)
class MqttConfig:
    """Broker connection settings.

    :param host: Broker host name.
    :param port: Broker port.
    :param username: Optional user name.
    :param password: Optional password.
    :param client_id: MQTT client identifier.
    :param topic_prefix: Prefix of every published and subscribed topic.
    :param keepalive: Keepalive interval in seconds.
    :param retain: Publish events as retained messages.
    """

    host: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    client_id: str = "cast2mqtt"
    topic_prefix: str = "chromecast"
    keepalive: int = 60
    retain: bool = False


@dataclass(frozen=True)
class DeviceConfig:
    """One configured cast device.

    :param id: Identifier used in topics.
    :param name: Friendly name to discover.
    :param host: Static address; disables discovery when set.
    :param port: Cast port for the static address.
    """

    id: str
    name: str
    host: str | None = None
    port: int | None = None

    def target(self) -> _types.DeviceTarget:
        """Build the connection target for this device.

        :returns: A DeviceTarget, static when ``host`` is set.
        """
        port = self.port
        if self.host is not None and port is None:
            port = _types.DEFAULT_CAST_PORT
        return _types.DeviceTarget(name=self.name, host=self.host, port=port)


@dataclass(frozen=True)
class Config:
    """Complete bridge configuration."""

    mqtt: MqttConfig
    devices: list[DeviceConfig] = field(default_factory=list)


def resolve_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Pick the configuration file to load.

    :param path: Explicit path, e.g. from the command line.
    :returns: ``path`` if given, else $CAST2MQTT_CONFIG, else config.yml.
    """
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH)


def load_config(path: str | os.PathLike[str] | None = None) -> Config:
    """Load and validate the configuration file.

    :param path: File to load; see resolve_path.
    :returns: The parsed Config.
    :raises ConfigError: If the file is missing, not valid YAML or invalid.
    """
    config_path = resolve_path(path)
    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise _errors.ConfigError(f"Cannot read {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise _errors.ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    return parse_config(raw)


def parse_config(raw: Any) -> Config:
    """Validate an already parsed configuration document.

    :param raw: The document, as returned by yaml.safe_load.
    :returns: The parsed Config.
    :raises ConfigError: If a key is missing or has the wrong type.
    """
    if not isinstance(raw, dict):
        raise _errors.ConfigError("Configuration must be a mapping")

    mqtt_raw = raw.get("mqtt")
    if not isinstance(mqtt_raw, dict):
        raise _errors.ConfigError("mqtt: section is required")
    mqtt = MqttConfig(
        host=_require_str(mqtt_raw, "host", "mqtt.host"),
        port=_optional_int(mqtt_raw, "port", "mqtt.port", 1883),
        username=_optional_str(mqtt_raw, "username", "mqtt.username"),
        password=_optional_str(mqtt_raw, "password", "mqtt.password"),
        client_id=_optional_str(mqtt_raw, "client_id", "mqtt.client_id") or "cast2mqtt",
        topic_prefix=(
            _optional_str(mqtt_raw, "topic_prefix", "mqtt.topic_prefix") or "chromecast"
        ).strip("/"),
        keepalive=_optional_int(mqtt_raw, "keepalive", "mqtt.keepalive", 60),
        retain=bool(mqtt_raw.get("retain", False)),
    )

    devices_raw = raw.get("devices")
    if not isinstance(devices_raw, list) or not devices_raw:
        raise _errors.ConfigError("devices: at least one device is required")
    devices: list[DeviceConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(devices_raw):
        where = f"devices[{index}]"
        if not isinstance(entry, dict):
            raise _errors.ConfigError(f"{where}: must be a mapping")
        device_id = _require_str(entry, "id", f"{where}.id")
        if device_id in seen:
            raise _errors.ConfigError(f"{where}.id: duplicate id {device_id!r}")
        if "/" in device_id or "+" in device_id or "#" in device_id:
            raise _errors.ConfigError(f"{where}.id: not usable in a topic: {device_id!r}")
        seen.add(device_id)
        devices.append(
            DeviceConfig(
                id=device_id,
                name=_require_str(entry, "name", f"{where}.name"),
                host=_optional_str(entry, "host", f"{where}.host"),
                port=_optional_int(entry, "port", f"{where}.port", None),
            )
        )
    return Config(mqtt=mqtt, devices=devices)


def _require_str(section: dict[str, Any], key: str, where: str) -> str:
    value = section.get(key)
    if value is None or str(value).strip() == "":
        raise _errors.ConfigError(f"{where}: required")
    return str(value)


def _optional_str(section: dict[str, Any], key: str, where: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise _errors.ConfigError(f"{where}: must be a string")
    return str(value)


def _optional_int(
    section: dict[str, Any], key: str, where: str, default: int | None
) -> Any:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise _errors.ConfigError(f"{where}: must be an integer")
    return value


__all__ = [
    "CONFIG_ENV",
    "DEFAULT_CONFIG_PATH",
    "Config",
    "DeviceConfig",
    "MqttConfig",
    "load_config",
    "parse_config",
    "resolve_path",
]
