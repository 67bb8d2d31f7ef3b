"""Network discovery of cast devices.

The DiscoveryWatcher browses mDNS for a device with a given friendly name and
reports its address. The browser is stopped and restarted periodically so
that missed or stale announcements are eventually picked up again.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pychromecast  # type: ignore
import zeroconf

_LOGGER = logging.getLogger(__name__)

# Restart the browser every 30 minutes to make sure we keep hearing
# announcements.
REARM_INTERVAL = 30 * 60.0

FoundCallback = Callable[[str, int], None]


@dataclass(frozen=True)
class DiscoveredDevice:
    """A cast device seen on the network.

    :param name: Friendly name of the device.
    :param host: Address of the device.
    :param port: Cast port of the device.
    :param model: Model name, when advertised.
    :param uuid: Device UUID as a string.
    """

    name: str
    host: str
    port: int
    model: str | None
    uuid: str

    @classmethod
    def from_cast_info(cls, info: Any) -> DiscoveredDevice:
        """Build from a pychromecast CastInfo.

        :param info: The CastInfo reported by the browser.
        :returns: A DiscoveredDevice.
        """
        return cls(
            name=info.friendly_name or "",
            host=str(info.host),
            port=int(info.port),
            model=info.model_name or None,
            uuid=str(info.uuid),
        )


class DiscoveryWatcher:
    """Watch the network for one cast device, by friendly name.

    ``found(host, port)`` is called on the event loop each time an
    announcement for the device is seen.
    """

    def __init__(
        self,
        device_name: str,
        found: FoundCallback,
        *,
        rearm_interval: float = REARM_INTERVAL,
    ) -> None:
        """Initialize the watcher.

        :param device_name: Friendly name to look for (case-insensitive).
        :param found: Callback receiving the host and port of the device.
        :param rearm_interval: Seconds between browser restarts.
        """
        self._device_name = device_name
        self._found = found
        self._rearm_interval = rearm_interval
        self._loop: asyncio.AbstractEventLoop | None = None
        self._zeroconf: Any | None = None
        self._browser: Any | None = None
        self._rearm_timer: asyncio.TimerHandle | None = None

    @property
    def running(self) -> bool:
        """Return True while the watcher is browsing.

        :returns: True when started and not stopped.
        """
        return self._browser is not None

    async def start(self) -> None:
        """Start browsing. Calling start() on a running watcher does nothing.

        :returns: None
        """
        if self._browser is not None:
            return
        self._loop = asyncio.get_running_loop()
        if self._zeroconf is None:
            self._zeroconf = zeroconf.Zeroconf()
        _LOGGER.info('Searching for cast device named "%s"', self._device_name)
        self._start_browser()

    async def stop(self) -> None:
        """Stop browsing and release the mDNS sockets.

        :returns: None
        """
        self._stop_browser()
        if self._zeroconf is not None:
            zc, self._zeroconf = self._zeroconf, None
            await asyncio.to_thread(zc.close)

    def _start_browser(self) -> None:
        self._browser = pychromecast.CastBrowser(
            pychromecast.SimpleCastListener(
                self._on_cast_seen, self._on_cast_removed, self._on_cast_seen
            ),
            self._zeroconf,
        )
        self._browser.start_discovery()
        if self._loop is not None:
            self._rearm_timer = self._loop.call_later(self._rearm_interval, self._rearm)

    def _stop_browser(self) -> None:
        if self._rearm_timer is not None:
            self._rearm_timer.cancel()
            self._rearm_timer = None
        if self._browser is not None:
            browser, self._browser = self._browser, None
            browser.stop_discovery()

    def restart(self) -> None:
        """Replace the browser with a fresh one and reset the re-arm timer.

        Devices still on the network are announced again. Does nothing when
        the watcher is stopped.

        :returns: None
        """
        if self._browser is None:
            return
        _LOGGER.debug('Restarting browser for "%s"', self._device_name)
        self._stop_browser()
        self._start_browser()

    def _rearm(self) -> None:
        self._rearm_timer = None
        self.restart()

    def _on_cast_seen(self, uuid_val: uuid.UUID, service: str) -> None:
        """Handle a new or updated announcement (zeroconf thread).

        :param uuid_val: Unique identifier of the device.
        :param service: The mDNS service name.
        """
        browser = self._browser
        if browser is None:
            return
        info = browser.devices.get(uuid_val)
        if info is None or not info.friendly_name:
            return
        if info.friendly_name.lower() != self._device_name.lower():
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._report, str(info.host), int(info.port))

    def _on_cast_removed(self, uuid_val: uuid.UUID, service: str, cast_info: Any) -> None:
        # Losing the announcement says nothing about the connection itself.
        _LOGGER.debug("Cast device removed: %s (%s)", service, uuid_val)

    def _report(self, host: str, port: int) -> None:
        if self._browser is None:
            return
        _LOGGER.info('Cast device "%s" found on %s:%s', self._device_name, host, port)
        self._found(host, port)


async def scan(timeout: float) -> list[DiscoveredDevice]:
    """Browse for cast devices for a while and return what was seen.

    :param timeout: Seconds to browse.
    :returns: The discovered devices, sorted by name.
    """
    zc = zeroconf.Zeroconf()
    browser = pychromecast.CastBrowser(pychromecast.SimpleCastListener(), zc)
    try:
        browser.start_discovery()
        await asyncio.sleep(timeout)
        devices = [DiscoveredDevice.from_cast_info(info) for info in browser.devices.values()]
    finally:
        browser.stop_discovery()
        await asyncio.to_thread(zc.close)
    return sorted(devices, key=lambda d: d.name.lower())


__all__ = ["REARM_INTERVAL", "DiscoveredDevice", "DiscoveryWatcher", "scan"]
