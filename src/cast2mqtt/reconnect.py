"""Reconnect controller: what to do after a cast device connection is lost."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

_LOGGER = logging.getLogger(__name__)

# Seconds added to the retry delay per consecutive failure.
RETRY_DELAY = 2.0
# Retries against a known address before discovery takes over again; with
# RETRY_DELAY this bounds a single wait to five minutes.
MAX_RETRIES = 150


@dataclass
class RetryState:
    """Consecutive failures and the pending retry timer.

    :param attempt_count: Retries scheduled since the last successful connect.
    :param timer: The pending retry, if any.
    """

    attempt_count: int = 0
    timer: asyncio.TimerHandle | None = None


class ReconnectController:
    """Schedule reconnects with linear backoff, then fall back to discovery.

    A static target (address fixed by configuration) is always retried at
    the same address.
    """

    def __init__(
        self,
        label: str,
        *,
        static: bool,
        reconnect: Callable[[], None],
        rediscover: Callable[[], None],
        retry_delay: float = RETRY_DELAY,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        """Initialize the controller.

        :param label: Device identity used in log messages.
        :param static: True when the address is fixed by configuration.
        :param reconnect: Called when a retry is due.
        :param rediscover: Called when the known address is abandoned.
        :param retry_delay: Seconds of delay per consecutive failure.
        :param max_retries: Retries before handing over to discovery.
        """
        self._label = label
        self._static = static
        self._reconnect = reconnect
        self._rediscover = rediscover
        self._retry_delay = retry_delay
        self._max_retries = max_retries
        self.state = RetryState()

    @property
    def pending(self) -> bool:
        """Return True while a retry is scheduled.

        :returns: True if a retry timer is armed.
        """
        return self.state.timer is not None

    def connection_succeeded(self) -> None:
        """Reset the backoff after a successful connection.

        :returns: None
        """
        self.cancel()
        self.state.attempt_count = 0

    def connection_lost(self) -> float | None:
        """Decide how to recover from a lost or failed connection.

        Any pending retry is cancelled first so that two attempts can never
        be scheduled at once.

        :returns: The delay of the scheduled retry in seconds, or None when
            the address was abandoned for rediscovery.
        """
        self.cancel()

        if not self._static and self.state.attempt_count >= self._max_retries:
            _LOGGER.info(
                "%s: giving up on the known address, searching again", self._label
            )
            self.state.attempt_count = 0
            self._rediscover()
            return None

        self.state.attempt_count += 1
        delay = self._retry_delay * min(self.state.attempt_count, self._max_retries)
        _LOGGER.info(
            "%s: reconnecting in %.0fs (attempt %d)",
            self._label,
            delay,
            self.state.attempt_count,
        )
        loop = asyncio.get_running_loop()
        self.state.timer = loop.call_later(delay, self._fire)
        return delay

    def cancel(self) -> None:
        """Cancel the pending retry, if any.

        :returns: None
        """
        if self.state.timer is not None:
            self.state.timer.cancel()
            self.state.timer = None

    def _fire(self) -> None:
        self.state.timer = None
        self._reconnect()


__all__ = ["MAX_RETRIES", "RETRY_DELAY", "ReconnectController", "RetryState"]
