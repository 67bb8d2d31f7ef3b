"""Unit tests for cast2mqtt.reconnect module."""

import asyncio
from unittest.mock import MagicMock

import pytest

import cast2mqtt.reconnect as _reconnect


def _controller(static: bool = False, **kwargs: float) -> _reconnect.ReconnectController:
    return _reconnect.ReconnectController(
        "kitchen",
        static=static,
        reconnect=MagicMock(),
        rediscover=MagicMock(),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_delay_grows_linearly() -> None:
    """The Nth consecutive failure waits 2 s times N."""
    ctl = _controller()
    delays = [ctl.connection_lost() for _ in range(5)]

    assert delays == [2.0, 4.0, 6.0, 8.0, 10.0]
    assert ctl.state.attempt_count == 5
    ctl.cancel()


@pytest.mark.asyncio
async def test_only_one_retry_pending() -> None:
    """A new failure replaces the pending timer instead of adding one."""
    ctl = _controller()
    ctl.connection_lost()
    first = ctl.state.timer
    ctl.connection_lost()

    assert first is not None
    assert first.cancelled()
    assert ctl.pending
    ctl.cancel()
    assert not ctl.pending


@pytest.mark.asyncio
async def test_success_resets_counter() -> None:
    """A successful connection cancels the retry and resets the count."""
    ctl = _controller()
    ctl.connection_lost()
    ctl.connection_lost()

    ctl.connection_succeeded()

    assert ctl.state.attempt_count == 0
    assert not ctl.pending
    assert ctl.connection_lost() == 2.0
    ctl.cancel()


@pytest.mark.asyncio
async def test_rediscovers_after_max_retries() -> None:
    """The failure after the last allowed retry hands over to discovery."""
    ctl = _controller()
    for n in range(1, _reconnect.MAX_RETRIES + 1):
        assert ctl.connection_lost() == 2.0 * n

    assert ctl.connection_lost() is None

    ctl._rediscover.assert_called_once()  # type: ignore[attr-defined]
    assert ctl.state.attempt_count == 0
    assert not ctl.pending


@pytest.mark.asyncio
async def test_static_target_never_rediscovers() -> None:
    """A static target keeps retrying with the delay capped."""
    ctl = _controller(static=True, max_retries=3)
    delays = [ctl.connection_lost() for _ in range(5)]

    assert delays == [2.0, 4.0, 6.0, 6.0, 6.0]
    ctl._rediscover.assert_not_called()  # type: ignore[attr-defined]
    ctl.cancel()


@pytest.mark.asyncio
async def test_timer_fires_reconnect() -> None:
    """When the delay elapses the reconnect callback runs."""
    ctl = _controller(retry_delay=0.01)
    ctl.connection_lost()

    await asyncio.sleep(0.05)

    ctl._reconnect.assert_called_once()  # type: ignore[attr-defined]
    assert not ctl.pending
