"""Tests for the cast2mqtt-discover CLI tool."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from _pytest.capture import CaptureFixture

from cast2mqtt.cli.discover import discover_devices, main
from cast2mqtt.discovery import DiscoveredDevice


@pytest.mark.asyncio
async def test_discover_devices_no_devices(capsys: CaptureFixture[str]) -> None:
    """Test discover_devices when no devices are found."""
    with patch("cast2mqtt.discovery.scan", new_callable=AsyncMock) as mock_scan:
        mock_scan.return_value = []
        await discover_devices(0.1)

        mock_scan.assert_awaited_once_with(0.1)

        captured = capsys.readouterr()
        assert "Discovered 0 device(s):" in captured.out


@pytest.mark.asyncio
async def test_discover_devices_with_results(capsys: CaptureFixture[str]) -> None:
    """Test discover_devices when devices are found."""
    devices = [
        DiscoveredDevice(
            name="Kitchen speaker",
            host="192.168.1.20",
            port=8009,
            model="Google Home",
            uuid="id1",
        ),
        DiscoveredDevice(
            name="Living Room", host="192.168.1.21", port=32187, model=None, uuid="id2"
        ),
    ]

    with patch("cast2mqtt.discovery.scan", new_callable=AsyncMock) as mock_scan:
        mock_scan.return_value = devices
        await discover_devices(0.1)

        captured = capsys.readouterr()
        assert "Discovered 2 device(s):" in captured.out
        assert "Kitchen speaker" in captured.out
        assert "192.168.1.21" in captured.out
        assert "32187" in captured.out
        assert "N/A" in captured.out  # for the None model


def test_main_success() -> None:
    """Test main function successful execution."""

    def _run_mock(coro: Any) -> None:
        coro.close()

    with (
        patch("argparse.ArgumentParser.parse_args") as mock_args,
        patch("asyncio.run", side_effect=_run_mock) as mock_run,
        patch("sys.exit", side_effect=SystemExit) as mock_exit,
    ):
        mock_args.return_value = MagicMock(timeout=5.0, verbose=0)

        with pytest.raises(SystemExit):
            main()

        mock_run.assert_called_once()
        mock_exit.assert_called_with(0)


def test_main_keyboard_interrupt(capsys: CaptureFixture[str]) -> None:
    """Test main function handling KeyboardInterrupt."""

    def _run_mock(coro: Any) -> None:
        coro.close()
        raise KeyboardInterrupt

    with (
        patch("argparse.ArgumentParser.parse_args") as mock_args,
        patch("asyncio.run", side_effect=_run_mock),
        patch("sys.exit", side_effect=SystemExit) as mock_exit,
    ):
        mock_args.return_value = MagicMock(timeout=5.0, verbose=0)

        with pytest.raises(SystemExit):
            main()

        mock_exit.assert_called_with(130)
        captured = capsys.readouterr()
        assert "Discovery cancelled by user." in captured.out


def test_main_exception(capsys: CaptureFixture[str]) -> None:
    """Test main function handling generic exceptions."""

    def _run_mock(coro: Any) -> None:
        coro.close()
        raise RuntimeError("something went wrong")

    with (
        patch("argparse.ArgumentParser.parse_args") as mock_args,
        patch("asyncio.run", side_effect=_run_mock),
        patch("sys.exit", side_effect=SystemExit) as mock_exit,
    ):
        mock_args.return_value = MagicMock(timeout=5.0, verbose=0)

        with pytest.raises(SystemExit):
            main()

        mock_exit.assert_called_with(1)
        captured = capsys.readouterr()
        assert "Error during discovery: something went wrong" in captured.err


@pytest.mark.parametrize(
    "verbose_count,expected_level",
    [
        (0, 50),  # CRITICAL
        (1, 20),  # INFO
        (2, 10),  # DEBUG
        (3, 10),  # DEBUG (more than 2 stays at DEBUG)
    ],
)
def test_main_verbosity(verbose_count: int, expected_level: int) -> None:
    """Test main function configures logging level based on verbosity."""

    def _run_mock(coro: Any) -> None:
        coro.close()

    with (
        patch("argparse.ArgumentParser.parse_args") as mock_args,
        patch("asyncio.run", side_effect=_run_mock),
        patch("sys.exit", side_effect=SystemExit),
        patch("logging.basicConfig") as mock_logging,
    ):
        mock_args.return_value = MagicMock(timeout=5.0, verbose=verbose_count)

        with pytest.raises(SystemExit):
            main()

        assert mock_logging.call_args[1]["level"] == expected_level
