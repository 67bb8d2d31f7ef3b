"""Command-line interface for the cast2mqtt bridge.

This module provides the `cast2mqtt` command, which connects the configured
cast devices to an MQTT broker and runs until interrupted.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import NoReturn

import cast2mqtt.config as _config
import cast2mqtt.errors as _errors
from cast2mqtt.mqtt import MqttBridge
from cast2mqtt.service import BridgeService

_LOGGER = logging.getLogger(__name__)


async def run_bridge(config: _config.Config) -> None:
    """Run the bridge until SIGINT or SIGTERM.

    :param config: The loaded configuration.
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    mqtt = MqttBridge(config.mqtt)
    service = BridgeService(config, mqtt)
    try:
        await service.start()
        _LOGGER.info("Bridge running with %d device(s)", len(config.devices))
        await stop.wait()
        _LOGGER.info("Shutting down")
    finally:
        await service.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main() -> NoReturn:
    """Entry point for cast2mqtt command."""
    parser = argparse.ArgumentParser(
        description="Bridge Chromecast devices to an MQTT broker."
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help=(
            f"Configuration file (default: ${_config.CONFIG_ENV} or "
            f"{_config.DEFAULT_CONFIG_PATH})"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (e.g., -v for INFO, -vv for DEBUG)",
    )

    args = parser.parse_args()

    log_level = logging.WARNING
    if args.verbose == 1:
        log_level = logging.INFO
    elif args.verbose >= 2:  # noqa: PLR2004
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = _config.load_config(args.config)
    except _errors.ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        sys.exit(130)

    sys.exit(0)


if __name__ == "__main__":
    main()
