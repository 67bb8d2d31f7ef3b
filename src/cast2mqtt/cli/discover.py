"""Command-line interface for cast device discovery.

This module provides the `cast2mqtt-discover` command, which lists the cast
devices on the network so their names and addresses can be copied into the
configuration file.
"""

import argparse
import asyncio
import logging
import sys
from typing import NoReturn

from cast2mqtt import discovery


async def discover_devices(timeout: float) -> None:
    """Run discovery and print results.

    :param timeout: Time in seconds to wait for discovery.
    """
    print(f"Starting discovery... (waiting {timeout}s)")

    # Discovery is asynchronous; give the network time to answer mDNS queries.
    devices = await discovery.scan(timeout)

    print(f"\nDiscovered {len(devices)} device(s):")

    if not devices:
        return

    headers = ["Name", "Host", "Port", "Model"]

    # Column width is the longest cell, header included
    widths = [len(h) for h in headers]
    rows: list[list[str]] = []

    for d in devices:
        row = [d.name, d.host, str(d.port), d.model or "N/A"]
        rows.append(row)
        for i, col in enumerate(row):
            widths[i] = max(widths[i], len(col))

    widths = [w + 2 for w in widths]
    fmt = "".join(f"{{:<{w}}}" for w in widths)

    print("-" * sum(widths))
    print(fmt.format(*headers))
    print("-" * sum(widths))

    for row in rows:
        print(fmt.format(*row))
    print("-" * sum(widths))


def main() -> NoReturn:
    """Entry point for cast2mqtt-discover command."""
    parser = argparse.ArgumentParser(description="Discover and list cast devices.")
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=10.0,
        help="Discovery timeout in seconds (default: 10.0)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (e.g., -v for INFO, -vv for DEBUG)",
    )

    args = parser.parse_args()

    log_level = logging.CRITICAL
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
        asyncio.run(discover_devices(args.timeout))
    except KeyboardInterrupt:
        print("\nDiscovery cancelled by user.")
        sys.exit(130)
    except Exception as e:
        print(f"\nError during discovery: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
