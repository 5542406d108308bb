#!/usr/bin/env python3
"""
NUT Monitor - Entry Point

Polls one or more UPS devices through a Network UPS Tools server and keeps
their capabilities and values up to date.

Usage:
    nut-monitor                         # Start with default config.yaml
    nut-monitor --config my.yaml        # Use custom config file
    nut-monitor --dry-run               # Print config and exit
    nut-monitor --verbose               # Enable debug logging
"""

import argparse
import asyncio
import sys

from nut_monitor.common.config import MonitorConfig, load_config_file
from nut_monitor.common.exceptions import ConfigError
from nut_monitor.common.logging_setup import get_service_logger, set_log_level
from nut_monitor.services.ups.service import UpsService

# Default configuration path
DEFAULT_CONFIG_PATH = "config.yaml"

logger = get_service_logger("main")


def print_startup_banner(config: MonitorConfig) -> None:
    """Print startup information."""
    print()
    print("=" * 60)
    print("  NUT MONITOR")
    print("=" * 60)
    print()
    print(f"  Health server: {config.service.health_host}:{config.service.health_port}")
    print(f"  Devices: {len(config.devices)}")
    for device in config.devices:
        settings = device.settings
        user = settings.username or "anonymous"
        print(
            f"    - {device.display_name} ({device.id}): "
            f"{device.name}@{settings.ip}:{settings.port} "
            f"every {settings.interval}s as {user}"
        )
    print()
    print("=" * 60)
    print()


async def run(config_path: str) -> None:
    service = UpsService(config_path=config_path)

    try:
        await service.start()
    finally:
        await service.stop()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Poll UPS devices through a NUT server",
    )
    parser.add_argument(
        "--config", "-c",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without polling",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        print(e.message, file=sys.stderr)
        return 1

    set_log_level("DEBUG" if args.verbose else config.service.log_level)

    print_startup_banner(config)

    if args.dry_run:
        print("Dry run - exiting without polling")
        return 0

    try:
        asyncio.run(run(args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
