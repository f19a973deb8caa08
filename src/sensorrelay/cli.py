"""Command-line interface for sensorrelay.

Provides the main entry point for running the relay server or a
simulated device against a running relay.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="sensorrelay",
        description="Relay between a sensor/LED device and live web clients",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/sensorrelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override the listen host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override the listen port")
    serve_parser.add_argument(
        "--mode", choices=["push", "proxy"], default=None,
        help="Override relay.mode",
    )
    serve_parser.add_argument(
        "--auth", choices=["none", "device", "operator"], default=None,
        help="Override auth.mode",
    )

    sim_parser = subparsers.add_parser(
        "simulate-device", help="Push simulated readings to a running relay",
    )
    sim_parser.add_argument("--url", type=str, default=None, help="Relay base URL")
    sim_parser.add_argument(
        "--cycles", type=int, default=None,
        help="Stop after this many readings (default: run until interrupted)",
    )

    return parser.parse_args(argv)


def _serve(settings, args) -> None:
    """Run the relay under uvicorn."""
    import uvicorn
    from sensorrelay.server.app import create_app

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.mode:
        settings.relay.mode = args.mode
    if args.auth:
        settings.auth.mode = args.auth

    app = create_app(settings)
    logger.info("Relay listening on http://%s:%d", settings.server.host, settings.server.port)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


async def _simulate_device(settings, args) -> None:
    """Run a simulated device until interrupted."""
    from sensorrelay.device.simulator import SimulatedDevice

    sim = settings.simulator
    device = SimulatedDevice(
        base_url=args.url or sim.url,
        api_key=settings.device.api_key.get_secret_value(),
        timeout=sim.timeout,
        push_interval=sim.push_interval,
        poll_interval=sim.poll_interval,
    )
    async with device:
        await device.run(max_cycles=args.cycles)
    print(f"Commands applied: {device.commands_applied}")
    print(f"Final LED state: {device.led.model_dump()}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the sensorrelay CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from sensorrelay.config.settings import load_settings
    from sensorrelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting relay server")
        _serve(settings, args)

    elif args.command == "simulate-device":
        logger.info("Starting simulated device")
        try:
            asyncio.run(_simulate_device(settings, args))
        except KeyboardInterrupt:
            logger.info("Simulated device stopped")


if __name__ == "__main__":
    main()
