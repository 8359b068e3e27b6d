"""Command line entry point: ``python -m taskdb [serve|migrate]``.

Exit codes: 0 on orderly shutdown, 1 when the startup gate fails, 2 when
the settings are invalid.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from .core.exceptions import StartupError
from .logger import bind_context, configure_logging, get_logger
from .service import TaskService
from .settings import Settings
from .startup.gate import StartupGate

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1
EXIT_BAD_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskdb", description="Replica-aware tasks data service")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("serve", "migrate"),
        default="serve",
        help="serve: start and hold the data layer until SIGINT/SIGTERM; migrate: run the startup gate and exit",
    )
    return parser


async def amigrate(settings: Settings) -> None:
    cluster_config = settings.to_cluster_config()
    gate = StartupGate(cluster_config.primary, settings.to_readiness_config(), settings.migration_source())
    await gate.arun()


async def aserve(settings: Settings, stop: asyncio.Event | None = None) -> None:
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        async with TaskService(settings):
            await stop.wait()
            logger.info("Shutdown requested")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    bind_context(command=args.command)

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error("Invalid settings", error=str(e))
        return EXIT_BAD_CONFIG

    runner = amigrate(settings) if args.command == "migrate" else aserve(settings)
    try:
        asyncio.run(runner)
    except StartupError:
        logger.exception("Failed to start server")
        return EXIT_STARTUP_FAILED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
