"""Run the control plane until interrupted: ``python -m playground``."""

from __future__ import annotations

import asyncio
import signal

import structlog

from playground.config import get_settings
from playground.control_plane import ControlPlane
from playground.logging import configure_logging

logger = structlog.get_logger()


async def run() -> None:
    settings = get_settings()
    configure_logging(settings.logging)

    control_plane = ControlPlane(settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await control_plane.start()
    try:
        await stop_event.wait()
    finally:
        await control_plane.stop()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
