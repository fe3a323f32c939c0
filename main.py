"""
Process entry point for the race betting back end.

Builds the service container and keeps the notification and reconciliation
workers running until the process is interrupted. The HTTP front end embeds
the same container and calls its services.
"""

import asyncio
import logging
import signal

# Configure logging before importing modules that create loggers
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    force=True,
)
logger = logging.getLogger("racebet")

# python-telegram-bot logs every HTTP request through httpx at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from infrastructure.service_container import ServiceConfig, ServiceContainer  # noqa: E402


async def run() -> None:
    container = ServiceContainer(ServiceConfig.from_env())
    await container.initialize()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    logger.info(
        f"racebet running (db={container.config.db_path}, "
        f"settlement={container.config.settlement_mode}, pricing={container.config.pricing_mode})"
    )
    try:
        await stop.wait()
    finally:
        await container.shutdown()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
