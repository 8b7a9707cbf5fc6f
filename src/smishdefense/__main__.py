"""Main entry point for the trainer bot."""
import asyncio
import logging
import signal

from smishdefense.app import SmishDefenseBot
from smishdefense.config import ensure_directories, settings
from smishdefense.logging_config import setup_logging
from smishdefense.monitoring import start_monitoring

logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the bot until a termination signal arrives."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    bot = SmishDefenseBot()
    try:
        logger.info("Starting bot...")
        await bot.start()
        await stop_event.wait()
        logger.info("Received exit signal, shutting down...")
    finally:
        logger.info("Cleaning up...")
        await bot.stop()


def run() -> None:
    """Console script entry point."""
    ensure_directories()

    setup_logging("Starting Smishing Defense bot v0.1.0 ...")

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info(f"Metrics exposed on port {settings.monitoring.port}")

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    run()
