"""
Sweeper main entry point.

Builds the deposit monitor, starts the health/control server and runs
until interrupted.
"""

import asyncio
import signal
import sys
from pathlib import Path

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings  # noqa: E402
from jobs.health import start_health_server  # noqa: E402
from jobs.initialization.logging import setup_logging  # noqa: E402
from jobs.initialization.services import initialize_monitor  # noqa: E402
from jobs.initialization.shutdown import shutdown_handler  # noqa: E402
from jobs.utils.database import task_engine, task_session_maker  # noqa: E402


async def main() -> None:
    """Initialize and run the deposit sweeper."""
    setup_logging()

    # ConfigurationError propagates: a bad mnemonic must stop the process
    monitor = initialize_monitor(settings, task_session_maker)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    runner = None
    try:
        runner = await start_health_server(
            monitor,
            host=settings.health_check_host,
            port=settings.health_check_port,
        )

        if settings.auto_start_deposit_monitor:
            await monitor.start()
        else:
            logger.info(
                "AUTO_START_DEPOSIT_MONITOR is off; monitor idle until POST /monitor/start"
            )

        await stop_event.wait()
    finally:
        await shutdown_handler(monitor, task_engine, runner)


def run() -> None:
    """Console entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Sweeper stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Sweeper crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
