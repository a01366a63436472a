"""
Sweeper Initialization - Shutdown Module.

Stops the monitor, the HTTP server and database connections.
"""

from aiohttp import web
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from app.services.deposit.monitor import DepositMonitor
from jobs.health import stop_health_server


async def shutdown_handler(
    monitor: DepositMonitor,
    engine: AsyncEngine,
    runner: web.AppRunner | None = None,
) -> None:
    """Handle graceful shutdown."""
    logger.info("Graceful shutdown initiated...")

    try:
        await monitor.shutdown()
        logger.info("Deposit monitor stopped")
    except Exception as e:
        logger.warning(f"Error stopping deposit monitor: {e}")

    if runner is not None:
        await stop_health_server(runner)

    try:
        await monitor.chain.close()
    except Exception as e:
        logger.warning(f"Error closing chain client: {e}")

    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Graceful shutdown complete")
