"""
Sweeper Initialization - Services Module.

Validates the environment and builds the deposit monitor.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import Settings
from app.services.deposit.monitor import DepositMonitor


def validate_environment(settings: Settings) -> None:
    """Log configuration problems that do not stop startup."""
    if settings.scan_start_block is not None:
        logger.info(
            f"SCAN_START_BLOCK={settings.scan_start_block} "
            f"applies only when no watermark is stored"
        )


def initialize_monitor(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> DepositMonitor:
    """
    Build the deposit monitor.

    Raises:
        ConfigurationError: If the mnemonic or hot wallet key is unusable
    """
    validate_environment(settings)
    monitor = DepositMonitor.from_settings(settings, session_factory)
    logger.info(
        f"Deposit monitor initialized for {settings.token_symbol} "
        f"({settings.token_decimals} decimals)"
    )
    return monitor
