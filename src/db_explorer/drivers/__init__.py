"""Database drivers for the supported engines."""

import logging
from typing import Any, Union

from .base import DatabaseDriver
from .postgresql import PostgresDriver
from .sqlite import SQLiteDriver
from ..models.config import DatabaseConfig, Dialect

__all__ = [
    "DatabaseDriver",
    "PostgresDriver",
    "SQLiteDriver",
    "create_driver",
    "detect_dialect",
]

logger = logging.getLogger(__name__)

_DRIVERS: dict[Dialect, type[DatabaseDriver]] = {
    Dialect.SQLITE: SQLiteDriver,
    Dialect.POSTGRESQL: PostgresDriver,
}


def detect_dialect(descriptor: str) -> Dialect:
    """
    Detect database dialect from a connection descriptor.

    Args:
        descriptor: SQLite file path or connection URL

    Returns:
        Dialect of the descriptor

    Raises:
        ValueError: If the dialect is not supported
    """
    return DatabaseConfig(url=descriptor).dialect


async def create_driver(
    descriptor: Union[str, DatabaseConfig], **config_overrides: Any
) -> DatabaseDriver:
    """
    Build and open the driver for a connection descriptor.

    Args:
        descriptor: SQLite file path, connection URL, or a full configuration
        **config_overrides: DatabaseConfig fields (pool_size, schema_name, ...)

    Returns:
        Initialized driver; close it with ``await driver.close()``

    Raises:
        ValueError: If the descriptor names an unsupported engine
        DatabaseConnectionError: If the database cannot be opened or reached
    """
    if isinstance(descriptor, DatabaseConfig):
        config = descriptor.model_copy(update=config_overrides)
    else:
        config = DatabaseConfig(url=descriptor, **config_overrides)

    driver = _DRIVERS[config.dialect](config)
    await driver.initialize()
    logger.info("Opened %s", driver.label)
    return driver
