"""
MongoDB connection management for the idempotency ledger.

Only used when LEDGER_BACKEND=mongo; the in-memory ledger needs no setup.
"""

from pymongo import AsyncMongoClient
from beanie import init_beanie
from paygate.models import LedgerEntry
from paygate.core.config import LedgerConfig
from paygate.core.exceptions import DatabaseError, ConfigurationError
from paygate.core.monitoring import monitor_errors
import logging
import asyncio
from datetime import datetime, timezone
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_not_exception_type
from typing import Dict, Any

logger = logging.getLogger(__name__)

# Global database client instance
_db_client = None


@monitor_errors("database_init")
@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(ConfigurationError),
    reraise=True,
)
async def init_db(config: LedgerConfig) -> AsyncMongoClient:
    """
    Connect to MongoDB and initialize Beanie with the ledger document.

    Raises:
        DatabaseError: If database connection fails
        ConfigurationError: If configuration is invalid
    """
    global _db_client

    if not config.mongo_url:
        raise ConfigurationError(
            "MONGO_URL is required for the mongo ledger",
            config_key="MONGO_URL",
            expected_value="mongodb://localhost:27017/paygate",
        )

    client = None
    try:
        logger.info("Connecting to MongoDB for the idempotency ledger")

        client = AsyncMongoClient(
            config.mongo_url,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
        )

        try:
            await asyncio.wait_for(client.admin.command("ping"), timeout=5.0)
        except asyncio.TimeoutError:
            raise DatabaseError("Database connection timeout", operation="ping_test")

        await init_beanie(
            database=client.get_default_database(),
            document_models=[LedgerEntry],
        )

        _db_client = client
        logger.info("MongoDB connected and Beanie initialized successfully")
        return client

    except DatabaseError:
        if client is not None:
            await client.close()
        raise
    except Exception as e:
        logger.error("Failed to initialize database", exc_info=True)
        if client is not None:
            await client.close()
        raise DatabaseError(
            "Database initialization failed",
            operation="init_db",
        ) from e


async def close_database():
    """Close the database connection gracefully."""
    global _db_client

    if _db_client:
        await _db_client.close()
        _db_client = None
        logger.info("Database connection closed")


async def health_check() -> Dict[str, Any]:
    """Report whether the ledger database is reachable."""
    if _db_client is None:
        return {
            "status": "unavailable",
            "database": "not_initialized",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    try:
        await _db_client.admin.command("ping")
        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except Exception:
        logger.warning("Ledger database ping failed", exc_info=True)
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
