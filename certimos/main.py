"""
Certimos — Application Entrypoint

Configures structlog, verifies the deployment registry database, and serves
the HTTP API with uvicorn.

Run via:
    python -m certimos.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import structlog
import uvicorn
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from certimos.api.app import create_app
from certimos.config import settings
from certimos.models import Base


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # stdlib logging carries uvicorn, httpx and web3 output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create the SQLAlchemy async engine and session factory for the registry.

    Tables are created if missing, so a fresh SQLite file works without
    running migrations first.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing", database_url=settings.DATABASE_URL)

    engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await engine.dispose()
        raise

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Warn about missing chain configuration
    3. Serve the API (engine, registry and resolver are built in the app lifespan)
    """
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("certimos_startup_begin", network=settings.NETWORK_NAME)

    if not settings.RPC_URL:
        logger.warning("config_rpc_url_missing", note="contract endpoints will return 500")
    if not settings.PRIVATE_KEY:
        logger.warning("config_private_key_missing", note="minting and transfer disabled")
    if not settings.DEFAULT_CONTRACT_ADDRESS:
        logger.warning(
            "config_default_contract_missing",
            note="single-contract endpoints require contractAddress",
        )

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(),
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_config=None,
        )
    )

    try:
        await server.serve()
    except KeyboardInterrupt:
        logger.info("certimos_interrupted_by_user")
    finally:
        logger.info("certimos_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
