"""
Certimos — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- respx router intercepting every outbound HTTP request
- Metadata resolver over a respx-intercepted httpx client
- Scanner with zero inter-batch delay
- In-memory aiosqlite session factory for the deployment registry
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import AsyncGenerator

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from certimos.discovery.metadata import MetadataResolver
from certimos.discovery.scanner import OwnershipScanner, ScanConfig
from certimos.models.base import Base


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Discovery Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scan_config() -> ScanConfig:
    """Default probe bounds without the inter-batch courtesy delay."""
    return ScanConfig(hard_cap=50, probe_multiplier=10, batch_size=3, batch_delay_seconds=0)


@pytest.fixture
def http_mock() -> Iterator[respx.MockRouter]:
    """
    respx router for metadata fetches.

    Requests a test did not route fail; routes a test adds need not be called.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
async def resolver(http_mock: respx.MockRouter) -> AsyncGenerator[MetadataResolver, None]:
    """Resolver over an httpx client intercepted by http_mock."""
    async with httpx.AsyncClient() as client:
        yield MetadataResolver(client=client)


@pytest.fixture
def scanner(resolver: MetadataResolver, scan_config: ScanConfig) -> OwnershipScanner:
    return OwnershipScanner(resolver, scan_config)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory SQLite database.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
