"""
Certimos — Deployment Registry

Keyed store of certificate contract deployments (name -> deployment record),
backed by the `deployments` table. Each write runs in its own session and
commits atomically.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certimos.models.deployment import Deployment
from certimos.utils.validation import dedupe_addresses, validate_address

logger = structlog.get_logger(__name__)


class DeploymentRecord(BaseModel):
    """A deployment as read from or written to the registry."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    contract_name: str = Field(..., min_length=1)
    contract_address: str
    network: str
    transaction_hash: str | None = None
    block_number: int = Field(default=0, ge=0)
    deployer: str | None = None
    owner: str | None = None
    deployed_at: datetime | None = None

    @field_validator("contract_address")
    @classmethod
    def check_contract_address(cls, v: str) -> str:
        return validate_address(v, field="contractAddress")


class DeploymentRegistry:
    """
    Async registry of contract deployments.

    Usage:
        registry = DeploymentRegistry(session_factory)
        await registry.save(DeploymentRecord(...))
        addresses = await registry.list_contract_addresses()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def save(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert or replace the deployment stored under record.contract_name."""
        async with self.session_factory() as session:
            await session.merge(Deployment(**record.model_dump()))
            await session.commit()

        logger.info(
            "registry_deployment_saved",
            contract_name=record.contract_name,
            contract_address=record.contract_address,
            network=record.network,
        )
        return record

    async def get(self, contract_name: str) -> DeploymentRecord | None:
        async with self.session_factory() as session:
            row = await session.get(Deployment, contract_name)
        return DeploymentRecord.model_validate(row) if row is not None else None

    async def get_contract_address(self, contract_name: str) -> str | None:
        record = await self.get(contract_name)
        return record.contract_address if record is not None else None

    async def list_all(self) -> list[DeploymentRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Deployment).order_by(Deployment.contract_name)
            )
            rows = result.scalars().all()
        return [DeploymentRecord.model_validate(row) for row in rows]

    async def list_contract_addresses(self) -> list[str]:
        """Every registered contract address as a plain string, deduplicated."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Deployment.contract_address).order_by(Deployment.contract_name)
            )
            addresses = list(result.scalars().all())
        return dedupe_addresses(addresses)
