"""
Certimos — Deployment Model

One row per deployed certificate contract, keyed by its human-readable name
(e.g. "DelhiMarathon"). The multi-contract scan reads every contract_address
out of this table when the caller names no contracts.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from certimos.models.base import Base


class Deployment(Base):
    """A certificate contract deployment record."""

    __tablename__ = "deployments"

    contract_name: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        comment="Human-readable deployment name (registry key)",
    )
    contract_address: Mapped[str] = mapped_column(
        String(42), nullable=False, index=True, comment="0x-prefixed contract address"
    )
    network: Mapped[str] = mapped_column(
        String, nullable=False, comment="Network the contract lives on (e.g. 'apothem')"
    )
    transaction_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True, comment="Deployment transaction hash"
    )
    block_number: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Deployment block (0 if unknown)"
    )
    deployer: Mapped[str | None] = mapped_column(
        String(42), nullable=True, comment="Address that sent the deployment"
    )
    owner: Mapped[str | None] = mapped_column(
        String(42), nullable=True, comment="Contract owner (allowed to mint)"
    )
    deployed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="When the contract was deployed"
    )
    last_updated: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last registry write",
    )

    def __repr__(self) -> str:
        return (
            f"<Deployment name={self.contract_name!r} "
            f"address={self.contract_address!r} network={self.network!r}>"
        )
