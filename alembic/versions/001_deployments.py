"""Create deployments table

Revision ID: 001_deployments
Revises:
Create Date: 2026-10-16

Adds:
  - deployments table keyed by contract_name
  - index on contract_address (registry-wide scans read every address)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_deployments"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "deployments",
        sa.Column("contract_name", sa.String(), primary_key=True),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("network", sa.String(), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=True),
        sa.Column("block_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deployer", sa.String(42), nullable=True),
        sa.Column("owner", sa.String(42), nullable=True),
        sa.Column("deployed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "last_updated",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_deployments_contract_address", "deployments", ["contract_address"]
    )


def downgrade() -> None:
    op.drop_index("ix_deployments_contract_address", table_name="deployments")
    op.drop_table("deployments")
