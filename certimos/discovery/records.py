"""
Certimos — Token Records & Aggregates

Immutable result types produced by the ownership scanner and the multi-contract
aggregator. Aggregate statistics are always recomputed from a record list,
never merged from sub-aggregates.

JSON field names are camelCase to match the public API.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from certimos.config import settings

_PLACEHOLDER_DESCRIPTION = "Certificate NFT"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------


class Valuation(_CamelModel):
    """Derived score attached to a certificate for display and gamification."""

    points: int = Field(..., ge=0)
    rarity: str
    category: str


# ---------------------------------------------------------------------------
# Token Record
# ---------------------------------------------------------------------------


class TokenRecord(_CamelModel):
    """A certificate confirmed to be owned by the scanned wallet."""

    token_id: str = Field(..., description="Decimal token id")
    owner: str
    token_uri: str = Field(default="", alias="tokenURI")
    metadata: dict[str, Any] | None = None
    name: str
    description: str
    image: str | None = None
    attributes: list[Any] = Field(default_factory=list)
    points: int = Field(..., ge=0)
    rarity: str
    category: str
    contract_address: str | None = None


def fix_image_url(image_url: str | None) -> str | None:
    """Point legacy frontend upload URLs at the backend that actually serves them."""
    if not image_url:
        return None
    legacy_prefix = f"{settings.LEGACY_UPLOADS_ORIGIN}/uploads/"
    if legacy_prefix in image_url:
        return image_url.replace(settings.LEGACY_UPLOADS_ORIGIN, settings.PUBLIC_BASE_URL)
    return image_url


def build_token_record(
    token_id: int,
    owner: str,
    token_uri: str,
    metadata: Mapping[str, Any] | None,
    valuation: Valuation,
    contract_address: str | None = None,
) -> TokenRecord:
    """
    Assemble a TokenRecord, substituting placeholders for absent metadata.

    Metadata that could not be fetched or parsed degrades the record's display
    fields; it never fails the record.
    """
    document = dict(metadata) if metadata is not None else None
    source: Mapping[str, Any] = document or {}

    attributes = source.get("attributes")
    image = source.get("image")

    return TokenRecord(
        token_id=str(token_id),
        owner=owner,
        token_uri=token_uri,
        metadata=document,
        name=str(source.get("name") or f"Certificate #{token_id}"),
        description=str(source.get("description") or _PLACEHOLDER_DESCRIPTION),
        image=fix_image_url(image if isinstance(image, str) else None),
        attributes=list(attributes) if isinstance(attributes, list) else [],
        points=valuation.points,
        rarity=valuation.rarity,
        category=valuation.category,
        contract_address=contract_address,
    )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ValueBreakdown(_CamelModel):
    """Aggregate statistics over a set of token records."""

    total_certificates: int = 0
    total_points: int = 0
    average_points: int = 0
    rarity_distribution: dict[str, int] = Field(default_factory=dict)
    category_distribution: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[TokenRecord]) -> ValueBreakdown:
        """Fold a record list into totals, average and histograms."""
        records = list(records)
        total_points = sum(record.points for record in records)
        average = (
            _round_half_up(Decimal(total_points) / Decimal(len(records)))
            if records
            else 0
        )
        return cls(
            total_certificates=len(records),
            total_points=total_points,
            average_points=average,
            rarity_distribution=dict(Counter(record.rarity for record in records)),
            category_distribution=dict(Counter(record.category for record in records)),
        )


class ScanResult(_CamelModel):
    """Outcome of scanning one contract for one wallet."""

    wallet_address: str
    contract_address: str
    balance: int = 0
    records: list[TokenRecord] = Field(default_factory=list)
    probed: int = Field(default=0, description="Number of token ids probed")

    @computed_field
    @property
    def count(self) -> int:
        return len(self.records)

    @computed_field
    @property
    def total_points(self) -> int:
        return sum(record.points for record in self.records)

    @computed_field
    @property
    def breakdown(self) -> ValueBreakdown:
        return ValueBreakdown.from_records(self.records)


class ContractScanStatus(_CamelModel):
    """Per-contract outcome inside a multi-contract scan."""

    contract_address: str
    success: bool
    count: int = 0
    total_points: int = 0
    error: str | None = None


class AggregateScanResult(_CamelModel):
    """Merged outcome of scanning several contracts for one wallet."""

    wallet_address: str
    contract_addresses: list[str] = Field(default_factory=list)
    records: list[TokenRecord] = Field(default_factory=list)
    contract_results: dict[str, ContractScanStatus] = Field(default_factory=dict)

    @computed_field
    @property
    def count(self) -> int:
        return len(self.records)

    @computed_field
    @property
    def total_points(self) -> int:
        return sum(record.points for record in self.records)

    @computed_field
    @property
    def breakdown(self) -> ValueBreakdown:
        return ValueBreakdown.from_records(self.records)

    @property
    def failed_contracts(self) -> list[str]:
        return [
            address
            for address, status in self.contract_results.items()
            if not status.success
        ]
