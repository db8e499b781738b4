"""
Certimos — Ownership Scanner

Finds the certificates a wallet owns on one contract. The contract exposes no
enumeration primitive, so the scan is a bounded linear probe:

1. balanceOf(wallet); zero -> empty result, no probes
2. probe ids [0, min(HARD_CAP, balance * PROBE_MULTIPLIER)) in fixed-size batches
3. ownerOf() for each id in a batch concurrently; nonexistent ids are skipped
4. for owned ids: tokenURI() -> metadata -> valuation -> TokenRecord
5. stop after the batch in which the number of records reaches the balance

Batches run in increasing id order and records are appended in id order
regardless of which lookups complete first.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pydantic import BaseModel, Field

from certimos.chain.contract import ContractReader
from certimos.config import settings
from certimos.discovery.metadata import MetadataResolver
from certimos.discovery.records import ScanResult, TokenRecord, build_token_record
from certimos.discovery.valuation import valuate
from certimos.errors import TokenNotFoundError, UpstreamUnavailableError
from certimos.utils.validation import validate_address

logger = structlog.get_logger(__name__)


class ScanConfig(BaseModel):
    """Probe bounds and pacing for a single-contract scan."""

    hard_cap: int = Field(default_factory=lambda: settings.SCAN_HARD_CAP, ge=0)
    probe_multiplier: int = Field(default_factory=lambda: settings.SCAN_PROBE_MULTIPLIER, ge=1)
    batch_size: int = Field(default_factory=lambda: settings.SCAN_BATCH_SIZE, ge=1)
    batch_delay_seconds: float = Field(
        default_factory=lambda: settings.SCAN_BATCH_DELAY_SECONDS, ge=0
    )

    def probe_bound(self, balance: int) -> int:
        """Exclusive upper bound on token ids to probe for a given balance."""
        return min(self.hard_cap, balance * self.probe_multiplier)


class OwnershipScanner:
    """
    Scans one contract at a time for a wallet's certificates.

    The scanner holds no per-scan state; one instance can serve many
    concurrent scans as long as each scan gets its own ContractReader.
    """

    def __init__(
        self,
        resolver: MetadataResolver,
        config: ScanConfig | None = None,
    ) -> None:
        self._resolver = resolver
        self._config = config or ScanConfig()

    @property
    def config(self) -> ScanConfig:
        return self._config

    async def _check_token(
        self,
        reader: ContractReader,
        token_id: int,
        wallet_address: str,
        with_metadata: bool,
    ) -> TokenRecord | None:
        """Return a record if the wallet owns token_id, else None."""
        try:
            owner = await reader.owner_of(token_id)
        except TokenNotFoundError:
            return None

        if owner.lower() != wallet_address.lower():
            return None

        token_uri = ""
        metadata: dict[str, Any] | None = None
        if with_metadata:
            try:
                token_uri = await reader.token_uri(token_id)
            except (TokenNotFoundError, UpstreamUnavailableError) as e:
                logger.warning(
                    "scan_token_uri_failed",
                    contract_address=reader.address,
                    token_id=token_id,
                    error=str(e),
                )
            metadata = await self._resolver.resolve(token_uri)

        valuation = valuate(token_id, metadata, token_uri)
        return build_token_record(
            token_id=token_id,
            owner=owner,
            token_uri=token_uri,
            metadata=metadata,
            valuation=valuation,
            contract_address=reader.address,
        )

    async def scan(
        self,
        reader: ContractReader,
        wallet_address: str,
        with_metadata: bool = True,
    ) -> ScanResult:
        """
        Scan a contract for certificates owned by wallet_address.

        Args:
            reader: Connection to the contract being scanned.
            wallet_address: 0x-prefixed wallet address.
            with_metadata: When False, skip tokenURI and metadata resolution and
                value every token with absent metadata.

        Returns:
            ScanResult with records in token id order.

        Raises:
            InputValidationError: If wallet_address is malformed.
            UpstreamUnavailableError: If balanceOf cannot be read.
        """
        wallet_address = validate_address(wallet_address)

        balance = await reader.balance_of(wallet_address)
        logger.info(
            "scan_balance_read",
            contract_address=reader.address,
            wallet_address=wallet_address,
            balance=balance,
        )
        if balance <= 0:
            return ScanResult(
                wallet_address=wallet_address,
                contract_address=reader.address,
                balance=0,
            )

        bound = self._config.probe_bound(balance)
        batch_size = self._config.batch_size
        records: list[TokenRecord] = []
        probed = 0

        for start in range(0, bound, batch_size):
            token_ids = list(range(start, min(start + batch_size, bound)))
            outcomes = await asyncio.gather(
                *(
                    self._check_token(reader, token_id, wallet_address, with_metadata)
                    for token_id in token_ids
                ),
                return_exceptions=True,
            )
            probed += len(token_ids)

            for token_id, outcome in zip(token_ids, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning(
                        "scan_token_check_failed",
                        contract_address=reader.address,
                        token_id=token_id,
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                elif outcome is not None:
                    records.append(outcome)

            if len(records) >= balance:
                logger.info(
                    "scan_all_tokens_found",
                    contract_address=reader.address,
                    found=len(records),
                    probed=probed,
                )
                break

            if start + batch_size < bound and self._config.batch_delay_seconds > 0:
                await asyncio.sleep(self._config.batch_delay_seconds)

        logger.info(
            "scan_complete",
            contract_address=reader.address,
            wallet_address=wallet_address,
            balance=balance,
            found=len(records),
            probed=probed,
        )
        return ScanResult(
            wallet_address=wallet_address,
            contract_address=reader.address,
            balance=balance,
            records=records,
            probed=probed,
        )
