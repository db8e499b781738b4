"""
Certimos — Multi-Contract Aggregator

Fans an ownership scan out across several contracts concurrently. Every
contract gets its own reader; a contract that fails is reported in
contract_results and never affects the others. Aggregate totals are
recomputed over the merged record list.

When no contract list is given, candidates come from the deployment registry
plus any configured legacy contracts.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from certimos.chain.contract import ContractReader, ContractReaderFactory
from certimos.config import settings
from certimos.discovery.records import AggregateScanResult, ContractScanStatus, ScanResult, TokenRecord
from certimos.discovery.scanner import OwnershipScanner
from certimos.errors import ConfigurationError
from certimos.registry.deployments import DeploymentRegistry
from certimos.utils.validation import dedupe_addresses, is_valid_address, validate_address

logger = structlog.get_logger(__name__)


class MultiContractAggregator:
    """
    Scans a wallet across many contracts and merges the results.

    Usage:
        aggregator = MultiContractAggregator(scanner, web3_reader_factory, registry)
        result = await aggregator.scan_many(wallet, ["0x...", "0x..."])
    """

    def __init__(
        self,
        scanner: OwnershipScanner,
        reader_factory: ContractReaderFactory,
        registry: DeploymentRegistry | None = None,
        legacy_addresses: Sequence[str] | None = None,
    ) -> None:
        self._scanner = scanner
        self._reader_factory = reader_factory
        self._registry = registry
        self._legacy_addresses = list(
            legacy_addresses
            if legacy_addresses is not None
            else settings.legacy_contract_addresses()
        )

    async def registry_addresses(self) -> list[str]:
        """All known contract addresses, deduplicated; malformed entries skipped."""
        if self._registry is None:
            raise ConfigurationError(
                "No contract list given and no deployment registry configured"
            )

        candidates = await self._registry.list_contract_addresses()
        candidates.extend(self._legacy_addresses)

        valid: list[str] = []
        for address in candidates:
            if is_valid_address(address):
                valid.append(address)
            else:
                logger.warning("aggregator_skip_invalid_registry_address", contract_address=address)

        addresses = dedupe_addresses(valid)
        logger.info("aggregator_registry_contracts", count=len(addresses))
        return addresses

    async def _scan_one(
        self,
        reader: ContractReader,
        wallet_address: str,
    ) -> ScanResult:
        try:
            return await self._scanner.scan(reader, wallet_address)
        finally:
            await reader.aclose()

    async def scan_many(
        self,
        wallet_address: str,
        contract_addresses: Sequence[str] | None = None,
    ) -> AggregateScanResult:
        """
        Scan wallet_address on every contract and merge the results.

        Args:
            wallet_address: 0x-prefixed wallet address.
            contract_addresses: Contracts to scan; None means "every registered contract".

        Returns:
            AggregateScanResult with per-contract status and merged aggregates.

        Raises:
            InputValidationError: If the wallet or an explicit contract address is malformed.
            ConfigurationError: If readers cannot be created, or no list and no registry.
        """
        wallet_address = validate_address(wallet_address)

        if contract_addresses is None:
            addresses = await self.registry_addresses()
        else:
            addresses = dedupe_addresses(
                validate_address(address, field="contractAddress")
                for address in contract_addresses
            )

        if not addresses:
            logger.info("aggregator_no_contracts", wallet_address=wallet_address)
            return AggregateScanResult(wallet_address=wallet_address)

        # Readers are created up front so configuration errors surface to the caller.
        readers: list[ContractReader] = []
        try:
            for address in addresses:
                readers.append(self._reader_factory(address))
        except Exception:
            await asyncio.gather(*(reader.aclose() for reader in readers))
            raise

        logger.info(
            "aggregator_scan_start",
            wallet_address=wallet_address,
            contracts=len(addresses),
        )
        outcomes = await asyncio.gather(
            *(self._scan_one(reader, wallet_address) for reader in readers),
            return_exceptions=True,
        )

        records: list[TokenRecord] = []
        contract_results: dict[str, ContractScanStatus] = {}

        for address, outcome in zip(addresses, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "aggregator_contract_failed",
                    contract_address=address,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                contract_results[address] = ContractScanStatus(
                    contract_address=address,
                    success=False,
                    error=str(outcome) or type(outcome).__name__,
                )
                continue

            tagged = [
                record.model_copy(update={"contract_address": address})
                for record in outcome.records
            ]
            records.extend(tagged)
            contract_results[address] = ContractScanStatus(
                contract_address=address,
                success=True,
                count=len(tagged),
                total_points=sum(record.points for record in tagged),
            )

        result = AggregateScanResult(
            wallet_address=wallet_address,
            contract_addresses=addresses,
            records=records,
            contract_results=contract_results,
        )
        logger.info(
            "aggregator_scan_complete",
            wallet_address=wallet_address,
            contracts=len(addresses),
            failed=len(result.failed_contracts),
            found=result.count,
            total_points=result.total_points,
        )
        return result
