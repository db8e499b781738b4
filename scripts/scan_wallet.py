"""
Certimos — Wallet Scan Script

Prints the certificates a wallet owns, either on the listed contracts or on
every contract in the deployment registry.

Usage:
    python scripts/scan_wallet.py --wallet 0xAbC...
    python scripts/scan_wallet.py --wallet 0xAbC... --contracts 0x123...,0x456...
    python scripts/scan_wallet.py --wallet 0xAbC... --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from certimos.chain.contract import web3_reader_factory
from certimos.discovery.aggregator import MultiContractAggregator
from certimos.discovery.metadata import MetadataResolver
from certimos.discovery.records import AggregateScanResult
from certimos.discovery.scanner import OwnershipScanner
from certimos.errors import CertimosError
from certimos.main import create_db_engine
from certimos.registry.deployments import DeploymentRegistry
from certimos.utils.validation import parse_contract_list


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scan a wallet for certificates across contracts.",
    )
    parser.add_argument("--wallet", type=str, required=True, help="0x-prefixed wallet address.")
    parser.add_argument(
        "--contracts",
        type=str,
        default=None,
        help="Comma-separated contract addresses (default: every registered contract).",
    )
    parser.add_argument("--json", action="store_true", help="Print the raw JSON result.")
    return parser.parse_args()


async def scan(wallet: str, contracts: list[str] | None) -> AggregateScanResult:
    engine, session_factory = await create_db_engine()
    try:
        async with MetadataResolver() as resolver:
            aggregator = MultiContractAggregator(
                OwnershipScanner(resolver),
                web3_reader_factory,
                DeploymentRegistry(session_factory),
            )
            return await aggregator.scan_many(wallet, contracts)
    finally:
        await engine.dispose()


def print_summary(result: AggregateScanResult) -> None:
    print(f"Wallet {result.wallet_address}: {result.count} certificate(s), {result.total_points} points")
    for address, status in result.contract_results.items():
        if status.success:
            print(f"  {address}: {status.count} found, {status.total_points} points")
        else:
            print(f"  {address}: FAILED ({status.error})")
    print()
    for record in result.records:
        print(
            f"  #{record.token_id:<6} {record.rarity:<10} {record.points:>4} pts  "
            f"[{record.category}] {record.name}"
        )
    breakdown = result.breakdown
    if breakdown.total_certificates:
        print()
        print(f"  average points: {breakdown.average_points}")
        print(f"  rarity:   {breakdown.rarity_distribution}")
        print(f"  category: {breakdown.category_distribution}")


async def main() -> None:
    args = parse_args()

    try:
        result = await scan(args.wallet, parse_contract_list(args.contracts))
    except CertimosError as e:
        print(f"Scan failed: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    else:
        print_summary(result)


if __name__ == "__main__":
    asyncio.run(main())
