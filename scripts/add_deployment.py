"""
Certimos — Deployment Registration Script

Records a deployed certificate contract in the deployment registry so that
registry-wide scans include it. Re-running with the same --name replaces the
stored record.

Usage:
    python scripts/add_deployment.py --name DelhiMarathon --address 0xAbC... --network apothem
    python scripts/add_deployment.py --name Hackathon2025 --address 0x123... --network apothem \
        --tx-hash 0xdead... --block 81234567 --deployer 0x456... --owner 0x456...
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime, timezone

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from certimos.errors import CertimosError
from certimos.main import create_db_engine
from certimos.registry.deployments import DeploymentRecord, DeploymentRegistry


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Register a certificate contract deployment.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/add_deployment.py --name DelhiMarathon --address 0xAbC... --network apothem
  python scripts/add_deployment.py --name Hackathon2025 --address 0x123... --block 81234567
""",
    )
    parser.add_argument(
        "--name",
        type=str,
        required=True,
        help="Deployment name used as the registry key (e.g., DelhiMarathon).",
    )
    parser.add_argument(
        "--address",
        type=str,
        required=True,
        help="0x-prefixed contract address.",
    )
    parser.add_argument(
        "--network",
        type=str,
        default="apothem",
        help="Network the contract lives on (default: apothem).",
    )
    parser.add_argument("--tx-hash", type=str, default=None, help="Deployment transaction hash.")
    parser.add_argument("--block", type=int, default=0, help="Deployment block number.")
    parser.add_argument("--deployer", type=str, default=None, help="Deploying address.")
    parser.add_argument("--owner", type=str, default=None, help="Contract owner address.")
    return parser.parse_args()


async def add_deployment(record: DeploymentRecord) -> DeploymentRecord:
    engine, session_factory = await create_db_engine()
    try:
        return await DeploymentRegistry(session_factory).save(record)
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()

    try:
        record = DeploymentRecord(
            contract_name=args.name,
            contract_address=args.address,
            network=args.network,
            transaction_hash=args.tx_hash,
            block_number=args.block,
            deployer=args.deployer,
            owner=args.owner,
            deployed_at=datetime.now(timezone.utc),
        )
    except ValueError as e:
        print(f"Invalid deployment: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"Registering deployment: name={record.contract_name}, address={record.contract_address}")

    try:
        saved = await add_deployment(record)
    except (CertimosError, OSError) as e:
        print(f"Failed to register deployment: {e}", file=sys.stderr)
        sys.exit(1)

    print("Deployment registered successfully.")
    print(f"  contract_name    = {saved.contract_name}")
    print(f"  contract_address = {saved.contract_address}")
    print(f"  network          = {saved.network}")
    if saved.transaction_hash:
        print(f"  transaction_hash = {saved.transaction_hash}")
    print()
    print("Registry-wide scans will include this contract on the next request.")


if __name__ == "__main__":
    asyncio.run(main())
