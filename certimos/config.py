"""
Certimos — Configuration & Constants

Every timeout, probe bound, gas parameter and rarity weight lives here.
No hardcoded values in discovery or service logic.

Usage:
    from certimos.config import settings
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Rarity(str, Enum):
    """Certificate rarity tiers, lowest to highest."""
    COMMON = "Common"
    UNCOMMON = "Uncommon"
    RARE = "Rare"
    EPIC = "Epic"
    LEGENDARY = "Legendary"


# Rarity -> points. Anything unrecognized is valued as Common.
RARITY_POINTS: dict[Rarity, int] = {
    Rarity.LEGENDARY: 500,
    Rarity.EPIC: 400,
    Rarity.RARE: 300,
    Rarity.UNCOMMON: 200,
    Rarity.COMMON: 100,
}

DEFAULT_CATEGORY = "General"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for Certimos.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # -----------------------------------------------------------------------
    # Chain connection
    # -----------------------------------------------------------------------
    RPC_URL: str = ""                       # e.g. https://erpc.apothem.network
    RPC_TIMEOUT_SECONDS: float = 30.0
    NETWORK_NAME: str = "XDC Apothem"
    PRIVATE_KEY: str = ""                   # Minting / transfer signer

    # Used by single-contract endpoints when the caller names no contract
    DEFAULT_CONTRACT_ADDRESS: str = ""
    # Comma-separated contracts always included in registry-wide scans
    LEGACY_CONTRACT_ADDRESSES: str = ""

    # -----------------------------------------------------------------------
    # Database (deployment registry)
    # -----------------------------------------------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./certimos.db"

    # -----------------------------------------------------------------------
    # Metadata resolution
    # -----------------------------------------------------------------------
    METADATA_HTTP_TIMEOUT_SECONDS: float = 3.0
    METADATA_IPFS_TIMEOUT_SECONDS: float = 8.0   # Per gateway attempt
    IPFS_GATEWAYS: list[str] = Field(
        default_factory=lambda: [
            "https://ipfs.io/ipfs/",
            "https://gateway.pinata.cloud/ipfs/",
            "https://cloudflare-ipfs.com/ipfs/",
        ]
    )
    METADATA_USER_AGENT: str = "Certimos-Backend/1.0"

    # Uploaded images were historically served from the frontend origin
    LEGACY_UPLOADS_ORIGIN: str = "http://localhost:3000"
    PUBLIC_BASE_URL: str = "http://localhost:5000"

    # -----------------------------------------------------------------------
    # Ownership scan
    # The contract has no enumeration primitive, so ownership is found by a
    # linear probe over token ids bounded by min(HARD_CAP, balance * MULTIPLIER).
    # -----------------------------------------------------------------------
    SCAN_HARD_CAP: int = 50
    SCAN_PROBE_MULTIPLIER: int = 10      # balance 1 still reaches token id 9
    SCAN_BATCH_SIZE: int = 3
    SCAN_BATCH_DELAY_SECONDS: float = 0.1   # RPC courtesy delay between batches

    # -----------------------------------------------------------------------
    # Minting / transfer
    # -----------------------------------------------------------------------
    MINT_GAS_LIMIT: int = 1_000_000
    TRANSFER_GAS_LIMIT: int = 500_000
    GAS_PRICE_GWEI: int = 25
    NEXT_TOKEN_PROBE_LIMIT: int = 1000
    CERTIFICATE_ISSUER: str = "Certimos Platform"

    # -----------------------------------------------------------------------
    # HTTP API
    # -----------------------------------------------------------------------
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    def legacy_contract_addresses(self) -> list[str]:
        """Split LEGACY_CONTRACT_ADDRESSES into a clean list."""
        return [
            address.strip()
            for address in self.LEGACY_CONTRACT_ADDRESSES.split(",")
            if address.strip()
        ]


# Singleton instance
settings = Settings()
