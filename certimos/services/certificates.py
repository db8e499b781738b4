"""
Certimos — Certificate Service

Orchestrates the discovery core and the contract writer for the HTTP layer:

- list_certificates        single-contract ownership scan
- list_certificates_multi  multi-contract scan with per-contract isolation
- count_certificates       quick scan without metadata resolution
- verify                   existence / owner / metadata / valuation of one token
- mint                     duplicate check, next-id probe, inline metadata, mint
- transfer                 ownership check, safeTransferFrom
- wallet_balance           native coin balance

Every operation takes its contract address explicitly; DEFAULT_CONTRACT_ADDRESS
is only consulted when the caller leaves it out.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from certimos.chain.contract import (
    ContractReader,
    ContractReaderFactory,
    ContractWriterFactory,
    NativeBalance,
    get_native_balance,
)
from certimos.config import settings
from certimos.discovery.aggregator import MultiContractAggregator
from certimos.discovery.metadata import MetadataResolver, encode_data_uri
from certimos.discovery.records import (
    AggregateScanResult,
    ScanResult,
    TokenRecord,
    Valuation,
    build_token_record,
)
from certimos.discovery.scanner import OwnershipScanner
from certimos.discovery.valuation import valuate
from certimos.errors import (
    ConfigurationError,
    DuplicateCertificateError,
    InputValidationError,
    TokenNotFoundError,
    UnauthorizedTransferError,
)
from certimos.utils.validation import validate_address, validate_token_id

logger = structlog.get_logger(__name__)

_SCORING_TRAITS = ("rarity", "category", "points")


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MintRequest(_ApiModel):
    """Certificate to mint. Only recipient_address and name are required."""

    recipient_address: str
    name: str
    description: str | None = None
    image_url: str | None = None
    attributes: list[dict[str, Any]] = Field(default_factory=list)
    custom_attributes: list[dict[str, Any]] = Field(default_factory=list)
    rarity: str | None = None
    category: str | None = None
    points: int | None = Field(default=None, ge=0)
    skills: str = ""
    level: str = ""
    event_name: str = ""
    certificate_name: str | None = None
    contract_address: str | None = None


class MintResult(_ApiModel):
    token_id: str
    recipient: str
    token_uri: str = Field(alias="tokenURI")
    metadata: dict[str, Any]
    transaction_hash: str
    block_number: int
    gas_used: str
    transaction_status: str = "confirmed"
    points: int
    rarity: str
    category: str
    from_address: str = Field(alias="from")
    contract_address: str


class TransferRequest(_ApiModel):
    token_id: str | int
    from_address: str
    to_address: str
    contract_address: str | None = None


class TransferResult(_ApiModel):
    token_id: str
    from_address: str = Field(alias="from")
    to_address: str = Field(alias="to")
    certificate_name: str
    transaction_hash: str
    block_number: int
    gas_used: str


class VerificationResult(_ApiModel):
    valid: bool
    certificate: TokenRecord | None = None
    owner: str | None = None
    message: str | None = None
    verified_at: str


class CertificateCount(_ApiModel):
    wallet_address: str
    contract_address: str
    total_supply: int
    total_points: int


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class CertificateService:
    """Certificate operations exposed over HTTP."""

    def __init__(
        self,
        resolver: MetadataResolver,
        scanner: OwnershipScanner,
        aggregator: MultiContractAggregator,
        reader_factory: ContractReaderFactory,
        writer_factory: ContractWriterFactory,
        balance_fetcher: Callable[[str], Awaitable[NativeBalance]] = get_native_balance,
    ) -> None:
        self.resolver = resolver
        self.scanner = scanner
        self.aggregator = aggregator
        self.reader_factory = reader_factory
        self.writer_factory = writer_factory
        self._balance_fetcher = balance_fetcher

    def _target_contract(self, contract_address: str | None) -> str:
        address = contract_address or settings.DEFAULT_CONTRACT_ADDRESS
        if not address:
            raise ConfigurationError(
                "No contract address given and DEFAULT_CONTRACT_ADDRESS is not set"
            )
        return validate_address(address, field="contractAddress")

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    async def list_certificates(
        self, wallet_address: str, contract_address: str | None = None
    ) -> ScanResult:
        wallet_address = validate_address(wallet_address)
        target = self._target_contract(contract_address)

        reader = self.reader_factory(target)
        try:
            return await self.scanner.scan(reader, wallet_address)
        finally:
            await reader.aclose()

    async def list_certificates_multi(
        self, wallet_address: str, contract_addresses: list[str] | None = None
    ) -> AggregateScanResult:
        return await self.aggregator.scan_many(wallet_address, contract_addresses)

    async def count_certificates(
        self, wallet_address: str, contract_address: str | None = None
    ) -> CertificateCount:
        """Owned-certificate count and points without fetching any metadata."""
        wallet_address = validate_address(wallet_address)
        target = self._target_contract(contract_address)

        reader = self.reader_factory(target)
        try:
            result = await self.scanner.scan(reader, wallet_address, with_metadata=False)
        finally:
            await reader.aclose()

        return CertificateCount(
            wallet_address=wallet_address,
            contract_address=target,
            total_supply=result.count,
            total_points=result.total_points,
        )

    async def verify(
        self, token_id: str | int, contract_address: str | None = None
    ) -> VerificationResult:
        """Look up one token; a missing token is reported as invalid, not raised."""
        parsed_id = validate_token_id(token_id)
        target = self._target_contract(contract_address)
        verified_at = datetime.now(timezone.utc).isoformat()

        reader = self.reader_factory(target)
        try:
            try:
                owner = await reader.owner_of(parsed_id)
                token_uri = await reader.token_uri(parsed_id)
            except TokenNotFoundError:
                logger.info("verify_token_not_found", token_id=parsed_id, contract_address=target)
                return VerificationResult(
                    valid=False,
                    message="Certificate not found on blockchain",
                    verified_at=verified_at,
                )
        finally:
            await reader.aclose()

        metadata = await self.resolver.resolve(token_uri)
        record = build_token_record(
            token_id=parsed_id,
            owner=owner,
            token_uri=token_uri,
            metadata=metadata,
            valuation=valuate(parsed_id, metadata, token_uri),
            contract_address=target,
        )
        return VerificationResult(
            valid=True,
            certificate=record,
            owner=owner,
            verified_at=verified_at,
        )

    async def wallet_balance(self, address: str) -> NativeBalance:
        return await self._balance_fetcher(validate_address(address, field="address"))

    # -----------------------------------------------------------------------
    # Minting
    # -----------------------------------------------------------------------

    async def _find_duplicate(
        self, reader: ContractReader, recipient: str, name: str
    ) -> TokenRecord | None:
        result = await self.scanner.scan(reader, recipient)
        for record in result.records:
            if record.metadata and record.metadata.get("name") == name:
                return record
        return None

    async def _next_token_id(self, reader: ContractReader) -> int:
        """First token id for which ownerOf reverts."""
        for token_id in range(settings.NEXT_TOKEN_PROBE_LIMIT):
            try:
                await reader.owner_of(token_id)
            except TokenNotFoundError:
                return token_id
        return settings.NEXT_TOKEN_PROBE_LIMIT

    @staticmethod
    def _mint_valuation(request: MintRequest, token_id: int) -> Valuation:
        """
        Score the request as a later scan would score the minted metadata.

        Explicit request fields beat the caller's own traits; a request rarity
        beats request points, as in valuate().
        """
        traits = [*request.attributes, *request.custom_attributes]
        if request.category:
            traits.append({"trait_type": "Category", "value": request.category})
        if request.points:
            traits.append({"trait_type": "Points", "value": request.points})
        return valuate(token_id, {"attributes": traits}, user_rarity=request.rarity)

    def _build_metadata(
        self, request: MintRequest, token_id: int, valuation: Valuation
    ) -> dict[str, Any]:
        attributes = [
            attribute
            for attribute in (*request.attributes, *request.custom_attributes)
            if not (
                isinstance(attribute, dict)
                and str(attribute.get("trait_type", "")).strip().lower() in _SCORING_TRAITS
            )
        ]
        # Valuation reads traits, so the scoring fields are written back as attributes.
        attributes.extend(
            [
                {"trait_type": "Rarity", "value": valuation.rarity},
                {"trait_type": "Category", "value": valuation.category},
                {"trait_type": "Points", "value": valuation.points},
            ]
        )

        return {
            "name": request.name,
            "description": request.description or f"Certificate #{token_id}",
            "image": request.image_url,
            "attributes": attributes,
            "tokenId": token_id,
            "issuedAt": datetime.now(timezone.utc).isoformat(),
            "issuer": settings.CERTIFICATE_ISSUER,
            "category": valuation.category,
            "rarity": valuation.rarity,
            "points": valuation.points,
            "skills": request.skills,
            "level": request.level,
            "eventName": request.event_name,
            "certificateName": request.certificate_name or request.name,
            "certificateType": "Achievement",
            "blockchain": settings.NETWORK_NAME,
            "standard": "ERC-721",
        }

    async def mint(self, request: MintRequest) -> MintResult:
        """
        Mint a certificate to request.recipient_address.

        Raises:
            InputValidationError: Missing name or malformed recipient / contract.
            DuplicateCertificateError: Recipient already owns a certificate with that name.
            ConfigurationError: No signer key or RPC URL configured.
            TransactionError: The mint transaction was rejected.
        """
        recipient = validate_address(request.recipient_address, field="recipientAddress")
        if not request.name or not request.name.strip():
            raise InputValidationError("name", request.name, "name is required")
        target = self._target_contract(request.contract_address)

        writer = self.writer_factory(target)
        try:
            reader = self.reader_factory(target)
            try:
                duplicate = await self._find_duplicate(reader, recipient, request.name)
                if duplicate is not None:
                    logger.warning(
                        "mint_duplicate_detected",
                        recipient=recipient,
                        name=request.name,
                        existing_token_id=duplicate.token_id,
                    )
                    issued_at = duplicate.metadata.get("issuedAt") if duplicate.metadata else None
                    raise DuplicateCertificateError(request.name, duplicate.token_id, issued_at)

                token_id = await self._next_token_id(reader)
                valuation = self._mint_valuation(request, token_id)
                metadata = self._build_metadata(request, token_id, valuation)
                token_uri = encode_data_uri(metadata)

                logger.info(
                    "mint_start",
                    token_id=token_id,
                    recipient=recipient,
                    contract_address=target,
                    signer=writer.signer_address,
                )
                receipt = await writer.mint_certificate(recipient, token_uri)
            finally:
                await reader.aclose()
        finally:
            await writer.aclose()

        logger.info(
            "mint_complete",
            token_id=token_id,
            tx_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
        )
        return MintResult(
            token_id=str(token_id),
            recipient=recipient,
            token_uri=token_uri,
            metadata=metadata,
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
            gas_used=str(receipt.gas_used),
            points=valuation.points,
            rarity=valuation.rarity,
            category=valuation.category,
            from_address=receipt.from_address,
            contract_address=target,
        )

    # -----------------------------------------------------------------------
    # Transfer
    # -----------------------------------------------------------------------

    async def transfer(self, request: TransferRequest) -> TransferResult:
        """
        Transfer a certificate between wallets.

        Raises:
            InputValidationError: Malformed token id or address.
            TokenNotFoundError: The token does not exist.
            UnauthorizedTransferError: from_address does not own the token.
            TransactionError: The transfer transaction was rejected.
        """
        token_id = validate_token_id(request.token_id)
        from_address = validate_address(request.from_address, field="fromAddress")
        to_address = validate_address(request.to_address, field="toAddress")
        target = self._target_contract(request.contract_address)

        writer = self.writer_factory(target)
        try:
            reader = self.reader_factory(target)
            try:
                owner = await reader.owner_of(token_id)
                if owner.lower() != from_address.lower():
                    raise UnauthorizedTransferError(token_id, owner, from_address)

                token_uri = await reader.token_uri(token_id)
                metadata = await self.resolver.resolve(token_uri)
                certificate_name = (metadata or {}).get("name") or f"Certificate #{token_id}"

                logger.info(
                    "transfer_start",
                    token_id=token_id,
                    from_address=from_address,
                    to_address=to_address,
                    certificate_name=certificate_name,
                )
                receipt = await writer.transfer(from_address, to_address, token_id)
            finally:
                await reader.aclose()
        finally:
            await writer.aclose()

        return TransferResult(
            token_id=str(token_id),
            from_address=from_address,
            to_address=to_address,
            certificate_name=str(certificate_name),
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
            gas_used=str(receipt.gas_used),
        )
