"""
Tests for the certificate service (certimos/services/certificates.py).

Covers:
- list / count / verify on a single contract
- mint: duplicate detection, next token id probe, inline metadata, valuation override
- transfer: missing token, wrong owner, success
- wallet balance and DEFAULT_CONTRACT_ADDRESS fallback
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from certimos.chain.contract import NativeBalance
from certimos.config import settings
from certimos.discovery.aggregator import MultiContractAggregator
from certimos.discovery.metadata import MetadataResolver, decode_data_uri
from certimos.discovery.scanner import OwnershipScanner
from certimos.errors import (
    ConfigurationError,
    DuplicateCertificateError,
    InputValidationError,
    InsufficientFundsError,
    TokenNotFoundError,
    UnauthorizedTransferError,
)
from certimos.services.certificates import CertificateService, MintRequest, TransferRequest
from tests.fakes import (
    CONTRACT,
    OTHER_WALLET,
    WALLET,
    FakeContractReader,
    FakeContractWriter,
    data_uri,
)


class _Harness:
    """One reader and one writer behind the service's factories."""

    def __init__(
        self,
        resolver: MetadataResolver,
        scanner: OwnershipScanner,
        reader: FakeContractReader,
        writer: FakeContractWriter | None = None,
    ) -> None:
        self.reader = reader
        self.writer = writer or FakeContractWriter(reader.address)
        self.balance_fetcher = AsyncMock(
            return_value=NativeBalance(wei="1500000000000000000", formatted="1.5000")
        )
        self.service = CertificateService(
            resolver=resolver,
            scanner=scanner,
            aggregator=MultiContractAggregator(scanner, lambda address: reader, legacy_addresses=[]),
            reader_factory=lambda address: self.reader,
            writer_factory=lambda address: self.writer,
            balance_fetcher=self.balance_fetcher,
        )


@pytest.fixture
def harness_factory(resolver: MetadataResolver, scanner: OwnershipScanner):
    def build(reader: FakeContractReader, writer: FakeContractWriter | None = None) -> _Harness:
        return _Harness(resolver, scanner, reader, writer)

    return build


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_certificates_closes_reader(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT, owners={2: WALLET}))

    result = await h.service.list_certificates(WALLET, CONTRACT)

    assert [record.token_id for record in result.records] == ["2"]
    assert h.reader.closed


@pytest.mark.asyncio
async def test_count_certificates_skips_metadata(harness_factory) -> None:
    h = harness_factory(
        FakeContractReader(CONTRACT, owners={0: WALLET, 1: OTHER_WALLET, 2: WALLET})
    )

    count = await h.service.count_certificates(WALLET, CONTRACT)

    assert count.total_supply == 2
    assert count.total_points == 200
    assert h.reader.token_uri_calls == []


@pytest.mark.asyncio
async def test_default_contract_used_when_omitted(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT, owners={0: WALLET}))

    with patch.object(settings, "DEFAULT_CONTRACT_ADDRESS", CONTRACT):
        result = await h.service.list_certificates(WALLET)

    assert result.contract_address == CONTRACT


@pytest.mark.asyncio
async def test_missing_contract_is_configuration_error(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    with patch.object(settings, "DEFAULT_CONTRACT_ADDRESS", ""):
        with pytest.raises(ConfigurationError):
            await h.service.list_certificates(WALLET)


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_verify_existing_token(harness_factory) -> None:
    document = {"name": "Cert", "attributes": [{"trait_type": "Rarity", "value": "Rare"}]}
    h = harness_factory(FakeContractReader(CONTRACT, owners={5: WALLET}, uris={5: data_uri(document)}))

    result = await h.service.verify("5", CONTRACT)

    assert result.valid is True
    assert result.owner == WALLET
    assert result.certificate is not None
    assert result.certificate.rarity == "Rare"
    assert result.certificate.points == 300


@pytest.mark.asyncio
async def test_verify_missing_token_is_invalid(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    result = await h.service.verify(99, CONTRACT)

    assert result.valid is False
    assert result.certificate is None
    assert result.message == "Certificate not found on blockchain"


@pytest.mark.asyncio
async def test_verify_rejects_non_numeric_token_id(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    with pytest.raises(InputValidationError):
        await h.service.verify("abc", CONTRACT)


# ---------------------------------------------------------------------------
# Mint
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mint_builds_inline_metadata_and_values_with_user_rarity(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT, owners={0: OTHER_WALLET, 1: OTHER_WALLET}))
    request = MintRequest(
        recipient_address=WALLET,
        name="Delhi Marathon Finisher",
        description="42.195 km",
        rarity="epic",
        category="Sports",
        event_name="Delhi Marathon 2025",
        contract_address=CONTRACT,
    )

    result = await h.service.mint(request)

    assert result.token_id == "2"
    assert result.rarity == "Epic"
    assert result.points == 400
    assert result.category == "Sports"
    assert result.transaction_hash == h.writer._receipt().transaction_hash

    recipient, token_uri = h.writer.minted[0]
    assert recipient == WALLET
    assert token_uri == result.token_uri
    metadata = decode_data_uri(token_uri)
    assert metadata["name"] == "Delhi Marathon Finisher"
    assert metadata["tokenId"] == 2
    assert metadata["eventName"] == "Delhi Marathon 2025"
    assert metadata["standard"] == "ERC-721"
    assert {"trait_type": "Rarity", "value": "Epic"} in metadata["attributes"]
    assert {"trait_type": "Points", "value": 400} in metadata["attributes"]
    assert h.reader.closed and h.writer.closed


@pytest.mark.asyncio
async def test_mint_keeps_caller_supplied_traits(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))
    request = MintRequest(
        recipient_address=WALLET,
        name="Hackathon Winner",
        attributes=[{"trait_type": "Category", "value": "Tech"}],
        contract_address=CONTRACT,
    )

    result = await h.service.mint(request)

    metadata = decode_data_uri(h.writer.minted[0][1])
    categories = [a for a in metadata["attributes"] if a["trait_type"] == "Category"]
    assert categories == [{"trait_type": "Category", "value": "Tech"}]
    assert result.token_id == "0"
    assert result.rarity == "Common"


async def _rescan_minted(h: _Harness, result) -> tuple[int, str, str]:
    token_id = int(result.token_id)
    h.reader.owners[token_id] = result.recipient
    h.reader.uris[token_id] = result.token_uri
    scan = await h.service.list_certificates(result.recipient, CONTRACT)
    record = next(record for record in scan.records if record.token_id == result.token_id)
    return record.points, record.rarity, record.category


@pytest.mark.asyncio
async def test_minted_certificate_rescans_to_reported_valuation(harness_factory) -> None:
    """Request rarity beats request points and a conflicting caller Rarity trait."""
    h = harness_factory(FakeContractReader(CONTRACT))
    request = MintRequest(
        recipient_address=WALLET,
        name="Relay Team",
        rarity="Rare",
        points=999,
        attributes=[
            {"trait_type": "Rarity", "value": "Legendary"},
            {"trait_type": "Points", "value": 50},
            {"trait_type": "Distance", "value": "4x400m"},
        ],
        contract_address=CONTRACT,
    )

    result = await h.service.mint(request)

    assert (result.points, result.rarity, result.category) == (300, "Rare", "General")
    assert await _rescan_minted(h, result) == (300, "Rare", "General")
    metadata = decode_data_uri(result.token_uri)
    rarities = [a for a in metadata["attributes"] if a["trait_type"] == "Rarity"]
    assert rarities == [{"trait_type": "Rarity", "value": "Rare"}]
    assert {"trait_type": "Distance", "value": "4x400m"} in metadata["attributes"]
    assert metadata["points"] == 300


@pytest.mark.asyncio
async def test_minted_explicit_points_rescan_unchanged(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))
    request = MintRequest(
        recipient_address=WALLET, name="Volunteer", points=250, contract_address=CONTRACT
    )

    result = await h.service.mint(request)

    assert (result.points, result.rarity) == (250, "Common")
    assert await _rescan_minted(h, result) == (250, "Common", "General")


@pytest.mark.asyncio
async def test_mint_zero_points_falls_back_to_rarity_table(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))
    request = MintRequest(
        recipient_address=WALLET, name="Pacer", rarity="Uncommon", points=0, contract_address=CONTRACT
    )

    result = await h.service.mint(request)

    assert result.points == 200
    assert {"trait_type": "Points", "value": 200} in decode_data_uri(result.token_uri)["attributes"]


@pytest.mark.asyncio
async def test_mint_closes_writer_when_reader_cannot_be_created(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    def no_reader(address: str) -> FakeContractReader:
        raise ConfigurationError("RPC_URL environment variable is not set")

    h.service.reader_factory = no_reader

    with pytest.raises(ConfigurationError):
        await h.service.mint(
            MintRequest(recipient_address=WALLET, name="Cert", contract_address=CONTRACT)
        )

    assert h.writer.closed
    assert h.writer.minted == []


@pytest.mark.asyncio
async def test_mint_rejects_duplicate_name(harness_factory) -> None:
    existing = {"name": "Marathon", "issuedAt": "2025-09-01T12:00:00+00:00"}
    h = harness_factory(FakeContractReader(CONTRACT, owners={4: WALLET}, uris={4: data_uri(existing)}))

    with pytest.raises(DuplicateCertificateError) as exc_info:
        await h.service.mint(
            MintRequest(recipient_address=WALLET, name="Marathon", contract_address=CONTRACT)
        )

    assert exc_info.value.existing_token_id == "4"
    assert exc_info.value.issued_at == "2025-09-01T12:00:00+00:00"
    assert h.writer.minted == []
    assert h.writer.closed


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "recipient,name",
    [("0xbad", "Cert"), (WALLET, "   ")],
)
async def test_mint_validates_input(harness_factory, recipient: str, name: str) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    with pytest.raises(InputValidationError):
        await h.service.mint(
            MintRequest(recipient_address=recipient, name=name, contract_address=CONTRACT)
        )


@pytest.mark.asyncio
async def test_mint_transaction_error_propagates(harness_factory) -> None:
    writer = FakeContractWriter(CONTRACT, error=InsufficientFundsError("insufficient funds for gas"))
    h = harness_factory(FakeContractReader(CONTRACT), writer)

    with pytest.raises(InsufficientFundsError):
        await h.service.mint(
            MintRequest(recipient_address=WALLET, name="Cert", contract_address=CONTRACT)
        )


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transfer_success(harness_factory) -> None:
    h = harness_factory(
        FakeContractReader(CONTRACT, owners={3: WALLET}, uris={3: data_uri({"name": "Cert"})})
    )

    result = await h.service.transfer(
        TransferRequest(
            token_id="3",
            from_address=WALLET.lower(),
            to_address=OTHER_WALLET,
            contract_address=CONTRACT,
        )
    )

    assert h.writer.transfers == [(WALLET.lower(), OTHER_WALLET, 3)]
    assert result.certificate_name == "Cert"
    assert result.token_id == "3"


@pytest.mark.asyncio
async def test_transfer_from_non_owner_rejected(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT, owners={3: WALLET}))

    with pytest.raises(UnauthorizedTransferError):
        await h.service.transfer(
            TransferRequest(
                token_id=3,
                from_address=OTHER_WALLET,
                to_address=WALLET,
                contract_address=CONTRACT,
            )
        )

    assert h.writer.transfers == []


@pytest.mark.asyncio
async def test_transfer_missing_token(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    with pytest.raises(TokenNotFoundError):
        await h.service.transfer(
            TransferRequest(
                token_id=8,
                from_address=WALLET,
                to_address=OTHER_WALLET,
                contract_address=CONTRACT,
            )
        )


# ---------------------------------------------------------------------------
# Wallet balance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_wallet_balance(harness_factory) -> None:
    h = harness_factory(FakeContractReader(CONTRACT))

    balance = await h.service.wallet_balance(WALLET)

    assert balance.formatted == "1.5000"
    h.balance_fetcher.assert_awaited_once_with(WALLET)
