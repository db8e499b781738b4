"""
Certimos — Test Fakes

In-memory stand-ins for the contract seams plus shared test addresses.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from typing import Any

from certimos.chain.contract import TransactionReceipt
from certimos.errors import TokenNotFoundError

WALLET = "0x" + "A" * 36 + "1111"
OTHER_WALLET = "0x" + "B" * 40
CONTRACT = "0x" + "C0" * 20
CONTRACT_2 = "0x" + "D0" * 20
CONTRACT_3 = "0x" + "E0" * 20


def data_uri(document: dict[str, Any]) -> str:
    """Inline base64 JSON token URI for a metadata document."""
    payload = base64.b64encode(json.dumps(document).encode()).decode()
    return f"data:application/json;base64,{payload}"


# ---------------------------------------------------------------------------
# Contract Fakes
# ---------------------------------------------------------------------------


class FakeContractReader:
    """
    ContractReader over in-memory ownership tables.

    Ids missing from `owners` revert like a nonexistent token. Errors in
    `owner_errors` are raised for the matching id instead.
    """

    def __init__(
        self,
        address: str,
        owners: dict[int, str] | None = None,
        uris: dict[int, str] | None = None,
        balance: int | None = None,
        balance_error: Exception | None = None,
        owner_errors: dict[int, Exception] | None = None,
    ) -> None:
        self.address = address
        self.owners = dict(owners or {})
        self.uris = dict(uris or {})
        self.balance = balance
        self.balance_error = balance_error
        self.owner_errors = dict(owner_errors or {})
        self.owner_of_calls: list[int] = []
        self.token_uri_calls: list[int] = []
        self.closed = False

    async def balance_of(self, owner: str) -> int:
        if self.balance_error is not None:
            raise self.balance_error
        if self.balance is not None:
            return self.balance
        return sum(1 for holder in self.owners.values() if holder.lower() == owner.lower())

    async def owner_of(self, token_id: int) -> str:
        self.owner_of_calls.append(token_id)
        if token_id in self.owner_errors:
            raise self.owner_errors[token_id]
        if token_id not in self.owners:
            raise TokenNotFoundError(token_id, self.address)
        return self.owners[token_id]

    async def token_uri(self, token_id: int) -> str:
        self.token_uri_calls.append(token_id)
        if token_id not in self.owners:
            raise TokenNotFoundError(token_id, self.address)
        return self.uris.get(token_id, "")

    async def aclose(self) -> None:
        self.closed = True


def make_reader_factory(
    readers: dict[str, FakeContractReader],
) -> Callable[[str], FakeContractReader]:
    """Factory returning the pre-built reader for each address."""

    def factory(address: str) -> FakeContractReader:
        return readers[address]

    return factory


class FakeContractWriter:
    """ContractWriter that records calls and returns canned receipts."""

    def __init__(
        self,
        address: str,
        signer_address: str = "0x" + "5" * 40,
        error: Exception | None = None,
    ) -> None:
        self.address = address
        self.signer_address = signer_address
        self.error = error
        self.minted: list[tuple[str, str]] = []
        self.transfers: list[tuple[str, str, int]] = []
        self.closed = False

    def _receipt(self) -> TransactionReceipt:
        return TransactionReceipt(
            transaction_hash="0x" + "ab" * 32,
            block_number=81_000_000,
            gas_used=210_000,
            from_address=self.signer_address,
        )

    async def mint_certificate(self, recipient: str, token_uri: str) -> TransactionReceipt:
        if self.error is not None:
            raise self.error
        self.minted.append((recipient, token_uri))
        return self._receipt()

    async def transfer(self, from_address: str, to_address: str, token_id: int) -> TransactionReceipt:
        if self.error is not None:
            raise self.error
        self.transfers.append((from_address, to_address, token_id))
        return self._receipt()

    async def aclose(self) -> None:
        self.closed = True
