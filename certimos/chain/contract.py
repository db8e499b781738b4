"""
Certimos — Certificate Contract Access

ContractReader / ContractWriter are the only seams through which the service
touches the ledger. Each reader or writer owns its own AsyncWeb3 provider, so
concurrent scans of different contracts never share a connection.

Error mapping:
- contract revert on ownerOf / tokenURI -> TokenNotFoundError
- transport / RPC failure               -> UpstreamUnavailableError
- "insufficient funds" on send          -> InsufficientFundsError
- revert on send / failed receipt       -> TransactionRevertedError
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

import aiohttp
import structlog
from pydantic import BaseModel
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception

from certimos.chain.abi import CERTIFICATE_ABI
from certimos.config import settings
from certimos.errors import (
    ConfigurationError,
    InsufficientFundsError,
    TokenNotFoundError,
    TransactionError,
    TransactionRevertedError,
    UpstreamUnavailableError,
)

logger = structlog.get_logger(__name__)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, Web3Exception)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class ContractReader(Protocol):
    """Read-only view of one certificate contract."""

    address: str

    async def balance_of(self, owner: str) -> int: ...

    async def owner_of(self, token_id: int) -> str: ...

    async def token_uri(self, token_id: int) -> str: ...

    async def aclose(self) -> None: ...


class TransactionReceipt(BaseModel):
    """Confirmed state-changing transaction."""

    transaction_hash: str
    block_number: int
    gas_used: int
    from_address: str


class ContractWriter(Protocol):
    """State-changing calls on one certificate contract."""

    address: str
    signer_address: str

    async def mint_certificate(self, recipient: str, token_uri: str) -> TransactionReceipt: ...

    async def transfer(self, from_address: str, to_address: str, token_id: int) -> TransactionReceipt: ...

    async def aclose(self) -> None: ...


ContractReaderFactory = Callable[[str], ContractReader]
ContractWriterFactory = Callable[[str], ContractWriter]


# ---------------------------------------------------------------------------
# web3 implementations
# ---------------------------------------------------------------------------


def _build_web3(rpc_url: str, timeout: float) -> AsyncWeb3:
    if not rpc_url:
        raise ConfigurationError("RPC_URL environment variable is not set")
    return AsyncWeb3(
        AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
        )
    )


class Web3ContractReader:
    """
    ContractReader backed by a dedicated AsyncWeb3 HTTP provider.

    Usage:
        reader = Web3ContractReader("0x...")
        try:
            balance = await reader.balance_of(wallet)
        finally:
            await reader.aclose()
    """

    def __init__(
        self,
        address: str,
        rpc_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.address = address
        self._w3 = _build_web3(
            rpc_url if rpc_url is not None else settings.RPC_URL,
            timeout if timeout is not None else settings.RPC_TIMEOUT_SECONDS,
        )
        self._contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=CERTIFICATE_ABI,
        )

    async def balance_of(self, owner: str) -> int:
        try:
            balance = await self._contract.functions.balanceOf(
                AsyncWeb3.to_checksum_address(owner)
            ).call()
        except ContractLogicError as e:
            raise UpstreamUnavailableError(
                f"balanceOf reverted on {self.address}: {e}"
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise UpstreamUnavailableError(
                f"balanceOf failed on {self.address}: {e}"
            ) from e
        return int(balance)

    async def owner_of(self, token_id: int) -> str:
        try:
            return await self._contract.functions.ownerOf(token_id).call()
        except ContractLogicError as e:
            raise TokenNotFoundError(token_id, self.address) from e
        except _TRANSPORT_ERRORS as e:
            raise UpstreamUnavailableError(
                f"ownerOf({token_id}) failed on {self.address}: {e}"
            ) from e

    async def token_uri(self, token_id: int) -> str:
        try:
            return await self._contract.functions.tokenURI(token_id).call()
        except ContractLogicError as e:
            raise TokenNotFoundError(token_id, self.address) from e
        except _TRANSPORT_ERRORS as e:
            raise UpstreamUnavailableError(
                f"tokenURI({token_id}) failed on {self.address}: {e}"
            ) from e

    async def aclose(self) -> None:
        await self._w3.provider.disconnect()


def classify_transaction_error(exc: BaseException) -> TransactionError | None:
    """Translate a send/confirm failure into a domain error, or None if unrecognized."""
    message = str(exc)
    lowered = message.lower()
    if "insufficient funds" in lowered:
        return InsufficientFundsError(message)
    if isinstance(exc, ContractLogicError) or "execution reverted" in lowered:
        return TransactionRevertedError(message)
    return None


class Web3ContractWriter:
    """ContractWriter that signs locally with PRIVATE_KEY and waits for the receipt."""

    def __init__(
        self,
        address: str,
        rpc_url: str | None = None,
        private_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        key = private_key if private_key is not None else settings.PRIVATE_KEY
        if not key:
            raise ConfigurationError("PRIVATE_KEY environment variable is not set")

        self.address = address
        self._w3 = _build_web3(
            rpc_url if rpc_url is not None else settings.RPC_URL,
            timeout if timeout is not None else settings.RPC_TIMEOUT_SECONDS,
        )
        self._account = self._w3.eth.account.from_key(key)
        self.signer_address: str = self._account.address
        self._contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=CERTIFICATE_ABI,
        )

    async def _send(self, function: Any, gas_limit: int) -> TransactionReceipt:
        try:
            nonce = await self._w3.eth.get_transaction_count(self.signer_address, "pending")
            tx = await function.build_transaction(
                {
                    "from": self.signer_address,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "gasPrice": AsyncWeb3.to_wei(settings.GAS_PRICE_GWEI, "gwei"),
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info(
                "transaction_sent",
                contract_address=self.address,
                tx_hash=AsyncWeb3.to_hex(tx_hash),
            )
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            classified = classify_transaction_error(e)
            if classified is not None:
                raise classified from e
            raise

        if receipt["status"] == 0:
            raise TransactionRevertedError(
                f"Transaction {AsyncWeb3.to_hex(tx_hash)} reverted"
            )

        logger.info(
            "transaction_confirmed",
            contract_address=self.address,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )
        return TransactionReceipt(
            transaction_hash=AsyncWeb3.to_hex(tx_hash),
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
            from_address=self.signer_address,
        )

    async def mint_certificate(self, recipient: str, token_uri: str) -> TransactionReceipt:
        function = self._contract.functions.mintCertificate(
            AsyncWeb3.to_checksum_address(recipient), token_uri
        )
        return await self._send(function, settings.MINT_GAS_LIMIT)

    async def transfer(self, from_address: str, to_address: str, token_id: int) -> TransactionReceipt:
        safe_transfer = self._contract.get_function_by_signature(
            "safeTransferFrom(address,address,uint256)"
        )
        function = safe_transfer(
            AsyncWeb3.to_checksum_address(from_address),
            AsyncWeb3.to_checksum_address(to_address),
            token_id,
        )
        return await self._send(function, settings.TRANSFER_GAS_LIMIT)

    async def aclose(self) -> None:
        await self._w3.provider.disconnect()


def web3_reader_factory(address: str) -> ContractReader:
    return Web3ContractReader(address)


def web3_writer_factory(address: str) -> ContractWriter:
    return Web3ContractWriter(address)


# ---------------------------------------------------------------------------
# Native balance
# ---------------------------------------------------------------------------


class NativeBalance(BaseModel):
    """Native coin balance of an address."""

    wei: str
    formatted: str


async def get_native_balance(address: str, rpc_url: str | None = None) -> NativeBalance:
    """
    Fetch an address's native coin balance, formatted to 4 decimal places.

    Raises:
        ConfigurationError: If no RPC URL is configured.
        UpstreamUnavailableError: If the RPC call fails.
    """
    w3 = _build_web3(
        rpc_url if rpc_url is not None else settings.RPC_URL,
        settings.RPC_TIMEOUT_SECONDS,
    )
    try:
        wei = await w3.eth.get_balance(AsyncWeb3.to_checksum_address(address))
    except _TRANSPORT_ERRORS as e:
        raise UpstreamUnavailableError(f"getBalance failed for {address}: {e}") from e
    finally:
        await w3.provider.disconnect()

    ether = Decimal(AsyncWeb3.from_wei(wei, "ether"))
    formatted = ether.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    return NativeBalance(wei=str(wei), formatted=str(formatted))
