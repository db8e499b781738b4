"""
Certimos — Error Taxonomy

Token- and contract-level failures are recovered where they happen; only
malformed input and configuration problems reach the caller as hard failures.
"""

from __future__ import annotations

from typing import Any


class CertimosError(Exception):
    """Base class for all Certimos errors."""


class InputValidationError(CertimosError, ValueError):
    """Malformed wallet address, contract address or token id. Raised before any I/O."""

    def __init__(self, field: str, value: Any, message: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid {field}: {value!r}")


class ConfigurationError(CertimosError):
    """A required connection parameter (RPC URL, signer key, contract) is missing."""


class TokenNotFoundError(CertimosError, LookupError):
    """The probed token id does not exist on the contract."""

    def __init__(self, token_id: int, contract_address: str | None = None) -> None:
        self.token_id = token_id
        self.contract_address = contract_address
        super().__init__(f"Token {token_id} does not exist")


class UpstreamUnavailableError(CertimosError):
    """The RPC endpoint could not be reached or returned a transport-level failure."""


class DuplicateCertificateError(CertimosError):
    """The recipient already holds a certificate with the same name."""

    def __init__(self, name: str, existing_token_id: str, issued_at: str | None = None) -> None:
        self.name = name
        self.existing_token_id = existing_token_id
        self.issued_at = issued_at
        super().__init__(
            f'A certificate with the name "{name}" already exists for this wallet address.'
        )


class UnauthorizedTransferError(CertimosError):
    """The transfer's from-address is not the token's current owner."""

    def __init__(self, token_id: int, owner: str, from_address: str) -> None:
        self.token_id = token_id
        self.owner = owner
        self.from_address = from_address
        super().__init__(f"Token {token_id} is owned by {owner}, not {from_address}")


class TransactionError(CertimosError):
    """A state-changing transaction was rejected."""


class InsufficientFundsError(TransactionError):
    """The signer cannot pay for gas."""


class TransactionRevertedError(TransactionError):
    """The contract reverted the transaction (e.g. signer lacks mint permission)."""
