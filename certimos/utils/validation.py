"""
Certimos — Input Validation

Address and token id checks shared by the scanner, aggregator, service and
HTTP layer. Everything here fails fast, before any network call.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from certimos.errors import InputValidationError

# Both patterns are applied with fullmatch; "$" would accept a trailing newline.
ADDRESS_PATTERN = re.compile(r"0x[a-fA-F0-9]{40}")
# uint256 has at most 78 decimal digits.
TOKEN_ID_PATTERN = re.compile(r"[0-9]{1,78}")


def is_valid_address(address: object) -> bool:
    """True for a 0x-prefixed, 40-hex-character address string."""
    return isinstance(address, str) and ADDRESS_PATTERN.fullmatch(address) is not None


def validate_address(address: object, field: str = "walletAddress") -> str:
    """
    Return the address unchanged if well-formed.

    Raises:
        InputValidationError: If the address is missing or malformed.
    """
    if not address:
        raise InputValidationError(field, address, f"{field} is required")
    if not is_valid_address(address):
        raise InputValidationError(field, address, f"Invalid {field} format")
    return address  # type: ignore[return-value]


def validate_token_id(token_id: object) -> int:
    """
    Parse a token id from an int or a decimal string.

    Raises:
        InputValidationError: If the token id is missing, negative or not a number.
    """
    if isinstance(token_id, bool):
        raise InputValidationError("tokenId", token_id, "Token ID must be a valid number")
    if isinstance(token_id, int):
        if token_id < 0:
            raise InputValidationError("tokenId", token_id, "Token ID must be a valid number")
        return token_id
    if token_id is None or token_id == "":
        raise InputValidationError("tokenId", token_id, "Token ID is required")
    if not isinstance(token_id, str) or not TOKEN_ID_PATTERN.fullmatch(token_id):
        raise InputValidationError("tokenId", token_id, "Token ID must be a valid number")
    return int(token_id)


def dedupe_addresses(addresses: Iterable[str]) -> list[str]:
    """Drop case-insensitive duplicates, keeping first-seen order and spelling."""
    seen: set[str] = set()
    unique: list[str] = []
    for address in addresses:
        key = address.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(address)
    return unique


def parse_contract_list(raw: str | None) -> list[str] | None:
    """
    Split a comma-separated contract query parameter.

    Returns None when no list was given, so callers fall back to the registry.

    Raises:
        InputValidationError: If any listed address is malformed.
    """
    if raw is None or not raw.strip():
        return None
    addresses = [part.strip() for part in raw.split(",") if part.strip()]
    return [validate_address(address, field="contractAddress") for address in addresses]
