"""
Certimos — Certificate Contract ABI

The subset of the ERC-721 certificate contract the service calls. Loaded in
code rather than from build artifacts so the service runs without the
contract toolchain.
"""

from __future__ import annotations

from typing import Any


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[str],
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": arg, "type": kind} for arg, kind in inputs],
        "outputs": [{"name": "", "type": kind} for kind in outputs],
    }


CERTIFICATE_ABI: list[dict[str, Any]] = [
    _fn("name", [], ["string"]),
    _fn("symbol", [], ["string"]),
    _fn("owner", [], ["address"]),
    _fn("balanceOf", [("owner", "address")], ["uint256"]),
    _fn("ownerOf", [("tokenId", "uint256")], ["address"]),
    _fn("tokenURI", [("tokenId", "uint256")], ["string"]),
    _fn(
        "mintCertificate",
        [("to", "address"), ("uri", "string")],
        [],
        mutability="nonpayable",
    ),
    _fn(
        "safeTransferFrom",
        [("from", "address"), ("to", "address"), ("tokenId", "uint256")],
        [],
        mutability="nonpayable",
    ),
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
]
