"""
Certimos — Metadata Resolver

Turns a token URI into a parsed metadata document, or None when the document
cannot be obtained. Supported URI forms:

- http(s)://...                     single GET, short timeout
- ipfs://<cid>                      public gateways tried in order, first success wins
- data:application/json[;base64],…  decoded locally, no network I/O

Fetch and parse failures are logged and reported as None; resolve() never raises.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import unquote

import httpx
import structlog

from certimos.config import settings

logger = structlog.get_logger(__name__)

IPFS_SCHEME = "ipfs://"
DATA_JSON_PREFIX = "data:application/json"


# ---------------------------------------------------------------------------
# Inline data URIs
# ---------------------------------------------------------------------------


def decode_data_uri(token_uri: str) -> dict[str, Any] | None:
    """
    Decode an inline `data:application/json` URI into a document.

    Returns None when the payload is missing, undecodable, not JSON, or not a
    JSON object.
    """
    header, sep, payload = token_uri.partition(",")
    if not sep:
        return None

    try:
        if ";base64" in header.lower():
            raw = base64.b64decode(payload, validate=False).decode("utf-8")
        else:
            raw = unquote(payload)
        document = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    return document if isinstance(document, dict) else None


def encode_data_uri(document: Mapping[str, Any]) -> str:
    """Encode a metadata document as an inline base64 JSON data URI."""
    payload = base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")
    return f"{DATA_JSON_PREFIX};base64,{payload}"


def ipfs_gateway_urls(token_uri: str, gateways: Sequence[str]) -> list[str]:
    """Expand an ipfs:// URI into one candidate URL per gateway, in order."""
    cid = token_uri[len(IPFS_SCHEME):]
    return [f"{gateway}{cid}" for gateway in gateways]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class MetadataResolver:
    """
    Stateless metadata resolver; safe to share across concurrent scans.

    Usage:
        async with MetadataResolver() as resolver:
            document = await resolver.resolve("ipfs://Qm...")

    An existing httpx.AsyncClient may be passed in; the resolver then leaves its
    lifecycle to the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        gateways: Sequence[str] | None = None,
        http_timeout: float | None = None,
        ipfs_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._gateways = list(gateways if gateways is not None else settings.IPFS_GATEWAYS)
        self._http_timeout = (
            http_timeout if http_timeout is not None else settings.METADATA_HTTP_TIMEOUT_SECONDS
        )
        self._ipfs_timeout = (
            ipfs_timeout if ipfs_timeout is not None else settings.METADATA_IPFS_TIMEOUT_SECONDS
        )
        self._headers = {
            "Accept": "application/json",
            "User-Agent": settings.METADATA_USER_AGENT,
        }

    async def __aenter__(self) -> MetadataResolver:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def gateways(self) -> list[str]:
        return list(self._gateways)

    async def _fetch_json(self, url: str, timeout: float) -> dict[str, Any] | None:
        """GET a URL and parse a JSON object body. Any failure yields None."""
        assert self._client is not None, "Resolver not initialized. Use 'async with'."

        try:
            response = await self._client.get(url, headers=self._headers, timeout=timeout)
        except httpx.HTTPError as e:
            logger.warning(
                "metadata_fetch_failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if not response.is_success:
            logger.warning(
                "metadata_fetch_bad_status",
                url=url,
                status_code=response.status_code,
            )
            return None

        try:
            document = response.json()
        except ValueError:
            logger.warning("metadata_parse_failed", url=url)
            return None

        if not isinstance(document, dict):
            logger.warning("metadata_not_an_object", url=url)
            return None
        return document

    async def _resolve_ipfs(self, token_uri: str) -> dict[str, Any] | None:
        # One gateway at a time; stop at the first usable document.
        for url in ipfs_gateway_urls(token_uri, self._gateways):
            document = await self._fetch_json(url, self._ipfs_timeout)
            if document is not None:
                logger.debug("metadata_ipfs_resolved", url=url)
                return document

        logger.warning(
            "metadata_ipfs_all_gateways_failed",
            token_uri=token_uri,
            gateways_tried=len(self._gateways),
        )
        return None

    async def resolve(self, token_uri: str | None) -> dict[str, Any] | None:
        """
        Resolve a token URI to its metadata document.

        Args:
            token_uri: HTTP(S) URL, ipfs:// URI, or inline JSON data URI.

        Returns:
            The parsed document, or None when it is absent or unreadable.
        """
        if not token_uri:
            return None

        lowered = token_uri.lower()
        if lowered.startswith(("http://", "https://")):
            return await self._fetch_json(token_uri, self._http_timeout)
        if lowered.startswith(IPFS_SCHEME):
            return await self._resolve_ipfs(token_uri)
        if lowered.startswith(DATA_JSON_PREFIX):
            document = decode_data_uri(token_uri)
            if document is None:
                logger.warning("metadata_inline_decode_failed")
            return document

        logger.debug("metadata_unsupported_scheme", token_uri=token_uri[:32])
        return None
