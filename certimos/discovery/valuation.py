"""
Certimos — Certificate Valuation

Attribute-driven scoring:
    rarity   <- "Rarity" attribute (case-insensitive), default Common
    points   <- "Points" attribute if a positive integer, else RARITY_POINTS[rarity]
    category <- "Category" attribute, default General

A caller-supplied rarity overrides the attribute rarity and re-derives points
from the table, ignoring any explicit Points attribute.

Pure and total: no I/O, never mutates its input, never raises.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

from certimos.config import DEFAULT_CATEGORY, RARITY_POINTS, Rarity
from certimos.discovery.records import Valuation

_LEADING_INT = re.compile(r"\s*\+?([0-9]+)")
# Longer digit strings are treated as unparseable (int() also caps str length).
_MAX_POINTS_DIGITS = 18
_RARITY_BY_NAME = {rarity.value.lower(): rarity for rarity in Rarity}


def normalize_rarity(value: Any) -> Rarity:
    """Map a free-form rarity value onto a tier. Unknown values are Common."""
    if not isinstance(value, str):
        return Rarity.COMMON
    return _RARITY_BY_NAME.get(value.strip().lower(), Rarity.COMMON)


def points_for_rarity(rarity: Any) -> int:
    return RARITY_POINTS[normalize_rarity(rarity)]


def _parse_points(value: Any) -> int | None:
    """
    Read a positive integer from an attribute value ("300", 300, "300 pts").

    Zero counts as absent, so the rarity table applies.
    """
    points: int | None = None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        points = value
    elif isinstance(value, float):
        points = int(value) if math.isfinite(value) else None
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match and len(match.group(1)) <= _MAX_POINTS_DIGITS:
            points = int(match.group(1))
    if points is None or points <= 0:
        return None
    return points


def _traits(metadata: Any) -> dict[str, Any]:
    """Collect Rarity / Points / Category trait values, last occurrence wins."""
    found: dict[str, Any] = {}
    if not isinstance(metadata, Mapping):
        return found

    attributes = metadata.get("attributes")
    if not isinstance(attributes, list):
        return found

    for attribute in attributes:
        if not isinstance(attribute, Mapping):
            continue
        trait_type = attribute.get("trait_type")
        if not isinstance(trait_type, str):
            continue
        key = trait_type.strip().lower()
        if key in ("rarity", "points", "category"):
            found[key] = attribute.get("value")
    return found


def valuate(
    token_id: int | str,
    metadata: Mapping[str, Any] | None,
    token_uri: str = "",
    user_rarity: str | None = None,
) -> Valuation:
    """
    Compute the {points, rarity, category} triple for one certificate.

    Args:
        token_id: Token id (not used by the attribute policy; kept for callers
            that log or key by it).
        metadata: Parsed metadata document, or None when unavailable.
        token_uri: Source URI of the metadata.
        user_rarity: Optional caller-supplied rarity that takes precedence.

    Returns:
        Valuation with canonical rarity name.
    """
    traits = _traits(metadata)

    rarity = normalize_rarity(traits.get("rarity"))
    points = _parse_points(traits.get("points"))
    if points is None:
        points = RARITY_POINTS[rarity]

    if user_rarity:
        rarity = normalize_rarity(user_rarity)
        points = RARITY_POINTS[rarity]

    category_value = traits.get("category")
    category = str(category_value).strip() if category_value not in (None, "") else ""

    return Valuation(
        points=points,
        rarity=rarity.value,
        category=category or DEFAULT_CATEGORY,
    )
