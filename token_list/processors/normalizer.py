"""
Pure helpers shared by every stage: address canonicalization, extension
merging with deterministic key order, token attribute order and sorting.
"""

import re
from typing import Any, Dict, List, Optional

from eth_utils import to_checksum_address

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")

EXTENSION_PRIORITY = ("coingeckoId", "coinMarketCapId", "bridgeInfo", "acrossInfo", "oftInfo")

ATTRIBUTE_ORDER = (
    "chainId",
    "address",
    "globalAddress",
    "localAddress",
    "underlyingAddress",
    "name",
    "symbol",
    "decimals",
    "logoURI",
    "tags",
    "extensions",
    "isAcross",
    "isOFT",
    "oftAdapter",
    "oftVersion",
    "endpointVersion",
    "endpointId",
    "oftSharedDecimals",
)


def clean_address(value: Any) -> Optional[str]:
    """Lowercased 0x address, or None when the input is not a 20-byte hex address."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip().lower()
    return trimmed if _ADDRESS_RE.match(trimmed) else None


def checksum(value: Any) -> Optional[str]:
    cleaned = clean_address(value)
    return to_checksum_address(cleaned) if cleaned else None


def order_extensions(ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    ext = ext or {}
    ordered = {k: ext[k] for k in EXTENSION_PRIORITY if k in ext}
    for k, v in ext.items():
        if k not in ordered:
            ordered[k] = v
    return ordered


def merge_extensions(existing: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge two extension maps one level deep: nested dicts are combined key by
    key with `incoming` winning, scalars from `incoming` replace existing ones.
    None values in `incoming` never erase data.
    """
    merged = dict(existing or {})
    for key, value in (incoming or {}).items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = {**current, **value}
        else:
            merged[key] = value
    return order_extensions(merged)


def order_attributes(token: Dict[str, Any]) -> Dict[str, Any]:
    ordered = {k: token[k] for k in ATTRIBUTE_ORDER if k in token}
    for k, v in token.items():
        if k not in ordered:
            ordered[k] = v
    return ordered


def token_address(token: Dict[str, Any]) -> Optional[str]:
    return token.get("address") or token.get("underlyingAddress")


def token_sort_key(token: Dict[str, Any]):
    return (int(token.get("chainId") or 0), token_address(token) or "")


def sort_tokens(tokens: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(tokens, key=token_sort_key)


def population_score(token: Dict[str, Any]) -> int:
    """Number of fields that are neither None nor an empty container."""
    score = 0
    for value in token.values():
        if value is None:
            continue
        if isinstance(value, (dict, list)) and not value:
            continue
        score += 1
    return score


def _merge_records(existing: Dict[str, Any], incoming: Dict[str, Any], identity_from: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**existing, **incoming}
    for field in ("name", "symbol"):
        if identity_from.get(field) is not None:
            merged[field] = identity_from[field]
        else:
            merged[field] = existing.get(field) if existing.get(field) is not None else incoming.get(field)
    merged["isAcross"] = bool(existing.get("isAcross") or incoming.get("isAcross"))
    merged["isOFT"] = bool(existing.get("isOFT") or incoming.get("isOFT"))
    logo = incoming.get("logoURI") or existing.get("logoURI")
    if logo:
        merged["logoURI"] = logo
    else:
        merged.pop("logoURI", None)
    extensions = merge_extensions(existing.get("extensions"), incoming.get("extensions"))
    if extensions:
        merged["extensions"] = extensions
    else:
        merged.pop("extensions", None)
    for key, value in existing.items():
        if merged.get(key) is None and value is not None:
            merged[key] = value
    return order_attributes(merged)


def merge_token_data(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Field-level merge where `incoming` supplies name/symbol and wins scalar conflicts."""
    return _merge_records(existing, incoming, identity_from=incoming)


def merge_token_data_keep_identity(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Same as merge_token_data but name/symbol stay with `existing` (dedup folding)."""
    return _merge_records(existing, incoming, identity_from=existing)


def merge_token_data_underlying(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge variant for registry records keyed by `underlyingAddress`: the result
    is addressed by the registry's underlying address, so any bridging
    `address` carried by either side is dropped.
    """
    existing = {k: v for k, v in existing.items() if k != "address"}
    incoming = {k: v for k, v in incoming.items() if k != "address"}
    return _merge_records(existing, incoming, identity_from=incoming)


def encode_spaces(url: str) -> str:
    return url.replace(" ", "%20")
