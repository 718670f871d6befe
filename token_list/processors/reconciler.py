import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..evm.config import (
    BLOCKED_TOKEN_SYMBOLS,
    CHAINS_WITH_NO_SWAPPING,
    CORE_TOKEN_SYMBOLS,
    NATIVE_OFT_ADAPTERS,
    PARTNER_TOKEN_SYMBOLS,
    ZERO_ADDRESS,
    EvmConfig,
)
from .disjoint_set import DisjointSet
from .normalizer import (
    checksum,
    clean_address,
    encode_spaces,
    merge_token_data,
    merge_token_data_underlying,
    order_attributes,
    sort_tokens,
)

logger = logging.getLogger(__name__)

TokenKey = Tuple[int, str]

HUB_CHAIN_LIMIT = 20
DEFAULT_CHAIN_LIMIT = 5


def token_key(token: Dict[str, Any], field_name: str = "address") -> Optional[TokenKey]:
    addr = clean_address(token.get(field_name))
    if not addr or token.get("chainId") is None:
        return None
    return int(token["chainId"]), addr


def _coerce_across_entry(value: Any) -> Dict[str, Any]:
    return {"address": value} if isinstance(value, str) else dict(value or {})


def normalize_across_token(data: Dict[str, Any], supported_chain_ids: Iterable[int]) -> List[Dict[str, Any]]:
    """One record per chain address of an Across symbol entry, each listing its siblings in `acrossInfo`."""
    supported = set(supported_chain_ids)
    addresses = {str(k): _coerce_across_entry(v) for k, v in (data.get("addresses") or {}).items()}
    out = []
    for chain_key, entry in addresses.items():
        chain_id = int(chain_key)
        if chain_id not in supported:
            continue
        # Chain-specific decimals mean a different asset representation; not bridged 1:1
        if entry.get("decimals"):
            continue
        address = checksum(entry.get("address"))
        if not address:
            continue
        across_info = {
            other: {**value, "address": checksum(value.get("address")) or value.get("address")}
            for other, value in addresses.items()
            if int(other) != chain_id and int(other) in supported
        }
        token = {
            "chainId": chain_id,
            "address": address,
            "name": data.get("name"),
            "symbol": data.get("symbol"),
            "decimals": data.get("decimals"),
            "tags": [],
            "extensions": {"coingeckoId": data.get("coingeckoId"), "acrossInfo": across_info},
            "isAcross": True,
            "isOFT": False,
        }
        if data.get("logoURI"):
            token["logoURI"] = data["logoURI"]
        if token["extensions"]["coingeckoId"] is None:
            token["extensions"].pop("coingeckoId")
        out.append(order_attributes(token))
    return out


def normalize_oft_token(token: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Validate an enriched bridge record and reduce it to list-entry fields."""
    address = checksum(token.get("address"))
    if not address or not token.get("decimals") or not token.get("name") or not token.get("symbol"):
        return None

    result = {
        "chainId": int(token["chainId"]),
        "address": address,
        "name": token["name"],
        "symbol": token["symbol"],
        "decimals": token["decimals"],
        "tags": list(token.get("tags") or []),
        "isAcross": bool(token.get("isAcross")),
        "isOFT": bool(token.get("isOFT")),
    }
    if token.get("logoURI"):
        result["logoURI"] = token["logoURI"]
    extensions = dict(token.get("extensions") or {})
    if not result["isOFT"]:
        extensions.pop("oftInfo", None)
    if extensions:
        result["extensions"] = extensions
    return order_attributes(result)


@dataclass
class ReconcileSources:
    oft_tokens: List[Dict[str, Any]] = field(default_factory=list)
    across: Dict[str, Any] = field(default_factory=dict)
    registry: Dict[str, Any] = field(default_factory=dict)
    uniswap: List[Dict[str, Any]] = field(default_factory=list)
    wrapped_natives: List[Dict[str, Any]] = field(default_factory=list)
    additional: List[Dict[str, Any]] = field(default_factory=list)
    token_lists: List[List[Dict[str, Any]]] = field(default_factory=list)
    inactive_lists: List[List[Dict[str, Any]]] = field(default_factory=list)


@dataclass
class ReconcileResult:
    tokens: List[Dict[str, Any]]
    root_tokens: List[Dict[str, Any]]
    inactive_tokens: List[Dict[str, Any]]


class PeerGroups:
    """Transitive closure of OFT peer links; a token and all its chain variants share one group."""

    def __init__(self):
        self._sets = DisjointSet()

    def add_token(self, key: TokenKey, token: Dict[str, Any]) -> None:
        self._sets.add(key)
        if not token.get("isOFT"):
            return
        peers = ((token.get("extensions") or {}).get("oftInfo") or {}).get("peersInfo") or {}
        for chain_id, info in peers.items():
            peer = clean_address((info or {}).get("tokenAddress"))
            if peer:
                self._sets.union(key, (int(chain_id), peer))

    def group_of(self, key: TokenKey):
        return self._sets.find(key)


class ListReconciler:
    def __init__(
        self,
        hub_chain_id: Optional[int] = None,
        list_chain_ids: Optional[Iterable[int]] = None,
        hub_limit: int = HUB_CHAIN_LIMIT,
        default_limit: int = DEFAULT_CHAIN_LIMIT,
    ):
        self.hub_chain_id = hub_chain_id or EvmConfig.HUB_CHAIN_ID
        self.list_chain_ids = frozenset(list_chain_ids) if list_chain_ids is not None else EvmConfig.list_chain_ids()
        self.hub_limit = hub_limit
        self.default_limit = default_limit

    def reconcile(self, sources: ReconcileSources) -> ReconcileResult:
        normalized: Dict[TokenKey, Dict[str, Any]] = {}
        roots: Dict[str, Dict[str, Any]] = {}
        registry_tokens = list(sources.registry.get("tokens") or [])
        registry_roots = list(sources.registry.get("rootTokens") or [])

        self._add_across(sources.across, normalized, roots)

        ofts = self._collect_ofts(sources.oft_tokens)
        registry_keys = self._registry_keys(registry_tokens + registry_roots)
        inactive_groups = self.threshold(ofts, registry_keys)

        inactive_map: Dict[TokenKey, Dict[str, Any]] = {}
        for key, token, group in ofts:
            self._remap_native_peers(token)
            if group in inactive_groups:
                inactive_map[key] = self._merge_into(inactive_map.get(key), token)
            elif key[0] == self.hub_chain_id:
                roots[key[1]] = self._merge_into(roots.get(key[1]), token)
            else:
                normalized[key] = self._merge_into(normalized.get(key), token)

        inactive_keys: Set[TokenKey] = set(inactive_map)
        for t in inactive_map.values():
            k = token_key(t, "underlyingAddress")
            if k:
                inactive_keys.add(k)

        uniswap_format = (
            list(sources.uniswap)
            + list(sources.wrapped_natives)
            + registry_roots
            + list(sources.additional)
            + [t for lst in sources.token_lists for t in lst]
        )
        self._add_uniswap_format(uniswap_format, inactive_keys, normalized, roots)
        self._add_registry(registry_tokens, normalized)

        tokens = self.final_clean(normalized.values(), sources.wrapped_natives)
        root_tokens = self.final_clean(roots.values(), sources.wrapped_natives)

        tokens, root_tokens, inactive = self._build_inactive(
            tokens, root_tokens, sources.inactive_lists, list(inactive_map.values())
        )
        logger.info(
            f"Reconciled {len(tokens):,} tokens, {len(root_tokens):,} root tokens, {len(inactive):,} inactive tokens"
        )
        return ReconcileResult(tokens=tokens, root_tokens=root_tokens, inactive_tokens=inactive)

    def _blocked(self, token: Dict[str, Any]) -> bool:
        if token.get("symbol") in BLOCKED_TOKEN_SYMBOLS:
            logger.warning(f"Skipping blocked token {token.get('symbol')} on chain {token.get('chainId')}")
            return True
        return False

    @staticmethod
    def _merge_into(existing: Optional[Dict[str, Any]], incoming: Dict[str, Any]) -> Dict[str, Any]:
        if existing is None:
            return order_attributes(incoming)
        return merge_token_data(existing, incoming)

    def _add_across(self, across: Dict[str, Any], normalized, roots) -> None:
        for data in across.values():
            for token in normalize_across_token(data, self.list_chain_ids):
                if self._blocked(token):
                    continue
                key = token_key(token)
                if key[0] == self.hub_chain_id:
                    roots.setdefault(key[1], token)
                else:
                    normalized.setdefault(key, token)

    def _collect_ofts(self, oft_tokens: List[Dict[str, Any]]) -> List[Tuple[TokenKey, Dict[str, Any], Any]]:
        collected: List[Tuple[TokenKey, Dict[str, Any]]] = []
        groups = PeerGroups()
        for raw in oft_tokens:
            token = normalize_oft_token(raw)
            if token is None or self._blocked(token):
                continue
            key = token_key(token)
            if NATIVE_OFT_ADAPTERS.get(key[0], {}).get(key[1]):
                logger.warning(f"Skipping native OFT adapter token {token['symbol']} on chain {key[0]}")
                continue
            collected.append((key, token))
            groups.add_token(key, token)
        return [(key, token, groups.group_of(key)) for key, token in collected]

    @staticmethod
    def _registry_keys(registry: List[Dict[str, Any]]) -> Set[TokenKey]:
        keys: Set[TokenKey] = set()
        for t in registry:
            for field_name in ("address", "underlyingAddress"):
                k = token_key(t, field_name)
                if k:
                    keys.add(k)
        return keys

    def threshold(self, ofts: List[Tuple[TokenKey, Dict[str, Any], Any]], registry_keys: Set[TokenKey]) -> Set[Any]:
        """
        Decide which peer groups go to the inactive list. Groups holding a
        partner/core symbol or a registry token are always active; otherwise each
        chain keeps its first N groups (hub chain 20, others 5) and later groups
        are demoted everywhere.
        """
        vip: Set[Any] = set()
        active: Set[Any] = set()
        inactive: Set[Any] = set()

        for key, token, group in ofts:
            symbol = token.get("symbol")
            if symbol in PARTNER_TOKEN_SYMBOLS or symbol in CORE_TOKEN_SYMBOLS or key in registry_keys:
                vip.add(group)

        by_chain: Dict[int, List[Tuple[Dict[str, Any], Any]]] = {}
        for key, token, group in ofts:
            by_chain.setdefault(key[0], []).append((token, group))

        for chain_id, entries in by_chain.items():
            limit = self.hub_limit if chain_id == self.hub_chain_id else self.default_limit
            counted: Set[Any] = set()
            for token, group in entries:
                if not token.get("isOFT") or group in counted:
                    continue
                if group in vip:
                    counted.add(group)
                elif group in inactive:
                    continue
                elif len(counted) < limit:
                    active.add(group)
                    counted.add(group)
                else:
                    inactive.add(group)
            logger.debug(f"Chain {chain_id}: {len(counted)} active OFT groups")

        # A group demoted on any chain is demoted on all of them. Slots it took on
        # earlier chains are not handed to groups already demoted there, so those
        # chains may end up with fewer than `limit` active groups.
        demoted = inactive - vip
        if demoted & active:
            logger.info(f"{len(demoted & active):,} peer groups demoted after being kept on an earlier chain")
        return demoted

    @staticmethod
    def _remap_native_peers(token: Dict[str, Any]) -> None:
        peers = ((token.get("extensions") or {}).get("oftInfo") or {}).get("peersInfo") or {}
        for chain_id, info in peers.items():
            target = NATIVE_OFT_ADAPTERS.get(int(chain_id), {}).get((clean_address(info.get("tokenAddress")) or ""))
            if target:
                peers[chain_id] = {"tokenAddress": target}

    def _add_uniswap_format(self, tokens: List[Dict[str, Any]], inactive_keys: Set[TokenKey], normalized, roots):
        for raw in tokens:
            if self._blocked(raw):
                continue
            if raw.get("chainId") not in self.list_chain_ids:
                continue
            address = checksum(raw.get("address"))
            if not address or address == ZERO_ADDRESS:
                continue
            token = {**raw, "address": address}
            key = token_key(token)
            if key in inactive_keys:
                continue
            if not token.get("logoURI"):
                token.pop("logoURI", None)
            token.setdefault("isAcross", False)
            token.setdefault("isOFT", False)
            if key[0] == self.hub_chain_id:
                roots[key[1]] = self._merge_into(roots.get(key[1]), token)
            else:
                normalized[key] = self._merge_into(normalized.get(key), token)

    def _add_registry(self, tokens: List[Dict[str, Any]], normalized) -> None:
        for raw in tokens:
            if self._blocked(raw):
                continue
            underlying = checksum(raw.get("underlyingAddress"))
            if not underlying:
                logger.warning(f"Skipping registry token {raw.get('symbol')} without underlyingAddress")
                continue
            token = {**raw, "underlyingAddress": underlying}
            if raw.get("globalAddress"):
                token["globalAddress"] = checksum(raw["globalAddress"]) or raw["globalAddress"]
            if not token.get("logoURI"):
                token.pop("logoURI", None)
            key = (int(token["chainId"]), underlying.lower())
            if key in normalized:
                normalized[key] = merge_token_data_underlying(normalized[key], token)
            else:
                normalized[key] = order_attributes(token)

    @staticmethod
    def final_clean(tokens: Iterable[Dict[str, Any]], wrapped_natives: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        wrapped: Set[TokenKey] = set()
        for w in wrapped_natives:
            for field_name in ("address", "underlyingAddress"):
                k = token_key(w, field_name)
                if k:
                    wrapped.add(k)

        out = []
        for t in tokens:
            keys = {token_key(t, "address"), token_key(t, "underlyingAddress")} - {None}
            keep = (
                t.get("isAcross")
                or t.get("isOFT")
                or bool(keys & wrapped)
                or t.get("chainId") not in CHAINS_WITH_NO_SWAPPING
            )
            if not keep:
                continue
            t = dict(t)
            if t.get("logoURI"):
                t["logoURI"] = encode_spaces(t["logoURI"])
            if t.get("address"):
                t["address"] = checksum(t["address"]) or t["address"]
            out.append(t)
        return sort_tokens(out)

    def _build_inactive(
        self,
        tokens: List[Dict[str, Any]],
        root_tokens: List[Dict[str, Any]],
        inactive_lists: List[List[Dict[str, Any]]],
        demoted: List[Dict[str, Any]],
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], List[Dict[str, Any]]]:
        merged: Dict[TokenKey, Dict[str, Any]] = {}
        for lst in inactive_lists:
            for t in lst:
                if t.get("chainId") not in self.list_chain_ids:
                    continue
                key = token_key(t)
                if key and key not in merged:
                    merged[key] = dict(t)

        without_logo = [t for t in tokens + root_tokens if not t.get("logoURI")]
        tokens = [t for t in tokens if t.get("logoURI")]
        root_tokens = [t for t in root_tokens if t.get("logoURI")]

        active_keys = {token_key(t) for t in tokens} - {None}

        candidates = list(merged.values()) + without_logo
        inactive: Dict[TokenKey, Dict[str, Any]] = {}
        for t in candidates:
            key = token_key(t) or token_key(t, "underlyingAddress")
            if key is None or key in active_keys or key in inactive:
                continue
            entry = dict(t)
            entry["extensions"] = entry.get("extensions") or {}
            inactive[key] = order_attributes(entry)

        for t in demoted:
            key = token_key(t)
            if key in active_keys:
                continue
            inactive[key] = self._merge_into(inactive.get(key), t)

        return tokens, root_tokens, sort_tokens(list(inactive.values()))
