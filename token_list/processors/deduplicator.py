import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..evm.config import EvmConfig
from .disjoint_set import DisjointSet
from .normalizer import clean_address, merge_token_data_keep_identity, population_score, sort_tokens

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    tokens: List[Dict[str, Any]]
    root_tokens: List[Dict[str, Any]]
    inactive_tokens: List[Dict[str, Any]]
    merged: int = 0


def dedup_keys(token: Dict[str, Any]) -> List[str]:
    """Every `<address>_<chainId>` key the entry can be looked up by."""
    keys = []
    for field_name in ("address", "underlyingAddress"):
        addr = clean_address(token.get(field_name))
        if addr:
            keys.append(f"{addr}_{token.get('chainId')}")
    return keys


class Deduplicator:
    """
    Collapses entries that share an address or underlying address on the same
    chain across the active, root and inactive lists. Members of a duplicate
    group are folded from the sparsest entry to the richest one so nothing is
    lost, and the result stays active when any member was active.
    """

    def __init__(self, hub_chain_id: Optional[int] = None):
        self.hub_chain_id = hub_chain_id or EvmConfig.HUB_CHAIN_ID

    def dedupe(
        self,
        tokens: List[Dict[str, Any]],
        root_tokens: List[Dict[str, Any]],
        inactive: List[Dict[str, Any]],
    ) -> DedupResult:
        entries: List[Tuple[Dict[str, Any], bool]] = (
            [(t, True) for t in tokens] + [(t, True) for t in root_tokens] + [(t, False) for t in inactive]
        )

        sets = DisjointSet()
        owner: Dict[str, int] = {}
        for i, (token, _) in enumerate(entries):
            sets.add(i)
            for key in dedup_keys(token):
                if key in owner:
                    sets.union(owner[key], i)
                else:
                    owner[key] = i

        result = DedupResult(tokens=[], root_tokens=[], inactive_tokens=[])
        for members in sets.groups().values():
            members.sort()
            ordered = sorted(members, key=lambda i: population_score(entries[i][0]))
            merged = entries[ordered[0]][0]
            for i in ordered[1:]:
                merged = merge_token_data_keep_identity(merged, entries[i][0])
            if len(members) > 1:
                result.merged += len(members) - 1
                logger.debug(f"Merged {len(members)} duplicates of {merged.get('symbol')} on chain {merged.get('chainId')}")

            if any(entries[i][1] for i in members):
                if merged.get("chainId") == self.hub_chain_id:
                    result.root_tokens.append(merged)
                else:
                    result.tokens.append(merged)
            else:
                result.inactive_tokens.append(merged)

        result.tokens = sort_tokens(result.tokens)
        result.root_tokens = sort_tokens(result.root_tokens)
        result.inactive_tokens = sort_tokens(result.inactive_tokens)
        logger.info(
            f"Deduplicated {len(entries):,} entries into {len(result.tokens):,} tokens, "
            f"{len(result.root_tokens):,} root tokens and {len(result.inactive_tokens):,} inactive tokens "
            f"({result.merged:,} merged)"
        )
        return result
