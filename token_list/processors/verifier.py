import logging
from typing import Any, Dict, List, Optional, Tuple

import polars as pl

from ..evm.config import ZERO_ADDRESS
from .normalizer import checksum, clean_address

logger = logging.getLogger(__name__)

ISSUE_SCHEMA = {
    "chain_id": pl.Int64,
    "address": pl.Utf8,
    "symbol": pl.Utf8,
    "issue": pl.Utf8,
    "detail": pl.Utf8,
}

NOT_CHECKSUMMED = "address_not_checksummed"
MISSING_PEERS = "oft_missing_peers"
PEER_NOT_FOUND = "peer_not_found"
ASYMMETRIC_PEER = "asymmetric_peer"
PEER_ADDRESS_MISMATCH = "peer_address_mismatch"
PEER_NOT_OFT = "peer_not_oft"
ACROSS_NOT_FOUND = "across_peer_not_found"
ASYMMETRIC_ACROSS = "asymmetric_across"
ACROSS_NOT_ACROSS = "across_peer_not_across"
DUPLICATE_SYMBOL = "duplicate_symbol"


def _peers(token: Dict[str, Any]) -> Dict[str, Any]:
    return ((token.get("extensions") or {}).get("oftInfo") or {}).get("peersInfo") or {}


def _across(token: Dict[str, Any]) -> Dict[str, Any]:
    return (token.get("extensions") or {}).get("acrossInfo") or {}


class ListVerifier:
    """
    Read-only consistency checks over the published lists: checksummed
    addresses, symmetric OFT and Across peer maps, and one symbol per chain.
    """

    def __init__(self):
        self._issues: List[Dict[str, Any]] = []

    def _report(self, token: Dict[str, Any], issue: str, detail: str = "") -> None:
        self._issues.append(
            {
                "chain_id": int(token.get("chainId") or 0),
                "address": token.get("address") or token.get("underlyingAddress"),
                "symbol": token.get("symbol"),
                "issue": issue,
                "detail": detail,
            }
        )

    def verify(self, active: List[Dict[str, Any]], inactive: Optional[List[Dict[str, Any]]] = None) -> pl.DataFrame:
        self._issues = []
        tokens = list(active) + list(inactive or [])

        index: Dict[Tuple[int, str], Dict[str, Any]] = {}
        for t in tokens:
            addr = clean_address(t.get("address"))
            if addr:
                index.setdefault((int(t["chainId"]), addr), t)

        for t in tokens:
            address = t.get("address")
            if address and checksum(address) != address:
                self._report(t, NOT_CHECKSUMMED, f"expected {checksum(address)}")
            if t.get("isOFT"):
                self._check_oft(t, index)
            if t.get("isAcross"):
                self._check_across(t, index)

        self._check_duplicate_symbols(active)

        df = pl.DataFrame(self._issues, schema=ISSUE_SCHEMA)
        if df.height == 0:
            logger.info(f"Verified {len(tokens):,} tokens: no issues")
        else:
            summary = df.group_by("issue").agg(pl.len().alias("count")).sort("issue")
            logger.warning(f"Verified {len(tokens):,} tokens: {df.height:,} issue(s)")
            for row in summary.iter_rows(named=True):
                logger.warning(f"  {row['issue']}: {row['count']:,}")
        return df

    def _check_oft(self, token: Dict[str, Any], index) -> None:
        peers = _peers(token)
        if not peers:
            self._report(token, MISSING_PEERS)
            return

        own = clean_address(token.get("address"))
        for chain_id, info in peers.items():
            peer_addr = clean_address((info or {}).get("tokenAddress"))
            if not peer_addr or peer_addr == ZERO_ADDRESS:
                continue
            peer = index.get((int(chain_id), peer_addr))
            if peer is None:
                self._report(token, PEER_NOT_FOUND, f"{chain_id}:{info.get('tokenAddress')}")
                continue
            if not peer.get("isOFT"):
                self._report(token, PEER_NOT_OFT, f"{chain_id}:{peer.get('address')}")
                continue
            back = _peers(peer).get(str(token.get("chainId")))
            if not back:
                self._report(token, ASYMMETRIC_PEER, f"{chain_id}:{peer.get('address')} does not list chain {token.get('chainId')}")
            elif clean_address(back.get("tokenAddress")) != own:
                self._report(
                    token,
                    PEER_ADDRESS_MISMATCH,
                    f"{chain_id}:{peer.get('address')} points back to {back.get('tokenAddress')}",
                )

    def _check_across(self, token: Dict[str, Any], index) -> None:
        own = clean_address(token.get("address"))
        for chain_id, info in _across(token).items():
            target_addr = clean_address((info or {}).get("address"))
            target = index.get((int(chain_id), target_addr)) if target_addr else None
            if target is None:
                self._report(token, ACROSS_NOT_FOUND, f"{chain_id}:{(info or {}).get('address')}")
                continue
            if not target.get("isAcross"):
                self._report(token, ACROSS_NOT_ACROSS, f"{chain_id}:{target.get('address')}")
                continue
            back = _across(target).get(str(token.get("chainId")))
            if not back or clean_address(back.get("address")) != own:
                self._report(token, ASYMMETRIC_ACROSS, f"{chain_id}:{target.get('address')}")

    def _check_duplicate_symbols(self, tokens: List[Dict[str, Any]]) -> None:
        seen: Dict[Tuple[int, str], Dict[str, Any]] = {}
        for t in tokens:
            if not t.get("symbol"):
                continue
            key = (int(t["chainId"]), t["symbol"])
            if key in seen:
                self._report(t, DUPLICATE_SYMBOL, f"also {seen[key].get('address') or seen[key].get('underlyingAddress')}")
            else:
                seen[key] = t


def write_report(df: pl.DataFrame, path: str) -> None:
    df.write_csv(path)
    logger.info(f"Wrote {df.height:,} verification issue(s) to {path}")
