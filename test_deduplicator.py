import json
import unittest

from eth_utils import to_checksum_address

from token_list.processors import Deduplicator
from token_list.processors.deduplicator import dedup_keys


def _addr(n: int) -> str:
    return to_checksum_address("0x" + f"{n:040x}")


def _dedupe(tokens, root_tokens=(), inactive=()):
    return Deduplicator(hub_chain_id=42161).dedupe(list(tokens), list(root_tokens), list(inactive))


class TestDeduplicator(unittest.TestCase):

    def test_keys_cover_address_and_underlying(self):
        token = {"chainId": 10, "address": _addr(1), "underlyingAddress": _addr(2)}
        self.assertEqual(dedup_keys(token), [f"{_addr(1).lower()}_10", f"{_addr(2).lower()}_10"])

    def test_duplicates_merge_without_losing_fields(self):
        sparse = {"chainId": 10, "address": _addr(1), "name": "Sparse", "symbol": "SPR"}
        rich = {
            "chainId": 10,
            "address": _addr(1).lower(),
            "name": "Rich",
            "symbol": "RCH",
            "decimals": 18,
            "logoURI": "https://logo.example/rich.png",
            "extensions": {"coingeckoId": "rich"},
        }

        result = _dedupe([rich, sparse])

        (token,) = result.tokens
        self.assertEqual(token["decimals"], 18)
        self.assertEqual(token["logoURI"], "https://logo.example/rich.png")
        self.assertEqual(token["extensions"], {"coingeckoId": "rich"})
        # the sparsest entry is the merge base and keeps its identity
        self.assertEqual(token["symbol"], "SPR")
        self.assertEqual(result.merged, 1)

    def test_underlying_address_links_entries(self):
        bridged = {"chainId": 10, "address": _addr(1), "symbol": "X", "isOFT": True}
        registry = {"chainId": 10, "underlyingAddress": _addr(1), "globalAddress": _addr(9), "symbol": "X"}

        result = _dedupe([bridged, registry])

        (token,) = result.tokens
        self.assertTrue(token["isOFT"])
        self.assertEqual(token["globalAddress"], _addr(9))

    def test_transitive_groups(self):
        a = {"chainId": 10, "address": _addr(1), "symbol": "A"}
        b = {"chainId": 10, "address": _addr(2), "underlyingAddress": _addr(1), "symbol": "A"}
        c = {"chainId": 10, "underlyingAddress": _addr(2), "symbol": "A"}

        result = _dedupe([a], inactive=[b, c])

        self.assertEqual(len(result.tokens), 1)
        self.assertEqual(result.inactive_tokens, [])

    def test_active_status_is_sticky(self):
        active = {"chainId": 10, "address": _addr(1), "symbol": "A"}
        inactive = {"chainId": 10, "address": _addr(1), "symbol": "A", "decimals": 6}
        other = {"chainId": 10, "address": _addr(3), "symbol": "B"}

        result = _dedupe([active], inactive=[inactive, other])

        self.assertEqual([t["address"] for t in result.tokens], [_addr(1)])
        self.assertEqual(result.tokens[0]["decimals"], 6)
        self.assertEqual([t["address"] for t in result.inactive_tokens], [_addr(3)])

    def test_hub_chain_entries_become_root_tokens(self):
        hub = {"chainId": 42161, "address": _addr(1), "symbol": "H"}
        dup = {"chainId": 42161, "address": _addr(1), "symbol": "H", "decimals": 18}

        result = _dedupe([], root_tokens=[hub], inactive=[dup])

        self.assertEqual(len(result.root_tokens), 1)
        self.assertEqual(result.tokens, [])
        self.assertEqual(result.inactive_tokens, [])

    def test_same_address_on_other_chain_is_not_a_duplicate(self):
        result = _dedupe([
            {"chainId": 1, "address": _addr(1), "symbol": "A"},
            {"chainId": 10, "address": _addr(1), "symbol": "A"},
        ])
        self.assertEqual(len(result.tokens), 2)

    def test_idempotent(self):
        tokens = [
            {"chainId": 10, "address": _addr(2), "symbol": "B", "logoURI": "https://logo.example/b.png"},
            {"chainId": 10, "address": _addr(1), "symbol": "A"},
            {"chainId": 10, "address": _addr(1).lower(), "symbol": "A", "decimals": 18,
             "extensions": {"bridgeInfo": {"1": {"tokenAddress": _addr(5)}}}},
            {"chainId": 1, "underlyingAddress": _addr(4), "symbol": "U"},
        ]
        root_tokens = [{"chainId": 42161, "address": _addr(7), "symbol": "R"}]
        inactive = [
            {"chainId": 10, "address": _addr(1), "symbol": "A", "isOFT": True},
            {"chainId": 1, "address": _addr(4), "underlyingAddress": _addr(4), "symbol": "U"},
            {"chainId": 8453, "address": _addr(8), "symbol": "I"},
        ]

        first = _dedupe(tokens, root_tokens, inactive)
        second = _dedupe(first.tokens, first.root_tokens, first.inactive_tokens)

        def dump(r):
            return json.dumps([r.tokens, r.root_tokens, r.inactive_tokens], sort_keys=False)

        self.assertEqual(dump(first), dump(second))
        self.assertEqual(second.merged, 0)


if __name__ == '__main__':
    unittest.main()
