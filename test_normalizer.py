import unittest

from token_list.models import BridgeInfo, FeeQuote, TokenRecord
from token_list.processors.disjoint_set import DisjointSet
from token_list.processors.normalizer import (
    checksum,
    clean_address,
    encode_spaces,
    merge_extensions,
    merge_token_data,
    merge_token_data_keep_identity,
    merge_token_data_underlying,
    population_score,
    sort_tokens,
)

ADDR = "0x5555555555555555555555555555555555555555"
UNDERLYING = "0x6666666666666666666666666666666666666666"


class TestAddresses(unittest.TestCase):

    def test_clean_address(self):
        self.assertEqual(clean_address(" 0xABCDEFabcdef0000000000000000000000000000 "),
                         "0xabcdefabcdef0000000000000000000000000000")
        self.assertIsNone(clean_address("0x123"))
        self.assertIsNone(clean_address(None))

    def test_checksum(self):
        self.assertEqual(checksum("0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9"),
                         "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9")
        self.assertIsNone(checksum("nope"))


class TestMerge(unittest.TestCase):

    def test_merge_no_loss(self):
        x = {"chainId": 1, "address": ADDR, "a": 1, "b": "old"}
        y = {"chainId": 1, "address": ADDR, "b": "new", "c": 3}

        merged = merge_token_data(x, y)

        self.assertEqual(merged["a"], 1)
        self.assertEqual(merged["b"], "new")
        self.assertEqual(merged["c"], 3)

    def test_merge_field_union_is_order_independent(self):
        x = {"chainId": 1, "address": ADDR, "a": 1, "b": 2}
        y = {"chainId": 1, "address": ADDR, "b": 2, "c": 3}
        self.assertEqual(set(merge_token_data(x, y)), set(merge_token_data(y, x)))

    def test_identity_and_flags(self):
        existing = {"chainId": 1, "address": ADDR, "name": "Old", "symbol": "OLD", "isOFT": True, "isAcross": False,
                    "logoURI": "https://logo.example/old.png"}
        incoming = {"chainId": 1, "address": ADDR, "name": "New", "symbol": "NEW", "isOFT": False, "isAcross": True}

        merged = merge_token_data(existing, incoming)

        self.assertEqual((merged["name"], merged["symbol"]), ("New", "NEW"))
        self.assertTrue(merged["isOFT"])
        self.assertTrue(merged["isAcross"])
        self.assertEqual(merged["logoURI"], "https://logo.example/old.png")

        kept = merge_token_data_keep_identity(existing, incoming)
        self.assertEqual((kept["name"], kept["symbol"]), ("Old", "OLD"))

    def test_none_never_erases(self):
        merged = merge_token_data({"chainId": 1, "decimals": 18}, {"chainId": 1, "decimals": None})
        self.assertEqual(merged["decimals"], 18)

    def test_extensions_deep_merge_and_order(self):
        existing = {"oftInfo": {"oftAdapter": ADDR}, "bridgeInfo": {"1": {"tokenAddress": ADDR}}}
        incoming = {"bridgeInfo": {"10": {"tokenAddress": ADDR}}, "coingeckoId": "x", "custom": True}

        merged = merge_extensions(existing, incoming)

        self.assertEqual(list(merged), ["coingeckoId", "bridgeInfo", "oftInfo", "custom"])
        self.assertEqual(set(merged["bridgeInfo"]), {"1", "10"})

    def test_underlying_merge_drops_bridge_address(self):
        existing = {"chainId": 10, "address": ADDR, "symbol": "X"}
        incoming = {"chainId": 10, "underlyingAddress": UNDERLYING, "symbol": "X", "globalAddress": ADDR}

        merged = merge_token_data_underlying(existing, incoming)

        self.assertNotIn("address", merged)
        self.assertEqual(merged["underlyingAddress"], UNDERLYING)

    def test_attribute_order(self):
        merged = merge_token_data({"symbol": "X", "chainId": 1}, {"address": ADDR, "zzz": 1})
        self.assertEqual(list(merged)[:4], ["chainId", "address", "name", "symbol"])
        self.assertEqual(list(merged)[-1], "zzz")


class TestHelpers(unittest.TestCase):

    def test_population_score(self):
        self.assertEqual(population_score({"a": None, "b": [], "c": {}, "d": 0, "e": "x"}), 2)

    def test_sort_tokens(self):
        tokens = [
            {"chainId": 10, "address": "0xb"},
            {"chainId": 1, "underlyingAddress": "0xc"},
            {"chainId": 1, "address": "0xa"},
        ]
        self.assertEqual([t.get("address") or t.get("underlyingAddress") for t in sort_tokens(tokens)],
                         ["0xa", "0xc", "0xb"])

    def test_encode_spaces(self):
        self.assertEqual(encode_spaces("https://x.example/My Logo.png"), "https://x.example/My%20Logo.png")

    def test_disjoint_set(self):
        ds = DisjointSet()
        ds.union("a", "b")
        ds.union("c", "d")
        ds.union("b", "d")
        ds.add("e")
        self.assertTrue(ds.connected("a", "c"))
        self.assertFalse(ds.connected("a", "e"))
        self.assertEqual(sorted(len(g) for g in ds.groups().values()), [1, 4])


class TestTokenRecord(unittest.TestCase):

    def test_to_dict_nests_bridge_fields(self):
        record = TokenRecord(
            chain_id=1,
            address=ADDR,
            name="Token",
            symbol="TKN",
            decimals=18,
            bridge=BridgeInfo(
                adapter=ADDR,
                oft_version=3,
                endpoint_version=2,
                endpoint_id=30101,
                peers={42161: UNDERLYING},
                fees={42161: FeeQuote(oft_fee=5)},
            ),
        )

        data = record.to_dict()

        self.assertTrue(data["isOFT"])
        oft = data["extensions"]["oftInfo"]
        self.assertEqual(oft["peersInfo"], {"42161": {"tokenAddress": UNDERLYING}})
        self.assertEqual(oft["feeInfo"], {"42161": {"oftFee": 5}})
        self.assertEqual(oft["endpointId"], 30101)
        self.assertEqual(TokenRecord.from_dict(data).to_dict(), data)

    def test_from_flat_shape(self):
        data = {
            "chainId": 1,
            "address": ADDR,
            "symbol": "TKN",
            "oftAdapter": ADDR,
            "oftVersion": 2,
            "extensions": {"peersInfo": {"10": {"tokenAddress": UNDERLYING}}},
        }
        record = TokenRecord.from_dict(data)
        self.assertEqual(record.bridge.oft_version, 2)
        self.assertEqual(record.bridge.peers, {10: UNDERLYING})
        self.assertEqual(record.extensions, {})

    def test_not_a_bridge_token(self):
        record = TokenRecord.from_dict({"chainId": 1, "address": ADDR, "isOFT": False})
        self.assertIsNone(record.bridge)
        self.assertFalse(record.to_dict()["isOFT"])


if __name__ == '__main__':
    unittest.main()
