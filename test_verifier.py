import os
import tempfile
import unittest

import polars as pl
from eth_utils import to_checksum_address

from token_list.processors import ListVerifier, write_report
from token_list.processors import verifier as v


A1 = to_checksum_address("0x" + "a1" * 20)
A10 = to_checksum_address("0x" + "b2" * 20)
A8453 = to_checksum_address("0x" + "c3" * 20)


def _oft(chain_id, address, symbol, peers):
    return {
        "chainId": chain_id,
        "address": address,
        "symbol": symbol,
        "extensions": {"oftInfo": {"peersInfo": {str(c): {"tokenAddress": p} for c, p in peers.items()}}},
        "isOFT": True,
        "isAcross": False,
    }


def _across(chain_id, address, symbol, siblings):
    return {
        "chainId": chain_id,
        "address": address,
        "symbol": symbol,
        "extensions": {"acrossInfo": {str(c): {"address": p} for c, p in siblings.items()}},
        "isOFT": False,
        "isAcross": True,
    }


def _issues(df: pl.DataFrame):
    return sorted(df["issue"].to_list())


class TestListVerifier(unittest.TestCase):

    def test_symmetric_lists_are_clean(self):
        tokens = [
            _oft(1, A1, "TKN", {10: A10}),
            _oft(10, A10, "TKN", {1: A1}),
            _across(8453, A8453, "ACX", {1: A1}),
        ]
        tokens[0]["isAcross"] = True
        tokens[0]["extensions"]["acrossInfo"] = {"8453": {"address": A8453}}

        df = ListVerifier().verify(tokens)

        self.assertEqual(df.height, 0)
        self.assertEqual(df.columns, ["chain_id", "address", "symbol", "issue", "detail"])

    def test_asymmetric_peer(self):
        df = ListVerifier().verify([_oft(1, A1, "TKN", {10: A10}), _oft(10, A10, "TKN", {8453: A8453})])
        self.assertIn(v.ASYMMETRIC_PEER, _issues(df))

    def test_peer_points_back_to_other_address(self):
        df = ListVerifier().verify([_oft(1, A1, "TKN", {10: A10}), _oft(10, A10, "TKN", {1: A8453})])
        self.assertIn(v.PEER_ADDRESS_MISMATCH, _issues(df))

    def test_missing_and_non_oft_peers(self):
        plain = {"chainId": 10, "address": A10, "symbol": "TKN", "isOFT": False}
        df = ListVerifier().verify(
            [_oft(1, A1, "TKN", {10: A10, 8453: A8453, 56: "0x" + "00" * 20}), plain]
        )
        self.assertEqual(_issues(df), sorted([v.PEER_NOT_OFT, v.PEER_NOT_FOUND]))

    def test_oft_without_peers(self):
        df = ListVerifier().verify([_oft(1, A1, "TKN", {})])
        self.assertEqual(_issues(df), [v.MISSING_PEERS])

    def test_peers_found_in_inactive_list(self):
        df = ListVerifier().verify([_oft(1, A1, "TKN", {10: A10})], [_oft(10, A10, "TKN", {1: A1})])
        self.assertEqual(df.height, 0)

    def test_across_checks(self):
        tokens = [
            _across(1, A1, "ACX", {10: A10, 8453: A8453}),
            _across(10, A10, "ACX", {}),
            {"chainId": 8453, "address": A8453, "symbol": "ACX", "isAcross": False},
        ]
        df = ListVerifier().verify(tokens)
        self.assertEqual(_issues(df), sorted([v.ASYMMETRIC_ACROSS, v.ACROSS_NOT_ACROSS]))

    def test_not_checksummed_and_duplicate_symbol(self):
        tokens = [
            {"chainId": 1, "address": A1.lower(), "symbol": "DUP"},
            {"chainId": 1, "address": A10, "symbol": "DUP"},
            {"chainId": 10, "address": A8453, "symbol": "DUP"},
        ]
        df = ListVerifier().verify(tokens)
        self.assertEqual(_issues(df), sorted([v.NOT_CHECKSUMMED, v.DUPLICATE_SYMBOL]))

    def test_verify_does_not_mutate(self):
        tokens = [_oft(1, A1, "TKN", {10: A10})]
        before = repr(tokens)
        ListVerifier().verify(tokens)
        self.assertEqual(repr(tokens), before)

    def test_write_report(self):
        df = ListVerifier().verify([_oft(1, A1, "TKN", {})])
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "report.csv")
            write_report(df, path)
            self.assertEqual(pl.read_csv(path)["issue"].to_list(), [v.MISSING_PEERS])


if __name__ == '__main__':
    unittest.main()
