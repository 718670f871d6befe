import json
import os
import tempfile
import unittest

from eth_utils import to_checksum_address

from fake_chain import FakeMulticall, oft_v3
from token_list.core import MissingInputError, TokenListWorker
from token_list.core import worker as w
from token_list.evm.config import EvmConfig
from token_list.models import BridgeInfo, TokenRecord

ETH = to_checksum_address("0x1000000000000000000000000000000000000001")
ARB = to_checksum_address("0x2000000000000000000000000000000000000002")
OPT = to_checksum_address("0x3000000000000000000000000000000000000003")
LOGO = "https://logo.example/token.png"


def _enhanced(chain_id, address, peers):
    return {
        "chainId": chain_id,
        "address": address,
        "name": "Token",
        "symbol": "TKN",
        "decimals": 18,
        "logoURI": LOGO,
        "extensions": {
            "oftInfo": {
                "oftAdapter": address,
                "oftVersion": 3,
                "endpointVersion": 2,
                "peersInfo": {str(c): {"tokenAddress": p} for c, p in peers.items()},
            },
        },
        "isAcross": False,
        "isOFT": True,
    }


class TestTokenListWorker(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name
        cfgs = EvmConfig.default_chain_configs()
        self.chain_configs = {c: cfgs[c] for c in ("ethereum", "arbitrum", "optimism")}

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, data):
        with open(os.path.join(self.dir, name), "w", encoding="utf-8") as f:
            json.dump(data, f)

    def _read(self, name):
        with open(os.path.join(self.dir, name), "r", encoding="utf-8") as f:
            return json.load(f)

    def _worker(self, multicall=None):
        return TokenListWorker(output_dir=self.dir, chain_configs=self.chain_configs, multicall=multicall)

    def _seed_lists(self):
        self._write(w.ENHANCED_TOKENS_FILE, [
            _enhanced(1, ETH, {42161: ARB}),
            _enhanced(42161, ARB, {1: ETH}),
        ])
        self._write(w.UNISWAP_FILE, {"tokens": [
            {"chainId": 10, "address": OPT, "name": "Plain", "symbol": "PLN", "decimals": 18, "logoURI": LOGO},
        ]})

    def test_unknown_stage(self):
        with self.assertRaises(ValueError):
            self._worker().run(["merge", "publish"])

    def test_missing_required_input(self):
        with self.assertRaises(MissingInputError):
            self._worker().run(["merge"])

    def test_merge_dedupe_verify(self):
        self._seed_lists()

        self._worker().run(["merge", "dedupe", "verify"])

        active = self._read(w.TOKEN_LIST_FILE)
        inactive = self._read(w.INACTIVE_LIST_FILE)
        self.assertEqual(active["version"], {"major": 1, "minor": 0, "patch": 0})
        self.assertEqual([t["address"] for t in active["rootTokens"]], [ARB])
        self.assertEqual([(t["chainId"], t["address"]) for t in active["tokens"]], [(1, ETH), (10, OPT)])
        self.assertEqual(inactive["tokens"], [])
        self.assertEqual(inactive["tags"], {})
        self.assertTrue(os.path.exists(os.path.join(self.dir, w.REPORT_FILE)))

    def test_rerun_without_changes_keeps_version(self):
        self._seed_lists()
        self._worker().run(["merge", "dedupe"])
        first = self._read(w.TOKEN_LIST_FILE)

        self._worker().run(["merge", "dedupe"])

        self.assertEqual(self._read(w.TOKEN_LIST_FILE), first)

    def test_changed_run_bumps_version_once(self):
        self._seed_lists()
        self._worker().run(["merge", "dedupe"])

        self._write(w.ADDITIONAL_FILE, [
            {"chainId": 10, "address": to_checksum_address("0x" + "44" * 20), "name": "New",
             "symbol": "NEW", "decimals": 6, "logoURI": LOGO},
        ])
        self._worker().run(["merge", "dedupe"])

        self.assertEqual(self._read(w.TOKEN_LIST_FILE)["version"], {"major": 1, "minor": 0, "patch": 1})

    def test_peers_and_fees_stages(self):
        fake = FakeMulticall()
        oft_v3(fake, "ethereum", ETH, "Token", "TKN", peers={"arbitrum": ARB}, fee_bps=25)
        oft_v3(fake, "arbitrum", ARB, "Token", "TKN", peers={"ethereum": ETH})
        seed = TokenRecord(chain_id=1, address=ETH, bridge=BridgeInfo(adapter=ETH))
        self._write(w.USABLE_TOKENS_FILE, [seed.to_dict()])

        self._worker(multicall=fake).run(["peers", "fees"])

        enhanced = {t["chainId"]: t for t in self._read(w.ENHANCED_TOKENS_FILE)}
        self.assertEqual(set(enhanced), {1, 42161})
        oft = enhanced[1]["extensions"]["oftInfo"]
        self.assertEqual(oft["peersInfo"], {"42161": {"tokenAddress": ARB}})
        self.assertEqual(oft["feeInfo"], {"42161": {"oftFee": 25}})


if __name__ == '__main__':
    unittest.main()
