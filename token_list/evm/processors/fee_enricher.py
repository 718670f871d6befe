import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ...models import ENDPOINT_FOR_OFT, FeeQuote, TokenRecord
from ...processors.normalizer import checksum
from .. import abi
from ..config import ADAPTER_OVERRIDES, EvmChainConfig, EvmConfig
from ..rpc import Call, EvmRpcError, MulticallClient

logger = logging.getLogger(__name__)

MAX_FEE_BPS = 10000


def compute_v3_fee_bps(sent: int, received: int) -> int:
    if sent <= 0:
        return MAX_FEE_BPS
    # a quote that returns more than was sent is not a negative fee
    if received >= sent:
        return 0
    return min(MAX_FEE_BPS, (sent - received) * MAX_FEE_BPS // sent)


def compute_v2_fee_bps(fee_amount: int, decimals: int) -> int:
    sent = 10 ** decimals
    return compute_v3_fee_bps(sent, sent - fee_amount)


def _uses_v3(t: TokenRecord) -> bool:
    return t.bridge.oft_version == 3 or t.bridge.endpoint_version == 2


@dataclass
class _PlannedCall:
    kind: str
    src: TokenRecord
    dst: Optional[TokenRecord] = None


class FeeEnricher:
    """
    Quotes bridging fees and destination gas for every symmetric peer pair,
    checks that each adapter is a live OApp, then normalizes the records.
    All calls for one chain go out in one multicall.
    """

    def __init__(
        self,
        multicall: MulticallClient,
        chain_configs: Dict[str, EvmChainConfig],
        batch_size: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ):
        self.multicall = multicall
        self.chain_configs = chain_configs
        self.chain_by_id = {cfg.chain_id: cfg for cfg in chain_configs.values()}
        self.batch_size = batch_size or EvmConfig.MULTICALL_BATCH_SIZE
        self.delay_ms = EvmConfig.MULTICALL_DELAY_MS if delay_ms is None else delay_ms

    def enrich(self, tokens: List[TokenRecord]) -> List[TokenRecord]:
        index: Dict[Tuple[int, str], TokenRecord] = {}
        for t in tokens:
            if t.bridge is None:
                continue
            index.setdefault((t.chain_id, t.address.lower()), t)
            index.setdefault((t.chain_id, t.bridge.adapter.lower()), t)

        by_chain: "OrderedDict[int, List[TokenRecord]]" = OrderedDict()
        for t in tokens:
            if t.bridge is not None:
                by_chain.setdefault(t.chain_id, []).append(t)

        for chain_id, chain_tokens in by_chain.items():
            cfg = self.chain_by_id.get(chain_id)
            if cfg is None:
                logger.warning(f"Skipping {len(chain_tokens):,} tokens on unsupported chain {chain_id}")
                continue
            try:
                self._enrich_chain(cfg, chain_tokens, index)
            except EvmRpcError as e:
                logger.error(f"[{cfg.chain}] Multicall failed: {e}")

        self._finalize(tokens)
        return tokens

    def _symmetric_peer(self, src: TokenRecord, dst_chain_id: int, peer: str, index) -> Optional[TokenRecord]:
        dst = index.get((dst_chain_id, peer.lower()))
        if dst is None or dst.bridge is None:
            return None
        back = dst.bridge.peers.get(src.chain_id)
        if not back or back.lower() != src.address.lower():
            return None
        return dst

    def _wants_fee_quote(self, t: TokenRecord) -> bool:
        return t.bridge.oft_version in (2, 3) or t.bridge.endpoint_version == 2 or bool(t.extra.get("fee"))

    def _enrich_chain(self, cfg: EvmChainConfig, tokens: List[TokenRecord], index) -> None:
        fee_calls: List[Call] = []
        fee_plan: List[_PlannedCall] = []
        gas_calls: List[Call] = []
        gas_plan: List[_PlannedCall] = []
        live_calls: List[Call] = []
        live_plan: List[_PlannedCall] = []

        for src in tokens:
            adapter = src.bridge.adapter
            for dst_chain_id, peer in sorted(src.bridge.peers.items()):
                dst = self._symmetric_peer(src, dst_chain_id, peer, index)
                dst_cfg = self.chain_by_id.get(dst_chain_id)
                if dst is None or dst_cfg is None:
                    logger.warning(
                        f"[{cfg.chain}] {src.symbol}:{src.address} has no symmetric peer on chain {dst_chain_id} "
                        f"(expected {peer})"
                    )
                    continue

                if self._wants_fee_quote(src) and src.decimals is not None:
                    amount = 10 ** src.decimals
                    if _uses_v3(src):
                        data = abi.quote_oft(dst_cfg.eid_v2, dst.address, amount)
                    else:
                        data = abi.encode_call(abi.QUOTE_OFT_FEE, dst_cfg.eid_v1, amount)
                    fee_calls.append(Call(adapter, data))
                    fee_plan.append(_PlannedCall("fee", src, dst))

                if not _uses_v3(src):
                    gas_calls.append(Call(adapter, abi.encode_call(abi.MIN_DST_GAS_LOOKUP, dst_cfg.eid_v1, 0)))
                    gas_plan.append(_PlannedCall("gas", src, dst))

            accessor = abi.ENDPOINT if _uses_v3(src) else abi.LZ_ENDPOINT
            live_calls.append(Call(adapter, abi.encode_call(accessor)))
            live_plan.append(_PlannedCall("live", src))

        calls = fee_calls + gas_calls + live_calls
        logger.info(
            f"[{cfg.chain}] Aggregating {len(fee_calls):,} fee, {len(gas_calls):,} gas "
            f"and {len(live_calls):,} liveness calls"
        )
        results = self.multicall.try_aggregate(cfg.chain, calls, batch_size=self.batch_size, delay_ms=self.delay_ms)

        fee_results = results[: len(fee_calls)]
        gas_results = results[len(fee_calls) : len(fee_calls) + len(gas_calls)]
        live_results = results[len(fee_calls) + len(gas_calls) :]

        for planned, res in zip(fee_plan, fee_results):
            self._apply_fee(cfg, planned.src, planned.dst, res.payload)
        for planned, res in zip(gas_plan, gas_results):
            self._apply_gas(cfg, planned.src, planned.dst, res.payload)
        for planned, res in zip(live_plan, live_results):
            self._apply_liveness(cfg, planned.src, res.payload)

    def _apply_fee(self, cfg: EvmChainConfig, src: TokenRecord, dst: TokenRecord, payload: bytes) -> None:
        if not payload:
            logger.warning(f"[{cfg.chain}] Empty fee quote for {src.symbol} to chain {dst.chain_id}")
            return
        if _uses_v3(src):
            receipt = abi.decode_quote_receipt(payload)
            if receipt is None:
                logger.warning(f"[{cfg.chain}] Failed to decode quoteOFT for {src.symbol} to chain {dst.chain_id}")
                return
            fee = compute_v3_fee_bps(*receipt)
        else:
            fee_amount = abi.decode_uint(payload)
            if fee_amount is None:
                logger.warning(f"[{cfg.chain}] Failed to decode quoteOFTFee for {src.symbol} to chain {dst.chain_id}")
                return
            fee = compute_v2_fee_bps(fee_amount, src.decimals)
        src.bridge.fees.setdefault(dst.chain_id, FeeQuote()).oft_fee = fee

    def _apply_gas(self, cfg: EvmChainConfig, src: TokenRecord, dst: TokenRecord, payload: bytes) -> None:
        gas = abi.decode_uint(payload)
        if not gas:
            logger.debug(f"[{cfg.chain}] No minDstGas for {src.symbol} to chain {dst.chain_id}; using default")
            gas = EvmConfig.min_dst_gas_default(dst.chain_id)
        src.bridge.fees.setdefault(dst.chain_id, FeeQuote()).min_dst_gas = gas

    def _apply_liveness(self, cfg: EvmChainConfig, src: TokenRecord, payload: bytes) -> None:
        endpoint = abi.decode_address(payload)
        if endpoint and not abi.is_zero_address(endpoint) and src.bridge.peers:
            return
        logger.warning(f"[{cfg.chain}] Not an OApp: {src.symbol} {src.bridge.adapter}; removing bridge fields")
        src.strip_bridge()

    def _finalize(self, tokens: List[TokenRecord]) -> None:
        for t in tokens:
            t.address = checksum(t.address) or t.address

            bridge_info = t.extensions.get("bridgeInfo")
            if isinstance(bridge_info, dict):
                bridge_info.pop(str(t.chain_id), None)
                if not bridge_info:
                    t.extensions.pop("bridgeInfo")

            if t.bridge is None:
                continue
            b = t.bridge
            if b.oft_version not in ENDPOINT_FOR_OFT:
                b.oft_version = None
            if b.endpoint_version not in (1, 2):
                b.endpoint_version = None
            if b.oft_version is None and b.endpoint_version is None:
                b.oft_version, b.endpoint_version = 1, 1
            elif b.oft_version is None:
                b.oft_version = 3 if b.endpoint_version == 2 else 1
            elif b.endpoint_version is None:
                b.endpoint_version = ENDPOINT_FOR_OFT[b.oft_version]
            cfg = self.chain_by_id.get(t.chain_id)
            if b.endpoint_id is None and cfg is not None:
                b.endpoint_id = cfg.eid(b.endpoint_version)

            b.fees.pop(t.chain_id, None)
            b.peers.pop(t.chain_id, None)
            if not b.peers:
                t.strip_bridge()
                continue

            b.adapter = checksum(b.adapter) or b.adapter
            override = ADAPTER_OVERRIDES.get((t.chain_id, t.address.lower()))
            if override:
                b.adapter = override

        self._backfill_by_name(tokens)

    @staticmethod
    def _backfill_by_name(tokens: List[TokenRecord]) -> None:
        by_name: Dict[str, List[TokenRecord]] = {}
        for t in tokens:
            if t.name:
                by_name.setdefault(t.name, []).append(t)

        for group in by_name.values():
            if len(group) < 2:
                continue
            logo = next((t.logo_uri for t in group if t.logo_uri), None)
            cg = next((t.extensions.get("coingeckoId") for t in group if t.extensions.get("coingeckoId")), None)
            cmc = next((t.extensions.get("coinMarketCapId") for t in group if t.extensions.get("coinMarketCapId")), None)
            for t in group:
                if not t.logo_uri and logo:
                    t.logo_uri = logo
                if cg and not t.extensions.get("coingeckoId"):
                    t.extensions["coingeckoId"] = cg
                if cmc and not t.extensions.get("coinMarketCapId"):
                    t.extensions["coinMarketCapId"] = cmc
