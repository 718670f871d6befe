import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ...models import BridgeInfo, TokenRecord, TokenStatus, VersionEvidence
from .. import abi
from ..config import EvmChainConfig, EvmConfig
from ..rpc import Call, EvmRpcError, MulticallClient

logger = logging.getLogger(__name__)

_PHASE1_CALLS = 3
_PHASE2_CALLS = 7


@dataclass
class DiscoveryResult:
    tokens: List[TokenRecord]
    rounds: int = 0
    new_per_round: List[int] = field(default_factory=list)
    removed: int = 0
    unresolved_peers: int = 0
    hit_round_cap: bool = False


class PeerDiscoveryEngine:
    """
    Breadth-first discovery of every cross-chain peer of the seed tokens.

    Each round drains the work queue chain by chain in three batched phases
    (protocol detection, capability/identity, peer enumeration). Peers whose
    (chain, adapter) pair has not been seen yet become the next round's queue.
    The loop ends when a round discovers nothing new.
    """

    def __init__(
        self,
        multicall: MulticallClient,
        chain_configs: Dict[str, EvmChainConfig],
        max_rounds: Optional[int] = None,
        batch_size: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ):
        self.multicall = multicall
        self.chain_configs = chain_configs
        self.chain_by_id = {cfg.chain_id: cfg for cfg in chain_configs.values()}
        self.max_rounds = int(max_rounds or EvmConfig.MAX_DISCOVERY_ROUNDS)
        self.batch_size = batch_size or EvmConfig.MULTICALL_BATCH_SIZE
        self.delay_ms = EvmConfig.MULTICALL_DELAY_MS if delay_ms is None else delay_ms

    def discover(self, seeds: List[TokenRecord]) -> DiscoveryResult:
        all_tokens: List[TokenRecord] = []
        seen: Set[Tuple[int, str]] = set()
        queue: List[TokenRecord] = []
        for t in seeds:
            if t.bridge is None:
                all_tokens.append(t)
                continue
            key = (t.chain_id, t.bridge.adapter.lower())
            if key in seen:
                logger.debug(f"Skipping duplicate seed {t.chain_id}:{t.bridge.adapter}")
                continue
            seen.add(key)
            queue.append(t)
            all_tokens.append(t)

        result = DiscoveryResult(tokens=[])
        while queue:
            if result.rounds >= self.max_rounds:
                logger.error(
                    f"Peer discovery stopped after {result.rounds} rounds with {len(queue):,} tokens still queued"
                )
                result.hit_round_cap = True
                break

            result.rounds += 1
            logger.info("=" * 80)
            logger.info(f"DISCOVERY ROUND {result.rounds}: {len(queue):,} token(s) to process")
            logger.info("=" * 80)

            new_tokens: List[TokenRecord] = []
            for chain_id, chain_tokens in self._group_by_chain(queue).items():
                cfg = self.chain_by_id.get(chain_id)
                if cfg is None:
                    logger.warning(f"Skipping {len(chain_tokens):,} tokens on unsupported chain {chain_id}")
                    continue
                logger.info(f"[{cfg.chain}] Processing {len(chain_tokens):,} token(s)")
                try:
                    self._process_chain(cfg, chain_tokens, seen, new_tokens)
                except EvmRpcError as e:
                    logger.error(f"[{cfg.chain}] Multicall failed, skipping remaining phases this round: {e}")

            result.new_per_round.append(len(new_tokens))
            logger.info(f"Round {result.rounds} discovered {len(new_tokens):,} new token(s)")
            all_tokens.extend(new_tokens)
            queue = new_tokens

        result.tokens = [t for t in all_tokens if not t.removed]
        result.removed = len(all_tokens) - len(result.tokens)
        result.unresolved_peers = self._canonicalize_peers(result.tokens, all_tokens)
        logger.info(
            f"Discovery finished after {result.rounds} round(s): {len(result.tokens):,} tokens, "
            f"{result.removed:,} removed, {result.unresolved_peers:,} unresolved peers"
        )
        return result

    @staticmethod
    def _group_by_chain(tokens: List[TokenRecord]) -> "OrderedDict[int, List[TokenRecord]]":
        grouped: "OrderedDict[int, List[TokenRecord]]" = OrderedDict()
        for t in tokens:
            grouped.setdefault(t.chain_id, []).append(t)
        return grouped

    def _aggregate(self, cfg: EvmChainConfig, calls: List[Call]):
        return self.multicall.try_aggregate(cfg.chain, calls, batch_size=self.batch_size, delay_ms=self.delay_ms)

    def _process_chain(
        self,
        cfg: EvmChainConfig,
        tokens: List[TokenRecord],
        seen: Set[Tuple[int, str]],
        new_tokens: List[TokenRecord],
    ) -> None:
        for t in tokens:
            t.evidence = VersionEvidence(
                hint_oft_version=t.bridge.oft_version,
                hint_endpoint_version=t.bridge.endpoint_version,
            )
        self._detect_protocol(cfg, tokens)
        self._probe_capabilities(cfg, tokens)
        self._enumerate_peers(cfg, tokens, seen, new_tokens)

    def _detect_protocol(self, cfg: EvmChainConfig, tokens: List[TokenRecord]) -> None:
        calls: List[Call] = []
        for t in tokens:
            adapter = t.bridge.adapter
            calls.append(Call(adapter, abi.encode_call(abi.ENDPOINT)))
            calls.append(Call(adapter, abi.encode_call(abi.LZ_ENDPOINT)))
            calls.append(Call(adapter, abi.encode_call(abi.TOKEN)))

        results = self._aggregate(cfg, calls)
        for i, t in enumerate(tokens):
            endpoint, lz_endpoint, token = results[i * _PHASE1_CALLS : (i + 1) * _PHASE1_CALLS]
            if endpoint.payload:
                t.evidence.endpoint_v2 = True
            if lz_endpoint.payload:
                t.evidence.endpoint_v1 = True
            underlying = abi.decode_address(token.payload)
            if underlying and not abi.is_zero_address(underlying):
                t.address = underlying
            t.status = TokenStatus.PROBED

    def _probe_capabilities(self, cfg: EvmChainConfig, tokens: List[TokenRecord]) -> None:
        calls: List[Call] = []
        for t in tokens:
            adapter = t.bridge.adapter
            calls.append(Call(adapter, abi.encode_call(abi.SHARED_DECIMALS)))
            calls.append(Call(t.address, abi.encode_call(abi.NAME)))
            calls.append(Call(t.address, abi.encode_call(abi.SYMBOL)))
            calls.append(Call(t.address, abi.encode_call(abi.DECIMALS)))
            calls.append(Call(adapter, abi.dummy_send_v3()))
            calls.append(Call(adapter, abi.dummy_send_from_v2()))
            calls.append(Call(adapter, abi.dummy_send_from_v1()))

        results = self._aggregate(cfg, calls)
        for i, t in enumerate(tokens):
            shared, name, symbol, decimals, send_v3, send_v2, send_v1 = results[
                i * _PHASE2_CALLS : (i + 1) * _PHASE2_CALLS
            ]

            shared_decimals = abi.decode_uint8(shared.payload)
            if shared_decimals:
                t.evidence.shared_decimals = shared_decimals
                t.bridge.shared_decimals = shared_decimals

            decoded_name = abi.decode_string(name.payload)
            decoded_symbol = abi.decode_string(symbol.payload)
            decoded_decimals = abi.decode_uint8(decimals.payload)
            if decoded_name is None or decoded_symbol is None or decoded_decimals is None:
                logger.warning(f"[{cfg.chain}] {t.address} has no usable ERC-20 identity; removing")
                t.status = TokenStatus.REMOVED
                continue
            t.name, t.symbol, t.decimals = decoded_name, decoded_symbol, decoded_decimals

            # Revert data still proves the selector exists
            for version, probe in ((3, send_v3), (2, send_v2), (1, send_v1)):
                if probe.return_data:
                    t.evidence.send_versions.add(version)

            oft_version, endpoint_version = t.evidence.resolve()
            t.bridge.oft_version = oft_version
            t.bridge.endpoint_version = endpoint_version
            t.bridge.endpoint_id = cfg.eid(endpoint_version) if endpoint_version else None
            t.status = TokenStatus.ENRICHED

    def _enumerate_peers(
        self,
        cfg: EvmChainConfig,
        tokens: List[TokenRecord],
        seen: Set[Tuple[int, str]],
        new_tokens: List[TokenRecord],
    ) -> None:
        calls: List[Call] = []
        plan: List[Tuple[TokenRecord, EvmChainConfig, bool]] = []
        for t in tokens:
            if t.removed:
                continue
            use_peers = t.bridge.endpoint_version == 2
            for other in self.chain_configs.values():
                if other.chain_id == cfg.chain_id:
                    continue
                if use_peers:
                    data = abi.encode_call(abi.PEERS, other.eid_v2)
                else:
                    data = abi.encode_call(abi.GET_TRUSTED_REMOTE_ADDRESS, other.eid_v1)
                calls.append(Call(t.bridge.adapter, data))
                plan.append((t, other, use_peers))

        if not calls:
            logger.info(f"[{cfg.chain}] No peer calls needed")
            return

        results = self._aggregate(cfg, calls)
        for (t, other, use_peers), res in zip(plan, results):
            if use_peers:
                peer = abi.decode_bytes32_address(res.payload)
            else:
                peer = abi.decode_bytes_address(res.payload)
            if not peer:
                continue

            t.bridge.peers[other.chain_id] = peer
            key = (other.chain_id, peer.lower())
            if key not in seen:
                seen.add(key)
                new_tokens.append(TokenRecord(chain_id=other.chain_id, address=peer, bridge=BridgeInfo(adapter=peer)))

        for t in tokens:
            if not t.removed:
                t.status = TokenStatus.PEERS_DISCOVERED

    @staticmethod
    def _canonicalize_peers(final_tokens: List[TokenRecord], all_tokens: List[TokenRecord]) -> int:
        """Point every peer at its token address; peers are first seen as adapter addresses."""
        by_adapter: Dict[Tuple[int, str], TokenRecord] = {}
        by_address: Dict[Tuple[int, str], TokenRecord] = {}
        for t in all_tokens:
            if t.bridge is not None:
                by_adapter.setdefault((t.chain_id, t.bridge.adapter.lower()), t)
            by_address.setdefault((t.chain_id, t.address.lower()), t)

        unresolved = 0
        for t in final_tokens:
            if t.bridge is None:
                continue
            for chain_id, peer in list(t.bridge.peers.items()):
                match = by_adapter.get((chain_id, peer.lower())) or by_address.get((chain_id, peer.lower()))
                if match is not None:
                    t.bridge.peers[chain_id] = match.address
                else:
                    unresolved += 1
                    logger.warning(f"{t.chain_id}:{t.address}: no token found for peer {peer} on chain {chain_id}")
        return unresolved
