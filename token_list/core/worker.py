import glob
import json
import logging
import os
from typing import Any, Dict, List, Optional

from ..config import Config
from ..database import RpcEndpointCache
from ..evm.config import EXTENDED_SUPPORTED_CHAIN_IDS, EvmChainConfig, EvmConfig
from ..evm.processors import AdapterResolver, FeeEnricher, PeerDiscoveryEngine
from ..evm.rpc import MulticallClient, RpcEndpointResolver
from ..models import TokenRecord
from ..processors import (
    Deduplicator,
    ListReconciler,
    ListVerifier,
    ReconcileSources,
    build_list_document,
    write_report,
)

logger = logging.getLogger(__name__)

STAGES = ("adapters", "peers", "fees", "merge", "dedupe", "verify")

METADATA_FILE = "ofts.json"
BASELINE_FILE = "filteredStargateTokens.json"
ACROSS_FILE = "filteredAcrossTokens.json"
REGISTRY_FILE = "registry.json"
UNISWAP_FILE = "uniswap.json"
WRAPPED_NATIVES_FILE = "wrappedNatives.json"
ADDITIONAL_FILE = "additionalTokens.json"
USABLE_TOKENS_FILE = "usableTokens.json"
ENHANCED_TOKENS_FILE = "usableTokensEnhanced.json"
TOKEN_LIST_FILE = "token-list.json"
INACTIVE_LIST_FILE = "inactive-token-list.json"
REPORT_FILE = "verification-report.csv"


class MissingInputError(Exception):
    """A stage's required input snapshot does not exist."""


def _tokens_of(data: Any) -> List[Dict[str, Any]]:
    """Token entries of either a bare list or a token-list document."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return list(data.get("tokens") or [])
    return []


class TokenListWorker:
    """
    Runs the pipeline stages in order, handing data between them through JSON
    snapshots in the output directory so any stage can be re-run on its own.
    """

    def __init__(
        self,
        output_dir: Optional[str] = None,
        chain_configs: Optional[Dict[str, EvmChainConfig]] = None,
        max_rounds: Optional[int] = None,
        multicall: Optional[MulticallClient] = None,
    ):
        self.output_dir = output_dir or Config.OUTPUT_DIR
        self.chain_configs = chain_configs or EvmConfig.default_chain_configs()
        self.max_rounds = max_rounds
        self._multicall = multicall
        self._metadata: Optional[Dict[str, Any]] = None
        self._previous: Dict[str, Optional[Dict[str, Any]]] = {}

    def _path(self, name: str) -> str:
        return os.path.join(self.output_dir, name)

    def _read_json(self, name: str, required: bool = False, default: Any = None) -> Any:
        path = self._path(name)
        if not os.path.exists(path):
            if required:
                raise MissingInputError(f"Required input {path} not found")
            logger.info(f"Optional input {path} not found; treating as empty")
            return default
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_json(self, name: str, data: Any) -> None:
        os.makedirs(self.output_dir, exist_ok=True)
        path = self._path(name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        logger.info(f"Wrote {path}")

    def _read_globbed(self, pattern: str) -> List[List[Dict[str, Any]]]:
        lists = []
        for path in sorted(glob.glob(self._path(pattern))):
            with open(path, "r", encoding="utf-8") as f:
                lists.append(_tokens_of(json.load(f)))
            logger.info(f"Loaded {len(lists[-1]):,} tokens from {path}")
        return lists

    def _read_records(self, name: str) -> List[TokenRecord]:
        return [TokenRecord.from_dict(d) for d in self._read_json(name, required=True)]

    def _write_records(self, name: str, tokens: List[TokenRecord]) -> None:
        self._write_json(name, [t.to_dict() for t in tokens])

    def _load_metadata(self) -> Dict[str, Any]:
        if self._metadata is None:
            self._metadata = self._read_json(METADATA_FILE, required=True)
        return self._metadata

    def _metadata_rpcs(self) -> Dict[str, List[str]]:
        path = self._path(METADATA_FILE)
        if self._metadata is None and not os.path.exists(path):
            return {}
        rpcs = {}
        for chain, data in self._load_metadata().items():
            urls = [r.get("url") if isinstance(r, dict) else r for r in (data or {}).get("rpcs") or []]
            urls = [u for u in urls if u]
            if urls:
                rpcs[chain] = urls
        return rpcs

    @property
    def multicall(self) -> MulticallClient:
        if self._multicall is None:
            resolver = RpcEndpointResolver(self.chain_configs, cache=RpcEndpointCache())
            for chain, urls in self._metadata_rpcs().items():
                resolver.set_metadata_rpcs(chain, urls)
            self._multicall = MulticallClient(self.chain_configs, resolver)
        return self._multicall

    def run(self, stages: Optional[List[str]] = None) -> None:
        stages = list(stages or STAGES)
        for stage in stages:
            if stage not in STAGES:
                raise ValueError(f"Unknown stage '{stage}'. Valid stages: {', '.join(STAGES)}")

        for stage in stages:
            logger.info("=" * 80)
            logger.info(f"STAGE: {stage}")
            logger.info(f"Output dir: {self.output_dir}")
            logger.info("=" * 80)
            getattr(self, f"run_{stage}")()

    def run_adapters(self) -> List[TokenRecord]:
        metadata = self._load_metadata()
        baseline = _tokens_of(self._read_json(BASELINE_FILE, default=[]))
        tokens = AdapterResolver(self.chain_configs).resolve(metadata, baseline)
        self._write_records(USABLE_TOKENS_FILE, tokens)
        return tokens

    def run_peers(self) -> List[TokenRecord]:
        seeds = self._read_records(USABLE_TOKENS_FILE)
        engine = PeerDiscoveryEngine(self.multicall, self.chain_configs, max_rounds=self.max_rounds)
        result = engine.discover(seeds)
        self._write_records(USABLE_TOKENS_FILE, result.tokens)
        return result.tokens

    def run_fees(self) -> List[TokenRecord]:
        tokens = self._read_records(USABLE_TOKENS_FILE)
        tokens = FeeEnricher(self.multicall, self.chain_configs).enrich(tokens)
        self._write_records(ENHANCED_TOKENS_FILE, tokens)
        return tokens

    def _remember_previous(self) -> None:
        # Versions are compared against the lists as they were before this run
        for name in (TOKEN_LIST_FILE, INACTIVE_LIST_FILE):
            if name not in self._previous:
                self._previous[name] = self._read_json(name)

    def _write_lists(self, tokens, root_tokens, inactive) -> None:
        self._remember_previous()
        active_doc = build_list_document(tokens, root_tokens, previous=self._previous[TOKEN_LIST_FILE])
        inactive_doc = build_list_document(inactive, previous=self._previous[INACTIVE_LIST_FILE], inactive=True)
        self._write_json(TOKEN_LIST_FILE, active_doc)
        self._write_json(INACTIVE_LIST_FILE, inactive_doc)

    def run_merge(self) -> None:
        registry = self._read_json(REGISTRY_FILE, default={}) or {}
        sources = ReconcileSources(
            oft_tokens=self._read_json(ENHANCED_TOKENS_FILE, required=True),
            across=self._read_json(ACROSS_FILE, default={}) or {},
            registry=registry if isinstance(registry, dict) else {"tokens": registry},
            uniswap=_tokens_of(self._read_json(UNISWAP_FILE, default=[])),
            wrapped_natives=_tokens_of(self._read_json(WRAPPED_NATIVES_FILE, default=[])),
            additional=_tokens_of(self._read_json(ADDITIONAL_FILE, default=[])),
            token_lists=self._read_globbed("TOKEN_LIST_*.json"),
            inactive_lists=self._read_globbed("INACTIVE_LIST_*.json"),
        )
        result = ListReconciler(list_chain_ids=self._list_chain_ids()).reconcile(sources)
        self._write_lists(result.tokens, result.root_tokens, result.inactive_tokens)

    def run_dedupe(self) -> None:
        active = self._read_json(TOKEN_LIST_FILE, required=True)
        inactive = self._read_json(INACTIVE_LIST_FILE, required=True)
        self._remember_previous()
        result = Deduplicator().dedupe(
            _tokens_of(active), list(active.get("rootTokens") or []), _tokens_of(inactive)
        )
        self._write_lists(result.tokens, result.root_tokens, result.inactive_tokens)

    def run_verify(self):
        active = self._read_json(TOKEN_LIST_FILE, required=True)
        inactive = self._read_json(INACTIVE_LIST_FILE, default={}) or {}
        df = ListVerifier().verify(
            _tokens_of(active) + list(active.get("rootTokens") or []), _tokens_of(inactive)
        )
        os.makedirs(self.output_dir, exist_ok=True)
        write_report(df, self._path(REPORT_FILE))
        return df

    def _list_chain_ids(self) -> frozenset:
        return frozenset(cfg.chain_id for cfg in self.chain_configs.values()) | EXTENDED_SUPPORTED_CHAIN_IDS
