import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ...config import Config
from ...database import RpcEndpointCache, RpcEndpointCacheError
from .. import abi
from ..config import EvmChainConfig, EvmConfig

logger = logging.getLogger(__name__)


class EvmRpcError(Exception):
    pass


class NoRpcEndpointsError(EvmRpcError):
    pass


class AllRpcEndpointsFailedError(EvmRpcError):
    pass


@dataclass(frozen=True)
class Call:
    target: str
    call_data: bytes


@dataclass(frozen=True)
class CallResult:
    success: bool
    return_data: bytes = b""

    @property
    def payload(self) -> bytes:
        return self.return_data if self.success else b""


def _chunks(seq: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


def _usable_rpc_url(url: Any) -> bool:
    return isinstance(url, str) and url.startswith(("http://", "https://")) and "${" not in url


def _dedupe(urls: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for u in urls:
        if u not in seen:
            seen.add(u)
            out.append(u)
    return out


class RpcEndpointResolver:
    """
    Candidate RPC endpoints per chain, in fallback order:

    1. urls configured for the chain (EVM_CHAIN_CONFIGS) and urls listed in the
       token metadata file,
    2. urls from the public chain registry, read through the redis cache when
       one is available.
    """

    def __init__(
        self,
        chain_configs: Dict[str, EvmChainConfig],
        metadata_rpcs: Optional[Dict[str, List[str]]] = None,
        cache: Optional[RpcEndpointCache] = None,
        session: Optional[requests.Session] = None,
        registry_url: Optional[str] = None,
    ):
        self.chain_configs = chain_configs
        self.metadata_rpcs: Dict[str, List[str]] = dict(metadata_rpcs or {})
        self.cache = cache
        self._session = session or requests.Session()
        self.registry_url = registry_url or Config.CHAIN_REGISTRY_URL
        self._registry: Optional[Dict[int, List[str]]] = None

    def set_metadata_rpcs(self, chain: str, urls: List[str]) -> None:
        self.metadata_rpcs[chain] = [u for u in urls if _usable_rpc_url(u)]

    def resolve(self, chain: str) -> List[str]:
        cfg = self.chain_configs.get(chain)
        if cfg is None:
            return []
        urls = list(cfg.rpc_urls) + list(self.metadata_rpcs.get(chain, []))
        urls.extend(self._registry_urls(cfg.chain_id))
        return _dedupe(urls)

    def _registry_urls(self, chain_id: int) -> List[str]:
        cached = self._cache_get(chain_id)
        if cached:
            return cached

        registry = self._load_registry()
        urls = registry.get(chain_id, [])
        if urls:
            self._cache_set(chain_id, urls)
        return urls

    def _cache_get(self, chain_id: int) -> Optional[List[str]]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(chain_id)
        except RpcEndpointCacheError as e:
            logger.warning(f"{e}; disabling RPC cache")
            self.cache.disable()
            return None

    def _cache_set(self, chain_id: int, urls: List[str]) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(chain_id, urls)
        except RpcEndpointCacheError as e:
            logger.warning(f"{e}; disabling RPC cache")
            self.cache.disable()

    def _load_registry(self) -> Dict[int, List[str]]:
        if self._registry is not None:
            return self._registry

        self._registry = {}
        try:
            resp = self._session.get(self.registry_url, timeout=Config.CHAIN_REGISTRY_TIMEOUT_SECONDS)
            resp.raise_for_status()
            chains = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to fetch chain registry {self.registry_url}: {e}")
            return self._registry

        for entry in chains or []:
            if not isinstance(entry, dict) or "chainId" not in entry:
                continue
            urls = [u for u in entry.get("rpc") or [] if _usable_rpc_url(u)]
            if urls:
                self._registry[int(entry["chainId"])] = urls
        logger.info(f"Loaded RPC urls for {len(self._registry):,} chains from registry")
        return self._registry


class MulticallClient:
    """Runs ordered read-only call lists through Multicall3 `tryAggregate(false, calls)`."""

    def __init__(
        self,
        chain_configs: Dict[str, EvmChainConfig],
        resolver: RpcEndpointResolver,
        session: Optional[requests.Session] = None,
    ):
        self.chain_configs = chain_configs
        self.resolver = resolver
        self._session = session or requests.Session()

    def try_aggregate(
        self,
        chain: str,
        calls: List[Call],
        batch_size: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ) -> List[CallResult]:
        if not calls:
            return []

        cfg = self.chain_configs[chain]
        urls = self.resolver.resolve(chain)
        if not urls:
            raise NoRpcEndpointsError(f"No RPC URLs available for chain {chain}")

        size = batch_size or len(calls)
        delay = EvmConfig.MULTICALL_DELAY_MS if delay_ms is None else delay_ms

        for url in urls:
            try:
                results = self._aggregate_on(cfg, url, calls, size, delay)
            except EvmRpcError as e:
                logger.warning(f"[{chain}] RPC {url} failed: {e}")
                continue

            failed = sum(1 for r in results if not r.success)
            if failed:
                logger.debug(f"[{chain}] {failed} of {len(calls)} multicall sub-calls failed")
            return results

        raise AllRpcEndpointsFailedError(f"All RPC endpoints failed for chain {chain}")

    def _aggregate_on(
        self, cfg: EvmChainConfig, url: str, calls: List[Call], size: int, delay_ms: int
    ) -> List[CallResult]:
        out: List[CallResult] = []
        batches = list(_chunks(calls, size))
        for i, batch in enumerate(batches):
            call_data = abi.encode_call(
                abi.TRY_AGGREGATE,
                False,
                [(to_checksum_address(c.target), c.call_data) for c in batch],
            )
            raw = self._eth_call(url, cfg.multicall_address, call_data)
            try:
                (decoded,) = decode(["(bool,bytes)[]"], raw)
            except (DecodingError, ValueError, OverflowError) as e:
                raise EvmRpcError(f"malformed tryAggregate result: {e}") from e
            if len(decoded) != len(batch):
                raise EvmRpcError(f"tryAggregate returned {len(decoded)} results for {len(batch)} calls")
            out.extend(CallResult(bool(ok), bytes(data)) for ok, data in decoded)

            if delay_ms and i + 1 < len(batches):
                time.sleep(delay_ms / 1000.0)
        return out

    def _eth_call(self, url: str, to: str, data: bytes) -> bytes:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [{"to": to, "data": "0x" + data.hex()}, "latest"],
        }
        last_error: Optional[EvmRpcError] = None
        for attempt in range(max(1, EvmConfig.RPC_MAX_RETRIES)):
            try:
                return self._post(url, payload)
            except EvmRpcError as e:
                last_error = e
                if attempt + 1 < EvmConfig.RPC_MAX_RETRIES:
                    time.sleep(EvmConfig.RPC_BACKOFF_SECONDS * (2 ** attempt))
        raise last_error

    def _post(self, url: str, payload: Any) -> bytes:
        try:
            resp = self._session.post(
                url,
                json=payload,
                timeout=EvmConfig.RPC_TIMEOUT_SECONDS,
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise EvmRpcError(f"RPC request failed: {e}") from e

        if not isinstance(body, dict):
            raise EvmRpcError(f"unexpected RPC response: {body!r}")
        if body.get("error"):
            raise EvmRpcError(f"RPC error: {body['error']}")
        result = body.get("result")
        if not isinstance(result, str) or not result.startswith("0x"):
            raise EvmRpcError(f"malformed RPC result: {result!r}")
        try:
            return bytes.fromhex(result[2:])
        except ValueError as e:
            raise EvmRpcError(f"malformed RPC result: {e}") from e
