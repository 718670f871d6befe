import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


def _env_json(name: str) -> Optional[dict]:
    value = os.getenv(name)
    if not value:
        return None
    return json.loads(value)


def _env_int_list(name: str) -> List[int]:
    value = os.getenv(name)
    if not value:
        return []
    return [int(v) for v in value.split(",") if v.strip()]


MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

MULTICALL3_OVERRIDES = {
    "xdc": "0xbC8dfE0885a60653a580A9221705705A393FA71F",
    "merlin": "0xbC8dfE0885a60653a580A9221705705A393FA71F",
    "orderly": "0xa7b7471813579f19Bd5DbC2d5556D04c2615f860",
}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# chain key -> (chain id, endpoint v2 id); endpoint v1 ids are offset by 30000
_CHAINS: Dict[str, Tuple[int, int]] = {
    "ethereum": (1, 30101),
    "arbitrum": (42161, 30110),
    "base": (8453, 30184),
    "bsc": (56, 30102),
    "bera": (80094, 30362),
    "optimism": (10, 30111),
    "metis": (1088, 30151),
    "avalanche": (43114, 30106),
    "sonic": (146, 30332),
    "polygon": (137, 30109),
    "swell": (1923, 30335),
    "fraxtal": (252, 30255),
}

EID_V1_OFFSET = 30000

CHAIN_KEY_TO_ID: Dict[str, int] = {k: v[0] for k, v in _CHAINS.items()}
CHAIN_ID_TO_KEY: Dict[int, str] = {v[0]: k for k, v in _CHAINS.items()}

# Stargate peg overrides (symbol -> peg chain/address)
OVERRIDE_PEG = {
    "USD₮0": {"chainName": "arbitrum", "address": "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9"},
    "frxUSD": {"chainName": "ethereum", "address": "0xCAcd6fd266aF91b8AeD52aCCc382b4e165586E29"},
    "sfrxUSD": {"chainName": "ethereum", "address": "0xcf62F905562626CfcDD2261162a51fd02Fc9c5b6"},
}

OVERRIDE_CG_CMC_ID = {
    "frxUSD": {"coingeckoId": "frax-usd", "coinMarketCapId": 36039},
    "sfrxUSD": {"coingeckoId": "staked-frax-usd", "coinMarketCapId": 36038},
}

# Known metadata errors: (chain id, token address) -> adapter to use instead
ADAPTER_OVERRIDES = {
    (42161, "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9"): "0x14E4A1B13bf7F943c8ff7C51fb60FA964A298D92",
}


def _env_symbols(name: str, default: Tuple[str, ...]) -> frozenset:
    value = os.getenv(name)
    if value is None:
        return frozenset(default)
    return frozenset(s.strip() for s in value.split(",") if s.strip())


# Peer groups containing one of these symbols are never demoted to the inactive list
PARTNER_TOKEN_SYMBOLS = _env_symbols("PARTNER_TOKEN_SYMBOLS", ("HERMES", "MAIA", "bHERMES", "sHERMES", "vMAIA"))
CORE_TOKEN_SYMBOLS = _env_symbols(
    "CORE_TOKEN_SYMBOLS",
    ("ETH", "WETH", "WBTC", "USDC", "USDT", "USD₮0", "DAI", "ARB", "OP", "frxUSD", "sfrxUSD"),
)
BLOCKED_TOKEN_SYMBOLS = _env_symbols("BLOCKED_TOKEN_SYMBOLS", ())

# Chains where only bridge tokens and wrapped natives are listed
CHAINS_WITH_NO_SWAPPING = frozenset(_env_int_list("CHAINS_WITH_NO_SWAPPING") or [80094, 146, 1923, 252])

# Native-asset OFT adapters (chain id -> adapter -> address peers should point at)
NATIVE_OFT_ADAPTERS: Dict[int, Dict[str, str]] = {
    1: {"0x77b2043768d28e9c9ab44e1abfc95944bce57931": ZERO_ADDRESS},
    10: {"0xe8cdf27acd73a434d661c84887215f7598e7d0d3": ZERO_ADDRESS},
    8453: {"0xdc181bd607330aeebef6ea62e03e5e1fb4b6f7c7": ZERO_ADDRESS},
    42161: {"0xa45b5130f36cdca45667738e2a258ab09f4a5f7f": ZERO_ADDRESS},
}

# Chains accepted from public token lists on top of the bridge chains
EXTENDED_SUPPORTED_CHAIN_IDS = frozenset(_env_int_list("EXTENDED_SUPPORTED_CHAIN_IDS") or [42220])


@dataclass(frozen=True)
class EvmChainConfig:
    chain: str
    chain_id: int
    eid_v2: int
    multicall_address: str = MULTICALL3_ADDRESS
    rpc_urls: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def eid_v1(self) -> int:
        return self.eid_v2 - EID_V1_OFFSET

    def eid(self, endpoint_version: Optional[int]) -> int:
        return self.eid_v2 if endpoint_version == 2 else self.eid_v1


class EvmConfig:
    RPC_TIMEOUT_SECONDS = float(os.getenv("EVM_RPC_TIMEOUT_SECONDS", "10"))
    RPC_MAX_RETRIES = int(os.getenv("EVM_RPC_MAX_RETRIES", "3"))
    RPC_BACKOFF_SECONDS = float(os.getenv("EVM_RPC_BACKOFF_SECONDS", "0.5"))

    MULTICALL_BATCH_SIZE = int(os.getenv("EVM_MULTICALL_BATCH_SIZE", "500"))
    MULTICALL_DELAY_MS = int(os.getenv("EVM_MULTICALL_DELAY_MS", "200"))

    MAX_DISCOVERY_ROUNDS = int(os.getenv("EVM_MAX_DISCOVERY_ROUNDS", "64"))

    HUB_CHAIN_ID = int(os.getenv("HUB_CHAIN_ID", "42161"))

    DEFAULT_MIN_DST_GAS = int(os.getenv("EVM_DEFAULT_MIN_DST_GAS", "200000"))
    HIGH_GAS_MIN_DST_GAS = int(os.getenv("EVM_HIGH_GAS_MIN_DST_GAS", "2000000"))
    HIGH_GAS_CHAIN_IDS = frozenset(_env_int_list("EVM_HIGH_GAS_CHAIN_IDS") or [42161])

    _CHAIN_CONFIGS_JSON = _env_json("EVM_CHAIN_CONFIGS")
    _SUPPORTED_CHAINS = [c.strip() for c in os.getenv("EVM_SUPPORTED_CHAINS", "").split(",") if c.strip()]

    @classmethod
    def supported_chains(cls) -> List[str]:
        if cls._SUPPORTED_CHAINS:
            return [c for c in cls._SUPPORTED_CHAINS if c in _CHAINS]
        return list(_CHAINS.keys())

    @classmethod
    def default_chain_configs(cls) -> Dict[str, EvmChainConfig]:
        overrides: Dict[str, dict] = cls._CHAIN_CONFIGS_JSON or {}

        out: Dict[str, EvmChainConfig] = {}
        for chain in cls.supported_chains():
            chain_id, eid_v2 = _CHAINS[chain]
            override = overrides.get(chain) or {}
            multicall = override.get("multicall_address") or MULTICALL3_OVERRIDES.get(chain, MULTICALL3_ADDRESS)
            out[chain] = EvmChainConfig(
                chain=chain,
                chain_id=int(override.get("chain_id") or chain_id),
                eid_v2=int(override.get("eid_v2") or eid_v2),
                multicall_address=multicall,
                rpc_urls=tuple(override.get("rpc_urls") or ()),
            )
        return out

    @classmethod
    def list_chain_ids(cls) -> frozenset:
        """Chain ids accepted into the token lists."""
        return frozenset(CHAIN_KEY_TO_ID[c] for c in cls.supported_chains()) | EXTENDED_SUPPORTED_CHAIN_IDS

    @classmethod
    def min_dst_gas_default(cls, dst_chain_id: int) -> int:
        if dst_chain_id in cls.HIGH_GAS_CHAIN_IDS:
            return cls.HIGH_GAS_MIN_DST_GAS
        return cls.DEFAULT_MIN_DST_GAS
