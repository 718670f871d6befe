"""
In-memory multicall used by the tests: calls are dispatched by chain, target
and selector to scripted contracts, and return values are ABI encoded the way
a node would return them.
"""

from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from eth_abi import decode, encode

from token_list.evm import abi
from token_list.evm.config import EvmConfig
from token_list.evm.rpc import Call, CallResult, EvmRpcError

# Error(string) revert payload: proves the function body was reached
REVERT_DATA = bytes.fromhex("08c379a0") + encode(["string"], ["reverted"])

ENDPOINT_V2 = "0x1a44076050125825900e736c501f859c50fE728c"
ENDPOINT_V1 = "0x3c2269811836af69497E5F486A85D7316753cf62"


def ret_uint(value: int) -> bytes:
    return encode(["uint256"], [value])


def ret_address(value: str) -> bytes:
    return encode(["address"], [value])


def ret_string(value: str) -> bytes:
    return encode(["string"], [value])


def ret_bytes32_address(value: str) -> bytes:
    return encode(["bytes32"], [abi.address_to_bytes32(value)])


def ret_bytes(value: bytes) -> bytes:
    return encode(["bytes"], [value])


Handler = Callable[[Tuple[Any, ...]], Any]


class FakeContract:
    def __init__(self, address: str):
        self.address = address
        self._handlers: Dict[bytes, Tuple[str, Handler]] = {}

    def on(self, signature: str, handler: Any) -> "FakeContract":
        """`handler` is a CallResult, raw bytes, or a callable taking the decoded arguments."""
        fn = handler if callable(handler) else (lambda args, value=handler: value)
        self._handlers[abi.selector(signature)] = (signature, fn)
        return self

    def call(self, data: bytes) -> CallResult:
        entry = self._handlers.get(data[:4])
        if entry is None:
            return CallResult(False, b"")
        signature, fn = entry
        types = abi.arg_types(signature)
        args = decode(types, data[4:]) if types else ()
        out = fn(args)
        if isinstance(out, CallResult):
            return out
        if out is None:
            return CallResult(False, b"")
        return CallResult(True, out)


class FakeMulticall:
    def __init__(self):
        self.contracts: Dict[Tuple[str, str], FakeContract] = {}
        self.failing_chains: Set[str] = set()
        self.calls: List[Tuple[str, int]] = []

    def contract(self, chain: str, address: str) -> FakeContract:
        key = (chain, address.lower())
        if key not in self.contracts:
            self.contracts[key] = FakeContract(address)
        return self.contracts[key]

    def try_aggregate(self, chain: str, calls: List[Call], batch_size: Optional[int] = None,
                      delay_ms: Optional[int] = None) -> List[CallResult]:
        self.calls.append((chain, len(calls)))
        if chain in self.failing_chains:
            raise EvmRpcError(f"[{chain}] all RPC endpoints failed")
        results = []
        for c in calls:
            contract = self.contracts.get((chain, c.target.lower()))
            results.append(contract.call(c.call_data) if contract else CallResult(False, b""))
        return results


def erc20(contract: FakeContract, name: str, symbol: str, decimals: int) -> FakeContract:
    return (
        contract.on(abi.NAME, ret_string(name))
        .on(abi.SYMBOL, ret_string(symbol))
        .on(abi.DECIMALS, ret_uint(decimals))
    )


def oft_v3(fake: FakeMulticall, chain: str, address: str, name: str, symbol: str, decimals: int = 18,
           peers: Optional[Dict[str, str]] = None, fee_bps: int = 0, shared_decimals: int = 6) -> FakeContract:
    """A native OFT v3 token: the token is its own adapter. `peers` maps chain key -> peer address."""
    chain_configs = EvmConfig.default_chain_configs()
    by_eid = {chain_configs[c].eid_v2: addr for c, addr in (peers or {}).items()}

    def _peer(args):
        addr = by_eid.get(args[0])
        return ret_bytes32_address(addr) if addr else abi.ZERO_BYTES32

    def _quote(args):
        amount = args[0][2]
        received = amount - amount * fee_bps // 10000
        return encode(abi.QUOTE_OFT_OUTPUT, [(0, 2 ** 64), [], (amount, received)])

    c = erc20(fake.contract(chain, address), name, symbol, decimals)
    return (
        c.on(abi.ENDPOINT, ret_address(ENDPOINT_V2))
        .on(abi.SHARED_DECIMALS, ret_uint(shared_decimals))
        .on(abi.SEND_V3, CallResult(False, REVERT_DATA))
        .on(abi.PEERS, _peer)
        .on(abi.QUOTE_OFT, _quote)
    )


def oft_v2(fake: FakeMulticall, chain: str, address: str, name: str, symbol: str, decimals: int = 18,
           peers: Optional[Dict[str, str]] = None, fee_amount: int = 0, min_dst_gas: int = 0) -> FakeContract:
    """An OFT v2 token on endpoint v1, trusted remotes stored as packed (remote, local) bytes."""
    chain_configs = EvmConfig.default_chain_configs()
    by_eid = {chain_configs[c].eid_v1: addr for c, addr in (peers or {}).items()}

    def _remote(args):
        addr = by_eid.get(args[0])
        if not addr:
            return ret_bytes(b"")
        return ret_bytes(bytes.fromhex(addr[2:]) + bytes.fromhex(address[2:]))

    c = erc20(fake.contract(chain, address), name, symbol, decimals)
    return (
        c.on(abi.LZ_ENDPOINT, ret_address(ENDPOINT_V1))
        .on(abi.SEND_FROM_V2, CallResult(False, REVERT_DATA))
        .on(abi.GET_TRUSTED_REMOTE_ADDRESS, _remote)
        .on(abi.QUOTE_OFT_FEE, ret_uint(fee_amount))
        .on(abi.MIN_DST_GAS_LOOKUP, ret_uint(min_dst_gas))
    )
