from .multicall_client import (
    AllRpcEndpointsFailedError,
    Call,
    CallResult,
    EvmRpcError,
    MulticallClient,
    NoRpcEndpointsError,
    RpcEndpointResolver,
)

__all__ = [
    "AllRpcEndpointsFailedError",
    "Call",
    "CallResult",
    "EvmRpcError",
    "MulticallClient",
    "NoRpcEndpointsError",
    "RpcEndpointResolver",
]
