from .redis_client import RpcEndpointCache, RpcEndpointCacheError

__all__ = ['RpcEndpointCache', 'RpcEndpointCacheError']
