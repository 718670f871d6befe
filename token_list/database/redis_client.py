import json
import logging
from typing import List, Optional

import redis

from ..config import Config

logger = logging.getLogger(__name__)


class RpcEndpointCacheError(Exception):
    """Raised when the RPC endpoint cache cannot be read or written."""
    pass


class RpcEndpointCache:
    """
    Redis-backed cache of RPC endpoint lists, keyed by chain id.

    The cache is optional: with no REDIS_HOST, or when the server cannot be
    reached, the instance stays disabled and every lookup is a miss.
    """
    def __init__(self, host: Optional[str] = None, port: Optional[int] = None, db: Optional[int] = None,
                 password: Optional[str] = None, ttl_seconds: Optional[int] = None,
                 key_prefix: Optional[str] = None):
        self.enabled = False
        self.client = None
        self.host = Config.REDIS_HOST if host is None else host
        self.port = port or Config.REDIS_PORT
        self.db = Config.REDIS_DB if db is None else db
        self.ttl_seconds = ttl_seconds or Config.RPC_CACHE_TTL_SECONDS
        self.key_prefix = key_prefix or Config.RPC_CACHE_KEY_PREFIX

        if not self.host:
            logger.info("REDIS_HOST not configured; RPC endpoint cache disabled")
            return

        try:
            self.client = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=Config.REDIS_PASSWORD if password is None else password,
                decode_responses=True,
                socket_timeout=5.0,
            )
            self.client.ping()
            self.enabled = True
            logger.info(f"Connected to Redis RPC cache at {self.host}:{self.port}/{self.db}")
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis at {self.host}:{self.port}: {e}; RPC cache disabled")
            self.client = None

    def _key(self, chain_id: int) -> str:
        return f"{self.key_prefix}:{chain_id}"

    def get(self, chain_id: int) -> Optional[List[str]]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self._key(chain_id))
        except redis.RedisError as e:
            raise RpcEndpointCacheError(f"Error reading RPC cache for chain {chain_id}: {e}") from e
        if not raw:
            return None
        try:
            urls = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed RPC cache entry for chain {chain_id}")
            return None
        return [u for u in urls if isinstance(u, str)] or None

    def set(self, chain_id: int, urls: List[str]) -> None:
        if not self.enabled or not urls:
            return
        try:
            self.client.set(self._key(chain_id), json.dumps(list(urls)), ex=self.ttl_seconds)
        except redis.RedisError as e:
            raise RpcEndpointCacheError(f"Error writing RPC cache for chain {chain_id}: {e}") from e

    def disable(self) -> None:
        self.enabled = False
        self.client = None
