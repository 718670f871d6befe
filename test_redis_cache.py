import unittest
from unittest.mock import MagicMock, patch
import os

import redis

# Mock Config before importing modules that use it
with patch.dict(os.environ, {
    'REDIS_HOST': 'localhost',
    'REDIS_PORT': '6379',
    'REDIS_DB': '3',
    'RPC_CACHE_KEY_PREFIX': 'token_list:rpcs',
}):
    from token_list.database.redis_client import RpcEndpointCache, RpcEndpointCacheError


class TestRpcEndpointCache(unittest.TestCase):

    @patch('redis.Redis')
    def test_get_cached_urls(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_client.get.return_value = '["https://rpc-a.example", "https://rpc-b.example"]'
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost', key_prefix='token_list:rpcs')
        urls = cache.get(42161)

        self.assertEqual(urls, ["https://rpc-a.example", "https://rpc-b.example"])
        mock_client.get.assert_called_with('token_list:rpcs:42161')

    @patch('redis.Redis')
    def test_get_missing_key(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_client.get.return_value = None
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost')

        self.assertIsNone(cache.get(1))

    @patch('redis.Redis')
    def test_malformed_entry_is_a_miss(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_client.get.return_value = "not json"
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost')

        self.assertIsNone(cache.get(1))

    @patch('redis.Redis')
    def test_set_uses_ttl(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost', ttl_seconds=600, key_prefix='token_list:rpcs')
        cache.set(10, ["https://rpc.example"])

        mock_client.set.assert_called_with('token_list:rpcs:10', '["https://rpc.example"]', ex=600)

    @patch('redis.Redis')
    def test_connection_failure(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_client.ping.side_effect = redis.ConnectionError("Connection refused")
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost')

        self.assertFalse(cache.enabled)
        self.assertIsNone(cache.get(1))
        cache.set(1, ["https://rpc.example"])
        mock_client.set.assert_not_called()

    @patch('redis.Redis')
    def test_read_error_raises_cache_error(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_client.get.side_effect = redis.TimeoutError("timeout")
        mock_redis_cls.return_value = mock_client

        cache = RpcEndpointCache(host='localhost')

        with self.assertRaises(RpcEndpointCacheError):
            cache.get(1)

    @patch('redis.Redis')
    def test_no_host_disables_cache(self, mock_redis_cls):
        cache = RpcEndpointCache(host='')

        self.assertFalse(cache.enabled)
        mock_redis_cls.assert_not_called()


if __name__ == '__main__':
    unittest.main()
