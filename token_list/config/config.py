import logging
import os
import sys

from dotenv import load_dotenv
load_dotenv()


class Config:
    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Stage hand-off directory (JSON snapshots produced/consumed by each stage)
    OUTPUT_DIR = os.getenv('OUTPUT_DIR', 'output')

    # Redis Configuration (RPC endpoint cache)
    # Leave REDIS_HOST empty to run without the cache
    REDIS_HOST = os.getenv('REDIS_HOST', '')
    REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
    REDIS_DB = int(os.getenv('REDIS_DB', '3'))
    REDIS_PASSWORD = os.getenv('REDIS_PASSWORD', None)
    RPC_CACHE_KEY_PREFIX = os.getenv('RPC_CACHE_KEY_PREFIX', 'token_list:rpcs')
    RPC_CACHE_TTL_SECONDS = int(os.getenv('RPC_CACHE_TTL_SECONDS', str(24 * 3600)))

    # Public chain registry used as RPC fallback source
    CHAIN_REGISTRY_URL = os.getenv('CHAIN_REGISTRY_URL', 'https://chainid.network/chains.json')
    CHAIN_REGISTRY_TIMEOUT_SECONDS = float(os.getenv('CHAIN_REGISTRY_TIMEOUT_SECONDS', '20'))

    # Token list documents
    TOKEN_LIST_NAME = os.getenv('TOKEN_LIST_NAME', 'Hermes Omnichain Token List')
    INACTIVE_TOKEN_LIST_NAME = os.getenv('INACTIVE_TOKEN_LIST_NAME', 'Hermes Omnichain Inactive Token List')
    TOKEN_LIST_LOGO_URI = os.getenv(
        'TOKEN_LIST_LOGO_URI',
        'https://raw.githubusercontent.com/Maia-DAO/token-list-v2/main/logos/Hermes-color.svg',
    )
    TOKEN_LIST_KEYWORDS = [k.strip() for k in os.getenv('TOKEN_LIST_KEYWORDS', 'hermes,default').split(',') if k.strip()]

    @classmethod
    def validate(cls):
        required_fields = ['OUTPUT_DIR', 'CHAIN_REGISTRY_URL', 'TOKEN_LIST_NAME', 'INACTIVE_TOKEN_LIST_NAME']
        missing = []
        for field in required_fields:
            if not getattr(cls, field):
                missing.append(field)
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        return True


def setup_logging(level: str = None):
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


Config.validate()
