from .adapter_resolver import AdapterResolver
from .peer_discovery import DiscoveryResult, PeerDiscoveryEngine
from .fee_enricher import FeeEnricher, compute_v2_fee_bps, compute_v3_fee_bps

__all__ = [
    "AdapterResolver",
    "DiscoveryResult",
    "PeerDiscoveryEngine",
    "FeeEnricher",
    "compute_v2_fee_bps",
    "compute_v3_fee_bps",
]
