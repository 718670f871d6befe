from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from .processors.normalizer import checksum, order_attributes, order_extensions

# oftVersion -> endpointVersion it requires
ENDPOINT_FOR_OFT = {3: 2, 2: 1, 1: 1}


class TokenStatus(str, Enum):
    QUEUED = "queued"
    PROBED = "probed"
    ENRICHED = "enriched"
    PEERS_DISCOVERED = "peers_discovered"
    REMOVED = "removed"


@dataclass
class VersionEvidence:
    """
    Signals collected while probing an adapter. Nothing is decided until
    resolve() runs, so the outcome does not depend on probe order.
    """
    endpoint_v2: bool = False
    endpoint_v1: bool = False
    shared_decimals: Optional[int] = None
    send_versions: Set[int] = field(default_factory=set)
    hint_oft_version: Optional[int] = None
    hint_endpoint_version: Optional[int] = None

    def resolve(self) -> Tuple[Optional[int], Optional[int]]:
        """Return (oftVersion, endpointVersion)."""
        hint_oft = self.hint_oft_version if self.hint_oft_version in ENDPOINT_FOR_OFT else None
        hint_endpoint = self.hint_endpoint_version if self.hint_endpoint_version in (1, 2) else None
        if self.send_versions:
            oft_version = max(self.send_versions)
            return oft_version, ENDPOINT_FOR_OFT[oft_version]

        if self.endpoint_v2 or (self.shared_decimals or 0) > 0:
            endpoint_version = 2
        elif self.endpoint_v1:
            endpoint_version = 1
        else:
            endpoint_version = hint_endpoint

        oft_version = hint_oft
        if oft_version is not None and endpoint_version is not None:
            if ENDPOINT_FOR_OFT.get(oft_version) != endpoint_version:
                oft_version = None
        elif oft_version is not None:
            endpoint_version = ENDPOINT_FOR_OFT.get(oft_version)
        return oft_version, endpoint_version


@dataclass
class FeeQuote:
    oft_fee: Optional[int] = None
    min_dst_gas: Optional[int] = None

    def to_dict(self) -> Dict[str, int]:
        out = {}
        if self.oft_fee is not None:
            out["oftFee"] = self.oft_fee
        if self.min_dst_gas is not None:
            out["minDstGas"] = self.min_dst_gas
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeQuote":
        return cls(oft_fee=data.get("oftFee"), min_dst_gas=data.get("minDstGas"))


@dataclass
class BridgeInfo:
    adapter: str
    oft_version: Optional[int] = None
    endpoint_version: Optional[int] = None
    shared_decimals: Optional[int] = None
    endpoint_id: Optional[int] = None
    peers: Dict[int, str] = field(default_factory=dict)
    fees: Dict[int, FeeQuote] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"oftAdapter": checksum(self.adapter) or self.adapter}
        if self.oft_version is not None:
            out["oftVersion"] = self.oft_version
        if self.endpoint_version is not None:
            out["endpointVersion"] = self.endpoint_version
        if self.shared_decimals is not None:
            out["oftSharedDecimals"] = self.shared_decimals
        if self.endpoint_id is not None:
            out["endpointId"] = self.endpoint_id
        if self.peers:
            out["peersInfo"] = {str(cid): {"tokenAddress": addr} for cid, addr in sorted(self.peers.items())}
        fees = {str(cid): q.to_dict() for cid, q in sorted(self.fees.items()) if q.to_dict()}
        if fees:
            out["feeInfo"] = fees
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeInfo":
        peers = {
            int(cid): info["tokenAddress"]
            for cid, info in (data.get("peersInfo") or {}).items()
            if isinstance(info, dict) and info.get("tokenAddress")
        }
        fees = {int(cid): FeeQuote.from_dict(q) for cid, q in (data.get("feeInfo") or {}).items()}
        return cls(
            adapter=data["oftAdapter"],
            oft_version=data.get("oftVersion"),
            endpoint_version=data.get("endpointVersion"),
            shared_decimals=data.get("oftSharedDecimals"),
            endpoint_id=data.get("endpointId"),
            peers=peers,
            fees=fees,
        )


_BRIDGE_FIELDS = ("oftAdapter", "oftVersion", "endpointVersion", "oftSharedDecimals", "endpointId")
_KNOWN_FIELDS = {"chainId", "address", "name", "symbol", "decimals", "logoURI", "isAcross", "isOFT", "extensions"}


@dataclass
class TokenRecord:
    """
    One token on one chain. `bridge` is the bridging arm of the record: None
    means "not a bridge token", otherwise it carries adapter, versions, peers
    and fees. `status` and `evidence` only live during peer discovery.
    """
    chain_id: int
    address: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    logo_uri: Optional[str] = None
    is_across: bool = False
    extensions: Dict[str, Any] = field(default_factory=dict)
    bridge: Optional[BridgeInfo] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    status: TokenStatus = TokenStatus.QUEUED
    evidence: VersionEvidence = field(default_factory=VersionEvidence)

    @property
    def key(self) -> Tuple[int, str]:
        return self.chain_id, self.address.lower()

    @property
    def is_oft(self) -> bool:
        return self.bridge is not None

    @property
    def removed(self) -> bool:
        return self.status == TokenStatus.REMOVED

    def strip_bridge(self) -> None:
        self.bridge = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "chainId": self.chain_id,
            "address": checksum(self.address) or self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
        }
        if self.logo_uri:
            out["logoURI"] = self.logo_uri
        extensions = dict(self.extensions)
        if self.bridge is not None:
            extensions["oftInfo"] = self.bridge.to_dict()
        if extensions:
            out["extensions"] = order_extensions(extensions)
        out["isAcross"] = self.is_across
        out["isOFT"] = self.is_oft
        out.update(self.extra)
        return order_attributes(out)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        """
        Accepts the nested shape produced by to_dict() and the flat shape where
        bridge fields sit at the top level and peers/fees inside `extensions`.
        """
        extensions = dict(data.get("extensions") or {})
        oft_info = extensions.pop("oftInfo", None)
        flat = {k: data[k] for k in _BRIDGE_FIELDS if data.get(k) is not None}
        for k in ("peersInfo", "feeInfo"):
            if k in extensions:
                flat[k] = extensions.pop(k)

        bridge = None
        if isinstance(oft_info, dict) and oft_info.get("oftAdapter"):
            bridge = BridgeInfo.from_dict({**flat, **oft_info})
        elif flat.get("oftAdapter") and data.get("isOFT") is not False:
            bridge = BridgeInfo.from_dict(flat)

        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS and k not in _BRIDGE_FIELDS}
        return cls(
            chain_id=int(data["chainId"]),
            address=checksum(data.get("address")) or data.get("address"),
            name=data.get("name"),
            symbol=data.get("symbol"),
            decimals=data.get("decimals"),
            logo_uri=data.get("logoURI") or None,
            is_across=bool(data.get("isAcross")),
            extensions=extensions,
            bridge=bridge,
            extra=extra,
        )
