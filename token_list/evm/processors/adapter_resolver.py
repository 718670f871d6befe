import logging
from typing import Any, Dict, List, Optional, Tuple

from ...models import ENDPOINT_FOR_OFT, BridgeInfo, TokenRecord
from ...processors.normalizer import checksum, clean_address, merge_extensions
from ..config import OVERRIDE_CG_CMC_ID, OVERRIDE_PEG, ZERO_ADDRESS, EvmChainConfig

logger = logging.getLogger(__name__)


def _version_hint(value: Any, known) -> Optional[int]:
    """Metadata version hints are only kept when they name a known version."""
    try:
        version = int(value)
    except (TypeError, ValueError):
        return None
    return version if version in known else None


class AdapterResolver:
    """
    Turns the per-chain `addressToOApp` tables of the token metadata file into
    seed TokenRecords: one per adapter, with the real ERC-20 address, metadata
    hints, peg info and peers shared through a common OApp id.
    """

    def __init__(self, chain_configs: Dict[str, EvmChainConfig]):
        self.chain_configs = chain_configs

    @staticmethod
    def resolve_adapter(adapter_address: str, tokens_meta: Dict[str, dict]) -> Optional[Tuple[str, str]]:
        """Return (adapterAddress, tokenAddress) lowercased, or None for unusable adapters."""
        adapter = clean_address(adapter_address)
        if not adapter or adapter == ZERO_ADDRESS:
            return None

        token_info = tokens_meta.get(adapter) or {}
        token_address = adapter
        if token_info.get("erc20TokenAddress"):
            token_address = clean_address(token_info["erc20TokenAddress"])
        if not token_address or token_address == ZERO_ADDRESS:
            return None
        return adapter, token_address

    def resolve(self, metadata: Dict[str, Any], baseline: Optional[List[dict]] = None) -> List[TokenRecord]:
        existing: Dict[str, dict] = {}
        for entry in baseline or []:
            addr = clean_address(entry.get("address"))
            if addr and entry.get("chainId") is not None:
                existing[f"{int(entry['chainId'])}:{addr}"] = entry

        records: List[TokenRecord] = []
        bridge_map: Dict[Tuple[str, str], Dict[str, dict]] = {}
        oapp_map: Dict[Any, List[TokenRecord]] = {}

        for chain, cfg in self.chain_configs.items():
            chain_data = metadata.get(chain)
            if not chain_data:
                continue
            tokens_meta = {k.lower(): v for k, v in (chain_data.get("tokens") or {}).items()}
            oapps = chain_data.get("addressToOApp") or {}
            logger.info(f"[{chain}] Resolving {len(oapps):,} OApp adapters")

            for adapter_addr, oapp_info in oapps.items():
                token_info = tokens_meta.get(adapter_addr.lower())
                if not token_info:
                    logger.warning(f"[{chain}] No token info for adapter {adapter_addr}")
                    token_info = {}

                resolved = self.resolve_adapter(adapter_addr, tokens_meta)
                if resolved is None:
                    logger.warning(f"[{chain}] Skipping zero-address or invalid adapter {adapter_addr}")
                    continue
                adapter, token_address = resolved

                record = self._build_record(cfg, adapter, token_address, token_info, existing)

                peg = OVERRIDE_PEG.get(record.symbol) or token_info.get("peggedTo")
                if isinstance(peg, dict) and peg.get("address"):
                    peg_key = (peg["address"].lower(), peg.get("chainName"))
                    bridge_map.setdefault(peg_key, {})[str(cfg.chain_id)] = {"tokenAddress": record.address}
                    if peg.get("chainName") in self.chain_configs:
                        peg_chain_id = self.chain_configs[peg["chainName"]].chain_id
                        record.extensions = merge_extensions(
                            record.extensions,
                            {"bridgeInfo": {str(peg_chain_id): {"tokenAddress": peg["address"]}}},
                        )

                if isinstance(oapp_info, dict) and oapp_info.get("id") is not None:
                    oapp_map.setdefault(oapp_info["id"], []).append(record)

                records.append(record)

        self._attach_reverse_pegs(records, bridge_map)
        self._seed_peers(oapp_map)

        logger.info(f"Resolved {len(records):,} adapter tokens")
        return records

    def _build_record(
        self, cfg: EvmChainConfig, adapter: str, token_address: str, token_info: dict, existing: Dict[str, dict]
    ) -> TokenRecord:
        base = existing.get(f"{cfg.chain_id}:{token_address}") or {}

        symbol = base.get("symbol") or token_info.get("symbol")
        name = base.get("name") or token_info.get("name") or symbol
        decimals = base.get("decimals") if base.get("decimals") is not None else token_info.get("decimals")

        extensions = merge_extensions(
            base.get("extensions"),
            {"coingeckoId": token_info.get("cgId"), "coinMarketCapId": token_info.get("cmcId")},
        )
        if symbol in OVERRIDE_CG_CMC_ID:
            extensions = merge_extensions(extensions, OVERRIDE_CG_CMC_ID[symbol])

        extra = {}
        if token_info.get("fee"):
            extra["fee"] = token_info["fee"]

        return TokenRecord(
            chain_id=cfg.chain_id,
            address=checksum(token_address),
            name=name,
            symbol=symbol,
            decimals=decimals,
            logo_uri=base.get("logoURI") or base.get("icon"),
            extensions=extensions,
            bridge=BridgeInfo(
                adapter=checksum(adapter),
                oft_version=_version_hint(token_info.get("oftVersion"), ENDPOINT_FOR_OFT),
                endpoint_version=_version_hint(token_info.get("endpointVersion"), (1, 2)),
                shared_decimals=token_info.get("sharedDecimals"),
            ),
            extra=extra,
        )

    def _attach_reverse_pegs(self, records: List[TokenRecord], bridge_map: Dict[Tuple[str, str], Dict[str, dict]]):
        id_to_key = {cfg.chain_id: key for key, cfg in self.chain_configs.items()}
        for record in records:
            chain = id_to_key.get(record.chain_id)
            wrappers = bridge_map.get((record.address.lower(), chain))
            if wrappers:
                record.extensions = merge_extensions(record.extensions, {"bridgeInfo": wrappers})

    @staticmethod
    def _seed_peers(oapp_map: Dict[Any, List[TokenRecord]]) -> None:
        for members in oapp_map.values():
            for record in members:
                for other in members:
                    if other.chain_id != record.chain_id:
                        record.bridge.peers[other.chain_id] = other.address
