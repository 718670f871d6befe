import logging
from typing import Any, List, Optional, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

logger = logging.getLogger(__name__)

# OApp / proxy
ENDPOINT = "endpoint()"
LZ_ENDPOINT = "lzEndpoint()"
TOKEN = "token()"

# ERC20
NAME = "name()"
SYMBOL = "symbol()"
DECIMALS = "decimals()"

# OFT v3 (endpoint v2)
SHARED_DECIMALS = "sharedDecimals()"
SEND_V3 = "send((uint32,bytes32,uint256,uint256,bytes,bytes,bytes),(uint256,uint256),address)"
QUOTE_OFT = "quoteOFT((uint32,bytes32,uint256,uint256,bytes,bytes,bytes))"
PEERS = "peers(uint32)"

# OFT v2 / v1 (endpoint v1)
SEND_FROM_V2 = "sendFrom(address,uint16,bytes32,uint256,(address,address,bytes))"
SEND_FROM_V1 = "sendFrom(address,uint16,bytes,uint256,address,address,bytes)"
QUOTE_OFT_FEE = "quoteOFTFee(uint16,uint256)"
GET_TRUSTED_REMOTE_ADDRESS = "getTrustedRemoteAddress(uint16)"
MIN_DST_GAS_LOOKUP = "minDstGasLookup(uint16,uint16)"

# Multicall3
TRY_AGGREGATE = "tryAggregate(bool,(address,bytes)[])"

QUOTE_OFT_OUTPUT = ["(uint256,uint256)", "(int256,string)[]", "(uint256,uint256)"]

ZERO_BYTES32 = b"\x00" * 32


def arg_types(signature: str) -> List[str]:
    inner = signature[signature.index("(") + 1 : -1]
    if not inner:
        return []
    types: List[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(inner):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            types.append(inner[start:i])
            start = i + 1
    types.append(inner[start:])
    return types


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, *args: Any) -> bytes:
    types = arg_types(signature)
    if len(types) != len(args):
        raise ValueError(f"{signature} expects {len(types)} arguments, got {len(args)}")
    data = selector(signature)
    if types:
        data += encode(types, list(args))
    return data


def address_to_bytes32(address: str) -> bytes:
    raw = bytes.fromhex(address[2:] if address.startswith("0x") else address)
    return raw.rjust(32, b"\x00")


def is_zero_address(address: Optional[str]) -> bool:
    if not address:
        return True
    return int(address, 16) == 0


# Call builders

def dummy_send_v3() -> bytes:
    send_param = (0, ZERO_BYTES32, 0, 0, b"", b"", b"")
    return encode_call(SEND_V3, send_param, (0, 0), "0x" + "00" * 20)


def dummy_send_from_v2() -> bytes:
    zero = "0x" + "00" * 20
    return encode_call(SEND_FROM_V2, zero, 0, ZERO_BYTES32, 0, (zero, zero, b""))


def dummy_send_from_v1() -> bytes:
    zero = "0x" + "00" * 20
    return encode_call(SEND_FROM_V1, zero, 0, b"", 0, zero, zero, b"")


def quote_oft(dst_eid: int, to_address: str, amount_ld: int) -> bytes:
    send_param = (dst_eid, address_to_bytes32(to_address), amount_ld, 0, b"", b"", b"")
    return encode_call(QUOTE_OFT, send_param)


# Decoders return None for any payload they cannot decode

def _decode(types: List[str], data: Optional[bytes]) -> Optional[Tuple[Any, ...]]:
    if not data:
        return None
    try:
        return decode(types, data)
    except (DecodingError, ValueError, OverflowError) as e:
        logger.debug(f"Failed to decode {types}: {e}")
        return None


def decode_uint(data: Optional[bytes]) -> Optional[int]:
    v = _decode(["uint256"], data)
    return None if v is None else int(v[0])


def decode_uint8(data: Optional[bytes]) -> Optional[int]:
    v = decode_uint(data)
    if v is None or v < 0 or v > 255:
        return None
    return v


def decode_address(data: Optional[bytes]) -> Optional[str]:
    v = _decode(["address"], data)
    if v is None:
        return None
    return to_checksum_address(v[0])


def decode_string(data: Optional[bytes]) -> Optional[str]:
    if not data:
        return None
    # Some legacy tokens return bytes32 instead of string
    if len(data) == 32:
        try:
            return data.rstrip(b"\x00").decode("utf-8").strip() or None
        except UnicodeDecodeError:
            return None
    v = _decode(["string"], data)
    if v is None:
        return None
    return v[0]


def decode_bytes32_address(data: Optional[bytes]) -> Optional[str]:
    v = _decode(["bytes32"], data)
    if v is None or v[0] == ZERO_BYTES32:
        return None
    addr = to_checksum_address(v[0][-20:])
    return None if is_zero_address(addr) else addr


def decode_bytes_address(data: Optional[bytes]) -> Optional[str]:
    v = _decode(["bytes"], data)
    if v is None or len(v[0]) < 20:
        return None
    addr = to_checksum_address(v[0][:20])
    return None if is_zero_address(addr) else addr


def decode_quote_receipt(data: Optional[bytes]) -> Optional[Tuple[int, int]]:
    v = _decode(QUOTE_OFT_OUTPUT, data)
    if v is None:
        return None
    sent, received = v[2]
    return int(sent), int(received)
