"""
Little-endian field readers and amount formatting shared by the decoders.
"""
import hashlib
import re
import struct
from decimal import Decimal
from typing import Optional

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")

ANCHOR_DISCRIMINATOR_SIZE = 8


def read_u8(data: bytes, offset: int) -> int:
    return data[offset]


def read_u16(data: bytes, offset: int) -> int:
    return _U16.unpack_from(data, offset)[0]


def read_u32(data: bytes, offset: int) -> int:
    return _U32.unpack_from(data, offset)[0]


def read_i32(data: bytes, offset: int) -> int:
    return _I32.unpack_from(data, offset)[0]


def read_u64(data: bytes, offset: int) -> int:
    return _U64.unpack_from(data, offset)[0]


def to_snake_case(name: str) -> str:
    """camelCase -> snake_case, as Anchor does before hashing instruction names."""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


def anchor_discriminator(name: str, namespace: str = "global") -> bytes:
    """
    Anchor instruction sighash: first 8 bytes of sha256("<namespace>:<snake_name>").

    Args:
        name: instruction name as written in the IDL
        namespace: sighash namespace

    Returns:
        8-byte discriminator
    """
    preimage = f"{namespace}:{to_snake_case(name)}".encode()
    return hashlib.sha256(preimage).digest()[:ANCHOR_DISCRIMINATOR_SIZE]


def format_amount(raw: int, decimals: Optional[int] = None) -> str:
    """
    Format an on-chain integer amount.

    The literal integer string is returned unless ``decimals`` is known, in
    which case the amount is scaled exactly (no float rounding).
    """
    if decimals is None:
        return str(raw)
    scaled = Decimal(raw).scaleb(-decimals)
    text = format(scaled, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
