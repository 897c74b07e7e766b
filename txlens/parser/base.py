"""
Base decoder module: shared data structures and the decoder interface.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey


class Direction(str, Enum):
    """Token flow of an action relative to the user."""
    IN = "IN"
    OUT = "OUT"
    SELF = "SELF"
    UNKNOWN = "UNKNOWN"


class DecoderKind(str, Enum):
    """Closed set of decoder variants."""
    SYSTEM = "system"
    TOKEN = "token"
    AGGREGATOR = "aggregator"
    AMM = "amm"
    CONCENTRATED_LIQUIDITY = "concentrated_liquidity"
    IDL_FALLBACK = "idl_fallback"
    SCHEMA = "schema"


@dataclass(frozen=True)
class AccountRef:
    """Account referenced by an instruction"""
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True)
class Instruction:
    """A single instruction: target program, accounts and raw payload"""
    program_id: Pubkey
    accounts: Tuple[AccountRef, ...]
    data: bytes

    @property
    def account_keys(self) -> List[Pubkey]:
        return [acc.pubkey for acc in self.accounts]


@dataclass(frozen=True)
class ParserContext:
    """Everything a decoder may look at when decoding one instruction"""
    instruction: Instruction
    program_id: Pubkey
    accounts: Tuple[Pubkey, ...] = ()

    @property
    def data(self) -> bytes:
        return self.instruction.data

    def account(self, index: int) -> Optional[str]:
        """Base58 address of the instruction's account at ``index``, if present."""
        keys = self.instruction.accounts
        if 0 <= index < len(keys):
            return str(keys[index].pubkey)
        return None


@dataclass
class ParsedAction:
    """Decoded, human-readable representation of one instruction"""
    protocol: str
    type: str
    summary: str
    details: Dict[str, Any] = field(default_factory=dict)
    direction: Direction = Direction.UNKNOWN
    total_usd: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "protocol": self.protocol,
            "type": self.type,
            "summary": self.summary,
            "details": self.details,
            "direction": self.direction.value,
        }
        if self.total_usd is not None:
            result["totalUsd"] = self.total_usd
        return result


@dataclass(frozen=True)
class ParsedResult:
    """Decoded transaction"""
    fee: str
    actions: Tuple[ParsedAction, ...]
    signature: str
    success: bool
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "fee": self.fee,
            "actions": [action.to_dict() for action in self.actions],
            "signature": self.signature,
            "success": self.success,
        }


class BaseDecoder(ABC):
    """
    Base class for all instruction decoders.

    Subclasses set ``kind`` and ``program_id`` and implement ``decode``.
    ``decode`` returns None when the instruction is not recognised and must
    never raise on malformed instruction data.
    """

    kind: DecoderKind
    program_id: Pubkey

    @abstractmethod
    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        """
        Decode one instruction.

        Args:
            context: instruction, its program id and the full account list

        Returns:
            The decoded action, or None if nothing matched
        """


def make_instruction(program_id: Pubkey, accounts: Sequence[Pubkey], data: bytes) -> Instruction:
    """Build an Instruction from plain account keys (flags are not tracked)."""
    return Instruction(
        program_id=program_id,
        accounts=tuple(AccountRef(pubkey=key) for key in accounts),
        data=bytes(data),
    )


def to_pubkey(value: Union[str, bytes, Pubkey, None]) -> Optional[Pubkey]:
    """Parse a base58 string or 32 raw bytes into a Pubkey; None if invalid."""
    if isinstance(value, Pubkey):
        return value
    if not value:
        return None
    try:
        if isinstance(value, (bytes, bytearray)):
            return Pubkey.from_bytes(bytes(value))
        return Pubkey.from_string(value)
    except Exception:
        return None
