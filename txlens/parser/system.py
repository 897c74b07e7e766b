"""
System program decoder: SOL transfers, account creation and nonce management.
"""
import logging
import struct
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from ..constants import SOL_DECIMALS, SYSTEM_PROGRAM_ID, WRAPPED_SOL_MINT
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import format_amount, read_u64

logger = logging.getLogger(__name__)

PROTOCOL = "System Program"

# System instructions are tagged with a little-endian u32
DISCRIMINATOR_SIZE = 4


def _tag(index: int) -> bytes:
    return struct.pack("<I", index)


class SystemDecoder(BaseDecoder):
    """System program decoder"""

    kind = DecoderKind.SYSTEM
    program_id = SYSTEM_PROGRAM_ID

    INSTRUCTION_TYPES = {
        _tag(0): "Create Account",
        _tag(1): "Assign",
        _tag(2): "Transfer",
        _tag(3): "Create Account With Seed",
        _tag(4): "Advance Nonce",
        _tag(5): "Withdraw Nonce",
        _tag(6): "Initialize Nonce",
        _tag(7): "Authorize Nonce",
        _tag(8): "Allocate",
        _tag(9): "Allocate With Seed",
        _tag(10): "Assign With Seed",
        _tag(11): "Transfer With Seed",
        _tag(12): "Upgrade Nonce",
    }

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        data = context.data
        prefix = data[:DISCRIMINATOR_SIZE]
        name = self.INSTRUCTION_TYPES.get(prefix) if len(prefix) == DISCRIMINATOR_SIZE else None

        if name is None:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Unknown",
                summary="System Program: Unknown instruction",
                details={"discriminator": prefix.hex()},
                direction=Direction.UNKNOWN,
            )

        if name in ("Transfer", "Transfer With Seed"):
            return self._parse_transfer(context, name)
        if name == "Create Account":
            return self._parse_create_account(context)
        if name == "Withdraw Nonce":
            return self._parse_withdraw_nonce(context)
        if name == "Allocate":
            return self._parse_allocate(context)

        return ParsedAction(
            protocol=PROTOCOL,
            type=name,
            summary=f"System Program: {name}",
            details={},
            direction=Direction.UNKNOWN,
        )

    @staticmethod
    def _lamport_details(lamports: int) -> Dict[str, Any]:
        return {
            "lamports": str(lamports),
            "amount": str(lamports),
            "uiAmount": format_amount(lamports, SOL_DECIMALS),
            "mint": WRAPPED_SOL_MINT,
            "decimals": SOL_DECIMALS,
        }

    def _parse_transfer(self, context: ParserContext, name: str) -> ParsedAction:
        # Transfer: [tag u32][lamports u64]; with seed the recipient is account 2
        source_index, dest_index = (0, 1) if name == "Transfer" else (0, 2)
        details = {
            "from": context.account(source_index),
            "to": context.account(dest_index),
        }
        if len(context.data) < 12:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Transfer",
                summary=f"System Program: {name} (insufficient data)",
                details={k: v for k, v in details.items() if v is not None},
                direction=Direction.OUT,
            )

        lamports = read_u64(context.data, 4)
        details.update(self._lamport_details(lamports))
        return ParsedAction(
            protocol=PROTOCOL,
            type="Transfer",
            summary=f"Transfer {details['uiAmount']} SOL",
            details=details,
            direction=Direction.OUT,
        )

    def _parse_create_account(self, context: ParserContext) -> ParsedAction:
        data = context.data
        if len(data) < 52:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Create Account",
                summary="System Program: Create Account (insufficient data)",
                details={},
                direction=Direction.OUT,
            )

        lamports = read_u64(data, 4)
        space = read_u64(data, 12)
        owner = data[20:52]
        details = {
            "source": context.account(0),
            "newAccount": context.account(1),
            "space": str(space),
            "owner": str(Pubkey.from_bytes(owner)),
        }
        details.update(self._lamport_details(lamports))
        return ParsedAction(
            protocol=PROTOCOL,
            type="Create Account",
            summary=f"Create account funded with {details['uiAmount']} SOL ({space} bytes)",
            details=details,
            direction=Direction.OUT,
        )

    def _parse_withdraw_nonce(self, context: ParserContext) -> ParsedAction:
        if len(context.data) < 12:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Withdraw Nonce",
                summary="System Program: Withdraw Nonce (insufficient data)",
                details={},
                direction=Direction.IN,
            )

        lamports = read_u64(context.data, 4)
        details = {"nonceAccount": context.account(0), "to": context.account(1)}
        details.update(self._lamport_details(lamports))
        return ParsedAction(
            protocol=PROTOCOL,
            type="Withdraw Nonce",
            summary=f"Withdraw {details['uiAmount']} SOL from nonce account",
            details=details,
            direction=Direction.IN,
        )

    def _parse_allocate(self, context: ParserContext) -> ParsedAction:
        details = {}
        if len(context.data) >= 12:
            details["space"] = str(read_u64(context.data, 4))
        summary = f"Allocate {details['space']} bytes" if details else "System Program: Allocate"
        return ParsedAction(
            protocol=PROTOCOL,
            type="Allocate",
            summary=summary,
            details=details,
            direction=Direction.UNKNOWN,
        )
