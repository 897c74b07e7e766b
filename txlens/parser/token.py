"""
SPL Token decoder, shared by the Token and Token-2022 programs.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from ..constants import TOKEN_PROGRAM_ID
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import format_amount, read_u64, read_u8

logger = logging.getLogger(__name__)

PROTOCOL = "SPL Token"


class TokenDecoder(BaseDecoder):
    """SPL Token program decoder"""

    kind = DecoderKind.TOKEN
    program_id = TOKEN_PROGRAM_ID

    INSTRUCTION_TYPES = {
        bytes([0]): "Initialize Mint",
        bytes([1]): "Initialize Account",
        bytes([2]): "Initialize Multisig",
        bytes([3]): "Transfer",
        bytes([4]): "Approve",
        bytes([5]): "Revoke",
        bytes([6]): "Set Authority",
        bytes([7]): "Mint To",
        bytes([8]): "Burn",
        bytes([9]): "Close Account",
        bytes([10]): "Freeze Account",
        bytes([11]): "Thaw Account",
        bytes([12]): "Transfer Checked",
        bytes([13]): "Approve Checked",
        bytes([14]): "Mint To Checked",
        bytes([15]): "Burn Checked",
        bytes([16]): "Initialize Account 2",
        bytes([17]): "Sync Native",
        bytes([18]): "Initialize Account 3",
        bytes([19]): "Initialize Multisig 2",
        bytes([20]): "Initialize Mint 2",
    }

    # name -> (type label, direction, (source idx, destination idx), mint idx, checked)
    AMOUNT_LAYOUTS: Dict[str, Tuple[str, Direction, Tuple[Optional[int], Optional[int]], Optional[int], bool]] = {
        "Transfer": ("Transfer", Direction.OUT, (0, 1), None, False),
        "Transfer Checked": ("Transfer", Direction.OUT, (0, 2), 1, True),
        "Approve": ("Approve", Direction.UNKNOWN, (0, 1), None, False),
        "Approve Checked": ("Approve", Direction.UNKNOWN, (0, 2), 1, True),
        "Mint To": ("Mint", Direction.IN, (None, 1), 0, False),
        "Mint To Checked": ("Mint", Direction.IN, (None, 1), 0, True),
        "Burn": ("Burn", Direction.OUT, (0, None), 1, False),
        "Burn Checked": ("Burn", Direction.OUT, (0, None), 1, True),
    }

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        data = context.data
        name = self.INSTRUCTION_TYPES.get(data[:1])

        if name is None:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Unknown",
                summary="SPL Token: Unknown instruction",
                details={"discriminator": data[:1].hex()},
                direction=Direction.UNKNOWN,
            )

        if name in self.AMOUNT_LAYOUTS:
            return self._parse_amount_instruction(context, name)

        if name == "Close Account":
            return ParsedAction(
                protocol=PROTOCOL,
                type="Close Account",
                summary="SPL Token: Close Account",
                details={
                    "account": context.account(0),
                    "destination": context.account(1),
                    "owner": context.account(2),
                },
                direction=Direction.IN,
            )

        return ParsedAction(
            protocol=PROTOCOL,
            type=name,
            summary=f"SPL Token: {name}",
            details={},
            direction=Direction.UNKNOWN,
        )

    def _parse_amount_instruction(self, context: ParserContext, name: str) -> ParsedAction:
        action_type, direction, (source_idx, dest_idx), mint_idx, checked = self.AMOUNT_LAYOUTS[name]
        data = context.data

        details: Dict[str, Any] = {}
        if source_idx is not None:
            details["from"] = context.account(source_idx)
        if dest_idx is not None:
            details["to"] = context.account(dest_idx)
        if mint_idx is not None:
            details["mint"] = context.account(mint_idx)
        details = {k: v for k, v in details.items() if v is not None}

        # [tag u8][amount u64] and, for checked variants, [decimals u8]
        min_length = 10 if checked else 9
        if len(data) < min_length:
            return ParsedAction(
                protocol=PROTOCOL,
                type=action_type,
                summary=f"SPL Token: {name} (insufficient data)",
                details=details,
                direction=direction,
            )

        amount = read_u64(data, 1)
        decimals = read_u8(data, 9) if checked else None
        details["amount"] = str(amount)
        if decimals is not None:
            details["decimals"] = decimals
            details["uiAmount"] = format_amount(amount, decimals)

        shown = details.get("uiAmount", details["amount"])
        return ParsedAction(
            protocol=PROTOCOL,
            type=action_type,
            summary=f"{action_type} {shown} tokens",
            details=details,
            direction=direction,
        )
