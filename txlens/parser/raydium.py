"""
Raydium decoder.

One decoder instance serves all three Raydium programs and branches on the
program id:

* AMM v4 (1-byte instruction tags)
* CLMM, concentrated liquidity (8-byte Anchor discriminators)
* CP-Swap, constant product (8-byte Anchor discriminators)
"""
import logging
from typing import Dict, Optional, Tuple

from ..constants import RAYDIUM_AMM_V4_PROGRAM_ID, RAYDIUM_CLMM_PROGRAM_ID, RAYDIUM_CPMM_PROGRAM_ID
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import ANCHOR_DISCRIMINATOR_SIZE, read_u64

logger = logging.getLogger(__name__)

AMM_V4 = "Raydium"
CLMM = "Raydium CLMM"
CPMM = "Raydium CP-Swap"

# AMM v4 instruction tags
INITIALIZE = 0
INITIALIZE2 = 1
DEPOSIT = 3
WITHDRAW = 4
WITHDRAW_PNL = 7
SWAP_BASE_IN = 9
SWAP_BASE_OUT = 11

CLMM_INSTRUCTIONS: Dict[bytes, Tuple[str, str]] = {
    bytes.fromhex("f8c69e91e17587c8"): ("Swap", "Raydium CLMM: Swap"),
    bytes.fromhex("2e9cf3760dcdfbb2"): ("Swap V2", "Raydium CLMM: Swap V2"),
    bytes.fromhex("878dce4d50e0b7a9"): ("Open Position", "Raydium CLMM: Open Position"),
    bytes.fromhex("7b86510031446262"): ("Close Position", "Raydium CLMM: Close Position"),
    bytes.fromhex("2e1c2e61476b31fe"): ("Increase Liquidity", "Raydium CLMM: Increase Liquidity"),
    bytes.fromhex("a026d06f4b06da76"): ("Decrease Liquidity", "Raydium CLMM: Decrease Liquidity"),
    bytes.fromhex("d0bc6e4a69c5740c"): ("Create Pool", "Raydium CLMM: Create Pool"),
}

CPMM_INSTRUCTIONS: Dict[bytes, Tuple[str, str]] = {
    bytes.fromhex("8f7b36c708b32d66"): ("Swap Base Input", "Raydium CP-Swap: Swap (Base Input)"),
    bytes.fromhex("e6e4b4e79f6c2c87"): ("Swap Base Output", "Raydium CP-Swap: Swap (Base Output)"),
    bytes.fromhex("c7f4cecd3b8b4a7c"): ("Deposit", "Raydium CP-Swap: Add Liquidity"),
    bytes.fromhex("d89b3c61f3e69787"): ("Withdraw", "Raydium CP-Swap: Remove Liquidity"),
    bytes.fromhex("afaf6d1f0d989bed"): ("Initialize", "Raydium CP-Swap: Initialize Pool"),
}


class RaydiumDecoder(BaseDecoder):
    """Decoder for Raydium AMM v4, CLMM and CP-Swap"""

    kind = DecoderKind.AMM
    program_id = RAYDIUM_AMM_V4_PROGRAM_ID

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        data = context.data
        if context.program_id == RAYDIUM_CLMM_PROGRAM_ID:
            return self._parse_clmm(data)
        if context.program_id == RAYDIUM_CPMM_PROGRAM_ID:
            return self._parse_cpmm(data)
        return self._parse_amm_v4(data)

    def _parse_amm_v4(self, data: bytes) -> ParsedAction:
        if not data:
            return ParsedAction(
                protocol=AMM_V4,
                type="Unknown",
                summary="Raydium AMM V4 Instruction (empty data)",
                details={},
                direction=Direction.UNKNOWN,
            )

        discriminator = data[0]

        if discriminator in (INITIALIZE, INITIALIZE2):
            return ParsedAction(
                protocol=AMM_V4,
                type="Initialize Pool",
                summary="Raydium: Initialize AMM Pool",
                details={"instructionType": "Initialize"},
                direction=Direction.UNKNOWN,
            )
        if discriminator == DEPOSIT:
            return self._parse_deposit(data)
        if discriminator == WITHDRAW:
            return self._parse_withdraw(data)
        if discriminator == SWAP_BASE_IN:
            return self._parse_swap_base_in(data)
        if discriminator == SWAP_BASE_OUT:
            return self._parse_swap_base_out(data)
        if discriminator == WITHDRAW_PNL:
            return ParsedAction(
                protocol=AMM_V4,
                type="Withdraw PnL",
                summary="Raydium: Withdraw Protocol Fees",
                details={"instructionType": "WithdrawPnl"},
                direction=Direction.OUT,
            )

        return ParsedAction(
            protocol=AMM_V4,
            type="Unknown",
            summary=f"Raydium AMM V4 Instruction (ID: {discriminator})",
            details={"discriminator": discriminator},
            direction=Direction.UNKNOWN,
        )

    def _parse_deposit(self, data: bytes) -> ParsedAction:
        # [tag][maxCoinAmount u64][maxPcAmount u64][baseSide u64]
        if len(data) < 25:
            return ParsedAction(
                protocol=AMM_V4,
                type="Add Liquidity",
                summary="Raydium: Add Liquidity (insufficient data)",
                details={},
                direction=Direction.OUT,
            )

        max_coin_amount = read_u64(data, 1)
        max_pc_amount = read_u64(data, 9)
        base_side = read_u64(data, 17)
        return ParsedAction(
            protocol=AMM_V4,
            type="Add Liquidity",
            summary=f"Raydium: Add Liquidity (max {max_coin_amount} coin, {max_pc_amount} pc)",
            details={
                "maxCoinAmount": str(max_coin_amount),
                "maxPcAmount": str(max_pc_amount),
                "baseSide": str(base_side),
            },
            direction=Direction.OUT,
        )

    def _parse_withdraw(self, data: bytes) -> ParsedAction:
        # [tag][lpAmount u64]
        if len(data) < 9:
            return ParsedAction(
                protocol=AMM_V4,
                type="Remove Liquidity",
                summary="Raydium: Remove Liquidity (insufficient data)",
                details={},
                direction=Direction.IN,
            )

        lp_amount = read_u64(data, 1)
        return ParsedAction(
            protocol=AMM_V4,
            type="Remove Liquidity",
            summary=f"Raydium: Remove Liquidity ({lp_amount} LP tokens)",
            details={"lpAmount": str(lp_amount)},
            direction=Direction.IN,
        )

    def _parse_swap_base_in(self, data: bytes) -> ParsedAction:
        # [tag][amountIn u64][minAmountOut u64]
        if len(data) < 17:
            return self._degraded_swap("BaseIn")

        amount_in = read_u64(data, 1)
        min_amount_out = read_u64(data, 9)
        return ParsedAction(
            protocol=AMM_V4,
            type="Swap",
            summary=f"Raydium Swap: {amount_in} -> min {min_amount_out}",
            details={
                "swapType": "BaseIn",
                "amountIn": str(amount_in),
                "minAmountOut": str(min_amount_out),
            },
            direction=Direction.UNKNOWN,
        )

    def _parse_swap_base_out(self, data: bytes) -> ParsedAction:
        # [tag][maxAmountIn u64][amountOut u64]
        if len(data) < 17:
            return self._degraded_swap("BaseOut")

        max_amount_in = read_u64(data, 1)
        amount_out = read_u64(data, 9)
        return ParsedAction(
            protocol=AMM_V4,
            type="Swap",
            summary=f"Raydium Swap: max {max_amount_in} -> {amount_out}",
            details={
                "swapType": "BaseOut",
                "maxAmountIn": str(max_amount_in),
                "amountOut": str(amount_out),
            },
            direction=Direction.UNKNOWN,
        )

    @staticmethod
    def _degraded_swap(swap_type: str) -> ParsedAction:
        return ParsedAction(
            protocol=AMM_V4,
            type="Swap",
            summary="Raydium Swap (insufficient data)",
            details={"swapType": swap_type},
            direction=Direction.UNKNOWN,
        )

    def _parse_clmm(self, data: bytes) -> ParsedAction:
        discriminator = data[:ANCHOR_DISCRIMINATOR_SIZE]
        known = CLMM_INSTRUCTIONS.get(discriminator)
        if known is None:
            return ParsedAction(
                protocol=CLMM,
                type="Unknown",
                summary="Raydium CLMM Instruction",
                details={"discriminator": discriminator.hex()},
                direction=Direction.UNKNOWN,
            )

        action_type, summary = known
        if "Liquidity" in action_type:
            direction = Direction.OUT if "Increase" in action_type else Direction.IN
        else:
            direction = Direction.UNKNOWN
        return ParsedAction(
            protocol=CLMM,
            type=action_type,
            summary=summary,
            details={"discriminator": discriminator.hex()},
            direction=direction,
        )

    def _parse_cpmm(self, data: bytes) -> ParsedAction:
        discriminator = data[:ANCHOR_DISCRIMINATOR_SIZE]
        known = CPMM_INSTRUCTIONS.get(discriminator)
        if known is None:
            return ParsedAction(
                protocol=CPMM,
                type="Unknown",
                summary="Raydium CP-Swap Instruction",
                details={"discriminator": discriminator.hex()},
                direction=Direction.UNKNOWN,
            )

        action_type, summary = known
        if action_type == "Deposit":
            direction = Direction.OUT
        elif action_type == "Withdraw":
            direction = Direction.IN
        else:
            direction = Direction.UNKNOWN
        return ParsedAction(
            protocol=CPMM,
            type=action_type,
            summary=summary,
            details={"discriminator": discriminator.hex()},
            direction=direction,
        )
