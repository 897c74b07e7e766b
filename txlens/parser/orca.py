"""
Orca Whirlpool decoder.

Known instructions are decoded natively from their fixed layouts. Anything
the native table does not recognise is handed to the shared IDL fallback
decoder and re-labelled with Orca conventions.
"""
import logging
from typing import Any, Dict, Optional

from ..constants import ORCA_WHIRLPOOL_PROGRAM_ID
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import ANCHOR_DISCRIMINATOR_SIZE, read_i32, read_u64, to_snake_case

logger = logging.getLogger(__name__)

PROTOCOL = "Orca Whirlpool"

# discriminator -> (action type, instruction kind)
WHIRLPOOL_INSTRUCTIONS = {
    bytes.fromhex("f8c69e91e17587c8"): ("Swap", "swap"),
    bytes.fromhex("2e9cf3760dcdfbb2"): ("Swap", "swapV2"),
    bytes.fromhex("c360d308ba95cf8d"): ("Two Hop Swap", "twoHopSwap"),

    bytes.fromhex("878dce4d50e0b7a9"): ("Open Position", "openPosition"),
    bytes.fromhex("46a89fba25a35498"): ("Open Position (Bundled)", "openBundledPosition"),
    bytes.fromhex("7b86510031446262"): ("Close Position", "closePosition"),
    bytes.fromhex("4640d293e02b1bd7"): ("Close Position (Bundled)", "closeBundledPosition"),

    bytes.fromhex("2e1c2e61476b31fe"): ("Increase Liquidity", "increaseLiquidity"),
    bytes.fromhex("9f7a0c76e0bd93bc"): ("Increase Liquidity V2", "increaseLiquidityV2"),
    bytes.fromhex("a026d06f4b06da76"): ("Decrease Liquidity", "decreaseLiquidity"),
    bytes.fromhex("db0b0f5c68d5c1b6"): ("Decrease Liquidity V2", "decreaseLiquidityV2"),

    bytes.fromhex("a9f87c0fb7e9b5d2"): ("Collect Fees", "collectFees"),
    bytes.fromhex("4683cff98af6e5d4"): ("Collect Fees V2", "collectFeesV2"),
    bytes.fromhex("f5b953bf0e5e6a9c"): ("Collect Reward", "collectReward"),
    bytes.fromhex("8bf4e8c731cbbedf"): ("Collect Reward V2", "collectRewardV2"),

    bytes.fromhex("5fcdd4b0d9b9e785"): ("Initialize Pool", "initializePool"),
    bytes.fromhex("d0bc6e4a69c5740c"): ("Initialize Config", "initializeConfig"),
    bytes.fromhex("7b3a07ecb8b1c8e4"): ("Initialize Tick Array", "initializeTickArray"),
    bytes.fromhex("efa2a1df9f2d5c7e"): ("Initialize Fee Tier", "initializeFeeTier"),

    bytes.fromhex("4d2038c0c5d39f6c"): ("Set Fee Rate", "setFeeRate"),
    bytes.fromhex("e35d4fc0e735fc8d"): ("Set Protocol Fee Rate", "setProtocolFeeRate"),
    bytes.fromhex("c8dc4ba2d3a2c9d1"): ("Set Reward Emissions", "setRewardEmissions"),
}


def _action(action_type: str, summary: str, details: Dict[str, Any], direction: Direction) -> ParsedAction:
    return ParsedAction(
        protocol=PROTOCOL,
        type=action_type,
        summary=summary,
        details=details,
        direction=direction,
    )


def _field(fields: Dict[str, Any], name: str, default: Any) -> Any:
    # 0.30 IDLs use snake_case argument names
    if name in fields:
        return fields[name]
    return fields.get(to_snake_case(name), default)


class OrcaDecoder(BaseDecoder):
    """Orca Whirlpool decoder"""

    kind = DecoderKind.CONCENTRATED_LIQUIDITY
    program_id = ORCA_WHIRLPOOL_PROGRAM_ID

    def __init__(self, fallback: Optional[BaseDecoder] = None):
        """
        Args:
            fallback: shared IDL fallback decoder used for unrecognised instructions
        """
        self.fallback = fallback

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        native = self.parse_native(context.data)
        if native.type != "Unknown" or self.fallback is None:
            return native

        action = await self.fallback.decode(context)
        if action is None:
            return native
        return self._enhance_idl_result(action)

    def parse_native(self, data: bytes) -> ParsedAction:
        """Decode from the fixed instruction layouts without any I/O."""
        if len(data) < ANCHOR_DISCRIMINATOR_SIZE:
            return _action("Unknown", "Orca: Unknown instruction (insufficient data)", {}, Direction.UNKNOWN)

        discriminator = data[:ANCHOR_DISCRIMINATOR_SIZE]
        known = WHIRLPOOL_INSTRUCTIONS.get(discriminator)
        if known is None:
            return _action(
                "Unknown",
                "Orca Whirlpool: Unknown Instruction",
                {"discriminator": discriminator.hex()},
                Direction.UNKNOWN,
            )

        action_type, kind = known
        if kind in ("swap", "swapV2"):
            return self._parse_swap(data, action_type)
        if kind == "twoHopSwap":
            return self._parse_two_hop_swap(data)
        if kind in ("openPosition", "openBundledPosition"):
            return self._parse_open_position(data, action_type)
        if kind in ("increaseLiquidity", "increaseLiquidityV2"):
            return self._parse_liquidity(data, action_type, increase=True)
        if kind in ("decreaseLiquidity", "decreaseLiquidityV2"):
            return self._parse_liquidity(data, action_type, increase=False)
        if kind.startswith("close") or kind.startswith("collect"):
            return _action(action_type, f"Orca: {action_type}", {}, Direction.IN)
        return _action(action_type, f"Orca: {action_type}", {}, Direction.UNKNOWN)

    @staticmethod
    def _swap_summary(amount: Any, threshold: Any, is_input: bool) -> str:
        if is_input:
            return f"Orca Swap: {amount} (Input) -> min {threshold}"
        return f"Orca Swap: max {threshold} -> {amount} (Output)"

    def _parse_swap(self, data: bytes, action_type: str) -> ParsedAction:
        # amount u64 @8, otherAmountThreshold u64 @16, sqrtPriceLimit u128 @24,
        # amountSpecifiedIsInput bool @40, aToB bool @41
        if len(data) < 42:
            return _action(action_type, f"Orca {action_type}", {}, Direction.UNKNOWN)

        amount = read_u64(data, 8)
        threshold = read_u64(data, 16)
        is_input = data[40] == 1
        a_to_b = data[41] == 1
        return _action(
            action_type,
            self._swap_summary(amount, threshold, is_input),
            {
                "amount": str(amount),
                "otherAmountThreshold": str(threshold),
                "amountSpecifiedIsInput": is_input,
                "aToB": a_to_b,
                "direction": "A -> B" if a_to_b else "B -> A",
            },
            Direction.UNKNOWN,
        )

    def _parse_two_hop_swap(self, data: bytes) -> ParsedAction:
        if len(data) < 24:
            return _action("Two Hop Swap", "Orca: Two Hop Swap", {}, Direction.UNKNOWN)

        amount = read_u64(data, 8)
        threshold = read_u64(data, 16)
        return _action(
            "Two Hop Swap",
            f"Orca Two Hop Swap: {amount} -> {threshold}",
            {"amount": str(amount), "otherAmountThreshold": str(threshold)},
            Direction.UNKNOWN,
        )

    def _parse_open_position(self, data: bytes, action_type: str) -> ParsedAction:
        # bumps (2 bytes) @8, tickLowerIndex i32 @10, tickUpperIndex i32 @14
        if len(data) < 18:
            return _action(action_type, f"Orca: {action_type}", {}, Direction.OUT)

        tick_lower = read_i32(data, 10)
        tick_upper = read_i32(data, 14)
        return _action(
            action_type,
            f"Orca: {action_type} [{tick_lower}, {tick_upper}]",
            {
                "tickLowerIndex": tick_lower,
                "tickUpperIndex": tick_upper,
                "tickRange": f"{tick_lower} to {tick_upper}",
            },
            Direction.OUT,
        )

    def _parse_liquidity(self, data: bytes, action_type: str, increase: bool) -> ParsedAction:
        # liquidityAmount u128 @8 (skipped), token A bound u64 @24, token B bound u64 @32
        direction = Direction.OUT if increase else Direction.IN
        if len(data) < 40:
            return _action(action_type, f"Orca: {action_type}", {}, direction)

        token_a = read_u64(data, 24)
        token_b = read_u64(data, 32)
        if increase:
            summary = f"Orca: {action_type} (max {token_a} A, {token_b} B)"
            details = {"tokenMaxA": str(token_a), "tokenMaxB": str(token_b)}
        else:
            summary = f"Orca: {action_type} (min {token_a} A, {token_b} B)"
            details = {"tokenMinA": str(token_a), "tokenMinB": str(token_b)}
        return _action(action_type, summary, details, direction)

    def _enhance_idl_result(self, action: ParsedAction) -> ParsedAction:
        """Relabel a generic IDL-decoded action with Orca conventions."""
        name = action.type.lower()
        fields = action.details.get("data")
        action.protocol = PROTOCOL

        if "swap" in name and isinstance(fields, dict):
            amount = _field(fields, "amount", "0")
            threshold = _field(fields, "otherAmountThreshold", "0")
            is_input = bool(_field(fields, "amountSpecifiedIsInput", False))
            action.summary = self._swap_summary(amount, threshold, is_input)
            action.details["extractedAmounts"] = {
                "amount": amount,
                "otherAmountThreshold": threshold,
                "sqrtPriceLimit": _field(fields, "sqrtPriceLimit", "0"),
                "amountSpecifiedIsInput": is_input,
            }
        elif "liquidity" in name and isinstance(fields, dict):
            if "increase" in name:
                action.direction = Direction.OUT
                action.summary = "Orca: Increase Liquidity"
            elif "decrease" in name:
                action.direction = Direction.IN
                action.summary = "Orca: Decrease Liquidity"
        elif "position" in name:
            if "open" in name:
                action.direction = Direction.OUT
            elif "close" in name:
                action.direction = Direction.IN

        return action
