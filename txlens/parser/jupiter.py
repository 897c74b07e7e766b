"""
Jupiter aggregator (v6) decoder.

Route plans are variable-length vectors of swap steps, so the fixed trailing
arguments (amounts, slippage and platform fee) are read from the end of the
instruction data.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..constants import JUPITER_V6_PROGRAM_ID
from .base import BaseDecoder, DecoderKind, Direction, ParsedAction, ParserContext
from .layout import ANCHOR_DISCRIMINATOR_SIZE, anchor_discriminator, read_u16, read_u64, read_u8

logger = logging.getLogger(__name__)

PROTOCOL = "Jupiter"

# u32 length prefix of the route plan vector
ROUTE_PLAN_PREFIX = 4


@dataclass(frozen=True)
class RouteLayout:
    """How to read one route instruction"""
    label: str
    exact_out: bool = False
    token_ledger: bool = False
    shared_accounts: bool = False

    @property
    def tail_size(self) -> int:
        # [amount u64]? [quoted u64] [slippage_bps u16] [platform_fee_bps u8]
        return 11 if self.token_ledger else 19

    @property
    def min_length(self) -> int:
        # shared-account routes carry a leading route id byte
        return ANCHOR_DISCRIMINATOR_SIZE + int(self.shared_accounts) + ROUTE_PLAN_PREFIX + self.tail_size

    @property
    def source_mint_index(self) -> Optional[int]:
        if self.shared_accounts:
            return 7
        return 5 if self.exact_out else None

    @property
    def destination_mint_index(self) -> int:
        if self.shared_accounts:
            return 8
        return 6 if self.exact_out else 5


ROUTE_LAYOUTS = {
    anchor_discriminator("route"): RouteLayout("Route"),
    anchor_discriminator("route_with_token_ledger"): RouteLayout("Route With Token Ledger", token_ledger=True),
    anchor_discriminator("exact_out_route"): RouteLayout("Exact Out Route", exact_out=True),
    anchor_discriminator("shared_accounts_route"): RouteLayout("Shared Accounts Route", shared_accounts=True),
    anchor_discriminator("shared_accounts_route_with_token_ledger"): RouteLayout(
        "Shared Accounts Route With Token Ledger", token_ledger=True, shared_accounts=True
    ),
    anchor_discriminator("shared_accounts_exact_out_route"): RouteLayout(
        "Shared Accounts Exact Out Route", exact_out=True, shared_accounts=True
    ),
}


class JupiterDecoder(BaseDecoder):
    """Jupiter v6 aggregator decoder"""

    kind = DecoderKind.AGGREGATOR
    program_id = JUPITER_V6_PROGRAM_ID

    async def decode(self, context: ParserContext) -> Optional[ParsedAction]:
        data = context.data
        discriminator = data[:ANCHOR_DISCRIMINATOR_SIZE]
        layout = ROUTE_LAYOUTS.get(discriminator) if len(discriminator) == ANCHOR_DISCRIMINATOR_SIZE else None

        if layout is None:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Unknown",
                summary="Jupiter: Unknown instruction",
                details={"discriminator": discriminator.hex()},
                direction=Direction.UNKNOWN,
            )

        details: Dict[str, Any] = {"route": layout.label}
        if layout.source_mint_index is not None:
            details["inputMint"] = context.account(layout.source_mint_index)
        details["outputMint"] = context.account(layout.destination_mint_index)
        details = {k: v for k, v in details.items() if v is not None}

        if len(data) < layout.min_length:
            return ParsedAction(
                protocol=PROTOCOL,
                type="Swap",
                summary="Jupiter Swap (insufficient data)",
                details=details,
                direction=Direction.SELF,
            )

        offset = len(data) - layout.tail_size
        amount = None
        if not layout.token_ledger:
            amount = read_u64(data, offset)
            offset += 8
        quoted = read_u64(data, offset)
        slippage_bps = read_u16(data, offset + 8)
        platform_fee_bps = read_u8(data, offset + 10)

        details["slippageBps"] = slippage_bps
        details["platformFeeBps"] = platform_fee_bps
        if layout.exact_out:
            details["outAmount"] = str(amount)
            details["quotedInAmount"] = str(quoted)
            summary = f"Jupiter Swap: max ~{quoted} -> {amount}"
            priced_mint, priced_amount = details.get("outputMint"), amount
        elif layout.token_ledger:
            details["quotedOutAmount"] = str(quoted)
            summary = f"Jupiter Swap: ledger balance -> ~{quoted}"
            priced_mint, priced_amount = details.get("outputMint"), quoted
        else:
            details["inAmount"] = str(amount)
            details["quotedOutAmount"] = str(quoted)
            summary = f"Jupiter Swap: {amount} -> ~{quoted}"
            if "inputMint" in details:
                priced_mint, priced_amount = details["inputMint"], amount
            else:
                priced_mint, priced_amount = details.get("outputMint"), quoted

        if priced_mint is not None:
            details["mint"] = priced_mint
            details["amount"] = str(priced_amount)

        return ParsedAction(
            protocol=PROTOCOL,
            type="Swap",
            summary=f"{summary} ({slippage_bps} bps slippage)",
            details=details,
            direction=Direction.SELF,
        )
