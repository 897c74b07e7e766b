"""
USD enrichment of decoded actions.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence

from ..parser.base import ParsedAction, to_pubkey

logger = logging.getLogger(__name__)


@dataclass
class _PricedItem:
    action: ParsedAction
    mint: str
    raw_amount: str
    amount: Decimal
    decimals_known: bool


def _normalize(raw_amount: str, decimals: int) -> Decimal:
    return Decimal(raw_amount).scaleb(-decimals)


class PriceEnricher:
    """
    Sets ``total_usd`` on actions that expose a mint and an amount.

    Prices are fetched once per transaction for the distinct set of mints.
    Mints without decimals in the action details get one best-effort
    decimals lookup each, and only when a price is known.
    """

    def __init__(self, price_service, rpc=None):
        """
        Args:
            price_service: exposes ``async get_usd_prices(mints)``
            rpc: exposes ``async get_token_decimals(mint)``; optional
        """
        self.price_service = price_service
        self.rpc = rpc

    async def enrich(self, actions: Sequence[ParsedAction]) -> None:
        items = self._collect(actions)
        if not items:
            return

        mints = {item.mint for item in items}
        try:
            prices = await self.price_service.get_usd_prices(mints)
        except Exception as e:
            logger.error(f"Price lookup failed: {e}")
            prices = {}

        decimals_map = await self._fetch_missing_decimals(items, prices)

        for item in items:
            price = prices.get(item.mint)
            if not price:
                continue

            amount = item.amount
            if not item.decimals_known and item.mint in decimals_map:
                amount = _normalize(item.raw_amount, decimals_map[item.mint])

            # A zero amount here is either a real zero or an amount whose
            # decimals could not be resolved; both are left unpriced.
            if amount > 0:
                item.action.total_usd = float(amount) * float(price)

    @staticmethod
    def _collect(actions: Sequence[ParsedAction]) -> List[_PricedItem]:
        items = []
        for action in actions:
            details = action.details
            mint = details.get("mint")
            raw_amount = details.get("amount") or details.get("tokenAmount")
            if not mint or raw_amount is None:
                continue

            raw_amount = str(raw_amount)
            try:
                Decimal(raw_amount)
            except InvalidOperation:
                continue

            decimals = details.get("decimals")
            decimals_known = isinstance(decimals, int) and not isinstance(decimals, bool)
            if decimals_known:
                amount = _normalize(raw_amount, decimals)
            else:
                amount = Decimal(0)
            items.append(_PricedItem(
                action=action,
                mint=mint,
                raw_amount=raw_amount,
                amount=amount,
                decimals_known=decimals_known,
            ))
        return items

    async def _fetch_missing_decimals(self, items: List[_PricedItem], prices: Dict[str, float]) -> Dict[str, int]:
        decimals_map: Dict[str, int] = {}
        if self.rpc is None:
            return decimals_map

        needed = list(dict.fromkeys(item.mint for item in items if not item.decimals_known and prices.get(item.mint)))
        for mint in needed:
            pubkey = to_pubkey(mint)
            if pubkey is None:
                continue
            try:
                decimals: Optional[int] = await self.rpc.get_token_decimals(pubkey)
            except Exception as e:
                logger.warning(f"Failed to fetch decimals for {mint}: {e}")
                continue
            if decimals is not None:
                decimals_map[mint] = decimals
        return decimals_map
