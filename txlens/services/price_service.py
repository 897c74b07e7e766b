"""USD price lookups through the Jupiter price API."""
import asyncio
import logging
from typing import Dict, Iterable, Optional

import aiohttp

from ..config import HTTP_TIMEOUT, PRICE_API_URL

logger = logging.getLogger(__name__)


class JupiterPriceService:
    """Batched USD price client for the Jupiter price API"""

    def __init__(self, api_url: str = PRICE_API_URL, timeout: float = HTTP_TIMEOUT):
        """
        Args:
            api_url: price endpoint
            timeout: request timeout in seconds
        """
        self.api_url = api_url
        self.timeout = timeout

    async def get_usd_price(self, mint: str) -> Optional[float]:
        prices = await self.get_usd_prices([mint])
        return prices.get(mint)

    async def get_usd_prices(self, mints: Iterable[str]) -> Dict[str, float]:
        """
        Fetch USD prices for several mints in one request.

        Mints without a price are left out of the result. Any failure yields
        an empty mapping.

        Args:
            mints: token mint addresses

        Returns:
            mint -> USD price
        """
        unique_mints = list(dict.fromkeys(mints))
        if not unique_mints:
            return {}

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(self.api_url, params={"ids": ",".join(unique_mints)}) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.warning(f"Failed to fetch prices: HTTP {response.status} {error_text[:200]}")
                        return {}
                    payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error fetching prices from Jupiter: {e}")
            return {}

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return {}

        prices = {}
        for mint in unique_mints:
            entry = data.get(mint)
            if not entry or entry.get("price") is None:
                continue
            try:
                prices[mint] = float(entry["price"])
            except (TypeError, ValueError):
                logger.warning(f"Unparsable price for {mint}: {entry.get('price')!r}")
        return prices
