"""
Solana RPC client wrapper
"""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from ..config import COMMITMENT, RPC_ENDPOINT
from ..errors import TransactionFetchError

logger = logging.getLogger(__name__)


class SolanaClient:
    """Thin async wrapper around ``AsyncClient`` returning plain Python data"""

    def __init__(self, endpoint: Optional[str] = None, commitment: str = COMMITMENT):
        self.endpoint = endpoint or RPC_ENDPOINT
        self.commitment = Commitment(commitment)
        self.client: Optional[AsyncClient] = None

    async def connect(self) -> AsyncClient:
        """Open the RPC connection"""
        if self.client is None:
            self.client = AsyncClient(self.endpoint, commitment=self.commitment)
            logger.info(f"Connected to Solana RPC: {self.endpoint}")
        return self.client

    async def close(self):
        """Close the RPC connection"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("Closed Solana RPC connection")

    async def __aenter__(self) -> "SolanaClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a confirmed transaction.

        Args:
            signature: base58 transaction signature

        Returns:
            The RPC ``result`` object (JSON encoding), or None if not found

        Raises:
            TransactionFetchError: the RPC request failed
        """
        client = await self.connect()
        try:
            resp = await client.get_transaction(
                Signature.from_string(signature),
                encoding="json",
                commitment=self.commitment,
                max_supported_transaction_version=0,
            )
        except Exception as e:
            logger.error(f"Error fetching transaction {signature}: {e}")
            raise TransactionFetchError(f"Failed to fetch transaction {signature}: {e}") from e

        if resp.value is None:
            return None
        return json.loads(resp.to_json())["result"]

    async def get_multiple_accounts(self, pubkeys: Sequence[Pubkey]) -> List[Optional[bytes]]:
        """
        Fetch raw data of several accounts in one request.

        Returns:
            Account data in input order, None for missing accounts (or for
            every account if the request fails)
        """
        if not pubkeys:
            return []
        client = await self.connect()
        try:
            resp = await client.get_multiple_accounts(list(pubkeys))
        except Exception as e:
            logger.error(f"Error fetching accounts {[str(k) for k in pubkeys]}: {e}")
            return [None] * len(pubkeys)
        return [bytes(account.data) if account is not None else None for account in resp.value]

    async def get_token_decimals(self, mint: Pubkey) -> Optional[int]:
        """
        Read the decimals of a token mint.

        Raises:
            Exception: propagated from the RPC client
        """
        client = await self.connect()
        resp = await client.get_account_info_json_parsed(mint)
        account = resp.value
        if account is None:
            return None
        parsed = getattr(account.data, "parsed", None)
        if not isinstance(parsed, dict):
            return None
        decimals = parsed.get("info", {}).get("decimals")
        return int(decimals) if decimals is not None else None

    async def simulate_transaction(self, tx: Union[Transaction, VersionedTransaction]) -> Dict[str, Any]:
        """
        Simulate a transaction without submitting it.

        Returns:
            ``{"err": ..., "logs": [...], "unitsConsumed": ...}``
        """
        client = await self.connect()
        resp = await client.simulate_transaction(tx)
        value = resp.value
        return {
            "err": value.err,
            "logs": list(value.logs or []),
            "unitsConsumed": value.units_consumed,
        }
