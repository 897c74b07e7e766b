"""
Shared fakes for txlens tests. Nothing here touches the network.
"""
import asyncio
import struct
from typing import Dict, List, Optional, Sequence

import pytest
from solders.pubkey import Pubkey

from txlens.parser.base import ParserContext, make_instruction


def run(coro):
    """Run a coroutine to completion in a fresh event loop."""
    return asyncio.run(coro)


def context_for(program_id: Pubkey, data: bytes, accounts: Sequence[Pubkey] = ()) -> ParserContext:
    """ParserContext for a single instruction."""
    instruction = make_instruction(program_id, accounts, data)
    return ParserContext(instruction=instruction, program_id=program_id, accounts=tuple(accounts))


def u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def lookup_table_data(addresses: Sequence[Pubkey]) -> bytes:
    """
    Raw active lookup table account: type tag, deactivation slot (u64 max),
    last extended slot, start index, authority option, padding, then the
    addresses.
    """
    header = struct.pack("<IQQB", 1, 2**64 - 1, 0, 0) + b"\x01" + bytes(32) + bytes(2)
    return header + b"".join(bytes(address) for address in addresses)


class FakeRpc:
    """In-memory stand-in for SolanaClient"""

    def __init__(self, transactions=None, accounts=None, decimals=None, simulation=None):
        self.transactions: Dict[str, dict] = transactions or {}
        self.accounts: Dict[Pubkey, bytes] = accounts or {}
        self.decimals: Dict[Pubkey, int] = decimals or {}
        self.simulation = simulation or {"err": None, "logs": []}
        self.account_requests: List[List[Pubkey]] = []
        self.decimals_requests: List[Pubkey] = []

    async def get_transaction(self, signature: str) -> Optional[dict]:
        return self.transactions.get(signature)

    async def get_multiple_accounts(self, pubkeys):
        self.account_requests.append(list(pubkeys))
        return [self.accounts.get(key) for key in pubkeys]

    async def get_token_decimals(self, mint: Pubkey) -> Optional[int]:
        self.decimals_requests.append(mint)
        return self.decimals.get(mint)

    async def simulate_transaction(self, tx) -> dict:
        return self.simulation


class FakePriceService:
    """Returns fixed prices and records every batch it was asked for"""

    def __init__(self, prices=None, fail=False):
        self.prices: Dict[str, float] = prices or {}
        self.fail = fail
        self.requests: List[set] = []

    async def get_usd_prices(self, mints):
        self.requests.append(set(mints))
        if self.fail:
            raise RuntimeError("price API down")
        return {mint: price for mint, price in self.prices.items() if mint in set(mints)}


class FakeIdlService:
    """IDL source keyed by program id, counting fetches"""

    def __init__(self, idls=None, fail_times=0, delay=0.0):
        self.idls: Dict[Pubkey, dict] = idls or {}
        self.fail_times = fail_times
        self.delay = delay
        self.calls: List[Pubkey] = []

    async def fetch_idl(self, program_id: Pubkey) -> Optional[dict]:
        self.calls.append(program_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("RPC unavailable")
        return self.idls.get(program_id)


class FakeResponse:
    """aiohttp response stand-in; an exception payload is raised from ``json()``"""

    def __init__(self, status, payload, text=""):
        self.status = status
        self.payload = payload
        self._text = text

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """aiohttp.ClientSession stand-in recording requested URLs and query params"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls: List[str] = []
        self.params: List[Optional[dict]] = []

    def get(self, url, params=None):
        self.urls.append(url)
        self.params.append(params)
        if self.error is not None:
            raise self.error
        return self.response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def keys():
    """A handful of distinct, deterministic account keys."""
    return [Pubkey.new_unique() for _ in range(12)]
