"""
Tests for the RPC client wrapper, run against an in-memory AsyncClient.
"""
import json
from types import SimpleNamespace

import pytest
from solders.pubkey import Pubkey

from conftest import run
from txlens.errors import TransactionFetchError
from txlens.fetcher.client import SolanaClient

SIGNATURE = "5" * 64


class FakeAsyncClient:
    """Returns canned responses, or raises ``error`` from every request"""

    def __init__(self, transaction=None, accounts=None, parsed=None, simulation=None, error=None):
        self.transaction = transaction
        self.accounts = accounts or []
        self.parsed = parsed
        self.simulation = simulation
        self.error = error
        self.closed = False

    def _check(self):
        if self.error is not None:
            raise self.error

    async def get_transaction(self, signature, **kwargs):
        self._check()
        body = json.dumps({"jsonrpc": "2.0", "result": self.transaction, "id": 1})
        return SimpleNamespace(value=self.transaction, to_json=lambda: body)

    async def get_multiple_accounts(self, pubkeys):
        self._check()
        return SimpleNamespace(value=self.accounts)

    async def get_account_info_json_parsed(self, pubkey):
        self._check()
        if self.parsed is None:
            return SimpleNamespace(value=None)
        return SimpleNamespace(value=SimpleNamespace(data=SimpleNamespace(parsed=self.parsed)))

    async def simulate_transaction(self, tx):
        self._check()
        return SimpleNamespace(value=self.simulation)

    async def close(self):
        self.closed = True


def client_with(fake: FakeAsyncClient) -> SolanaClient:
    client = SolanaClient("http://localhost:8899")
    client.client = fake
    return client


def test_transaction_result_is_extracted():
    tx = {"slot": 7, "meta": {"fee": 5000}, "transaction": {"signatures": [SIGNATURE]}}

    assert run(client_with(FakeAsyncClient(transaction=tx)).get_transaction(SIGNATURE)) == tx


def test_missing_transaction_returns_none():
    assert run(client_with(FakeAsyncClient()).get_transaction(SIGNATURE)) is None


def test_transaction_request_failure_raises():
    client = client_with(FakeAsyncClient(error=ConnectionError("node down")))

    with pytest.raises(TransactionFetchError):
        run(client.get_transaction(SIGNATURE))


def test_account_data_in_request_order():
    keys = [Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()]
    accounts = [SimpleNamespace(data=b"\x01\x02"), None, SimpleNamespace(data=b"")]

    datas = run(client_with(FakeAsyncClient(accounts=accounts)).get_multiple_accounts(keys))

    assert datas == [b"\x01\x02", None, b""]


def test_account_request_failure_yields_missing_accounts():
    keys = [Pubkey.new_unique(), Pubkey.new_unique()]
    client = client_with(FakeAsyncClient(error=ConnectionError("node down")))

    assert run(client.get_multiple_accounts(keys)) == [None, None]


def test_no_accounts_requested():
    fake = FakeAsyncClient(error=AssertionError("no request expected"))

    assert run(client_with(fake).get_multiple_accounts([])) == []


def test_token_decimals_from_parsed_mint():
    parsed = {"type": "mint", "info": {"decimals": 6, "supply": "1000"}}

    assert run(client_with(FakeAsyncClient(parsed=parsed)).get_token_decimals(Pubkey.new_unique())) == 6


def test_token_decimals_unavailable():
    mint = Pubkey.new_unique()

    assert run(client_with(FakeAsyncClient()).get_token_decimals(mint)) is None
    assert run(client_with(FakeAsyncClient(parsed={"info": {}})).get_token_decimals(mint)) is None


def test_simulation_result_as_dict():
    simulation = SimpleNamespace(err=None, logs=["Program log: ok"], units_consumed=150)

    result = run(client_with(FakeAsyncClient(simulation=simulation)).simulate_transaction(object()))

    assert result == {"err": None, "logs": ["Program log: ok"], "unitsConsumed": 150}


def test_close_releases_connection():
    fake = FakeAsyncClient()
    client = client_with(fake)
    run(client.close())

    assert fake.closed is True
    assert client.client is None
