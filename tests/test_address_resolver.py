"""
Tests for address lookup table resolution.
"""
import pytest
from solders.pubkey import Pubkey

from conftest import FakeRpc, lookup_table_data, run
from txlens.core.address_resolver import AddressResolver, LookupTableReference, parse_lookup_table_addresses


def test_no_lookups_skips_rpc():
    rpc = FakeRpc()

    assert run(AddressResolver(rpc).resolve([])) == ([], [])
    assert rpc.account_requests == []


def test_writable_then_readonly_in_reference_order(keys):
    table_a, table_b = Pubkey.new_unique(), Pubkey.new_unique()
    rpc = FakeRpc(accounts={
        table_a: lookup_table_data(keys[:4]),
        table_b: lookup_table_data(keys[4:8]),
    })
    lookups = [
        LookupTableReference(table_a, writable_indexes=(2, 0), readonly_indexes=(3,)),
        LookupTableReference(table_b, writable_indexes=(1,), readonly_indexes=(0, 2)),
    ]

    writable, readonly = run(AddressResolver(rpc).resolve(lookups))

    assert writable == [keys[2], keys[0], keys[5]]
    assert readonly == [keys[3], keys[4], keys[6]]
    assert rpc.account_requests == [[table_a, table_b]]


def test_missing_table_is_skipped(keys):
    present, missing = Pubkey.new_unique(), Pubkey.new_unique()
    rpc = FakeRpc(accounts={present: lookup_table_data(keys[:2])})
    lookups = [
        LookupTableReference(missing, writable_indexes=(0,), readonly_indexes=()),
        LookupTableReference(present, writable_indexes=(1,), readonly_indexes=(0,)),
    ]

    assert run(AddressResolver(rpc).resolve(lookups)) == ([keys[1]], [keys[0]])


def test_out_of_range_indexes_are_skipped(keys):
    table = Pubkey.new_unique()
    rpc = FakeRpc(accounts={table: lookup_table_data(keys[:2])})
    lookups = [LookupTableReference(table, writable_indexes=(0, 5), readonly_indexes=(9, 1))]

    assert run(AddressResolver(rpc).resolve(lookups)) == ([keys[0]], [keys[1]])


def test_reference_from_rpc_json(keys):
    reference = LookupTableReference.from_json({
        "accountKey": str(keys[0]),
        "writableIndexes": [1, 2],
        "readonlyIndexes": [],
    })

    assert reference.account_key == keys[0]
    assert reference.writable_indexes == (1, 2)
    assert reference.readonly_indexes == ()


def test_table_data_too_short():
    with pytest.raises(ValueError):
        parse_lookup_table_addresses(bytes(10))


def test_uninitialized_table_is_skipped(keys):
    """An account whose header is not an initialized lookup table contributes nothing."""
    table, good = Pubkey.new_unique(), Pubkey.new_unique()
    rpc = FakeRpc(accounts={
        table: bytes(56) + b"".join(bytes(key) for key in keys[:2]),
        good: lookup_table_data(keys[2:4]),
    })
    lookups = [
        LookupTableReference(table, writable_indexes=(0,), readonly_indexes=(1,)),
        LookupTableReference(good, writable_indexes=(1,), readonly_indexes=()),
    ]

    assert run(AddressResolver(rpc).resolve(lookups)) == ([keys[3]], [])


def test_table_addresses_follow_the_header(keys):
    assert parse_lookup_table_addresses(lookup_table_data(keys[:3])) == keys[:3]
