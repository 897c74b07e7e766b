"""
Tests for the IDL fallback decoder and its cache.
"""
import asyncio
import struct

from solders.pubkey import Pubkey

from conftest import FakeIdlService, context_for, run, u64
from txlens.parser.anchor import AnchorDecoder, AnchorIdlCoder, IdlCache, to_legacy_idl
from txlens.parser.layout import anchor_discriminator

PROGRAM = Pubkey.new_unique()

LEGACY_IDL = {
    "version": "0.1.0",
    "name": "vault",
    "instructions": [
        {
            "name": "depositFunds",
            "accounts": [{"name": "owner", "isMut": True, "isSigner": True}],
            "args": [
                {"name": "amount", "type": "u64"},
                {"name": "owner", "type": "publicKey"},
                {"name": "memo", "type": "string"},
                {"name": "tip", "type": {"option": "u8"}},
                {"name": "params", "type": {"defined": "Params"}},
            ],
        },
        {"name": "close", "accounts": [], "args": []},
    ],
    "types": [
        {"name": "Params", "type": {"kind": "struct", "fields": [
            {"name": "locked", "type": "bool"},
            {"name": "side", "type": {"defined": "Side"}},
        ]}},
        {"name": "Side", "type": {"kind": "enum", "variants": [{"name": "Bid"}, {"name": "Ask"}]}},
    ],
}

MODERN_IDL = {
    "address": str(PROGRAM),
    "metadata": {"name": "counter", "version": "0.1.0"},
    "instructions": [
        {
            "name": "increment",
            "discriminator": [1, 2, 3, 4, 5, 6, 7, 8],
            "accounts": [
                {"name": "counter", "writable": True},
                {"name": "authority", "signer": True},
            ],
            "args": [
                {"name": "by", "type": "i32"},
                {"name": "steps", "type": {"vec": "u16"}},
                {"name": "target", "type": {"option": {"defined": {"name": "Target"}}}},
            ],
        },
    ],
    "types": [
        {"name": "Target", "serialization": "borsh", "type": {"kind": "struct", "fields": [
            {"name": "key", "type": "pubkey"},
        ]}},
    ],
}


def deposit_data(owner: Pubkey) -> bytes:
    memo = b"hi"
    return (
        anchor_discriminator("depositFunds")
        + u64(123)
        + bytes(owner)
        + struct.pack("<I", len(memo)) + memo
        + bytes([1, 7])
        + bytes([1, 1])
    )


def test_coder_decodes_legacy_idl():
    """Hashed discriminators and nested defined types decode to plain values."""
    owner = Pubkey.new_unique()
    name, fields = AnchorIdlCoder(LEGACY_IDL).decode(deposit_data(owner))

    assert name == "deposit_funds"
    assert fields == {
        "amount": "123",
        "owner": str(owner),
        "memo": "hi",
        "tip": "7",
        "params": {"locked": True, "side": "Ask"},
    }


def test_coder_decodes_explicit_discriminator():
    target = Pubkey.new_unique()
    data = (
        bytes([1, 2, 3, 4, 5, 6, 7, 8])
        + struct.pack("<i", -5)
        + struct.pack("<I", 2) + struct.pack("<HH", 1, 2)
        + bytes([1]) + bytes(target)
    )
    coder = AnchorIdlCoder(MODERN_IDL)

    assert coder.program_name == "counter"
    assert coder.decode(data) == ("increment", {"by": "-5", "steps": ["1", "2"], "target": {"key": str(target)}})


def test_modern_idl_is_converted_to_legacy_layout():
    legacy = to_legacy_idl(MODERN_IDL)

    assert legacy["name"] == "counter"
    assert legacy["version"] == "0.1.0"
    ix = legacy["instructions"][0]
    assert ix["accounts"] == [
        {"name": "counter", "isMut": True, "isSigner": False},
        {"name": "authority", "isMut": False, "isSigner": True},
    ]
    assert ix["args"][2]["type"] == {"option": {"defined": "Target"}}
    assert legacy["types"] == [
        {"name": "Target", "type": {"kind": "struct", "fields": [{"name": "key", "type": "publicKey"}]}},
    ]


def test_coder_rejects_truncated_args():
    data = anchor_discriminator("depositFunds") + u64(1)

    assert AnchorIdlCoder(LEGACY_IDL).decode(data) is None


def test_malformed_idl_yields_no_action():
    service = FakeIdlService({PROGRAM: {"name": "broken", "instructions": [{"args": []}]}})
    decoder = AnchorDecoder(service)

    assert run(decoder.decode(context_for(PROGRAM, anchor_discriminator("close")))) is None


def test_decoder_builds_action_from_idl():
    service = FakeIdlService({PROGRAM: LEGACY_IDL})
    decoder = AnchorDecoder(service)
    action = run(decoder.decode(context_for(PROGRAM, anchor_discriminator("close"))))

    assert action.protocol == "vault"
    assert action.type == "close"
    assert action.summary == "vault: close"
    assert action.details == {"data": {}}


def test_decoder_returns_none_without_match():
    service = FakeIdlService({PROGRAM: LEGACY_IDL})
    decoder = AnchorDecoder(service)

    assert run(decoder.decode(context_for(PROGRAM, bytes(8)))) is None
    assert run(decoder.decode(context_for(PROGRAM, b"\x01"))) is None


def test_idl_is_fetched_once_and_cached():
    service = FakeIdlService({PROGRAM: LEGACY_IDL})
    cache = IdlCache()
    decoder = AnchorDecoder(service, cache)

    async def decode_twice():
        await decoder.decode(context_for(PROGRAM, anchor_discriminator("close")))
        await decoder.decode(context_for(PROGRAM, anchor_discriminator("close")))

    run(decode_twice())

    assert service.calls == [PROGRAM]
    assert PROGRAM in cache


def test_concurrent_decodes_share_one_fetch():
    service = FakeIdlService({PROGRAM: LEGACY_IDL}, delay=0.01)
    decoder = AnchorDecoder(service)
    context = context_for(PROGRAM, anchor_discriminator("close"))

    async def decode_concurrently():
        return await asyncio.gather(*(decoder.decode(context) for _ in range(5)))

    actions = run(decode_concurrently())

    assert len(service.calls) == 1
    assert all(action is not None and action.type == "close" for action in actions)


def test_failed_fetch_is_retried():
    """A failed fetch yields no match and is not remembered."""
    service = FakeIdlService({PROGRAM: LEGACY_IDL}, fail_times=1)
    decoder = AnchorDecoder(service)
    context = context_for(PROGRAM, anchor_discriminator("close"))

    async def decode_twice():
        first = await decoder.decode(context)
        second = await decoder.decode(context)
        return first, second

    first, second = run(decode_twice())

    assert first is None
    assert second is not None
    assert len(service.calls) == 2


def test_missing_idl_is_not_cached():
    service = FakeIdlService({})
    cache = IdlCache()
    decoder = AnchorDecoder(service, cache)

    assert run(decoder.decode(context_for(PROGRAM, bytes(8)))) is None
    assert len(cache) == 0
