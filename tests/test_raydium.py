"""
Tests for the Raydium decoder (AMM v4, CLMM and CP-Swap).
"""
from conftest import context_for, run, u64
from txlens.constants import RAYDIUM_AMM_V4_PROGRAM_ID, RAYDIUM_CLMM_PROGRAM_ID, RAYDIUM_CPMM_PROGRAM_ID
from txlens.parser.base import Direction
from txlens.parser.raydium import RaydiumDecoder


def test_swap_base_in():
    """SwapBaseIn reads amountIn and minAmountOut as little-endian u64s."""
    data = bytes([9]) + u64(1_000_000) + u64(500_000)
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, data)))

    assert action.protocol == "Raydium"
    assert action.type == "Swap"
    assert action.details["swapType"] == "BaseIn"
    assert action.details["amountIn"] == "1000000"
    assert action.details["minAmountOut"] == "500000"


def test_swap_base_out():
    data = bytes([11]) + u64(700) + u64(300)
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, data)))

    assert action.details["swapType"] == "BaseOut"
    assert action.details["maxAmountIn"] == "700"
    assert action.details["amountOut"] == "300"


def test_short_swap_is_degraded():
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, bytes([9, 1, 2, 3]))))

    assert action.type == "Swap"
    assert action.details == {"swapType": "BaseIn"}
    assert "insufficient data" in action.summary


def test_deposit_and_withdraw_directions():
    deposit = run(RaydiumDecoder().decode(
        context_for(RAYDIUM_AMM_V4_PROGRAM_ID, bytes([3]) + u64(10) + u64(20) + u64(0))
    ))
    withdraw = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, bytes([4]) + u64(77))))

    assert deposit.type == "Add Liquidity"
    assert deposit.direction == Direction.OUT
    assert deposit.details["maxPcAmount"] == "20"
    assert withdraw.type == "Remove Liquidity"
    assert withdraw.direction == Direction.IN
    assert withdraw.details["lpAmount"] == "77"


def test_unknown_amm_instruction():
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, bytes([42]))))

    assert action.type == "Unknown"
    assert action.details["discriminator"] == 42


def test_empty_data_is_unknown_not_none():
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_AMM_V4_PROGRAM_ID, b"")))

    assert action is not None
    assert action.type == "Unknown"


def test_clmm_branch():
    action = run(RaydiumDecoder().decode(
        context_for(RAYDIUM_CLMM_PROGRAM_ID, bytes.fromhex("2e1c2e61476b31fe") + bytes(16))
    ))

    assert action.protocol == "Raydium CLMM"
    assert action.type == "Increase Liquidity"
    assert action.direction == Direction.OUT


def test_cpmm_branch():
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_CPMM_PROGRAM_ID, bytes.fromhex("d89b3c61f3e69787"))))

    assert action.protocol == "Raydium CP-Swap"
    assert action.type == "Withdraw"
    assert action.direction == Direction.IN


def test_cpmm_unknown_discriminator():
    action = run(RaydiumDecoder().decode(context_for(RAYDIUM_CPMM_PROGRAM_ID, bytes(8))))

    assert action.type == "Unknown"
    assert action.details["discriminator"] == "00" * 8
