"""Shared pytest fixtures for the keeper tests."""

from __future__ import annotations

from typing import Any

import pytest

from pool_models import BalancePair, PoolState
from settings import apply_defaults
from tick_math import get_sqrt_ratio_at_tick

TOKEN0 = "0x078D782b760474a361dDA0AF3839290b0EF57AD6"
TOKEN1 = "0x4200000000000000000000000000000000000006"
OWNER = "0x00000000000000000000000000000000000000aa"


def make_pool(
    tick: int = 0,
    tick_spacing: int = 60,
    liquidity: int = 10**18,
    sqrt_price_x96: int | None = None,
    fee: int = 3000,
) -> PoolState:
    """Pool whose sqrt price matches its tick unless given explicitly."""
    if sqrt_price_x96 is None:
        sqrt_price_x96 = get_sqrt_ratio_at_tick(tick)
    return PoolState(
        sqrt_price_x96=sqrt_price_x96,
        tick=tick,
        liquidity=liquidity,
        tick_spacing=tick_spacing,
        fee=fee,
    )


def make_balances(raw0: int, raw1: int, decimals0: int = 18, decimals1: int = 18) -> BalancePair:
    return BalancePair(raw0=raw0, raw1=raw1, decimals0=decimals0, decimals1=decimals1)


@pytest.fixture
def raw_config() -> dict[str, Any]:
    """Return a keeper.json-style dict with only the required fields set."""
    return {
        "pool": {
            "token0": TOKEN0,
            "token1": TOKEN1,
            "fee": 3000,
            "symbol0": "USDC",
            "symbol1": "WETH",
            "decimals0": 18,
            "decimals1": 18,
        },
        "owner_address": OWNER,
        "price_api_url": "https://prices.example",
    }


@pytest.fixture
def config(raw_config: dict[str, Any]) -> dict[str, Any]:
    """Return a fully defaulted config."""
    return apply_defaults(raw_config)
