#!/usr/bin/env python3
"""
Position Sizer Module

Given wallet balances and the current pool state, picks a tick range and the
largest (amount0, amount1) pair that can be deployed into it.

The token whose deployable balance is worth less (valued in token1 at the
current price) is the constraint asset: its balance is deployed in full,
liquidity is solved from it alone, and the counterpart amount follows from
that liquidity.
"""

import logging
from decimal import Decimal
from fractions import Fraction

from errors import InsufficientBalance, InvalidTickRange, PriceAtRangeBoundary, StalePoolData
from fixed_point import Q192, mul_div_round_down
from liquidity_math import (
    get_amount0_delta,
    get_amount1_delta,
    liquidity_for_amount0,
    liquidity_for_amount1,
)
from pool_models import BalancePair, ConstraintAsset, PoolState, SizingResult, TickRange
from range_selector import format_token_amount, nearest_usable_tick
from tick_math import get_sqrt_ratio_at_tick, get_tick_at_sqrt_ratio, min_usable_tick

logger = logging.getLogger(__name__)

DEFAULT_DEPLOYABLE_FRACTION = 0.40
DEFAULT_RANGE_WIDTH = 5
DEFAULT_MIN_DEPLOYABLE_UNITS = 0.000001


def deployable_amount(raw_balance: int, fraction: float) -> int:
    """Apply the deployable fraction to a raw balance with exact rational math."""
    ratio = Fraction(str(fraction))
    if ratio <= 0 or ratio > 1:
        raise ValueError(f"Deployable fraction must be in (0, 1], got {fraction}")
    return raw_balance * ratio.numerator // ratio.denominator


def dust_floor(decimals: int, min_units: float = DEFAULT_MIN_DEPLOYABLE_UNITS) -> int:
    """Smallest deployable raw amount: min_units whole tokens, at least 1 raw unit."""
    return max(int(Decimal(str(min_units)) * (Decimal(10) ** decimals)), 1)


def check_pool_consistency(pool: PoolState) -> None:
    """
    Reject snapshots that cannot be sized against.

    Raises:
        StalePoolData: Zero active liquidity, or tick more than one tick away
            from the tick implied by sqrtPriceX96
    """
    if pool.liquidity == 0:
        raise StalePoolData("Pool has zero active liquidity")

    implied_tick = get_tick_at_sqrt_ratio(pool.sqrt_price_x96)
    if abs(implied_tick - pool.tick) > 1:
        raise StalePoolData(
            f"Pool tick {pool.tick} inconsistent with sqrtPriceX96 "
            f"{pool.sqrt_price_x96} (implies tick {implied_tick})"
        )


def select_range(pool: PoolState, range_width: int) -> TickRange:
    """
    Snap the pool tick to a range and make sure the price is not on its lower bound.

    A tick that already sits on the spacing grid snaps to a range starting at
    the tick itself, which puts the price on the lower bound. The lower bound
    is then moved one spacing down so the range straddles the price.
    """
    tick_range = nearest_usable_tick(pool.tick, pool.tick_spacing, range_width)

    on_grid = pool.tick % pool.tick_spacing == 0
    if (
        on_grid
        and tick_range.lower == pool.tick
        and get_sqrt_ratio_at_tick(tick_range.lower) == pool.sqrt_price_x96
        and tick_range.lower - pool.tick_spacing >= min_usable_tick(pool.tick_spacing)
    ):
        tick_range = TickRange(lower=tick_range.lower - pool.tick_spacing, upper=tick_range.upper)

    return tick_range


def size_position(
    balances: BalancePair,
    pool: PoolState,
    deployable_fraction: float = DEFAULT_DEPLOYABLE_FRACTION,
    range_width: int = DEFAULT_RANGE_WIDTH,
    min_deployable_units: float = DEFAULT_MIN_DEPLOYABLE_UNITS,
) -> SizingResult:
    """
    Compute the amounts and tick range for a new position.

    Args:
        balances: Raw wallet balances of token0/token1
        pool: Current pool state
        deployable_fraction: Share of each balance that may be deployed
        range_width: Tick spacings on each side of the current tick
        min_deployable_units: Dust floor, in whole tokens

    Returns:
        SizingResult with amounts no larger than the deployable balances

    Raises:
        InsufficientBalance: A deployable balance is below the dust floor
        StalePoolData: Pool snapshot is unusable
        PriceAtRangeBoundary: Current price is on or outside a range bound
        InvalidTickRange: Range is empty or off the spacing grid
    """
    bal0 = deployable_amount(balances.raw0, deployable_fraction)
    bal1 = deployable_amount(balances.raw1, deployable_fraction)

    floor0 = dust_floor(balances.decimals0, min_deployable_units)
    floor1 = dust_floor(balances.decimals1, min_deployable_units)
    if bal0 < floor0:
        raise InsufficientBalance(0, bal0, floor0)
    if bal1 < floor1:
        raise InsufficientBalance(1, bal1, floor1)

    check_pool_consistency(pool)

    tick_range = select_range(pool, range_width)
    if not tick_range.is_aligned(pool.tick_spacing):
        raise InvalidTickRange(
            f"Range [{tick_range.lower}, {tick_range.upper}] not aligned to spacing {pool.tick_spacing}"
        )

    sqrt_price = pool.sqrt_price_x96
    sqrt_lower = get_sqrt_ratio_at_tick(tick_range.lower)
    sqrt_upper = get_sqrt_ratio_at_tick(tick_range.upper)

    if sqrt_price == sqrt_lower or sqrt_price == sqrt_upper:
        raise PriceAtRangeBoundary(
            f"Price {sqrt_price} sits on range bound [{tick_range.lower}, {tick_range.upper}]"
        )
    if sqrt_price < sqrt_lower or sqrt_price > sqrt_upper:
        raise PriceAtRangeBoundary(
            f"Price {sqrt_price} outside range [{tick_range.lower}, {tick_range.upper}]"
        )

    logger.info(
        f"Pool tick={pool.tick} spacing={pool.tick_spacing} fee={pool.fee} "
        f"range=[{tick_range.lower}, {tick_range.upper}]"
    )

    # Value of token0 in token1 raw units: bal0 * P, with P = sqrtP^2 / 2^192
    price_x192 = sqrt_price * sqrt_price
    value0 = mul_div_round_down(bal0, price_x192, Q192)

    if value0 < bal1:
        constraint = ConstraintAsset.TOKEN0
    else:
        constraint = ConstraintAsset.TOKEN1

    amount0, amount1, liquidity = _solve(constraint, bal0, bal1, sqrt_price, sqrt_lower, sqrt_upper)

    # Strongly asymmetric ranges can make the derived side exceed its balance
    if amount0 > bal0 or amount1 > bal1:
        flipped = (
            ConstraintAsset.TOKEN1 if constraint is ConstraintAsset.TOKEN0 else ConstraintAsset.TOKEN0
        )
        logger.warning(
            f"Derived counterpart exceeds balance with {constraint.value} as constraint, "
            f"using {flipped.value} instead"
        )
        constraint = flipped
        amount0, amount1, liquidity = _solve(constraint, bal0, bal1, sqrt_price, sqrt_lower, sqrt_upper)

    if liquidity == 0:
        if constraint is ConstraintAsset.TOKEN0:
            raise InsufficientBalance(0, bal0, floor0)
        raise InsufficientBalance(1, bal1, floor1)

    logger.info(
        f"Constraint asset: {constraint.value}. Deployable: "
        f"token0={format_token_amount(bal0, balances.decimals0)}, "
        f"token1={format_token_amount(bal1, balances.decimals1)}"
    )
    logger.info(
        f"Using amounts: amount0={format_token_amount(amount0, balances.decimals0)}, "
        f"amount1={format_token_amount(amount1, balances.decimals1)}, liquidity={liquidity}"
    )

    return SizingResult(
        amount0=amount0,
        amount1=amount1,
        tick_lower=tick_range.lower,
        tick_upper=tick_range.upper,
        liquidity=liquidity,
        constraint=constraint,
    )


def _solve(
    constraint: ConstraintAsset,
    bal0: int,
    bal1: int,
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int,
) -> tuple[int, int, int]:
    if constraint is ConstraintAsset.TOKEN0:
        # L = amount0 * sqrtP * sqrtU / ((sqrtU - sqrtP) * 2^96)
        liquidity = liquidity_for_amount0(sqrt_price, sqrt_upper, bal0)
        # amount1 = L * (sqrtP - sqrtL) / 2^96
        amount1 = get_amount1_delta(sqrt_lower, sqrt_price, liquidity, round_up=False)
        return bal0, amount1, liquidity

    # L = amount1 * 2^96 / (sqrtP - sqrtL)
    liquidity = liquidity_for_amount1(sqrt_lower, sqrt_price, bal1)
    # amount0 = L * (sqrtU - sqrtP) * 2^96 / (sqrtU * sqrtP)
    amount0 = get_amount0_delta(sqrt_price, sqrt_upper, liquidity, round_up=False)
    return amount0, bal1, liquidity
