#!/usr/bin/env python3
"""
Liquidity Math Module

Token amounts per unit of liquidity over a sqrt-price interval, and the
inverse. All arithmetic goes through fixed_point with the rounding direction
chosen by the caller.
"""

from fixed_point import Q96, mul_div_round_down, mul_div_round_up


def _ordered(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    if sqrt_a > sqrt_b:
        return sqrt_b, sqrt_a
    return sqrt_a, sqrt_b


def get_amount0_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    """
    Amount of token0 between two sqrt prices for a given liquidity.

    amount0 = L * 2^96 * (sqrtB - sqrtA) / sqrtB / sqrtA

    Args:
        sqrt_a: A sqrt price (Q96), either bound
        sqrt_b: The other sqrt price (Q96)
        liquidity: Liquidity amount
        round_up: Round the result up (amount owed to the pool) or down
    """
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    if sqrt_a == 0:
        raise ValueError("sqrt price must be positive")

    numerator1 = liquidity << 96
    numerator2 = sqrt_b - sqrt_a

    if round_up:
        return mul_div_round_up(mul_div_round_up(numerator1, numerator2, sqrt_b), 1, sqrt_a)
    return mul_div_round_down(numerator1, numerator2, sqrt_b) // sqrt_a


def get_amount1_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    """
    Amount of token1 between two sqrt prices for a given liquidity.

    amount1 = L * (sqrtB - sqrtA) / 2^96
    """
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)

    if round_up:
        return mul_div_round_up(liquidity, sqrt_b - sqrt_a, Q96)
    return mul_div_round_down(liquidity, sqrt_b - sqrt_a, Q96)


def amounts_for_liquidity(
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int,
    liquidity: int,
    round_up: bool = False,
) -> tuple[int, int]:
    """
    Token amounts represented by a position at the current price.

    Below the range the position is all token0, above it all token1, and
    inside it both.

    Returns:
        (amount0, amount1)
    """
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)

    if sqrt_price <= sqrt_lower:
        return get_amount0_delta(sqrt_lower, sqrt_upper, liquidity, round_up), 0
    if sqrt_price >= sqrt_upper:
        return 0, get_amount1_delta(sqrt_lower, sqrt_upper, liquidity, round_up)
    return (
        get_amount0_delta(sqrt_price, sqrt_upper, liquidity, round_up),
        get_amount1_delta(sqrt_lower, sqrt_price, liquidity, round_up),
    )


def liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    """L = amount0 * sqrtA * sqrtB / ((sqrtB - sqrtA) * 2^96), rounded down."""
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    intermediate = mul_div_round_down(sqrt_a, sqrt_b, Q96)
    return mul_div_round_down(amount0, intermediate, sqrt_b - sqrt_a)


def liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    """L = amount1 * 2^96 / (sqrtB - sqrtA), rounded down."""
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    return mul_div_round_down(amount1, Q96, sqrt_b - sqrt_a)
