#!/usr/bin/env python3
"""
Range Selector Module

Snaps the current pool tick to a tick range on the pool's spacing grid, plus
float helpers for showing ticks as human-readable prices. The float helpers
are for logs and reports only; sizing always goes through tick_math.
"""

import json
import math
from decimal import Decimal

from errors import InvalidTickRange
from pool_models import TickRange
from tick_math import max_usable_tick, min_usable_tick

# Price factor for one tick
TICK_BASE = 1.0001


def tick_to_price(tick: int, decimals0: int = 18, decimals1: int = 18) -> float:
    """
    Convert tick index to human-readable price (token1 per token0).

    Args:
        tick: Tick index
        decimals0: Decimals of token0
        decimals1: Decimals of token1
    """
    raw_price = math.pow(TICK_BASE, tick)
    return raw_price * 10 ** (decimals0 - decimals1)


def price_to_tick(price: float, decimals0: int = 18, decimals1: int = 18) -> int:
    """
    Convert human-readable price (token1 per token0) to tick index (unrounded).
    """
    if price <= 0:
        raise ValueError("Price must be positive")
    raw_price = price * 10 ** (decimals1 - decimals0)
    return int(math.floor(math.log(raw_price) / math.log(TICK_BASE)))


def price_from_sqrt_price_x96(sqrt_price_x96: int, decimals0: int = 18, decimals1: int = 18) -> float:
    """Human-readable price (token1 per token0) implied by a sqrtPriceX96."""
    ratio = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(1 << 192)
    return float(ratio * Decimal(10) ** (decimals0 - decimals1))


def format_token_amount(amount: int, decimals: int) -> str:
    """Raw integer amount -> decimal string, e.g. 1500000 (6 dp) -> '1.500000'."""
    if decimals == 0:
        return str(amount)
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10**decimals)
    return f"{sign}{whole}.{str(fraction).rjust(decimals, '0')}"


def round_tick_down(tick: int, tick_spacing: int) -> int:
    """Round tick down to nearest valid tick for the pool's tick spacing."""
    return (tick // tick_spacing) * tick_spacing


def round_tick_up(tick: int, tick_spacing: int) -> int:
    """Round tick up to nearest valid tick for the pool's tick spacing."""
    return -(-tick // tick_spacing) * tick_spacing


def nearest_usable_tick(tick: int, tick_spacing: int, range_width: int = 1) -> TickRange:
    """
    Compute the tick range around the current tick.

    The base range is the spacing cell containing the tick. A tick that already
    sits on the grid has an empty cell, so the upper bound is pushed one
    spacing up. range_width > 1 adds (range_width - 1) spacings on each side.

    Args:
        tick: Current pool tick
        tick_spacing: Pool's tick spacing
        range_width: Number of spacings on each side (1 = single cell)

    Returns:
        TickRange with both bounds on the spacing grid

    Raises:
        InvalidTickRange: If tick_spacing or range_width is not positive
    """
    if tick_spacing <= 0:
        raise InvalidTickRange(f"Tick spacing must be positive, got {tick_spacing}")
    if range_width < 1:
        raise InvalidTickRange(f"Range width must be at least 1, got {range_width}")

    lower = round_tick_down(tick, tick_spacing)
    upper = round_tick_up(tick, tick_spacing)
    if upper <= lower:
        upper = lower + tick_spacing

    extra = (range_width - 1) * tick_spacing
    lower -= extra
    upper += extra

    # Keep both bounds inside the usable tick domain
    lower = max(lower, min_usable_tick(tick_spacing))
    upper = min(upper, max_usable_tick(tick_spacing))
    if upper <= lower:
        # Tick beyond the last usable grid point; keep one cell inside the domain
        if upper == max_usable_tick(tick_spacing):
            lower = upper - tick_spacing
        else:
            upper = lower + tick_spacing

    return TickRange(lower=lower, upper=upper)


# CLI interface
if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Compute position tick range")
    parser.add_argument("--tick", type=int, required=True, help="Current pool tick")
    parser.add_argument("--tick-spacing", type=int, required=True, help="Pool tick spacing")
    parser.add_argument("--range-width", type=int, default=1, help="Spacings on each side")
    parser.add_argument("--decimals0", type=int, default=18, help="Decimals of token0")
    parser.add_argument("--decimals1", type=int, default=18, help="Decimals of token1")

    args = parser.parse_args()

    tick_range = nearest_usable_tick(args.tick, args.tick_spacing, args.range_width)
    result = {
        "lower_tick": tick_range.lower,
        "upper_tick": tick_range.upper,
        "lower_price": tick_to_price(tick_range.lower, args.decimals0, args.decimals1),
        "upper_price": tick_to_price(tick_range.upper, args.decimals0, args.decimals1),
        "current_price": tick_to_price(args.tick, args.decimals0, args.decimals1),
    }

    print(json.dumps(result, indent=2))
