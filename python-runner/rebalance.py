#!/usr/bin/env python3
"""
Rebalance Module

Decides whether wallet holdings have drifted far enough from the target
allocation to warrant a swap. Stateless: every evaluation starts from fresh
balances and USD prices, and emits at most one swap.
"""

import json
import argparse
import logging
from decimal import ROUND_DOWN, Decimal

from errors import PriceUnavailable
from pool_models import (
    BalancePair,
    PortfolioSnapshot,
    RebalanceAction,
    SwapDirection,
    SwapRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_REBALANCE_THRESHOLD = 0.10
DEFAULT_TARGET_ALLOCATION = 0.30
DEFAULT_MIN_SWAP_VALUE_USD = 1.0


def _check_price(price: float | None, token: str) -> float:
    if price is None or price <= 0:
        raise PriceUnavailable(token)
    return price


def _to_tokens(raw: int, decimals: int) -> float:
    return float(Decimal(raw) / (Decimal(10) ** decimals))


def _to_raw(tokens: float, decimals: int) -> int:
    scaled = Decimal(str(tokens)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def calculate_values(
    balances: BalancePair,
    price0_usd: float,
    price1_usd: float,
) -> tuple[float, float, float]:
    """
    Calculate USD values of holdings.

    Returns:
        (value0_usd, value1_usd, total_value_usd)
    """
    value0 = _to_tokens(balances.raw0, balances.decimals0) * price0_usd
    value1 = _to_tokens(balances.raw1, balances.decimals1) * price1_usd
    return value0, value1, value0 + value1


def portfolio_snapshot(
    balances: BalancePair,
    price0_usd: float | None,
    price1_usd: float | None,
    token0: str = "token0",
    token1: str = "token1",
) -> PortfolioSnapshot:
    """
    Value both holdings in USD and derive each one's share of the total.

    Raises:
        PriceUnavailable: If either USD price is missing
    """
    price0 = _check_price(price0_usd, token0)
    price1 = _check_price(price1_usd, token1)

    value0, value1, total = calculate_values(balances, price0, price1)
    if total > 0:
        ratio0 = value0 / total
        ratio1 = value1 / total
    else:
        ratio0 = ratio1 = 0.0

    return PortfolioSnapshot(
        value0_usd=value0,
        value1_usd=value1,
        total_usd=total,
        ratio0=ratio0,
        ratio1=ratio1,
    )


def decide_rebalance(
    balances: BalancePair,
    price0_usd: float | None,
    price1_usd: float | None,
    threshold: float = DEFAULT_REBALANCE_THRESHOLD,
    target_allocation: float = DEFAULT_TARGET_ALLOCATION,
    min_swap_value_usd: float = DEFAULT_MIN_SWAP_VALUE_USD,
    token0: str = "token0",
    token1: str = "token1",
) -> RebalanceAction | None:
    """
    Decide whether a swap is needed to restore the target allocation.

    If token0's share of portfolio value is at or below the threshold, token1
    is sold until token0 holds target_allocation of the total; then the same
    check runs for token1. No cooldown is applied between evaluations.

    Args:
        balances: Raw wallet balances
        price0_usd: USD price of token0 (None if unavailable)
        price1_usd: USD price of token1 (None if unavailable)
        threshold: Share at or below which a token is considered depleted
        target_allocation: Share of total value to restore the depleted token to
        min_swap_value_usd: Swaps worth less than this are skipped

    Returns:
        RebalanceAction or None

    Raises:
        PriceUnavailable: If either USD price is missing
    """
    snapshot = portfolio_snapshot(balances, price0_usd, price1_usd, token0, token1)

    logger.info(
        f"Portfolio: {token0}=${snapshot.value0_usd:.2f} ({snapshot.ratio0 * 100:.1f}%), "
        f"{token1}=${snapshot.value1_usd:.2f} ({snapshot.ratio1 * 100:.1f}%), "
        f"total=${snapshot.total_usd:.2f}"
    )

    if snapshot.total_usd <= 0:
        return None

    target_usd = snapshot.total_usd * target_allocation

    if snapshot.ratio0 <= threshold:
        swap_usd = target_usd - snapshot.value0_usd
        direction = SwapDirection.TOKEN1_TO_TOKEN0
        amount_in = _to_raw(swap_usd / price1_usd, balances.decimals1)
        amount_in = min(amount_in, balances.raw1)
    elif snapshot.ratio1 <= threshold:
        swap_usd = target_usd - snapshot.value1_usd
        direction = SwapDirection.TOKEN0_TO_TOKEN1
        amount_in = _to_raw(swap_usd / price0_usd, balances.decimals0)
        amount_in = min(amount_in, balances.raw0)
    else:
        logger.info(f"No rebalance needed (threshold {threshold * 100:.1f}%)")
        return None

    if swap_usd < min_swap_value_usd or amount_in <= 0:
        logger.info(f"Swap of ${swap_usd:.2f} below minimum ${min_swap_value_usd:.2f}, skipping")
        return None

    logger.info(f"Rebalance triggered: {direction.value} amount_in={amount_in} (${swap_usd:.2f})")
    return RebalanceAction(direction=direction, amount_in=amount_in, amount_in_usd=swap_usd)


def build_swap_request(
    action: RebalanceAction,
    token0: str,
    token1: str,
    slippage_bps: int,
    deadline: int,
    fee: int = 0,
    tick_spacing: int = 0,
) -> SwapRequest:
    """Turn a rebalance decision into a swap request for the executor."""
    if action.direction is SwapDirection.TOKEN1_TO_TOKEN0:
        token_in, token_out = token1, token0
    else:
        token_in, token_out = token0, token1

    return SwapRequest(
        token_in=token_in,
        token_out=token_out,
        amount_in=action.amount_in,
        slippage_bps=slippage_bps,
        deadline=deadline,
        fee=fee,
        tick_spacing=tick_spacing,
    )


# CLI interface
if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Evaluate a rebalance decision")
    parser.add_argument("--raw0", type=int, required=True, help="Token0 balance (smallest units)")
    parser.add_argument("--raw1", type=int, required=True, help="Token1 balance (smallest units)")
    parser.add_argument("--decimals0", type=int, default=18, help="Token0 decimals")
    parser.add_argument("--decimals1", type=int, default=6, help="Token1 decimals")
    parser.add_argument("--price0", type=float, required=True, help="Token0 USD price")
    parser.add_argument("--price1", type=float, default=1.0, help="Token1 USD price")
    parser.add_argument("--threshold", type=float, default=DEFAULT_REBALANCE_THRESHOLD)
    parser.add_argument("--target", type=float, default=DEFAULT_TARGET_ALLOCATION)
    parser.add_argument("--min-swap-usd", type=float, default=DEFAULT_MIN_SWAP_VALUE_USD)

    args = parser.parse_args()

    pair = BalancePair(args.raw0, args.raw1, args.decimals0, args.decimals1)
    result = decide_rebalance(
        pair,
        args.price0,
        args.price1,
        threshold=args.threshold,
        target_allocation=args.target,
        min_swap_value_usd=args.min_swap_usd,
    )

    if result is None:
        print(json.dumps({"action": "no_swap_needed"}, indent=2))
    else:
        print(
            json.dumps(
                {
                    "action": result.direction.value,
                    "amount_in": result.amount_in,
                    "amount_in_usd": result.amount_in_usd,
                },
                indent=2,
            )
        )
