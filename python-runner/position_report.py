#!/usr/bin/env python3
"""
Position Analyzer

Fetches a position from the TypeScript executor and reports whether it is in
range, its distance to each boundary, the token amounts it currently holds
and the range bounds as human-readable prices.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from errors import KeeperError
from executor import ExecutorError, fetch_position
from health_monitor import analyze_position
from liquidity_math import amounts_for_liquidity
from pool_models import PositionSnapshot
from range_selector import format_token_amount, price_from_sqrt_price_x96, tick_to_price
from settings import DEFAULT_CONFIG_PATH, PoolConfig, load_config
from tick_math import get_sqrt_ratio_at_tick


def position_holdings(snapshot: PositionSnapshot, pool: PoolConfig) -> dict:
    """Token amounts held by the position and its range as prices."""
    sqrt_price = snapshot.sqrt_price_x96 or get_sqrt_ratio_at_tick(snapshot.current_tick)
    amount0, amount1 = amounts_for_liquidity(
        sqrt_price,
        get_sqrt_ratio_at_tick(snapshot.tick_lower),
        get_sqrt_ratio_at_tick(snapshot.tick_upper),
        snapshot.liquidity,
    )
    decimals0, decimals1 = pool["decimals0"], pool["decimals1"]

    return {
        "liquidity": str(snapshot.liquidity),
        "amount0": format_token_amount(amount0, decimals0),
        "amount1": format_token_amount(amount1, decimals1),
        "current_price": price_from_sqrt_price_x96(sqrt_price, decimals0, decimals1),
        "lower_price": tick_to_price(snapshot.tick_lower, decimals0, decimals1),
        "upper_price": tick_to_price(snapshot.tick_upper, decimals0, decimals1),
        "quote": f"{pool['symbol1']} per {pool['symbol0']}",
    }


def print_decision_line(analysis: dict):
    """Print single-line status summary."""
    status = "IN_RANGE" if analysis["in_range"] else "OUT_OF_RANGE"

    # Color codes for terminal
    GREEN = "\033[92m"
    RED = "\033[91m"
    RESET = "\033[0m"

    color = GREEN if analysis["in_range"] else RED
    print(
        f"{color}{status}{RESET} | "
        f"DIST_TO_LOWER: {analysis['dist_to_lower_ticks']} ticks ({analysis['dist_to_lower_pct']}%) | "
        f"DIST_TO_UPPER: {analysis['dist_to_upper_ticks']} ticks ({analysis['dist_to_upper_pct']}%)"
    )


def _section(title: str, body: dict):
    print("=" * 50)
    print(title)
    print("=" * 50)
    print(json.dumps(body, indent=2))
    print()


def main():
    parser = argparse.ArgumentParser(description="Fetch and analyze a liquidity position")
    parser.add_argument(
        "--position",
        help="Position token id (default: position_id from config)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config file (default: config/keeper.json)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print snapshot, analysis and holdings before the status line",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON only",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    try:
        config = load_config(args.config)
        position_id = args.position or config["position_id"]
        if not position_id:
            print("Error: no position given (use --position or set position_id)", file=sys.stderr)
            sys.exit(1)

        snapshot = fetch_position(str(position_id))
        analysis = analyze_position(snapshot)
        holdings = position_holdings(snapshot, config["pool"])

        if args.json:
            output = {
                "position_id": str(position_id),
                "analysis": analysis,
                "holdings": holdings,
            }
            print(json.dumps(output, indent=2))
            return

        if args.verbose:
            _section("ANALYSIS", analysis)
            _section("HOLDINGS", holdings)
            print("=" * 50)
            print("STATUS")
            print("=" * 50)

        print_decision_line(analysis)

    except (ExecutorError, KeeperError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
