#!/usr/bin/env python3
"""
CLMM Keeper Orchestrator

Main entry point for the keeper. Every monitoring interval it runs one cycle:
health check of the managed position (remove after sustained out-of-range),
rebalance evaluation of wallet holdings, then creation of a new position if
none is managed.

Usage:
    # Daemon mode (continuous monitoring, uses default config)
    python orchestrator.py

    # One-shot mode (single cycle, for cron)
    python orchestrator.py --once

    # Dry run (log requests without submitting transactions)
    python orchestrator.py --once --dry-run

    # Manage a specific position
    python orchestrator.py --position <TOKEN_ID>

    # Custom config (relative to cwd or absolute path)
    python orchestrator.py --config ../config/keeper.json
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path

from errors import KeeperError, PriceUnavailable, SizingError
from executor import (
    ExecutorError,
    execute_swap,
    fetch_balances,
    fetch_pool,
    fetch_position,
    list_positions,
    mint_position,
    remove_position,
)
from health_monitor import PositionHealthMonitor
from pool_models import (
    CreatePositionRequest,
    HealthState,
    PoolState,
    RemovePositionRequest,
    TickRange,
)
from position_sizer import size_position
from price_oracle import price_usd
from rebalance import build_swap_request, decide_rebalance
from settings import DEFAULT_CONFIG_PATH, Config, load_config
from state import KeeperState

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _deadline(config: Config) -> int:
    return int(time.time()) + config["deadline_buffer_seconds"]


def check_position_health(
    config: Config,
    state: KeeperState,
    monitor: PositionHealthMonitor,
    dry_run: bool = False,
) -> None:
    """
    Stage 1: observe the managed position and remove it once it has been out
    of range for out_of_range_threshold consecutive cycles.
    """
    position_id = state.current_position_id
    if not position_id:
        logger.info("No managed position, skipping health check")
        return

    snapshot = fetch_position(position_id)
    verdict = monitor.observe(state.health, position_id, snapshot)

    if verdict.health.state is not HealthState.CLOSED:
        return
    if not verdict.remove:
        # A previous removal attempt failed
        logger.warning(f"Position {position_id} already marked for removal, retrying")

    request = RemovePositionRequest(
        position_id=position_id,
        slippage_bps=config["slippage_bps"],
        deadline=_deadline(config),
    )

    if dry_run:
        logger.info(f"[DRY RUN] Would remove position: {request}")
    else:
        result = remove_position(request)
        logger.info(
            f"Removed position {position_id}: "
            f"amount0={result.get('amount0Received', 'N/A')}, "
            f"amount1={result.get('amount1Received', 'N/A')}, tx={result.get('txHash', 'N/A')}"
        )

    monitor.forget(state.health, position_id)
    state.set_position(None)


def evaluate_rebalance(
    config: Config,
    state: KeeperState,
    pool_state: PoolState | None,
    dry_run: bool = False,
) -> bool:
    """
    Stage 2: swap toward the target allocation if one token is depleted.

    Returns True when a swap was submitted (the pool price may have moved).
    """
    pool = config["pool"]
    owner = config["owner_address"]
    if not owner:
        logger.error("No owner address configured (WALLET_ADDRESS), skipping rebalance")
        return False

    balances = fetch_balances(owner, pool)
    price0 = price_usd(pool["token0"], config, pool_state)
    price1 = price_usd(pool["token1"], config, pool_state)

    action = decide_rebalance(
        balances,
        price0,
        price1,
        threshold=config["rebalance_threshold"],
        target_allocation=config["target_allocation_fraction"],
        min_swap_value_usd=config["min_swap_value_usd"],
        token0=pool["symbol0"],
        token1=pool["symbol1"],
    )
    if action is None:
        return False

    request = build_swap_request(
        action,
        pool["token0"],
        pool["token1"],
        slippage_bps=config["slippage_bps"],
        deadline=_deadline(config),
        fee=pool["fee"],
        tick_spacing=pool["tick_spacing"],
    )

    if dry_run:
        logger.info(f"[DRY RUN] Would swap: {request}")
        return False

    result = execute_swap(request)
    logger.info(
        f"Swap complete: in={result.get('amountIn', 'N/A')}, out={result.get('amountOut', 'N/A')}, "
        f"tx={result.get('txHash', 'N/A')}"
    )
    return True


def create_position(
    config: Config,
    state: KeeperState,
    monitor: PositionHealthMonitor,
    pool_state: PoolState,
    dry_run: bool = False,
) -> None:
    """Stage 3: size and mint a new position from current balances."""
    pool = config["pool"]
    owner = config["owner_address"]
    if not owner:
        logger.error("No owner address configured (WALLET_ADDRESS), skipping position creation")
        return

    logger.info("Creating new position...")
    balances = fetch_balances(owner, pool)
    sizing = size_position(
        balances,
        pool_state,
        deployable_fraction=config["deployable_balance_fraction"],
        range_width=config["tick_range_width"],
        min_deployable_units=config["min_deployable_units"],
    )

    request = CreatePositionRequest(
        amount0=sizing.amount0,
        amount1=sizing.amount1,
        tick_lower=sizing.tick_lower,
        tick_upper=sizing.tick_upper,
        slippage_bps=config["slippage_bps"],
        deadline=_deadline(config),
    )

    if dry_run:
        logger.info(f"[DRY RUN] Would mint position: {request}")
        return

    result = mint_position(pool, request)
    position_id = result.get("tokenId")
    if not position_id:
        raise ExecutorError("Mint succeeded but returned no tokenId", "mint-position")

    position_id = str(position_id)
    logger.info(f"Minted position {position_id}, tx={result.get('txHash', 'N/A')}")
    state.set_position(position_id)
    monitor.track(state.health, position_id, TickRange(lower=sizing.tick_lower, upper=sizing.tick_upper))


def _fetch_pool_state(config: Config, state: KeeperState) -> PoolState | None:
    try:
        return fetch_pool(config["pool"])
    except (ExecutorError, KeeperError) as e:
        logger.error(f"Failed to fetch pool: {e}")
        state.record_error("pool", e)
        return None


def run_cycle(
    config: Config,
    state: KeeperState,
    monitor: PositionHealthMonitor,
    dry_run: bool = False,
) -> KeeperState:
    """
    Run one monitoring cycle.

    Errors in one stage are logged and recorded on the state; later stages
    still run.

    Args:
        config: Keeper configuration
        state: Keeper state (mutated and returned)
        monitor: Health monitor holding the out-of-range threshold
        dry_run: If True, log requests instead of submitting them

    Returns:
        The updated state
    """
    if not state.begin_cycle():
        return state

    try:
        # Stage 1: health check
        try:
            check_position_health(config, state, monitor, dry_run)
        except (ExecutorError, KeeperError) as e:
            logger.error(f"Health check failed: {e}")
            state.record_error("health", e)

        pool_state = _fetch_pool_state(config, state)

        # Stage 2: rebalance
        swapped = False
        try:
            swapped = evaluate_rebalance(config, state, pool_state, dry_run)
        except PriceUnavailable as e:
            logger.warning(f"Skipping rebalance: {e}")
            state.record_error("rebalance", e)
        except (ExecutorError, KeeperError) as e:
            logger.error(f"Rebalance failed: {e}")
            state.record_error("rebalance", e)

        # Stage 3: creation
        if state.current_position_id is None:
            if swapped:
                # Our own swap moved the pool price
                pool_state = _fetch_pool_state(config, state)
            if pool_state is None:
                logger.warning("No pool state, skipping position creation")
            else:
                try:
                    create_position(config, state, monitor, pool_state, dry_run)
                except SizingError as e:
                    logger.warning(f"Position creation aborted: {e}")
                    state.record_error("create", e)
                except (ExecutorError, KeeperError) as e:
                    logger.error(f"Position creation failed: {e}")
                    state.record_error("create", e)
    except Exception as e:
        logger.exception(f"Unexpected error in cycle: {e}")
        state.record_error("cycle", e)
    finally:
        state.end_cycle()

    return state


def bootstrap(config: Config, state: KeeperState, position_override: str | None = None) -> KeeperState:
    """
    Pick the position to manage: CLI override, then config, then the owner's
    open position on the configured token pair.
    """
    if position_override:
        logger.info(f"Position overridden to: {position_override}")
        state.set_position(position_override)
        return state

    if config.get("position_id"):
        state.set_position(str(config["position_id"]))
        return state

    owner = config["owner_address"]
    if not owner:
        logger.warning("No owner address configured, cannot discover existing positions")
        return state

    try:
        listings = list_positions(owner)
    except ExecutorError as e:
        logger.error(f"Position discovery failed: {e}")
        return state

    pair = {config["pool"]["token0"].lower(), config["pool"]["token1"].lower()}
    for listing in listings:
        if {listing["token0"].lower(), listing["token1"].lower()} == pair:
            logger.info(f"Managing existing position: {listing['tokenId']}")
            state.set_position(str(listing["tokenId"]))
            break
    else:
        logger.info("No existing position on the configured pair")

    return state


def seconds_until_next_tick(interval_seconds: int, now: float) -> float:
    """Time until the next multiple of the interval (cron-style grid)."""
    return interval_seconds - (now % interval_seconds)


def run_daemon(
    config: Config,
    state: KeeperState,
    monitor: PositionHealthMonitor,
    dry_run: bool = False,
) -> None:
    """
    Run in daemon mode (continuous monitoring).

    Runs a cycle immediately, then on every interval grid point. Grid points
    passed while a cycle was running are skipped.
    """
    interval = config["monitoring_interval_minutes"] * 60

    logger.info("Starting daemon mode")
    logger.info(f"Monitoring interval: {config['monitoring_interval_minutes']}m")
    logger.info(f"Pool: {config['pool']['symbol0']}/{config['pool']['symbol1']} fee={config['pool']['fee']}")
    logger.info(f"Position: {state.current_position_id}")
    logger.info(f"Dry run: {dry_run}")

    # Handle graceful shutdown
    shutdown_requested = False

    def signal_handler(signum, frame):
        nonlocal shutdown_requested
        logger.info("Shutdown requested...")
        shutdown_requested = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    while not shutdown_requested:
        run_cycle(config, state, monitor, dry_run)

        # Sleep until next grid point (interruptible)
        wake_at = time.time() + seconds_until_next_tick(interval, time.time())
        while not shutdown_requested and time.time() < wake_at:
            time.sleep(min(1.0, max(wake_at - time.time(), 0.0)))

    logger.info("Daemon stopped")


def setup_logging(debug: bool = False, log_file: Path | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
    )


def main():
    parser = argparse.ArgumentParser(
        description="CLMM Keeper Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start daemon with default config
  python orchestrator.py

  # One-shot cycle (for cron)
  python orchestrator.py --once

  # Dry run (log requests without submitting)
  python orchestrator.py --once --dry-run

  # Use custom config
  python orchestrator.py --config /path/to/config.json

  # Manage a specific position
  python orchestrator.py --position <TOKEN_ID>
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config file (default: config/keeper.json)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one cycle and exit (for cron jobs)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log requests without submitting transactions",
    )
    parser.add_argument(
        "--position",
        type=str,
        help="Position token id to manage",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write logs to this file",
    )

    args = parser.parse_args()

    setup_logging(args.debug, args.log_file)

    # Load config
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error(f"Config file not found: {args.config}")
        logger.info("Create a config file or specify one with --config")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid config: {e}")
        sys.exit(1)

    # Apply CLI overrides
    if args.dry_run:
        config["dry_run"] = True

    state = KeeperState()
    monitor = PositionHealthMonitor(config["out_of_range_threshold"])
    bootstrap(config, state, args.position)

    if args.once:
        run_cycle(config, state, monitor, config["dry_run"])
        print(state.to_json())
        sys.exit(1 if state.last_errors else 0)
    else:
        run_daemon(config, state, monitor, config["dry_run"])


if __name__ == "__main__":
    main()
