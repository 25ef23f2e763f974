#!/usr/bin/env python3
"""
TS Script Executor Module

Wrapper for calling the TypeScript scripts that talk to the chain (pool and
position reads, balances, subgraph position discovery, mint/remove/swap
transactions with Permit2 signing). Handles subprocess calls, JSON parsing,
retries with backoff, and conversion of the scripts' loosely typed JSON into
the keeper's typed snapshots.
"""

import os
import subprocess
import json
import shutil
import time
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TypedDict

from pool_models import (
    BalancePair,
    CreatePositionRequest,
    PoolState,
    PositionSnapshot,
    RemovePositionRequest,
    SwapRequest,
)
from settings import PoolConfig

# Configure logging
logger = logging.getLogger(__name__)

# Path to the TypeScript executor
TS_EXECUTOR = Path(os.getenv("TS_EXECUTOR_DIR", Path(__file__).parent.parent / "ts-executor"))

# Errors that will not go away by retrying
NON_RETRYABLE = ("usage:", "invalid", "insufficient", "simulation failed", "reverted")


class PoolData(TypedDict):
    poolId: str
    currency0: str
    currency1: str
    fee: int
    tickSpacing: int
    hooks: str
    sqrtPriceX96: str
    tick: int
    liquidity: str


class PositionData(TypedDict, total=False):
    tokenId: str
    info: str  # packed PositionInfo word, decimal string
    tickLower: int
    tickUpper: int
    currentTick: int
    sqrtPriceX96: str
    liquidity: str


class TokenBalance(TypedDict):
    address: str
    balance: str
    decimals: int


class BalanceData(TypedDict):
    token0: TokenBalance
    token1: TokenBalance


class PositionListing(TypedDict):
    tokenId: str
    token0: str
    token1: str
    fee: int


class MintResult(TypedDict, total=False):
    success: bool
    tokenId: str
    liquidity: str
    amount0Used: str
    amount1Used: str
    txHash: str
    error: str


class RemoveResult(TypedDict, total=False):
    success: bool
    tokenId: str
    amount0Received: str
    amount1Received: str
    txHash: str
    error: str


class SwapResult(TypedDict, total=False):
    success: bool
    amountIn: str
    amountOut: str
    txHash: str
    error: str


class ExecutorError(Exception):
    """Exception raised when a TS script execution fails."""

    def __init__(self, message: str, script: str, stderr: str = ""):
        self.script = script
        self.stderr = stderr
        super().__init__(message)


@dataclass(frozen=True)
class PackedPositionInfo:
    pool_id: int
    tick_lower: int
    tick_upper: int
    has_subscriber: bool


def _signed24(raw: int) -> int:
    return raw - 0x1000000 if raw >= 0x800000 else raw


def decode_position_info(value: int) -> PackedPositionInfo:
    """
    Decode the packed position info word returned by the position manager.

    Layout (low to high bits): 8-bit subscriber flag, 24-bit tickLower,
    24-bit tickUpper, 200-bit truncated pool id.
    """
    return PackedPositionInfo(
        pool_id=value >> 56,
        tick_lower=_signed24((value >> 8) & 0xFFFFFF),
        tick_upper=_signed24((value >> 32) & 0xFFFFFF),
        has_subscriber=(value & 0xFF) != 0,
    )


def get_node_command() -> str:
    """Detect the correct node command (node vs node.exe for WSL)."""
    for candidate in ("node", "node.exe"):
        if shutil.which(candidate):
            return candidate
    raise ExecutorError("Node.js not found. Install Node.js or ensure node is in PATH.", "node")


def _error_message(stdout: str, stderr: str) -> str:
    # TS scripts print {"error": ...} on stdout when they fail cleanly
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        return stderr or stdout or "Unknown error"
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return stderr or "Unknown error"


def _is_retryable(message: str) -> bool:
    lowered = message.lower()
    return not any(marker in lowered for marker in NON_RETRYABLE)


def _run_ts_script(
    script_name: str,
    args: list[str],
    max_retries: int = 3,
    base_delay: float = 2.0,
    timeout: int = 120,
):
    """
    Run a TypeScript script with retry logic and exponential backoff.

    Args:
        script_name: Name of the script (without .js extension)
        args: List of arguments to pass to the script
        max_retries: Maximum number of attempts
        base_delay: Base delay between retries (doubles each attempt)
        timeout: Timeout in seconds for each attempt

    Returns:
        Parsed JSON output from the script

    Raises:
        ExecutorError: On a non-retryable failure or when all retries fail
    """
    script_path = TS_EXECUTOR / "dist" / f"{script_name}.js"

    if not script_path.exists():
        raise ExecutorError(
            f"TS executor not built. Run: cd {TS_EXECUTOR} && npm install && npm run build",
            script_name,
        )

    node_cmd = get_node_command()
    last_error = "Unknown error"
    last_stderr = ""

    for attempt in range(max_retries):
        logger.debug(f"Running {script_name} (attempt {attempt + 1}/{max_retries})")

        try:
            result = subprocess.run(
                [node_cmd, str(script_path)] + args,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            last_error = f"Timeout after {timeout}s"
            last_stderr = ""
        else:
            last_stderr = result.stderr
            if result.returncode != 0:
                last_error = _error_message(result.stdout, result.stderr)
            else:
                try:
                    output = json.loads(result.stdout)
                except json.JSONDecodeError as e:
                    # Garbled output is not transient
                    raise ExecutorError(f"Failed to parse JSON output: {e}", script_name, last_stderr)

                if not (isinstance(output, dict) and output.get("success") is False):
                    return output
                last_error = str(output.get("error", "Unknown error"))

            if not _is_retryable(last_error):
                raise ExecutorError(last_error, script_name, last_stderr)

        if attempt < max_retries - 1:
            delay = base_delay * (2**attempt)
            logger.warning(
                f"{script_name} failed (attempt {attempt + 1}): {last_error}. Retrying in {delay}s..."
            )
            time.sleep(delay)

    # All retries exhausted
    raise ExecutorError(
        f"Failed after {max_retries} attempts: {last_error}",
        script_name,
        last_stderr,
    )


def to_pool_state(data: PoolData) -> PoolState:
    """Convert fetch-pool output into a PoolState."""
    return PoolState(
        sqrt_price_x96=int(data["sqrtPriceX96"]),
        tick=int(data["tick"]),
        liquidity=int(data["liquidity"]),
        tick_spacing=int(data["tickSpacing"]),
        fee=int(data["fee"]),
    )


def to_position_snapshot(data: PositionData) -> PositionSnapshot:
    """Convert fetch-position output into a PositionSnapshot."""
    if "tickLower" in data and "tickUpper" in data:
        tick_lower = int(data["tickLower"])
        tick_upper = int(data["tickUpper"])
    elif "info" in data:
        info = decode_position_info(int(data["info"]))
        tick_lower, tick_upper = info.tick_lower, info.tick_upper
    else:
        raise ExecutorError("Position data has neither tick bounds nor packed info", "fetch-position")

    sqrt_price = data.get("sqrtPriceX96")
    return PositionSnapshot(
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        current_tick=int(data["currentTick"]),
        position_id=str(data["tokenId"]) if "tokenId" in data else None,
        liquidity=int(data.get("liquidity", "0")),
        sqrt_price_x96=int(sqrt_price) if sqrt_price is not None else None,
    )


def to_balance_pair(data: BalanceData) -> BalancePair:
    """Convert fetch-balances output into a BalancePair."""
    return BalancePair(
        raw0=int(data["token0"]["balance"]),
        raw1=int(data["token1"]["balance"]),
        decimals0=int(data["token0"]["decimals"]),
        decimals1=int(data["token1"]["decimals"]),
    )


def _pool_args(pool: PoolConfig) -> list[str]:
    return [pool["token0"], pool["token1"], str(pool["fee"]), str(pool["tick_spacing"]), pool["hooks"]]


def fetch_pool(pool: PoolConfig) -> PoolState:
    """
    Fetch slot0 and active liquidity for the configured pool.

    Args:
        pool: Pool section of the keeper config

    Returns:
        Typed pool state
    """
    logger.info(f"Fetching pool: {pool['symbol0']}/{pool['symbol1']} fee={pool['fee']}")
    result = _run_ts_script("fetch-pool", _pool_args(pool))
    return to_pool_state(result)


def fetch_position(position_id: str) -> PositionSnapshot:
    """
    Fetch a position's tick bounds together with the pool's current tick.

    Args:
        position_id: Position NFT token id

    Returns:
        Typed position snapshot
    """
    logger.info(f"Fetching position: {position_id}")
    result = _run_ts_script("fetch-position", [position_id])
    return to_position_snapshot(result)


def fetch_balances(owner: str, pool: PoolConfig) -> BalancePair:
    """Fetch the wallet's raw balances of the pool's two tokens."""
    logger.info(f"Fetching balances for {owner}")
    result = _run_ts_script("fetch-balances", [owner, pool["token0"], pool["token1"]])
    return to_balance_pair(result)


def list_positions(owner: str) -> list[PositionListing]:
    """List the owner's open positions (subgraph query)."""
    logger.info(f"Listing positions for {owner}")
    result = _run_ts_script("list-positions", [owner])
    logger.info(f"Found {len(result)} open positions")
    return result


def mint_position(pool: PoolConfig, request: CreatePositionRequest) -> MintResult:
    """
    Mint a new position.

    Args:
        pool: Pool section of the keeper config
        request: Amounts, tick bounds, slippage and deadline

    Returns:
        Mint result including the new position id and transaction hash
    """
    logger.info(
        f"Minting position: ticks [{request.tick_lower}, {request.tick_upper}], "
        f"amount0={request.amount0}, amount1={request.amount1}"
    )
    payload = {"pool": dict(pool), **asdict(request)}
    return _run_ts_script(
        "mint-position",
        [json.dumps(payload)],
        timeout=180,  # Longer timeout for transactions
    )


def remove_position(request: RemovePositionRequest) -> RemoveResult:
    """Remove all liquidity from a position and burn it."""
    logger.info(f"Removing position: {request.position_id}")
    return _run_ts_script(
        "remove-position",
        [json.dumps(asdict(request))],
        timeout=180,
    )


def execute_swap(request: SwapRequest) -> SwapResult:
    """Swap through the universal router."""
    logger.info(f"Swapping {request.amount_in} {request.token_in} -> {request.token_out}")
    return _run_ts_script(
        "swap",
        [json.dumps(asdict(request))],
        timeout=180,
    )
