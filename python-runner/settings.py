#!/usr/bin/env python3
"""
Keeper Configuration

Loads the JSON config file and the .env secrets. The config file names the
managed pool and the policy knobs; the .env file holds the wallet address and
service endpoints.
"""

import json
import os
from pathlib import Path
from typing import TypedDict

from dotenv import load_dotenv

# Load .env from project root
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH)

# Default config path
DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "keeper.json"


class PoolConfig(TypedDict):
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    hooks: str
    symbol0: str
    symbol1: str
    decimals0: int
    decimals1: int


class Config(TypedDict):
    pool: PoolConfig
    owner_address: str | None
    position_id: str | None
    deployable_balance_fraction: float
    rebalance_threshold: float
    target_allocation_fraction: float
    out_of_range_threshold: int
    monitoring_interval_minutes: int
    tick_range_width: int
    deadline_buffer_seconds: int
    slippage_bps: int
    min_swap_value_usd: float
    min_deployable_units: float
    stablecoins: list[str]
    price_api_url: str | None
    chain: str
    dry_run: bool


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Tick spacing for the standard fee tiers
# fee=100: 0.01%, fee=500: 0.05%, fee=3000: 0.30%, fee=10000: 1.00%
TICK_SPACINGS = {
    100: 1,
    500: 10,
    3000: 60,
    10000: 200,
}


def get_owner_address() -> str | None:
    """Wallet address managed by the keeper (from environment)."""
    return os.getenv("WALLET_ADDRESS")


def get_price_api_url() -> str | None:
    return os.getenv("PRICE_API_URL")


def get_price_api_key() -> str | None:
    """Price API key (optional)."""
    return os.getenv("PRICE_API_KEY")


def apply_defaults(config: dict) -> Config:
    """Fill in optional fields and validate the policy knobs."""
    pool = config["pool"]
    for field in ("token0", "token1", "fee"):
        if field not in pool:
            raise ValueError(f"Missing required pool field: {field}")
    if "tick_spacing" not in pool:
        if pool["fee"] not in TICK_SPACINGS:
            raise ValueError(f"No default tick spacing for fee tier {pool['fee']}, set pool.tick_spacing")
        pool["tick_spacing"] = TICK_SPACINGS[pool["fee"]]
    pool.setdefault("hooks", ZERO_ADDRESS)
    pool.setdefault("symbol0", "TOKEN0")
    pool.setdefault("symbol1", "TOKEN1")
    pool.setdefault("decimals0", 18)
    pool.setdefault("decimals1", 18)

    config.setdefault("owner_address", get_owner_address())
    config.setdefault("position_id", None)
    config.setdefault("deployable_balance_fraction", 0.40)
    config.setdefault("rebalance_threshold", 0.10)
    config.setdefault("target_allocation_fraction", 0.30)
    config.setdefault("out_of_range_threshold", 10)
    config.setdefault("monitoring_interval_minutes", 6)
    config.setdefault("tick_range_width", 5)
    config.setdefault("deadline_buffer_seconds", 300)
    config.setdefault("slippage_bps", 50)
    config.setdefault("min_swap_value_usd", 1.0)
    config.setdefault("min_deployable_units", 0.000001)
    config.setdefault("stablecoins", [])
    config.setdefault("price_api_url", get_price_api_url())
    config.setdefault("chain", "unichain")
    config.setdefault("dry_run", False)

    if not 0 < config["deployable_balance_fraction"] <= 1:
        raise ValueError("deployable_balance_fraction must be in (0, 1]")
    if not 0 <= config["rebalance_threshold"] < 0.5:
        raise ValueError("rebalance_threshold must be in [0, 0.5)")
    if not config["rebalance_threshold"] < config["target_allocation_fraction"] <= 0.5:
        raise ValueError("target_allocation_fraction must be above rebalance_threshold and at most 0.5")
    if config["out_of_range_threshold"] < 1:
        raise ValueError("out_of_range_threshold must be at least 1")
    if config["monitoring_interval_minutes"] <= 0:
        raise ValueError("monitoring_interval_minutes must be positive")
    if config["tick_range_width"] < 1:
        raise ValueError("tick_range_width must be at least 1")

    return config


def load_config(config_path: Path) -> Config:
    """Load configuration from JSON file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        config = json.load(f)

    # Validate required fields
    required = ["pool"]
    for field in required:
        if field not in config:
            raise ValueError(f"Missing required config field: {field}")

    return apply_defaults(config)
