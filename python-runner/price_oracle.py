#!/usr/bin/env python3
"""
USD Price Module

Resolves USD prices for the pool's tokens, in order:
  1. Configured stablecoins are priced at 1.0
  2. A token paired with a stablecoin in the managed pool is priced from the
     pool's sqrtPriceX96
  3. The external price API (DefiLlama-style /prices/current endpoint)

A token that cannot be priced resolves to None; the caller decides what to do.
"""

import argparse
import json
import logging
from pathlib import Path

import requests

from pool_models import PoolState
from range_selector import price_from_sqrt_price_x96
from settings import DEFAULT_CONFIG_PATH, Config, get_price_api_key, load_config

logger = logging.getLogger(__name__)

DEFAULT_PRICE_API_URL = "https://coins.llama.fi"
REQUEST_TIMEOUT = 30


def is_stablecoin(token: str, config: Config) -> bool:
    return token.lower() in {addr.lower() for addr in config["stablecoins"]}


def pool_implied_price(token: str, config: Config, pool_state: PoolState | None) -> float | None:
    """
    Price a token from the managed pool when its counterpart is a stablecoin.

    Returns:
        USD price, or None if the pool does not pair the token with a stablecoin
    """
    if pool_state is None:
        return None

    pool = config["pool"]
    token0, token1 = pool["token0"].lower(), pool["token1"].lower()
    # price of token0 in token1, human units
    price = price_from_sqrt_price_x96(pool_state.sqrt_price_x96, pool["decimals0"], pool["decimals1"])
    if price <= 0:
        return None

    if token.lower() == token0 and is_stablecoin(pool["token1"], config):
        return price
    if token.lower() == token1 and is_stablecoin(pool["token0"], config):
        return 1 / price
    return None


def fetch_api_price(token: str, config: Config) -> float | None:
    """Fetch a token's USD price from the price API."""
    base_url = (config.get("price_api_url") or DEFAULT_PRICE_API_URL).rstrip("/")
    url = f"{base_url}/prices/current/{config['chain']}:{token}"

    headers = {}
    api_key = get_price_api_key()
    if api_key:
        headers["x-api-key"] = api_key

    try:
        response = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Price API request failed for {token}: {e}")
        return None

    coin = data.get("coins", {}).get(f"{config['chain']}:{token}")
    if not coin or "price" not in coin:
        logger.warning(f"Price API has no price for {token}")
        return None

    price = float(coin["price"])
    return price if price > 0 else None


def price_usd(token: str, config: Config, pool_state: PoolState | None = None) -> float | None:
    """
    Resolve a token's USD price.

    Args:
        token: Token address
        config: Keeper config (stablecoin list, pool, API settings)
        pool_state: Latest pool state, used for pool-implied prices

    Returns:
        USD price or None
    """
    if is_stablecoin(token, config):
        return 1.0

    price = pool_implied_price(token, config, pool_state)
    if price is not None:
        logger.debug(f"Pool-implied price for {token}: ${price:.6f}")
        return price

    price = fetch_api_price(token, config)
    if price is None:
        logger.warning(f"No USD price available for {token}")
    else:
        logger.debug(f"API price for {token}: ${price:.6f}")
    return price


# CLI interface
if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Resolve a token's USD price")
    parser.add_argument("token", help="Token address")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG_PATH), help="Config file path")

    args = parser.parse_args()

    cfg = load_config(Path(args.config))
    print(json.dumps({"token": args.token, "price_usd": price_usd(args.token, cfg)}, indent=2))
