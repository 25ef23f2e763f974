#!/usr/bin/env python3
"""
Pool and Position Models

Typed snapshots consumed by the keeper core and the requests it emits for the
executor. Raw executor JSON is converted into these at the boundary
(see executor.py); the core never works on untyped dicts.
"""

from dataclasses import dataclass
from enum import Enum

from errors import InvalidTick, InvalidTickRange, StalePoolData
from tick_math import MAX_TICK, MIN_TICK


@dataclass(frozen=True)
class PoolState:
    """Slot0 + active liquidity of a pool."""

    sqrt_price_x96: int
    tick: int
    liquidity: int
    tick_spacing: int
    fee: int

    def __post_init__(self):
        if self.sqrt_price_x96 <= 0:
            raise StalePoolData(f"sqrtPriceX96 must be positive, got {self.sqrt_price_x96}")
        if self.tick < MIN_TICK or self.tick > MAX_TICK:
            raise InvalidTick(self.tick)
        if self.tick_spacing <= 0:
            raise InvalidTickRange(f"Tick spacing must be positive, got {self.tick_spacing}")
        if self.liquidity < 0:
            raise StalePoolData(f"Negative pool liquidity {self.liquidity}")


@dataclass(frozen=True)
class TickRange:
    lower: int
    upper: int

    def __post_init__(self):
        if self.lower >= self.upper:
            raise InvalidTickRange(f"Empty tick range [{self.lower}, {self.upper}]")

    def contains(self, tick: int) -> bool:
        """Inclusive on both ends."""
        return self.lower <= tick <= self.upper

    def is_aligned(self, tick_spacing: int) -> bool:
        return self.lower % tick_spacing == 0 and self.upper % tick_spacing == 0


@dataclass(frozen=True)
class BalancePair:
    """Raw wallet balances (smallest units) of the pool's two tokens."""

    raw0: int
    raw1: int
    decimals0: int
    decimals1: int


class ConstraintAsset(str, Enum):
    TOKEN0 = "token0"
    TOKEN1 = "token1"


@dataclass(frozen=True)
class SizingResult:
    amount0: int
    amount1: int
    tick_lower: int
    tick_upper: int
    liquidity: int = 0
    constraint: ConstraintAsset | None = None


@dataclass(frozen=True)
class PositionSnapshot:
    """Latest on-chain view of a managed position."""

    tick_lower: int
    tick_upper: int
    current_tick: int
    position_id: str | None = None
    liquidity: int = 0
    sqrt_price_x96: int | None = None

    @property
    def in_range(self) -> bool:
        return self.tick_lower <= self.current_tick <= self.tick_upper


class HealthState(str, Enum):
    IN_RANGE = "in_range"
    OUT_OF_RANGE = "out_of_range"
    CLOSED = "closed"


@dataclass(frozen=True)
class PositionHealth:
    position_id: str
    tick_range: TickRange
    consecutive_out_of_range: int = 0
    state: HealthState = HealthState.IN_RANGE


@dataclass(frozen=True)
class PortfolioSnapshot:
    value0_usd: float
    value1_usd: float
    total_usd: float
    ratio0: float
    ratio1: float


class SwapDirection(str, Enum):
    # Named after the token that is sold
    TOKEN0_TO_TOKEN1 = "token0_to_token1"
    TOKEN1_TO_TOKEN0 = "token1_to_token0"


@dataclass(frozen=True)
class RebalanceAction:
    direction: SwapDirection
    amount_in: int  # smallest units of the sold token
    amount_in_usd: float = 0.0


@dataclass(frozen=True)
class CreatePositionRequest:
    amount0: int
    amount1: int
    tick_lower: int
    tick_upper: int
    slippage_bps: int
    deadline: int


@dataclass(frozen=True)
class RemovePositionRequest:
    position_id: str
    slippage_bps: int
    deadline: int


@dataclass(frozen=True)
class SwapRequest:
    token_in: str
    token_out: str
    amount_in: int
    slippage_bps: int
    deadline: int
    fee: int = 0
    tick_spacing: int = 0
