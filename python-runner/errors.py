#!/usr/bin/env python3
"""
Keeper Error Types

Exceptions raised by the sizing, range and policy math. None of them is fatal
to the scheduler: the orchestrator logs them and moves on to the next cycle.
"""


class KeeperError(Exception):
    """Base class for all keeper errors."""


class ArithmeticOverflow(KeeperError):
    """Fixed-point result does not fit in 256 bits."""


class InvalidTick(KeeperError):
    """Tick outside the protocol's tick domain."""

    def __init__(self, tick: int):
        self.tick = tick
        super().__init__(f"Tick {tick} out of bounds")


class InvalidSqrtPrice(InvalidTick):
    """Square-root price outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO)."""

    def __init__(self, sqrt_price_x96: int):
        self.sqrt_price_x96 = sqrt_price_x96
        KeeperError.__init__(self, f"sqrtPriceX96 {sqrt_price_x96} out of bounds")


class SizingError(KeeperError):
    """Position sizing failed; the creation attempt for this cycle is aborted."""


class InsufficientBalance(SizingError):
    """Deployable balance of a token is below the dust floor."""

    def __init__(self, token_index: int, deployable: int, floor: int):
        self.token_index = token_index
        self.deployable = deployable
        self.floor = floor
        super().__init__(
            f"Deployable token{token_index} balance {deployable} is below dust floor {floor}"
        )


class PriceAtRangeBoundary(SizingError):
    """Current price sits on (or outside) a boundary of the chosen range."""


class InvalidTickRange(SizingError):
    """Tick range is empty or not aligned to the pool's tick spacing."""


class StalePoolData(SizingError):
    """Pool snapshot has zero active liquidity or an inconsistent tick."""


class PriceUnavailable(KeeperError):
    """USD price for a token could not be obtained."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"USD price unavailable for {token}")
