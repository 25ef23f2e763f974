#!/usr/bin/env python3
"""
Position Health Monitor

Tracks whether each managed position is inside its tick range. A position is
only declared removable after it has been out of range for a number of
consecutive monitoring cycles, so a single noisy tick does not trigger an
exit.

The health map itself lives in the scheduler's KeeperState; the monitor only
holds the threshold and the transition rules.
"""

import logging
from dataclasses import dataclass, replace

from pool_models import HealthState, PositionHealth, PositionSnapshot, TickRange

logger = logging.getLogger(__name__)

DEFAULT_OUT_OF_RANGE_THRESHOLD = 10


@dataclass(frozen=True)
class HealthVerdict:
    """Outcome of one observation."""

    health: PositionHealth
    remove: bool


def advance(health: PositionHealth, snapshot: PositionSnapshot, threshold: int) -> HealthVerdict:
    """
    Apply one monitoring observation to a position's health.

    Args:
        health: Current health record
        snapshot: Latest tick bounds and current tick
        threshold: Consecutive out-of-range cycles before removal

    Returns:
        HealthVerdict; remove is True exactly once, on the transition to CLOSED
    """
    if health.state is HealthState.CLOSED:
        return HealthVerdict(health=health, remove=False)

    tick_range = TickRange(lower=snapshot.tick_lower, upper=snapshot.tick_upper)

    if tick_range.contains(snapshot.current_tick):
        updated = replace(
            health,
            tick_range=tick_range,
            consecutive_out_of_range=0,
            state=HealthState.IN_RANGE,
        )
        return HealthVerdict(health=updated, remove=False)

    count = health.consecutive_out_of_range + 1
    if count >= threshold:
        updated = replace(
            health,
            tick_range=tick_range,
            consecutive_out_of_range=count,
            state=HealthState.CLOSED,
        )
        return HealthVerdict(health=updated, remove=True)

    updated = replace(
        health,
        tick_range=tick_range,
        consecutive_out_of_range=count,
        state=HealthState.OUT_OF_RANGE,
    )
    return HealthVerdict(health=updated, remove=False)


class PositionHealthMonitor:
    """
    Applies the out-of-range hysteresis to a health map owned by the caller.
    """

    def __init__(self, threshold: int = DEFAULT_OUT_OF_RANGE_THRESHOLD):
        if threshold < 1:
            raise ValueError(f"Out-of-range threshold must be at least 1, got {threshold}")
        self.threshold = threshold

    def track(
        self,
        health_map: dict[str, PositionHealth],
        position_id: str,
        tick_range: TickRange,
    ) -> PositionHealth:
        """Start tracking a position (or reset an existing record)."""
        health = PositionHealth(position_id=position_id, tick_range=tick_range)
        health_map[position_id] = health
        logger.info(f"Tracking position {position_id} range=[{tick_range.lower}, {tick_range.upper}]")
        return health

    def observe(
        self,
        health_map: dict[str, PositionHealth],
        position_id: str,
        snapshot: PositionSnapshot,
    ) -> HealthVerdict:
        """
        Feed one snapshot for a position and store the resulting health.

        Untracked positions are tracked on first observation.
        """
        health = health_map.get(position_id)
        if health is None:
            health = self.track(
                health_map,
                position_id,
                TickRange(lower=snapshot.tick_lower, upper=snapshot.tick_upper),
            )

        was_in_range = health.state is HealthState.IN_RANGE
        verdict = advance(health, snapshot, self.threshold)
        health_map[position_id] = verdict.health

        now_in_range = verdict.health.state is HealthState.IN_RANGE
        if health.state is not HealthState.CLOSED and was_in_range != now_in_range:
            if now_in_range:
                logger.info(f"Position {position_id} has entered range at tick {snapshot.current_tick}")
            else:
                logger.warning(f"Position {position_id} has exited range at tick {snapshot.current_tick}")

        status = verdict.health.state.value.upper()
        logger.info(
            f"Position {position_id}: {status} | tick={snapshot.current_tick} "
            f"range=[{snapshot.tick_lower}, {snapshot.tick_upper}] "
            f"out_of_range_count={verdict.health.consecutive_out_of_range}/{self.threshold}"
        )
        if verdict.remove:
            logger.warning(
                f"Position {position_id} out of range for "
                f"{verdict.health.consecutive_out_of_range} cycles, requesting removal"
            )
        return verdict

    def forget(self, health_map: dict[str, PositionHealth], position_id: str) -> None:
        """Drop a position's record once it is closed on-chain."""
        if health_map.pop(position_id, None) is not None:
            logger.info(f"Stopped tracking position {position_id}")


def analyze_position(snapshot: PositionSnapshot) -> dict:
    """Distance of the current tick to each range edge, in ticks and percent of width."""
    current_tick = snapshot.current_tick
    lower_tick = snapshot.tick_lower
    upper_tick = snapshot.tick_upper

    dist_to_lower = current_tick - lower_tick
    dist_to_upper = upper_tick - current_tick
    range_width = upper_tick - lower_tick

    dist_to_lower_pct = (dist_to_lower / range_width) * 100 if range_width > 0 else 0
    dist_to_upper_pct = (dist_to_upper / range_width) * 100 if range_width > 0 else 0

    return {
        "in_range": snapshot.in_range,
        "current_tick": current_tick,
        "lower_tick": lower_tick,
        "upper_tick": upper_tick,
        "dist_to_lower_ticks": dist_to_lower,
        "dist_to_upper_ticks": dist_to_upper,
        "dist_to_lower_pct": round(dist_to_lower_pct, 2),
        "dist_to_upper_pct": round(dist_to_upper_pct, 2),
        "range_width_ticks": range_width,
    }
