#!/usr/bin/env python3
"""
Keeper State Module

Scheduler-owned state carried across monitoring cycles:
- The managed position id
- Per-position health records (out-of-range counters)
- The in-flight flag that keeps cycles from overlapping

State is held in memory; on restart the keeper rediscovers its position
from the config or from the owner's open positions.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pool_models import PositionHealth

logger = logging.getLogger(__name__)


@dataclass
class KeeperState:
    """
    Mutable state for one keeper process.

    Only the scheduler mutates it, and only between begin_cycle() and
    end_cycle().
    """

    current_position_id: str | None = None
    health: dict[str, PositionHealth] = field(default_factory=dict)
    in_flight: bool = False
    cycles_run: int = 0
    cycles_skipped: int = 0
    last_cycle_at: datetime | None = None
    last_errors: list[str] = field(default_factory=list)

    def begin_cycle(self) -> bool:
        """
        Claim the cycle slot.

        Returns:
            False if a previous cycle is still running (the tick is skipped)
        """
        if self.in_flight:
            self.cycles_skipped += 1
            logger.warning(f"Previous cycle still running, skipping tick ({self.cycles_skipped} skipped)")
            return False
        self.in_flight = True
        self.last_errors = []
        return True

    def end_cycle(self) -> None:
        """Release the cycle slot and record completion."""
        self.in_flight = False
        self.cycles_run += 1
        self.last_cycle_at = datetime.now(timezone.utc)

    def record_error(self, stage: str, error: Exception) -> None:
        self.last_errors.append(f"{stage}: {error}")

    def set_position(self, position_id: str | None) -> None:
        if position_id != self.current_position_id:
            logger.info(f"Managed position: {self.current_position_id} -> {position_id}")
        self.current_position_id = position_id

    def summary(self) -> dict:
        """JSON-friendly view for status output."""
        return {
            "current_position_id": self.current_position_id,
            "in_flight": self.in_flight,
            "cycles_run": self.cycles_run,
            "cycles_skipped": self.cycles_skipped,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "last_errors": self.last_errors,
            "health": {
                position_id: {
                    "state": health.state.value,
                    "consecutive_out_of_range": health.consecutive_out_of_range,
                    "tick_lower": health.tick_range.lower,
                    "tick_upper": health.tick_range.upper,
                }
                for position_id, health in self.health.items()
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.summary(), indent=2)
