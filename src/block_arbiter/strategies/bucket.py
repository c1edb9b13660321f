from __future__ import annotations

from typing import Dict, Optional

from block_arbiter.engines.lifecycle import PatternLifecycleManager
from block_arbiter.engines.patterns import BUCKET_PATTERNS, PatternSignal
from block_arbiter.strategies.base import BetProposal, Strategy


class BucketStrategy(Strategy):
    """Single-shot rule patterns. Picks the most profitable live pattern with a signal."""

    source = "bucket"

    def __init__(self, lifecycle: PatternLifecycleManager):
        self.lifecycle = lifecycle

    def propose(self, pending: Dict[str, PatternSignal]) -> Optional[BetProposal]:
        ranked = self.lifecycle.active_patterns_by_profit(among=[p for p in BUCKET_PATTERNS if p in pending])
        if not ranked:
            return None
        pattern = ranked[0]
        cycle = self.lifecycle.get(pattern)
        return BetProposal(
            source=self.source,
            pattern=pattern,
            direction=pending[pattern].direction,
            reason=(
                f"{pattern} top of {len(ranked)} live "
                f"(cumulative {cycle.cumulative_observation_profit:+.0f}, all-time {cycle.all_time_profit:+.0f})"
            ),
        )
