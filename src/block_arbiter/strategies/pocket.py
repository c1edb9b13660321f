"""
Alternation ("Pocket") strategy: ZZ and its inverse AntiZZ.

Both patterns fire on the same zig-zag structure with opposite predictions, so
at most one of them is normally live. When both are, the one currently realizing
more profit in its live stint wins.
"""

from __future__ import annotations

from typing import Dict, Optional

from block_arbiter.engines.lifecycle import PatternLifecycleManager
from block_arbiter.engines.patterns import POCKET_PATTERNS, PatternSignal
from block_arbiter.strategies.base import BetProposal, Strategy


class PocketStrategy(Strategy):
    source = "pocket"

    def __init__(self, lifecycle: PatternLifecycleManager):
        self.lifecycle = lifecycle

    def propose(self, pending: Dict[str, PatternSignal]) -> Optional[BetProposal]:
        best = None
        best_profit = 0.0
        for pattern in POCKET_PATTERNS:
            if pattern not in pending or not self.lifecycle.is_active(pattern):
                continue
            profit = self.lifecycle.get(pattern).last_run_profit
            if best is None or profit > best_profit:
                best, best_profit = pattern, profit
        if best is None:
            return None
        return BetProposal(
            source=self.source,
            pattern=best,
            direction=pending[best].direction,
            reason=f"{best} live, stint profit {best_profit:+.0f}",
        )
