from __future__ import annotations

from typing import Dict, Optional

from block_arbiter.engines.continuation import CONTINUATION_PATTERN, ContinuationStateMachine, MachineState
from block_arbiter.engines.patterns import PatternSignal
from block_arbiter.engines.run_tracker import RunTracker
from block_arbiter.strategies.base import BetProposal, Strategy


class ContinuationStrategy(Strategy):
    """Bets the direction of the last block while the continuation machine is live or paused."""

    source = "continuation"

    def __init__(self, machine: ContinuationStateMachine, tracker: RunTracker):
        self.machine = machine
        self.tracker = tracker

    def propose(self, pending: Dict[str, PatternSignal]) -> Optional[BetProposal]:
        ms = self.machine.machine_state
        last = self.tracker.last_block
        if last is None or ms not in (MachineState.ACTIVE, MachineState.PAUSED):
            return None
        return BetProposal(
            source=self.source,
            pattern=CONTINUATION_PATTERN,
            direction=last.direction,
            reason=f"continuation {ms.value.lower()}, life {self.machine.state.remaining_life:.0f}",
        )
