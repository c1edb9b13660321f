"""
Base Strategy Interface

A strategy looks at the signals pending for the next block and may propose one
bet. Strategies never place bets themselves and have no pause/resume semantics;
the arbitration manager decides which proposal (if any) becomes the block's bet.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from block_arbiter.engines.patterns import PatternSignal


@dataclass(frozen=True)
class BetProposal:
    source: str        # pocket | continuation | bucket
    pattern: str
    direction: int     # +1 up, -1 down
    reason: str


class Strategy(ABC):
    source: str = ""

    @abstractmethod
    def propose(self, pending: Dict[str, PatternSignal]) -> Optional[BetProposal]:
        """Return a proposal for the next block, or None."""
