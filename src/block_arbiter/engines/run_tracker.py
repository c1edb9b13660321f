"""
Run Tracker - derives run-length/direction history from the block stream.

A run is a maximal sequence of consecutive blocks sharing a direction. The
tracker keeps the ordered lengths/directions of every run, the last entry
being the in-progress run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from block_arbiter.core.types import Block


@dataclass(frozen=True)
class Run:
    direction: int
    length: int


class RunTracker:
    def __init__(self) -> None:
        self.blocks: List[Block] = []
        self.lengths: List[int] = []
        self.directions: List[int] = []

    def append(self, block: Block) -> Optional[Run]:
        """Add a block. Returns the run it broke, if any."""
        broken: Optional[Run] = None
        if not self.directions or self.directions[-1] != block.direction:
            if self.directions:
                broken = Run(direction=self.directions[-1], length=self.lengths[-1])
            self.lengths.append(1)
            self.directions.append(block.direction)
        else:
            self.lengths[-1] += 1
        self.blocks.append(block)
        return broken

    # Queries

    @property
    def current(self) -> Optional[Run]:
        if not self.lengths:
            return None
        return Run(direction=self.directions[-1], length=self.lengths[-1])

    @property
    def last_block(self) -> Optional[Block]:
        return self.blocks[-1] if self.blocks else None

    @property
    def next_index(self) -> int:
        return len(self.blocks)

    def current_run_blocks(self) -> List[Block]:
        if not self.lengths:
            return []
        return self.blocks[-self.lengths[-1]:]

    def current_run_profit(self) -> float:
        """Profit a continuation bettor would have realized on the in-progress run.

        The first block of a run is the reversal that starts it; every later block is a
        continuation win worth its magnitude.
        """
        return float(sum(b.magnitude for b in self.current_run_blocks()[1:]))

    def is_reversal(self, block: Block) -> bool:
        """True if `block` would break the in-progress run."""
        return bool(self.directions) and self.directions[-1] != block.direction
