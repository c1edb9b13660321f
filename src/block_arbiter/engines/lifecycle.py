"""
Pattern Lifecycle Manager - promotes patterns from observation to live betting.

Every named pattern owns one PatternCycle:
- OBSERVING: signals are scored but never bet
- ACTIVE: signals are eligible for real bets
- BROKEN: transient, the active stint just ended on a loss

Promotion: a single observed result >= single_result_threshold, or cumulative
observation profit >= cumulative_threshold. Demotion: any loss while ACTIVE.
all_time_profit accumulates every evaluated result and is never reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from block_arbiter.core.config import LifecycleConfig
from block_arbiter.core.errors import InvariantViolation, UnknownPatternError
from block_arbiter.core.events import PatternActivated, PatternBreak
from block_arbiter.engines.patterns import CONTINUOUS_PATTERNS, OPPOSITE_PATTERNS, PATTERN_NAMES

logger = logging.getLogger(__name__)


class PatternState(Enum):
    OBSERVING = "observing"
    ACTIVE = "active"
    BROKEN = "broken"


@dataclass
class PatternCycle:
    pattern: str
    is_continuous: bool
    state: PatternState = PatternState.OBSERVING
    observation_results: List[float] = field(default_factory=list)
    cumulative_observation_profit: float = 0.0
    all_time_profit: float = 0.0
    active_results: List[float] = field(default_factory=list)
    last_run_profit: float = 0.0
    activation_count: int = 0
    break_count: int = 0
    activated_at: Optional[int] = None
    last_break_at: Optional[int] = None

    @property
    def wins_since_formation(self) -> int:
        return sum(1 for r in self.active_results if r > 0)

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


class PatternLifecycleManager:
    def __init__(self, config: LifecycleConfig, patterns: Iterable[str] = PATTERN_NAMES):
        self.config = config
        self.known = tuple(patterns)
        self.cycles: Dict[str, PatternCycle] = {}

    def _cycle(self, pattern: str) -> PatternCycle:
        if pattern not in self.known:
            raise UnknownPatternError(pattern)
        cycle = self.cycles.get(pattern)
        if cycle is None:
            # Created at first detection, lives for the whole session
            cycle = PatternCycle(pattern=pattern, is_continuous=pattern in CONTINUOUS_PATTERNS)
            self.cycles[pattern] = cycle
        return cycle

    def register(self, pattern: str) -> PatternCycle:
        return self._cycle(pattern)

    def get(self, pattern: str) -> Optional[PatternCycle]:
        if pattern not in self.known:
            raise UnknownPatternError(pattern)
        return self.cycles.get(pattern)

    def is_active(self, pattern: str) -> bool:
        cycle = self.get(pattern)
        return cycle is not None and cycle.state == PatternState.ACTIVE

    def opposite_of(self, pattern: str) -> Optional[str]:
        if pattern not in self.known:
            raise UnknownPatternError(pattern)
        return OPPOSITE_PATTERNS.get(pattern)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def observe(self, pattern: str, signed_profit: float, block_index: int = 0) -> Optional[PatternActivated]:
        """Record an observation-phase result. Returns an activation event on promotion."""
        cycle = self._cycle(pattern)
        if cycle.state != PatternState.OBSERVING:
            raise InvariantViolation(f"{pattern}: observe() called while {cycle.state.value}")

        cycle.all_time_profit += signed_profit
        cycle.observation_results.append(signed_profit)
        if signed_profit >= 0:
            cycle.cumulative_observation_profit += signed_profit
        else:
            cycle.cumulative_observation_profit = 0.0

        trigger = None
        if any(r >= self.config.single_result_threshold for r in cycle.observation_results):
            trigger = "single_result"
        elif cycle.cumulative_observation_profit >= self.config.cumulative_threshold:
            trigger = "cumulative"
        if trigger is None:
            return None

        cycle.state = PatternState.ACTIVE
        cycle.activation_count += 1
        cycle.activated_at = block_index
        cycle.active_results = []
        cycle.last_run_profit = 0.0
        logger.info(
            f"Pattern {pattern} activated at block {block_index} "
            f"({trigger}, cumulative={cycle.cumulative_observation_profit:.1f})"
        )
        return PatternActivated(block_index=block_index, pattern=pattern, trigger=trigger)

    def evaluate_active_bet(self, pattern: str, signed_profit: float, block_index: int = 0) -> Optional[PatternBreak]:
        """Record a live result. A loss demotes the pattern back to observation."""
        cycle = self._cycle(pattern)
        if cycle.state != PatternState.ACTIVE:
            raise InvariantViolation(f"{pattern}: evaluate_active_bet() called while {cycle.state.value}")

        cycle.all_time_profit += signed_profit
        cycle.active_results.append(signed_profit)
        cycle.last_run_profit += signed_profit
        if signed_profit >= 0:
            return None

        prior_wins = cycle.wins_since_formation
        run_profit = cycle.last_run_profit
        cycle.state = PatternState.BROKEN
        cycle.break_count += 1
        cycle.last_break_at = block_index
        # broken -> observing with a clean slate; all_time_profit survives
        cycle.observation_results = []
        cycle.cumulative_observation_profit = 0.0
        cycle.active_results = []
        cycle.last_run_profit = 0.0
        cycle.activated_at = None
        cycle.state = PatternState.OBSERVING
        logger.info(f"Pattern {pattern} broke at block {block_index} (loss={signed_profit:.1f}, run={run_profit:.1f})")
        return PatternBreak(
            block_index=block_index,
            pattern=pattern,
            loss=signed_profit,
            run_profit=run_profit,
            prior_wins=prior_wins,
        )

    def apply_result(
        self, pattern: str, signed_profit: float, block_index: int = 0
    ) -> Optional[Union[PatternActivated, PatternBreak]]:
        """Route a resolved signal to observe() or evaluate_active_bet() by current state."""
        if self.is_active(pattern):
            return self.evaluate_active_bet(pattern, signed_profit, block_index)
        return self.observe(pattern, signed_profit, block_index)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_patterns_by_profit(self, among: Optional[Iterable[str]] = None) -> List[str]:
        """Active patterns ranked by cumulative observation profit, then all-time profit.

        Ties keep catalogue order so the ranking is deterministic.
        """
        names = [p for p in (among if among is not None else self.known) if self.is_active(p)]
        order = {p: i for i, p in enumerate(self.known)}
        return sorted(
            names,
            key=lambda p: (
                -self.cycles[p].cumulative_observation_profit,
                -self.cycles[p].all_time_profit,
                order[p],
            ),
        )

    def reset(self) -> None:
        self.cycles = {}

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        return {p: self.cycles[p].to_dict() for p in self.known if p in self.cycles}
