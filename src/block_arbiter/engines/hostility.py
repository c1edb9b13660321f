"""
Hostility Detector - decaying composite score over realized bet outcomes.

Each realized loss is checked against a fixed battery of weighted indicators.
An indicator that fires adds its weight to the score and then sits out a
cooldown. Wins and idle blocks decay the score. The level is a pure function
of the score against three ascending thresholds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional

from block_arbiter.core.config import HostilityConfig, HostilityThresholds
from block_arbiter.engines.patterns import OPPOSITE_PATTERNS

logger = logging.getLogger(__name__)


class HostilityLevel(Enum):
    NORMAL = "normal"
    CAUTION = "caution"
    PAUSE = "pause"
    EXTENDED_PAUSE = "extended_pause"


class Indicator(Enum):
    CASCADE = "cascade"
    CROSS_PATTERN = "cross_pattern"
    OPPOSITE_SYNC = "opposite_sync"
    HIGH_MAGNITUDE = "high_magnitude"
    HIGH_MAGNITUDE_CLUSTER = "high_magnitude_cluster"
    WIN_RATE_COLLAPSE = "win_rate_collapse"


PAUSING_LEVELS = (HostilityLevel.PAUSE, HostilityLevel.EXTENDED_PAUSE)


def level_for_score(score: float, thresholds: HostilityThresholds) -> HostilityLevel:
    if score >= thresholds.extended_pause:
        return HostilityLevel.EXTENDED_PAUSE
    if score >= thresholds.pause:
        return HostilityLevel.PAUSE
    if score >= thresholds.caution:
        return HostilityLevel.CAUTION
    return HostilityLevel.NORMAL


@dataclass(frozen=True)
class TradeRecord:
    block_index: int
    pattern: str
    is_win: bool
    magnitude: float


@dataclass(frozen=True)
class IndicatorHit:
    block_index: int
    indicator: str
    weight: float
    detail: str
    score_after: float


@dataclass
class HostilityState:
    score: float = 0.0
    level: HostilityLevel = HostilityLevel.NORMAL
    indicator_history: List[IndicatorHit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "score": self.score,
            "level": self.level.value,
            "indicator_history": [asdict(h) for h in self.indicator_history],
        }


class HostilityDetector:
    def __init__(self, config: HostilityConfig, opposites: Optional[Dict[str, str]] = None):
        self.config = config
        self.opposites = OPPOSITE_PATTERNS if opposites is None else opposites
        self.state = HostilityState()
        self.trades: List[TradeRecord] = []
        self.pattern_loss_streaks: Dict[str, int] = {}
        self.last_fired: Dict[Indicator, int] = {}
        tr = config.triggers
        self._keep = max(
            tr.cascade_losses, tr.cross_pattern_window, tr.opposite_sync_window,
            tr.cluster_window, tr.win_rate_window,
        )

    @property
    def score(self) -> float:
        return self.state.score

    @property
    def level(self) -> HostilityLevel:
        return self.state.level

    def can_trade(self, pattern: str) -> bool:
        if pattern in self.config.exempt_patterns:
            return True
        return self.state.level not in PAUSING_LEVELS

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record_outcome(self, block_index: int, pattern: str, is_win: bool, magnitude: float) -> List[IndicatorHit]:
        """Score one realized (real) outcome. Returns the indicators that fired."""
        trade = TradeRecord(block_index=block_index, pattern=pattern, is_win=is_win, magnitude=magnitude)
        self.trades.append(trade)
        if len(self.trades) > self._keep:
            self.trades = self.trades[-self._keep:]

        if is_win:
            self.pattern_loss_streaks[pattern] = 0
            self._set_score(self.state.score - self.config.decay.per_win)
            return []

        self.pattern_loss_streaks[pattern] = self.pattern_loss_streaks.get(pattern, 0) + 1
        hits: List[IndicatorHit] = []
        for indicator, detail in self._evaluate_loss(trade):
            if not self._cooled_down(indicator, block_index):
                continue
            weight = float(getattr(self.config.weights, indicator.value))
            self.last_fired[indicator] = block_index
            self._set_score(self.state.score + weight)
            hit = IndicatorHit(
                block_index=block_index,
                indicator=indicator.value,
                weight=weight,
                detail=detail,
                score_after=self.state.score,
            )
            self.state.indicator_history.append(hit)
            hits.append(hit)
            logger.debug(f"Hostility indicator {indicator.value} fired at block {block_index}: {detail}")
        return hits

    def record_idle(self, block_index: int) -> None:
        self._set_score(self.state.score - self.config.decay.per_idle_block)

    def _set_score(self, value: float) -> None:
        previous = self.state.level
        self.state.score = max(0.0, value)
        self.state.level = level_for_score(self.state.score, self.config.thresholds)
        if self.state.level != previous:
            logger.info(f"Hostility level {previous.value} -> {self.state.level.value} (score={self.state.score:.1f})")

    def _cooled_down(self, indicator: Indicator, block_index: int) -> bool:
        last = self.last_fired.get(indicator)
        return last is None or block_index - last >= self.config.cooldown_blocks

    def _evaluate_loss(self, trade: TradeRecord):
        tr = self.config.triggers
        idx = trade.block_index
        losses = [t for t in self.trades if not t.is_win]

        streak = self.pattern_loss_streaks.get(trade.pattern, 0)
        if streak >= tr.cascade_losses:
            yield Indicator.CASCADE, f"{trade.pattern} lost {streak} in a row"

        recent = {t.pattern for t in losses if idx - t.block_index < tr.cross_pattern_window}
        if len(recent) >= tr.cross_pattern_min:
            yield Indicator.CROSS_PATTERN, f"{len(recent)} patterns lost within {tr.cross_pattern_window} blocks"

        opposite = self.opposites.get(trade.pattern)
        if opposite and any(
            t.pattern == opposite and idx - t.block_index < tr.opposite_sync_window for t in losses
        ):
            yield Indicator.OPPOSITE_SYNC, f"{trade.pattern} and {opposite} both lost"

        if trade.magnitude >= tr.high_magnitude:
            yield Indicator.HIGH_MAGNITUDE, f"loss magnitude {trade.magnitude:.0f}"

        heavy = [
            t for t in losses
            if t.magnitude >= tr.cluster_magnitude and idx - t.block_index < tr.cluster_window
        ]
        if len(heavy) >= tr.cluster_count:
            yield Indicator.HIGH_MAGNITUDE_CLUSTER, f"{len(heavy)} losses >= {tr.cluster_magnitude:.0f} within {tr.cluster_window} blocks"

        window = self.trades[-tr.win_rate_window:]
        if len(window) >= tr.win_rate_window:
            win_rate = sum(1 for t in window if t.is_win) / len(window)
            if win_rate < tr.win_rate_floor:
                yield Indicator.WIN_RATE_COLLAPSE, f"win rate {win_rate:.0%} over {len(window)} trades"

    def snapshot(self) -> Dict[str, object]:
        return self.state.to_dict()
