"""
Tests for the hostility detector: indicator battery, cooldown, decay, level mapping.
"""

from __future__ import annotations

import pytest

from block_arbiter.core.config import HostilityConfig, HostilityThresholds, HostilityTriggers
from block_arbiter.engines.hostility import HostilityDetector, HostilityLevel, level_for_score


@pytest.fixture
def detector():
    return HostilityDetector(HostilityConfig())


def fired(hits):
    return [h.indicator for h in hits]


# =============================================================================
# Level mapping
# =============================================================================

@pytest.mark.parametrize(
    "score,level",
    [
        (0.0, HostilityLevel.NORMAL),
        (9.9, HostilityLevel.NORMAL),
        (10.0, HostilityLevel.CAUTION),
        (20.0, HostilityLevel.PAUSE),
        (24.5, HostilityLevel.PAUSE),
        (25.0, HostilityLevel.EXTENDED_PAUSE),
    ],
)
def test_level_is_pure_function_of_score(score, level):
    assert level_for_score(score, HostilityThresholds()) == level


# =============================================================================
# Indicators
# =============================================================================

def test_high_magnitude_loss(detector):
    hits = detector.record_outcome(0, "2A2", False, 95)
    assert fired(hits) == ["high_magnitude"]
    assert detector.score == 1.0


def test_cross_pattern_losses(detector):
    assert detector.record_outcome(0, "2A2", False, 10) == []
    hits = detector.record_outcome(1, "3A3", False, 10)
    assert fired(hits) == ["cross_pattern"]
    assert detector.score == 2.0


def test_opposite_patterns_failing_together(detector):
    detector.record_outcome(0, "2A2", False, 10)
    hits = detector.record_outcome(1, "Anti2A2", False, 10)
    assert fired(hits) == ["cross_pattern", "opposite_sync"]
    assert detector.score == 6.0


def test_cascade_and_cooldown(detector):
    """The same indicator cannot re-fire inside its cooldown."""
    detector.record_outcome(0, "2A2", False, 10)
    detector.record_outcome(5, "2A2", False, 10)
    hits = detector.record_outcome(10, "2A2", False, 10)
    assert fired(hits) == ["cascade"]
    assert detector.score == 3.0

    assert detector.record_outcome(11, "2A2", False, 10) == []
    hits = detector.record_outcome(13, "2A2", False, 10)
    assert fired(hits) == ["cascade"]
    assert detector.score == 6.0


def test_high_magnitude_cluster():
    cfg = HostilityConfig(cooldown_blocks=0)
    det = HostilityDetector(cfg)
    det.record_outcome(0, "PP", False, 75)
    det.record_outcome(5, "PP", False, 80)
    hits = det.record_outcome(6, "PP", False, 85)
    # cluster window is 5 blocks, so block 0 is outside
    assert "high_magnitude_cluster" not in fired(hits)
    hits = det.record_outcome(7, "PP", False, 72)
    assert "high_magnitude_cluster" in fired(hits)


def test_win_rate_collapse():
    cfg = HostilityConfig(
        triggers=HostilityTriggers(win_rate_window=4, win_rate_floor=0.5, cross_pattern_min=99, cascade_losses=99)
    )
    det = HostilityDetector(cfg)
    det.record_outcome(0, "PP", True, 10)
    assert det.record_outcome(1, "PP", False, 10) == []
    assert det.record_outcome(2, "PP", False, 10) == []
    hits = det.record_outcome(3, "PP", False, 10)

    assert fired(hits) == ["win_rate_collapse"]
    assert det.state.indicator_history[-1].score_after == 2.0


# =============================================================================
# Decay and gating
# =============================================================================

def test_wins_and_idle_blocks_decay_score(detector):
    detector.record_outcome(0, "2A2", False, 10)
    detector.record_outcome(1, "Anti2A2", False, 10)
    assert detector.score == 6.0

    detector.record_outcome(2, "3A3", True, 10)
    assert detector.score == 3.0
    detector.record_idle(3)
    assert detector.score == 2.5

    for i in range(4, 8):
        detector.record_outcome(i, "3A3", True, 10)
    assert detector.score == 0.0


def test_pause_level_gates_non_exempt_patterns():
    cfg = HostilityConfig(thresholds=HostilityThresholds(caution=1, pause=2, extended_pause=3))
    det = HostilityDetector(cfg)
    det.record_outcome(0, "2A2", False, 10)
    det.record_outcome(1, "Anti2A2", False, 10)

    assert det.level == HostilityLevel.EXTENDED_PAUSE
    assert det.can_trade("2A2") is False
    assert det.can_trade("ZZ") is True


def test_same_inputs_same_trajectory():
    seq = [(0, "2A2", False, 95), (1, "Anti2A2", False, 80), (2, "3A3", True, 40), (3, "OZ", False, 91)]

    def run():
        det = HostilityDetector(HostilityConfig())
        for args in seq:
            det.record_outcome(*args)
        return det.snapshot()

    assert run() == run()
