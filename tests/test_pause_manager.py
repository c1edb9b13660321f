"""
Tests for the pause manager: minor and major per-system pauses, STOP_GAME.
"""

from __future__ import annotations

import pytest

from block_arbiter.core.config import PauseConfig
from block_arbiter.engines.pause_manager import PauseManager, PauseType


@pytest.fixture
def pauses():
    return PauseManager(PauseConfig())


def book(pm, block_index, source, pnl):
    pm.advance_block()
    pm.record_outcome(source, pnl, pnl > 0)
    return pm.evaluate(block_index)


# =============================================================================
# Minor pause
# =============================================================================

def test_two_bucket_losses_pause_bucket_for_three_blocks(pauses):
    assert book(pauses, 0, "bucket", -10) == []
    fired = book(pauses, 1, "bucket", -10)

    assert [(e.system, e.pause_type, e.blocks) for e in fired] == [("bucket", "MINOR_PAUSE", 3)]
    assert pauses.blocked_sources() == ("bucket",)

    for _ in range(2):
        pauses.advance_block()
        assert pauses.blocked_sources() == ("bucket",)
    pauses.advance_block()
    assert pauses.blocked_sources() == ()


def test_win_breaks_the_loss_streak(pauses):
    book(pauses, 0, "continuation", -10)
    book(pauses, 1, "continuation", 5)
    assert book(pauses, 2, "continuation", -10) == []


def test_minor_pause_spends_the_streak(pauses):
    book(pauses, 0, "bucket", -10)
    book(pauses, 1, "bucket", -10)
    for _ in range(3):
        pauses.advance_block()

    assert pauses.systems["bucket"].consecutive_losses == 0
    assert book(pauses, 5, "bucket", -10) == []


def test_pocket_is_never_paused_by_its_own_losses(pauses):
    for i in range(5):
        book(pauses, i, "pocket", -20)
    assert pauses.blocked_sources() == ()


# =============================================================================
# Major pause
# =============================================================================

def test_drawdown_milestone_pauses_for_ten_blocks(pauses):
    fired = book(pauses, 0, "continuation", -310)

    assert [(e.system, e.pause_type, e.blocks) for e in fired] == [("continuation", "MAJOR_PAUSE", 10)]
    assert pauses.systems["continuation"].pause_type == PauseType.MAJOR_PAUSE
    for _ in range(9):
        pauses.advance_block()
    assert pauses.blocked_sources() == ("continuation",)
    pauses.advance_block()
    assert pauses.blocked_sources() == ()


def test_milestone_fires_once():
    pm = PauseManager(PauseConfig(stop_game_drawdown=5000, stop_game_actual_loss=5000))
    book(pm, 0, "bucket", -310)
    for _ in range(10):
        pm.advance_block()

    assert book(pm, 11, "bucket", 20) == []
    assert book(pm, 12, "bucket", -30) == []
    assert book(pm, 13, "bucket", 5) == []
    fired = book(pm, 14, "bucket", -300)
    assert [e.reason for e in fired] == ["bucket drawdown milestone -600"]


# =============================================================================
# Stop game
# =============================================================================

def test_actual_loss_floor_stops_the_game(pauses):
    book(pauses, 0, "pocket", -250)
    fired = book(pauses, 1, "pocket", -250)

    assert [(e.system, e.pause_type) for e in fired] == [("all", "STOP_GAME")]
    assert pauses.stopped
    assert pauses.stop_reason == "actual loss -500"


def test_drawdown_from_peak_stops_the_game():
    pm = PauseManager(PauseConfig(stop_game_drawdown=200, stop_game_actual_loss=1000))
    book(pm, 0, "pocket", 300)
    assert book(pm, 1, "pocket", -150) == []
    fired = book(pm, 2, "pocket", -60)

    assert fired[0].pause_type == "STOP_GAME"
    assert pm.peak_pnl == 300
    assert pm.history == fired


def test_stop_game_fires_once(pauses):
    book(pauses, 0, "pocket", -600)
    assert book(pauses, 1, "continuation", -400) == []
    assert len(pauses.history) == 1


def test_disabled_manager_never_pauses():
    pm = PauseManager(PauseConfig(enabled=False))
    assert book(pm, 0, "bucket", -700) == []
    assert not pm.stopped
    assert pm.blocked_sources() == ()


def test_snapshot_reports_system_health(pauses):
    book(pauses, 0, "bucket", -10)
    book(pauses, 1, "bucket", -10)
    snap = pauses.snapshot()

    assert snap["session_pnl"] == -20
    assert snap["systems"]["bucket"]["pause_type"] == "MINOR_PAUSE"
    assert snap["systems"]["continuation"]["pause_type"] is None
