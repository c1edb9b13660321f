"""
End-to-end tests for ArbiterSession: ingestion boundary, per-block pipeline,
real vs imaginary outcomes on transition blocks, undo and snapshot.
"""

from __future__ import annotations

import json
import math

import pytest

from block_arbiter.core.config import (
    ArbiterConfig,
    ArbitrationConfig,
    ContinuationConfig,
    HostilityConfig,
    HostilityThresholds,
    PauseConfig,
)
from block_arbiter.core.errors import InputRejected
from block_arbiter.core.events import parse_domain_event
from block_arbiter.core.runner import ArbiterSession
from block_arbiter.engines.arbitration import ArbitrationManager
from block_arbiter.engines.continuation import MachineState, PauseReason

UP, DOWN = 1, -1

# Run of three UPs activates continuation (70 + 75 >= 140), a DOWN 80 reversal
# pauses it, three small DOWN continuations resume it on an imaginary streak.
SCRIPT = [(UP, 50), (UP, 70), (UP, 75), (DOWN, 80), (DOWN, 10), (DOWN, 10), (DOWN, 10)]


@pytest.fixture
def session():
    return ArbiterSession(stream_id="TEST")


def feed(session, blocks):
    for d, m in blocks:
        session.append_block(d, m)
    return session


def pseudo_random_blocks(n, seed=7):
    out, x = [], seed
    for _ in range(n):
        x = (1103515245 * x + 12345) % (2 ** 31)
        direction = UP if (x >> 16) % 2 else DOWN
        x = (1103515245 * x + 12345) % (2 ** 31)
        out.append((direction, (x >> 16) % 101))
    return out


# =============================================================================
# Ingestion boundary
# =============================================================================

class TestIngestion:
    @pytest.mark.parametrize(
        "direction,magnitude",
        [(UP, 101), (UP, -1), (0, 50), (2, 50), (True, 50), (UP, math.nan), (UP, math.inf), ("up", 50)],
    )
    def test_malformed_blocks_rejected_without_mutation(self, session, direction, magnitude):
        with pytest.raises(InputRejected):
            session.append_block(direction, magnitude)
        assert session.tracker.blocks == []
        assert session.decisions == []
        assert session.event_log == []

    def test_non_monotonic_sequence_index_rejected(self, session):
        session.append_block(UP, 10, sequence_index=0)
        before = session.fingerprint()

        with pytest.raises(InputRejected, match="sequence_index"):
            session.append_block(UP, 10, sequence_index=5)
        with pytest.raises(InputRejected):
            session.append_block(UP, 10, sequence_index=0)

        assert session.fingerprint() == before
        session.append_block(UP, 10, sequence_index=1)
        assert session.tracker.next_index == 2

    def test_boundary_magnitudes_accepted(self, session):
        session.append_block(UP, 0)
        session.append_block(DOWN, 100)
        assert [b.magnitude for b in session.tracker.blocks] == [0.0, 100.0]


# =============================================================================
# Pipeline
# =============================================================================

class TestContinuationFlow:
    def test_activation_on_run_profit(self, session):
        feed(session, SCRIPT[:2])
        assert session.continuation.machine_state == MachineState.INACTIVE

        decision = session.append_block(UP, 75)
        assert session.continuation.machine_state == MachineState.ACTIVE
        assert decision.source == "continuation"
        assert decision.direction == UP
        assert decision.block_index == 3
        assert decision.paused_sources == ("bucket",)

    def test_pausing_block_outcome_is_real(self, session):
        """The bet resolved on the pausing block was placed while ACTIVE, so it stays real."""
        feed(session, SCRIPT[:4])
        out = session.last_outcome

        assert (out.source, out.is_real, out.is_win, out.pnl) == ("continuation", True, False, -80)
        state = session.continuation.state
        assert state.machine_state == MachineState.PAUSED
        assert state.pause_reason == PauseReason.HIGH_MAGNITUDE_REVERSAL
        assert state.accumulated_loss == 0
        assert state.remaining_life == 140
        assert session.real_pnl == -80
        assert session.last_decision.should_bet is False
        assert "bucket" in session.last_decision.paused_sources

    def test_outcomes_while_paused_are_imaginary(self, session):
        feed(session, SCRIPT[:5])
        out = session.last_outcome

        assert out.is_real is False
        assert out.is_win is True
        assert session.real_pnl == -80
        assert session.continuation.state.remaining_life == 140

    def test_resume_block_outcome_is_imaginary_and_next_bet_real(self, session):
        feed(session, SCRIPT)
        state = session.continuation.state

        assert session.last_outcome.is_real is False
        assert state.machine_state == MachineState.ACTIVE
        assert state.resume_count == 1
        assert state.state_history[-1].reason == "IMAGINARY_WIN_STREAK"
        assert session.last_decision.source == "continuation"
        assert session.last_decision.direction == DOWN

        session.append_block(DOWN, 30)
        assert session.last_outcome.is_real is True
        assert session.real_pnl == -50

    def test_unconfirmed_competing_break_is_logged(self, session):
        """3A3 loses on its first live bet: the break is reported but unconfirmed."""
        feed(session, SCRIPT)
        breaks = [
            e.payload for e in session.event_log
            if e.type == "DOMAIN_EVENT" and e.payload["kind"] == "competing_pattern_break"
        ]
        assert breaks == [
            {"kind": "competing_pattern_break", "block_index": 6, "pattern": "3A3", "confirmed": False, "prior_wins": 0}
        ]

    def test_bucket_trades_during_pause_when_allowed(self):
        cfg = ArbiterConfig(arbitration=ArbitrationConfig(allow_bucket_during_pause=True))
        session = feed(ArbiterSession(cfg), SCRIPT)

        assert (session.decisions[4].source, session.decisions[4].pattern) == ("bucket", "Anti2A2")
        assert (session.decisions[5].source, session.decisions[5].pattern) == ("bucket", "3A3")
        assert session.real_pnl == -80

    def test_confirmed_competing_break_resumes_continuation(self, session):
        """Anti2A2 wins once, then loses its next bet while continuation is paused."""
        feed(session, [(UP, 50), (UP, 70), (UP, 75), (DOWN, 80), (DOWN, 10), (DOWN, 10), (UP, 10), (UP, 10), (DOWN, 10)])
        state = session.continuation.state

        assert state.machine_state == MachineState.ACTIVE
        assert (state.state_history[-1].reason, state.state_history[-1].block_index) == ("COMPETING_PATTERN_BREAK", 8)
        assert state.remaining_life == 140
        assert (session.last_decision.source, session.last_decision.direction) == ("continuation", DOWN)
        confirmed = [
            e.payload for e in session.event_log
            if e.type == "DOMAIN_EVENT" and e.payload["kind"] == "competing_pattern_break" and e.payload["confirmed"]
        ]
        assert [p["block_index"] for p in confirmed] == [8]

    def test_hostility_escalation_pauses_continuation(self):
        cfg = ArbiterConfig(
            continuation=ContinuationConfig(high_magnitude_threshold=100),
            hostility=HostilityConfig(thresholds=HostilityThresholds(caution=0.25, pause=0.5, extended_pause=3)),
        )
        session = feed(ArbiterSession(cfg), [(UP, 50), (UP, 70), (UP, 75), (DOWN, 95)])
        state = session.continuation.state

        assert state.machine_state == MachineState.PAUSED
        assert state.pause_reason == PauseReason.HOSTILE_MARKET
        assert state.state_history[-1].trigger == "hostility_escalated"
        assert state.accumulated_loss == 95
        assert session.last_decision.should_bet is False

    def test_stop_game_ends_betting_for_the_session(self):
        session = feed(ArbiterSession(ArbiterConfig(pauses=PauseConfig(stop_game_actual_loss=50))), SCRIPT)

        assert session.pauses.stopped
        assert all(d.should_bet is False for d in session.decisions[3:])
        assert all(d.reasoning == "global hard stop" for d in session.decisions[3:])
        pauses = [
            e.payload for e in session.event_log
            if e.type == "DOMAIN_EVENT" and e.payload["kind"] == "system_pause"
        ]
        assert [(p["system"], p["pause_type"], p["block_index"]) for p in pauses] == [("all", "STOP_GAME", 3)]



class TestSessionInvariants:
    def test_at_most_one_real_bet_per_block(self, session):
        feed(session, pseudo_random_blocks(300))

        ArbitrationManager.check_exclusive(session.decisions)
        real_by_block = {}
        for o in session.outcomes:
            if o.is_real:
                real_by_block[o.block_index] = real_by_block.get(o.block_index, 0) + 1
        assert all(n == 1 for n in real_by_block.values())
        assert session.real_pnl == sum(o.pnl for o in session.outcomes if o.is_real)
        assert len(session.decisions) == 300

    def test_paused_machine_never_loses_life(self, session):
        blocks = pseudo_random_blocks(400, seed=11)
        life = None
        for d, m in blocks:
            was_paused = session.continuation.machine_state == MachineState.PAUSED
            session.append_block(d, m)
            state = session.continuation.state
            if was_paused and state.machine_state == MachineState.PAUSED and life is not None:
                assert (state.remaining_life, state.accumulated_loss) == life
            life = (state.remaining_life, state.accumulated_loss)

    def test_hard_stop_blocks_all_bets(self, session):
        session.set_hard_stop(True)
        feed(session, SCRIPT)
        assert not any(d.should_bet for d in session.decisions)
        assert all(o.is_real is False for o in session.outcomes)

    def test_logged_domain_events_parse_back(self):
        session = feed(ArbiterSession(ArbiterConfig(pauses=PauseConfig(stop_game_actual_loss=50))), SCRIPT)
        kinds = [
            parse_domain_event(e.payload).kind for e in session.event_log if e.type == "DOMAIN_EVENT"
        ]
        assert {"activation", "pause", "run_break", "system_pause"} <= set(kinds)


# =============================================================================
# Undo and snapshot
# =============================================================================

class TestUndoAndSnapshot:
    def test_undo_restores_previous_state(self):
        full = feed(ArbiterSession(stream_id="TEST"), SCRIPT)
        shorter = feed(ArbiterSession(stream_id="TEST"), SCRIPT[:-1])

        removed = full.undo_last()

        assert (removed.direction, removed.magnitude, removed.sequence_index) == (DOWN, 10.0, 6)
        assert full.fingerprint() == shorter.fingerprint()
        assert full.snapshot() == shorter.snapshot()
        assert full.continuation.machine_state == MachineState.PAUSED

    def test_undo_replays_each_block_under_its_own_hard_stop(self):
        session = feed(ArbiterSession(stream_id="TEST"), SCRIPT[:3])
        session.set_hard_stop(True)
        session.append_block(DOWN, 80)

        session.undo_last()

        fresh = feed(ArbiterSession(stream_id="TEST"), SCRIPT[:3])
        assert session.fingerprint() == fresh.fingerprint()
        assert session.decisions[2].should_bet is True
        assert session.hard_stop is True
        assert session.hard_stop_flags == [False, False, False]


    def test_undo_on_empty_session_rejected(self, session):
        with pytest.raises(InputRejected):
            session.undo_last()

    def test_snapshot_is_json_safe(self, session):
        feed(session, SCRIPT)
        snap = session.snapshot()
        json.dumps(snap)

        assert snap["blocks_processed"] == 7
        assert snap["continuation"]["machine_state"] == "ACTIVE"
        assert snap["runs"]["lengths"] == [3, 4]
        assert snap["patterns"]["3A3"]["state"] == "observing"
        assert snap["hostility"]["level"] == "normal"
        assert snap["last_decision"]["source"] == "continuation"
