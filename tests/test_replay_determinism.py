from __future__ import annotations

from pathlib import Path

from block_arbiter.core.runner import ArbiterSession
from block_arbiter.core.types import Event, fingerprint_events
from block_arbiter.log.event_store import EventStore
from block_arbiter.log.replay import block_event, replay_blocks, replay_events
from block_arbiter.tools.determinism_test import DEMO_BLOCKS, determinism_once


def handler(e: Event):
    # echo one skip decision per block
    if e.type == "BLOCK":
        payload = {"source": "none", "should_bet": False}
        return Event.make(stream_id=e.stream_id, ts=e.ts, type="DECISION", payload=payload, config_hash=e.config_hash)
    return None


def run(blocks, stream="TEST"):
    session = ArbiterSession(stream_id=stream)
    for d, m in blocks:
        session.append_block(d, m)
    return session


def test_determinism():
    cfg = "cfg_hash_example"
    stream = "TABLE_1"
    blocks = [
        Event.make(stream, "block:00000000", "BLOCK", {"direction": 1, "magnitude": 40.0}, cfg),
        Event.make(stream, "block:00000001", "BLOCK", {"direction": -1, "magnitude": 65.0}, cfg),
    ]
    r1 = replay_events(blocks, handler, fingerprint_events)
    r2 = replay_events(blocks, handler, fingerprint_events)
    assert r1.output_fingerprint == r2.output_fingerprint
    assert r1.events_out == 2


def test_fresh_sessions_reproduce_history_and_pnl():
    """Same block sequence through fresh sessions: identical history, decisions, PnL and event log."""
    s1 = run(DEMO_BLOCKS)
    s2 = run(DEMO_BLOCKS)

    assert s1.continuation.state.state_history == s2.continuation.state.state_history
    assert s1.decisions == s2.decisions
    assert s1.real_pnl == s2.real_pnl
    assert [e.event_id for e in s1.event_log] == [e.event_id for e in s2.event_log]
    assert s1.fingerprint() == s2.fingerprint()


def test_different_sequence_changes_fingerprint():
    altered = list(DEMO_BLOCKS)
    altered[3] = (1, 30)
    assert run(DEMO_BLOCKS).fingerprint() != run(altered).fingerprint()


def test_determinism_tool_reports_equal():
    result = determinism_once()
    assert result["equal"] is True
    assert result["first"] == result["second"]


def test_replay_from_event_store_matches_live_session(tmp_path: Path):
    """A stored block stream replays to the same fingerprint as feeding the blocks live."""
    store = EventStore(str(tmp_path / "events.db"))
    store.init_schema()
    store.append_many([block_event("TEST", i, d, m) for i, (d, m) in enumerate(DEMO_BLOCKS)])

    events = store.read_stream("TEST", event_type="BLOCK")
    r1 = replay_blocks(events)
    r2 = replay_blocks(events)

    assert r1.events_in == len(DEMO_BLOCKS)
    assert r1.output_fingerprint == r2.output_fingerprint
    assert r1.output_fingerprint == run(DEMO_BLOCKS).fingerprint()
    assert r1.events_out == len(run(DEMO_BLOCKS).event_log)
    assert r1.notes["real_pnl"] == run(DEMO_BLOCKS).real_pnl
    assert r1.notes["transitions"] == r2.notes["transitions"]
