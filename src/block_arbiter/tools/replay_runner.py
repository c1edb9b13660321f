from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional

from block_arbiter.core.config import load_config
from block_arbiter.core.errors import InputRejected
from block_arbiter.core.runner import ArbiterSession
from block_arbiter.log.decision_journal import DecisionJournal
from block_arbiter.log.event_store import EventStore
from block_arbiter.log.replay import replay_blocks


def _load_blocks(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise InputRejected(f"{path}: expected a JSON list of blocks")
    return data


def replay_json(
    blocks_path: str,
    db_path: Optional[str] = None,
    stream_id: str = "SESSION",
    config_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Run a JSON list of {direction, magnitude[, ts]} through a fresh session."""
    session = ArbiterSession(load_config(config_path), stream_id=stream_id)
    for raw in _load_blocks(blocks_path):
        session.append_block(raw["direction"], raw["magnitude"], ts=raw.get("ts"))
    if db_path:
        store = EventStore(db_path)
        store.init_schema()
        store.append_many(session.event_log)
        journal = DecisionJournal(store, stream_id, session.config_hash)
        for block, decision in zip(session.tracker.blocks, session.decisions):
            journal.log(DecisionJournal.record_for(decision, block.event_ts))
    summary = {
        "stream_id": stream_id,
        "blocks_processed": len(session.tracker.blocks),
        "bets": sum(1 for d in session.decisions if d.should_bet),
        "real_pnl": session.real_pnl,
        "sd_state": session.continuation.machine_state.value,
        "fingerprint": session.fingerprint(),
    }
    print(json.dumps(summary, indent=2))
    return summary


def replay_stream(db_path: str, stream_id: str, config_path: Optional[str] = None) -> Dict[str, Any]:
    store = EventStore(db_path)
    events = store.read_stream(stream_id, event_type="BLOCK")
    result = replay_blocks(events, load_config(config_path))
    summary = {
        "stream_id": stream_id,
        "blocks_processed": result.events_in,
        "real_pnl": result.notes["real_pnl"],
        "bets": result.notes["bets"],
        "sd_state": result.notes["sd_state"],
        "fingerprint": result.output_fingerprint,
    }
    print(json.dumps(summary, indent=2))
    return summary


def main():
    p = argparse.ArgumentParser("replay-runner")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_stream = sub.add_parser("stream")
    s_stream.add_argument("--db", default="data/events.sqlite")
    s_stream.add_argument("--stream", required=True)
    s_stream.add_argument("--config", default=None, help="Arbiter YAML contract")

    s_json = sub.add_parser("json")
    s_json.add_argument("--blocks", required=True, help="Path to JSON list of block dicts")
    s_json.add_argument("--db", default=None)
    s_json.add_argument("--stream", default="SESSION")
    s_json.add_argument("--config", default=None, help="Arbiter YAML contract")

    args = p.parse_args()
    if args.cmd == "stream":
        replay_stream(args.db, args.stream, config_path=args.config)
    elif args.cmd == "json":
        replay_json(args.blocks, args.db, stream_id=args.stream, config_path=args.config)


if __name__ == "__main__":
    main()
