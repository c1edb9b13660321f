from __future__ import annotations
import argparse
import json
import sys
import logging
from pathlib import Path
from block_arbiter.core.config import load_config
from block_arbiter.core.errors import ArbiterError, InputRejected
from block_arbiter.core.events import parse_domain_event
from block_arbiter.core.runner import ArbiterSession
from block_arbiter.log.event_store import EventStore
from block_arbiter.log.replay import block_event
from block_arbiter.state.persistence import SnapshotStore
from block_arbiter.tools.determinism_test import determinism_once
from block_arbiter.tools.replay_runner import replay_json, replay_stream


def _setup_logging(verbose: bool, log_file: str = None) -> None:
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _read_blocks(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise InputRejected(f"{path}: expected a JSON list of blocks")
    return data


def main():
    p = argparse.ArgumentParser("block-arbiter")
    p.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    p.add_argument("--log-file", default=None, help="Also write logs to this file")
    sub = p.add_subparsers(dest="cmd", required=True)

    # init-db
    s_init = sub.add_parser("init-db")
    s_init.add_argument("--db", default="data/events.sqlite")
    s_init.add_argument("--schema", default=None)

    # store a JSON list of blocks as a BLOCK stream
    s_ingest = sub.add_parser("ingest")
    s_ingest.add_argument("--blocks", required=True, help="Path to JSON list of {direction, magnitude[, ts]}")
    s_ingest.add_argument("--db", default="data/events.sqlite")
    s_ingest.add_argument("--stream", required=True)

    # replay from JSON array of blocks
    s_replay_json = sub.add_parser("replay-json")
    s_replay_json.add_argument("--blocks", required=True)
    s_replay_json.add_argument("--db", default=None, help="Persist event log and decision journal here")
    s_replay_json.add_argument("--stream", default="SESSION")
    s_replay_json.add_argument("--config", default=None)

    # replay a stored BLOCK stream
    s_replay_stream = sub.add_parser("replay-stream")
    s_replay_stream.add_argument("--db", default="data/events.sqlite")
    s_replay_stream.add_argument("--stream", required=True)
    s_replay_stream.add_argument("--config", default=None)

    # replay twice and compare fingerprints
    s_det = sub.add_parser("determinism")
    s_det.add_argument("--blocks", default=None, help="Optional JSON list of blocks (defaults to a demo sequence)")
    s_det.add_argument("--config", default=None)

    # write a JSON snapshot after a replay
    s_snap = sub.add_parser("snapshot")
    s_snap.add_argument("--blocks", required=True)
    s_snap.add_argument("--out", default="data/snapshot.json")
    s_snap.add_argument("--config", default=None)

    # simple report over a stored stream
    s_report = sub.add_parser("report")
    s_report.add_argument("--db", default="data/events.sqlite")
    s_report.add_argument("--stream", required=True)

    args = p.parse_args()
    _setup_logging(args.verbose, args.log_file)

    try:
        if args.cmd == "init-db":
            store = EventStore(args.db)
            store.init_schema(args.schema)
            print(f"Initialized schema at {args.db}")
            return

        if args.cmd == "ingest":
            store = EventStore(args.db)
            store.init_schema()
            events = [
                block_event(args.stream, i, raw["direction"], raw["magnitude"], ts=raw.get("ts"))
                for i, raw in enumerate(_read_blocks(args.blocks))
            ]
            inserted = store.append_many(events)
            print(json.dumps({"stream_id": args.stream, "blocks": len(events), "inserted": inserted}, indent=2))
            return

        if args.cmd == "replay-json":
            replay_json(args.blocks, args.db, stream_id=args.stream, config_path=args.config)
            return

        if args.cmd == "replay-stream":
            replay_stream(args.db, args.stream, config_path=args.config)
            return

        if args.cmd == "determinism":
            config = load_config(args.config)
            blocks = None
            if args.blocks:
                blocks = [(raw["direction"], raw["magnitude"]) for raw in _read_blocks(args.blocks)]
            result = determinism_once(blocks, config)
            print(json.dumps(result, indent=2))
            if not result["equal"]:
                sys.exit(1)
            return

        if args.cmd == "snapshot":
            session = ArbiterSession(load_config(args.config))
            for raw in _read_blocks(args.blocks):
                session.append_block(raw["direction"], raw["magnitude"], ts=raw.get("ts"))
            SnapshotStore(args.out).save(session.snapshot())
            print(f"Snapshot written to {args.out}")
            return

        if args.cmd == "report":
            store = EventStore(args.db)
            events = store.read_stream(args.stream)
            type_hist = {}
            source_hist = {}
            domain_hist = {}
            transitions = []
            for e in events:
                type_hist[e.type] = type_hist.get(e.type, 0) + 1
                if e.type == "DECISION" and e.payload.get("should_bet"):
                    src = e.payload.get("source", "none")
                    source_hist[src] = source_hist.get(src, 0) + 1
                if e.type == "DOMAIN_EVENT":
                    kind = parse_domain_event(e.payload).kind
                    domain_hist[kind] = domain_hist.get(kind, 0) + 1
                if e.type == "TRANSITION":
                    transitions.append(e.payload)
            print("Event counts:")
            for k, v in sorted(type_hist.items()):
                print(f"  {k}: {v}")
            print("Bets by source:")
            for k, v in sorted(source_hist.items(), key=lambda kv: kv[1], reverse=True):
                print(f"  {k}: {v}")
            print("Domain events:")
            for k, v in sorted(domain_hist.items()):
                print(f"  {k}: {v}")
            print("Continuation transitions:")
            for t in transitions:
                print(f"  block {t['block_index']}: {t['from_state']} -> {t['to_state']} ({t['reason']})")
            return
    except ArbiterError as e:
        logging.getLogger("block_arbiter").error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
