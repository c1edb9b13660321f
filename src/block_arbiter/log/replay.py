from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Callable, Dict, Any, List, Optional, Sequence, Union

from block_arbiter.core.config import ArbiterConfig
from block_arbiter.core.runner import ArbiterSession
from block_arbiter.core.types import Event, fingerprint_events


@dataclass
class ReplayResult:
    stream_id: str
    config_hash: str
    events_in: int
    events_out: int
    output_fingerprint: str
    notes: Dict[str, Any]


def replay_events(
    events: List[Event],
    handler: Callable[[Event], Union[None, Event, Sequence[Event]]],
    fingerprint_fn: Callable[[List[Event]], str],
) -> ReplayResult:
    out: List[Event] = []
    stream_id = events[0].stream_id if events else "EMPTY"
    config_hash = events[0].config_hash if events else "EMPTY"

    for e in events:
        generated = handler(e)
        if generated is None:
            continue
        if isinstance(generated, Event):
            out.append(generated)
        else:
            out.extend(generated)

    fp = fingerprint_fn(out)
    return ReplayResult(
        stream_id=stream_id,
        config_hash=config_hash,
        events_in=len(events),
        events_out=len(out),
        output_fingerprint=fp,
        notes={},
    )


def block_event(stream_id: str, index: int, direction: int, magnitude: float,
                config_hash: str = "INGEST", ts: Optional[str] = None) -> Event:
    """Build the BLOCK event used to persist a raw block stream."""
    payload = {"direction": direction, "magnitude": float(magnitude), "sequence_index": index, "ts": ts}
    return Event.make(stream_id, ts or f"block:{index:08d}", "BLOCK", payload, config_hash)


def replay_blocks(events: List[Event], config: Optional[ArbiterConfig] = None) -> ReplayResult:
    """Feed the BLOCK events of a stream through a fresh session."""
    blocks = [e for e in events if e.type == "BLOCK"]
    stream_id = blocks[0].stream_id if blocks else "EMPTY"
    session = ArbiterSession(config, stream_id=stream_id)

    def handler(e: Event) -> List[Event]:
        p = e.payload
        start = len(session.event_log)
        session.append_block(p["direction"], p["magnitude"], sequence_index=p.get("sequence_index"), ts=p.get("ts"))
        return session.event_log[start:]

    result = replay_events(blocks, handler, fingerprint_events)
    result.config_hash = session.config_hash
    result.notes = {
        "real_pnl": session.real_pnl,
        "bets": sum(1 for d in session.decisions if d.should_bet),
        "sd_state": session.continuation.machine_state.value,
        "transitions": [asdict(t) for t in session.continuation.state.state_history],
    }
    return result
