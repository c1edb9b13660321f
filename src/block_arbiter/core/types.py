from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Literal, Optional
import json
import hashlib

EventType = Literal[
    "BLOCK",
    "DECISION",
    "OUTCOME",
    "TRANSITION",
    "DOMAIN_EVENT",
    "DECISION_RECORD",
    "SNAPSHOT",
]

UP = 1
DOWN = -1


def stable_json(obj: Any) -> str:
    # Deterministic JSON serialization
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def direction_name(direction: int) -> str:
    return "UP" if direction == UP else "DOWN"


@dataclass(frozen=True)
class Event:
    event_id: str
    stream_id: str
    ts: str            # block timestamp or "block:<index>" when the feed supplied none
    type: EventType
    payload: Dict[str, Any]
    config_hash: str

    @staticmethod
    def make(stream_id: str, ts: str, type: EventType, payload: Dict[str, Any], config_hash: str) -> "Event":
        base = {
            "stream_id": stream_id,
            "ts": ts,
            "type": type,
            "payload": payload,
            "config_hash": config_hash,
        }
        eid = sha256_hex(stable_json(base))
        return Event(event_id=eid, **base)

    def payload_json(self) -> str:
        return stable_json(self.payload)


@dataclass(frozen=True)
class Block:
    """One directional observation. Immutable once appended."""
    direction: int
    magnitude: float
    sequence_index: int
    ts: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def event_ts(self) -> str:
        return self.ts or f"block:{self.sequence_index:08d}"


def fingerprint_events(events: List[Event]) -> str:
    """Hash of the ordered (ts, type, payload) triples. Event ids and config hashes are excluded."""
    return sha256_hex(stable_json([
        {"ts": e.ts, "type": e.type, "payload": e.payload}
        for e in events
    ]))
