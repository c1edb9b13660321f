from __future__ import annotations

import sqlite3
from typing import Iterable, List, Optional
from pathlib import Path
import json

from block_arbiter.core.types import Event

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


class EventStore:
    """Append-only, idempotent event store."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path)
        con.execute("PRAGMA journal_mode=WAL;")
        con.execute("PRAGMA synchronous=NORMAL;")
        return con

    def init_schema(self, schema_sql_path: Optional[str] = None) -> None:
        con = self.connect()
        try:
            with open(schema_sql_path or SCHEMA_PATH, "r", encoding="utf-8") as f:
                con.executescript(f.read())
            con.commit()
        finally:
            con.close()

    def _next_seq(self, cur: sqlite3.Cursor) -> int:
        cur.execute("SELECT COALESCE(MAX(seq), 0) FROM events")
        return int(cur.fetchone()[0]) + 1

    def append(self, e: Event) -> bool:
        """Returns True if inserted, False if already existed."""
        return self.append_many([e]) == 1

    def append_many(self, events: Iterable[Event]) -> int:
        con = self.connect()
        try:
            cur = con.cursor()
            seq = self._next_seq(cur)
            inserted = 0
            for e in events:
                cur.execute(
                    """
                    INSERT OR IGNORE INTO events (id, stream_id, ts, type, payload_json, config_hash, seq)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (e.event_id, e.stream_id, e.ts, e.type, e.payload_json(), e.config_hash, seq),
                )
                if cur.rowcount == 1:
                    inserted += 1
                    seq += 1
            con.commit()
            return inserted
        finally:
            con.close()

    def read_stream(self, stream_id: str, event_type: Optional[str] = None) -> List[Event]:
        """Events of a stream in insertion order."""
        con = self.connect()
        try:
            cur = con.cursor()
            q = "SELECT id, stream_id, ts, type, payload_json, config_hash FROM events WHERE stream_id = ?"
            args = [stream_id]
            if event_type:
                q += " AND type = ?"
                args.append(event_type)
            q += " ORDER BY seq ASC"
            cur.execute(q, args)
            out: List[Event] = []
            for eid, sid, ts, etype, payload_json, config_hash in cur.fetchall():
                payload = json.loads(payload_json)
                out.append(Event(event_id=eid, stream_id=sid, ts=ts, type=etype, payload=payload, config_hash=config_hash))
            return out
        finally:
            con.close()
