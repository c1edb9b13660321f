from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional


class SnapshotStore:
    """
    Lightweight JSON persistence for session snapshots.
    Snapshots are for analysis only; live betting always restarts from a block replay.
    Intended for local use; not optimized for concurrency.
    """

    def __init__(self, path: str = "data/snapshot.json"):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def save(self, snapshot: Dict[str, Any]) -> None:
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, sort_keys=True)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else None
