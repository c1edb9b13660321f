from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from block_arbiter.core.types import Event, direction_name
from block_arbiter.engines.arbitration import Decision
from block_arbiter.log.event_store import EventStore


@dataclass
class DecisionRecord:
    """
    Human-readable + machine-parseable decision record.

    Emitted for every block: either a bet or a skip with reasons.
    """
    time: str
    block_index: int
    action: str  # BET | SKIP
    source: str
    pattern: Optional[str]
    direction: Optional[int]
    paused_sources: list
    reasoning: str
    plain_english: str
    context: Dict[str, Any]  # sd_state, hostility_level, remaining_life, ...


class DecisionJournal:
    """
    Append DecisionRecord events to the EventStore with type DECISION_RECORD.
    """

    def __init__(self, store: EventStore, stream_id: str, config_hash: str):
        self.store = store
        self.stream_id = stream_id
        self.config_hash = config_hash

    def log(self, record: DecisionRecord) -> bool:
        e = Event.make(
            stream_id=self.stream_id,
            ts=record.time,
            type="DECISION_RECORD",
            payload=asdict(record),
            config_hash=self.config_hash,
        )
        return self.store.append(e)

    @staticmethod
    def record_for(decision: Decision, time: str, context: Optional[Dict[str, Any]] = None) -> DecisionRecord:
        context = dict(context or {})
        context.setdefault("sd_state", decision.sd_state)
        context.setdefault("hostility_level", decision.hostility_level)
        if decision.remaining_life is not None:
            context.setdefault("remaining_life", decision.remaining_life)
        return DecisionRecord(
            time=time,
            block_index=decision.block_index,
            action="BET" if decision.should_bet else "SKIP",
            source=decision.source,
            pattern=decision.pattern,
            direction=decision.direction,
            paused_sources=list(decision.paused_sources),
            reasoning=decision.reasoning,
            plain_english=DecisionJournal.summarize(decision, context),
            context=context,
        )

    @staticmethod
    def summarize(decision: Decision, context: Dict[str, Any]) -> str:
        if decision.should_bet:
            parts = [f"BET {direction_name(decision.direction)}: {decision.source}/{decision.pattern}"]
        else:
            parts = [f"Skipped: {decision.reasoning}"]
        if decision.paused_sources:
            parts.append("paused=" + ",".join(decision.paused_sources))
        for k in ("sd_state", "hostility_level", "remaining_life"):
            if k in context:
                parts.append(f"{k}={context[k]}")
        return "; ".join(parts)
