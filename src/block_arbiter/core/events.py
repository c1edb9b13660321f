from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# Canonical domain event schemas. Only these may drive state transitions.


class _DomainEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    block_index: int = Field(ge=0)


class ActivationEvent(_DomainEventBase):
    """Continuation run profit crossed the activation threshold."""
    kind: Literal["activation"] = "activation"
    direction: Literal[1, -1]
    run_profit: float


class RunBreakEvent(_DomainEventBase):
    kind: Literal["run_break"] = "run_break"
    broken_direction: Literal[1, -1]
    broken_length: int = Field(ge=1)


class PatternActivated(_DomainEventBase):
    kind: Literal["pattern_activated"] = "pattern_activated"
    pattern: str
    trigger: Literal["single_result", "cumulative"]


class PatternBreak(_DomainEventBase):
    kind: Literal["pattern_break"] = "pattern_break"
    pattern: str
    loss: float
    run_profit: float
    prior_wins: int = Field(ge=0)


class CompetingPatternBreak(_DomainEventBase):
    """A competing pattern lost while live. Only a confirmed break may resume continuation."""
    kind: Literal["competing_pattern_break"] = "competing_pattern_break"
    pattern: str
    confirmed: bool
    prior_wins: int = Field(ge=0)


class HighMagnitudeReversal(_DomainEventBase):
    kind: Literal["high_magnitude_reversal"] = "high_magnitude_reversal"
    direction: Literal[1, -1]
    magnitude: float = Field(ge=0.0, le=100.0)


class BetOutcomeEvent(_DomainEventBase):
    kind: Literal["bet_outcome"] = "bet_outcome"
    source: Literal["pocket", "continuation", "bucket"]
    pattern: str
    direction: Literal[1, -1]
    is_win: bool
    pnl: float
    magnitude: float = Field(ge=0.0, le=100.0)
    is_reversal: bool
    is_real: bool


class HostilityEscalated(_DomainEventBase):
    kind: Literal["hostility_escalated"] = "hostility_escalated"
    level: Literal["normal", "caution", "pause", "extended_pause"]
    score: float = Field(ge=0.0)


class PauseEvent(_DomainEventBase):
    kind: Literal["pause"] = "pause"
    reason: Literal["HIGH_MAGNITUDE_REVERSAL", "CONSECUTIVE_LOSSES", "HOSTILE_MARKET"]


class ResumeEvent(_DomainEventBase):
    kind: Literal["resume"] = "resume"
    reason: Literal["COMPETING_PATTERN_BREAK", "IMAGINARY_WIN_STREAK", "IMAGINARY_PROFIT"]


class ExpireEvent(_DomainEventBase):
    kind: Literal["expire"] = "expire"
    accumulated_loss: float
    remaining_life: float


class SystemPauseEvent(_DomainEventBase):
    """Drawdown pause. STOP_GAME applies to every source and does not end."""
    kind: Literal["system_pause"] = "system_pause"
    system: Literal["all", "continuation", "bucket"]
    pause_type: Literal["STOP_GAME", "MAJOR_PAUSE", "MINOR_PAUSE"]
    reason: str
    blocks: Optional[int] = Field(default=None, ge=1)


DomainEvent = Annotated[
    Union[
        ActivationEvent,
        RunBreakEvent,
        PatternActivated,
        PatternBreak,
        CompetingPatternBreak,
        HighMagnitudeReversal,
        BetOutcomeEvent,
        HostilityEscalated,
        PauseEvent,
        ResumeEvent,
        ExpireEvent,
        SystemPauseEvent,
    ],
    Field(discriminator="kind"),
]

_DOMAIN_EVENT_ADAPTER: TypeAdapter = TypeAdapter(DomainEvent)


def parse_domain_event(data: Dict[str, Any]) -> DomainEvent:
    return _DOMAIN_EVENT_ADAPTER.validate_python(data)


def event_payload(event: BaseModel) -> Dict[str, Any]:
    return event.model_dump(mode="json")


class BlockInput(BaseModel):
    """Ingestion boundary schema for a raw block."""
    model_config = ConfigDict(extra="forbid")

    direction: Literal[1, -1]
    magnitude: float = Field(ge=0.0, le=100.0, allow_inf_nan=False)
    sequence_index: Optional[int] = Field(default=None, ge=0)
    ts: Optional[str] = None

    @field_validator("direction", "magnitude", "sequence_index", mode="before")
    @classmethod
    def _no_bools(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("booleans are not accepted")
        return v
