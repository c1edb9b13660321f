"""
Continuation ("SD") State Machine - bets that the current run keeps going.

States:
    INACTIVE -> ACTIVE -> {PAUSED <-> ACTIVE} -> EXPIRED -> (run break) INACTIVE

Life model:
- Activation grants `initial_life`; every real loss charged to the cycle raises
  `accumulated_loss` and lowers `remaining_life`, a running total that is never restored.
- At each run break, the real continuation PnL realized over that run (its
  breaking loss included) is compared with `accumulated_loss` as it stood when the
  run began. A larger profit resets `accumulated_loss` to zero.
- A real win by one of `loss_clearing_patterns` (ZZ by default) also resets it.
- EXPIRED fires only when `accumulated_loss` exceeds `initial_life`. It is terminal
  for the cycle; the machine re-arms to INACTIVE once the run it expired in has broken.

While PAUSED, outcomes are imaginary: they feed `imaginary_metrics` and the
resume checks but never touch life. The losing real bet that triggers a pause is
booked to real PnL but is not charged to life.

Only typed domain events drive transitions (see `handle`). Every transition is
appended to `state_history` as an immutable record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional

from block_arbiter.core.config import ContinuationConfig
from block_arbiter.core.errors import InvariantViolation
from block_arbiter.core.events import (
    ActivationEvent,
    BetOutcomeEvent,
    CompetingPatternBreak,
    ExpireEvent,
    HostilityEscalated,
    PauseEvent,
    ResumeEvent,
    RunBreakEvent,
)

logger = logging.getLogger(__name__)

CONTINUATION_PATTERN = "SD"


class MachineState(Enum):
    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"


class PauseReason(Enum):
    HIGH_MAGNITUDE_REVERSAL = "HIGH_MAGNITUDE_REVERSAL"
    CONSECUTIVE_LOSSES = "CONSECUTIVE_LOSSES"
    HOSTILE_MARKET = "HOSTILE_MARKET"


class ResumeReason(Enum):
    COMPETING_PATTERN_BREAK = "COMPETING_PATTERN_BREAK"
    IMAGINARY_WIN_STREAK = "IMAGINARY_WIN_STREAK"
    IMAGINARY_PROFIT = "IMAGINARY_PROFIT"


@dataclass
class RealMetrics:
    pnl: float = 0.0
    wins: int = 0
    losses: int = 0
    consecutive_losses: int = 0


@dataclass
class ImaginaryMetrics:
    pnl: float = 0.0
    wins: int = 0
    losses: int = 0
    consecutive_wins: int = 0


@dataclass(frozen=True)
class Transition:
    block_index: int
    trigger: str
    from_state: str
    to_state: str
    reason: str
    remaining_life: float
    accumulated_loss: float
    real_pnl: float
    imaginary_pnl: float
    resume_count: int


@dataclass
class ContinuationState:
    machine_state: MachineState = MachineState.INACTIVE
    direction: Optional[int] = None
    initial_life: float = 0.0
    remaining_life: float = 0.0
    accumulated_loss: float = 0.0
    run_pnl: float = 0.0              # real continuation PnL since the last run break
    run_start_loss: float = 0.0       # accumulated_loss when that run began
    pause_reason: Optional[PauseReason] = None
    pause_start_index: Optional[int] = None
    resume_count: int = 0
    activation_count: int = 0
    real_metrics: RealMetrics = field(default_factory=RealMetrics)
    imaginary_metrics: ImaginaryMetrics = field(default_factory=ImaginaryMetrics)
    state_history: List[Transition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["machine_state"] = self.machine_state.value
        d["pause_reason"] = self.pause_reason.value if self.pause_reason else None
        return d


class ContinuationStateMachine:
    def __init__(self, config: ContinuationConfig):
        self.config = config
        self.state = ContinuationState(initial_life=config.life_budget, remaining_life=config.life_budget)

    @property
    def machine_state(self) -> MachineState:
        return self.state.machine_state

    @property
    def is_active(self) -> bool:
        return self.state.machine_state == MachineState.ACTIVE

    @property
    def is_paused(self) -> bool:
        return self.state.machine_state == MachineState.PAUSED

    def handle(self, event) -> List[object]:
        """Apply one input event. Returns the pause/resume/expire events it produced."""
        if isinstance(event, ActivationEvent):
            return self._on_activation(event)
        if isinstance(event, RunBreakEvent):
            return self._on_run_break(event)
        if isinstance(event, BetOutcomeEvent):
            return self._on_outcome(event)
        if isinstance(event, CompetingPatternBreak):
            return self._on_competing_break(event)
        if isinstance(event, HostilityEscalated):
            return self._on_hostility(event)
        raise InvariantViolation(f"continuation machine cannot consume {type(event).__name__}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_activation(self, event: ActivationEvent) -> List[object]:
        if self.state.machine_state != MachineState.INACTIVE:
            logger.debug(f"Activation at block {event.block_index} ignored in {self.state.machine_state.value}")
            return []
        s = self.state
        s.initial_life = self.config.life_budget
        s.remaining_life = s.initial_life
        s.accumulated_loss = 0.0
        s.run_pnl = 0.0
        s.run_start_loss = 0.0
        s.direction = event.direction
        s.pause_reason = None
        s.pause_start_index = None
        s.activation_count += 1
        s.real_metrics.consecutive_losses = 0
        s.imaginary_metrics = ImaginaryMetrics()
        self._transition(event.block_index, event.kind, MachineState.ACTIVE, f"run profit {event.run_profit:.0f}")
        return []

    def _on_run_break(self, event: RunBreakEvent) -> List[object]:
        s = self.state
        if s.machine_state == MachineState.EXPIRED:
            self._transition(event.block_index, event.kind, MachineState.INACTIVE, "cycle closed")
            return []
        if s.machine_state == MachineState.ACTIVE and s.accumulated_loss > 0 and s.run_pnl > s.run_start_loss:
            logger.info(
                f"Run of {event.broken_length} realized {s.run_pnl:.0f} > loss {s.run_start_loss:.0f} "
                f"at run start, clearing accumulated loss {s.accumulated_loss:.0f}"
            )
            s.accumulated_loss = 0.0
        s.run_pnl = 0.0
        s.run_start_loss = s.accumulated_loss
        return []

    def _on_outcome(self, event: BetOutcomeEvent) -> List[object]:
        if event.source != "continuation":
            return self._on_other_source_outcome(event)
        ms = self.state.machine_state
        if ms in (MachineState.INACTIVE, MachineState.EXPIRED):
            logger.debug(f"Outcome at block {event.block_index} ignored in {ms.value}")
            return []
        if ms == MachineState.ACTIVE:
            if not event.is_real:
                raise InvariantViolation(f"imaginary outcome at block {event.block_index} while ACTIVE")
            return self._on_real_outcome(event)
        # PAUSED
        if event.is_real:
            logger.warning(f"Real continuation outcome at block {event.block_index} while PAUSED")
            return self._on_real_outcome(event)
        return self._on_imaginary_outcome(event)

    def _on_real_outcome(self, event: BetOutcomeEvent) -> List[object]:
        s = self.state
        rm = s.real_metrics
        s.direction = event.direction
        rm.pnl += event.pnl
        s.run_pnl += event.pnl
        if event.is_win:
            rm.wins += 1
            rm.consecutive_losses = 0
            return []

        prior_consecutive = rm.consecutive_losses
        rm.losses += 1
        rm.consecutive_losses += 1

        if s.machine_state == MachineState.ACTIVE:
            reason = None
            if event.is_reversal and event.magnitude >= self.config.high_magnitude_threshold:
                reason = PauseReason.HIGH_MAGNITUDE_REVERSAL
            elif prior_consecutive >= self.config.consecutive_loss_pause_count:
                reason = PauseReason.CONSECUTIVE_LOSSES
            if reason is not None:
                return [self._pause(event.block_index, event.kind, reason)]

        loss = abs(event.pnl)
        s.accumulated_loss += loss
        s.remaining_life -= loss
        if s.accumulated_loss > s.initial_life:
            self._transition(
                event.block_index, event.kind, MachineState.EXPIRED,
                f"accumulated loss {s.accumulated_loss:.0f} > life {s.initial_life:.0f}",
            )
            return [ExpireEvent(
                block_index=event.block_index,
                accumulated_loss=s.accumulated_loss,
                remaining_life=s.remaining_life,
            )]
        return []

    def _on_imaginary_outcome(self, event: BetOutcomeEvent) -> List[object]:
        im = self.state.imaginary_metrics
        im.pnl += event.pnl
        if event.is_win:
            im.wins += 1
            im.consecutive_wins += 1
        else:
            im.losses += 1
            im.consecutive_wins = 0

        if im.consecutive_wins >= self.config.resume_consecutive_wins:
            return [self._resume(event.block_index, event.kind, ResumeReason.IMAGINARY_WIN_STREAK)]
        if im.pnl >= self.config.resume_profit_floor:
            return [self._resume(event.block_index, event.kind, ResumeReason.IMAGINARY_PROFIT)]
        return []

    def _on_other_source_outcome(self, event: BetOutcomeEvent) -> List[object]:
        s = self.state
        if s.machine_state != MachineState.ACTIVE or not (event.is_real and event.is_win):
            return []
        if event.pattern in self.config.loss_clearing_patterns and s.accumulated_loss > 0:
            logger.info(f"{event.pattern} win at block {event.block_index} clears accumulated loss {s.accumulated_loss:.0f}")
            s.accumulated_loss = 0.0
            s.run_start_loss = 0.0
        return []

    def _on_competing_break(self, event: CompetingPatternBreak) -> List[object]:
        if self.state.machine_state != MachineState.PAUSED:
            return []
        if event.pattern not in self.config.competing_patterns:
            return []
        if not event.confirmed:
            logger.info(f"Competing break of {event.pattern} at block {event.block_index} unconfirmed, staying paused")
            return []
        return [self._resume(event.block_index, event.kind, ResumeReason.COMPETING_PATTERN_BREAK)]

    def _on_hostility(self, event: HostilityEscalated) -> List[object]:
        if self.state.machine_state != MachineState.ACTIVE:
            return []
        if event.level not in ("pause", "extended_pause"):
            return []
        return [self._pause(event.block_index, event.kind, PauseReason.HOSTILE_MARKET)]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _pause(self, block_index: int, trigger: str, reason: PauseReason) -> PauseEvent:
        s = self.state
        s.pause_reason = reason
        s.pause_start_index = block_index
        s.imaginary_metrics = ImaginaryMetrics()
        self._transition(block_index, trigger, MachineState.PAUSED, reason.value)
        return PauseEvent(block_index=block_index, reason=reason.value)

    def _resume(self, block_index: int, trigger: str, reason: ResumeReason) -> ResumeEvent:
        s = self.state
        if s.accumulated_loss > s.initial_life:
            raise InvariantViolation(
                f"resume at block {block_index} with exhausted life "
                f"(accumulated_loss={s.accumulated_loss}, initial_life={s.initial_life})"
            )
        s.pause_reason = None
        s.pause_start_index = None
        s.imaginary_metrics = ImaginaryMetrics()
        s.real_metrics.consecutive_losses = 0
        s.resume_count += 1
        self._transition(block_index, trigger, MachineState.ACTIVE, reason.value)
        return ResumeEvent(block_index=block_index, reason=reason.value)

    def _transition(self, block_index: int, trigger: str, to_state: MachineState, reason: str) -> None:
        s = self.state
        from_state = s.machine_state
        s.machine_state = to_state
        record = Transition(
            block_index=block_index,
            trigger=trigger,
            from_state=from_state.value,
            to_state=to_state.value,
            reason=reason,
            remaining_life=s.remaining_life,
            accumulated_loss=s.accumulated_loss,
            real_pnl=s.real_metrics.pnl,
            imaginary_pnl=s.imaginary_metrics.pnl,
            resume_count=s.resume_count,
        )
        s.state_history.append(record)
        logger.info(
            f"Continuation {from_state.value} -> {to_state.value} at block {block_index} "
            f"({reason}; life={s.remaining_life:.0f}, loss={s.accumulated_loss:.0f})"
        )

    def snapshot(self) -> Dict[str, object]:
        return self.state.to_dict()
