from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from block_arbiter.core.config import ArbiterConfig, validate_config
from block_arbiter.core.errors import InputRejected, InvariantViolation
from block_arbiter.core.events import (
    ActivationEvent,
    BetOutcomeEvent,
    BlockInput,
    CompetingPatternBreak,
    HighMagnitudeReversal,
    HostilityEscalated,
    PatternBreak,
    RunBreakEvent,
    event_payload,
)
from block_arbiter.core.types import Block, Event, fingerprint_events
from block_arbiter.engines.arbitration import ArbitrationManager, Decision
from block_arbiter.engines.continuation import CONTINUATION_PATTERN, ContinuationStateMachine, MachineState
from block_arbiter.engines.hostility import HostilityDetector, PAUSING_LEVELS
from block_arbiter.engines.lifecycle import PatternLifecycleManager
from block_arbiter.engines.pause_manager import PauseManager
from block_arbiter.engines.patterns import PatternSignal, detect_signals
from block_arbiter.engines.run_tracker import RunTracker
from block_arbiter.strategies.bucket import BucketStrategy
from block_arbiter.strategies.continuation import ContinuationStrategy
from block_arbiter.strategies.pocket import PocketStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingBet:
    target_index: int
    source: str
    pattern: str
    direction: int
    is_real: bool


@dataclass(frozen=True)
class OutcomeRecord:
    """Resolution of a bet. is_real=False outcomes must never reach a staking mechanism."""
    block_index: int
    source: str
    pattern: str
    direction: int
    is_win: bool
    pnl: float
    is_real: bool


class ArbiterSession:
    """
    Explicit session context: owns every component and drives them once per block.

    Per block, in order:
      resolve pending bets -> drawdown pauses -> run tracker -> lifecycle ->
      hostility -> continuation machine -> new signals -> arbitration -> event log

    The manual hard stop is recorded per block so that a rebuild replays every
    block under the flag it was processed with.
    """

    def __init__(self, config: Optional[ArbiterConfig] = None, stream_id: str = "SESSION"):
        self.config = validate_config(config or ArbiterConfig())
        self.config_hash = self.config.config_hash
        self.stream_id = stream_id
        self.hard_stop = False
        self.hard_stop_flags: List[bool] = []
        self._build()

    def _build(self) -> None:
        self.tracker = RunTracker()
        self.lifecycle = PatternLifecycleManager(self.config.lifecycle)
        self.hostility = HostilityDetector(self.config.hostility)
        self.pauses = PauseManager(self.config.pauses)
        self.continuation = ContinuationStateMachine(self.config.continuation)
        self.pocket = PocketStrategy(self.lifecycle)
        self.bucket = BucketStrategy(self.lifecycle)
        self.continuation_strategy = ContinuationStrategy(self.continuation, self.tracker)
        self.arbitration = ArbitrationManager(self.config.arbitration)

        self.pending_signals: List[PatternSignal] = []
        self.pending_bets: List[PendingBet] = []
        self.decisions: List[Decision] = []
        self.outcomes: List[OutcomeRecord] = []
        self.event_log: List[Event] = []
        self.real_pnl = 0.0

    # ------------------------------------------------------------------
    # Ingestion boundary
    # ------------------------------------------------------------------

    def append_block(
        self,
        direction: int,
        magnitude: float,
        sequence_index: Optional[int] = None,
        ts: Optional[str] = None,
    ) -> Decision:
        """Validate and process one block. Returns the decision for the next block."""
        block = self._validate(direction, magnitude, sequence_index, ts)
        self._process(block, self.hard_stop)
        self.hard_stop_flags.append(self.hard_stop)
        return self.decisions[-1]

    def _validate(self, direction, magnitude, sequence_index, ts) -> Block:
        try:
            raw = BlockInput(direction=direction, magnitude=magnitude, sequence_index=sequence_index, ts=ts)
        except ValidationError as e:
            logger.warning(f"Rejected block input: {e.errors()[0]['msg']}")
            raise InputRejected(f"malformed block: {e}") from e
        expected = self.tracker.next_index
        if raw.sequence_index is not None and raw.sequence_index != expected:
            logger.warning(f"Rejected block with sequence_index={raw.sequence_index}, expected {expected}")
            raise InputRejected(f"non-monotonic sequence_index {raw.sequence_index}, expected {expected}")
        return Block(direction=raw.direction, magnitude=float(raw.magnitude), sequence_index=expected, ts=raw.ts)

    def undo_last(self) -> Block:
        """Remove the most recent block and rebuild all state from the remaining ones."""
        if not self.tracker.blocks:
            raise InputRejected("nothing to undo")
        blocks = list(self.tracker.blocks)
        removed = blocks.pop()
        self.hard_stop_flags.pop()
        self._build()
        for b, stopped in zip(blocks, self.hard_stop_flags):
            self._process(b, stopped)
        logger.info(f"Undid block {removed.sequence_index}; {len(blocks)} blocks replayed")
        return removed

    def set_hard_stop(self, active: bool) -> None:
        self.hard_stop = bool(active)
        logger.warning(f"Global hard stop {'engaged' if self.hard_stop else 'released'}")

    # ------------------------------------------------------------------
    # Per-block pipeline
    # ------------------------------------------------------------------

    def _process(self, block: Block, hard_stop: bool) -> None:
        idx = block.sequence_index
        is_reversal = self.tracker.is_reversal(block)
        domain: List[Any] = []

        # 1. Resolve bets placed on this block
        outcomes = [self._resolve(bet, block) for bet in self.pending_bets if bet.target_index == idx]
        self.pending_bets = []
        self.outcomes.extend(outcomes)
        self.real_pnl += sum(o.pnl for o in outcomes if o.is_real)

        # Drawdown pauses count down, then book this block's real outcomes
        self.pauses.advance_block()
        for o in outcomes:
            if o.is_real:
                self.pauses.record_outcome(o.source, o.pnl, o.is_win)
        domain.extend(self.pauses.evaluate(idx))

        # 2. Run tracker
        broken = self.tracker.append(block)

        # 3. Lifecycle: every pending signal is scored, bet on or not
        competing: List[CompetingPatternBreak] = []
        for sig in self.pending_signals:
            profit = block.magnitude if sig.direction == block.direction else -block.magnitude
            ev = self.lifecycle.apply_result(sig.pattern, profit, idx)
            if ev is None:
                continue
            domain.append(ev)
            if isinstance(ev, PatternBreak) and ev.pattern in self.config.continuation.competing_patterns:
                cb = CompetingPatternBreak(
                    block_index=idx, pattern=ev.pattern, confirmed=ev.prior_wins > 0, prior_wins=ev.prior_wins
                )
                competing.append(cb)
                domain.append(cb)

        # 4. Hostility, real outcomes only
        was_pausing = self.hostility.level in PAUSING_LEVELS
        real = [o for o in outcomes if o.is_real]
        for o in real:
            self.hostility.record_outcome(idx, o.pattern, o.is_win, block.magnitude)
        if not real:
            self.hostility.record_idle(idx)
        escalation = None
        if self.hostility.level in PAUSING_LEVELS and not was_pausing:
            escalation = HostilityEscalated(block_index=idx, level=self.hostility.level.value, score=self.hostility.score)
            domain.append(escalation)
        if is_reversal and block.magnitude >= self.config.continuation.high_magnitude_threshold:
            domain.append(HighMagnitudeReversal(block_index=idx, direction=block.direction, magnitude=block.magnitude))

        # 5. Continuation machine
        sd_inputs: List[Any] = [
            BetOutcomeEvent(
                block_index=idx,
                source="continuation",
                pattern=o.pattern,
                direction=o.direction,
                is_win=o.is_win,
                pnl=o.pnl,
                magnitude=block.magnitude,
                is_reversal=is_reversal,
                is_real=o.is_real,
            )
            for o in outcomes
            if o.source == "continuation" or (o.source == "pocket" and o.is_real)
        ]
        sd_inputs.extend(competing)
        if escalation is not None:
            sd_inputs.append(escalation)
        if broken is not None:
            sd_inputs.append(RunBreakEvent(block_index=idx, broken_direction=broken.direction, broken_length=broken.length))
        for ev in sd_inputs:
            if isinstance(ev, (BetOutcomeEvent, RunBreakEvent)):
                domain.append(ev)
            domain.extend(self.continuation.handle(ev))
        run_profit = self.tracker.current_run_profit()
        if (
            self.continuation.machine_state == MachineState.INACTIVE
            and run_profit >= self.config.continuation.activation_threshold
        ):
            activation = ActivationEvent(block_index=idx, direction=block.direction, run_profit=run_profit)
            domain.append(activation)
            domain.extend(self.continuation.handle(activation))

        # 6. Signals for the next block
        self.pending_signals = detect_signals(self.tracker)
        for sig in self.pending_signals:
            self.lifecycle.register(sig.pattern)
        pending = {s.pattern: s for s in self.pending_signals}

        # 7. Arbitration
        proposals = {
            "pocket": self.pocket.propose(pending),
            "continuation": self.continuation_strategy.propose(pending),
            "bucket": self.bucket.propose(pending),
        }
        decision = self.arbitration.decide(
            idx + 1,
            proposals,
            self.continuation.machine_state,
            self.hostility.level,
            hard_stop=hard_stop or self.pauses.stopped,
            can_trade=self.hostility.can_trade,
            blocked=self.pauses.blocked_sources(),
            remaining_life=self.continuation.state.remaining_life,
        )
        self.decisions.append(decision)
        if decision.should_bet:
            self._add_pending(PendingBet(idx + 1, decision.source, decision.pattern, decision.direction, True))
        shadow = proposals["continuation"]
        if self.continuation.machine_state == MachineState.PAUSED and shadow is not None:
            self._add_pending(PendingBet(idx + 1, "continuation", CONTINUATION_PATTERN, shadow.direction, False))

        # 8. Event log
        self._log(block, outcomes, domain, decision)

    def _add_pending(self, bet: PendingBet) -> None:
        if bet.is_real and any(b.is_real and b.target_index == bet.target_index for b in self.pending_bets):
            raise InvariantViolation(f"second real bet registered for block {bet.target_index}")
        self.pending_bets.append(bet)

    @staticmethod
    def _resolve(bet: PendingBet, block: Block) -> OutcomeRecord:
        is_win = bet.direction == block.direction
        return OutcomeRecord(
            block_index=block.sequence_index,
            source=bet.source,
            pattern=bet.pattern,
            direction=bet.direction,
            is_win=is_win,
            pnl=block.magnitude if is_win else -block.magnitude,
            is_real=bet.is_real,
        )

    def _log(self, block: Block, outcomes: List[OutcomeRecord], domain: List[Any], decision: Decision) -> None:
        ts = block.event_ts
        history = self.continuation.state.state_history
        new_transitions = [t for t in history if t.block_index == block.sequence_index]
        entries = [("BLOCK", block.to_payload())]
        entries += [("OUTCOME", asdict(o)) for o in outcomes]
        entries += [("DOMAIN_EVENT", event_payload(ev)) for ev in domain]
        entries += [("TRANSITION", asdict(t)) for t in new_transitions]
        entries.append(("DECISION", decision.to_dict()))
        for etype, payload in entries:
            self.event_log.append(Event.make(self.stream_id, ts, etype, payload, self.config_hash))

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def last_decision(self) -> Optional[Decision]:
        return self.decisions[-1] if self.decisions else None

    @property
    def last_outcome(self) -> Optional[OutcomeRecord]:
        return self.outcomes[-1] if self.outcomes else None

    def fingerprint(self) -> str:
        return fingerprint_events(self.event_log)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe view of all analysis state. Not sufficient to resume live betting."""
        return {
            "stream_id": self.stream_id,
            "config_hash": self.config_hash,
            "blocks_processed": len(self.tracker.blocks),
            "runs": {"lengths": list(self.tracker.lengths), "directions": list(self.tracker.directions)},
            "continuation": self.continuation.snapshot(),
            "patterns": self.lifecycle.snapshot(),
            "hostility": self.hostility.snapshot(),
            "pauses": self.pauses.snapshot(),
            "hard_stop": self.hard_stop,
            "real_pnl": self.real_pnl,
            "last_decision": self.last_decision.to_dict() if self.last_decision else None,
        }
