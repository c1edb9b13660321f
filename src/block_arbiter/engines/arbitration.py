"""
Hierarchy / Arbitration Manager.

Composes the three strategies into exactly one decision per block, walking the
configured priority list (default: pocket > continuation > bucket):

- A source with a proposal bets; every lower-priority source is paused.
- Continuation ACTIVE bets. Continuation PAUSED never bets (its would-be bet is
  tracked as imaginary) and pauses bucket unless allow_bucket_during_pause.
- Every proposal is gated through the hostility detector; at pause level and
  above only its exempt patterns (ZZ/AntiZZ) may bet.
- Sources in a drawdown pause sit out.
- A global hard stop (manual or STOP_GAME) pauses everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from block_arbiter.core.config import ArbitrationConfig, SOURCES
from block_arbiter.core.errors import InvariantViolation
from block_arbiter.engines.continuation import MachineState
from block_arbiter.engines.hostility import HostilityLevel
from block_arbiter.strategies.base import BetProposal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    block_index: int                 # index of the block this decision bets on
    source: str                      # pocket | continuation | bucket | none
    pattern: Optional[str]
    direction: Optional[int]
    should_bet: bool
    paused_sources: Tuple[str, ...]
    reasoning: str
    sd_state: str
    hostility_level: str
    remaining_life: Optional[float] = None   # continuation life when the decision was made

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["paused_sources"] = list(self.paused_sources)
        return d


class ArbitrationManager:
    def __init__(self, config: ArbitrationConfig):
        self.config = config
        self.priority: Tuple[str, ...] = tuple(config.priority)

    def decide(
        self,
        block_index: int,
        proposals: Dict[str, Optional[BetProposal]],
        sd_state: MachineState,
        hostility_level: HostilityLevel = HostilityLevel.NORMAL,
        hard_stop: bool = False,
        can_trade: Optional[Callable[[str], bool]] = None,
        blocked: Iterable[str] = (),
        remaining_life: Optional[float] = None,
    ) -> Decision:
        blocked = set(blocked)
        if hard_stop:
            return self._none(block_index, SOURCES, "global hard stop", sd_state, hostility_level, remaining_life)

        paused: List[str] = []
        notes: List[str] = []
        chosen: Optional[BetProposal] = None

        for rank, source in enumerate(self.priority):
            if source in paused:
                continue
            proposal = proposals.get(source)

            if source == "continuation":
                if sd_state == MachineState.PAUSED:
                    notes.append("continuation paused (imaginary)")
                    if not self.config.allow_bucket_during_pause:
                        self._pause_below(rank, ["bucket"], paused)
                    continue
                if sd_state != MachineState.ACTIVE:
                    continue

            if source in blocked:
                paused.append(source)
                notes.append(f"{source} in drawdown pause")
                continue

            if proposal is None:
                continue
            if proposal.source != source:
                raise InvariantViolation(f"proposal from {proposal.source} submitted as {source}")
            if can_trade is not None and not can_trade(proposal.pattern):
                paused.append(source)
                notes.append(f"{source} {proposal.pattern} held by hostility ({hostility_level.value})")
                continue
            chosen = proposal
            self._pause_below(rank, list(self.priority[rank + 1:]), paused)
            break

        paused_t = tuple(sorted(set(paused)))
        if chosen is None:
            reasoning = "; ".join(notes) or "no eligible signal"
            return self._none(block_index, paused_t, reasoning, sd_state, hostility_level, remaining_life)

        reasoning = "; ".join([f"{chosen.source}: {chosen.reason}"] + notes)
        decision = Decision(
            block_index=block_index,
            source=chosen.source,
            pattern=chosen.pattern,
            direction=chosen.direction,
            should_bet=True,
            paused_sources=paused_t,
            reasoning=reasoning,
            sd_state=sd_state.value,
            hostility_level=hostility_level.value,
            remaining_life=remaining_life,
        )
        self.check_exclusive([decision])
        logger.debug(f"Decision for block {block_index}: {decision.source}/{decision.pattern} -> {decision.direction}")
        return decision

    def _pause_below(self, rank: int, candidates: List[str], paused: List[str]) -> None:
        for source in self.priority[rank + 1:]:
            if source in candidates and source not in paused:
                paused.append(source)

    @staticmethod
    def check_exclusive(decisions: List[Decision]) -> None:
        """At most one betting decision may exist for a block."""
        by_block: Dict[int, str] = {}
        for d in decisions:
            if not d.should_bet:
                continue
            if d.block_index in by_block:
                raise InvariantViolation(
                    f"two sources bet on block {d.block_index}: {by_block[d.block_index]} and {d.source}"
                )
            by_block[d.block_index] = d.source

    @staticmethod
    def _none(block_index, paused, reasoning, sd_state, hostility_level, remaining_life=None) -> Decision:
        return Decision(
            block_index=block_index,
            source="none",
            pattern=None,
            direction=None,
            should_bet=False,
            paused_sources=tuple(sorted(paused)),
            reasoning=reasoning,
            sd_state=sd_state.value,
            hostility_level=hostility_level.value,
            remaining_life=remaining_life,
        )
