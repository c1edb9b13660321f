"""
Pattern catalogue: named rule templates over run-length history.

Each rule is a small predicate over the tracker's runs that, when it matches,
predicts the direction of the next block. Rules are evaluated in catalogue order,
which is also the deterministic tie-break order used by the bucket strategy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from block_arbiter.engines.run_tracker import RunTracker

# Prediction modes
REVERSE = "reverse"
CONTINUE = "continue"


@dataclass(frozen=True)
class PatternRule:
    name: str
    opposite: Optional[str]
    continuous: bool
    mode: str
    matches: Callable[[Tuple[int, ...]], bool]


@dataclass(frozen=True)
class PatternSignal:
    """A prediction for the block at `target_index`."""
    pattern: str
    direction: int
    target_index: int


def _xax(n: int) -> Callable[[Tuple[int, ...]], bool]:
    return lambda lengths: bool(lengths) and lengths[-1] == n


def _ap5(lengths: Tuple[int, ...]) -> bool:
    return len(lengths) >= 2 and lengths[-1] == 1 and lengths[-2] >= 3


def _oz(lengths: Tuple[int, ...]) -> bool:
    return len(lengths) >= 2 and lengths[-1] == 1 and lengths[-2] >= 2


def _pp(lengths: Tuple[int, ...]) -> bool:
    return len(lengths) >= 2 and lengths[-1] == 2 and lengths[-2] == 1


def _st(lengths: Tuple[int, ...]) -> bool:
    return len(lengths) >= 2 and lengths[-1] == 1 and lengths[-2] == 2


def _zigzag(lengths: Tuple[int, ...]) -> bool:
    # An indicator run (2+) followed by at least three singles, the last in progress.
    singles = 0
    for length in reversed(lengths):
        if length != 1:
            return singles >= 3 and length >= 2
        singles += 1
    return False


def _build_catalogue() -> List[PatternRule]:
    rules: List[PatternRule] = []
    for n in range(2, 7):
        rules.append(PatternRule(f"{n}A{n}", f"Anti{n}A{n}", False, REVERSE, _xax(n)))
        rules.append(PatternRule(f"Anti{n}A{n}", f"{n}A{n}", False, CONTINUE, _xax(n)))
    rules.extend([
        PatternRule("AP5", "OZ", False, CONTINUE, _ap5),
        PatternRule("OZ", "AP5", False, REVERSE, _oz),
        PatternRule("PP", "ST", False, REVERSE, _pp),
        PatternRule("ST", "PP", False, CONTINUE, _st),
        PatternRule("ZZ", "AntiZZ", True, REVERSE, _zigzag),
        PatternRule("AntiZZ", "ZZ", True, CONTINUE, _zigzag),
    ])
    return rules


CATALOGUE: List[PatternRule] = _build_catalogue()
RULES: Dict[str, PatternRule] = {r.name: r for r in CATALOGUE}
PATTERN_NAMES: Tuple[str, ...] = tuple(r.name for r in CATALOGUE)
OPPOSITE_PATTERNS: Dict[str, str] = {r.name: r.opposite for r in CATALOGUE if r.opposite}
CONTINUOUS_PATTERNS = frozenset(r.name for r in CATALOGUE if r.continuous)
POCKET_PATTERNS: Tuple[str, ...] = ("ZZ", "AntiZZ")
BUCKET_PATTERNS: Tuple[str, ...] = tuple(n for n in PATTERN_NAMES if n not in POCKET_PATTERNS)


def detect_signals(tracker: RunTracker) -> List[PatternSignal]:
    """Evaluate every rule against the tracker's current run history."""
    current = tracker.current
    if current is None:
        return []
    lengths = tuple(tracker.lengths)
    target = tracker.next_index
    out: List[PatternSignal] = []
    for rule in CATALOGUE:
        if not rule.matches(lengths):
            continue
        direction = -current.direction if rule.mode == REVERSE else current.direction
        out.append(PatternSignal(pattern=rule.name, direction=direction, target_index=target))
    return out
