"""
Pause Manager - drawdown-driven pauses over realized (real) PnL.

Enforces:
1. STOP_GAME: session PnL falls `stop_game_drawdown` below its peak, or
   `stop_game_actual_loss` below zero. Every source stops for the rest of the session.
2. MAJOR_PAUSE: a system's own PnL crosses another `major_pause_interval` of
   drawdown. That system sits out `major_pause_blocks` decisions.
3. MINOR_PAUSE: a system loses `minor_pause_losses` real bets in a row. That
   system sits out `minor_pause_blocks` decisions.

Pocket is only ever stopped by STOP_GAME. Continuation and bucket are tracked
independently.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Tuple

from block_arbiter.core.config import PauseConfig
from block_arbiter.core.events import SystemPauseEvent

logger = logging.getLogger(__name__)

PAUSABLE_SYSTEMS: Tuple[str, ...] = ("continuation", "bucket")


class PauseType(Enum):
    STOP_GAME = "STOP_GAME"
    MAJOR_PAUSE = "MAJOR_PAUSE"
    MINOR_PAUSE = "MINOR_PAUSE"


@dataclass
class SystemHealth:
    pnl: float = 0.0
    consecutive_losses: int = 0
    last_milestone: int = 0
    pause_type: Optional[PauseType] = None
    blocks_remaining: int = 0

    @property
    def paused(self) -> bool:
        return self.pause_type is not None

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d["pause_type"] = self.pause_type.value if self.pause_type else None
        return d


class PauseManager:
    def __init__(self, config: PauseConfig):
        self.config = config
        self.systems: Dict[str, SystemHealth] = {s: SystemHealth() for s in PAUSABLE_SYSTEMS}
        self.session_pnl = 0.0
        self.peak_pnl = 0.0
        self.stop_reason: Optional[str] = None
        self.history: List[SystemPauseEvent] = []

    @property
    def stopped(self) -> bool:
        return self.stop_reason is not None

    def blocked_sources(self) -> Tuple[str, ...]:
        return tuple(name for name, health in self.systems.items() if health.paused)

    def advance_block(self) -> None:
        """Count down running system pauses. Call once per block, before new outcomes."""
        for name, health in self.systems.items():
            if not health.paused:
                continue
            health.blocks_remaining -= 1
            if health.blocks_remaining <= 0:
                logger.info(f"{name} {health.pause_type.value} ended")
                health.pause_type = None
                health.blocks_remaining = 0

    def record_outcome(self, source: str, pnl: float, is_win: bool) -> None:
        """Book one real outcome."""
        self.session_pnl += pnl
        self.peak_pnl = max(self.peak_pnl, self.session_pnl)
        health = self.systems.get(source)
        if health is None:
            return
        health.pnl += pnl
        health.consecutive_losses = 0 if is_win else health.consecutive_losses + 1

    def evaluate(self, block_index: int) -> List[SystemPauseEvent]:
        """Trigger whatever pauses the booked outcomes call for."""
        if not self.config.enabled:
            return []
        fired: List[SystemPauseEvent] = []
        stop = self._check_stop_game(block_index)
        if stop is not None:
            fired.append(stop)
        if not self.stopped:
            for name, health in self.systems.items():
                ev = self._check_system(name, health, block_index)
                if ev is not None:
                    fired.append(ev)
        self.history.extend(fired)
        return fired

    def _check_stop_game(self, block_index: int) -> Optional[SystemPauseEvent]:
        if self.stopped:
            return None
        cfg = self.config
        drawdown = self.peak_pnl - self.session_pnl
        if drawdown >= cfg.stop_game_drawdown:
            reason = f"drawdown {drawdown:.0f} from peak {self.peak_pnl:.0f}"
        elif self.session_pnl <= -cfg.stop_game_actual_loss:
            reason = f"actual loss {self.session_pnl:.0f}"
        else:
            return None
        self.stop_reason = reason
        logger.warning(f"STOP_GAME at block {block_index}: {reason}")
        return SystemPauseEvent(block_index=block_index, system="all", pause_type=PauseType.STOP_GAME.value, reason=reason)

    def _check_system(self, name: str, health: SystemHealth, block_index: int) -> Optional[SystemPauseEvent]:
        if health.paused:
            return None
        cfg = self.config
        milestone = math.floor(abs(health.pnl) / cfg.major_pause_interval) if health.pnl < 0 else 0
        if milestone > health.last_milestone:
            health.last_milestone = milestone
            reason = f"{name} drawdown milestone {-milestone * cfg.major_pause_interval:.0f}"
            return self._pause(name, health, PauseType.MAJOR_PAUSE, cfg.major_pause_blocks, reason, block_index)
        if health.consecutive_losses >= cfg.minor_pause_losses:
            reason = f"{name} {health.consecutive_losses} consecutive losses"
            # the streak is spent on this pause
            health.consecutive_losses = 0
            return self._pause(name, health, PauseType.MINOR_PAUSE, cfg.minor_pause_blocks, reason, block_index)
        return None

    def _pause(self, name, health, pause_type, blocks, reason, block_index) -> SystemPauseEvent:
        health.pause_type = pause_type
        health.blocks_remaining = blocks
        logger.info(f"{name} {pause_type.value} at block {block_index}: {reason} ({blocks} blocks)")
        return SystemPauseEvent(
            block_index=block_index, system=name, pause_type=pause_type.value, reason=reason, blocks=blocks
        )

    def snapshot(self) -> Dict[str, object]:
        return {
            "session_pnl": self.session_pnl,
            "peak_pnl": self.peak_pnl,
            "stop_reason": self.stop_reason,
            "systems": {name: health.to_dict() for name, health in self.systems.items()},
        }
