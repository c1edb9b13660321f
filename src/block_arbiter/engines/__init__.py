"""
Arbitration engines.

- RunTracker: run-length history
- PatternLifecycleManager: observing/active promotion per pattern
- HostilityDetector: decaying weighted indicator score
- ContinuationStateMachine: INACTIVE/ACTIVE/PAUSED/EXPIRED with life budget
- PauseManager: drawdown pauses per system and the STOP_GAME floor
- ArbitrationManager: one decision per block by priority
"""

from .run_tracker import RunTracker, Run
from .lifecycle import PatternLifecycleManager, PatternCycle, PatternState
from .hostility import HostilityDetector, HostilityLevel, level_for_score
from .continuation import ContinuationStateMachine, MachineState, PauseReason, ResumeReason
from .pause_manager import PauseManager, PauseType
from .arbitration import ArbitrationManager, Decision
