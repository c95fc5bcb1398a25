"""Assignment engine: direct pass, gap-filling reallocation, orchestration."""

from .base import BaseStrategy, Gap, RunContext, UnresolvedGap
from .direct import DirectAssignmentPass
from .guard import GuardedSchedule
from .orchestrator import AutoAssignmentEngine, RunResult, run
from .reallocation import (
    ChainSwapStrategy,
    CrossSessionStrategy,
    DirectStrategy,
    GapReallocator,
    SimpleSwapStrategy,
)
from .trace import DecisionTrace, TraceEvent

__all__ = [
    "BaseStrategy",
    "Gap",
    "RunContext",
    "UnresolvedGap",
    "DirectAssignmentPass",
    "GuardedSchedule",
    "AutoAssignmentEngine",
    "RunResult",
    "run",
    "ChainSwapStrategy",
    "CrossSessionStrategy",
    "DirectStrategy",
    "GapReallocator",
    "SimpleSwapStrategy",
    "DecisionTrace",
    "TraceEvent",
]
