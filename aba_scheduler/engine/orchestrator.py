"""Orchestrator - runs the direct pass and the reallocation search for one schedule date."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Tuple

from aba_scheduler.config import EngineConfig
from aba_scheduler.domain.models import Assignment, Session, Staff, Student, index_by_id
from aba_scheduler.exceptions import MissingInputError

from .base import RunContext, UnresolvedGap
from .direct import DirectAssignmentPass
from .guard import GuardedSchedule
from .reallocation import GapReallocator
from .trace import DecisionTrace

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Net diff of one run plus diagnostics."""

    assignments: List[Assignment] = field(default_factory=list)
    removed: List[Assignment] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    gaps: List[UnresolvedGap] = field(default_factory=list)
    trace: DecisionTrace = field(default_factory=DecisionTrace)


def attendance_summary(staff: Iterable[Staff], students: Iterable[Student]) -> Dict[str, int]:
    """Counts of staff and students unavailable per session."""
    staff = list(staff)
    students = list(students)
    return {
        "staff_out_am": sum(1 for s in staff if s.is_active and not s.is_available_for_session(Session.AM)),
        "staff_out_pm": sum(1 for s in staff if s.is_active and not s.is_available_for_session(Session.PM)),
        "students_out_am": sum(1 for s in students if s.is_active and not s.is_available_for_session(Session.AM)),
        "students_out_pm": sum(1 for s in students if s.is_active and not s.is_available_for_session(Session.PM)),
    }


class AutoAssignmentEngine:
    """
    Coordinates one engine run over a caller-owned schedule.

    The run is synchronous: the direct pass fills what it can greedily, then
    the reallocator repairs residual gaps. The schedule is only touched through
    its add/remove operations, and every multi-step change lands atomically.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        direct_pass: DirectAssignmentPass | None = None,
        reallocator: GapReallocator | None = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Run parameters (defaults to EngineConfig())
            direct_pass: Override for the greedy first pass
            reallocator: Override for the gap-filling search
        """
        self.config = config or EngineConfig()
        self.direct_pass = direct_pass or DirectAssignmentPass()
        self.reallocator = reallocator or GapReallocator()

    def run(
        self,
        schedule,
        staff: Iterable[Staff] | Mapping[str, Staff],
        students: Iterable[Student] | Mapping[str, Student],
    ) -> RunResult:
        """
        Auto-assign staff to every student-session still short of coverage.

        Args:
            schedule: Schedule to fill (mutated in place via add/remove)
            staff: Full staff roster
            students: Full student roster

        Returns:
            RunResult with the assignments created, the pre-existing ones
            displaced, and one error per unresolved gap

        Raises:
            MissingInputError: If schedule or either roster is missing
            ScheduleBusyError: If another run holds the schedule
        """
        if schedule is None:
            raise MissingInputError("No schedule given")
        if staff is None or students is None:
            raise MissingInputError("Staff and student rosters are required")

        staff_by_id: Dict[str, Staff] = dict(index_by_id(staff))
        students_by_id: Dict[str, Student] = dict(index_by_id(students))
        trace = DecisionTrace()
        guarded = GuardedSchedule(schedule, trace)
        ctx = RunContext(
            schedule=guarded,
            staff=staff_by_id,
            students=students_by_id,
            config=self.config,
            rng=random.Random(self.config.random_seed),
            trace=trace,
        )

        logger.info("Auto-assignment for %s: %d staff, %d students",
                    guarded.date or "undated schedule", len(staff_by_id), len(students_by_id))
        summary = attendance_summary(staff_by_id.values(), students_by_id.values())
        logger.info("Attendance: staff out AM=%d PM=%d, students out AM=%d PM=%d",
                    summary["staff_out_am"], summary["staff_out_pm"],
                    summary["students_out_am"], summary["students_out_pm"])

        with guarded.run_guard():
            # 1. Greedy direct pass
            covered = self.direct_pass.run(ctx)
            logger.info("Direct pass complete: %d student-sessions covered", covered)

            # 2. Gap-filling reallocation
            resolved = self.reallocator.run(ctx)
            logger.info("Reallocation complete: %d gaps resolved", resolved)

        gaps = self.reallocator.residual_gaps(ctx)
        for gap in gaps:
            logger.warning(gap.message)
            trace.record("report", "gap", student=gap.student_id, session=gap.session,
                         program=gap.program, detail=gap.message, missing=gap.missing)

        result = RunResult(
            assignments=list(ctx.created.values()),
            removed=list(ctx.removed.values()),
            errors=[gap.message for gap in gaps],
            gaps=gaps,
            trace=trace,
        )
        logger.info("Auto-assignment done: %d new, %d displaced, %d unresolved",
                    len(result.assignments), len(result.removed), len(result.errors))
        return result


def run(
    schedule,
    staff: Iterable[Staff] | Mapping[str, Staff],
    students: Iterable[Student] | Mapping[str, Student],
    config: EngineConfig | None = None,
) -> Tuple[List[Assignment], List[str]]:
    """
    Convenience function: run the engine and return ``(new_assignments, errors)``.

    Args:
        schedule: Schedule to fill in place
        staff: Staff roster
        students: Student roster
        config: Optional EngineConfig

    Returns:
        Tuple of the assignments created and one message per unresolved gap
    """
    result = AutoAssignmentEngine(config).run(schedule, staff, students)
    return result.assignments, result.errors
