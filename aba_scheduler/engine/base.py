"""Shared run state and the strategy interface used by the engine stages."""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from aba_scheduler.config import EngineConfig
from aba_scheduler.domain.models import Assignment, Program, Provenance, ProvenanceKind, Session, Staff, Student
from aba_scheduler.domain.schedule import ChangeSet, ScheduleView
from aba_scheduler.services.constraints import ConstraintViolation, validate_assignment
from aba_scheduler.services.eligibility import CandidateSelection, select_candidates

from .guard import GuardedSchedule
from .trace import DecisionTrace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Gap:
    """A student-session still short of its required staff count."""

    student: Student
    session: Session
    program: Program
    missing: int


@dataclass(frozen=True)
class UnresolvedGap:
    """A gap every strategy failed to fill; reported to the caller."""

    student_id: str
    student_name: str
    session: Session
    program: Program
    missing: int

    @property
    def message(self) -> str:
        return f"{self.student_name} could not be assigned in {self.program.value} {self.session.value}"

    @classmethod
    def from_gap(cls, gap: Gap) -> "UnresolvedGap":
        return cls(gap.student.id, gap.student.name, gap.session, gap.program, gap.missing)


class RunContext:
    """Everything one engine run needs: rosters, the guarded schedule, config and trace."""

    def __init__(
        self,
        schedule: GuardedSchedule,
        staff: Dict[str, Staff],
        students: Dict[str, Student],
        config: EngineConfig,
        rng: random.Random,
        trace: DecisionTrace,
    ):
        self.schedule = schedule
        self.staff = staff
        self.students = students
        self.config = config
        self.rng = rng
        self.trace = trace
        # Net effect of the run on the caller's schedule
        self.created: Dict[str, Assignment] = {}
        self.removed: Dict[str, Assignment] = {}

    @property
    def date(self):
        return self.schedule.date

    def new_assignment(
        self,
        staff_id: str,
        student_id: str,
        session: Session,
        program: Program,
        provenance: Provenance | ProvenanceKind = ProvenanceKind.AUTO,
    ) -> Assignment:
        if isinstance(provenance, ProvenanceKind):
            provenance = Provenance(provenance)
        return Assignment(
            staff_id=staff_id,
            student_id=student_id,
            session=session,
            program=program,
            date=self.date,
            provenance=provenance,
        )

    def violations(self, candidate: Assignment, view: ScheduleView) -> List[ConstraintViolation]:
        return validate_assignment(candidate, view, self.staff, self.students, self.config.small_group_cap)

    def is_valid(self, candidate: Assignment, view: ScheduleView) -> bool:
        return not self.violations(candidate, view)

    def missing(self, student: Student, session: Session, program: Program, view: ScheduleView | None = None) -> int:
        view = view or self.schedule
        covered = len(view.student_slot_assignments(student.id, session, program))
        return max(0, student.required_staff_count(session) - covered)

    def needs_coverage(self, student: Student, session: Session, program: Program) -> bool:
        return (
            student.is_active
            and student.program == program
            and student.is_available_for_session(session)
            and self.missing(student, session, program) > 0
        )

    def partner_of(self, student: Student) -> Optional[Student]:
        """The student's pairing partner when it is a usable roster entry."""
        if not student.paired_with:
            return None
        partner = self.students.get(student.paired_with)
        if partner is None or partner.id == student.id or partner.program != student.program:
            return None
        return partner if partner.is_active else None

    def is_displaceable(self, assignment: Assignment, view: ScheduleView) -> bool:
        """Locked work and one half of a served pair are never moved."""
        if assignment.is_locked or view.is_assignment_locked(assignment.id):
            return False
        student = self.students.get(assignment.student_id)
        if student is None:
            return False
        partner = self.partner_of(student)
        if partner is not None and view.student_slot_assignments(partner.id, assignment.session, assignment.program):
            return False
        return True

    def select(
        self,
        student: Student,
        session: Session,
        program: Program,
        view: ScheduleView,
        roster=None,
        **kwargs,
    ) -> CandidateSelection:
        return select_candidates(
            student, session, program, self.staff if roster is None else roster, view,
            rng=self.rng, jitter=self.config.pm_jitter, **kwargs,
        )

    def commit(self, changes: ChangeSet, stage: str, gap: Gap | None = None, detail: str = "") -> bool:
        """Apply a change set to the live schedule and track the run's net diff."""
        if not changes:
            return False
        if not self.schedule.commit(changes):
            if gap is not None:
                self.trace.record(stage, "commit_failed", student=gap.student,
                                  session=gap.session, program=gap.program, detail=detail)
            return False
        for assignment in changes.removals:
            if assignment.id in self.created:
                del self.created[assignment.id]
            else:
                self.removed[assignment.id] = assignment
        for assignment in changes.additions:
            self.created[assignment.id] = assignment
        return True


class BaseStrategy(ABC):
    """
    Abstract base class for gap-filling strategies.

    A strategy proposes a change set that adds one more staff member for the
    gap's student. It must only read from ``view`` and never touch the live
    schedule; the engine decides whether to commit.
    """

    name: str | None = None  # Override in subclasses (e.g., "swap", "chain")

    @abstractmethod
    def attempt(self, gap: Gap, view: ScheduleView, ctx: RunContext) -> Optional[ChangeSet]:
        """
        Propose changes covering one missing staff slot for the gap.

        Args:
            gap: Student-session being repaired
            view: Schedule as it would look after changes already planned for this gap
            ctx: Run context

        Returns:
            ChangeSet on success, None when this strategy cannot help
        """
        pass

    def get_strategy_name(self) -> str:
        return self.name or "UNKNOWN"
