"""Date-scoped schedule aggregate and speculative overlays."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date as Date
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from aba_scheduler.exceptions import LockedAssignmentError, ScheduleBusyError

from .models import Assignment, Program, Provenance, Session


@dataclass(frozen=True)
class ChangeSet:
    """An atomic diff: assignments to remove, then assignments to add."""

    removals: Tuple[Assignment, ...] = ()
    additions: Tuple[Assignment, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.removals or self.additions)

    @property
    def removed_ids(self) -> Set[str]:
        return {a.id for a in self.removals}

    def then(self, other: "ChangeSet") -> "ChangeSet":
        """Compose two change sets; removing a pending addition cancels both."""
        pending = {a.id for a in self.additions}
        cancelled = {a.id for a in other.removals if a.id in pending}
        return ChangeSet(
            removals=self.removals + tuple(a for a in other.removals if a.id not in cancelled),
            additions=tuple(a for a in self.additions if a.id not in cancelled) + other.additions,
        )


class ScheduleView(ABC):
    """
    Read-only query surface shared by the schedule, overlays and the engine guard.

    Subclasses supply the three list queries; the boolean queries are derived
    from them unless overridden.
    """

    date: Optional[Date] = None

    @abstractmethod
    def assignments_for_session(self, session: Session, program: Program) -> List[Assignment]:
        """All assignments in one (session, program) slot."""

    @abstractmethod
    def staff_assignments(self, staff_id: str) -> List[Assignment]:
        """All assignments held by a staff member on this date."""

    @abstractmethod
    def student_assignments(self, student_id: str) -> List[Assignment]:
        """All assignments covering a student on this date."""

    def has_staff_worked_with_student(self, staff_id: str, student_id: str) -> bool:
        return any(a.student_id == student_id for a in self.staff_assignments(staff_id))

    def is_staff_available(self, staff_id: str, session: Session, program: Program) -> bool:
        return not any(a.staff_id == staff_id for a in self.assignments_for_session(session, program))

    def is_assignment_locked(self, assignment_id: str) -> bool:
        return False

    def staff_slot_assignments(self, staff_id: str, session: Session, program: Program) -> List[Assignment]:
        return [a for a in self.assignments_for_session(session, program) if a.staff_id == staff_id]

    def student_slot_assignments(self, student_id: str, session: Session, program: Program) -> List[Assignment]:
        return [
            a for a in self.student_assignments(student_id)
            if a.session == session and a.program == program
        ]

    def overlay(
        self,
        changes: ChangeSet | None = None,
        *,
        remove: Iterable[Assignment] = (),
        add: Iterable[Assignment] = (),
    ) -> "ScheduleOverlay":
        """Speculative view of this schedule with ``changes`` applied."""
        changes = (changes or ChangeSet()).then(ChangeSet(tuple(remove), tuple(add)))
        return ScheduleOverlay(self, changes)


class ScheduleOverlay(ScheduleView):
    """Immutable view of a base schedule minus removals plus additions."""

    def __init__(self, base: ScheduleView, changes: ChangeSet):
        self.base = base
        self.changes = changes
        self.date = getattr(base, "date", None)
        self._removed = changes.removed_ids

    def _visible(self, assignments: Iterable[Assignment]) -> List[Assignment]:
        return [a for a in assignments if a.id not in self._removed]

    def assignments_for_session(self, session: Session, program: Program) -> List[Assignment]:
        added = [a for a in self.changes.additions if a.session == session and a.program == program]
        return self._visible(self.base.assignments_for_session(session, program)) + added

    def staff_assignments(self, staff_id: str) -> List[Assignment]:
        added = [a for a in self.changes.additions if a.staff_id == staff_id]
        return self._visible(self.base.staff_assignments(staff_id)) + added

    def student_assignments(self, student_id: str) -> List[Assignment]:
        added = [a for a in self.changes.additions if a.student_id == student_id]
        return self._visible(self.base.student_assignments(student_id)) + added

    def is_assignment_locked(self, assignment_id: str) -> bool:
        return self.base.is_assignment_locked(assignment_id)


class Schedule(ScheduleView):
    """
    The complete schedule for one day.

    All mutation goes through :meth:`add_assignment` / :meth:`remove_assignment`.
    Locked assignment ids are tracked in ``locked_ids``; only the manual lock
    operations change that set.
    """

    def __init__(
        self,
        date: Optional[Date] = None,
        assignments: Iterable[Assignment] = (),
        locked_ids: Iterable[str] = (),
    ):
        self.date = date
        self._assignments: List[Assignment] = []
        self.locked_ids: Set[str] = set(locked_ids)
        self._run_active = False
        for assignment in assignments:
            self.add_assignment(assignment)

    @property
    def assignments(self) -> List[Assignment]:
        return list(self._assignments)

    def __len__(self) -> int:
        return len(self._assignments)

    def __iter__(self) -> Iterator[Assignment]:
        return iter(list(self._assignments))

    # Queries

    def assignments_for_session(self, session: Session, program: Program) -> List[Assignment]:
        return [a for a in self._assignments if a.session == session and a.program == program]

    def staff_assignments(self, staff_id: str) -> List[Assignment]:
        return [a for a in self._assignments if a.staff_id == staff_id]

    def student_assignments(self, student_id: str) -> List[Assignment]:
        return [a for a in self._assignments if a.student_id == student_id]

    def get(self, assignment_id: str) -> Optional[Assignment]:
        for assignment in self._assignments:
            if assignment.id == assignment_id:
                return assignment
        return None

    def is_assignment_locked(self, assignment_id: str) -> bool:
        return assignment_id in self.locked_ids

    # Mutation

    def add_assignment(self, assignment: Assignment) -> None:
        if self.get(assignment.id) is not None:
            raise ValueError(f"Assignment {assignment.id} is already in the schedule")
        if assignment.is_locked:
            self.locked_ids.add(assignment.id)
        self._assignments.append(assignment)

    def remove_assignment(self, assignment_id: str) -> Assignment:
        """
        Remove an assignment by id.

        Raises:
            LockedAssignmentError: If the assignment is locked
            KeyError: If no assignment has this id
        """
        if assignment_id in self.locked_ids:
            raise LockedAssignmentError(f"Assignment {assignment_id} is locked")
        for i, assignment in enumerate(self._assignments):
            if assignment.id == assignment_id:
                return self._assignments.pop(i)
        raise KeyError(assignment_id)

    def reset(self) -> None:
        """Discard every assignment and lock (full schedule reset)."""
        self._ensure_idle()
        self._assignments.clear()
        self.locked_ids.clear()

    # Manual operations

    def lock_assignment(self, assignment_id: str) -> None:
        self._ensure_idle()
        self._set_locked(assignment_id, True)

    def unlock_assignment(self, assignment_id: str) -> None:
        self._ensure_idle()
        self._set_locked(assignment_id, False)

    def manual_assign(
        self,
        staff_id: str,
        student_id: str,
        session: Session | str,
        program: Program | str,
        locked: bool = False,
    ) -> Assignment:
        """Create a manual assignment. Rule checks are the caller's responsibility."""
        self._ensure_idle()
        assignment = Assignment(
            staff_id=staff_id,
            student_id=student_id,
            session=session,
            program=program,
            date=self.date,
            is_locked=locked,
            provenance=Provenance.manual(),
        )
        self.add_assignment(assignment)
        return assignment

    def manual_remove(self, assignment_id: str) -> Assignment:
        self._ensure_idle()
        return self.remove_assignment(assignment_id)

    @property
    def run_active(self) -> bool:
        return self._run_active

    @contextmanager
    def run_guard(self) -> Iterator["Schedule"]:
        """Block manual edits for the duration of an engine run."""
        self._ensure_idle()
        self._run_active = True
        try:
            yield self
        finally:
            self._run_active = False

    def _ensure_idle(self) -> None:
        if self._run_active:
            raise ScheduleBusyError("Schedule is being auto-assigned; manual edits are disabled")

    def _set_locked(self, assignment_id: str, locked: bool) -> None:
        for i, assignment in enumerate(self._assignments):
            if assignment.id == assignment_id:
                self._assignments[i] = replace(assignment, is_locked=locked)
                if locked:
                    self.locked_ids.add(assignment_id)
                else:
                    self.locked_ids.discard(assignment_id)
                return
        raise KeyError(assignment_id)

    def __repr__(self) -> str:
        return f"<Schedule(date={self.date}, assignments={len(self._assignments)}, locked={len(self.locked_ids)})>"
