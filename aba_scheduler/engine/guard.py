"""Fault-tolerant wrapper around the caller's schedule collaborator."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, List, Set

from aba_scheduler.domain.models import Assignment, Program, Session
from aba_scheduler.domain.schedule import ChangeSet, ScheduleView

from .trace import DecisionTrace

logger = logging.getLogger(__name__)


class GuardedSchedule(ScheduleView):
    """
    Schedule view that never lets a malformed collaborator crash a run.

    A query that is missing or raises is logged at ERROR (once per query),
    recorded in the trace, and answered with an empty result. Boolean queries
    fall back to being derived from the list queries.
    """

    def __init__(self, inner: Any, trace: DecisionTrace):
        self.inner = inner
        self.trace = trace
        self.date = getattr(inner, "date", None)
        self._reported: Set[str] = set()

    def _report(self, name: str, problem: str) -> None:
        if name in self._reported:
            return
        self._reported.add(name)
        logger.error("Schedule query %s unusable (%s); treating result as empty", name, problem)
        self.trace.record("guard", "malformed_collaborator", detail=f"{name}: {problem}", query=name)

    def _call(self, name: str, *args: Any, fallback: Callable[[], Any]) -> Any:
        method = getattr(self.inner, name, None)
        if not callable(method):
            self._report(name, "missing")
            return fallback()
        try:
            return method(*args)
        except Exception as e:
            self._report(name, f"{type(e).__name__}: {e}")
            return fallback()

    def _list(self, name: str, *args: Any) -> List[Assignment]:
        result = self._call(name, *args, fallback=list)
        if result is None:
            return []
        try:
            return list(result)
        except TypeError as e:
            self._report(name, f"non-iterable result: {e}")
            return []

    # Queries

    def assignments_for_session(self, session: Session, program: Program) -> List[Assignment]:
        return self._list("assignments_for_session", session, program)

    def staff_assignments(self, staff_id: str) -> List[Assignment]:
        return self._list("staff_assignments", staff_id)

    def student_assignments(self, student_id: str) -> List[Assignment]:
        return self._list("student_assignments", student_id)

    def has_staff_worked_with_student(self, staff_id: str, student_id: str) -> bool:
        derived = super().has_staff_worked_with_student
        return bool(self._call("has_staff_worked_with_student", staff_id, student_id,
                               fallback=lambda: derived(staff_id, student_id)))

    def is_staff_available(self, staff_id: str, session: Session, program: Program) -> bool:
        derived = super().is_staff_available
        return bool(self._call("is_staff_available", staff_id, session, program,
                               fallback=lambda: derived(staff_id, session, program)))

    def is_assignment_locked(self, assignment_id: str) -> bool:
        return bool(self._call("is_assignment_locked", assignment_id, fallback=lambda: False))

    def run_guard(self) -> ContextManager:
        guard = getattr(self.inner, "run_guard", None)
        return guard() if callable(guard) else nullcontext(self.inner)

    # Mutation

    def commit(self, changes: ChangeSet) -> bool:
        """
        Apply a change set as one transition: removals, then additions.

        Returns:
            True if every change was applied; False if the set was refused or
            failed midway (in which case it is rolled back)
        """
        for assignment in changes.removals:
            present = {a.id for a in self.student_assignments(assignment.student_id)}
            if assignment.id not in present:
                logger.warning("Assignment %s vanished before commit; change set refused", assignment.id)
                return False
            if assignment.is_locked or self.is_assignment_locked(assignment.id):
                logger.warning("Assignment %s is locked; change set refused", assignment.id)
                return False

        removed: List[Assignment] = []
        added: List[Assignment] = []
        try:
            for assignment in changes.removals:
                self.inner.remove_assignment(assignment.id)
                removed.append(assignment)
            for assignment in changes.additions:
                self.inner.add_assignment(assignment)
                added.append(assignment)
        except Exception as e:
            logger.error("Commit failed (%s: %s); rolling back", type(e).__name__, e)
            self.trace.record("guard", "rollback", detail=str(e))
            self._rollback(removed, added)
            return False
        return True

    def _rollback(self, removed: List[Assignment], added: List[Assignment]) -> None:
        for assignment in reversed(added):
            try:
                self.inner.remove_assignment(assignment.id)
            except Exception as e:
                logger.error("Rollback could not remove %s: %s", assignment.id, e)
        for assignment in reversed(removed):
            try:
                self.inner.add_assignment(assignment)
            except Exception as e:
                logger.error("Rollback could not restore %s: %s", assignment.id, e)
