"""Greedy direct assignment pass, one sweep per (program, session)."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from aba_scheduler.domain.models import Assignment, Program, Provenance, ProvenanceKind, Session, Student
from aba_scheduler.domain.schedule import ChangeSet, ScheduleView
from aba_scheduler.services.eligibility import eligible_staff, is_eligible
from aba_scheduler.services.scoring import prioritize_students, rank_staff

from .base import RunContext

logger = logging.getLogger(__name__)


def _record_degraded(ctx: RunContext, stage: str, student: Student, session: Session, program: Program,
                     chosen: List[str]) -> None:
    fallback = [sid for sid in chosen if not ctx.staff[sid].is_preferred_direct_service()]
    if not fallback:
        return
    names = ", ".join(ctx.staff[sid].name for sid in fallback)
    logger.warning("%s %s %s: fallback staff used (%s)", student.name, program.value, session.value, names)
    ctx.trace.record(stage, "degraded", student=student, session=session, program=program,
                     detail=f"fallback staff used: {names}", staff=fallback)


def plan_pair(
    ctx: RunContext,
    first: Student,
    second: Student,
    session: Session,
    program: Program,
    view: ScheduleView,
    stage: str = "direct",
) -> Optional[ChangeSet]:
    """
    Give two paired students an identical staff set, or nothing.

    Every resulting assignment is validated against the assignments planned
    before it; one failure aborts the whole pair.
    """
    if view.student_slot_assignments(first.id, session, program) or \
            view.student_slot_assignments(second.id, session, program):
        ctx.trace.record(stage, "pair_aborted", student=first, session=session, program=program,
                         detail=f"{first.name} or {second.name} already has coverage", partner=second.id)
        return None

    needed = first.required_staff_count(session)
    # Paired students share one staff set, so mismatched ratios cannot be served
    if needed != second.required_staff_count(session):
        ctx.trace.record(stage, "pair_aborted", student=first, session=session, program=program,
                         detail=f"{first.name} and {second.name} need different staff counts",
                         partner=second.id)
        return None

    # Staff eligible for both students
    shared = eligible_staff(second, session, program, ctx.staff, view)
    candidates = ctx.select(first, session, program, view, roster=shared, required=needed).candidates
    if len(candidates) < needed:
        ctx.trace.record(stage, "pair_aborted", student=first, session=session, program=program,
                         detail=f"{len(candidates)} shared staff for {first.name} & {second.name}, need {needed}",
                         partner=second.id)
        return None

    chosen = candidates[:needed]
    additions: List[Assignment] = []
    planned = view
    for member in chosen:
        for student, partner in ((first, second), (second, first)):
            candidate = ctx.new_assignment(
                member.id, student.id, session, program,
                Provenance(ProvenanceKind.AUTO_PAIRED, partner_id=partner.id),
            )
            violations = ctx.violations(candidate, planned)
            if violations:
                ctx.trace.record(stage, "pair_aborted", student=first, session=session, program=program,
                                 detail="; ".join(v.message for v in violations), partner=second.id)
                return None
            additions.append(candidate)
            planned = planned.overlay(add=[candidate])

    _record_degraded(ctx, stage, first, session, program, [m.id for m in chosen])
    return ChangeSet(additions=tuple(additions))


def find_group_hosts(
    ctx: RunContext,
    student: Student,
    session: Session,
    program: Program,
    view: ScheduleView,
) -> List:
    """Staff running a 1:2 group in the slot with room for one more."""
    served: Dict[str, List[Assignment]] = {}
    for assignment in view.assignments_for_session(session, program):
        served.setdefault(assignment.staff_id, []).append(assignment)

    hosts = []
    for staff_id, assignments in served.items():
        if len(assignments) >= ctx.config.small_group_cap:
            continue
        member = ctx.staff.get(staff_id)
        if member is None or not is_eligible(member, student, session, program):
            continue
        if any(not _is_small_group(ctx, a.student_id, session) for a in assignments):
            continue
        if view.has_staff_worked_with_student(staff_id, student.id):
            continue
        hosts.append(member)
    return rank_staff(hosts, session, ctx.rng, ctx.config.pm_jitter)


def _is_small_group(ctx: RunContext, student_id: str, session: Session) -> bool:
    student = ctx.students.get(student_id)
    return student is not None and student.is_small_group(session)


def plan_small_group(
    ctx: RunContext,
    student: Student,
    session: Session,
    program: Program,
    view: ScheduleView,
    kind: ProvenanceKind = ProvenanceKind.AUTO,
    stage: str = "direct",
) -> Optional[ChangeSet]:
    """Join an existing 1:2 group with room, else start a new one."""
    # 1. Join a group
    for host in find_group_hosts(ctx, student, session, program, view):
        candidate = ctx.new_assignment(host.id, student.id, session, program, kind)
        if ctx.is_valid(candidate, view):
            ctx.trace.record(stage, "group_joined", student=student, session=session, program=program,
                             detail=f"joined {host.name}'s group", staff=host.id)
            return ChangeSet(additions=(candidate,))

    # 2. Start a group
    selection = ctx.select(student, session, program, view, required=1)
    for member in selection.candidates:
        candidate = ctx.new_assignment(member.id, student.id, session, program, kind)
        if ctx.is_valid(candidate, view):
            _record_degraded(ctx, stage, student, session, program, [member.id])
            return ChangeSet(additions=(candidate,))
    return None


def plan_individual(
    ctx: RunContext,
    student: Student,
    session: Session,
    program: Program,
    view: ScheduleView,
    kind: ProvenanceKind = ProvenanceKind.AUTO,
    needed: int | None = None,
    stage: str = "direct",
) -> Optional[ChangeSet]:
    """
    Assign the top-ranked candidates for a 1:1 or 2:1 student.

    Candidates failing validation are skipped; if fewer than ``needed`` remain
    nothing is assigned.
    """
    if needed is None:
        needed = ctx.missing(student, session, program, view)
    if needed <= 0:
        return None

    selection = ctx.select(student, session, program, view, required=needed)
    if len(selection) < needed:
        ctx.trace.record(stage, "insufficient_candidates", student=student, session=session, program=program,
                         detail=f"{len(selection)} candidates, need {needed}")
        return None

    additions: List[Assignment] = []
    planned = view
    for member in selection.candidates:
        if len(additions) == needed:
            break
        candidate = ctx.new_assignment(member.id, student.id, session, program, kind)
        violations = ctx.violations(candidate, planned)
        if violations:
            ctx.trace.record(stage, "candidate_rejected", student=student, session=session, program=program,
                             detail="; ".join(v.message for v in violations), staff=member.id)
            continue
        additions.append(candidate)
        planned = planned.overlay(add=[candidate])

    if len(additions) < needed:
        return None

    _record_degraded(ctx, stage, student, session, program, [a.staff_id for a in additions])
    return ChangeSet(additions=tuple(additions))


class DirectAssignmentPass:
    """
    Greedy first pass over every (program, session).

    Students are handled in priority order and each success is committed
    immediately, so later students see the updated availability.
    """

    stage = "direct"

    def run(self, ctx: RunContext) -> int:
        """Run all sweeps; returns the number of students covered."""
        covered = 0
        for program in ctx.config.programs:
            for session in ctx.config.sessions:
                covered += self.sweep(ctx, program, session)
        return covered

    def sweep(self, ctx: RunContext, program: Program, session: Session) -> int:
        pool = [s for s in ctx.students.values() if ctx.needs_coverage(s, session, program)]
        ordered = prioritize_students(pool, session)
        pool_ids = {s.id for s in ordered}
        logger.info("Direct pass %s %s: %d students need coverage", program.value, session.value, len(ordered))

        handled = set()
        covered = 0
        for student in ordered:
            if student.id in handled:
                continue
            handled.add(student.id)
            partner = ctx.partner_of(student)

            if partner is not None and partner.id in pool_ids:
                handled.add(partner.id)
                changes = plan_pair(ctx, student, partner, session, program, ctx.schedule, self.stage)
                if changes and ctx.commit(changes, self.stage):
                    covered += 2
                    logger.debug("Paired %s & %s in %s %s", student.name, partner.name, program.value, session.value)
                else:
                    logger.debug("Could not assign pair %s & %s", student.name, partner.name)
                continue

            if student.is_small_group(session):
                changes = plan_small_group(ctx, student, session, program, ctx.schedule, stage=self.stage)
            else:
                changes = plan_individual(ctx, student, session, program, ctx.schedule, stage=self.stage)

            if changes and ctx.commit(changes, self.stage):
                covered += 1
            else:
                ctx.trace.record(self.stage, "unassigned", student=student, session=session, program=program,
                                 detail="left for reallocation")
        return covered
