"""Eligibility and availability filtering of staff for a student-session."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

from aba_scheduler.domain.models import Program, Session, Staff, Student
from aba_scheduler.domain.schedule import ScheduleView

from .scoring import rank_staff


@dataclass
class CandidateSelection:
    """Ranked candidates plus whether fallback roles had to be blended in."""

    candidates: List[Staff] = field(default_factory=list)
    preferred: List[Staff] = field(default_factory=list)
    fallback: List[Staff] = field(default_factory=list)
    degraded: bool = False

    def __len__(self) -> int:
        return len(self.candidates)


def _roster(staff: Iterable[Staff] | Mapping[str, Staff]) -> Iterable[Staff]:
    if isinstance(staff, Mapping):
        return staff.values()
    return staff


def is_eligible(
    member: Staff,
    student: Student,
    session: Session,
    program: Program,
) -> bool:
    """Static eligibility: active, available, program-capable, on team, direct service."""
    return (
        member.is_active
        and member.is_available_for_session(session)
        and member.can_work_program(program)
        and student.has_team_member(member.id)
        and member.can_do_direct_service()
    )


def eligible_staff(
    student: Student,
    session: Session | str,
    program: Program | str,
    roster: Iterable[Staff] | Mapping[str, Staff],
    view: Optional[ScheduleView] = None,
    *,
    exclude_ids: Iterable[str] = (),
    require_free: bool = True,
) -> List[Staff]:
    """
    Staff who could legally serve a student in a session.

    Team membership is a hard filter. When a schedule view is given and
    ``require_free`` is set, staff already booked in the slot or who already
    worked with the student today are dropped too.
    """
    session = Session.parse(session)
    program = Program.parse(program)
    excluded = set(exclude_ids)

    result: List[Staff] = []
    for member in _roster(roster):
        if member.id in excluded:
            continue
        if not is_eligible(member, student, session, program):
            continue
        if view is not None and require_free:
            if not view.is_staff_available(member.id, session, program):
                continue
            if view.has_staff_worked_with_student(member.id, student.id):
                continue
        result.append(member)
    return result


def select_candidates(
    student: Student,
    session: Session | str,
    program: Program | str,
    roster: Iterable[Staff] | Mapping[str, Staff],
    view: Optional[ScheduleView] = None,
    *,
    required: Optional[int] = None,
    rng: Optional[random.Random] = None,
    jitter: float = 0.5,
    exclude_ids: Iterable[str] = (),
    require_free: bool = True,
) -> CandidateSelection:
    """
    Filter and rank staff for a student, preferring RBT/BS.

    Preferred roles are used exclusively when they alone cover ``required``
    (default: the student's required staff count). Otherwise fallback roles
    are blended in after them and the selection is flagged as degraded.
    """
    session = Session.parse(session)
    eligible = eligible_staff(
        student, session, program, roster, view,
        exclude_ids=exclude_ids, require_free=require_free,
    )
    needed = required if required is not None else student.required_staff_count(session)

    preferred = rank_staff([m for m in eligible if m.is_preferred_direct_service()], session, rng, jitter)
    fallback = rank_staff([m for m in eligible if not m.is_preferred_direct_service()], session, rng, jitter)

    if len(preferred) >= needed:
        return CandidateSelection(candidates=preferred, preferred=preferred, fallback=fallback)

    return CandidateSelection(
        candidates=preferred + fallback,
        preferred=preferred,
        fallback=fallback,
        degraded=bool(fallback),
    )
