"""Constraint checking and validation for staff-student assignments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

from aba_scheduler.domain.models import Assignment, Staff, Student, index_by_id
from aba_scheduler.domain.schedule import Schedule, ScheduleView
from aba_scheduler.exceptions import MissingInputError


@dataclass(frozen=True)
class ConstraintViolation:
    """One failed rule for a candidate assignment."""

    rule: str
    message: str

    def __str__(self) -> str:
        return self.message


def validate_assignment(
    candidate: Assignment,
    schedule: ScheduleView,
    staff: Iterable[Staff] | Mapping[str, Staff],
    students: Iterable[Student] | Mapping[str, Student],
    small_group_cap: int = 2,
) -> List[ConstraintViolation]:
    """
    Check whether a candidate assignment is legal against the current schedule.

    Any existing assignment with the candidate's own id is ignored, so an
    assignment already in the schedule can be re-validated in place.

    Args:
        candidate: Assignment to check (not yet in the schedule)
        schedule: Schedule or overlay to check against
        staff: Staff roster (list or id mapping)
        students: Student roster (list or id mapping)
        small_group_cap: Max 1:2 students one staff member may serve per slot

    Returns:
        List of violations; empty iff the assignment is legal

    Raises:
        MissingInputError: If the candidate or schedule is missing, or its
            staff/student id is not in the given rosters
    """
    if candidate is None:
        raise MissingInputError("No candidate assignment given")
    if schedule is None:
        raise MissingInputError("No schedule given")

    staff_by_id: Dict[str, Staff] = index_by_id(staff or [])
    students_by_id: Dict[str, Student] = index_by_id(students or [])

    member = staff_by_id.get(candidate.staff_id)
    if member is None:
        raise MissingInputError(f"Staff member {candidate.staff_id} not found")
    student = students_by_id.get(candidate.student_id)
    if student is None:
        raise MissingInputError(f"Student {candidate.student_id} not found")

    session = candidate.session
    program = candidate.program
    violations: List[ConstraintViolation] = []

    # 1. Team membership
    if not student.has_team_member(member.id):
        violations.append(ConstraintViolation(
            "team", f"{member.name} is not on {student.name}'s team"
        ))

    # 2. Role permits direct service
    if not member.can_do_direct_service():
        violations.append(ConstraintViolation(
            "direct_service", f"{member.name} ({member.role.value}) cannot provide direct service"
        ))

    # 3. Slot booking, with the 1:2 small-group exception
    others = [a for a in schedule.staff_slot_assignments(member.id, session, program) if a.id != candidate.id]
    if others and not _fits_small_group(student, others, students_by_id, session, small_group_cap):
        violations.append(ConstraintViolation(
            "slot_booked", f"{member.name} is already assigned in {program.value} {session.value}"
        ))

    # 4. Required staff count
    covering = [a for a in schedule.student_slot_assignments(student.id, session, program) if a.id != candidate.id]
    required = student.required_staff_count(session)
    if len(covering) >= required:
        violations.append(ConstraintViolation(
            "ratio_full",
            f"{student.name} already has {len(covering)} of {required} staff in {program.value} {session.value}",
        ))

    # 5. Same-day pairing exclusion
    if any(a.student_id == student.id and a.id != candidate.id for a in schedule.staff_assignments(member.id)):
        violations.append(ConstraintViolation(
            "already_paired_today", f"{member.name} has already worked with {student.name} today"
        ))

    # 6. Attendance
    if not member.is_available_for_session(session):
        violations.append(ConstraintViolation(
            "staff_unavailable", f"{member.name} is not available in the {session.value} session"
        ))
    if not student.is_available_for_session(session):
        violations.append(ConstraintViolation(
            "student_unavailable", f"{student.name} is not available in the {session.value} session"
        ))

    # 7. Program capability (cohorts never mix)
    if not member.can_work_program(program):
        violations.append(ConstraintViolation(
            "program", f"{member.name} is not assigned to the {program.value} program"
        ))
    elif student.program != program:
        violations.append(ConstraintViolation(
            "program", f"{student.name} is not in the {program.value} program"
        ))

    return violations


def _fits_small_group(
    student: Student,
    others: List[Assignment],
    students_by_id: Mapping[str, Student],
    session,
    cap: int,
) -> bool:
    """True when the staff member's existing slot work is a 1:2 group with room left."""
    if not student.is_small_group(session):
        return False
    if len(others) + 1 > cap:
        return False
    for assignment in others:
        other = students_by_id.get(assignment.student_id)
        if other is None or not other.is_small_group(session):
            return False
    return True


def is_valid_assignment(
    candidate: Assignment,
    schedule: ScheduleView,
    staff,
    students,
    small_group_cap: int = 2,
) -> bool:
    """Shorthand for ``not validate_assignment(...)``."""
    return not validate_assignment(candidate, schedule, staff, students, small_group_cap)


def validate_schedule(
    schedule: Schedule,
    staff: Iterable[Staff] | Mapping[str, Staff],
    students: Iterable[Student] | Mapping[str, Student],
    small_group_cap: int = 2,
) -> List[str]:
    """
    Audit every assignment in a schedule.

    Each assignment is re-validated against the rest of the schedule. Students
    on a 2:1 ratio with only one staff member in a slot are reported too.

    Returns:
        Human-readable problems, prefixed with the assignment id where relevant
    """
    if schedule is None:
        raise MissingInputError("No schedule given")

    staff_by_id = index_by_id(staff or [])
    students_by_id = index_by_id(students or [])
    errors: List[str] = []

    for assignment in schedule.assignments:
        try:
            violations = validate_assignment(assignment, schedule, staff_by_id, students_by_id, small_group_cap)
        except MissingInputError as e:
            errors.append(f"Assignment {assignment.id}: {e}")
            continue
        errors.extend(f"Assignment {assignment.id}: {v.message}" for v in violations)

    # Under-covered 2:1 students
    counts: Dict[tuple, int] = {}
    for assignment in schedule.assignments:
        key = (assignment.student_id, assignment.session, assignment.program)
        counts[key] = counts.get(key, 0) + 1
    for (student_id, session, program), count in counts.items():
        student = students_by_id.get(student_id)
        if student and student.requires_multiple_staff(session) and count < 2:
            errors.append(
                f"{student.name} requires 2:1 ratio but only has {count} staff assigned "
                f"in {program.value} {session.value}"
            )

    return errors
