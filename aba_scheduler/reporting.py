"""Schedule statistics, residual-gap report and text summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

import pandas as pd

from .domain.models import Assignment, Program, Session, Staff, Student, index_by_id

ASSIGNMENT_COLUMNS = [
    "id", "date", "program", "session", "staff_id", "staff_name",
    "student_id", "student_name", "provenance", "locked",
]

GAP_COLUMNS = ["student_id", "student_name", "program", "session", "ratio", "required", "assigned", "missing"]


@dataclass
class ScheduleStats:
    total_assignments: int = 0
    unassigned_student_sessions: int = 0
    staff_utilization: Dict[str, float] = field(default_factory=dict)
    assignments_by_slot: Dict[str, int] = field(default_factory=dict)
    ratio_distribution: Dict[str, Dict[str, int]] = field(default_factory=dict)
    provenance_counts: Dict[str, int] = field(default_factory=dict)


def _slot_key(program: Program, session: Session) -> str:
    return f"{program.value}_{session.value}"


def assignments_frame(
    assignments: Iterable[Assignment],
    staff: Iterable[Staff] | Mapping[str, Staff] | None = None,
    students: Iterable[Student] | Mapping[str, Student] | None = None,
) -> pd.DataFrame:
    """One row per assignment, with names resolved when rosters are given."""
    staff_by_id = index_by_id(staff or [])
    students_by_id = index_by_id(students or [])
    rows = []
    for a in assignments:
        member = staff_by_id.get(a.staff_id)
        student = students_by_id.get(a.student_id)
        rows.append({
            "id": a.id,
            "date": a.date.isoformat() if a.date else None,
            "program": a.program.value,
            "session": a.session.value,
            "staff_id": a.staff_id,
            "staff_name": member.name if member else None,
            "student_id": a.student_id,
            "student_name": student.name if student else None,
            "provenance": a.provenance.tag,
            "locked": bool(a.is_locked),
        })
    return pd.DataFrame(rows, columns=ASSIGNMENT_COLUMNS)


def residual_gap_report(
    assignments: Iterable[Assignment],
    students: Iterable[Student] | Mapping[str, Student],
) -> pd.DataFrame:
    """
    Student-sessions still short of their required staff count.

    Only active students available for the session are considered.
    """
    students_by_id = index_by_id(students or [])
    assigned: Dict[tuple, int] = {}
    for a in assignments:
        key = (a.student_id, a.program, a.session)
        assigned[key] = assigned.get(key, 0) + 1

    rows = []
    for student in sorted(students_by_id.values(), key=lambda s: s.name):
        if not student.is_active:
            continue
        for session in (Session.AM, Session.PM):
            if not student.is_available_for_session(session):
                continue
            required = student.required_staff_count(session)
            got = assigned.get((student.id, student.program, session), 0)
            if got < required:
                rows.append({
                    "student_id": student.id,
                    "student_name": student.name,
                    "program": student.program.value,
                    "session": session.value,
                    "ratio": student.ratio_for(session).value,
                    "required": required,
                    "assigned": got,
                    "missing": required - got,
                })
    return pd.DataFrame(rows, columns=GAP_COLUMNS)


def generate_stats(
    assignments: Iterable[Assignment],
    staff: Iterable[Staff] | Mapping[str, Staff],
    students: Iterable[Student] | Mapping[str, Student],
) -> ScheduleStats:
    """
    Aggregate statistics for a day's schedule.

    Utilization is assignments per staff member divided by the two daily
    sessions.
    """
    assignments = list(assignments)
    staff_by_id = index_by_id(staff or [])
    students_by_id = index_by_id(students or [])
    stats = ScheduleStats(total_assignments=len(assignments))

    for member in staff_by_id.values():
        if member.is_active:
            count = sum(1 for a in assignments if a.staff_id == member.id)
            stats.staff_utilization[member.id] = count / 2

    for program in Program:
        for session in Session:
            stats.assignments_by_slot[_slot_key(program, session)] = sum(
                1 for a in assignments if a.program == program and a.session == session
            )

    for session in Session:
        distribution: Dict[str, int] = {}
        for student in students_by_id.values():
            if student.is_active:
                ratio = student.ratio_for(session).value
                distribution[ratio] = distribution.get(ratio, 0) + 1
        stats.ratio_distribution[session.value] = distribution

    for a in assignments:
        stats.provenance_counts[a.provenance.tag] = stats.provenance_counts.get(a.provenance.tag, 0) + 1

    stats.unassigned_student_sessions = len(residual_gap_report(assignments, students_by_id))
    return stats


def summarize_schedule(assignments_df: pd.DataFrame, gaps_df: pd.DataFrame | None = None) -> str:
    """Coverage, staff load and provenance tables as printable text."""
    if assignments_df.empty:
        lines = ["No assignments."]
    else:
        coverage = assignments_df.groupby(["program", "session"]).size().unstack(fill_value=0)
        load = assignments_df.groupby("staff_id").size().sort_values(ascending=False)
        provenance = assignments_df.groupby(["session", "provenance"]).size().unstack(fill_value=0)

        lines = ["Assignments per program per session:"]
        lines.append(coverage.to_string())
        lines.append("")
        lines.append("Provenance per session:")
        lines.append(provenance.to_string())
        lines.append("")
        lines.append("Assignments per staff member:")
        lines.append(load.to_string())

    if gaps_df is not None:
        lines.append("")
        if gaps_df.empty:
            lines.append("All students covered.")
        else:
            lines.append("Unresolved gaps:")
            lines.append(gaps_df[["student_name", "program", "session", "missing"]].to_string(index=False))
    return "\n".join(lines)


def format_stats(stats: ScheduleStats) -> List[str]:
    lines = [
        f"Total assignments: {stats.total_assignments}",
        f"Unassigned student-sessions: {stats.unassigned_student_sessions}",
    ]
    for slot, count in stats.assignments_by_slot.items():
        lines.append(f"  {slot}: {count}")
    return lines
