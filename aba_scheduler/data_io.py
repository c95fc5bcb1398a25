"""CSV readers and writers for rosters and schedules."""

from __future__ import annotations

import logging
from datetime import date as Date
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .domain.models import Assignment, Provenance, Staff, Student
from .domain.schedule import Schedule
from .reporting import ASSIGNMENT_COLUMNS, assignments_frame

logger = logging.getLogger(__name__)

ATTENDANCE_COLUMNS = [
    "absent_am", "absent_pm", "absent_full_day",
    "out_of_session_am", "out_of_session_pm", "out_of_session_full_day",
]


def _flag(row: pd.Series, column: str, default: bool = False) -> bool:
    value = row.get(column)
    if not pd.notna(value):
        return default
    return str(value).strip().upper() in ['TRUE', 'T', '1', 'YES']


def _text(row: pd.Series, column: str) -> str | None:
    value = row.get(column)
    if not pd.notna(value):
        return None
    text = str(value).strip()
    return text or None


def _read(path: str | Path, required: Iterable[str]) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str)
    # Normalize column names
    df.columns = df.columns.str.lower().str.strip()
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns: {missing}")
    return df


def read_staff_csv(path: str | Path) -> List[Staff]:
    """
    Load the staff roster.

    Required columns: id, name, role. Program flags, ``is_active`` and the
    attendance columns are optional booleans (TRUE/T/1/YES).
    """
    df = _read(path, ["id", "name", "role"])
    staff = []
    for _, row in df.iterrows():
        staff.append(Staff(
            id=_text(row, "id"),
            name=_text(row, "name") or "",
            role=_text(row, "role"),
            primary_program=_flag(row, "primary_program"),
            secondary_program=_flag(row, "secondary_program"),
            is_active=_flag(row, "is_active", default=True),
            **{c: _flag(row, c) for c in ATTENDANCE_COLUMNS},
        ))
    logger.info("Loaded %d staff from %s", len(staff), path)
    return staff


def read_students_csv(path: str | Path) -> List[Student]:
    """
    Load the student roster.

    Required columns: id, name, program. ``team_ids`` is a semicolon-separated
    list of staff ids; ratios default to 1:1.
    """
    df = _read(path, ["id", "name", "program"])
    students = []
    for _, row in df.iterrows():
        team = _text(row, "team_ids") or ""
        students.append(Student(
            id=_text(row, "id"),
            name=_text(row, "name") or "",
            program=_text(row, "program"),
            ratio_am=_text(row, "ratio_am") or "1:1",
            ratio_pm=_text(row, "ratio_pm") or "1:1",
            team_ids=frozenset(t.strip() for t in team.split(";") if t.strip()),
            is_active=_flag(row, "is_active", default=True),
            paired_with=_text(row, "paired_with"),
            **{c: _flag(row, c) for c in ATTENDANCE_COLUMNS},
        ))
    logger.info("Loaded %d students from %s", len(students), path)
    return students


def read_assignments_csv(path: str | Path) -> List[Assignment]:
    df = _read(path, ["staff_id", "student_id", "session", "program"])
    assignments = []
    for _, row in df.iterrows():
        kwargs = {}
        if _text(row, "id"):
            kwargs["id"] = _text(row, "id")
        day = _text(row, "date")
        assignments.append(Assignment(
            staff_id=_text(row, "staff_id"),
            student_id=_text(row, "student_id"),
            session=_text(row, "session"),
            program=_text(row, "program"),
            date=Date.fromisoformat(day) if day else None,
            is_locked=_flag(row, "locked"),
            provenance=Provenance.parse(_text(row, "provenance") or "manual"),
            **kwargs,
        ))
    return assignments


def load_schedule(path: str | Path | None, day: Date | None = None) -> Schedule:
    """Build a Schedule from an assignments CSV (or an empty one when no path is given)."""
    if path is None:
        return Schedule(date=day)
    assignments = read_assignments_csv(path)
    if day is None:
        dates = {a.date for a in assignments if a.date is not None}
        day = dates.pop() if len(dates) == 1 else None
    return Schedule(date=day, assignments=assignments)


def write_assignments_csv(
    path: str | Path,
    assignments: Iterable[Assignment],
    staff: Iterable[Staff] | None = None,
    students: Iterable[Student] | None = None,
) -> None:
    df = assignments_frame(assignments, staff, students)
    df[ASSIGNMENT_COLUMNS].to_csv(path, index=False)
