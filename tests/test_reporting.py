"""Tests for schedule statistics and summaries."""

import pytest

from aba_scheduler.domain.models import Assignment, Program, ProvenanceKind, Session
from aba_scheduler.reporting import (
    assignments_frame,
    generate_stats,
    residual_gap_report,
    summarize_schedule,
)


@pytest.fixture
def day(make_staff, make_student):
    staff = [make_staff("a", name="Alex"), make_staff("b", name="Bo"), make_staff("t", role="Teacher", is_active=False)]
    students = [
        make_student("s1", ["a", "b"], name="Sky"),
        make_student("s2", ["a", "b"], ratio="2:1", ratio_pm="1:2", name="Rue"),
        make_student("s3", ["a"], name="Lee", absent_full_day=True),
    ]
    assignments = [
        Assignment("a", "s1", Session.AM, Program.PRIMARY),
        Assignment("b", "s1", Session.PM, Program.PRIMARY, provenance=ProvenanceKind.AUTO_SWAP.value),
        Assignment("b", "s2", Session.AM, Program.PRIMARY),
    ]
    return staff, students, assignments


def test_generate_stats(day):
    """Test aggregate statistics."""
    staff, students, assignments = day

    stats = generate_stats(assignments, staff, students)

    assert stats.total_assignments == 3
    assert stats.staff_utilization == {"a": 0.5, "b": 1.0}
    assert stats.assignments_by_slot["Primary_AM"] == 2
    assert stats.assignments_by_slot["Primary_PM"] == 1
    assert stats.assignments_by_slot["Secondary_AM"] == 0
    assert stats.ratio_distribution["AM"] == {"1:1": 2, "2:1": 1}
    assert stats.provenance_counts == {"auto": 2, "auto-swap": 1}
    # s2 AM is one short, s2 PM is empty
    assert stats.unassigned_student_sessions == 2


def test_residual_gap_report(day):
    """Test the per-student gap listing."""
    _, students, assignments = day

    gaps = residual_gap_report(assignments, students)

    rows = gaps[["student_id", "session", "missing"]].values.tolist()
    assert sorted(rows) == [["s2", "AM", 1], ["s2", "PM", 1]]


def test_assignments_frame_resolves_names(day):
    """Test the assignment DataFrame."""
    staff, students, assignments = day

    frame = assignments_frame(assignments, staff, students)

    assert len(frame) == 3
    assert frame.loc[0, "staff_name"] == "Alex"
    assert frame.loc[0, "student_name"] == "Sky"
    assert frame.loc[1, "provenance"] == "auto-swap"


def test_summarize_schedule(day):
    """Test the printable summary."""
    staff, students, assignments = day

    text = summarize_schedule(assignments_frame(assignments, staff, students),
                              residual_gap_report(assignments, students))

    assert "Assignments per program per session:" in text
    assert "Unresolved gaps:" in text
    assert "Rue" in text


def test_summarize_empty():
    """Test the empty summary."""
    assert summarize_schedule(assignments_frame([])) == "No assignments."
