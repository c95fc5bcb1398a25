"""Pytest configuration and shared fixtures."""

from datetime import date

import pytest

from aba_scheduler.domain.models import Staff, Student
from aba_scheduler.domain.schedule import Schedule


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


@pytest.fixture
def make_staff():
    """Factory for staff; defaults to an active Primary RBT named after its id."""
    def _make(staff_id, role="RBT", primary=True, secondary=False, **kwargs):
        kwargs.setdefault("name", staff_id)
        return Staff(
            id=staff_id,
            role=role,
            primary_program=primary,
            secondary_program=secondary,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_student():
    """Factory for students; ``ratio`` sets AM and (unless given) PM."""
    def _make(student_id, team, ratio="1:1", ratio_pm=None, program="Primary", **kwargs):
        kwargs.setdefault("name", student_id)
        return Student(
            id=student_id,
            program=program,
            ratio_am=ratio,
            ratio_pm=ratio_pm or ratio,
            team_ids=frozenset(team),
            **kwargs,
        )
    return _make


@pytest.fixture
def schedule():
    """Empty schedule for a fixed date."""
    return Schedule(date=date(2025, 3, 10))
