"""Services for assignment logic."""

from .constraints import ConstraintViolation, is_valid_assignment, validate_assignment, validate_schedule
from .eligibility import CandidateSelection, eligible_staff, select_candidates
from .scoring import prioritize_students, rank_staff, role_priority_score

__all__ = [
    "ConstraintViolation",
    "is_valid_assignment",
    "validate_assignment",
    "validate_schedule",
    "CandidateSelection",
    "eligible_staff",
    "select_candidates",
    "prioritize_students",
    "rank_staff",
    "role_priority_score",
]
