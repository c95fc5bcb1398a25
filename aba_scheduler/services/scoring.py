"""Priority ranking for students needing coverage and for candidate staff."""

from __future__ import annotations

import math
import random
from typing import Iterable, List, Optional

from aba_scheduler.domain.models import ROLE_HIERARCHY, Session, Staff, Student


def _smallest_tier_gap() -> float:
    scores = sorted({s for s in ROLE_HIERARCHY.values() if math.isfinite(s)})
    gaps = [b - a for a, b in zip(scores, scores[1:]) if b > a]
    return min(gaps) if gaps else 1.0


# Jitter must stay strictly below this so it only reorders within a tier
MIN_TIER_GAP = _smallest_tier_gap()


def role_priority_score(staff: Staff) -> float:
    """Role hierarchy score (lower = more preferred)."""
    return staff.hierarchy_score


def prioritize_students(students: Iterable[Student], session: Session | str) -> List[Student]:
    """
    Order students needing coverage, most urgent first.

    2:1 students come first, then students with smaller teams (scarcer
    supply), then by name.
    """
    session = Session.parse(session)
    return sorted(
        students,
        key=lambda s: (not s.requires_multiple_staff(session), s.team_size, s.name),
    )


def effective_jitter(jitter: float) -> float:
    """Clamp the configured jitter so it can never cross a hierarchy tier."""
    return max(0.0, min(jitter, MIN_TIER_GAP))


def rank_staff(
    staff: Iterable[Staff],
    session: Session | str,
    rng: Optional[random.Random] = None,
    jitter: float = 0.5,
) -> List[Staff]:
    """
    Order candidate staff for one student and session.

    Args:
        staff: Team-eligible candidates
        session: AM ranks strictly; PM adds a bounded random jitter within tiers
        rng: Random source for PM jitter (seed it for repeatable runs)
        jitter: Requested jitter size, clamped below the smallest tier gap

    Returns:
        Staff sorted best first
    """
    session = Session.parse(session)
    members = list(staff)

    if session is Session.PM and jitter > 0:
        rng = rng or random.Random()
        cap = effective_jitter(jitter)
        # rng.random() < 1, so the offset stays strictly under the tier gap
        keyed = [(role_priority_score(m) + rng.random() * cap, m.name, m) for m in members]
    else:
        keyed = [(role_priority_score(m), m.name, m) for m in members]

    keyed.sort(key=lambda item: (item[0], item[1]))
    return [m for _, _, m in keyed]
