"""Gap-filling reallocation search run after the direct pass."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from typing import Deque, FrozenSet, List, Optional, Sequence

from aba_scheduler.domain.models import Provenance, ProvenanceKind, Program, Session, Staff
from aba_scheduler.domain.schedule import ChangeSet, ScheduleView
from aba_scheduler.services.eligibility import eligible_staff
from aba_scheduler.services.scoring import prioritize_students, rank_staff

from .base import BaseStrategy, Gap, RunContext, UnresolvedGap
from .direct import plan_individual, plan_pair, plan_small_group

logger = logging.getLogger(__name__)


def _booked_team_staff(gap: Gap, view: ScheduleView, ctx: RunContext) -> List[Staff]:
    """Team-eligible staff for the gap who are busy in its slot, best first."""
    student, session, program = gap.student, gap.session, gap.program
    busy = [
        m for m in eligible_staff(student, session, program, ctx.staff, view, require_free=False)
        if not view.is_staff_available(m.id, session, program)
        and not view.has_staff_worked_with_student(m.id, student.id)
    ]
    return rank_staff(busy, session, ctx.rng, ctx.config.pm_jitter)


def _single_commitment(staff_id: str, session: Session, program: Program, view: ScheduleView, ctx: RunContext):
    """The one displaceable assignment holding a staff member in a slot, if any."""
    held = view.staff_slot_assignments(staff_id, session, program)
    if len(held) != 1 or not ctx.is_displaceable(held[0], view):
        return None
    return held[0]


class DirectStrategy(BaseStrategy):
    """A team member is already free for the slot (ordering effects)."""

    name = "direct"

    def attempt(self, gap: Gap, view: ScheduleView, ctx: RunContext) -> Optional[ChangeSet]:
        if gap.student.is_small_group(gap.session):
            return plan_small_group(ctx, gap.student, gap.session, gap.program, view,
                                    ProvenanceKind.AUTO_DIRECT, stage="reallocation")
        return plan_individual(ctx, gap.student, gap.session, gap.program, view,
                               ProvenanceKind.AUTO_DIRECT, needed=1, stage="reallocation")


class SimpleSwapStrategy(BaseStrategy):
    """Hand a busy team member's commitment to a free colleague, then use them."""

    name = "swap"

    def attempt(self, gap: Gap, view: ScheduleView, ctx: RunContext) -> Optional[ChangeSet]:
        student, session, program = gap.student, gap.session, gap.program
        for member in _booked_team_staff(gap, view, ctx):
            held = _single_commitment(member.id, session, program, view, ctx)
            if held is None:
                continue
            other = ctx.students.get(held.student_id)
            if other is None:
                continue

            released = view.overlay(remove=[held])
            selection = ctx.select(other, session, program, released, required=1, exclude_ids={member.id})
            for replacement in selection.candidates:
                provenance = Provenance(ProvenanceKind.AUTO_SWAP, chain_length=1,
                                        staff_moved=(member.id, replacement.id))
                handover = ctx.new_assignment(replacement.id, other.id, session, program, provenance)
                if not ctx.is_valid(handover, released):
                    continue
                target = ctx.new_assignment(member.id, student.id, session, program, provenance)
                if not ctx.is_valid(target, released.overlay(add=[handover])):
                    continue
                ctx.trace.record("reallocation", "swap", student=student, session=session, program=program,
                                 detail=f"{replacement.name} -> {other.name}, {member.name} -> {student.name}")
                return ChangeSet(removals=(held,), additions=(handover, target))
        return None


class ChainSwapStrategy(BaseStrategy):
    """
    Free a busy team member through a bounded chain of hand-overs.

    Each link hands a staff member's commitment to a replacement who is either
    genuinely free or can itself be freed one level deeper. Recursion stops at
    ``max_chain_depth`` and never revisits a staff member already in the chain.
    """

    name = "chain"

    def attempt(self, gap: Gap, view: ScheduleView, ctx: RunContext) -> Optional[ChangeSet]:
        student, session, program = gap.student, gap.session, gap.program
        for member in _booked_team_staff(gap, view, ctx):
            freeing = self.free_staff(member, session, program, view, ctx, 1, frozenset({member.id}))
            if freeing is None:
                continue
            target = ctx.new_assignment(member.id, student.id, session, program, ProvenanceKind.AUTO_CHAIN)
            if not ctx.is_valid(target, view.overlay(freeing)):
                continue
            changes = freeing.then(ChangeSet(additions=(target,)))
            changes = self._label(changes)
            ctx.trace.record("reallocation", "chain", student=student, session=session, program=program,
                             detail=f"chain of {len(changes.removals)} freed {member.name}",
                             chain_length=len(changes.removals))
            return changes
        return None

    def free_staff(
        self,
        member: Staff,
        session: Session,
        program: Program,
        view: ScheduleView,
        ctx: RunContext,
        depth: int,
        visited: FrozenSet[str],
    ) -> Optional[ChangeSet]:
        """Changes that release ``member`` from its slot commitment, or None."""
        held = _single_commitment(member.id, session, program, view, ctx)
        if held is None:
            return None
        other = ctx.students.get(held.student_id)
        if other is None:
            return None
        released = view.overlay(remove=[held])
        release = ChangeSet(removals=(held,))

        # 1. A genuinely free replacement ends the chain
        selection = ctx.select(other, session, program, released, required=1, exclude_ids=visited)
        for replacement in selection.candidates:
            handover = ctx.new_assignment(replacement.id, other.id, session, program, ProvenanceKind.AUTO_CHAIN)
            if ctx.is_valid(handover, released):
                return release.then(ChangeSet(additions=(handover,)))

        if depth >= ctx.config.max_chain_depth:
            return None

        # 2. Otherwise free a busy replacement one level deeper
        busy = [
            m for m in eligible_staff(other, session, program, ctx.staff, released,
                                      exclude_ids=visited, require_free=False)
            if not released.is_staff_available(m.id, session, program)
            and not released.has_staff_worked_with_student(m.id, other.id)
        ]
        for replacement in rank_staff(busy, session, ctx.rng, ctx.config.pm_jitter):
            deeper = self.free_staff(replacement, session, program, released, ctx,
                                     depth + 1, visited | {replacement.id})
            if deeper is None:
                continue
            handover = ctx.new_assignment(replacement.id, other.id, session, program, ProvenanceKind.AUTO_CHAIN)
            if ctx.is_valid(handover, released.overlay(deeper)):
                return release.then(deeper).then(ChangeSet(additions=(handover,)))
        return None

    @staticmethod
    def _label(changes: ChangeSet) -> ChangeSet:
        moved = tuple(a.staff_id for a in changes.removals)
        provenance = Provenance(ProvenanceKind.AUTO_CHAIN, chain_length=len(changes.removals), staff_moved=moved)
        return ChangeSet(
            removals=changes.removals,
            additions=tuple(replace(a, provenance=provenance) for a in changes.additions),
        )


class CrossSessionStrategy(BaseStrategy):
    """Move a team member's other-session commitment to a replacement, then use them here."""

    name = "cross"

    def attempt(self, gap: Gap, view: ScheduleView, ctx: RunContext) -> Optional[ChangeSet]:
        student, session, program = gap.student, gap.session, gap.program
        source = session.other

        for member in rank_staff(
            eligible_staff(student, session, program, ctx.staff, view, require_free=False),
            session, ctx.rng, ctx.config.pm_jitter,
        ):
            if not view.is_staff_available(member.id, session, program):
                continue
            held = _single_commitment(member.id, source, program, view, ctx)
            if held is None:
                continue
            other = ctx.students.get(held.student_id)
            if other is None:
                continue

            released = view.overlay(remove=[held])
            selection = ctx.select(other, source, program, released, required=1, exclude_ids={member.id})
            for replacement in selection.candidates:
                provenance = Provenance(ProvenanceKind.AUTO_CROSS, chain_length=1,
                                        staff_moved=(member.id, replacement.id))
                handover = ctx.new_assignment(replacement.id, other.id, source, program, provenance)
                if not ctx.is_valid(handover, released):
                    continue
                target = ctx.new_assignment(member.id, student.id, session, program, provenance)
                if not ctx.is_valid(target, released.overlay(add=[handover])):
                    continue
                ctx.trace.record("reallocation", "cross", student=student, session=session, program=program,
                                 detail=f"{replacement.name} -> {other.name} {source.value}, "
                                        f"{member.name} -> {student.name} {session.value}")
                return ChangeSet(removals=(held,), additions=(handover, target))
        return None


STRATEGIES = {
    cls.name: cls
    for cls in (DirectStrategy, SimpleSwapStrategy, ChainSwapStrategy, CrossSessionStrategy)
}


def build_strategies(names: Sequence[str]) -> List[BaseStrategy]:
    return [STRATEGIES[name]() for name in names]


class GapReallocator:
    """
    Bounded multi-pass repair of residual gaps.

    Per (program, session) up to ``max_passes`` passes try every strategy in
    order for each gap; a pass that resolves nothing ends the loop. A cyclic
    reshuffle queue then retries what is left, bounded by
    ``max_reshuffle_iterations`` and stopping after a full cycle with no progress.
    """

    stage = "reallocation"

    def __init__(self, strategies: Sequence[BaseStrategy] | None = None):
        self.strategies = list(strategies) if strategies is not None else None

    def _strategies(self, ctx: RunContext) -> List[BaseStrategy]:
        if self.strategies is not None:
            return self.strategies
        return build_strategies(ctx.config.strategies)

    def find_gaps(self, ctx: RunContext, program: Program, session: Session) -> List[Gap]:
        pool = [s for s in ctx.students.values() if ctx.needs_coverage(s, session, program)]
        return [
            Gap(s, session, program, ctx.missing(s, session, program))
            for s in prioritize_students(pool, session)
        ]

    def refresh(self, ctx: RunContext, gap: Gap) -> Optional[Gap]:
        """Re-read a gap against the live schedule; None once it is covered."""
        if not ctx.needs_coverage(gap.student, gap.session, gap.program):
            return None
        return replace(gap, missing=ctx.missing(gap.student, gap.session, gap.program))

    def run(self, ctx: RunContext) -> int:
        """Run the bounded passes and the reshuffle; returns gaps resolved."""
        strategies = self._strategies(ctx)
        resolved = 0
        for program in ctx.config.programs:
            for session in ctx.config.sessions:
                for pass_no in range(1, ctx.config.max_passes + 1):
                    gaps = self.find_gaps(ctx, program, session)
                    if not gaps:
                        break
                    fixed = 0
                    for gap in gaps:
                        current = self.refresh(ctx, gap)
                        if current is not None and self.resolve(ctx, current, strategies):
                            fixed += 1
                    logger.info("Reallocation %s %s pass %d: %d of %d gaps resolved",
                                program.value, session.value, pass_no, fixed, len(gaps))
                    resolved += fixed
                    if fixed == 0:
                        break
        resolved += self.reshuffle(ctx, strategies)
        return resolved

    def reshuffle(self, ctx: RunContext, strategies: List[BaseStrategy]) -> int:
        queue: Deque[Gap] = deque(
            gap
            for program in ctx.config.programs
            for session in ctx.config.sessions
            for gap in self.find_gaps(ctx, program, session)
        )
        if not queue:
            return 0
        logger.info("Reshuffle: %d gaps queued", len(queue))

        resolved = 0
        stalled = 0
        iterations = 0
        while queue and iterations < ctx.config.max_reshuffle_iterations:
            iterations += 1
            gap = self.refresh(ctx, queue.popleft())
            if gap is None:
                stalled = 0
                continue
            if self.resolve(ctx, gap, strategies):
                resolved += 1
                stalled = 0
                continue
            queue.append(gap)
            stalled += 1
            if stalled >= len(queue):
                break
        logger.info("Reshuffle: %d resolved in %d iterations", resolved, iterations)
        return resolved

    def resolve(self, ctx: RunContext, gap: Gap, strategies: List[BaseStrategy]) -> bool:
        """Try every strategy for each missing staff slot; commit only full coverage."""
        student, session, program = gap.student, gap.session, gap.program

        partner = ctx.partner_of(student)
        if partner is not None and ctx.needs_coverage(partner, session, program):
            changes = plan_pair(ctx, student, partner, session, program, ctx.schedule, self.stage)
            return bool(changes) and ctx.commit(changes, self.stage, gap)

        total = ChangeSet()
        used: List[str] = []
        view: ScheduleView = ctx.schedule
        for _ in range(gap.missing):
            for strategy in strategies:
                changes = strategy.attempt(gap, view, ctx)
                if changes:
                    used.append(strategy.get_strategy_name())
                    total = total.then(changes)
                    view = ctx.schedule.overlay(total)
                    break
            else:
                ctx.trace.record(self.stage, "unresolved", student=student, session=session, program=program,
                                 detail="all strategies exhausted", missing=gap.missing)
                return False

        if not self._confirm(ctx, total, view):
            ctx.trace.record(self.stage, "rejected", student=student, session=session, program=program,
                             detail="combined changes failed re-validation")
            return False
        if not ctx.commit(total, self.stage, gap):
            return False
        ctx.trace.record(self.stage, "resolved", student=student, session=session, program=program,
                         detail=f"resolved via {', '.join(used)}", strategies=used)
        return True

    @staticmethod
    def _confirm(ctx: RunContext, changes: ChangeSet, final: ScheduleView) -> bool:
        return all(ctx.is_valid(a, final) for a in changes.additions)

    def residual_gaps(self, ctx: RunContext) -> List[UnresolvedGap]:
        return [
            UnresolvedGap.from_gap(gap)
            for program in ctx.config.programs
            for session in ctx.config.sessions
            for gap in self.find_gaps(ctx, program, session)
        ]
