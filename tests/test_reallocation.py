"""Tests for the gap-filling reallocation strategies and search bounds."""

import random

import pytest

from aba_scheduler.config import EngineConfig
from aba_scheduler.domain.models import Assignment, Program, ProvenanceKind, Session
from aba_scheduler.domain.schedule import ChangeSet
from aba_scheduler.engine.base import BaseStrategy, RunContext
from aba_scheduler.engine.guard import GuardedSchedule
from aba_scheduler.engine.orchestrator import AutoAssignmentEngine
from aba_scheduler.engine.reallocation import STRATEGIES, GapReallocator
from aba_scheduler.engine.trace import DecisionTrace
from aba_scheduler.services.constraints import validate_schedule


def engine(**overrides):
    overrides.setdefault("random_seed", 3)
    return AutoAssignmentEngine(EngineConfig(**overrides))


def preassign(schedule, staff_id, student_id, session=Session.AM, locked=False):
    assignment = Assignment(staff_id, student_id, session, Program.PRIMARY,
                            date=schedule.date, is_locked=locked)
    schedule.add_assignment(assignment)
    return assignment


def staff_for(schedule, student_id, session=Session.AM):
    return {a.staff_id for a in schedule.student_assignments(student_id) if a.session == session}


@pytest.fixture
def swap_case(schedule, make_staff, make_student):
    """Z(team A) is blocked because A serves W(team A, B); B is free."""
    staff = [make_staff("A"), make_staff("B")]
    students = [
        make_student("z", ["A"], name="Z", absent_pm=True),
        make_student("w", ["A", "B"], name="W", absent_pm=True),
    ]
    existing = preassign(schedule, "A", "w")
    return schedule, staff, students, existing


def test_simple_swap_scenario(swap_case):
    """Test StaffB -> W and StaffA -> Z with zero errors."""
    schedule, staff, students, existing = swap_case

    result = engine().run(schedule, staff, students)

    assert result.errors == []
    assert staff_for(schedule, "z") == {"A"}
    assert staff_for(schedule, "w") == {"B"}
    assert [a.id for a in result.removed] == [existing.id]
    assert {a.provenance.kind for a in result.assignments} == {ProvenanceKind.AUTO_SWAP}
    assert validate_schedule(schedule, staff, students) == []


def test_swap_disabled_leaves_gap(swap_case):
    """Test that strategies can be switched off by configuration."""
    schedule, staff, students, existing = swap_case

    result = engine(strategies=("direct",)).run(schedule, staff, students)

    assert result.errors == ["Z could not be assigned in Primary AM"]
    assert schedule.get(existing.id) is not None


def test_locked_assignment_is_never_displaced(schedule, make_staff, make_student):
    """Test that a locked commitment blocks every strategy."""
    staff = [make_staff("A"), make_staff("B")]
    students = [
        make_student("z", ["A"], name="Z", absent_pm=True),
        make_student("w", ["A", "B"], name="W", absent_pm=True),
    ]
    locked = preassign(schedule, "A", "w", locked=True)

    result = engine().run(schedule, staff, students)

    assert result.errors == ["Z could not be assigned in Primary AM"]
    assert schedule.get(locked.id) is not None
    assert result.removed == []


@pytest.fixture
def chain_case(schedule, make_staff, make_student):
    """T needs A; A serves S1 (team A, B); B serves S2 (team B, C); C is free."""
    staff = [make_staff("A"), make_staff("B"), make_staff("C")]
    students = [
        make_student("t", ["A"], name="T", absent_pm=True),
        make_student("s1", ["A", "B"], name="S1", absent_pm=True),
        make_student("s2", ["B", "C"], name="S2", absent_pm=True),
    ]
    preassign(schedule, "A", "s1")
    preassign(schedule, "B", "s2")
    return schedule, staff, students


def test_chain_swap_frees_staff_two_levels_deep(chain_case):
    """Test C -> S2, B -> S1, A -> T as one atomic chain."""
    schedule, staff, students = chain_case

    result = engine().run(schedule, staff, students)

    assert result.errors == []
    assert staff_for(schedule, "t") == {"A"}
    assert staff_for(schedule, "s1") == {"B"}
    assert staff_for(schedule, "s2") == {"C"}
    assert len(result.removed) == 2
    assert len(result.assignments) == 3
    for assignment in result.assignments:
        assert assignment.provenance.kind is ProvenanceKind.AUTO_CHAIN
        assert assignment.provenance.chain_length == 2
    assert validate_schedule(schedule, staff, students) == []


def test_chain_depth_is_bounded(chain_case):
    """Test that a depth-1 chain cannot reach the free staff member."""
    schedule, staff, students = chain_case

    result = engine(max_chain_depth=1).run(schedule, staff, students)

    assert result.errors == ["T could not be assigned in Primary AM"]
    assert staff_for(schedule, "s1") == {"A"}
    assert staff_for(schedule, "s2") == {"B"}


def test_chain_with_cycle_terminates(schedule, make_staff, make_student):
    """Test that mutually blocked staff do not loop forever."""
    staff = [make_staff("A"), make_staff("B")]
    students = [
        make_student("t", ["A"], name="T", absent_pm=True),
        make_student("s1", ["A", "B"], name="S1", absent_pm=True),
        make_student("s2", ["A", "B"], name="S2", absent_pm=True),
    ]
    preassign(schedule, "A", "s1")
    preassign(schedule, "B", "s2")

    result = engine(max_chain_depth=5).run(schedule, staff, students)

    assert result.errors == ["T could not be assigned in Primary AM"]
    assert len(schedule) == 2


def test_cross_session_move(schedule, make_staff, make_student):
    """Test relocating a staff member whose other-session work blocks them."""
    staff = [make_staff("A"), make_staff("B", absent_pm=True)]
    students = [make_student("t", ["A", "B"], name="T")]
    morning = preassign(schedule, "A", "t", Session.AM)

    result = engine().run(schedule, staff, students)

    assert result.errors == []
    assert staff_for(schedule, "t", Session.AM) == {"B"}
    assert staff_for(schedule, "t", Session.PM) == {"A"}
    assert [a.id for a in result.removed] == [morning.id]
    assert {a.provenance.kind for a in result.assignments} == {ProvenanceKind.AUTO_CROSS}
    assert validate_schedule(schedule, staff, students) == []


def test_two_to_one_gap_filled_with_direct_and_swap(schedule, make_staff, make_student):
    """Test that both missing staff of a 2:1 gap are planned and committed together."""
    staff = [make_staff("A"), make_staff("B"), make_staff("C")]
    students = [
        make_student("d", ["A", "B"], ratio="2:1", name="D", absent_pm=True),
        make_student("w", ["A", "C"], name="W", absent_pm=True),
    ]
    preassign(schedule, "A", "w")

    result = engine().run(schedule, staff, students)

    assert result.errors == []
    assert staff_for(schedule, "d") == {"A", "B"}
    assert staff_for(schedule, "w") == {"C"}


def test_paired_students_are_not_split_by_a_swap(schedule, make_staff, make_student):
    """Test that one half of a served pair is not displaceable."""
    staff = [make_staff("A"), make_staff("B")]
    students = [
        make_student("z", ["A"], name="Z", absent_pm=True),
        make_student("p1", ["A", "B"], ratio="1:2", paired_with="p2", absent_pm=True),
        make_student("p2", ["A", "B"], ratio="1:2", paired_with="p1", absent_pm=True),
    ]
    preassign(schedule, "A", "p1")
    preassign(schedule, "A", "p2")

    result = engine().run(schedule, staff, students)

    assert result.errors == ["Z could not be assigned in Primary AM"]
    assert staff_for(schedule, "p1") == staff_for(schedule, "p2") == {"A"}


def test_reshuffle_disabled_still_reports(swap_case):
    """Test that a zero-iteration reshuffle still completes and reports."""
    schedule, staff, students, _ = swap_case

    result = engine(max_reshuffle_iterations=0, strategies=("direct",)).run(schedule, staff, students)

    assert result.errors == ["Z could not be assigned in Primary AM"]


class CountingStrategy(BaseStrategy):
    """Records every attempt; fills a gap only once its prerequisite student is covered."""

    name = "counting"

    def __init__(self, waits_for=None, never=False):
        self.waits_for = waits_for or {}
        self.never = never
        self.calls = []

    def attempt(self, gap, view, ctx):
        self.calls.append(gap.student.id)
        if self.never:
            return None
        prerequisite = self.waits_for.get(gap.student.id)
        if prerequisite and not view.student_assignments(prerequisite):
            return None
        staff_id = sorted(gap.student.team_ids)[0]
        assignment = ctx.new_assignment(staff_id, gap.student.id, gap.session, gap.program,
                                        ProvenanceKind.AUTO_DIRECT)
        return ChangeSet(additions=(assignment,))


def run_context(schedule, staff, students, **overrides):
    trace = DecisionTrace()
    return RunContext(
        schedule=GuardedSchedule(schedule, trace),
        staff={s.id: s for s in staff},
        students={s.id: s for s in students},
        config=EngineConfig(**overrides),
        rng=random.Random(0),
        trace=trace,
    )


@pytest.fixture
def three_gaps(make_staff, make_student):
    """Three AM-only students, each with a private team member."""
    staff = [make_staff("a"), make_staff("b"), make_staff("c")]
    students = [
        make_student("x", ["a"], name="Ash", absent_pm=True),
        make_student("y", ["b"], name="Bay", absent_pm=True),
        make_student("z", ["c"], name="Cy", absent_pm=True),
    ]
    return staff, students


def test_zero_progress_pass_ends_the_pass_loop(schedule, three_gaps):
    """Test that a pass resolving nothing stops further passes."""
    staff, students = three_gaps
    stub = CountingStrategy(never=True)
    ctx = run_context(schedule, staff, students, max_passes=3, max_reshuffle_iterations=0)

    resolved = GapReallocator([stub]).run(ctx)

    assert resolved == 0
    assert stub.calls == ["x", "y", "z"]
    assert ctx.trace.count("unresolved") == 3


def test_later_pass_fills_gap_enabled_by_earlier_pass(schedule, three_gaps):
    """Test that pass two repairs a gap that only became solvable during pass one."""
    staff, students = three_gaps
    stub = CountingStrategy(waits_for={"x": "y"})
    ctx = run_context(schedule, staff, students, max_passes=2, max_reshuffle_iterations=0)

    resolved = GapReallocator([stub]).run(ctx)

    assert resolved == 3
    assert stub.calls == ["x", "y", "z", "x"]
    assert len(schedule) == 3


def test_single_pass_leaves_dependent_gap(schedule, three_gaps):
    """Test the pass bound: with one pass and no reshuffle the dependent gap stays open."""
    staff, students = three_gaps
    stub = CountingStrategy(waits_for={"x": "y"})
    ctx = run_context(schedule, staff, students, max_passes=1, max_reshuffle_iterations=0)

    reallocator = GapReallocator([stub])
    reallocator.run(ctx)

    assert stub.calls == ["x", "y", "z"]
    assert [g.student_id for g in reallocator.residual_gaps(ctx)] == ["x"]


def test_reshuffle_requeues_until_earlier_gap_commits(schedule, three_gaps):
    """Test that a failed gap goes to the back and succeeds after the gap behind it is committed."""
    staff, students = three_gaps
    stub = CountingStrategy(waits_for={"x": "z"})
    ctx = run_context(schedule, staff, students)

    resolved = GapReallocator().reshuffle(ctx, [stub])

    # x fails, y and z resolve, then the requeued x resolves
    assert stub.calls == ["x", "y", "z", "x"]
    assert resolved == 3
    assert len(schedule) == 3


def test_reshuffle_stops_after_full_cycle_without_progress(schedule, three_gaps):
    """Test that an unproductive cycle halts well before the iteration cap."""
    staff, students = three_gaps
    stub = CountingStrategy(never=True)
    ctx = run_context(schedule, staff, students, max_reshuffle_iterations=20)

    assert GapReallocator().reshuffle(ctx, [stub]) == 0
    assert stub.calls == ["x", "y", "z"]


def test_reshuffle_iteration_cap(schedule, three_gaps):
    """Test that the reshuffle never exceeds its iteration bound."""
    staff, students = three_gaps
    stub = CountingStrategy(never=True)
    ctx = run_context(schedule, staff, students, max_passes=1, max_reshuffle_iterations=2)

    GapReallocator([stub]).run(ctx)

    # One pass over three gaps, then two reshuffle iterations
    assert stub.calls == ["x", "y", "z", "x", "y"]


def test_strategy_registry_uses_strategy_names(schedule, three_gaps):
    """Test that strategies are registered by name and named in the trace."""
    assert {name: cls.name for name, cls in STRATEGIES.items()} == {
        "direct": "direct", "swap": "swap", "chain": "chain", "cross": "cross",
    }
    staff, students = three_gaps
    stub = CountingStrategy()
    ctx = run_context(schedule, staff, students, max_reshuffle_iterations=0)

    GapReallocator([stub]).run(ctx)

    events = ctx.trace.events_for(kind="resolved")
    assert len(events) == 3
    assert events[0].data["strategies"] == ["counting"]
    assert stub.get_strategy_name() == "counting"
