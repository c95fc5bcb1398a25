"""Tests for domain models."""

from datetime import date

import pytest

from aba_scheduler.domain.models import (
    Assignment,
    Program,
    Provenance,
    ProvenanceKind,
    Ratio,
    Role,
    Session,
    index_by_id,
)


def test_role_parse_is_case_insensitive():
    """Test role parsing from loose input."""
    assert Role.parse("rbt") is Role.RBT
    assert Role.parse(" teacher ") is Role.TEACHER
    with pytest.raises(ValueError):
        Role.parse("Janitor")


def test_role_hierarchy_and_blocked_roles(make_staff):
    """Test hierarchy scores and direct-service eligibility."""
    rbt = make_staff("r1", role="RBT")
    ea = make_staff("e1", role="EA")
    director = make_staff("d1", role="Director")

    assert rbt.hierarchy_score < ea.hierarchy_score < director.hierarchy_score
    assert rbt.is_preferred_direct_service()
    assert not ea.is_preferred_direct_service()
    assert ea.can_do_direct_service()
    assert not director.can_do_direct_service()


def test_staff_availability_flags(make_staff):
    """Test that absence and out-of-session flags drive availability."""
    assert make_staff("a").is_available_for_session(Session.AM)
    assert not make_staff("b", absent_am=True).is_available_for_session(Session.AM)
    assert make_staff("b", absent_am=True).is_available_for_session(Session.PM)
    assert not make_staff("c", out_of_session_pm=True).is_available_for_session("PM")
    assert not make_staff("d", absent_full_day=True).is_available_for_session(Session.PM)
    assert not make_staff("e", out_of_session_full_day=True).is_available_for_session(Session.AM)
    assert not make_staff("f", is_active=False).is_available_for_session(Session.AM)


def test_staff_program_capability(make_staff):
    """Test program capability flags."""
    member = make_staff("a", primary=True, secondary=False)
    assert member.can_work_program(Program.PRIMARY)
    assert not member.can_work_program("Secondary")


def test_student_ratios(make_student):
    """Test per-session ratios and required staff counts."""
    student = make_student("s", ["a", "b"], ratio="2:1", ratio_pm="1:2")

    assert student.required_staff_count(Session.AM) == 2
    assert student.requires_multiple_staff("AM")
    assert student.required_staff_count(Session.PM) == 1
    assert student.is_small_group(Session.PM)
    assert student.ratio_for(Session.PM) is Ratio.ONE_TO_TWO
    assert student.team_size == 2
    assert student.has_team_member("a")
    assert not student.has_team_member("z")


def test_student_unknown_ratio_rejected(make_student):
    """Test that unsupported ratios are rejected."""
    with pytest.raises(ValueError):
        make_student("s", ["a"], ratio="3:1")


def test_provenance_tags():
    """Test provenance variant and legacy tags."""
    assert Provenance().tag == "auto"
    assert Provenance.manual().is_manual
    assert Provenance.parse("auto-swap").kind is ProvenanceKind.AUTO_SWAP
    assert Provenance.parse(None).kind is ProvenanceKind.AUTO

    chain = Provenance(ProvenanceKind.AUTO_CHAIN, chain_length=2, staff_moved=("a", "b"))
    assert chain.tag == "auto-chain"
    assert chain.staff_moved == ("a", "b")


def test_assignment_normalises_fields():
    """Test that assignments accept plain strings and generate ids."""
    a = Assignment("r1", "s1", "am", "primary", date=date(2025, 3, 10))
    b = Assignment("r1", "s1", "AM", "Primary")

    assert a.session is Session.AM
    assert a.program is Program.PRIMARY
    assert a.id.startswith("assignment_")
    assert a.id != b.id
    assert a.session_times == ("8:45", "11:30")
    assert Assignment("r1", "s1", "PM", "Secondary").session_times == ("12:30", "15:00")


def test_index_by_id(make_staff):
    """Test roster indexing from lists and mappings."""
    staff = [make_staff("a"), make_staff("b")]
    indexed = index_by_id(staff)
    assert set(indexed) == {"a", "b"}
    assert index_by_id(indexed) is indexed
