"""Domain types for ABA staff/student scheduling."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date as Date
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple


class Role(str, Enum):
    """Staff roles, in hierarchy order."""

    RBT = "RBT"
    BS = "BS"
    EA = "EA"
    BCBA = "BCBA"
    CC = "CC"
    MHA = "MHA"
    TEACHER = "Teacher"
    DIRECTOR = "Director"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        text = str(value).strip()
        for role in cls:
            if role.value.upper() == text.upper():
                return role
        raise ValueError(f"Unknown staff role: {value!r}")


# Lower is more preferred. Teacher/Director never provide direct service.
ROLE_HIERARCHY: Dict[Role, float] = {
    Role.RBT: 1,
    Role.BS: 2,
    Role.EA: 10,
    Role.BCBA: 20,
    Role.CC: 21,
    Role.MHA: 22,
    Role.TEACHER: math.inf,
    Role.DIRECTOR: math.inf,
}

BLOCKED_ROLES = frozenset({Role.TEACHER, Role.DIRECTOR})
PREFERRED_ROLES = frozenset({Role.RBT, Role.BS})


class Program(str, Enum):
    PRIMARY = "Primary"
    SECONDARY = "Secondary"

    @classmethod
    def parse(cls, value: "Program | str") -> "Program":
        if isinstance(value, Program):
            return value
        text = str(value).strip().lower()
        for program in cls:
            if program.value.lower() == text:
                return program
        raise ValueError(f"Unknown program: {value!r}")


class Session(str, Enum):
    AM = "AM"
    PM = "PM"

    @property
    def other(self) -> "Session":
        return Session.PM if self is Session.AM else Session.AM

    @classmethod
    def parse(cls, value: "Session | str") -> "Session":
        if isinstance(value, Session):
            return value
        text = str(value).strip().upper()
        for session in cls:
            if session.value == text:
                return session
        raise ValueError(f"Unknown session: {value!r}")


class Ratio(str, Enum):
    ONE_TO_ONE = "1:1"
    TWO_TO_ONE = "2:1"
    ONE_TO_TWO = "1:2"

    @property
    def required_staff(self) -> int:
        return 2 if self is Ratio.TWO_TO_ONE else 1

    @classmethod
    def parse(cls, value: "Ratio | str") -> "Ratio":
        if isinstance(value, Ratio):
            return value
        text = str(value).strip()
        for ratio in cls:
            if ratio.value == text:
                return ratio
        raise ValueError(f"Unknown ratio: {value!r}")


# (start, end) per program and session
SESSION_TIMES: Dict[Program, Dict[Session, Tuple[str, str]]] = {
    Program.PRIMARY: {Session.AM: ("8:45", "11:30"), Session.PM: ("12:00", "15:00")},
    Program.SECONDARY: {Session.AM: ("8:45", "12:00"), Session.PM: ("12:30", "15:00")},
}


class ProvenanceKind(str, Enum):
    """Which strategy produced an assignment."""

    MANUAL = "manual"
    AUTO = "auto"
    AUTO_PAIRED = "auto-paired"
    AUTO_DIRECT = "auto-direct"
    AUTO_SWAP = "auto-swap"
    AUTO_CHAIN = "auto-chain"
    AUTO_CROSS = "auto-cross"


@dataclass(frozen=True)
class Provenance:
    """Origin of an assignment plus strategy-specific detail."""

    kind: ProvenanceKind = ProvenanceKind.AUTO
    chain_length: int = 0
    staff_moved: Tuple[str, ...] = ()
    partner_id: Optional[str] = None

    @property
    def tag(self) -> str:
        return self.kind.value

    @property
    def is_manual(self) -> bool:
        return self.kind is ProvenanceKind.MANUAL

    @classmethod
    def manual(cls) -> "Provenance":
        return cls(ProvenanceKind.MANUAL)

    @classmethod
    def parse(cls, tag: "Provenance | str | None") -> "Provenance":
        if isinstance(tag, Provenance):
            return tag
        if tag is None or str(tag).strip() == "":
            return cls()
        return cls(ProvenanceKind(str(tag).strip().lower()))


def generate_assignment_id() -> str:
    return f"assignment_{uuid.uuid4().hex[:12]}"


def _available(is_active: bool, absent: bool, absent_full_day: bool, out: bool, out_full_day: bool) -> bool:
    return is_active and not (absent or absent_full_day or out or out_full_day)


@dataclass
class Staff:
    """A caregiver who can be paired with students."""

    id: str
    name: str
    role: Role
    primary_program: bool = False
    secondary_program: bool = False
    is_active: bool = True

    # Attendance
    absent_am: bool = False
    absent_pm: bool = False
    absent_full_day: bool = False
    out_of_session_am: bool = False
    out_of_session_pm: bool = False
    out_of_session_full_day: bool = False

    def __post_init__(self) -> None:
        self.role = Role.parse(self.role)

    @property
    def hierarchy_score(self) -> float:
        return ROLE_HIERARCHY[self.role]

    def can_work_program(self, program: Program | str) -> bool:
        program = Program.parse(program)
        if program is Program.PRIMARY:
            return bool(self.primary_program)
        return bool(self.secondary_program)

    def can_do_direct_service(self) -> bool:
        return self.role not in BLOCKED_ROLES

    def is_preferred_direct_service(self) -> bool:
        return self.role in PREFERRED_ROLES

    def is_available_for_session(self, session: Session | str) -> bool:
        session = Session.parse(session)
        if session is Session.AM:
            return _available(
                self.is_active, self.absent_am, self.absent_full_day,
                self.out_of_session_am, self.out_of_session_full_day,
            )
        return _available(
            self.is_active, self.absent_pm, self.absent_full_day,
            self.out_of_session_pm, self.out_of_session_full_day,
        )

    def __repr__(self) -> str:
        return f"<Staff(id={self.id!r}, name='{self.name}', role='{self.role.value}')>"


@dataclass
class Student:
    """A client with per-session ratios and a closed team of eligible staff."""

    id: str
    name: str
    program: Program
    ratio_am: Ratio = Ratio.ONE_TO_ONE
    ratio_pm: Ratio = Ratio.ONE_TO_ONE
    team_ids: FrozenSet[str] = field(default_factory=frozenset)
    is_active: bool = True
    paired_with: Optional[str] = None

    # Attendance
    absent_am: bool = False
    absent_pm: bool = False
    absent_full_day: bool = False
    out_of_session_am: bool = False
    out_of_session_pm: bool = False
    out_of_session_full_day: bool = False

    def __post_init__(self) -> None:
        self.program = Program.parse(self.program)
        self.ratio_am = Ratio.parse(self.ratio_am)
        self.ratio_pm = Ratio.parse(self.ratio_pm)
        self.team_ids = frozenset(self.team_ids)

    def ratio_for(self, session: Session | str) -> Ratio:
        return self.ratio_am if Session.parse(session) is Session.AM else self.ratio_pm

    def required_staff_count(self, session: Session | str) -> int:
        return self.ratio_for(session).required_staff

    def requires_multiple_staff(self, session: Session | str) -> bool:
        return self.ratio_for(session) is Ratio.TWO_TO_ONE

    def is_small_group(self, session: Session | str) -> bool:
        return self.ratio_for(session) is Ratio.ONE_TO_TWO

    @property
    def team_size(self) -> int:
        return len(self.team_ids)

    @property
    def is_paired(self) -> bool:
        return bool(self.paired_with)

    def has_team_member(self, staff_id: str) -> bool:
        return staff_id in self.team_ids

    def is_available_for_session(self, session: Session | str) -> bool:
        session = Session.parse(session)
        if session is Session.AM:
            return _available(
                self.is_active, self.absent_am, self.absent_full_day,
                self.out_of_session_am, self.out_of_session_full_day,
            )
        return _available(
            self.is_active, self.absent_pm, self.absent_full_day,
            self.out_of_session_pm, self.out_of_session_full_day,
        )

    def __repr__(self) -> str:
        return f"<Student(id={self.id!r}, name='{self.name}', program='{self.program.value}')>"


@dataclass(frozen=True)
class Assignment:
    """A staff-student pairing for one session of one program on one date."""

    staff_id: str
    student_id: str
    session: Session
    program: Program
    date: Optional[Date] = None
    id: str = field(default_factory=generate_assignment_id)
    is_locked: bool = False
    provenance: Provenance = field(default_factory=Provenance)

    def __post_init__(self) -> None:
        object.__setattr__(self, "session", Session.parse(self.session))
        object.__setattr__(self, "program", Program.parse(self.program))
        object.__setattr__(self, "provenance", Provenance.parse(self.provenance))

    @property
    def session_times(self) -> Tuple[str, str]:
        return SESSION_TIMES[self.program][self.session]

    def __repr__(self) -> str:
        return (
            f"<Assignment(id={self.id}, staff={self.staff_id}, student={self.student_id}, "
            f"{self.program.value} {self.session.value}, by={self.provenance.tag})>"
        )


def index_by_id(items: Iterable) -> Dict[str, object]:
    """Map ``item.id -> item``, accepting either a mapping or an iterable."""
    if isinstance(items, Mapping):
        return items
    return {item.id: item for item in items}
