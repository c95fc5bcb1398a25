"""Structured decision trace returned alongside each engine run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd

from aba_scheduler.domain.models import Program, Session

logger = logging.getLogger(__name__)

TRACE_COLUMNS = ["stage", "kind", "student_id", "session", "program", "detail"]


@dataclass(frozen=True)
class TraceEvent:
    """One engine decision: what happened, to whom, and why."""

    stage: str
    kind: str
    student_id: Optional[str] = None
    session: Optional[Session] = None
    program: Optional[Program] = None
    detail: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def as_row(self) -> Dict[str, Any]:
        row = {
            "stage": self.stage,
            "kind": self.kind,
            "student_id": self.student_id,
            "session": self.session.value if self.session else None,
            "program": self.program.value if self.program else None,
            "detail": self.detail,
        }
        row.update(self.data)
        return row


class DecisionTrace:
    """Append-only log of engine decisions, decoupled from control flow."""

    def __init__(self):
        self.events: List[TraceEvent] = []

    def record(
        self,
        stage: str,
        kind: str,
        *,
        student=None,
        session: Session | None = None,
        program: Program | None = None,
        detail: str = "",
        **data: Any,
    ) -> TraceEvent:
        student_id = getattr(student, "id", student)
        event = TraceEvent(stage, kind, student_id, session, program, detail, dict(data))
        self.events.append(event)
        logger.debug("%s/%s %s", stage, kind, detail)
        return event

    def events_for(
        self,
        student_id: str | None = None,
        kind: str | None = None,
        stage: str | None = None,
    ) -> List[TraceEvent]:
        return [
            e for e in self.events
            if (student_id is None or e.student_id == student_id)
            and (kind is None or e.kind == kind)
            and (stage is None or e.stage == stage)
        ]

    def count(self, kind: str) -> int:
        return sum(1 for e in self.events if e.kind == kind)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self.events)

    def to_frame(self) -> pd.DataFrame:
        """Trace as a DataFrame (one row per event; extra data becomes columns)."""
        if not self.events:
            return pd.DataFrame(columns=TRACE_COLUMNS)
        return pd.DataFrame([e.as_row() for e in self.events])
