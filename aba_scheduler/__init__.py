"""Daily staff-to-student assignment engine for ABA program scheduling.

Modules:
- config: load and validate engine configuration (YAML or JSON)
- domain: staff, students, assignments and the date-scoped schedule
- services: validation rules, eligibility filtering, priority ranking
- engine: direct assignment pass and gap-filling reallocation search
- reporting: statistics and residual-gap summaries
- data_io: CSV roster and schedule helpers
- cli: command-line interface entrypoints
"""

from .engine.orchestrator import AutoAssignmentEngine, RunResult, run

__all__ = [
    "AutoAssignmentEngine",
    "RunResult",
    "run",
    "config",
    "domain",
    "services",
    "engine",
    "reporting",
    "data_io",
    "cli",
]
