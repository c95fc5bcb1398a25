"""Command-line entrypoints: generate, validate and summarize a day's schedule."""

from __future__ import annotations

import argparse
import logging
from datetime import date as Date

import pandas as pd

from .config import load_config
from .data_io import load_schedule, read_staff_csv, read_students_csv, write_assignments_csv
from .engine.orchestrator import AutoAssignmentEngine
from .logger import configure_logging
from .reporting import assignments_frame, format_stats, generate_stats, residual_gap_report, summarize_schedule
from .services.constraints import validate_schedule


def _cmd_generate(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    staff = read_staff_csv(args.staff)
    students = read_students_csv(args.students)
    day = Date.fromisoformat(args.date) if args.date else None
    schedule = load_schedule(args.schedule, day)

    result = AutoAssignmentEngine(cfg).run(schedule, staff, students)

    write_assignments_csv(args.out, schedule.assignments, staff, students)
    print("Assignments written to", args.out)
    if args.trace:
        result.trace.to_frame().to_csv(args.trace, index=False)
        print("Decision trace written to", args.trace)

    print(f"Created {len(result.assignments)} assignments, displaced {len(result.removed)}")
    print("\n".join(format_stats(generate_stats(schedule.assignments, staff, students))))
    print(summarize_schedule(
        assignments_frame(schedule.assignments, staff, students),
        residual_gap_report(schedule.assignments, students),
    ))
    for error in result.errors:
        print("[GAP]", error)


def _cmd_validate(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    staff = read_staff_csv(args.staff)
    students = read_students_csv(args.students)
    schedule = load_schedule(args.assignments)
    problems = validate_schedule(schedule, staff, students, cfg.small_group_cap)
    if problems:
        for problem in problems:
            print(problem)
        raise SystemExit(f"Validation failed: {len(problems)} problem(s)")
    print("Validation passed.")


def _cmd_summarize(args: argparse.Namespace) -> None:
    assignments = pd.read_csv(args.assignments, dtype=str)
    gaps = None
    if args.students:
        schedule = load_schedule(args.assignments)
        gaps = residual_gap_report(schedule.assignments, read_students_csv(args.students))
    print(summarize_schedule(assignments, gaps))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="aba-scheduler", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-decision detail")
    sub = parser.add_subparsers(dest="command", required=True)

    g = sub.add_parser("generate", help="Auto-assign staff for one day")
    g.add_argument("--staff", required=True)
    g.add_argument("--students", required=True)
    g.add_argument("--schedule", help="Existing assignments CSV to fill in")
    g.add_argument("--date", help="Schedule date (YYYY-MM-DD)")
    g.add_argument("--config", help="Engine configuration (YAML or JSON)")
    g.add_argument("--out", required=True)
    g.add_argument("--trace", help="Write the decision trace to this CSV")
    g.set_defaults(func=_cmd_generate)

    v = sub.add_parser("validate", help="Validate an assignments CSV")
    v.add_argument("--staff", required=True)
    v.add_argument("--students", required=True)
    v.add_argument("--assignments", required=True)
    v.add_argument("--config")
    v.set_defaults(func=_cmd_validate)

    s = sub.add_parser("summarize", help="Summarize an assignments CSV")
    s.add_argument("--assignments", required=True)
    s.add_argument("--students", help="Student roster, to list unresolved gaps")
    s.set_defaults(func=_cmd_summarize)

    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    args.func(args)


if __name__ == "__main__":
    main()
