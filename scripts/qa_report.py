#!/usr/bin/env python3
"""Print run coverage and project QA dashboards from the command line.

Usage:
    python scripts/qa_report.py run <run_id>
    python scripts/qa_report.py health <project_id>
    python scripts/qa_report.py coverage <project_id> [--sort asc|desc] [--page N]
    python scripts/qa_report.py open-runs <project_id> [--page N]
    python scripts/qa_report.py test-health <feature_id>
"""
import sys
from typing import List, Optional

from _shared import create_base_parser, create_engine, load_engine_config

from core.domain.dashboard import SortDirection
from core.exceptions import BACKEND_ERRORS, InvalidStateError, ValidationError
from core.services.coverage import is_full_pass, ratio_to_percent
from core.services.dashboard_aggregator import effective_ratio
from infrastructure.repository_factory import QaEngine

REPORT_ERRORS = (ValidationError, InvalidStateError) + BACKEND_ERRORS


def _format_date(value) -> str:
    return value.strftime('%Y-%m-%d') if value else '-'


def report_run(engine: QaEngine, run_id: str) -> None:
    run = engine.lifecycle.open_run(run_id)
    if run.feature_id:
        # Case names for the missing list
        engine.catalog.list_cases(run.feature_id, include_archived=True)
    coverage = engine.lifecycle.coverage(run)
    engine.lifecycle.dispose(run)

    print(f"Run {run.id}: {run.name or '(unnamed)'} [{run.status.value}]")
    print(f"  Scope:       {run.scope.value}")
    print(f"  Environment: {run.environment or '-'}")
    print(f"  Date:        {_format_date(run.run_date)}")
    print(f"  Executed:    {coverage.executed_cases}/{coverage.total_cases}")
    print(f"  Pass rate:   {ratio_to_percent(coverage.pass_rate)}%")
    for evaluation, count in coverage.counts.items():
        print(f"    {evaluation.value:<12} {count}")
    if is_full_pass(coverage):
        print("  Full pass")
    if coverage.missing_test_cases:
        print(f"  Missing ({coverage.missing_cases}):")
        for case in coverage.missing_test_cases:
            print(f"    - {case.name} ({case.id})")


def report_health(engine: QaEngine, project_id: str) -> None:
    summary = engine.dashboard.summarize_feature_health(project_id)
    print(f"Feature health for project {project_id} ({summary.features} features)")
    print(f"  Passed:  {summary.passed}")
    print(f"  Failed:  {summary.failed}")
    print(f"  Missing: {summary.missing}")
    if summary.truncated:
        print("  (summary covers the first pages only)")


def report_coverage(engine: QaEngine, project_id: str, direction: SortDirection, page: int) -> None:
    result = engine.dashboard.feature_coverage(project_id, page=page, direction=direction)
    print(f"Feature coverage, page {result.page} ({result.total} features)")
    for feature in result.items:
        percent = ratio_to_percent(effective_ratio(feature))
        label = f"{percent}%" if percent is not None else "no cases"
        print(
            f"  {feature.feature_name:<40} {label:>8}  "
            f"{feature.executed_test_cases}/{feature.total_test_cases}"
        )


def report_open_runs(engine: QaEngine, project_id: str, page: int) -> None:
    result = engine.dashboard.open_runs(project_id, page=page)
    print(f"Open runs, page {result.page} ({result.total} runs)")
    for run in result.items:
        title = run.feature_name or run.id
        print(
            f"  {title:<40} {run.environment or '-':<12} "
            f"{run.executed_cases}/{run.total_cases}  {_format_date(run.run_date)}"
        )


def report_test_health(engine: QaEngine, feature_id: str) -> None:
    report = engine.dashboard.feature_test_health(feature_id)
    rate = f"{report.pass_rate_percent}%" if report.pass_rate_percent is not None else "n/a"
    print(f"Test health for feature {report.feature_id}")
    print(f"  Pass rate: {rate}")
    print(f"  Last run:  {_format_date(report.last_run_date)}")
    print(f"  Flaky:     {report.flaky_count}")
    for point, percent in zip(report.trend, report.trend_percent):
        label = f"{percent}%" if percent is not None else "n/a"
        print(f"    {_format_date(point.date)}  {point.run_id:<20} {label:>5}")


def build_parser():
    parser = create_base_parser("QA run and dashboard reports")
    sub = parser.add_subparsers(dest='command', required=True)

    run_parser = sub.add_parser('run', help='Coverage and missing cases of one run')
    run_parser.add_argument('run_id')

    health_parser = sub.add_parser('health', help='Feature health summary of a project')
    health_parser.add_argument('project_id')

    coverage_parser = sub.add_parser('coverage', help='Feature coverage ranking')
    coverage_parser.add_argument('project_id')
    coverage_parser.add_argument('--sort', choices=['asc', 'desc'], default='desc')
    coverage_parser.add_argument('--page', type=int, default=1)

    open_parser = sub.add_parser('open-runs', help='Open runs of a project')
    open_parser.add_argument('project_id')
    open_parser.add_argument('--page', type=int, default=1)

    health_trend_parser = sub.add_parser('test-health', help='Pass rate history of one feature')
    health_trend_parser.add_argument('feature_id')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    engine = create_engine(load_engine_config(args.config))

    try:
        if args.command == 'run':
            report_run(engine, args.run_id)
        elif args.command == 'health':
            report_health(engine, args.project_id)
        elif args.command == 'coverage':
            report_coverage(engine, args.project_id, SortDirection(args.sort), args.page)
        elif args.command == 'open-runs':
            report_open_runs(engine, args.project_id, args.page)
        elif args.command == 'test-health':
            report_test_health(engine, args.feature_id)
    except REPORT_ERRORS as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
