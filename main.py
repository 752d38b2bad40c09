from __future__ import annotations

import argparse
import logging
import sys

from api_method_framework.config_loader import SpecValidationError, load_engine_spec
from api_method_framework.errors import ApiMethodError
from api_method_framework.reporter import Reporter
from api_method_framework.suite import SuiteRunner


def run(spec_path: str, report_file: str | None = None, use_color: bool = True) -> int:
    try:
        spec = load_engine_spec(spec_path)
    except SpecValidationError as exc:
        print(f"Spec validation failed: {exc}")
        return 2

    reporter = Reporter(use_color=use_color)
    if not spec.suite:
        reporter.add_custom("setup", "suite_present", False, "Spec declares no suite steps")
        reporter.print()
        return 1

    try:
        runner = SuiteRunner(spec)
    except ApiMethodError as exc:
        print(f"Suite setup failed: {exc}")
        return 2

    for result in runner.run():
        reporter.add_step(result)

    reporter.print()
    if report_file:
        reporter.write(report_file)

    return 1 if reporter.has_failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Template-driven API method test runner")
    parser.add_argument("spec", help="Path to YAML engine spec")
    parser.add_argument("--report-file", help="Optional output path for plain-text report")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--no-color", action="store_true", help="Disable coloured PASS/FAIL markers")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    exit_code = run(args.spec, report_file=args.report_file, use_color=not args.no_color)
    sys.exit(exit_code)
