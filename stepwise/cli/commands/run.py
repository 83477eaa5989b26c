"""Run command implementation."""

import json
import logging
import signal
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, List

from stepwise.exceptions import TestCaseValidationError
from stepwise.loader import TestCaseLoader
from stepwise.results import TestResult
from stepwise.types import TestCase
from stepwise.workflow.runner import TestRunner


logger = logging.getLogger(__name__)


class ShutdownListener:
    """
    Turns SIGINT/SIGTERM into an orderly stop between test cases.

    The first signal lets the running test case finish and skips the rest;
    a second signal interrupts immediately.
    """

    def __init__(self):
        self.requested = False
        self._previous: Dict[int, Any] = {}

    def install(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous[signum] = signal.signal(signum, self._handle)

    def uninstall(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def _handle(self, signum, frame):
        if self.requested:
            raise KeyboardInterrupt
        self.requested = True
        logger.warning(f"Received signal {signum}; stopping after the current test case")


def parse_variables(args: Namespace) -> Dict[str, str]:
    """Parse --var KEY=VALUE overrides."""
    variables = {}
    for item in args.var or []:
        if '=' not in item:
            raise ValueError(f"Invalid variable format: {item}. Expected KEY=VALUE")
        key, value = item.split('=', 1)
        variables[key] = value
    return variables


def write_report(results: List[TestResult], output: Path) -> None:
    report = {
        'passed': all(result.passed for result in results),
        'tests': [result.to_dict() for result in results],
    }
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Wrote report to {output}")


def _log_summary(result: TestResult) -> None:
    rows = result.setup_steps + result.steps + result.teardown_steps
    for row in rows:
        logger.info(f"  [{row.status.value:>7}] {row.name} ({row.duration:.3f}s)")
    if result.error_info is not None:
        logger.error(f"  {result.error_info.code}: {result.error_info.message}")
        for suggestion in result.error_info.suggestions:
            logger.info(f"    suggestion: {suggestion}")


def run_tests(args: Namespace) -> int:
    """
    Load and run test case files.

    Returns:
        0 if every test passed, 1 if any failed or errored, 2 on validation
        errors, 130 when interrupted
    """
    log_level = getattr(logging, args.log_level.upper())
    if args.debug or args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        overrides = parse_variables(args)

        loader = TestCaseLoader()
        test_cases: List[TestCase] = []
        for path in args.tests:
            test_path = Path(path).resolve()
            if not test_path.exists():
                logger.error(f"Test file not found: {test_path}")
                return 1
            logger.info(f"Loading test case: {test_path}")
            try:
                test_cases.append(loader.load(test_path))
            except TestCaseValidationError as e:
                for error in e.errors:
                    location = f" ({error.path})" if error.path else ""
                    logger.error(f"{test_path}: {error.message}{location}")
                return e.exit_code

        if args.dry_run:
            logger.info(f"[DRY RUN] {len(test_cases)} test case(s) validated successfully")
            return 0

        runner = TestRunner(max_while_iterations=args.max_while_iterations)
        listener = ShutdownListener()
        listener.install()
        results: List[TestResult] = []
        try:
            for test_case in test_cases:
                if listener.requested:
                    logger.warning(f"Skipping test case '{test_case.name}' after shutdown request")
                    continue
                result = runner.run(test_case, overrides)
                _log_summary(result)
                results.append(result)
        finally:
            listener.uninstall()

        if args.output:
            write_report(results, Path(args.output))

        if listener.requested:
            return 130
        return 0 if all(result.passed for result in results) else 1

    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1
