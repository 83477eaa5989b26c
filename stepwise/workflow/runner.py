"""
Test case runner: setup, main steps and teardown.
"""

import logging
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence

from stepwise.actions.registry import ActionRegistry
from stepwise.errors import ErrorBuilder, SafeFormatter
from stepwise.results import (
    ActionStatus,
    ErrorCategory,
    ErrorInfo,
    StepResult,
    TestResult,
    most_severe,
)
from stepwise.types import Step, TestCase
from stepwise.variables.store import VariableStore
from .executor import FAILING_STATUSES, ControlFlowExecutor
from .loops import DEFAULT_MAX_WHILE_ITERATIONS


logger = logging.getLogger(__name__)


def first_failing(rows: List[StepResult]) -> Optional[StepResult]:
    for row in rows:
        if row.status in FAILING_STATUSES:
            return row
    return None


def error_info_of(row: StepResult) -> Optional[ErrorInfo]:
    """ErrorInfo for a failing row, converting a FailureInfo when needed."""
    if row.result.error_info is not None:
        return row.result.error_info
    if row.result.failure_info is not None:
        return row.result.failure_info.to_error_info()
    return None


class TestRunner:
    """
    Runs test cases.

    Every run gets a fresh variable store seeded from the test case
    variables and any overrides. Setup failures are logged as warnings
    unless the failing setup step is marked critical, in which case the main
    steps are skipped and the test errors. Teardown always runs and never
    changes the outcome.
    """

    __test__ = False

    def __init__(
        self,
        registry: Optional[ActionRegistry] = None,
        formatter: Optional[SafeFormatter] = None,
        max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.registry = registry or ActionRegistry()
        self.formatter = formatter or SafeFormatter()
        self.max_while_iterations = max_while_iterations
        self.sleep = sleep

    def run(
        self,
        test_case: TestCase,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> TestResult:
        """
        Run one test case.

        Args:
            test_case: Parsed test case
            overrides: Variables applied after the declared ones

        Returns:
            TestResult whose status is the most severe main-step outcome
        """
        start = time.monotonic()
        variables = VariableStore()
        variables.load(test_case.variables)
        if overrides:
            variables.load(overrides)

        executor = ControlFlowExecutor(
            self.registry,
            variables,
            formatter=self.formatter,
            max_while_iterations=self.max_while_iterations,
            sleep=self.sleep
        )
        result = TestResult(name=test_case.name)
        logger.info(f"Running test case: {test_case.name}")

        critical_failure = self._run_setup(executor, test_case.setup, result)
        if critical_failure is not None:
            result.status = ActionStatus.ERROR
            result.error_info = critical_failure
        else:
            self._run_main(executor, test_case.steps, result)

        self._run_teardown(executor, test_case.teardown, result)

        result.duration = time.monotonic() - start
        logger.info(f"Test case '{test_case.name}' finished: {result.status.value} ({result.duration:.3f}s)")
        return result

    def _run_setup(
        self,
        executor: ControlFlowExecutor,
        steps: Sequence[Step],
        result: TestResult
    ) -> Optional[ErrorInfo]:
        """Run setup steps; return the error of a failed critical step."""
        for number, step in enumerate(steps, start=1):
            rows = executor.execute(step, number)
            result.setup_steps.extend(rows)

            failing = first_failing(rows)
            if failing is None:
                continue
            if step.critical:
                logger.error(f"Critical setup step '{step.name}' {failing.status.value}; skipping test steps")
                return (
                    ErrorBuilder(ErrorCategory.EXECUTION, 'CRITICAL_SETUP_FAILED', self.formatter)
                    .with_context('step_name', step.name)
                    .with_context('status', failing.status.value)
                    .build(step.name, failing.result.message())
                )
            logger.warning(f"Setup step '{step.name}' {failing.status.value}: {failing.result.message()}")
        return None

    def _run_main(self, executor: ControlFlowExecutor, steps: Sequence[Step], result: TestResult) -> None:
        for number, step in enumerate(steps, start=1):
            rows = executor.execute(step, number)
            result.steps.extend(rows)

            failing = first_failing(rows)
            if failing is None:
                continue
            if result.error_info is None:
                result.error_info = error_info_of(failing)
            if not step.continue_on_failure:
                logger.info(f"Stopping test case after step '{step.name}' ({failing.status.value})")
                break

        result.status = most_severe([row.status for row in result.steps])

    def _run_teardown(self, executor: ControlFlowExecutor, steps: Sequence[Step], result: TestResult) -> None:
        for number, step in enumerate(steps, start=1):
            rows = executor.execute(step, number)
            result.teardown_steps.extend(rows)
            failing = first_failing(rows)
            if failing is not None:
                logger.warning(f"Teardown step '{step.name}' {failing.status.value}: {failing.result.message()}")
