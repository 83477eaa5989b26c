"""
Control flow interpretation of steps.

Each step is classified by the first matching entry of DISPATCH_ORDER and
executed accordingly. Loops and satisfied conditions re-enter the
interpreter for the same step with the handled kinds excluded, so the step
itself is never modified.
"""

import logging
import time
from dataclasses import replace
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Tuple

from stepwise.actions.registry import ActionRegistry
from stepwise.errors import ErrorBuilder, SafeFormatter
from stepwise.exceptions import ConditionError
from stepwise.exec.step_executor import StepExecutor
from stepwise.results import ActionResult, ActionStatus, ErrorCategory, LoopContext, StepResult
from stepwise.types import Step
from stepwise.variables.store import VariableStore
from .conditions import ConditionEvaluator
from .loops import DEFAULT_MAX_WHILE_ITERATIONS, LoopExecutor


logger = logging.getLogger(__name__)


class StepKind(str, Enum):
    """How a step is executed."""
    FOR_LOOP = "for"
    WHILE_LOOP = "while"
    CONDITIONAL = "if"
    GROUP = "group"
    RETRY = "retry"
    ACTION = "action"
    INVALID = "invalid"


# Most specific first. The first predicate that holds decides the kind.
DISPATCH_ORDER: Tuple[Tuple[StepKind, Callable[[Step], bool]], ...] = (
    (StepKind.FOR_LOOP, lambda step: bool(step.for_spec)),
    (StepKind.WHILE_LOOP, lambda step: bool(step.while_condition)),
    (StepKind.CONDITIONAL, lambda step: bool(step.if_condition)),
    (StepKind.GROUP, lambda step: bool(step.steps)),
    (StepKind.RETRY, lambda step: bool(step.action) and step.retry is not None),
    (StepKind.ACTION, lambda step: bool(step.action)),
)

# Kinds already applied by a loop when it runs the body of an iteration
LOOP_HANDLED = frozenset({StepKind.FOR_LOOP, StepKind.WHILE_LOOP, StepKind.CONDITIONAL})

FAILING_STATUSES = (ActionStatus.FAILED, ActionStatus.ERROR)


def classify(step: Step, handled: FrozenSet[StepKind] = frozenset()) -> StepKind:
    """
    Classify a step.

    Args:
        step: Step to classify
        handled: Kinds already applied on the current path

    Returns:
        The first kind in DISPATCH_ORDER not yet handled whose predicate holds
    """
    for kind, predicate in DISPATCH_ORDER:
        if kind not in handled and predicate(step):
            return kind
    return StepKind.INVALID


class ControlFlowExecutor:
    """
    Executes steps with conditionals, loops, groups and retries.

    All execution is sequential and shares one variable store. Expected
    failures are reported through StepResults; nothing here raises for them.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        variables: VariableStore,
        formatter: Optional[SafeFormatter] = None,
        max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the interpreter.

        Args:
            registry: Actions available to steps
            variables: Live variable store of the run
            formatter: Message template table for error results
            max_while_iterations: Cap on `while` iterations
            sleep: Blocking sleep used between retry attempts
        """
        self.registry = registry
        self.variables = variables
        self.formatter = formatter or SafeFormatter()
        self.evaluator = ConditionEvaluator(variables)
        self.loops = LoopExecutor(variables, self.formatter, max_while_iterations)
        self.step_executor = StepExecutor(registry, variables, self.formatter, sleep=sleep)

    def execute(
        self,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext] = None,
        handled: FrozenSet[StepKind] = frozenset()
    ) -> List[StepResult]:
        """
        Execute a step and everything it contains.

        Args:
            step: Step to execute
            step_number: 1-based position within its phase or group
            loop_context: Current loop iteration, if any
            handled: Kinds already applied to this step on the current path

        Returns:
            Result rows produced by the step, in execution order. An ERROR
            status in any row means the step failed technically.
        """
        kind = classify(step, handled)
        logger.debug(f"Step '{step.name}' dispatched as {kind.value}")

        if kind == StepKind.FOR_LOOP:
            return self.loops.execute_for(step, step_number, self._loop_body(handled))
        if kind == StepKind.WHILE_LOOP:
            return self.loops.execute_while(step, step_number, self._loop_body(handled))
        if kind == StepKind.CONDITIONAL:
            return self._execute_conditional(step, step_number, loop_context, handled)
        if kind == StepKind.GROUP:
            return [self._execute_group(step, loop_context)]
        if kind == StepKind.RETRY:
            return [self.step_executor.execute_with_retry(step, step_number, loop_context)]
        if kind == StepKind.ACTION:
            return [self.step_executor.execute(step, step_number, loop_context)]

        info = (
            self._error(ErrorCategory.VALIDATION, 'INVALID_STEP', step, step_number, loop_context)
            .build(step.name)
        )
        return [self._row(step.name, step, ActionResult.from_error(info))]

    def _loop_body(self, handled: FrozenSet[StepKind]):
        def body(step: Step, step_number: int, context: LoopContext) -> List[StepResult]:
            return self.execute(step, step_number, context, handled | LOOP_HANDLED)
        return body

    def _execute_conditional(
        self,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext],
        handled: FrozenSet[StepKind]
    ) -> List[StepResult]:
        try:
            satisfied = self.evaluator.evaluate(step.if_condition)
        except ConditionError as e:
            builder = (
                self._error(ErrorCategory.EXECUTION, 'IF_CONDITION_FAILED', step, step_number, loop_context)
                .with_context('condition', step.if_condition)
            )
            return [self._row(step.name, step, builder.result(str(e)))]

        if not satisfied:
            logger.info(f"Skipping step '{step.name}': if condition is false")
            skipped = ActionResult.skipped(f"Skipped due to if condition: {step.if_condition}")
            return [self._row(step.name, step, skipped)]

        return self.execute(step, step_number, loop_context, handled | {StepKind.CONDITIONAL})

    def _execute_group(self, step: Step, loop_context: Optional[LoopContext]) -> StepResult:
        """
        Execute child steps in order.

        A failing child stops the group unless it sets `continue`. The
        aggregate row carries the first failing child's result, or passed.
        """
        ignored = [
            key for key, value in (('retry', step.retry), ('extract', step.extract), ('result', step.result))
            if value
        ]
        if ignored:
            logger.warning(
                f"Step group '{step.name}' ignores {', '.join(ignored)}; these apply to action steps only"
            )
        start = time.monotonic()
        children: List[StepResult] = []
        first_failure: Optional[StepResult] = None

        for index, child in enumerate(step.steps, start=1):
            rows = self.execute(child, index, loop_context)
            children.extend(row.renamed(f"{step.name} -> {row.name}") for row in rows)

            failing = next((row for row in rows if row.status in FAILING_STATUSES), None)
            if failing is None:
                continue
            if first_failure is None:
                first_failure = failing
            if not child.continue_on_failure:
                logger.warning(f"Group '{step.name}' stopped at child '{child.name}' ({failing.status.value})")
                break
            logger.info(f"Group '{step.name}' continuing after child '{child.name}' ({failing.status.value})")

        result = replace(first_failure.result) if first_failure is not None else ActionResult.passed()
        return StepResult(
            name=step.name,
            action='nested_steps',
            duration=time.monotonic() - start,
            result=result,
            steps=children,
        )

    def _error(
        self,
        category: ErrorCategory,
        code: str,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext]
    ) -> ErrorBuilder:
        builder = (
            ErrorBuilder(category, code, self.formatter)
            .with_context('step_number', step_number)
            .with_context('step_name', step.name)
        )
        if loop_context is not None:
            builder.with_context('loop_context', loop_context.to_dict())
        return builder

    def _row(self, name: str, step: Step, result: ActionResult) -> StepResult:
        return StepResult(
            name=name,
            action=step.action or 'nested_steps',
            duration=0.0,
            result=result,
        )
