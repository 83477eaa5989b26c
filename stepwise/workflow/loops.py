"""
`for` and `while` loop execution.

`for` accepts "start..end" (inclusive), "[a, b, c]" and a bare count "n"
meaning 1..n. Each iteration binds `iteration` (1-based), `index` (0-based)
and `item`. `while` re-evaluates its condition before every iteration and is
capped at a maximum iteration count.
"""

import logging
from typing import Any, Callable, List, Optional

from stepwise.errors import ErrorBuilder, SafeFormatter
from stepwise.exceptions import ConditionError, LoopSpecError
from stepwise.results import ActionResult, ActionStatus, ErrorCategory, LoopContext, StepResult
from stepwise.types import Step
from stepwise.variables.store import VariableStore
from .conditions import ConditionEvaluator


logger = logging.getLogger(__name__)


DEFAULT_MAX_WHILE_ITERATIONS = 10000

# Executes the loop body for one iteration
LoopBody = Callable[[Step, int, LoopContext], List[StepResult]]


def parse_for_spec(spec: str) -> List[Any]:
    """
    Expand a `for` specification into its items.

    Args:
        spec: Substituted loop specification

    Returns:
        Integers for range and count forms, trimmed strings for arrays

    Raises:
        LoopSpecError: If the specification is malformed
    """
    text = spec.strip()

    if '..' in text:
        parts = text.split('..')
        if len(parts) != 2:
            raise LoopSpecError('INVALID_RANGE_FORMAT', f"invalid range format: {spec}", spec)
        try:
            start = int(parts[0].strip())
        except ValueError:
            raise LoopSpecError('INVALID_START_VALUE', f"invalid start value: {parts[0].strip()}", spec) from None
        try:
            end = int(parts[1].strip())
        except ValueError:
            raise LoopSpecError('INVALID_END_VALUE', f"invalid end value: {parts[1].strip()}", spec) from None
        return list(range(start, end + 1))

    if text.startswith('[') or text.endswith(']'):
        if not (text.startswith('[') and text.endswith(']')):
            raise LoopSpecError('INVALID_ARRAY_FORMAT', f"invalid array format: {spec}", spec)
        content = text[1:-1].strip()
        if not content:
            return []
        return [item.strip() for item in content.split(',')]

    try:
        count = int(text)
    except ValueError:
        raise LoopSpecError('INVALID_COUNT_FORMAT', f"invalid loop count: {spec}", spec) from None
    return list(range(1, count + 1))


class LoopExecutor:
    """Drives loop iterations and hands each one to a body callback."""

    def __init__(
        self,
        variables: VariableStore,
        formatter: Optional[SafeFormatter] = None,
        max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS
    ):
        self.variables = variables
        self.formatter = formatter or SafeFormatter()
        self.max_while_iterations = max_while_iterations
        self.evaluator = ConditionEvaluator(variables)

    def execute_for(self, step: Step, step_number: int, body: LoopBody) -> List[StepResult]:
        """
        Run a `for` loop.

        Iterations run in order. An iteration whose `if` is false is recorded
        as skipped and the loop continues; an error in an iteration or in its
        `if` stops the loop after recording that iteration.
        """
        spec = self.variables.substitute(step.for_spec or "")
        try:
            items = parse_for_spec(spec)
        except LoopSpecError as e:
            logger.error(f"Step '{step.name}': {e}")
            info = (
                self._error(ErrorCategory.VALIDATION, e.code, step, step_number)
                .with_template('INVALID_LOOP_SPEC')
                .with_context('loop_spec', spec)
                .build(spec, str(e))
            )
            return [self._row(step.name, step, ActionResult.from_error(info))]

        logger.info(f"Step '{step.name}': for loop over {len(items)} item(s)")
        results: List[StepResult] = []
        for index, item in enumerate(items):
            iteration = index + 1
            self.variables.set('iteration', iteration)
            self.variables.set('index', index)
            self.variables.set('item', item)

            condition = self.variables.substitute(step.if_condition) if step.if_condition else ""
            context = LoopContext(kind='for', iteration=iteration, index=index, item=item, condition=condition)
            if not self._run_iteration(step, step_number, context, body, results):
                break
        return results

    def execute_while(self, step: Step, step_number: int, body: LoopBody) -> List[StepResult]:
        """
        Run a `while` loop.

        The condition is substituted and evaluated before each iteration, so
        it sees variables changed by earlier iterations. Reaching the cap
        while the condition still holds is an error.
        """
        results: List[StepResult] = []
        iteration = 0
        while True:
            raw = step.while_condition or ""
            condition = self.variables.substitute(raw)
            try:
                keep_going = self.evaluator.evaluate(raw)
            except ConditionError as e:
                builder = (
                    self._error(ErrorCategory.EXECUTION, 'WHILE_CONDITION_FAILED', step, step_number)
                    .with_context('condition', condition)
                    .with_context('iteration', iteration + 1)
                )
                results.append(self._row(step.name, step, builder.result(str(e))))
                return results

            if not keep_going:
                break

            if iteration >= self.max_while_iterations:
                logger.error(
                    f"Step '{step.name}': while loop exceeded maximum iterations ({self.max_while_iterations})"
                )
                builder = (
                    self._error(ErrorCategory.EXECUTION, 'MAX_WHILE_ITERATIONS', step, step_number)
                    .with_context('condition', condition)
                    .with_context('max_iterations', self.max_while_iterations)
                    .with_suggestion("Make sure the loop body changes a variable the condition depends on")
                )
                results.append(self._row(step.name, step, builder.result(self.max_while_iterations)))
                return results

            iteration += 1
            self.variables.set('iteration', iteration)
            context = LoopContext(
                kind='while',
                iteration=iteration,
                condition=condition,
                max_iterations=self.max_while_iterations
            )
            if not self._run_iteration(step, step_number, context, body, results):
                return results

        logger.info(f"Step '{step.name}': while loop completed after {iteration} iteration(s)")
        return results

    def _run_iteration(
        self,
        step: Step,
        step_number: int,
        context: LoopContext,
        body: LoopBody,
        results: List[StepResult]
    ) -> bool:
        """Run one iteration, appending its rows. Returns False to stop the loop."""
        name = f"{step.name} (iteration {context.iteration})"

        if step.if_condition:
            try:
                satisfied = self.evaluator.evaluate(step.if_condition)
            except ConditionError as e:
                builder = (
                    self._error(ErrorCategory.EXECUTION, 'IF_CONDITION_FAILED', step, step_number, context)
                    .with_context('condition', context.condition)
                )
                results.append(self._row(name, step, builder.result(str(e))))
                return False
            if not satisfied:
                logger.info(f"Skipping {name}: if condition is false")
                skipped = ActionResult.skipped(f"Skipped due to if condition: {step.if_condition}")
                results.append(self._row(name, step, skipped))
                return True

        failed = False
        for row in body(step, step_number, context):
            results.append(row.renamed(f"{row.name} (iteration {context.iteration})"))
            if row.status == ActionStatus.ERROR:
                failed = True
        if failed:
            logger.warning(f"Stopping loop '{step.name}' after error in iteration {context.iteration}")
        return not failed

    def _error(
        self,
        category: ErrorCategory,
        code: str,
        step: Step,
        step_number: int,
        context: Optional[LoopContext] = None
    ) -> ErrorBuilder:
        builder = (
            ErrorBuilder(category, code, self.formatter)
            .with_context('step_number', step_number)
            .with_context('step_name', step.name)
        )
        if context is not None:
            builder.with_context('loop_context', context.to_dict())
        return builder

    def _row(self, name: str, step: Step, result: ActionResult) -> StepResult:
        return StepResult(
            name=name,
            action=step.action or 'nested_steps',
            duration=0.0,
            result=result,
        )
