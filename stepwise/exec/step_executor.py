"""
Single-action step execution.

Looks the action up, substitutes variables into its arguments and options,
invokes it, applies extraction and stores the result variable. Retry-wrapped
steps run the same path once per attempt.
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from stepwise.actions.registry import ActionRegistry
from stepwise.errors import ErrorBuilder, SafeFormatter
from stepwise.exceptions import ExtractionError, VariableResolutionError
from stepwise.results import ActionResult, ActionStatus, ErrorCategory, LoopContext, StepResult
from stepwise.types import Step
from stepwise.variables.access import find_similar
from stepwise.variables.store import VariableStore
from .extraction import Extractor
from .retry import RetryExecutor, RetryPolicy


logger = logging.getLogger(__name__)


class StepExecutor:
    """
    Executes steps that invoke one action.

    Every outcome, including unknown actions, unresolved variables and
    exceptions raised by actions, is returned as an ActionResult.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        variables: VariableStore,
        formatter: Optional[SafeFormatter] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the step executor.

        Args:
            registry: Actions available to steps
            variables: Live variable store of the run
            formatter: Message template table for error results
            sleep: Blocking sleep used between retry attempts
        """
        self.registry = registry
        self.variables = variables
        self.formatter = formatter or SafeFormatter()
        self.extractor = Extractor(registry, variables)
        self.retry_executor = RetryExecutor(variables, sleep=sleep)

    def execute(
        self,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext] = None
    ) -> StepResult:
        """
        Execute a single-action step once.

        Args:
            step: Step with an action
            step_number: 1-based position used in diagnostics
            loop_context: Current loop iteration, if any

        Returns:
            StepResult for the step
        """
        start = time.monotonic()
        result = self.execute_once(step, step_number, loop_context)
        return self._row(step, start, result)

    def execute_with_retry(
        self,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext] = None
    ) -> StepResult:
        """Execute a single-action step under its retry configuration."""
        start = time.monotonic()
        if step.retry is None:
            return self.execute(step, step_number, loop_context)

        try:
            policy = RetryPolicy.from_config(step.retry)
        except ValueError as e:
            result = (
                self._error(ErrorCategory.VALIDATION, 'INVALID_RETRY_DELAY', step, step_number, loop_context)
                .result(step.retry.delay, str(e))
            )
        else:
            result, _ = self.retry_executor.execute(
                policy,
                lambda: self.execute_once(step, step_number, loop_context),
                step_name=step.name
            )
        return self._row(step, start, result)

    def execute_once(
        self,
        step: Step,
        step_number: int,
        loop_context: Optional[LoopContext] = None
    ) -> ActionResult:
        """Run the step's action exactly once."""
        action_name = step.action or ""
        action = self.registry.get(action_name, self.formatter)
        if action is None:
            builder = self._error(ErrorCategory.VALIDATION, 'UNKNOWN_ACTION', step, step_number, loop_context)
            for similar in find_similar(action_name, self.registry.list_actions()):
                builder.with_suggestion(f"Did you mean '{similar}'?")
            return builder.result(action_name)

        try:
            args = self.variables.substitute_args(step.args, strict=True)
            options = self.variables.substitute_options(step.options, strict=True)
        except VariableResolutionError as e:
            context = e.context
            builder = (
                self._error(ErrorCategory.VARIABLE, 'UNRESOLVED_VARIABLE', step, step_number, loop_context)
                .with_context('variables', context.to_dict())
            )
            for suggestion in context.suggestions():
                builder.with_suggestion(suggestion)
            logger.debug(context.detailed_message())
            unresolved = ', '.join(f"${{{a.expression}}}" for a in context.unresolved())
            return builder.result(step.name, unresolved)

        logger.debug(f"Executing action '{action_name}' for step '{step.name}'")
        try:
            result = action(args, options, self.variables)
        except Exception as e:
            logger.error(f"Action '{action_name}' raised in step '{step.name}': {e}", exc_info=True)
            return (
                self._error(ErrorCategory.EXECUTION, 'ACTION_EXCEPTION', step, step_number, loop_context)
                .result(action_name, type(e).__name__, str(e))
            )

        if not isinstance(result, ActionResult):
            return (
                self._error(ErrorCategory.EXECUTION, 'INVALID_ACTION_RESULT', step, step_number, loop_context)
                .with_message("action %s returned %s instead of an ActionResult")
                .result(action_name, type(result).__name__)
            )

        data = result.data
        if step.extract is not None and result.status == ActionStatus.PASSED:
            try:
                data = self.extractor.extract(result.data, step.extract)
            except ExtractionError as e:
                return (
                    self._error(ErrorCategory.EXECUTION, e.code, step, step_number, loop_context)
                    .with_template('EXTRACTION_FAILED')
                    .with_context('extraction_type', step.extract.type)
                    .with_context('extraction_path', step.extract.path)
                    .with_context('error', e.message)
                    .result(e.message)
                )
            result = replace(result, data=data)

        if step.result and (result.status == ActionStatus.PASSED or data is not None):
            self.variables.set(step.result, data)
            logger.debug(f"Stored result of step '{step.name}' in '{step.result}'")

        return result

    def _row(self, step: Step, start: float, result: ActionResult) -> StepResult:
        return StepResult(
            name=step.name,
            action=step.action or "",
            duration=time.monotonic() - start,
            result=result
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
        if step.action:
            builder.with_context('action_name', step.action)
        if loop_context is not None:
            builder.with_context('loop_context', loop_context.to_dict())
        return builder
