"""
Retry policy and executor for single-action steps.

Delays are applied before every attempt after the first and block the
calling thread.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from stepwise.exceptions import ConditionError
from stepwise.results import ActionResult, ActionStatus
from stepwise.types import RetryConfig
from stepwise.variables.store import VariableStore
from stepwise.workflow.conditions import ConditionEvaluator


logger = logging.getLogger(__name__)


# Message keywords that qualify an error for each retry_on tag
RETRY_ON_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'http_error': ('http',),
    'timeout': ('timeout',),
    'connection_error': ('connection', 'dial', 'network'),
    'assertion_failed': ('assertion',),
}

ERROR_VARIABLES = ('_has_error', '_error_category', '_error_code', '_error_message', '_status_code')


@dataclass
class RetryPolicy:
    """
    Decides delays and whether another attempt is made.

    Attributes:
        config: Retry settings from the step
        delay_seconds: Base delay resolved from the config
    """
    config: RetryConfig
    delay_seconds: float = 0.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> 'RetryPolicy':
        """
        Raises:
            ValueError: If the configured delay is not a valid duration
        """
        return cls(config=config, delay_seconds=config.delay_seconds)

    def calculate_delay(self, attempt_index: int) -> float:
        """
        Delay before a retry.

        Args:
            attempt_index: 0 for the wait before the second attempt, 1 before
                the third and so on

        Returns:
            Seconds to wait
        """
        backoff = self.config.backoff
        if backoff == 'linear':
            return self.delay_seconds * (attempt_index + 1)
        if backoff == 'exponential':
            return self.delay_seconds * (2 ** attempt_index)
        return self.delay_seconds

    def should_retry(self, result: ActionResult, variables: VariableStore) -> bool:
        """
        Decide whether another attempt should be made after this result.

        Checks run in order: success with stop_on_success, retry_if, then
        retry_on, then the default of retrying anything that did not pass.
        The remaining attempt budget is the caller's concern.
        """
        passed = result.status == ActionStatus.PASSED
        if passed and self.config.stop_on_success:
            return False

        if self.config.retry_if:
            decision = self._evaluate_retry_if(result, variables)
            if decision is not None:
                return decision

        if self.config.retry_on:
            if passed:
                return False
            return self.matches_retry_on(result)

        return not passed or not self.config.stop_on_success

    def matches_retry_on(self, result: ActionResult) -> bool:
        message = result.message().lower()
        for tag in self.config.retry_on:
            if tag == 'all':
                return True
            if any(keyword in message for keyword in RETRY_ON_KEYWORDS.get(tag, ())):
                return True
        return False

    def _evaluate_retry_if(self, result: ActionResult, variables: VariableStore) -> Optional[bool]:
        """Evaluate retry_if in a sandboxed copy of the variables."""
        sandbox = variables.clone()
        for name, value in error_variables(result).items():
            sandbox.set(name, value)
        try:
            return ConditionEvaluator(sandbox).evaluate(self.config.retry_if)
        except ConditionError as e:
            logger.warning(f"retry_if evaluation failed, using default retry policy: {e}")
            return None


def error_variables(result: ActionResult) -> Dict[str, str]:
    """Outcome variables exposed to retry_if conditions."""
    values = {name: "" for name in ERROR_VARIABLES}
    values['_has_error'] = 'false'

    if result.error_info is not None:
        values['_has_error'] = 'true'
        values['_error_category'] = result.error_info.category.value
        values['_error_code'] = result.error_info.code
        values['_error_message'] = result.error_info.message
    elif result.failure_info is not None:
        values['_has_error'] = 'true'
        values['_error_category'] = result.failure_info.category.value
        values['_error_code'] = result.failure_info.code
        values['_error_message'] = result.failure_info.message

    if isinstance(result.data, dict) and 'status_code' in result.data:
        values['_status_code'] = str(result.data['status_code'])
    return values


class RetryExecutor:
    """Runs an attempt function under a retry policy."""

    def __init__(
        self,
        variables: VariableStore,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.variables = variables
        self.sleep = sleep

    def execute(
        self,
        policy: RetryPolicy,
        attempt: Callable[[], ActionResult],
        step_name: str = ""
    ) -> Tuple[ActionResult, int]:
        """
        Run attempts until the policy stops or the budget is spent.

        Args:
            policy: Retry policy for the step
            attempt: Executes the step once
            step_name: Used in log messages

        Returns:
            (result of the last attempt, number of attempts made)
        """
        attempts = policy.config.attempts
        result = attempt()
        made = 1

        while made < attempts and policy.should_retry(result, self.variables):
            delay = policy.calculate_delay(made - 1)
            logger.info(
                f"[Retry] Step '{step_name}' attempt {made}/{attempts} ended {result.status.value}, "
                f"retrying in {delay:g}s"
            )
            if delay > 0:
                self.sleep(delay)
            made += 1
            result = attempt()

        if made > 1:
            logger.info(f"[Retry] Step '{step_name}' finished after {made} attempt(s): {result.status.value}")
        return result, made
