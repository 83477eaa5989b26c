"""
Tests for retry policies and the retry executor.
"""

from unittest.mock import MagicMock

import pytest

from stepwise.errors import ErrorBuilder, FailureBuilder
from stepwise.exec.retry import RetryExecutor, RetryPolicy, error_variables
from stepwise.results import ActionResult, ActionStatus, ErrorCategory, FailureCategory
from stepwise.types import RetryConfig
from stepwise.variables.store import VariableStore


def error_result(message="connection refused", code='ACTION_ERROR'):
    return ErrorBuilder(ErrorCategory.EXECUTION, code).with_message(message).result()


def failed_result(message="assertion failed: 1 == 2"):
    return FailureBuilder(FailureCategory.ASSERTION, 'ASSERTION_FAILED').with_message(message).result()


def policy(**config):
    return RetryPolicy.from_config(RetryConfig.from_dict(config))


class TestRetryPolicy:

    @pytest.mark.parametrize("backoff,expected", [
        ('fixed', [1.0, 1.0, 1.0]),
        ('linear', [1.0, 2.0, 3.0]),
        ('exponential', [1.0, 2.0, 4.0]),
    ])
    def test_calculate_delay(self, backoff, expected):
        retry = policy(attempts=4, delay='1s', backoff=backoff)
        assert [retry.calculate_delay(i) for i in range(3)] == expected

    def test_invalid_delay(self):
        with pytest.raises(ValueError):
            RetryPolicy.from_config(RetryConfig(attempts=2, delay='soon'))

    def test_default_retries_anything_not_passed(self):
        retry = policy(attempts=3)
        variables = VariableStore()
        assert retry.should_retry(error_result(), variables) is True
        assert retry.should_retry(failed_result(), variables) is True
        assert retry.should_retry(ActionResult.passed(), variables) is False

    def test_retry_on_matches_keywords(self):
        retry = policy(attempts=3, retry_on=['timeout', 'connection_error'])
        variables = VariableStore()
        assert retry.should_retry(error_result("Read TIMEOUT after 5s"), variables) is True
        assert retry.should_retry(error_result("dial tcp: refused"), variables) is True
        assert retry.should_retry(error_result("bad request"), variables) is False

    def test_retry_on_all(self):
        retry = policy(attempts=3, retry_on=['all'])
        assert retry.should_retry(failed_result("anything"), VariableStore()) is True

    def test_retry_if_sees_error_variables(self):
        retry = policy(attempts=3, retry_if="${_error_code} == FLAKY")
        variables = VariableStore()
        assert retry.should_retry(error_result(code='FLAKY'), variables) is True
        assert retry.should_retry(error_result(code='FATAL'), variables) is False
        # Outcome variables stay out of the run's store
        assert '_error_code' not in variables

    def test_retry_if_takes_precedence_over_retry_on(self):
        retry = policy(attempts=3, retry_if="false", retry_on=['all'])
        assert retry.should_retry(error_result(), VariableStore()) is False

    def test_invalid_retry_if_falls_back_to_default(self):
        retry = policy(attempts=3, retry_if="no operator here")
        assert retry.should_retry(error_result(), VariableStore()) is True

    def test_stop_on_success_false_keeps_retrying(self):
        retry = policy(attempts=3, stop_on_success=False)
        assert retry.should_retry(ActionResult.passed(), VariableStore()) is True

    def test_error_variables(self):
        values = error_variables(ActionResult.passed(data={'status_code': 503}))
        assert values['_has_error'] == 'false'
        assert values['_status_code'] == '503'

        values = error_variables(failed_result("mismatch"))
        assert values['_has_error'] == 'true'
        assert values['_error_category'] == 'assertion'
        assert values['_error_message'] == 'mismatch'

    def test_error_variables_keep_failure_category(self):
        result = FailureBuilder(FailureCategory.DATA_MISMATCH, 'ROW_MISMATCH').with_message("rows differ").result()

        values = error_variables(result)

        assert values['_error_category'] == 'data_mismatch'
        assert values['_error_code'] == 'ROW_MISMATCH'


class TestRetryExecutor:

    def setup_method(self):
        self.sleep = MagicMock()
        self.variables = VariableStore()
        self.executor = RetryExecutor(self.variables, sleep=self.sleep)

    def test_exponential_waits_between_attempts(self):
        attempt = MagicMock(return_value=error_result())

        result, made = self.executor.execute(policy(attempts=3, delay='1s', backoff='exponential'), attempt)

        assert made == 3
        assert result.status == ActionStatus.ERROR
        assert [c.args[0] for c in self.sleep.call_args_list] == [1.0, 2.0]

    def test_stops_on_first_success(self):
        attempt = MagicMock(side_effect=[error_result(), ActionResult.passed(data='ok'), error_result()])

        result, made = self.executor.execute(policy(attempts=5, delay='10ms'), attempt)

        assert made == 2
        assert result.data == 'ok'
        assert attempt.call_count == 2

    def test_single_attempt_never_sleeps(self):
        attempt = MagicMock(return_value=error_result())

        _, made = self.executor.execute(policy(attempts=1, delay='1s'), attempt)

        assert made == 1
        self.sleep.assert_not_called()

    def test_retry_if_false_stops_immediately(self):
        attempt = MagicMock(return_value=error_result())

        _, made = self.executor.execute(policy(attempts=4, retry_if="false"), attempt)

        assert made == 1

    def test_retry_if_matches_failure_category(self):
        mismatch = FailureBuilder(FailureCategory.DATA_MISMATCH, 'ROW_MISMATCH').with_message("rows differ").result()
        attempt = MagicMock(return_value=mismatch)

        result, made = self.executor.execute(
            policy(attempts=3, retry_if="${_error_category} == data_mismatch"), attempt
        )

        assert made == 3
        assert result.failure_info.category == FailureCategory.DATA_MISMATCH

    def test_non_matching_retry_on_stops(self):
        attempt = MagicMock(return_value=error_result("invalid payload"))

        _, made = self.executor.execute(policy(attempts=4, retry_on=['timeout']), attempt)

        assert made == 1

    def test_budget_spent_without_success_on_passes(self):
        attempt = MagicMock(return_value=ActionResult.passed())

        result, made = self.executor.execute(policy(attempts=3, stop_on_success=False), attempt)

        assert made == 3
        assert result.status == ActionStatus.PASSED

    def test_zero_delay_does_not_sleep(self):
        attempt = MagicMock(return_value=error_result())

        self.executor.execute(policy(attempts=3), attempt)

        self.sleep.assert_not_called()
