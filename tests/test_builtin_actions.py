"""
Tests for the built-in actions and the action registry.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from stepwise.actions.builtin import assert_action, log_action, sleep_action, variable_action
from stepwise.actions.registry import ActionRegistry
from stepwise.durations import parse_duration
from stepwise.errors import SafeFormatter
from stepwise.results import ActionResult, ActionStatus
from stepwise.variables.store import VariableStore


class TestAssertAction:

    def setup_method(self):
        self.variables = VariableStore()

    @pytest.mark.parametrize("args", [
        [200, '==', 200],
        ['200', '==', 200],
        [10, '>', 9],
        ['abc', '!=', 'abd'],
        ['hello world', 'contains', 'world'],
        ['hello', 'not_contains', 'x'],
        ['order-123', 'matches', r'order-\d+'],
        [True, '==', 'true'],
    ])
    def test_passing(self, args):
        result = assert_action(args, {}, self.variables)
        assert result.status == ActionStatus.PASSED

    def test_failure_carries_expected_and_actual(self):
        result = assert_action([500, '==', 200], {}, self.variables)

        assert result.status == ActionStatus.FAILED
        info = result.failure_info
        assert info.code == 'ASSERTION_FAILED'
        assert info.message == "assertion failed: 500 == 200"
        assert (info.expected, info.actual, info.comparison) == (200, 500, '==')

    def test_custom_message(self):
        result = assert_action([1, '==', 2, "status should be %d"], {}, self.variables)
        assert result.failure_info.message == "status should be %d"

    def test_missing_arguments(self):
        result = assert_action([1, '=='], {}, self.variables)
        assert result.status == ActionStatus.ERROR
        assert result.error_info.code == 'INVALID_ARGUMENTS'

    def test_unknown_operator(self):
        result = assert_action([1, '~=', 1], {}, self.variables)
        assert result.status == ActionStatus.ERROR

    def test_invalid_pattern(self):
        result = assert_action(['a', 'matches', '('], {}, self.variables)
        assert result.status == ActionStatus.ERROR


class TestOtherBuiltins:

    def setup_method(self):
        self.variables = VariableStore({'user': {'name': 'ann'}})

    def test_log_joins_arguments(self, caplog):
        with caplog.at_level(logging.WARNING, logger='stepwise.actions.builtin'):
            result = log_action(['count', 3, True], {'level': 'warning'}, self.variables)
        assert result.data == 'count 3 true'
        assert 'count 3 true' in caplog.text

    @patch('stepwise.actions.builtin.time.sleep')
    def test_sleep(self, mock_sleep):
        result = sleep_action(['250ms'], {}, self.variables)
        assert result.status == ActionStatus.PASSED
        mock_sleep.assert_called_once()
        assert mock_sleep.call_args[0][0] == pytest.approx(0.25)

    def test_sleep_invalid_duration(self):
        result = sleep_action(['soon'], {}, self.variables)
        assert result.status == ActionStatus.ERROR

    def test_variable_set_get_unset(self):
        assert variable_action(['set', 'token', 'abc'], {}, self.variables).status == ActionStatus.PASSED
        assert variable_action(['get', 'token'], {}, self.variables).data == 'abc'
        assert variable_action(['get', 'user.name'], {}, self.variables).data == 'ann'
        variable_action(['unset', 'token'], {}, self.variables)
        assert 'token' not in self.variables

    def test_variable_get_missing(self):
        result = variable_action(['get', 'nope'], {}, self.variables)
        assert result.status == ActionStatus.ERROR
        assert result.error_info.code == 'VARIABLE_NOT_FOUND'
        assert result.error_info.context['available_variables'] == ['user']


class TestDurations:

    @pytest.mark.parametrize("value,expected", [
        (None, 0.0),
        ("0", 0.0),
        ("", 0.0),
        ("1s", 1.0),
        ("500ms", 0.5),
        ("1m30s", 90.0),
        ("1.5h", 5400.0),
        ("2", 2.0),
        (3, 3.0),
    ])
    def test_parse(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["-1s", "soon", "1x", -1, True, "1s garbage"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)


class TestActionRegistry:

    def setup_method(self):
        self.registry = ActionRegistry()

    def test_builtins_available(self):
        assert self.registry.list_actions() == ['assert', 'log', 'sleep', 'variable']
        assert self.registry.exists('log')

    def test_register_and_override(self):
        custom_log = MagicMock(return_value=ActionResult.passed())
        self.registry.register('log', custom_log)
        self.registry.register('http', MagicMock())

        assert self.registry.get('log') is custom_log
        assert 'http' in self.registry.list_actions()

    def test_unknown_action(self):
        assert self.registry.get('nope') is None
        assert not self.registry.exists('nope')

    def test_register_validation(self):
        with pytest.raises(ValueError):
            self.registry.register('', MagicMock())
        with pytest.raises(ValueError):
            self.registry.register('broken', "not callable")

    def test_builtins_use_given_formatter(self):
        formatter = SafeFormatter({'ASSERTION_FAILED': "check failed: %s %s %s"})

        bound = self.registry.get('assert', formatter)
        result = bound([1, '==', 2], {}, VariableStore())

        assert result.failure_info.message == "check failed: 1 == 2"
        assert self.registry.get('assert')([1, '==', 2], {}, VariableStore()).failure_info.message \
            == "assertion failed: 1 == 2"

    def test_registered_actions_are_not_bound(self):
        custom = MagicMock(return_value=ActionResult.passed())
        self.registry.register('custom', custom)
        assert self.registry.get('custom', SafeFormatter()) is custom
