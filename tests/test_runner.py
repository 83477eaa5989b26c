"""
Tests for test case execution across setup, main and teardown phases.
"""

from unittest.mock import MagicMock

from stepwise.actions.registry import ActionRegistry
from stepwise.errors import SafeFormatter
from stepwise.results import ActionResult, ActionStatus, ErrorCategory
from stepwise.types import TestCase
from stepwise.workflow.runner import TestRunner


def make_test_case(**data):
    document = {'testcase': 'sample', 'steps': [{'name': 'noop', 'action': 'log', 'args': ['hi']}]}
    document.update(data)
    return TestCase.from_dict(document)


def passing(name):
    return {'name': name, 'action': 'assert', 'args': [1, '==', 1]}


def failing(name, **extra):
    step = {'name': name, 'action': 'assert', 'args': [1, '==', 2]}
    step.update(extra)
    return step


class TestRunnerPhases:

    def setup_method(self):
        self.registry = ActionRegistry()
        self.cleanup = MagicMock(return_value=ActionResult.passed())
        self.registry.register('cleanup', self.cleanup)
        self.runner = TestRunner(self.registry, sleep=MagicMock())

    def test_passing_test_case(self):
        result = self.runner.run(make_test_case(
            variables={'vars': {'expected': 3}},
            steps=[{'name': 'check', 'action': 'assert', 'args': ['${expected}', '==', 3]}],
        ))

        assert result.passed
        assert result.status == ActionStatus.PASSED
        assert result.error_info is None
        assert result.duration >= 0

    def test_overrides_replace_declared_variables(self):
        case = make_test_case(
            variables={'vars': {'expected': 3}},
            steps=[{'name': 'check', 'action': 'assert', 'args': ['${expected}', '==', 4]}],
        )

        assert self.runner.run(case, {'expected': '4'}).passed
        assert not self.runner.run(case).passed

    def test_each_run_gets_a_fresh_store(self):
        writer = make_test_case(steps=[{'name': 'set', 'action': 'variable', 'args': ['set', 'leak', 'yes']}])
        reader = make_test_case(steps=[{'name': 'get', 'action': 'variable', 'args': ['get', 'leak']}])

        assert self.runner.run(writer).passed
        assert self.runner.run(reader).status == ActionStatus.ERROR

    def test_main_stops_at_first_failure(self):
        result = self.runner.run(make_test_case(steps=[passing('a'), failing('b'), passing('c')]))

        assert result.status == ActionStatus.FAILED
        assert [row.name for row in result.steps] == ['a', 'b']
        assert result.error_info.code == 'ASSERTION_FAILED'
        assert result.error_info.category == ErrorCategory.ASSERTION

    def test_continue_keeps_first_error(self):
        result = self.runner.run(make_test_case(steps=[
            failing('b', **{'continue': True}),
            {'name': 'broken', 'action': 'nope', 'continue': True},
            passing('c'),
        ]))

        assert [row.name for row in result.steps] == ['b', 'broken', 'c']
        assert result.status == ActionStatus.ERROR
        assert result.error_info.code == 'ASSERTION_FAILED'

    def test_skipped_steps_do_not_fail(self):
        result = self.runner.run(make_test_case(steps=[
            {'name': 'skip me', 'action': 'nope', 'if': 'false'},
            passing('a'),
        ]))

        assert result.passed
        assert result.steps[0].status == ActionStatus.SKIPPED

    def test_setup_failure_is_only_a_warning(self):
        result = self.runner.run(make_test_case(setup=[failing('prepare')], steps=[passing('main')]))

        assert result.passed
        assert result.setup_steps[0].status == ActionStatus.FAILED
        assert [row.name for row in result.steps] == ['main']

    def test_critical_setup_failure_skips_main(self):
        result = self.runner.run(make_test_case(
            setup=[failing('connect', critical=True), passing('never')],
            steps=[passing('main')],
            teardown=[{'name': 'clean', 'action': 'cleanup'}],
        ))

        assert result.status == ActionStatus.ERROR
        assert result.error_info.code == 'CRITICAL_SETUP_FAILED'
        assert result.error_info.message == "critical setup step connect did not pass: assertion failed: 1 == 2"
        assert [row.name for row in result.setup_steps] == ['connect']
        assert result.steps == []
        self.cleanup.assert_called_once()

    def test_teardown_runs_after_failure_and_never_changes_status(self):
        result = self.runner.run(make_test_case(
            steps=[passing('main')],
            teardown=[failing('verify cleanup'), {'name': 'clean', 'action': 'cleanup'}],
        ))

        assert result.passed
        assert [row.name for row in result.teardown_steps] == ['verify cleanup', 'clean']
        self.cleanup.assert_called_once()

    def test_to_dict_report(self):
        result = self.runner.run(make_test_case(steps=[{
            'name': 'grp', 'steps': [passing('inner')],
        }]))

        report = result.to_dict()
        assert report['name'] == 'sample'
        assert report['status'] == 'passed'
        assert report['steps'][0]['action'] == 'nested_steps'
        assert report['steps'][0]['steps'][0]['name'] == 'grp -> inner'

    def test_template_overrides_reach_builtin_actions(self):
        runner = TestRunner(
            self.registry,
            formatter=SafeFormatter({'ASSERTION_FAILED': "check failed: %s %s %s"}),
            sleep=MagicMock()
        )

        result = runner.run(make_test_case(steps=[failing('b')]))

        assert result.error_info.message == "check failed: 1 == 2"
