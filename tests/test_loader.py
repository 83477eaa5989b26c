"""
Tests for test case loading and structural validation.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from stepwise.exceptions import TestCaseValidationError
from stepwise.loader import PreservingLoader, TestCaseLoader
from stepwise.types import Step


VALID_TEST_CASE = """
testcase: user api
description: Exercises the user endpoints
variables:
  vars:
    base_url: http://localhost:8080
    enabled: on
setup:
  - name: connect
    action: log
    args: ["connecting to ${base_url}"]
    critical: true
steps:
  - name: create users
    for: [ann, bob]
    action: log
    args: ["${item}"]
  - name: poll
    while: "${count} < 3"
    action: variable
    args: [set, count, 3]
  - name: fetch
    action: log
    args: ["id=42"]
    result: fetched
    extract:
      type: regex
      path: "id=(\\\\d+)"
    retry:
      attempts: 3
      delay: 1s
      backoff: exponential
      retry_on: [timeout]
  - name: group
    if: true
    continue: true
    steps:
      - name: inner
        action: log
teardown:
  - name: cleanup
    action: log
"""


class TestPreservingLoader:

    def test_yes_no_on_off_stay_strings(self):
        data = yaml.load("a: yes\nb: no\nc: on\nd: off\ne: true\nf: False", Loader=PreservingLoader)
        assert data == {'a': 'yes', 'b': 'no', 'c': 'on', 'd': 'off', 'e': True, 'f': False}

    def test_safe_loader_unaffected(self):
        assert yaml.safe_load("a: yes") == {'a': True}


class TestTestCaseLoader:

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.loader = TestCaseLoader()

    def _write(self, content: str) -> Path:
        path = Path(self.temp_dir) / "test.yaml"
        path.write_text(content)
        return path

    def _errors(self, document) -> list:
        with pytest.raises(TestCaseValidationError) as exc_info:
            self.loader.load_dict(document)
        assert exc_info.value.exit_code == 2
        return [str(error.message) for error in exc_info.value.errors]

    def test_load_valid_file(self):
        test_case = self.loader.load(self._write(VALID_TEST_CASE))

        assert test_case.name == 'user api'
        assert test_case.description == 'Exercises the user endpoints'
        assert test_case.variables == {'base_url': 'http://localhost:8080', 'enabled': 'on'}
        assert test_case.setup[0].critical is True
        assert len(test_case.steps) == 4
        assert len(test_case.teardown) == 1

    def test_step_fields_normalized(self):
        test_case = self.loader.load(self._write(VALID_TEST_CASE))
        loop, poll, fetch, group = test_case.steps

        assert loop.for_spec == '[ann,bob]'
        assert poll.while_condition == '${count} < 3'
        assert fetch.extract.type == 'regex'
        assert fetch.extract.path == 'id=(\\d+)'
        assert fetch.retry.attempts == 3
        assert fetch.retry.retry_on == ('timeout',)
        assert group.if_condition == 'true'
        assert group.continue_on_failure is True
        assert group.steps == (Step(name='inner', action='log'),)

    def test_missing_file(self):
        with pytest.raises(TestCaseValidationError, match="Failed to load test case"):
            self.loader.load(Path(self.temp_dir) / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(TestCaseValidationError, match="Failed to parse test case"):
            self.loader.load_string("steps: [unclosed")

    def test_not_a_mapping(self):
        assert self._errors(['a', 'b']) == ["Test case must be a YAML object/dictionary"]

    def test_collects_all_errors(self):
        errors = self._errors({
            'extra': 1,
            'steps': [
                {'action': 'log'},
                {'name': 'both', 'action': 'log', 'steps': [{'name': 'c', 'action': 'log'}]},
                {'name': 'neither'},
            ],
        })

        assert "Unknown field 'extra'" in errors
        assert "'testcase' field is required and must be a non-empty string" in errors
        assert "step 'name' is required and must be a non-empty string" in errors
        assert "'action' and 'steps' are mutually exclusive" in errors
        assert "step requires either 'action' or 'steps'" in errors

    def test_error_paths(self):
        with pytest.raises(TestCaseValidationError) as exc_info:
            self.loader.load_dict({
                'testcase': 't',
                'steps': [{'name': 'g', 'steps': [{'name': 'c', 'action': 'log', 'bogus': 1}]}],
            })
        error = exc_info.value.errors[0]
        assert error.path == 'steps[0].steps[0]'
        assert "Validation error at steps[0].steps[0]: Unknown step field 'bogus'" in str(exc_info.value)

    def test_requires_steps(self):
        assert "'steps' field is required and must not be empty" in self._errors({'testcase': 't', 'steps': []})

    def test_for_and_while_exclusive(self):
        errors = self._errors({
            'testcase': 't',
            'steps': [{'name': 's', 'action': 'log', 'for': '3', 'while': 'true'}],
        })
        assert "'for' and 'while' are mutually exclusive" in errors

    def test_critical_only_in_setup(self):
        errors = self._errors({
            'testcase': 't',
            'steps': [{'name': 's', 'action': 'log', 'critical': True}],
        })
        assert "'critical' is only allowed on setup steps" in errors

    def test_invalid_retry_and_extract(self):
        errors = self._errors({
            'testcase': 't',
            'steps': [{
                'name': 's',
                'action': 'log',
                'retry': {'attempts': 0, 'backoff': 'random'},
                'extract': {'type': 'json'},
            }],
        })
        assert any("retry attempts must be an integer >= 1" in e for e in errors)
        assert any("extract type must be one of" in e for e in errors)

    def test_invalid_retry_delay(self):
        errors = self._errors({
            'testcase': 't',
            'steps': [{'name': 's', 'action': 'log', 'retry': {'attempts': 2, 'delay': 'later'}}],
        })
        assert any("invalid duration" in e for e in errors)

    def test_variables_must_be_mapping(self):
        errors = self._errors({
            'testcase': 't',
            'variables': {'vars': ['a']},
            'steps': [{'name': 's', 'action': 'log'}],
        })
        assert "'variables.vars' must be a dictionary" in errors

    def test_plain_variables_mapping_accepted(self):
        test_case = self.loader.load_dict({
            'testcase': 't',
            'variables': {'a': 1},
            'steps': [{'name': 's', 'action': 'log'}],
        })
        assert test_case.variables == {'a': 1}

    def test_group_with_action_only_fields_loads(self):
        test_case = self.loader.load_dict({
            'testcase': 't',
            'steps': [{
                'name': 'grp',
                'retry': {'attempts': 3},
                'result': 'out',
                'steps': [{'name': 'c', 'action': 'log'}],
            }],
        })
        group = test_case.steps[0]
        assert group.retry.attempts == 3
        assert group.result == 'out'
