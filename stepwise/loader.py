"""Test case loader and structural validation."""

import re
from pathlib import Path
from typing import Any, Dict, List, Union
import yaml

from stepwise.exceptions import ValidationError, TestCaseValidationError
from stepwise.types import ExtractConfig, RetryConfig, TestCase


class PreservingLoader(yaml.SafeLoader):
    """YAML loader that keeps yes/no/on/off as strings; only true/false are booleans."""
    pass


_BOOL_TAG = 'tag:yaml.org,2002:bool'

PreservingLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
PreservingLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'),
    list('tTfF')
)


class TestCaseLoader:
    """Loads test case YAML and rejects structurally invalid definitions."""

    __test__ = False

    TOP_LEVEL_FIELDS = {'testcase', 'description', 'variables', 'setup', 'steps', 'teardown'}
    STEP_FIELDS = {
        'name', 'action', 'args', 'options', 'result', 'extract', 'if', 'for', 'while',
        'retry', 'steps', 'continue', 'critical',
    }
    RETRY_FIELDS = {'attempts', 'delay', 'backoff', 'retry_if', 'retry_on', 'stop_on_success'}
    EXTRACT_FIELDS = {'type', 'path', 'group', 'row', 'column', 'delimiter', 'has_header', 'filter'}

    def __init__(self):
        self.errors: List[ValidationError] = []

    def load(self, path: Union[str, Path]) -> TestCase:
        """
        Load and validate a test case file.

        Raises:
            TestCaseValidationError: With every problem found
        """
        self.errors = []
        try:
            with open(path, 'r') as f:
                document = yaml.load(f, Loader=PreservingLoader)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load test case: {e}")
            self._raise_validation_errors()

        return self.load_dict(document)

    def load_string(self, text: str) -> TestCase:
        """Validate a test case given as YAML text."""
        self.errors = []
        try:
            document = yaml.load(text, Loader=PreservingLoader)
        except yaml.YAMLError as e:
            self._add_error(f"Failed to parse test case: {e}")
            self._raise_validation_errors()
        return self.load_dict(document)

    def load_dict(self, document: Any) -> TestCase:
        """Validate an already parsed document and build the TestCase."""
        self.errors = []
        if document is None or not isinstance(document, dict):
            self._add_error("Test case must be a YAML object/dictionary")
            self._raise_validation_errors()

        for key in document:
            if key not in self.TOP_LEVEL_FIELDS:
                self._add_error(f"Unknown field '{key}'")

        name = document.get('testcase')
        if not name or not isinstance(name, str):
            self._add_error("'testcase' field is required and must be a non-empty string")

        if 'description' in document and not isinstance(document['description'], (str, type(None))):
            self._add_error("'description' must be a string")

        self._validate_variables(document.get('variables'))

        steps = document.get('steps')
        if not steps:
            self._add_error("'steps' field is required and must not be empty")
        else:
            self._validate_steps(steps, 'steps', phase='steps')

        for phase in ('setup', 'teardown'):
            if document.get(phase) is not None:
                self._validate_steps(document[phase], phase, phase=phase)

        if self.errors:
            self._raise_validation_errors()

        return TestCase.from_dict(document)

    def _validate_variables(self, variables: Any):
        if variables is None:
            return
        if not isinstance(variables, dict):
            self._add_error("'variables' must be a dictionary", 'variables')
            return
        if 'vars' in variables:
            unknown = set(variables) - {'vars'}
            if unknown:
                self._add_error(f"Unknown variables fields: {sorted(unknown)}", 'variables')
            if variables['vars'] is not None and not isinstance(variables['vars'], dict):
                self._add_error("'variables.vars' must be a dictionary", 'variables.vars')

    def _validate_steps(self, steps: Any, path: str, phase: str):
        if not isinstance(steps, list):
            self._add_error("must be a list of steps", path)
            return

        for i, step in enumerate(steps):
            step_path = f"{path}[{i}]"
            if not isinstance(step, dict):
                self._add_error("step must be a dictionary", step_path)
                continue
            self._validate_step(step, step_path, phase)

    def _validate_step(self, step: Dict[str, Any], path: str, phase: str):
        for key in step:
            if key not in self.STEP_FIELDS:
                self._add_error(f"Unknown step field '{key}'", path)

        name = step.get('name')
        if not name or not isinstance(name, str):
            self._add_error("step 'name' is required and must be a non-empty string", path)

        has_action = 'action' in step
        has_children = 'steps' in step
        if has_action and has_children:
            self._add_error("'action' and 'steps' are mutually exclusive", path)
        elif not has_action and not has_children:
            self._add_error("step requires either 'action' or 'steps'", path)

        if has_action and (not step['action'] or not isinstance(step['action'], str)):
            self._add_error("'action' must be a non-empty string", path)

        if 'for' in step and 'while' in step:
            self._add_error("'for' and 'while' are mutually exclusive", path)
        if 'for' in step and not isinstance(step['for'], (str, int, list)):
            self._add_error("'for' must be a range, count or list", path)
        for key in ('if', 'while'):
            if key in step and not isinstance(step[key], (str, bool, int)):
                self._add_error(f"'{key}' must be a condition string", path)

        if 'args' in step and not isinstance(step['args'], list):
            self._add_error("'args' must be a list", path)
        if 'options' in step and not isinstance(step['options'], dict):
            self._add_error("'options' must be a dictionary", path)
        if 'result' in step and not isinstance(step['result'], str):
            self._add_error("'result' must be a variable name", path)
        if 'continue' in step and not isinstance(step['continue'], bool):
            self._add_error("'continue' must be a boolean", path)

        if 'critical' in step:
            if phase != 'setup':
                self._add_error("'critical' is only allowed on setup steps", path)
            elif not isinstance(step['critical'], bool):
                self._add_error("'critical' must be a boolean", path)

        if 'retry' in step:
            self._validate_block(step['retry'], self.RETRY_FIELDS, RetryConfig, f"{path}.retry")
        if 'extract' in step:
            self._validate_block(step['extract'], self.EXTRACT_FIELDS, ExtractConfig, f"{path}.extract")

        if has_children:
            children = step['steps']
            if not children:
                self._add_error("'steps' must not be empty", path)
            else:
                self._validate_steps(children, f"{path}.steps", phase)

    def _validate_block(self, block: Any, fields: set, model: Any, path: str):
        if not isinstance(block, dict):
            self._add_error("must be a dictionary", path)
            return
        for key in block:
            if key not in fields:
                self._add_error(f"Unknown field '{key}'", path)
        try:
            model.from_dict(block)
        except ValueError as e:
            self._add_error(str(e), path)

    def _add_error(self, message: str, path: str = ""):
        self.errors.append(ValidationError(message=message, path=path))

    def _raise_validation_errors(self):
        raise TestCaseValidationError(self.errors)
