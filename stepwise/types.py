"""
Test case and step definitions.

These are immutable views built from already-validated YAML dictionaries;
the interpreter never mutates them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from stepwise.durations import parse_duration


BACKOFF_STRATEGIES = ('fixed', 'linear', 'exponential')
RETRY_ON_TAGS = ('all', 'http_error', 'timeout', 'connection_error', 'assertion_failed')
EXTRACTION_TYPES = ('jq', 'xpath', 'regex', 'csv')


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry settings for a single-action step.

    Attributes:
        attempts: Total attempts including the first (>= 1)
        delay: Base delay as a duration string
        backoff: fixed, linear or exponential
        retry_if: Condition evaluated against outcome variables after a miss
        retry_on: Coarse error tags that qualify for another attempt
        stop_on_success: Stop as soon as an attempt passes
    """
    attempts: int = 1
    delay: str = "0"
    backoff: str = "fixed"
    retry_if: Optional[str] = None
    retry_on: Tuple[str, ...] = ()
    stop_on_success: bool = True

    @property
    def delay_seconds(self) -> float:
        return parse_duration(self.delay)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetryConfig':
        """
        Build from a `retry:` mapping.

        Raises:
            ValueError: If a field has an invalid value
        """
        attempts = data.get('attempts', 1)
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            raise ValueError(f"retry attempts must be an integer >= 1, got {attempts!r}")

        delay = data.get('delay', "0")
        delay = "0" if delay is None else str(delay)
        parse_duration(delay)

        backoff = data.get('backoff') or 'fixed'
        if backoff not in BACKOFF_STRATEGIES:
            raise ValueError(f"retry backoff must be one of {list(BACKOFF_STRATEGIES)}, got {backoff!r}")

        retry_on = data.get('retry_on') or []
        if isinstance(retry_on, str):
            retry_on = [retry_on]
        if not isinstance(retry_on, list):
            raise ValueError("retry_on must be a list of error tags")
        for tag in retry_on:
            if tag not in RETRY_ON_TAGS:
                raise ValueError(f"unknown retry_on tag {tag!r}; expected one of {list(RETRY_ON_TAGS)}")

        retry_if = data.get('retry_if')
        if retry_if is not None:
            retry_if = str(retry_if)

        stop_on_success = data.get('stop_on_success', True)
        if not isinstance(stop_on_success, bool):
            raise ValueError("stop_on_success must be a boolean")

        return cls(
            attempts=attempts,
            delay=delay,
            backoff=backoff,
            retry_if=retry_if,
            retry_on=tuple(retry_on),
            stop_on_success=stop_on_success,
        )


@dataclass(frozen=True)
class ExtractConfig:
    """How to derive a narrower value from an action's output."""
    type: str
    path: str = ""
    group: Optional[int] = None
    row: Optional[int] = None
    column: Optional[str] = None
    delimiter: str = ","
    has_header: bool = True
    filter: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtractConfig':
        """
        Build from an `extract:` mapping.

        Raises:
            ValueError: If a field has an invalid value
        """
        kind = data.get('type')
        if kind not in EXTRACTION_TYPES:
            raise ValueError(f"extract type must be one of {list(EXTRACTION_TYPES)}, got {kind!r}")

        path = data.get('path') or ""
        if kind != 'csv' and not path:
            raise ValueError(f"extract type '{kind}' requires a path")

        for key in ('group', 'row'):
            value = data.get(key)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise ValueError(f"extract {key} must be a non-negative integer")

        delimiter = data.get('delimiter') or ","
        if not isinstance(delimiter, str) or len(delimiter) != 1:
            raise ValueError("extract delimiter must be a single character")

        has_header = data.get('has_header', True)
        if not isinstance(has_header, bool):
            raise ValueError("extract has_header must be a boolean")

        column = data.get('column')
        return cls(
            type=kind,
            path=str(path),
            group=data.get('group'),
            row=data.get('row'),
            column=None if column is None else str(column),
            delimiter=delimiter,
            has_header=has_header,
            filter=data.get('filter'),
        )


def _condition(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass(frozen=True)
class Step:
    """
    One node of the test tree.

    A step runs either a single action or a group of child steps and may be
    wrapped in `if`, `for`/`while` and `retry` modifiers.
    """
    name: str
    action: Optional[str] = None
    args: Tuple[Any, ...] = ()
    options: Dict[str, Any] = field(default_factory=dict)
    result: Optional[str] = None
    extract: Optional[ExtractConfig] = None
    if_condition: Optional[str] = None
    for_spec: Optional[str] = None
    while_condition: Optional[str] = None
    retry: Optional[RetryConfig] = None
    steps: Tuple['Step', ...] = ()
    continue_on_failure: bool = False
    critical: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Step':
        for_spec = data.get('for')
        if isinstance(for_spec, list):
            for_spec = "[" + ",".join(str(item) for item in for_spec) + "]"
        elif for_spec is not None:
            for_spec = str(for_spec)

        extract = data.get('extract')
        retry = data.get('retry')
        if_condition = _condition(data.get('if'))
        while_condition = _condition(data.get('while'))

        return cls(
            name=str(data.get('name', '')),
            action=data.get('action'),
            args=tuple(data.get('args') or ()),
            options=dict(data.get('options') or {}),
            result=data.get('result'),
            extract=ExtractConfig.from_dict(extract) if extract else None,
            if_condition=if_condition,
            for_spec=for_spec,
            while_condition=while_condition,
            retry=RetryConfig.from_dict(retry) if retry else None,
            steps=tuple(cls.from_dict(child) for child in data.get('steps') or ()),
            continue_on_failure=bool(data.get('continue', False)),
            critical=bool(data.get('critical', False)),
        )


@dataclass(frozen=True)
class TestCase:
    """A parsed test case: variables plus setup, main and teardown phases."""
    __test__ = False

    name: str
    steps: Tuple[Step, ...]
    description: str = ""
    setup: Tuple[Step, ...] = ()
    teardown: Tuple[Step, ...] = ()
    variables: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TestCase':
        variables = data.get('variables') or {}
        if isinstance(variables, dict) and 'vars' in variables:
            variables = variables.get('vars') or {}

        def build(key: str) -> Tuple[Step, ...]:
            return tuple(Step.from_dict(step) for step in data.get(key) or ())

        return cls(
            name=str(data.get('testcase', '')),
            description=str(data.get('description') or ''),
            setup=build('setup'),
            steps=build('steps'),
            teardown=build('teardown'),
            variables=dict(variables),
        )
