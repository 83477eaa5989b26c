"""
Built-in actions: assert, log, sleep and variable.
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from stepwise.durations import parse_duration
from stepwise.errors import ErrorBuilder, FailureBuilder, SafeFormatter
from stepwise.results import ActionResult, ErrorCategory, FailureCategory
from stepwise.variables.store import VariableStore, to_string


logger = logging.getLogger(__name__)


ASSERT_OPERATORS = (
    '==', '=', '!=', '<>', '>', '<', '>=', '<=',
    'contains', 'not_contains', 'starts_with', 'ends_with', 'matches',
)


def _invalid_arguments(action: str, message: str, formatter: Optional[SafeFormatter] = None) -> ActionResult:
    return (
        ErrorBuilder(ErrorCategory.VALIDATION, 'INVALID_ARGUMENTS', formatter)
        .with_context('action', action)
        .result(action, message)
    )


def _numbers(actual: Any, expected: Any) -> Optional[Tuple[float, float]]:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return None
    try:
        return float(to_string(actual)), float(to_string(expected))
    except ValueError:
        return None


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    """
    Compare two values.

    Raises:
        re.error: If the `matches` pattern is invalid
    """
    left = to_string(actual)
    right = to_string(expected)
    if operator == 'contains':
        return right in left
    if operator == 'not_contains':
        return right not in left
    if operator == 'starts_with':
        return left.startswith(right)
    if operator == 'ends_with':
        return left.endswith(right)
    if operator == 'matches':
        return re.search(right, left) is not None

    numbers = _numbers(actual, expected)
    a, b = numbers if numbers is not None else (left, right)
    if operator in ('==', '='):
        return a == b
    if operator in ('!=', '<>'):
        return a != b
    if operator == '>':
        return a > b
    if operator == '<':
        return a < b
    if operator == '>=':
        return a >= b
    return a <= b


def assert_action(
    args: List[Any],
    options: Dict[str, Any],
    variables: VariableStore,
    formatter: Optional[SafeFormatter] = None
) -> ActionResult:
    """
    Compare actual against expected.

    Args are [actual, operator, expected] with an optional fourth custom
    message. Both sides are compared as numbers when they parse, otherwise
    as strings.
    """
    if len(args) < 3:
        return _invalid_arguments('assert', "requires actual, operator and expected arguments", formatter)

    actual, operator, expected = args[0], str(args[1]), args[2]
    if operator not in ASSERT_OPERATORS:
        return _invalid_arguments(
            'assert', f"unsupported operator '{operator}', expected one of {', '.join(ASSERT_OPERATORS)}",
            formatter
        )

    try:
        passed = _compare(actual, operator, expected)
    except re.error as e:
        return _invalid_arguments('assert', f"invalid pattern {to_string(expected)!r}: {e}", formatter)

    if passed:
        return ActionResult.passed(data=True)

    builder = (
        FailureBuilder(FailureCategory.ASSERTION, 'ASSERTION_FAILED', formatter)
        .with_expected(expected)
        .with_actual(actual)
        .with_comparison(operator)
    )
    if len(args) > 3:
        return builder.with_message('%s').result(to_string(args[3]))
    return builder.result(to_string(actual), operator, to_string(expected))


def log_action(
    args: List[Any],
    options: Dict[str, Any],
    variables: VariableStore,
    formatter: Optional[SafeFormatter] = None
) -> ActionResult:
    """Log the arguments joined by spaces."""
    message = ' '.join(to_string(arg) for arg in args)
    level = str(options.get('level', 'info')).upper()
    logger.log(getattr(logging, level, logging.INFO), message)
    return ActionResult.passed(data=message)


def sleep_action(
    args: List[Any],
    options: Dict[str, Any],
    variables: VariableStore,
    formatter: Optional[SafeFormatter] = None
) -> ActionResult:
    """Block for a duration such as "500ms" or "2s"."""
    if not args:
        return _invalid_arguments('sleep', "requires a duration argument", formatter)
    try:
        seconds = parse_duration(args[0])
    except ValueError as e:
        return _invalid_arguments('sleep', str(e), formatter)
    time.sleep(seconds)
    return ActionResult.passed(data=seconds)


def variable_action(
    args: List[Any],
    options: Dict[str, Any],
    variables: VariableStore,
    formatter: Optional[SafeFormatter] = None
) -> ActionResult:
    """
    Manipulate variables directly.

    Operations:
        set NAME VALUE   store VALUE under NAME
        get NAME         return the value of NAME (nested paths allowed)
        unset NAME       remove NAME
    """
    if len(args) < 2:
        return _invalid_arguments('variable', "requires an operation and a variable name", formatter)

    operation, name = str(args[0]), str(args[1])
    if operation == 'set':
        if len(args) < 3:
            return _invalid_arguments('variable', "set requires a value", formatter)
        variables.set(name, args[2])
        return ActionResult.passed(data=args[2])
    if operation == 'get':
        value, found = variables.lookup(name)
        if not found:
            return (
                ErrorBuilder(ErrorCategory.VARIABLE, 'VARIABLE_NOT_FOUND', formatter)
                .with_context('variable', name)
                .with_context('available_variables', variables.names())
                .result(name)
            )
        return ActionResult.passed(data=value)
    if operation == 'unset':
        variables.delete(name)
        return ActionResult.passed()
    return _invalid_arguments(
        'variable', f"unknown operation '{operation}', expected set, get or unset", formatter
    )
