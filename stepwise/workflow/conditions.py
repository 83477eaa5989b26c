"""
Condition evaluation for `if`, `while` and `retry_if`.

Conditions are a single comparison, not an expression language:
`<left> <operator> <right>` or one of the literals true/false/1/0.
"""

import logging
from typing import Optional, Tuple

from stepwise.exceptions import ConditionError
from stepwise.variables.store import VariableStore


logger = logging.getLogger(__name__)


# Order matters: two-character comparators must be found before the
# single-character ones they contain.
OPERATORS = (
    '>=', '<=', '>', '<',
    '==', '!=',
    'contains', 'starts_with', 'ends_with',
)

TRUE_LITERALS = ('true', '1')
FALSE_LITERALS = ('false', '0')


class ConditionEvaluator:
    """
    Evaluates condition strings against a variable store.

    Variables are substituted first, leaving unresolved references verbatim.
    Ordering comparators compare numerically when both operands parse as
    numbers and fall back to string comparison otherwise. Equality is always
    a string comparison, so `007 == 7` is false.
    """

    def __init__(self, variables: VariableStore):
        self.variables = variables

    def evaluate(self, condition: Optional[str]) -> bool:
        """
        Evaluate a condition.

        Args:
            condition: Raw condition, None meaning always true

        Returns:
            Truth value of the condition

        Raises:
            ConditionError: If no operator or literal matches
        """
        if condition is None:
            return True

        text = self.variables.substitute(str(condition)).strip()
        if text in TRUE_LITERALS:
            return True
        if text in FALSE_LITERALS:
            return False

        parsed = self.split(text)
        if parsed is None:
            raise ConditionError(f"unable to evaluate condition: {text!r}")

        left, operator, right = parsed
        result = self.compare(left, operator, right)
        logger.debug(f"Condition {text!r} evaluated to {result}")
        return result

    @staticmethod
    def split(text: str) -> Optional[Tuple[str, str, str]]:
        """Split on the first operator in precedence order."""
        for operator in OPERATORS:
            if operator in text:
                left, right = text.split(operator, 1)
                return left.strip(), operator, right.strip()
        return None

    @staticmethod
    def compare(left: str, operator: str, right: str) -> bool:
        if operator == 'contains':
            return right in left
        if operator == 'starts_with':
            return left.startswith(right)
        if operator == 'ends_with':
            return left.endswith(right)
        if operator == '==':
            return left == right
        if operator == '!=':
            return left != right

        numbers = _as_numbers(left, right)
        if numbers is not None:
            a, b = numbers
        else:
            a, b = left, right

        if operator == '>=':
            return a >= b
        if operator == '<=':
            return a <= b
        if operator == '>':
            return a > b
        if operator == '<':
            return a < b
        raise ConditionError(f"unsupported operator: {operator}")


def _as_numbers(left: str, right: str) -> Optional[Tuple[float, float]]:
    try:
        return float(left), float(right)
    except ValueError:
        return None
