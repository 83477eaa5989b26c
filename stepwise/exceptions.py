"""Stepwise exceptions."""

from typing import List, TYPE_CHECKING
from dataclasses import dataclass

if TYPE_CHECKING:
    from stepwise.variables.diagnostics import VariableContext


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class TestCaseValidationError(Exception):
    """Raised when a test case file fails structural validation.

    The loader collects every problem before raising so the CLI can report
    them all at once and map the failure to exit code 2.
    """

    __test__ = False

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error at {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))


class ConditionError(ValueError):
    """Raised when a condition string cannot be evaluated."""


class TemplateFormatError(ValueError):
    """Raised when a message template contains a rejected format directive."""


class LoopSpecError(ValueError):
    """Raised when a `for` specification cannot be parsed."""

    def __init__(self, code: str, message: str, spec: str = ""):
        self.code = code
        self.spec = spec
        super().__init__(message)


class ExtractionError(Exception):
    """Raised by the extraction engine with a machine-readable code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class VariableResolutionError(Exception):
    """Raised when strict substitution leaves references unresolved."""

    def __init__(self, context: 'VariableContext'):
        self.context = context
        super().__init__(context.detailed_message())
