"""
Builders for ErrorInfo and FailureInfo with safe message templating.

Messages are printf-style templates rendered with positional arguments.
Templates are checked before use so that directives which read extra
arguments or change representation (`%*d`, `%#x`, `%n`, `%(key)s`) are
rejected, while the argument values themselves are never interpreted.
"""

import logging
import re
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from stepwise.exceptions import TemplateFormatError
from stepwise.results import (
    ActionResult,
    ErrorCategory,
    ErrorInfo,
    FailureCategory,
    FailureInfo,
)


logger = logging.getLogger(__name__)


DEFAULT_TEMPLATES: Mapping[str, str] = MappingProxyType({
    'UNKNOWN_ACTION': "unknown action: %s",
    'INVALID_STEP': "step %s has neither an action nor child steps",
    'IF_CONDITION_FAILED': "if condition evaluation failed: %s",
    'WHILE_CONDITION_FAILED': "while condition evaluation failed: %s",
    'MAX_WHILE_ITERATIONS': "exceeded maximum iterations (%d)",
    'INVALID_LOOP_SPEC': "invalid for loop specification %r: %s",
    'INVALID_RETRY_DELAY': "invalid retry delay %r: %s",
    'EXTRACTION_FAILED': "Failed to extract data: %s",
    'UNRESOLVED_VARIABLE': "unresolved variables in step %s: %s",
    'ACTION_EXCEPTION': "action %s raised %s: %s",
    'ASSERTION_FAILED': "assertion failed: %s %s %s",
    'INVALID_ARGUMENTS': "%s: %s",
    'VARIABLE_NOT_FOUND': "variable not found: %s",
    'CRITICAL_SETUP_FAILED': "critical setup step %s did not pass: %s",
})


class SafeFormatter:
    """
    Renders message templates after rejecting unsafe directives.

    The formatter owns the template table for one process or run; builders
    receive it explicitly instead of consulting module state.
    """

    DIRECTIVE_PATTERN = re.compile(
        r'%(?P<key>\([^)]*\))?(?P<flags>[-+ #0]*)(?P<width>\*|\d+)?'
        r'(?:\.(?P<precision>\*|\d+))?(?P<conversion>.?)',
        re.DOTALL
    )
    ALLOWED_CONVERSIONS = set('sdiuoxXeEfFgGcr%')

    def __init__(self, overrides: Optional[Mapping[str, str]] = None):
        """
        Build the template table.

        Args:
            overrides: Templates replacing or extending the defaults

        Raises:
            TemplateFormatError: If any template contains a rejected directive
        """
        templates = dict(DEFAULT_TEMPLATES)
        if overrides:
            templates.update(overrides)
        for name, template in templates.items():
            try:
                self.validate(template)
            except TemplateFormatError as e:
                raise TemplateFormatError(f"template '{name}': {e}") from e
        self._templates: Dict[str, str] = templates

    @classmethod
    def validate(cls, template: str) -> None:
        """
        Check that a template only uses plain positional directives.

        Raises:
            TemplateFormatError: On the first rejected directive
        """
        for match in cls.DIRECTIVE_PATTERN.finditer(template):
            directive = match.group(0)
            conversion = match.group('conversion')
            if directive == '%%':
                continue
            if match.group('key') is not None:
                raise TemplateFormatError(f"mapping keys are not allowed: {directive!r}")
            if '#' in match.group('flags'):
                raise TemplateFormatError(f"alternate form flag is not allowed: {directive!r}")
            if match.group('width') == '*' or match.group('precision') == '*':
                raise TemplateFormatError(f"star width/precision is not allowed: {directive!r}")
            if conversion == 'n':
                raise TemplateFormatError(f"directive is not allowed: {directive!r}")
            if conversion == '' or conversion not in cls.ALLOWED_CONVERSIONS or conversion == '%':
                raise TemplateFormatError(f"unsupported format directive: {directive!r}")

    def template(self, name: str) -> Optional[str]:
        return self._templates.get(name)

    def has_template(self, name: str) -> bool:
        return name in self._templates

    def format(self, template: str, *args: Any) -> str:
        """
        Render a template with positional arguments.

        Rendering problems such as an argument count mismatch do not raise;
        the template is returned with the arguments appended so the original
        failure is still reported.
        """
        self.validate(template)
        try:
            return template % args
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to format message template {template!r}: {e}")
            rendered = ", ".join(repr(arg) for arg in args)
            return f"{template} [{rendered}]" if args else template


class _InfoBuilder:
    """Shared fluent state for the two builders."""

    def __init__(self, code: str, formatter: Optional[SafeFormatter] = None):
        self.code = code
        self.formatter = formatter or SafeFormatter()
        self._template: str = self.formatter.template(code) or code
        self._context: Dict[str, Any] = {}
        self._suggestions: List[str] = []

    def with_template(self, name: str):
        """Use a named template from the formatter's table."""
        template = self.formatter.template(name)
        if template is None:
            raise KeyError(f"Unknown message template: {name}")
        self._template = template
        return self

    def with_message(self, template: str):
        """Use a literal template."""
        SafeFormatter.validate(template)
        self._template = template
        return self

    def with_context(self, key: str, value: Any):
        self._context[key] = value
        return self

    def with_suggestion(self, suggestion: str):
        self._suggestions.append(suggestion)
        return self

    def _message(self, args) -> str:
        if args:
            return self.formatter.format(self._template, *args)
        return self.formatter.format(self._template) if '%' in self._template else self._template


class ErrorBuilder(_InfoBuilder):
    """Fluent construction of ErrorInfo values."""

    def __init__(
        self,
        category: ErrorCategory,
        code: str,
        formatter: Optional[SafeFormatter] = None
    ):
        super().__init__(code, formatter)
        self.category = category

    def build(self, *args: Any) -> ErrorInfo:
        return ErrorInfo(
            category=self.category,
            code=self.code,
            message=self._message(args),
            context=dict(self._context),
            suggestions=list(self._suggestions),
        )

    def result(self, *args: Any, data: Any = None) -> ActionResult:
        """Build the ErrorInfo and wrap it in an error ActionResult."""
        return ActionResult.from_error(self.build(*args), data=data)


class FailureBuilder(_InfoBuilder):
    """Fluent construction of FailureInfo values."""

    def __init__(
        self,
        category: FailureCategory,
        code: str,
        formatter: Optional[SafeFormatter] = None
    ):
        super().__init__(code, formatter)
        self.category = category
        self._expected: Any = None
        self._actual: Any = None
        self._comparison = ""

    def with_expected(self, expected: Any) -> 'FailureBuilder':
        self._expected = expected
        return self

    def with_actual(self, actual: Any) -> 'FailureBuilder':
        self._actual = actual
        return self

    def with_comparison(self, comparison: str) -> 'FailureBuilder':
        self._comparison = comparison
        return self

    def build(self, *args: Any) -> FailureInfo:
        return FailureInfo(
            category=self.category,
            code=self.code,
            message=self._message(args),
            expected=self._expected,
            actual=self._actual,
            comparison=self._comparison,
            context=dict(self._context),
            suggestions=list(self._suggestions),
        )

    def result(self, *args: Any, data: Any = None) -> ActionResult:
        """Build the FailureInfo and wrap it in a failed ActionResult."""
        return ActionResult.from_failure(self.build(*args), data=data)
