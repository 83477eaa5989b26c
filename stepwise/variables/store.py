"""
Variable store and substitution.

Handles `${name}`, `${name.nested.path}` and `${ENV:NAME}` references. A
literal `$$` is an escaped dollar sign.
"""

import json
import logging
import os
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from stepwise.exceptions import VariableResolutionError
from .access import AccessFailure, NestedAccessor, find_similar
from .diagnostics import (
    INVALID_SYNTAX,
    NOT_FOUND,
    ResolutionStatus,
    VariableAccessAttempt,
    VariableContext,
)


logger = logging.getLogger(__name__)

_MISSING = object()


def to_string(value: Any) -> str:
    """Render a value the way it appears when substituted into text."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    elif isinstance(value, (int, float)):
        return str(value)
    elif isinstance(value, str):
        return value
    elif isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    else:
        return json.dumps(value, default=str)


class VariableStore:
    """
    Named values for one test case run.

    The store is mutated in place by every component of a run. Use clone()
    for a sandboxed copy whose writes never reach the original.
    """

    # Pattern to match ${...} references, handling escaped $$
    VAR_PATTERN = re.compile(r'(?<!\$)\$\{([^}]*)\}')
    ENV_PREFIX = 'ENV:'

    def __init__(
        self,
        initial: Optional[Mapping[str, Any]] = None,
        accessor: Optional[NestedAccessor] = None
    ):
        self._variables: Dict[str, Any] = dict(initial or {})
        self.accessor = accessor or NestedAccessor()

    def set(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def get(self, name: str) -> Tuple[Any, bool]:
        """
        Get a variable by exact name.

        Returns:
            (value, found)
        """
        if name in self._variables:
            return self._variables[name], True
        return None, False

    def delete(self, name: str) -> None:
        self._variables.pop(name, None)

    def load(self, variables: Mapping[str, Any]) -> None:
        """Seed the store from declared test case variables."""
        for name, value in variables.items():
            self.set(str(name), value)

    def names(self) -> List[str]:
        return sorted(self._variables)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._variables)

    def clone(self) -> 'VariableStore':
        return VariableStore(self._variables, accessor=self.accessor)

    def lookup(self, expression: str) -> Tuple[Any, bool]:
        """
        Resolve the body of a `${...}` reference.

        Returns:
            (value, found)
        """
        value, _ = self._resolve(expression.strip())
        if value is _MISSING:
            return None, False
        return value, True

    def substitute(self, template: str, strict: bool = False) -> str:
        """
        Replace every reference in a string.

        Args:
            template: Text containing `${...}` references
            strict: Raise instead of leaving unresolved references verbatim

        Raises:
            VariableResolutionError: If strict and any reference is unresolved
        """
        unresolved: List[str] = []
        result = self._substitute_string(template, unresolved)
        if unresolved:
            if strict:
                raise VariableResolutionError(self.diagnose(template))
            logger.debug(f"Unresolved variables left in template: {unresolved}")
        return result

    def substitute_value(self, value: Any, strict: bool = False) -> Any:
        """
        Substitute within a string, list or dict.

        A string that is exactly one reference is replaced by the referenced
        value itself, so structured data passes through without being
        rendered to text. Other non-string values pass through unchanged.
        """
        unresolved: List[str] = []
        result = self._substitute_value(value, unresolved)
        if unresolved and strict:
            raise VariableResolutionError(self.diagnose(self._describe(value)))
        return result

    def substitute_args(self, args: Iterable[Any], strict: bool = False) -> List[Any]:
        return self.substitute_value(list(args), strict=strict)

    def substitute_options(self, options: Mapping[str, Any], strict: bool = False) -> Dict[str, Any]:
        return self.substitute_value(dict(options), strict=strict)

    def diagnose(self, template: str) -> VariableContext:
        """Explain how each reference in a template resolves."""
        context = VariableContext(original_template=template, available_variables=self.names())
        unresolved: List[str] = []
        context.processed_template = self._substitute_string(template, unresolved)
        seen = set()
        for match in self.VAR_PATTERN.finditer(template.replace('$$', '\x00')):
            expression = match.group(1)
            if expression in seen:
                continue
            seen.add(expression)
            context.add_attempt(self._attempt(expression.strip(), expression))
        return context

    def _substitute_value(self, value: Any, unresolved: List[str]) -> Any:
        if isinstance(value, str):
            match = self.VAR_PATTERN.fullmatch(value)
            if match:
                resolved, _ = self._resolve(match.group(1).strip())
                if resolved is _MISSING:
                    unresolved.append(match.group(1))
                    return value
                return resolved
            return self._substitute_string(value, unresolved)
        elif isinstance(value, list):
            return [self._substitute_value(item, unresolved) for item in value]
        elif isinstance(value, tuple):
            return tuple(self._substitute_value(item, unresolved) for item in value)
        elif isinstance(value, dict):
            return {k: self._substitute_value(v, unresolved) for k, v in value.items()}
        return value

    def _substitute_string(self, text: str, unresolved: List[str]) -> str:
        # Escape sequences first: $$ -> $
        text = text.replace('$$', '\x00')

        def replace_var(match):
            value, _ = self._resolve(match.group(1).strip())
            if value is _MISSING:
                unresolved.append(match.group(1))
                return match.group(0)
            return to_string(value)

        result = self.VAR_PATTERN.sub(replace_var, text)
        return result.replace('\x00', '$')

    def _resolve(self, expression: str) -> Tuple[Any, Optional[AccessFailure]]:
        """Return (value or _MISSING, failure detail)."""
        if not expression:
            return _MISSING, AccessFailure(INVALID_SYNTAX, "empty variable expression")

        if expression.startswith(self.ENV_PREFIX):
            env_name = expression[len(self.ENV_PREFIX):].strip()
            if not env_name:
                return _MISSING, AccessFailure(INVALID_SYNTAX, "missing environment variable name")
            if env_name in os.environ:
                return os.environ[env_name], None
            return _MISSING, AccessFailure(
                NOT_FOUND, f"environment variable '{env_name}' is not set", env_name, path=[expression]
            )

        # Names containing dots are looked up whole before being treated as paths
        if expression in self._variables:
            return self._variables[expression], None

        segments = expression.split('.')
        if any(not segment.strip() for segment in segments):
            return _MISSING, AccessFailure(INVALID_SYNTAX, f"invalid variable path '{expression}'")
        segments = [segment.strip() for segment in segments]

        root = segments[0]
        if root not in self._variables:
            return _MISSING, AccessFailure(
                NOT_FOUND, f"variable '{root}' is not defined", root, self.names(), [root]
            )
        try:
            return self.accessor.resolve(self._variables[root], segments[1:], root), None
        except AccessFailure as failure:
            return _MISSING, failure

    def _attempt(self, expression: str, raw: str) -> VariableAccessAttempt:
        value, failure = self._resolve(expression)
        if value is not _MISSING:
            return VariableAccessAttempt(
                expression=raw,
                status=ResolutionStatus.RESOLVED,
                resolved_value=value,
                access_path=expression.split('.'),
            )

        assert failure is not None
        status = (
            ResolutionStatus.EXPRESSION_ERROR
            if failure.reason == INVALID_SYNTAX
            else ResolutionStatus.UNRESOLVED
        )
        return VariableAccessAttempt(
            expression=raw,
            status=status,
            failure_reason=failure.reason,
            error_message=failure.message,
            access_path=failure.path,
            available_keys=failure.available_keys,
            suggestions=find_similar(failure.key, failure.available_keys) if failure.key else [],
        )

    def _describe(self, value: Any) -> str:
        """Flatten the string parts of a value into one template for diagnostics."""
        if isinstance(value, str):
            return value
        if isinstance(value, (list, tuple)):
            return ', '.join(self._describe(item) for item in value if self._has_text(item))
        if isinstance(value, dict):
            return ', '.join(self._describe(item) for item in value.values() if self._has_text(item))
        return ''

    def _has_text(self, value: Any) -> bool:
        return isinstance(value, (str, list, tuple, dict))

    def __contains__(self, name: str) -> bool:
        return name in self._variables

    def __repr__(self) -> str:
        return f"VariableStore({self.names()})"
