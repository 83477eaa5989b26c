"""
Diagnostics for failed variable resolution.

A VariableContext is assembled only after substitution has left references
unresolved. It explains every `${...}` expression in the template: what was
tried, where access stopped, what keys were available there and which names
look like what the author meant.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    PARTIAL = "partial"
    EXPRESSION_ERROR = "expr_error"


NOT_FOUND = 'not_found'
INVALID_SYNTAX = 'invalid_syntax'

_REASON_TEXT = {
    NOT_FOUND: "variable not found",
    INVALID_SYNTAX: "invalid syntax",
    'access_error': "property access failed",
    'index_out_of_range': "array index out of range",
    'invalid_index': "invalid array index",
}


@dataclass
class VariableAccessAttempt:
    """Outcome of resolving one `${...}` expression."""
    expression: str
    status: ResolutionStatus
    failure_reason: Optional[str] = None
    resolved_value: Any = None
    error_message: str = ""
    access_path: List[str] = field(default_factory=list)
    available_keys: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'expression': self.expression,
            'status': self.status.value,
        }
        if self.failure_reason:
            result['failure_reason'] = self.failure_reason
        if self.error_message:
            result['error_message'] = self.error_message
        if self.access_path:
            result['access_path'] = '.'.join(self.access_path)
        if self.available_keys:
            result['available_keys'] = list(self.available_keys)
        if self.suggestions:
            result['suggestions'] = list(self.suggestions)
        return result


@dataclass
class VariableContext:
    """Resolution report for one template."""
    original_template: str
    processed_template: str = ""
    available_variables: List[str] = field(default_factory=list)
    attempts: List[VariableAccessAttempt] = field(default_factory=list)

    def add_attempt(self, attempt: VariableAccessAttempt) -> None:
        self.attempts.append(attempt)

    @property
    def resolved_count(self) -> int:
        return sum(1 for a in self.attempts if a.status == ResolutionStatus.RESOLVED)

    @property
    def unresolved_count(self) -> int:
        return len(self.attempts) - self.resolved_count

    @property
    def status(self) -> ResolutionStatus:
        if not self.unresolved_count:
            return ResolutionStatus.RESOLVED
        if self.resolved_count:
            return ResolutionStatus.PARTIAL
        if all(a.status == ResolutionStatus.EXPRESSION_ERROR for a in self.attempts):
            return ResolutionStatus.EXPRESSION_ERROR
        return ResolutionStatus.UNRESOLVED

    def unresolved(self) -> List[VariableAccessAttempt]:
        return [a for a in self.attempts if a.status != ResolutionStatus.RESOLVED]

    def suggestions(self) -> List[str]:
        """Remediation hints derived from the failed attempts."""
        hints = []
        for attempt in self.unresolved():
            if attempt.suggestions:
                hints.append(f"Did you mean one of: {', '.join(attempt.suggestions)}?")
        reasons = {a.failure_reason for a in self.unresolved()}
        if NOT_FOUND in reasons:
            hints.append("Check variable names for typos or case sensitivity issues")
        if reasons & {'access_error', 'index_out_of_range', 'invalid_index'}:
            hints.append("Verify nested property access paths and that intermediate values exist")
        if INVALID_SYNTAX in reasons:
            hints.append("Use ${name}, ${name.path.to.field} or ${ENV:NAME}")
        return hints

    def detailed_message(self) -> str:
        if self.status == ResolutionStatus.RESOLVED:
            return ""

        lines = [f"Variable resolution failed in template: '{self.original_template}'"]
        lines.append(f"Failed to resolve {self.unresolved_count} variable(s)")
        for attempt in self.unresolved():
            reason = _REASON_TEXT.get(attempt.failure_reason or '', attempt.failure_reason or 'unknown')
            lines.append(f"  - '${{{attempt.expression}}}': {reason}")
            if attempt.error_message:
                lines.append(f"    Error: {attempt.error_message}")
            if attempt.available_keys:
                lines.append(f"    Available keys: {', '.join(attempt.available_keys)}")
            if attempt.suggestions:
                lines.append(f"    Suggestions: {'; '.join(attempt.suggestions)}")
        if self.available_variables:
            lines.append(f"Available variables: {', '.join(self.available_variables)}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'template': self.original_template,
            'status': self.status.value,
            'resolved_count': self.resolved_count,
            'unresolved_count': self.unresolved_count,
            'attempts': [a.to_dict() for a in self.attempts],
        }
