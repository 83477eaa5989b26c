"""
Result types shared by every execution path.

An ActionResult is the outcome of one attempt. Technical malfunctions carry
an ErrorInfo, failed expectations carry a FailureInfo, and the two are never
present together.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ActionStatus(str, Enum):
    """Outcome status of an action or step."""
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


class ErrorCategory(str, Enum):
    """Categories of technical failures."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    ASSERTION = "assertion"
    VARIABLE = "variable"
    NETWORK = "network"
    DATABASE = "database"
    SYSTEM = "system"


class FailureCategory(str, Enum):
    """Categories of logical test failures."""
    ASSERTION = "assertion"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    DATA_MISMATCH = "data_mismatch"
    RESPONSE_VALIDATION = "response_validation"


# Higher wins when folding statuses into an overall outcome
STATUS_SEVERITY = {
    ActionStatus.SKIPPED: 0,
    ActionStatus.PASSED: 0,
    ActionStatus.FAILED: 1,
    ActionStatus.ERROR: 2,
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ErrorInfo:
    """Structured description of a technical failure."""
    category: ErrorCategory
    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'category': self.category.value,
            'code': self.code,
            'message': self.message,
            'timestamp': self.timestamp,
        }
        if self.context:
            result['context'] = self.context
        if self.suggestions:
            result['suggestions'] = list(self.suggestions)
        return result


@dataclass
class FailureInfo:
    """Structured description of a failed expectation."""
    category: FailureCategory
    code: str
    message: str
    expected: Any = None
    actual: Any = None
    comparison: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=_utcnow)

    def to_error_info(self) -> ErrorInfo:
        """Express this failure as an ErrorInfo for test-level reporting."""
        context = dict(self.context)
        context.update({
            'expected': self.expected,
            'actual': self.actual,
            'comparison': self.comparison,
        })
        return ErrorInfo(
            category=ErrorCategory.ASSERTION,
            code=self.code,
            message=self.message,
            context=context,
            suggestions=list(self.suggestions),
            timestamp=self.timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'category': self.category.value,
            'code': self.code,
            'message': self.message,
            'expected': self.expected,
            'actual': self.actual,
            'comparison': self.comparison,
            'timestamp': self.timestamp,
        }
        if self.context:
            result['context'] = self.context
        if self.suggestions:
            result['suggestions'] = list(self.suggestions)
        return result


@dataclass
class ActionResult:
    """
    Uniform outcome of an action invocation.

    Attributes:
        status: Outcome status
        error_info: Present exactly when status is ERROR
        failure_info: Present exactly when status is FAILED
        data: Optional payload used for extraction and result variables
        meta: Free-form annotations such as the reason a step was skipped
    """
    status: ActionStatus
    error_info: Optional[ErrorInfo] = None
    failure_info: Optional[FailureInfo] = None
    data: Any = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.status = ActionStatus(self.status)
        if self.status == ActionStatus.ERROR:
            if self.error_info is None or self.failure_info is not None:
                raise ValueError("error results must carry error_info only")
        elif self.status == ActionStatus.FAILED:
            if self.failure_info is None or self.error_info is not None:
                raise ValueError("failed results must carry failure_info only")
        elif self.error_info is not None or self.failure_info is not None:
            raise ValueError(f"{self.status.value} results cannot carry error or failure info")

    @classmethod
    def passed(cls, data: Any = None) -> 'ActionResult':
        return cls(status=ActionStatus.PASSED, data=data)

    @classmethod
    def skipped(cls, reason: str) -> 'ActionResult':
        return cls(status=ActionStatus.SKIPPED, meta={'reason': reason})

    @classmethod
    def from_error(cls, info: ErrorInfo, data: Any = None) -> 'ActionResult':
        return cls(status=ActionStatus.ERROR, error_info=info, data=data)

    @classmethod
    def from_failure(cls, info: FailureInfo, data: Any = None) -> 'ActionResult':
        return cls(status=ActionStatus.FAILED, failure_info=info, data=data)

    def message(self) -> str:
        """Return the error or failure message, or an empty string."""
        if self.error_info is not None:
            return self.error_info.message
        if self.failure_info is not None:
            return self.failure_info.message
        return ""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'status': self.status.value}
        if self.error_info is not None:
            result['error'] = self.error_info.to_dict()
        if self.failure_info is not None:
            result['failure'] = self.failure_info.to_dict()
        if self.data is not None:
            result['data'] = self.data
        if self.meta:
            result['meta'] = self.meta
        return result


@dataclass
class LoopContext:
    """Per-iteration metadata for `for` and `while` loops."""
    kind: str
    iteration: int
    index: Optional[int] = None
    item: Any = None
    condition: str = ""
    max_iterations: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.kind, 'iteration': self.iteration}
        if self.index is not None:
            result['index'] = self.index
        if self.item is not None:
            result['item'] = self.item
        if self.condition:
            result['condition'] = self.condition
        if self.max_iterations is not None:
            result['max_iterations'] = self.max_iterations
        return result


@dataclass
class StepResult:
    """
    One row of the execution report.

    Group steps carry their children's rows in `steps`.
    """
    name: str
    action: str
    duration: float
    result: ActionResult
    steps: List['StepResult'] = field(default_factory=list)

    @property
    def status(self) -> ActionStatus:
        return self.result.status

    def renamed(self, name: str) -> 'StepResult':
        return replace(self, name=name)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'name': self.name,
            'action': self.action,
            'duration': round(self.duration, 6),
        }
        result.update(self.result.to_dict())
        if self.steps:
            result['steps'] = [child.to_dict() for child in self.steps]
        return result


@dataclass
class TestResult:
    """Aggregated outcome of a test case run."""
    __test__ = False

    name: str
    status: ActionStatus = ActionStatus.PASSED
    duration: float = 0.0
    setup_steps: List[StepResult] = field(default_factory=list)
    steps: List[StepResult] = field(default_factory=list)
    teardown_steps: List[StepResult] = field(default_factory=list)
    error_info: Optional[ErrorInfo] = None

    @property
    def passed(self) -> bool:
        return self.status == ActionStatus.PASSED

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'status': self.status.value,
            'duration': round(self.duration, 6),
            'setup_steps': [step.to_dict() for step in self.setup_steps],
            'steps': [step.to_dict() for step in self.steps],
            'teardown_steps': [step.to_dict() for step in self.teardown_steps],
        }
        if self.error_info is not None:
            result['error'] = self.error_info.to_dict()
        return result


def most_severe(statuses: List[ActionStatus]) -> ActionStatus:
    """Fold statuses into one, ranking error above failed above passed."""
    overall = ActionStatus.PASSED
    for status in statuses:
        if STATUS_SEVERITY[status] > STATUS_SEVERITY[overall]:
            overall = status
    return overall
