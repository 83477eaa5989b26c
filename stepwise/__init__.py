"""
Stepwise: a YAML-driven test automation step execution engine.
"""

from stepwise.actions.registry import ActionRegistry
from stepwise.loader import TestCaseLoader
from stepwise.results import ActionResult, ActionStatus, StepResult, TestResult
from stepwise.types import Step, TestCase
from stepwise.variables.store import VariableStore
from stepwise.workflow.executor import ControlFlowExecutor
from stepwise.workflow.runner import TestRunner

__version__ = "0.1.0"

__all__ = [
    'ActionRegistry',
    'ActionResult',
    'ActionStatus',
    'ControlFlowExecutor',
    'Step',
    'StepResult',
    'TestCase',
    'TestCaseLoader',
    'TestResult',
    'TestRunner',
    'VariableStore',
]
