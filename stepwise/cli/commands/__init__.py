"""CLI command handlers."""

from .run import run_tests
from .actions import list_actions

__all__ = ['run_tests', 'list_actions']
