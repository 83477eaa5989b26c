"""
Action registry and built-in actions.
"""

from .types import Action
from .registry import ActionRegistry


__all__ = [
    "Action",
    "ActionRegistry",
]
