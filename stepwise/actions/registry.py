"""
Action registry.

Maps action names used in test files to callables. Built-in actions are
always available; registered actions take precedence over built-ins of the
same name.
"""

import logging
from functools import partial
from typing import Dict, List, Optional

from stepwise.errors import SafeFormatter
from .types import Action


logger = logging.getLogger(__name__)


class ActionRegistry:
    """Registry of named actions."""

    def __init__(self):
        """Initialize with the built-in actions."""
        self._actions: Dict[str, Action] = {}
        self._builtin_actions = self._load_builtin_actions()

    def _load_builtin_actions(self) -> Dict[str, Action]:
        from . import builtin

        return {
            "assert": builtin.assert_action,
            "log": builtin.log_action,
            "sleep": builtin.sleep_action,
            "variable": builtin.variable_action,
        }

    def register(self, name: str, action: Action) -> None:
        """
        Register an action under a name.

        Args:
            name: Name used in the `action:` field
            action: Callable implementing the action contract

        Raises:
            ValueError: If the name is empty or the action is not callable
        """
        if not name or not isinstance(name, str):
            raise ValueError("Action name must be a non-empty string")
        if not callable(action):
            raise ValueError(f"Action '{name}' must be callable")

        if name in self._builtin_actions:
            logger.debug(f"Action '{name}' overrides the built-in action")
        self._actions[name] = action
        logger.debug(f"Registered action: {name}")

    def get(self, name: str, formatter: Optional[SafeFormatter] = None) -> Optional[Action]:
        """
        Get an action by name.

        Args:
            name: Action name
            formatter: Template table bound into built-in actions

        Returns:
            The action or None if no action has that name
        """
        action = self._actions.get(name)
        if action is not None:
            return action
        builtin = self._builtin_actions.get(name)
        if builtin is not None and formatter is not None:
            return partial(builtin, formatter=formatter)
        return builtin

    def exists(self, name: str) -> bool:
        return name in self._actions or name in self._builtin_actions

    def list_actions(self) -> List[str]:
        """Return all action names, sorted."""
        return sorted(set(self._actions) | set(self._builtin_actions))
