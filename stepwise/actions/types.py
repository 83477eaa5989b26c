"""
Action contract.

An action is any callable taking the substituted argument list, the
substituted option map and the live variable store, and returning an
ActionResult. Actions report expected failures through the result; an
exception raised by an action is converted into an error result by the
step executor.

Built-in actions also accept a `formatter` keyword; the registry binds the
run's template table into them.
"""

from typing import Any, Callable, Dict, List

from stepwise.results import ActionResult
from stepwise.variables.store import VariableStore


Action = Callable[[List[Any], Dict[str, Any], VariableStore], ActionResult]
