"""List registered actions."""

from argparse import Namespace

from stepwise.actions.registry import ActionRegistry


def list_actions(args: Namespace) -> int:
    """Print the name of every available action."""
    registry = ActionRegistry()
    for name in registry.list_actions():
        print(name)
    return 0
