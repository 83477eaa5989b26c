"""
Variable storage, substitution and resolution diagnostics.
"""

from .store import VariableStore, to_string
from .access import NestedAccessor, Accessor, AccessFailure
from .diagnostics import VariableContext, VariableAccessAttempt, ResolutionStatus

__all__ = [
    'VariableStore',
    'to_string',
    'NestedAccessor',
    'Accessor',
    'AccessFailure',
    'VariableContext',
    'VariableAccessAttempt',
    'ResolutionStatus',
]
