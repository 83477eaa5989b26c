"""
Nested property access for dotted variable paths.

`${user.profile.email}`, `${items.0}` and `${items.length}` are resolved one
segment at a time by the first accessor that supports the current container.
Mappings, sequences and record types (dataclasses, named tuples) are handled
out of the box; other container shapes can be supported by registering an
additional Accessor.
"""

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional


NOT_FOUND = 'not_found'
ACCESS_ERROR = 'access_error'
INDEX_OUT_OF_RANGE = 'index_out_of_range'
INVALID_INDEX = 'invalid_index'

# Sequences list at most this many indices as available keys
MAX_LISTED_INDICES = 10


class AccessFailure(Exception):
    """A path segment could not be resolved."""

    def __init__(
        self,
        reason: str,
        message: str,
        key: str = "",
        available_keys: Optional[List[str]] = None,
        path: Optional[List[str]] = None
    ):
        self.reason = reason
        self.message = message
        self.key = key
        self.available_keys = available_keys or []
        self.path = path or []
        super().__init__(message)


class Accessor:
    """Resolves keys against one shape of container."""

    def supports(self, container: Any) -> bool:
        raise NotImplementedError

    def get(self, container: Any, key: str) -> Any:
        """Return the value under key or raise AccessFailure."""
        raise NotImplementedError

    def keys(self, container: Any) -> List[str]:
        raise NotImplementedError


class MappingAccessor(Accessor):

    def supports(self, container: Any) -> bool:
        return isinstance(container, Mapping)

    def get(self, container: Any, key: str) -> Any:
        if key in container:
            return container[key]
        # YAML can produce non-string keys such as integers
        for candidate in container:
            if not isinstance(candidate, str) and str(candidate) == key:
                return container[candidate]
        raise AccessFailure(NOT_FOUND, f"property '{key}' does not exist", key, self.keys(container))

    def keys(self, container: Any) -> List[str]:
        return sorted(str(k) for k in container)


class RecordAccessor(Accessor):
    """Public fields of dataclass instances and named tuples."""

    def supports(self, container: Any) -> bool:
        if dataclasses.is_dataclass(container) and not isinstance(container, type):
            return True
        return isinstance(container, tuple) and hasattr(type(container), '_fields')

    def get(self, container: Any, key: str) -> Any:
        if key.startswith('_'):
            raise AccessFailure(ACCESS_ERROR, f"field '{key}' is not accessible", key, self.keys(container))
        if key not in self.keys(container):
            raise AccessFailure(NOT_FOUND, f"field '{key}' does not exist", key, self.keys(container))
        return getattr(container, key)

    def keys(self, container: Any) -> List[str]:
        if dataclasses.is_dataclass(container):
            names = [f.name for f in dataclasses.fields(container)]
        else:
            names = list(type(container)._fields)
        return [name for name in names if not name.startswith('_')]


class SequenceAccessor(Accessor):
    """Lists and tuples: numeric indices plus `length`."""

    def supports(self, container: Any) -> bool:
        return isinstance(container, Sequence) and not isinstance(container, (str, bytes, bytearray))

    def get(self, container: Any, key: str) -> Any:
        if key == 'length':
            return len(container)
        try:
            index = int(key)
        except ValueError:
            raise AccessFailure(
                INVALID_INDEX, f"invalid array index '{key}'", key, self.keys(container)
            ) from None
        if index < 0 or index >= len(container):
            raise AccessFailure(
                INDEX_OUT_OF_RANGE,
                f"index {index} out of range [0, {len(container) - 1}]",
                key,
                self.keys(container)
            )
        return container[index]

    def keys(self, container: Any) -> List[str]:
        keys = ['length']
        keys.extend(str(i) for i in range(min(len(container), MAX_LISTED_INDICES)))
        if len(container) > MAX_LISTED_INDICES:
            keys.append('...')
        return keys


class NestedAccessor:
    """Walks a dotted path through nested containers."""

    def __init__(self, accessors: Optional[Iterable[Accessor]] = None):
        if accessors is None:
            # Records before sequences so named tuples expose their fields
            accessors = [MappingAccessor(), RecordAccessor(), SequenceAccessor()]
        self._accessors: List[Accessor] = list(accessors)

    def register(self, accessor: Accessor) -> None:
        """Add an accessor that takes precedence over the built-in ones."""
        self._accessors.insert(0, accessor)

    def accessor_for(self, container: Any) -> Optional[Accessor]:
        for accessor in self._accessors:
            if accessor.supports(container):
                return accessor
        return None

    def keys(self, container: Any) -> List[str]:
        accessor = self.accessor_for(container)
        return accessor.keys(container) if accessor else []

    def resolve(self, root: Any, segments: List[str], root_name: str = "") -> Any:
        """
        Follow segments from root.

        Args:
            root: Starting value
            segments: Path segments after the root variable name
            root_name: Variable name, used to report the access path

        Returns:
            The value at the end of the path

        Raises:
            AccessFailure: With the path walked up to and including the
                failing segment
        """
        current = root
        path = [root_name] if root_name else []
        for segment in segments:
            path.append(segment)
            if current is None:
                raise AccessFailure(
                    ACCESS_ERROR, f"cannot access property '{segment}' on nil value", segment, [], list(path)
                )
            accessor = self.accessor_for(current)
            if accessor is None:
                raise AccessFailure(
                    ACCESS_ERROR,
                    f"cannot access property '{segment}' on type {type(current).__name__}",
                    segment,
                    [],
                    list(path)
                )
            try:
                current = accessor.get(current, segment)
            except AccessFailure as failure:
                failure.path = list(path)
                raise
        return current


def find_similar(target: str, candidates: Iterable[str]) -> List[str]:
    """
    Suggest near-name matches for a missing key.

    A candidate matches when it equals the target ignoring case, when either
    contains the other, or when their positional distance is at most 2.
    """
    target_lower = target.lower()
    similar = []
    for candidate in candidates:
        if candidate == '...' or candidate == target:
            continue
        candidate_lower = candidate.lower()
        if candidate_lower == target_lower:
            similar.append(candidate)
        elif target_lower and (target_lower in candidate_lower or candidate_lower in target_lower):
            similar.append(candidate)
        elif simple_distance(target_lower, candidate_lower) <= 2:
            similar.append(candidate)
    return similar


def simple_distance(first: str, second: str) -> int:
    """Count differing positions plus the length difference."""
    if not first:
        return len(second)
    if not second:
        return len(first)
    if len(first) > len(second):
        first, second = second, first
    differences = sum(1 for a, b in zip(first, second) if a != b)
    return differences + len(second) - len(first)
