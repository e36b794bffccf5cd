"""Structural snapshots of resources and the differences between them."""
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


def _freeze(value: Any) -> Any:
    if isinstance(value, State):
        return value
    if isinstance(value, Mapping):
        return State(value)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(_freeze(v) for v in value))
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, State):
        return value.to_dict()
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


class State(Mapping):
    """An immutable, hashable mapping of the fields that define a resource.

    Two states compare equal when they hold the same fields with equal
    values, regardless of the order in which the fields were supplied.
    Fields whose value is None are dropped.
    """

    __slots__ = ("_items",)

    def __init__(self, fields: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        merged: Dict[str, Any] = dict(fields or {})
        merged.update(kwargs)
        self._items: Tuple[Tuple[str, Any], ...] = tuple(
            sorted((k, _freeze(v)) for k, v in merged.items() if v is not None)
        )

    def __getitem__(self, key: str) -> Any:
        for k, v in self._items:
            if k == key:
                return v
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, State):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"State({self.to_dict()!r})"

    def is_empty(self) -> bool:
        return not self._items

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain, JSON friendly copy of the state."""
        return {k: _thaw(v) for k, v in self._items}


EMPTY_STATE = State()


@dataclass(frozen=True)
class Diff:
    """The difference between a previously recorded state and a new one."""
    previous: State = EMPTY_STATE
    current: State = EMPTY_STATE

    def is_empty(self) -> bool:
        return self.previous == self.current

    def changed_fields(self) -> List[str]:
        """Names of the fields that were added, removed or modified."""
        keys = set(self.previous) | set(self.current)
        return sorted(k for k in keys if self.previous.get(k) != self.current.get(k))


def empty_diff() -> Diff:
    return Diff()


def diff_states(previous: State, current: State) -> Diff:
    return Diff(previous=previous, current=current)
