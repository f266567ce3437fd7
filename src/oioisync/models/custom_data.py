"""Immutable, insertion-ordered key/value bag attached to entities and results."""

from collections.abc import Iterator, Mapping
from typing import Any


class CustomData(Mapping[str, Any]):
    """
    Read-only string-keyed map with copy-on-extend semantics.

    ``add`` and ``extend`` never touch the receiver; they return a new
    instance holding the previous entries followed by the new ones. Empty
    keys are ignored.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, Any] | None = None):
        self._items: dict[str, Any] = {}
        for key, value in (items or {}).items():
            if key:
                self._items[str(key)] = value

    def __getitem__(self, key: str) -> Any:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CustomData):
            return list(self._items.items()) == list(other._items.items())
        if isinstance(other, Mapping):
            return dict(self._items) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._items))

    def __repr__(self) -> str:
        return f"CustomData({self._items!r})"

    def add(self, key: str, value: Any) -> "CustomData":
        merged = dict(self._items)
        if key:
            merged[key] = value
        return CustomData(merged)

    def extend(self, items: Mapping[str, Any]) -> "CustomData":
        merged = dict(self._items)
        merged.update({k: v for k, v in items.items() if k})
        return CustomData(merged)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._items)


EMPTY = CustomData()
