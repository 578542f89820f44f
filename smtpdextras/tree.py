"""An ordered map from 64-bit integer ids to arbitrary values."""

from __future__ import annotations

from typing import Any, Iterator

from sortedcontainers import SortedDict


class TreeError(LookupError):
    """Raised when a strict tree operation finds a missing or duplicate id."""


class Tree:
    """Ordered id -> value mapping with lenient and strict accessors."""

    def __init__(self) -> None:
        self._entries: SortedDict = SortedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, id_: object) -> bool:
        return id_ in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"Tree({dict(self._entries)!r})"

    def check(self, id_: int) -> bool:
        """Return whether the id is present."""
        return id_ in self._entries

    def set(self, id_: int, data: Any) -> Any:
        """Store data under id; return the value it replaced, or None."""
        old = self._entries.get(id_)
        self._entries[id_] = data
        return old

    def xset(self, id_: int, data: Any) -> None:
        """Store data under a new id; raise TreeError if it already exists."""
        if id_ in self._entries:
            raise TreeError(f"tree_xset(0x{id_:016x}): already present")
        self._entries[id_] = data

    def get(self, id_: int) -> Any:
        """Return the value for id, or None if absent."""
        return self._entries.get(id_)

    def xget(self, id_: int) -> Any:
        """Return the value for id; raise TreeError if absent."""
        try:
            return self._entries[id_]
        except KeyError:
            raise TreeError(f"tree_get(0x{id_:016x}): not found") from None

    def pop(self, id_: int) -> Any:
        """Remove id and return its value, or None if absent."""
        return self._entries.pop(id_, None)

    def xpop(self, id_: int) -> Any:
        """Remove id and return its value; raise TreeError if absent."""
        try:
            return self._entries.pop(id_)
        except KeyError:
            raise TreeError(f"tree_xpop(0x{id_:016x}): not found") from None

    def poproot(self) -> tuple[int, Any] | None:
        """Remove and return one (id, value) pair, or None if empty."""
        if not self._entries:
            return None
        return self._entries.popitem(0)

    def root(self) -> tuple[int, Any] | None:
        """Return one (id, value) pair without removing it, or None if empty."""
        if not self._entries:
            return None
        return self._entries.peekitem(0)

    def items(self) -> Iterator[tuple[int, Any]]:
        """Yield (id, value) pairs in ascending id order."""
        for key in list(self._entries):
            if key in self._entries:
                yield key, self._entries[key]

    def items_from(self, key: int) -> Iterator[tuple[int, Any]]:
        """Yield (id, value) pairs with id >= key, in ascending order.

        A key of 0 starts from the smallest id.
        """
        for k in list(self._entries.irange(minimum=key)):
            if k in self._entries:
                yield k, self._entries[k]

    def merge(self, other: Tree) -> None:
        """Move every entry of other into this tree, leaving other empty.

        Raises TreeError, changing nothing, if an id is in both trees.
        """
        for key in other._entries:
            if key in self._entries:
                raise TreeError("tree_merge: duplicate")
        self._entries.update(other._entries)
        other._entries.clear()