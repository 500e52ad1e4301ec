"""
Generational handle arena.

Objects handed across the boundary layer are addressed by a Handle
(kind, index, generation) instead of a reference. Destroying an object
bumps the slot's generation, so a handle kept after destruction is
detected as stale instead of resolving to whatever reuses the slot.
"""

from dataclasses import dataclass
from typing import Any, Generic, Iterator, List, Optional, Tuple, TypeVar

from sem_mc.errors import InvalidParameterError

T = TypeVar('T')


@dataclass(frozen=True)
class Handle:
    kind: str
    index: int
    generation: int

    def __str__(self) -> str:
        return f"{self.kind}#{self.index}.{self.generation}"


class HandleArena(Generic[T]):
    """
    Slot storage addressed by typed handles.

    Example:
        arena = HandleArena('sample')
        h = arena.insert(sample)
        arena.get(h)        # -> sample
        arena.remove(h)
        arena.get(h)        # InvalidParameterError (stale handle)
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._items: List[Optional[T]] = []
        self._generations: List[int] = []
        self._free: List[int] = []

    def insert(self, item: T) -> Handle:
        if self._free:
            index = self._free.pop()
            self._items[index] = item
        else:
            index = len(self._items)
            self._items.append(item)
            self._generations.append(0)
        return Handle(self.kind, index, self._generations[index])

    def _check(self, handle: Any) -> int:
        if not isinstance(handle, Handle) or handle.kind != self.kind:
            raise InvalidParameterError(f"Expected a {self.kind} handle, got {handle!r}")
        index = handle.index
        if (index < 0 or index >= len(self._items)
                or self._generations[index] != handle.generation
                or self._items[index] is None):
            raise InvalidParameterError(f"Stale {self.kind} handle {handle}")
        return index

    def get(self, handle: Handle) -> T:
        return self._items[self._check(handle)]

    def remove(self, handle: Handle) -> T:
        index = self._check(handle)
        item = self._items[index]
        self._items[index] = None
        self._generations[index] += 1
        self._free.append(index)
        return item

    def contains(self, handle: Any) -> bool:
        try:
            self._check(handle)
        except InvalidParameterError:
            return False
        return True

    def items(self) -> Iterator[Tuple[Handle, T]]:
        for index, item in enumerate(self._items):
            if item is not None:
                yield Handle(self.kind, index, self._generations[index]), item

    def clear(self):
        for handle, _ in list(self.items()):
            self.remove(handle)

    def __len__(self) -> int:
        return sum(1 for item in self._items if item is not None)

    def __repr__(self) -> str:
        return f"HandleArena({self.kind!r}, live={len(self)})"
