"""
Ordering primitives shared by the stage and form-field stores.

Pure functions over lists; none of them persist anything.

    renumber(stages)                     -> orders become 1..N by position
    relocate(items, 3, 0)                -> drag item 3 to the top
    resolve_insertion_index(0, 2, True)  -> 1
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, TypeVar

T = TypeVar("T")

DIRECTIONS = ("up", "down")


def sort_by_order(items: Sequence[T]) -> list[T]:
    """Stable sort of items carrying an integer ``order`` attribute."""
    return sorted(items, key=lambda item: item.order)


def renumber(items: Sequence[T]) -> list[T]:
    """Assign ``order = position + 1`` to every item, in list order."""
    result = list(items)
    for position, item in enumerate(result):
        item.order = position + 1
    return result


def relocate(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy with the item at ``from_index`` moved to ``to_index``.

    Raises:
        IndexError: If either index is outside ``[0, len(items) - 1]``.
    """
    size = len(items)
    for index in (from_index, to_index):
        if index < 0 or index >= size:
            raise IndexError(f"index {index} out of range for {size} items")

    result = list(items)
    if from_index == to_index:
        return result
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def swap_with_neighbor(items: Sequence[T], index: int, direction: str) -> list[T]:
    """Swap the item at ``index`` with the previous (up) or next (down) item.

    At either boundary the copy is returned unchanged.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of: {', '.join(DIRECTIONS)}")
    result = list(items)
    neighbor = index - 1 if direction == "up" else index + 1
    if neighbor < 0 or neighbor >= len(result):
        return result
    result[index], result[neighbor] = result[neighbor], result[index]
    return result


@dataclass(frozen=True)
class ItemRect:
    """Vertical extent of the item under the pointer."""
    top: float
    height: float

    @property
    def midpoint(self) -> float:
        return self.top + self.height / 2


def pointer_is_above(pointer_y: float, rect: ItemRect) -> bool:
    """True when the pointer sits above the item's vertical midpoint."""
    return pointer_y < rect.midpoint


def resolve_insertion_index(
    source_index: int,
    pointer_index: int,
    pointer_is_above_midpoint: bool,
    length: int | None = None,
) -> int:
    """Turn a drop over ``pointer_index`` into the index to insert at.

    ``source_index`` is where the dragged item sat before it was removed.
    Dragging downward onto the upper half of an item lands just before it;
    dragging upward onto the lower half lands just after it. ``length`` is
    the size of the list after removal and bounds the result.
    """
    target = pointer_index
    if source_index < pointer_index and pointer_is_above_midpoint:
        target = pointer_index - 1
    elif source_index > pointer_index and not pointer_is_above_midpoint:
        target = pointer_index + 1

    if length is not None:
        target = max(0, min(target, length))
    return target
