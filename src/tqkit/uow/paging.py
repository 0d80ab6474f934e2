"""Page arithmetic shared by the repository's paged queries."""

from __future__ import annotations

from typing import Generic, NamedTuple, Sequence, TypeVar

T = TypeVar("T")


class Page(NamedTuple, Generic[T]):
    """One page of results plus the total count of the filtered query.

    Unpacks like a pair::

        items, total = await repo.get_paged(1, 20)
    """

    items: Sequence[T]
    total_count: int


def page_bounds(page_index: int, page_size: int) -> tuple[int, int]:
    """Return ``(offset, limit)`` for a 1-based *page_index*.

    Index and size are clamped to a minimum of 1, so the offset is never
    negative and the limit is never zero.
    """
    size = max(1, page_size)
    index = max(1, page_index)
    return (index - 1) * size, size
