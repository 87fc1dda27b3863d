"""Pagination helpers."""

from typing import Sequence, TypeVar

T = TypeVar("T")


def paginate(items: Sequence[T], limit: int, offset: int, max_limit: int = 200) -> tuple[list[T], int]:
    """Clamp limit/offset and slice; return (page, total)."""
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return list(items[offset:offset + limit]), len(items)
