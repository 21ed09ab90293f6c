from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")

PAGE_SIZE = 50


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    total_pages: int
    total: int
    per_page: int = PAGE_SIZE

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def first_index(self) -> int:
        """1-based position of the first item shown, 0 when empty."""
        return (self.page - 1) * self.per_page + 1 if self.items else 0

    @property
    def last_index(self) -> int:
        return (self.page - 1) * self.per_page + len(self.items)


def total_pages(count: int, per_page: int = PAGE_SIZE) -> int:
    """Always at least one page, even for an empty result set."""
    return max(1, math.ceil(count / per_page))


def clamp_page(page: int, count: int, per_page: int = PAGE_SIZE) -> int:
    return min(max(page, 1), total_pages(count, per_page))


def parse_page(raw: str | int | None) -> int:
    try:
        return int(raw) if raw is not None else 1
    except (TypeError, ValueError):
        return 1


def paginate(results: Sequence[T], page: int | str | None, per_page: int = PAGE_SIZE) -> Page[T]:
    """Slice an already-fetched result set. Out-of-range pages are clamped."""
    count = len(results)
    current = clamp_page(parse_page(page), count, per_page)
    start = (current - 1) * per_page
    return Page(
        items=list(results[start:start + per_page]),
        page=current,
        total_pages=total_pages(count, per_page),
        total=count,
        per_page=per_page,
    )
