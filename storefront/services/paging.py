from dataclasses import dataclass
from math import ceil
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0


def paginate(items: list[T], page: int, limit: int) -> Page[T]:
    start = (page - 1) * limit
    return Page(items=items[start:start + limit], page=page, limit=limit, total=len(items))
