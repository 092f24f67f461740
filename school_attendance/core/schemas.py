from math import ceil
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a listing plus the totals a client needs for pagination links."""

    items: List[T]
    total: int
    page: int
    per_page: int
    last_page: int

    @classmethod
    def build(cls, items: List[T], total: int, page: int, per_page: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            last_page=max(1, ceil(total / per_page)) if per_page else 1,
        )
