from typing import Generic, Sequence, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination metadata"""
    total: int
    limit: int
    offset: int
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper"""
    items: list[T]
    pagination: PaginationMeta

    @classmethod
    def build(cls, items: Sequence[T], *, total: int, limit: int, offset: int) -> "PaginatedResponse[T]":
        return cls(
            items=list(items),
            pagination=PaginationMeta(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + len(items) < total,
            ),
        )
