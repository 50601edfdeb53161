"""Response envelopes shared by all endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class DataResponse(BaseModel, Generic[T]):
    """Single object (or list) wrapped in the success envelope."""

    success: bool = True
    message: str | None = None
    data: T


class PageResponse(BaseModel, Generic[T]):
    """One page of a filtered listing."""

    success: bool = True
    items: list[T]
    total: int = Field(description="Total matching records across all pages")
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, items: list[T], total: int, page: int, limit: int) -> "PageResponse[T]":
        pages = (total + limit - 1) // limit if total else 0
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)
