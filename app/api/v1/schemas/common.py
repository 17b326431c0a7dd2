"""
Shared API schema building blocks
camelCase JSON, pagination query parameters and the paginated response envelope
Reference: https://docs.pydantic.dev/latest/concepts/alias/#alias-generator
"""
import uuid
from typing import Generic, Literal, TypeVar

from fastapi import Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.core.config import settings
from app.services.pagination import PageParams

T = TypeVar("T")


class CamelModel(BaseModel):
    """
    Base schema serializing to camelCase.

    Request bodies accept both camelCase and snake_case keys.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Page(CamelModel, Generic[T]):
    """Paginated list response"""
    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list, total: int, params: PageParams) -> "Page[T]":
        return cls(
            data=items,
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=params.total_pages(total),
        )


class MessageResponse(CamelModel):
    message: str


class IdResponse(CamelModel):
    id: uuid.UUID


def page_params(
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(
        settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Items per page",
    ),
    sort_by: str = Query("createdAt", alias="sortBy", description="Sort field"),
    sort_order: Literal["ASC", "DESC"] = Query("DESC", alias="sortOrder", description="Sort direction"),
) -> PageParams:
    """Dependency collecting pagination query parameters"""
    return PageParams(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
