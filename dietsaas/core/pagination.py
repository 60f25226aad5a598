"""
Pagination utilities for the DietSaaS API.
"""
from typing import Any, List

from pydantic import BaseModel, Field
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession


class PaginationParams(BaseModel):
    """Pagination query parameters."""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def create_paginated_response(items: List[Any], total: int, params: PaginationParams) -> dict:
    """
    Create a paginated response dictionary.

    Args:
        items: Items for the current page
        total: Total count of all items
        params: Page and limit that produced `items`
    """
    pages = (total + params.limit - 1) // params.limit

    return {
        "items": items,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "total_pages": pages,
            "has_more": params.page * params.limit < total,
        },
    }


async def paginate_query(session: AsyncSession, query, params: PaginationParams) -> dict:
    """Execute a select with offset/limit and a total count."""
    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.exec(count_query)
    total = total_result.one()

    result = await session.exec(query.offset(params.offset).limit(params.limit))
    items = result.all()

    return create_paginated_response(items, total, params)
