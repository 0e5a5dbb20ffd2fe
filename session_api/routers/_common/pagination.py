"""
Standardized pagination for list endpoints.

Pages are 0-based: ``?page=0&size=20`` is the first page.

Usage:
    from session_api.routers._common.pagination import Pagination, get_pagination

    @router.get("/history")
    def history(pagination: Pagination = Depends(get_pagination)):
        items, total = service.session_history(restaurant_id, pagination.page, pagination.size)
        return {"items": items, **pagination.to_dict(total)}
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Query

from shared.config.constants import Limits


@dataclass
class Pagination:
    """
    Pagination parameters with validation.

    Attributes:
        page: 0-based page number
        size: Items per page (1 to max_size)
        max_size: Maximum allowed size
    """

    page: int
    size: int
    max_size: int = Limits.MAX_PAGE_SIZE

    def __post_init__(self):
        self.size = min(max(1, self.size), self.max_size)
        self.page = max(0, self.page)

    @property
    def offset(self) -> int:
        return self.page * self.size

    def total_pages(self, total: int) -> int:
        return (total + self.size - 1) // self.size

    def to_dict(self, total: int) -> dict[str, Any]:
        return {
            "page": self.page,
            "size": self.size,
            "total": total,
            "total_pages": self.total_pages(total),
        }


def get_pagination(
    page: int = Query(default=0, ge=0, description="0-based page number"),
    size: int = Query(
        default=Limits.DEFAULT_PAGE_SIZE,
        ge=1,
        le=Limits.MAX_PAGE_SIZE,
        description="Items per page",
    ),
) -> Pagination:
    """FastAPI dependency for pagination."""
    return Pagination(page=page, size=size)
