"""
Offset pagination helpers shared by list endpoints
"""
import math
from dataclasses import dataclass
from typing import Any, Literal, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ValidationError

SortOrder = Literal["ASC", "DESC"]


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE
    sort_by: str = "createdAt"
    sort_order: SortOrder = "DESC"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total else 0


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PageParams,
    sort_columns: dict[str, Any],
) -> tuple[list[Any], int]:
    """
    Apply sorting and offset pagination to an ORM select.

    Args:
        db: Database session
        query: Filtered select of a single entity
        params: Page, limit and sort parameters
        sort_columns: Whitelist of sortBy values mapped to columns

    Returns:
        (items of the requested page, total matching rows)

    Raises:
        ValidationError: sortBy is not in the whitelist
    """
    column = sort_columns.get(params.sort_by)
    if column is None:
        raise ValidationError(
            f"Cannot sort by '{params.sort_by}'",
            details={"allowed": sorted(sort_columns)},
        )

    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))

    ordering = column.asc() if params.sort_order == "ASC" else column.desc()
    result = await db.execute(query.order_by(ordering).offset(params.offset).limit(params.limit))
    items: Sequence[Any] = result.scalars().all()
    return list(items), int(total or 0)
