from typing import Any, List, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(db: AsyncSession, stmt: Select, page: int, per_page: int) -> Tuple[List[Any], int]:
    """Run stmt for one page. Returns (rows, total) where total ignores LIMIT/OFFSET."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar_one()
    page = max(page, 1)
    result = await db.execute(stmt.limit(per_page).offset((page - 1) * per_page))
    return list(result.scalars().unique().all()), total
